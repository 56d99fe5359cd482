"""Holidays, leave accrual and timesheet entries

Revision ID: 002_holidays_accrual_entries
Revises: 001_initial_workflow
Create Date: 2026-10-19

"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '002_holidays_accrual_entries'
down_revision: Union[str, None] = '001_initial_workflow'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

ACCRUAL_PERIOD = ('MONTHLY', 'QUARTERLY', 'ANNUAL')


def _created_at():
    return sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False)


def _columns(inspector, table):
    return {column['name'] for column in inspector.get_columns(table)}


def upgrade() -> None:
    bind = op.get_bind()
    inspector = sa.inspect(bind)
    # Skip if tables already exist (e.g. DB created by app create_all())
    if 'holidays' in inspector.get_table_names():
        return

    if bind.dialect.name == 'sqlite':
        accrual_period = sa.Enum(*ACCRUAL_PERIOD, name='accrualperiod')
    else:
        postgresql.ENUM(*ACCRUAL_PERIOD, name='accrualperiod').create(bind, checkfirst=True)
        accrual_period = postgresql.ENUM(*ACCRUAL_PERIOD, name='accrualperiod', create_type=False)

    if 'accrues' not in _columns(inspector, 'leave_types'):
        with op.batch_alter_table('leave_types') as batch_op:
            batch_op.add_column(sa.Column('accrues', sa.Boolean(), nullable=False, server_default=sa.false()))
    if 'join_date' not in _columns(inspector, 'users'):
        with op.batch_alter_table('users') as batch_op:
            batch_op.add_column(sa.Column('join_date', sa.Date(), nullable=True))

    op.create_table(
        'holidays',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('holiday_date', sa.Date(), nullable=False),
        sa.Column('location_id', sa.Integer(), nullable=True),
        sa.Column('hours', sa.Numeric(5, 2), nullable=False, server_default='8.5'),
        sa.Column('active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_by', sa.Integer(), nullable=True),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
        _created_at(),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
        sa.ForeignKeyConstraint(['location_id'], ['locations.id'], ),
        sa.ForeignKeyConstraint(['created_by'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_holidays_id'), 'holidays', ['id'], unique=False)
    op.create_index(op.f('ix_holidays_holiday_date'), 'holidays', ['holiday_date'], unique=False)
    op.create_index('ix_holidays_location_date', 'holidays', ['location_id', 'holiday_date'], unique=False)

    op.create_table(
        'leave_accrual_configs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('leave_type_id', sa.Integer(), nullable=False),
        sa.Column('location_id', sa.Integer(), nullable=True),
        sa.Column('staff_type_id', sa.Integer(), nullable=True),
        sa.Column('accrual_rate', sa.Numeric(6, 2), nullable=False),
        sa.Column('accrual_period', accrual_period, nullable=False, server_default='MONTHLY'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
        _created_at(),
        sa.ForeignKeyConstraint(['leave_type_id'], ['leave_types.id'], ),
        sa.ForeignKeyConstraint(['location_id'], ['locations.id'], ),
        sa.ForeignKeyConstraint(['staff_type_id'], ['staff_types.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('accrual_rate >= 0', name='check_accrual_rate_non_negative')
    )
    op.create_index(op.f('ix_leave_accrual_configs_id'), 'leave_accrual_configs', ['id'], unique=False)
    op.create_index(op.f('ix_leave_accrual_configs_leave_type_id'), 'leave_accrual_configs', ['leave_type_id'], unique=False)

    op.create_table(
        'leave_accrual_runs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('leave_type_id', sa.Integer(), nullable=False),
        sa.Column('year', sa.Integer(), nullable=False),
        sa.Column('month', sa.Integer(), nullable=False),
        sa.Column('days', sa.Numeric(6, 2), nullable=False),
        sa.Column('config_id', sa.Integer(), nullable=True),
        sa.Column('credited_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['leave_type_id'], ['leave_types.id'], ),
        sa.ForeignKeyConstraint(['config_id'], ['leave_accrual_configs.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'leave_type_id', 'year', 'month', name='uq_leave_accrual_runs_user_type_month')
    )
    op.create_index(op.f('ix_leave_accrual_runs_id'), 'leave_accrual_runs', ['id'], unique=False)
    op.create_index(op.f('ix_leave_accrual_runs_user_id'), 'leave_accrual_runs', ['user_id'], unique=False)

    op.create_table(
        'timesheet_entries',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('timesheet_id', sa.Integer(), nullable=False),
        sa.Column('entry_date', sa.Date(), nullable=False),
        sa.Column('work_hours', sa.Numeric(5, 2), nullable=False, server_default='0'),
        sa.Column('leave_hours', sa.Numeric(5, 2), nullable=False, server_default='0'),
        sa.Column('holiday_hours', sa.Numeric(5, 2), nullable=False, server_default='0'),
        sa.Column('overtime_hours', sa.Numeric(5, 2), nullable=False, server_default='0'),
        sa.Column('expected_hours', sa.Numeric(5, 2), nullable=False, server_default='0'),
        sa.Column('notes', sa.Text(), nullable=True),
        _created_at(),
        sa.ForeignKeyConstraint(['timesheet_id'], ['timesheets.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('timesheet_id', 'entry_date', name='uq_timesheet_entries_day'),
        sa.CheckConstraint(
            'work_hours >= 0 AND leave_hours >= 0 AND holiday_hours >= 0 AND overtime_hours >= 0',
            name='check_timesheet_entry_hours_non_negative'
        )
    )
    op.create_index(op.f('ix_timesheet_entries_id'), 'timesheet_entries', ['id'], unique=False)
    op.create_index(op.f('ix_timesheet_entries_timesheet_id'), 'timesheet_entries', ['timesheet_id'], unique=False)


def downgrade() -> None:
    for table in ('timesheet_entries', 'leave_accrual_runs', 'leave_accrual_configs', 'holidays'):
        op.drop_table(table)
    with op.batch_alter_table('users') as batch_op:
        batch_op.drop_column('join_date')
    with op.batch_alter_table('leave_types') as batch_op:
        batch_op.drop_column('accrues')

    bind = op.get_bind()
    if bind.dialect.name != 'sqlite':
        postgresql.ENUM(*ACCRUAL_PERIOD, name='accrualperiod').drop(bind, checkfirst=True)
