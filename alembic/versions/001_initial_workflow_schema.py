"""Initial workflow schema

Revision ID: 001_initial_workflow
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '001_initial_workflow'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

# Enum types store member names, matching SQLAlchemy's Enum(enum_class) default
ENUMS = {
    'userstatus': ('ACTIVE', 'INACTIVE'),
    'locationstatus': ('ACTIVE', 'INACTIVE'),
    'rolestatus': ('ACTIVE', 'INACTIVE'),
    'rolescopemode': ('SCOPED', 'GLOBAL'),
    'scopestatus': ('ACTIVE', 'INACTIVE'),
    'scopesource': ('DIRECT', 'ROLE_SYNC'),
    'delegationstatus': ('ACTIVE', 'REVOKED', 'EXPIRED'),
    'resourcetype': ('LEAVE', 'TIMESHEET'),
    'templatestatus': ('ACTIVE', 'INACTIVE', 'DEPRECATED'),
    'approverstrategykind': ('ROLE', 'MANAGER', 'PERMISSION', 'COMBINED'),
    'locationscope': ('SAME', 'ALL', 'ANCESTORS'),
    'workflowstatus': ('DRAFT', 'SUBMITTED', 'UNDER_REVIEW', 'APPROVED', 'DECLINED', 'CANCELLED', 'ADJUSTED'),
    'stepstatus': ('PENDING', 'APPROVED', 'DECLINED', 'ADJUSTED'),
    'resettype': ('MANUAL', 'AUTOMATIC'),
}


def _timestamps():
    # SQL-standard CURRENT_TIMESTAMP works on SQLite and Postgres
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
    ]


def _created_at():
    return sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False)


def upgrade() -> None:
    bind = op.get_bind()
    # Skip if tables already exist (e.g. DB created by app create_all())
    if 'workflow_instances' in sa.inspect(bind).get_table_names():
        return

    is_sqlite = bind.dialect.name == 'sqlite'
    enum = {}
    for name, values in ENUMS.items():
        if is_sqlite:
            enum[name] = sa.Enum(*values, name=name)
        else:
            postgresql.ENUM(*values, name=name).create(bind, checkfirst=True)
            enum[name] = postgresql.ENUM(*values, name=name, create_type=False)

    op.create_table(
        'locations',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('parent_id', sa.Integer(), nullable=True),
        sa.Column('path', sa.String(), nullable=False, server_default=''),
        sa.Column('level', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('status', enum['locationstatus'], nullable=False, server_default='ACTIVE'),
        *_timestamps(),
        sa.ForeignKeyConstraint(['parent_id'], ['locations.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_locations_id'), 'locations', ['id'], unique=False)
    op.create_index(op.f('ix_locations_parent_id'), 'locations', ['parent_id'], unique=False)
    op.create_index(op.f('ix_locations_path'), 'locations', ['path'], unique=False)

    op.create_table(
        'staff_types',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        _created_at(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name')
    )
    op.create_index(op.f('ix_staff_types_id'), 'staff_types', ['id'], unique=False)

    op.create_table(
        'user_categories',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        _created_at(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name')
    )
    op.create_index(op.f('ix_user_categories_id'), 'user_categories', ['id'], unique=False)

    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('email', sa.String(), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('password_hash', sa.String(), nullable=True),
        sa.Column('manager_id', sa.Integer(), nullable=True),
        sa.Column('primary_location_id', sa.Integer(), nullable=True),
        sa.Column('staff_type_id', sa.Integer(), nullable=True),
        sa.Column('category_id', sa.Integer(), nullable=True),
        sa.Column('status', enum['userstatus'], nullable=False, server_default='ACTIVE'),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['manager_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['primary_location_id'], ['locations.id'], ),
        sa.ForeignKeyConstraint(['staff_type_id'], ['staff_types.id'], ),
        sa.ForeignKeyConstraint(['category_id'], ['user_categories.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_users_id'), 'users', ['id'], unique=False)
    op.create_index(op.f('ix_users_email'), 'users', ['email'], unique=True)
    op.create_index(op.f('ix_users_manager_id'), 'users', ['manager_id'], unique=False)
    op.create_index(op.f('ix_users_primary_location_id'), 'users', ['primary_location_id'], unique=False)

    op.create_table(
        'permissions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('module', sa.String(), nullable=False),
        sa.Column('description', sa.String(), nullable=True),
        _created_at(),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_permissions_id'), 'permissions', ['id'], unique=False)
    op.create_index(op.f('ix_permissions_name'), 'permissions', ['name'], unique=True)
    op.create_index(op.f('ix_permissions_module'), 'permissions', ['module'], unique=False)

    op.create_table(
        'roles',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('description', sa.String(), nullable=True),
        sa.Column('status', enum['rolestatus'], nullable=False, server_default='ACTIVE'),
        sa.Column('scope_mode', enum['rolescopemode'], nullable=False, server_default='SCOPED'),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_roles_id'), 'roles', ['id'], unique=False)
    op.create_index(op.f('ix_roles_name'), 'roles', ['name'], unique=True)

    op.create_table(
        'role_permissions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('role_id', sa.Integer(), nullable=False),
        sa.Column('permission_id', sa.Integer(), nullable=False),
        _created_at(),
        sa.ForeignKeyConstraint(['role_id'], ['roles.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['permission_id'], ['permissions.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('role_id', 'permission_id', name='uq_role_permissions_role_permission')
    )
    op.create_index(op.f('ix_role_permissions_id'), 'role_permissions', ['id'], unique=False)
    op.create_index(op.f('ix_role_permissions_role_id'), 'role_permissions', ['role_id'], unique=False)
    op.create_index(op.f('ix_role_permissions_permission_id'), 'role_permissions', ['permission_id'], unique=False)

    op.create_table(
        'user_roles',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('role_id', sa.Integer(), nullable=False),
        sa.Column('assigned_by', sa.Integer(), nullable=True),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
        _created_at(),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['role_id'], ['roles.id'], ),
        sa.ForeignKeyConstraint(['assigned_by'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_user_roles_id'), 'user_roles', ['id'], unique=False)
    op.create_index(op.f('ix_user_roles_user_id'), 'user_roles', ['user_id'], unique=False)
    op.create_index(op.f('ix_user_roles_role_id'), 'user_roles', ['role_id'], unique=False)

    op.create_table(
        'permission_scopes',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('permission_id', sa.Integer(), nullable=False),
        sa.Column('location_id', sa.Integer(), nullable=True),
        sa.Column('include_descendants', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('is_global', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('valid_from', sa.DateTime(timezone=True), nullable=False),
        sa.Column('valid_until', sa.DateTime(timezone=True), nullable=True),
        sa.Column('status', enum['scopestatus'], nullable=False, server_default='ACTIVE'),
        sa.Column('source', enum['scopesource'], nullable=False, server_default='DIRECT'),
        sa.Column('role_id', sa.Integer(), nullable=True),
        _created_at(),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['permission_id'], ['permissions.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['location_id'], ['locations.id'], ),
        sa.ForeignKeyConstraint(['role_id'], ['roles.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_permission_scopes_id'), 'permission_scopes', ['id'], unique=False)
    op.create_index(op.f('ix_permission_scopes_user_id'), 'permission_scopes', ['user_id'], unique=False)
    op.create_index(op.f('ix_permission_scopes_permission_id'), 'permission_scopes', ['permission_id'], unique=False)
    op.create_index('ix_permission_scopes_user_permission', 'permission_scopes', ['user_id', 'permission_id'], unique=False)

    op.create_table(
        'delegations',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('delegator_id', sa.Integer(), nullable=False),
        sa.Column('delegate_id', sa.Integer(), nullable=False),
        sa.Column('permission_id', sa.Integer(), nullable=False),
        sa.Column('location_id', sa.Integer(), nullable=False),
        sa.Column('status', enum['delegationstatus'], nullable=False, server_default='ACTIVE'),
        sa.Column('starts_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('ends_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('revoked_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('revoked_by', sa.Integer(), nullable=True),
        sa.Column('reason', sa.String(), nullable=True),
        _created_at(),
        sa.ForeignKeyConstraint(['delegator_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['delegate_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['permission_id'], ['permissions.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['location_id'], ['locations.id'], ),
        sa.ForeignKeyConstraint(['revoked_by'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_delegations_id'), 'delegations', ['id'], unique=False)
    op.create_index(op.f('ix_delegations_delegator_id'), 'delegations', ['delegator_id'], unique=False)
    op.create_index(op.f('ix_delegations_delegate_id'), 'delegations', ['delegate_id'], unique=False)
    op.create_index('ix_delegations_delegate_permission', 'delegations', ['delegate_id', 'permission_id'], unique=False)

    op.create_table(
        'leave_types',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('description', sa.String(), nullable=True),
        sa.Column('is_paid', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('exclude_weekends', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('max_days_per_year', sa.Numeric(6, 2), nullable=True),
        _created_at(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name')
    )
    op.create_index(op.f('ix_leave_types_id'), 'leave_types', ['id'], unique=False)

    op.create_table(
        'workflow_templates',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('resource_type', enum['resourcetype'], nullable=False),
        sa.Column('location_id', sa.Integer(), nullable=True),
        sa.Column('staff_type_id', sa.Integer(), nullable=True),
        sa.Column('leave_type_id', sa.Integer(), nullable=True),
        sa.Column('status', enum['templatestatus'], nullable=False, server_default='ACTIVE'),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_by', sa.Integer(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['location_id'], ['locations.id'], ),
        sa.ForeignKeyConstraint(['staff_type_id'], ['staff_types.id'], ),
        sa.ForeignKeyConstraint(['leave_type_id'], ['leave_types.id'], ),
        sa.ForeignKeyConstraint(['created_by'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_workflow_templates_id'), 'workflow_templates', ['id'], unique=False)
    op.create_index(op.f('ix_workflow_templates_resource_type'), 'workflow_templates', ['resource_type'], unique=False)
    op.create_index('ix_workflow_templates_match', 'workflow_templates', ['resource_type', 'status'], unique=False)

    op.create_table(
        'workflow_steps',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('template_id', sa.Integer(), nullable=False),
        sa.Column('step_order', sa.Integer(), nullable=False),
        sa.Column('required_permission', sa.String(), nullable=False),
        sa.Column('approver_strategy', enum['approverstrategykind'], nullable=False, server_default='PERMISSION'),
        sa.Column('required_roles', sa.JSON(), nullable=True),
        sa.Column('include_manager', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('location_scope', enum['locationscope'], nullable=False, server_default='SAME'),
        sa.Column('allow_decline', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('allow_adjust', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('conditional_rules', sa.JSON(), nullable=True),
        sa.ForeignKeyConstraint(['template_id'], ['workflow_templates.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('template_id', 'step_order', name='uq_workflow_steps_template_order')
    )
    op.create_index(op.f('ix_workflow_steps_id'), 'workflow_steps', ['id'], unique=False)
    op.create_index(op.f('ix_workflow_steps_template_id'), 'workflow_steps', ['template_id'], unique=False)

    op.create_table(
        'workflow_instances',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('template_id', sa.Integer(), nullable=False),
        sa.Column('resource_type', enum['resourcetype'], nullable=False),
        sa.Column('resource_id', sa.Integer(), nullable=False),
        sa.Column('status', enum['workflowstatus'], nullable=False, server_default='DRAFT'),
        sa.Column('current_step_order', sa.Integer(), nullable=True),
        sa.Column('created_by', sa.Integer(), nullable=False),
        sa.Column('location_id', sa.Integer(), nullable=False),
        sa.Column('previous_instance_id', sa.Integer(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['template_id'], ['workflow_templates.id'], ),
        sa.ForeignKeyConstraint(['created_by'], ['users.id'], ),
        sa.ForeignKeyConstraint(['location_id'], ['locations.id'], ),
        sa.ForeignKeyConstraint(['previous_instance_id'], ['workflow_instances.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_workflow_instances_id'), 'workflow_instances', ['id'], unique=False)
    op.create_index(op.f('ix_workflow_instances_template_id'), 'workflow_instances', ['template_id'], unique=False)
    op.create_index('ix_workflow_instances_resource', 'workflow_instances', ['resource_type', 'resource_id'], unique=False)
    op.create_index('ix_workflow_instances_status', 'workflow_instances', ['status'], unique=False)

    op.create_table(
        'workflow_step_instances',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('instance_id', sa.Integer(), nullable=False),
        sa.Column('step_order', sa.Integer(), nullable=False),
        sa.Column('status', enum['stepstatus'], nullable=False, server_default='PENDING'),
        sa.Column('actor_id', sa.Integer(), nullable=True),
        sa.Column('acted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('comment', sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(['instance_id'], ['workflow_instances.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['actor_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('instance_id', 'step_order', name='uq_step_instances_instance_order')
    )
    op.create_index(op.f('ix_workflow_step_instances_id'), 'workflow_step_instances', ['id'], unique=False)
    op.create_index(op.f('ix_workflow_step_instances_instance_id'), 'workflow_step_instances', ['instance_id'], unique=False)

    op.create_table(
        'leave_requests',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('leave_type_id', sa.Integer(), nullable=False),
        sa.Column('location_id', sa.Integer(), nullable=False),
        sa.Column('start_date', sa.Date(), nullable=False),
        sa.Column('end_date', sa.Date(), nullable=False),
        sa.Column('days_requested', sa.Numeric(6, 2), nullable=False),
        sa.Column('reason', sa.Text(), nullable=True),
        sa.Column('status', enum['workflowstatus'], nullable=False, server_default='DRAFT'),
        sa.Column('workflow_instance_id', sa.Integer(), nullable=True),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['leave_type_id'], ['leave_types.id'], ),
        sa.ForeignKeyConstraint(['location_id'], ['locations.id'], ),
        sa.ForeignKeyConstraint(['workflow_instance_id'], ['workflow_instances.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_leave_requests_id'), 'leave_requests', ['id'], unique=False)
    op.create_index(op.f('ix_leave_requests_user_id'), 'leave_requests', ['user_id'], unique=False)
    op.create_index('ix_leave_requests_user_dates', 'leave_requests', ['user_id', 'start_date', 'end_date'], unique=False)

    op.create_table(
        'leave_balances',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('leave_type_id', sa.Integer(), nullable=False),
        sa.Column('year', sa.Integer(), nullable=False),
        sa.Column('allocated', sa.Numeric(6, 2), nullable=False, server_default='0'),
        sa.Column('used', sa.Numeric(6, 2), nullable=False, server_default='0'),
        sa.Column('pending', sa.Numeric(6, 2), nullable=False, server_default='0'),
        *_timestamps(),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['leave_type_id'], ['leave_types.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'leave_type_id', 'year', name='uq_leave_balances_user_type_year')
    )
    op.create_index(op.f('ix_leave_balances_id'), 'leave_balances', ['id'], unique=False)
    op.create_index(op.f('ix_leave_balances_user_id'), 'leave_balances', ['user_id'], unique=False)
    op.create_index(op.f('ix_leave_balances_year'), 'leave_balances', ['year'], unique=False)

    op.create_table(
        'leave_balance_adjustments',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('leave_type_id', sa.Integer(), nullable=False),
        sa.Column('year', sa.Integer(), nullable=False),
        sa.Column('adjustment', sa.Numeric(6, 2), nullable=False),
        sa.Column('reason', sa.Text(), nullable=False),
        sa.Column('adjusted_by', sa.Integer(), nullable=False),
        sa.Column('adjusted_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['leave_type_id'], ['leave_types.id'], ),
        sa.ForeignKeyConstraint(['adjusted_by'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_leave_balance_adjustments_id'), 'leave_balance_adjustments', ['id'], unique=False)
    op.create_index(op.f('ix_leave_balance_adjustments_user_id'), 'leave_balance_adjustments', ['user_id'], unique=False)

    op.create_table(
        'leave_balance_resets',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('leave_type_id', sa.Integer(), nullable=True),
        sa.Column('reset_type', enum['resettype'], nullable=False),
        sa.Column('reason', sa.Text(), nullable=False),
        sa.Column('reset_by', sa.Integer(), nullable=True),
        sa.Column('reset_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['leave_type_id'], ['leave_types.id'], ),
        sa.ForeignKeyConstraint(['reset_by'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_leave_balance_resets_id'), 'leave_balance_resets', ['id'], unique=False)
    op.create_index(op.f('ix_leave_balance_resets_user_id'), 'leave_balance_resets', ['user_id'], unique=False)

    op.create_table(
        'timesheets',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('location_id', sa.Integer(), nullable=False),
        sa.Column('period_start', sa.Date(), nullable=False),
        sa.Column('period_end', sa.Date(), nullable=False),
        sa.Column('total_hours', sa.Numeric(7, 2), nullable=False, server_default='0'),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('status', enum['workflowstatus'], nullable=False, server_default='DRAFT'),
        sa.Column('workflow_instance_id', sa.Integer(), nullable=True),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['location_id'], ['locations.id'], ),
        sa.ForeignKeyConstraint(['workflow_instance_id'], ['workflow_instances.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_timesheets_id'), 'timesheets', ['id'], unique=False)
    op.create_index(op.f('ix_timesheets_user_id'), 'timesheets', ['user_id'], unique=False)

    op.create_table(
        'audit_logs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('actor_id', sa.Integer(), nullable=True),
        sa.Column('action', sa.String(), nullable=False),
        sa.Column('entity_type', sa.String(), nullable=False),
        sa.Column('entity_id', sa.Integer(), nullable=True),
        sa.Column('meta_json', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['actor_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_audit_logs_id'), 'audit_logs', ['id'], unique=False)


def downgrade() -> None:
    for table in (
        'audit_logs',
        'timesheets',
        'leave_balance_resets',
        'leave_balance_adjustments',
        'leave_balances',
        'leave_requests',
        'workflow_step_instances',
        'workflow_instances',
        'workflow_steps',
        'workflow_templates',
        'leave_types',
        'delegations',
        'permission_scopes',
        'user_roles',
        'role_permissions',
        'roles',
        'permissions',
        'users',
        'user_categories',
        'staff_types',
        'locations',
    ):
        op.drop_table(table)

    bind = op.get_bind()
    if bind.dialect.name != 'sqlite':
        for name, values in ENUMS.items():
            postgresql.ENUM(*values, name=name).drop(bind, checkfirst=True)
