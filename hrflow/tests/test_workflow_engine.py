"""
Tests for the workflow engine: submit, approve, decline, adjust, cancel and races
"""
import threading
from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from hrflow.core.constants import PERM_LEAVE_APPROVE, PERM_TIMESHEET_APPROVE
from hrflow.core.errors import (
    AuthorizationError,
    ConfigurationError,
    PreconditionError,
    StepAlreadyResolvedError,
)
from hrflow.db.base import Base
from hrflow.models.access import RoleScopeMode
from hrflow.models.leave import LeaveBalance, LeaveRequest, LeaveType
from hrflow.models.timesheet import Timesheet
from hrflow.models.user import User
from hrflow.models.workflow import (
    ApproverStrategyKind,
    LocationScope,
    ResourceType,
    StepStatus,
    WorkflowInstance,
    WorkflowStatus,
)
from hrflow.schemas.workflow import StepDefinition, TemplateCreate
from hrflow.services import (
    balance_service,
    leave_service,
    location_service,
    role_service,
    template_service,
    timesheet_service,
    workflow_service,
)
from hrflow.services.approver_service import eligible_approvers

YEAR = 2030


def _user(db: Session, email: str, location_id=None, manager_id=None) -> User:
    user = User(email=email, name=email.split("@")[0], primary_location_id=location_id, manager_id=manager_id)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def _seed_org(db: Session) -> dict:
    region = location_service.create_location(db, "Region")
    branch = location_service.create_location(db, "Branch", region.id)

    manager = _user(db, "manager@company.com", region.id)
    owner = _user(db, "owner@company.com", branch.id, manager_id=manager.id)
    hr1 = _user(db, "hr1@company.com", region.id)
    hr2 = _user(db, "hr2@company.com", region.id)

    line_role = role_service.create_role(db, "Line Manager", [PERM_LEAVE_APPROVE])
    role_service.assign_role(db, manager.id, line_role.id)
    role_service.grant_scope(
        db, manager.id, PERM_LEAVE_APPROVE, location_id=region.id, include_descendants=True,
    )
    hr_role = role_service.create_role(db, "HR Manager", [PERM_LEAVE_APPROVE], scope_mode=RoleScopeMode.GLOBAL)
    role_service.assign_role(db, hr1.id, hr_role.id)
    role_service.assign_role(db, hr2.id, hr_role.id)

    annual = LeaveType(name="Annual")
    db.add(annual)
    db.commit()
    db.refresh(annual)
    balance_service.allocate(db, owner.id, annual.id, YEAR, 10)

    return {
        "region": region, "branch": branch,
        "manager": manager, "owner": owner, "hr1": hr1, "hr2": hr2,
        "annual": annual,
    }


def _create_leave_template(db: Session):
    return template_service.create_template(
        db,
        TemplateCreate(
            name="Leave approval",
            resource_type=ResourceType.LEAVE,
            steps=[
                StepDefinition(
                    step_order=1,
                    required_permission=PERM_LEAVE_APPROVE,
                    approver_strategy=ApproverStrategyKind.MANAGER,
                    allow_adjust=True,
                ),
                StepDefinition(
                    step_order=2,
                    required_permission=PERM_LEAVE_APPROVE,
                    approver_strategy=ApproverStrategyKind.ROLE,
                    required_roles=["HR Manager"],
                    location_scope=LocationScope.ALL,
                ),
            ],
        ),
    )


@pytest.fixture
def org(db: Session):
    """Owner in a branch, reporting to a regional manager, with two global HR approvers"""
    return _seed_org(db)


@pytest.fixture
def leave_template(db: Session, org):
    """Step 1: the owner's manager (may request changes). Step 2: any HR Manager."""
    return _create_leave_template(db)


@pytest.fixture
def leave_request(db: Session, org, leave_template):
    """Three-day draft request"""
    return leave_service.create_leave_request(
        db, org["owner"].id, org["annual"].id, date(YEAR, 3, 4), date(YEAR, 3, 6), reason="Family trip",
    )


def _balance(db: Session, org) -> LeaveBalance:
    return (
        db.query(LeaveBalance)
        .filter(
            LeaveBalance.user_id == org["owner"].id,
            LeaveBalance.leave_type_id == org["annual"].id,
            LeaveBalance.year == YEAR,
        )
        .one()
    )


def _submit(db, org, leave_request):
    return workflow_service.submit(db, ResourceType.LEAVE, leave_request.id, org["owner"].id)


def test_submit_reserves_pending_days(db, org, leave_request):
    instance = _submit(db, org, leave_request)

    assert instance.status == WorkflowStatus.SUBMITTED
    assert instance.current_step_order == 1
    assert instance.location_id == org["branch"].id
    assert [s.status for s in instance.steps] == [StepStatus.PENDING, StepStatus.PENDING]

    request = db.get(LeaveRequest, leave_request.id)
    assert request.status == WorkflowStatus.SUBMITTED
    assert request.workflow_instance_id == instance.id
    assert _balance(db, org).pending == Decimal("3")


def test_only_creator_may_submit(db, org, leave_request):
    with pytest.raises(AuthorizationError):
        workflow_service.submit(db, ResourceType.LEAVE, leave_request.id, org["manager"].id)


def test_submit_twice_rejected(db, org, leave_request):
    _submit(db, org, leave_request)
    with pytest.raises(PreconditionError):
        _submit(db, org, leave_request)
    assert _balance(db, org).pending == Decimal("3")


def test_submit_without_template_rolls_back(db, org):
    sick = LeaveType(name="Sick")
    db.add(sick)
    db.commit()
    request = leave_service.create_leave_request(db, org["owner"].id, sick.id, date(YEAR, 5, 1), date(YEAR, 5, 1))

    with pytest.raises(ConfigurationError):
        workflow_service.submit(db, ResourceType.LEAVE, request.id, org["owner"].id)

    db.expire_all()
    assert db.get(LeaveRequest, request.id).status == WorkflowStatus.DRAFT


def test_two_step_approval(db, org, leave_request):
    instance = _submit(db, org, leave_request)

    instance = workflow_service.approve(db, instance.id, org["manager"].id, 1, comment="Enjoy")
    assert instance.status == WorkflowStatus.UNDER_REVIEW
    assert instance.current_step_order == 2
    assert instance.steps[0].status == StepStatus.APPROVED
    assert instance.steps[0].actor_id == org["manager"].id
    assert instance.steps[0].comment == "Enjoy"
    assert db.get(LeaveRequest, leave_request.id).status == WorkflowStatus.UNDER_REVIEW

    instance = workflow_service.approve(db, instance.id, org["hr1"].id, 2)
    assert instance.status == WorkflowStatus.APPROVED
    assert instance.current_step_order is None
    assert db.get(LeaveRequest, leave_request.id).status == WorkflowStatus.APPROVED

    balance = _balance(db, org)
    assert balance.pending == Decimal("0")
    assert balance.used == Decimal("3")
    assert balance.allocated == Decimal("10")


def test_hr_cannot_act_on_manager_step(db, org, leave_request):
    instance = _submit(db, org, leave_request)

    with pytest.raises(AuthorizationError):
        workflow_service.approve(db, instance.id, org["hr1"].id, 1)
    with pytest.raises(AuthorizationError):
        workflow_service.approve(db, instance.id, org["owner"].id, 1)

    db.expire_all()
    assert workflow_service.get_instance(db, instance.id).current_step_order == 1


def test_acting_on_future_step_is_precondition_error(db, org, leave_request):
    instance = _submit(db, org, leave_request)
    with pytest.raises(PreconditionError):
        workflow_service.approve(db, instance.id, org["hr1"].id, 2)


def test_missing_step_order_is_precondition_error(db, org, leave_request):
    instance = _submit(db, org, leave_request)
    with pytest.raises(PreconditionError):
        workflow_service.approve(db, instance.id, org["manager"].id, None)

    db.expire_all()
    assert workflow_service.get_instance(db, instance.id).steps[0].status == StepStatus.PENDING


def test_decline_releases_pending(db, org, leave_request):
    instance = _submit(db, org, leave_request)

    instance = workflow_service.decline(db, instance.id, org["manager"].id, 1, reason="Peak season")

    assert instance.status == WorkflowStatus.DECLINED
    assert instance.current_step_order is None
    assert instance.steps[0].status == StepStatus.DECLINED
    assert db.get(LeaveRequest, leave_request.id).status == WorkflowStatus.DECLINED
    assert _balance(db, org).pending == Decimal("0")

    # step 2 was never reached, so there is nothing left to act on
    with pytest.raises(PreconditionError):
        workflow_service.decline(db, instance.id, org["hr1"].id, 2, reason="Again")


def test_decline_requires_reason(db, org, leave_request):
    instance = _submit(db, org, leave_request)
    with pytest.raises(PreconditionError):
        workflow_service.decline(db, instance.id, org["manager"].id, 1, reason="  ")


def test_adjust_then_resubmit_links_instances(db, org, leave_request):
    first = _submit(db, org, leave_request)

    adjusted = workflow_service.adjust(db, first.id, org["manager"].id, 1, reason="Please shorten to two days")
    assert adjusted.status == WorkflowStatus.ADJUSTED
    assert adjusted.current_step_order is None
    assert _balance(db, org).pending == Decimal("0")
    assert db.get(LeaveRequest, leave_request.id).status == WorkflowStatus.ADJUSTED

    leave_service.update_leave_request(db, leave_request.id, org["owner"].id, end_date=date(YEAR, 3, 5))
    second = _submit(db, org, leave_request)

    assert second.id != first.id
    assert second.previous_instance_id == first.id
    assert second.status == WorkflowStatus.SUBMITTED
    assert _balance(db, org).pending == Decimal("2")

    detail = workflow_service.get_instance_detail(db, second.id)
    assert [h.id for h in detail["history"]] == [first.id]
    assert detail["current_approver_ids"] == [org["manager"].id]


def test_adjust_not_allowed_on_step(db, org, leave_request):
    instance = _submit(db, org, leave_request)
    workflow_service.approve(db, instance.id, org["manager"].id, 1)

    with pytest.raises(PreconditionError):
        workflow_service.adjust(db, instance.id, org["hr1"].id, 2, reason="Change dates")


def test_cancel_by_creator_releases_pending(db, org, leave_request):
    instance = _submit(db, org, leave_request)

    with pytest.raises(AuthorizationError):
        workflow_service.cancel(db, instance.id, org["hr1"].id)

    instance = workflow_service.cancel(db, instance.id, org["owner"].id, reason="Plans changed")
    assert instance.status == WorkflowStatus.CANCELLED
    assert db.get(LeaveRequest, leave_request.id).status == WorkflowStatus.CANCELLED
    assert _balance(db, org).pending == Decimal("0")

    with pytest.raises(PreconditionError):
        workflow_service.cancel(db, instance.id, org["owner"].id)


def test_cancel_superseded_instance_rejected(db, org, leave_request):
    first = _submit(db, org, leave_request)
    workflow_service.adjust(db, first.id, org["manager"].id, 1, reason="Fix the dates")
    second = _submit(db, org, leave_request)

    with pytest.raises(PreconditionError):
        workflow_service.cancel(db, first.id, org["owner"].id)

    db.expire_all()
    assert workflow_service.get_instance(db, second.id).status == WorkflowStatus.SUBMITTED


def test_second_approver_loses_race(db, org, leave_request):
    instance = _submit(db, org, leave_request)
    workflow_service.approve(db, instance.id, org["manager"].id, 1)

    workflow_service.approve(db, instance.id, org["hr1"].id, 2)
    with pytest.raises(StepAlreadyResolvedError):
        workflow_service.approve(db, instance.id, org["hr2"].id, 2)

    balance = _balance(db, org)
    assert balance.used == Decimal("3")
    assert balance.pending == Decimal("0")

    db.expire_all()
    final = workflow_service.get_instance(db, instance.id)
    assert final.status == WorkflowStatus.APPROVED
    assert final.steps[1].actor_id == org["hr1"].id


def test_stale_step_order_rejected(db, org, leave_request):
    instance = _submit(db, org, leave_request)
    workflow_service.approve(db, instance.id, org["manager"].id, 1)

    with pytest.raises(StepAlreadyResolvedError):
        workflow_service.decline(db, instance.id, org["manager"].id, 1, reason="Too late")


@pytest.fixture
def sabbatical(db: Session, org):
    """Sabbatical leave needs the manager and then two separate HR sign-offs"""
    leave_type = LeaveType(name="Sabbatical")
    db.add(leave_type)
    db.commit()
    db.refresh(leave_type)
    balance_service.allocate(db, org["owner"].id, leave_type.id, YEAR, 20)
    hr_step = dict(
        required_permission=PERM_LEAVE_APPROVE,
        approver_strategy=ApproverStrategyKind.ROLE,
        required_roles=["HR Manager"],
        location_scope=LocationScope.ALL,
    )
    template_service.create_template(
        db,
        TemplateCreate(
            name="Sabbatical approval",
            resource_type=ResourceType.LEAVE,
            leave_type_id=leave_type.id,
            steps=[
                StepDefinition(step_order=1, required_permission=PERM_LEAVE_APPROVE,
                               approver_strategy=ApproverStrategyKind.MANAGER),
                StepDefinition(step_order=2, **hr_step),
                StepDefinition(step_order=3, **hr_step),
            ],
        ),
    )
    request = leave_service.create_leave_request(
        db, org["owner"].id, leave_type.id, date(YEAR, 6, 3), date(YEAR, 6, 7),
    )
    return workflow_service.submit(db, ResourceType.LEAVE, request.id, org["owner"].id)


def test_race_loser_does_not_act_on_following_step(db, org, sabbatical):
    instance_id = sabbatical.id
    workflow_service.approve(db, instance_id, org["manager"].id, 1)

    # hr1 and hr2 both saw step 2 as current; hr1 got there first
    workflow_service.approve(db, instance_id, org["hr1"].id, 2)
    with pytest.raises(StepAlreadyResolvedError):
        workflow_service.approve(db, instance_id, org["hr2"].id, 2)

    db.expire_all()
    instance = workflow_service.get_instance(db, instance_id)
    assert instance.status == WorkflowStatus.UNDER_REVIEW
    assert instance.current_step_order == 3
    assert [s.status for s in instance.steps] == [StepStatus.APPROVED, StepStatus.APPROVED, StepStatus.PENDING]
    assert instance.steps[1].actor_id == org["hr1"].id
    assert instance.steps[2].actor_id is None

    # hr2 can still sign off the third step deliberately
    instance = workflow_service.approve(db, instance_id, org["hr2"].id, 3)
    assert instance.status == WorkflowStatus.APPROVED


def test_concurrent_approvals_resolve_step_once(tmp_path, monkeypatch):
    """Two sessions on a shared database approve the same final step at the same time"""
    engine = create_engine(f"sqlite:///{tmp_path / 'race.db'}", connect_args={"check_same_thread": False})
    Base.metadata.create_all(bind=engine)
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    setup = SessionLocal()
    try:
        org = _seed_org(setup)
        _create_leave_template(setup)
        request = leave_service.create_leave_request(
            setup, org["owner"].id, org["annual"].id, date(YEAR, 3, 4), date(YEAR, 3, 6),
        )
        instance = workflow_service.submit(setup, ResourceType.LEAVE, request.id, org["owner"].id)
        workflow_service.approve(setup, instance.id, org["manager"].id, 1)
        instance_id = instance.id
        approver_ids = [org["hr1"].id, org["hr2"].id]
        owner_id, leave_type_id = org["owner"].id, org["annual"].id
    finally:
        setup.close()

    # Both approvers pass every check before either writes
    both_checked = threading.Barrier(2)
    resolve_step = workflow_service._resolve_step

    def resolve_after_both_checked(*args, **kwargs):
        both_checked.wait(timeout=10)
        return resolve_step(*args, **kwargs)

    monkeypatch.setattr(workflow_service, "_resolve_step", resolve_after_both_checked)

    outcomes = {}

    def act(approver_id):
        session = SessionLocal()
        try:
            workflow_service.approve(session, instance_id, approver_id, 2)
            outcomes[approver_id] = "approved"
        except StepAlreadyResolvedError:
            outcomes[approver_id] = "lost"
        finally:
            session.close()

    threads = [threading.Thread(target=act, args=(approver_id,)) for approver_id in approver_ids]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=30)

    assert sorted(outcomes.values()) == ["approved", "lost"]
    winner = next(approver_id for approver_id, outcome in outcomes.items() if outcome == "approved")

    check = SessionLocal()
    try:
        final = check.get(WorkflowInstance, instance_id)
        assert final.status == WorkflowStatus.APPROVED
        assert final.steps[1].actor_id == winner
        balance = (
            check.query(LeaveBalance)
            .filter(LeaveBalance.user_id == owner_id, LeaveBalance.leave_type_id == leave_type_id)
            .one()
        )
        assert balance.used == Decimal("3")
        assert balance.pending == Decimal("0")
    finally:
        check.close()
        engine.dispose()


def test_step_compare_and_swap(db, org, leave_request):
    instance = _submit(db, org, leave_request)
    step_instance = instance.steps[0]

    workflow_service._resolve_step(db, instance, step_instance, StepStatus.APPROVED, org["manager"].id, None)
    with pytest.raises(StepAlreadyResolvedError):
        workflow_service._resolve_step(db, instance, step_instance, StepStatus.DECLINED, org["manager"].id, "late")
    db.rollback()


def test_pending_approvals_follow_current_step(db, org, leave_request):
    instance = _submit(db, org, leave_request)

    manager_queue = workflow_service.list_pending_approvals(db, org["manager"].id)
    assert [row["instance_id"] for row in manager_queue] == [instance.id]
    assert manager_queue[0]["eligible_approver_count"] == 1
    assert workflow_service.list_pending_approvals(db, org["hr1"].id) == []

    workflow_service.approve(db, instance.id, org["manager"].id, 1)

    assert workflow_service.list_pending_approvals(db, org["manager"].id) == []
    hr_queue = workflow_service.list_pending_approvals(db, org["hr1"].id)
    assert [row["instance_id"] for row in hr_queue] == [instance.id]
    assert hr_queue[0]["eligible_approver_count"] == 2


def _timesheet_with_hours(db: Session, org, period_start: date, period_end: date) -> Timesheet:
    timesheet = timesheet_service.create_timesheet(db, org["owner"].id, period_start, period_end)
    timesheet_service.upsert_entry(db, timesheet.id, org["owner"].id, period_start, work_hours=Decimal("8.5"))
    return timesheet


def _timesheet_template(db: Session, step: StepDefinition):
    return template_service.create_template(
        db,
        TemplateCreate(name="Timesheet approval", resource_type=ResourceType.TIMESHEET, steps=[step]),
    )


@pytest.fixture
def timesheet_template(db: Session, org):
    return _timesheet_template(
        db,
        StepDefinition(
            step_order=1,
            required_permission=PERM_TIMESHEET_APPROVE,
            approver_strategy=ApproverStrategyKind.MANAGER,
        ),
    )


def test_timesheet_approval(db, org, timesheet_template):
    approver_role = role_service.create_role(db, "Timesheet Approver", [PERM_TIMESHEET_APPROVE])
    role_service.assign_role(db, org["manager"].id, approver_role.id)
    role_service.grant_scope(
        db, org["manager"].id, PERM_TIMESHEET_APPROVE,
        location_id=org["region"].id, include_descendants=True,
    )
    timesheet = _timesheet_with_hours(db, org, date(YEAR, 3, 4), date(YEAR, 3, 10))

    instance = workflow_service.submit(db, ResourceType.TIMESHEET, timesheet.id, org["owner"].id)
    instance = workflow_service.approve(db, instance.id, org["manager"].id, 1)

    assert instance.status == WorkflowStatus.APPROVED
    assert db.get(Timesheet, timesheet.id).status == WorkflowStatus.APPROVED
    # timesheets never touch the leave ledger
    assert _balance(db, org).used == Decimal("0")


def test_instance_without_approvers_is_listed_as_stalled(db, org, timesheet_template):
    # the manager holds no timesheets.approve grant, so step 1 resolves to nobody
    timesheet = _timesheet_with_hours(db, org, date(YEAR, 4, 1), date(YEAR, 4, 7))

    instance = workflow_service.submit(db, ResourceType.TIMESHEET, timesheet.id, org["owner"].id)

    assert instance.status == WorkflowStatus.SUBMITTED
    stalled = workflow_service.list_stalled_instances(db)
    assert [row["instance_id"] for row in stalled] == [instance.id]
    assert stalled[0]["eligible_approver_count"] == 0


@pytest.fixture
def regional_hr_template(db: Session, org):
    """One step for members of a scoped role, taken from the resource location or above"""
    regional_hr = role_service.create_role(db, "Regional HR", [PERM_TIMESHEET_APPROVE])
    role_service.assign_role(db, org["hr1"].id, regional_hr.id)
    role_service.assign_role(db, org["hr2"].id, regional_hr.id)
    return _timesheet_template(
        db,
        StepDefinition(
            step_order=1,
            required_permission=PERM_TIMESHEET_APPROVE,
            approver_strategy=ApproverStrategyKind.ROLE,
            required_roles=["Regional HR"],
            location_scope=LocationScope.ANCESTORS,
        ),
    )


def test_role_members_without_authority_at_resource_leave_step_stalled(db, org, regional_hr_template):
    # Regional HR mirrors at the region only; the timesheet sits at the branch below it
    timesheet = _timesheet_with_hours(db, org, date(YEAR, 5, 6), date(YEAR, 5, 12))
    instance = workflow_service.submit(db, ResourceType.TIMESHEET, timesheet.id, org["owner"].id)

    assert eligible_approvers(db, instance) == set()
    assert [row["instance_id"] for row in workflow_service.list_stalled_instances(db)] == [instance.id]
    assert workflow_service.list_pending_approvals(db, org["hr1"].id) == []
    assert workflow_service.get_instance_detail(db, instance.id)["current_approver_ids"] == []
    with pytest.raises(AuthorizationError):
        workflow_service.approve(db, instance.id, org["hr1"].id, 1)


def test_role_members_with_descendant_scope_can_act(db, org, regional_hr_template):
    role_service.grant_scope(
        db, org["hr1"].id, PERM_TIMESHEET_APPROVE,
        location_id=org["region"].id, include_descendants=True,
    )
    timesheet = _timesheet_with_hours(db, org, date(YEAR, 5, 6), date(YEAR, 5, 12))
    instance = workflow_service.submit(db, ResourceType.TIMESHEET, timesheet.id, org["owner"].id)

    assert workflow_service.list_stalled_instances(db) == []
    assert workflow_service.get_instance_detail(db, instance.id)["current_approver_ids"] == [org["hr1"].id]
    assert [row["instance_id"] for row in workflow_service.list_pending_approvals(db, org["hr1"].id)] == [instance.id]
    assert workflow_service.list_pending_approvals(db, org["hr2"].id) == []

    instance = workflow_service.approve(db, instance.id, org["hr1"].id, 1)
    assert instance.status == WorkflowStatus.APPROVED
