import pytest
from datetime import date

from app.core.exceptions import (
    InsufficientBalanceError,
    NotFoundError,
    StateConflictError,
    ValidationError,
)
from app.models.audit_log import AuditLog
from app.models.leave_application import LeaveApplication, LeaveStatus
from app.services.balance_store import BalanceStore
from conftest import YEAR


def _balance(db_session, employee, leave_type, year=YEAR):
    db_session.expire_all()
    return BalanceStore(db_session).get(employee.id, leave_type.id, year)


def test_create_persists_pending_application(db_session, leave_types, initialized_employee, lifecycle):
    vl = leave_types["VL"]
    result = lifecycle.create(initialized_employee.id, vl.id, date(2025, 4, 7), date(2025, 4, 11), 5, "Family trip")

    application = result.application
    assert application.id is not None
    assert application.status == LeaveStatus.PENDING.value
    assert application.application_number.startswith("LA-2025-")
    assert len(application.application_number) == len("LA-2025-000000")
    # Submitting does not touch the balance
    assert _balance(db_session, initialized_employee, vl).current_balance == 15.0

def test_create_unknown_employee(db_session, leave_types, lifecycle):
    with pytest.raises(NotFoundError):
        lifecycle.create(999, leave_types["VL"].id, date(2025, 4, 7), date(2025, 4, 11), 5)

def test_create_returns_warnings(db_session, leave_types, initialized_employee, lifecycle):
    sl = leave_types["SL"]
    result = lifecycle.create(initialized_employee.id, sl.id, date(2025, 4, 7), date(2025, 4, 9), 3)
    assert "Medical certificate required for sick leave of 3 or more days" in result.warnings

def test_approve_deducts_balance(db_session, leave_types, initialized_employee, lifecycle):
    vl = leave_types["VL"]
    created = lifecycle.create(initialized_employee.id, vl.id, date(2025, 4, 7), date(2025, 4, 11), 5)

    approved = lifecycle.approve(created.application.id, reviewer_id=42, notes="Enjoy")

    assert approved.application.status == LeaveStatus.APPROVED.value
    assert approved.application.reviewed_by == 42
    assert approved.application.reviewed_at is not None
    assert approved.application.review_notes == "Enjoy"
    balance = _balance(db_session, initialized_employee, vl)
    assert balance.earned_days == 15.0
    assert balance.used_days == 5.0
    assert balance.current_balance == 10.0

def test_second_request_exceeding_balance_is_rejected(db_session, leave_types, initialized_employee, lifecycle):
    vl = leave_types["VL"]
    first = lifecycle.create(initialized_employee.id, vl.id, date(2025, 4, 7), date(2025, 4, 11), 5)
    lifecycle.approve(first.application.id, reviewer_id=1)

    with pytest.raises(InsufficientBalanceError) as exc_info:
        lifecycle.create(initialized_employee.id, vl.id, date(2025, 4, 14), date(2025, 4, 29), 12)

    assert exc_info.value.errors == ["Insufficient leave balance. Available: 10.00 days, Requested: 12.00 days"]
    assert exc_info.value.available == 10.0
    assert exc_info.value.requested == 12.0
    assert db_session.query(LeaveApplication).count() == 1
    balance = _balance(db_session, initialized_employee, vl)
    assert (balance.used_days, balance.current_balance) == (5.0, 10.0)

def test_approval_revalidates_balance(db_session, leave_types, initialized_employee, lifecycle):
    vl = leave_types["VL"]
    first = lifecycle.create(initialized_employee.id, vl.id, date(2025, 4, 7), date(2025, 4, 18), 10)
    second = lifecycle.create(initialized_employee.id, vl.id, date(2025, 5, 5), date(2025, 5, 16), 10)
    lifecycle.approve(first.application.id, reviewer_id=1)

    with pytest.raises(InsufficientBalanceError):
        lifecycle.approve(second.application.id, reviewer_id=1)

    db_session.expire_all()
    assert db_session.get(LeaveApplication, second.application.id).status == LeaveStatus.PENDING.value
    assert _balance(db_session, initialized_employee, vl).current_balance == 5.0

def test_spl_annual_limit_enforced_on_second_approval(db_session, leave_types, initialized_employee, lifecycle):
    spl = leave_types["SPL"]
    first = lifecycle.create(initialized_employee.id, spl.id, date(2025, 4, 21), date(2025, 4, 22), 2)
    second = lifecycle.create(initialized_employee.id, spl.id, date(2025, 5, 5), date(2025, 5, 6), 2)
    lifecycle.approve(first.application.id, reviewer_id=1)

    with pytest.raises(ValidationError) as exc_info:
        lifecycle.approve(second.application.id, reviewer_id=1)

    assert "SPL limit exceeded. Used: 2 days, Annual limit: 3 days" in exc_info.value.errors
    assert _balance(db_session, initialized_employee, spl).used_days == 2.0

def test_forced_leave_over_weekend_is_rejected(db_session, leave_types, initialized_employee, lifecycle):
    fl = leave_types["FL"]
    with pytest.raises(ValidationError) as exc_info:
        lifecycle.create(initialized_employee.id, fl.id, date(2025, 4, 11), date(2025, 4, 14), 2)
    assert "Forced leave cannot include weekends" in exc_info.value.errors

def test_only_pending_can_be_approved(db_session, leave_types, initialized_employee, lifecycle):
    vl = leave_types["VL"]
    created = lifecycle.create(initialized_employee.id, vl.id, date(2025, 4, 7), date(2025, 4, 11), 5)
    lifecycle.approve(created.application.id, reviewer_id=1)

    with pytest.raises(StateConflictError):
        lifecycle.approve(created.application.id, reviewer_id=1)
    # Deducted exactly once
    assert _balance(db_session, initialized_employee, vl).used_days == 5.0

def test_approve_without_balance_row_changes_nothing(db_session, leave_types, initialized_employee, lifecycle):
    vl = leave_types["VL"]
    created = lifecycle.create(initialized_employee.id, vl.id, date(2025, 4, 7), date(2025, 4, 11), 5)
    balance = _balance(db_session, initialized_employee, vl)
    db_session.delete(balance)
    db_session.commit()

    with pytest.raises(NotFoundError):
        lifecycle.approve(created.application.id, reviewer_id=1)

    db_session.expire_all()
    assert db_session.get(LeaveApplication, created.application.id).status == LeaveStatus.PENDING.value

def test_approval_rechecks_overlap_with_approved_leave(db_session, leave_types, initialized_employee, lifecycle):
    vl = leave_types["VL"]
    first = lifecycle.create(initialized_employee.id, vl.id, date(2025, 4, 7), date(2025, 4, 11), 5)
    lifecycle.approve(first.application.id, reviewer_id=1)
    # A pending row that reached the table without going through submission
    stray = LeaveApplication(
        application_number="LA-2025-999999",
        employee_id=initialized_employee.id,
        leave_type_id=vl.id,
        start_date=date(2025, 4, 10),
        end_date=date(2025, 4, 14),
        days_requested=3,
        status=LeaveStatus.PENDING.value
    )
    db_session.add(stray)
    db_session.commit()

    with pytest.raises(ValidationError) as exc_info:
        lifecycle.approve(stray.id, reviewer_id=1)

    assert "Leave dates overlap with an existing pending or approved application" in exc_info.value.errors
    assert db_session.get(LeaveApplication, stray.id).status == LeaveStatus.PENDING.value
    assert _balance(db_session, initialized_employee, vl).used_days == 5.0

def test_update_pending_application(db_session, leave_types, initialized_employee, lifecycle):
    vl = leave_types["VL"]
    created = lifecycle.create(initialized_employee.id, vl.id, date(2025, 4, 7), date(2025, 4, 11), 5)

    # Shifting within its own dates does not count as an overlap
    updated = lifecycle.update(
        created.application.id, user_id=3,
        start_date=date(2025, 4, 9), end_date=date(2025, 4, 15), days_requested=5, reason="Moved"
    )

    application = updated.application
    assert (application.start_date, application.end_date, application.reason) == (
        date(2025, 4, 9), date(2025, 4, 15), "Moved"
    )
    assert application.status == LeaveStatus.PENDING.value
    entry = db_session.query(AuditLog).filter(AuditLog.action == "leave_application_updated").one()
    assert entry.before_state["start_date"] == "2025-04-07"
    assert entry.after_state["start_date"] == "2025-04-09"
    assert _balance(db_session, initialized_employee, vl).current_balance == 15.0

def test_update_revalidates_edited_values(db_session, leave_types, initialized_employee, lifecycle):
    vl = leave_types["VL"]
    approved = lifecycle.create(initialized_employee.id, vl.id, date(2025, 4, 7), date(2025, 4, 11), 5)
    lifecycle.approve(approved.application.id, reviewer_id=1)
    pending = lifecycle.create(initialized_employee.id, vl.id, date(2025, 5, 5), date(2025, 5, 9), 5)

    with pytest.raises(ValidationError) as exc_info:
        lifecycle.update(pending.application.id, start_date=date(2025, 4, 11), end_date=date(2025, 4, 15))
    assert "Leave dates overlap with an existing pending or approved application" in exc_info.value.errors

    with pytest.raises(InsufficientBalanceError):
        lifecycle.update(pending.application.id, days_requested=12)

    db_session.expire_all()
    unchanged = db_session.get(LeaveApplication, pending.application.id)
    assert (unchanged.start_date, unchanged.days_requested) == (date(2025, 5, 5), 5.0)

def test_update_requires_pending_status(db_session, leave_types, initialized_employee, lifecycle):
    vl = leave_types["VL"]
    created = lifecycle.create(initialized_employee.id, vl.id, date(2025, 4, 7), date(2025, 4, 11), 5)
    lifecycle.approve(created.application.id, reviewer_id=1)

    with pytest.raises(StateConflictError):
        lifecycle.update(created.application.id, reason="Too late")
    with pytest.raises(ValidationError):
        lifecycle.update(created.application.id, status=LeaveStatus.CANCELLED.value)


def test_reject_and_cancel_leave_balance_untouched(db_session, leave_types, initialized_employee, lifecycle):
    vl = leave_types["VL"]
    to_reject = lifecycle.create(initialized_employee.id, vl.id, date(2025, 4, 7), date(2025, 4, 11), 5)
    to_cancel = lifecycle.create(initialized_employee.id, vl.id, date(2025, 5, 5), date(2025, 5, 9), 5)

    rejected = lifecycle.reject(to_reject.application.id, reviewer_id=7, notes="Peak season")
    cancelled = lifecycle.cancel(to_cancel.application.id)

    assert rejected.application.status == LeaveStatus.REJECTED.value
    assert rejected.application.review_notes == "Peak season"
    assert cancelled.application.status == LeaveStatus.CANCELLED.value
    balance = _balance(db_session, initialized_employee, vl)
    assert (balance.used_days, balance.current_balance) == (0.0, 15.0)

    with pytest.raises(StateConflictError):
        lifecycle.cancel(to_reject.application.id)
    with pytest.raises(StateConflictError):
        lifecycle.reject(to_cancel.application.id, reviewer_id=7)

def test_used_days_match_approved_applications(db_session, leave_types, initialized_employee, lifecycle):
    vl = leave_types["VL"]
    ids = [
        lifecycle.create(initialized_employee.id, vl.id, start, end, days).application.id
        for start, end, days in [
            (date(2025, 4, 7), date(2025, 4, 8), 2),
            (date(2025, 5, 5), date(2025, 5, 7), 3),
            (date(2025, 6, 2), date(2025, 6, 2), 1),
        ]
    ]
    lifecycle.approve(ids[0], reviewer_id=1)
    lifecycle.approve(ids[1], reviewer_id=1)
    lifecycle.reject(ids[2], reviewer_id=1)

    approved_total = sum(
        a.days_requested for a in db_session.query(LeaveApplication).filter(
            LeaveApplication.status == LeaveStatus.APPROVED.value
        )
    )
    assert _balance(db_session, initialized_employee, vl).used_days == approved_total == 5.0

def test_create_on_behalf_with_auto_approve(db_session, leave_types, initialized_employee, lifecycle):
    vl = leave_types["VL"]
    result = lifecycle.create_on_behalf(
        reviewer_id=9,
        auto_approve=True,
        employee_id=initialized_employee.id,
        leave_type_id=vl.id,
        start_date=date(2025, 4, 7),
        end_date=date(2025, 4, 8),
        days_requested=2
    )
    assert result.application.status == LeaveStatus.APPROVED.value
    assert result.application.reviewed_by == 9
    assert _balance(db_session, initialized_employee, vl).current_balance == 13.0

def test_transitions_are_audited(db_session, leave_types, initialized_employee, lifecycle):
    vl = leave_types["VL"]
    created = lifecycle.create(initialized_employee.id, vl.id, date(2025, 4, 7), date(2025, 4, 11), 5)
    lifecycle.approve(created.application.id, reviewer_id=3)

    entry = db_session.query(AuditLog).filter(AuditLog.action == "leave_application_approved").one()
    assert entry.user_id == 3
    assert entry.before_state["balance"]["current_balance"] == 15.0
    assert entry.after_state["balance"]["current_balance"] == 10.0

def test_list_pending_and_calendar(db_session, leave_types, initialized_employee, make_employee, lifecycle):
    vl = leave_types["VL"]
    first = lifecycle.create(initialized_employee.id, vl.id, date(2025, 4, 7), date(2025, 4, 11), 5)
    lifecycle.create(initialized_employee.id, vl.id, date(2025, 6, 2), date(2025, 6, 3), 2)
    lifecycle.approve(first.application.id, reviewer_id=1)

    assert len(lifecycle.list(employee_id=initialized_employee.id)) == 2
    assert len(lifecycle.list(status=LeaveStatus.APPROVED.value)) == 1
    assert len(lifecycle.list(year=2026)) == 0
    assert [a.start_date for a in lifecycle.pending()] == [date(2025, 6, 2)]

    window = lifecycle.calendar(date(2025, 4, 10), date(2025, 4, 30))
    assert [a.id for a in window] == [first.application.id]
    assert lifecycle.calendar(date(2025, 4, 10), date(2025, 4, 30), exclude_employee_id=initialized_employee.id) == []

def test_dry_run_does_not_persist(db_session, leave_types, initialized_employee, lifecycle):
    result = lifecycle.dry_run(
        employee_id=initialized_employee.id,
        leave_type_id=leave_types["FL"].id,
        start_date=date(2025, 4, 11),
        end_date=date(2025, 4, 14),
        days_requested=2
    )
    assert not result.is_valid
    assert db_session.query(LeaveApplication).count() == 0
