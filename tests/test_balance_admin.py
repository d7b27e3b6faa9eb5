import pytest
from datetime import date

from app.core.exceptions import LedgerInvariantError, NotFoundError, StateConflictError, ValidationError
from app.models.audit_log import AuditLog
from app.models.leave_balance import LeaveBalance
from app.services.balance_admin import BalanceAdminService
from app.services.balance_store import BalanceStore
from conftest import YEAR


@pytest.fixture
def admin(db_session):
    return BalanceAdminService(db_session)


def _entries(db_session, action):
    return db_session.query(AuditLog).filter(AuditLog.action == action).all()


def test_create_balance_with_reason(db_session, leave_types, employee, admin):
    balance = admin.create(
        employee.id, leave_types["VL"].id, YEAR, reason="Transferred from another agency", user_id=9,
        earned_days=10, used_days=2.5, carried_forward=3
    )

    assert balance.current_balance == 10.5
    assert balance.used_days == 2.5
    [entry] = _entries(db_session, "LEAVE_BALANCE_MANUAL_CREATE")
    assert entry.user_id == 9
    assert entry.details["reason"] == "Transferred from another agency"
    assert entry.before_state is None
    assert entry.after_state["current_balance"] == 10.5

def test_create_existing_balance_conflicts(db_session, leave_types, initialized_employee, admin):
    with pytest.raises(StateConflictError):
        admin.create(initialized_employee.id, leave_types["VL"].id, YEAR, reason="Duplicate", earned_days=5)
    assert _entries(db_session, "LEAVE_BALANCE_MANUAL_CREATE") == []

def test_create_requires_reason_and_known_keys(db_session, leave_types, employee, admin):
    with pytest.raises(ValidationError) as exc_info:
        admin.create(employee.id, leave_types["VL"].id, YEAR, reason="   ")
    assert exc_info.value.errors == ["A reason is required for manual balance changes"]

    with pytest.raises(NotFoundError):
        admin.create(employee.id + 100, leave_types["VL"].id, YEAR, reason="Typo")
    with pytest.raises(NotFoundError):
        admin.create(employee.id, 999, YEAR, reason="Typo")
    assert db_session.query(LeaveBalance).count() == 0

def test_update_records_before_and_after(db_session, leave_types, initialized_employee, admin):
    balance = BalanceStore(db_session).get(initialized_employee.id, leave_types["VL"].id, YEAR)

    updated = admin.update(balance.id, "Posting error corrected", user_id=4, used_days=1.5)

    assert updated.used_days == 1.5
    assert updated.current_balance == 13.5
    [entry] = _entries(db_session, "LEAVE_BALANCE_MANUAL_UPDATE")
    assert entry.before_state["used_days"] == 0.0
    assert entry.after_state["used_days"] == 1.5
    assert entry.details == {
        "employee_id": initialized_employee.id,
        "leave_type_id": leave_types["VL"].id,
        "year": YEAR,
        "reason": "Posting error corrected",
    }

def test_update_that_breaks_the_ledger_is_refused(db_session, leave_types, initialized_employee, admin):
    balance = BalanceStore(db_session).get(initialized_employee.id, leave_types["VL"].id, YEAR)

    with pytest.raises(LedgerInvariantError):
        admin.update(balance.id, "Bad correction", used_days=20)

    db_session.expire_all()
    unchanged = db_session.get(LeaveBalance, balance.id)
    assert (unchanged.used_days, unchanged.current_balance) == (0.0, 15.0)
    assert _entries(db_session, "LEAVE_BALANCE_MANUAL_UPDATE") == []

def test_update_needs_a_component(db_session, leave_types, initialized_employee, admin):
    balance = BalanceStore(db_session).get(initialized_employee.id, leave_types["VL"].id, YEAR)
    with pytest.raises(ValidationError):
        admin.update(balance.id, "Nothing to change")
    with pytest.raises(NotFoundError):
        admin.update(balance.id + 1000, "Missing", used_days=1)

def test_delete_blocked_while_days_are_used(db_session, leave_types, initialized_employee, admin, lifecycle):
    vl = leave_types["VL"]
    created = lifecycle.create(initialized_employee.id, vl.id, date(2025, 4, 7), date(2025, 4, 8), 2)
    lifecycle.approve(created.application.id, reviewer_id=1)
    balance = BalanceStore(db_session).get(initialized_employee.id, vl.id, YEAR)

    with pytest.raises(StateConflictError):
        admin.delete(balance.id, "Cleanup")
    assert db_session.get(LeaveBalance, balance.id) is not None

def test_delete_unused_balance(db_session, leave_types, initialized_employee, admin):
    balance = BalanceStore(db_session).get(initialized_employee.id, leave_types["PL"].id, YEAR)
    balance_id = balance.id

    admin.delete(balance_id, "Not applicable", user_id=2)

    assert db_session.get(LeaveBalance, balance_id) is None
    [entry] = _entries(db_session, "LEAVE_BALANCE_MANUAL_DELETE")
    assert entry.entity_id == balance_id
    assert entry.before_state["earned_days"] == 7.0
    assert entry.details["reason"] == "Not applicable"
