import pytest
from datetime import date, datetime

from app.core.exceptions import NotFoundError, StateConflictError, ValidationError
from app.models.audit_log import AuditLog
from app.models.employee import ServiceRecord
from app.models.terminal_leave_benefit import TerminalLeaveBenefit, TLBStatus
from app.services.terminal_benefits import (
    Approve,
    Pay,
    SetStatus,
    TerminalBenefitCalculator,
    TerminalBenefitService,
    apply_transition,
    one_year_after,
    years_of_service,
)
from conftest import TODAY

SEPARATION = date(2025, 6, 30)
CLAIM = date(2025, 6, 1)


@pytest.fixture
def tlb_service(db_session, ledger_settings):
    return TerminalBenefitService(db_session, ledger_settings, today=TODAY)


def _create(service, employee, **overrides):
    fields = {"total_leave_credits": 10, "highest_monthly_salary": 20000, "constant_factor": 1.0}
    fields.update(overrides)
    record, _ = service.create(employee.id, claim_date=CLAIM, separation_date=SEPARATION, processed_by=1, **fields)
    return record


def test_one_year_after_handles_leap_day():
    assert one_year_after(date(2024, 2, 29)) == date(2025, 3, 1)
    assert one_year_after(date(2025, 3, 3)) == date(2026, 3, 3)

def test_years_of_service():
    assert years_of_service(date(2020, 1, 6), date(2025, 1, 6)) == 5.0
    assert years_of_service(None) == 0.0

def test_calculation_from_ledger(db_session, leave_types, initialized_employee, ledger_settings):
    db_session.add(ServiceRecord(employee_id=initialized_employee.id, position="Officer II", salary=25000))
    db_session.commit()
    calculator = TerminalBenefitCalculator(db_session, ledger_settings, today=TODAY)

    result = calculator.calculate(initialized_employee.id, separation_date=SEPARATION, claim_date=CLAIM)

    # 15 VL + 15 SL + 5 FL + 3 SPL + 105 ML + 7 PL
    assert result.total_leave_credits == 150.0
    assert result.highest_monthly_salary == 25000.0
    assert result.constant_factor == 1.0
    assert result.computed_amount == 3750000.0
    assert "Computed amount is unusually high - please verify calculation" in result.warnings

def test_calculation_with_explicit_inputs(db_session, employee, ledger_settings):
    result = TerminalBenefitCalculator(db_session, ledger_settings, today=TODAY).calculate(
        employee.id,
        separation_date=SEPARATION,
        claim_date=CLAIM,
        total_leave_credits=12.5,
        highest_monthly_salary=30000,
        constant_factor=0.5
    )
    assert result.computed_amount == 187500.0
    assert result.warnings == []

def test_calculation_validation_errors(db_session, employee, ledger_settings):
    calculator = TerminalBenefitCalculator(db_session, ledger_settings, today=TODAY)
    with pytest.raises(ValidationError) as exc_info:
        calculator.calculate(
            employee.id,
            separation_date=date(2025, 5, 1),
            claim_date=date(2025, 6, 1),
            total_leave_credits=0,
            highest_monthly_salary=-1,
            constant_factor=3.0
        )
    assert exc_info.value.errors == [
        "Total leave credits must be greater than 0",
        "Highest monthly salary must be greater than 0",
        "Constant factor must be between 0.1 and 2.0",
        "Claim date cannot be after separation date",
    ]

def test_distant_separation_warns(db_session, employee, ledger_settings):
    result = TerminalBenefitCalculator(db_session, ledger_settings, today=TODAY).calculate(
        employee.id,
        separation_date=date(2026, 6, 1),
        claim_date=CLAIM,
        total_leave_credits=1,
        highest_monthly_salary=1000
    )
    assert result.warnings == ["Separation date is more than a year in the future"]

def test_calculation_unknown_employee(db_session, ledger_settings):
    with pytest.raises(NotFoundError):
        TerminalBenefitCalculator(db_session, ledger_settings).calculate(999, SEPARATION, CLAIM)

def test_create_one_record_per_employee(db_session, employee, tlb_service):
    record = _create(tlb_service, employee)
    assert record.status == TLBStatus.COMPUTED.value
    assert record.computed_amount == 200000.0

    with pytest.raises(StateConflictError):
        _create(tlb_service, employee)
    assert db_session.query(TerminalLeaveBenefit).count() == 1

def test_approve_then_pay(db_session, employee, tlb_service):
    record = _create(tlb_service, employee)

    approved = tlb_service.transition(record.id, Approve(reviewer=5), user_id=5)
    assert approved.status == TLBStatus.APPROVED.value
    assert approved.approved_by == 5
    assert approved.approved_at is not None

    paid = tlb_service.transition(record.id, Pay(payer=6, reference="CHK-0091"), user_id=6, notes="Released")
    assert paid.status == TLBStatus.PAID.value
    assert paid.paid_by == 6
    assert paid.check_number == "CHK-0091"
    assert paid.payment_date is not None
    assert paid.notes == "Released"

def test_pay_requires_approval(db_session, employee, tlb_service):
    record = _create(tlb_service, employee)
    with pytest.raises(StateConflictError):
        tlb_service.transition(record.id, Pay(payer=6))
    db_session.expire_all()
    assert tlb_service.get(record.id).status == TLBStatus.COMPUTED.value

def test_set_status_cannot_reach_paid_or_approved():
    record = TerminalLeaveBenefit(status=TLBStatus.COMPUTED.value)
    with pytest.raises(StateConflictError):
        apply_transition(record, SetStatus(TLBStatus.PAID))
    with pytest.raises(StateConflictError):
        apply_transition(record, SetStatus(TLBStatus.APPROVED))
    assert record.status == TLBStatus.COMPUTED.value

def test_set_status_paths():
    record = TerminalLeaveBenefit(status=TLBStatus.COMPUTED.value)
    apply_transition(record, Approve(reviewer=1))
    apply_transition(record, SetStatus(TLBStatus.COMPUTED))
    assert record.status == TLBStatus.COMPUTED.value
    assert record.approved_by is None

    apply_transition(record, SetStatus(TLBStatus.CANCELLED))
    apply_transition(record, SetStatus(TLBStatus.COMPUTED))
    assert record.status == TLBStatus.COMPUTED.value

    paid = TerminalLeaveBenefit(status=TLBStatus.PAID.value)
    with pytest.raises(StateConflictError):
        apply_transition(paid, SetStatus(TLBStatus.CANCELLED))

def test_unknown_transition_type():
    with pytest.raises(TypeError):
        apply_transition(TerminalLeaveBenefit(status=TLBStatus.COMPUTED.value), "approve")

def test_bulk_transition_is_all_or_nothing(db_session, make_employee, tlb_service):
    first = _create(tlb_service, make_employee())
    second = _create(tlb_service, make_employee())
    tlb_service.transition(second.id, Approve(reviewer=1))

    with pytest.raises(StateConflictError):
        tlb_service.bulk_transition([first.id, second.id], Approve(reviewer=2))

    db_session.expire_all()
    assert tlb_service.get(first.id).status == TLBStatus.COMPUTED.value
    assert tlb_service.get(second.id).approved_by == 1

def test_bulk_transition_applies_to_all(db_session, make_employee, tlb_service):
    ids = [_create(tlb_service, make_employee()).id for _ in range(3)]
    records = tlb_service.bulk_transition(ids, Approve(reviewer=2), user_id=2)
    assert [r.status for r in records] == [TLBStatus.APPROVED.value] * 3

def test_bulk_transition_requires_ids(tlb_service):
    with pytest.raises(ValidationError):
        tlb_service.bulk_transition([], Approve(reviewer=2))

def test_paid_record_cannot_be_deleted(db_session, employee, tlb_service):
    record = _create(tlb_service, employee)
    tlb_service.transition(record.id, Approve(reviewer=1))
    tlb_service.transition(record.id, Pay(payer=1))

    with pytest.raises(StateConflictError):
        tlb_service.delete(record.id)
    assert db_session.query(TerminalLeaveBenefit).count() == 1

def test_delete_computed_record(db_session, employee, tlb_service):
    record = _create(tlb_service, employee)
    tlb_service.delete(record.id, user_id=1)
    assert db_session.query(TerminalLeaveBenefit).count() == 0

def test_list_filters(db_session, make_employee, tlb_service):
    first = _create(tlb_service, make_employee(last_name="Reyes"))
    _create(tlb_service, make_employee(last_name="Cruz"))
    tlb_service.transition(first.id, Approve(reviewer=1))

    assert len(tlb_service.list()) == 2
    assert [r.id for r in tlb_service.list(status=TLBStatus.APPROVED.value)] == [first.id]
    assert [r.id for r in tlb_service.list(search="reyes")] == [first.id]
    assert tlb_service.list(year=2024) == []

def test_statistics(db_session, make_employee, tlb_service):
    first = _create(tlb_service, make_employee())
    _create(tlb_service, make_employee(), total_leave_credits=20)
    tlb_service.transition(first.id, Approve(reviewer=1))
    tlb_service.transition(first.id, Pay(payer=1))

    stats = tlb_service.statistics(year=2025)

    assert stats["summary"]["total_records"] == 2
    assert stats["summary"]["total_computed_amount"] == 600000.0
    assert stats["summary"]["total_paid_amount"] == 200000.0
    assert stats["summary"]["average_amount"] == 300000.0
    assert stats["summary"]["highest_amount"] == 400000.0
    assert stats["status_breakdown"] == {"computed": 1, "approved": 0, "paid": 1, "cancelled": 0}

def test_update_notes_on_any_status(db_session, employee, tlb_service):
    record = _create(tlb_service, employee)

    updated = tlb_service.update(record.id, user_id=2, notes="Awaiting clearance")

    assert updated.notes == "Awaiting clearance"
    assert updated.status == TLBStatus.COMPUTED.value
    entry = db_session.query(AuditLog).filter(AuditLog.action == "tlb_updated").one()
    assert entry.before_state["notes"] is None
    assert entry.after_state["notes"] == "Awaiting clearance"

def test_payment_details_corrected_only_when_paid(db_session, employee, tlb_service):
    record = _create(tlb_service, employee)
    with pytest.raises(StateConflictError):
        tlb_service.update(record.id, check_number="CHK-2")

    tlb_service.transition(record.id, Approve(reviewer=1))
    tlb_service.transition(record.id, Pay(payer=1, reference="CHK-1"))
    paid_on = datetime(2025, 7, 1, 9, 30)
    updated = tlb_service.update(record.id, check_number="CHK-2", payment_date=paid_on)

    assert updated.check_number == "CHK-2"
    assert updated.payment_date.replace(tzinfo=None) == paid_on
    assert updated.status == TLBStatus.PAID.value
    with pytest.raises(NotFoundError):
        tlb_service.update(record.id + 100, notes="Missing")

def test_summary_report_groups_by_status(db_session, make_employee, tlb_service):
    first = _create(tlb_service, make_employee(last_name="Reyes"))
    _create(tlb_service, make_employee(), total_leave_credits=20)
    _create(tlb_service, make_employee(), total_leave_credits=30)
    tlb_service.transition(first.id, Approve(reviewer=1))

    report = tlb_service.summary_report(year=2025)

    assert report["by_status"] == [
        {"status": "Approved", "record_count": 1, "total_amount": 200000.0,
         "average_amount": 200000.0, "min_amount": 200000.0, "max_amount": 200000.0},
        {"status": "Computed", "record_count": 2, "total_amount": 1000000.0,
         "average_amount": 500000.0, "min_amount": 400000.0, "max_amount": 600000.0},
    ]
    assert report["total_records"] == 3
    assert report["total_amount"] == 1200000.0
    reyes = next(r for r in report["records"] if r["id"] == first.id)
    assert reyes["employee_name"].endswith("Reyes")

    approved_only = tlb_service.summary_report(status=TLBStatus.APPROVED.value)
    assert [r["id"] for r in approved_only["records"]] == [first.id]
    assert tlb_service.summary_report(year=2024) == {
        "by_status": [], "records": [], "total_records": 0, "total_amount": 0
    }
