from decimal import Decimal

import pytest
from sqlalchemy.sql.selectable import Select

from app.core.exceptions import Forbidden, InvalidStateTransition, ValidationError
from app.models.audit_log import AuditLog
from app.models.disbursement import Disbursement
from app.models.loan import Loan
from app.models.loan_application import LoanApplication
from app.models.repayment_schedule import RepaymentScheduleInstallment
from app.schemas.loan import LoanApplicationStatus, LoanStatus
from app.services import loan_disbursements
from conftest import FakeAsyncSession, FakeResult, entity_handler, make_application, make_loan


def _is_schedule_count(stmt) -> bool:
    return isinstance(stmt, Select) and "count" in str(stmt).lower() and "repayment_schedule" in str(stmt)


def _disbursement_db(loan, application, *, existing_installments: int = 0) -> FakeAsyncSession:
    db = FakeAsyncSession()
    db.on_execute(lambda stmt: FakeResult(scalar=existing_installments) if _is_schedule_count(stmt) else None)
    db.on_execute(entity_handler(Loan, FakeResult(scalar=loan)))
    db.on_execute(entity_handler(LoanApplication, FakeResult(scalar=application)))
    return db


def test_clamp_caps_at_outstanding() -> None:
    assert loan_disbursements.clamp_disbursement(Decimal("15000"), Decimal("12000.00")) == Decimal("12000.00")
    assert loan_disbursements.clamp_disbursement(Decimal("500.004"), Decimal("12000.00")) == Decimal("500.00")


def test_clamp_rejects_nothing_to_disburse() -> None:
    with pytest.raises(ValidationError):
        loan_disbursements.clamp_disbursement(Decimal("100"), Decimal("0.00"))
    with pytest.raises(ValidationError):
        loan_disbursements.clamp_disbursement(Decimal("0.001"), Decimal("100.00"))


@pytest.mark.asyncio
async def test_first_disbursement_generates_schedule(officer_ctx) -> None:
    application = make_application(status=LoanApplicationStatus.APPROVED)
    loan = make_loan(application=application)
    db = _disbursement_db(loan, application)

    _, disbursement = await loan_disbursements.disburse_loan(
        db, officer_ctx, loan.id, Decimal("15000"), reference="WIRE-9"
    )

    assert disbursement.amount == Decimal("12000.00")
    assert disbursement.reference == "WIRE-9"
    assert disbursement.disbursed_by == officer_ctx.user_id
    assert loan.status == LoanStatus.DISBURSED
    assert loan.disbursed_at is not None
    # Disbursement moves money out; it does not reduce what is owed.
    assert loan.outstanding_principal == Decimal("12000.00")
    assert application.status == LoanApplicationStatus.DISBURSED

    schedule = db.added_of(RepaymentScheduleInstallment)
    assert len(schedule) == 12
    assert sum(item.due_principal for item in schedule) == Decimal("12000.00")
    assert schedule[0].due_date > loan.disbursed_at.date()
    assert [entry.action for entry in db.added_of(AuditLog)] == ["loan.disbursed"]


@pytest.mark.asyncio
async def test_repeat_disbursement_keeps_schedule(admin_ctx) -> None:
    application = make_application(status=LoanApplicationStatus.DISBURSED)
    loan = make_loan(application=application, status=LoanStatus.DISBURSED)
    first_disbursed_at = loan.created_at
    loan.disbursed_at = first_disbursed_at
    db = _disbursement_db(loan, application, existing_installments=12)

    await loan_disbursements.disburse_loan(db, admin_ctx, loan.id, Decimal("100"))

    assert db.added_of(RepaymentScheduleInstallment) == []
    assert loan.disbursed_at == first_disbursed_at
    assert len(db.added_of(Disbursement)) == 1


@pytest.mark.asyncio
@pytest.mark.parametrize("status", [LoanStatus.IN_REPAYMENT, LoanStatus.CLOSED])
async def test_disbursement_rejected_once_servicing_started(admin_ctx, status) -> None:
    loan = make_loan(status=status)
    db = FakeAsyncSession().on_execute(entity_handler(Loan, FakeResult(scalar=loan)))
    with pytest.raises(InvalidStateTransition):
        await loan_disbursements.disburse_loan(db, admin_ctx, loan.id, Decimal("100"))
    assert db.added_of(Disbursement) == []


@pytest.mark.asyncio
async def test_disbursement_requires_staff(originator_ctx) -> None:
    with pytest.raises(Forbidden):
        await loan_disbursements.disburse_loan(FakeAsyncSession(), originator_ctx, make_loan().id, Decimal("1"))
