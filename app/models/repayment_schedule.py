import uuid

from sqlalchemy import (
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    Numeric,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import UUID

from app.db.base import Base
from app.models.loan_application import enum_values
from app.schemas.loan import InstallmentStatus


class RepaymentScheduleInstallment(Base):
    __tablename__ = "repayment_schedule"
    __table_args__ = (
        UniqueConstraint("loan_id", "installment_no", name="uq_repayment_schedule_loan_installment"),
        CheckConstraint("installment_no >= 1", name="ck_repayment_schedule_installment_no"),
        CheckConstraint(
            "due_total = due_principal + due_interest",
            name="ck_repayment_schedule_due_total",
        ),
        CheckConstraint("paid_amount >= 0", name="ck_repayment_schedule_paid_nonneg"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    loan_id = Column(
        UUID(as_uuid=True), ForeignKey("loans.id", ondelete="CASCADE"), nullable=False, index=True
    )
    installment_no = Column(Integer, nullable=False)
    due_date = Column(Date, nullable=False)
    due_principal = Column(Numeric(18, 2), nullable=False)
    due_interest = Column(Numeric(18, 2), nullable=False)
    due_total = Column(Numeric(18, 2), nullable=False)
    paid_amount = Column(Numeric(18, 2), nullable=False, default=0)
    status = Column(
        Enum(
            InstallmentStatus,
            name="installment_status",
            native_enum=False,
            validate_strings=True,
            values_callable=enum_values,
            length=20,
        ),
        nullable=False,
        default=InstallmentStatus.PENDING,
    )
    paid_at = Column(DateTime(timezone=True), nullable=True)
