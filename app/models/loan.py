import uuid

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    Numeric,
    func,
)
from sqlalchemy.dialects.postgresql import UUID

from app.db.base import Base
from app.models.loan_application import enum_values
from app.schemas.loan import LoanStatus


class Loan(Base):
    __tablename__ = "loans"
    __allow_unmapped__ = True
    __table_args__ = (
        CheckConstraint("principal_amount > 0", name="ck_loans_principal_positive"),
        CheckConstraint("outstanding_principal >= 0", name="ck_loans_outstanding_nonneg"),
        CheckConstraint(
            "outstanding_principal <= principal_amount",
            name="ck_loans_outstanding_le_principal",
        ),
        CheckConstraint("interest_rate >= 0", name="ck_loans_rate_nonneg"),
        CheckConstraint("term_months > 0", name="ck_loans_term_positive"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    application_id = Column(
        UUID(as_uuid=True),
        ForeignKey("loan_applications.id", ondelete="RESTRICT"),
        nullable=False,
        unique=True,
    )
    principal_amount = Column(Numeric(18, 2), nullable=False)
    outstanding_principal = Column(Numeric(18, 2), nullable=False)
    interest_rate = Column(Numeric(9, 4), nullable=False, default=0)
    term_months = Column(Integer, nullable=False)
    status = Column(
        Enum(
            LoanStatus,
            name="loan_status",
            native_enum=False,
            validate_strings=True,
            values_callable=enum_values,
            length=30,
        ),
        nullable=False,
        default=LoanStatus.PENDING_DISBURSEMENT,
        index=True,
    )
    disbursed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
