import uuid

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Numeric, String, func
from sqlalchemy.dialects.postgresql import UUID

from app.db.base import Base


class Repayment(Base):
    __tablename__ = "repayments"
    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_repayments_amount_positive"),
        CheckConstraint(
            "amount = principal_component + interest_component",
            name="ck_repayments_components",
        ),
        CheckConstraint("unapplied_amount >= 0", name="ck_repayments_unapplied_nonneg"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    loan_id = Column(
        UUID(as_uuid=True), ForeignKey("loans.id", ondelete="CASCADE"), nullable=False, index=True
    )
    amount = Column(Numeric(18, 2), nullable=False)
    principal_component = Column(Numeric(18, 2), nullable=False)
    interest_component = Column(Numeric(18, 2), nullable=False)
    # Portion the installment schedule could not absorb once every installment was paid.
    unapplied_amount = Column(Numeric(18, 2), nullable=False, default=0)
    paid_at = Column(DateTime(timezone=True), nullable=False)
    payment_reference = Column(String(200), nullable=True)
    recorded_by = Column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
