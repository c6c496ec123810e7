import uuid

from sqlalchemy import Column, DateTime, Enum, ForeignKey, String, func
from sqlalchemy.dialects.postgresql import UUID

from app.db.base import Base
from app.models.loan_application import enum_values
from app.schemas.loan import LoanApplicationStatus


def _status_type() -> Enum:
    return Enum(
        LoanApplicationStatus,
        name="loan_application_status",
        native_enum=False,
        validate_strings=True,
        values_callable=enum_values,
        length=30,
    )


class ApplicationStatusHistory(Base):
    """Append-only log of application status changes; rows are never updated."""

    __tablename__ = "application_status_history"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    application_id = Column(
        UUID(as_uuid=True),
        ForeignKey("loan_applications.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    from_status = Column(_status_type(), nullable=True)
    to_status = Column(_status_type(), nullable=False)
    changed_by = Column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    changed_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    note = Column(String(1000), nullable=True)
