import uuid

from sqlalchemy import Boolean, Column, DateTime, Enum, String, UniqueConstraint, func
from sqlalchemy.dialects.postgresql import UUID

from app.db.base import Base
from app.models.loan_application import enum_values
from app.schemas.loan import LoanApplicationStatus


class DocumentRequirement(Base):
    """A document type applicants are expected to provide once an application reaches a status."""

    __tablename__ = "document_requirements"
    __table_args__ = (
        UniqueConstraint("required_at_status", "doc_type", name="uq_document_requirements_status_doc_type"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    required_at_status = Column(
        Enum(
            LoanApplicationStatus,
            name="document_requirement_status",
            native_enum=False,
            validate_strings=True,
            values_callable=enum_values,
            length=30,
        ),
        nullable=False,
    )
    doc_type = Column(String(100), nullable=False)
    is_required = Column(Boolean, nullable=False, default=True, server_default="true")
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
