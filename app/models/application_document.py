import uuid

from sqlalchemy import Column, DateTime, Enum, ForeignKey, String, func
from sqlalchemy.dialects.postgresql import UUID

from app.db.base import Base
from app.models.loan_application import enum_values
from app.schemas.loan import DocumentStatus


class ApplicationDocument(Base):
    __tablename__ = "loan_documents"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    application_id = Column(
        UUID(as_uuid=True),
        ForeignKey("loan_applications.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    doc_type = Column(String(100), nullable=False)
    storage_path = Column(String(500), nullable=False)
    status = Column(
        Enum(
            DocumentStatus,
            name="document_status",
            native_enum=False,
            validate_strings=True,
            values_callable=enum_values,
            length=20,
        ),
        nullable=False,
        default=DocumentStatus.PENDING,
    )
    uploaded_by = Column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    uploaded_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    verification_note = Column(String(1000), nullable=True)
    verified_by = Column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    verified_at = Column(DateTime(timezone=True), nullable=True)
