import uuid

from sqlalchemy import JSON, Column, DateTime, Index, String, Text, func
from sqlalchemy.dialects.postgresql import UUID

from app.db.base import Base
from app.schemas.audit import AuditEvent, audit_event_adapter


class AuditLog(Base):
    __tablename__ = "audit_logs"
    __allow_unmapped__ = True
    __table_args__ = (
        Index("ix_audit_logs_resource", "resource_type", "resource_id"),
        Index("ix_audit_logs_created_at", "created_at"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    actor_id = Column(UUID(as_uuid=True), nullable=True)
    action = Column(String(255), nullable=False)
    resource_type = Column(String(255), nullable=False)
    resource_id = Column(String(255), nullable=False)
    old_value = Column(JSON, nullable=True)
    new_value = Column(JSON, nullable=True)
    changes = Column(JSON, nullable=True)
    summary = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    @property
    def event(self) -> AuditEvent | None:
        """The typed event carried in ``new_value``, or None for rows without one."""
        if not isinstance(self.new_value, dict) or "action" not in self.new_value:
            return None
        return audit_event_adapter.validate_python(self.new_value)
