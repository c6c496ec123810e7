import uuid

from sqlalchemy import JSON, Column, DateTime, Enum, ForeignKey, String, func
from sqlalchemy.dialects.postgresql import UUID

from app.db.base import Base
from app.models.loan_application import enum_values
from app.schemas.notifications import (
    NotificationChannel,
    NotificationPayload,
    NotificationStatus,
    notification_payload_adapter,
)


class Notification(Base):
    __tablename__ = "notifications"
    __allow_unmapped__ = True

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    channel = Column(
        Enum(
            NotificationChannel,
            name="notification_channel",
            native_enum=False,
            validate_strings=True,
            values_callable=enum_values,
            length=20,
        ),
        nullable=False,
        default=NotificationChannel.IN_APP,
    )
    type = Column(String(100), nullable=False)
    title = Column(String(255), nullable=False)
    message = Column(String(1000), nullable=False)
    status = Column(
        Enum(
            NotificationStatus,
            name="notification_status",
            native_enum=False,
            validate_strings=True,
            values_callable=enum_values,
            length=20,
        ),
        nullable=False,
        default=NotificationStatus.PENDING,
    )
    payload = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    sent_at = Column(DateTime(timezone=True), nullable=True)
    read_at = Column(DateTime(timezone=True), nullable=True)

    @property
    def typed_payload(self) -> NotificationPayload | None:
        if self.payload is None:
            return None
        return notification_payload_adapter.validate_python(self.payload)

    @typed_payload.setter
    def typed_payload(self, value: NotificationPayload) -> None:
        self.type = value.type
        self.payload = value.model_dump(mode="json")
