from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Annotated, Literal, Union
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from app.schemas.loan import LoanApplicationStatus


class NotificationChannel(str, Enum):
    IN_APP = "InApp"


class NotificationStatus(str, Enum):
    PENDING = "Pending"
    SENT = "Sent"
    READ = "Read"


class ApplicationStatusChangedPayload(BaseModel):
    type: Literal["ApplicationStatusChanged"] = "ApplicationStatusChanged"
    application_id: UUID
    status: LoanApplicationStatus
    note: str | None = None

    @property
    def title(self) -> str:
        return "Application status updated"

    @property
    def message(self) -> str:
        return f"Application status changed to {self.status.value}."


class ArrearsReminderPayload(BaseModel):
    type: Literal["ArrearsReminder"] = "ArrearsReminder"
    loan_id: UUID
    application_id: UUID

    @property
    def title(self) -> str:
        return "Repayment overdue"

    @property
    def message(self) -> str:
        return "Your repayment is overdue. Please make payment as soon as possible."


class TaskReminderPayload(BaseModel):
    type: Literal["TaskReminder"] = "TaskReminder"
    task_id: UUID
    application_id: UUID

    @property
    def title(self) -> str:
        return "Task reminder"

    @property
    def message(self) -> str:
        return "You have an open task due soon."


class StaleApplicationFollowUpPayload(BaseModel):
    type: Literal["StaleApplicationFollowUp"] = "StaleApplicationFollowUp"
    application_id: UUID
    status: LoanApplicationStatus

    @property
    def title(self) -> str:
        return "Application follow-up"

    @property
    def message(self) -> str:
        return "This application has been pending follow-up for over 7 days."


NotificationPayload = Annotated[
    Union[
        ApplicationStatusChangedPayload,
        ArrearsReminderPayload,
        TaskReminderPayload,
        StaleApplicationFollowUpPayload,
    ],
    Field(discriminator="type"),
]

notification_payload_adapter: TypeAdapter[NotificationPayload] = TypeAdapter(NotificationPayload)


class NotificationOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    user_id: UUID
    channel: NotificationChannel
    type: str
    title: str
    message: str
    status: NotificationStatus
    payload: NotificationPayload | None = Field(default=None, validation_alias="typed_payload")
    created_at: datetime | None = None
    sent_at: datetime | None = None
    read_at: datetime | None = None
