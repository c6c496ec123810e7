from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Annotated, Any, Literal, Union
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from app.schemas.loan import DocumentStatus, LoanApplicationStatus, LoanStatus
from app.schemas.tasks import TaskStatus


class ApplicationCreatedEvent(BaseModel):
    action: Literal["loan_application.created"] = "loan_application.created"
    client_id: UUID
    requested_amount: Decimal
    term_months: int
    status: LoanApplicationStatus = LoanApplicationStatus.DRAFT
    assigned_to_user_id: UUID | None = None


class ApplicationUpdatedEvent(BaseModel):
    action: Literal["loan_application.updated", "loan_application.reassigned"]
    requested_amount: Decimal | None = None
    term_months: int | None = None
    purpose: str | None = None
    assigned_to_user_id: UUID | None = None


class ApplicationStatusChangedEvent(BaseModel):
    action: Literal["loan_application.submitted", "loan_application.status_changed"]
    from_status: LoanApplicationStatus | None = None
    to_status: LoanApplicationStatus
    note: str | None = None
    loan_id: UUID | None = None


class LoanDisbursedEvent(BaseModel):
    action: Literal["loan.disbursed"] = "loan.disbursed"
    requested_amount: Decimal
    amount: Decimal
    reference: str | None = None
    outstanding_principal: Decimal
    schedule_generated: bool = False


class RepaymentRecordedEvent(BaseModel):
    action: Literal["loan.repayment_recorded"] = "loan.repayment_recorded"
    amount: Decimal
    principal_component: Decimal
    interest_component: Decimal
    unapplied_amount: Decimal = Decimal("0")
    outstanding_principal: Decimal
    loan_status: LoanStatus
    payment_reference: str | None = None


class TaskEvent(BaseModel):
    action: Literal["task.created", "task.updated", "task.completed"]
    application_id: UUID
    title: str
    status: TaskStatus
    assigned_to: UUID | None = None
    due_date: date | None = None
    note: str | None = None


class NoteCreatedEvent(BaseModel):
    action: Literal["note.created"] = "note.created"
    application_id: UUID
    body: str


class DocumentEvent(BaseModel):
    action: Literal["loan_document.confirmed", "loan_document.verified"]
    application_id: UUID
    doc_type: str
    storage_path: str
    status: DocumentStatus
    note: str | None = None


class ClientEvent(BaseModel):
    action: Literal["client.created", "client.invite_sent"]
    business_name: str
    owner_user_id: UUID | None = None
    applicant_email: str | None = None
    invite_status: str | None = None


class DocumentRequirementCreatedEvent(BaseModel):
    action: Literal["document_requirement.created"] = "document_requirement.created"
    required_at_status: LoanApplicationStatus
    doc_type: str
    is_required: bool


class NotificationReadEvent(BaseModel):
    action: Literal["notification.read"] = "notification.read"
    notification_id: UUID


AuditEvent = Annotated[
    Union[
        ApplicationCreatedEvent,
        ApplicationUpdatedEvent,
        ApplicationStatusChangedEvent,
        LoanDisbursedEvent,
        RepaymentRecordedEvent,
        TaskEvent,
        NoteCreatedEvent,
        DocumentEvent,
        ClientEvent,
        DocumentRequirementCreatedEvent,
        NotificationReadEvent,
    ],
    Field(discriminator="action"),
]

audit_event_adapter: TypeAdapter[AuditEvent] = TypeAdapter(AuditEvent)


class AuditLogEntry(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    actor_id: UUID | None = None
    action: str
    resource_type: str
    resource_id: str
    old_value: dict[str, Any] | list[Any] | None = None
    new_value: dict[str, Any] | list[Any] | None = None
    changes: dict[str, Any] | None = None
    summary: str | None = None
    created_at: datetime


class AuditLogListResponse(BaseModel):
    items: list[AuditLogEntry]
    total: int
