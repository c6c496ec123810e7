from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator


class LoanApplicationStatus(str, Enum):
    DRAFT = "Draft"
    SUBMITTED = "Submitted"
    UNDER_REVIEW = "UnderReview"
    INFO_REQUESTED = "InfoRequested"
    APPROVED = "Approved"
    REJECTED = "Rejected"
    DISBURSED = "Disbursed"
    IN_REPAYMENT = "InRepayment"
    CLOSED = "Closed"


class LoanStatus(str, Enum):
    PENDING_DISBURSEMENT = "PendingDisbursement"
    DISBURSED = "Disbursed"
    IN_REPAYMENT = "InRepayment"
    CLOSED = "Closed"


class InstallmentStatus(str, Enum):
    PENDING = "Pending"
    PAID = "Paid"


class DocumentStatus(str, Enum):
    PENDING = "Pending"
    VERIFIED = "Verified"
    REJECTED = "Rejected"


def _strip_optional(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value or None


class LoanApplicationCreate(BaseModel):
    client_id: UUID | None = None
    requested_amount: Decimal = Field(gt=0, max_digits=18, decimal_places=2)
    term_months: int = Field(gt=0)
    purpose: str = Field(min_length=1, max_length=500)
    business_name: str | None = Field(default=None, max_length=200)
    registration_no: str | None = Field(default=None, max_length=100)
    address: str | None = Field(default=None, max_length=500)
    assigned_to_user_id: UUID | None = None

    @field_validator("purpose")
    @classmethod
    def purpose_not_blank(cls, v: str) -> str:
        value = v.strip()
        if not value:
            raise ValueError("Purpose is required")
        return value

    @field_validator("business_name", "registration_no", "address")
    @classmethod
    def strip_opt(cls, v: str | None) -> str | None:
        return _strip_optional(v)


class LoanApplicationUpdate(BaseModel):
    requested_amount: Decimal = Field(gt=0, max_digits=18, decimal_places=2)
    term_months: int = Field(gt=0)
    purpose: str = Field(min_length=1, max_length=500)
    assigned_to_user_id: UUID | None = None

    @field_validator("purpose")
    @classmethod
    def purpose_not_blank(cls, v: str) -> str:
        value = v.strip()
        if not value:
            raise ValueError("Purpose is required")
        return value


class LoanApplicationSubmit(BaseModel):
    note: str | None = Field(default=None, max_length=1000)

    @field_validator("note")
    @classmethod
    def strip_opt(cls, v: str | None) -> str | None:
        return _strip_optional(v)


class LoanApplicationStatusChange(BaseModel):
    to_status: LoanApplicationStatus
    note: str | None = Field(default=None, max_length=1000)
    expected_version: int | None = Field(default=None, ge=1)

    @field_validator("to_status")
    @classmethod
    def not_draft(cls, v: LoanApplicationStatus) -> LoanApplicationStatus:
        if v == LoanApplicationStatus.DRAFT:
            raise ValueError("Status cannot be changed back to Draft")
        return v

    @field_validator("note")
    @classmethod
    def strip_opt(cls, v: str | None) -> str | None:
        return _strip_optional(v)


class LoanApplicationOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    client_id: UUID
    requested_amount: Decimal
    term_months: int
    purpose: str
    status: LoanApplicationStatus
    assigned_to_user_id: UUID | None = None
    created_by_user_id: UUID | None = None
    created_at: datetime | None = None
    submitted_at: datetime | None = None
    version: int | None = None


class LoanApplicationListResponse(BaseModel):
    items: list[LoanApplicationOut]
    total: int


class StatusHistoryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    application_id: UUID
    from_status: LoanApplicationStatus | None = None
    to_status: LoanApplicationStatus
    changed_by: UUID | None = None
    changed_at: datetime | None = None
    note: str | None = None


class DocumentPresignRequest(BaseModel):
    doc_type: str = Field(min_length=1, max_length=100)
    file_name: str = Field(min_length=1, max_length=255)
    content_type: str | None = Field(default=None, max_length=255)

    @field_validator("doc_type", "file_name")
    @classmethod
    def non_empty(cls, v: str) -> str:
        value = v.strip()
        if not value:
            raise ValueError("Value cannot be empty")
        return value


class DocumentPresignResponse(BaseModel):
    bucket: str
    storage_path: str
    upload_url: str
    upload_headers: dict[str, str] = Field(default_factory=dict)
    expires_in_seconds: int


class DocumentConfirmRequest(BaseModel):
    doc_type: str = Field(min_length=1, max_length=100)
    storage_path: str = Field(min_length=1, max_length=500)
    status: DocumentStatus = DocumentStatus.PENDING


class DocumentVerifyRequest(BaseModel):
    status: DocumentStatus
    note: str | None = Field(default=None, max_length=1000)

    @field_validator("status")
    @classmethod
    def decided(cls, v: DocumentStatus) -> DocumentStatus:
        if v == DocumentStatus.PENDING:
            raise ValueError("Status must be Verified or Rejected")
        return v


class DocumentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    application_id: UUID
    doc_type: str
    storage_path: str
    status: DocumentStatus
    uploaded_by: UUID | None = None
    uploaded_at: datetime | None = None
    verification_note: str | None = None
    verified_by: UUID | None = None
    verified_at: datetime | None = None


class DisbursementRequest(BaseModel):
    amount: Decimal = Field(gt=0, max_digits=18, decimal_places=2)
    reference: str | None = Field(default=None, max_length=200)


class RepaymentRequest(BaseModel):
    amount: Decimal = Field(gt=0, max_digits=18, decimal_places=2)
    paid_at: datetime | None = None
    payment_reference: str | None = Field(default=None, max_length=200)


class InstallmentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID | None = None
    installment_no: int
    due_date: date
    due_principal: Decimal
    due_interest: Decimal
    due_total: Decimal
    paid_amount: Decimal
    status: InstallmentStatus
    paid_at: datetime | None = None


class RepaymentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID | None = None
    amount: Decimal
    principal_component: Decimal
    interest_component: Decimal
    unapplied_amount: Decimal = Decimal("0")
    paid_at: datetime
    payment_reference: str | None = None


class DisbursementOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID | None = None
    amount: Decimal
    disbursed_at: datetime
    reference: str | None = None


class LoanOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    application_id: UUID
    principal_amount: Decimal
    outstanding_principal: Decimal
    interest_rate: Decimal
    term_months: int
    status: LoanStatus
    disbursed_at: datetime | None = None
    created_at: datetime | None = None


class LoanDetailsOut(LoanOut):
    schedule: list[InstallmentOut] = Field(default_factory=list)
    repayments: list[RepaymentOut] = Field(default_factory=list)
    disbursements: list[DisbursementOut] = Field(default_factory=list)


class DocumentRequirementCreate(BaseModel):
    required_at_status: LoanApplicationStatus
    doc_type: str = Field(min_length=1, max_length=100)
    is_required: bool = True

    @field_validator("doc_type")
    @classmethod
    def doc_type_not_blank(cls, v: str) -> str:
        value = v.strip()
        if not value:
            raise ValueError("Value cannot be empty")
        return value


class DocumentRequirementOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    required_at_status: LoanApplicationStatus
    doc_type: str
    is_required: bool
    created_at: datetime | None = None
