from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator, model_validator


class ClientInviteRequest(BaseModel):
    applicant_email: EmailStr
    applicant_full_name: str | None = Field(default=None, max_length=200)


class AssistedClientCreate(BaseModel):
    business_name: str = Field(min_length=1, max_length=200)
    registration_no: str | None = Field(default=None, max_length=100)
    address: str | None = Field(default=None, max_length=500)
    applicant_full_name: str | None = Field(default=None, max_length=200)
    applicant_email: EmailStr | None = None
    send_invite: bool = False

    @field_validator("business_name")
    @classmethod
    def business_name_not_blank(cls, v: str) -> str:
        value = v.strip()
        if not value:
            raise ValueError("Business name is required")
        return value

    @field_validator("registration_no", "address", "applicant_full_name")
    @classmethod
    def blank_to_none(cls, v: str | None) -> str | None:
        if v is None:
            return None
        return v.strip() or None

    @model_validator(mode="after")
    def invite_needs_email(self) -> "AssistedClientCreate":
        if self.send_invite and not self.applicant_email:
            raise ValueError("applicant_email is required when send_invite is true")
        return self


class ClientOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    user_id: UUID | None = None
    business_name: str
    registration_no: str | None = None
    address: str | None = None
    created_at: datetime | None = None


class ClientInviteOut(BaseModel):
    user_id: UUID
    email: EmailStr
    status: str
    # Only issued for accounts created by the invite; existing accounts keep their password.
    invite_token: str | None = None
    expires_in: int | None = None


class AssistedClientOut(BaseModel):
    client: ClientOut
    invite: ClientInviteOut | None = None
