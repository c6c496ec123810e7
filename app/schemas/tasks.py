from datetime import date, datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator


class TaskStatus(str, Enum):
    OPEN = "Open"
    COMPLETED = "Completed"


class TaskCreate(BaseModel):
    application_id: UUID
    title: str = Field(min_length=1, max_length=200)
    assigned_to: UUID | None = None
    due_date: date | None = None

    @field_validator("title")
    @classmethod
    def non_empty(cls, v: str) -> str:
        value = v.strip()
        if not value:
            raise ValueError("Title cannot be empty")
        return value


class TaskUpdate(BaseModel):
    title: str | None = Field(default=None, min_length=1, max_length=200)
    assigned_to: UUID | None = None
    due_date: date | None = None

    @field_validator("title")
    @classmethod
    def strip_opt(cls, v: str | None) -> str | None:
        if v is None:
            return v
        value = v.strip()
        if not value:
            raise ValueError("Title cannot be empty")
        return value


class TaskComplete(BaseModel):
    note: str | None = Field(default=None, max_length=2000)


class TaskOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    application_id: UUID
    title: str
    status: TaskStatus
    assigned_to: UUID | None = None
    due_date: date | None = None
    created_at: datetime | None = None
    completed_at: datetime | None = None


class NoteCreate(BaseModel):
    body: str = Field(min_length=1, max_length=2000)

    @field_validator("body")
    @classmethod
    def non_empty(cls, v: str) -> str:
        value = v.strip()
        if not value:
            raise ValueError("Body cannot be empty")
        return value


class NoteOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    application_id: UUID
    body: str
    created_by: UUID | None = None
    created_at: datetime | None = None
