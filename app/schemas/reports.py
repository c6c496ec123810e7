from datetime import date
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel


class PortfolioSummary(BaseModel):
    total_loans: int
    active_loans: int
    total_principal: Decimal
    outstanding_principal: Decimal
    repaid_principal: Decimal


class ArrearsItem(BaseModel):
    loan_id: UUID
    application_id: UUID
    installment_no: int
    due_date: date
    due_total: Decimal
    paid_amount: Decimal
    outstanding_amount: Decimal
    days_overdue: int


class TurnaroundReport(BaseModel):
    count: int
    average_days: float


class PipelineConversionItem(BaseModel):
    from_status: str
    to_status: str
    count: int


class ProductivityItem(BaseModel):
    user_id: UUID
    tasks_completed: int
    applications_handled: int
