from datetime import datetime

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.api import deps
from app.db.session import get_db
from app.schemas.audit import AuditLogEntry
from app.schemas.reports import (
    ArrearsItem,
    PipelineConversionItem,
    PortfolioSummary,
    ProductivityItem,
    TurnaroundReport,
)
from app.services import reports

router = APIRouter(prefix="/reports", tags=["reports"])


@router.get("/portfolio", response_model=PortfolioSummary, summary="Portfolio totals")
async def get_portfolio(
    ctx: deps.ActorContext = Depends(deps.get_actor),
    db: AsyncSession = Depends(get_db),
) -> PortfolioSummary:
    return await reports.portfolio_summary(db, ctx)


@router.get("/arrears", response_model=list[ArrearsItem], summary="Installments in arrears")
async def get_arrears(
    ctx: deps.ActorContext = Depends(deps.get_actor),
    db: AsyncSession = Depends(get_db),
) -> list[ArrearsItem]:
    return await reports.list_arrears(db, ctx)


@router.get("/audit-logs", response_model=list[AuditLogEntry], summary="Audit trail")
async def get_audit_logs(
    ctx: deps.ActorContext = Depends(deps.get_actor),
    db: AsyncSession = Depends(get_db),
    created_from: datetime | None = Query(default=None, alias="from"),
    created_to: datetime | None = Query(default=None, alias="to"),
    limit: int = Query(default=100, ge=1, le=1000),
) -> list[AuditLogEntry]:
    rows = await reports.list_audit_logs(
        db, ctx, created_from=created_from, created_to=created_to, limit=limit
    )
    return [AuditLogEntry.model_validate(row) for row in rows]


@router.get("/turnaround", response_model=TurnaroundReport, summary="Submission to approval turnaround")
async def get_turnaround(
    ctx: deps.ActorContext = Depends(deps.get_actor),
    db: AsyncSession = Depends(get_db),
) -> TurnaroundReport:
    return await reports.turnaround_report(db, ctx)


@router.get(
    "/pipeline-conversion",
    response_model=list[PipelineConversionItem],
    summary="Status transition counts",
)
async def get_pipeline_conversion(
    ctx: deps.ActorContext = Depends(deps.get_actor),
    db: AsyncSession = Depends(get_db),
) -> list[PipelineConversionItem]:
    return await reports.pipeline_conversion(db, ctx)


@router.get("/productivity", response_model=list[ProductivityItem], summary="Per-user workload")
async def get_productivity(
    ctx: deps.ActorContext = Depends(deps.get_actor),
    db: AsyncSession = Depends(get_db),
) -> list[ProductivityItem]:
    return await reports.productivity_report(db, ctx)
