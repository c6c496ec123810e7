from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.api import deps
from app.db.session import get_db
from app.schemas.loan import DocumentRequirementCreate, DocumentRequirementOut, LoanApplicationStatus
from app.services import documents

router = APIRouter(prefix="/document-requirements", tags=["documents"])


@router.get("", response_model=list[DocumentRequirementOut], summary="List required document types")
async def list_requirements(
    ctx: deps.ActorContext = Depends(deps.get_actor),
    db: AsyncSession = Depends(get_db),
    status_filter: LoanApplicationStatus | None = Query(default=None, alias="status"),
) -> list[DocumentRequirementOut]:
    rows = await documents.list_requirements(db, ctx, status=status_filter)
    return [DocumentRequirementOut.model_validate(row) for row in rows]


@router.post(
    "",
    response_model=DocumentRequirementOut,
    status_code=201,
    summary="Add a required document type",
)
async def create_requirement(
    payload: DocumentRequirementCreate,
    ctx: deps.ActorContext = Depends(deps.get_actor),
    db: AsyncSession = Depends(get_db),
) -> DocumentRequirementOut:
    requirement = await documents.create_requirement(db, ctx, payload)
    await db.commit()
    return DocumentRequirementOut.model_validate(requirement)
