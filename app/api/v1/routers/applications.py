from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.api import deps
from app.db.session import get_db
from app.schemas.loan import (
    DocumentConfirmRequest,
    DocumentOut,
    DocumentPresignRequest,
    DocumentPresignResponse,
    DocumentVerifyRequest,
    LoanApplicationCreate,
    LoanApplicationListResponse,
    LoanApplicationOut,
    LoanApplicationStatus,
    LoanApplicationStatusChange,
    LoanApplicationSubmit,
    LoanApplicationUpdate,
    StatusHistoryOut,
)
from app.schemas.tasks import NoteCreate, NoteOut
from app.services import documents, loan_applications, tasks

router = APIRouter(prefix="/applications", tags=["applications"])


@router.post(
    "",
    response_model=LoanApplicationOut,
    status_code=201,
    summary="Create a draft loan application",
)
async def create_application(
    payload: LoanApplicationCreate,
    ctx: deps.ActorContext = Depends(deps.get_actor),
    db: AsyncSession = Depends(get_db),
) -> LoanApplicationOut:
    application = await loan_applications.create_draft_application(db, ctx, payload)
    await db.commit()
    return LoanApplicationOut.model_validate(application)


@router.get(
    "",
    response_model=LoanApplicationListResponse,
    summary="List loan applications visible to the caller",
)
async def list_applications(
    ctx: deps.ActorContext = Depends(deps.get_actor),
    db: AsyncSession = Depends(get_db),
    status_filter: LoanApplicationStatus | None = Query(default=None, alias="status"),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
) -> LoanApplicationListResponse:
    items, total = await loan_applications.list_applications(
        db, ctx, limit=limit, offset=offset, status=status_filter
    )
    return LoanApplicationListResponse(
        items=[LoanApplicationOut.model_validate(item) for item in items],
        total=total,
    )


@router.get("/{application_id}", response_model=LoanApplicationOut, summary="Get a loan application")
async def get_application(
    application_id: UUID,
    ctx: deps.ActorContext = Depends(deps.get_actor),
    db: AsyncSession = Depends(get_db),
) -> LoanApplicationOut:
    application = await loan_applications.get_application(db, ctx, application_id)
    return LoanApplicationOut.model_validate(application)


@router.put(
    "/{application_id}",
    response_model=LoanApplicationOut,
    summary="Update a draft or reassign an application",
)
async def update_application(
    application_id: UUID,
    payload: LoanApplicationUpdate,
    ctx: deps.ActorContext = Depends(deps.get_actor),
    db: AsyncSession = Depends(get_db),
) -> LoanApplicationOut:
    application = await loan_applications.update_draft_application(db, ctx, application_id, payload)
    await db.commit()
    return LoanApplicationOut.model_validate(application)


@router.post(
    "/{application_id}/submit",
    response_model=LoanApplicationOut,
    summary="Submit a draft application",
)
async def submit_application(
    application_id: UUID,
    payload: LoanApplicationSubmit | None = None,
    ctx: deps.ActorContext = Depends(deps.get_actor),
    db: AsyncSession = Depends(get_db),
) -> LoanApplicationOut:
    note = payload.note if payload else None
    application = await loan_applications.submit_application(db, ctx, application_id, note)
    await db.commit()
    return LoanApplicationOut.model_validate(application)


@router.post(
    "/{application_id}/status",
    response_model=LoanApplicationOut,
    summary="Move an application to a new status",
)
async def change_status(
    application_id: UUID,
    payload: LoanApplicationStatusChange,
    ctx: deps.ActorContext = Depends(deps.get_actor),
    db: AsyncSession = Depends(get_db),
) -> LoanApplicationOut:
    application = await loan_applications.change_application_status(
        db,
        ctx,
        application_id,
        payload.to_status,
        payload.note,
        expected_version=payload.expected_version,
    )
    await db.commit()
    return LoanApplicationOut.model_validate(application)


@router.get(
    "/{application_id}/history",
    response_model=list[StatusHistoryOut],
    summary="Status history of an application",
)
async def list_history(
    application_id: UUID,
    ctx: deps.ActorContext = Depends(deps.get_actor),
    db: AsyncSession = Depends(get_db),
) -> list[StatusHistoryOut]:
    rows = await loan_applications.list_status_history(db, ctx, application_id)
    return [StatusHistoryOut.model_validate(row) for row in rows]


@router.post(
    "/{application_id}/documents/presign-upload",
    response_model=DocumentPresignResponse,
    summary="Get a signed upload URL for an application document",
)
async def presign_document_upload(
    application_id: UUID,
    payload: DocumentPresignRequest,
    ctx: deps.ActorContext = Depends(deps.get_actor),
    db: AsyncSession = Depends(get_db),
) -> DocumentPresignResponse:
    return await documents.presign_upload(db, ctx, application_id, payload)


@router.post(
    "/{application_id}/documents/confirm",
    response_model=DocumentOut,
    status_code=201,
    summary="Record an uploaded application document",
)
async def confirm_document_upload(
    application_id: UUID,
    payload: DocumentConfirmRequest,
    ctx: deps.ActorContext = Depends(deps.get_actor),
    db: AsyncSession = Depends(get_db),
) -> DocumentOut:
    document = await documents.confirm_upload(db, ctx, application_id, payload)
    await db.commit()
    return DocumentOut.model_validate(document)


@router.get(
    "/{application_id}/documents",
    response_model=list[DocumentOut],
    summary="List application documents",
)
async def list_documents(
    application_id: UUID,
    ctx: deps.ActorContext = Depends(deps.get_actor),
    db: AsyncSession = Depends(get_db),
) -> list[DocumentOut]:
    rows = await documents.list_documents(db, ctx, application_id)
    return [DocumentOut.model_validate(row) for row in rows]


@router.post(
    "/{application_id}/documents/{document_id}/verify",
    response_model=DocumentOut,
    summary="Verify or reject an application document",
)
async def verify_document(
    application_id: UUID,
    document_id: UUID,
    payload: DocumentVerifyRequest,
    ctx: deps.ActorContext = Depends(deps.get_actor),
    db: AsyncSession = Depends(get_db),
) -> DocumentOut:
    document = await documents.verify_document(
        db, ctx, application_id, document_id, payload.status, payload.note
    )
    await db.commit()
    return DocumentOut.model_validate(document)


@router.get(
    "/{application_id}/notes",
    response_model=list[NoteOut],
    summary="List notes on an application",
)
async def list_notes(
    application_id: UUID,
    ctx: deps.ActorContext = Depends(deps.get_actor),
    db: AsyncSession = Depends(get_db),
) -> list[NoteOut]:
    rows = await tasks.list_notes(db, ctx, application_id)
    return [NoteOut.model_validate(row) for row in rows]


@router.post(
    "/{application_id}/notes",
    response_model=NoteOut,
    status_code=201,
    summary="Add a note to an application",
)
async def create_note(
    application_id: UUID,
    payload: NoteCreate,
    ctx: deps.ActorContext = Depends(deps.get_actor),
    db: AsyncSession = Depends(get_db),
) -> NoteOut:
    note = await tasks.create_note(db, ctx, application_id, payload.body)
    await db.commit()
    return NoteOut.model_validate(note)
