from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api import deps
from app.core.exceptions import NotFound, ValidationError
from app.core.settings import settings
from app.models.application_document import ApplicationDocument
from app.models.document_requirement import DocumentRequirement
from app.schemas.audit import DocumentEvent, DocumentRequirementCreatedEvent
from app.schemas.loan import (
    DocumentConfirmRequest,
    DocumentPresignRequest,
    DocumentPresignResponse,
    DocumentRequirementCreate,
    DocumentStatus,
    LoanApplicationStatus,
)
from app.services import authz
from app.services.audit import record_audit_log
from app.services.storage.adapter import StorageAdapter, get_storage_adapter

logger = logging.getLogger(__name__)

DEFAULT_CONTENT_TYPE = "application/octet-stream"


def application_prefix(application_id) -> str:
    return f"applications/{application_id}/"


def build_storage_path(application_id, file_name: str) -> str:
    safe_name = file_name.strip().replace(" ", "-").replace("/", "-").replace("\\", "-")
    return f"{application_prefix(application_id)}{uuid.uuid4().hex}-{safe_name}"


async def presign_upload(
    db: AsyncSession,
    ctx: deps.ActorContext,
    application_id,
    payload: DocumentPresignRequest,
    *,
    adapter: StorageAdapter | None = None,
) -> DocumentPresignResponse:
    await authz.ensure_application_access(db, ctx, application_id)
    adapter = adapter or get_storage_adapter()
    storage_path = build_storage_path(application_id, payload.file_name)
    expires_in = settings.document_upload_expires_seconds
    signed = adapter.generate_upload_url(
        storage_path, payload.content_type or DEFAULT_CONTENT_TYPE, expires_in
    )
    return DocumentPresignResponse(
        bucket=adapter.bucket or settings.document_bucket,
        storage_path=storage_path,
        upload_url=signed["upload_url"],
        upload_headers=signed.get("headers") or {},
        expires_in_seconds=expires_in,
    )


async def confirm_upload(
    db: AsyncSession,
    ctx: deps.ActorContext,
    application_id,
    payload: DocumentConfirmRequest,
    *,
    adapter: StorageAdapter | None = None,
) -> ApplicationDocument:
    await authz.ensure_application_access(db, ctx, application_id)
    if not payload.storage_path.startswith(application_prefix(application_id)):
        raise ValidationError(
            "Storage path does not belong to this application",
            details={"storage_path": payload.storage_path},
        )
    adapter = adapter or get_storage_adapter()
    if not adapter.object_exists(payload.storage_path):
        raise ValidationError(
            "Uploaded file not found in storage",
            details={"storage_path": payload.storage_path},
        )
    document = ApplicationDocument(
        id=uuid.uuid4(),
        application_id=application_id,
        doc_type=payload.doc_type.strip(),
        storage_path=payload.storage_path,
        status=payload.status,
        uploaded_by=ctx.user_id,
    )
    db.add(document)
    record_audit_log(
        db,
        actor_id=ctx.user_id,
        resource_type="loan_document",
        resource_id=document.id,
        event=DocumentEvent(
            action="loan_document.confirmed",
            application_id=application_id,
            doc_type=document.doc_type,
            storage_path=document.storage_path,
            status=document.status,
        ),
    )
    return document


async def list_documents(db: AsyncSession, ctx: deps.ActorContext, application_id) -> list[ApplicationDocument]:
    await authz.ensure_application_access(db, ctx, application_id)
    stmt = (
        select(ApplicationDocument)
        .where(ApplicationDocument.application_id == application_id)
        .order_by(ApplicationDocument.uploaded_at.desc())
    )
    return (await db.execute(stmt)).scalars().all()


async def verify_document(
    db: AsyncSession,
    ctx: deps.ActorContext,
    application_id,
    document_id,
    status: DocumentStatus,
    note: str | None = None,
) -> ApplicationDocument:
    authz.ensure_staff(ctx, "Only Admin or LoanOfficer can verify documents")
    stmt = select(ApplicationDocument).where(
        ApplicationDocument.id == document_id,
        ApplicationDocument.application_id == application_id,
    )
    document = (await db.execute(stmt)).scalar_one_or_none()
    if document is None:
        raise NotFound("Document not found for application")

    document.status = status
    document.verification_note = note
    document.verified_by = ctx.user_id
    document.verified_at = datetime.now(timezone.utc)
    db.add(document)
    record_audit_log(
        db,
        actor_id=ctx.user_id,
        resource_type="loan_document",
        resource_id=document.id,
        event=DocumentEvent(
            action="loan_document.verified",
            application_id=application_id,
            doc_type=document.doc_type,
            storage_path=document.storage_path,
            status=status,
            note=note,
        ),
    )
    logger.info("Document %s marked %s", document.id, DocumentStatus(status).value)
    return document


async def list_requirements(
    db: AsyncSession,
    ctx: deps.ActorContext,
    *,
    status: LoanApplicationStatus | None = None,
) -> list[DocumentRequirement]:
    stmt = select(DocumentRequirement)
    if status is not None:
        stmt = stmt.where(DocumentRequirement.required_at_status == status)
    stmt = stmt.order_by(DocumentRequirement.required_at_status.asc(), DocumentRequirement.doc_type.asc())
    return (await db.execute(stmt)).scalars().all()


async def create_requirement(
    db: AsyncSession,
    ctx: deps.ActorContext,
    payload: DocumentRequirementCreate,
) -> DocumentRequirement:
    authz.ensure_staff(ctx, "Only Admin or LoanOfficer can manage document requirements")
    stmt = select(DocumentRequirement.id).where(
        DocumentRequirement.required_at_status == payload.required_at_status,
        func.lower(DocumentRequirement.doc_type) == payload.doc_type.lower(),
    )
    if (await db.execute(stmt)).scalar_one_or_none() is not None:
        raise ValidationError(
            "Document requirement already exists",
            details={"required_at_status": payload.required_at_status.value, "doc_type": payload.doc_type},
        )

    requirement = DocumentRequirement(
        id=uuid.uuid4(),
        required_at_status=payload.required_at_status,
        doc_type=payload.doc_type,
        is_required=payload.is_required,
    )
    db.add(requirement)
    record_audit_log(
        db,
        actor_id=ctx.user_id,
        resource_type="document_requirement",
        resource_id=requirement.id,
        event=DocumentRequirementCreatedEvent(
            required_at_status=requirement.required_at_status,
            doc_type=requirement.doc_type,
            is_required=requirement.is_required,
        ),
    )
    return requirement
