import time
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

from app.api import deps
from app.core.exceptions import Forbidden, NotFound, ValidationError
from app.core.roles import RoleName
from app.core.settings import settings
from app.main import app
from app.models.application_document import ApplicationDocument
from app.models.audit_log import AuditLog
from app.models.loan_application import LoanApplication
from app.schemas.loan import DocumentConfirmRequest, DocumentPresignRequest, DocumentStatus
from app.services import documents
from app.services.storage.adapter import LocalFileSystemAdapter, verify_local_url_signature
from conftest import (
    FakeAsyncSession,
    FakeResult,
    entity_handler,
    make_actor,
    projection_result,
)


def _owned_db(owner) -> FakeAsyncSession:
    db = FakeAsyncSession()
    db.on_execute(entity_handler(LoanApplication, projection_result(owner=owner)))
    return db


def test_storage_path_is_scoped_and_sanitized() -> None:
    application_id = uuid4()

    path = documents.build_storage_path(application_id, " bank statement/march.pdf ")

    assert path.startswith(f"applications/{application_id}/")
    assert path.endswith("-bank-statement-march.pdf")
    assert "/" not in path[len(documents.application_prefix(application_id)):]


@pytest.mark.asyncio
async def test_presign_upload_returns_signed_local_url(tmp_path) -> None:
    ctx = make_actor(RoleName.CLIENT)
    application_id = uuid4()
    adapter = LocalFileSystemAdapter(
        str(tmp_path), "http://testserver", bucket="loan-documents", signing_key="signing-key"
    )

    response = await documents.presign_upload(
        _owned_db(ctx.user_id),
        ctx,
        application_id,
        DocumentPresignRequest(doc_type="BankStatement", file_name="march.pdf"),
        adapter=adapter,
    )

    assert response.bucket == "loan-documents"
    assert response.storage_path.startswith(f"applications/{application_id}/")
    assert response.upload_url.startswith("http://testserver/api/v1/documents/local-content?")
    assert response.upload_headers == {"Content-Type": documents.DEFAULT_CONTENT_TYPE}
    assert response.expires_in_seconds > 0


def test_local_url_signature_rejects_tampering_and_expiry() -> None:
    expires = int(time.time()) + 60
    adapter = LocalFileSystemAdapter("/tmp", "http://x", bucket="b", signing_key="secret")
    signed = adapter.generate_upload_url("applications/a/file.pdf", "application/pdf", 60)
    signature = signed["upload_url"].rsplit("signature=", 1)[1]

    assert not verify_local_url_signature("secret", "applications/b/file.pdf", expires, signature)
    assert not verify_local_url_signature("secret", "applications/a/file.pdf", int(time.time()) - 1, "x")


def test_local_adapter_rejects_escaping_keys(tmp_path) -> None:
    adapter = LocalFileSystemAdapter(str(tmp_path), "http://x", bucket="b")

    with pytest.raises(ValueError):
        adapter.resolve_path("../outside.pdf")
    with pytest.raises(ValueError):
        adapter.resolve_path("/etc/passwd")


@pytest.mark.asyncio
async def test_presign_upload_denies_unrelated_client(tmp_path) -> None:
    adapter = LocalFileSystemAdapter(str(tmp_path), "http://x", bucket="b")

    with pytest.raises(Forbidden):
        await documents.presign_upload(
            _owned_db(uuid4()),
            make_actor(RoleName.CLIENT),
            uuid4(),
            DocumentPresignRequest(doc_type="Id", file_name="id.png"),
            adapter=adapter,
        )


@pytest.mark.asyncio
async def test_confirm_upload_records_pending_document(tmp_path) -> None:
    ctx = make_actor(RoleName.CLIENT)
    application_id = uuid4()
    db = _owned_db(ctx.user_id)
    path = f"applications/{application_id}/abc-id.png"
    adapter = LocalFileSystemAdapter(str(tmp_path), "http://x", bucket="b")
    adapter.write_file(path, b"png")

    document = await documents.confirm_upload(
        db, ctx, application_id, DocumentConfirmRequest(doc_type=" Id ", storage_path=path), adapter=adapter
    )

    assert document.doc_type == "Id"
    assert document.status == DocumentStatus.PENDING
    assert document.uploaded_by == ctx.user_id
    assert db.added_of(AuditLog)[0].action == "loan_document.confirmed"


@pytest.mark.asyncio
async def test_confirm_upload_rejects_path_of_another_application() -> None:
    ctx = make_actor(RoleName.CLIENT)
    db = _owned_db(ctx.user_id)

    with pytest.raises(ValidationError):
        await documents.confirm_upload(
            db,
            ctx,
            uuid4(),
            DocumentConfirmRequest(doc_type="Id", storage_path=f"applications/{uuid4()}/x.png"),
        )
    assert db.added == []


@pytest.mark.asyncio
async def test_verify_document_requires_staff(client_ctx, fake_db) -> None:
    with pytest.raises(Forbidden):
        await documents.verify_document(fake_db, client_ctx, uuid4(), uuid4(), DocumentStatus.VERIFIED)


@pytest.mark.asyncio
async def test_verify_document_stamps_reviewer(officer_ctx) -> None:
    application_id = uuid4()
    document = ApplicationDocument(
        id=uuid4(),
        application_id=application_id,
        doc_type="Id",
        storage_path=f"applications/{application_id}/x.png",
        status=DocumentStatus.PENDING,
    )
    db = FakeAsyncSession()
    db.on_execute(entity_handler(ApplicationDocument, FakeResult(scalar=document)))

    result = await documents.verify_document(
        db, officer_ctx, application_id, document.id, DocumentStatus.REJECTED, "Blurry scan"
    )

    assert result.status == DocumentStatus.REJECTED
    assert result.verification_note == "Blurry scan"
    assert result.verified_by == officer_ctx.user_id
    assert result.verified_at is not None
    assert db.added_of(AuditLog)[0].action == "loan_document.verified"


@pytest.mark.asyncio
async def test_verify_unknown_document_is_not_found(admin_ctx, fake_db) -> None:
    with pytest.raises(NotFound):
        await documents.verify_document(fake_db, admin_ctx, uuid4(), uuid4(), DocumentStatus.VERIFIED)


@pytest.fixture
def upload_client(monkeypatch, tmp_path):
    monkeypatch.setattr(settings, "storage_provider", "local")
    monkeypatch.setattr(settings, "local_upload_dir", str(tmp_path))

    async def _current_user():
        return object()

    app.dependency_overrides[deps.get_current_user] = _current_user
    yield TestClient(app)
    app.dependency_overrides.clear()


def _signed_upload_url(key: str) -> str:
    adapter = LocalFileSystemAdapter("/tmp", "", bucket=settings.document_bucket, signing_key=settings.secret_key)
    return adapter.generate_upload_url(key, "application/pdf", 300)["upload_url"]


def test_local_content_upload_writes_file(upload_client, tmp_path) -> None:
    key = f"applications/{uuid4()}/abc-statement.pdf"

    response = upload_client.put(_signed_upload_url(key), content=b"%PDF-1.7")

    assert response.status_code == 200
    assert (tmp_path / settings.document_bucket / key).read_bytes() == b"%PDF-1.7"


def test_local_content_upload_rejects_bad_signature(upload_client) -> None:
    url = _signed_upload_url(f"applications/{uuid4()}/x.pdf").replace("signature=", "signature=0")

    response = upload_client.put(url, content=b"data")

    assert response.status_code == 403


@pytest.mark.asyncio
async def test_confirm_upload_requires_the_object_in_storage(tmp_path) -> None:
    ctx = make_actor(RoleName.CLIENT)
    application_id = uuid4()
    db = _owned_db(ctx.user_id)
    adapter = LocalFileSystemAdapter(str(tmp_path), "http://x", bucket="b")

    with pytest.raises(ValidationError, match="not found in storage"):
        await documents.confirm_upload(
            db,
            ctx,
            application_id,
            DocumentConfirmRequest(doc_type="Id", storage_path=f"applications/{application_id}/missing.png"),
            adapter=adapter,
        )
    assert db.added == []
