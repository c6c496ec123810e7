from uuid import uuid4

import pytest

from app.core.exceptions import Forbidden, ValidationError
from app.core.roles import RoleName
from app.models.audit_log import AuditLog
from app.models.document_requirement import DocumentRequirement
from app.schemas.loan import DocumentRequirementCreate, LoanApplicationStatus as S
from app.services import documents
from conftest import FakeResult, entity_handler, make_actor


def _requirement(status: S, doc_type: str) -> DocumentRequirement:
    return DocumentRequirement(id=uuid4(), required_at_status=status, doc_type=doc_type, is_required=True)


@pytest.mark.asyncio
async def test_create_requirement_records_audit(fake_db, officer_ctx) -> None:
    payload = DocumentRequirementCreate(required_at_status=S.SUBMITTED, doc_type=" Bank statement ")

    requirement = await documents.create_requirement(fake_db, officer_ctx, payload)

    assert requirement.doc_type == "Bank statement"
    assert requirement.required_at_status == S.SUBMITTED
    assert requirement.is_required is True
    assert fake_db.added_of(DocumentRequirement) == [requirement]
    [entry] = fake_db.added_of(AuditLog)
    assert entry.action == "document_requirement.created"
    assert entry.new_value["doc_type"] == "Bank statement"


@pytest.mark.asyncio
@pytest.mark.parametrize("role", [RoleName.CLIENT, RoleName.INTERN, RoleName.ORIGINATOR])
async def test_create_requirement_is_staff_only(fake_db, role) -> None:
    payload = DocumentRequirementCreate(required_at_status=S.SUBMITTED, doc_type="Bank statement")

    with pytest.raises(Forbidden):
        await documents.create_requirement(fake_db, make_actor(role), payload)
    assert fake_db.added == []


@pytest.mark.asyncio
async def test_duplicate_requirement_is_rejected(fake_db, admin_ctx) -> None:
    fake_db.on_execute(entity_handler(DocumentRequirement, FakeResult(scalar=uuid4())))
    payload = DocumentRequirementCreate(required_at_status=S.APPROVED, doc_type="ID document")

    with pytest.raises(ValidationError):
        await documents.create_requirement(fake_db, admin_ctx, payload)
    assert fake_db.added == []


@pytest.mark.asyncio
async def test_list_requirements_filters_by_status(fake_db, client_ctx) -> None:
    rows = [_requirement(S.SUBMITTED, "Bank statement")]
    fake_db.on_execute(entity_handler(DocumentRequirement, FakeResult(items=rows)))

    result = await documents.list_requirements(fake_db, client_ctx, status=S.SUBMITTED)

    assert result == rows
    sql = str(fake_db.executed[0])
    assert "document_requirements.required_at_status = " in sql
    assert "ORDER BY document_requirements.required_at_status ASC, document_requirements.doc_type ASC" in sql


def test_requirement_endpoints(api_client, fake_db) -> None:
    rows = [_requirement(S.SUBMITTED, "Bank statement")]
    fake_db.on_execute(entity_handler(DocumentRequirement, FakeResult(items=rows)))

    listed = api_client(make_actor(RoleName.CLIENT)).get("/api/v1/document-requirements")

    assert listed.status_code == 200
    assert [item["doc_type"] for item in listed.json()["data"]] == ["Bank statement"]

    forbidden = api_client(make_actor(RoleName.CLIENT)).post(
        "/api/v1/document-requirements",
        json={"required_at_status": "Submitted", "doc_type": "Tax return"},
    )

    assert forbidden.status_code == 403
    assert fake_db.committed is False


def test_requirement_create_endpoint(api_client, fake_db) -> None:
    response = api_client(make_actor(RoleName.ADMIN)).post(
        "/api/v1/document-requirements",
        json={"required_at_status": "UnderReview", "doc_type": "Tax return", "is_required": False},
    )

    assert response.status_code == 201
    data = response.json()["data"]
    assert data["required_at_status"] == "UnderReview"
    assert data["is_required"] is False
    assert fake_db.committed is True
