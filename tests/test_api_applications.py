from uuid import uuid4

from app.core.roles import RoleName
from app.models.client import Client
from app.models.loan_application import LoanApplication
from app.schemas.loan import LoanApplicationStatus as S
from conftest import (
    FakeResult,
    entity_handler,
    make_actor,
    make_application,
    make_client,
    projection_result,
)


def test_create_application_returns_created_envelope(api_client, fake_db) -> None:
    ctx = make_actor(RoleName.CLIENT)
    fake_db.on_execute(entity_handler(Client, FakeResult(scalar=make_client(user_id=ctx.user_id))))

    response = api_client(ctx).post(
        "/api/v1/applications",
        json={"requested_amount": "5000.00", "term_months": 6, "purpose": "Inventory"},
    )

    assert response.status_code == 201
    body = response.json()
    assert body["code"] == "created"
    assert body["details"] == {}
    assert body["data"]["status"] == "Draft"
    assert body["data"]["term_months"] == 6
    assert fake_db.committed is True


def test_create_application_rejects_non_positive_amount(api_client, fake_db) -> None:
    response = api_client(make_actor(RoleName.CLIENT)).post(
        "/api/v1/applications",
        json={"requested_amount": "0", "term_months": 6, "purpose": "Inventory"},
    )

    assert response.status_code == 422
    assert response.json()["code"] == "validation_error"
    assert fake_db.committed is False


def test_illegal_status_change_is_conflict(api_client, fake_db) -> None:
    ctx = make_actor(RoleName.LOAN_OFFICER)
    application = make_application(status=S.DRAFT)
    fake_db.on_get(LoanApplication, application.id, application)
    fake_db.on_execute(entity_handler(LoanApplication, projection_result()))

    response = api_client(ctx).post(
        f"/api/v1/applications/{application.id}/status",
        json={"to_status": "Approved"},
    )

    assert response.status_code == 409
    body = response.json()
    assert body["code"] == "invalid_state_transition"
    assert body["data"] is None
    assert body["details"] == {"from_status": "Draft", "to_status": "Approved"}
    assert application.status == S.DRAFT


def test_status_change_back_to_draft_is_unprocessable(api_client) -> None:
    response = api_client(make_actor(RoleName.ADMIN)).post(
        f"/api/v1/applications/{uuid4()}/status",
        json={"to_status": "Draft"},
    )

    assert response.status_code == 422


def test_client_cannot_read_someone_elses_application(api_client, fake_db) -> None:
    application = make_application()
    fake_db.on_get(LoanApplication, application.id, application)
    fake_db.on_execute(entity_handler(LoanApplication, projection_result(owner=uuid4())))

    response = api_client(make_actor(RoleName.CLIENT)).get(f"/api/v1/applications/{application.id}")

    assert response.status_code == 403
    assert response.json()["code"] == "forbidden"


def test_unknown_application_is_not_found(api_client) -> None:
    response = api_client(make_actor(RoleName.ADMIN)).get(f"/api/v1/applications/{uuid4()}")

    assert response.status_code == 404
    assert response.json()["code"] == "not_found"


def test_reports_are_forbidden_for_clients(api_client) -> None:
    response = api_client(make_actor(RoleName.CLIENT)).get("/api/v1/reports/portfolio")

    assert response.status_code == 403
