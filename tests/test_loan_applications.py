from datetime import date, timedelta
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy.dialects import postgresql
from sqlalchemy.sql.dml import Insert

from app.core.exceptions import (
    ConcurrencyConflict,
    Forbidden,
    InvalidStateTransition,
    NotFound,
    ValidationError,
)
from app.core.roles import RoleName
from app.core.settings import settings
from app.models.application_status_history import ApplicationStatusHistory
from app.models.audit_log import AuditLog
from app.models.client import Client
from app.models.loan_application import LoanApplication
from app.models.note import Note
from app.models.notification import Notification
from app.models.task import Task
from app.schemas.loan import LoanApplicationCreate, LoanApplicationStatus as S, LoanApplicationUpdate
from app.schemas.tasks import TaskStatus
from app.services import loan_applications
from conftest import (
    FakeAsyncSession,
    FakeResult,
    entity_handler,
    insert_handler,
    make_actor,
    make_application,
    make_client,
    projection_result,
)


def _app_db(application, *, owner=None, assigned_to=None) -> FakeAsyncSession:
    db = FakeAsyncSession()
    db.on_execute(entity_handler(LoanApplication, projection_result(assigned_to=assigned_to, owner=owner)))
    db.on_get(LoanApplication, application.id, application)
    return db


def _create_payload(**overrides) -> LoanApplicationCreate:
    data = dict(requested_amount=Decimal("12000"), term_months=12, purpose="Working capital")
    data.update(overrides)
    return LoanApplicationCreate(**data)


# ---------------------------------------------------------------------------
# Draft creation
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_client_without_profile_gets_one_from_business_info(client_ctx) -> None:
    db = FakeAsyncSession()
    application = await loan_applications.create_draft_application(
        db, client_ctx, _create_payload(business_name="Acme Bakery", registration_no="R-77")
    )

    clients = db.added_of(Client)
    assert len(clients) == 1
    assert clients[0].user_id == client_ctx.user_id
    assert clients[0].business_name == "Acme Bakery"
    assert application.client_id == clients[0].id
    assert application.status == S.DRAFT
    assert application.version == 1
    assert application.created_by_user_id == client_ctx.user_id

    history = db.added_of(ApplicationStatusHistory)
    assert [(row.from_status, row.to_status) for row in history] == [(None, S.DRAFT)]
    assert [entry.action for entry in db.added_of(AuditLog)] == ["loan_application.created"]


@pytest.mark.asyncio
async def test_client_reuses_oldest_profile_for_foreign_client_id(client_ctx) -> None:
    own = make_client(user_id=client_ctx.user_id)
    foreign = make_client(user_id=uuid4())
    db = FakeAsyncSession()
    db.on_get(Client, foreign.id, foreign)
    db.on_execute(entity_handler(Client, FakeResult(scalar=own)))

    application = await loan_applications.create_draft_application(
        db, client_ctx, _create_payload(client_id=foreign.id)
    )

    assert application.client_id == own.id
    assert db.added_of(Client) == []


@pytest.mark.asyncio
async def test_client_without_profile_or_business_info_rejected(client_ctx) -> None:
    with pytest.raises(ValidationError):
        await loan_applications.create_draft_application(FakeAsyncSession(), client_ctx, _create_payload())


@pytest.mark.asyncio
async def test_originator_must_assign_to_self(originator_ctx) -> None:
    client = make_client()
    db = FakeAsyncSession().on_get(Client, client.id, client)
    with pytest.raises(Forbidden):
        await loan_applications.create_draft_application(
            db, originator_ctx, _create_payload(client_id=client.id, assigned_to_user_id=uuid4())
        )

    application = await loan_applications.create_draft_application(
        db,
        originator_ctx,
        _create_payload(client_id=client.id, assigned_to_user_id=originator_ctx.user_id),
    )
    assert application.assigned_to_user_id == originator_ctx.user_id


@pytest.mark.asyncio
async def test_staff_needs_existing_client(officer_ctx) -> None:
    with pytest.raises(ValidationError):
        await loan_applications.create_draft_application(FakeAsyncSession(), officer_ctx, _create_payload())
    with pytest.raises(NotFound):
        await loan_applications.create_draft_application(
            FakeAsyncSession(), officer_ctx, _create_payload(client_id=uuid4())
        )


@pytest.mark.asyncio
async def test_actor_without_roles_cannot_create() -> None:
    with pytest.raises(Forbidden):
        await loan_applications.create_draft_application(FakeAsyncSession(), make_actor(), _create_payload())


# ---------------------------------------------------------------------------
# Draft update and reassignment
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_update_draft_overwrites_fields(client_ctx) -> None:
    application = make_application()
    db = _app_db(application, owner=client_ctx.user_id)
    payload = LoanApplicationUpdate(requested_amount=Decimal("5000"), term_months=6, purpose="Stock")

    await loan_applications.update_draft_application(db, client_ctx, application.id, payload)

    assert application.requested_amount == Decimal("5000")
    assert application.term_months == 6
    assert application.purpose == "Stock"
    audit = db.added_of(AuditLog)
    assert audit[0].action == "loan_application.updated"
    assert audit[0].changes["requested_amount"] == {"from": "12000.00", "to": "5000"}


@pytest.mark.asyncio
async def test_non_draft_update_is_staff_reassignment_only(client_ctx, officer_ctx) -> None:
    application = make_application(status=S.UNDER_REVIEW)
    payload = LoanApplicationUpdate(
        requested_amount=Decimal("1"), term_months=1, purpose="Changed", assigned_to_user_id=uuid4()
    )

    with pytest.raises(InvalidStateTransition):
        await loan_applications.update_draft_application(
            _app_db(application, owner=client_ctx.user_id), client_ctx, application.id, payload
        )

    db = _app_db(application)
    await loan_applications.update_draft_application(db, officer_ctx, application.id, payload)
    assert application.assigned_to_user_id == payload.assigned_to_user_id
    assert application.requested_amount == Decimal("12000.00")
    assert application.purpose == "Working capital"
    assert db.added_of(AuditLog)[0].action == "loan_application.reassigned"


# ---------------------------------------------------------------------------
# Status changes
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_client_submits_own_draft(client_ctx) -> None:
    worker_id = uuid4()
    application = make_application(assigned_to_user_id=worker_id)
    db = _app_db(application, owner=client_ctx.user_id, assigned_to=worker_id)

    await loan_applications.submit_application(db, client_ctx, application.id, note="Ready")

    assert application.status == S.SUBMITTED
    assert application.submitted_at is not None
    history = db.added_of(ApplicationStatusHistory)
    assert [(row.from_status, row.to_status, row.note) for row in history] == [(S.DRAFT, S.SUBMITTED, "Ready")]
    assert db.added_of(AuditLog)[0].action == "loan_application.submitted"
    notifications = db.added_of(Notification)
    assert [item.user_id for item in notifications] == [worker_id]
    assert notifications[0].type == "ApplicationStatusChanged"
    assert notifications[0].typed_payload.status == S.SUBMITTED


@pytest.mark.asyncio
async def test_submit_twice_rejected(client_ctx) -> None:
    application = make_application(status=S.SUBMITTED)
    with pytest.raises(InvalidStateTransition):
        await loan_applications.submit_application(
            _app_db(application, owner=client_ctx.user_id), client_ctx, application.id
        )


@pytest.mark.asyncio
async def test_self_transition_changes_nothing(officer_ctx) -> None:
    application = make_application(status=S.SUBMITTED)
    db = _app_db(application)

    result = await loan_applications.change_application_status(db, officer_ctx, application.id, S.SUBMITTED)

    assert result is application
    assert application.status == S.SUBMITTED
    assert db.added == []


@pytest.mark.asyncio
async def test_illegal_edge_rejected_even_for_staff(admin_ctx) -> None:
    application = make_application(status=S.INFO_REQUESTED)
    db = _app_db(application)
    with pytest.raises(InvalidStateTransition):
        await loan_applications.change_application_status(db, admin_ctx, application.id, S.DISBURSED)
    assert application.status == S.INFO_REQUESTED
    assert db.added == []


@pytest.mark.asyncio
async def test_client_cannot_touch_foreign_application(client_ctx) -> None:
    application = make_application(status=S.DRAFT)
    db = _app_db(application, owner=uuid4())
    with pytest.raises(Forbidden):
        await loan_applications.change_application_status(db, client_ctx, application.id, S.SUBMITTED)
    with pytest.raises(Forbidden):
        await loan_applications.get_application(db, client_ctx, application.id)


@pytest.mark.asyncio
async def test_client_cannot_drive_review_edges(client_ctx) -> None:
    application = make_application(status=S.INFO_REQUESTED)
    db = _app_db(application, owner=client_ctx.user_id)
    with pytest.raises(Forbidden):
        await loan_applications.change_application_status(db, client_ctx, application.id, S.SUBMITTED)


@pytest.mark.asyncio
async def test_stale_expected_version_conflicts(officer_ctx) -> None:
    application = make_application(status=S.SUBMITTED, version=3)
    with pytest.raises(ConcurrencyConflict):
        await loan_applications.change_application_status(
            _app_db(application), officer_ctx, application.id, S.UNDER_REVIEW, expected_version=2
        )


@pytest.mark.asyncio
async def test_info_request_creates_task_and_note(officer_ctx) -> None:
    owner_id = uuid4()
    application = make_application(status=S.UNDER_REVIEW)
    db = _app_db(application, owner=owner_id)

    await loan_applications.change_application_status(
        db, officer_ctx, application.id, S.INFO_REQUESTED, "Bank statements"
    )

    assert application.status == S.INFO_REQUESTED
    tasks = db.added_of(Task)
    assert len(tasks) == 1
    assert tasks[0].title == "Info requested from applicant: Bank statements"
    assert tasks[0].assigned_to == owner_id
    assert tasks[0].status == TaskStatus.OPEN
    assert tasks[0].due_date == date.today() + timedelta(days=settings.info_request_due_days)
    notes = db.added_of(Note)
    assert len(notes) == 1
    assert notes[0].body.startswith(loan_applications.INFO_REQUEST_NOTE)
    assert notes[0].body.endswith("Note: Bank statements")
    assert [item.user_id for item in db.added_of(Notification)] == [owner_id]


@pytest.mark.asyncio
async def test_approval_provisions_loan(officer_ctx) -> None:
    application = make_application(status=S.UNDER_REVIEW, requested_amount=Decimal("12000.00"), term_months=12)
    db = _app_db(application, owner=uuid4())
    loan_id = uuid4()
    db.on_execute(insert_handler("loans", FakeResult(scalar=loan_id)))

    await loan_applications.change_application_status(db, officer_ctx, application.id, S.APPROVED)

    inserts = [stmt for stmt in db.executed if isinstance(stmt, Insert)]
    assert len(inserts) == 1
    compiled = inserts[0].compile(dialect=postgresql.dialect())
    assert "ON CONFLICT (application_id) DO NOTHING" in str(compiled)
    params = compiled.params
    assert params["application_id"] == application.id
    assert params["principal_amount"] == Decimal("12000.00")
    assert params["outstanding_principal"] == Decimal("12000.00")
    assert params["term_months"] == 12
    assert params["status"] == "PendingDisbursement"

    audit = db.added_of(AuditLog)
    assert audit[0].new_value["loan_id"] == str(loan_id)
    assert audit[0].new_value["to_status"] == "Approved"


@pytest.mark.asyncio
async def test_repeated_approval_does_not_duplicate_loan(officer_ctx) -> None:
    application = make_application(status=S.SUBMITTED)
    db = _app_db(application)
    db.on_execute(insert_handler("loans", FakeResult()))

    await loan_applications.change_application_status(db, officer_ctx, application.id, S.APPROVED)

    assert application.status == S.APPROVED
    assert db.added_of(AuditLog)[0].new_value["loan_id"] is None


@pytest.mark.asyncio
async def test_list_without_roles_is_empty() -> None:
    db = FakeAsyncSession()
    items, total = await loan_applications.list_applications(db, make_actor())
    assert (items, total) == ([], 0)
    assert db.executed == []


@pytest.mark.asyncio
async def test_list_scopes_clients_to_their_own_applications() -> None:
    ctx = make_actor(RoleName.CLIENT)
    owned = make_application()
    db = FakeAsyncSession()
    db.on_execute(lambda stmt: FakeResult(scalar=1) if "count" in str(stmt).lower() else None)
    db.on_execute(entity_handler(LoanApplication, FakeResult(items=[owned])))

    items, total = await loan_applications.list_applications(db, ctx)

    assert items == [owned]
    assert total == 1
    assert all("clients.user_id" in str(stmt) for stmt in db.executed)
