from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Iterable
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import Forbidden, InvalidStateTransition, NotFound
from app.core.roles import ASSIGNED_WORKER_ROLES, INTERNAL_ROLES, STAFF_ROLES, RoleName
from app.models.client import Client
from app.models.loan import Loan
from app.models.loan_application import LoanApplication
from app.models.role import Role
from app.models.user_role import UserRole
from app.schemas.loan import LoanApplicationStatus

if TYPE_CHECKING:
    from app.api.deps import ActorContext


S = LoanApplicationStatus

ALLOWED_TRANSITIONS: dict[LoanApplicationStatus, frozenset[LoanApplicationStatus]] = {
    S.DRAFT: frozenset({S.SUBMITTED}),
    S.SUBMITTED: frozenset({S.UNDER_REVIEW, S.INFO_REQUESTED, S.APPROVED, S.REJECTED}),
    S.UNDER_REVIEW: frozenset({S.INFO_REQUESTED, S.APPROVED, S.REJECTED}),
    S.INFO_REQUESTED: frozenset({S.SUBMITTED, S.UNDER_REVIEW}),
    S.APPROVED: frozenset({S.DISBURSED}),
    S.DISBURSED: frozenset({S.IN_REPAYMENT}),
    S.IN_REPAYMENT: frozenset({S.CLOSED}),
    S.REJECTED: frozenset(),
    S.CLOSED: frozenset(),
}

# The only edge a non-staff actor may drive.
SELF_SERVICE_TRANSITION = (S.DRAFT, S.SUBMITTED)


@dataclass(frozen=True, slots=True)
class SecurityProjection:
    """Ownership and assignment fields of an application, nothing else."""

    assigned_to_user_id: UUID | None
    client_owner_user_id: UUID | None


async def resolve_roles(db: AsyncSession, user_id) -> frozenset[RoleName]:
    stmt = (
        select(Role.name)
        .join(UserRole, UserRole.role_id == Role.id)
        .where(UserRole.user_id == user_id)
    )
    result = await db.execute(stmt)
    return RoleName.normalize(name for name in result.scalars().all() if name)


def is_staff(roles: Iterable[RoleName]) -> bool:
    return any(role in STAFF_ROLES for role in roles)


def is_assigned_worker(roles: Iterable[RoleName]) -> bool:
    return any(role in ASSIGNED_WORKER_ROLES for role in roles)


def is_client(roles: Iterable[RoleName]) -> bool:
    return RoleName.CLIENT in set(roles)


def is_internal(roles: Iterable[RoleName]) -> bool:
    return any(role in INTERNAL_ROLES for role in roles)


def can_access(roles: Iterable[RoleName], actor_id, projection: SecurityProjection) -> bool:
    roles = frozenset(roles)
    if is_staff(roles):
        return True
    if actor_id is None:
        return False
    if is_assigned_worker(roles) and projection.assigned_to_user_id == actor_id:
        return True
    if is_client(roles) and projection.client_owner_user_id == actor_id:
        return True
    return False


def is_legal_transition(from_status: LoanApplicationStatus, to_status: LoanApplicationStatus) -> bool:
    from_status = LoanApplicationStatus(from_status)
    to_status = LoanApplicationStatus(to_status)
    if from_status == to_status:
        return True
    return to_status in ALLOWED_TRANSITIONS.get(from_status, frozenset())


def can_mutate_status(
    roles: Iterable[RoleName],
    from_status: LoanApplicationStatus,
    to_status: LoanApplicationStatus,
) -> bool:
    from_status = LoanApplicationStatus(from_status)
    to_status = LoanApplicationStatus(to_status)
    if from_status == to_status:
        return True
    if not is_legal_transition(from_status, to_status):
        return False
    if (from_status, to_status) == SELF_SERVICE_TRANSITION:
        return True
    return is_staff(roles)


def ensure_access(ctx: "ActorContext", projection: SecurityProjection) -> None:
    if not can_access(ctx.roles, ctx.user_id, projection):
        raise Forbidden("You do not have access to this application")


def ensure_staff(ctx: "ActorContext", message: str = "Only Admin or LoanOfficer can perform this action") -> None:
    if not is_staff(ctx.roles):
        raise Forbidden(message)


def ensure_internal(ctx: "ActorContext", message: str = "Only internal users can perform this action") -> None:
    if not is_internal(ctx.roles):
        raise Forbidden(message)


def ensure_transition(
    ctx: "ActorContext",
    from_status: LoanApplicationStatus,
    to_status: LoanApplicationStatus,
) -> None:
    """Raise InvalidStateTransition for an illegal edge, Forbidden for a legal edge the actor may not drive."""
    from_status = LoanApplicationStatus(from_status)
    to_status = LoanApplicationStatus(to_status)
    if not is_legal_transition(from_status, to_status):
        raise InvalidStateTransition(
            f"Invalid status transition: {from_status.value} -> {to_status.value}",
            details={"from_status": from_status.value, "to_status": to_status.value},
        )
    if not can_mutate_status(ctx.roles, from_status, to_status):
        raise Forbidden(
            "Only Admin or LoanOfficer can perform this status change",
            details={"from_status": from_status.value, "to_status": to_status.value},
        )


async def load_application_projection(db: AsyncSession, application_id) -> SecurityProjection:
    stmt = (
        select(LoanApplication.assigned_to_user_id, Client.user_id)
        .join(Client, Client.id == LoanApplication.client_id)
        .where(LoanApplication.id == application_id)
    )
    row = (await db.execute(stmt)).first()
    if row is None:
        raise NotFound("Application not found")
    return SecurityProjection(assigned_to_user_id=row[0], client_owner_user_id=row[1])


async def load_loan_projection(db: AsyncSession, loan_id) -> SecurityProjection:
    stmt = (
        select(LoanApplication.assigned_to_user_id, Client.user_id)
        .select_from(Loan)
        .join(LoanApplication, LoanApplication.id == Loan.application_id)
        .join(Client, Client.id == LoanApplication.client_id)
        .where(Loan.id == loan_id)
    )
    row = (await db.execute(stmt)).first()
    if row is None:
        raise NotFound("Loan not found")
    return SecurityProjection(assigned_to_user_id=row[0], client_owner_user_id=row[1])


async def ensure_application_access(db: AsyncSession, ctx: "ActorContext", application_id) -> SecurityProjection:
    projection = await load_application_projection(db, application_id)
    ensure_access(ctx, projection)
    return projection


async def ensure_loan_access(db: AsyncSession, ctx: "ActorContext", loan_id) -> SecurityProjection:
    projection = await load_loan_projection(db, loan_id)
    ensure_access(ctx, projection)
    return projection
