from __future__ import annotations

import logging
import secrets
import uuid

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api import deps
from app.core.exceptions import NotFound, ValidationError
from app.core.roles import RoleName
from app.core.security import create_invite_token, get_password_hash, invite_token_ttl_seconds
from app.models.client import Client
from app.models.role import Role
from app.models.user import User
from app.models.user_role import UserRole
from app.schemas.audit import ClientEvent
from app.schemas.clients import AssistedClientCreate, ClientInviteOut, ClientInviteRequest
from app.services import authz
from app.services.audit import record_audit_log

logger = logging.getLogger(__name__)

INVITE_CREATED = "InviteCreated"
EXISTING_USER_LINKED = "ExistingUserLinked"


async def _client_role(db: AsyncSession) -> Role:
    stmt = select(Role).where(Role.name == RoleName.CLIENT.value)
    role = (await db.execute(stmt)).scalar_one_or_none()
    if role is None:
        raise ValidationError("Client role is not configured")
    return role


async def _prepare_invited_user(
    db: AsyncSession,
    email: str,
    full_name: str | None,
) -> ClientInviteOut:
    """Find or create the applicant's account and make sure it holds the Client role.

    A password setup token is only issued for accounts created here, so an invite
    can never be used to take over an existing login.
    """
    email = email.strip().lower()
    stmt = select(User).where(func.lower(User.email) == email)
    user = (await db.execute(stmt)).scalar_one_or_none()

    if user is not None:
        roles = await authz.resolve_roles(db, user.id)
        if RoleName.CLIENT not in roles:
            role = await _client_role(db)
            db.add(UserRole(user_id=user.id, role_id=role.id))
        return ClientInviteOut(user_id=user.id, email=user.email, status=EXISTING_USER_LINKED)

    role = await _client_role(db)
    user = User(
        id=uuid.uuid4(),
        email=email,
        full_name=full_name or email,
        # Unusable until the invite is accepted.
        hashed_password=get_password_hash(secrets.token_urlsafe(32)),
        is_active=True,
        token_version=0,
    )
    db.add(user)
    db.add(UserRole(user_id=user.id, role_id=role.id))
    logger.info("Created invited client user %s", user.id)
    return ClientInviteOut(
        user_id=user.id,
        email=user.email,
        status=INVITE_CREATED,
        invite_token=create_invite_token(str(user.id), token_version=0),
        expires_in=invite_token_ttl_seconds(),
    )


async def create_assisted_client(
    db: AsyncSession,
    ctx: deps.ActorContext,
    payload: AssistedClientCreate,
) -> tuple[Client, ClientInviteOut | None]:
    """Register a business on the applicant's behalf, optionally inviting its owner."""
    authz.ensure_internal(ctx, "Only internal users can perform assisted onboarding")

    invite = None
    if payload.send_invite:
        invite = await _prepare_invited_user(db, payload.applicant_email, payload.applicant_full_name)

    client = Client(
        id=uuid.uuid4(),
        user_id=invite.user_id if invite else None,
        business_name=payload.business_name,
        registration_no=payload.registration_no,
        address=payload.address,
    )
    db.add(client)
    record_audit_log(
        db,
        actor_id=ctx.user_id,
        resource_type="client",
        resource_id=client.id,
        event=ClientEvent(
            action="client.created",
            business_name=client.business_name,
            owner_user_id=client.user_id,
            applicant_email=payload.applicant_email,
            invite_status=invite.status if invite else None,
        ),
    )
    logger.info("Assisted client %s created by %s", client.id, ctx.user_id)
    return client, invite


async def send_client_invite(
    db: AsyncSession,
    ctx: deps.ActorContext,
    client_id,
    payload: ClientInviteRequest,
) -> ClientInviteOut:
    authz.ensure_internal(ctx, "Only internal users can perform assisted onboarding")
    client = await db.get(Client, client_id)
    if client is None:
        raise NotFound("Client not found")

    invite = await _prepare_invited_user(db, payload.applicant_email, payload.applicant_full_name)
    if client.user_id is not None and client.user_id != invite.user_id:
        logger.warning("Client %s owner changed from %s to %s", client.id, client.user_id, invite.user_id)
    client.user_id = invite.user_id
    db.add(client)
    record_audit_log(
        db,
        actor_id=ctx.user_id,
        resource_type="client",
        resource_id=client.id,
        event=ClientEvent(
            action="client.invite_sent",
            business_name=client.business_name,
            owner_user_id=invite.user_id,
            applicant_email=invite.email,
            invite_status=invite.status,
        ),
    )
    return invite


async def get_client(db: AsyncSession, ctx: deps.ActorContext, client_id) -> Client:
    client = await db.get(Client, client_id)
    if client is None:
        raise NotFound("Client not found")
    if not authz.is_internal(ctx.roles) and client.user_id != ctx.user_id:
        raise NotFound("Client not found")
    return client
