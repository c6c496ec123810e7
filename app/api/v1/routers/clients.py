from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.api import deps
from app.db.session import get_db
from app.schemas.clients import (
    AssistedClientCreate,
    AssistedClientOut,
    ClientInviteOut,
    ClientInviteRequest,
    ClientOut,
)
from app.services import clients

router = APIRouter(prefix="/clients", tags=["clients"])


@router.post(
    "/assisted",
    response_model=AssistedClientOut,
    status_code=201,
    summary="Register a client business on the applicant's behalf",
)
async def create_assisted_client(
    payload: AssistedClientCreate,
    ctx: deps.ActorContext = Depends(deps.get_actor),
    db: AsyncSession = Depends(get_db),
) -> AssistedClientOut:
    client, invite = await clients.create_assisted_client(db, ctx, payload)
    await db.commit()
    return AssistedClientOut(client=ClientOut.model_validate(client), invite=invite)


@router.post("/{client_id}/invite", response_model=ClientInviteOut, summary="Invite the client's owner")
async def invite_client_owner(
    client_id: UUID,
    payload: ClientInviteRequest,
    ctx: deps.ActorContext = Depends(deps.get_actor),
    db: AsyncSession = Depends(get_db),
) -> ClientInviteOut:
    invite = await clients.send_client_invite(db, ctx, client_id, payload)
    await db.commit()
    return invite


@router.get("/{client_id}", response_model=ClientOut, summary="Get a client profile")
async def get_client(
    client_id: UUID,
    ctx: deps.ActorContext = Depends(deps.get_actor),
    db: AsyncSession = Depends(get_db),
) -> ClientOut:
    return ClientOut.model_validate(await clients.get_client(db, ctx, client_id))
