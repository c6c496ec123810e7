from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api import deps
from app.core.limiter import default_limit, limiter
from app.core.security import (
    INVITE_TOKEN_TYPE,
    access_token_ttl_seconds,
    constant_time_verify,
    create_access_token,
    decode_token,
    get_password_hash,
)
from app.db.session import get_db
from app.models import User
from app.schemas.auth import AcceptInviteRequest, LoginRequest, MeResponse, TokenResponse, UserOut
from app.services import authz
from app.utils.login_security import enforce_login_limits, register_login_attempt

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/login", response_model=TokenResponse)
@limiter.limit(default_limit)
async def login(
    credentials: LoginRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> TokenResponse:
    client_ip = request.client.host if request.client else "unknown"
    email = credentials.email.strip().lower()
    await enforce_login_limits(client_ip, email)

    stmt = select(User).where(func.lower(User.email) == email)
    user = (await db.execute(stmt)).scalar_one_or_none()
    if not constant_time_verify(user.hashed_password if user else None, credentials.password):
        await register_login_attempt(email, success=False)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")
    if not user.is_active:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Inactive user")

    await register_login_attempt(email, success=True)
    access = create_access_token(str(user.id), token_version=user.token_version)
    return TokenResponse(
        access_token=access,
        expires_in=access_token_ttl_seconds(),
    )


@router.post("/accept-invite", response_model=TokenResponse)
@limiter.limit(default_limit)
async def accept_invite(
    payload: AcceptInviteRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> TokenResponse:
    invalid = HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid or expired invite")
    try:
        claims = decode_token(payload.token, expected_type=INVITE_TOKEN_TYPE)
        user_id = UUID(str(claims.get("sub")))
    except ValueError as exc:
        raise invalid from exc

    user = await db.get(User, user_id)
    # Accepting bumps token_version, which also makes the invite single-use.
    if user is None or not user.is_active or claims.get("tv") != user.token_version:
        raise invalid

    user.hashed_password = get_password_hash(payload.password)
    user.token_version += 1
    db.add(user)
    await db.commit()
    return TokenResponse(
        access_token=create_access_token(str(user.id), token_version=user.token_version),
        expires_in=access_token_ttl_seconds(),
    )


@router.post("/logout", status_code=204)
async def logout(
    current_user: User = Depends(deps.get_current_user),
    db: AsyncSession = Depends(get_db),
) -> None:
    current_user.token_version += 1
    db.add(current_user)
    await db.commit()
    return None


@router.get("/me", response_model=MeResponse)
async def read_current_user(
    current_user: User = Depends(deps.get_current_user),
    db: AsyncSession = Depends(get_db),
) -> MeResponse:
    roles = await authz.resolve_roles(db, current_user.id)
    return MeResponse(
        user=UserOut.model_validate(current_user),
        roles=sorted(role.value for role in roles),
    )
