"""
Authentication and user management endpoints.

Public endpoints:
    POST /api/auth/register           — create a ``user`` account and return a JWT
    POST /api/auth/login              — email/password login

Protected endpoints:
    GET  /api/auth/me                 — current user info
    POST /api/auth/logout             — clear the session and record the event
    GET  /api/auth/users              — list all users (admin)
    PATCH /api/auth/users/{id}/role   — change user role (admin)
    PATCH /api/auth/users/{id}/status — activate or deactivate a user (admin)
"""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from models import User
from auth.jwt_service import create_access_token, token_lifetime
from auth.dependencies import get_current_user, require_admin
from auth.passwords import hash_password, verify_password
from auth.permissions import Role
from schemas import (
    LoginRequest,
    RegisterRequest,
    RoleUpdateRequest,
    StatusUpdateRequest,
    TokenResponse,
    UserResponse,
)
from services.session_tracker import session_tracker
from utils.audit import audit

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/auth", tags=["auth"])


def _token_response(user: User) -> TokenResponse:
    return TokenResponse(
        access_token=create_access_token(user_id=user.id, role=user.role),
        expires_in=int(token_lifetime().total_seconds()),
        user_id=user.id,
        name=user.name,
        email=user.email,
        role=user.role,
    )


# ── Public endpoints ───────────────────────────────────────────────────


@router.post("/register", response_model=TokenResponse, status_code=201)
async def register(
    body: RegisterRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
):
    """Register a new account.  Self-registered accounts always get the ``user`` role."""
    existing = await db.execute(select(User.id).where(User.email == body.email))
    if existing.scalar_one_or_none() is not None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="User with this email already exists",
        )

    user = User(
        name=body.name.strip(),
        email=body.email,
        password_hash=hash_password(body.password),
        role=Role.USER.value,
        is_active=True,
        last_login_at=datetime.now(timezone.utc),
    )
    db.add(user)
    try:
        await db.commit()
    except IntegrityError:
        # Lost a race with a concurrent registration for the same email
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="User with this email already exists",
        )
    await db.refresh(user)

    session_tracker.clear(request.session)

    logger.info(f"New user registered: {user.email}", extra={"user_id": user.id})
    audit.log(
        action="REGISTER",
        actor=f"user:{user.id}",
        resource="User",
        resource_id=str(user.id),
        status="success",
        details={"email": user.email},
    )

    return _token_response(user)


@router.post("/login", response_model=TokenResponse)
async def login(
    body: LoginRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
):
    """Authenticate with email and password."""
    result = await db.execute(
        select(User).where(User.email == body.email.strip().lower())
    )
    user = result.scalar_one_or_none()

    if (
        not user
        or not user.password_hash
        or not verify_password(body.password, user.password_hash)
    ):
        audit.log(
            action="LOGIN",
            actor=body.email,
            resource="User",
            resource_id=str(user.id) if user else "unknown",
            status="failure",
        )
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
        )

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Account is disabled",
        )

    user.last_login_at = datetime.now(timezone.utc)
    await db.commit()
    await db.refresh(user)

    # A fresh login never inherits another account's device connection
    session_tracker.clear(request.session)

    audit.log(
        action="LOGIN",
        actor=f"user:{user.id}",
        resource="User",
        resource_id=str(user.id),
        status="success",
    )

    return _token_response(user)


# ── Protected endpoints ────────────────────────────────────────────────


@router.get("/me", response_model=UserResponse)
async def get_me(user: User = Depends(get_current_user)):
    """Get the authenticated user's profile."""
    return UserResponse.model_validate(user)


@router.post("/logout")
async def logout(request: Request, user: User = Depends(get_current_user)):
    """
    Logout endpoint.  Drops any device connection held in the session.

    Note: JWTs are stateless and cannot be invalidated server-side without
    a token blacklist.  The frontend should discard the token on logout.
    """
    previous = session_tracker.clear(request.session)
    request.session.clear()

    audit.log(
        action="LOGOUT",
        actor=f"user:{user.id}",
        resource="User",
        resource_id=str(user.id),
        status="success",
        details={"dropped_device_id": previous.device_id} if previous else {},
    )
    return {"status": "ok", "message": "Logged out"}


@router.get("/users", response_model=list[UserResponse])
async def list_users(
    user: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """List all users (admin only)."""
    result = await db.execute(select(User).order_by(User.created_at.desc()))
    return [UserResponse.model_validate(u) for u in result.scalars().all()]


async def _get_user_or_404(db: AsyncSession, user_id: int) -> User:
    result = await db.execute(select(User).where(User.id == user_id))
    target_user = result.scalar_one_or_none()
    if not target_user:
        raise HTTPException(status_code=404, detail="User not found")
    return target_user


@router.patch("/users/{user_id}/role", response_model=UserResponse)
async def update_user_role(
    user_id: int,
    body: RoleUpdateRequest,
    current_user: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Change a user's role (admin only).  Takes effect on the user's next request."""
    target_user = await _get_user_or_404(db, user_id)

    old_role = target_user.role
    target_user.role = body.role
    await db.commit()
    await db.refresh(target_user)

    audit.log(
        action="UPDATE_ROLE",
        actor=f"user:{current_user.id}",
        resource="User",
        resource_id=str(target_user.id),
        status="success",
        details={"old_role": old_role, "new_role": body.role},
    )

    return UserResponse.model_validate(target_user)


@router.patch("/users/{user_id}/status", response_model=UserResponse)
async def update_user_status(
    user_id: int,
    body: StatusUpdateRequest,
    current_user: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Activate or deactivate a user (admin only).  Admins cannot deactivate themselves."""
    if user_id == current_user.id and not body.is_active:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="You cannot deactivate your own account",
        )

    target_user = await _get_user_or_404(db, user_id)
    target_user.is_active = body.is_active
    await db.commit()
    await db.refresh(target_user)

    audit.log(
        action="UPDATE_STATUS",
        actor=f"user:{current_user.id}",
        resource="User",
        resource_id=str(target_user.id),
        status="success",
        details={"is_active": body.is_active},
    )

    return UserResponse.model_validate(target_user)
