"""Authentication helpers for backend-issued JWTs.

This module provides a FastAPI dependency ``get_current_profile`` that:
1. Extracts the ``Authorization: Bearer <access_token>`` header.
2. Verifies signature (HS256 shared secret), expiration and audience.
3. Creates or fetches the ``models.Profile`` row for the token subject.

Settings expected at runtime when ``AUTH_ENABLED=1``:
    JWT_SECRET     - shared signing secret of the auth backend
    JWT_AUDIENCE   - expected ``aud`` claim (defaults to "authenticated")

With auth disabled (local dev) the ``X-Profile-Id`` header picks the acting
profile, falling back to a local profile created on demand.
"""
from __future__ import annotations

from typing import Annotated, Any, Optional

import structlog
from fastapi import Depends, Header, HTTPException, Request, status
from jose import JWTError, jwt
from pydantic import BaseModel
from sqlalchemy.orm import Session

import crud
import models
import schemas
from database import get_db
from settings import get_settings
from workflows import SELF_SERVICE_ROLES, UserRole

logger = structlog.get_logger(__name__)


class TokenPayload(BaseModel):
    sub: str
    email: Optional[str] = None
    exp: int
    aud: str
    user_metadata: dict[str, Any] = {}


def verify_token(token: str) -> TokenPayload:
    """Verify a bearer JWT and return its payload.

    Raises HTTPException(401) on failure.
    """
    settings = get_settings()
    if not settings.jwt_secret:
        logger.error("JWT secret not configured while auth is enabled")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Authentication is not configured",
        )

    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            audience=settings.jwt_audience,
        )
        return TokenPayload.model_validate(payload)
    except JWTError as exc:
        logger.warning("JWT verification failed", exc=str(exc))
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")


def _profile_from_token(db: Session, payload: TokenPayload) -> models.Profile:
    """Fetch the token subject's profile, creating it the way signup would."""
    profile = crud.get_profile(db, payload.sub)
    if profile:
        return profile

    metadata = payload.user_metadata or {}
    role = metadata.get("role", UserRole.student.value)
    # Admins are appointed, never self-declared through signup metadata
    if role not in SELF_SERVICE_ROLES:
        if role == UserRole.admin.value:
            logger.warning("Ignoring admin role in token metadata", profile_id=payload.sub)
        role = UserRole.student.value
    logger.info("Creating profile for new token subject", profile_id=payload.sub, role=role)
    profile = crud.create_profile(
        db,
        schemas.ProfileCreate(
            id=payload.sub,
            email=payload.email or f"{payload.sub}@users.invalid",
            first_name=metadata.get("first_name"),
            last_name=metadata.get("last_name"),
            role=role,
        ),
    )
    db.commit()
    return profile


def _local_profile(db: Session, profile_id: Optional[str]) -> models.Profile:
    if profile_id:
        profile = crud.get_profile(db, profile_id)
        if not profile:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unknown profile")
        return profile

    email = get_settings().local_profile_email
    profile = crud.get_profile_by_email(db, email)
    if not profile:
        profile = crud.create_profile(db, schemas.ProfileCreate(email=email, first_name="Local", last_name="User"))
        db.commit()
    return profile


# Helper to extract Authorization header (works with FastAPI DI)
def _get_authorization_header(request: Request) -> Optional[str]:
    return request.headers.get("Authorization")


async def get_current_profile(
    authorization: Annotated[Optional[str], Depends(_get_authorization_header)],
    x_profile_id: Annotated[Optional[str], Header()] = None,
    db: Session = Depends(get_db),
) -> models.Profile:
    if not get_settings().auth_enabled:
        return _local_profile(db, x_profile_id)

    if not authorization or not authorization.lower().startswith("bearer "):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing bearer token")

    token = authorization.split(" ", 1)[1]
    payload = verify_token(token)
    profile = _profile_from_token(db, payload)
    structlog.contextvars.bind_contextvars(profile_id=profile.id)
    return profile


def require_role(*roles: UserRole):
    """Dependency factory: the current profile must hold one of ``roles``."""
    allowed = {r.value for r in roles}

    async def _dependency(profile: models.Profile = Depends(get_current_profile)) -> models.Profile:
        if profile.role not in allowed:
            logger.warning("Role check failed", profile_id=profile.id, role=profile.role, allowed=sorted(allowed))
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"This action requires role: {', '.join(sorted(allowed))}",
            )
        return profile

    return _dependency
