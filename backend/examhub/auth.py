"""Authentication helpers and FastAPI security dependencies.

This module issues and verifies JWT bearer tokens and provides the
FastAPI dependencies `get_current_user` and `get_current_admin` that
validate the bearer token and return the corresponding model instance
from the database.

Users and admins live in separate token namespaces: every token carries
an audience claim and a user token is rejected on admin routes (and vice
versa). Verification failures raise `AuthError`, which the application
renders as a 401 envelope.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from fastapi import Depends, Request, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlmodel import Session

from . import errors, models, repositories
from .config import Settings
from .database import get_session

USER_AUDIENCE = "examhub:user"
ADMIN_AUDIENCE = "examhub:admin"

bearer_scheme = HTTPBearer(auto_error=False)


def create_access_token(subject_id: int, audience: str, settings: Settings) -> str:
    """Sign a token for `subject_id` in the `audience` namespace."""
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(subject_id),
        "aud": audience,
        "iat": now,
        "exp": now + timedelta(hours=settings.JWT_EXPIRE_HOURS),
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def decode_token(token: str, audience: str, settings: Settings) -> int:
    """Decode and verify a JWT token, returning the subject id.

    Raises `AuthError` when the token is expired, tampered with, signed
    for another namespace or carries no usable subject.
    """
    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[settings.JWT_ALGORITHM],
            audience=audience,
            options={"require": ["exp", "sub", "aud"]},
        )
    except jwt.ExpiredSignatureError:
        raise errors.AuthError('Token expired')
    except jwt.PyJWTError:
        raise errors.AuthError('Please authenticate')
    try:
        return int(payload["sub"])
    except (TypeError, ValueError):
        raise errors.AuthError('Invalid token payload')


def _bearer_token(credentials: Optional[HTTPAuthorizationCredentials]) -> str:
    if credentials is None or not credentials.credentials:
        raise errors.AuthError('No token provided')
    return credentials.credentials


def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Security(bearer_scheme),
    db: Session = Depends(get_session),
) -> models.User:
    """FastAPI dependency that returns the authenticated user."""
    user_id = decode_token(_bearer_token(credentials), USER_AUDIENCE, request.app.state.settings)
    user = repositories.UserRepository(db).get(user_id)
    if not user:
        raise errors.AuthError('Please authenticate')
    return user


def get_current_admin(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Security(bearer_scheme),
    db: Session = Depends(get_session),
) -> models.Admin:
    """FastAPI dependency that returns the authenticated admin."""
    admin_id = decode_token(_bearer_token(credentials), ADMIN_AUDIENCE, request.app.state.settings)
    admin = repositories.AdminRepository(db).get(admin_id)
    if not admin:
        raise errors.AuthError('Not authorized as admin')
    return admin
