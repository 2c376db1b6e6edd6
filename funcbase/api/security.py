"""
Security utilities for the Funcbase API.

Callers of functions identify themselves with an optional JWT bearer token;
its ``sub`` claim is the user id substituted for ``$user.id``. Definition
management is guarded by a static API key when one is configured.
"""

import secrets
from datetime import UTC, datetime, timedelta
from typing import Annotated

from authlib.jose import JoseError, jwt
from fastapi import Depends, Header
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel, ValidationError

from funcbase.exceptions import FORBIDDEN, UNAUTHORIZED
from funcbase.settings import settings

# Missing Authorization header is allowed; anonymous calls simply carry no user id
bearer_scheme = HTTPBearer(auto_error=False)


class Token(BaseModel):
    """Schema for an issued access token."""

    access_token: str
    token_type: str = "bearer"


class TokenData(BaseModel):
    """Schema for JWT token payload."""

    sub: str
    exp: datetime | None = None


def create_access_token(user_id: str, expires_delta: timedelta | None = None) -> Token:
    """Create a new JWT access token for a caller.

    Args:
        user_id: Identifier placed in the ``sub`` claim.
        expires_delta: Token lifetime; ``jwt_expire_minutes`` when omitted.
    """
    if expires_delta:
        new_expire_time = datetime.now(UTC) + expires_delta
    else:
        new_expire_time = datetime.now(UTC) + timedelta(minutes=settings.jwt_expire_minutes)

    data = TokenData(sub=user_id, exp=new_expire_time)
    header = {"alg": settings.jwt_algorithm}
    encoded_jwt = jwt.encode(header, data.model_dump(), settings.jwt_secret_key)

    return Token(access_token=encoded_jwt.decode())


def decode_token(token: str) -> TokenData:
    """Decode and validate a JWT token.

    Raises:
        CustomHTTPException: 401 if the token is malformed, badly signed or expired.
    """
    try:
        payload = jwt.decode(token, settings.jwt_secret_key)
        token_data = TokenData(**payload)
    except (JoseError, ValidationError, ValueError) as e:
        raise UNAUTHORIZED from e

    if token_data.exp is None or token_data.exp < datetime.now(UTC):
        raise UNAUTHORIZED
    return token_data


def get_optional_user_id(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
) -> str | None:
    """Return the caller's user id, or None for an anonymous request.

    A present but invalid token is rejected rather than treated as anonymous.
    """
    if credentials is None:
        return None
    return decode_token(credentials.credentials).sub


def require_api_key(
    x_api_key: Annotated[str | None, Header()] = None,
) -> None:
    """Check the ``X-API-Key`` header when an API key is configured."""
    if settings.api_key is None:
        return
    if x_api_key is None:
        raise UNAUTHORIZED.with_context("X-API-Key header is required")
    if not secrets.compare_digest(x_api_key, settings.api_key):
        raise FORBIDDEN.with_context("Invalid API key")
