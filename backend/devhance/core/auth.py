"""JWT authentication dependency for FastAPI.

Identity is issued by the frontend auth provider (GitHub OAuth) and passed to
the backend as a Bearer token signed with the shared AUTH_SECRET:

{
    "sub": "user-uuid",           # User ID
    "email": "[email protected]",
    "name": "Jane Doe",
    "iat": 1234567890,            # Issued at
    "exp": 1234567890             # Expiration
}

The backend only verifies the token and resolves the matching ``User`` row;
it never creates users itself.
"""
import logging
from typing import Optional
from uuid import UUID

import jwt
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from devhance.core.config import settings
from devhance.core.errors import AuthError, ConfigurationError
from devhance.db.session import get_db
from devhance.models.user import User

logger = logging.getLogger(__name__)

# auto_error=False so a missing header goes through AuthError like any other failure
security = HTTPBearer(
    scheme_name="JWT Bearer Token",
    description="JWT issued by the frontend after GitHub sign-in",
    auto_error=False,
)


class JWTPayload:
    """
    Claims read from a verified token.

    Attributes:
        sub: User ID (UUID as string)
        email: User's email address
        name: User's display name
    """
    def __init__(self, payload: dict):
        self.sub: str = str(payload.get("sub", ""))
        self.email: str = payload.get("email", "")
        self.name: Optional[str] = payload.get("name")


def verify_jwt_token(token: str) -> JWTPayload:
    """
    Verify JWT token signature and extract payload.

    Args:
        token: JWT token string from Authorization header

    Returns:
        JWTPayload: Parsed and validated JWT payload

    Raises:
        ConfigurationError: AUTH_SECRET is not set
        AuthError: Token is invalid or expired
    """
    if not settings.AUTH_SECRET:
        logger.error("AUTH_SECRET is not configured; refusing to verify JWTs")
        raise ConfigurationError("Server authentication is not configured")

    required_claims = ["sub", "exp"]
    if settings.AUTH_JWT_ISSUER:
        required_claims.append("iss")
    if settings.AUTH_JWT_AUDIENCE:
        required_claims.append("aud")

    try:
        payload = jwt.decode(
            token,
            settings.AUTH_SECRET,
            algorithms=["HS256"],
            issuer=settings.AUTH_JWT_ISSUER,
            audience=settings.AUTH_JWT_AUDIENCE,
            options={
                "verify_signature": True,
                "verify_exp": True,
                "require": required_claims,
            },
        )
    except jwt.ExpiredSignatureError:
        raise AuthError("Token has expired. Please log in again.")
    except jwt.InvalidTokenError as e:
        logger.info("JWT validation failed", exc_info=e)
        raise AuthError("Invalid token")

    return JWTPayload(payload)


async def resolve_user(db: AsyncSession, payload: JWTPayload) -> Optional[User]:
    """Find the user a token belongs to, by subject first and email second."""
    user: Optional[User] = None

    try:
        sub_uuid = UUID(payload.sub)
    except ValueError:
        sub_uuid = None

    if sub_uuid:
        user = await db.get(User, sub_uuid)

    if not user and payload.email:
        result = await db.execute(select(User).where(User.email == payload.email))
        user = result.scalar_one_or_none()

    # If both are present, the token claims must agree with the stored user
    if user and payload.email and user.email != payload.email:
        logger.warning(f"JWT claim mismatch: subject resolved to user_id={user.id} but email claim differs")
        return None

    return user


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: AsyncSession = Depends(get_db),
) -> User:
    """
    FastAPI dependency to get current authenticated user.

    Usage:
        @router.get("/protected")
        async def protected_route(user: User = Depends(get_current_user)):
            return {"user_id": user.id}

    Raises:
        AuthError: 401 if the token is missing, invalid, or matches no user
    """
    if credentials is None or not credentials.credentials:
        raise AuthError("Missing bearer token")

    payload = verify_jwt_token(credentials.credentials)
    user = await resolve_user(db, payload)
    if not user:
        logger.info("Authenticated user not found for provided token")
        raise AuthError()

    return user
