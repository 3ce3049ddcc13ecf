"""
FastAPI dependencies for authentication and the learning services.
"""

from typing import Optional

from fastapi import Header, HTTPException, Request, status
from jose import JWTError, jwt

from repovoice.bootstrap import LearningServices
from repovoice.core.config import settings

DEV_USER_ID = "dev-user-001"


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def _subject_from_header(authorization: str) -> str:
    """Return the `sub` claim of a `Bearer <jwt>` header."""
    try:
        scheme, token = authorization.split()
    except ValueError:
        raise _unauthorized("Invalid authorization header format")
    if scheme.lower() != "bearer":
        raise _unauthorized("Invalid authentication scheme")

    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm],
        )
    except JWTError:
        raise _unauthorized("Could not validate credentials")

    user_id: Optional[str] = payload.get("sub")
    if user_id is None:
        raise _unauthorized("Invalid token payload")
    return user_id


async def get_current_user_id(
    authorization: Optional[str] = Header(None, alias="Authorization"),
) -> str:
    """
    Resolve the editing user from a JWT bearer token.

    Development mode falls back to a fixed user when the header is missing
    or invalid; every other environment requires a valid token.
    """
    if settings.environment == "development":
        if not authorization:
            return DEV_USER_ID
        try:
            return _subject_from_header(authorization)
        except HTTPException:
            return DEV_USER_ID

    if not authorization:
        raise _unauthorized("Missing authorization header")
    return _subject_from_header(authorization)


def get_learning_services(request: Request) -> LearningServices:
    """Learning services built by the application lifespan."""
    services = getattr(request.app.state, "learning", None)
    if services is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Learning engine not initialized",
        )
    return services
