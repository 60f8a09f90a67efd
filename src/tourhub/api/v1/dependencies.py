"""Shared API dependencies for authentication and realtime access."""

from typing import Annotated

from fastapi import Cookie, Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from tourhub.core.security import decode_access_token
from tourhub.core.settings import settings
from tourhub.db.session import get_db
from tourhub.models import User
from tourhub.realtime.gateway import RealtimeGateway

# Bearer tokens are optional so the auth cookie can be used instead.
bearer_scheme = HTTPBearer(auto_error=False)

# Type alias for database session dependency
SessionDep = Annotated[Session, Depends(get_db)]


def _extract_token(
    credentials: HTTPAuthorizationCredentials | None,
    cookie_token: str | None,
) -> str | None:
    """Return the Bearer token, falling back to the auth cookie."""
    if credentials is not None and credentials.credentials:
        return credentials.credentials
    return cookie_token or None


def get_current_user(
    db: SessionDep,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)] = None,
    jwt_cookie: Annotated[str | None, Cookie(alias=settings.auth_cookie_name)] = None,
) -> User:
    """Get the current authenticated user from the JWT.

    Raises:
        HTTPException: If the token is missing, invalid, or its user is gone
    """
    token = _extract_token(credentials, jwt_cookie)
    if token is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized - No Token Provided",
        )

    user_id = decode_access_token(token)
    if user_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
        )

    user = db.get(User, user_id)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found",
        )
    return user


def get_gateway(request: Request) -> RealtimeGateway:
    """Return the realtime gateway owned by the running application."""
    gateway: RealtimeGateway | None = getattr(request.app.state, "gateway", None)
    if gateway is None:  # pragma: no cover - app always installs one
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Realtime gateway not available",
        )
    return gateway


# Type aliases for dependencies
CurrentUserDep = Annotated[User, Depends(get_current_user)]
GatewayDep = Annotated[RealtimeGateway, Depends(get_gateway)]
