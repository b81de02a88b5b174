"""FastAPI dependencies for authentication, sessions, and the notifier."""

import uuid
from typing import Annotated

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError
from sqlalchemy.ext.asyncio import AsyncSession

from homestead.core.database import get_session
from homestead.core.security import decode_jwt
from homestead.models.identity import UserRole
from homestead.services.notifier import Notifier

bearer_scheme = HTTPBearer()


class AuthContext:
    """Resolved identity carried through a request."""

    __slots__ = ("identity_id", "role")

    def __init__(self, identity_id: uuid.UUID, role: str) -> None:
        self.identity_id = identity_id
        self.role = role


async def get_auth_context(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(bearer_scheme)],
) -> AuthContext:
    """Decode the bearer JWT into an AuthContext."""
    try:
        payload = decode_jwt(credentials.credentials)
    except JWTError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired JWT",
        ) from exc

    try:
        return AuthContext(
            identity_id=uuid.UUID(payload["sub"]),
            role=payload.get("role", UserRole.TENANT),
        )
    except (KeyError, ValueError) as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Malformed JWT payload",
        ) from exc


async def require_landlord(
    auth: Annotated[AuthContext, Depends(get_auth_context)],
) -> AuthContext:
    """Raise 403 unless the caller is a landlord (or admin)."""
    if auth.role not in (UserRole.LANDLORD, UserRole.ADMIN):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only landlords can manage invitations",
        )
    return auth


def get_notifier(request: Request) -> Notifier:
    """The process-wide notifier built in the application lifespan."""
    return request.app.state.notifier


# Typed shorthand for use in route signatures
Auth = Annotated[AuthContext, Depends(get_auth_context)]
Landlord = Annotated[AuthContext, Depends(require_landlord)]
Session = Annotated[AsyncSession, Depends(get_session)]
NotifierDep = Annotated[Notifier, Depends(get_notifier)]
