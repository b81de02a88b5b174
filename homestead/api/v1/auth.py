"""Authentication endpoints — login + current profile."""

from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel, EmailStr

from homestead.api.deps import Auth, Session
from homestead.core.config import get_settings
from homestead.core.security import create_jwt
from homestead.models.profile import Profile, ProfileRead
from homestead.services.identity import IdentityProvisioner

router = APIRouter(prefix="/auth", tags=["auth"])


# ── Schemas ──────────────────────────────────────────────────

class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class LoginResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    profile: ProfileRead | None


# ── Routes ───────────────────────────────────────────────────

@router.post("/login", response_model=LoginResponse)
async def login(body: LoginRequest, session: Session) -> LoginResponse:
    """Authenticate with email + password, receive a JWT."""
    provisioner = IdentityProvisioner(
        session, min_password_length=get_settings().password_min_length
    )
    identity = await provisioner.authenticate(body.email, body.password)
    if identity is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
        )

    if not identity.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Account is disabled",
        )

    profile = await session.get(Profile, identity.id)
    token = create_jwt(subject=str(identity.id), role=identity.role)

    return LoginResponse(
        access_token=token,
        profile=ProfileRead.model_validate(profile) if profile else None,
    )


@router.get("/me", response_model=ProfileRead)
async def get_me(auth: Auth, session: Session) -> ProfileRead:
    """Return the profile of the authenticated identity."""
    profile = await session.get(Profile, auth.identity_id)
    if profile is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Profile not found")
    return ProfileRead.model_validate(profile)
