"""Landlord registration (bootstrap) endpoint."""

from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel, EmailStr, Field

from homestead.api.deps import Session
from homestead.core.config import get_settings
from homestead.core.security import create_jwt
from homestead.exceptions import IdentityError, StoreError
from homestead.models.identity import UserRole
from homestead.models.profile import ProfileFields, ProfileRead
from homestead.services.identity import IdentityProvisioner
from homestead.services.profiles import ProfileWriter

router = APIRouter(prefix="/landlords", tags=["landlords"])


# ── Bootstrap request / response schemas ──────────────────────

class LandlordRegisterRequest(BaseModel):
    """Everything needed to create a landlord account in one call."""
    email: EmailStr
    password: str = Field(max_length=128)
    first_name: str = Field(default="", max_length=100)
    last_name: str = Field(default="", max_length=100)
    phone: str | None = Field(default=None, max_length=50)


class LandlordRegisterResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    profile: ProfileRead


# ── Routes ────────────────────────────────────────────────────

@router.post(
    "",
    response_model=LandlordRegisterResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register a landlord account",
)
async def register_landlord(
    body: LandlordRegisterRequest,
    session: Session,
) -> LandlordRegisterResponse:
    """Create a landlord identity and profile, and return a JWT.

    This and the tenant onboarding endpoints are the only unauthenticated
    write endpoints.
    """
    provisioner = IdentityProvisioner(
        session, min_password_length=get_settings().password_min_length
    )
    try:
        identity_id = await provisioner.create_identity(
            body.email,
            body.password,
            metadata={"first_name": body.first_name, "last_name": body.last_name},
            role=UserRole.LANDLORD,
        )
        await ProfileWriter(session).create_profile(
            identity_id,
            ProfileFields(
                email=str(body.email).lower(),
                first_name=body.first_name,
                last_name=body.last_name,
                phone=body.phone,
                role=UserRole.LANDLORD,
            ),
        )
    except (IdentityError, StoreError) as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.message) from exc

    profile = await ProfileWriter(session).get_profile(identity_id)
    return LandlordRegisterResponse(
        access_token=create_jwt(subject=str(identity_id), role=UserRole.LANDLORD),
        profile=ProfileRead.model_validate(profile),
    )
