"""Import all models so SQLModel.metadata picks them up."""

from homestead.models.identity import Identity, UserRole
from homestead.models.invitation import (
    Invitation,
    InvitationCreate,
    InvitationCreated,
    InvitationRead,
    InvitationStatus,
)
from homestead.models.onboarding import (
    AttemptStatus,
    OnboardingAttempt,
    OnboardingAttemptRead,
    OnboardingStage,
)
from homestead.models.profile import Profile, ProfileFields, ProfileRead
from homestead.models.property import Property, Unit, UnitStatus
from homestead.models.tenant import Tenant, TenantRead, TenantStatus

__all__ = [
    "AttemptStatus",
    "Identity",
    "Invitation",
    "InvitationCreate",
    "InvitationCreated",
    "InvitationRead",
    "InvitationStatus",
    "OnboardingAttempt",
    "OnboardingAttemptRead",
    "OnboardingStage",
    "Profile",
    "ProfileFields",
    "ProfileRead",
    "Property",
    "Tenant",
    "TenantRead",
    "TenantStatus",
    "Unit",
    "UnitStatus",
    "UserRole",
]
