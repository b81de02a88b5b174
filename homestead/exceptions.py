"""Domain exceptions raised by the onboarding services.

Each error carries the HTTP status and the message shown to the caller, so
routes can translate them into ``HTTPException`` without a lookup table.
"""

from __future__ import annotations

from homestead.models.onboarding import OnboardingStage


class HomesteadError(Exception):
    """Base class for all domain errors."""

    status_code: int = 500
    message: str = "Internal server error"
    kind: str = "internal_error"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.message)
        if message:
            self.message = message


# ── Token verification (read-only, safe to retry) ─────────────

class VerificationError(HomesteadError):
    status_code = 400


class InvitationNotFound(VerificationError):
    status_code = 404
    message = "Invitation not found"
    kind = "not_found"


class TokenMismatch(VerificationError):
    message = "Invalid verification token"
    kind = "token_mismatch"


class AlreadyVerified(VerificationError):
    message = "Invitation already verified"
    kind = "already_verified"


class InvitationExpired(VerificationError):
    message = "Invitation has expired"
    kind = "expired"


# ── Identity provisioning ─────────────────────────────────────

class IdentityError(HomesteadError):
    pass


class DuplicateEmail(IdentityError):
    status_code = 409
    message = "An account with this email already exists"
    kind = "duplicate_email"


class WeakCredential(IdentityError):
    status_code = 400
    message = "Password does not meet the minimum requirements"
    kind = "weak_credential"


class IdentityUnavailable(IdentityError):
    status_code = 503
    message = "Identity service unavailable"
    kind = "identity_unavailable"


# ── Store writes ──────────────────────────────────────────────

class StoreError(HomesteadError):
    pass


class DuplicateProfile(StoreError):
    status_code = 409
    message = "A profile already exists for this identity"
    kind = "duplicate_id"


class DuplicateTenant(StoreError):
    status_code = 409
    message = "A tenant already exists for this invitation"
    kind = "duplicate_tenant"


class StoreUnavailable(StoreError):
    status_code = 503
    message = "Store unavailable"
    kind = "unavailable"


class UnitNotFound(StoreError):
    status_code = 404
    message = "Unit not found"
    kind = "unit_not_found"


class PropertyNotFound(StoreError):
    status_code = 404
    message = "Property not found"
    kind = "property_not_found"


# ── Onboarding saga ───────────────────────────────────────────

class OnboardingError(HomesteadError):
    """A stage failed after the invitation was consumed.

    ``stage`` is the stage that failed; the attempt record holds the last
    stage that completed.
    """

    status_code = 500

    def __init__(self, kind: str, stage: OnboardingStage, message: str) -> None:
        super().__init__(message)
        self.kind = kind
        self.stage = stage

    def __str__(self) -> str:
        return f"{self.stage}: {self.kind}: {self.message}"


class AttemptNotFound(HomesteadError):
    status_code = 404
    message = "Onboarding attempt not found"
    kind = "attempt_not_found"


class InvalidAttemptState(HomesteadError):
    status_code = 409
    message = "Onboarding attempt cannot be recovered in its current state"
    kind = "invalid_attempt_state"


class AttemptClaimed(HomesteadError):
    """Another worker or request took over the attempt first."""

    status_code = 409
    message = "Onboarding attempt is already being recovered"
    kind = "attempt_claimed"
