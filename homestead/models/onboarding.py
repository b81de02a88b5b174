"""OnboardingAttempt model — durable saga record for one onboarding."""

import uuid
from datetime import datetime
from enum import StrEnum

from sqlmodel import Field, SQLModel

from homestead.models.base import TimestampMixin, new_uuid


class OnboardingStage(StrEnum):
    """Stages in execution order. The attempt stores the last one completed."""
    STARTED = "STARTED"
    TOKEN_VALID = "TOKEN_VALID"
    INVITATION_MARKED = "INVITATION_MARKED"
    PROFILE_CREATED = "PROFILE_CREATED"
    TENANT_CREATED = "TENANT_CREATED"
    OCCUPANCY_UPDATED = "OCCUPANCY_UPDATED"
    NOTIFIED = "NOTIFIED"

    @property
    def order(self) -> int:
        return _STAGE_ORDER.index(self)


_STAGE_ORDER = list(OnboardingStage)


class AttemptStatus(StrEnum):
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    COMPENSATED = "compensated"


class OnboardingAttempt(TimestampMixin, SQLModel, table=True):
    __tablename__ = "onboarding_attempts"

    id: uuid.UUID = Field(default_factory=new_uuid, primary_key=True)
    # Several attempts may exist per invitation once one has been compensated
    invitation_id: uuid.UUID = Field(
        nullable=False, index=True,
    )
    identity_id: uuid.UUID = Field(nullable=False, index=True)
    landlord_id: uuid.UUID = Field(nullable=False, index=True)

    status: AttemptStatus = Field(default=AttemptStatus.IN_PROGRESS, index=True)
    stage: OnboardingStage = Field(default=OnboardingStage.INVITATION_MARKED)

    property_id: uuid.UUID | None = None
    unit_id: uuid.UUID | None = None
    profile_id: uuid.UUID | None = None
    tenant_id: uuid.UUID | None = None
    # Set only when this attempt flipped the unit (compensation gives it back)
    unit_flipped: bool = Field(default=False)

    failed_stage: OnboardingStage | None = None
    error_kind: str | None = Field(default=None, max_length=100)
    error_message: str | None = Field(default=None, max_length=2000)
    resume_count: int = Field(default=0)


# ── Pydantic schemas ─────────────────────────────────────────

class OnboardingAttemptRead(SQLModel):
    id: uuid.UUID
    invitation_id: uuid.UUID
    identity_id: uuid.UUID
    status: AttemptStatus
    stage: OnboardingStage
    property_id: uuid.UUID | None
    unit_id: uuid.UUID | None
    tenant_id: uuid.UUID | None
    failed_stage: OnboardingStage | None
    error_kind: str | None
    error_message: str | None
    resume_count: int
    created_at: datetime
    updated_at: datetime
