# 📦 /schemas/schemas.py

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, List, Optional
import uuid

from pydantic import BaseModel, ConfigDict, Field

# ─────────────────────────────
# Enumerations

class Urgency(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRISIS = "crisis"

class Modality(str, Enum):
    VIDEO = "video"
    PHONE = "phone"
    CHAT = "chat"
    IN_PERSON = "in_person"

class ReferralStatus(str, Enum):
    PENDING = "pending"
    MATCHED = "matched"
    BOOKED = "booked"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

# ─────────────────────────────
# Matching inputs

class ReferralCriteria(BaseModel):
    """What the scoring engine needs to know about a referral."""
    model_config = ConfigDict(frozen=True)

    issue_type: str
    urgency: Urgency
    preferred_language: str
    preferred_modality: Modality
    client_age: int = Field(ge=0, le=25)
    special_requirements: Optional[str] = None

class Referral(BaseModel):
    """Row of the `referrals` table."""
    id: str
    referrer_id: Optional[str] = None
    client_name: str
    client_age: int = Field(ge=0, le=25)
    client_email: Optional[str] = None
    client_phone: Optional[str] = None
    issue_type: str
    urgency: Urgency
    preferred_language: str
    preferred_modality: Modality
    special_requirements: Optional[str] = None
    consent_given: bool = False
    status: ReferralStatus = ReferralStatus.PENDING
    matched_therapist_id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def criteria(self) -> ReferralCriteria:
        return ReferralCriteria(
            issue_type=self.issue_type,
            urgency=self.urgency,
            preferred_language=self.preferred_language,
            preferred_modality=self.preferred_modality,
            client_age=self.client_age,
            special_requirements=self.special_requirements or None,
        )

class TherapistProfile(BaseModel):
    """Verified therapist as seen by the matching engine."""
    model_config = ConfigDict(frozen=True)

    id: str
    user_id: Optional[str] = None
    full_name: Optional[str] = None
    email: Optional[str] = None
    is_verified: bool = False
    specializations: List[str] = []
    languages: List[str] = []
    hourly_rate: Decimal = Decimal("0")
    bio: Optional[str] = None
    # Stored but not used for scoring
    availability: Optional[Any] = None
    profile_image_url: Optional[str] = None
    booking_url: Optional[str] = None

# ─────────────────────────────
# Matching outputs

class MatchResult(BaseModel):
    therapist: TherapistProfile
    score: int
    reasons: List[str]

class ScoreBreakdown(BaseModel):
    verified: int = 0
    specialization: int = 0
    language: int = 0
    modality: int = 0
    age: int = 0
    urgency: int = 0
    special_requirements: int = 0

    @property
    def total(self) -> int:
        return (
            self.verified
            + self.specialization
            + self.language
            + self.modality
            + self.age
            + self.urgency
            + self.special_requirements
        )

class ReferrerNotification(BaseModel):
    referrer_email: Optional[str] = None
    client_name: str
    therapist_name: str
    therapist_bio: str
    booking_link: str

class TherapistNotification(BaseModel):
    therapist_email: Optional[str] = None
    client_name: str
    client_age: int
    issue_type: str
    urgency: Urgency
    booking_link: str

class MatchNotifications(BaseModel):
    referrer: ReferrerNotification
    therapist: TherapistNotification

# ─────────────────────────────
# API envelopes

class RecommendResponse(BaseModel):
    status: str
    rules_version: str
    data: List[MatchResult]

class ExplainResponse(BaseModel):
    status: str
    data: dict

class ProcessReferralResponse(BaseModel):
    status: str
    referral_id: str
    matched_therapist_id: Optional[str] = None
    data: List[MatchResult]
    notifications: Optional[MatchNotifications] = None

class CommitMatchResponse(BaseModel):
    status: str
    message: str
    referral_id: str
    therapist_id: str

class AvailabilityResponse(BaseModel):
    status: str
    therapist_id: str
    available: bool

class HealthCheckResponse(BaseModel):
    status: str
    message: str
    version: str

class ErrorResponse(BaseModel):
    status: str
    message: str
    info: Optional[str | dict] = None

class MatchLogRow(BaseModel):
    """Audit row written to `match_logs` after every recommendation."""
    request_id: uuid.UUID = Field(default_factory=uuid.uuid4)
    rules_version: str
    criteria: ReferralCriteria
    top_match_id: str
    top_match_score: int
    recommended: List[dict]
