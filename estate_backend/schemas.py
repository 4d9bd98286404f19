"""
estate_backend/schemas.py

Pydantic request schemas for every write endpoint.

Validation failures surface as 400 with per-field details (see errors.py).
Enum fields are stored as their plain string values.
"""

from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, EmailStr, Field, validator

from estate_backend.models import (
    AppointmentStatus,
    AppointmentType,
    CommercialStatus,
    CommercialType,
    InquiryStatus,
    InsightAspect,
    KycStatus,
    ListingType,
    PlanType,
    ProjectStatus,
    PropertyStatus,
    PropertyType,
    RentalUnitStatus,
    RentalUnitType,
    ResponsibleParty,
    Role,
    SIGNUP_ROLES,
    TourType,
    UserType,
    UtilityType,
    VerificationType,
)

PAN_PATTERN = re.compile(r"^[A-Z]{5}[0-9]{4}[A-Z]$")
TIME_PATTERN = re.compile(r"^([01][0-9]|2[0-3]):[0-5][0-9]$")
PHONE_PATTERN = re.compile(r"^\+?[0-9 ()-]{7,20}$")


def to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Stored datetimes are naive UTC at millisecond precision."""
    if value is None:
        return None
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value.replace(microsecond=(value.microsecond // 1000) * 1000)


def strip_text(value):
    if isinstance(value, str):
        return value.strip()
    return value


class Schema(BaseModel):
    class Config:
        use_enum_values = True


class PartialUpdate(Schema):
    """
    Base for PATCH/PUT bodies: omitted fields stay unchanged.

    An explicit null is rejected rather than written over a stored value.
    """

    @validator("*", pre=True)
    def reject_null(cls, v):
        if v is None:
            raise ValueError("may not be null")
        return v


# ========================================================================
# ACCOUNTS
# ========================================================================

class SignupRequest(Schema):
    name: str = Field(..., min_length=2, max_length=100)
    email: EmailStr
    password: str = Field(..., min_length=8, max_length=128)
    role: Role = Role.user
    phone: Optional[str] = None

    strip_name = validator("name", pre=True, allow_reuse=True)(strip_text)

    @validator("email")
    def lower_email(cls, v):
        return v.lower()

    @validator("role")
    def validate_signup_role(cls, v):
        if Role(v) not in SIGNUP_ROLES:
            raise ValueError("role must be one of user, tenant, landlord")
        return v

    @validator("phone")
    def validate_phone(cls, v):
        if v is not None and not PHONE_PATTERN.match(v):
            raise ValueError("invalid phone number")
        return v


class LoginRequest(Schema):
    email: EmailStr
    password: str = Field(..., min_length=1)

    @validator("email")
    def lower_email(cls, v):
        return v.lower()


class EmailRequest(Schema):
    email: EmailStr

    @validator("email")
    def lower_email(cls, v):
        return v.lower()


class VerifyCodeRequest(EmailRequest):
    code: str = Field(..., min_length=6, max_length=6)


class ResetPasswordRequest(VerifyCodeRequest):
    password: str = Field(..., min_length=8, max_length=128)


class ProfileUpdate(PartialUpdate):
    """Only these fields may be changed through the profile endpoint."""
    name: Optional[str] = Field(None, min_length=2, max_length=100)
    phone: Optional[str] = None
    avatar: Optional[str] = Field(None, max_length=2048)
    bio: Optional[str] = Field(None, max_length=1000)

    strip_name = validator("name", pre=True, allow_reuse=True)(strip_text)

    @validator("phone")
    def validate_phone(cls, v):
        if v is not None and not PHONE_PATTERN.match(v):
            raise ValueError("invalid phone number")
        return v


class SavedSearchCreate(Schema):
    name: str = Field(..., min_length=1, max_length=100)
    filters: Dict[str, Any] = Field(default_factory=dict)
    alertsEnabled: bool = False


# ========================================================================
# LISTINGS
# ========================================================================

class AddressIn(Schema):
    street: Optional[str] = Field(None, max_length=200)
    city: str = Field(..., min_length=1, max_length=100)
    state: Optional[str] = Field(None, max_length=100)
    zipCode: Optional[str] = Field(None, max_length=20)
    country: str = Field("India", max_length=100)
    # [longitude, latitude]
    coordinates: Optional[List[float]] = None

    strip_city = validator("city", pre=True, allow_reuse=True)(strip_text)

    @validator("coordinates")
    def validate_coordinates(cls, v):
        if v is None:
            return v
        if len(v) != 2:
            raise ValueError("coordinates must be [longitude, latitude]")
        lng, lat = v
        if not -180 <= lng <= 180 or not -90 <= lat <= 90:
            raise ValueError("coordinates out of range")
        return v


class PropertyCreate(Schema):
    title: str = Field(..., min_length=3, max_length=200)
    description: str = Field("", max_length=5000)
    price: float = Field(..., ge=0)
    propertyType: PropertyType
    listingType: ListingType
    bedrooms: int = Field(0, ge=0, le=50)
    bathrooms: int = Field(0, ge=0, le=50)
    area: Optional[float] = Field(None, gt=0)
    amenities: List[str] = Field(default_factory=list)
    address: AddressIn
    images: List[str] = Field(default_factory=list)
    ownerDetails: Dict[str, Any] = Field(default_factory=dict)

    strip_title = validator("title", pre=True, allow_reuse=True)(strip_text)


class PropertyUpdate(PartialUpdate):
    title: Optional[str] = Field(None, min_length=3, max_length=200)
    description: Optional[str] = Field(None, max_length=5000)
    price: Optional[float] = Field(None, ge=0)
    propertyType: Optional[PropertyType] = None
    listingType: Optional[ListingType] = None
    status: Optional[PropertyStatus] = None
    bedrooms: Optional[int] = Field(None, ge=0, le=50)
    bathrooms: Optional[int] = Field(None, ge=0, le=50)
    area: Optional[float] = Field(None, gt=0)
    amenities: Optional[List[str]] = None
    address: Optional[AddressIn] = None
    images: Optional[List[str]] = None
    ownerDetails: Optional[Dict[str, Any]] = None


class InquiryCreate(Schema):
    message: str = Field(..., min_length=1, max_length=2000)
    phone: Optional[str] = None
    email: Optional[EmailStr] = None

    strip_message = validator("message", pre=True, allow_reuse=True)(strip_text)


class InquiryStatusUpdate(Schema):
    status: InquiryStatus


class VirtualTourCreate(Schema):
    tourType: TourType
    panoramaImages: Optional[List[str]] = None
    tourUrl: Optional[str] = Field(None, max_length=2048)
    floorPlanUrl: Optional[str] = Field(None, max_length=2048)
    embedCode: Optional[str] = Field(None, max_length=5000)
    additionalDetails: Optional[str] = Field(None, max_length=2000)

    def has_required_media(self) -> bool:
        if self.tourType == TourType.panorama.value:
            return bool(self.panoramaImages)
        if self.tourType in (TourType.walkthrough.value, TourType.video.value):
            return bool(self.tourUrl or self.embedCode)
        return bool(self.floorPlanUrl)


class AssignAgentRequest(Schema):
    agentId: str


class ProjectCreate(Schema):
    projectName: str = Field(..., min_length=2, max_length=200)
    projectType: str = Field(..., min_length=2, max_length=50)
    city: str = Field(..., min_length=1, max_length=100)
    locality: str = Field(..., min_length=1, max_length=100)
    description: str = Field("", max_length=5000)
    priceRange: Dict[str, float] = Field(default_factory=dict)
    totalUnits: Optional[int] = Field(None, ge=1)
    possessionDate: Optional[datetime] = None
    amenities: List[str] = Field(default_factory=list)
    images: List[str] = Field(default_factory=list)

    naive_possession = validator("possessionDate", allow_reuse=True)(to_naive_utc)

    @validator("priceRange")
    def validate_price_range(cls, v):
        low, high = v.get("min"), v.get("max")
        if low is not None and high is not None and low > high:
            raise ValueError("priceRange.min must not exceed priceRange.max")
        return v


class ProjectUpdate(PartialUpdate):
    projectName: Optional[str] = Field(None, min_length=2, max_length=200)
    projectType: Optional[str] = Field(None, min_length=2, max_length=50)
    city: Optional[str] = Field(None, min_length=1, max_length=100)
    locality: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=5000)
    priceRange: Optional[Dict[str, float]] = None
    totalUnits: Optional[int] = Field(None, ge=1)
    amenities: Optional[List[str]] = None
    images: Optional[List[str]] = None


class ProjectStatusUpdate(Schema):
    status: ProjectStatus


class CommercialLocation(Schema):
    address: Optional[str] = Field(None, max_length=300)
    city: str = Field(..., min_length=1, max_length=100)
    state: Optional[str] = Field(None, max_length=100)


class CommercialCreate(Schema):
    title: str = Field(..., min_length=3, max_length=200)
    propertyType: CommercialType
    location: CommercialLocation
    description: str = Field("", max_length=5000)
    totalShares: int = Field(..., gt=0)
    availableShares: int = Field(..., ge=0)
    pricePerShare: float = Field(..., gt=0)
    spvId: str = Field(..., min_length=1, max_length=50)
    expectedRoi: Optional[float] = Field(None, ge=0)
    status: CommercialStatus = CommercialStatus.coming_soon
    images: List[str] = Field(default_factory=list)

    @validator("availableShares")
    def shares_within_total(cls, v, values):
        total = values.get("totalShares")
        if total is not None and v > total:
            raise ValueError("availableShares cannot exceed totalShares")
        return v


class CommercialUpdate(PartialUpdate):
    title: Optional[str] = Field(None, min_length=3, max_length=200)
    propertyType: Optional[CommercialType] = None
    location: Optional[CommercialLocation] = None
    description: Optional[str] = Field(None, max_length=5000)
    totalShares: Optional[int] = Field(None, gt=0)
    availableShares: Optional[int] = Field(None, ge=0)
    pricePerShare: Optional[float] = Field(None, gt=0)
    expectedRoi: Optional[float] = Field(None, ge=0)
    status: Optional[CommercialStatus] = None
    images: Optional[List[str]] = None


# ========================================================================
# MICRO-ESTATE
# ========================================================================

class RentIn(Schema):
    amount: float = Field(..., ge=0)
    currency: str = Field("INR", min_length=3, max_length=3)
    period: str = Field("monthly")

    @validator("period")
    def validate_period(cls, v):
        if v not in ("monthly", "weekly", "daily"):
            raise ValueError("period must be monthly, weekly or daily")
        return v


class RentalUnitCreate(Schema):
    title: str = Field(..., min_length=3, max_length=200)
    description: str = Field("", max_length=5000)
    address: AddressIn
    propertyType: RentalUnitType
    bedrooms: int = Field(0, ge=0, le=50)
    bathrooms: int = Field(0, ge=0, le=50)
    squareFootage: Optional[float] = Field(None, gt=0)
    rent: RentIn
    securityDeposit: float = Field(0, ge=0)
    amenities: List[str] = Field(default_factory=list)
    images: List[str] = Field(default_factory=list)
    status: RentalUnitStatus = RentalUnitStatus.available


class RentalUnitUpdate(PartialUpdate):
    title: Optional[str] = Field(None, min_length=3, max_length=200)
    description: Optional[str] = Field(None, max_length=5000)
    address: Optional[AddressIn] = None
    propertyType: Optional[RentalUnitType] = None
    bedrooms: Optional[int] = Field(None, ge=0, le=50)
    bathrooms: Optional[int] = Field(None, ge=0, le=50)
    squareFootage: Optional[float] = Field(None, gt=0)
    rent: Optional[RentIn] = None
    securityDeposit: Optional[float] = Field(None, ge=0)
    amenities: Optional[List[str]] = None
    images: Optional[List[str]] = None
    status: Optional[RentalUnitStatus] = None


class LeaseCreate(Schema):
    propertyId: str
    tenantId: str
    startDate: datetime
    endDate: datetime
    monthlyRent: float = Field(..., ge=0)
    securityDeposit: float = Field(0, ge=0)
    rentDueDate: int = Field(1, ge=1, le=31)
    terms: str = Field(..., min_length=10, max_length=20000)

    naive_dates = validator("startDate", "endDate", allow_reuse=True)(to_naive_utc)

    @validator("endDate")
    def end_after_start(cls, v, values):
        start = values.get("startDate")
        if start is not None and v <= start:
            raise ValueError("endDate must be after startDate")
        return v


class LeaseUpdate(PartialUpdate):
    startDate: Optional[datetime] = None
    endDate: Optional[datetime] = None
    monthlyRent: Optional[float] = Field(None, ge=0)
    securityDeposit: Optional[float] = Field(None, ge=0)
    rentDueDate: Optional[int] = Field(None, ge=1, le=31)
    terms: Optional[str] = Field(None, min_length=10, max_length=20000)

    naive_dates = validator("startDate", "endDate", allow_reuse=True)(to_naive_utc)


class TerminateLeaseRequest(Schema):
    reason: Optional[str] = Field(None, max_length=1000)


class BillingPeriod(Schema):
    start: datetime
    end: datetime

    naive_dates = validator("start", "end", allow_reuse=True)(to_naive_utc)

    @validator("end")
    def end_after_start(cls, v, values):
        start = values.get("start")
        if start is not None and v <= start:
            raise ValueError("billingPeriod.end must be after billingPeriod.start")
        return v


class BillCreate(Schema):
    propertyId: str
    responsibleParty: ResponsibleParty = ResponsibleParty.tenant
    tenantId: Optional[str] = None
    utilityType: UtilityType
    amount: float = Field(..., ge=0)
    billingPeriod: BillingPeriod
    dueDate: datetime
    notes: Optional[str] = Field(None, max_length=1000)

    naive_due = validator("dueDate", allow_reuse=True)(to_naive_utc)

    @validator("tenantId", always=True)
    def tenant_when_responsible(cls, v, values):
        if values.get("responsibleParty") == ResponsibleParty.tenant.value and not v:
            raise ValueError("tenantId is required when the tenant is responsible")
        return v

    @validator("dueDate")
    def due_after_period(cls, v, values):
        period = values.get("billingPeriod")
        if period is not None and v < period.end:
            raise ValueError("dueDate must be on or after the end of the billing period")
        return v


class PaymentProofRequest(Schema):
    paymentProof: str = Field(..., min_length=1, max_length=2048)
    notes: Optional[str] = Field(None, max_length=1000)


# ========================================================================
# AGENTS
# ========================================================================

class AvailabilitySlot(Schema):
    # 0 = Sunday
    dayOfWeek: int = Field(..., ge=0, le=6)
    startTime: str
    endTime: str

    @validator("startTime", "endTime")
    def validate_time(cls, v):
        if not TIME_PATTERN.match(v):
            raise ValueError("time must be HH:MM")
        return v

    @validator("endTime")
    def end_after_start(cls, v, values):
        start = values.get("startTime")
        if start is not None and v <= start:
            raise ValueError("endTime must be after startTime")
        return v


class BlockedDate(Schema):
    date: datetime
    reason: Optional[str] = Field(None, max_length=200)

    naive_date = validator("date", allow_reuse=True)(to_naive_utc)


class ScheduleUpdate(Schema):
    availability: List[AvailabilitySlot] = Field(default_factory=list)
    blockedDates: List[BlockedDate] = Field(default_factory=list)


class AppointmentCreate(Schema):
    date: datetime
    startTime: str
    endTime: str
    propertyId: Optional[str] = None
    type: AppointmentType = AppointmentType.property_viewing
    notes: Optional[str] = Field(None, max_length=1000)

    naive_date = validator("date", allow_reuse=True)(to_naive_utc)

    @validator("startTime", "endTime")
    def validate_time(cls, v):
        if not TIME_PATTERN.match(v):
            raise ValueError("time must be HH:MM")
        return v

    @validator("endTime")
    def end_after_start(cls, v, values):
        start = values.get("startTime")
        if start is not None and v <= start:
            raise ValueError("endTime must be after startTime")
        return v


class AppointmentUpdate(Schema):
    status: AppointmentStatus
    notes: Optional[str] = Field(None, max_length=1000)


class ReviewCreate(Schema):
    rating: int = Field(..., ge=1, le=5)
    title: Optional[str] = Field(None, max_length=200)
    comment: str = Field(..., min_length=1, max_length=2000)

    strip_comment = validator("comment", pre=True, allow_reuse=True)(strip_text)


# ========================================================================
# KYC / VERIFICATION
# ========================================================================

class OtpVerifyRequest(Schema):
    otp: str = Field(..., min_length=6, max_length=6)


class KycReviewRequest(Schema):
    status: KycStatus
    reason: Optional[str] = Field(None, max_length=1000)

    @validator("status")
    def decision_only(cls, v):
        if v == KycStatus.pending.value:
            raise ValueError("status must be accepted or rejected")
        return v


class VerificationRequestCreate(Schema):
    type: VerificationType
    requestDetails: Dict[str, Any] = Field(default_factory=dict)
    documents: List[str] = Field(default_factory=list)


class VerificationRejectRequest(Schema):
    reason: str = Field(..., min_length=1, max_length=1000)


# ========================================================================
# SUBSCRIPTIONS / AI
# ========================================================================

class SubscriptionPurchase(Schema):
    userType: UserType
    planType: PlanType
    price: int = Field(..., ge=0)
    transactionId: Optional[str] = Field(None, max_length=200)
    autoRenew: bool = False

    @validator("transactionId", always=True)
    def transaction_for_paid_plans(cls, v, values):
        if values.get("price") and not v:
            raise ValueError("transactionId is required for paid plans")
        return v


class UsageUpdate(Schema):
    action: str

    @validator("action")
    def validate_action(cls, v):
        if v not in ("use_listing", "use_contact"):
            raise ValueError("action must be use_listing or use_contact")
        return v


class PropertyInsightsRequest(Schema):
    propertyId: str
    aspectsToAnalyze: List[InsightAspect] = Field(
        default_factory=lambda: [InsightAspect.pricing, InsightAspect.market_trends,
                                 InsightAspect.investment_potential],
    )
