"""
estate_backend/entitlements.py

Subscription-aware entitlements engine.

This module centralizes the logic for:
- Plan catalogue: quotas, feature flags and prices per (user type, plan)
- Lazy expiry: flipping isActive once endDate has passed
- Quota refresh: resetting exhausted FREE counters once refreshDate passes
- The entitlement decision for a feature request
- Consuming usage counters

Key principles:
- Plan tiers are ordinal: free < basic < standard < premium < boss
- A plan below the required tier is denied before any counter is touched
- Counter increments are read-modify-write without locking; two concurrent
  requests from one user can both pass the limit check

Source of truth: the `subscriptions` collection.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from bson import ObjectId
from pymongo.database import Database

from estate_backend.config import IS_DEV
from estate_backend.lifecycle import add_months, derive_subscription_active
from estate_backend.models import Feature, PlanType, UserType


# ============================================================================
# Plan Catalogue
# ============================================================================

PLAN_LEVELS: Dict[PlanType, int] = {
    PlanType.free: 0,
    PlanType.basic: 1,
    PlanType.standard: 2,
    PlanType.premium: 3,
    PlanType.boss: 4,
}

# Subscription length for every purchase
SUBSCRIPTION_MONTHS = 1

# FREE quotas refresh on these cycles
LISTING_REFRESH_MONTHS = 3
CONTACT_REFRESH_MONTHS = 9

LISTING_QUOTAS: Dict[UserType, Dict[PlanType, int]] = {
    UserType.owner: {PlanType.free: 2, PlanType.basic: 4, PlanType.standard: 8, PlanType.premium: 15},
    UserType.dealer: {PlanType.free: 1, PlanType.basic: 4, PlanType.standard: 8, PlanType.premium: 15},
}

# BOSS buyer contact packs are priced per pack size
BOSS_CONTACT_PACKS: Dict[int, int] = {1000: 10, 2000: 20, 10000: 100}
FREE_BUYER_CONTACTS = 10

PLAN_PRICES: Dict[UserType, Dict[PlanType, Iterable[int]]] = {
    UserType.owner: {
        PlanType.free: (0,),
        PlanType.basic: (500,),
        PlanType.standard: (1000,),
        PlanType.premium: (2000,),
    },
    UserType.dealer: {
        PlanType.free: (0,),
        PlanType.basic: (1000,),
        PlanType.standard: (2000,),
        PlanType.premium: (5000,),
    },
    UserType.buyer: {
        PlanType.free: (0,),
        PlanType.boss: tuple(BOSS_CONTACT_PACKS),
    },
}

# Which counter a countable feature draws from
FEATURE_COUNTERS: Dict[Feature, str] = {
    Feature.create_listing: "listings",
    Feature.view_contact: "contacts",
}

# Which plan feature flag a flag-gated feature needs
FEATURE_FLAGS: Dict[Feature, str] = {
    Feature.use_ai: "aiInsights",
    Feature.virtual_tour: "virtualTour",
    Feature.customer_care: "customerCare",
}

# Contact views are only metered for buyers
CONTACT_METERED_USER_TYPES = (UserType.buyer,)


def plan_level(plan: str) -> int:
    try:
        return PLAN_LEVELS[PlanType(plan)]
    except ValueError:
        return -1


def plan_at_least(plan: str, required_plan: str) -> bool:
    """
    Example:
        plan_at_least("premium", "basic") -> True
        plan_at_least("free", "premium") -> False
    """
    return plan_level(plan) >= plan_level(required_plan)


def listing_quota(user_type: UserType, plan: PlanType) -> int:
    return LISTING_QUOTAS.get(user_type, {}).get(plan, 0)


def contact_quota(user_type: UserType, plan: PlanType, price: int) -> int:
    if user_type != UserType.buyer:
        return 0
    if plan == PlanType.free:
        return FREE_BUYER_CONTACTS
    if plan == PlanType.boss:
        return BOSS_CONTACT_PACKS.get(int(price), 0)
    return 0


def plan_features(user_type: UserType, plan: PlanType) -> Dict[str, bool]:
    """Feature flags granted by a plan for a user type."""
    paid = plan != PlanType.free
    seller = user_type in (UserType.owner, UserType.dealer)
    upper = plan in (PlanType.standard, PlanType.premium)
    return {
        "ai": seller and upper,
        "aiInsights": seller and upper,
        "virtual360": paid,
        "virtualTour": seller and paid,
        "featured": paid,
        "topFeatured": seller and upper,
        "homePageFeatured": plan == PlanType.premium,
        "customerCare": plan == PlanType.premium,
    }


def is_valid_price(user_type: UserType, plan: PlanType, price: int) -> bool:
    prices = PLAN_PRICES.get(user_type, {}).get(plan)
    return prices is not None and int(price) in prices


def plan_available(user_type: UserType, plan: PlanType) -> bool:
    return plan in PLAN_PRICES.get(user_type, {})


def plan_catalogue() -> List[Dict[str, Any]]:
    """Public catalogue used by GET /api/subscriptions/plans."""
    catalogue = []
    for user_type, plans in PLAN_PRICES.items():
        for plan, prices in plans.items():
            for price in prices:
                catalogue.append({
                    "userType": user_type.value,
                    "planType": plan.value,
                    "price": price,
                    "listings": listing_quota(user_type, plan),
                    "contacts": contact_quota(user_type, plan, price),
                    "features": plan_features(user_type, plan),
                })
    return catalogue


# ============================================================================
# Subscription Data Model
# ============================================================================

@dataclass
class Quota:
    total: int = 0
    used: int = 0
    refresh_date: Optional[datetime] = None

    @property
    def exhausted(self) -> bool:
        return self.used >= self.total

    @property
    def remaining(self) -> int:
        return max(0, self.total - self.used)

    def to_doc(self) -> Dict[str, Any]:
        return {"total": self.total, "used": self.used, "refreshDate": self.refresh_date}

    @classmethod
    def from_doc(cls, doc: Optional[Dict[str, Any]]) -> "Quota":
        doc = doc or {}
        return cls(total=int(doc.get("total", 0)), used=int(doc.get("used", 0)), refresh_date=doc.get("refreshDate"))


@dataclass
class Subscription:
    """
    Subscription state loaded from the store.

    This is the source of truth for entitlements.
    """
    id: Optional[ObjectId]
    user: ObjectId
    user_type: UserType
    plan_type: PlanType
    price: int
    start_date: datetime
    end_date: datetime
    is_active: bool
    auto_renew: bool = False
    listings: Quota = field(default_factory=Quota)
    contacts: Quota = field(default_factory=Quota)
    features: Dict[str, bool] = field(default_factory=dict)
    payment_history: List[Dict[str, Any]] = field(default_factory=list)

    @classmethod
    def from_doc(cls, doc: Dict[str, Any]) -> "Subscription":
        return cls(
            id=doc.get("_id"),
            user=doc["user"],
            user_type=UserType(doc.get("userType", UserType.buyer.value)),
            plan_type=PlanType(doc.get("planType", PlanType.free.value)),
            price=int(doc.get("price", 0)),
            start_date=doc["startDate"],
            end_date=doc["endDate"],
            is_active=bool(doc.get("isActive", True)),
            auto_renew=bool(doc.get("autoRenew", False)),
            listings=Quota.from_doc(doc.get("listings")),
            contacts=Quota.from_doc(doc.get("contacts")),
            features=dict(doc.get("features") or {}),
            payment_history=list(doc.get("paymentHistory") or []),
        )

    def quota(self, counter: str) -> Quota:
        return self.listings if counter == "listings" else self.contacts


def build_subscription_doc(
    user_id: ObjectId,
    user_type: UserType,
    plan_type: PlanType,
    price: int,
    now: datetime,
    transaction_id: Optional[str] = None,
    auto_renew: bool = False,
) -> Dict[str, Any]:
    """Fresh subscription document with quotas and features derived from the plan."""
    listings = Quota(total=listing_quota(user_type, plan_type))
    contacts = Quota(total=contact_quota(user_type, plan_type, price))
    if plan_type == PlanType.free:
        listings.refresh_date = add_months(now, LISTING_REFRESH_MONTHS)
        if user_type == UserType.buyer:
            contacts.refresh_date = add_months(now, CONTACT_REFRESH_MONTHS)

    payments = []
    if transaction_id:
        payments.append({"transactionId": transaction_id, "amount": price, "date": now, "status": "completed"})

    return {
        "user": user_id,
        "userType": user_type.value,
        "planType": plan_type.value,
        "price": int(price),
        "startDate": now,
        "endDate": add_months(now, SUBSCRIPTION_MONTHS),
        "isActive": True,
        "autoRenew": auto_renew,
        "listings": listings.to_doc(),
        "contacts": contacts.to_doc(),
        "features": plan_features(user_type, plan_type),
        "paymentHistory": payments,
        "createdAt": now,
        "updatedAt": now,
    }


# ============================================================================
# Errors
# ============================================================================

class EntitlementError(Exception):
    """Raised when a subscription does not entitle the user to a feature."""
    pass


class NoSubscriptionError(EntitlementError):
    pass


class SubscriptionInactiveError(EntitlementError):
    pass


class UserTypeNotAllowedError(EntitlementError):
    pass


class PlanTooLowError(EntitlementError):
    pass


class FeatureNotAllowedError(EntitlementError):
    pass


class UsageLimitError(EntitlementError):
    pass


# ============================================================================
# Decision
# ============================================================================

@dataclass
class EntitlementDecision:
    """
    Outcome of a successful check.

    counter:       quota to increment when the grant is consumed (or None)
    reset_counter: the quota was exhausted but its refresh date passed;
                   used goes back to 0 and refresh_date moves to next_refresh
    """
    feature: Feature
    counter: Optional[str] = None
    reset_counter: bool = False
    next_refresh: Optional[datetime] = None


def refresh_months(counter: str) -> int:
    return LISTING_REFRESH_MONTHS if counter == "listings" else CONTACT_REFRESH_MONTHS


def evaluate_entitlement(
    subscription: Optional[Subscription],
    feature: Feature,
    allowed_user_types: Iterable[UserType],
    min_plan: PlanType,
    now: datetime,
) -> EntitlementDecision:
    """
    Decide whether `subscription` permits `feature`. Pure: no store access.

    The subscription's is_active must already reflect lazy expiry.

    Raises:
        NoSubscriptionError, SubscriptionInactiveError, UserTypeNotAllowedError,
        PlanTooLowError, FeatureNotAllowedError, UsageLimitError
    """
    if subscription is None:
        raise NoSubscriptionError("No active subscription")

    if not subscription.is_active:
        raise SubscriptionInactiveError("Your subscription has expired")

    allowed = tuple(allowed_user_types)
    if subscription.user_type not in allowed:
        raise UserTypeNotAllowedError(
            f"This action is only available to {', '.join(t.value for t in allowed)} accounts"
        )

    if not plan_at_least(subscription.plan_type.value, min_plan.value):
        raise PlanTooLowError(f"This action requires a {min_plan.value} plan or higher")

    flag = FEATURE_FLAGS.get(feature)
    if flag and not subscription.features.get(flag, False):
        raise FeatureNotAllowedError(f"Feature '{feature.value}' is not available on your current plan")

    counter = FEATURE_COUNTERS.get(feature)
    if counter == "contacts" and subscription.user_type not in CONTACT_METERED_USER_TYPES:
        counter = None

    decision = EntitlementDecision(feature=feature, counter=counter)
    if counter is None:
        return decision

    quota = subscription.quota(counter)
    if quota.exhausted:
        if quota.refresh_date is not None and quota.refresh_date <= now:
            decision.reset_counter = True
            decision.next_refresh = add_months(now, refresh_months(counter))
        else:
            raise UsageLimitError(
                f"Limit reached: you have used all {quota.total} {counter} for this subscription period"
            )
    return decision


# ============================================================================
# Store operations
# ============================================================================

def get_subscription_doc(db: Database, user_id: ObjectId) -> Optional[Dict[str, Any]]:
    return db.subscriptions.find_one({"user": user_id})


def apply_lazy_expiry(db: Database, doc: Dict[str, Any], now: datetime) -> Dict[str, Any]:
    """Recompute isActive from endDate and persist the flip if it changed."""
    active = derive_subscription_active(doc, now)
    if active != bool(doc.get("isActive", True)):
        db.subscriptions.update_one({"_id": doc["_id"]}, {"$set": {"isActive": active, "updatedAt": now}})
        doc["isActive"] = active
        print(f"[ENTITLEMENT] Subscription {doc['_id']} isActive -> {active}")
    return doc


def apply_quota_refresh(db: Database, doc: Dict[str, Any], now: datetime) -> Dict[str, Any]:
    """Reset exhausted FREE counters whose refresh date has passed."""
    updates: Dict[str, Any] = {}
    for counter in ("listings", "contacts"):
        quota = Quota.from_doc(doc.get(counter))
        if quota.total and quota.exhausted and quota.refresh_date and quota.refresh_date <= now:
            updates[f"{counter}.used"] = 0
            updates[f"{counter}.refreshDate"] = add_months(now, refresh_months(counter))
    if updates:
        updates["updatedAt"] = now
        db.subscriptions.update_one({"_id": doc["_id"]}, {"$set": updates})
        doc = db.subscriptions.find_one({"_id": doc["_id"]})
    return doc


def consume_usage(db: Database, subscription_id: ObjectId, decision: EntitlementDecision, now: datetime) -> None:
    """
    Persist the counter change for a granted decision.

    Read-modify-write without a guard on `used`; see module docstring.
    """
    if decision.counter is None:
        return
    if decision.reset_counter:
        db.subscriptions.update_one(
            {"_id": subscription_id},
            {"$set": {
                f"{decision.counter}.used": 1,
                f"{decision.counter}.refreshDate": decision.next_refresh,
                "updatedAt": now,
            }},
        )
    else:
        db.subscriptions.update_one(
            {"_id": subscription_id},
            {"$inc": {f"{decision.counter}.used": 1}, "$set": {"updatedAt": now}},
        )
    if IS_DEV:
        print(f"[ENTITLEMENT] Consumed 1 {decision.counter} on subscription {subscription_id}")
