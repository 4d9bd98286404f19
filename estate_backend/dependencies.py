"""
estate_backend/dependencies.py

Reusable FastAPI dependencies for subscription entitlement enforcement.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Iterable, Optional

from fastapi import Depends
from pymongo.database import Database

from estate_backend.auth_context import AuthContext, require_auth_context
from estate_backend.config import IS_DEV
from estate_backend.db import get_db, parse_object_id, utcnow
from estate_backend.entitlements import (
    EntitlementDecision,
    EntitlementError,
    Subscription,
    apply_lazy_expiry,
    consume_usage,
    evaluate_entitlement,
    get_subscription_doc,
)
from estate_backend.errors import ApiError, ErrorKind
from estate_backend.models import Feature, PlanType, UserType


@dataclass
class EntitlementGrant:
    """
    A successful entitlement check, handed to the route.

    The route calls consume() once its own validation has passed and it is
    about to perform the store write. Denied checks never reach the route,
    so no counter moves for them.
    """
    ctx: AuthContext
    subscription: Subscription
    decision: EntitlementDecision
    db: Database
    consumed: bool = False

    def consume(self) -> None:
        if self.consumed:
            return
        consume_usage(self.db, self.subscription.id, self.decision, utcnow())
        self.consumed = True


def require_entitlement(
    feature: Feature,
    allowed_user_types: Iterable[UserType],
    min_plan: PlanType = PlanType.free,
) -> Callable:
    """
    FastAPI dependency factory for subscription-aware feature authorization.

    Order of checks:
      1. identity present (401)
      2. subscription exists (403 "No active subscription")
      3. lazy expiry persisted, inactive rejected (403)
      4. user type allowed (403)
      5. plan tier >= min_plan (403, no counter touched)
      6. quota or feature flag (403 "Limit reached", with refresh when due)

    Usage in routes:
        @router.post("")
        def create_property(
            payload: PropertyCreate,
            grant: EntitlementGrant = Depends(require_entitlement(
                Feature.create_listing, (UserType.owner, UserType.dealer))),
        ):
            ...
            grant.consume()

    Raises:
        ApiError(401): If the request carries no identity
        ApiError(403): If the subscription does not entitle the feature
    """
    allowed = tuple(allowed_user_types)

    def _check_entitlement(
        ctx: AuthContext = Depends(require_auth_context),
        db: Database = Depends(get_db),
    ) -> EntitlementGrant:
        now = utcnow()
        doc: Optional[dict] = get_subscription_doc(db, parse_object_id(ctx.user_id, "userId"))
        if doc is not None:
            doc = apply_lazy_expiry(db, doc, now)
        subscription = Subscription.from_doc(doc) if doc is not None else None

        try:
            decision = evaluate_entitlement(subscription, feature, allowed, min_plan, now)
        except EntitlementError as e:
            print(f"[ENTITLEMENT] Denied: feature={feature.value}, user_id={ctx.user_id}, reason={e}")
            raise ApiError(ErrorKind.ENTITLEMENT, str(e))

        if IS_DEV:
            print(f"[ENTITLEMENT] Granted: feature={feature.value}, user_id={ctx.user_id}, "
                  f"plan={subscription.plan_type.value}, counter={decision.counter}")
        return EntitlementGrant(ctx=ctx, subscription=subscription, decision=decision, db=db)

    return _check_entitlement
