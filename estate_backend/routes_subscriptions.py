"""
estate_backend/routes_subscriptions.py

Subscription read, purchase and usage endpoints plus the public plan
catalogue. Reads apply lazy expiry and FREE quota refresh before
returning, so the stored document always reflects the current period.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query
from pymongo import DESCENDING
from pymongo.database import Database

from estate_backend.auth_context import AuthContext, require_auth_context
from estate_backend.db import get_db, parse_object_id, utcnow
from estate_backend.entitlements import (
    EntitlementError,
    Subscription,
    apply_lazy_expiry,
    apply_quota_refresh,
    build_subscription_doc,
    consume_usage,
    evaluate_entitlement,
    get_subscription_doc,
    is_valid_price,
    plan_available,
    plan_catalogue,
)
from estate_backend.errors import ApiError, ErrorKind, not_found, validation_error
from estate_backend.models import Feature, PlanType, Role, UserType
from estate_backend.query import Page, find_page, ok, page_params, paginated
from estate_backend.rbac import require_role
from estate_backend.schemas import SubscriptionPurchase, UsageUpdate


router = APIRouter(tags=["subscriptions"])

USAGE_FEATURES = {
    "use_listing": (Feature.create_listing, (UserType.owner, UserType.dealer)),
    "use_contact": (Feature.view_contact, (UserType.buyer, UserType.owner, UserType.dealer)),
}


def current_subscription(db: Database, user_id: str) -> Optional[Dict[str, Any]]:
    now = utcnow()
    doc = get_subscription_doc(db, parse_object_id(user_id, "userId"))
    if doc is None:
        return None
    doc = apply_lazy_expiry(db, doc, now)
    return apply_quota_refresh(db, doc, now)


def carry_usage(quota: Dict[str, Any], previous: Optional[Dict[str, Any]]) -> None:
    """Keep the consumed count (and a running refresh cycle) across a plan change."""
    if not previous:
        return
    quota["used"] = int(previous.get("used", 0))
    if quota.get("refreshDate") and previous.get("refreshDate"):
        quota["refreshDate"] = previous["refreshDate"]


@router.get("/api/subscriptions/plans")
def list_plans():
    return ok(plan_catalogue())


@router.get("/api/subscriptions")
def get_subscription(
    ctx: AuthContext = Depends(require_auth_context),
    db: Database = Depends(get_db),
):
    doc = current_subscription(db, ctx.user_id)
    if doc is None:
        raise not_found("Subscription")
    return ok(doc)


@router.post("/api/subscriptions", status_code=201)
def purchase_subscription(
    payload: SubscriptionPurchase,
    ctx: AuthContext = Depends(require_auth_context),
    db: Database = Depends(get_db),
):
    """
    Start (or replace) the caller's subscription.

    The price must match the catalogue for (userType, planType). Previous
    payment history is carried over to the new period.

    Raises:
        ApiError(400): Plan not offered to this user type, or wrong price
    """
    user_type = UserType(payload.userType)
    plan_type = PlanType(payload.planType)
    if not plan_available(user_type, plan_type):
        raise validation_error(f"Plan {plan_type.value} is not available for {user_type.value}", field="planType")
    if not is_valid_price(user_type, plan_type, payload.price):
        raise validation_error(f"Invalid price for {user_type.value} {plan_type.value} plan", field="price")

    user_oid = parse_object_id(ctx.user_id, "userId")
    now = utcnow()
    doc = build_subscription_doc(
        user_oid, user_type, plan_type, payload.price, now,
        transaction_id=payload.transactionId,
        auto_renew=payload.autoRenew,
    )

    existing = get_subscription_doc(db, user_oid)
    if existing is not None:
        doc["paymentHistory"] = list(existing.get("paymentHistory") or []) + doc["paymentHistory"]
        doc["createdAt"] = existing.get("createdAt", now)
        # a new paid period restarts listing usage; only a BOSS pack restarts contacts
        if plan_type == PlanType.free:
            carry_usage(doc["listings"], existing.get("listings"))
        if not (user_type == UserType.buyer and plan_type == PlanType.boss):
            carry_usage(doc["contacts"], existing.get("contacts"))
    db.subscriptions.replace_one({"user": user_oid}, doc, upsert=True)

    print(f"[SUBSCRIPTION] user_id={ctx.user_id} -> {user_type.value}/{plan_type.value} price={payload.price}")
    return ok(db.subscriptions.find_one({"user": user_oid}), "Subscription activated")


@router.patch("/api/subscriptions/usage")
def record_usage(
    payload: UsageUpdate,
    ctx: AuthContext = Depends(require_auth_context),
    db: Database = Depends(get_db),
):
    """Consume one listing or contact from the caller's quota."""
    feature, allowed = USAGE_FEATURES[payload.action]
    now = utcnow()
    doc = current_subscription(db, ctx.user_id)
    subscription = Subscription.from_doc(doc) if doc is not None else None
    try:
        decision = evaluate_entitlement(subscription, feature, allowed, PlanType.free, now)
    except EntitlementError as e:
        raise ApiError(ErrorKind.ENTITLEMENT, str(e))

    consume_usage(db, subscription.id, decision, now)
    return ok(db.subscriptions.find_one({"_id": subscription.id}), "Usage updated")


# ---------------------------------------------------------
# Admin
# ---------------------------------------------------------
@router.get("/api/admin/subscriptions")
def admin_list_subscriptions(
    userType: Optional[UserType] = Query(None),
    planType: Optional[PlanType] = Query(None),
    isActive: Optional[bool] = Query(None),
    page: Page = Depends(page_params),
    ctx: AuthContext = Depends(require_role(Role.admin)),
    db: Database = Depends(get_db),
):
    filters: Dict[str, Any] = {}
    if userType:
        filters["userType"] = userType.value
    if planType:
        filters["planType"] = planType.value
    if isActive is not None:
        filters["isActive"] = isActive
    docs, total = find_page(db.subscriptions, filters, page, sort=[("createdAt", DESCENDING)])
    users = {
        u["_id"]: {"name": u.get("name"), "email": u.get("email")}
        for u in db.users.find({"_id": {"$in": [d["user"] for d in docs]}}, {"name": 1, "email": 1})
    }
    for doc in docs:
        doc["userDetails"] = users.get(doc["user"])
    return paginated(docs, total, page)
