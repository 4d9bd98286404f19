"""
estate_backend/test_entitlements.py

Subscription entitlement engine.

Tests verify:
1. The decision order (subscription, active, user type, plan, flag, quota)
2. Lazy expiry flips isActive before access is evaluated
3. Plan-tier denials never touch a counter
4. FREE quotas refresh once their refresh date has passed
5. Catalogue helpers (prices, quotas, calendar months)

Run:
    pytest estate_backend/test_entitlements.py -v
"""

from datetime import datetime, timedelta

import pytest
from bson import ObjectId

from estate_backend.entitlements import (
    FeatureNotAllowedError,
    NoSubscriptionError,
    PlanTooLowError,
    Subscription,
    SubscriptionInactiveError,
    UsageLimitError,
    UserTypeNotAllowedError,
    build_subscription_doc,
    contact_quota,
    evaluate_entitlement,
    is_valid_price,
    listing_quota,
    plan_at_least,
    plan_available,
)
from estate_backend.lifecycle import add_months
from estate_backend.models import Feature, PlanType, Role, UserType


NOW = datetime(2025, 6, 15, 12, 0, 0)
SELLERS = (UserType.owner, UserType.dealer)

PROPERTY = {
    "title": "Sunny 2BHK near the park",
    "price": 5000000,
    "propertyType": "apartment",
    "listingType": "sale",
    "bedrooms": 2,
    "area": 1000,
    "address": {"city": "Pune", "state": "MH", "coordinates": [73.85, 18.52]},
}


def make_subscription(user_type, plan, price=0, **overrides):
    doc = build_subscription_doc(ObjectId(), user_type, plan, price, NOW)
    doc["_id"] = ObjectId()
    doc.update(overrides)
    return Subscription.from_doc(doc)


def verify_kyc(db, user):
    db.kyc_requests.insert_one({
        "userId": user["oid"],
        "name": "Test",
        "pan": "ABCDE1234F",
        "status": "accepted",
        "otpVerified": True,
        "createdAt": NOW,
    })


# ========================================================================
# Pure decision
# ========================================================================

class TestEvaluateEntitlement:

    def test_no_subscription(self):
        with pytest.raises(NoSubscriptionError, match="No active subscription"):
            evaluate_entitlement(None, Feature.create_listing, SELLERS, PlanType.free, NOW)

    def test_inactive_subscription(self):
        sub = make_subscription(UserType.owner, PlanType.basic, 500, isActive=False)
        with pytest.raises(SubscriptionInactiveError):
            evaluate_entitlement(sub, Feature.create_listing, SELLERS, PlanType.free, NOW)

    def test_user_type_not_allowed(self):
        sub = make_subscription(UserType.buyer, PlanType.free)
        with pytest.raises(UserTypeNotAllowedError):
            evaluate_entitlement(sub, Feature.create_listing, SELLERS, PlanType.free, NOW)

    def test_plan_below_minimum(self):
        sub = make_subscription(UserType.owner, PlanType.free)
        with pytest.raises(PlanTooLowError, match="standard"):
            evaluate_entitlement(sub, Feature.use_ai, SELLERS, PlanType.standard, NOW)

    def test_plan_at_minimum_with_flag(self):
        sub = make_subscription(UserType.owner, PlanType.standard, 1000)
        decision = evaluate_entitlement(sub, Feature.use_ai, SELLERS, PlanType.standard, NOW)
        assert decision.counter is None

    def test_flag_missing_on_plan(self):
        sub = make_subscription(UserType.owner, PlanType.basic, 500)
        with pytest.raises(FeatureNotAllowedError):
            evaluate_entitlement(sub, Feature.customer_care, SELLERS, PlanType.basic, NOW)

    def test_listing_counter_selected(self):
        sub = make_subscription(UserType.owner, PlanType.free)
        decision = evaluate_entitlement(sub, Feature.create_listing, SELLERS, PlanType.free, NOW)
        assert decision.counter == "listings"
        assert decision.reset_counter is False

    def test_contacts_metered_for_buyers_only(self):
        buyer = make_subscription(UserType.buyer, PlanType.free)
        owner = make_subscription(UserType.owner, PlanType.free)
        allowed = (UserType.buyer, UserType.owner, UserType.dealer)
        assert evaluate_entitlement(buyer, Feature.view_contact, allowed, PlanType.free, NOW).counter == "contacts"
        assert evaluate_entitlement(owner, Feature.view_contact, allowed, PlanType.free, NOW).counter is None

    def test_exhausted_quota_before_refresh(self):
        sub = make_subscription(UserType.dealer, PlanType.free)
        sub.listings.used = sub.listings.total
        with pytest.raises(UsageLimitError, match="Limit reached"):
            evaluate_entitlement(sub, Feature.create_listing, SELLERS, PlanType.free, NOW)

    def test_exhausted_quota_after_refresh_resets(self):
        sub = make_subscription(UserType.dealer, PlanType.free)
        sub.listings.used = sub.listings.total
        later = sub.listings.refresh_date + timedelta(days=1)
        decision = evaluate_entitlement(sub, Feature.create_listing, SELLERS, PlanType.free, later)
        assert decision.reset_counter is True
        assert decision.next_refresh == add_months(later, 3)

    def test_paid_plan_has_no_refresh(self):
        sub = make_subscription(UserType.owner, PlanType.basic, 500)
        sub.listings.used = sub.listings.total
        with pytest.raises(UsageLimitError):
            evaluate_entitlement(sub, Feature.create_listing, SELLERS, PlanType.free, NOW + timedelta(days=400))


class TestCatalogue:

    def test_plan_ordering(self):
        assert plan_at_least("premium", "basic")
        assert plan_at_least("boss", "premium")
        assert not plan_at_least("free", "premium")
        assert not plan_at_least("bogus", "free")

    def test_prices(self):
        assert is_valid_price(UserType.owner, PlanType.basic, 500)
        assert not is_valid_price(UserType.owner, PlanType.basic, 499)
        assert is_valid_price(UserType.dealer, PlanType.premium, 5000)
        assert is_valid_price(UserType.buyer, PlanType.boss, 2000)
        assert not plan_available(UserType.buyer, PlanType.premium)

    def test_quotas(self):
        assert listing_quota(UserType.owner, PlanType.free) == 2
        assert listing_quota(UserType.dealer, PlanType.free) == 1
        assert listing_quota(UserType.buyer, PlanType.free) == 0
        assert contact_quota(UserType.buyer, PlanType.free, 0) == 10
        assert contact_quota(UserType.buyer, PlanType.boss, 10000) == 100

    def test_free_subscription_refresh_dates(self):
        doc = build_subscription_doc(ObjectId(), UserType.buyer, PlanType.free, 0, NOW)
        assert doc["endDate"] == add_months(NOW, 1)
        assert doc["contacts"]["refreshDate"] == add_months(NOW, 9)
        assert doc["paymentHistory"] == []

    def test_add_months_clamps_day(self):
        assert add_months(datetime(2024, 1, 31), 1) == datetime(2024, 2, 29)
        assert add_months(datetime(2025, 11, 30), 3) == datetime(2026, 2, 28)


# ========================================================================
# Through the API
# ========================================================================

class TestEntitlementEnforcement:

    def test_free_plan_on_standard_feature_denied_without_counter(self, client, db, make_user):
        owner = make_user(user_type=UserType.owner, plan=PlanType.free)
        before = db.subscriptions.find_one({"user": owner["oid"]})

        resp = client.post("/api/ai/property-insights", json={"propertyId": str(ObjectId())},
                           headers=owner["headers"])
        assert resp.status_code == 403
        assert "standard" in resp.json()["error"]

        after = db.subscriptions.find_one({"user": owner["oid"]})
        assert after["listings"] == before["listings"]
        assert after["contacts"] == before["contacts"]

    def test_expired_subscription_flips_inactive_before_check(self, client, db, make_user):
        owner = make_user(user_type=UserType.owner, plan=PlanType.basic, price=500)
        db.subscriptions.update_one({"user": owner["oid"]},
                                    {"$set": {"endDate": datetime.utcnow() - timedelta(days=1)}})
        verify_kyc(db, owner)

        resp = client.post("/api/properties", json=PROPERTY, headers=owner["headers"])
        assert resp.status_code == 403
        assert resp.json()["error"] == "Your subscription has expired"
        assert db.subscriptions.find_one({"user": owner["oid"]})["isActive"] is False

    def test_missing_subscription(self, client, make_user):
        owner = make_user(subscription=False)
        resp = client.post("/api/properties", json=PROPERTY, headers=owner["headers"])
        assert resp.status_code == 403
        assert resp.json()["error"] == "No active subscription"

    def test_listing_quota_consumed_and_enforced(self, client, db, make_user):
        dealer = make_user(user_type=UserType.dealer, plan=PlanType.free)
        verify_kyc(db, dealer)

        resp = client.post("/api/properties", json=PROPERTY, headers=dealer["headers"])
        assert resp.status_code == 201
        assert db.subscriptions.find_one({"user": dealer["oid"]})["listings"]["used"] == 1

        resp = client.post("/api/properties", json=PROPERTY, headers=dealer["headers"])
        assert resp.status_code == 403
        assert resp.json()["error"].startswith("Limit reached")
        assert db.subscriptions.find_one({"user": dealer["oid"]})["listings"]["used"] == 1

    def test_invalid_body_does_not_consume(self, client, db, make_user):
        owner = make_user(user_type=UserType.owner, plan=PlanType.free)
        verify_kyc(db, owner)
        resp = client.post("/api/properties", json={**PROPERTY, "price": -1}, headers=owner["headers"])
        assert resp.status_code == 400
        assert db.subscriptions.find_one({"user": owner["oid"]})["listings"]["used"] == 0

    def test_kyc_denial_does_not_consume(self, client, db, make_user):
        owner = make_user(user_type=UserType.owner, plan=PlanType.free)
        resp = client.post("/api/properties", json=PROPERTY, headers=owner["headers"])
        assert resp.status_code == 403
        assert "KYC" in resp.json()["error"]
        assert db.subscriptions.find_one({"user": owner["oid"]})["listings"]["used"] == 0

    def test_exhausted_free_quota_refreshes_on_check(self, client, db, make_user):
        dealer = make_user(user_type=UserType.dealer, plan=PlanType.free)
        verify_kyc(db, dealer)
        db.subscriptions.update_one(
            {"user": dealer["oid"]},
            {"$set": {"listings.used": 1, "listings.refreshDate": datetime.utcnow() - timedelta(days=1)}},
        )
        resp = client.post("/api/properties", json=PROPERTY, headers=dealer["headers"])
        assert resp.status_code == 201
        listings = db.subscriptions.find_one({"user": dealer["oid"]})["listings"]
        assert listings["used"] == 1
        assert listings["refreshDate"] > datetime.utcnow()

    def test_admin_role_does_not_bypass_entitlement(self, client, make_user):
        admin = make_user(Role.admin, user_type=UserType.buyer)
        resp = client.post("/api/properties", json=PROPERTY, headers=admin["headers"])
        assert resp.status_code == 403
