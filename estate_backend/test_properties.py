"""
estate_backend/test_properties.py

Property listings, inquiries and metered contact access.

Run:
    pytest estate_backend/test_properties.py -v
"""

from datetime import datetime

import pytest
from bson import ObjectId

from estate_backend.models import PlanType, Role, UserType


def seed_property(db, owner, **fields):
    now = datetime.utcnow()
    doc = {
        "title": "Lake view villa",
        "description": "Quiet street, close to the lake",
        "price": 9000000,
        "propertyType": "villa",
        "listingType": "sale",
        "bedrooms": 4,
        "bathrooms": 3,
        "area": 2400,
        "address": {"city": "Pune", "state": "MH", "location": None},
        "status": "active",
        "owner": owner["oid"],
        "agent": None,
        "views": 0,
        "favorites": 0,
        "createdAt": now,
        "updatedAt": now,
    }
    doc.update(fields)
    doc["_id"] = db.properties.insert_one(doc).inserted_id
    return doc


@pytest.fixture
def owner(make_user):
    return make_user(user_type=UserType.owner, plan=PlanType.free, name="Priya Owner")


@pytest.fixture
def buyer(make_user):
    return make_user(user_type=UserType.buyer, plan=PlanType.free, name="Rahul Buyer")


class TestListing:

    def test_public_list_shows_active_only(self, client, db, owner):
        seed_property(db, owner)
        seed_property(db, owner, title="Old flat", status="expired")
        resp = client.get("/api/properties")
        assert resp.status_code == 200
        body = resp.json()
        assert [p["title"] for p in body["data"]] == ["Lake view villa"]
        assert body["pagination"] == {"page": 1, "limit": 10, "total": 1, "pages": 1, "hasMore": False}

    def test_filters(self, client, db, owner):
        seed_property(db, owner, price=100, address={"city": "Mumbai", "location": None})
        seed_property(db, owner, price=500)
        resp = client.get("/api/properties", params={"city": "pune", "minPrice": 200})
        assert [p["price"] for p in resp.json()["data"]] == [500]

    def test_text_query(self, client, db, owner):
        seed_property(db, owner, title="Garden cottage")
        seed_property(db, owner)
        resp = client.get("/api/properties", params={"q": "garden"})
        assert [p["title"] for p in resp.json()["data"]] == ["Garden cottage"]

    def test_unknown_sort_rejected(self, client):
        assert client.get("/api/properties", params={"sort": "random"}).status_code == 400

    def test_pagination(self, client, db, owner):
        for i in range(3):
            seed_property(db, owner, title=f"Listing {i}")
        body = client.get("/api/properties", params={"limit": 2, "page": 2}).json()
        assert len(body["data"]) == 1
        assert body["pagination"]["pages"] == 2
        assert body["pagination"]["hasMore"] is False

    def test_view_increments_for_visitors_only(self, client, db, owner, buyer):
        prop = seed_property(db, owner)
        client.get(f"/api/properties/{prop['_id']}", headers=buyer["headers"])
        client.get(f"/api/properties/{prop['_id']}")
        client.get(f"/api/properties/{prop['_id']}", headers=owner["headers"])
        assert db.properties.find_one({"_id": prop["_id"]})["views"] == 2

    def test_inactive_listing_hidden_from_visitors(self, client, db, owner, buyer):
        prop = seed_property(db, owner, status="draft")
        assert client.get(f"/api/properties/{prop['_id']}", headers=buyer["headers"]).status_code == 404
        assert client.get(f"/api/properties/{prop['_id']}", headers=owner["headers"]).status_code == 200

    def test_unknown_property_404(self, client):
        resp = client.get(f"/api/properties/{ObjectId()}")
        assert resp.status_code == 404
        assert resp.json()["error"] == "Property not found"


class TestMutations:

    def test_non_owner_cannot_update(self, client, db, owner, buyer):
        prop = seed_property(db, owner)
        resp = client.put(f"/api/properties/{prop['_id']}", json={"price": 1}, headers=buyer["headers"])
        assert resp.status_code == 403
        assert db.properties.find_one({"_id": prop["_id"]})["price"] == 9000000

    def test_owner_updates(self, client, db, owner):
        prop = seed_property(db, owner)
        resp = client.put(f"/api/properties/{prop['_id']}", json={"price": 8500000}, headers=owner["headers"])
        assert resp.status_code == 200
        assert resp.json()["data"]["price"] == 8500000

    def test_null_fields_rejected(self, client, db, owner):
        prop = seed_property(db, owner)
        resp = client.put(f"/api/properties/{prop['_id']}", json={"title": None, "price": None},
                          headers=owner["headers"])
        assert resp.status_code == 400
        assert {d["field"] for d in resp.json()["details"]} == {"title", "price"}
        stored = db.properties.find_one({"_id": prop["_id"]})
        assert stored["title"] == "Lake view villa"
        assert stored["price"] == 9000000

    def test_admin_may_update(self, client, db, owner, make_user):
        admin = make_user(Role.admin)
        prop = seed_property(db, owner)
        resp = client.put(f"/api/properties/{prop['_id']}", json={"bedrooms": 5}, headers=admin["headers"])
        assert resp.status_code == 200

    def test_delete_retires_listing(self, client, db, owner):
        prop = seed_property(db, owner)
        assert client.delete(f"/api/properties/{prop['_id']}", headers=owner["headers"]).status_code == 200
        assert db.properties.find_one({"_id": prop["_id"]})["status"] == "expired"

    def test_assign_agent_requires_agent_role(self, client, db, owner, buyer, make_user):
        prop = seed_property(db, owner)
        resp = client.post(f"/api/properties/{prop['_id']}/assign-agent", json={"agentId": buyer["id"]},
                           headers=owner["headers"])
        assert resp.status_code == 400

        agent = make_user(Role.agent)
        resp = client.post(f"/api/properties/{prop['_id']}/assign-agent", json={"agentId": agent["id"]},
                           headers=owner["headers"])
        assert resp.status_code == 200
        assert resp.json()["data"]["agent"] == agent["id"]

        assigned = client.get("/api/properties/assigned", headers=agent["headers"]).json()
        assert [p["id"] for p in assigned["data"]] == [str(prop["_id"])]


class TestInquiries:

    def test_inquiry_on_own_property_rejected(self, client, db, owner):
        prop = seed_property(db, owner)
        resp = client.post(f"/api/properties/{prop['_id']}/inquiries", json={"message": "Is it available?"},
                           headers=owner["headers"])
        assert resp.status_code == 400
        assert "cannot inquire on your own property" in resp.json()["error"]
        assert db.inquiries.count_documents({}) == 0

    def test_inquiry_created_new_and_owner_notified(self, client, db, owner, buyer):
        prop = seed_property(db, owner)
        resp = client.post(f"/api/properties/{prop['_id']}/inquiries", json={"message": "Is it available?"},
                           headers=buyer["headers"])
        assert resp.status_code == 201
        data = resp.json()["data"]
        assert data["status"] == "new"
        assert data["sender"] == buyer["id"]
        assert data["receiver"] == owner["id"]
        assert db.notifications.count_documents({"userId": owner["oid"], "type": "inquiry"}) == 1

    def test_receiver_reading_marks_read(self, client, db, owner, buyer):
        prop = seed_property(db, owner)
        inquiry_id = client.post(f"/api/properties/{prop['_id']}/inquiries", json={"message": "Hello"},
                                 headers=buyer["headers"]).json()["data"]["id"]

        resp = client.get(f"/api/inquiries/{inquiry_id}", headers=buyer["headers"])
        assert resp.json()["data"]["status"] == "new"

        resp = client.get(f"/api/inquiries/{inquiry_id}", headers=owner["headers"])
        assert resp.json()["data"]["status"] == "read"

    def test_third_party_cannot_read_inquiry(self, client, db, owner, buyer, make_user):
        prop = seed_property(db, owner)
        inquiry_id = client.post(f"/api/properties/{prop['_id']}/inquiries", json={"message": "Hello"},
                                 headers=buyer["headers"]).json()["data"]["id"]
        stranger = make_user()
        assert client.get(f"/api/inquiries/{inquiry_id}", headers=stranger["headers"]).status_code == 403

    def test_only_receiver_updates_status(self, client, db, owner, buyer):
        prop = seed_property(db, owner)
        inquiry_id = client.post(f"/api/properties/{prop['_id']}/inquiries", json={"message": "Hello"},
                                 headers=buyer["headers"]).json()["data"]["id"]
        resp = client.patch(f"/api/inquiries/{inquiry_id}", json={"status": "closed"}, headers=buyer["headers"])
        assert resp.status_code == 403
        resp = client.patch(f"/api/inquiries/{inquiry_id}", json={"status": "replied"}, headers=owner["headers"])
        assert resp.status_code == 200
        assert resp.json()["data"]["status"] == "replied"

    def test_property_inquiries_owner_only(self, client, db, owner, buyer):
        prop = seed_property(db, owner)
        client.post(f"/api/properties/{prop['_id']}/inquiries", json={"message": "Hello"}, headers=buyer["headers"])
        assert client.get(f"/api/properties/{prop['_id']}/inquiries", headers=buyer["headers"]).status_code == 403
        resp = client.get(f"/api/properties/{prop['_id']}/inquiries", headers=owner["headers"])
        assert resp.json()["pagination"]["total"] == 1


class TestContactAccess:

    def test_buyer_contact_view_is_metered(self, client, db, owner, buyer):
        prop = seed_property(db, owner)
        resp = client.get(f"/api/properties/{prop['_id']}/contact", headers=buyer["headers"])
        assert resp.status_code == 200
        assert resp.json()["data"]["owner"]["name"] == "Priya Owner"
        assert db.subscriptions.find_one({"user": buyer["oid"]})["contacts"]["used"] == 1

    def test_buyer_contact_limit(self, client, db, owner, buyer):
        prop = seed_property(db, owner)
        db.subscriptions.update_one({"user": buyer["oid"]}, {"$set": {"contacts.used": 10}})
        resp = client.get(f"/api/properties/{prop['_id']}/contact", headers=buyer["headers"])
        assert resp.status_code == 403
        assert resp.json()["error"].startswith("Limit reached")

    def test_owner_viewing_own_contact_not_metered(self, client, db, owner):
        prop = seed_property(db, owner)
        resp = client.get(f"/api/properties/{prop['_id']}/contact", headers=owner["headers"])
        assert resp.status_code == 200
        assert resp.json()["data"]["isOwner"] is True
        assert db.subscriptions.find_one({"user": owner["oid"]})["contacts"]["used"] == 0


class TestHiddenListings:

    def test_contact_of_draft_listing_not_found_and_not_charged(self, client, db, owner, buyer):
        prop = seed_property(db, owner, status="draft")
        resp = client.get(f"/api/properties/{prop['_id']}/contact", headers=buyer["headers"])
        assert resp.status_code == 404
        assert db.subscriptions.find_one({"user": buyer["oid"]})["contacts"]["used"] == 0

    def test_owner_still_sees_own_draft_contact(self, client, db, owner):
        prop = seed_property(db, owner, status="draft")
        assert client.get(f"/api/properties/{prop['_id']}/contact", headers=owner["headers"]).status_code == 200

    def test_no_inquiry_on_expired_listing(self, client, db, owner, buyer):
        prop = seed_property(db, owner, status="expired")
        resp = client.post(f"/api/properties/{prop['_id']}/inquiries", json={"message": "Still available?"},
                           headers=buyer["headers"])
        assert resp.status_code == 404
        assert db.inquiries.count_documents({}) == 0

    def test_virtual_tour_of_draft_listing_hidden(self, client, db, owner):
        tour = {"tourType": "video-tour", "tourUrl": "https://example.com/tour"}
        prop = seed_property(db, owner, status="draft", virtualTour=tour)
        assert client.get(f"/api/properties/{prop['_id']}/virtual-tour").status_code == 404
        resp = client.get(f"/api/properties/{prop['_id']}/virtual-tour", headers=owner["headers"])
        assert resp.json()["data"]["tourUrl"] == "https://example.com/tour"


class TestVirtualTour:

    def test_free_plan_denied(self, client, db, owner):
        prop = seed_property(db, owner)
        resp = client.post(f"/api/properties/{prop['_id']}/virtual-tour",
                           json={"tourType": "video-tour", "tourUrl": "https://example.com/tour"},
                           headers=owner["headers"])
        assert resp.status_code == 403

    def test_basic_plan_sets_tour(self, client, db, make_user):
        seller = make_user(user_type=UserType.owner, plan=PlanType.basic, price=500)
        prop = seed_property(db, seller)
        resp = client.post(f"/api/properties/{prop['_id']}/virtual-tour",
                           json={"tourType": "360-panorama"}, headers=seller["headers"])
        assert resp.status_code == 400

        resp = client.post(f"/api/properties/{prop['_id']}/virtual-tour",
                           json={"tourType": "360-panorama", "panoramaImages": ["https://cdn.example.com/p1.jpg"]},
                           headers=seller["headers"])
        assert resp.status_code == 200
        tour = client.get(f"/api/properties/{prop['_id']}/virtual-tour").json()["data"]
        assert tour["panoramaImages"] == ["https://cdn.example.com/p1.jpg"]


class TestPropertyInsights:

    def test_standard_owner_gets_insights(self, client, db, make_user, owner):
        seller = make_user(user_type=UserType.owner, plan=PlanType.standard, price=1000)
        prop = seed_property(db, seller, price=10000000, area=2000)
        seed_property(db, owner, price=8000000)
        seed_property(db, owner, price=9000000)
        seed_property(db, owner, listingType="rent", price=40000)

        resp = client.post("/api/ai/property-insights", json={"propertyId": str(prop["_id"])},
                           headers=seller["headers"])
        assert resp.status_code == 200
        insights = resp.json()["data"]["insights"]
        assert insights["pricing"]["comparableMedianPrice"] == 8500000
        assert insights["pricing"]["assessment"] == "above market"
        assert insights["pricing"]["pricePerArea"] == 5000
        assert insights["marketTrends"]["comparableListings"] == 2
        assert insights["investmentPotential"]["estimatedMonthlyRent"] == 40000
        assert insights["investmentPotential"]["grossRentalYieldPercent"] == 4.8

    def test_selected_aspects_only(self, client, db, make_user):
        seller = make_user(user_type=UserType.owner, plan=PlanType.premium, price=2000)
        prop = seed_property(db, seller)
        resp = client.post("/api/ai/property-insights",
                           json={"propertyId": str(prop["_id"]), "aspectsToAnalyze": ["pricing"]},
                           headers=seller["headers"])
        assert list(resp.json()["data"]["insights"]) == ["pricing"]
