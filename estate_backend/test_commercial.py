"""
estate_backend/test_commercial.py

Fractional commercial listings and builder projects.

Run:
    pytest estate_backend/test_commercial.py -v
"""

import pytest

from estate_backend.models import Role

LISTING = {
    "title": "Grade A office floor",
    "propertyType": "Office",
    "location": {"city": "Bengaluru", "state": "KA"},
    "totalShares": 1000,
    "availableShares": 400,
    "pricePerShare": 25000,
    "spvId": "SPV-001",
    "status": "active",
}

PROJECT = {
    "projectName": "Riverside Towers",
    "projectType": "residential",
    "city": "Pune",
    "locality": "Kharadi",
    "priceRange": {"min": 6000000, "max": 12000000},
}


@pytest.fixture
def builder(make_user):
    return make_user(Role.builder, builderInfo={"companyName": "Skyline Constructions", "verified": True})


@pytest.fixture
def admin(make_user):
    return make_user(Role.admin)


class TestCommercial:

    def test_only_builders_and_admins_create(self, client, make_user, builder):
        user = make_user()
        assert client.post("/api/commercial", json=LISTING, headers=user["headers"]).status_code == 403
        resp = client.post("/api/commercial", json=LISTING, headers=builder["headers"])
        assert resp.status_code == 201
        assert resp.json()["data"]["owner"] == builder["id"]

    def test_available_cannot_exceed_total(self, client, builder):
        resp = client.post("/api/commercial", json={**LISTING, "availableShares": 1001}, headers=builder["headers"])
        assert resp.status_code == 400

    def test_duplicate_spv_conflicts(self, client, admin, builder):
        assert client.post("/api/commercial", json=LISTING, headers=builder["headers"]).status_code == 201
        resp = client.post("/api/commercial", json={**LISTING, "title": "Another floor"}, headers=admin["headers"])
        assert resp.status_code == 409

    def test_update_keeps_share_invariant(self, client, builder):
        listing_id = client.post("/api/commercial", json=LISTING, headers=builder["headers"]).json()["data"]["id"]

        resp = client.put(f"/api/commercial/{listing_id}", json={"totalShares": 300}, headers=builder["headers"])
        assert resp.status_code == 400
        assert resp.json()["details"][0]["field"] == "availableShares"

        resp = client.put(f"/api/commercial/{listing_id}", json={"availableShares": 100}, headers=builder["headers"])
        assert resp.status_code == 200
        assert resp.json()["data"]["availableShares"] == 100

    def test_null_share_count_rejected(self, client, db, builder):
        listing_id = client.post("/api/commercial", json=LISTING, headers=builder["headers"]).json()["data"]["id"]
        resp = client.put(f"/api/commercial/{listing_id}", json={"totalShares": None}, headers=builder["headers"])
        assert resp.status_code == 400
        assert resp.json()["details"][0]["field"] == "totalShares"
        assert db.commercial_properties.find_one({"spvId": "SPV-001"})["totalShares"] == 1000

    def test_other_builder_cannot_update(self, client, builder, make_user):
        listing_id = client.post("/api/commercial", json=LISTING, headers=builder["headers"]).json()["data"]["id"]
        rival = make_user(Role.builder)
        resp = client.put(f"/api/commercial/{listing_id}", json={"pricePerShare": 1}, headers=rival["headers"])
        assert resp.status_code == 403

    def test_public_filters(self, client, builder):
        client.post("/api/commercial", json=LISTING, headers=builder["headers"])
        client.post("/api/commercial", json={**LISTING, "spvId": "SPV-002", "propertyType": "Retail",
                                             "pricePerShare": 5000}, headers=builder["headers"])
        resp = client.get("/api/commercial", params={"propertyType": "Retail"})
        assert [c["spvId"] for c in resp.json()["data"]] == ["SPV-002"]
        resp = client.get("/api/commercial", params={"sort": "price_asc"})
        assert [c["spvId"] for c in resp.json()["data"]] == ["SPV-002", "SPV-001"]

    def test_delete(self, client, builder):
        listing_id = client.post("/api/commercial", json=LISTING, headers=builder["headers"]).json()["data"]["id"]
        assert client.delete(f"/api/commercial/{listing_id}", headers=builder["headers"]).status_code == 200
        assert client.get(f"/api/commercial/{listing_id}").status_code == 404


class TestProjects:

    def test_new_project_pending_and_hidden(self, client, builder):
        resp = client.post("/api/projects", json=PROJECT, headers=builder["headers"])
        assert resp.status_code == 201
        data = resp.json()["data"]
        assert data["status"] == "pending"
        assert data["developerContact"]["affiliation"] == "Skyline Constructions"

        assert client.get("/api/projects").json()["data"] == []
        assert client.get(f"/api/projects/{data['id']}").status_code == 404
        assert client.get(f"/api/projects/{data['id']}", headers=builder["headers"]).status_code == 200

    def test_only_builders_create(self, client, make_user):
        user = make_user()
        assert client.post("/api/projects", json=PROJECT, headers=user["headers"]).status_code == 403

    def test_price_range_order(self, client, builder):
        body = {**PROJECT, "priceRange": {"min": 10, "max": 5}}
        assert client.post("/api/projects", json=body, headers=builder["headers"]).status_code == 400

    def test_admin_activation_publishes(self, client, builder, admin):
        project_id = client.post("/api/projects", json=PROJECT, headers=builder["headers"]).json()["data"]["id"]
        assert client.patch(f"/api/projects/{project_id}/status", json={"status": "active"},
                            headers=builder["headers"]).status_code == 403

        resp = client.patch(f"/api/projects/{project_id}/status", json={"status": "active"}, headers=admin["headers"])
        assert resp.json()["data"]["verified"] is True
        listed = client.get("/api/projects", params={"city": "pune"}).json()["data"]
        assert [p["id"] for p in listed] == [project_id]

    def test_counters(self, client, builder):
        project_id = client.post("/api/projects", json=PROJECT, headers=builder["headers"]).json()["data"]["id"]
        client.post(f"/api/projects/{project_id}/view")
        resp = client.post(f"/api/projects/{project_id}/view")
        assert resp.json()["data"] == {"views": 2}
        assert client.post(f"/api/projects/{project_id}/inquiry").json()["data"] == {"inquiries": 1}

    def test_mine(self, client, builder, make_user):
        client.post("/api/projects", json=PROJECT, headers=builder["headers"])
        other = make_user(Role.builder)
        client.post("/api/projects", json={**PROJECT, "projectName": "Hilltop"}, headers=other["headers"])
        mine = client.get("/api/projects/mine", headers=builder["headers"]).json()["data"]
        assert [p["projectName"] for p in mine] == ["Riverside Towers"]
