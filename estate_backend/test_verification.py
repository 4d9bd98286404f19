"""
estate_backend/test_verification.py

Agent/builder role elevation requests.

Run:
    pytest estate_backend/test_verification.py -v
"""

import pytest

from estate_backend.models import Role

AGENT_REQUEST = {
    "type": "agent",
    "requestDetails": {"licenseNumber": "RERA-1234", "agency": "Acme Realty", "experience": 4,
                       "languages": ["English", "Marathi"]},
}


@pytest.fixture
def admin(make_user):
    return make_user(Role.admin)


class TestVerificationRequests:

    def test_submit_and_list_mine(self, client, make_user):
        user = make_user()
        resp = client.post("/api/requests", json=AGENT_REQUEST, headers=user["headers"])
        assert resp.status_code == 201
        assert resp.json()["data"]["status"] == "pending"

        mine = client.get("/api/requests/mine", headers=user["headers"]).json()["data"]
        assert [r["type"] for r in mine] == ["agent"]

    def test_duplicate_pending_conflicts(self, client, make_user):
        user = make_user()
        client.post("/api/requests", json=AGENT_REQUEST, headers=user["headers"])
        resp = client.post("/api/requests", json=AGENT_REQUEST, headers=user["headers"])
        assert resp.status_code == 409
        assert resp.json()["error"] == "You already have a pending request of this type"

    def test_existing_role_rejected(self, client, make_user):
        agent = make_user(Role.agent)
        assert client.post("/api/requests", json=AGENT_REQUEST, headers=agent["headers"]).status_code == 400

    def test_admin_list_includes_user(self, client, admin, make_user):
        user = make_user(name="Kiran Patel")
        client.post("/api/requests", json=AGENT_REQUEST, headers=user["headers"])
        resp = client.get("/api/requests", headers=admin["headers"])
        assert resp.status_code == 200
        assert resp.json()["data"][0]["user"]["name"] == "Kiran Patel"
        assert client.get("/api/requests", headers=user["headers"]).status_code == 403

    def test_accept_elevates_to_verified_agent(self, client, db, admin, make_user):
        user = make_user()
        request_id = client.post("/api/requests", json=AGENT_REQUEST, headers=user["headers"]).json()["data"]["id"]

        resp = client.post(f"/api/requests/{request_id}/accept", headers=admin["headers"])
        assert resp.status_code == 200
        assert resp.json()["data"]["status"] == "approved"

        stored = db.users.find_one({"_id": user["oid"]})
        assert stored["role"] == "agent"
        assert stored["agentInfo"]["verified"] is True
        assert stored["agentInfo"]["agency"] == "Acme Realty"
        assert db.notifications.count_documents({"userId": user["oid"], "type": "verification"}) == 1

        # the elevated agent now appears in the public directory
        assert client.get(f"/api/agents/{user['id']}").status_code == 200

    def test_accept_builder(self, client, db, admin, make_user):
        user = make_user(name="Skyline Constructions")
        request_id = client.post("/api/requests", json={"type": "builder", "requestDetails": {}},
                                 headers=user["headers"]).json()["data"]["id"]
        client.post(f"/api/requests/{request_id}/accept", headers=admin["headers"])
        stored = db.users.find_one({"_id": user["oid"]})
        assert stored["role"] == "builder"
        assert stored["builderInfo"]["companyName"] == "Skyline Constructions"

    def test_refreshed_token_carries_new_role(self, client, admin, make_user):
        user = make_user()
        request_id = client.post("/api/requests", json=AGENT_REQUEST, headers=user["headers"]).json()["data"]["id"]
        client.post(f"/api/requests/{request_id}/accept", headers=admin["headers"])

        assert client.get("/api/properties/assigned", headers=user["headers"]).status_code == 403

        resp = client.post("/api/auth/refresh", headers=user["headers"])
        assert resp.status_code == 200
        assert resp.json()["data"]["user"]["role"] == "agent"
        token = resp.json()["data"]["token"]
        resp = client.get("/api/properties/assigned", headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 200

    def test_reject_records_reason(self, client, db, admin, make_user):
        user = make_user()
        request_id = client.post("/api/requests", json=AGENT_REQUEST, headers=user["headers"]).json()["data"]["id"]
        resp = client.post(f"/api/requests/{request_id}/reject", json={"reason": "License not found"},
                           headers=admin["headers"])
        assert resp.json()["data"]["rejectionReason"] == "License not found"
        assert db.users.find_one({"_id": user["oid"]})["role"] == "user"

    def test_processed_request_cannot_be_reprocessed(self, client, admin, make_user):
        user = make_user()
        request_id = client.post("/api/requests", json=AGENT_REQUEST, headers=user["headers"]).json()["data"]["id"]
        client.post(f"/api/requests/{request_id}/reject", json={"reason": "No"}, headers=admin["headers"])
        resp = client.post(f"/api/requests/{request_id}/accept", headers=admin["headers"])
        assert resp.status_code == 409
