"""
estate_backend/test_users.py

Profile, favorites, saved searches, notifications and password reset.

Run:
    pytest estate_backend/test_users.py -v
"""

from bson import ObjectId

from estate_backend.accounts import notify
from estate_backend.models import Role


class TestProfile:

    def test_profile_hides_secrets(self, client, make_user):
        user = make_user()
        data = client.get("/api/users/profile", headers=user["headers"]).json()["data"]
        assert data["email"] == user["email"]
        assert "passwordHash" not in data

    def test_update_profile(self, client, make_user):
        user = make_user()
        resp = client.patch("/api/users/profile", json={"bio": "First-time buyer"}, headers=user["headers"])
        assert resp.json()["data"]["bio"] == "First-time buyer"

    def test_null_name_rejected(self, client, db, make_user):
        user = make_user(name="Asha Rao")
        resp = client.patch("/api/users/profile", json={"name": None}, headers=user["headers"])
        assert resp.status_code == 400
        assert db.users.find_one({"_id": user["oid"]})["name"] == "Asha Rao"

    def test_empty_update_rejected(self, client, make_user):
        user = make_user()
        assert client.patch("/api/users/profile", json={}, headers=user["headers"]).status_code == 400


class TestFavorites:

    def test_add_is_idempotent_and_counts_once(self, client, db, make_user):
        user = make_user()
        prop_id = db.properties.insert_one({"title": "Flat", "status": "active", "favorites": 0}).inserted_id
        url = f"/api/users/favorites/properties/{prop_id}"
        client.post(url, headers=user["headers"])
        client.post(url, headers=user["headers"])
        assert db.properties.find_one({"_id": prop_id})["favorites"] == 1

        favorites = client.get("/api/users/favorites", headers=user["headers"]).json()["data"]
        assert [p["id"] for p in favorites["properties"]] == [str(prop_id)]

        client.delete(url, headers=user["headers"])
        assert db.properties.find_one({"_id": prop_id})["favorites"] == 0

    def test_favorite_agent_must_be_agent(self, client, make_user):
        user, not_agent, agent = make_user(), make_user(), make_user(Role.agent)
        assert client.post(f"/api/users/favorites/agents/{not_agent['id']}",
                           headers=user["headers"]).status_code == 404
        assert client.post(f"/api/users/favorites/agents/{agent['id']}", headers=user["headers"]).status_code == 200

    def test_unknown_kind(self, client, make_user):
        user = make_user()
        resp = client.post(f"/api/users/favorites/boats/{ObjectId()}", headers=user["headers"])
        assert resp.status_code == 400


class TestSavedSearches:

    def test_create_list_delete(self, client, make_user):
        user, other = make_user(), make_user()
        search_id = client.post("/api/users/saved-searches", json={"name": "Pune 2BHK", "filters": {"city": "Pune"}},
                                headers=user["headers"]).json()["data"]["id"]
        assert len(client.get("/api/users/saved-searches", headers=user["headers"]).json()["data"]) == 1
        assert client.delete(f"/api/users/saved-searches/{search_id}", headers=other["headers"]).status_code == 404
        assert client.delete(f"/api/users/saved-searches/{search_id}", headers=user["headers"]).status_code == 200


class TestNotifications:

    def test_unread_count_and_read_all(self, client, db, make_user):
        user = make_user()
        notify(db, user["oid"], "Hello", "First")
        notify(db, user["oid"], "Hello", "Second")

        body = client.get("/api/users/notifications", headers=user["headers"]).json()
        assert body["unreadCount"] == 2

        first_id = body["data"][0]["id"]
        client.patch(f"/api/users/notifications/{first_id}", headers=user["headers"])
        assert client.get("/api/users/notifications", params={"unread": True},
                          headers=user["headers"]).json()["pagination"]["total"] == 1

        resp = client.post("/api/users/notifications/read-all", headers=user["headers"])
        assert resp.json()["data"] == {"updated": 1}

    def test_cannot_touch_others_notifications(self, client, db, make_user):
        owner, other = make_user(), make_user()
        notify(db, owner["oid"], "Private", "Only for owner")
        notification_id = db.notifications.find_one({"userId": owner["oid"]})["_id"]
        assert client.delete(f"/api/users/notifications/{notification_id}",
                             headers=other["headers"]).status_code == 404


class TestPasswordReset:

    def test_reset_flow(self, client, db, mailer, make_user):
        user = make_user()
        resp = client.post("/api/auth/forgot-password", json={"email": user["email"]})
        assert resp.status_code == 200
        code = db.users.find_one({"_id": user["oid"]})["resetCode"]
        assert code in mailer.sent[-1]["html"]

        resp = client.post("/api/auth/reset-password",
                           json={"email": user["email"], "code": code, "password": "brand-new-pass"})
        assert resp.status_code == 200
        resp = client.post("/api/auth/login", json={"email": user["email"], "password": "brand-new-pass"})
        assert resp.status_code == 200

    def test_unknown_email_gives_same_answer(self, client, mailer):
        resp = client.post("/api/auth/forgot-password", json={"email": "nobody@example.com"})
        assert resp.status_code == 200
        assert mailer.sent == []
