"""
estate_backend/routes_users.py

Per-user endpoints: profile, favorites, saved searches, notifications and
the inquiry inbox/outbox. Everything is scoped to the caller's own id.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional

from fastapi import APIRouter, Depends, Query
from pymongo import DESCENDING
from pymongo.database import Database

from estate_backend.accounts import PUBLIC_USER_PROJECTION, get_user, public_user
from estate_backend.auth_context import AuthContext, require_auth_context
from estate_backend.config import IS_DEV
from estate_backend.db import get_db, parse_object_id, utcnow
from estate_backend.errors import not_found, validation_error
from estate_backend.models import FavoriteKind, InquiryStatus, Role
from estate_backend.query import Page, find_page, ok, page_params, paginated
from estate_backend.schemas import ProfileUpdate, SavedSearchCreate


router = APIRouter(
    prefix="/api/users",
    tags=["users"],
)


class InquiryBox(str, Enum):
    sent = "sent"
    received = "received"


# kind -> (collection, extra filter the target must match)
FAVORITE_TARGETS = {
    FavoriteKind.properties: ("properties", {}),
    FavoriteKind.projects: ("projects", {}),
    FavoriteKind.agents: ("users", {"role": Role.agent.value}),
    FavoriteKind.builders: ("users", {"role": Role.builder.value}),
}

# listings that keep a favorites counter in sync
COUNTED_FAVORITES = (FavoriteKind.properties, FavoriteKind.projects)


# ---------------------------------------------------------
# Profile
# ---------------------------------------------------------
@router.get("/profile")
def get_profile(ctx: AuthContext = Depends(require_auth_context), db: Database = Depends(get_db)):
    return ok(public_user(get_user(db, ctx.user_id)))


@router.patch("/profile")
def update_profile(
    payload: ProfileUpdate,
    ctx: AuthContext = Depends(require_auth_context),
    db: Database = Depends(get_db),
):
    updates = payload.dict(exclude_unset=True)
    if not updates:
        raise validation_error("No updatable fields provided")
    updates["updatedAt"] = utcnow()
    user_id = parse_object_id(ctx.user_id, "userId")
    db.users.update_one({"_id": user_id}, {"$set": updates})
    return ok(public_user(get_user(db, user_id)), "Profile updated")


# ---------------------------------------------------------
# Favorites
# ---------------------------------------------------------
@router.get("/favorites")
def list_favorites(ctx: AuthContext = Depends(require_auth_context), db: Database = Depends(get_db)):
    user = get_user(db, ctx.user_id)
    favorites = user.get("favorites") or {}
    data = {}
    for kind, (collection, _) in FAVORITE_TARGETS.items():
        ids = favorites.get(kind.value) or []
        projection = PUBLIC_USER_PROJECTION if collection == "users" else None
        data[kind.value] = list(db[collection].find({"_id": {"$in": ids}}, projection)) if ids else []
    return ok(data)


@router.post("/favorites/{kind}/{target_id}")
def add_favorite(
    kind: FavoriteKind,
    target_id: str,
    ctx: AuthContext = Depends(require_auth_context),
    db: Database = Depends(get_db),
):
    collection, extra = FAVORITE_TARGETS[kind]
    oid = parse_object_id(target_id, "targetId")
    if db[collection].find_one({"_id": oid, **extra}) is None:
        raise not_found(kind.value[:-1].capitalize())

    result = db.users.update_one(
        {"_id": parse_object_id(ctx.user_id, "userId"), f"favorites.{kind.value}": {"$ne": oid}},
        {"$addToSet": {f"favorites.{kind.value}": oid}},
    )
    if result.matched_count and kind in COUNTED_FAVORITES:
        db[collection].update_one({"_id": oid}, {"$inc": {"favorites": 1}})
    if IS_DEV:
        print(f"[USERS] Favorite added user_id={ctx.user_id}, {kind.value}={target_id}")
    return ok({"kind": kind.value, "id": target_id}, "Added to favorites")


@router.delete("/favorites/{kind}/{target_id}")
def remove_favorite(
    kind: FavoriteKind,
    target_id: str,
    ctx: AuthContext = Depends(require_auth_context),
    db: Database = Depends(get_db),
):
    collection, _ = FAVORITE_TARGETS[kind]
    oid = parse_object_id(target_id, "targetId")
    result = db.users.update_one(
        {"_id": parse_object_id(ctx.user_id, "userId"), f"favorites.{kind.value}": oid},
        {"$pull": {f"favorites.{kind.value}": oid}},
    )
    if result.matched_count and kind in COUNTED_FAVORITES:
        db[collection].update_one({"_id": oid, "favorites": {"$gt": 0}}, {"$inc": {"favorites": -1}})
    return ok({"kind": kind.value, "id": target_id}, "Removed from favorites")


# ---------------------------------------------------------
# Saved searches
# ---------------------------------------------------------
@router.get("/saved-searches")
def list_saved_searches(ctx: AuthContext = Depends(require_auth_context), db: Database = Depends(get_db)):
    docs = db.saved_searches.find({"user": parse_object_id(ctx.user_id, "userId")}).sort("createdAt", DESCENDING)
    return ok(list(docs))


@router.post("/saved-searches", status_code=201)
def create_saved_search(
    payload: SavedSearchCreate,
    ctx: AuthContext = Depends(require_auth_context),
    db: Database = Depends(get_db),
):
    now = utcnow()
    doc = {"user": parse_object_id(ctx.user_id, "userId"), **payload.dict(), "createdAt": now, "updatedAt": now}
    doc["_id"] = db.saved_searches.insert_one(doc).inserted_id
    return ok(doc, "Search saved")


@router.delete("/saved-searches/{search_id}")
def delete_saved_search(
    search_id: str,
    ctx: AuthContext = Depends(require_auth_context),
    db: Database = Depends(get_db),
):
    result = db.saved_searches.delete_one({
        "_id": parse_object_id(search_id, "searchId"),
        "user": parse_object_id(ctx.user_id, "userId"),
    })
    if not result.deleted_count:
        raise not_found("Saved search")
    return ok(message="Saved search deleted")


# ---------------------------------------------------------
# Notifications
# ---------------------------------------------------------
@router.get("/notifications")
def list_notifications(
    unread: bool = Query(False),
    page: Page = Depends(page_params),
    ctx: AuthContext = Depends(require_auth_context),
    db: Database = Depends(get_db),
):
    filters = {"userId": parse_object_id(ctx.user_id, "userId")}
    if unread:
        filters["read"] = False
    docs, total = find_page(db.notifications, filters, page, sort=[("createdAt", DESCENDING)])
    body = paginated(docs, total, page)
    body["unreadCount"] = db.notifications.count_documents({"userId": filters["userId"], "read": False})
    return body


@router.patch("/notifications/{notification_id}")
def mark_notification_read(
    notification_id: str,
    ctx: AuthContext = Depends(require_auth_context),
    db: Database = Depends(get_db),
):
    oid = parse_object_id(notification_id, "notificationId")
    result = db.notifications.update_one(
        {"_id": oid, "userId": parse_object_id(ctx.user_id, "userId")},
        {"$set": {"read": True, "readAt": utcnow()}},
    )
    if not result.matched_count:
        raise not_found("Notification")
    return ok(db.notifications.find_one({"_id": oid}), "Notification marked as read")


@router.post("/notifications/read-all")
def mark_all_notifications_read(ctx: AuthContext = Depends(require_auth_context), db: Database = Depends(get_db)):
    result = db.notifications.update_many(
        {"userId": parse_object_id(ctx.user_id, "userId"), "read": False},
        {"$set": {"read": True, "readAt": utcnow()}},
    )
    return ok({"updated": result.matched_count}, "All notifications marked as read")


@router.delete("/notifications/{notification_id}")
def delete_notification(
    notification_id: str,
    ctx: AuthContext = Depends(require_auth_context),
    db: Database = Depends(get_db),
):
    result = db.notifications.delete_one({
        "_id": parse_object_id(notification_id, "notificationId"),
        "userId": parse_object_id(ctx.user_id, "userId"),
    })
    if not result.deleted_count:
        raise not_found("Notification")
    return ok(message="Notification deleted")


# ---------------------------------------------------------
# Inquiries
# ---------------------------------------------------------
@router.get("/inquiries")
def list_my_inquiries(
    box: InquiryBox = Query(InquiryBox.received),
    status: Optional[InquiryStatus] = Query(None),
    page: Page = Depends(page_params),
    ctx: AuthContext = Depends(require_auth_context),
    db: Database = Depends(get_db),
):
    field = "sender" if box == InquiryBox.sent else "receiver"
    filters = {field: parse_object_id(ctx.user_id, "userId")}
    if status:
        filters["status"] = status.value
    docs, total = find_page(db.inquiries, filters, page, sort=[("createdAt", DESCENDING)])
    return paginated(docs, total, page)
