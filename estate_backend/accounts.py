# estate_backend/accounts.py
# User document helpers and in-app notifications shared across routers.

from datetime import datetime
from typing import Any, Dict, Optional

from bson import ObjectId
from pymongo.database import Database

from estate_backend.db import parse_object_id, utcnow
from estate_backend.errors import not_found
from estate_backend.models import NotificationPriority, NotificationType, Role

# Never leave the server
PRIVATE_USER_FIELDS = (
    "passwordHash",
    "verifyCode",
    "verifyCodeExpiry",
    "resetCode",
    "resetCodeExpiry",
)

PUBLIC_USER_PROJECTION = {field: 0 for field in PRIVATE_USER_FIELDS}


def new_user_doc(
    name: str,
    email: str,
    password_hash: str,
    role: Role,
    now: datetime,
    phone: Optional[str] = None,
) -> Dict[str, Any]:
    return {
        "name": name,
        "email": email,
        "passwordHash": password_hash,
        "role": role.value,
        "phone": phone,
        "avatar": None,
        "bio": None,
        "isVerified": False,
        "verifyCode": None,
        "verifyCodeExpiry": None,
        "resetCode": None,
        "resetCodeExpiry": None,
        "agentInfo": None,
        "builderInfo": None,
        "favorites": {"properties": [], "projects": [], "agents": [], "builders": []},
        "createdAt": now,
        "updatedAt": now,
    }


def public_user(doc: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in doc.items() if k not in PRIVATE_USER_FIELDS}


def get_user(db: Database, user_id, label: str = "User") -> Dict[str, Any]:
    """Load a user by id or raise 404."""
    user = db.users.find_one({"_id": parse_object_id(user_id, "userId")})
    if user is None:
        raise not_found(label)
    return user


def notify(
    db: Database,
    user_id: ObjectId,
    title: str,
    message: str,
    type: NotificationType = NotificationType.system,
    priority: NotificationPriority = NotificationPriority.medium,
    related_id: Optional[ObjectId] = None,
) -> None:
    db.notifications.insert_one({
        "userId": user_id,
        "title": title,
        "message": message,
        "type": type.value,
        "priority": priority.value,
        "read": False,
        "relatedId": related_id,
        "createdAt": utcnow(),
    })
