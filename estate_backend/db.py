# estate_backend/db.py
# Document store access: client lifecycle, dependency injection, id and
# serialization helpers.

from datetime import date, datetime
from typing import Any, Dict, Optional, Union

from bson import ObjectId
from bson.errors import InvalidId
from fastapi import Request
from pymongo import ASCENDING, DESCENDING, GEOSPHERE, TEXT, MongoClient
from pymongo.database import Database

from estate_backend.config import IS_DEV, MONGODB_DB, MONGODB_URI
from estate_backend.errors import validation_error


def init_client(uri: str = MONGODB_URI) -> MongoClient:
    """Create the process-wide MongoClient. Called once from the app lifespan."""
    client = MongoClient(uri, serverSelectionTimeoutMS=5000, tz_aware=False)
    print(f"[DB] MongoClient created ({uri.split('@')[-1]})")
    return client


def close_client(client: Optional[MongoClient]) -> None:
    if client is not None:
        client.close()
        print("[DB] MongoClient closed")


def get_db(request: Request) -> Database:
    """
    FastAPI dependency returning the database handle owned by the app.

    The handle lives on app.state (set in the lifespan hook); tests replace
    this dependency through app.dependency_overrides.
    """
    client: MongoClient = request.app.state.mongo_client
    return client[request.app.state.mongo_db_name or MONGODB_DB]


def ensure_indexes(db: Database) -> None:
    """Create indexes the handlers rely on for uniqueness and search."""
    db.users.create_index([("email", ASCENDING)], unique=True)
    db.subscriptions.create_index([("user", ASCENDING)], unique=True)
    db.subscriptions.create_index([("endDate", ASCENDING)])
    db.commercial_properties.create_index([("spvId", ASCENDING)], unique=True)
    db.reviews.create_index([("agent", ASCENDING), ("reviewer", ASCENDING)], unique=True)
    db.verification_requests.create_index(
        [("userId", ASCENDING), ("type", ASCENDING), ("status", ASCENDING)],
        unique=True,
        partialFilterExpression={"status": "pending"},
    )
    db.properties.create_index([("address.location", GEOSPHERE)])
    db.properties.create_index(
        [("title", TEXT), ("description", TEXT), ("address.city", TEXT), ("address.state", TEXT)]
    )
    db.properties.create_index([("owner", ASCENDING), ("createdAt", DESCENDING)])
    db.inquiries.create_index([("property", ASCENDING), ("createdAt", DESCENDING)])
    db.notifications.create_index([("userId", ASCENDING), ("read", ASCENDING)])
    db.leases.create_index([("landlordId", ASCENDING), ("status", ASCENDING)])
    db.utility_bills.create_index([("landlordId", ASCENDING), ("dueDate", ASCENDING)])
    if IS_DEV:
        print("[DB] Ensured indexes")


# ---------------------------------------------------------
# Helpers
# ---------------------------------------------------------
def utcnow() -> datetime:
    # Mongo stores millisecond precision; trim so round-trips compare equal
    now = datetime.utcnow()
    return now.replace(microsecond=(now.microsecond // 1000) * 1000)


def parse_object_id(value: Union[str, ObjectId, None], label: str = "id") -> ObjectId:
    """Parse a client-supplied id, raising a 400 validation error if malformed."""
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(str(value))
    except (InvalidId, TypeError):
        raise validation_error(f"Invalid {label} format", field=label)


def serialize_doc(value: Any) -> Any:
    """
    Convert a stored document into JSON-safe data.

    `_id` becomes `id`; ObjectIds become strings; datetimes become ISO strings.
    """
    if isinstance(value, dict):
        out: Dict[str, Any] = {}
        for key, item in value.items():
            if key == "_id":
                out["id"] = str(item) if isinstance(item, ObjectId) else item
            else:
                out[key] = serialize_doc(item)
        return out
    if isinstance(value, list):
        return [serialize_doc(v) for v in value]
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value
