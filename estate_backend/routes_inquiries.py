"""
estate_backend/routes_inquiries.py

Single-inquiry endpoints. Only the sender and the receiver may read an
inquiry; only the receiver may change its status.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from pymongo.database import Database

from estate_backend.auth_context import AuthContext, require_auth_context
from estate_backend.db import get_db, parse_object_id, utcnow
from estate_backend.errors import forbidden, not_found
from estate_backend.models import InquiryStatus
from estate_backend.query import ok
from estate_backend.rbac import is_owner, require_any_owner
from estate_backend.schemas import InquiryStatusUpdate


router = APIRouter(
    prefix="/api/inquiries",
    tags=["inquiries"],
)


def load_inquiry(db: Database, inquiry_id: str) -> dict:
    doc = db.inquiries.find_one({"_id": parse_object_id(inquiry_id, "inquiryId")})
    if doc is None:
        raise not_found("Inquiry")
    return doc


@router.get("/{inquiry_id}")
def get_inquiry(
    inquiry_id: str,
    ctx: AuthContext = Depends(require_auth_context),
    db: Database = Depends(get_db),
):
    """Read an inquiry. The receiver opening a new inquiry marks it read."""
    doc = load_inquiry(db, inquiry_id)
    require_any_owner(doc, ctx, ("sender", "receiver"), "inquiry")

    if is_owner(doc, ctx, "receiver") and doc.get("status") == InquiryStatus.new.value:
        now = utcnow()
        db.inquiries.update_one({"_id": doc["_id"]}, {"$set": {"status": InquiryStatus.read.value, "updatedAt": now}})
        doc["status"] = InquiryStatus.read.value
        doc["updatedAt"] = now

    doc["propertyDetails"] = db.properties.find_one(
        {"_id": doc.get("property")}, {"title": 1, "price": 1, "address.city": 1, "images": 1}
    )
    return ok(doc)


@router.patch("/{inquiry_id}")
def update_inquiry_status(
    inquiry_id: str,
    payload: InquiryStatusUpdate,
    ctx: AuthContext = Depends(require_auth_context),
    db: Database = Depends(get_db),
):
    doc = load_inquiry(db, inquiry_id)
    if not is_owner(doc, ctx, "receiver"):
        raise forbidden("Only the receiver can update this inquiry")

    db.inquiries.update_one({"_id": doc["_id"]}, {"$set": {"status": payload.status, "updatedAt": utcnow()}})
    return ok(db.inquiries.find_one({"_id": doc["_id"]}), "Inquiry updated")
