"""
estate_backend/routes_verification.py

Role elevation requests. A user asks to become an agent or a builder; an
admin approves (role elevated, profile info populated) or rejects.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query
from pymongo import DESCENDING
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from estate_backend.accounts import PUBLIC_USER_PROJECTION, get_user, notify
from estate_backend.auth_context import AuthContext, require_auth_context
from estate_backend.db import get_db, parse_object_id, utcnow
from estate_backend.errors import conflict, not_found, validation_error
from estate_backend.models import NotificationType, Role, VerificationStatus, VerificationType
from estate_backend.query import Page, find_page, ok, page_params, paginated
from estate_backend.rbac import require_role
from estate_backend.schemas import VerificationRejectRequest, VerificationRequestCreate


router = APIRouter(
    prefix="/api/requests",
    tags=["verification"],
)

PENDING_EXISTS = "You already have a pending request of this type"


def load_pending_request(db: Database, request_id: str) -> Dict[str, Any]:
    doc = db.verification_requests.find_one({"_id": parse_object_id(request_id, "requestId")})
    if doc is None:
        raise not_found("Verification request")
    if doc.get("status") != VerificationStatus.pending.value:
        raise conflict("This request has already been processed")
    return doc


def agent_info(details: Dict[str, Any], current: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    info = dict(current or {})
    info.update({
        "verified": True,
        "licenseNumber": details.get("licenseNumber"),
        "agency": details.get("agency"),
        "experience": details.get("experience") or 0,
        "specializations": details.get("specializations") or [],
        "languages": details.get("languages") or [],
    })
    info.setdefault("rating", 0)
    info.setdefault("reviewCount", 0)
    return info


def builder_info(details: Dict[str, Any], user: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "verified": True,
        "companyName": details.get("companyName") or user.get("name"),
        "established": details.get("established"),
        "headquarters": details.get("headquarters"),
        "specialization": details.get("specialization") or "General Construction",
        "description": details.get("additionalInfo"),
        "logo": details.get("logo"),
    }


@router.post("", status_code=201)
def create_request(
    payload: VerificationRequestCreate,
    ctx: AuthContext = Depends(require_auth_context),
    db: Database = Depends(get_db),
):
    user = get_user(db, ctx.user_id)
    if user.get("role") == payload.type:
        raise validation_error(f"You are already a verified {payload.type}", field="type")

    if db.verification_requests.find_one(
        {"userId": user["_id"], "type": payload.type, "status": VerificationStatus.pending.value}
    ) is not None:
        raise conflict(PENDING_EXISTS)

    now = utcnow()
    doc = {
        "userId": user["_id"],
        **payload.dict(),
        "status": VerificationStatus.pending.value,
        "reviewedBy": None,
        "rejectionReason": None,
        "createdAt": now,
        "updatedAt": now,
    }
    try:
        doc["_id"] = db.verification_requests.insert_one(doc).inserted_id
    except DuplicateKeyError:
        raise conflict(PENDING_EXISTS)
    print(f"[VERIFY] Request request_id={doc['_id']}, type={payload.type}, user_id={ctx.user_id}")
    return ok(doc, "Verification request submitted successfully")


@router.get("/mine")
def my_requests(
    ctx: AuthContext = Depends(require_auth_context),
    db: Database = Depends(get_db),
):
    docs = db.verification_requests.find({"userId": parse_object_id(ctx.user_id, "userId")})
    return ok(list(docs.sort("createdAt", DESCENDING)))


@router.get("")
def list_requests(
    status: VerificationStatus = Query(VerificationStatus.pending),
    type: Optional[VerificationType] = Query(None),
    page: Page = Depends(page_params),
    ctx: AuthContext = Depends(require_role(Role.admin)),
    db: Database = Depends(get_db),
):
    filters: Dict[str, Any] = {"status": status.value}
    if type:
        filters["type"] = type.value
    docs, total = find_page(db.verification_requests, filters, page, sort=[("createdAt", DESCENDING)])
    users = {
        u["_id"]: {"name": u.get("name"), "email": u.get("email"), "phone": u.get("phone")}
        for u in db.users.find({"_id": {"$in": [d["userId"] for d in docs]}}, PUBLIC_USER_PROJECTION)
    }
    for doc in docs:
        doc["user"] = users.get(doc["userId"])
    return paginated(docs, total, page)


@router.post("/{request_id}/accept")
def accept_request(
    request_id: str,
    ctx: AuthContext = Depends(require_role(Role.admin)),
    db: Database = Depends(get_db),
):
    request_doc = load_pending_request(db, request_id)
    user = get_user(db, request_doc["userId"], "User associated with this request")
    details = request_doc.get("requestDetails") or {}
    now = utcnow()

    if request_doc["type"] == VerificationType.agent.value:
        user_updates = {"role": Role.agent.value, "agentInfo": agent_info(details, user.get("agentInfo"))}
    else:
        user_updates = {"role": Role.builder.value, "builderInfo": builder_info(details, user)}
    if details.get("image"):
        user_updates["avatar"] = details["image"]
    user_updates["updatedAt"] = now

    db.verification_requests.update_one(
        {"_id": request_doc["_id"]},
        {"$set": {
            "status": VerificationStatus.approved.value,
            "reviewedBy": parse_object_id(ctx.user_id, "userId"),
            "updatedAt": now,
        }},
    )
    db.users.update_one({"_id": user["_id"]}, {"$set": user_updates})
    notify(db, user["_id"], "Verification approved",
           f"Your {request_doc['type']} verification request has been approved",
           type=NotificationType.verification, related_id=request_doc["_id"])

    print(f"[VERIFY] Approved request_id={request_id}, user_id={user['_id']} -> role={user_updates['role']}")
    return ok(db.verification_requests.find_one({"_id": request_doc["_id"]}),
              "Verification request approved successfully")


@router.post("/{request_id}/reject")
def reject_request(
    request_id: str,
    payload: VerificationRejectRequest,
    ctx: AuthContext = Depends(require_role(Role.admin)),
    db: Database = Depends(get_db),
):
    request_doc = load_pending_request(db, request_id)
    db.verification_requests.update_one(
        {"_id": request_doc["_id"]},
        {"$set": {
            "status": VerificationStatus.rejected.value,
            "reviewedBy": parse_object_id(ctx.user_id, "userId"),
            "rejectionReason": payload.reason,
            "updatedAt": utcnow(),
        }},
    )
    notify(db, request_doc["userId"], "Verification rejected",
           f"Your {request_doc['type']} verification request was rejected: {payload.reason}",
           type=NotificationType.verification, related_id=request_doc["_id"])

    print(f"[VERIFY] Rejected request_id={request_id}, admin={ctx.user_id}")
    return ok(db.verification_requests.find_one({"_id": request_doc["_id"]}),
              "Verification request rejected")
