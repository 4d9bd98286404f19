"""
estate_backend/routes_kyc.py

KYC submission, admin review and the posting OTP.

Flow:
    user    POST /api/kyc                  -> pending
    admin   PATCH /api/admin/kyc/{id}      -> accepted (OTP mailed) | rejected
    user    POST /api/kyc/verify-otp       -> otpVerified = true
    user    PUT /api/kyc/send-otp          -> fresh OTP for an accepted KYC

Property creation requires an accepted, OTP-verified KYC.
"""

from __future__ import annotations

import base64
from datetime import timedelta
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile
from pymongo import DESCENDING
from pymongo.database import Database

from estate_backend.accounts import get_user
from estate_backend.auth_context import AuthContext, generate_numeric_code, require_auth_context
from estate_backend.config import IS_DEV, KYC_OTP_MINUTES
from estate_backend.db import get_db, parse_object_id, utcnow
from estate_backend.errors import ApiError, ErrorKind, conflict, not_found, validation_error
from estate_backend.mailer import Mailer, get_mailer, send_kyc_otp, send_kyc_rejected
from estate_backend.models import KycStatus, Role
from estate_backend.query import Page, find_page, ok, page_params, paginated
from estate_backend.rbac import require_role
from estate_backend.schemas import PAN_PATTERN, KycReviewRequest, OtpVerifyRequest


router = APIRouter(tags=["kyc"])

MAX_PAN_IMAGE_BYTES = 5 * 1024 * 1024

# The stored image stays with the record; list views leave it out.
LIST_PROJECTION = {"panImageUrl": 0, "postOtp": 0}


def latest_kyc(db: Database, user_id: str, status: Optional[KycStatus] = None) -> Optional[Dict[str, Any]]:
    filters: Dict[str, Any] = {"userId": parse_object_id(user_id, "userId")}
    if status:
        filters["status"] = status.value
    docs = list(db.kyc_requests.find(filters).sort("createdAt", DESCENDING).limit(1))
    return docs[0] if docs else None


def issue_otp(db: Database, kyc: Dict[str, Any], mailer: Mailer) -> None:
    otp = generate_numeric_code(6)
    expiry = utcnow() + timedelta(minutes=KYC_OTP_MINUTES)
    db.kyc_requests.update_one(
        {"_id": kyc["_id"]},
        {"$set": {"postOtp": otp, "postOtpExpiry": expiry, "otpVerified": False}},
    )
    kyc.update({"postOtp": otp, "postOtpExpiry": expiry, "otpVerified": False})
    if IS_DEV:
        print(f"[KYC] OTP issued kyc_id={kyc['_id']}, otp={otp}, expires={expiry.isoformat()}")
    send_kyc_otp(mailer, kyc.get("email") or "", kyc.get("name") or "", otp, KYC_OTP_MINUTES)


def public_kyc(doc: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in doc.items() if k not in ("postOtp", "panImageUrl")}


# ---------------------------------------------------------
# User endpoints
# ---------------------------------------------------------
@router.post("/api/kyc", status_code=201)
def submit_kyc(
    name: str = Form(..., min_length=1, max_length=100),
    pan: str = Form(...),
    panImage: UploadFile = File(...),
    email: Optional[str] = Form(None),
    ctx: AuthContext = Depends(require_auth_context),
    db: Database = Depends(get_db),
):
    """
    Submit KYC details with a PAN card image.

    The image is stored inline as a data URL.

    Raises:
        ApiError(400): Malformed PAN or a non-image upload
        ApiError(409): A pending or accepted KYC already exists
    """
    pan = pan.strip().upper()
    if not PAN_PATTERN.match(pan):
        raise validation_error("PAN must match the format ABCDE1234F", field="pan")

    content_type = panImage.content_type or ""
    if not content_type.startswith("image/"):
        raise validation_error("panImage must be an image", field="panImage")
    raw = panImage.file.read()
    if not raw:
        raise validation_error("panImage is empty", field="panImage")
    if len(raw) > MAX_PAN_IMAGE_BYTES:
        raise validation_error("panImage must be 5 MB or smaller", field="panImage")

    user_oid = parse_object_id(ctx.user_id, "userId")
    existing = db.kyc_requests.find_one({
        "userId": user_oid,
        "status": {"$in": [KycStatus.pending.value, KycStatus.accepted.value]},
    })
    if existing is not None:
        raise conflict(f"KYC request already {existing['status']}")

    user = get_user(db, ctx.user_id)
    now = utcnow()
    doc = {
        "userId": user_oid,
        "name": name.strip(),
        "pan": pan,
        "panImageUrl": f"data:{content_type};base64,{base64.b64encode(raw).decode('ascii')}",
        "email": (email or user.get("email") or "").strip().lower(),
        "status": KycStatus.pending.value,
        "reason": None,
        "adminId": None,
        "reviewedAt": None,
        "postOtp": None,
        "postOtpExpiry": None,
        "otpVerified": False,
        "createdAt": now,
    }
    doc["_id"] = db.kyc_requests.insert_one(doc).inserted_id
    print(f"[KYC] Submitted kyc_id={doc['_id']}, user_id={ctx.user_id}")
    return ok(public_kyc(doc), "KYC submitted for review")


@router.get("/api/kyc")
def my_kyc(
    ctx: AuthContext = Depends(require_auth_context),
    db: Database = Depends(get_db),
):
    kyc = latest_kyc(db, ctx.user_id)
    if kyc is None:
        raise not_found("KYC request")
    return ok(public_kyc(kyc))


@router.put("/api/kyc/send-otp")
def resend_otp(
    ctx: AuthContext = Depends(require_auth_context),
    db: Database = Depends(get_db),
    mailer: Mailer = Depends(get_mailer),
):
    kyc = latest_kyc(db, ctx.user_id, KycStatus.accepted)
    if kyc is None:
        raise validation_error("KYC not accepted or not found")
    issue_otp(db, kyc, mailer)
    return ok(message="OTP sent to your email.")


@router.post("/api/kyc/verify-otp")
def verify_otp(
    payload: OtpVerifyRequest,
    ctx: AuthContext = Depends(require_auth_context),
    db: Database = Depends(get_db),
):
    kyc = latest_kyc(db, ctx.user_id, KycStatus.accepted)
    if kyc is None:
        raise not_found("KYC record")
    if kyc.get("otpVerified"):
        return ok({"otpVerified": True}, "OTP already verified")
    if not kyc.get("postOtp") or not kyc.get("postOtpExpiry"):
        raise validation_error("No OTP generated for this KYC")
    if kyc["postOtp"] != payload.otp:
        raise ApiError(ErrorKind.AUTHENTICATION, "Invalid OTP")
    if utcnow() > kyc["postOtpExpiry"]:
        raise ApiError(ErrorKind.AUTHENTICATION, "OTP expired")

    db.kyc_requests.update_one(
        {"_id": kyc["_id"]},
        {"$set": {"otpVerified": True}, "$unset": {"postOtp": ""}},
    )
    print(f"[KYC] OTP verified kyc_id={kyc['_id']}, user_id={ctx.user_id}")
    return ok({"otpVerified": True}, "OTP verified. You can now post your property.")


# ---------------------------------------------------------
# Admin review
# ---------------------------------------------------------
@router.get("/api/admin/kyc")
def list_kyc(
    status: Optional[KycStatus] = Query(None),
    page: Page = Depends(page_params),
    ctx: AuthContext = Depends(require_role(Role.admin)),
    db: Database = Depends(get_db),
):
    filters = {"status": status.value} if status else {}
    docs, total = find_page(
        db.kyc_requests, filters, page,
        sort=[("createdAt", DESCENDING)],
        projection=LIST_PROJECTION,
    )
    return paginated(docs, total, page)


@router.get("/api/admin/kyc/{kyc_id}")
def get_kyc(
    kyc_id: str,
    ctx: AuthContext = Depends(require_role(Role.admin)),
    db: Database = Depends(get_db),
):
    kyc = db.kyc_requests.find_one({"_id": parse_object_id(kyc_id, "kycId")}, {"postOtp": 0})
    if kyc is None:
        raise not_found("KYC request")
    return ok(kyc)


@router.patch("/api/admin/kyc/{kyc_id}")
def review_kyc(
    kyc_id: str,
    payload: KycReviewRequest,
    ctx: AuthContext = Depends(require_role(Role.admin)),
    db: Database = Depends(get_db),
    mailer: Mailer = Depends(get_mailer),
):
    """
    Accept or reject a pending KYC request.

    Accepting generates a 6-digit posting OTP valid for KYC_OTP_MINUTES and
    mails it; rejecting mails the reason.

    Raises:
        ApiError(404): Unknown KYC request
        ApiError(409): Request already reviewed
    """
    kyc = db.kyc_requests.find_one({"_id": parse_object_id(kyc_id, "kycId")})
    if kyc is None:
        raise not_found("KYC request")
    if kyc.get("status") != KycStatus.pending.value:
        raise conflict(f"KYC request already {kyc.get('status')}")

    updates = {
        "status": payload.status,
        "reason": payload.reason or "",
        "adminId": parse_object_id(ctx.user_id, "userId"),
        "reviewedAt": utcnow(),
    }
    db.kyc_requests.update_one({"_id": kyc["_id"]}, {"$set": updates})
    kyc.update(updates)

    if payload.status == KycStatus.accepted.value:
        issue_otp(db, kyc, mailer)
    else:
        send_kyc_rejected(mailer, kyc.get("email") or "", kyc.get("name") or "", payload.reason)

    print(f"[KYC] Reviewed kyc_id={kyc_id} -> {payload.status}, admin={ctx.user_id}")
    return ok(public_kyc(kyc), f"KYC {payload.status}")
