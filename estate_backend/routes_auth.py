"""
estate_backend/routes_auth.py

Account endpoints: signup with e-mail verification, login/logout, password
reset, and the current identity.

Security guarantees:
- Passwords are stored only as salted PBKDF2 hashes
- Signup can only pick user, tenant or landlord; elevated roles come from
  verification requests or admins
- forgot-password answers the same way whether or not the e-mail exists
"""

from __future__ import annotations

from datetime import timedelta

from fastapi import APIRouter, Depends, Response
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from estate_backend.accounts import get_user, new_user_doc, public_user
from estate_backend.auth_context import (
    AuthContext,
    create_access_token,
    generate_numeric_code,
    hash_password,
    require_auth_context,
    verify_password,
)
from estate_backend.config import (
    ACCESS_TOKEN_MINUTES,
    AUTH_COOKIE_NAME,
    IS_DEV,
    IS_PROD,
    VERIFICATION_CODE_MINUTES,
)
from estate_backend.db import get_db, utcnow
from estate_backend.entitlements import build_subscription_doc
from estate_backend.errors import ApiError, ErrorKind, conflict, validation_error
from estate_backend.mailer import Mailer, get_mailer, send_password_reset_code, send_verification_code
from estate_backend.models import PlanType, Role, UserType
from estate_backend.query import ok
from estate_backend.schemas import (
    EmailRequest,
    LoginRequest,
    ResetPasswordRequest,
    SignupRequest,
    VerifyCodeRequest,
)


router = APIRouter(
    prefix="/api/auth",
    tags=["auth"],
)


@router.post("/signup", status_code=201)
def signup(
    payload: SignupRequest,
    db: Database = Depends(get_db),
    mailer: Mailer = Depends(get_mailer),
):
    """
    Register a new account.

    Creates the user unverified, mails a 6-digit verification code and opens
    a FREE buyer subscription.

    Raises:
        ApiError(409): E-mail already registered
    """
    if db.users.find_one({"email": payload.email}) is not None:
        raise conflict("An account with this email already exists")

    now = utcnow()
    code = generate_numeric_code()
    doc = new_user_doc(payload.name, payload.email, hash_password(payload.password), Role(payload.role), now, payload.phone)
    doc["verifyCode"] = code
    doc["verifyCodeExpiry"] = now + timedelta(minutes=VERIFICATION_CODE_MINUTES)

    try:
        user_id = db.users.insert_one(doc).inserted_id
    except DuplicateKeyError:
        raise conflict("An account with this email already exists")

    db.subscriptions.insert_one(build_subscription_doc(user_id, UserType.buyer, PlanType.free, 0, now))
    send_verification_code(mailer, payload.email, payload.name, code, VERIFICATION_CODE_MINUTES)

    print(f"[AUTH] Signup user_id={user_id}, role={payload.role}")
    if IS_DEV:
        print(f"[AUTH] Verification code for {payload.email}: {code}")

    doc["_id"] = user_id
    return ok(public_user(doc), "Account created. Check your email for the verification code.")


@router.post("/verify-email")
def verify_email(payload: VerifyCodeRequest, db: Database = Depends(get_db)):
    user = db.users.find_one({"email": payload.email})
    if user is None:
        raise validation_error("Invalid verification code", field="code")
    if user.get("isVerified"):
        return ok(message="Email already verified")

    if not user.get("verifyCode") or user["verifyCode"] != payload.code:
        raise validation_error("Invalid verification code", field="code")
    if user.get("verifyCodeExpiry") is None or user["verifyCodeExpiry"] < utcnow():
        raise validation_error("Verification code expired", field="code")

    db.users.update_one(
        {"_id": user["_id"]},
        {"$set": {"isVerified": True, "verifyCode": None, "verifyCodeExpiry": None, "updatedAt": utcnow()}},
    )
    return ok(message="Email verified successfully")


@router.post("/resend-code")
def resend_code(
    payload: EmailRequest,
    db: Database = Depends(get_db),
    mailer: Mailer = Depends(get_mailer),
):
    user = db.users.find_one({"email": payload.email})
    if user is None:
        raise ApiError(ErrorKind.NOT_FOUND, "User not found")
    if user.get("isVerified"):
        raise validation_error("Email already verified")

    now = utcnow()
    code = generate_numeric_code()
    db.users.update_one(
        {"_id": user["_id"]},
        {"$set": {
            "verifyCode": code,
            "verifyCodeExpiry": now + timedelta(minutes=VERIFICATION_CODE_MINUTES),
            "updatedAt": now,
        }},
    )
    send_verification_code(mailer, user["email"], user.get("name", ""), code, VERIFICATION_CODE_MINUTES)
    return ok(message="Verification code sent")


def issue_session(response: Response, user) -> str:
    """Sign a token for the stored user and set it as the auth cookie."""
    token = create_access_token(str(user["_id"]), user["role"], user["email"])
    response.set_cookie(
        AUTH_COOKIE_NAME,
        token,
        max_age=ACCESS_TOKEN_MINUTES * 60,
        httponly=True,
        secure=IS_PROD,
        samesite="lax",
    )
    return token


@router.post("/login")
def login(payload: LoginRequest, response: Response, db: Database = Depends(get_db)):
    """
    Exchange credentials for an access token.

    The token is returned in the body and set as the auth cookie.
    """
    user = db.users.find_one({"email": payload.email})
    if user is None or not verify_password(payload.password, user.get("passwordHash", "")):
        print(f"[AUTH] Failed login for {payload.email}")
        raise ApiError(ErrorKind.AUTHENTICATION, "Invalid email or password")
    if not user.get("isVerified"):
        raise ApiError(ErrorKind.AUTHORIZATION, "Please verify your email before logging in")

    token = issue_session(response, user)
    if IS_DEV:
        print(f"[AUTH] Login user_id={user['_id']}, role={user['role']}")
    return ok({"token": token, "user": public_user(user)}, "Login successful")


@router.post("/refresh")
def refresh_token(
    response: Response,
    ctx: AuthContext = Depends(require_auth_context),
    db: Database = Depends(get_db),
):
    """
    Re-issue the caller's token from the stored account.

    Roles granted after login (e.g. an approved agent or builder request)
    only reach role-gated endpoints once the token is refreshed.
    """
    user = get_user(db, ctx.user_id)
    token = issue_session(response, user)
    if user["role"] != ctx.role.value:
        print(f"[AUTH] Token refreshed user_id={ctx.user_id}, role {ctx.role.value} -> {user['role']}")
    return ok({"token": token, "user": public_user(user)}, "Token refreshed")


@router.post("/logout")
def logout(response: Response):
    response.delete_cookie(AUTH_COOKIE_NAME)
    return ok(message="Logged out")


@router.post("/forgot-password")
def forgot_password(
    payload: EmailRequest,
    db: Database = Depends(get_db),
    mailer: Mailer = Depends(get_mailer),
):
    user = db.users.find_one({"email": payload.email})
    if user is not None:
        now = utcnow()
        code = generate_numeric_code()
        db.users.update_one(
            {"_id": user["_id"]},
            {"$set": {
                "resetCode": code,
                "resetCodeExpiry": now + timedelta(minutes=VERIFICATION_CODE_MINUTES),
                "updatedAt": now,
            }},
        )
        send_password_reset_code(mailer, user["email"], code, VERIFICATION_CODE_MINUTES)
        if IS_DEV:
            print(f"[AUTH] Reset code for {user['email']}: {code}")
    return ok(message="If an account exists for this email, a reset code has been sent")


@router.post("/reset-password")
def reset_password(payload: ResetPasswordRequest, db: Database = Depends(get_db)):
    user = db.users.find_one({"email": payload.email})
    if user is None or not user.get("resetCode") or user["resetCode"] != payload.code:
        raise validation_error("Invalid reset code", field="code")
    if user.get("resetCodeExpiry") is None or user["resetCodeExpiry"] < utcnow():
        raise validation_error("Reset code expired", field="code")

    db.users.update_one(
        {"_id": user["_id"]},
        {"$set": {
            "passwordHash": hash_password(payload.password),
            "resetCode": None,
            "resetCodeExpiry": None,
            "updatedAt": utcnow(),
        }},
    )
    print(f"[AUTH] Password reset user_id={user['_id']}")
    return ok(message="Password reset successfully")


@router.get("/me")
def me(ctx: AuthContext = Depends(require_auth_context), db: Database = Depends(get_db)):
    return ok(public_user(get_user(db, ctx.user_id)))
