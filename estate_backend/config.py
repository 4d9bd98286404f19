# estate_backend/config.py
# Environment-aware configuration for the estate marketplace backend

import os
from typing import Literal

# Environment detection
ENV: Literal["dev", "staging", "prod"] = os.environ.get("ENV", "dev")  # type: ignore
IS_DEV = (ENV == "dev")
IS_STAGING = (ENV == "staging")
IS_PROD = (ENV == "prod")

# JWT and session configuration
DEV_SECRET_KEY = "dev-secret-key-change-me"
SECRET_KEY = os.environ.get("SECRET_KEY", DEV_SECRET_KEY)
ALGORITHM = "HS256"
AUTH_COOKIE_NAME = os.environ.get("AUTH_COOKIE_NAME", "auth_token")


def check_secret_key(env: str, secret_key: str) -> None:
    """Tokens signed with the built-in dev key must never be accepted in prod."""
    if env == "prod" and (not secret_key or secret_key == DEV_SECRET_KEY):
        raise RuntimeError("SECRET_KEY must be set to a private value when ENV=prod")


check_secret_key(ENV, SECRET_KEY)

# Token and code lifetimes
ACCESS_TOKEN_MINUTES = int(os.environ.get("ACCESS_TOKEN_MINUTES", "1440"))
VERIFICATION_CODE_MINUTES = int(os.environ.get("VERIFICATION_CODE_MINUTES", "60"))
KYC_OTP_MINUTES = int(os.environ.get("KYC_OTP_MINUTES", "10"))

# Document store
MONGODB_URI = os.environ.get("MONGODB_URI", "mongodb://localhost:27017").strip()
MONGODB_DB = os.environ.get("MONGODB_DB", "estate_marketplace")

# Outbound mail
SENDGRID_API_KEY = os.environ.get("SENDGRID_API_KEY", "")
MAIL_FROM = os.environ.get("MAIL_FROM", "no-reply@estate.local")

# Listing pagination
DEFAULT_PAGE_LIMIT = int(os.environ.get("DEFAULT_PAGE_LIMIT", "10"))
MAX_PAGE_LIMIT = int(os.environ.get("MAX_PAGE_LIMIT", "100"))

# CORS origins (expand for staging/prod)
CORS_ORIGINS = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]

if IS_STAGING:
    staging_url = os.environ.get("CORS_ORIGINS", "")
    if staging_url:
        CORS_ORIGINS.extend(staging_url.split(","))
    else:
        CORS_ORIGINS.append("https://staging.estate-marketplace.com")

if IS_PROD:
    prod_origins = os.environ.get("CORS_ORIGINS", "")
    if prod_origins:
        CORS_ORIGINS.extend(prod_origins.split(","))
    else:
        CORS_ORIGINS.append("https://app.estate-marketplace.com")

print(f"[CONFIG] Environment: {ENV}")
print(f"[CONFIG] Database: {MONGODB_DB} @ {MONGODB_URI.split('@')[-1]}")
print(f"[CONFIG] Access token: {ACCESS_TOKEN_MINUTES} minutes")
print(f"[CONFIG] KYC OTP: {KYC_OTP_MINUTES} minutes")
print(f"[CONFIG] Mail: {'SendGrid' if SENDGRID_API_KEY else 'log only'}")
