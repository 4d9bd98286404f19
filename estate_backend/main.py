# ---------------------------------------------------------
# estate_backend/main.py
# Estate Marketplace - multi-tenant real-estate backend
#
# Run: uvicorn estate_backend.main:app --reload (from repo root)
#
# - FastAPI + MongoDB
# - /api/auth, /api/users        : accounts, favorites, notifications
# - /api/properties, /api/inquiries, /api/projects, /api/commercial
# - /api/microestate             : rental units, leases, utility bills
# - /api/agents                  : directory, schedules, reviews
# - /api/kyc, /api/requests      : KYC and role verification
# - /api/subscriptions, /api/ai  : plans, quotas, insights
# ---------------------------------------------------------

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Dict

from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from estate_backend import (
    routes_agents,
    routes_ai,
    routes_auth,
    routes_commercial,
    routes_inquiries,
    routes_kyc,
    routes_microestate,
    routes_projects,
    routes_properties,
    routes_subscriptions,
    routes_users,
    routes_verification,
)
from estate_backend.config import CORS_ORIGINS, IS_PROD, MONGODB_DB
from estate_backend.db import close_client, ensure_indexes, init_client
from estate_backend.errors import (
    ApiError,
    api_error_handler,
    http_exception_handler,
    request_validation_handler,
    unhandled_exception_handler,
)

ROUTERS = (
    routes_auth.router,
    routes_users.router,
    routes_properties.router,
    routes_inquiries.router,
    routes_projects.router,
    routes_commercial.router,
    routes_microestate.router,
    routes_agents.router,
    routes_kyc.router,
    routes_verification.router,
    routes_subscriptions.router,
    routes_ai.router,
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    client = init_client()
    app.state.mongo_client = client
    app.state.mongo_db_name = MONGODB_DB
    ensure_indexes(client[MONGODB_DB])
    try:
        yield
    finally:
        close_client(client)
        app.state.mongo_client = None


def create_app() -> FastAPI:
    app = FastAPI(title="Estate Marketplace Backend", version="0.1", lifespan=lifespan)

    # CORS configuration from config module
    app.add_middleware(
        CORSMiddleware,
        allow_origins=CORS_ORIGINS if IS_PROD else ["*"],  # Restrict origins in production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(ApiError, api_error_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    for router in ROUTERS:
        app.include_router(router)

    @app.get("/health")
    def health() -> Dict[str, str]:
        return {"status": "ok"}

    return app


app = create_app()
