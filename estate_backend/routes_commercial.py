"""
estate_backend/routes_commercial.py

Fractional commercial listings. Admins and builders may create them; the
creator (or an admin) may change or remove them.

Invariants:
- availableShares <= totalShares, on create and after every update
- spvId is unique
"""

from __future__ import annotations

import re
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from estate_backend.auth_context import AuthContext, require_auth_context
from estate_backend.db import get_db, parse_object_id, utcnow
from estate_backend.errors import ApiError, ErrorKind, conflict, not_found, validation_error
from estate_backend.models import CommercialStatus, CommercialType, Role
from estate_backend.query import Page, SortOption, find_page, ok, page_params, paginated, sort_spec
from estate_backend.rbac import require_owner, require_role
from estate_backend.schemas import CommercialCreate, CommercialUpdate


router = APIRouter(
    prefix="/api/commercial",
    tags=["commercial"],
)


def load_listing(db: Database, listing_id: str) -> Dict[str, Any]:
    doc = db.commercial_properties.find_one({"_id": parse_object_id(listing_id, "commercialId")})
    if doc is None:
        raise not_found("Commercial property")
    return doc


def check_shares(total: int, available: int) -> None:
    if available > total:
        raise ApiError(
            ErrorKind.VALIDATION,
            "Validation failed",
            [{"field": "availableShares", "message": "availableShares cannot exceed totalShares"}],
        )


@router.get("")
def list_commercial(
    status: Optional[CommercialStatus] = Query(None),
    propertyType: Optional[CommercialType] = Query(None),
    city: Optional[str] = Query(None, max_length=100),
    minPrice: Optional[float] = Query(None, ge=0),
    maxPrice: Optional[float] = Query(None, ge=0),
    q: Optional[str] = Query(None, max_length=200),
    sort: SortOption = Query(SortOption.newest),
    page: Page = Depends(page_params),
    db: Database = Depends(get_db),
):
    filters: Dict[str, Any] = {}
    if status:
        filters["status"] = status.value
    if propertyType:
        filters["propertyType"] = propertyType.value
    if city:
        filters["location.city"] = {"$regex": f"^{re.escape(city)}$", "$options": "i"}
    if minPrice is not None or maxPrice is not None:
        filters["pricePerShare"] = {}
        if minPrice is not None:
            filters["pricePerShare"]["$gte"] = minPrice
        if maxPrice is not None:
            filters["pricePerShare"]["$lte"] = maxPrice
    if q:
        filters["title"] = {"$regex": re.escape(q.strip()), "$options": "i"}
    spec = sort_spec(sort, price_field="pricePerShare", popularity_field="views")
    docs, total = find_page(db.commercial_properties, filters, page, sort=spec)
    return paginated(docs, total, page)


@router.get("/{listing_id}")
def get_commercial(listing_id: str, db: Database = Depends(get_db)):
    return ok(load_listing(db, listing_id))


@router.post("", status_code=201)
def create_commercial(
    payload: CommercialCreate,
    ctx: AuthContext = Depends(require_role(Role.admin, Role.builder)),
    db: Database = Depends(get_db),
):
    if db.commercial_properties.find_one({"spvId": payload.spvId}) is not None:
        raise conflict("A commercial property with this spvId already exists")

    now = utcnow()
    doc = {
        **payload.dict(),
        "owner": parse_object_id(ctx.user_id, "userId"),
        "views": 0,
        "createdAt": now,
        "updatedAt": now,
    }
    try:
        doc["_id"] = db.commercial_properties.insert_one(doc).inserted_id
    except DuplicateKeyError:
        raise conflict("A commercial property with this spvId already exists")
    print(f"[COMMERCIAL] Created commercial_id={doc['_id']}, spvId={payload.spvId}, by={ctx.user_id}")
    return ok(doc, "Commercial property created successfully")


@router.put("/{listing_id}")
def update_commercial(
    listing_id: str,
    payload: CommercialUpdate,
    ctx: AuthContext = Depends(require_auth_context),
    db: Database = Depends(get_db),
):
    doc = load_listing(db, listing_id)
    require_owner(doc, ctx, "owner", "commercial property")

    updates = payload.dict(exclude_unset=True)
    if not updates:
        raise validation_error("No updatable fields provided")
    check_shares(
        updates.get("totalShares", doc.get("totalShares", 0)),
        updates.get("availableShares", doc.get("availableShares", 0)),
    )
    updates["updatedAt"] = utcnow()
    db.commercial_properties.update_one({"_id": doc["_id"]}, {"$set": updates})
    return ok(db.commercial_properties.find_one({"_id": doc["_id"]}), "Commercial property updated successfully")


@router.delete("/{listing_id}")
def delete_commercial(
    listing_id: str,
    ctx: AuthContext = Depends(require_auth_context),
    db: Database = Depends(get_db),
):
    doc = load_listing(db, listing_id)
    require_owner(doc, ctx, "owner", "commercial property")
    db.commercial_properties.delete_one({"_id": doc["_id"]})
    print(f"[COMMERCIAL] Deleted commercial_id={listing_id}, by={ctx.user_id}")
    return ok(message="Commercial property deleted successfully")
