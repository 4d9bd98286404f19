"""
estate_backend/routes_properties.py

Property listing endpoints.

Security guarantees:
- Listing creation requires the create_listing entitlement AND a KYC whose
  OTP has been verified
- Mutations are owner-only (admins pass); owner id comes from the token only
- Non-active listings are visible to their owner and admins only
- Contact details are metered through the view_contact entitlement
"""

from __future__ import annotations

import re
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query
from pymongo import DESCENDING
from pymongo.database import Database

from estate_backend.accounts import PUBLIC_USER_PROJECTION, get_user, notify
from estate_backend.auth_context import AuthContext, require_auth_context, resolve_identity
from estate_backend.config import IS_DEV
from estate_backend.db import get_db, parse_object_id, utcnow
from estate_backend.dependencies import EntitlementGrant, require_entitlement
from estate_backend.errors import ApiError, ErrorKind, forbidden, not_found, validation_error
from estate_backend.models import (
    Feature,
    InquiryStatus,
    ListingType,
    NotificationType,
    PlanType,
    PropertyStatus,
    PropertyType,
    Role,
    UserType,
)
from estate_backend.query import Page, SortOption, find_page, ok, page_params, paginated, sort_spec
from estate_backend.rbac import is_owner, require_owner, require_role
from estate_backend.schemas import (
    AssignAgentRequest,
    InquiryCreate,
    PropertyCreate,
    PropertyUpdate,
    VirtualTourCreate,
)


router = APIRouter(
    prefix="/api/properties",
    tags=["properties"],
)

SELLER_TYPES = (UserType.owner, UserType.dealer)

# Fewer fields for zoomed-out map markers
MAP_MARKER_FIELDS = ("title", "price", "propertyType", "listingType", "bedrooms", "bathrooms",
                     "address.location", "address.city", "address.state", "images")
MAP_DETAIL_FIELDS = MAP_MARKER_FIELDS + ("description", "area", "address.street")


def address_doc(address: Dict[str, Any]) -> Dict[str, Any]:
    """Stored address: coordinates become a GeoJSON point under `location`."""
    doc = {k: v for k, v in address.items() if k != "coordinates"}
    coordinates = address.get("coordinates")
    doc["location"] = {"type": "Point", "coordinates": coordinates} if coordinates else None
    return doc


def load_property(db: Database, property_id: str) -> Dict[str, Any]:
    doc = db.properties.find_one({"_id": parse_object_id(property_id, "propertyId")})
    if doc is None:
        raise not_found("Property")
    return doc


def can_manage(doc: Dict[str, Any], ctx: AuthContext) -> bool:
    return ctx.role == Role.admin or is_owner(doc, ctx, "owner") or is_owner(doc, ctx, "agent")


def load_visible_property(db: Database, property_id: str, identity: Optional[AuthContext]) -> Dict[str, Any]:
    """Like load_property, but a non-active listing is a 404 unless the caller manages it."""
    doc = load_property(db, property_id)
    if doc.get("status") != PropertyStatus.active.value and not (identity is not None and can_manage(doc, identity)):
        raise not_found("Property")
    return doc


def listing_filters(
    city: Optional[str],
    property_type: Optional[PropertyType],
    listing_type: Optional[ListingType],
    min_price: Optional[float],
    max_price: Optional[float],
    bedrooms: Optional[int],
    q: Optional[str],
) -> Dict[str, Any]:
    filters: Dict[str, Any] = {}
    if city:
        filters["address.city"] = {"$regex": f"^{re.escape(city)}$", "$options": "i"}
    if property_type:
        filters["propertyType"] = property_type.value
    if listing_type:
        filters["listingType"] = listing_type.value
    if min_price is not None or max_price is not None:
        filters["price"] = {}
        if min_price is not None:
            filters["price"]["$gte"] = min_price
        if max_price is not None:
            filters["price"]["$lte"] = max_price
    if bedrooms is not None:
        filters["bedrooms"] = {"$gte": bedrooms}
    if q:
        pattern = {"$regex": re.escape(q.strip()), "$options": "i"}
        filters["$or"] = [{"title": pattern}, {"description": pattern}, {"address.city": pattern}]
    return filters


# ---------------------------------------------------------
# Listing / search
# ---------------------------------------------------------
@router.get("")
def list_properties(
    city: Optional[str] = Query(None, max_length=100),
    propertyType: Optional[PropertyType] = Query(None),
    listingType: Optional[ListingType] = Query(None),
    minPrice: Optional[float] = Query(None, ge=0),
    maxPrice: Optional[float] = Query(None, ge=0),
    bedrooms: Optional[int] = Query(None, ge=0),
    q: Optional[str] = Query(None, max_length=200),
    sort: SortOption = Query(SortOption.newest),
    page: Page = Depends(page_params),
    db: Database = Depends(get_db),
):
    """Public search over active listings."""
    filters = listing_filters(city, propertyType, listingType, minPrice, maxPrice, bedrooms, q)
    filters["status"] = PropertyStatus.active.value
    docs, total = find_page(db.properties, filters, page, sort=sort_spec(sort))
    return paginated(docs, total, page)


@router.get("/map-search")
def map_search(
    north: float = Query(90, ge=-90, le=90),
    south: float = Query(-90, ge=-90, le=90),
    east: float = Query(180, ge=-180, le=180),
    west: float = Query(-180, ge=-180, le=180),
    zoom: int = Query(10, ge=0, le=22),
    propertyType: Optional[PropertyType] = Query(None),
    listingType: Optional[ListingType] = Query(None),
    minPrice: Optional[float] = Query(None, ge=0),
    maxPrice: Optional[float] = Query(None, ge=0),
    bedrooms: Optional[int] = Query(None, ge=0),
    db: Database = Depends(get_db),
):
    """Active listings inside a bounding box; zoom decides result size and detail."""
    if south > north:
        raise validation_error("south must not be greater than north", field="south")

    filters = listing_filters(None, propertyType, listingType, minPrice, maxPrice, bedrooms, None)
    filters["status"] = PropertyStatus.active.value
    filters["address.location"] = {"$geoWithin": {"$box": [[west, south], [east, north]]}}

    limit = 500 if zoom > 14 else (200 if zoom > 10 else 100)
    fields = MAP_MARKER_FIELDS if zoom < 12 else MAP_DETAIL_FIELDS
    projection = {field: 1 for field in fields}
    docs = list(db.properties.find(filters, projection).limit(limit))
    return ok({"properties": docs, "count": len(docs), "zoom": zoom})


@router.get("/mine")
def list_my_properties(
    status: Optional[PropertyStatus] = Query(None),
    sort: SortOption = Query(SortOption.newest),
    page: Page = Depends(page_params),
    ctx: AuthContext = Depends(require_auth_context),
    db: Database = Depends(get_db),
):
    filters: Dict[str, Any] = {"owner": parse_object_id(ctx.user_id, "userId")}
    if status:
        filters["status"] = status.value
    docs, total = find_page(db.properties, filters, page, sort=sort_spec(sort))
    return paginated(docs, total, page)


@router.get("/assigned")
def list_assigned_properties(
    page: Page = Depends(page_params),
    ctx: AuthContext = Depends(require_role(Role.agent)),
    db: Database = Depends(get_db),
):
    filters = {"agent": parse_object_id(ctx.user_id, "userId")}
    docs, total = find_page(db.properties, filters, page, sort=[("createdAt", DESCENDING)])
    return paginated(docs, total, page)


# ---------------------------------------------------------
# CRUD
# ---------------------------------------------------------
@router.post("", status_code=201)
def create_property(
    payload: PropertyCreate,
    grant: EntitlementGrant = Depends(require_entitlement(Feature.create_listing, SELLER_TYPES)),
    db: Database = Depends(get_db),
):
    """
    Create a listing.

    Raises:
        ApiError(403): No subscription entitlement, or KYC OTP not verified
    """
    ctx = grant.ctx
    owner_id = parse_object_id(ctx.user_id, "userId")
    kyc = db.kyc_requests.find_one({"userId": owner_id, "status": "accepted", "otpVerified": True})
    if kyc is None:
        print(f"[PROPERTIES] Create denied, KYC not verified: user_id={ctx.user_id}")
        raise forbidden("Complete KYC verification before posting a property")

    owner = get_user(db, owner_id)
    now = utcnow()
    data = payload.dict()
    doc = {
        **data,
        "address": address_doc(data["address"]),
        "ownerDetails": {"name": owner.get("name"), "email": owner.get("email"), "phone": owner.get("phone"),
                         **data["ownerDetails"]},
        "status": PropertyStatus.active.value,
        "owner": owner_id,
        "agent": None,
        "virtualTour": None,
        "views": 0,
        "favorites": 0,
        "verified": False,
        "createdAt": now,
        "updatedAt": now,
    }

    grant.consume()
    doc["_id"] = db.properties.insert_one(doc).inserted_id
    print(f"[PROPERTIES] Created property_id={doc['_id']}, owner={ctx.user_id}")
    return ok(doc, "Property created successfully")


@router.get("/{property_id}")
def get_property(
    property_id: str,
    identity: Optional[AuthContext] = Depends(resolve_identity),
    db: Database = Depends(get_db),
):
    doc = load_visible_property(db, property_id, identity)
    if identity is None or not is_owner(doc, identity, "owner"):
        db.properties.update_one({"_id": doc["_id"]}, {"$inc": {"views": 1}})
        doc["views"] = doc.get("views", 0) + 1
    return ok(doc)


@router.put("/{property_id}")
def update_property(
    property_id: str,
    payload: PropertyUpdate,
    ctx: AuthContext = Depends(require_auth_context),
    db: Database = Depends(get_db),
):
    doc = load_property(db, property_id)
    require_owner(doc, ctx, "owner", "property")

    updates = payload.dict(exclude_unset=True)
    if not updates:
        raise validation_error("No updatable fields provided")
    if "address" in updates:
        updates["address"] = address_doc(updates["address"])
    updates["updatedAt"] = utcnow()

    db.properties.update_one({"_id": doc["_id"]}, {"$set": updates})
    if IS_DEV:
        print(f"[PROPERTIES] Updated property_id={property_id}, fields={sorted(updates)}")
    return ok(db.properties.find_one({"_id": doc["_id"]}), "Property updated successfully")


@router.delete("/{property_id}")
def delete_property(
    property_id: str,
    ctx: AuthContext = Depends(require_auth_context),
    db: Database = Depends(get_db),
):
    """Retire a listing. The document stays; its status becomes expired."""
    doc = load_property(db, property_id)
    require_owner(doc, ctx, "owner", "property")
    db.properties.update_one(
        {"_id": doc["_id"]},
        {"$set": {"status": PropertyStatus.expired.value, "updatedAt": utcnow()}},
    )
    print(f"[PROPERTIES] Retired property_id={property_id}, by={ctx.user_id}")
    return ok(message="Property deleted successfully")


# ---------------------------------------------------------
# Inquiries
# ---------------------------------------------------------
@router.post("/{property_id}/inquiries", status_code=201)
def create_inquiry(
    property_id: str,
    payload: InquiryCreate,
    ctx: AuthContext = Depends(require_auth_context),
    db: Database = Depends(get_db),
):
    doc = load_visible_property(db, property_id, ctx)
    if is_owner(doc, ctx, "owner"):
        raise validation_error("You cannot inquire on your own property")

    sender = get_user(db, ctx.user_id)
    now = utcnow()
    inquiry = {
        "property": doc["_id"],
        "sender": sender["_id"],
        "receiver": doc["owner"],
        "message": payload.message,
        "phone": payload.phone or sender.get("phone"),
        "email": payload.email or sender.get("email"),
        "status": InquiryStatus.new.value,
        "createdAt": now,
        "updatedAt": now,
    }
    inquiry["_id"] = db.inquiries.insert_one(inquiry).inserted_id
    notify(
        db,
        doc["owner"],
        "New inquiry",
        f"{sender.get('name', 'Someone')} asked about {doc.get('title', 'your property')}",
        type=NotificationType.inquiry,
        related_id=inquiry["_id"],
    )
    if IS_DEV:
        print(f"[INQUIRIES] Created inquiry_id={inquiry['_id']}, property_id={property_id}")
    return ok(inquiry, "Inquiry sent successfully")


@router.get("/{property_id}/inquiries")
def list_property_inquiries(
    property_id: str,
    page: Page = Depends(page_params),
    ctx: AuthContext = Depends(require_auth_context),
    db: Database = Depends(get_db),
):
    doc = load_property(db, property_id)
    if not can_manage(doc, ctx):
        raise forbidden("Access denied")
    docs, total = find_page(db.inquiries, {"property": doc["_id"]}, page, sort=[("createdAt", DESCENDING)])
    return paginated(docs, total, page)


# ---------------------------------------------------------
# Metered / plan-gated features
# ---------------------------------------------------------
@router.get("/{property_id}/contact")
def get_contact(
    property_id: str,
    grant: EntitlementGrant = Depends(
        require_entitlement(Feature.view_contact, (UserType.buyer, UserType.owner, UserType.dealer))
    ),
    db: Database = Depends(get_db),
):
    """Owner and agent contact details. Counts against the buyer's contact quota."""
    ctx = grant.ctx
    doc = load_visible_property(db, property_id, ctx)
    owner = db.users.find_one({"_id": doc["owner"]}, PUBLIC_USER_PROJECTION)
    agent = db.users.find_one({"_id": doc["agent"]}, PUBLIC_USER_PROJECTION) if doc.get("agent") else None

    def contact(user):
        if user is None:
            return None
        return {"name": user.get("name"), "email": user.get("email"), "phone": user.get("phone")}

    is_party = is_owner(doc, ctx, "owner") or is_owner(doc, ctx, "agent")
    if not is_party:
        grant.consume()
    return ok({"owner": contact(owner), "agent": contact(agent), "isOwner": is_owner(doc, ctx, "owner")})


@router.post("/{property_id}/virtual-tour")
def set_virtual_tour(
    property_id: str,
    payload: VirtualTourCreate,
    grant: EntitlementGrant = Depends(require_entitlement(Feature.virtual_tour, SELLER_TYPES, PlanType.basic)),
    db: Database = Depends(get_db),
):
    doc = load_property(db, property_id)
    if not can_manage(doc, grant.ctx):
        raise forbidden("You are not authorized to manage this property")
    if not payload.has_required_media():
        raise validation_error("Missing required fields for the selected tour type", field="tourType")

    current = doc.get("virtualTour") or {}
    tour = {
        "tourType": payload.tourType,
        "panoramaImages": payload.panoramaImages or current.get("panoramaImages"),
        "tourUrl": payload.tourUrl or current.get("tourUrl"),
        "floorPlanUrl": payload.floorPlanUrl or current.get("floorPlanUrl"),
        "embedCode": payload.embedCode or current.get("embedCode"),
        "additionalDetails": payload.additionalDetails or current.get("additionalDetails"),
        "updatedAt": utcnow(),
    }
    grant.consume()
    db.properties.update_one({"_id": doc["_id"]}, {"$set": {"virtualTour": tour, "updatedAt": tour["updatedAt"]}})
    return ok(tour, "Virtual tour updated successfully")


@router.get("/{property_id}/virtual-tour")
def get_virtual_tour(
    property_id: str,
    identity: Optional[AuthContext] = Depends(resolve_identity),
    db: Database = Depends(get_db),
):
    doc = load_visible_property(db, property_id, identity)
    if not doc.get("virtualTour"):
        raise not_found("Virtual tour")
    return ok(doc["virtualTour"])


# ---------------------------------------------------------
# Agent assignment
# ---------------------------------------------------------
@router.post("/{property_id}/assign-agent")
def assign_agent(
    property_id: str,
    payload: AssignAgentRequest,
    ctx: AuthContext = Depends(require_auth_context),
    db: Database = Depends(get_db),
):
    doc = load_property(db, property_id)
    require_owner(doc, ctx, "owner", "property")

    agent = get_user(db, payload.agentId, "Agent")
    if agent.get("role") != Role.agent.value:
        raise ApiError(ErrorKind.VALIDATION, "Selected user is not an agent",
                       [{"field": "agentId", "message": "user is not an agent"}])

    db.properties.update_one({"_id": doc["_id"]}, {"$set": {"agent": agent["_id"], "updatedAt": utcnow()}})
    notify(
        db,
        agent["_id"],
        "New property assignment",
        f"You have been assigned to {doc.get('title', 'a property')}",
        related_id=doc["_id"],
    )
    print(f"[PROPERTIES] Assigned agent={agent['_id']} to property_id={property_id}")
    return ok(db.properties.find_one({"_id": doc["_id"]}), "Agent assigned successfully")
