"""
estate_backend/routes_ai.py

Property insights for STANDARD+ sellers. Insights are computed from the
stored listings (comparables in the same city) so the same inputs always
produce the same output.
"""

from __future__ import annotations

from statistics import median
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends
from pymongo.database import Database

from estate_backend.db import get_db, parse_object_id, utcnow
from estate_backend.dependencies import EntitlementGrant, require_entitlement
from estate_backend.errors import forbidden, not_found
from estate_backend.models import Feature, InsightAspect, ListingType, PlanType, PropertyStatus, UserType
from estate_backend.query import ok
from estate_backend.schemas import PropertyInsightsRequest


router = APIRouter(
    prefix="/api/ai",
    tags=["ai"],
)

# Fallback gross monthly rent as a share of sale price when no rentals are listed nearby
DEFAULT_RENT_RATIO = 0.004
FAIR_PRICE_BAND = 0.05


def comparables(db: Database, prop: Dict[str, Any], listing_type: str) -> List[Dict[str, Any]]:
    return list(db.properties.find(
        {
            "_id": {"$ne": prop["_id"]},
            "status": PropertyStatus.active.value,
            "propertyType": prop.get("propertyType"),
            "listingType": listing_type,
            "address.city": (prop.get("address") or {}).get("city"),
        },
        {"price": 1, "area": 1, "createdAt": 1},
    ))


def price_assessment(price: float, reference: Optional[float]) -> str:
    if not reference:
        return "insufficient data"
    if price > reference * (1 + FAIR_PRICE_BAND):
        return "above market"
    if price < reference * (1 - FAIR_PRICE_BAND):
        return "below market"
    return "in line with market"


def pricing_insights(prop: Dict[str, Any], comps: List[Dict[str, Any]]) -> Dict[str, Any]:
    price = float(prop.get("price") or 0)
    area = prop.get("area")
    reference = median([c["price"] for c in comps]) if comps else None
    anchor = reference or price
    return {
        "price": price,
        "pricePerArea": round(price / area, 2) if area else None,
        "comparableMedianPrice": reference,
        "assessment": price_assessment(price, reference),
        "suggestedPriceRange": {"min": round(anchor * 0.95), "max": round(anchor * 1.05)},
    }


def market_insights(db: Database, prop: Dict[str, Any], comps: List[Dict[str, Any]]) -> Dict[str, Any]:
    now = utcnow()
    ages = [(now - c["createdAt"]).days for c in comps if c.get("createdAt")]
    city = (prop.get("address") or {}).get("city")
    return {
        "city": city,
        "activeListingsInCity": db.properties.count_documents(
            {"status": PropertyStatus.active.value, "address.city": city}
        ),
        "comparableListings": len(comps),
        "averageDaysOnMarket": round(sum(ages) / len(ages)) if ages else None,
    }


def investment_insights(prop: Dict[str, Any], rentals: List[Dict[str, Any]]) -> Dict[str, Any]:
    price = float(prop.get("price") or 0)
    if prop.get("listingType") == ListingType.rent.value:
        monthly_rent = price
        source = "listing"
    elif rentals:
        monthly_rent = median([r["price"] for r in rentals])
        source = "comparable rentals"
    else:
        monthly_rent = round(price * DEFAULT_RENT_RATIO)
        source = "estimate"
    annual = monthly_rent * 12
    gross_yield = round(annual / price * 100, 2) if price and prop.get("listingType") != ListingType.rent.value else None
    return {
        "estimatedMonthlyRent": monthly_rent,
        "rentSource": source,
        "grossRentalYieldPercent": gross_yield,
    }


@router.post("/property-insights")
def property_insights(
    payload: PropertyInsightsRequest,
    grant: EntitlementGrant = Depends(require_entitlement(
        Feature.use_ai, (UserType.owner, UserType.dealer), PlanType.standard)),
    db: Database = Depends(get_db),
):
    """
    Generate insights for a listing the caller owns, or any active listing.

    Raises:
        ApiError(403): Entitlement denied, or the listing is not visible
        ApiError(404): Unknown property
    """
    ctx = grant.ctx
    prop = db.properties.find_one({"_id": parse_object_id(payload.propertyId, "propertyId")})
    if prop is None:
        raise not_found("Property")
    if str(prop.get("owner")) != ctx.user_id and prop.get("status") != PropertyStatus.active.value:
        raise forbidden("You do not have access to this property")

    aspects = {InsightAspect(a).value for a in payload.aspectsToAnalyze}
    sale_comps = comparables(db, prop, prop.get("listingType") or ListingType.sale.value)
    insights: Dict[str, Any] = {}
    if InsightAspect.pricing.value in aspects:
        insights["pricing"] = pricing_insights(prop, sale_comps)
    if InsightAspect.market_trends.value in aspects:
        insights["marketTrends"] = market_insights(db, prop, sale_comps)
    if InsightAspect.investment_potential.value in aspects:
        insights["investmentPotential"] = investment_insights(prop, comparables(db, prop, ListingType.rent.value))

    grant.consume()
    address = prop.get("address") or {}
    print(f"[AI] Insights property_id={prop['_id']}, user_id={ctx.user_id}, aspects={sorted(aspects)}")
    return ok({
        "propertyId": prop["_id"],
        "generatedAt": utcnow(),
        "summary": f"Insights for {prop.get('title')} located in {address.get('city')}, {address.get('state') or ''}".rstrip(", "),
        "insights": insights,
    })
