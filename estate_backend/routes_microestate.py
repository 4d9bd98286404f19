"""
estate_backend/routes_microestate.py

Landlord/tenant management: rental units, leases, utility bills and the
landlord dashboard.

Security guarantees:
- Landlord endpoints are gated by the landlord role and scoped to
  landlordId == caller
- Tenants only see leases and bills that name them
- Lease and bill statuses are re-derived from their dates before every
  write (see lifecycle.py)
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query
from pymongo import ASCENDING, DESCENDING
from pymongo.database import Database

from estate_backend.accounts import get_user, notify
from estate_backend.auth_context import AuthContext, require_auth_context
from estate_backend.config import IS_DEV
from estate_backend.db import get_db, parse_object_id, utcnow
from estate_backend.errors import ApiError, ErrorKind, conflict, forbidden, not_found, validation_error
from estate_backend.lifecycle import days_overdue, derive_bill_status, derive_lease_status
from estate_backend.models import (
    BillStatus,
    LeaseStatus,
    NotificationPriority,
    NotificationType,
    RentalUnitStatus,
    ResponsibleParty,
    Role,
)
from estate_backend.query import Page, find_page, ok, page_params, paginated
from estate_backend.rbac import is_owner, require_any_owner, require_owner, require_role
from estate_backend.schemas import (
    BillCreate,
    LeaseCreate,
    LeaseUpdate,
    PaymentProofRequest,
    RentalUnitCreate,
    RentalUnitUpdate,
    TerminateLeaseRequest,
)


router = APIRouter(
    prefix="/api/microestate",
    tags=["microestate"],
)

require_landlord = require_role(Role.landlord)
require_tenant = require_role(Role.tenant)


# ---------------------------------------------------------
# Helpers
# ---------------------------------------------------------
def load(db: Database, collection: str, doc_id: str, label: str) -> Dict[str, Any]:
    doc = db[collection].find_one({"_id": parse_object_id(doc_id, "id")})
    if doc is None:
        raise not_found(label)
    return doc


def sync_lease_status(db: Database, lease: Dict[str, Any], now: datetime) -> Dict[str, Any]:
    status = derive_lease_status(lease, now).value
    if status != lease.get("status"):
        db.leases.update_one({"_id": lease["_id"]}, {"$set": {"status": status, "updatedAt": now}})
        lease["status"] = status
    return lease


def sync_bill_status(db: Database, bill: Dict[str, Any], now: datetime) -> Dict[str, Any]:
    status = derive_bill_status(bill, now).value
    if status != bill.get("status"):
        db.utility_bills.update_one({"_id": bill["_id"]}, {"$set": {"status": status, "updatedAt": now}})
        bill["status"] = status
    return bill


def validate_lease_dates(lease: Dict[str, Any]) -> None:
    if lease["endDate"] <= lease["startDate"]:
        raise ApiError(
            ErrorKind.VALIDATION,
            "Validation failed",
            [{"field": "endDate", "message": "endDate must be after startDate"}],
        )


def find_competing_lease(db: Database, lease: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """
    Another lease holding the same unit: one already active, or a fully
    signed draft (future start) whose dates overlap this one.
    """
    return db.leases.find_one({
        "propertyId": lease["propertyId"],
        "_id": {"$ne": lease["_id"]},
        "$or": [
            {"status": LeaseStatus.active.value},
            {
                "status": LeaseStatus.draft.value,
                "signatures.landlord.signed": True,
                "signatures.tenant.signed": True,
                "startDate": {"$lt": lease["endDate"]},
                "endDate": {"$gt": lease["startDate"]},
            },
        ],
    })


# ---------------------------------------------------------
# Rental units
# ---------------------------------------------------------
@router.get("/properties")
def list_rental_units(
    status: Optional[RentalUnitStatus] = Query(None),
    page: Page = Depends(page_params),
    ctx: AuthContext = Depends(require_landlord),
    db: Database = Depends(get_db),
):
    filters: Dict[str, Any] = {"landlordId": parse_object_id(ctx.user_id, "userId")}
    if status:
        filters["status"] = status.value
    docs, total = find_page(db.micro_properties, filters, page, sort=[("createdAt", DESCENDING)])
    return paginated(docs, total, page)


@router.post("/properties", status_code=201)
def create_rental_unit(
    payload: RentalUnitCreate,
    ctx: AuthContext = Depends(require_landlord),
    db: Database = Depends(get_db),
):
    now = utcnow()
    doc = {
        **payload.dict(),
        "landlordId": parse_object_id(ctx.user_id, "userId"),
        "viewCount": 0,
        "createdAt": now,
        "updatedAt": now,
    }
    doc["_id"] = db.micro_properties.insert_one(doc).inserted_id
    print(f"[MICROESTATE] Created rental unit {doc['_id']}, landlord={ctx.user_id}")
    return ok(doc, "Property added successfully")


@router.get("/properties/{unit_id}")
def get_rental_unit(
    unit_id: str,
    ctx: AuthContext = Depends(require_auth_context),
    db: Database = Depends(get_db),
):
    doc = load(db, "micro_properties", unit_id, "Property")
    if not is_owner(doc, ctx, "landlordId") and ctx.role != Role.admin:
        # tenants with a lease on the unit may read it
        lease = db.leases.find_one({"propertyId": doc["_id"], "tenantId": parse_object_id(ctx.user_id, "userId")})
        if lease is None:
            raise forbidden("Access denied")
    return ok(doc)


@router.put("/properties/{unit_id}")
def update_rental_unit(
    unit_id: str,
    payload: RentalUnitUpdate,
    ctx: AuthContext = Depends(require_landlord),
    db: Database = Depends(get_db),
):
    doc = load(db, "micro_properties", unit_id, "Property")
    require_owner(doc, ctx, "landlordId", "property")
    updates = payload.dict(exclude_unset=True)
    if not updates:
        raise validation_error("No updatable fields provided")
    updates["updatedAt"] = utcnow()
    db.micro_properties.update_one({"_id": doc["_id"]}, {"$set": updates})
    return ok(db.micro_properties.find_one({"_id": doc["_id"]}), "Property updated successfully")


@router.delete("/properties/{unit_id}")
def delete_rental_unit(
    unit_id: str,
    ctx: AuthContext = Depends(require_landlord),
    db: Database = Depends(get_db),
):
    doc = load(db, "micro_properties", unit_id, "Property")
    require_owner(doc, ctx, "landlordId", "property")
    if db.leases.find_one({"propertyId": doc["_id"], "status": LeaseStatus.active.value}) is not None:
        raise conflict("Cannot delete a property with an active lease")
    db.micro_properties.delete_one({"_id": doc["_id"]})
    print(f"[MICROESTATE] Deleted rental unit {unit_id}, landlord={ctx.user_id}")
    return ok(message="Property deleted successfully")


# ---------------------------------------------------------
# Leases
# ---------------------------------------------------------
@router.get("/leases")
def list_leases(
    status: Optional[LeaseStatus] = Query(None),
    propertyId: Optional[str] = Query(None),
    page: Page = Depends(page_params),
    ctx: AuthContext = Depends(require_landlord),
    db: Database = Depends(get_db),
):
    now = utcnow()
    landlord_id = parse_object_id(ctx.user_id, "userId")
    for lease in list(db.leases.find({"landlordId": landlord_id, "status": {"$ne": LeaseStatus.terminated.value}})):
        sync_lease_status(db, lease, now)

    filters: Dict[str, Any] = {"landlordId": landlord_id}
    if status:
        filters["status"] = status.value
    if propertyId:
        filters["propertyId"] = parse_object_id(propertyId, "propertyId")
    docs, total = find_page(db.leases, filters, page, sort=[("createdAt", DESCENDING)])
    return paginated(docs, total, page)


@router.post("/leases", status_code=201)
def create_lease(
    payload: LeaseCreate,
    ctx: AuthContext = Depends(require_landlord),
    db: Database = Depends(get_db),
):
    """
    Draft a lease between the caller and a tenant on one of the caller's units.

    Raises:
        ApiError(400): Tenant is not a tenant account
        ApiError(403): Unit belongs to another landlord
        ApiError(409): Unit already has an active lease
    """
    unit = load(db, "micro_properties", payload.propertyId, "Property")
    require_owner(unit, ctx, "landlordId", "property")

    tenant = get_user(db, payload.tenantId, "Tenant")
    if tenant.get("role") != Role.tenant.value:
        raise validation_error("Selected user is not a tenant", field="tenantId")
    if db.leases.find_one({"propertyId": unit["_id"], "status": LeaseStatus.active.value}) is not None:
        raise conflict("This property already has an active lease")

    now = utcnow()
    lease = {
        **payload.dict(),
        "propertyId": unit["_id"],
        "landlordId": unit["landlordId"],
        "tenantId": tenant["_id"],
        "status": LeaseStatus.draft.value,
        "signatures": {"landlord": {"signed": False}, "tenant": {"signed": False}},
        "createdAt": now,
        "updatedAt": now,
    }
    lease["status"] = derive_lease_status(lease, now).value
    lease["_id"] = db.leases.insert_one(lease).inserted_id
    notify(db, tenant["_id"], "New lease", f"A lease for {unit.get('title', 'a property')} is ready to sign",
           type=NotificationType.lease, related_id=lease["_id"])
    print(f"[MICROESTATE] Created lease {lease['_id']}, landlord={ctx.user_id}, tenant={tenant['_id']}")
    return ok(lease, "Lease created successfully")


@router.get("/leases/{lease_id}")
def get_lease(
    lease_id: str,
    ctx: AuthContext = Depends(require_auth_context),
    db: Database = Depends(get_db),
):
    lease = load(db, "leases", lease_id, "Lease")
    require_any_owner(lease, ctx, ("landlordId", "tenantId"), "lease")
    return ok(sync_lease_status(db, lease, utcnow()))


@router.patch("/leases/{lease_id}")
def update_lease(
    lease_id: str,
    payload: LeaseUpdate,
    ctx: AuthContext = Depends(require_landlord),
    db: Database = Depends(get_db),
):
    lease = load(db, "leases", lease_id, "Lease")
    require_owner(lease, ctx, "landlordId", "lease")
    now = utcnow()
    lease = sync_lease_status(db, lease, now)
    if lease["status"] != LeaseStatus.draft.value:
        raise conflict("Only draft leases can be modified")

    updates = payload.dict(exclude_unset=True)
    if not updates:
        raise validation_error("No updatable fields provided")
    merged = {**lease, **updates}
    validate_lease_dates(merged)

    # terms changed: both parties sign again
    updates["signatures"] = {"landlord": {"signed": False}, "tenant": {"signed": False}}
    merged["signatures"] = updates["signatures"]
    updates["status"] = derive_lease_status(merged, now).value
    updates["updatedAt"] = now
    db.leases.update_one({"_id": lease["_id"]}, {"$set": updates})
    return ok(db.leases.find_one({"_id": lease["_id"]}), "Lease updated successfully")


@router.post("/leases/{lease_id}/sign")
def sign_lease(
    lease_id: str,
    ctx: AuthContext = Depends(require_auth_context),
    db: Database = Depends(get_db),
):
    """The landlord or the tenant signs their own slot; both signed and started -> active."""
    lease = load(db, "leases", lease_id, "Lease")
    if is_owner(lease, ctx, "landlordId"):
        party, other = "landlord", lease["tenantId"]
    elif is_owner(lease, ctx, "tenantId"):
        party, other = "tenant", lease["landlordId"]
    else:
        raise forbidden("Access denied")

    now = utcnow()
    lease = sync_lease_status(db, lease, now)
    if lease["status"] in (LeaseStatus.terminated.value, LeaseStatus.expired.value):
        raise conflict(f"Cannot sign a {lease['status']} lease")
    if (lease.get("signatures") or {}).get(party, {}).get("signed"):
        raise conflict("You have already signed this lease")

    lease.setdefault("signatures", {})[party] = {"signed": True, "signedAt": now}
    if all((lease["signatures"].get(p) or {}).get("signed") for p in ("landlord", "tenant")):
        if find_competing_lease(db, lease) is not None:
            raise conflict("This property already has an active lease")
    status = derive_lease_status(lease, now).value
    db.leases.update_one(
        {"_id": lease["_id"]},
        {"$set": {f"signatures.{party}": lease["signatures"][party], "status": status, "updatedAt": now}},
    )
    if status == LeaseStatus.active.value:
        db.micro_properties.update_one({"_id": lease["propertyId"]}, {"$set": {"status": RentalUnitStatus.rented.value}})

    notify(db, other, "Lease signed", f"The {party} signed the lease", type=NotificationType.lease,
           related_id=lease["_id"])
    if IS_DEV:
        print(f"[MICROESTATE] Lease {lease_id} signed by {party}, status={status}")
    return ok(db.leases.find_one({"_id": lease["_id"]}), "Lease signed successfully")


@router.post("/leases/{lease_id}/terminate")
def terminate_lease(
    lease_id: str,
    payload: TerminateLeaseRequest,
    ctx: AuthContext = Depends(require_landlord),
    db: Database = Depends(get_db),
):
    lease = load(db, "leases", lease_id, "Lease")
    require_owner(lease, ctx, "landlordId", "lease")
    if lease.get("status") == LeaseStatus.terminated.value:
        raise conflict("Lease is already terminated")

    now = utcnow()
    db.leases.update_one(
        {"_id": lease["_id"]},
        {"$set": {
            "status": LeaseStatus.terminated.value,
            "terminatedAt": now,
            "terminationReason": payload.reason,
            "updatedAt": now,
        }},
    )
    db.micro_properties.update_one({"_id": lease["propertyId"]}, {"$set": {"status": RentalUnitStatus.available.value}})
    notify(db, lease["tenantId"], "Lease terminated", payload.reason or "Your lease has been terminated",
           type=NotificationType.lease, priority=NotificationPriority.high, related_id=lease["_id"])
    print(f"[MICROESTATE] Lease {lease_id} terminated by {ctx.user_id}")
    return ok(db.leases.find_one({"_id": lease["_id"]}), "Lease terminated")


@router.get("/tenant/leases")
def list_tenant_leases(
    ctx: AuthContext = Depends(require_tenant),
    db: Database = Depends(get_db),
):
    now = utcnow()
    leases = [
        sync_lease_status(db, lease, now)
        for lease in db.leases.find({"tenantId": parse_object_id(ctx.user_id, "userId")}).sort("createdAt", DESCENDING)
    ]
    return ok(leases)


# ---------------------------------------------------------
# Utility bills
# ---------------------------------------------------------
@router.get("/bills")
def list_bills(
    status: Optional[BillStatus] = Query(None),
    propertyId: Optional[str] = Query(None),
    page: Page = Depends(page_params),
    ctx: AuthContext = Depends(require_landlord),
    db: Database = Depends(get_db),
):
    now = utcnow()
    landlord_id = parse_object_id(ctx.user_id, "userId")
    for bill in list(db.utility_bills.find({"landlordId": landlord_id, "status": {"$ne": BillStatus.paid.value}})):
        sync_bill_status(db, bill, now)

    filters: Dict[str, Any] = {"landlordId": landlord_id}
    if status:
        filters["status"] = status.value
    if propertyId:
        filters["propertyId"] = parse_object_id(propertyId, "propertyId")
    docs, total = find_page(db.utility_bills, filters, page, sort=[("dueDate", ASCENDING)])
    return paginated(docs, total, page)


@router.post("/bills", status_code=201)
def create_bill(
    payload: BillCreate,
    ctx: AuthContext = Depends(require_landlord),
    db: Database = Depends(get_db),
):
    """
    Raise a utility bill against one of the caller's units.

    Requires an active lease on the unit (for the named tenant, if any).
    """
    unit = load(db, "micro_properties", payload.propertyId, "Property")
    require_owner(unit, ctx, "landlordId", "property")

    lease_filter: Dict[str, Any] = {"propertyId": unit["_id"], "status": LeaseStatus.active.value}
    if payload.tenantId:
        lease_filter["tenantId"] = parse_object_id(payload.tenantId, "tenantId")
    lease = db.leases.find_one(lease_filter)
    if lease is None:
        raise validation_error("No active lease found. You need an active lease with a tenant to create bills.")

    now = utcnow()
    data = payload.dict()
    bill = {
        **data,
        "propertyId": unit["_id"],
        "landlordId": unit["landlordId"],
        "tenantId": lease["tenantId"],
        "leaseId": lease["_id"],
        "paidDate": None,
        "paymentProof": None,
        "status": BillStatus.pending.value,
        "createdAt": now,
        "updatedAt": now,
    }
    bill["status"] = derive_bill_status(bill, now).value
    bill["_id"] = db.utility_bills.insert_one(bill).inserted_id

    if payload.responsibleParty == ResponsibleParty.tenant.value:
        notify(db, bill["tenantId"], "New utility bill",
               f"A {payload.utilityType} bill of {payload.amount} is due", type=NotificationType.bill,
               related_id=bill["_id"])
    print(f"[MICROESTATE] Created bill {bill['_id']}, landlord={ctx.user_id}, status={bill['status']}")
    return ok(bill, "Bill created successfully")


@router.get("/bills/overdue")
def list_overdue_bills(
    ctx: AuthContext = Depends(require_landlord),
    db: Database = Depends(get_db),
):
    now = utcnow()
    bills: List[Dict[str, Any]] = []
    query = {
        "landlordId": parse_object_id(ctx.user_id, "userId"),
        "status": {"$ne": BillStatus.paid.value},
        "dueDate": {"$lt": now},
    }
    for bill in list(db.utility_bills.find(query).sort("dueDate", ASCENDING)):
        bill = sync_bill_status(db, bill, now)
        bill["daysOverdue"] = days_overdue(bill, now)
        bills.append(bill)
    total = sum(b.get("amount", 0) for b in bills)
    return ok({"bills": bills, "count": len(bills), "totalAmount": total})


@router.get("/tenant/bills")
def list_tenant_bills(
    status: Optional[BillStatus] = Query(None),
    ctx: AuthContext = Depends(require_tenant),
    db: Database = Depends(get_db),
):
    now = utcnow()
    bills = [
        sync_bill_status(db, bill, now)
        for bill in list(db.utility_bills.find({"tenantId": parse_object_id(ctx.user_id, "userId")}).sort("dueDate", ASCENDING))
    ]
    if status:
        bills = [b for b in bills if b["status"] == status.value]
    return ok(bills)


@router.get("/bills/{bill_id}")
def get_bill(
    bill_id: str,
    ctx: AuthContext = Depends(require_auth_context),
    db: Database = Depends(get_db),
):
    bill = load(db, "utility_bills", bill_id, "Bill")
    require_any_owner(bill, ctx, ("landlordId", "tenantId"), "bill")
    now = utcnow()
    bill = sync_bill_status(db, bill, now)
    bill["daysOverdue"] = days_overdue(bill, now)
    return ok(bill)


@router.post("/bills/{bill_id}/payment-proof")
def submit_payment_proof(
    bill_id: str,
    payload: PaymentProofRequest,
    ctx: AuthContext = Depends(require_tenant),
    db: Database = Depends(get_db),
):
    bill = load(db, "utility_bills", bill_id, "Bill")
    if not is_owner(bill, ctx, "tenantId"):
        raise forbidden("Access denied")
    if bill.get("status") == BillStatus.paid.value:
        raise validation_error("Bill already paid")

    now = utcnow()
    proof = {"url": payload.paymentProof, "notes": payload.notes, "uploadedAt": now}
    db.utility_bills.update_one({"_id": bill["_id"]}, {"$set": {"paymentProof": proof, "updatedAt": now}})
    notify(db, bill["landlordId"], "Payment proof submitted", "A tenant submitted payment proof for a bill",
           type=NotificationType.payment, related_id=bill["_id"])
    return ok(db.utility_bills.find_one({"_id": bill["_id"]}), "Payment proof submitted")


@router.post("/bills/{bill_id}/mark-as-paid")
def mark_bill_paid(
    bill_id: str,
    ctx: AuthContext = Depends(require_landlord),
    db: Database = Depends(get_db),
):
    bill = load(db, "utility_bills", bill_id, "Bill")
    require_owner(bill, ctx, "landlordId", "bill")
    if bill.get("status") == BillStatus.paid.value:
        raise validation_error("Bill already paid")
    if not (bill.get("paymentProof") or {}).get("url"):
        raise validation_error("Cannot mark as paid without payment proof")

    now = utcnow()
    db.utility_bills.update_one(
        {"_id": bill["_id"]},
        {"$set": {"status": BillStatus.paid.value, "paidDate": now, "updatedAt": now}},
    )
    if bill.get("tenantId"):
        notify(db, bill["tenantId"], "Payment approved", "Your bill payment has been approved",
               type=NotificationType.payment, related_id=bill["_id"])
    print(f"[MICROESTATE] Bill {bill_id} marked paid by {ctx.user_id}")
    return ok(db.utility_bills.find_one({"_id": bill["_id"]}), "Bill approved and marked as paid")


# ---------------------------------------------------------
# Dashboard
# ---------------------------------------------------------
@router.get("/landlord/dashboard")
def landlord_dashboard(
    ctx: AuthContext = Depends(require_landlord),
    db: Database = Depends(get_db),
):
    now = utcnow()
    landlord = get_user(db, ctx.user_id)
    landlord_id = landlord["_id"]

    leases = [sync_lease_status(db, lease, now) for lease in db.leases.find({"landlordId": landlord_id})]
    active_leases = [lease for lease in leases if lease["status"] == LeaseStatus.active.value]
    bills = [sync_bill_status(db, bill, now) for bill in db.utility_bills.find({"landlordId": landlord_id})]
    overdue = [b for b in bills if b["status"] == BillStatus.overdue.value]

    stats = {
        "totalProperties": db.micro_properties.count_documents({"landlordId": landlord_id}),
        "availableProperties": db.micro_properties.count_documents(
            {"landlordId": landlord_id, "status": RentalUnitStatus.available.value}
        ),
        "activeLeases": len(active_leases),
        "activeTenants": len({str(lease["tenantId"]) for lease in active_leases}),
        "monthlyIncome": sum(lease.get("monthlyRent", 0) for lease in active_leases),
        "pendingBills": sum(1 for b in bills if b["status"] == BillStatus.pending.value),
        "overdueBills": len(overdue),
        "overdueAmount": sum(b.get("amount", 0) for b in overdue),
        "unreadNotifications": db.notifications.count_documents({"userId": landlord_id, "read": False}),
    }
    return ok({
        "landlord": {"id": landlord_id, "name": landlord.get("name"), "email": landlord.get("email"),
                     "phone": landlord.get("phone")},
        "stats": stats,
        "recentLeases": sorted(leases, key=lambda lease: lease["createdAt"], reverse=True)[:5],
    })
