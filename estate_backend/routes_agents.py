"""
estate_backend/routes_agents.py

Agent directory, weekly availability, appointment booking and reviews.

Appointment rules:
- the date must not be blocked and the slot must fit inside one of the
  agent's availability windows for that weekday
- a slot may not overlap a non-cancelled appointment on the same date
- only the agent confirms or completes; cancelled/completed are final
"""

from __future__ import annotations

import re
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from bson import ObjectId
from fastapi import APIRouter, Depends, Query
from pymongo import DESCENDING
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from estate_backend.accounts import PUBLIC_USER_PROJECTION, notify
from estate_backend.auth_context import AuthContext, require_auth_context
from estate_backend.config import IS_DEV
from estate_backend.db import get_db, parse_object_id, utcnow
from estate_backend.errors import conflict, forbidden, not_found, validation_error
from estate_backend.models import AppointmentStatus, AppointmentType, NotificationType, ReviewStatus, Role
from estate_backend.query import Page, find_page, ok, page_params, paginated
from estate_backend.rbac import is_owner
from estate_backend.schemas import AppointmentCreate, AppointmentUpdate, ReviewCreate, ScheduleUpdate


router = APIRouter(
    prefix="/api/agents",
    tags=["agents"],
)

FINAL_APPOINTMENT_STATUSES = (AppointmentStatus.cancelled.value, AppointmentStatus.completed.value)
AGENT_ONLY_STATUSES = (AppointmentStatus.confirmed.value, AppointmentStatus.completed.value)


# ---------------------------------------------------------
# Scheduling rules
# ---------------------------------------------------------
def day_of_week(value: datetime) -> int:
    """0 = Sunday ... 6 = Saturday."""
    return (value.weekday() + 1) % 7


def slots_overlap(start1: str, end1: str, start2: str, end2: str) -> bool:
    # zero-padded HH:MM strings compare in time order
    return start1 < end2 and end1 > start2


def within_availability(day: int, start: str, end: str, availability: Iterable[Dict[str, Any]]) -> bool:
    return any(
        slot.get("dayOfWeek") == day and slot.get("startTime") <= start and slot.get("endTime") >= end
        for slot in availability
    )


def is_blocked(date: datetime, blocked_dates: Iterable[Dict[str, Any]]) -> bool:
    return any(b.get("date") and b["date"].date() == date.date() for b in blocked_dates)


def has_conflict(date: datetime, start: str, end: str, appointments: Iterable[Dict[str, Any]]) -> bool:
    return any(
        apt["date"].date() == date.date()
        and apt.get("status") != AppointmentStatus.cancelled.value
        and slots_overlap(start, end, apt["startTime"], apt["endTime"])
        for apt in appointments
    )


# ---------------------------------------------------------
# Helpers
# ---------------------------------------------------------
def load_agent(db: Database, agent_id: str) -> Dict[str, Any]:
    agent = db.users.find_one(
        {"_id": parse_object_id(agent_id, "agentId"), "role": Role.agent.value},
        PUBLIC_USER_PROJECTION,
    )
    if agent is None:
        raise not_found("Agent")
    return agent


def refresh_agent_rating(db: Database, agent_id: ObjectId) -> Dict[str, Any]:
    ratings = [r["rating"] for r in db.reviews.find({"agent": agent_id, "status": ReviewStatus.approved.value})]
    average = round(sum(ratings) / len(ratings), 1) if ratings else 0
    db.users.update_one(
        {"_id": agent_id},
        {"$set": {"agentInfo.rating": average, "agentInfo.reviewCount": len(ratings)}},
    )
    distribution = {str(star): ratings.count(star) for star in range(1, 6)}
    return {"average": average, "count": len(ratings), "distribution": distribution}


# ---------------------------------------------------------
# Directory
# ---------------------------------------------------------
@router.get("")
def list_agents(
    agency: Optional[str] = Query(None, max_length=100),
    specialization: Optional[str] = Query(None, max_length=100),
    language: Optional[str] = Query(None, max_length=50),
    minExperience: Optional[int] = Query(None, ge=0),
    minRating: Optional[float] = Query(None, ge=0, le=5),
    city: Optional[str] = Query(None, max_length=100),
    page: Page = Depends(page_params),
    db: Database = Depends(get_db),
):
    """Public directory of verified agents, best rated first."""
    filters: Dict[str, Any] = {"role": Role.agent.value, "agentInfo.verified": True}
    if agency:
        filters["agentInfo.agency"] = agency
    if specialization:
        filters["agentInfo.specializations"] = specialization
    if language:
        filters["agentInfo.languages"] = language
    if minExperience is not None:
        filters["agentInfo.experience"] = {"$gte": minExperience}
    if minRating is not None:
        filters["agentInfo.rating"] = {"$gte": minRating}
    if city:
        filters["address.city"] = {"$regex": f"^{re.escape(city)}$", "$options": "i"}
    docs, total = find_page(
        db.users, filters, page,
        sort=[("agentInfo.rating", DESCENDING), ("createdAt", DESCENDING)],
        projection=PUBLIC_USER_PROJECTION,
    )
    return paginated(docs, total, page)


@router.get("/{agent_id}")
def get_agent(agent_id: str, db: Database = Depends(get_db)):
    agent = load_agent(db, agent_id)
    agent["assignedListings"] = db.properties.count_documents({"agent": agent["_id"], "status": "active"})
    return ok(agent)


# ---------------------------------------------------------
# Schedule
# ---------------------------------------------------------
@router.get("/{agent_id}/schedule")
def get_schedule(agent_id: str, db: Database = Depends(get_db)):
    agent = load_agent(db, agent_id)
    schedule = db.agent_schedules.find_one({"agent": agent["_id"]}, {"appointments": 0})
    if schedule is None:
        raise not_found("Schedule")
    return ok(schedule)


@router.put("/{agent_id}/schedule")
def set_schedule(
    agent_id: str,
    payload: ScheduleUpdate,
    ctx: AuthContext = Depends(require_auth_context),
    db: Database = Depends(get_db),
):
    agent = load_agent(db, agent_id)
    if str(agent["_id"]) != ctx.user_id:
        raise forbidden("You can only manage your own schedule")

    now = utcnow()
    data = payload.dict()
    db.agent_schedules.update_one(
        {"agent": agent["_id"]},
        {
            "$set": {"availability": data["availability"], "blockedDates": data["blockedDates"], "updatedAt": now},
            "$setOnInsert": {"agent": agent["_id"], "appointments": [], "createdAt": now},
        },
        upsert=True,
    )
    return ok(db.agent_schedules.find_one({"agent": agent["_id"]}, {"appointments": 0}), "Schedule updated")


# ---------------------------------------------------------
# Appointments
# ---------------------------------------------------------
@router.get("/{agent_id}/appointments")
def list_appointments(
    agent_id: str,
    status: Optional[AppointmentStatus] = Query(None),
    ctx: AuthContext = Depends(require_auth_context),
    db: Database = Depends(get_db),
):
    """The agent sees every appointment; anyone else sees only their own."""
    agent_oid = parse_object_id(agent_id, "agentId")
    schedule = db.agent_schedules.find_one({"agent": agent_oid})
    if schedule is None:
        raise not_found("Schedule")

    appointments: List[Dict[str, Any]] = schedule.get("appointments") or []
    if str(agent_oid) != ctx.user_id:
        appointments = [apt for apt in appointments if str(apt.get("client")) == ctx.user_id]
    if status:
        appointments = [apt for apt in appointments if apt.get("status") == status.value]
    appointments.sort(key=lambda apt: (apt["date"], apt["startTime"]))
    return ok(appointments)


@router.post("/{agent_id}/appointments", status_code=201)
def book_appointment(
    agent_id: str,
    payload: AppointmentCreate,
    ctx: AuthContext = Depends(require_auth_context),
    db: Database = Depends(get_db),
):
    agent = load_agent(db, agent_id)
    if str(agent["_id"]) == ctx.user_id:
        raise validation_error("You cannot book an appointment with yourself")

    property_id = None
    if payload.type == AppointmentType.property_viewing.value:
        if not payload.propertyId:
            raise validation_error("Valid property ID is required for property viewing", field="propertyId")
        prop = db.properties.find_one({"_id": parse_object_id(payload.propertyId, "propertyId")})
        if prop is None:
            raise not_found("Property")
        if prop.get("agent") != agent["_id"] and prop.get("owner") != agent["_id"]:
            raise forbidden("Agent is not associated with this property")
        property_id = prop["_id"]

    schedule = db.agent_schedules.find_one({"agent": agent["_id"]})
    if schedule is None:
        raise not_found("Agent schedule")
    if is_blocked(payload.date, schedule.get("blockedDates") or []):
        raise validation_error("Agent is not available on this date", field="date")
    if not within_availability(day_of_week(payload.date), payload.startTime, payload.endTime,
                               schedule.get("availability") or []):
        raise validation_error("Time slot is outside agent's availability", field="startTime")
    if has_conflict(payload.date, payload.startTime, payload.endTime, schedule.get("appointments") or []):
        raise conflict("Time slot conflicts with another appointment")

    now = utcnow()
    appointment = {
        "_id": ObjectId(),
        "date": payload.date,
        "startTime": payload.startTime,
        "endTime": payload.endTime,
        "client": parse_object_id(ctx.user_id, "userId"),
        "property": property_id,
        "type": payload.type,
        "status": AppointmentStatus.pending.value,
        "notes": payload.notes,
        "createdAt": now,
    }
    db.agent_schedules.update_one(
        {"_id": schedule["_id"]},
        {"$push": {"appointments": appointment}, "$set": {"updatedAt": now}},
    )
    notify(db, agent["_id"], "New appointment request",
           f"Appointment requested for {payload.date.date().isoformat()} {payload.startTime}-{payload.endTime}",
           type=NotificationType.appointment, related_id=appointment["_id"])
    if IS_DEV:
        print(f"[AGENTS] Appointment {appointment['_id']} booked with agent={agent_id} by {ctx.user_id}")
    return ok(appointment, "Appointment booked successfully")


@router.patch("/{agent_id}/appointments/{appointment_id}")
def update_appointment(
    agent_id: str,
    appointment_id: str,
    payload: AppointmentUpdate,
    ctx: AuthContext = Depends(require_auth_context),
    db: Database = Depends(get_db),
):
    agent_oid = parse_object_id(agent_id, "agentId")
    appointment_oid = parse_object_id(appointment_id, "appointmentId")
    schedule = db.agent_schedules.find_one({"agent": agent_oid})
    if schedule is None:
        raise not_found("Schedule")

    appointments = schedule.get("appointments") or []
    appointment = next((apt for apt in appointments if apt.get("_id") == appointment_oid), None)
    if appointment is None:
        raise not_found("Appointment")

    is_agent = str(agent_oid) == ctx.user_id
    if not is_agent and str(appointment.get("client")) != ctx.user_id:
        raise forbidden("You do not have permission to update this appointment")
    if appointment.get("status") in FINAL_APPOINTMENT_STATUSES:
        raise validation_error("Cannot update status of cancelled or completed appointments")
    if payload.status in AGENT_ONLY_STATUSES and not is_agent:
        raise forbidden("Only the agent can confirm or complete appointments")

    appointment["status"] = payload.status
    if payload.notes is not None:
        appointment["notes"] = payload.notes
    db.agent_schedules.update_one(
        {"_id": schedule["_id"]},
        {"$set": {"appointments": appointments, "updatedAt": utcnow()}},
    )
    other = appointment["client"] if is_agent else agent_oid
    notify(db, other, "Appointment updated", f"Appointment status changed to {payload.status}",
           type=NotificationType.appointment, related_id=appointment_oid)
    return ok(appointment, "Appointment status updated successfully")


# ---------------------------------------------------------
# Reviews
# ---------------------------------------------------------
@router.get("/{agent_id}/reviews")
def list_reviews(
    agent_id: str,
    page: Page = Depends(page_params),
    db: Database = Depends(get_db),
):
    agent = load_agent(db, agent_id)
    filters = {"agent": agent["_id"], "status": ReviewStatus.approved.value}
    docs, total = find_page(db.reviews, filters, page, sort=[("createdAt", DESCENDING)])
    body = paginated(docs, total, page)
    ratings = [r["rating"] for r in db.reviews.find(filters, {"rating": 1})]
    body["stats"] = {
        "average": (agent.get("agentInfo") or {}).get("rating", 0),
        "count": len(ratings),
        "distribution": {str(star): ratings.count(star) for star in range(1, 6)},
    }
    return body


@router.post("/{agent_id}/reviews", status_code=201)
def create_review(
    agent_id: str,
    payload: ReviewCreate,
    ctx: AuthContext = Depends(require_auth_context),
    db: Database = Depends(get_db),
):
    """
    Review an agent. Reviews are published immediately and the agent's
    rating is recomputed.

    Raises:
        ApiError(400): Reviewing yourself
        ApiError(409): Caller already reviewed this agent
    """
    agent = load_agent(db, agent_id)
    reviewer_id = parse_object_id(ctx.user_id, "userId")
    if agent["_id"] == reviewer_id:
        raise validation_error("You cannot review yourself")
    if db.reviews.find_one({"agent": agent["_id"], "reviewer": reviewer_id}) is not None:
        raise conflict("You have already reviewed this agent")

    now = utcnow()
    review = {
        "agent": agent["_id"],
        "reviewer": reviewer_id,
        **payload.dict(),
        "status": ReviewStatus.approved.value,
        "createdAt": now,
        "updatedAt": now,
    }
    try:
        review["_id"] = db.reviews.insert_one(review).inserted_id
    except DuplicateKeyError:
        raise conflict("You have already reviewed this agent")

    stats = refresh_agent_rating(db, agent["_id"])
    return ok({"review": review, "stats": stats}, "Review submitted successfully")


@router.delete("/{agent_id}/reviews/{review_id}")
def delete_review(
    agent_id: str,
    review_id: str,
    ctx: AuthContext = Depends(require_auth_context),
    db: Database = Depends(get_db),
):
    review = db.reviews.find_one({
        "_id": parse_object_id(review_id, "reviewId"),
        "agent": parse_object_id(agent_id, "agentId"),
    })
    if review is None:
        raise not_found("Review")
    if ctx.role != Role.admin and not is_owner(review, ctx, "reviewer"):
        raise forbidden("You can only delete your own reviews")

    db.reviews.delete_one({"_id": review["_id"]})
    stats = refresh_agent_rating(db, review["agent"])
    return ok({"stats": stats}, "Review deleted successfully")
