"""
estate_backend/routes_projects.py

Builder projects. Builders create projects in `pending`; an admin moves
them to `active` before they appear in the public listing.
"""

from __future__ import annotations

import re
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query
from pymongo import ReturnDocument
from pymongo.database import Database

from estate_backend.accounts import get_user
from estate_backend.auth_context import AuthContext, require_auth_context, resolve_identity
from estate_backend.db import get_db, parse_object_id, utcnow
from estate_backend.errors import not_found, validation_error
from estate_backend.models import ProjectStatus, Role
from estate_backend.query import Page, SortOption, find_page, ok, page_params, paginated, sort_spec
from estate_backend.rbac import is_owner, require_owner, require_role
from estate_backend.schemas import ProjectCreate, ProjectStatusUpdate, ProjectUpdate


router = APIRouter(
    prefix="/api/projects",
    tags=["projects"],
)


def load_project(db: Database, project_id: str) -> Dict[str, Any]:
    doc = db.projects.find_one({"_id": parse_object_id(project_id, "projectId")})
    if doc is None:
        raise not_found("Project")
    return doc


def bump_counter(db: Database, project_id: str, field: str) -> Dict[str, Any]:
    doc = db.projects.find_one_and_update(
        {"_id": parse_object_id(project_id, "projectId")},
        {"$inc": {field: 1}},
        return_document=ReturnDocument.AFTER,
    )
    if doc is None:
        raise not_found("Project")
    return doc


@router.get("")
def list_projects(
    projectType: Optional[str] = Query(None, max_length=50),
    city: Optional[str] = Query(None, max_length=100),
    locality: Optional[str] = Query(None, max_length=100),
    sort: SortOption = Query(SortOption.newest),
    page: Page = Depends(page_params),
    db: Database = Depends(get_db),
):
    filters: Dict[str, Any] = {"status": ProjectStatus.active.value}
    if projectType:
        filters["projectType"] = projectType
    if city:
        filters["city"] = {"$regex": f"^{re.escape(city)}$", "$options": "i"}
    if locality:
        filters["locality"] = {"$regex": re.escape(locality), "$options": "i"}
    docs, total = find_page(db.projects, filters, page, sort=sort_spec(sort, price_field="priceRange.min"))
    return paginated(docs, total, page)


@router.get("/mine")
def list_my_projects(
    page: Page = Depends(page_params),
    ctx: AuthContext = Depends(require_role(Role.builder)),
    db: Database = Depends(get_db),
):
    filters = {"developer": parse_object_id(ctx.user_id, "userId")}
    docs, total = find_page(db.projects, filters, page, sort=sort_spec(SortOption.newest))
    return paginated(docs, total, page)


@router.post("", status_code=201)
def create_project(
    payload: ProjectCreate,
    ctx: AuthContext = Depends(require_role(Role.builder)),
    db: Database = Depends(get_db),
):
    builder = get_user(db, ctx.user_id)
    now = utcnow()
    doc = {
        **payload.dict(),
        "developer": builder["_id"],
        "developerContact": {
            "name": builder.get("name"),
            "phone": builder.get("phone"),
            "email": builder.get("email"),
            "affiliation": (builder.get("builderInfo") or {}).get("companyName"),
        },
        "status": ProjectStatus.pending.value,
        "verified": False,
        "views": 0,
        "favorites": 0,
        "inquiries": 0,
        "createdAt": now,
        "updatedAt": now,
    }
    doc["_id"] = db.projects.insert_one(doc).inserted_id
    print(f"[PROJECTS] Created project_id={doc['_id']}, developer={ctx.user_id}")
    return ok(doc, "Project submitted for approval")


@router.get("/{project_id}")
def get_project(
    project_id: str,
    identity: Optional[AuthContext] = Depends(resolve_identity),
    db: Database = Depends(get_db),
):
    doc = load_project(db, project_id)
    if doc.get("status") != ProjectStatus.active.value:
        allowed = identity is not None and (identity.role == Role.admin or is_owner(doc, identity, "developer"))
        if not allowed:
            raise not_found("Project")
    return ok(doc)


@router.put("/{project_id}")
def update_project(
    project_id: str,
    payload: ProjectUpdate,
    ctx: AuthContext = Depends(require_auth_context),
    db: Database = Depends(get_db),
):
    doc = load_project(db, project_id)
    require_owner(doc, ctx, "developer", "project")
    updates = payload.dict(exclude_unset=True)
    if not updates:
        raise validation_error("No updatable fields provided")
    updates["updatedAt"] = utcnow()
    db.projects.update_one({"_id": doc["_id"]}, {"$set": updates})
    return ok(db.projects.find_one({"_id": doc["_id"]}), "Project updated successfully")


@router.delete("/{project_id}")
def delete_project(
    project_id: str,
    ctx: AuthContext = Depends(require_auth_context),
    db: Database = Depends(get_db),
):
    doc = load_project(db, project_id)
    require_owner(doc, ctx, "developer", "project")
    db.projects.delete_one({"_id": doc["_id"]})
    print(f"[PROJECTS] Deleted project_id={project_id}, by={ctx.user_id}")
    return ok(message="Project deleted successfully")


@router.patch("/{project_id}/status")
def review_project(
    project_id: str,
    payload: ProjectStatusUpdate,
    ctx: AuthContext = Depends(require_role(Role.admin)),
    db: Database = Depends(get_db),
):
    doc = load_project(db, project_id)
    updates = {"status": payload.status, "updatedAt": utcnow()}
    if payload.status == ProjectStatus.active.value:
        updates["verified"] = True
    db.projects.update_one({"_id": doc["_id"]}, {"$set": updates})
    print(f"[PROJECTS] Status project_id={project_id} -> {payload.status}, by={ctx.user_id}")
    return ok(db.projects.find_one({"_id": doc["_id"]}), "Project status updated")


@router.post("/{project_id}/view")
def track_view(project_id: str, db: Database = Depends(get_db)):
    doc = bump_counter(db, project_id, "views")
    return ok({"views": doc["views"]})


@router.post("/{project_id}/inquiry")
def track_inquiry(project_id: str, db: Database = Depends(get_db)):
    doc = bump_counter(db, project_id, "inquiries")
    return ok({"inquiries": doc["inquiries"]})
