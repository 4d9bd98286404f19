"""
estate_backend/query.py

Listing helpers shared by every collection endpoint: page/limit parsing,
the sort allow-list, and the success envelopes.
"""

from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from fastapi import Query
from pydantic import BaseModel
from pymongo import ASCENDING, DESCENDING
from pymongo.collection import Collection

from estate_backend.config import DEFAULT_PAGE_LIMIT, MAX_PAGE_LIMIT
from estate_backend.db import serialize_doc


class SortOption(str, Enum):
    newest = "newest"
    oldest = "oldest"
    price_asc = "price_asc"
    price_desc = "price_desc"
    popular = "popular"


class Page(BaseModel):
    page: int
    limit: int

    @property
    def skip(self) -> int:
        return (self.page - 1) * self.limit


def page_params(
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_PAGE_LIMIT, ge=1, le=MAX_PAGE_LIMIT),
) -> Page:
    return Page(page=page, limit=limit)


def sort_spec(option: SortOption, price_field: str = "price", popularity_field: str = "views") -> List[Tuple[str, int]]:
    """Translate an allow-listed sort option into a pymongo sort specification."""
    if option == SortOption.oldest:
        return [("createdAt", ASCENDING)]
    if option == SortOption.price_asc:
        return [(price_field, ASCENDING), ("createdAt", DESCENDING)]
    if option == SortOption.price_desc:
        return [(price_field, DESCENDING), ("createdAt", DESCENDING)]
    if option == SortOption.popular:
        return [(popularity_field, DESCENDING), ("createdAt", DESCENDING)]
    return [("createdAt", DESCENDING)]


def find_page(
    collection: Collection,
    filters: Dict[str, Any],
    page: Page,
    sort: Optional[List[Tuple[str, int]]] = None,
    projection: Optional[Dict[str, int]] = None,
) -> Tuple[List[Dict[str, Any]], int]:
    total = collection.count_documents(filters)
    cursor = collection.find(filters, projection)
    if sort:
        cursor = cursor.sort(sort)
    docs = list(cursor.skip(page.skip).limit(page.limit))
    return docs, total


# ---------------------------------------------------------
# Envelopes
# ---------------------------------------------------------
def ok(data: Any = None, message: Optional[str] = None) -> Dict[str, Any]:
    body: Dict[str, Any] = {"success": True}
    if message:
        body["message"] = message
    body["data"] = serialize_doc(data)
    return body


def paginated(docs: List[Dict[str, Any]], total: int, page: Page) -> Dict[str, Any]:
    pages = (total + page.limit - 1) // page.limit if total else 0
    return {
        "success": True,
        "data": serialize_doc(docs),
        "pagination": {
            "page": page.page,
            "limit": page.limit,
            "total": total,
            "pages": pages,
            "hasMore": page.page < pages,
        },
    }
