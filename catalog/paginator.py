"""
Paginator applying a QuerySpec to a collection.
"""

import math
from typing import Any, Dict, List, Optional, Tuple

import structlog
from motor.motor_asyncio import AsyncIOMotorCollection

from catalog.models import Page
from catalog.query_builder import QuerySpec

logger = structlog.get_logger(__name__)

TIE_BREAK = ("_id", 1)


def stable_sort(sort: List[Tuple[str, int]]) -> List[Tuple[str, int]]:
    """Append an ascending ``_id`` key so equal sort keys order deterministically."""
    if any(field == "_id" for field, _ in sort):
        return list(sort)
    return list(sort) + [TIE_BREAK]


def page_metadata(total_count: int, page: int, limit: int) -> Dict[str, Any]:
    total_pages = math.ceil(total_count / limit)
    return {
        "total_count": total_count,
        "total_pages": total_pages,
        "current_page": page,
        "page_size": limit,
        "has_next": page < total_pages,
        "has_prev": page > 1,
    }


async def paginate(
    collection: AsyncIOMotorCollection,
    spec: QuerySpec,
    projection: Optional[Dict[str, Any]] = None
) -> Page:
    """
    Fetch one page of documents matching ``spec``.

    Pages past the last one come back empty with the usual metadata.

    Args:
        collection: Collection to query
        spec: Filter, sort and window from the query builder
        projection: Optional field projection

    Returns:
        Page with raw documents as items
    """
    total_count = await collection.count_documents(spec.filter)

    cursor = (
        collection.find(spec.filter, projection)
        .sort(stable_sort(spec.sort))
        .skip(spec.skip)
        .limit(spec.limit)
    )
    items = await cursor.to_list(length=spec.limit)

    logger.debug(
        "Fetched page",
        collection=collection.name,
        total_count=total_count,
        page=spec.page,
        returned=len(items)
    )

    return Page(items=items, **page_metadata(total_count, spec.page, spec.limit))
