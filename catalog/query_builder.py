"""
Query builder translating raw request parameters into datastore queries.

Every parameter is optional and every invalid value degrades to "no filter"
or to the configured default; building a query never fails. The defaulting
rule for each field is declared next to the field in its ``QueryConfig``.
"""

import math
import re
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple

import structlog
from bson import ObjectId
from pydantic import BaseModel, ConfigDict, Field, model_validator

logger = structlog.get_logger(__name__)

ORDER_PARAMS = ("sortOrder", "order")


class FieldKind(str, Enum):
    """How a query parameter becomes a filter clause."""
    TEXT = "text"            # case-insensitive substring
    EXACT = "exact"          # equality on the raw string
    RANGE = "range"          # independent numeric lower/upper bounds
    BOOLEAN = "boolean"      # literal "true"/"false" only
    REFERENCE = "reference"  # equality on an ObjectId


class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"

    @property
    def direction(self) -> int:
        return 1 if self is SortOrder.ASC else -1


class FilterField(BaseModel):
    """A filterable document field and the parameter(s) that drive it."""
    model_config = ConfigDict(frozen=True)

    field: str = Field(..., description="Stored document field")
    kind: FieldKind
    param: Optional[str] = Field(None, description="Query parameter for non-range kinds")
    min_param: Optional[str] = Field(None, description="Lower-bound parameter for ranges")
    max_param: Optional[str] = Field(None, description="Upper-bound parameter for ranges")
    on_invalid: str = Field("ignored", description="What happens to an unusable value")

    @model_validator(mode="after")
    def check_params(self):
        if self.kind is FieldKind.RANGE:
            if not (self.min_param or self.max_param):
                raise ValueError("range fields need min_param or max_param")
        elif not self.param:
            raise ValueError(f"{self.kind.value} fields need param")
        return self


class QueryConfig(BaseModel):
    """Per-entity allow-lists and defaults."""
    model_config = ConfigDict(frozen=True)

    filters: Tuple[FilterField, ...] = ()
    sort_fields: Dict[str, str] = Field(..., description="Public sort name -> stored field")
    default_sort: str
    default_order: SortOrder = SortOrder.ASC
    default_page: int = Field(1, ge=1)
    default_limit: int = Field(10, ge=1)
    max_limit: int = Field(100, ge=1)

    @model_validator(mode="after")
    def check_defaults(self):
        if self.default_sort not in self.sort_fields:
            raise ValueError("default_sort must be one of sort_fields")
        if self.default_limit > self.max_limit:
            raise ValueError("default_limit cannot exceed max_limit")
        return self


class QuerySpec(BaseModel):
    """Normalized query: filter predicate, sort specification and window."""
    filter: Dict[str, Any] = Field(default_factory=dict)
    sort: List[Tuple[str, int]] = Field(default_factory=list)
    page: int = Field(..., ge=1)
    limit: int = Field(..., ge=1)

    @property
    def skip(self) -> int:
        return (self.page - 1) * self.limit


def _present(raw: Any) -> Optional[str]:
    if raw is None:
        return None
    value = str(raw).strip()
    return value or None


def parse_number(raw: Any) -> Optional[float]:
    """Parse a finite number, or return None."""
    value = _present(raw)
    if value is None:
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def parse_boolean(raw: Any) -> Optional[bool]:
    if raw == "true":
        return True
    if raw == "false":
        return False
    return None


def parse_positive_int(raw: Any, default: int) -> int:
    value = _present(raw)
    if value is None:
        return default
    try:
        number = int(value)
    except (TypeError, ValueError):
        return default
    return number if number > 0 else default


def _build_clause(spec: FilterField, params: Mapping[str, Any]) -> Optional[Any]:
    if spec.kind is FieldKind.RANGE:
        bounds = {}
        lower = parse_number(params.get(spec.min_param)) if spec.min_param else None
        upper = parse_number(params.get(spec.max_param)) if spec.max_param else None
        if lower is not None:
            bounds["$gte"] = lower
        if upper is not None:
            bounds["$lte"] = upper
        return bounds or None

    raw = params.get(spec.param)

    if spec.kind is FieldKind.BOOLEAN:
        return parse_boolean(raw)

    value = _present(raw)
    if value is None:
        return None
    if spec.kind is FieldKind.TEXT:
        return {"$regex": re.escape(value), "$options": "i"}
    if spec.kind is FieldKind.REFERENCE:
        return ObjectId(value) if ObjectId.is_valid(value) else None
    return value


def build_filter(params: Mapping[str, Any], config: QueryConfig) -> Dict[str, Any]:
    query = {}
    for spec in config.filters:
        clause = _build_clause(spec, params)
        if clause is not None:
            query[spec.field] = clause
    return query


def build_sort(params: Mapping[str, Any], config: QueryConfig) -> List[Tuple[str, int]]:
    """
    Resolve the sort field and direction.

    An unknown ``sortBy`` falls back to the default field *and* the default
    direction. A missing ``sortBy`` uses the default field but still honours a
    valid direction.
    """
    requested = _present(params.get("sortBy"))
    raw_order = next((params.get(name) for name in ORDER_PARAMS if params.get(name) is not None), None)

    try:
        order = SortOrder(_present(raw_order))
    except ValueError:
        order = config.default_order

    if requested is None:
        field = config.sort_fields[config.default_sort]
    elif requested in config.sort_fields:
        field = config.sort_fields[requested]
    else:
        field = config.sort_fields[config.default_sort]
        order = config.default_order

    return [(field, order.direction)]


def build_query(params: Mapping[str, Any], config: QueryConfig) -> QuerySpec:
    """
    Build a normalized query from raw request parameters.

    Args:
        params: String-valued query parameters
        config: Entity-specific allow-lists and defaults

    Returns:
        QuerySpec with filter, sort, page and limit
    """
    page = parse_positive_int(params.get("page"), config.default_page)
    limit = min(parse_positive_int(params.get("limit"), config.default_limit), config.max_limit)

    spec = QuerySpec(
        filter=build_filter(params, config),
        sort=build_sort(params, config),
        page=page,
        limit=limit,
    )
    logger.debug("Built query", filter_fields=sorted(spec.filter), sort=spec.sort, page=page, limit=limit)
    return spec


AUTHOR_QUERY = QueryConfig(
    filters=(
        FilterField(field="name", kind=FieldKind.TEXT, param="name"),
        FilterField(field="nationality", kind=FieldKind.EXACT, param="nationality"),
        FilterField(
            field="age", kind=FieldKind.RANGE, min_param="minAge", max_param="maxAge",
            on_invalid="bound ignored when not a finite number",
        ),
    ),
    sort_fields={
        "name": "name",
        "age": "age",
        "nationality": "nationality",
        "createdAt": "created_at",
        "created_at": "created_at",
    },
    default_sort="createdAt",
    default_order=SortOrder.DESC,
    default_limit=10,
)

BOOK_QUERY = QueryConfig(
    filters=(
        FilterField(field="title", kind=FieldKind.TEXT, param="title"),
        FilterField(field="genre", kind=FieldKind.EXACT, param="genre"),
        FilterField(
            field="price", kind=FieldKind.RANGE, min_param="minPrice", max_param="maxPrice",
            on_invalid="bound ignored when not a finite number",
        ),
        FilterField(
            field="available", kind=FieldKind.BOOLEAN, param="available",
            on_invalid="anything but 'true'/'false' means no filter",
        ),
        FilterField(
            field="author", kind=FieldKind.REFERENCE, param="author",
            on_invalid="ignored when not an ObjectId",
        ),
    ),
    sort_fields={
        "title": "title",
        "price": "price",
        "publishedDate": "published_date",
        "published_date": "published_date",
        "createdAt": "created_at",
        "created_at": "created_at",
    },
    default_sort="title",
    default_order=SortOrder.ASC,
    default_limit=5,
)
