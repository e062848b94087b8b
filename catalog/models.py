"""
Domain models for the catalogue core.

This module defines:
- The closed role enumeration and the verified caller identity
- Page and rollup result structures
- Helpers converting between stored documents and JSON-safe dictionaries
"""

from datetime import date, datetime, time
from enum import Enum
from typing import Any, Dict, List, Optional

from bson import ObjectId
from pydantic import BaseModel, ConfigDict, Field

from catalog.errors import CatalogValidationError

SECRET_FIELDS = frozenset({"hashed_password", "password"})


class Role(str, Enum):
    """User roles. Adding a role is a code change, not a data change."""
    CLIENT = "client"
    ADMIN = "admin"


class Identity(BaseModel):
    """Verified caller identity extracted from a bearer credential."""
    model_config = ConfigDict(frozen=True)

    username: str = Field(..., description="Authenticated username")
    role: Role = Field(..., description="Role claim carried by the credential")

    @property
    def is_admin(self) -> bool:
        return self.role is Role.ADMIN


class Page(BaseModel):
    """One window of a filtered, sorted collection."""
    items: List[Dict[str, Any]] = Field(default_factory=list, description="Entities on this page")
    total_count: int = Field(..., ge=0, description="Entities matching the filter")
    total_pages: int = Field(..., ge=0, description="ceil(total_count / page_size)")
    current_page: int = Field(..., ge=1, description="Requested page number")
    page_size: int = Field(..., ge=1, description="Maximum items per page")
    has_next: bool = Field(..., description="Whether there is a next page")
    has_prev: bool = Field(..., description="Whether there is a previous page")


class GenreCount(BaseModel):
    genre: str
    total_books: int


class GenreAveragePrice(BaseModel):
    genre: str
    avg_price: float


class ProlificAuthor(BaseModel):
    id: str
    name: str
    nationality: Optional[str] = None
    total_books: int


class AggregationResult(BaseModel):
    """Rollups over the whole Book collection."""
    books_per_genre: List[GenreCount] = Field(default_factory=list)
    avg_price_per_genre: List[GenreAveragePrice] = Field(default_factory=list)
    most_prolific_author: Optional[ProlificAuthor] = None

    def to_response(self) -> Dict[str, Any]:
        """Serialize, leaving ``most_prolific_author`` out entirely when unknown."""
        exclude = {"most_prolific_author"} if self.most_prolific_author is None else None
        return self.model_dump(exclude=exclude)


def to_object_id(value: Any, field: str = "id") -> ObjectId:
    """
    Parse a client-supplied identifier.

    Raises:
        CatalogValidationError: If the value is not a 24-hex ObjectId
    """
    if isinstance(value, ObjectId):
        return value
    if isinstance(value, str) and ObjectId.is_valid(value):
        return ObjectId(value)
    raise CatalogValidationError("Invalid ID format", field=field, value=str(value))


def to_storage_datetime(value: Any) -> Any:
    """BSON has no date type; store calendar dates as midnight datetimes."""
    if isinstance(value, date) and not isinstance(value, datetime):
        return datetime.combine(value, time.min)
    return value


def serialize_value(value: Any) -> Any:
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, dict):
        return serialize_document(value)
    if isinstance(value, (list, tuple)):
        return [serialize_value(item) for item in value]
    return value


def serialize_document(document: Dict[str, Any]) -> Dict[str, Any]:
    """
    Convert a stored document into a JSON-safe dictionary.

    ``_id`` becomes ``id``, ObjectIds and datetimes become strings and
    password material is dropped.
    """
    result = {}
    for key, value in document.items():
        if key in SECRET_FIELDS:
            continue
        if key == "_id":
            result["id"] = serialize_value(value)
        else:
            result[key] = serialize_value(value)
    return result
