"""
API models and schemas for the FastAPI application.
"""

from datetime import date, datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from catalog.models import Role
from catalog.security import MAX_PASSWORD_BYTES

EMAIL_PATTERN = r"^\S+@\S+\.\S+$"


class PartialModel(BaseModel):
    """Base for PATCH bodies: fields may be omitted but not sent as null."""

    @model_validator(mode="before")
    @classmethod
    def reject_nulls(cls, data):
        if isinstance(data, dict):
            nulls = sorted(key for key, value in data.items() if value is None)
            if nulls:
                raise ValueError(f"Fields cannot be null: {', '.join(nulls)}")
        return data


class AuthorCreate(BaseModel):
    """Body for creating or replacing an author."""
    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    name: str = Field(..., min_length=3, description="Author name")
    age: int = Field(0, ge=0, description="Author age")
    nationality: str = Field(..., min_length=1, description="Author nationality")
    books: List[str] = Field(default_factory=list, description="Book IDs written by the author")


class AuthorUpdate(PartialModel):
    """Body for partially updating an author."""
    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    name: Optional[str] = Field(None, min_length=3)
    age: Optional[int] = Field(None, ge=0)
    nationality: Optional[str] = Field(None, min_length=1)
    books: Optional[List[str]] = None


class AuthorResponse(BaseModel):
    """Author response model for API."""
    id: str = Field(..., description="Unique author identifier")
    name: str
    age: int = 0
    nationality: Optional[str] = None
    books: List[Any] = Field(default_factory=list, description="Book IDs, or book summaries on single fetch")
    version: int = Field(0, description="Incremented on every effective change")
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class AuthorListResponse(BaseModel):
    """Response model for author list with pagination."""
    items: List[AuthorResponse]
    total_count: int
    total_pages: int
    current_page: int
    page_size: int
    has_next: bool
    has_prev: bool


class AuthorSearchResponse(BaseModel):
    """Free-text search results; not paginated."""
    items: List[AuthorResponse]
    total_count: int


class BookCreate(BaseModel):
    """Body for creating or replacing a book."""
    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    title: str = Field(..., min_length=3, description="Unique book title")
    genre: str = Field(..., min_length=3, description="Book genre")
    price: float = Field(..., gt=0, description="Book price")
    published_date: date = Field(..., description="Publication date")
    available: bool = Field(True, description="Whether the book is available")
    author: str = Field(..., description="ID of an existing author")


class BookUpdate(PartialModel):
    """Body for partially updating a book."""
    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    title: Optional[str] = Field(None, min_length=3)
    genre: Optional[str] = Field(None, min_length=3)
    price: Optional[float] = Field(None, gt=0)
    published_date: Optional[date] = None
    available: Optional[bool] = None
    author: Optional[str] = None


class AuthorSummary(BaseModel):
    id: str
    name: str
    nationality: Optional[str] = None


class BookResponse(BaseModel):
    """Book response model for API."""
    id: str = Field(..., description="Unique book identifier")
    title: str
    genre: str
    price: float
    published_date: Optional[str] = None
    available: bool = True
    author: Optional[Any] = Field(None, description="Author ID, or author summary on reads")
    version: int = 0
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class BookListResponse(BaseModel):
    """Response model for book list with pagination."""
    items: List[BookResponse]
    total_count: int
    total_pages: int
    current_page: int
    page_size: int
    has_next: bool
    has_prev: bool


class GenreCountResponse(BaseModel):
    genre: str
    total_books: int


class GenreAveragePriceResponse(BaseModel):
    genre: str
    avg_price: float


class ProlificAuthorResponse(AuthorSummary):
    total_books: int


class AggregationResponse(BaseModel):
    """Rollups over all books. ``most_prolific_author`` is omitted when unknown."""
    books_per_genre: List[GenreCountResponse]
    avg_price_per_genre: List[GenreAveragePriceResponse]
    most_prolific_author: Optional[ProlificAuthorResponse] = None


class UserCreate(BaseModel):
    """Body for creating, registering or replacing a user."""
    model_config = ConfigDict(extra="forbid")

    username: str = Field(..., min_length=3, description="Unique username")
    email: str = Field(..., pattern=EMAIL_PATTERN, description="Unique email address")
    age: int = Field(..., ge=0)
    role: Role = Field(..., description="client or admin")
    password: str = Field(..., min_length=6, description="Plaintext password, stored hashed")
    created_at: Optional[datetime] = None

    @field_validator('password')
    @classmethod
    def validate_password_length(cls, v):
        """bcrypt ignores everything past 72 bytes."""
        if len(v.encode("utf-8")) > MAX_PASSWORD_BYTES:
            raise ValueError(f'password cannot exceed {MAX_PASSWORD_BYTES} bytes')
        return v


class UserUpdate(PartialModel):
    """Body for partially updating a user."""
    model_config = ConfigDict(extra="forbid")

    username: Optional[str] = Field(None, min_length=3)
    email: Optional[str] = Field(None, pattern=EMAIL_PATTERN)
    age: Optional[int] = Field(None, ge=0)
    role: Optional[Role] = None
    password: Optional[str] = Field(None, min_length=6)

    @field_validator('password')
    @classmethod
    def validate_password_length(cls, v):
        if v is not None and len(v.encode("utf-8")) > MAX_PASSWORD_BYTES:
            raise ValueError(f'password cannot exceed {MAX_PASSWORD_BYTES} bytes')
        return v


class UserResponse(BaseModel):
    """User response model; password material is never included."""
    id: str
    username: str
    email: str
    age: int
    role: Role
    created_at: Optional[str] = None


class LoginRequest(BaseModel):
    username: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class TokenResponse(BaseModel):
    token: str = Field(..., description="Signed bearer token")
    token_type: str = "bearer"
    expires_in: int = Field(..., description="Seconds until the token expires")


class MessageResponse(BaseModel):
    message: str
    deleted: Optional[Dict[str, Any]] = None


class ErrorResponse(BaseModel):
    """Error response model."""
    error: str = Field(..., description="Error message")
    kind: str = Field(..., description="Error kind")
    detail: Optional[Any] = Field(None, description="Additional error details")
    status_code: int = Field(..., description="HTTP status code")


class HealthResponse(BaseModel):
    """Health check response model."""
    status: str = Field(..., description="Service status")
    timestamp: datetime = Field(..., description="Current timestamp")
    version: str = Field(..., description="API version")
    database_status: str = Field(..., description="Database connection status")
