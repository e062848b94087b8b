"""
FastAPI main application for the Library Catalogue API.
"""

import uuid
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional, Union

import structlog
from fastapi import Depends, FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.auth import ensure_self_or_admin, require_roles, token_issuer
from api.config import config as api_config
from api.models import (
    AggregationResponse, AuthorCreate, AuthorListResponse, AuthorResponse, AuthorSearchResponse,
    AuthorUpdate, BookCreate, BookListResponse, BookResponse, BookUpdate,
    ErrorResponse, HealthResponse, LoginRequest, MessageResponse, TokenResponse,
    UserCreate, UserResponse, UserUpdate
)
from catalog.authors import AuthorService
from catalog.books import BookService
from catalog.database import CatalogDatabase
from catalog.errors import CatalogError, ErrorKind
from catalog.models import Identity, Role
from catalog.users import UserService
from utilities.config import config
from utilities.logger import bind_request_context, clear_request_context, setup_logging

logger = structlog.get_logger(__name__)

# Global services, set up in lifespan
database: CatalogDatabase = None
author_service: AuthorService = None
book_service: BookService = None
user_service: UserService = None

STATUS_BY_KIND = {
    ErrorKind.VALIDATION: status.HTTP_400_BAD_REQUEST,
    ErrorKind.AUTH_HEADER_MISSING: status.HTTP_401_UNAUTHORIZED,
    ErrorKind.INVALID_CREDENTIAL: status.HTTP_401_UNAUTHORIZED,
    ErrorKind.FORBIDDEN: status.HTTP_403_FORBIDDEN,
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.CONFLICT: status.HTTP_409_CONFLICT,
    ErrorKind.INVALID_REFERENCE: status.HTTP_422_UNPROCESSABLE_ENTITY,
}

KIND_BY_STATUS = {
    status.HTTP_400_BAD_REQUEST: ErrorKind.VALIDATION,
    status.HTTP_404_NOT_FOUND: ErrorKind.NOT_FOUND,
    status.HTTP_405_METHOD_NOT_ALLOWED: ErrorKind.VALIDATION,
}

# Route gates
catalog_reader = require_roles(Role.ADMIN, Role.CLIENT, public_read=True)
catalog_writer = require_roles(Role.ADMIN, Role.CLIENT)
admin_only = require_roles(Role.ADMIN)
any_user = require_roles(Role.ADMIN, Role.CLIENT)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    setup_logging(
        log_level=config.log_level,
        log_format=config.log_format,
        log_file=config.get_log_file_path(),
        debug=config.debug
    )
    logger.info("Starting Library Catalogue API")

    global database, author_service, book_service, user_service
    database = CatalogDatabase(
        connection_url=config.mongodb_url,
        database_name=config.mongodb_database,
        authors_collection=config.authors_collection,
        books_collection=config.books_collection,
        users_collection=config.users_collection
    )
    await database.connect()

    author_service = AuthorService(database.authors, database.books, search_limit=config.search_limit)
    book_service = BookService(database.books, database.authors)
    user_service = UserService(database.users, token_issuer, bcrypt_rounds=config.bcrypt_rounds)

    yield

    logger.info("Shutting down Library Catalogue API")
    await database.disconnect()


app = FastAPI(
    title=api_config.api_title,
    description="""
    A REST API for a catalogue of authors and books.

    ## Features

    * **Authors and books**: create, filter, sort, paginate, update and delete
    * **Versioned writes**: no-op updates are skipped; real changes bump `version`
    * **Aggregation**: books per genre, average price per genre, most prolific author
    * **Users**: admin-managed accounts with `client` and `admin` roles

    ## Authentication

    Log in with `POST /users/login` and send the returned token on every request:

    ```
    Authorization: Bearer your_token_here
    ```

    Tokens expire after one hour.
    """,
    summary=api_config.api_description,
    version=api_config.api_version,
    license_info={
        "name": "MIT",
        "url": "https://opensource.org/licenses/MIT",
    },
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=api_config.cors_origins,
    allow_credentials=api_config.cors_allow_credentials,
    allow_methods=api_config.cors_allow_methods,
    allow_headers=api_config.cors_allow_headers,
)


@app.middleware("http")
async def request_context(request: Request, call_next):
    """Tag every log line emitted for a request with its id, method and path."""
    request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    bind_request_context(request_id=request_id, method=request.method, path=request.url.path)
    try:
        response = await call_next(request)
    finally:
        clear_request_context()
    response.headers["X-Request-ID"] = request_id
    return response


def _error_response(status_code: int, kind: ErrorKind, message: str, detail=None, headers=None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(
            error=message,
            kind=kind.value,
            detail=detail,
            status_code=status_code
        ).model_dump(),
        headers=headers
    )


# Exception handlers
@app.exception_handler(CatalogError)
async def catalog_exception_handler(request: Request, exc: CatalogError):
    """Map error kinds to status codes."""
    status_code = STATUS_BY_KIND.get(exc.kind, status.HTTP_500_INTERNAL_SERVER_ERROR)

    if status_code >= 500:
        logger.error("Unexpected catalogue error", kind=exc.kind.value, error=exc.message, path=request.url.path, method=request.method)
        return _error_response(
            status_code, ErrorKind.UNEXPECTED, "An unexpected error occurred",
            detail=exc.message if api_config.debug else None
        )

    logger.warning("Request failed", kind=exc.kind.value, error=exc.message, path=request.url.path, method=request.method, **exc.context)
    headers = {"WWW-Authenticate": "Bearer"} if status_code == status.HTTP_401_UNAUTHORIZED else None
    return _error_response(status_code, exc.kind, exc.message, headers=headers)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Report malformed request bodies as validation errors."""
    errors = [{"loc": list(error["loc"]), "msg": error["msg"]} for error in exc.errors()]
    logger.warning("Request validation failed", path=request.url.path, method=request.method, errors=errors)
    return _error_response(
        status.HTTP_400_BAD_REQUEST, ErrorKind.VALIDATION, "Invalid request data", detail=errors
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Handle HTTP exceptions."""
    kind = KIND_BY_STATUS.get(exc.status_code, ErrorKind.UNEXPECTED)
    return _error_response(exc.status_code, kind, str(exc.detail), headers=getattr(exc, "headers", None))


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Handle general exceptions without leaking internals."""
    logger.error("Unhandled exception", error=str(exc), error_type=type(exc).__name__, path=request.url.path, method=request.method)
    return _error_response(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        ErrorKind.UNEXPECTED,
        "An unexpected error occurred",
        detail=str(exc) if api_config.debug else None
    )


def _available(service):
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Database service not available"
        )
    return service


# Health check endpoint (no authentication required)
@app.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check():
    """Health check endpoint."""
    db_status = "unavailable"
    if database:
        health_info = await database.health_check()
        db_status = health_info.get("status", "unknown")

    return HealthResponse(
        status="healthy" if db_status == "healthy" else "degraded",
        timestamp=datetime.utcnow(),
        version=api_config.api_version,
        database_status=db_status
    )


# Authors endpoints
@app.post("/authors", response_model=AuthorResponse, status_code=status.HTTP_201_CREATED, tags=["Authors"])
async def create_author(payload: AuthorCreate, identity: Identity = Depends(catalog_writer)):
    """Create an author. Every referenced book must exist."""
    return await _available(author_service).create_author(payload.model_dump())


@app.get("/authors", response_model=Union[AuthorListResponse, AuthorSearchResponse], tags=["Authors"])
async def list_authors(request: Request, identity: Optional[Identity] = Depends(catalog_reader)):
    """
    List authors with filtering, sorting, and pagination.

    - **query**: Free-text search over name and nationality (disables pagination)
    - **name**: Case-insensitive substring of the name
    - **nationality**: Exact nationality
    - **minAge** / **maxAge**: Age bounds
    - **sortBy**: name, age, nationality, createdAt (default createdAt)
    - **order** / **sortOrder**: asc or desc (default desc)
    - **page**: Page number (default 1)
    - **limit**: Items per page (default 10, at most 100)

    Invalid values fall back to their defaults instead of failing.
    """
    service = _available(author_service)
    params = request.query_params

    search = params.get("query")
    if search and search.strip():
        authors = await service.search_authors(search)
        return AuthorSearchResponse(items=authors, total_count=len(authors))

    return await service.list_authors(params)


@app.get("/authors/{author_id}", response_model=AuthorResponse, tags=["Authors"])
async def get_author(author_id: str, identity: Optional[Identity] = Depends(catalog_reader)):
    """Get an author with summaries of their books."""
    return await _available(author_service).get_author(author_id)


@app.patch("/authors/{author_id}", response_model=AuthorResponse, tags=["Authors"])
async def update_author(author_id: str, payload: AuthorUpdate, identity: Identity = Depends(catalog_writer)):
    """Partially update an author. `version` only advances if something changed."""
    return await _available(author_service).update_author(author_id, payload.model_dump(exclude_unset=True))


@app.put("/authors/{author_id}", response_model=AuthorResponse, tags=["Authors"])
async def replace_author(author_id: str, payload: AuthorCreate, identity: Identity = Depends(catalog_writer)):
    """Replace an author. `version` only advances if something changed."""
    return await _available(author_service).replace_author(author_id, payload.model_dump())


@app.delete("/authors/{author_id}", response_model=MessageResponse, tags=["Authors"])
async def delete_author(author_id: str, identity: Identity = Depends(catalog_writer)):
    return await _available(author_service).delete_author(author_id)


# Books endpoints
@app.get("/books/aggregation", response_model=AggregationResponse, tags=["Books"])
async def get_aggregation(identity: Optional[Identity] = Depends(catalog_reader)):
    """Books per genre, average price per genre and the most prolific author."""
    result = await _available(book_service).aggregate()
    return JSONResponse(content=result.to_response())


@app.post("/books", response_model=BookResponse, status_code=status.HTTP_201_CREATED, tags=["Books"])
async def create_book(payload: BookCreate, identity: Identity = Depends(catalog_writer)):
    """Create a book. The author must exist and the title must be unused."""
    return await _available(book_service).create_book(payload.model_dump())


@app.get("/books", response_model=BookListResponse, tags=["Books"])
async def list_books(request: Request, identity: Optional[Identity] = Depends(catalog_reader)):
    """
    List books with filtering, sorting, and pagination.

    - **title**: Case-insensitive substring of the title
    - **genre**: Exact genre
    - **minPrice** / **maxPrice**: Price bounds
    - **available**: true or false
    - **author**: Author ID
    - **sortBy**: title, price, publishedDate, createdAt (default title)
    - **sortOrder** / **order**: asc or desc (default asc)
    - **page**: Page number (default 1)
    - **limit**: Items per page (default 5, at most 100)

    Invalid values fall back to their defaults instead of failing.
    """
    return await _available(book_service).list_books(request.query_params)


@app.get("/books/{book_id}", response_model=BookResponse, tags=["Books"])
async def get_book(book_id: str, identity: Optional[Identity] = Depends(catalog_reader)):
    """Get a book with its author's name and nationality."""
    return await _available(book_service).get_book(book_id)


@app.patch("/books/{book_id}", response_model=BookResponse, tags=["Books"])
async def update_book(book_id: str, payload: BookUpdate, identity: Identity = Depends(catalog_writer)):
    return await _available(book_service).update_book(book_id, payload.model_dump(exclude_unset=True))


@app.put("/books/{book_id}", response_model=BookResponse, tags=["Books"])
async def replace_book(book_id: str, payload: BookCreate, identity: Identity = Depends(catalog_writer)):
    return await _available(book_service).replace_book(book_id, payload.model_dump())


@app.delete("/books/{book_id}", response_model=MessageResponse, tags=["Books"])
async def delete_book(book_id: str, identity: Identity = Depends(catalog_writer)):
    return await _available(book_service).delete_book(book_id)


# Users endpoints
@app.post("/users/login", response_model=TokenResponse, tags=["Users"])
async def login(payload: LoginRequest):
    """Exchange a username and password for a one-hour bearer token."""
    return await _available(user_service).login(payload.username, payload.password)


@app.post("/users/register", response_model=UserResponse, status_code=status.HTTP_201_CREATED, tags=["Users"])
async def register_user(payload: UserCreate, identity: Identity = Depends(admin_only)):
    """Register a user. Username and email must be unused."""
    return await _available(user_service).register_user(payload.model_dump())


@app.post("/users", response_model=UserResponse, status_code=status.HTTP_201_CREATED, tags=["Users"])
async def create_user(payload: UserCreate, identity: Identity = Depends(admin_only)):
    return await _available(user_service).create_user(payload.model_dump())


@app.get("/users", response_model=list[UserResponse], tags=["Users"])
async def list_users(identity: Identity = Depends(admin_only)):
    return await _available(user_service).list_users()


@app.get("/users/{user_id}", response_model=UserResponse, tags=["Users"])
async def get_user(user_id: str, identity: Identity = Depends(any_user)):
    """Admins can read any user; clients only themselves."""
    user = await _available(user_service).get_user(user_id)
    ensure_self_or_admin(identity, user)
    return user


@app.patch("/users/{user_id}", response_model=UserResponse, tags=["Users"])
async def update_user(user_id: str, payload: UserUpdate, identity: Identity = Depends(any_user)):
    """Admins can update any user; clients only themselves and never their role."""
    service = _available(user_service)
    changes = payload.model_dump(exclude_unset=True)
    ensure_self_or_admin(identity, await service.get_user(user_id), changes)
    return await service.update_user(user_id, changes)


@app.put("/users/{user_id}", response_model=UserResponse, tags=["Users"])
async def replace_user(user_id: str, payload: UserCreate, identity: Identity = Depends(admin_only)):
    return await _available(user_service).replace_user(user_id, payload.model_dump())


@app.delete("/users/{user_id}", response_model=MessageResponse, tags=["Users"])
async def delete_user(user_id: str, identity: Identity = Depends(admin_only)):
    return await _available(user_service).delete_user(user_id)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "api.main:app",
        host=api_config.host,
        port=api_config.port,
        reload=api_config.debug,
        log_level=api_config.log_level.lower()
    )
