"""
Pytest configuration and shared fixtures.
"""

from datetime import datetime, timedelta

import pytest
from bson import ObjectId
from unittest.mock import AsyncMock, MagicMock

from catalog.models import Role

ASYNC_COLLECTION_METHODS = (
    "count_documents",
    "find_one",
    "insert_one",
    "find_one_and_update",
    "find_one_and_replace",
    "find_one_and_delete",
    "create_index",
)


def make_cursor(documents=None):
    """Motor-style cursor: chainable sort/skip/limit and an awaitable to_list."""
    cursor = MagicMock()
    cursor.sort.return_value = cursor
    cursor.skip.return_value = cursor
    cursor.limit.return_value = cursor
    cursor.to_list = AsyncMock(return_value=list(documents or []))
    return cursor


def make_collection(name):
    """Motor-style collection with awaitable CRUD methods."""
    collection = MagicMock()
    collection.name = name
    for method in ASYNC_COLLECTION_METHODS:
        setattr(collection, method, AsyncMock())
    collection.find.return_value = make_cursor()
    collection.aggregate.return_value = make_cursor()
    return collection


@pytest.fixture
def cursor_factory():
    return make_cursor


@pytest.fixture
def authors_collection():
    return make_collection("authors")


@pytest.fixture
def books_collection():
    return make_collection("books")


@pytest.fixture
def users_collection():
    return make_collection("users")


@pytest.fixture
def sample_author():
    """Stored author document."""
    now = datetime(2024, 1, 15, 10, 30)
    return {
        "_id": ObjectId(),
        "name": "Frank Herbert",
        "age": 65,
        "nationality": "American",
        "books": [],
        "version": 0,
        "created_at": now,
        "updated_at": now,
    }


@pytest.fixture
def sample_book(sample_author):
    """Stored book document referencing sample_author."""
    now = datetime(2024, 1, 15, 10, 30)
    return {
        "_id": ObjectId(),
        "title": "Dune",
        "genre": "Science Fiction",
        "price": 15.99,
        "published_date": datetime(1965, 8, 1),
        "available": True,
        "author": sample_author["_id"],
        "version": 0,
        "created_at": now,
        "updated_at": now,
    }


@pytest.fixture
def make_token():
    """Sign a token with the application's issuer."""
    from api.auth import token_issuer

    def _make_token(role=Role.ADMIN, username=None, expired=False):
        now = datetime.utcnow()
        if expired:
            now -= token_issuer.lifetime + timedelta(minutes=5)
        return token_issuer.issue(username or f"{Role(role).value}_user", role, now=now)

    return _make_token


@pytest.fixture
def admin_headers(make_token):
    return {"Authorization": f"Bearer {make_token(Role.ADMIN)}"}


@pytest.fixture
def client_headers(make_token):
    return {"Authorization": f"Bearer {make_token(Role.CLIENT)}"}
