"""
Author operations: create, list, search, fetch, update, replace and delete.
"""

import re
from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping

import structlog
from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorCollection

from catalog.change_detector import ChangeDetector
from catalog.errors import InvalidReferenceError, NotFoundError
from catalog.models import Page, serialize_document, to_object_id
from catalog.paginator import paginate
from catalog.query_builder import AUTHOR_QUERY, build_query

logger = structlog.get_logger(__name__)

AUTHOR_FIELDS = ("name", "age", "nationality", "books")
BOOK_SUMMARY = {"title": 1, "genre": 1, "price": 1, "published_date": 1}


class AuthorService:
    """Author resource backed by the authors collection."""

    def __init__(
        self,
        authors: AsyncIOMotorCollection,
        books: AsyncIOMotorCollection,
        search_limit: int = 100
    ):
        self.authors = authors
        self.books = books
        self.search_limit = search_limit
        self.detector = ChangeDetector(authors, "Author", AUTHOR_FIELDS, collection_fields=("books",))

    async def _resolve_book_refs(self, book_ids: Iterable[Any]) -> List[ObjectId]:
        """Parse book references and make sure every one of them exists."""
        refs = [to_object_id(book_id, field="books") for book_id in book_ids]
        distinct = list(dict.fromkeys(refs))
        if distinct:
            found = await self.books.count_documents({"_id": {"$in": distinct}})
            if found != len(distinct):
                raise InvalidReferenceError("One or more referenced books do not exist", field="books")
        return refs

    async def create_author(self, data: Dict[str, Any]) -> Dict[str, Any]:
        document = dict(data)
        document["books"] = await self._resolve_book_refs(data.get("books") or [])

        now = datetime.utcnow()
        document.update(version=0, created_at=now, updated_at=now)

        result = await self.authors.insert_one(document)
        document["_id"] = result.inserted_id

        logger.info("Author created", id=str(result.inserted_id), name=document["name"])
        return serialize_document(document)

    async def list_authors(self, params: Mapping[str, Any]) -> Page:
        """Filtered, sorted and paginated authors."""
        page = await paginate(self.authors, build_query(params, AUTHOR_QUERY))
        return page.model_copy(update={"items": [serialize_document(doc) for doc in page.items]})

    async def search_authors(self, text: str) -> List[Dict[str, Any]]:
        """
        Case-insensitive substring search over name and nationality.

        Not paginated; results are ordered by name and capped at ``search_limit``.
        """
        pattern = {"$regex": re.escape(text.strip()), "$options": "i"}
        cursor = (
            self.authors.find({"$or": [{"name": pattern}, {"nationality": pattern}]})
            .sort([("name", 1), ("_id", 1)])
            .limit(self.search_limit)
        )
        documents = await cursor.to_list(length=self.search_limit)
        return [serialize_document(doc) for doc in documents]

    async def get_author(self, author_id: str) -> Dict[str, Any]:
        """Fetch an author with its book references resolved to summaries."""
        oid = to_object_id(author_id)
        author = await self.authors.find_one({"_id": oid})
        if author is None:
            raise NotFoundError("Author not found", id=author_id)

        refs = author.get("books") or []
        books = []
        if refs:
            cursor = self.books.find({"_id": {"$in": refs}}, BOOK_SUMMARY)
            books = await cursor.to_list(length=None)

        # Keep the author's ordering; references to deleted books are dropped.
        by_id = {book["_id"]: book for book in books}
        author["books"] = [by_id[ref] for ref in refs if ref in by_id]
        return serialize_document(author)

    async def update_author(self, author_id: str, changes: Dict[str, Any]) -> Dict[str, Any]:
        oid = to_object_id(author_id)
        changes = dict(changes)
        if changes.get("books") is not None:
            changes["books"] = await self._resolve_book_refs(changes["books"])
        return serialize_document(await self.detector.update(oid, changes))

    async def replace_author(self, author_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        oid = to_object_id(author_id)
        document = dict(data)
        document["books"] = await self._resolve_book_refs(data.get("books") or [])
        return serialize_document(await self.detector.replace(oid, document))

    async def delete_author(self, author_id: str) -> Dict[str, Any]:
        oid = to_object_id(author_id)
        deleted = await self.authors.find_one_and_delete({"_id": oid})
        if deleted is None:
            raise NotFoundError("Author not found", id=author_id)

        logger.info("Author deleted", id=author_id)
        return {
            "message": f"Author with ID {author_id} successfully deleted",
            "deleted": serialize_document(deleted),
        }
