"""
Change detection and optimistic versioning for entity writes.

This module provides:
- Field-by-field comparison of a stored entity against an incoming payload
- Skipping of no-op writes, leaving the version counter untouched
- Version-gated writes as a single compare-and-swap on the stored version
"""

from collections import Counter
from datetime import date, datetime, time, timezone
from typing import Any, Dict, Iterable, Optional, Tuple

import structlog
from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorCollection
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from catalog.errors import ConflictError, NotFoundError

logger = structlog.get_logger(__name__)

VERSION_FIELD = "version"


def normalize_scalar(value: Any) -> Any:
    """Bring a value to the precision the store keeps (naive UTC, milliseconds)."""
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc).replace(tzinfo=None)
        return value.replace(microsecond=value.microsecond // 1000 * 1000)
    if isinstance(value, date):
        return datetime.combine(value, time.min)
    return value


def normalize_reference(value: Any) -> Optional[str]:
    return None if value is None else str(value)


def normalize_collection(values: Optional[Iterable[Any]]) -> Counter:
    """Collections compare as multisets of identities: order is ignored, counts are not."""
    return Counter(str(value) for value in (values or ()))


class ChangeDetector:
    """Decides whether a write changes an entity and applies it under a version check."""

    def __init__(
        self,
        collection: AsyncIOMotorCollection,
        entity: str,
        fields: Iterable[str],
        reference_fields: Iterable[str] = (),
        collection_fields: Iterable[str] = ()
    ):
        """
        Initialize change detector.

        Args:
            collection: Collection holding the entity
            entity: Entity name used in error messages
            fields: Every mutable field taking part in the comparison
            reference_fields: Fields holding a single ObjectId reference
            collection_fields: Fields holding a list of ObjectId references
        """
        self.collection = collection
        self.entity = entity
        self.fields = tuple(fields)
        self.reference_fields = frozenset(reference_fields)
        self.collection_fields = frozenset(collection_fields)
        self.logger = logger.bind(component="change_detector", entity=entity)

    def _normalize(self, field: str, value: Any) -> Any:
        if field in self.collection_fields:
            return normalize_collection(value)
        if field in self.reference_fields:
            return normalize_reference(value)
        return normalize_scalar(value)

    def changed_fields(
        self,
        existing: Dict[str, Any],
        incoming: Dict[str, Any]
    ) -> Dict[str, Tuple[Any, Any]]:
        """
        Get the fields whose incoming value differs from the stored one.

        Returns:
            Dictionary of field_name -> (old_value, new_value)
        """
        changed = {}
        for field in self.fields:
            old_value = existing.get(field)
            new_value = incoming.get(field)
            if self._normalize(field, old_value) != self._normalize(field, new_value):
                changed[field] = (old_value, new_value)
        return changed

    async def fetch(self, entity_id: ObjectId) -> Dict[str, Any]:
        existing = await self.collection.find_one({"_id": entity_id})
        if existing is None:
            raise NotFoundError(f"{self.entity} not found", id=str(entity_id))
        return existing

    async def update(self, entity_id: ObjectId, changes: Dict[str, Any]) -> Dict[str, Any]:
        """Merge a partial payload over the stored entity."""
        return await self._write(entity_id, changes, replace=False)

    async def replace(self, entity_id: ObjectId, document: Dict[str, Any]) -> Dict[str, Any]:
        """Replace the stored entity wholesale, keeping its identity and creation time."""
        return await self._write(entity_id, document, replace=True)

    async def _write(self, entity_id: ObjectId, payload: Dict[str, Any], replace: bool) -> Dict[str, Any]:
        existing = await self.fetch(entity_id)

        payload = {field: value for field, value in payload.items() if field in self.fields}
        if replace:
            candidate = payload
        else:
            candidate = {field: existing.get(field) for field in self.fields}
            candidate.update(payload)

        changed = self.changed_fields(existing, candidate)
        if not changed:
            self.logger.debug("No changes detected, skipping write", id=str(entity_id))
            return existing

        stored_version = existing.get(VERSION_FIELD)
        new_version = (stored_version or 0) + 1
        now = datetime.utcnow()

        # Match the version we compared against; a concurrent writer makes this miss.
        query = {
            "_id": entity_id,
            VERSION_FIELD: stored_version if VERSION_FIELD in existing else {"$exists": False},
        }

        try:
            if replace:
                replacement = dict(candidate)
                replacement.update({
                    VERSION_FIELD: new_version,
                    "created_at": existing.get("created_at", now),
                    "updated_at": now,
                })
                result = await self.collection.find_one_and_replace(
                    query, replacement, return_document=ReturnDocument.AFTER
                )
            else:
                update = dict(payload)
                update.update({VERSION_FIELD: new_version, "updated_at": now})
                result = await self.collection.find_one_and_update(
                    query, {"$set": update}, return_document=ReturnDocument.AFTER
                )
        except DuplicateKeyError as e:
            raise ConflictError(
                f"{self.entity} conflicts with an existing record",
                id=str(entity_id),
                key=(e.details or {}).get("keyValue"),
            ) from e

        if result is None:
            if not await self.collection.count_documents({"_id": entity_id}, limit=1):
                raise NotFoundError(f"{self.entity} not found", id=str(entity_id))
            raise ConflictError(
                f"{self.entity} was modified concurrently, retry the request",
                id=str(entity_id),
                expected_version=stored_version,
            )

        self.logger.info(
            "Entity updated",
            id=str(entity_id),
            replace=replace,
            changed_fields=sorted(changed),
            version=new_version
        )
        return result
