"""
User operations: direct CRUD, registration and login.

Plaintext passwords never reach the store; only their bcrypt hashes do, and
hashes never leave this module.
"""

import asyncio
from datetime import datetime
from typing import Any, Dict, List

import structlog
from motor.motor_asyncio import AsyncIOMotorCollection
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from catalog.errors import CatalogValidationError, ConflictError, InvalidCredentialError, NotFoundError
from catalog.models import Role, serialize_document, to_object_id
from catalog.security import TokenIssuer, hash_password, verify_password

logger = structlog.get_logger(__name__)

PUBLIC_PROJECTION = {"hashed_password": 0}


class UserService:
    """User resource backed by the users collection."""

    def __init__(
        self,
        users: AsyncIOMotorCollection,
        token_issuer: TokenIssuer,
        bcrypt_rounds: int = 12
    ):
        self.users = users
        self.token_issuer = token_issuer
        self.bcrypt_rounds = bcrypt_rounds

    async def _hash(self, password: str) -> str:
        # bcrypt is deliberately slow; keep it off the event loop.
        return await asyncio.to_thread(hash_password, password, self.bcrypt_rounds)

    async def _to_document(self, data: Dict[str, Any]) -> Dict[str, Any]:
        document = {key: value for key, value in data.items() if key != "password"}
        if "role" in document:
            document["role"] = Role(document["role"]).value
        if data.get("password") is not None:
            document["hashed_password"] = await self._hash(data["password"])
        return document

    async def create_user(self, data: Dict[str, Any]) -> Dict[str, Any]:
        document = await self._to_document(data)
        document["created_at"] = data.get("created_at") or datetime.utcnow()

        try:
            result = await self.users.insert_one(document)
        except DuplicateKeyError as e:
            raise ConflictError("User already exists", username=data.get("username")) from e

        document["_id"] = result.inserted_id
        logger.info("User created", id=str(result.inserted_id), username=document["username"], role=document["role"])
        return serialize_document(document)

    async def register_user(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Register a user after checking the role and the unique keys.

        Raises:
            CatalogValidationError: If the role is not client or admin
            ConflictError: If the username or email is taken
        """
        try:
            Role(data.get("role"))
        except ValueError as e:
            raise CatalogValidationError("Invalid role. Must be client or admin", role=data.get("role")) from e

        existing = await self.users.find_one(
            {"$or": [{"username": data["username"]}, {"email": data["email"]}]},
            {"_id": 1}
        )
        if existing is not None:
            raise ConflictError("User already exists", username=data["username"])

        return await self.create_user(data)

    async def list_users(self) -> List[Dict[str, Any]]:
        cursor = self.users.find({}, PUBLIC_PROJECTION).sort("_id", 1)
        return [serialize_document(user) for user in await cursor.to_list(length=None)]

    async def get_user(self, user_id: str) -> Dict[str, Any]:
        user = await self.users.find_one({"_id": to_object_id(user_id)}, PUBLIC_PROJECTION)
        if user is None:
            raise NotFoundError("User not found", id=user_id)
        return serialize_document(user)

    async def update_user(self, user_id: str, changes: Dict[str, Any]) -> Dict[str, Any]:
        oid = to_object_id(user_id)
        update = await self._to_document(changes)
        if not update:
            return await self.get_user(user_id)

        try:
            user = await self.users.find_one_and_update(
                {"_id": oid},
                {"$set": update},
                projection=PUBLIC_PROJECTION,
                return_document=ReturnDocument.AFTER,
            )
        except DuplicateKeyError as e:
            raise ConflictError("User already exists", id=user_id) from e

        if user is None:
            raise NotFoundError("User not found", id=user_id)

        logger.info("User updated", id=user_id, fields=sorted(changes))
        return serialize_document(user)

    async def replace_user(self, user_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        oid = to_object_id(user_id)
        existing = await self.users.find_one({"_id": oid}, {"created_at": 1})
        if existing is None:
            raise NotFoundError("User not found", id=user_id)

        document = await self._to_document(data)
        document["created_at"] = data.get("created_at") or existing.get("created_at") or datetime.utcnow()

        try:
            user = await self.users.find_one_and_replace(
                {"_id": oid},
                document,
                projection=PUBLIC_PROJECTION,
                return_document=ReturnDocument.AFTER,
            )
        except DuplicateKeyError as e:
            raise ConflictError("User already exists", id=user_id) from e

        if user is None:
            raise NotFoundError("User not found", id=user_id)

        logger.info("User replaced", id=user_id)
        return serialize_document(user)

    async def delete_user(self, user_id: str) -> Dict[str, Any]:
        deleted = await self.users.find_one_and_delete({"_id": to_object_id(user_id)})
        if deleted is None:
            raise NotFoundError("User not found", id=user_id)

        logger.info("User deleted", id=user_id)
        return {"message": "User deleted successfully"}

    async def login(self, username: str, password: str) -> Dict[str, Any]:
        """
        Check a username/password pair and issue a signed token.

        Unknown users and wrong passwords fail the same way.

        Raises:
            InvalidCredentialError: If the credentials do not match
        """
        user = await self.users.find_one({"username": username})
        hashed = user.get("hashed_password") if user else None

        if not await asyncio.to_thread(verify_password, password, hashed):
            logger.warning("Login failed", username=username)
            raise InvalidCredentialError("Invalid credentials")

        token = self.token_issuer.issue(user["username"], Role(user["role"]))
        logger.info("User logged in", username=username, role=user["role"])
        return {
            "token": token,
            "token_type": "bearer",
            "expires_in": int(self.token_issuer.lifetime.total_seconds()),
        }
