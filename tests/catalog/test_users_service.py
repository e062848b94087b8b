"""
Tests for the user service.
"""

from datetime import datetime

import pytest
from bson import ObjectId
from pymongo.errors import DuplicateKeyError
from unittest.mock import MagicMock

from catalog.errors import CatalogValidationError, ConflictError, InvalidCredentialError, NotFoundError
from catalog.models import Role
from catalog.security import CredentialVerifier, TokenIssuer, hash_password
from catalog.users import UserService

SECRET = "test-secret"


@pytest.fixture
def service(users_collection):
    return UserService(users_collection, TokenIssuer(SECRET), bcrypt_rounds=4)


@pytest.fixture
def user_payload():
    return {
        "username": "alice",
        "email": "alice@example.com",
        "age": 30,
        "role": Role.CLIENT,
        "password": "s3cret!",
        "created_at": None,
    }


@pytest.fixture
def stored_user():
    return {
        "_id": ObjectId(),
        "username": "alice",
        "email": "alice@example.com",
        "age": 30,
        "role": "client",
        "hashed_password": hash_password("s3cret!", rounds=4),
        "created_at": datetime(2024, 1, 1),
    }


class TestCreateUser:
    """Test cases for user creation."""

    @pytest.mark.asyncio
    async def test_password_is_hashed(self, service, users_collection, user_payload):
        users_collection.insert_one.return_value = MagicMock(inserted_id=ObjectId())

        user = await service.create_user(user_payload)

        stored = users_collection.insert_one.await_args.args[0]
        assert "password" not in stored
        assert stored["hashed_password"].startswith("$2")
        assert stored["role"] == "client"
        assert isinstance(stored["created_at"], datetime)
        assert "hashed_password" not in user
        assert user["username"] == "alice"

    @pytest.mark.asyncio
    async def test_duplicate_user(self, service, users_collection, user_payload):
        users_collection.insert_one.side_effect = DuplicateKeyError("E11000 duplicate key", 11000)

        with pytest.raises(ConflictError):
            await service.create_user(user_payload)

    @pytest.mark.asyncio
    async def test_register_checks_uniqueness(self, service, users_collection, user_payload):
        users_collection.find_one.return_value = {"_id": ObjectId()}

        with pytest.raises(ConflictError):
            await service.register_user(user_payload)

        users_collection.insert_one.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_register_rejects_unknown_role(self, service, users_collection, user_payload):
        user_payload["role"] = "superuser"

        with pytest.raises(CatalogValidationError):
            await service.register_user(user_payload)

        users_collection.find_one.assert_not_awaited()


class TestReadAndMutateUsers:
    """Test cases for reading and mutating users."""

    @pytest.mark.asyncio
    async def test_get_user_hides_hash(self, service, users_collection, stored_user):
        users_collection.find_one.return_value = {k: v for k, v in stored_user.items() if k != "hashed_password"}

        user = await service.get_user(str(stored_user["_id"]))

        assert users_collection.find_one.await_args.args[1] == {"hashed_password": 0}
        assert user["id"] == str(stored_user["_id"])

    @pytest.mark.asyncio
    async def test_get_missing_user(self, service, users_collection):
        users_collection.find_one.return_value = None

        with pytest.raises(NotFoundError):
            await service.get_user(str(ObjectId()))

    @pytest.mark.asyncio
    async def test_update_rehashes_password(self, service, users_collection, stored_user):
        users_collection.find_one_and_update.return_value = stored_user

        await service.update_user(str(stored_user["_id"]), {"password": "n3w-pass"})

        update = users_collection.find_one_and_update.await_args.args[1]["$set"]
        assert "password" not in update
        assert update["hashed_password"] != stored_user["hashed_password"]

    @pytest.mark.asyncio
    async def test_delete_user(self, service, users_collection, stored_user):
        users_collection.find_one_and_delete.return_value = stored_user

        assert await service.delete_user(str(stored_user["_id"])) == {"message": "User deleted successfully"}


class TestLogin:
    """Test cases for login."""

    @pytest.mark.asyncio
    async def test_login_issues_token(self, service, users_collection, stored_user):
        users_collection.find_one.return_value = stored_user

        result = await service.login("alice", "s3cret!")

        assert result["token_type"] == "bearer"
        assert result["expires_in"] == 3600
        identity = CredentialVerifier(SECRET).verify(result["token"])
        assert identity.username == "alice"
        assert identity.role is Role.CLIENT

    @pytest.mark.asyncio
    async def test_wrong_password(self, service, users_collection, stored_user):
        users_collection.find_one.return_value = stored_user

        with pytest.raises(InvalidCredentialError):
            await service.login("alice", "wrong")

    @pytest.mark.asyncio
    async def test_unknown_user(self, service, users_collection):
        users_collection.find_one.return_value = None

        with pytest.raises(InvalidCredentialError) as exc_info:
            await service.login("nobody", "s3cret!")

        assert exc_info.value.message == "Invalid credentials"
