"""
Tests for the access gate.
"""

from datetime import datetime, timedelta

import pytest

from api.auth import AccessGate, ensure_self_or_admin
from catalog.errors import AuthHeaderMissingError, ForbiddenError, InvalidCredentialError
from catalog.models import Identity, Role
from catalog.security import CredentialVerifier, TokenIssuer

SECRET = "gate-secret"
ADMIN_ONLY = frozenset({Role.ADMIN})


@pytest.fixture
def gate():
    return AccessGate(CredentialVerifier(SECRET))


@pytest.fixture
def issuer():
    return TokenIssuer(SECRET)


class TestAccessGate:
    """Test cases for AccessGate.authorize."""

    def test_missing_token(self, gate):
        for token in (None, "", "   "):
            with pytest.raises(AuthHeaderMissingError):
                gate.authorize(token, ADMIN_ONLY)

    def test_expired_token_checked_before_role(self, gate, issuer):
        token = issuer.issue("carol", Role.CLIENT, now=datetime.utcnow() - timedelta(hours=2))

        with pytest.raises(InvalidCredentialError):
            gate.authorize(token, ADMIN_ONLY)

    def test_role_outside_allow_list(self, gate, issuer):
        with pytest.raises(ForbiddenError):
            gate.authorize(issuer.issue("carol", Role.CLIENT), ADMIN_ONLY)

    def test_allowed_role(self, gate, issuer):
        identity = gate.authorize(issuer.issue("dave", Role.ADMIN), ADMIN_ONLY)

        assert identity == Identity(username="dave", role=Role.ADMIN)

    def test_any_role(self, gate, issuer):
        assert gate.authorize(issuer.issue("carol", Role.CLIENT)).role is Role.CLIENT


class TestSelfOrAdmin:
    """Test cases for ensure_self_or_admin."""

    def test_admin_reaches_anyone(self):
        ensure_self_or_admin(Identity(username="dave", role=Role.ADMIN), {"username": "carol"}, {"role": "admin"})

    def test_client_reaches_self(self):
        ensure_self_or_admin(Identity(username="carol", role=Role.CLIENT), {"username": "carol"}, {"age": 31})

    def test_client_cannot_reach_others(self):
        with pytest.raises(ForbiddenError):
            ensure_self_or_admin(Identity(username="carol", role=Role.CLIENT), {"username": "dave"})

    def test_client_cannot_change_role(self):
        with pytest.raises(ForbiddenError):
            ensure_self_or_admin(Identity(username="carol", role=Role.CLIENT), {"username": "carol"}, {"role": "admin"})
