"""
Authentication and role-based authorization for the FastAPI API.
"""

from typing import Any, Dict, FrozenSet, Optional

import structlog
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from api.config import config
from catalog.errors import AuthHeaderMissingError, ForbiddenError
from catalog.models import Identity, Role
from catalog.security import CredentialVerifier, TokenIssuer

logger = structlog.get_logger(__name__)

# Missing or non-Bearer headers reach the gate as None instead of failing early
security = HTTPBearer(auto_error=False)

verifier = CredentialVerifier(config.secret_key, config.algorithm)
token_issuer = TokenIssuer(config.secret_key, config.algorithm, config.access_token_expire_minutes)

ANY_ROLE: FrozenSet[Role] = frozenset()


class AccessGate:
    """Authenticates a bearer token and checks the caller's role."""

    def __init__(self, verifier: CredentialVerifier):
        self.verifier = verifier

    def authorize(self, token: Optional[str], roles: FrozenSet[Role] = ANY_ROLE) -> Identity:
        """
        Authorize a caller.

        Args:
            token: Bearer token from the Authorization header, if any
            roles: Allowed roles; empty means any authenticated caller

        Returns:
            Verified identity

        Raises:
            AuthHeaderMissingError: If no usable bearer token was sent
            InvalidCredentialError: If the token fails verification
            ForbiddenError: If the caller's role is not allowed
        """
        if not token or not token.strip():
            raise AuthHeaderMissingError()

        identity = self.verifier.verify(token.strip())

        if roles and identity.role not in roles:
            logger.warning(
                "Role not permitted",
                username=identity.username,
                role=identity.role.value,
                allowed=sorted(role.value for role in roles)
            )
            raise ForbiddenError(role=identity.role.value)

        return identity


gate = AccessGate(verifier)


def require_roles(*roles: Role, public_read: bool = False):
    """
    Build a dependency gating a route to the given roles.

    Args:
        roles: Allowed roles; none means any authenticated caller
        public_read: Let GET requests through unauthenticated when
            ``public_read_access`` is enabled

    Returns:
        FastAPI dependency resolving to the caller's Identity (or None for a
        public read)
    """
    allowed = frozenset(Role(role) for role in roles)

    async def dependency(
        request: Request,
        credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)
    ) -> Optional[Identity]:
        if public_read and config.public_read_access and request.method == "GET":
            return None

        identity = gate.authorize(credentials.credentials if credentials else None, allowed)
        request.state.identity = identity
        return identity

    return dependency


def ensure_self_or_admin(
    identity: Identity,
    user: Dict[str, Any],
    changes: Optional[Dict[str, Any]] = None
) -> None:
    """
    Clients may only touch their own user record and may not change its role.

    Raises:
        ForbiddenError: If a client addresses another user or its own role
    """
    if identity.is_admin:
        return
    if user.get("username") != identity.username:
        raise ForbiddenError("Clients can only access their own user record")
    if changes and "role" in changes:
        raise ForbiddenError("Clients cannot change their role")
