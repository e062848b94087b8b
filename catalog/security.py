"""
Credential handling: signed bearer tokens and password hashes.

Tokens are stateless JWTs carrying the username (``sub``), the role and an
expiry. There is no revocation list; a token is valid until it expires.
"""

from datetime import datetime, timedelta
from typing import Optional

import bcrypt
import jwt
import structlog

from catalog.errors import InvalidCredentialError
from catalog.models import Identity, Role

logger = structlog.get_logger(__name__)

# bcrypt only looks at the first 72 bytes of a password.
MAX_PASSWORD_BYTES = 72


class CredentialVerifier:
    """Verifies bearer tokens and extracts the caller identity."""

    def __init__(self, secret_key: str, algorithm: str = "HS256"):
        self.secret_key = secret_key
        self.algorithm = algorithm

    def verify(self, token: str) -> Identity:
        """
        Verify signature, expiry and claims of a token.

        Every failure is reported as the same InvalidCredentialError so callers
        cannot tell an expired token from a forged or malformed one.

        Raises:
            InvalidCredentialError: If the token cannot be trusted
        """
        try:
            claims = jwt.decode(
                token,
                self.secret_key,
                algorithms=[self.algorithm],
                options={"require": ["exp", "sub"]},
            )
            identity = Identity(username=claims["sub"], role=Role(claims.get("role")))
        except (jwt.PyJWTError, ValueError, TypeError) as e:
            logger.warning("Credential verification failed", reason=type(e).__name__)
            raise InvalidCredentialError() from e

        return identity


class TokenIssuer:
    """Signs tokens for authenticated users."""

    def __init__(self, secret_key: str, algorithm: str = "HS256", expire_minutes: int = 60):
        self.secret_key = secret_key
        self.algorithm = algorithm
        self.lifetime = timedelta(minutes=expire_minutes)

    def issue(self, username: str, role: Role, now: Optional[datetime] = None) -> str:
        issued_at = now or datetime.utcnow()
        claims = {
            "sub": username,
            "role": Role(role).value,
            "iat": issued_at,
            "exp": issued_at + self.lifetime,
        }
        return jwt.encode(claims, self.secret_key, algorithm=self.algorithm)


def hash_password(password: str, rounds: int = 12) -> str:
    """Hash a plaintext password with a fresh salt."""
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def verify_password(password: str, hashed_password: Optional[str]) -> bool:
    """Check a plaintext password against a stored hash; malformed hashes never match."""
    if not hashed_password:
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), hashed_password.encode("utf-8"))
    except ValueError:
        return False
