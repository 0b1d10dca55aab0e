"""Credential issuance: in-memory sessions or signed stateless tokens."""
import logging
import secrets
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Dict, Optional

import jwt

from patchouli.db.models_auth import User
from patchouli.services.exceptions import InternalError, NotFound
from patchouli.services.locking import ReadWriteLock

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Principal:
    """Identity carried by a live credential."""
    user_id: int
    external_id: str
    email: str


@dataclass(frozen=True)
class IssuedCredential:
    """A credential handed back to the client."""
    value: str
    token_type: str = "Bearer"
    expires_in: Optional[int] = None


class CredentialIssuer(ABC):
    """Issues, resolves and revokes bearer credentials."""

    mode: str = ""

    @abstractmethod
    def issue(self, user: User) -> IssuedCredential:
        """Issue a credential for ``user``."""

    @abstractmethod
    def resolve(self, value: str) -> Principal:
        """Return the principal behind ``value``.

        Raises:
            NotFound: If the credential is unknown, malformed or expired.
        """

    @abstractmethod
    def revoke(self, value: str) -> bool:
        """Invalidate ``value`` if the strategy supports it."""


class SessionIssuer(CredentialIssuer):
    """Random session ids mapped to principals for the process lifetime."""

    mode = "session"

    def __init__(self):
        self._sessions: Dict[str, Principal] = {}
        self._lock = ReadWriteLock()

    def issue(self, user: User) -> IssuedCredential:
        session_id = str(uuid.uuid4())
        principal = Principal(user_id=user.id, external_id=user.external_id, email=user.email)
        with self._lock.write():
            self._sessions[session_id] = principal
        return IssuedCredential(value=session_id)

    def resolve(self, value: str) -> Principal:
        with self._lock.read():
            principal = self._sessions.get(value)
        if principal is None:
            raise NotFound("Unknown session")
        return principal

    def revoke(self, value: str) -> bool:
        with self._lock.write():
            removed = self._sessions.pop(value, None)
        if removed is not None:
            logger.info(f"Session for {removed.email} logged out")
        return removed is not None


class TokenIssuer(CredentialIssuer):
    """HMAC-signed JWTs; validity is signature plus expiry, no revocation list."""

    mode = "token"

    def __init__(self, secret_key: str, algorithm: str = "HS256", expire_hours: int = 24):
        self._secret_key = secret_key
        self._algorithm = algorithm
        self._lifetime = timedelta(hours=expire_hours)

    def issue(self, user: User) -> IssuedCredential:
        issued_at = datetime.now(timezone.utc)
        payload = {
            "sub": str(user.id),
            "email": user.email,
            "ext": user.external_id,
            "iat": issued_at,
            "exp": issued_at + self._lifetime,
            "jti": secrets.token_hex(8),
        }
        try:
            token = jwt.encode(payload, self._secret_key, algorithm=self._algorithm)
        except (jwt.PyJWTError, TypeError, ValueError) as e:
            raise InternalError(f"Failed to sign token: {e}") from e
        return IssuedCredential(value=token, expires_in=int(self._lifetime.total_seconds()))

    def resolve(self, value: str) -> Principal:
        try:
            payload = jwt.decode(
                value,
                self._secret_key,
                algorithms=[self._algorithm],
                options={"require": ["sub", "exp", "iat"]},
            )
            return Principal(
                user_id=int(payload["sub"]),
                external_id=payload.get("ext", ""),
                email=payload["email"],
            )
        except (jwt.ExpiredSignatureError, jwt.InvalidTokenError, KeyError, ValueError):
            raise NotFound("Invalid or expired token")

    def revoke(self, value: str) -> bool:
        return False


def build_issuer(settings) -> CredentialIssuer:
    """Pick the credential strategy configured for this deployment."""
    if settings.credential_mode == "session":
        return SessionIssuer()
    return TokenIssuer(
        secret_key=settings.jwt_secret_key,
        algorithm=settings.jwt_algorithm,
        expire_hours=settings.jwt_expire_hours,
    )


@lru_cache
def get_issuer() -> CredentialIssuer:
    """Process-wide issuer; restarting the process drops live sessions."""
    from patchouli.config import get_settings
    issuer = build_issuer(get_settings())
    logger.info(f"Credential mode: {issuer.mode}")
    return issuer
