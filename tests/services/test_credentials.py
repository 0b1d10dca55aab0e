"""Tests for credential issuers."""
import threading
import time
from datetime import datetime, timedelta, timezone
from unittest.mock import Mock

import jwt
import pytest

from patchouli.services.credentials import SessionIssuer, TokenIssuer, build_issuer
from patchouli.services.exceptions import NotFound
from patchouli.services.locking import ReadWriteLock

SECRET = "credential-test-secret-key-long-enough"


def _user(user_id=1, email="alice@x.com"):
    user = Mock()
    user.id = user_id
    user.email = email
    user.external_id = f"g-{user_id}"
    return user


class TestSessionIssuer:
    """Tests for in-memory sessions."""

    def test_issue_and_resolve(self):
        """Test an issued session resolves to its principal."""
        issuer = SessionIssuer()
        credential = issuer.issue(_user())

        principal = issuer.resolve(credential.value)
        assert principal.email == "alice@x.com"
        assert principal.external_id == "g-1"
        assert credential.expires_in is None

    def test_unknown_session(self):
        """Test resolving an unknown session."""
        with pytest.raises(NotFound):
            SessionIssuer().resolve("missing")

    def test_revoke(self):
        """Test a revoked session no longer resolves."""
        issuer = SessionIssuer()
        credential = issuer.issue(_user())

        assert issuer.revoke(credential.value) is True
        assert issuer.revoke(credential.value) is False
        with pytest.raises(NotFound):
            issuer.resolve(credential.value)

    def test_ids_are_unique(self):
        """Test session ids are unique."""
        issuer = SessionIssuer()
        values = {issuer.issue(_user()).value for _ in range(50)}
        assert len(values) == 50
        assert all(issuer.resolve(value).email == "alice@x.com" for value in values)


class TestTokenIssuer:
    """Tests for signed tokens."""

    def test_claims(self):
        """Test token claims and the 24 hour lifetime."""
        credential = TokenIssuer(SECRET).issue(_user(7, "bob@x.com"))
        payload = jwt.decode(credential.value, SECRET, algorithms=["HS256"])

        assert payload["sub"] == "7"
        assert payload["email"] == "bob@x.com"
        assert payload["exp"] - payload["iat"] == 24 * 3600
        assert credential.expires_in == 24 * 3600
        assert credential.token_type == "Bearer"

    def test_resolve(self):
        """Test a token resolves to its principal."""
        issuer = TokenIssuer(SECRET)
        principal = issuer.resolve(issuer.issue(_user(3)).value)
        assert principal.user_id == 3

    def test_wrong_signature(self):
        """Test a token signed with another key is rejected."""
        token = TokenIssuer("another-secret-key-long-enough-too").issue(_user()).value
        with pytest.raises(NotFound):
            TokenIssuer(SECRET).resolve(token)

    def test_expired(self):
        """Test an expired token is rejected."""
        now = datetime.now(timezone.utc)
        token = jwt.encode(
            {"sub": "1", "email": "alice@x.com", "iat": now - timedelta(hours=25),
             "exp": now - timedelta(hours=1)},
            SECRET, algorithm="HS256",
        )
        with pytest.raises(NotFound):
            TokenIssuer(SECRET).resolve(token)

    def test_garbage(self):
        """Test a malformed token is rejected."""
        with pytest.raises(NotFound):
            TokenIssuer(SECRET).resolve("not-a-jwt")

    def test_revoke_is_noop(self):
        """Test signed tokens cannot be revoked."""
        issuer = TokenIssuer(SECRET)
        token = issuer.issue(_user()).value
        assert issuer.revoke(token) is False
        assert issuer.resolve(token).email == "alice@x.com"


class TestBuildIssuer:
    """Tests for choosing the issuer from settings."""

    def test_session_mode(self):
        """Test session mode builds a SessionIssuer."""
        settings = Mock(credential_mode="session")
        assert isinstance(build_issuer(settings), SessionIssuer)

    def test_token_mode(self):
        """Test token mode builds a TokenIssuer."""
        settings = Mock(credential_mode="token", jwt_secret_key=SECRET,
                        jwt_algorithm="HS256", jwt_expire_hours=1)
        issuer = build_issuer(settings)
        assert isinstance(issuer, TokenIssuer)
        assert issuer.issue(_user()).expires_in == 3600


class TestReadWriteLock:
    """Tests for the reader-writer lock."""

    def test_readers_share(self):
        """Test readers hold the lock together."""
        lock = ReadWriteLock()
        inside = []
        barrier = threading.Barrier(2, timeout=2)

        def reader():
            with lock.read():
                inside.append(1)
                barrier.wait()

        threads = [threading.Thread(target=reader) for _ in range(2)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=3)
        assert len(inside) == 2

    def test_writer_excludes_readers(self):
        """Test a writer excludes readers."""
        lock = ReadWriteLock()
        events = []

        def writer():
            with lock.write():
                events.append("w-start")
                time.sleep(0.05)
                events.append("w-end")

        def reader():
            time.sleep(0.01)
            with lock.read():
                events.append("r")

        threads = [threading.Thread(target=writer), threading.Thread(target=reader)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=3)
        assert events == ["w-start", "w-end", "r"]
