"""Security utilities for voter identity and session tokens.

Implements privacy-preserving voter keys, salted OTP hashing and the
self-contained session token handed out after phone verification.
"""

import hashlib
import hmac
import os
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

from jose import JWTError, jwt

from core.phone import normalize_phone

SESSION_TOKEN_TYPE = "session"
TOKEN_ALGORITHM = "HS256"


def hash_phone(phone: str) -> str:
    """
    Derive the voter key for a normalized phone number.

    The key is the primary key of every vote and user row, so it must be
    stable across restarts: plain SHA-256, no server-side salt. Only the
    digest is ever written to the vote tables.
    """
    return hashlib.sha256(phone.encode("utf-8")).hexdigest()


def generate_otp_code(length: int = 6) -> str:
    """Generate a numeric one-time code from a CSPRNG."""
    return str(secrets.randbelow(10**length)).zfill(length)


def generate_otp_salt() -> str:
    return secrets.token_hex(16)


def hash_otp(salt: str, code: str) -> str:
    return hashlib.sha256(f"{salt}:{code}".encode("utf-8")).hexdigest()


def otp_matches(salt: str, code: str, expected_hash: str) -> bool:
    """Compare a submitted code against the stored salted hash in constant time."""
    return hmac.compare_digest(hash_otp(salt, code), expected_hash)


def load_or_create_secret(path: Path) -> str:
    """
    Read the token signing secret, creating it on first start.

    The file is written with mode 0600. Deleting it rotates the secret and
    invalidates every outstanding session token.
    """
    if path.exists():
        existing = path.read_text(encoding="utf-8").strip()
        if existing:
            return existing

    path.parent.mkdir(parents=True, exist_ok=True)
    secret = secrets.token_hex(32)
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, "w", encoding="utf-8") as fh:
        fh.write(secret)
    return secret


@dataclass(frozen=True)
class SessionClaims:
    """Verified contents of a session token."""

    phone: str
    verified_at: datetime
    expires_at: datetime


class SessionTokenCodec:
    """
    Issues and verifies HS256-signed bearer tokens bound to a verified phone.

    Tokens are not stored server side. Any change to the encoded payload
    breaks the signature, and expired tokens are rejected even when the
    signature is valid.
    """

    def __init__(self, secret: str, ttl: timedelta = timedelta(days=30)):
        if not secret:
            raise ValueError("Session token secret must not be empty")
        self._secret = secret
        self.ttl = ttl

    def issue(self, phone: str, now: datetime | None = None) -> str:
        """Create a token for ``phone`` valid for ``ttl`` from ``now``."""
        issued_at = now or datetime.now(timezone.utc)
        expires_at = issued_at + self.ttl
        claims: dict[str, Any] = {
            "phone": phone,
            "verified_at": int(issued_at.timestamp() * 1000),
            "iat": int(issued_at.timestamp()),
            "exp": int(expires_at.timestamp()),
            "type": SESSION_TOKEN_TYPE,
        }
        return jwt.encode(claims, self._secret, algorithm=TOKEN_ALGORITHM)

    def verify(self, token: object) -> SessionClaims | None:
        """
        Validate a token and return its claims.

        Returns None for anything that is not a well-formed, untampered,
        unexpired session token carrying a normalized phone.
        """
        if not isinstance(token, str) or not token:
            return None

        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[TOKEN_ALGORITHM],
                options={"require_exp": True, "verify_aud": False},
            )
        except JWTError:
            return None

        if payload.get("type") != SESSION_TOKEN_TYPE:
            return None

        phone = payload.get("phone")
        if not isinstance(phone, str) or normalize_phone(phone) != phone:
            return None

        verified_ms = payload.get("verified_at")
        if not isinstance(verified_ms, int):
            return None

        return SessionClaims(
            phone=phone,
            verified_at=datetime.fromtimestamp(verified_ms / 1000, tz=timezone.utc),
            expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
        )
