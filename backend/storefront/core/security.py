"""Password hashing and signed session tokens."""

import base64
import binascii
import hashlib
import hmac
import json
import time
import uuid
from functools import lru_cache
from typing import Any

from jose import JWTError, jwk, jwt
from jose.utils import base64url_encode
from passlib.context import CryptContext

from storefront.core.config import Settings
from storefront.core.errors import ConfigError, TokenError, TokenFailure

ALGORITHM = "HS256"
# Hosted PBKDF2 providers commonly cap iterations at 100k; records carry their own count.
PBKDF2_ITERATIONS = 100_000
MIN_SECRET_LENGTH = 16
LEGACY_RECORD_VERSION = 1

ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"


# ── Password hashing ──────────────────────────────

@lru_cache
def _crypt_context(iterations: int) -> CryptContext:
    return CryptContext(
        schemes=["pbkdf2_sha256"],
        pbkdf2_sha256__default_rounds=iterations,
        pbkdf2_sha256__min_rounds=iterations,
        pbkdf2_sha256__max_rounds=iterations,
        pbkdf2_sha256__salt_size=16,
    )


# Verification honours whatever round count the record carries.
_verify_context = CryptContext(schemes=["pbkdf2_sha256"])


def hash_password(plain: str, iterations: int = PBKDF2_ITERATIONS) -> str:
    """Return a ``$pbkdf2-sha256$<iterations>$<salt>$<key>`` record for ``plain``."""
    return _crypt_context(iterations).hash(plain)


def verify_password(plain: str, record: str | None) -> bool:
    """Check ``plain`` against a stored record. Malformed records verify as False."""
    if not isinstance(plain, str) or not isinstance(record, str) or not record:
        return False
    if record.lstrip().startswith("{"):
        return _verify_legacy_record(plain, record)
    try:
        return _verify_context.verify(plain, record)
    except (ValueError, TypeError):
        return False


def needs_rehash(record: str, iterations: int = PBKDF2_ITERATIONS) -> bool:
    if not isinstance(record, str) or record.lstrip().startswith("{"):
        return True
    try:
        return _crypt_context(iterations).needs_update(record)
    except (ValueError, TypeError):
        return True


def _verify_legacy_record(plain: str, record: str) -> bool:
    """Verify a JSON ``{"v": 1, "i": ..., "s": ..., "h": ...}`` record (PBKDF2-HMAC-SHA256)."""
    try:
        parsed = json.loads(record)
        if not isinstance(parsed, dict) or parsed.get("v") != LEGACY_RECORD_VERSION:
            return False
        iterations = parsed.get("i")
        if not isinstance(iterations, int) or isinstance(iterations, bool) or iterations <= 0:
            return False
        salt = base64.b64decode(parsed["s"], validate=True)
        expected = base64.b64decode(parsed["h"], validate=True)
        if not expected:
            return False
        derived = hashlib.pbkdf2_hmac(
            "sha256", plain.encode("utf-8"), salt, iterations, dklen=len(expected)
        )
    except (ValueError, TypeError, KeyError, binascii.Error):
        return False
    return hmac.compare_digest(derived, expected)


# ── Tokens ─────────────────────────────────────────

def require_auth_secret(settings: Settings) -> str:
    """Return the signing secret, or raise ConfigError when none usable is configured."""
    secret = settings.AUTH_SECRET
    if not isinstance(secret, str) or len(secret) < MIN_SECRET_LENGTH:
        raise ConfigError("AUTH_SECRET is not configured.")
    return secret


def _signature(signing_input: str, secret: str) -> str:
    key = jwk.construct(secret, ALGORITHM)
    return base64url_encode(key.sign(signing_input.encode("utf-8"))).decode("ascii")


def sign_token(claims: dict[str, Any], secret: str, ttl_seconds: int, *, now: int | None = None) -> str:
    """Sign ``claims`` plus ``iat``/``exp`` as a compact ``header.payload.signature`` token."""
    issued_at = int(time.time()) if now is None else now
    payload = {**claims, "iat": issued_at, "exp": issued_at + ttl_seconds}
    return jwt.encode(payload, secret, algorithm=ALGORITHM)


def verify_token(token: str, secret: str, *, now: float | None = None) -> dict[str, Any]:
    """Return the claims of a token signed with ``secret``.

    Raises TokenError with reason ``malformed`` (not three segments, undecodable),
    ``signatureMismatch`` (MAC over ``header.payload`` differs from the third segment)
    or ``expired`` (``now >= exp``). No claim is read before the signature checks out.
    """
    if not isinstance(token, str) or len(token.split(".")) != 3:
        raise TokenError(TokenFailure.MALFORMED)

    signing_input, _, signature = token.rpartition(".")
    expected = _signature(signing_input, secret)
    if not hmac.compare_digest(signature.encode("ascii", "replace"), expected.encode("ascii")):
        raise TokenError(TokenFailure.SIGNATURE_MISMATCH)

    try:
        header = jwt.get_unverified_header(token)
        claims = jwt.get_unverified_claims(token)
    except JWTError:
        raise TokenError(TokenFailure.MALFORMED)
    if header.get("alg") != ALGORITHM or not isinstance(claims, dict):
        raise TokenError(TokenFailure.MALFORMED)

    expiry = claims.get("exp")
    current = time.time() if now is None else now
    if not isinstance(expiry, (int, float)) or isinstance(expiry, bool) or current >= expiry:
        raise TokenError(TokenFailure.EXPIRED)
    return claims


def create_access_token(user, settings: Settings) -> str:
    return sign_token(
        {
            "sub": str(user.id),
            "role": user.role.value,
            "phone": user.phone,
            "token_version": user.effective_token_version,
            "type": ACCESS_TOKEN_TYPE,
        },
        require_auth_secret(settings),
        settings.ACCESS_TOKEN_TTL_SECONDS,
    )


def create_refresh_token(user, settings: Settings) -> str:
    return sign_token(
        {
            "sub": str(user.id),
            "token_version": user.effective_token_version,
            "jti": uuid.uuid4().hex,
            "type": REFRESH_TOKEN_TYPE,
        },
        require_auth_secret(settings),
        settings.REFRESH_TOKEN_TTL_SECONDS,
    )
