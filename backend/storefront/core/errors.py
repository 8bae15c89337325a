"""Error taxonomy shared by every component.

Core code raises these and never deals in HTTP status codes; ``storefront.main``
translates each category to a response at the boundary.
"""

import enum


class AuthFailure(str, enum.Enum):
    MISSING = "missing"
    INVALID_OR_EXPIRED = "invalidOrExpired"
    ACCOUNT_GONE = "accountGone"
    SESSION_EXPIRED = "sessionExpired"
    SUSPENDED = "suspended"
    ROLE = "role"
    AUTH_CHECK_FAILED = "authCheckFailed"
    BAD_CREDENTIALS = "badCredentials"


class TokenFailure(str, enum.Enum):
    MALFORMED = "malformed"
    SIGNATURE_MISMATCH = "signatureMismatch"
    EXPIRED = "expired"


class StorefrontError(Exception):
    category = "internal"
    default_message = "Something went wrong."

    def __init__(self, message: str | None = None, *, reason: str | None = None, field: str | None = None):
        self.message = message or self.default_message
        self.reason = reason
        self.field = field
        super().__init__(self.message)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} reason={self.reason!r} message={self.message!r}>"


class ConfigError(StorefrontError):
    category = "config"
    default_message = "Service is not configured."


class ValidationError(StorefrontError):
    category = "validation"
    default_message = "Invalid request."


class Unauthenticated(StorefrontError):
    category = "unauthenticated"
    default_message = "Authentication required."

    def __init__(self, message: str | None = None, *, reason: str | None = None,
                 token_failure: TokenFailure | None = None):
        super().__init__(message, reason=reason)
        self.token_failure = token_failure
        # set by routes that must drop the refresh cookie on failure
        self.clear_cookie: str | None = None


class Forbidden(StorefrontError):
    category = "forbidden"
    default_message = "Forbidden"


class NotFound(StorefrontError):
    category = "not_found"
    default_message = "Not found."


class Conflict(StorefrontError):
    category = "conflict"
    default_message = "Already exists."


class RateLimited(StorefrontError):
    category = "rate_limited"
    default_message = "Too many login attempts. Please try again later."

    def __init__(self, message: str | None = None, *, retry_after: int | None = None):
        super().__init__(message, reason="tooManyAttempts")
        self.retry_after = retry_after


class StorageError(StorefrontError):
    category = "storage"
    default_message = "Unable to process the request right now. Please try again."


class TokenError(Exception):
    """Raised by the token codec; translated to Unauthenticated by the session validator."""

    def __init__(self, reason: TokenFailure):
        self.reason = reason
        super().__init__(reason.value)
