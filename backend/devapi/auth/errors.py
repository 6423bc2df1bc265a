"""
Error taxonomy for the developer API.

Every failure the request path can produce is one of these three types.
Backing-store client errors (redis, SQLAlchemy, socket timeouts) are
wrapped into StoreUnavailable at the boundary so nothing downstream ever
branches on a third-party exception shape.

The exception handlers in devapi.main turn them into JSON:
  AuthError          → 401  {"error": ...}
  RateLimitExceeded  → 429  {"error": ..., "retry_after": n} + Retry-After
  StoreUnavailable   → 503  {"error": ...}
"""

import enum


class AuthFailure(str, enum.Enum):
    """Internal reason for a rejected credential. Never sent to the client."""

    MISSING = "missing"
    MALFORMED = "malformed"
    UNKNOWN = "unknown"
    REVOKED = "revoked"
    EXPIRED = "expired"


class AuthError(Exception):
    """Raised when API key authentication fails.

    The reason is for internal logging only:
    the client always receives the same generic 401.
    """

    def __init__(self, reason: AuthFailure) -> None:
        super().__init__(reason.value)
        self.reason = reason


class RateLimitExceeded(Exception):
    """Raised when an API key exceeds its per-minute budget."""

    def __init__(self, retry_after: int) -> None:
        super().__init__(f"retry after {retry_after}s")
        self.retry_after = retry_after


class StoreUnavailable(Exception):
    """A backing store needed for an auth or rate-limit decision failed.

    The request is rejected (fail closed), never let through unmetered.
    """

    def __init__(self, store: str) -> None:
        super().__init__(f"{store} unavailable")
        self.store = store
