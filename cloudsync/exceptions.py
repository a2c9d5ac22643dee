"""Application-level exception types.

Convention:
- ``InternalServerError`` for errors whose details must never reach clients
  (decryption failures, config validation, etc.). The global handler logs the
  full message at ERROR and returns a generic "Internal server error" (500).
- ``ValueError`` for *business logic* validation errors that are safe to
  forward to clients. The global ``ValueError`` handler returns ``str(exc)``
  as the 422 detail.
- ``OAuthFlowError`` for authorize/callback failures. Browser-facing endpoints
  turn it into a redirect carrying ``notice`` instead of raw error text.
"""

from __future__ import annotations


class InternalServerError(Exception):
    """Raised for internal errors whose details must not be exposed to clients.

    The global exception handler in ``cloudsync/main.py`` catches this, logs
    the full message server-side, and returns HTTP 500 with a generic
    ``"Internal server error"`` detail.
    """


class UnknownProviderError(ValueError):
    """Raised when a provider slug does not name a supported provider."""

    notice = "invalid-service"


class OAuthFlowError(Exception):
    """Raised when an OAuth authorization or token exchange cannot complete."""

    def __init__(self, notice: str, message: str = "") -> None:
        super().__init__(message or notice)
        self.notice = notice
