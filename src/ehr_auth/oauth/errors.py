"""OAuth 2.0 error responses (RFC 6749 section 5.2)."""

from __future__ import annotations

from enum import StrEnum
from typing import Any


class OAuthErrorCode(StrEnum):
    """Error codes returned by the authorization and token endpoints."""

    INVALID_REQUEST = "invalid_request"
    INVALID_CLIENT = "invalid_client"
    INVALID_GRANT = "invalid_grant"
    INVALID_SCOPE = "invalid_scope"
    UNAUTHORIZED_CLIENT = "unauthorized_client"
    UNSUPPORTED_GRANT_TYPE = "unsupported_grant_type"
    UNSUPPORTED_RESPONSE_TYPE = "unsupported_response_type"


_STATUS_CODES: dict[OAuthErrorCode, int] = {
    OAuthErrorCode.INVALID_CLIENT: 401,
}


class OAuthError(Exception):
    """An OAuth protocol error surfaced to the caller.

    Callers dispatch on ``error_code`` rather than on subclasses.
    """

    def __init__(
        self,
        error_code: OAuthErrorCode | str,
        message: str,
        status_code: int | None = None,
    ) -> None:
        self.error_code = OAuthErrorCode(error_code)
        self.message = message
        self.status_code = (
            status_code
            if status_code is not None
            else _STATUS_CODES.get(self.error_code, 400)
        )
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Render the JSON error body."""
        return {"error": str(self.error_code), "error_description": self.message}

    def __repr__(self) -> str:
        return (
            f"OAuthError(error_code={self.error_code!s}, "
            f"status_code={self.status_code}, message={self.message!r})"
        )


__all__ = ["OAuthErrorCode", "OAuthError"]
