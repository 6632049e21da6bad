"""
Error taxonomy shared by the upstream clients and the HTTP layer.
"""

from __future__ import annotations

import copy
from typing import Any, Optional


class RelayError(Exception):
    """Base error carrying the HTTP status it maps to."""

    status_code: int = 500

    def __init__(self, message: str, details: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_payload(self) -> dict:
        payload: dict = {"error": self.message}
        if self.details is not None:
            payload["details"] = self.details
        return payload

    def with_message(self, message: str) -> "RelayError":
        """Copy of this error reported under a different message."""
        clone = copy.copy(self)
        clone.message = message
        clone.args = (message,)
        return clone


class ValidationError(RelayError):
    """Missing or malformed caller input."""

    status_code = 400


class PayloadTooLargeError(RelayError):
    status_code = 413


class NotFoundError(RelayError):
    """No matching record or file."""

    status_code = 404

    def to_payload(self) -> dict:
        payload = super().to_payload()
        # The admin dashboard reads `message`.
        payload["message"] = self.message
        return payload


class CatalogError(RelayError):
    """The catalog platform rejected a query or mutation."""

    status_code = 400


class UploadError(RelayError):
    status_code = 500


class UpstreamError(RelayError):
    status_code = 500


class UpstreamAuthError(RelayError):
    """Acquiring an upstream credential failed."""

    status_code = 502

    def __init__(
        self,
        message: str,
        details: Optional[Any] = None,
        upstream_status: Optional[int] = None,
    ):
        super().__init__(message, details)
        self.upstream_status = upstream_status

    def to_payload(self) -> dict:
        payload = super().to_payload()
        if self.upstream_status is not None:
            payload["upstream_status"] = self.upstream_status
        return payload
