"""
Error taxonomy shared by the click store and the dispatch pipeline.

Every error carries a structured payload (``to_dict``) so the HTTP layer can
return it without leaking tracebacks.
"""

from __future__ import annotations

from typing import Any, Optional


class TrackerError(Exception):
    """Base class for all tracker errors."""

    code = "tracker_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.code, "message": self.message}


class ValidationError(TrackerError):
    """Missing or malformed input, rejected before any side effect."""

    code = "validation_error"


class InvalidRecipientError(TrackerError):
    """A single recipient address failed the shape check."""

    code = "invalid_recipient"

    def __init__(self, address: str, message: str = "Invalid email format"):
        super().__init__(message)
        self.address = address


class ConnectivityError(TrackerError):
    """The outbound transport failed its pre-flight probe.

    ``kind`` is one of ``credentials``, ``unreachable`` or ``timeout``.
    """

    code = "connectivity_error"

    CREDENTIALS = "credentials"
    UNREACHABLE = "unreachable"
    TIMEOUT = "timeout"

    HINTS = {
        CREDENTIALS: "Wrong username or password for the SMTP account",
        UNREACHABLE: "Cannot reach the SMTP server; check host, port and firewall",
        TIMEOUT: "Connection timed out; the port may be blocked",
    }

    def __init__(
        self,
        kind: str,
        message: str,
        host: Optional[str] = None,
        port: Optional[int] = None,
        total_requested: int = 0,
    ):
        super().__init__(message)
        self.kind = kind
        self.host = host
        self.port = port
        self.total_requested = total_requested

    @property
    def hint(self) -> str:
        return self.HINTS.get(self.kind, "")

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": f"SMTP connection failed: {self.message}",
            "kind": self.kind,
            "hint": self.hint,
            "config": {"host": self.host, "port": self.port},
            "sent": 0,
            "failed": 0,
            "total": self.total_requested,
        }


class SendError(TrackerError):
    """Transport rejected one recipient after the probe succeeded."""

    code = "send_error"

    def __init__(self, address: str, message: str):
        super().__init__(message)
        self.address = address


class StoreError(TrackerError):
    """Constraint violation or I/O failure in the click store."""

    code = "store_error"
