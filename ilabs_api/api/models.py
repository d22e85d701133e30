"""Client configuration, request options, and status response dataclasses.

WHY: The ilabs API exchanges small, loosely specified JSON objects, and the
client itself has a handful of settings that must not change while requests
are in flight. Typed dataclasses make both explicit.

HOW: ClientConfig holds the per-client settings and builds the auth headers.
RequestOptions enumerates what a single request may set. StatusReport wraps
one status poll response and keeps the full payload for callers that need
service-specific fields.

RULES:
- All three are frozen: a status snapshot or a config never changes
- StatusReport.completed is False unless the service says otherwise
- StatusReport.error is None when absent or empty
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from ilabs_api.config import (
    DEFAULT_ENDPOINT,
    DEFAULT_USER_AGENT,
    MISSING_USER_KEY_MESSAGE,
    MissingUserKeyError,
)


@dataclass(frozen=True)
class ClientConfig:
    """Settings shared by every request an IlabsClient makes.

    RULES:
    - user_key may be None; only authenticated calls require it
    - endpoint never ends with a slash
    """

    user_key: str | None = None
    endpoint: str = DEFAULT_ENDPOINT
    user_agent: str = DEFAULT_USER_AGENT

    def __post_init__(self) -> None:
        object.__setattr__(self, "endpoint", self.endpoint.rstrip("/"))

    def auth_headers(self) -> dict[str, str]:
        """Headers sent with every authenticated request.

        Raises MissingUserKeyError if no user key was configured.
        """
        if not self.user_key:
            raise MissingUserKeyError(MISSING_USER_KEY_MESSAGE)
        return {
            "User-Key": self.user_key,
            "User-Agent": self.user_agent,
            "Cache-control": "no-cache",
        }


@dataclass(frozen=True)
class RequestOptions:
    """Method, extra headers, and body for one authenticated request."""

    method: str = "GET"
    headers: Mapping[str, str] = field(default_factory=dict)
    body: bytes | str | None = None


@dataclass(frozen=True)
class StatusReport:
    """Snapshot of GET /reference/{domain}/{task_id}/status.

    WHY: The polling loop only cares about two fields, but the service
    returns more (progress, timings) and callers may want them.

    HOW: completed and error are lifted out; the whole payload stays in
    fields as a read-only mapping.

    RULES:
    - completed is coerced to bool
    - an empty error string is treated as no error
    """

    completed: bool
    error: str | None = None
    fields: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict) -> StatusReport:
        """Parse a StatusReport from a raw API response dict."""
        error = data.get("error")
        return cls(
            completed=bool(data.get("completed")),
            error=str(error) if error else None,
            fields=MappingProxyType(dict(data)),
        )
