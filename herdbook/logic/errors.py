"""Domain error taxonomy for the answer engine.

Each error carries a `kind` key into `DOMAIN_ERROR_MAP`, which the HTTP layer
uses to build problem+json responses.
"""

from __future__ import annotations

from typing import Any, Dict

from herdbook.config.error_mapping import DOMAIN_ERROR_MAP


class HerdbookError(Exception):
    kind: str = "inconsistent_state"

    def __init__(self, detail: str, **context: Any) -> None:
        super().__init__(detail)
        self.detail = detail
        self.context: Dict[str, Any] = context

    @property
    def code(self) -> str:
        return DOMAIN_ERROR_MAP[self.kind]["code"]

    @property
    def status(self) -> int:
        return int(DOMAIN_ERROR_MAP[self.kind]["status"])

    @property
    def title(self) -> str:
        return DOMAIN_ERROR_MAP[self.kind]["title"]


class DuplicateActiveRecordError(HerdbookError):
    """The AnimalInstance already has an active session."""

    kind = "duplicate_active_record"


class ConcurrentWriteError(HerdbookError):
    """Another writer committed a session under the same replace key."""

    kind = "concurrent_write"


class InvalidReferenceError(HerdbookError):
    """A question, category or animal id is unknown to the catalog."""

    kind = "invalid_reference"


class NotFoundError(HerdbookError):
    kind = "not_found"


class InconsistentStateError(HerdbookError):
    """The yield history holds a row the projector cannot reconcile."""

    kind = "inconsistent_state"


__all__ = [
    "HerdbookError",
    "DuplicateActiveRecordError",
    "ConcurrentWriteError",
    "InvalidReferenceError",
    "NotFoundError",
    "InconsistentStateError",
]
