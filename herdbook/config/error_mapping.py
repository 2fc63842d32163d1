"""Central error mapping for the answer engine.

Single source of truth for mapping domain error kinds to problem+json codes
and HTTP statuses. Error classes and HTTP handlers import from here instead
of hardcoding strings or numbers.
"""

from __future__ import annotations

DOMAIN_ERROR_MAP = {
    "duplicate_active_record": {"code": "ANIMAL_NUMBER_TAKEN", "status": 409, "title": "Conflict"},
    "concurrent_write": {"code": "REPLACE_KEY_CONFLICT", "status": 409, "title": "Conflict"},
    "invalid_reference": {"code": "INVALID_REFERENCE", "status": 422, "title": "Invalid Request"},
    "not_found": {"code": "NOT_FOUND", "status": 404, "title": "Not Found"},
    "inconsistent_state": {"code": "INCONSISTENT_STATE", "status": 500, "title": "Internal Server Error"},
}

__all__ = ["DOMAIN_ERROR_MAP"]
