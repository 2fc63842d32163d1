"""Domain event constants and publisher.

Defines event type constants and a simple publish() callable used by the
answer service once a unit of work has committed.
"""

from __future__ import annotations

from typing import Any, Dict, List
import logging

logger = logging.getLogger(__name__)

ANSWERS_SAVED = "answers.saved"
YIELD_HISTORY_APPENDED = "yield_history.appended"
ANIMAL_INSTANCE_RETIRED = "animal_instance.retired"


def publish(event_type: str, payload: Dict[str, Any]) -> None:
    """Publish a domain event.

    Events are logged for observability and buffered in memory so tests can
    observe them.
    """
    logger.info("event_publish type=%s payload=%s", event_type, payload)
    EVENT_BUFFER.append({"type": event_type, "payload": payload})


EVENT_BUFFER: List[Dict[str, Any]] = []


def get_buffered_events(clear: bool = True) -> List[Dict[str, Any]]:
    """Return buffered domain events; optionally clear the buffer."""
    events = list(EVENT_BUFFER)
    if clear:
        EVENT_BUFFER.clear()
    return events


__all__ = [
    "ANSWERS_SAVED",
    "YIELD_HISTORY_APPENDED",
    "ANIMAL_INSTANCE_RETIRED",
    "publish",
    "get_buffered_events",
    "EVENT_BUFFER",
]
