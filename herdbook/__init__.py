"""FastAPI application package for the Herdbook answer engine.

Records versioned questionnaire answers about livestock, projects the
reproductive/lactation timeline from them and serves grouped category views.
Business logic lives in `herdbook/logic/` and route handlers in
`herdbook/routes/`.
"""

from __future__ import annotations

from herdbook.main import create_app

__all__ = ["create_app"]
