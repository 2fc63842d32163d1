"""One-time Yield History backfill.

Rebuilds timeline rows for sessions written before the projector existed.
A per-user claim row makes the run happen at most once: the first caller
inserts the claim and projects in the same transaction, concurrent callers
see the claim and return.
"""

from __future__ import annotations

import logging

from herdbook.db.base import unit_of_work
from herdbook.logic import clock
from herdbook.logic import repository_answers as answers_repo
from herdbook.logic import repository_yield_history as yield_repo
from herdbook.logic.projector import append_record
from herdbook.logic.session_resolver import WriteOutcome

logger = logging.getLogger(__name__)


def ensure_yield_history_backfill(user_id: int) -> int:
    """Run the backfill for a user unless already claimed; returns rows written."""
    moment = clock.now()
    with unit_of_work() as conn:
        if not yield_repo.claim_backfill(conn, user_id, clock.isoformat(moment)):
            return 0
        projected = yield_repo.projected_sources(conn, user_id)
        written = 0
        for inst, session in answers_repo.list_user_sessions(conn, user_id):
            if session.session_id in projected:
                continue
            outcome = WriteOutcome(
                instance=inst,
                category_id=session.category_id,
                session=session,
                rows=answers_repo.session_answers(conn, session.session_id),
            )
            if append_record(conn, outcome, moment) is not None:
                written += 1
        yield_repo.record_backfill_rows(conn, user_id, written)
    logger.info("yield_history_backfill_complete user_id=%s rows=%s", user_id, written)
    return written


__all__ = ["ensure_yield_history_backfill"]
