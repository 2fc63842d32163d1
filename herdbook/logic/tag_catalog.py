"""Startup check of the tag role table against the catalog's question_tags."""

from __future__ import annotations

import logging
from typing import Tuple

from herdbook.logic.repository_catalog import catalog_tag_ids
from herdbook.models.question_tag import TAG_ROLES

logger = logging.getLogger(__name__)


def verify_tag_catalog() -> Tuple[list[int], list[int]]:
    """Return (role tags missing from the catalog, catalog tags without a role)."""
    known = catalog_tag_ids()
    roles = {int(t) for t in TAG_ROLES}
    missing = sorted(roles - known)
    unmapped = sorted(known - roles)
    if missing:
        logger.warning("tag_catalog_missing tags=%s", missing)
    if unmapped:
        logger.info("tag_catalog_unmapped tags=%s", unmapped)
    return missing, unmapped


__all__ = ["verify_tag_catalog"]
