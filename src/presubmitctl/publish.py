#!/usr/bin/env python3
"""Post a rendered presubmit report to the review threads of the tested refs."""

import logging
from collections.abc import Sequence

from presubmitctl.config import DEFAULT_QUERY, DEFAULT_VOTE_LABEL
from presubmitctl.gerrit import GerritClient

logger = logging.getLogger(__name__)


def refs_accepting_label(gerrit: GerritClient, label: str,
                         query: str = DEFAULT_QUERY) -> set[str]:
    """Refs of open changes configured with the given voting label."""
    return {
        change.reference for change in gerrit.query(query)
        if label in change.labels
    }


def post_message(
    gerrit: GerritClient,
    message: str,
    refs: Sequence[str],
    success: bool,
    label: str = DEFAULT_VOTE_LABEL,
    query: str = DEFAULT_QUERY,
) -> None:
    """Post message to every ref, voting +1/-1 where the change accepts label.

    Each call posts again; retrying is up to the caller. Raises GerritError.
    """
    accepting = refs_accepting_label(gerrit, label, query)
    value = "+1" if success else "-1"
    for ref in refs:
        labels = {label: value} if ref in accepting else {}
        gerrit.post_review(ref, message, labels)
        logger.info("Review posted for %s with labels %s", ref, labels)
