# ABOUTME: Fuzzy match scoring of catalog candidates against a free-text search query.
# ABOUTME: Weighted token similarity over title, best author, and series; best-candidate selection.

import logging
import re
from collections.abc import Iterable, Sequence

from earshelf.metadata.candidate import MetadataCandidate
from earshelf.metadata.types import AudiobookMetadata

logger = logging.getLogger(__name__)

# Match weights (sum to 1.0)
_WEIGHT_TITLE = 0.6
_WEIGHT_AUTHOR = 0.3
_WEIGHT_SERIES = 0.1

# Within a component: containment dominates so a short title inside a long
# query ("Storm Front" in "Jim Butcher Storm Front") still scores well.
_WEIGHT_OVERLAP = 0.8
_WEIGHT_DICE = 0.2

DEFAULT_MATCH_THRESHOLD = 0.15

_TOKEN_RE = re.compile(r"[^\W_]+")
_STOP_WORDS = frozenset({"the", "a", "an", "of", "and", "by"})


def _normalize_author(name: str) -> str:
    """Normalize 'Last, First' to 'First Last' and lowercase."""
    name = name.strip().lower()
    if "," in name:
        parts = [p.strip() for p in name.split(",", 1)]
        name = f"{parts[1]} {parts[0]}"
    return name


def _tokens(text: str) -> frozenset[str]:
    raw = frozenset(_TOKEN_RE.findall(text.casefold()))
    meaningful = raw - _STOP_WORDS
    return meaningful or raw


def text_similarity(a: str, b: str) -> float:
    """Symmetric token similarity in [0, 1].

    1.0 for an exact case-insensitive match, 0.0 when no token is shared,
    otherwise a blend of overlap coefficient and Dice coefficient.
    """
    if not a or not b:
        return 0.0
    if a.casefold().strip() == b.casefold().strip():
        return 1.0
    tokens_a = _tokens(a)
    tokens_b = _tokens(b)
    if not tokens_a or not tokens_b:
        return 0.0
    shared = len(tokens_a & tokens_b)
    if not shared:
        return 0.0
    overlap = shared / min(len(tokens_a), len(tokens_b))
    dice = 2 * shared / (len(tokens_a) + len(tokens_b))
    return _WEIGHT_OVERLAP * overlap + _WEIGHT_DICE * dice


def _best_author_similarity(query: str, authors: Iterable[str]) -> float:
    best = 0.0
    for author in authors:
        best = max(best, text_similarity(query, _normalize_author(author)))
    return best


def score_candidate(query: str, candidate: AudiobookMetadata) -> float:
    """Score how well a candidate record matches a search query.

    ``0.6 * title + 0.3 * best author + 0.1 * series``, clamped to [0.0, 1.0].
    Deterministic for identical inputs.
    """
    score = _WEIGHT_TITLE * text_similarity(query, candidate.title)
    score += _WEIGHT_AUTHOR * _best_author_similarity(query, candidate.authors)
    if candidate.series:
        score += _WEIGHT_SERIES * text_similarity(query, candidate.series)
    return max(0.0, min(1.0, score))


def rank_candidates(
    query: str, records: Sequence[tuple[str, AudiobookMetadata]]
) -> list[MetadataCandidate]:
    """Score (source, record) pairs and sort them best first.

    Ties go to the candidate that reports a series, then to the earlier one.
    """
    scored = [
        MetadataCandidate(
            metadata=record,
            confidence=score_candidate(query, record),
            source=source,
            rank=index,
        )
        for index, (source, record) in enumerate(records)
    ]
    scored.sort(key=lambda c: (-c.confidence, not c.metadata.series, c.rank))
    for candidate in scored:
        logger.debug(
            "Candidate %r by %s from %s scored %.3f",
            candidate.metadata.title,
            candidate.metadata.author or "unknown",
            candidate.source,
            candidate.confidence,
        )
    return scored


def select_best(
    query: str,
    records: Sequence[tuple[str, AudiobookMetadata]],
    threshold: float = DEFAULT_MATCH_THRESHOLD,
) -> MetadataCandidate | None:
    """Return the best-scoring candidate at or above threshold, or None."""
    ranked = rank_candidates(query, records)
    if not ranked or ranked[0].confidence < threshold:
        return None
    return ranked[0]
