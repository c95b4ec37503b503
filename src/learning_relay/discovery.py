"""Fuzzy catalog matching using rapidfuzz.

Ranking, type-balanced top-K selection for search, and single best-match
resolution for launching content.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Generic, Optional, Sequence, TypeVar, Union

from rapidfuzz import fuzz, utils

from learning_relay.errors import ValidationError
from learning_relay.models import CatalogEntry

logger = logging.getLogger(__name__)

T = TypeVar("T")

LAB = "Lab"
MAX_RESULTS = 10
MAX_LABS = 2
LAUNCH_THRESHOLD = 0.75


def _normalize(text: str) -> str:
    # Lowercase, punctuation to spaces, then drop whitespace entirely
    return "".join(utils.default_process(text).split())


def similarity(a: str, b: str) -> float:
    """Normalized similarity in [0, 1] between two strings.

    Symmetric and reflexive; case, punctuation and whitespace are ignored.
    """
    if not isinstance(a, str) or not isinstance(b, str):
        raise ValidationError("Similarity input must be a string")

    if a == b:
        return 1.0
    a_norm = _normalize(a)
    b_norm = _normalize(b)
    # Text with nothing left to compare matches nothing
    if not a_norm or not b_norm:
        return 0.0
    if a_norm == b_norm:
        return 1.0
    return fuzz.ratio(a_norm, b_norm) / 100.0


@dataclass(frozen=True)
class ScoredEntry(Generic[T]):
    """A candidate paired with its similarity to one query."""

    item: T
    score: float


def rank(
    query: str,
    candidates: Sequence[T],
    key: Callable[[T], str] = lambda c: c.title,
) -> list[ScoredEntry[T]]:
    """Score every candidate against the query, best first.

    Ties keep input order (catalog order reflects curation priority).
    """
    scored = [ScoredEntry(item=c, score=similarity(query, key(c))) for c in candidates]
    # sorted() is stable
    return sorted(scored, key=lambda s: s.score, reverse=True)


def select(
    ranking: Sequence[ScoredEntry[CatalogEntry]],
    max_total: int = MAX_RESULTS,
    category: str = LAB,
    max_of_category: int = MAX_LABS,
) -> tuple[CatalogEntry, ...]:
    """Select up to ``max_total`` entries in rank order with a category quota.

    Non-category entries are always admitted. A category entry is admitted only
    while the remaining slots exceed the category's remaining allowance, and
    never beyond ``max_of_category``.
    """
    selected: list[CatalogEntry] = []
    category_count = 0

    for scored in ranking:
        total = len(selected)
        if total == max_total:
            break

        entry = scored.item
        if entry.content_type != category:
            selected.append(entry)
            continue

        if category_count >= max_of_category:
            continue
        if (max_total - total) > (max_of_category - category_count):
            selected.append(entry)
            category_count += 1

    return tuple(selected)


@dataclass(frozen=True)
class Accepted:
    """Launch decision: the entry matched confidently."""

    entry: CatalogEntry
    score: float


@dataclass(frozen=True)
class Rejected:
    """Launch decision: nothing matched confidently."""

    reason: str
    score: float = 0.0


LaunchDecision = Union[Accepted, Rejected]


def resolve(
    query: str,
    catalog: Sequence[CatalogEntry],
    threshold: float = LAUNCH_THRESHOLD,
) -> LaunchDecision:
    """Resolve a single catalog entry by title for direct launch.

    Linear max-scan: the first entry with the highest score wins.
    """
    best: Optional[CatalogEntry] = None
    best_score = 0.0
    for entry in catalog:
        score = similarity(entry.title, query)
        if best is None or score > best_score:
            best = entry
            best_score = score

    if best is None or best_score < threshold:
        logger.debug(f"No launch match for {query!r} (best score {best_score:.2f})")
        return Rejected(reason="not found", score=best_score)
    return Accepted(entry=best, score=best_score)


def search(
    query: str,
    catalog: Sequence[CatalogEntry],
    max_total: int = MAX_RESULTS,
    max_labs: int = MAX_LABS,
) -> tuple[CatalogEntry, ...]:
    """Rank the catalog by title and select a type-balanced top-K."""
    ranking = rank(query, catalog)
    return select(ranking, max_total=max_total, max_of_category=max_labs)
