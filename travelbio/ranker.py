"""
Ranking of aggregated statistics into top-N lists.

Ranking rules:
- Entries whose metric is absent or exactly 0 are dropped before the
  limit is applied, so a limit of N yields up to N meaningful entries.
- Order is by metric, highest first. Ties keep their input order
  (Python's sort is stable, including with ``reverse=True``).
- Ranks are positional: 1, 2, 3, ... even when values tie.
"""

from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional, TypeVar

from travelbio.logging_config import get_logger
from travelbio.models import (
    CATEGORIES,
    CATEGORY_TITLES,
    OVERALL,
    CountryStatistics,
    RankingEntry,
    UserStatistics,
)

# Logger
logger = get_logger("ranker")

T = TypeVar("T")

# Chart sizes
COUNTRY_CHART_LIMIT = 10
LEADERBOARD_LIMIT = 5


def rank(
    entries: Iterable[T],
    metric: Callable[[T], Optional[float]],
    limit: Optional[int] = COUNTRY_CHART_LIMIT
) -> List[RankingEntry[T]]:
    """
    Rank entries by a metric, highest first.

    Args:
        entries: Statistics objects of any type
        metric: Function returning the value to rank by
        limit: Maximum entries returned; None for no limit

    Returns:
        List of RankingEntry with positional 1-based ranks

    Raises:
        TypeError: If ``entries`` is None
        ValueError: If ``limit`` is negative
    """
    if entries is None:
        raise TypeError("entries must be a list, got None")
    if limit is not None and limit < 0:
        raise ValueError(f"limit must be non-negative, got {limit}")

    scored = []
    for entry in entries:
        value = metric(entry)
        if value is None or value == 0:
            continue
        scored.append((entry, value))

    ordered = sorted(scored, key=lambda pair: pair[1], reverse=True)
    if limit is not None:
        ordered = ordered[:limit]

    logger.debug(
        "Ranked entries",
        extra={"qualifying_count": len(scored), "returned_count": len(ordered)}
    )

    return [
        RankingEntry(entity=entity, metric_value=value, rank=position)
        for position, (entity, value) in enumerate(ordered, start=1)
    ]


# ============================================================================
# Country Charts
# ============================================================================

def top_overall(
    statistics: Iterable[CountryStatistics],
    limit: int = COUNTRY_CHART_LIMIT
) -> List[RankingEntry[CountryStatistics]]:
    """Top countries by average overall rating."""
    return rank(statistics, lambda s: s.overall.average, limit)


def most_visited(
    statistics: Iterable[CountryStatistics],
    limit: int = COUNTRY_CHART_LIMIT
) -> List[RankingEntry[CountryStatistics]]:
    """Top countries by distinct visitor count."""
    return rank(statistics, lambda s: s.visitor_count, limit)


def top_by_category(
    statistics: Iterable[CountryStatistics],
    category: str,
    limit: int = COUNTRY_CHART_LIMIT
) -> List[RankingEntry[CountryStatistics]]:
    """
    Top countries by one category's average rating.

    Args:
        statistics: Per-country statistics
        category: One of the six rating categories, or ``overall``
        limit: Maximum entries returned

    Raises:
        KeyError: If ``category`` is not a known rating category
    """
    if category != OVERALL and category not in CATEGORIES:
        raise KeyError(f"Unknown rating category: {category}")
    return rank(statistics, lambda s: s.average(category), limit)


@dataclass(frozen=True)
class CategoryRanking:
    """A titled top chart for one rating category."""

    category: str
    title: str
    entries: List[RankingEntry[CountryStatistics]]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "category": self.category,
            "title": self.title,
            "entries": [entry.to_dict() for entry in self.entries],
        }


def category_top_charts(
    statistics: Iterable[CountryStatistics],
    limit: int = COUNTRY_CHART_LIMIT
) -> List[CategoryRanking]:
    """
    One top chart per rating category, in category order.

    Each chart independently drops countries with no rating in that category.
    """
    stats = list(statistics)
    return [
        CategoryRanking(
            category=category,
            title=CATEGORY_TITLES[category],
            entries=top_by_category(stats, category, limit),
        )
        for category in CATEGORIES
    ]


# ============================================================================
# Traveler Leaderboards
# ============================================================================

def top_travelers(
    statistics: Iterable[UserStatistics],
    limit: int = LEADERBOARD_LIMIT
) -> List[RankingEntry[UserStatistics]]:
    """Travelers with the most distinct countries."""
    return rank(statistics, lambda s: s.countries_visited_count, limit)


def top_reviewers(
    statistics: Iterable[UserStatistics],
    limit: int = LEADERBOARD_LIMIT
) -> List[RankingEntry[UserStatistics]]:
    """Travelers who wrote the most reviews."""
    return rank(statistics, lambda s: s.reviews_written_count, limit)
