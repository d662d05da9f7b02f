"""
Aggregation of raw rating records into country and traveler statistics.

Every function here is a pure function of its input batch. A batch is
assumed to be already filtered to the entity being described; filtering
by country or user is the caller's job (see ``group_records`` for the
mixed-batch case).

Averaging rules:
- Each rating field is averaged over the records where it is present.
  A missing value is skipped, never counted as zero.
- A field with no present values averages to 0 with sample size 0.
- Averages are rounded to one decimal place, half away from zero. The
  rounded value is what gets displayed and ranked.
"""

import math
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from travelbio.logging_config import get_logger, log_function_call, metrics
from travelbio.models import (
    CATEGORIES,
    CategoryAverage,
    CountryStatistics,
    EntityId,
    RatingRecord,
    RelationKind,
    UserStatistics,
)
from travelbio.validators import find_out_of_range_ratings

# Logger
logger = get_logger("aggregator")

# Decimal places kept on every displayed average
AVERAGE_PRECISION = 1


# ============================================================================
# Helpers
# ============================================================================

def round_half_away_from_zero(value: float, places: int = AVERAGE_PRECISION) -> float:
    """
    Round to ``places`` decimals with halves going away from zero.

    The value is rounded from its shortest decimal representation, so
    4.25 becomes 4.3 and -4.25 becomes -4.3.
    Non-finite values (an infinite rating, or a sum that overflowed)
    come back unchanged.
    """
    if not math.isfinite(value):
        return value
    quantum = Decimal(1).scaleb(-places)
    return float(Decimal(repr(value)).quantize(quantum, rounding=ROUND_HALF_UP))


def _as_batch(records: Optional[Iterable[RatingRecord]]) -> List[RatingRecord]:
    """Materialize a batch, rejecting a missing one."""
    if records is None:
        raise TypeError("records must be a list of RatingRecord, got None")
    try:
        return list(records)
    except TypeError:
        raise TypeError(
            f"records must be iterable, got {type(records).__name__}"
        ) from None


def average_present(values: Iterable[Optional[float]]) -> CategoryAverage:
    """
    Average the values that are present.

    Args:
        values: Rating values, ``None`` for absent

    Returns:
        CategoryAverage with the rounded mean and the count of present values
    """
    present = [v for v in values if v is not None]
    if not present:
        return CategoryAverage(average=0.0, sample_size=0)
    mean = sum(present) / len(present)
    return CategoryAverage(
        average=round_half_away_from_zero(mean),
        sample_size=len(present),
    )


def average_from_totals(total: Optional[float], count: Optional[int]) -> CategoryAverage:
    """
    Finish an average from a precomputed sum and count of present values.

    Used when grouping happens in the store; gives the same result as
    ``average_present`` over the same values.
    """
    if not count:
        return CategoryAverage(average=0.0, sample_size=0)
    return CategoryAverage(
        average=round_half_away_from_zero(total / count),
        sample_size=int(count),
    )


def _flag_out_of_range(batch: List[RatingRecord]) -> None:
    """Log every out-of-range rating in the batch without altering it."""
    flagged = 0
    for record in batch:
        for field_name, value in find_out_of_range_ratings(record):
            flagged += 1
            logger.warning(
                f"Out-of-range {field_name} rating {value:g} included as-is",
                extra={
                    "record_id": record.id,
                    "user_id": record.user_id,
                    "country_id": record.country_id,
                    "field": field_name,
                    "value": value,
                }
            )
    if flagged:
        metrics.record_malformed_rating(flagged)


def group_records(
    records: Iterable[RatingRecord],
    key: Callable[[RatingRecord], Any]
) -> Dict[Any, List[RatingRecord]]:
    """
    Group records by a key function.

    Groups appear in order of first occurrence and keep the input order
    of their records.
    """
    groups: Dict[Any, List[RatingRecord]] = {}
    for record in _as_batch(records):
        groups.setdefault(key(record), []).append(record)
    return groups


# ============================================================================
# Country Aggregation
# ============================================================================

def aggregate_country(
    records: Iterable[RatingRecord],
    country_id: Optional[EntityId] = None
) -> CountryStatistics:
    """
    Compute statistics for one country's batch of rating records.

    Args:
        records: Records already filtered to one country
        country_id: Country the batch belongs to; taken from the first
            record when omitted

    Returns:
        CountryStatistics; an empty batch yields all zeros

    Raises:
        TypeError: If ``records`` is None or not iterable
    """
    batch = _as_batch(records)

    if country_id is None and batch:
        country_id = batch[0].country_id

    _flag_out_of_range(batch)

    lived_users = {r.user_id for r in batch if r.relation_kind == RelationKind.LIVED}
    visited_users = {r.user_id for r in batch if r.relation_kind == RelationKind.VISITED}

    return CountryStatistics(
        country_id=country_id,
        visitor_count=len({r.user_id for r in batch}),
        trip_count=len(batch),
        overall=average_present(r.overall_rating for r in batch),
        categories={
            category: average_present(r.rating_for(category) for r in batch)
            for category in CATEGORIES
        },
        lived_count=len(lived_users),
        visited_count=len(visited_users),
    )


@log_function_call()
def aggregate_countries(
    records: Iterable[RatingRecord],
    country_ids: Optional[Iterable[EntityId]] = None
) -> List[CountryStatistics]:
    """
    Compute statistics for every country in a mixed batch.

    Args:
        records: Records for any number of countries
        country_ids: Countries to report, in output order. Countries with
            no records get zero statistics. Defaults to the countries seen
            in ``records`` in order of first occurrence.

    Returns:
        List of CountryStatistics
    """
    groups = group_records(records, key=lambda r: r.country_id)
    ids = list(country_ids) if country_ids is not None else list(groups)
    return [aggregate_country(groups.get(cid, []), country_id=cid) for cid in ids]


# ============================================================================
# User Aggregation
# ============================================================================

def aggregate_user(
    records: Iterable[RatingRecord],
    user_id: Optional[EntityId] = None
) -> UserStatistics:
    """
    Compute statistics for one traveler's batch of rating records.

    Args:
        records: Records already filtered to one user
        user_id: User the batch belongs to; taken from the first record
            when omitted

    Returns:
        UserStatistics; an empty batch yields all zeros

    Raises:
        TypeError: If ``records`` is None or not iterable
    """
    batch = _as_batch(records)

    if user_id is None and batch:
        user_id = batch[0].user_id

    lived = {r.country_id for r in batch if r.relation_kind == RelationKind.LIVED}
    visited = {r.country_id for r in batch if r.relation_kind == RelationKind.VISITED}

    return UserStatistics(
        user_id=user_id,
        countries_visited_count=len({r.country_id for r in batch}),
        locations_count=len(batch),
        reviews_written_count=sum(1 for r in batch if r.has_comment),
        lived_countries_count=len(lived),
        visited_countries_count=len(visited),
    )


@log_function_call()
def aggregate_users(
    records: Iterable[RatingRecord],
    user_ids: Optional[Iterable[EntityId]] = None
) -> List[UserStatistics]:
    """Compute statistics for every user in a mixed batch."""
    groups = group_records(records, key=lambda r: r.user_id)
    ids = list(user_ids) if user_ids is not None else list(groups)
    return [aggregate_user(groups.get(uid, []), user_id=uid) for uid in ids]


# ============================================================================
# Profile and Directory Views
# ============================================================================

@dataclass(frozen=True)
class CountryBreakdown:
    """One country on a traveler's profile."""

    country_id: EntityId
    records: Tuple[RatingRecord, ...]
    average_overall: float

    @property
    def record_count(self) -> int:
        return len(self.records)


def breakdown_by_country(records: Iterable[RatingRecord]) -> List[CountryBreakdown]:
    """
    Group one traveler's records by country.

    Each group's ``average_overall`` averages only the records that carry
    an overall rating (0 when none do).
    """
    return [
        CountryBreakdown(
            country_id=country_id,
            records=tuple(group),
            average_overall=average_present(r.overall_rating for r in group).average,
        )
        for country_id, group in group_records(records, key=lambda r: r.country_id).items()
    ]


@dataclass(frozen=True)
class DirectorySummary:
    """Totals shown above the countries directory."""

    total_countries: int = 0
    countries_with_visitors: int = 0
    total_trips: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {
            "total_countries": self.total_countries,
            "countries_with_visitors": self.countries_with_visitors,
            "total_trips": self.total_trips,
        }


def summarize_directory(statistics: Iterable[CountryStatistics]) -> DirectorySummary:
    """Summarize a list of per-country statistics."""
    stats = list(statistics)
    return DirectorySummary(
        total_countries=len(stats),
        countries_with_visitors=sum(1 for s in stats if s.visitor_count > 0),
        total_trips=sum(s.trip_count for s in stats),
    )
