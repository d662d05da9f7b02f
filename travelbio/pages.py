"""
Page-level collaborators.

Each page load fetches raw rows through a DataStoreGateway, aggregates
them, ranks the statistics and returns a view object ready to render.
``load_page`` wraps a builder in an explicit per-request state so the
UI shows either the complete view, a not-found page, or a generic retry
message; partial aggregates are never shown.
"""

import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, Generic, List, Optional, Tuple, TypeVar

from travelbio.aggregator import (
    CountryBreakdown,
    DirectorySummary,
    aggregate_country,
    aggregate_user,
    aggregate_users,
    breakdown_by_country,
    summarize_directory,
)
from travelbio.config import Settings
from travelbio.database import SqliteGateway
from travelbio.demo import build_demo_gateway
from travelbio.errors import DataStoreError, FetchCancelled, NotFoundError
from travelbio.fanout import (
    DEFAULT_MAX_WORKERS,
    collect_country_statistics,
    collect_user_statistics,
)
from travelbio.gateway import PROFILE_SEARCH_LIMIT, DataStoreGateway
from travelbio.logging_config import get_logger, metrics, new_request_id
from travelbio.models import (
    Country,
    CountryStatistics,
    EntityId,
    Profile,
    RankingEntry,
    RatingRecord,
    UserStatistics,
)
from travelbio.ranker import (
    CategoryRanking,
    category_top_charts,
    most_visited,
    top_overall,
    top_reviewers,
    top_travelers,
)
from travelbio.supabase_client import SupabaseGateway
from travelbio.validators import RatingSubmission

# Logger
logger = get_logger("pages")

T = TypeVar("T")

GENERIC_ERROR_MESSAGE = "Something went wrong while loading this page. Please try again."

# Reviews listed on a country page
COUNTRY_REVIEW_LIMIT = 20

# Countries listed in search results
COUNTRY_SEARCH_LIMIT = 20


# ============================================================================
# Page State
# ============================================================================

class PageStatus(str, Enum):
    """Outcome of one page load."""
    READY = "ready"
    NOT_FOUND = "not_found"
    ERROR = "error"
    CANCELLED = "cancelled"


@dataclass
class PageState(Generic[T]):
    """Explicit state of one page request."""

    status: PageStatus
    data: Optional[T] = None
    message: Optional[str] = None
    request_id: str = ""

    @property
    def ok(self) -> bool:
        return self.status == PageStatus.READY


def load_page(
    builder: Callable[[], T],
    page_name: str = "page"
) -> PageState[T]:
    """
    Run a page builder and capture its outcome.

    Args:
        builder: Zero-argument function producing the page view
        page_name: Name used in logs

    Returns:
        PageState with the view on success; on a store failure the state
        carries only the generic retry message
    """
    request_id = new_request_id()

    try:
        view = builder()
    except NotFoundError as e:
        logger.info(f"{page_name}: {e}", extra={"page": page_name})
        return PageState(PageStatus.NOT_FOUND, message=str(e), request_id=request_id)
    except FetchCancelled:
        logger.info(f"{page_name}: load cancelled", extra={"page": page_name})
        return PageState(PageStatus.CANCELLED, request_id=request_id)
    except DataStoreError as e:
        metrics.record_error(f"page.{page_name}")
        logger.error(
            f"{page_name}: failed to load: {e}",
            extra={"page": page_name, "error_type": type(e).__name__},
            exc_info=True,
        )
        return PageState(PageStatus.ERROR, message=GENERIC_ERROR_MESSAGE, request_id=request_id)

    return PageState(PageStatus.READY, data=view, request_id=request_id)


# ============================================================================
# Shared Loading
# ============================================================================

def load_country_statistics(
    gateway: DataStoreGateway,
    countries: List[Country],
    max_workers: int = DEFAULT_MAX_WORKERS,
    cancel_event: Optional[threading.Event] = None
) -> List[CountryStatistics]:
    """
    Statistics for every given country, in the given order.

    Uses the store's grouped query when it has one, otherwise fans out
    one fetch per country.
    """
    if gateway.supports_grouped_statistics:
        return gateway.fetch_country_statistics([c.id for c in countries])
    return collect_country_statistics(
        gateway, countries, max_workers=max_workers, cancel_event=cancel_event
    )


def _index_by_id(items) -> Dict[EntityId, object]:
    return {item.id: item for item in items}


def filter_countries(countries: List[Country], query: str) -> List[Country]:
    """Countries whose name or code contains ``query``, ignoring case."""
    needle = query.strip().lower()
    if not needle:
        return list(countries)
    return [
        c for c in countries
        if needle in c.name.lower() or needle in c.code.lower()
    ]


# ============================================================================
# Top Charts
# ============================================================================

@dataclass
class TopChartsView:
    """Country rankings: overall, most visited and per category."""

    top_overall: List[RankingEntry[CountryStatistics]]
    most_visited: List[RankingEntry[CountryStatistics]]
    categories: List[CategoryRanking]
    countries: Dict[EntityId, Country] = field(default_factory=dict)


def build_top_charts(
    gateway: DataStoreGateway,
    max_workers: int = DEFAULT_MAX_WORKERS,
    cancel_event: Optional[threading.Event] = None
) -> TopChartsView:
    countries = gateway.fetch_all_countries()
    statistics = load_country_statistics(gateway, countries, max_workers, cancel_event)
    return TopChartsView(
        top_overall=top_overall(statistics),
        most_visited=most_visited(statistics),
        categories=category_top_charts(statistics),
        countries=_index_by_id(countries),
    )


# ============================================================================
# Traveler Leaderboards
# ============================================================================

@dataclass
class LeaderboardView:
    """Top travelers by countries and by reviews written."""

    top_travelers: List[RankingEntry[UserStatistics]]
    top_reviewers: List[RankingEntry[UserStatistics]]
    profiles: Dict[EntityId, Profile] = field(default_factory=dict)


def build_leaderboards(gateway: DataStoreGateway) -> LeaderboardView:
    user_statistics = aggregate_users(gateway.fetch_all_records())
    travelers = top_travelers(user_statistics)
    reviewers = top_reviewers(user_statistics)

    ranked_ids = [e.entity.user_id for e in travelers + reviewers]
    profiles = gateway.fetch_profiles_by_ids(ranked_ids) if ranked_ids else []

    return LeaderboardView(
        top_travelers=travelers,
        top_reviewers=reviewers,
        profiles=_index_by_id(profiles),
    )


# ============================================================================
# Countries Directory
# ============================================================================

@dataclass
class CountriesDirectoryView:
    """All countries with their statistics, plus directory totals."""

    entries: List[Tuple[Country, CountryStatistics]]
    summary: DirectorySummary
    query: str = ""


def build_countries_directory(
    gateway: DataStoreGateway,
    query: str = "",
    max_workers: int = DEFAULT_MAX_WORKERS,
    cancel_event: Optional[threading.Event] = None
) -> CountriesDirectoryView:
    """
    Directory of every country.

    Totals always describe the whole directory; ``query`` only narrows
    the listed entries.
    """
    countries = gateway.fetch_all_countries()
    statistics = load_country_statistics(gateway, countries, max_workers, cancel_event)
    pairs = list(zip(countries, statistics))

    visible = {c.id for c in filter_countries(countries, query)}
    return CountriesDirectoryView(
        entries=[(c, s) for c, s in pairs if c.id in visible],
        summary=summarize_directory(statistics),
        query=query,
    )


# ============================================================================
# Country Detail
# ============================================================================

@dataclass
class ReviewView:
    """One review on a country page."""

    record: RatingRecord
    profile: Optional[Profile] = None


@dataclass
class CountryDetailView:
    """A country with its statistics and best-rated reviews."""

    country: Country
    statistics: CountryStatistics
    reviews: List[ReviewView]


def select_reviews(
    records: List[RatingRecord],
    limit: int = COUNTRY_REVIEW_LIMIT
) -> List[RatingRecord]:
    """Records with an overall rating, best first, ties in input order."""
    rated = [r for r in records if r.overall_rating is not None]
    return sorted(rated, key=lambda r: r.overall_rating, reverse=True)[:limit]


def build_country_detail(gateway: DataStoreGateway, code: str) -> CountryDetailView:
    country = gateway.fetch_country_by_code(code)
    records = gateway.fetch_records_for_country(country.id)
    statistics = aggregate_country(records, country_id=country.id)

    reviews = select_reviews(records)
    authors = _index_by_id(gateway.fetch_profiles_by_ids(r.user_id for r in reviews))

    return CountryDetailView(
        country=country,
        statistics=statistics,
        reviews=[ReviewView(record=r, profile=authors.get(r.user_id)) for r in reviews],
    )


# ============================================================================
# Traveler Profile
# ============================================================================

@dataclass
class ProfileView:
    """A traveler's profile page."""

    profile: Profile
    statistics: UserStatistics
    breakdown: List[CountryBreakdown]
    timeline: List[RatingRecord]
    countries: Dict[EntityId, Country] = field(default_factory=dict)


def build_profile(gateway: DataStoreGateway, username: str) -> ProfileView:
    profile = gateway.fetch_profile_by_username(username)
    records = gateway.fetch_records_for_user(profile.id)
    countries = gateway.fetch_all_countries()

    return ProfileView(
        profile=profile,
        statistics=aggregate_user(records, user_id=profile.id),
        breakdown=breakdown_by_country(records),
        timeline=records,
        countries=_index_by_id(countries),
    )


# ============================================================================
# Search
# ============================================================================

@dataclass
class SearchView:
    """Travelers and countries matching a query."""

    query: str
    travelers: List[Tuple[Profile, UserStatistics]] = field(default_factory=list)
    countries: List[Tuple[Country, CountryStatistics]] = field(default_factory=list)


def build_search(
    gateway: DataStoreGateway,
    query: str,
    max_workers: int = DEFAULT_MAX_WORKERS,
    cancel_event: Optional[threading.Event] = None
) -> SearchView:
    """Search travelers and countries; a blank query returns nothing."""
    if not query.strip():
        return SearchView(query=query)

    profiles = gateway.search_profiles(query, limit=PROFILE_SEARCH_LIMIT)
    user_stats = collect_user_statistics(
        gateway, [p.id for p in profiles],
        max_workers=max_workers, cancel_event=cancel_event,
    )

    countries = filter_countries(gateway.fetch_all_countries(), query)[:COUNTRY_SEARCH_LIMIT]
    country_stats = load_country_statistics(gateway, countries, max_workers, cancel_event)

    return SearchView(
        query=query,
        travelers=list(zip(profiles, user_stats)),
        countries=list(zip(countries, country_stats)),
    )


# ============================================================================
# Rating Submission
# ============================================================================

def submit_rating(
    gateway: DataStoreGateway,
    user_id: EntityId,
    submission: RatingSubmission
) -> RatingRecord:
    """Store a validated rating for a traveler."""
    record = gateway.add_record(submission.to_record(user_id))
    logger.info(
        "Rating submitted",
        extra={"user_id": user_id, "country_id": record.country_id}
    )
    return record


# ============================================================================
# Gateway Selection
# ============================================================================

def build_gateway(settings: Settings) -> DataStoreGateway:
    """
    Create the gateway for the configured backend.

    Args:
        settings: Resolved settings

    Returns:
        Gateway instance; the SQLite file is created on first use

    Raises:
        ValueError: If the hosted store is selected without credentials
    """
    if settings.backend == "supabase":
        if not settings.supabase_configured:
            raise ValueError("SUPABASE_URL and SUPABASE_ANON_KEY must be set")
        return SupabaseGateway.from_settings(settings)

    if settings.backend == "memory":
        return build_demo_gateway()

    gateway = SqliteGateway(settings.db_path)
    gateway.init_database()
    return gateway
