"""TravelBio: country ratings and traveler leaderboards."""

from .aggregator import aggregate_countries, aggregate_country, aggregate_user, aggregate_users
from .errors import DataStoreError, FetchCancelled, InvalidRatingError, NotFoundError
from .gateway import DataStoreGateway, InMemoryGateway
from .models import (
    CATEGORIES,
    CategoryAverage,
    Country,
    CountryStatistics,
    Profile,
    RankingEntry,
    RatingRecord,
    RelationKind,
    UserStatistics,
)
from .ranker import (
    category_top_charts,
    most_visited,
    rank,
    top_by_category,
    top_overall,
    top_reviewers,
    top_travelers,
)

__version__ = "1.0.0"

__all__ = [
    "aggregate_country",
    "aggregate_countries",
    "aggregate_user",
    "aggregate_users",
    "rank",
    "top_overall",
    "most_visited",
    "top_by_category",
    "category_top_charts",
    "top_travelers",
    "top_reviewers",
    "DataStoreGateway",
    "InMemoryGateway",
    "DataStoreError",
    "NotFoundError",
    "FetchCancelled",
    "InvalidRatingError",
    "CATEGORIES",
    "CategoryAverage",
    "Country",
    "CountryStatistics",
    "Profile",
    "RankingEntry",
    "RatingRecord",
    "RelationKind",
    "UserStatistics",
]
