"""
Data model for TravelBio.

Rows read from the data store are parsed into pydantic models
(RatingRecord, Country, Profile). Statistics derived from them are
frozen dataclasses owned by the call that produced them; they hold no
reference back to the raw records and serialize via ``to_dict``.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, Generic, Optional, TypeVar, Union

from pydantic import BaseModel, ConfigDict, Field

# Identifiers are integers for countries and UUID strings for users in the
# hosted store; both are accepted everywhere.
EntityId = Union[int, str]

T = TypeVar("T")


# ============================================================================
# Rating Categories
# ============================================================================

CATEGORIES = (
    "transportation",
    "accommodation",
    "food",
    "safety",
    "activities",
    "value",
)

OVERALL = "overall"

CATEGORY_TITLES = {
    "transportation": "Best Transportation",
    "accommodation": "Best Accommodation",
    "food": "Best Food & Dining",
    "safety": "Safest Countries",
    "activities": "Best Activities",
    "value": "Best Value for Money",
}

RATING_MIN = 1
RATING_MAX = 5


class RelationKind(str, Enum):
    """How a traveler relates to a country."""
    LIVED = "lived"
    VISITED = "visited"


# ============================================================================
# Store Rows
# ============================================================================

class RatingRecord(BaseModel):
    """
    One user's relationship to one country, optionally with ratings.

    Field aliases match the ``user_locations`` columns of the store so a
    raw row parses directly. Rating values are coerced to numbers but never
    range-checked here.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    id: Optional[EntityId] = None
    user_id: EntityId
    country_id: EntityId
    city_id: Optional[EntityId] = None
    relation_kind: RelationKind = Field(default=RelationKind.VISITED, alias="type")
    transportation: Optional[float] = Field(default=None, alias="transportation_rating")
    accommodation: Optional[float] = Field(default=None, alias="accommodation_rating")
    food: Optional[float] = Field(default=None, alias="food_rating")
    safety: Optional[float] = Field(default=None, alias="safety_rating")
    activities: Optional[float] = Field(default=None, alias="activities_rating")
    value: Optional[float] = Field(default=None, alias="value_rating")
    overall_rating: Optional[float] = None
    comment: Optional[str] = None
    visit_date: Optional[date] = None
    created_at: Optional[datetime] = None

    def rating_for(self, category: str) -> Optional[float]:
        """Get the rating for a category name, or ``overall``."""
        if category == OVERALL:
            return self.overall_rating
        if category not in CATEGORIES:
            raise KeyError(f"Unknown rating category: {category}")
        return getattr(self, category)

    @property
    def has_comment(self) -> bool:
        """True when the comment is non-empty after trimming."""
        return bool(self.comment and self.comment.strip())


class Country(BaseModel):
    """A country row from the ``countries`` table."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    id: EntityId
    code: str
    name: str
    flag: str = ""
    description: Optional[str] = None
    currency: Optional[str] = None
    language: Optional[str] = None
    best_time_to_visit: Optional[str] = None


class Profile(BaseModel):
    """A traveler profile row from the ``profiles`` table."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    id: EntityId
    username: str
    full_name: Optional[str] = None
    avatar_url: Optional[str] = None
    bio: Optional[str] = None

    @property
    def display_name(self) -> str:
        """Full name when set, otherwise the username."""
        return self.full_name or self.username


# ============================================================================
# Derived Statistics
# ============================================================================

@dataclass(frozen=True)
class CategoryAverage:
    """Rounded mean of the present values of one rating field."""

    average: float = 0.0
    sample_size: int = 0

    @property
    def has_data(self) -> bool:
        """False when no record carried a value for this field."""
        return self.sample_size > 0

    def to_dict(self) -> Dict[str, Any]:
        return {"average": self.average, "sample_size": self.sample_size}


def _empty_categories() -> Dict[str, CategoryAverage]:
    return {category: CategoryAverage() for category in CATEGORIES}


@dataclass(frozen=True)
class CountryStatistics:
    """Per-country statistics computed from a batch of rating records."""

    country_id: Optional[EntityId] = None
    visitor_count: int = 0
    trip_count: int = 0
    overall: CategoryAverage = field(default_factory=CategoryAverage)
    categories: Dict[str, CategoryAverage] = field(default_factory=_empty_categories)
    lived_count: int = 0
    visited_count: int = 0

    def average(self, category: str) -> float:
        """Get the rounded average for ``overall`` or a category."""
        return self.category(category).average

    def category(self, category: str) -> CategoryAverage:
        """Get the CategoryAverage for ``overall`` or a category."""
        if category == OVERALL:
            return self.overall
        return self.categories[category]

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "country_id": self.country_id,
            "visitor_count": self.visitor_count,
            "trip_count": self.trip_count,
            "lived_count": self.lived_count,
            "visited_count": self.visited_count,
            "overall": self.overall.to_dict(),
            "categories": {
                name: avg.to_dict() for name, avg in self.categories.items()
            },
        }


@dataclass(frozen=True)
class UserStatistics:
    """Per-traveler statistics computed from that traveler's records."""

    user_id: Optional[EntityId] = None
    countries_visited_count: int = 0
    locations_count: int = 0
    reviews_written_count: int = 0
    lived_countries_count: int = 0
    visited_countries_count: int = 0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "user_id": self.user_id,
            "countries_visited_count": self.countries_visited_count,
            "locations_count": self.locations_count,
            "reviews_written_count": self.reviews_written_count,
            "lived_countries_count": self.lived_countries_count,
            "visited_countries_count": self.visited_countries_count,
        }


@dataclass(frozen=True)
class RankingEntry(Generic[T]):
    """One position in a ranked list. Ranks are 1-based and positional."""

    entity: T
    metric_value: float
    rank: int

    def to_dict(self) -> Dict[str, Any]:
        entity = self.entity.to_dict() if hasattr(self.entity, "to_dict") else self.entity
        return {
            "rank": self.rank,
            "metric_value": self.metric_value,
            "entity": entity,
        }
