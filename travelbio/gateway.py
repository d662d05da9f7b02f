"""
Data Store Gateway contract and the in-memory implementation.

Page builders only talk to the store through ``DataStoreGateway``.
Implementations raise ``DataStoreError`` for any fetch failure and
``NotFoundError`` for missing lookups; they never substitute data.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, List, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError

from travelbio.errors import DataStoreError, NotFoundError
from travelbio.logging_config import get_logger
from travelbio.models import Country, EntityId, Profile, RatingRecord

# Logger
logger = get_logger("gateway")

# Maximum profiles returned by a search
PROFILE_SEARCH_LIMIT = 20

M = TypeVar("M", bound=BaseModel)


def parse_rows(model: Type[M], rows: Iterable[Dict[str, Any]]) -> List[M]:
    """
    Validate store rows into models.

    A row the model rejects is a fetch failure: it surfaces as
    DataStoreError so the page shows its retry state.
    """
    try:
        return [model.model_validate(row) for row in rows]
    except ValidationError as e:
        raise DataStoreError(f"Store returned malformed {model.__name__} rows: {e}") from e


class DataStoreGateway(ABC):
    """Read/write access to the backing relational store."""

    name = "store"

    # True when the store can group and average in one query
    supports_grouped_statistics = False

    @abstractmethod
    def fetch_records_for_country(self, country_id: EntityId) -> List[RatingRecord]:
        """All rating records for one country."""

    @abstractmethod
    def fetch_records_for_user(self, user_id: EntityId) -> List[RatingRecord]:
        """All rating records of one user, newest first."""

    @abstractmethod
    def fetch_all_countries(self) -> List[Country]:
        """Every country, ordered by name."""

    @abstractmethod
    def fetch_profiles_by_ids(self, ids: Iterable[EntityId]) -> List[Profile]:
        """Profiles for the given user ids; unknown ids are skipped."""

    @abstractmethod
    def fetch_all_records(self) -> List[RatingRecord]:
        """Every rating record in the store."""

    @abstractmethod
    def fetch_country_by_code(self, code: str) -> Country:
        """
        Look up a country by ISO code, case-insensitively.

        Raises:
            NotFoundError: If no country has this code
        """

    @abstractmethod
    def fetch_profile_by_username(self, username: str) -> Profile:
        """
        Look up a profile by username.

        Raises:
            NotFoundError: If no profile has this username
        """

    @abstractmethod
    def search_profiles(
        self,
        query: str,
        limit: int = PROFILE_SEARCH_LIMIT
    ) -> List[Profile]:
        """Profiles whose username or full name contains ``query``."""

    @abstractmethod
    def add_record(self, record: RatingRecord) -> RatingRecord:
        """Store a new rating record and return it as stored."""


def _contains(haystack: Optional[str], needle: str) -> bool:
    return bool(haystack) and needle in haystack.lower()


class InMemoryGateway(DataStoreGateway):
    """
    Gateway over plain Python lists.

    Used for demo data and tests. Returned lists are copies, so callers
    cannot mutate the store through them.
    """

    name = "memory"

    def __init__(
        self,
        countries: Optional[Iterable[Country]] = None,
        profiles: Optional[Iterable[Profile]] = None,
        records: Optional[Iterable[RatingRecord]] = None
    ):
        self._countries: List[Country] = list(countries or [])
        self._profiles: List[Profile] = list(profiles or [])
        self._records: List[RatingRecord] = list(records or [])

    def fetch_records_for_country(self, country_id: EntityId) -> List[RatingRecord]:
        return [r for r in self._records if r.country_id == country_id]

    def fetch_records_for_user(self, user_id: EntityId) -> List[RatingRecord]:
        records = [r for r in self._records if r.user_id == user_id]
        # Stable sort: records without a timestamp stay in insertion order at the end
        dated = [r for r in records if r.created_at is not None]
        undated = [r for r in records if r.created_at is None]
        dated.sort(key=lambda r: r.created_at, reverse=True)
        return dated + undated

    def fetch_all_countries(self) -> List[Country]:
        return sorted(self._countries, key=lambda c: c.name)

    def fetch_profiles_by_ids(self, ids: Iterable[EntityId]) -> List[Profile]:
        wanted = set(ids)
        return [p for p in self._profiles if p.id in wanted]

    def fetch_all_records(self) -> List[RatingRecord]:
        return list(self._records)

    def fetch_country_by_code(self, code: str) -> Country:
        for country in self._countries:
            if country.code.upper() == code.upper():
                return country
        raise NotFoundError(f"Country not found: {code}")

    def fetch_profile_by_username(self, username: str) -> Profile:
        for profile in self._profiles:
            if profile.username == username:
                return profile
        raise NotFoundError(f"Profile not found: {username}")

    def search_profiles(
        self,
        query: str,
        limit: int = PROFILE_SEARCH_LIMIT
    ) -> List[Profile]:
        needle = query.strip().lower()
        if not needle:
            return []
        matches = [
            p for p in self._profiles
            if _contains(p.username, needle) or _contains(p.full_name, needle)
        ]
        return matches[:limit]

    def add_record(self, record: RatingRecord) -> RatingRecord:
        if record.id is None:
            record = record.model_copy(update={"id": len(self._records) + 1})
        self._records.append(record)
        logger.info(
            "Stored rating record",
            extra={"user_id": record.user_id, "country_id": record.country_id}
        )
        return record
