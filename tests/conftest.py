"""
Shared fixtures for the TravelBio tests.
"""

from datetime import date, datetime

import pytest

from travelbio.circuit_breaker import circuit_breakers
from travelbio.gateway import InMemoryGateway
from travelbio.logging_config import metrics
from travelbio.models import Country, Profile, RatingRecord, RelationKind


@pytest.fixture(autouse=True)
def reset_global_state():
    """Metrics and circuit breakers are process-wide; start each test clean."""
    metrics.reset()
    circuit_breakers.reset_all()
    yield
    metrics.reset()
    circuit_breakers.reset_all()


@pytest.fixture
def make_record():
    """Factory for rating records with sensible defaults."""
    def _make(user_id="u1", country_id=1, **fields):
        return RatingRecord(user_id=user_id, country_id=country_id, **fields)
    return _make


@pytest.fixture
def countries():
    return [
        Country(id=1, code="JP", name="Japan", flag="JP"),
        Country(id=2, code="PT", name="Portugal", flag="PT"),
        Country(id=3, code="TR", name="Turkey", flag="TR"),
        Country(id=4, code="IS", name="Iceland", flag="IS"),
    ]


@pytest.fixture
def profiles():
    return [
        Profile(id="u1", username="ana_wanders", full_name="Ana Ribeiro"),
        Profile(id="u2", username="kenji", full_name="Kenji Sato"),
        Profile(id="u3", username="mira.k", full_name=None),
    ]


@pytest.fixture
def records():
    """
    Japan: 2 visitors, 3 trips, overall (5 + 3 + 4) / 3 = 4.0
    Portugal: 1 visitor, overall 4.5, food only
    Turkey: 1 bare visit with no ratings
    Iceland: no records
    """
    return [
        RatingRecord(id=1, user_id="u1", country_id=1, overall_rating=5, food=5,
                     comment="Loved it", created_at=datetime(2024, 3, 1)),
        RatingRecord(id=2, user_id="u1", country_id=1, overall_rating=3, safety=3,
                     created_at=datetime(2024, 5, 1)),
        RatingRecord(id=3, user_id="u2", country_id=1, overall_rating=4,
                     relation_kind=RelationKind.LIVED, comment="  ",
                     created_at=datetime(2023, 1, 10)),
        RatingRecord(id=4, user_id="u2", country_id=2, overall_rating=4.5, food=4,
                     comment="Great pastries", visit_date=date(2023, 6, 1),
                     created_at=datetime(2023, 6, 5)),
        RatingRecord(id=5, user_id="u1", country_id=3, created_at=datetime(2022, 8, 1)),
    ]


@pytest.fixture
def gateway(countries, profiles, records):
    return InMemoryGateway(countries=countries, profiles=profiles, records=records)
