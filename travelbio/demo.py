"""
Deterministic demo data.

Generates a small, realistic set of countries, travelers and rating
records from a fixed seed, so the same seed always yields the same
rankings. Used by the in-memory backend and the SQLite seed script.
"""

import random
from datetime import date, datetime, timedelta
from typing import List, Tuple

from travelbio.gateway import InMemoryGateway
from travelbio.models import CATEGORIES, Country, Profile, RatingRecord, RelationKind

DEFAULT_SEED = 42

DEMO_COUNTRIES = [
    # (code, name, flag, currency, language, best time to visit, baseline rating)
    ("JP", "Japan", "\U0001F1EF\U0001F1F5", "JPY", "Japanese", "March to May", 4.6),
    ("PT", "Portugal", "\U0001F1F5\U0001F1F9", "EUR", "Portuguese", "April to October", 4.4),
    ("TH", "Thailand", "\U0001F1F9\U0001F1ED", "THB", "Thai", "November to February", 4.2),
    ("IT", "Italy", "\U0001F1EE\U0001F1F9", "EUR", "Italian", "April to June", 4.3),
    ("MX", "Mexico", "\U0001F1F2\U0001F1FD", "MXN", "Spanish", "December to April", 4.1),
    ("NZ", "New Zealand", "\U0001F1F3\U0001F1FF", "NZD", "English", "December to February", 4.7),
    ("VN", "Vietnam", "\U0001F1FB\U0001F1F3", "VND", "Vietnamese", "February to April", 4.0),
    ("IS", "Iceland", "\U0001F1EE\U0001F1F8", "ISK", "Icelandic", "June to August", 4.5),
    ("PE", "Peru", "\U0001F1F5\U0001F1EA", "PEN", "Spanish", "May to September", 3.9),
    ("KR", "South Korea", "\U0001F1F0\U0001F1F7", "KRW", "Korean", "September to November", 4.2),
    ("MA", "Morocco", "\U0001F1F2\U0001F1E6", "MAD", "Arabic", "March to May", 3.8),
    ("CL", "Chile", "\U0001F1E8\U0001F1F1", "CLP", "Spanish", "October to March", 4.0),
]

DEMO_TRAVELERS = [
    # (username, full name, bio)
    ("ana_wanders", "Ana Ribeiro", "Slow travel, long trains."),
    ("kenji", "Kenji Sato", "Street food first, museums second."),
    ("mira.k", "Mira Kowalski", None),
    ("lucas_roams", "Lucas Moreau", "Mountains whenever possible."),
    ("priya", "Priya Nair", "Remote worker, two countries a year."),
    ("tom_h", None, None),
    ("sofia.travels", "Sofia Alvarez", "Collecting sunsets."),
    ("dev_nomad", "Devon Brooks", "Coffee and coworking spaces."),
]

DEMO_COMMENTS = [
    "Would go back tomorrow.",
    "Great food, public transport could be better.",
    "Felt safe everywhere we went.",
    "Expensive, but worth it.",
    "Lived here for a year, still discovering new places.",
    "Too short a trip to judge fairly.",
]

# Chance that a rating field is left blank
BLANK_RATING_RATE = 0.15


def _clamp_rating(value: float) -> int:
    return max(1, min(5, int(round(value))))


def generate_demo_data(
    seed: int = DEFAULT_SEED,
    start: date = date(2023, 1, 1)
) -> Tuple[List[Country], List[Profile], List[RatingRecord]]:
    """
    Generate demo countries, profiles and rating records.

    Args:
        seed: Random seed; equal seeds give equal data
        start: Earliest visit date

    Returns:
        Tuple of (countries, profiles, records)
    """
    rng = random.Random(seed)

    countries = [
        Country(
            id=index,
            code=code,
            name=name,
            flag=flag,
            currency=currency,
            language=language,
            best_time_to_visit=best_time,
            description=f"Traveler ratings and reviews for {name}.",
        )
        for index, (code, name, flag, currency, language, best_time, _) in enumerate(
            DEMO_COUNTRIES, start=1
        )
    ]
    baselines = {c.id: entry[-1] for c, entry in zip(countries, DEMO_COUNTRIES)}

    profiles = [
        Profile(id=f"user-{index:03d}", username=username, full_name=full_name, bio=bio)
        for index, (username, full_name, bio) in enumerate(DEMO_TRAVELERS, start=1)
    ]

    records: List[RatingRecord] = []
    for profile in profiles:
        trip_count = rng.randint(2, 7)
        for _ in range(trip_count):
            country = rng.choice(countries)
            baseline = baselines[country.id]
            kind = RelationKind.LIVED if rng.random() < 0.15 else RelationKind.VISITED

            ratings = {}
            for category in CATEGORIES:
                if rng.random() < BLANK_RATING_RATE:
                    ratings[category] = None
                else:
                    ratings[category] = _clamp_rating(rng.gauss(baseline, 0.7))

            overall = None if rng.random() < BLANK_RATING_RATE else _clamp_rating(
                rng.gauss(baseline, 0.5)
            )
            comment = rng.choice(DEMO_COMMENTS) if rng.random() < 0.5 else None
            visit_date = start + timedelta(days=rng.randint(0, 700))

            records.append(RatingRecord(
                id=len(records) + 1,
                user_id=profile.id,
                country_id=country.id,
                relation_kind=kind,
                overall_rating=overall,
                comment=comment,
                visit_date=visit_date,
                created_at=datetime.combine(visit_date, datetime.min.time()) + timedelta(days=3),
                **ratings,
            ))

    return countries, profiles, records


def build_demo_gateway(seed: int = DEFAULT_SEED) -> InMemoryGateway:
    """In-memory gateway loaded with demo data."""
    countries, profiles, records = generate_demo_data(seed)
    return InMemoryGateway(countries=countries, profiles=profiles, records=records)
