"""
Tests for the SQLite gateway and the grouped statistics query.
"""

import pytest

from travelbio.aggregator import aggregate_country
from travelbio.database import SqliteGateway
from travelbio.demo import generate_demo_data
from travelbio.errors import DataStoreError, NotFoundError
from travelbio.logging_config import metrics
from travelbio.models import CategoryAverage, CountryStatistics, RelationKind


@pytest.fixture
def db(tmp_path, countries, profiles, records):
    gateway = SqliteGateway(tmp_path / "travelbio.db")
    gateway.init_database()
    gateway.insert_countries(countries)
    gateway.insert_profiles(profiles)
    gateway.add_records(records)
    return gateway


def insert_raw_record(gateway, **columns):
    """Write a row as-is, bypassing model validation."""
    names = ", ".join(columns)
    placeholders = ", ".join("?" for _ in columns)
    with gateway.connection() as conn:
        conn.execute(
            f"INSERT INTO user_locations ({names}) VALUES ({placeholders})",
            tuple(columns.values()),
        )


class TestSchema:
    """Tests for schema setup."""

    def test_schema_version(self, tmp_path):
        gateway = SqliteGateway(tmp_path / "new.db")
        assert gateway.get_schema_version() == 0
        gateway.init_database()
        assert gateway.get_schema_version() == 1

    def test_init_is_repeatable(self, db):
        db.init_database()
        assert len(db.fetch_all_countries()) == 4

    def test_sqlite_errors_become_store_errors(self, tmp_path):
        gateway = SqliteGateway(tmp_path / "empty.db")
        with pytest.raises(DataStoreError):
            gateway.fetch_all_records()


class TestReads:
    """Tests for gateway reads."""

    def test_records_for_country(self, db):
        records = db.fetch_records_for_country(1)
        assert [r.overall_rating for r in records] == [5, 3, 4]
        assert records[2].relation_kind == RelationKind.LIVED

    def test_records_for_user_newest_first(self, db):
        assert [r.country_id for r in db.fetch_records_for_user("u1")] == [1, 1, 3]

    def test_ratings_survive_round_trip(self, db):
        record = db.fetch_records_for_country(2)[0]
        assert record.food == 4
        assert record.overall_rating == 4.5
        assert record.safety is None
        assert record.visit_date.isoformat() == "2023-06-01"

    def test_countries_by_name(self, db):
        assert [c.code for c in db.fetch_all_countries()] == ["IS", "JP", "PT", "TR"]

    def test_profiles_by_ids(self, db):
        profiles = db.fetch_profiles_by_ids(["u1", "u1", "u3"])
        assert sorted(p.id for p in profiles) == ["u1", "u3"]
        assert db.fetch_profiles_by_ids([]) == []

    def test_lookups(self, db):
        assert db.fetch_country_by_code("pt").name == "Portugal"
        assert db.fetch_profile_by_username("mira.k").id == "u3"
        with pytest.raises(NotFoundError):
            db.fetch_country_by_code("ZZ")
        with pytest.raises(NotFoundError):
            db.fetch_profile_by_username("nobody")

    def test_search_profiles(self, db):
        assert [p.username for p in db.search_profiles("ribeiro")] == ["ana_wanders"]
        assert db.search_profiles(" ") == []

    def test_search_treats_wildcards_literally(self, db):
        assert [p.username for p in db.search_profiles("_")] == ["ana_wanders"]
        assert db.search_profiles("%") == []

    def test_add_record_returns_new_id(self, db, make_record):
        stored = db.add_record(make_record(user_id="u3", country_id=4, food=2))
        assert stored.id == 6
        assert db.fetch_records_for_country(4)[0].food == 2

    def test_malformed_row_becomes_store_error(self, db):
        insert_raw_record(db, user_id="u3", country_id=4, overall_rating="n/a")
        with pytest.raises(DataStoreError, match="malformed RatingRecord"):
            db.fetch_records_for_country(4)
        with pytest.raises(DataStoreError):
            db.fetch_all_records()


class TestGroupedStatistics:
    """The grouped query must equal aggregating each country's rows."""

    def test_matches_aggregate_country(self, db):
        grouped = db.fetch_country_statistics([1, 2, 3, 4])
        expected = [
            aggregate_country(db.fetch_records_for_country(cid), country_id=cid)
            for cid in [1, 2, 3, 4]
        ]
        assert grouped == expected

    def test_defaults_to_all_countries_by_name(self, db):
        stats = db.fetch_country_statistics()
        assert [s.country_id for s in stats] == [4, 1, 2, 3]

    def test_country_without_records(self, db):
        assert db.fetch_country_statistics([4]) == [CountryStatistics(country_id=4)]

    def test_matches_on_demo_data(self, tmp_path):
        countries, profiles, records = generate_demo_data(seed=7)
        gateway = SqliteGateway(tmp_path / "demo.db")
        gateway.init_database()
        gateway.insert_countries(countries)
        gateway.insert_profiles(profiles)
        gateway.add_records(records)

        ids = [c.id for c in countries]
        expected = [
            aggregate_country([r for r in records if r.country_id == cid], country_id=cid)
            for cid in ids
        ]
        assert gateway.fetch_country_statistics(ids) == expected

    def test_non_numeric_ratings_left_out(self, db):
        insert_raw_record(db, user_id="u1", country_id=4, overall_rating=5)
        insert_raw_record(db, user_id="u2", country_id=4, overall_rating="n/a")

        [stats] = db.fetch_country_statistics([4])
        assert stats.overall == CategoryAverage(average=5.0, sample_size=1)
        assert stats.trip_count == 2
        assert metrics.get_metrics()["malformed_ratings"] == 1

    def test_out_of_range_ratings_counted(self, db, caplog):
        insert_raw_record(db, user_id="u1", country_id=4, food_rating=9)
        insert_raw_record(db, user_id="u2", country_id=4, food_rating=3)

        with caplog.at_level("WARNING", logger="travelbio.database"):
            [stats] = db.fetch_country_statistics([4])
        assert stats.average("food") == 6.0
        assert metrics.get_metrics()["malformed_ratings"] == 1
        assert any("out-of-range food" in r.getMessage() for r in caplog.records)

    def test_clean_data_flags_nothing(self, db):
        db.fetch_country_statistics()
        assert metrics.get_metrics()["malformed_ratings"] == 0
