"""
Tests for the page-level view builders and page state.
"""

import threading

import pytest

from travelbio.config import Settings
from travelbio.database import SqliteGateway
from travelbio.errors import DataStoreError, FetchCancelled, NotFoundError
from travelbio.gateway import InMemoryGateway
from travelbio.logging_config import metrics
from travelbio.pages import (
    COUNTRY_REVIEW_LIMIT,
    GENERIC_ERROR_MESSAGE,
    PageStatus,
    build_countries_directory,
    build_country_detail,
    build_gateway,
    build_leaderboards,
    build_profile,
    build_search,
    build_top_charts,
    filter_countries,
    load_page,
    select_reviews,
    submit_rating,
)
from travelbio.supabase_client import SupabaseGateway
from travelbio.validators import RatingSubmission


class FailingGateway(InMemoryGateway):
    """Gateway whose per-country fetch fails."""

    def fetch_records_for_country(self, country_id):
        raise DataStoreError("connection refused")


class TestLoadPage:
    """Tests for the per-request page state."""

    def test_ready(self):
        state = load_page(lambda: "view")
        assert state.status == PageStatus.READY
        assert state.ok
        assert state.data == "view"
        assert state.request_id

    def test_store_error_hides_data(self):
        def builder():
            raise DataStoreError("timeout talking to store")

        state = load_page(builder, page_name="top_charts")
        assert state.status == PageStatus.ERROR
        assert state.data is None
        assert state.message == GENERIC_ERROR_MESSAGE
        assert metrics.get_metrics()["errors"]["page.top_charts"] == 1

    def test_not_found(self):
        def builder():
            raise NotFoundError("Country not found: XX")

        state = load_page(builder)
        assert state.status == PageStatus.NOT_FOUND
        assert "XX" in state.message

    def test_cancelled(self):
        def builder():
            raise FetchCancelled("navigated away")

        assert load_page(builder).status == PageStatus.CANCELLED

    def test_other_errors_propagate(self):
        def builder():
            raise TypeError("bug")

        with pytest.raises(TypeError):
            load_page(builder)

    def test_fan_out_failure_gives_error_state(self, countries, profiles, records):
        gateway = FailingGateway(countries=countries, profiles=profiles, records=records)
        state = load_page(lambda: build_top_charts(gateway), page_name="top_charts")
        assert state.status == PageStatus.ERROR
        assert state.data is None


class TestTopCharts:
    """Tests for the top charts page."""

    def test_rankings(self, gateway):
        view = build_top_charts(gateway)
        assert [(e.entity.country_id, e.metric_value) for e in view.top_overall] == [
            (2, 4.5), (1, 4.0),
        ]
        assert [e.entity.country_id for e in view.most_visited] == [1, 2, 3]
        food = next(c for c in view.categories if c.category == "food")
        assert [e.entity.country_id for e in food.entries] == [1, 2]
        assert view.countries[1].name == "Japan"

    def test_grouped_and_fan_out_paths_agree(self, gateway, tmp_path, countries, profiles, records):
        db = SqliteGateway(tmp_path / "pages.db")
        db.init_database()
        db.insert_countries(countries)
        db.insert_profiles(profiles)
        db.add_records(records)

        from_memory = build_top_charts(gateway)
        from_sqlite = build_top_charts(db)
        assert [e.to_dict() for e in from_memory.top_overall] == [
            e.to_dict() for e in from_sqlite.top_overall
        ]
        assert [c.to_dict() for c in from_memory.categories] == [
            c.to_dict() for c in from_sqlite.categories
        ]

    def test_cancelled(self, gateway):
        cancel = threading.Event()
        cancel.set()
        state = load_page(lambda: build_top_charts(gateway, cancel_event=cancel))
        assert state.status == PageStatus.CANCELLED


class TestLeaderboards:
    """Tests for traveler leaderboards."""

    def test_leaderboards(self, gateway):
        view = build_leaderboards(gateway)
        assert [e.entity.user_id for e in view.top_travelers] == ["u1", "u2"]
        assert view.profiles["u1"].username == "ana_wanders"
        # mira.k has no records and is not ranked
        assert "u3" not in view.profiles

    def test_empty_store(self):
        view = build_leaderboards(InMemoryGateway())
        assert view.top_travelers == []
        assert view.top_reviewers == []


class TestCountriesDirectory:
    """Tests for the countries directory."""

    def test_summary_covers_all_countries(self, gateway):
        view = build_countries_directory(gateway, query="ja")
        assert [c.name for c, _ in view.entries] == ["Japan"]
        assert view.summary.total_countries == 4
        assert view.summary.countries_with_visitors == 3
        assert view.summary.total_trips == 5

    def test_filter_countries(self, countries):
        assert [c.code for c in filter_countries(countries, "pt")] == ["PT"]
        assert filter_countries(countries, "  ") == countries


class TestCountryDetail:
    """Tests for a country page."""

    def test_detail(self, gateway):
        view = build_country_detail(gateway, "jp")
        assert view.country.name == "Japan"
        assert view.statistics.trip_count == 3
        assert [r.record.overall_rating for r in view.reviews] == [5, 4, 3]
        assert view.reviews[0].profile.username == "ana_wanders"

    def test_unknown_country(self, gateway):
        state = load_page(lambda: build_country_detail(gateway, "XX"))
        assert state.status == PageStatus.NOT_FOUND

    def test_malformed_row_gives_error_state(self, tmp_path, countries):
        db = SqliteGateway(tmp_path / "bad.db")
        db.init_database()
        db.insert_countries(countries)
        with db.connection() as conn:
            conn.execute(
                "INSERT INTO user_locations (user_id, country_id, overall_rating) VALUES (?, ?, ?)",
                ("u1", 4, "n/a"),
            )

        state = load_page(lambda: build_country_detail(db, "IS"), page_name="country")
        assert state.status == PageStatus.ERROR
        assert state.data is None
        assert state.message == GENERIC_ERROR_MESSAGE

        charts = load_page(lambda: build_top_charts(db))
        assert charts.status == PageStatus.READY
        assert charts.data.top_overall == []

    def test_select_reviews(self, make_record):
        records = [make_record(overall_rating=v, comment=str(i)) for i, v in enumerate([3, None, 5, 3])]
        assert [r.comment for r in select_reviews(records)] == ["2", "0", "3"]

    def test_select_reviews_limit(self, make_record):
        records = [make_record(overall_rating=4) for _ in range(30)]
        assert len(select_reviews(records)) == COUNTRY_REVIEW_LIMIT


class TestProfile:
    """Tests for a traveler profile."""

    def test_profile(self, gateway):
        view = build_profile(gateway, "ana_wanders")
        assert view.statistics.countries_visited_count == 2
        assert view.statistics.locations_count == 3
        assert [b.country_id for b in view.breakdown] == [1, 3]
        assert [r.id for r in view.timeline] == [2, 1, 5]

    def test_unknown_profile(self, gateway):
        with pytest.raises(NotFoundError):
            build_profile(gateway, "ghost")


class TestSearch:
    """Tests for search."""

    def test_blank_query(self, gateway):
        view = build_search(gateway, "   ")
        assert view.travelers == []
        assert view.countries == []

    def test_travelers_and_countries(self, gateway):
        view = build_search(gateway, "an")
        assert [p.username for p, _ in view.travelers] == ["ana_wanders"]
        assert view.travelers[0][1].countries_visited_count == 2
        # Iceland and Japan match on name; no country code contains "an"
        assert [c.name for c, _ in view.countries] == ["Iceland", "Japan"]
        assert view.countries[0][1].visitor_count == 0
        assert view.countries[1][1].visitor_count == 2


class TestSubmitRating:
    """Tests for the write path."""

    def test_submit(self, gateway):
        submission = RatingSubmission(country_id=4, overall_rating=5, comment="Glaciers!")
        stored = submit_rating(gateway, "u3", submission)
        assert stored.user_id == "u3"

        view = build_country_detail(gateway, "IS")
        assert view.statistics.visitor_count == 1
        assert view.reviews[0].profile.username == "mira.k"


class TestBuildGateway:
    """Tests for backend selection."""

    def test_sqlite(self, tmp_path):
        gateway = build_gateway(Settings(backend="sqlite", db_path=tmp_path / "x.db"))
        assert isinstance(gateway, SqliteGateway)
        assert gateway.get_schema_version() == 1

    def test_memory(self):
        gateway = build_gateway(Settings(backend="memory"))
        assert isinstance(gateway, InMemoryGateway)
        assert gateway.fetch_all_countries()

    def test_supabase_needs_credentials(self):
        with pytest.raises(ValueError):
            build_gateway(Settings(backend="supabase"))

    def test_supabase(self):
        gateway = build_gateway(Settings(
            backend="supabase", supabase_url="https://x.supabase.co", supabase_key="k",
        ))
        assert isinstance(gateway, SupabaseGateway)
