"""
Unit tests for ranking.
"""

import pytest

from travelbio.aggregator import aggregate_countries, aggregate_users
from travelbio.models import CATEGORIES, CATEGORY_TITLES, CategoryAverage, CountryStatistics, UserStatistics
from travelbio.ranker import (
    COUNTRY_CHART_LIMIT,
    LEADERBOARD_LIMIT,
    category_top_charts,
    most_visited,
    rank,
    top_by_category,
    top_overall,
    top_reviewers,
    top_travelers,
)


def country(country_id, overall=0.0, visitors=0, **categories):
    return CountryStatistics(
        country_id=country_id,
        visitor_count=visitors,
        trip_count=visitors,
        overall=CategoryAverage(average=overall, sample_size=1 if overall else 0),
        categories={
            c: CategoryAverage(average=categories.get(c, 0.0), sample_size=1 if categories.get(c) else 0)
            for c in CATEGORIES
        },
    )


class TestRank:
    """Tests for the generic ranking function."""

    def test_excludes_zero_metric(self):
        """A zero average never appears, even under the limit."""
        entries = [{"id": 1, "avg": 0}, {"id": 2, "avg": 4.2}]
        ranked = rank(entries, lambda e: e["avg"])
        assert len(ranked) == 1
        assert ranked[0].entity["id"] == 2
        assert ranked[0].rank == 1

    def test_excludes_absent_metric(self):
        ranked = rank([{"v": None}, {"v": 1}], lambda e: e["v"])
        assert [r.metric_value for r in ranked] == [1]

    def test_respects_limit(self):
        entries = list(range(1, 16))
        ranked = rank(entries, lambda v: v, limit=10)
        assert len(ranked) == 10
        assert [r.metric_value for r in ranked] == list(range(15, 5, -1))

    def test_exclusion_happens_before_limit(self):
        """Zeros do not use up slots."""
        entries = [0, 0, 0, 3, 2, 1]
        ranked = rank(entries, lambda v: v, limit=3)
        assert [r.metric_value for r in ranked] == [3, 2, 1]

    def test_ties_keep_input_order(self):
        entries = [{"id": "A", "v": 5}, {"id": "B", "v": 5}]
        ranked = rank(entries, lambda e: e["v"])
        assert [(r.entity["id"], r.rank) for r in ranked] == [("A", 1), ("B", 2)]

    def test_ranks_are_positional(self):
        ranked = rank([4, 5, 5, 3], lambda v: v)
        assert [r.rank for r in ranked] == [1, 2, 3, 4]
        assert [r.metric_value for r in ranked] == [5, 5, 4, 3]

    def test_no_limit(self):
        assert len(rank(range(1, 30), lambda v: v, limit=None)) == 29

    def test_zero_limit(self):
        assert rank([1, 2], lambda v: v, limit=0) == []

    def test_negative_limit_raises(self):
        with pytest.raises(ValueError):
            rank([1], lambda v: v, limit=-1)

    def test_none_entries_raises(self):
        with pytest.raises(TypeError):
            rank(None, lambda v: v)

    def test_empty_entries(self):
        assert rank([], lambda v: v) == []


class TestCountryCharts:
    """Tests for the country top charts."""

    def test_top_overall(self):
        stats = [country(1, overall=3.5), country(2, overall=0), country(3, overall=4.8)]
        ranked = top_overall(stats)
        assert [r.entity.country_id for r in ranked] == [3, 1]

    def test_top_overall_default_limit(self):
        stats = [country(i, overall=1 + i / 10) for i in range(20)]
        assert len(top_overall(stats)) == COUNTRY_CHART_LIMIT

    def test_most_visited(self):
        stats = [country(1, visitors=2), country(2, visitors=0), country(3, visitors=9)]
        ranked = most_visited(stats)
        assert [(r.entity.country_id, r.metric_value) for r in ranked] == [(3, 9), (1, 2)]

    def test_top_by_category_skips_unrated(self):
        stats = [country(1, food=4.0), country(2, safety=5.0), country(3, food=4.5)]
        ranked = top_by_category(stats, "food")
        assert [r.entity.country_id for r in ranked] == [3, 1]

    def test_top_by_category_unknown(self):
        with pytest.raises(KeyError):
            top_by_category([], "nightlife")

    def test_category_top_charts(self):
        stats = [country(1, food=4.0), country(2, safety=5.0)]
        charts = category_top_charts(stats)
        assert [c.category for c in charts] == list(CATEGORIES)
        assert [c.title for c in charts] == [CATEGORY_TITLES[c] for c in CATEGORIES]

        by_category = {c.category: c for c in charts}
        assert [e.entity.country_id for e in by_category["food"].entries] == [1]
        assert [e.entity.country_id for e in by_category["safety"].entries] == [2]
        assert by_category["value"].entries == []

    def test_ranks_rounded_averages(self, make_record):
        """Averages that round equal tie and keep input order."""
        records = [
            make_record(country_id=1, overall_rating=4),
            make_record(country_id=1, overall_rating=4),
            make_record(country_id=1, overall_rating=5),  # 4.33 -> 4.3
            make_record(country_id=2, overall_rating=4.3),
        ]
        ranked = top_overall(aggregate_countries(records))
        assert [(r.entity.country_id, r.metric_value, r.rank) for r in ranked] == [
            (1, 4.3, 1),
            (2, 4.3, 2),
        ]


class TestLeaderboards:
    """Tests for traveler leaderboards."""

    def test_top_travelers_excludes_zero(self):
        stats = [
            UserStatistics(user_id="a", countries_visited_count=3),
            UserStatistics(user_id="b", countries_visited_count=0),
            UserStatistics(user_id="c", countries_visited_count=5),
        ]
        assert [r.entity.user_id for r in top_travelers(stats)] == ["c", "a"]

    def test_top_travelers_limit(self):
        stats = [UserStatistics(user_id=i, countries_visited_count=i + 1) for i in range(8)]
        ranked = top_travelers(stats)
        assert len(ranked) == LEADERBOARD_LIMIT
        assert ranked[0].metric_value == 8

    def test_top_reviewers(self, records):
        ranked = top_reviewers(aggregate_users(records))
        assert [(r.entity.user_id, r.metric_value) for r in ranked] == [("u1", 1), ("u2", 1)]

    def test_entry_to_dict(self):
        entry = top_travelers([UserStatistics(user_id="a", countries_visited_count=2)])[0]
        data = entry.to_dict()
        assert data["rank"] == 1
        assert data["metric_value"] == 2
        assert data["entity"]["user_id"] == "a"
