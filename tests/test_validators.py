"""
Unit tests for rating validation.
"""

import pytest
from pydantic import ValidationError

from travelbio.errors import InvalidRatingError
from travelbio.models import RelationKind
from travelbio.validators import (
    RatingSubmission,
    RatingValue,
    find_out_of_range_ratings,
    validate_rating,
)


class TestValidateRating:
    """Tests for single rating validation."""

    @pytest.mark.parametrize("value", [1, 3, 5, "4", 2.0])
    def test_valid(self, value):
        result = validate_rating(value)
        assert result.is_valid
        assert result.sanitized_value == float(value)

    def test_none(self):
        result = validate_rating(None)
        assert not result.is_valid
        assert "None" in result.errors[0]

    def test_below_minimum(self):
        result = validate_rating(0)
        assert not result.is_valid
        assert "below minimum" in result.errors[0]

    def test_above_maximum(self):
        assert not validate_rating(6).is_valid

    def test_fractional(self):
        result = validate_rating(3.5)
        assert not result.is_valid
        assert "whole star" in result.errors[0]

    def test_not_a_number(self):
        assert not validate_rating("great").is_valid

    def test_bool_rejected(self):
        assert not validate_rating(True).is_valid


class TestRatingValue:
    """Tests for the validating RatingValue factory."""

    def test_create(self):
        rating = RatingValue.create("4")
        assert rating.value == 4
        assert int(rating) == 4

    @pytest.mark.parametrize("raw", [0, 6, 2.5, None, "x"])
    def test_create_rejects(self, raw):
        with pytest.raises(InvalidRatingError):
            RatingValue.create(raw)

    def test_invalid_rating_is_value_error(self):
        with pytest.raises(ValueError):
            RatingValue.create(9)

    def test_equality_and_hash(self):
        assert RatingValue.create(3) == RatingValue.create(3.0)
        assert len({RatingValue.create(3), RatingValue.create(3)}) == 1


class TestFindOutOfRange:
    """Tests for flagging stored values."""

    def test_flags_each_field(self, make_record):
        record = make_record(food=0, safety=3, overall_rating=6)
        assert find_out_of_range_ratings(record) == [("food", 0), ("overall", 6)]

    def test_clean_record(self, make_record):
        assert find_out_of_range_ratings(make_record(food=5)) == []


class TestRatingSubmission:
    """Tests for the write path."""

    def test_valid_submission(self):
        submission = RatingSubmission(country_id=1, food=5, overall_rating="4", comment="  Nice  ")
        assert submission.food == 5
        assert submission.overall_rating == 4
        assert submission.comment == "Nice"

    def test_blank_comment_becomes_none(self):
        assert RatingSubmission(country_id=1, comment="   ").comment is None

    def test_out_of_range_rejected(self):
        with pytest.raises(ValidationError):
            RatingSubmission(country_id=1, safety=7)

    def test_fractional_rejected(self):
        with pytest.raises(ValidationError):
            RatingSubmission(country_id=1, overall_rating=4.5)

    def test_unknown_field_rejected(self):
        with pytest.raises(ValidationError):
            RatingSubmission(country_id=1, nightlife=5)

    def test_to_record(self):
        submission = RatingSubmission(
            country_id=2, relation_kind=RelationKind.LIVED, value=3, comment="ok"
        )
        record = submission.to_record("u1")
        assert record.user_id == "u1"
        assert record.country_id == 2
        assert record.relation_kind == RelationKind.LIVED
        assert record.value == 3
        assert record.food is None
        assert record.created_at is not None
