"""
Rating validation for TravelBio.

Two policies live here side by side:

- Reading is permissive. Records already in the store are aggregated as
  they are; ``find_out_of_range_ratings`` only reports suspicious values so
  callers can log them.
- Writing is strict. New ratings go through the ``RatingValue`` factory
  (via ``RatingSubmission``) and are rejected outside [1, 5].
"""

from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

from travelbio.errors import InvalidRatingError
from travelbio.models import (
    CATEGORIES,
    OVERALL,
    RATING_MAX,
    RATING_MIN,
    EntityId,
    RatingRecord,
    RelationKind,
)


# ============================================================================
# Validation Result Types
# ============================================================================

@dataclass
class ValidationResult:
    """Result of a validation operation."""

    is_valid: bool
    sanitized_value: Optional[float]
    errors: List[str]
    warnings: List[str]

    @classmethod
    def success(
        cls,
        value: float,
        warnings: Optional[List[str]] = None
    ) -> "ValidationResult":
        """Create a successful validation result."""
        return cls(
            is_valid=True,
            sanitized_value=value,
            errors=[],
            warnings=warnings or [],
        )

    @classmethod
    def failure(cls, errors: List[str]) -> "ValidationResult":
        """Create a failed validation result."""
        return cls(
            is_valid=False,
            sanitized_value=None,
            errors=errors,
            warnings=[],
        )


# ============================================================================
# Validation Functions
# ============================================================================

def validate_rating(rating: Any) -> ValidationResult:
    """
    Validate a single rating value.

    Args:
        rating: Raw rating value

    Returns:
        ValidationResult; integral values in [1, 5] are valid
    """
    if rating is None:
        return ValidationResult.failure(["Rating is None"])

    if isinstance(rating, bool):
        return ValidationResult.failure([f"Rating must be a number, got {rating!r}"])

    try:
        value = float(rating)
    except (TypeError, ValueError):
        return ValidationResult.failure([f"Cannot convert rating to number: {rating!r}"])

    errors = []
    if value < RATING_MIN:
        errors.append(f"Rating {value:g} is below minimum {RATING_MIN}")
    if value > RATING_MAX:
        errors.append(f"Rating {value:g} is above maximum {RATING_MAX}")
    if not errors and not value.is_integer():
        errors.append(f"Rating {value:g} is not a whole star value")

    if errors:
        return ValidationResult.failure(errors)

    return ValidationResult.success(value)


def find_out_of_range_ratings(record: RatingRecord) -> List[Tuple[str, float]]:
    """
    List the present rating fields of a record that fall outside [1, 5].

    Args:
        record: Rating record read from the store

    Returns:
        List of (field name, value) pairs, in category order then overall
    """
    offending = []
    for name in CATEGORIES + (OVERALL,):
        value = record.rating_for(name)
        if value is not None and not (RATING_MIN <= value <= RATING_MAX):
            offending.append((name, value))
    return offending


# ============================================================================
# Rating Value Type
# ============================================================================

class RatingValue:
    """
    A star rating known to be a whole number in [1, 5].

    Construct only through ``RatingValue.create``.
    """

    __slots__ = ("_value",)

    def __init__(self, value: int):
        self._value = value

    @classmethod
    def create(cls, raw: Any) -> "RatingValue":
        """
        Build a RatingValue from raw input.

        Raises:
            InvalidRatingError: If the value is not an integer in [1, 5]
        """
        result = validate_rating(raw)
        if not result.is_valid:
            raise InvalidRatingError("; ".join(result.errors))
        return cls(int(result.sanitized_value))

    @property
    def value(self) -> int:
        return self._value

    def __int__(self) -> int:
        return self._value

    def __eq__(self, other: object) -> bool:
        if isinstance(other, RatingValue):
            return self._value == other._value
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self._value)

    def __repr__(self) -> str:
        return f"RatingValue({self._value})"


# ============================================================================
# Pydantic Model for New Ratings
# ============================================================================

class RatingSubmission(BaseModel):
    """A traveler's new rating for a country, validated before storage."""

    model_config = ConfigDict(extra="forbid")

    country_id: EntityId
    city_id: Optional[EntityId] = None
    relation_kind: RelationKind = RelationKind.VISITED
    transportation: Optional[int] = None
    accommodation: Optional[int] = None
    food: Optional[int] = None
    safety: Optional[int] = None
    activities: Optional[int] = None
    value: Optional[int] = None
    overall_rating: Optional[int] = None
    comment: Optional[str] = Field(default=None, max_length=2000)
    visit_date: Optional[date] = None

    @field_validator(
        "transportation", "accommodation", "food", "safety",
        "activities", "value", "overall_rating",
        mode="before",
    )
    @classmethod
    def validate_star_rating(cls, v: Any) -> Optional[int]:
        """Route every present rating through the RatingValue factory."""
        if v is None:
            return None
        return RatingValue.create(v).value

    @field_validator("comment")
    @classmethod
    def strip_comment(cls, v: Optional[str]) -> Optional[str]:
        """Store comments trimmed; blank comments become None."""
        if v is None:
            return None
        v = v.strip()
        return v or None

    def to_record(
        self,
        user_id: EntityId,
        created_at: Optional[datetime] = None
    ) -> RatingRecord:
        """Build the RatingRecord that will be written for this user."""
        data: Dict[str, Any] = self.model_dump()
        return RatingRecord(
            user_id=user_id,
            created_at=created_at or datetime.now(timezone.utc),
            **data,
        )
