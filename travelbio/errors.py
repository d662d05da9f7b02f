"""Exception types raised by TravelBio."""

from typing import Optional


class TravelBioError(Exception):
    """Base class for TravelBio errors."""
    pass


class DataStoreError(TravelBioError):
    """Raised when the data store rejects, fails or cannot be reached."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class NotFoundError(DataStoreError):
    """Raised when a looked-up country or profile does not exist."""
    pass


class FetchCancelled(TravelBioError):
    """Raised when a fan-out is cancelled before all batches resolve."""
    pass


class InvalidRatingError(ValueError):
    """Raised by the RatingValue factory for values outside [1, 5]."""
    pass
