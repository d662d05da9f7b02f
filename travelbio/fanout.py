"""
Bounded fan-out of per-entity fetches.

One task per country or user runs on a thread pool. Results are joined
before anything is ranked, and they come back in input order no matter
which task finishes first, so ranking ties depend only on the input.
"""

import threading
import time
from concurrent.futures import FIRST_EXCEPTION, Future, ThreadPoolExecutor, wait
from typing import Callable, Dict, Iterable, List, Optional, TypeVar

from travelbio.aggregator import aggregate_country, aggregate_user
from travelbio.errors import FetchCancelled
from travelbio.gateway import DataStoreGateway
from travelbio.logging_config import get_logger, get_request_id, set_request_id
from travelbio.models import Country, CountryStatistics, EntityId, UserStatistics

# Logger
logger = get_logger("fanout")

T = TypeVar("T")
R = TypeVar("R")

DEFAULT_MAX_WORKERS = 8


def fan_out(
    func: Callable[[T], R],
    items: Iterable[T],
    max_workers: int = DEFAULT_MAX_WORKERS,
    cancel_event: Optional[threading.Event] = None
) -> List[R]:
    """
    Run ``func`` over ``items`` with at most ``max_workers`` in flight.

    Args:
        func: Work for one item
        items: Items to process
        max_workers: Concurrency bound
        cancel_event: When set, tasks not yet started are skipped and
            FetchCancelled is raised

    Returns:
        Results in the same order as ``items``

    Raises:
        FetchCancelled: If ``cancel_event`` was set before the join completed
        Exception: The first task failure; pending tasks are cancelled and
            no partial result is returned
    """
    items = list(items)
    if not items:
        return []
    if max_workers < 1:
        raise ValueError(f"max_workers must be at least 1, got {max_workers}")

    # Worker threads do not inherit the caller's context
    request_id = get_request_id()

    def run(item: T) -> R:
        set_request_id(request_id)
        if cancel_event is not None and cancel_event.is_set():
            raise FetchCancelled("Fan-out cancelled")
        return func(item)

    start_time = time.time()
    with ThreadPoolExecutor(max_workers=min(max_workers, len(items))) as pool:
        futures: Dict[Future, int] = {
            pool.submit(run, item): index for index, item in enumerate(items)
        }
        done, pending = wait(futures, return_when=FIRST_EXCEPTION)
        for future in pending:
            future.cancel()
        # Tasks already running cannot be cancelled; let them settle
        wait(futures)

        failed = [f for f in futures if f.done() and not f.cancelled() and f.exception()]
        if failed:
            first = min(failed, key=lambda f: futures[f])
            error = first.exception()
            logger.error(
                f"Fan-out task failed: {error}",
                extra={"task_count": len(items), "error_type": type(error).__name__}
            )
            raise error

    if cancel_event is not None and cancel_event.is_set():
        raise FetchCancelled("Fan-out cancelled")

    results: List[R] = [None] * len(items)  # type: ignore[list-item]
    for future, index in futures.items():
        results[index] = future.result()

    logger.debug(
        "Fan-out completed",
        extra={
            "task_count": len(items),
            "duration_ms": round((time.time() - start_time) * 1000, 2),
        }
    )
    return results


def collect_country_statistics(
    gateway: DataStoreGateway,
    countries: Iterable[Country],
    max_workers: int = DEFAULT_MAX_WORKERS,
    cancel_event: Optional[threading.Event] = None
) -> List[CountryStatistics]:
    """Fetch and aggregate each country's records, one task per country."""
    return fan_out(
        lambda country: aggregate_country(
            gateway.fetch_records_for_country(country.id), country_id=country.id
        ),
        countries,
        max_workers=max_workers,
        cancel_event=cancel_event,
    )


def collect_user_statistics(
    gateway: DataStoreGateway,
    user_ids: Iterable[EntityId],
    max_workers: int = DEFAULT_MAX_WORKERS,
    cancel_event: Optional[threading.Event] = None
) -> List[UserStatistics]:
    """Fetch and aggregate each user's records, one task per user."""
    return fan_out(
        lambda user_id: aggregate_user(
            gateway.fetch_records_for_user(user_id), user_id=user_id
        ),
        user_ids,
        max_workers=max_workers,
        cancel_event=cancel_event,
    )
