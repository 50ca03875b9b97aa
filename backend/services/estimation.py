"""Estimation sampling: per-period totals of a story point field."""

import logging
import threading
import time
from concurrent.futures import FIRST_COMPLETED, ThreadPoolExecutor, wait
from datetime import datetime, timedelta, timezone
from typing import Optional

from services.errors import InputError, SamplingCancelled
from services.models import (
    EstimationReport,
    Period,
    SamplingFrequency,
    TimeSample,
)
from services.tracker import AuthenticatedSession, IssueTrackerClient

logger = logging.getLogger(__name__)

DEFAULT_MAX_WORKERS = 4
DEFAULT_MAX_PERIOD_COUNT = 366

# How often a running sample checks its cancellation event
CANCEL_POLL_INTERVAL = 0.1


def validate_period_count(value, maximum: int = DEFAULT_MAX_PERIOD_COUNT) -> int:
    """Coerce a period count from request input.

    Accepts ints and strings holding a plain integer. Bools, floats,
    negatives and counts above the maximum raise InputError.
    """
    if isinstance(value, bool):
        raise InputError("Period count must be an integer")

    if isinstance(value, str) and value.strip().isascii() and value.strip().isdecimal():
        value = int(value.strip())

    if not isinstance(value, int):
        raise InputError("Period count must be an integer")
    if value < 0:
        raise InputError("Period count must not be negative")
    if value > maximum:
        raise InputError(f"Period count must not exceed {maximum}")
    return value


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _current_period_start(frequency: SamplingFrequency, now: datetime) -> datetime:
    midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)
    if frequency is SamplingFrequency.EACH_DAY:
        return midnight
    if frequency is SamplingFrequency.EACH_WEEK:
        return midnight - timedelta(days=midnight.weekday())
    return midnight.replace(day=1)


def _previous_period_start(frequency: SamplingFrequency, start: datetime) -> datetime:
    if frequency is SamplingFrequency.EACH_DAY:
        return start - timedelta(days=1)
    if frequency is SamplingFrequency.EACH_WEEK:
        return start - timedelta(days=7)
    if start.month == 1:
        return start.replace(year=start.year - 1, month=12)
    return start.replace(month=start.month - 1)


def period_boundaries(frequency: SamplingFrequency, period_count: int, now: datetime) -> list:
    """Slice the look-back window into contiguous periods.

    Days start at midnight UTC, weeks on Monday and months on the 1st.
    The most recent period runs from the start of the current day, week
    or month up to now; each earlier period ends where the next one starts.

    Returns:
        List of Period, oldest first, exactly period_count long.
    """
    now = _as_utc(now)
    if period_count <= 0:
        return []

    start = _current_period_start(frequency, now)
    periods = [Period(start=start, end=now)]

    while len(periods) < period_count:
        end = start
        start = _previous_period_start(frequency, end)
        periods.append(Period(start=start, end=end))

    periods.reverse()
    return periods


class EstimationSampler:
    """Computes estimate totals per period with a bounded worker pool."""

    def __init__(self, max_workers: int = DEFAULT_MAX_WORKERS,
                 timeout: Optional[float] = None,
                 max_period_count: int = DEFAULT_MAX_PERIOD_COUNT):
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        self.max_workers = max_workers
        self.timeout = timeout
        self.max_period_count = max_period_count

    def sample(self, session: AuthenticatedSession, query: str, field_id: str,
               frequency, period_count, now: Optional[datetime] = None,
               cancel_event: Optional[threading.Event] = None) -> EstimationReport:
        """Build the estimation report for a validated query and field.

        Args:
            session: Authenticated tracker session
            query: JQL filter
            field_id: Numeric estimate field
            frequency: SamplingFrequency or its wire form
            period_count: Number of periods counted back from now
            now: Anchor instant, defaults to the current time
            cancel_event: Set by the caller to abandon the operation

        Raises:
            InputError: malformed frequency or period count
            RemoteError: any period's query failed
            SamplingCancelled: timeout reached or cancel_event set
        """
        period_count = validate_period_count(period_count, self.max_period_count)
        frequency = SamplingFrequency.parse(frequency)
        now = _as_utc(now or datetime.now(timezone.utc))

        periods = period_boundaries(frequency, period_count, now)
        samples = []
        if periods:
            logger.info(
                f"Sampling {field_id} over {len(periods)} {frequency.value} periods"
            )
            samples = self._sample_periods(session.client, query, field_id, periods, cancel_event)

        return EstimationReport(
            query=query,
            field_id=field_id,
            frequency=frequency,
            generated_at=now,
            samples=tuple(samples)
        )

    def _sample_period(self, client: IssueTrackerClient, query: str, field_id: str,
                       period: Period) -> TimeSample:
        result = client.search_issues_as_of(query, field_id, period.end)

        # Issues without an estimate still count, with zero points
        total = sum(issue.points for issue in result.issues)

        return TimeSample(
            period_start=period.start,
            period_end=period.end,
            total=total,
            issue_count=len(result.issues)
        )

    def _sample_periods(self, client: IssueTrackerClient, query: str, field_id: str,
                        periods: list, cancel_event: Optional[threading.Event]) -> list:
        """Query every period in parallel, keeping results in period order."""
        if cancel_event is not None and cancel_event.is_set():
            raise SamplingCancelled()

        deadline = time.monotonic() + self.timeout if self.timeout else None
        samples = [None] * len(periods)

        executor = ThreadPoolExecutor(max_workers=min(self.max_workers, len(periods)))
        try:
            futures = {
                executor.submit(self._sample_period, client, query, field_id, period): index
                for index, period in enumerate(periods)
            }
            pending = set(futures)

            while pending:
                wait_timeout = CANCEL_POLL_INTERVAL if cancel_event is not None else None
                if deadline is not None:
                    remaining = deadline - time.monotonic()
                    if remaining <= 0:
                        raise SamplingCancelled("Estimation sampling timed out")
                    wait_timeout = min(wait_timeout, remaining) if wait_timeout else remaining

                done, pending = wait(pending, timeout=wait_timeout, return_when=FIRST_COMPLETED)

                # First failure aborts the whole report
                for future in done:
                    samples[futures[future]] = future.result()

                if pending and cancel_event is not None and cancel_event.is_set():
                    raise SamplingCancelled()
        finally:
            # Abandon anything still queued or in flight
            executor.shutdown(wait=False, cancel_futures=True)

        return samples
