"""Weather history: the rolling 10-day status window of one logical job.

Live runs always win over the cached history for a calendar day; the
cache only fills days whose runs (or logs) are no longer fetchable.
"""

import logging
from datetime import date, datetime, timedelta
from typing import Iterable, Mapping, Optional, Sequence

from .classifier import classify, failed_step_name, reached_fatal_step
from .dates import midnight, utc_day, utcnow
from .log_parser import DEFAULT_FILE_EXTENSIONS, clean_file_name, parse_test_failures
from .matching import PatternSet
from .models import (
    DayStatus,
    FailedTestSummary,
    JobStatus,
    ParsedLog,
    RawJobRun,
    WeatherDay,
)

logger = logging.getLogger(__name__)

WINDOW_DAYS = 10


def _completed_on(run: RawJobRun, day: date) -> bool:
    start = run.effective_start
    return (
        start is not None
        and start.date() == day
        and run.conclusion in ("success", "failure")
    )


def anchor_day(runs: Iterable[RawJobRun], now: datetime) -> date:
    """Newest day of the window: today once a run has completed, else yesterday."""
    today = utc_day(now)
    if any(_completed_on(run, today) for run in runs):
        return today
    return today - timedelta(days=1)


def window_days(anchor: date, size: int = WINDOW_DAYS) -> list[date]:
    """Calendar days of the window, oldest first."""
    return [anchor - timedelta(days=size - 1 - i) for i in range(size)]


def select_day_run(day_runs: Sequence[RawJobRun], fatal_steps: PatternSet) -> Optional[RawJobRun]:
    """Pick the run that represents a day.

    Prefers attempts that reached a fatal (test execution) step, most
    recently started first.
    """
    if not day_runs:
        return None
    reached = [r for r in day_runs if reached_fatal_step(r, fatal_steps)]
    candidates = reached or list(day_runs)
    return max(candidates, key=lambda r: r.effective_start)


def failure_step_display(details: Optional[ParsedLog], run: Optional[RawJobRun]) -> str:
    """Source files of the failures, else the failed step name."""
    if details is not None and details.source_files:
        return ", ".join(details.source_files)
    return failed_step_name(run)


def index_by_day(history: Optional[Iterable[WeatherDay]]) -> dict[date, WeatherDay]:
    return {utc_day(day.date): day for day in history or []}


def build_weather_history(
    runs: Sequence[RawJobRun],
    fatal_steps: PatternSet,
    logs: Mapping[str, str],
    cached: Optional[Iterable[WeatherDay]] = None,
    now: Optional[datetime] = None,
    file_extensions: Iterable[str] = DEFAULT_FILE_EXTENSIONS,
) -> list[WeatherDay]:
    """Build exactly WINDOW_DAYS WeatherDay entries, oldest first.

    Args:
        runs: all raw attempts of one logical job
        fatal_steps: compiled fatal step patterns
        logs: job id -> log text
        cached: the job's weatherHistory from the previous snapshot
        now: reference time (UTC)
    """
    now = now or utcnow()
    cached_days = index_by_day(cached)

    runs_by_day: dict[date, list[RawJobRun]] = {}
    for run in runs:
        start = run.effective_start
        if start is not None:
            runs_by_day.setdefault(start.date(), []).append(run)

    history = []
    for day in window_days(anchor_day(runs, now)):
        slot = midnight(day)
        day_run = select_day_run(runs_by_day.get(day, []), fatal_steps)
        cached_day = cached_days.get(day)

        if day_run is None:
            if cached_day is not None:
                history.append(cached_day.model_copy(update={"date": slot}, deep=True))
            else:
                history.append(WeatherDay(date=slot))
            continue

        history.append(_live_day(slot, day_run, fatal_steps, logs, cached_day, file_extensions))

    return history


def _live_day(
    slot: datetime,
    run: RawJobRun,
    fatal_steps: PatternSet,
    logs: Mapping[str, str],
    cached_day: Optional[WeatherDay],
    file_extensions: Iterable[str],
) -> WeatherDay:
    status = classify(run, fatal_steps)
    details = None
    failure_step = None

    if status is JobStatus.PASSED:
        day_status = DayStatus.PASSED
    elif status is JobStatus.FAILED:
        day_status = DayStatus.FAILED
        details = parse_test_failures(logs.get(run.job_id), file_extensions)
        if details is None:
            logger.debug(
                f"  Day {slot.date()}: no parsed failures "
                f"(has log: {run.job_id in logs}, job {run.job_id})"
            )
            if cached_day is not None and cached_day.failure_details is not None:
                details = cached_day.failure_details.model_copy(deep=True)
                logger.debug(f"  Using cached failure details for {slot.date()}")
        failure_step = failure_step_display(details, run)
    else:
        # setup failures, cancellations and in-flight runs all read as not run
        day_status = DayStatus.NOT_RUN

    return WeatherDay(
        date=slot,
        status=day_status,
        run_id=run.run_ref,
        job_id=run.job_id,
        duration=run.duration,
        failure_step=failure_step,
        failure_details=details,
    )


def failed_tests_in_weather(history: Iterable[WeatherDay]) -> list[FailedTestSummary]:
    """Aggregate sub-test failures over the window.

    A test failing several times on one day counts once for that day.
    Sorted by number of failing days, descending.
    """
    summaries: dict[str, FailedTestSummary] = {}
    for day in history:
        if day.failure_details is None or not day.failure_details.failures:
            continue
        day_str = utc_day(day.date).isoformat()
        for failure in day.failure_details.failures:
            summary = summaries.get(failure.name)
            if summary is None:
                summary = summaries[failure.name] = FailedTestSummary(name=failure.name)
            if day_str not in summary.dates:
                summary.dates.append(day_str)
                summary.count += 1
            cleaned = clean_file_name(failure.file)
            if cleaned and cleaned not in summary.files:
                summary.files.append(cleaned)

    for summary in summaries.values():
        summary.dates.sort(reverse=True)
    return sorted(summaries.values(), key=lambda s: s.count, reverse=True)


def merge_weather_history(
    new: Sequence[WeatherDay],
    old: Optional[Iterable[WeatherDay]],
) -> list[WeatherDay]:
    """Fill `none` days of `new` from `old` on the same calendar date.

    Days of `new` that carry any other status are never overwritten.
    """
    old_days = index_by_day(old)
    merged = []
    for day in new:
        previous = old_days.get(utc_day(day.date))
        if (
            day.status is DayStatus.NONE
            and previous is not None
            and previous.status is not DayStatus.NONE
        ):
            merged.append(previous.model_copy(update={"date": day.date}, deep=True))
        else:
            merged.append(day)
    return merged
