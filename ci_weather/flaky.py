"""PR failure and flakiness report (flaky-data.json).

A (PR, job) pair with at least one failed and one passed attempt is a
confirmed flaky case: the same change went green on a retry. Every
sub-test failure parsed from a failed PR attempt becomes an occurrence
tagged with that flag and with whether the PR was merged anyway.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Iterable, Mapping, Optional, Union

from .dates import to_utc, utc_day, utcnow
from .log_parser import DEFAULT_FILE_EXTENSIONS, parse_test_failures
from .models import (
    FlakyJobBreakdown,
    FlakyOccurrence,
    FlakyReport,
    FlakySummary,
    FlakyTestRecord,
    RawJobRun,
    TrendPoint,
)

logger = logging.getLogger(__name__)

PERIOD_DAYS = 14
TOP_JOBS = 10
UNKNOWN = "unknown"

PRJobKey = tuple[str, str]


@dataclass
class PRJobResults:
    """Attempts of one job on one PR, split by outcome."""
    pr_number: Union[int, str]
    job_name: str
    failed: list[RawJobRun] = field(default_factory=list)
    passed: list[RawJobRun] = field(default_factory=list)

    @property
    def is_flaky(self) -> bool:
        return bool(self.failed) and bool(self.passed)


@dataclass
class _TestAccumulator:
    name: str
    file: Optional[str] = None
    occurrences: list[FlakyOccurrence] = field(default_factory=list)
    jobs: dict[str, FlakyJobBreakdown] = field(default_factory=dict)
    prs: set = field(default_factory=set)
    dates: set = field(default_factory=set)
    flaky_count: int = 0
    merged_count: int = 0


def _pr_key(run: RawJobRun) -> PRJobKey:
    pr = run.pr_number if run.pr_number is not None else UNKNOWN
    return (str(pr), run.name)


def _run_day(run: RawJobRun) -> Optional[date]:
    stamp = run.run_created_at or run.started_at or run.created_at
    return utc_day(stamp) if stamp else None


def group_pr_attempts(runs: Iterable[RawJobRun]) -> dict[PRJobKey, PRJobResults]:
    """Group attempts by (PR number, job name)."""
    groups: dict[PRJobKey, PRJobResults] = {}
    for run in runs:
        key = _pr_key(run)
        results = groups.get(key)
        if results is None:
            pr = run.pr_number if run.pr_number is not None else UNKNOWN
            results = groups[key] = PRJobResults(pr_number=pr, job_name=run.name)
        if run.conclusion == "failure":
            results.failed.append(run)
        elif run.conclusion == "success":
            results.passed.append(run)
    return groups


def flaky_pr_jobs(groups: Mapping[PRJobKey, PRJobResults]) -> set[PRJobKey]:
    flaky = set()
    for key, results in groups.items():
        if results.is_flaky:
            flaky.add(key)
            logger.info(
                f"  Flaky detected: PR #{results.pr_number} - {results.job_name} "
                f"({len(results.failed)} failed, {len(results.passed)} passed)"
            )
    return flaky


def _occurrence_sort_key(occ: FlakyOccurrence):
    return (occ.date, str(occ.pr_number), occ.run_attempt)


def build_flaky_report(
    runs: Iterable[RawJobRun],
    logs: Mapping[str, str],
    now: Optional[datetime] = None,
    period_days: int = PERIOD_DAYS,
    file_extensions: Iterable[str] = DEFAULT_FILE_EXTENSIONS,
) -> FlakyReport:
    """Aggregate PR sub-test failures into the flaky-data document."""
    now = to_utc(now or utcnow())
    runs = list(runs)
    today = now.date()
    window_start = today - timedelta(days=period_days - 1)

    groups = group_pr_attempts(runs)
    flaky_keys = flaky_pr_jobs(groups)
    logger.info(f"Found {len(flaky_keys)} flaky PR-job combinations")

    tests: dict[str, _TestAccumulator] = {}
    failures_by_day: dict[str, int] = {}
    unique_prs = set()

    failed_runs = [r for r in runs if r.conclusion == "failure"]
    logger.info(f"Found {len(failed_runs)} failed PR jobs to analyze")

    for run in failed_runs:
        day = _run_day(run)
        if day is not None and day < window_start:
            continue
        day_str = day.isoformat() if day else UNKNOWN
        key = _pr_key(run)
        pr_number = run.pr_number if run.pr_number is not None else UNKNOWN
        is_flaky = key in flaky_keys
        unique_prs.add(str(pr_number))

        parsed = parse_test_failures(logs.get(run.job_id), file_extensions)
        if parsed is None or not parsed.failures:
            continue

        logger.info(
            f"  Job {run.job_id} (PR #{pr_number}, attempt {run.run_attempt}"
            f"{' [FLAKY]' if is_flaky else ''}{' [MERGED]' if run.pr_merged else ''}): "
            f"{len(parsed.failures)} test failures"
        )

        for failure in parsed.failures:
            acc = tests.get(failure.name)
            if acc is None:
                acc = tests[failure.name] = _TestAccumulator(name=failure.name, file=failure.file)
            acc.occurrences.append(FlakyOccurrence(
                date=day_str,
                pr_number=pr_number,
                pr_title=run.pr_title,
                job_name=run.name,
                job_id=run.job_id,
                run_id=run.run_ref,
                run_attempt=run.run_attempt,
                is_flaky=is_flaky,
                pr_merged=run.pr_merged,
            ))
            job = acc.jobs.get(run.name)
            if job is None:
                job = acc.jobs[run.name] = FlakyJobBreakdown(name=run.name)
            job.count += 1
            if is_flaky:
                acc.flaky_count += 1
                job.flaky_count += 1
            if run.pr_merged:
                acc.merged_count += 1
                job.merged_count += 1
            acc.prs.add(str(pr_number))
            acc.dates.add(day_str)
            if failure.file and not acc.file:
                acc.file = failure.file
            failures_by_day[day_str] = failures_by_day.get(day_str, 0) + 1

    records = [_to_record(acc) for acc in tests.values()]
    records.sort(key=lambda r: r.total_failures, reverse=True)

    trend = [
        TrendPoint(date=d.isoformat(), failures=failures_by_day.get(d.isoformat(), 0))
        for d in (window_start + timedelta(days=i) for i in range(period_days))
    ]
    job_breakdown = _job_breakdown(records)
    confirmed = sum(1 for r in records if r.is_confirmed_flaky)
    merged = sum(1 for r in records if r.merged_despite_failure)

    report = FlakyReport(
        last_refresh=now,
        period_days=period_days,
        total_failures=sum(r.total_failures for r in records),
        total_prs=len(unique_prs),
        confirmed_flaky_count=confirmed,
        merged_despite_failure_count=merged,
        failed_tests=records,
        summary=FlakySummary(
            total_failed_tests=len(records),
            confirmed_flaky=confirmed,
            merged_despite_failure=merged,
            most_affected_job=job_breakdown[0] if job_breakdown else None,
            trend=trend,
            job_breakdown=job_breakdown[:TOP_JOBS],
        ),
    )
    logger.info(
        f"PR failures: {len(records)} failed tests ({confirmed} confirmed flaky, "
        f"{merged} merged despite failure) across {len(unique_prs)} PRs"
    )
    return report


def _to_record(acc: _TestAccumulator) -> FlakyTestRecord:
    occurrences = sorted(acc.occurrences, key=_occurrence_sort_key, reverse=True)
    return FlakyTestRecord(
        name=acc.name,
        file=acc.file,
        total_failures=len(acc.occurrences),
        flaky_count=acc.flaky_count,
        merged_count=acc.merged_count,
        is_confirmed_flaky=acc.flaky_count > 0,
        merged_despite_failure=acc.merged_count > 0,
        unique_prs=len(acc.prs),
        unique_dates=sorted(acc.dates, reverse=True),
        affected_jobs=sorted(acc.jobs.values(), key=lambda j: j.count, reverse=True),
        recent_occurrences=occurrences,
    )


def _job_breakdown(records: Iterable[FlakyTestRecord]) -> list[FlakyJobBreakdown]:
    """Failure counts per job across all tests, most affected first."""
    totals: dict[str, FlakyJobBreakdown] = {}
    for record in records:
        for job in record.affected_jobs:
            total = totals.get(job.name)
            if total is None:
                total = totals[job.name] = FlakyJobBreakdown(name=job.name)
            total.count += job.count
            total.flaky_count += job.flaky_count
            total.merged_count += job.merged_count
    return sorted(totals.values(), key=lambda j: j.count, reverse=True)


def empty_report(now: Optional[datetime] = None, period_days: int = PERIOD_DAYS) -> FlakyReport:
    """Report written when no PR data is available."""
    return FlakyReport(last_refresh=to_utc(now or utcnow()), period_days=period_days)
