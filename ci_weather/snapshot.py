"""Snapshot assembly: raw job runs + previous snapshot -> data.json document.

Usage:
    from ci_weather.snapshot import assemble_snapshot

    snapshot = assemble_snapshot(runs, config, logs, previous=cached)

The previous snapshot is only read; a new Snapshot value is returned.
"""

import logging
import re
from datetime import datetime
from typing import Iterable, Mapping, Optional, Sequence

from .classifier import (
    DEFAULT_FATAL_STEPS,
    classify,
    current_status,
    failed_step_name,
)
from .config import DashboardConfig, JobConfig
from .dates import format_relative_time, to_utc, utcnow
from .failure_index import FailureIndex
from .log_parser import parse_test_failures
from .matching import CategoryMatcher, PatternSet
from .models import (
    DayStatus,
    ErrorDetail,
    JobStatus,
    LogicalJob,
    RawJobRun,
    Section,
    Snapshot,
    WeatherDay,
)
from .renames import apply_renames, detect_renames
from .weather import build_weather_history, failed_tests_in_weather

logger = logging.getLogger(__name__)

MAX_ERROR_FAILURES = 20


def job_id_for(job_name: str) -> str:
    """Stable id derived from the raw job name (not the display name)."""
    return re.sub(r"[^a-zA-Z0-9]", "-", job_name).lower()


def group_runs_by_name(runs: Iterable[RawJobRun]) -> dict[str, list[RawJobRun]]:
    """Job name -> attempts, most recently started first."""
    groups: dict[str, list[RawJobRun]] = {}
    for run in runs:
        groups.setdefault(run.name, []).append(run)
    for attempts in groups.values():
        attempts.sort(
            key=lambda r: r.effective_start.timestamp() if r.effective_start else float("-inf"),
            reverse=True,
        )
    return groups


def cached_weather_by_id(previous: Optional[Snapshot]) -> dict[str, list[WeatherDay]]:
    """Job id -> cached weather history (all-jobs view first, then sections)."""
    cache: dict[str, list[WeatherDay]] = {}
    if previous is None:
        return cache
    for job in previous.all_jobs:
        cache.setdefault(job.id, job.weather_history)
    for section in previous.sections:
        for job in section.tests:
            cache.setdefault(job.id, job.weather_history)
    return cache


def build_error_detail(
    run: RawJobRun,
    logs: Mapping[str, str],
    file_extensions: Iterable[str],
) -> ErrorDetail:
    """Details of the latest failed attempt for the job's error panel."""
    parsed = parse_test_failures(logs.get(run.job_id), file_extensions)
    if parsed is None or not parsed.failures:
        return ErrorDetail(
            step=failed_step_name(run),
            output="View full log on GitHub for details",
        )
    output = "\n".join(
        f"not ok {f.number} - {f.name}" + (f" # {f.comment}" if f.comment else "")
        for f in parsed.failures
    )
    return ErrorDetail(
        step=", ".join(parsed.source_files) if parsed.source_files else failed_step_name(run),
        source_files=parsed.source_files,
        test_results=parsed.stats,
        failures=parsed.failures[:MAX_ERROR_FAILURES],
        output=output,
    )


def build_logical_job(
    job_name: str,
    runs: Sequence[RawJobRun],
    config: DashboardConfig,
    fatal_steps: PatternSet,
    required: PatternSet,
    logs: Mapping[str, str],
    cached_weather: Optional[list[WeatherDay]] = None,
    job_config: Optional[JobConfig] = None,
    now: Optional[datetime] = None,
) -> LogicalJob:
    """Build one dashboard job from its attempts (newest first) and cache."""
    now = now or utcnow()
    latest = runs[0] if runs else None
    display_name = job_config.display_name if job_config else job_name

    history = build_weather_history(
        runs, fatal_steps, logs,
        cached=cached_weather, now=now, file_extensions=config.file_extensions,
    )

    raw_status = classify(latest, fatal_steps) if latest else JobStatus.NOT_RUN
    status = current_status(latest, fatal_steps)
    last_failure = next((r for r in runs if r.conclusion == "failure"), None)
    last_success = next((r for r in runs if r.conclusion == "success"), None)

    error = None
    if status is JobStatus.FAILED and latest is not None:
        error = build_error_detail(latest, logs, config.file_extensions)

    job = LogicalJob(
        id=job_id_for(job_name),
        name=display_name,
        full_name=job_name,
        status=status,
        duration=latest.duration if latest else "N/A",
        last_failure=format_relative_time(last_failure.effective_start, now) if last_failure else "Never",
        last_success=format_relative_time(last_success.effective_start, now) if last_success else "Never",
        weather_history=history,
        failure_count=sum(1 for d in history if d.status is DayStatus.FAILED),
        failed_tests_in_weather=failed_tests_in_weather(history),
        retried=max(latest.run_attempt - 1, 0) if latest else 0,
        setup_retry=raw_status is JobStatus.NOT_RUN_SETUP_FAILED,
        run_id=latest.run_ref if latest else None,
        job_id=latest.job_id if latest else None,
        error=error,
        maintainers=config.resolve_maintainers(job_config.maintainers if job_config else []),
        is_required=required.matches(job_name),
    )
    logger.debug(f"Job {display_name!r}: {len(runs)} attempts, status {status.value}")
    return job


def index_failures(index: FailureIndex, jobs: Iterable[LogicalJob]) -> int:
    """Add every failed day's sub-test failures to the index."""
    added = 0
    for job in jobs:
        for day in job.weather_history:
            if day.status is not DayStatus.FAILED or not day.job_id or day.failure_details is None:
                continue
            for failure in day.failure_details.failures:
                if index.index_failed_test(failure.name, day.date, job.name, day.job_id, day.run_id):
                    added += 1
    return added


def assemble_snapshot(
    runs: Iterable[RawJobRun],
    config: DashboardConfig,
    logs: Mapping[str, str],
    previous: Optional[Snapshot] = None,
    now: Optional[datetime] = None,
) -> Snapshot:
    """Run the whole nightly pipeline and return the new data.json value."""
    now = to_utc(now or utcnow())

    fatal_steps = PatternSet.from_config(
        config.fatal_steps, kind="fatal step", default=DEFAULT_FATAL_STEPS,
    )
    required = PatternSet.from_config(config.required_tests, kind="required test")
    subprojects = CategoryMatcher.from_config(config.subprojects)
    logger.info(f"Fatal step patterns: {[p.pattern for p in fatal_steps.patterns]}")

    runs_by_name = group_runs_by_name(runs)
    cache = cached_weather_by_id(previous)

    # Configured jobs first (config order), then everything else seen in the runs
    job_configs: dict[str, JobConfig] = {}
    for _, job_config in config.configured_jobs():
        job_configs.setdefault(job_config.name, job_config)
    names = list(job_configs) + sorted(n for n in runs_by_name if n and n not in job_configs)

    jobs: dict[str, LogicalJob] = {}
    for name in names:
        jobs[name] = build_logical_job(
            name,
            runs_by_name.get(name, []),
            config,
            fatal_steps,
            required,
            logs,
            cached_weather=cache.get(job_id_for(name)),
            job_config=job_configs.get(name),
            now=now,
        )

    candidates = detect_renames(jobs.values(), previous, config.renames, now)
    jobs = apply_renames(jobs, candidates, previous)

    index = FailureIndex.from_snapshot(previous)
    added = index_failures(index, jobs.values())
    index.prune(now)
    index.enrich()
    logger.info(f"Indexed {added} new failure occurrences, tracking {len(index)} failed tests")

    sections = [
        Section(
            id=section.id,
            name=section.name,
            description=section.description,
            tests=[jobs[job.name] for job in section.jobs],
        )
        for section in config.sections
    ]

    grouped = subprojects.categorize(jobs)
    subproject_views = [
        Section(
            id=sub.id,
            name=sub.name,
            description=sub.description,
            tests=[jobs[name] for name in grouped.get(sub.id, [])],
        )
        for sub in config.subprojects
    ]

    snapshot = Snapshot(
        last_refresh=now,
        sections=sections,
        all_jobs=list(jobs.values()),
        subprojects=subproject_views,
        failed_tests_index=index.to_dict(),
        rename_candidates=candidates,
    )
    log_section_summary(snapshot)
    return snapshot


def log_section_summary(snapshot: Snapshot) -> None:
    for section in snapshot.sections:
        counts = {status: 0 for status in JobStatus}
        for job in section.tests:
            counts[job.status] += 1
        logger.info(
            f"Section {section.name!r}: {counts[JobStatus.PASSED]} passed, "
            f"{counts[JobStatus.FAILED]} failed, {counts[JobStatus.RUNNING]} running, "
            f"{counts[JobStatus.NOT_RUN]} not run"
        )
        for job in section.tests:
            if not job.failed_tests_in_weather:
                continue
            logger.info(f"  {job.name}: {job.failure_count} failures in 10 days")
            for failed in job.failed_tests_in_weather[:3]:
                logger.info(f"    - {failed.name!r} failed {failed.count}x")
