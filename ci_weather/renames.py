"""Job rename detection.

CI job names change (parameter reordering, workflow renames). When a
cached job name disappears and a similar name shows up in the same run,
the old name's weather is transplanted onto the new one so the history
does not reset to all-none. Candidates stay visible for a few days so a
human can reject false positives through the exclusion list.

Similarity is position-aligned character overlap, not edit distance.
"""

import logging
from datetime import datetime
from typing import Iterable, Optional

from .config import RenameConfig
from .dates import to_utc, utcnow
from .models import DayStatus, LogicalJob, RenameCandidate, Snapshot, WeatherDay
from .summary import round_half_up
from .weather import failed_tests_in_weather, merge_weather_history

logger = logging.getLogger(__name__)


def position_similarity(a: str, b: str) -> float:
    """Share of positions, over the shorter name, holding the same character."""
    shorter = min(len(a), len(b))
    if shorter == 0:
        return 0.0
    same = sum(1 for x, y in zip(a, b) if x == y)
    return same / shorter


def prefix_ratio(a: str, b: str) -> float:
    """Common prefix length relative to the shorter name."""
    shorter = min(len(a), len(b))
    if shorter == 0:
        return 0.0
    length = 0
    for x, y in zip(a, b):
        if x != y:
            break
        length += 1
    return length / shorter


def first_active_dates(jobs: Iterable[LogicalJob]) -> dict[str, Optional[datetime]]:
    """Job name -> first weather date with any status other than none."""
    active = {}
    for job in jobs:
        active[job.full_name] = next(
            (day.date for day in job.weather_history if day.status is not DayStatus.NONE),
            None,
        )
    return active


def cached_histories(previous: Optional[Snapshot]) -> dict[str, list[WeatherDay]]:
    """Job name -> weather history from the previous snapshot."""
    if previous is None:
        return {}
    return {job.full_name: job.weather_history for job in previous.flattened_jobs()}


def _recently_active(history: list[WeatherDay], activity_days: int) -> bool:
    return any(day.status is not DayStatus.NONE for day in history[-activity_days:])


def detect_renames(
    current_jobs: Iterable[LogicalJob],
    previous: Optional[Snapshot],
    settings: Optional[RenameConfig] = None,
    now: Optional[datetime] = None,
) -> list[RenameCandidate]:
    """Propose (old name -> new name) aliases for this run.

    Returns fresh candidates plus still-young candidates from the
    previous snapshot, without duplicates, best similarity first.
    """
    settings = settings or RenameConfig()
    now = to_utc(now or utcnow())
    current = first_active_dates(current_jobs)
    cached = cached_histories(previous)

    disappeared = [
        name for name, history in cached.items()
        if name not in current and _recently_active(history, settings.activity_days)
    ]
    new_names = [name for name in current if name not in cached]

    candidates: dict[tuple[str, str], RenameCandidate] = {}
    for new_name in new_names:
        for old_name in disappeared:
            if settings.is_excluded(old_name, new_name):
                logger.debug(f"Rename {old_name!r} -> {new_name!r} excluded by config")
                continue
            similarity = position_similarity(old_name, new_name)
            prefix = prefix_ratio(old_name, new_name)
            if similarity > settings.similarity_threshold or prefix > settings.prefix_threshold:
                candidates[(old_name, new_name)] = RenameCandidate(
                    old_name=old_name,
                    new_name=new_name,
                    similarity=round_half_up(similarity * 100),
                    detected_date=now,
                )
                logger.info(
                    f"Rename candidate: {old_name!r} -> {new_name!r} "
                    f"(similarity {similarity:.0%}, prefix {prefix:.0%})"
                )

    if previous is not None:
        for old in previous.rename_candidates:
            key = (old.old_name, old.new_name)
            if key in candidates or settings.is_excluded(*key):
                continue
            age = now - to_utc(old.detected_date)
            if age.days < settings.retention_days:
                candidates[key] = old.model_copy()

    return sorted(candidates.values(), key=lambda c: c.similarity, reverse=True)


def apply_renames(
    jobs: dict[str, LogicalJob],
    candidates: Iterable[RenameCandidate],
    previous: Optional[Snapshot],
) -> dict[str, LogicalJob]:
    """Transplant the old jobs' cached weather onto the renamed jobs.

    Returns a new name -> job mapping; only `none` days of the new job
    are filled, live days are never overwritten. Every job named by an
    active candidate keeps `alias_of`, including later runs where the old
    history has already been carried over in the cache.
    """
    cached = cached_histories(previous)
    result = dict(jobs)
    for candidate in candidates:
        job = result.get(candidate.new_name)
        if job is None:
            continue
        update = {"alias_of": job.alias_of or candidate.old_name}
        old_history = cached.get(candidate.old_name)
        if old_history:
            merged = merge_weather_history(job.weather_history, old_history)
            update.update({
                "weather_history": merged,
                "failure_count": sum(1 for d in merged if d.status is DayStatus.FAILED),
                "failed_tests_in_weather": failed_tests_in_weather(merged),
            })
            logger.info(f"Transplanted weather of {candidate.old_name!r} onto {candidate.new_name!r}")
        result[candidate.new_name] = job.model_copy(update=update)
    return result
