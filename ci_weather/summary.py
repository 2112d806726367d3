"""Daily summary of a dashboard snapshot (JSON or Markdown).

Usage:
    summary = build_summary(snapshot)
    print(render_markdown(summary))
"""

import logging
import math
from datetime import datetime
from pathlib import Path
from typing import Optional

from jinja2 import Environment, FileSystemLoader
from pydantic import BaseModel

from .dates import utcnow
from .models import DayStatus, JobStatus, LogicalJob, Snapshot

logger = logging.getLogger(__name__)

TEMPLATE_DIR = Path(__file__).parent / "templates"

FLAKY_RATE_THRESHOLD = 30
MIN_FLAKY_DAYS = 5

# (minimum pass rate, emoji), best first
WEATHER_SCALE = (
    (95, "☀️"),
    (85, "🌤️"),
    (70, "⛅"),
    (50, "🌧️"),
)
STORM = "⛈️"


class SectionSummary(BaseModel):
    name: str
    total: int
    failed: int
    passed: int
    pass_rate: int
    weather_emoji: str


class FailingTest(BaseModel):
    name: str
    error_step: str
    days_failing: int
    run_id: Optional[str] = None


class UnstableTest(BaseModel):
    name: str
    flaky_rate: int
    transitions: int


class DailySummary(BaseModel):
    date: datetime
    overall_pass_rate: int
    total_tests: int
    failed_count: int
    running_count: int
    passed_count: int
    flaky_count: int
    trend: str
    trend_emoji: str
    sections: list[SectionSummary] = []
    failing_tests: list[FailingTest] = []
    flaky_tests: list[UnstableTest] = []


def round_half_up(value: float) -> int:
    """Round halves up (2.5 -> 3); builtin round() rounds them to even."""
    return math.floor(value + 0.5)


def pass_rate(passed: int, total: int) -> int:
    if total == 0:
        return 0
    return round_half_up(passed / total * 100)


def weather_emoji(rate: int) -> str:
    for minimum, emoji in WEATHER_SCALE:
        if rate >= minimum:
            return emoji
    return STORM


def consecutive_failed_days(job: LogicalJob) -> int:
    """Failed days counted back from the newest weather slot."""
    days = 0
    for day in reversed(job.weather_history):
        if day.status is not DayStatus.FAILED:
            break
        days += 1
    return days


def transition_rate(job: LogicalJob) -> Optional[UnstableTest]:
    """Share of day-to-day status changes; None for short histories."""
    history = job.weather_history
    if len(history) < MIN_FLAKY_DAYS:
        return None
    transitions = sum(
        1 for prev, cur in zip(history, history[1:]) if prev.status is not cur.status
    )
    rate = round_half_up(transitions / (len(history) - 1) * 100)
    return UnstableTest(name=job.name, flaky_rate=rate, transitions=transitions)


def trend_for(rate: int) -> tuple[str, str]:
    if rate >= 90:
        return "Stable", "→"
    if rate >= 80:
        return "Slightly down", "↘️"
    return "Needs attention", "📉"


def build_summary(snapshot: Snapshot, now: Optional[datetime] = None) -> DailySummary:
    jobs = [job for section in snapshot.sections for job in section.tests]
    passed = sum(1 for j in jobs if j.status is JobStatus.PASSED)
    overall = pass_rate(passed, len(jobs))

    sections = []
    for section in snapshot.sections:
        section_passed = sum(1 for j in section.tests if j.status is JobStatus.PASSED)
        rate = pass_rate(section_passed, len(section.tests))
        sections.append(SectionSummary(
            name=section.name,
            total=len(section.tests),
            failed=sum(1 for j in section.tests if j.status is JobStatus.FAILED),
            passed=section_passed,
            pass_rate=rate,
            weather_emoji=weather_emoji(rate),
        ))

    failing = [
        FailingTest(
            name=job.name,
            error_step=job.error.step if job.error else "Unknown",
            days_failing=consecutive_failed_days(job),
            run_id=job.run_id,
        )
        for job in jobs
        if job.status is JobStatus.FAILED
    ]
    failing.sort(key=lambda t: t.days_failing, reverse=True)

    unstable = [t for t in map(transition_rate, jobs) if t and t.flaky_rate > FLAKY_RATE_THRESHOLD]
    unstable.sort(key=lambda t: t.flaky_rate, reverse=True)

    trend, trend_emoji = trend_for(overall)
    summary = DailySummary(
        date=now or utcnow(),
        overall_pass_rate=overall,
        total_tests=len(jobs),
        failed_count=sum(1 for j in jobs if j.status is JobStatus.FAILED),
        running_count=sum(1 for j in jobs if j.status is JobStatus.RUNNING),
        passed_count=passed,
        flaky_count=len(unstable),
        trend=trend,
        trend_emoji=trend_emoji,
        sections=sections,
        failing_tests=failing,
        flaky_tests=unstable,
    )
    logger.info(
        f"Summary: {overall}% pass rate, {summary.failed_count} failing, "
        f"{summary.flaky_count} unstable"
    )
    return summary


def render_markdown(summary: DailySummary) -> str:
    env = Environment(
        loader=FileSystemLoader(str(TEMPLATE_DIR)),
        keep_trailing_newline=True,
    )
    return env.get_template("summary.md.j2").render(summary=summary)
