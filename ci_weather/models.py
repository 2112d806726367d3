"""Data models for CI weather ingestion and dashboard documents."""

from datetime import datetime
from enum import Enum
from typing import Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from .dates import format_duration, to_utc


class JobStatus(str, Enum):
    """Normalized status of a CI job run."""
    PASSED = "passed"
    FAILED = "failed"
    NOT_RUN = "not_run"
    NOT_RUN_SETUP_FAILED = "not_run_setup_failed"  # displayed as not_run
    RUNNING = "running"


class DayStatus(str, Enum):
    """Status of one calendar day in a weather history."""
    PASSED = "passed"
    FAILED = "failed"
    NOT_RUN = "not_run"
    NONE = "none"


# ---------------------------------------------------------------------------
# Raw input (GitHub Actions jobs, snake_case as delivered by the API)
# ---------------------------------------------------------------------------

class Step(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    name: str = ""
    conclusion: Optional[str] = None
    number: Optional[int] = None


class RawJobRun(BaseModel):
    """One execution attempt of a named CI job."""
    model_config = ConfigDict(frozen=True, extra="ignore")

    name: str = ""
    id: Union[int, str]
    conclusion: Optional[str] = None
    status: Optional[str] = "completed"
    created_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    run_attempt: int = 1
    workflow_run_id: Optional[Union[int, str]] = None
    run_id: Optional[Union[int, str]] = None
    html_url: Optional[str] = None
    steps: list[Step] = []

    # Pull-request runs only
    pr_number: Optional[Union[int, str]] = None
    pr_title: str = ""
    pr_merged: bool = False
    pr_state: Optional[str] = None
    run_created_at: Optional[datetime] = None

    @property
    def job_id(self) -> str:
        return str(self.id)

    @property
    def effective_start(self) -> Optional[datetime]:
        """When the attempt started, falling back to its creation time."""
        stamp = self.started_at or self.created_at
        return to_utc(stamp) if stamp else None

    @property
    def run_ref(self) -> Optional[str]:
        ref = self.workflow_run_id if self.workflow_run_id is not None else self.run_id
        return str(ref) if ref is not None else None

    @property
    def duration(self) -> str:
        return format_duration(self.started_at, self.completed_at)


class RawRunsFile(BaseModel):
    """Envelope of raw-runs.json / raw-pr-runs.json."""
    model_config = ConfigDict(extra="ignore")

    jobs: list[RawJobRun] = []


# ---------------------------------------------------------------------------
# Dashboard documents (camelCase on the wire)
# ---------------------------------------------------------------------------

class DashboardModel(BaseModel):
    """Base for persisted documents: camelCase keys, snake_case accepted."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        coerce_numbers_to_str=True,
        extra="ignore",
    )

    def to_json_dict(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


class SubTestFailure(DashboardModel):
    """One parsed 'not ok' line from a job log."""
    number: int
    name: str
    comment: str = ""
    file: Optional[str] = None


class TestStats(DashboardModel):
    __test__ = False  # prevent pytest collection
    total: int = 0
    passed: int = 0
    failed: int = 0
    skipped: int = 0


class ParsedLog(DashboardModel):
    """Structured test results extracted from one job log."""
    failures: list[SubTestFailure] = []
    stats: TestStats = Field(default_factory=TestStats)
    source_files: list[str] = Field(
        default=[],
        validation_alias=AliasChoices("sourceFiles", "source_files", "batsFiles"),
        serialization_alias="batsFiles",
    )


class WeatherDay(DashboardModel):
    """One calendar-day slot of a job's weather history."""
    date: datetime
    status: DayStatus = DayStatus.NONE
    run_id: Optional[str] = None
    job_id: Optional[str] = None
    duration: Optional[str] = None
    failure_step: Optional[str] = None
    failure_details: Optional[ParsedLog] = None


class FailedTestSummary(DashboardModel):
    """A sub-test that failed on one or more days of the weather window."""
    name: str
    count: int = 0
    dates: list[str] = []
    files: list[str] = []


class ErrorDetail(DashboardModel):
    step: str
    source_files: list[str] = Field(
        default=[],
        validation_alias=AliasChoices("sourceFiles", "source_files", "batsFiles"),
        serialization_alias="batsFiles",
    )
    test_results: Optional[TestStats] = None
    failures: list[SubTestFailure] = []
    output: str = ""


class Maintainer(DashboardModel):
    handle: str
    name: Optional[str] = None
    github: Optional[str] = None
    slack: Optional[str] = None


class LogicalJob(DashboardModel):
    """A CI job as displayed on the dashboard, rebuilt on every run."""
    id: str
    name: str
    full_name: str
    status: JobStatus = JobStatus.NOT_RUN
    duration: str = "N/A"
    last_failure: str = "Never"
    last_success: str = "Never"
    weather_history: list[WeatherDay] = []
    failure_count: int = 0
    failed_tests_in_weather: list[FailedTestSummary] = []
    retried: int = 0
    setup_retry: bool = False
    run_id: Optional[str] = None
    job_id: Optional[str] = None
    error: Optional[ErrorDetail] = None
    maintainers: list[Maintainer] = []
    is_required: bool = False
    alias_of: Optional[str] = None

    @field_validator("maintainers", mode="before")
    @classmethod
    def _handles_to_maintainers(cls, value):
        # older snapshots stored bare handles
        if isinstance(value, list):
            return [{"handle": v} if isinstance(v, str) else v for v in value]
        return value


class Section(DashboardModel):
    id: str
    name: str
    description: Optional[str] = None
    tests: list[LogicalJob] = []


class FailureOccurrence(DashboardModel):
    date: datetime
    job_name: str
    job_id: str
    run_id: Optional[str] = None


class AffectedJob(DashboardModel):
    job_name: str
    count: int
    latest_date: Optional[datetime] = None
    job_ids: list[str] = []


class FailedTestIndexEntry(DashboardModel):
    occurrences: list[FailureOccurrence] = []
    total_count: int = 0
    affected_jobs: list[AffectedJob] = []
    unique_jobs_affected: int = 0


class RenameCandidate(DashboardModel):
    old_name: str
    new_name: str
    similarity: int = Field(ge=0, le=100)
    detected_date: datetime


class Snapshot(DashboardModel):
    """The data.json document."""
    last_refresh: Optional[datetime] = None
    sections: list[Section] = []
    all_jobs: list[LogicalJob] = []
    subprojects: list[Section] = []
    failed_tests_index: dict[str, FailedTestIndexEntry] = {}
    rename_candidates: list[RenameCandidate] = []

    def flattened_jobs(self) -> list[LogicalJob]:
        """All jobs of the snapshot, preferring the all-jobs view."""
        if self.all_jobs:
            return list(self.all_jobs)
        seen = {}
        for section in self.sections:
            for job in section.tests:
                seen.setdefault(job.full_name, job)
        return list(seen.values())


# ---------------------------------------------------------------------------
# PR failure / flakiness report (flaky-data.json)
# ---------------------------------------------------------------------------

class FlakyOccurrence(DashboardModel):
    date: str
    pr_number: Union[int, str]
    pr_title: str = ""
    job_name: str
    job_id: str
    run_id: Optional[str] = None
    run_attempt: int = 1
    is_flaky: bool = False
    pr_merged: bool = False


class FlakyJobBreakdown(DashboardModel):
    name: str
    count: int = 0
    flaky_count: int = 0
    merged_count: int = 0


class FlakyTestRecord(DashboardModel):
    name: str
    file: Optional[str] = None
    total_failures: int = 0
    flaky_count: int = 0
    merged_count: int = 0
    is_confirmed_flaky: bool = False
    merged_despite_failure: bool = False
    unique_prs: int = Field(default=0, alias="uniquePRs")
    unique_dates: list[str] = []
    affected_jobs: list[FlakyJobBreakdown] = []
    recent_occurrences: list[FlakyOccurrence] = []


class TrendPoint(DashboardModel):
    date: str
    failures: int = 0


class FlakySummary(DashboardModel):
    total_failed_tests: int = 0
    confirmed_flaky: int = 0
    merged_despite_failure: int = 0
    most_affected_job: Optional[FlakyJobBreakdown] = None
    trend: list[TrendPoint] = []
    job_breakdown: list[FlakyJobBreakdown] = []


class FlakyReport(DashboardModel):
    """The flaky-data.json document."""
    last_refresh: datetime
    period_days: int = 14
    total_failures: int = 0
    total_prs: int = Field(default=0, alias="totalPRs")
    confirmed_flaky_count: int = 0
    merged_despite_failure_count: int = 0
    failed_tests: list[FlakyTestRecord] = []
    summary: FlakySummary = Field(default_factory=FlakySummary)
