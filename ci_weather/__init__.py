"""
CI Weather
==========
Turns fetched GitHub Actions job runs and their logs into the documents
behind the CI weather dashboard.

This package provides:
- TAP log parsing and fatal-step job classification
- 10-day weather histories with cache fallback
- A 30-day cross-job index of failing sub-tests
- Rename detection that carries history over to the new job name
- A PR flakiness report and a daily summary

Usage:
    from ci_weather import load_config, assemble_snapshot, SnapshotStore
    from ci_weather.storage import load_raw_runs, load_job_logs

    config = load_config("config.yaml")
    store = SnapshotStore("data.json")
    snapshot = assemble_snapshot(
        load_raw_runs("raw-runs.json"),
        config,
        load_job_logs("job-logs"),
        previous=store.load(),
    )
    store.save(snapshot)
"""

from .classifier import classify
from .config import DashboardConfig, load_config
from .errors import CiWeatherError, ConfigError, InputError
from .failure_index import FailureIndex
from .flaky import build_flaky_report
from .log_parser import parse_test_failures
from .models import JobStatus, LogicalJob, RawJobRun, Snapshot, WeatherDay
from .renames import detect_renames
from .weather import build_weather_history, merge_weather_history
from .snapshot import assemble_snapshot
from .storage import SnapshotStore
from .summary import build_summary

__all__ = [
    "classify",
    "DashboardConfig",
    "load_config",
    "CiWeatherError",
    "ConfigError",
    "InputError",
    "FailureIndex",
    "build_flaky_report",
    "parse_test_failures",
    "JobStatus",
    "LogicalJob",
    "RawJobRun",
    "Snapshot",
    "WeatherDay",
    "detect_renames",
    "build_weather_history",
    "merge_weather_history",
    "assemble_snapshot",
    "SnapshotStore",
    "build_summary",
]
