"""CI Weather CLI.

Usage:
    ci-weather process  --config config.yaml --raw-runs raw-runs.json --logs-dir job-logs
    ci-weather flaky    --raw-runs raw-pr-runs.json --logs-dir pr-job-logs
    ci-weather summary  --data data.json --format markdown

Paths default to files under $CI_WEATHER_DATA_DIR (or the current directory).
Set LOG_LEVEL=DEBUG for per-day parse details.
"""

import argparse
import json
import logging
import os
import sys
from pathlib import Path
from typing import Optional, Sequence

from .config import load_config
from .errors import CiWeatherError, InputError
from .flaky import PERIOD_DAYS, build_flaky_report, empty_report
from .log_parser import DEFAULT_FILE_EXTENSIONS
from .snapshot import assemble_snapshot
from .storage import SnapshotStore, load_job_logs, load_raw_runs, write_document
from .summary import build_summary, render_markdown

logger = logging.getLogger("ci_weather")

DEFAULTS = {
    "process": {"raw_runs": "raw-runs.json", "logs_dir": "job-logs", "output": "data.json"},
    "flaky": {"raw_runs": "raw-pr-runs.json", "logs_dir": "pr-job-logs", "output": "flaky-data.json"},
    "summary": {"data": "data.json"},
}


def _data_path(value: Optional[str], default: str) -> Path:
    if value:
        return Path(value)
    return Path(os.getenv("CI_WEATHER_DATA_DIR", ".")) / default


def cmd_process(args) -> int:
    defaults = DEFAULTS["process"]
    config = load_config(args.config)
    runs = load_raw_runs(_data_path(args.raw_runs, defaults["raw_runs"]))
    logs = load_job_logs(_data_path(args.logs_dir, defaults["logs_dir"]))

    store = SnapshotStore(_data_path(args.output, defaults["output"]))
    previous = store.load()

    snapshot = assemble_snapshot(runs, config, logs, previous=previous)
    store.save(snapshot)
    logger.info(
        f"Processed {len(snapshot.all_jobs)} jobs in {len(snapshot.sections)} sections, "
        f"{len(snapshot.rename_candidates)} rename candidates"
    )
    return 0


def cmd_flaky(args) -> int:
    defaults = DEFAULTS["flaky"]
    output = _data_path(args.output, defaults["output"])
    raw_path = _data_path(args.raw_runs, defaults["raw_runs"])

    if not raw_path.exists():
        logger.warning(f"No PR data at {raw_path}, writing empty report")
        write_document(output, empty_report(period_days=args.period_days))
        return 0

    file_extensions = (
        load_config(args.config).file_extensions if args.config else DEFAULT_FILE_EXTENSIONS
    )
    runs = load_raw_runs(raw_path)
    logs = load_job_logs(_data_path(args.logs_dir, defaults["logs_dir"]))
    report = build_flaky_report(
        runs, logs, period_days=args.period_days, file_extensions=file_extensions,
    )
    write_document(output, report)
    return 0


def cmd_summary(args) -> int:
    path = _data_path(args.data, DEFAULTS["summary"]["data"])
    snapshot = SnapshotStore(path).load()
    if snapshot is None:
        raise InputError(f"No usable snapshot at {path}")

    summary = build_summary(snapshot)
    if args.format == "markdown":
        text = render_markdown(summary)
    else:
        text = json.dumps(summary.model_dump(mode="json"), indent=2, ensure_ascii=False)

    if args.output:
        Path(args.output).write_text(text)
        logger.info(f"Summary written to {args.output}")
    else:
        print(text)
    return 0


COMMANDS = {
    "process": cmd_process,
    "flaky": cmd_flaky,
    "summary": cmd_summary,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ci-weather",
        description="CI weather dashboard data processor",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Commands:
  process   Build data.json from nightly runs and the previous snapshot
  flaky     Build flaky-data.json from pull-request runs
  summary   Print the daily summary of data.json
""",
    )
    parser.add_argument("command", choices=list(COMMANDS), help="Step to run")
    parser.add_argument("--config", help="Config YAML (default: $CI_WEATHER_CONFIG or config.yaml)")
    parser.add_argument("--raw-runs", help="Raw jobs JSON ({\"jobs\": [...]})")
    parser.add_argument("--logs-dir", help="Directory of <job_id>.log files")
    parser.add_argument("--output", "-o", help="Output file")
    parser.add_argument("--data", help="Snapshot to summarize (summary only)")
    parser.add_argument("--format", choices=["json", "markdown"], default="json")
    parser.add_argument("--period-days", type=int, default=PERIOD_DAYS, help="PR window (flaky only)")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=os.environ.get("LOG_LEVEL", "INFO"),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        return COMMANDS[args.command](args)
    except CiWeatherError as e:
        logger.error(str(e))
        return 1


if __name__ == "__main__":
    sys.exit(main())
