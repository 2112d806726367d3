"""
File Storage
============
Reading the fetched CI inputs and writing the dashboard documents.

- Raw runs JSON ({"jobs": [...]}) is the source of truth: missing or
  unparseable means the run aborts (InputError).
- Log directories hold one <job_id>.log per attempt; an unreadable log
  is only a warning.
- The previous data.json is a cache: missing or corrupted means "start
  fresh", never an error.
- Documents are written to a temp file and moved into place so readers
  never see a half-written snapshot.
"""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Optional, Union

from pydantic import BaseModel, ValidationError

from .errors import InputError
from .models import RawJobRun, RawRunsFile, Snapshot

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


def load_raw_runs(path: PathLike) -> list[RawJobRun]:
    """Load a raw-runs.json / raw-pr-runs.json file."""
    path = Path(path)
    if not path.exists():
        raise InputError(f"Raw runs file not found: {path}")
    try:
        data = json.loads(path.read_text())
        runs = RawRunsFile.model_validate(data).jobs
    except (json.JSONDecodeError, OSError, ValidationError) as e:
        raise InputError(f"Failed to load raw runs from {path}: {e}") from e
    logger.info(f"Loaded {len(runs)} jobs from {path}")
    return runs


def load_job_logs(directory: Optional[PathLike]) -> dict[str, str]:
    """Map job id -> log text for every <job_id>.log in a directory."""
    logs: dict[str, str] = {}
    if directory is None:
        return logs
    directory = Path(directory)
    if not directory.is_dir():
        logger.info(f"No log directory at {directory}")
        return logs
    for log_file in sorted(directory.glob("*.log")):
        try:
            logs[log_file.stem] = log_file.read_text(errors="replace")
        except OSError as e:
            logger.warning(f"Could not read log {log_file}: {e}")
    logger.info(f"Loaded {len(logs)} job logs from {directory}")
    return logs


def write_document(path: PathLike, document: BaseModel) -> Path:
    """Atomically write a dashboard document as camelCase JSON."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    payload = json.dumps(document.model_dump(mode="json", by_alias=True), indent=2)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w") as f:
            f.write(payload)
        os.replace(tmp_name, path)
    except OSError:
        Path(tmp_name).unlink(missing_ok=True)
        raise
    logger.info(f"Wrote {path}")
    return path


class SnapshotStore:
    """The persisted data.json, read once as cache and replaced at the end."""

    def __init__(self, path: PathLike = "data.json"):
        self.path = Path(path)

    def load(self) -> Optional[Snapshot]:
        if not self.path.exists():
            logger.info(f"No previous snapshot at {self.path}, starting without cache")
            return None
        try:
            snapshot = Snapshot.model_validate(json.loads(self.path.read_text()))
        except (json.JSONDecodeError, OSError, ValidationError) as e:
            logger.warning(f"Corrupted snapshot {self.path}, starting without cache: {e}")
            return None
        logger.info(
            f"Loaded cached snapshot from {self.path} "
            f"({len(snapshot.flattened_jobs())} jobs)"
        )
        return snapshot

    def save(self, snapshot: Snapshot) -> Path:
        return write_document(self.path, snapshot)
