"""Job classification: raw GitHub Actions job run -> JobStatus.

Only failures rooted in a configured "fatal" step (the real test
execution) count as failed; a failure in any other step is an
infrastructure/setup problem and is reported as not_run.
"""

import logging
from typing import Optional

from .matching import PatternSet
from .models import JobStatus, RawJobRun

logger = logging.getLogger(__name__)

DEFAULT_FATAL_STEPS = ("^Run tests",)
DEFAULT_FAILURE_STEP = "Run tests"


def classify(run: RawJobRun, fatal_steps: PatternSet) -> JobStatus:
    """Classify one job attempt.

    Rules, in order:
        in_progress/queued        -> not_run
        success                   -> passed
        failure in a fatal step   -> failed (also when no step info exists)
        failure in any other step -> not_run_setup_failed
        anything else             -> not_run
    """
    if run.status in ("in_progress", "queued"):
        return JobStatus.NOT_RUN

    if run.conclusion == "success":
        return JobStatus.PASSED

    if run.conclusion == "failure":
        failed_step = first_failed_step(run)
        if failed_step is not None and not fatal_steps.matches(failed_step):
            logger.debug(
                f"Non-fatal failure: job {run.id} failed at {failed_step!r} "
                f"-> not_run"
            )
            return JobStatus.NOT_RUN_SETUP_FAILED
        return JobStatus.FAILED

    return JobStatus.NOT_RUN


def display_status(status: JobStatus) -> JobStatus:
    if status is JobStatus.NOT_RUN_SETUP_FAILED:
        return JobStatus.NOT_RUN
    return status


def current_status(run: Optional[RawJobRun], fatal_steps: PatternSet) -> JobStatus:
    """Status shown for a job's latest attempt (adds 'running')."""
    if run is None:
        return JobStatus.NOT_RUN
    if run.status in ("in_progress", "queued"):
        return JobStatus.RUNNING
    return display_status(classify(run, fatal_steps))


def first_failed_step(run: RawJobRun) -> Optional[str]:
    for step in run.steps:
        if step.conclusion == "failure":
            return step.name or "Unknown step"
    return None


def failed_step_name(run: Optional[RawJobRun]) -> str:
    """Name of the failed step, or the generic fallback."""
    if run is None:
        return DEFAULT_FAILURE_STEP
    return first_failed_step(run) or DEFAULT_FAILURE_STEP


def reached_fatal_step(run: RawJobRun, fatal_steps: PatternSet) -> bool:
    """True when the attempt got as far as a real test-execution step."""
    return any(fatal_steps.matches(step.name) for step in run.steps)
