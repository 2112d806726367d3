"""
CI Weather Test Configuration

Shared fixtures for all tests. Every test runs against a fixed "now"
so weather windows and retention cut-offs are deterministic.
"""
from datetime import datetime, timedelta, timezone

import pytest

from ci_weather.config import DashboardConfig
from ci_weather.matching import PatternSet
from ci_weather.models import RawJobRun


NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)

RUN_TESTS_STEPS = [
    {"name": "Set up job", "conclusion": "success", "number": 1},
    {"name": "Checkout", "conclusion": "success", "number": 2},
    {"name": "Run tests", "conclusion": "success", "number": 3},
]


def make_run(
    name="run-k8s-tests (ubuntu, qemu, small)",
    job_id=1000,
    conclusion="success",
    days_ago=0,
    hour=2,
    failed_step=None,
    steps=None,
    **extra,
) -> RawJobRun:
    """Build a RawJobRun that started `days_ago` days before NOW at `hour`:00 UTC."""
    start = (NOW - timedelta(days=days_ago)).replace(hour=hour, minute=0, second=0)
    if steps is None:
        steps = [dict(s) for s in RUN_TESTS_STEPS]
        if conclusion == "failure":
            target = failed_step or "Run tests"
            if target == "Run tests":
                steps[-1]["conclusion"] = "failure"
            else:
                steps = steps[:2] + [{"name": target, "conclusion": "failure", "number": 3}]
    data = {
        "name": name,
        "id": job_id,
        "conclusion": conclusion,
        "status": "completed",
        "started_at": start.isoformat(),
        "completed_at": (start + timedelta(minutes=12, seconds=5)).isoformat(),
        "run_attempt": 1,
        "workflow_run_id": job_id * 10,
        "steps": steps,
    }
    data.update(extra)
    return RawJobRun.model_validate(data)


FAILING_LOG = """\
2026-10-19T02:01:00.0000000Z ##[group]Running k8s-pod-lifecycle.bats
2026-10-19T02:01:01.0000000Z 1..4
2026-10-19T02:01:02.0000000Z ok 1 Create pod in 1200ms
2026-10-19T02:01:03.0000000Z not ok 2 Delete pod in 3400ms
2026-10-19T02:01:04.0000000Z #   (in test file k8s-pod-lifecycle.bats, line 42)
2026-10-19T02:01:05.0000000Z ok 3 Restart pod in 800ms
2026-10-19T02:01:06.0000000Z not ok 4 Pod with volume # skip not supported on this hypervisor
"""

PASSING_LOG = """\
ok 1 Create pod
ok 2 Delete pod
"""


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def run_factory():
    return make_run


@pytest.fixture
def failing_log():
    return FAILING_LOG


@pytest.fixture
def fatal_steps():
    return PatternSet(["^Run tests"], kind="fatal step")


@pytest.fixture
def config_dict():
    return {
        "sections": [
            {
                "id": "k8s",
                "name": "Kubernetes",
                "description": "Kubernetes integration tests",
                "jobs": [
                    "run-k8s-tests (ubuntu, qemu, small)",
                    {
                        "name": "run-k8s-tests (ubuntu, clh, small)",
                        "description": "K8s on CLH",
                        "maintainers": ["alice", "bob"],
                    },
                ],
            },
            {
                "id": "cri",
                "name": "CRI",
                "jobs": ["run-cri-containerd (active, qemu)"],
            },
        ],
        "fatal_steps": ["^Run tests"],
        "required_tests": ["run-k8s-tests"],
        "maintainers": {
            "alice": {"name": "Alice", "github": "alice-gh", "slack": "U123"},
        },
        "subprojects": [
            {"id": "k8s", "name": "Kubernetes", "patterns": ["k8s"]},
            {"id": "containerd", "name": "containerd", "patterns": ["containerd", "cri"]},
        ],
    }


@pytest.fixture
def config(config_dict):
    return DashboardConfig(**config_dict)
