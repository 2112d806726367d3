"""Tests for input loading and snapshot persistence."""

import json
import logging

import pytest

from ci_weather.errors import InputError
from ci_weather.models import LogicalJob, Snapshot
from ci_weather.storage import SnapshotStore, load_job_logs, load_raw_runs, write_document


class TestLoadRawRuns:

    def test_loads_jobs(self, tmp_path):
        path = tmp_path / "raw-runs.json"
        path.write_text(json.dumps({"jobs": [
            {
                "name": "run-k8s-tests",
                "id": 123,
                "conclusion": "failure",
                "started_at": "2026-10-19T02:00:00Z",
                "steps": [{"name": "Run tests", "conclusion": "failure"}],
                "unexpected_field": "ignored",
            },
        ]}))
        runs = load_raw_runs(path)
        assert runs[0].job_id == "123"
        assert runs[0].steps[0].name == "Run tests"

    def test_missing_file(self, tmp_path):
        with pytest.raises(InputError, match="not found"):
            load_raw_runs(tmp_path / "raw-runs.json")

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "raw-runs.json"
        path.write_text("{not json")
        with pytest.raises(InputError):
            load_raw_runs(path)

    def test_invalid_shape(self, tmp_path):
        path = tmp_path / "raw-runs.json"
        path.write_text(json.dumps({"jobs": [{"name": "no id"}]}))
        with pytest.raises(InputError):
            load_raw_runs(path)


class TestLoadJobLogs:

    def test_reads_logs_by_job_id(self, tmp_path):
        (tmp_path / "123.log").write_text("not ok 1 x")
        (tmp_path / "notes.txt").write_text("ignored")
        assert load_job_logs(tmp_path) == {"123": "not ok 1 x"}

    def test_missing_directory(self, tmp_path):
        assert load_job_logs(tmp_path / "job-logs") == {}
        assert load_job_logs(None) == {}


class TestSnapshotStore:

    def test_missing_snapshot(self, tmp_path):
        assert SnapshotStore(tmp_path / "data.json").load() is None

    def test_corrupted_snapshot(self, tmp_path, caplog):
        path = tmp_path / "data.json"
        path.write_text("{broken")
        with caplog.at_level(logging.WARNING):
            assert SnapshotStore(path).load() is None
        assert "Corrupted snapshot" in caplog.text

    def test_save_and_load(self, tmp_path, now):
        store = SnapshotStore(tmp_path / "out" / "data.json")
        snapshot = Snapshot(
            last_refresh=now,
            all_jobs=[LogicalJob(id="a", name="A", full_name="a", run_id="1")],
        )
        store.save(snapshot)

        raw = json.loads(store.path.read_text())
        assert raw["allJobs"][0]["fullName"] == "a"
        assert store.load() == snapshot
        assert list(store.path.parent.glob("*.tmp")) == []

    def test_loads_legacy_field_names(self, tmp_path):
        path = tmp_path / "data.json"
        path.write_text(json.dumps({
            "sections": [{"id": "k8s", "name": "K8s", "tests": [{
                "id": "a", "name": "A", "fullName": "a", "runId": 42,
                "maintainers": ["alice"],
                "weatherHistory": [{
                    "date": "2026-10-18T00:00:00.000Z",
                    "status": "failed",
                    "failureDetails": {"failures": [], "batsFiles": ["x.bats"]},
                }],
            }]}],
        }))
        snapshot = SnapshotStore(path).load()
        job = snapshot.sections[0].tests[0]
        assert job.run_id == "42"
        assert job.maintainers[0].handle == "alice"
        assert job.weather_history[0].failure_details.source_files == ["x.bats"]


class TestWriteDocument:

    def test_overwrites(self, tmp_path, now):
        path = tmp_path / "data.json"
        path.write_text("old")
        write_document(path, Snapshot(last_refresh=now))
        assert json.loads(path.read_text())["lastRefresh"].startswith("2026-10-19T12:00:00")
