"""Cross-job index of failing sub-tests.

Maps sub-test name -> occurrences (date, job, job id, run id) over the
last 30 days, so the dashboard can answer "which other jobs hit this
same failure". Loaded from the previous snapshot, extended additively,
pruned, then enriched with a per-job breakdown before persisting.
"""

import logging
from datetime import datetime
from typing import Iterator, Optional

from .dates import days_ago, to_utc, utcnow
from .models import AffectedJob, FailedTestIndexEntry, FailureOccurrence, Snapshot

logger = logging.getLogger(__name__)

RETENTION_DAYS = 30


class FailureIndex:
    """Failing test name -> FailedTestIndexEntry."""

    def __init__(self, entries: Optional[dict[str, FailedTestIndexEntry]] = None):
        self.entries: dict[str, FailedTestIndexEntry] = {
            name: entry.model_copy(deep=True) for name, entry in (entries or {}).items()
        }

    @classmethod
    def from_snapshot(cls, snapshot: Optional[Snapshot]) -> "FailureIndex":
        """Start from the previous snapshot's index (copied, never shared)."""
        if snapshot is None:
            return cls()
        logger.info(f"Cache has {len(snapshot.failed_tests_index)} tracked failed tests")
        return cls(snapshot.failed_tests_index)

    def index_failed_test(
        self,
        test_name: str,
        date: datetime,
        job_name: str,
        job_id: str,
        run_id: Optional[str] = None,
    ) -> bool:
        """Record one failure occurrence.

        Idempotent per (test_name, job_id): returns False when the job
        attempt was already indexed for this test.
        """
        entry = self.entries.setdefault(test_name, FailedTestIndexEntry())
        if any(o.job_id == job_id for o in entry.occurrences):
            return False
        entry.occurrences.append(FailureOccurrence(
            date=to_utc(date),
            job_name=job_name,
            job_id=job_id,
            run_id=run_id,
        ))
        entry.total_count += 1
        return True

    def prune(self, now: Optional[datetime] = None, retention_days: int = RETENTION_DAYS) -> int:
        """Drop occurrences older than the retention window.

        Sorts the remaining occurrences newest-first and resets totalCount.
        Tests left without occurrences are removed. Returns the number of
        dropped occurrences.
        """
        cutoff = days_ago(now or utcnow(), retention_days)
        dropped = 0
        for name in list(self.entries):
            entry = self.entries[name]
            kept = [o for o in entry.occurrences if to_utc(o.date) >= cutoff]
            dropped += len(entry.occurrences) - len(kept)
            kept.sort(key=lambda o: to_utc(o.date), reverse=True)
            entry.occurrences = kept
            entry.total_count = len(kept)
            if not kept:
                del self.entries[name]
        if dropped:
            logger.info(f"Pruned {dropped} failure occurrences older than {retention_days} days")
        return dropped

    def enrich(self) -> None:
        """Derive affectedJobs / uniqueJobsAffected from the occurrences."""
        for entry in self.entries.values():
            breakdown: dict[str, AffectedJob] = {}
            for occ in entry.occurrences:
                job = breakdown.get(occ.job_name)
                if job is None:
                    job = breakdown[occ.job_name] = AffectedJob(job_name=occ.job_name, count=0)
                job.count += 1
                job.job_ids.append(occ.job_id)
                if job.latest_date is None or to_utc(occ.date) > to_utc(job.latest_date):
                    job.latest_date = occ.date
            entry.affected_jobs = sorted(breakdown.values(), key=lambda j: j.count, reverse=True)
            entry.unique_jobs_affected = len(entry.affected_jobs)

    def related_jobs(self, test_name: str, exclude_job: Optional[str] = None) -> list[AffectedJob]:
        """Other jobs in which the same sub-test failed."""
        entry = self.entries.get(test_name)
        if entry is None:
            return []
        return [j for j in entry.affected_jobs if j.job_name != exclude_job]

    def to_dict(self) -> dict[str, FailedTestIndexEntry]:
        return dict(self.entries)

    def __contains__(self, test_name: str) -> bool:
        return test_name in self.entries

    def __getitem__(self, test_name: str) -> FailedTestIndexEntry:
        return self.entries[test_name]

    def __iter__(self) -> Iterator[str]:
        return iter(self.entries)

    def __len__(self) -> int:
        return len(self.entries)
