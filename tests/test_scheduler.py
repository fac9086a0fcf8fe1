from __future__ import annotations

from app.schemas import SyncErrorCode, SyncOutcome, SyncOutcomeStatus
from services.scheduler import STALE_SYNC_JOB_ID, build_scheduler, run_stale_sync_job


class RecordingOrchestrator:
    def __init__(self, outcomes=None) -> None:
        self.calls = 0
        self.outcomes = outcomes or []

    def sync_stale_locations(self):
        self.calls += 1
        return self.outcomes


def test_zero_interval_disables_scheduler() -> None:
    assert build_scheduler(RecordingOrchestrator(), 0) is None


def test_scheduler_registers_single_stale_sync_job() -> None:
    orchestrator = RecordingOrchestrator()

    scheduler = build_scheduler(orchestrator, 30)

    assert scheduler is not None
    jobs = scheduler.get_jobs()
    assert [job.id for job in jobs] == [STALE_SYNC_JOB_ID]
    job = jobs[0]
    assert job.max_instances == 1
    assert job.coalesce is True
    assert job.trigger.interval.total_seconds() == 30 * 60
    assert job.kwargs == {"orchestrator": orchestrator}


def test_stale_sync_job_logs_failed_locations(caplog) -> None:
    orchestrator = RecordingOrchestrator(
        outcomes=[
            SyncOutcome(location_id="loc-1", status=SyncOutcomeStatus.success),
            SyncOutcome(
                location_id="loc-2",
                status=SyncOutcomeStatus.failed,
                error_code=SyncErrorCode.transient_fetch_error,
            ),
        ]
    )

    with caplog.at_level("WARNING"):
        run_stale_sync_job(orchestrator)

    assert orchestrator.calls == 1
    assert any("loc-2" in record.getMessage() for record in caplog.records)
