"""Tests for the unlocker scheduler job and tick entry point."""

import asyncio
from datetime import datetime, timedelta

from blockunlocker import scheduler
from blockunlocker.config import Settings, UnlockerConfig
from blockunlocker.engine import run_unlocker
from blockunlocker.guard import HaltGuard
from blockunlocker.services.node import ChainBlock
from blockunlocker.storage import YamlBackend


class HangingChain:
    async def get_chain_height(self) -> int:
        await asyncio.sleep(5)
        return 0

    async def get_block_by_hash(self, block_hash: str) -> ChainBlock | None:
        return None


def _settings(tmp_path, **unlocker) -> Settings:
    return Settings(data_dir=tmp_path, unlocker=UnlockerConfig(**unlocker))


def test_job_runs_immediately_then_on_interval_without_overlap(tmp_path) -> None:
    settings = _settings(tmp_path, interval_seconds=45)

    sched = scheduler.create_scheduler(settings, HaltGuard())
    jobs = sched.get_jobs()

    assert len(jobs) == 1
    job = jobs[0]
    assert job.func is scheduler.unlocker_job
    assert job.trigger.interval == timedelta(seconds=45)
    assert job.max_instances == 1
    assert job.coalesce
    assert job.next_run_time <= datetime.now(job.next_run_time.tzinfo)


def test_unlocker_job_logs_tick_errors_instead_of_raising(tmp_path, monkeypatch) -> None:
    calls = []

    async def failing_tick(settings, guard):
        calls.append(settings)
        raise RuntimeError("boom")

    monkeypatch.setattr(scheduler, "run_unlocker", failing_tick)
    settings = _settings(tmp_path)

    scheduler.unlocker_job(settings, HaltGuard())

    assert calls == [settings]


def test_tick_timeout_counts_as_transient_failure(tmp_path) -> None:
    settings = _settings(
        tmp_path,
        tick_timeout_seconds=0.05,
        call_timeout_seconds=10,
        max_transient_failures=2,
    )
    guard = HaltGuard(state_path=settings.state_path, max_transient_failures=2)
    backend = YamlBackend(settings.store_path)

    asyncio.run(run_unlocker(settings, guard, backend=backend, node=HangingChain()))

    assert not guard.halted
    assert guard.status().consecutive_transient_failures == 1

    asyncio.run(run_unlocker(settings, guard, backend=backend, node=HangingChain()))

    assert guard.halted
    assert guard.status().error_type == "CollaboratorTimeout"
    assert "unlocker tick" in guard.status().context
