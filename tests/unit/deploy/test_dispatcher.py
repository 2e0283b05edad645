"""Unit tests for BuildDispatcher."""

from __future__ import annotations

import asyncio
from collections.abc import Iterable
from unittest.mock import AsyncMock

import pytest

from sitedeploy.deploy.dispatcher import BuildDispatcher
from sitedeploy.deploy.strategies.base import BaseBuildStrategy
from sitedeploy.deploy.sync import ArtifactSynchronizer
from sitedeploy.lib.errors import DeploymentError
from sitedeploy.models.config import DispatcherConfig
from sitedeploy.models.deployment import BuildJob, BuildStatus, OutcomeKind


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


class ScriptedStrategy(BaseBuildStrategy):
    """Strategy whose status polls follow a fixed script."""

    name = "scripted"

    def __init__(
        self,
        statuses: Iterable[BuildStatus | Exception],
        start_error: Exception | None = None,
        clock: FakeClock | None = None,
        seconds_per_poll: float = 0.0,
    ) -> None:
        self._statuses = list(statuses)
        self._start_error = start_error
        self._clock = clock
        self._seconds_per_poll = seconds_per_poll
        self.started: list[str] = []
        self.polls = 0
        self.stopped: list[str] = []

    async def start(self, task_id: str) -> BuildJob:
        if self._start_error is not None:
            raise self._start_error
        self.started.append(task_id)
        return BuildJob(external_id=f"build-{task_id}", task_id=task_id)

    async def get_status(self, job: BuildJob) -> BuildJob:
        self.polls += 1
        if self._clock is not None:
            self._clock.now += self._seconds_per_poll
        step = self._statuses.pop(0) if self._statuses else BuildStatus.RUNNING
        if isinstance(step, Exception):
            raise step
        job.advance(step, detail=step.value)
        return job

    async def stop(self, job: BuildJob) -> None:
        self.stopped.append(job.external_id)


def make_dispatcher(
    strategy: BaseBuildStrategy, **config: object
) -> BuildDispatcher:
    return BuildDispatcher(
        strategy, DispatcherConfig(poll_interval_seconds=0, **config)
    )


class TestDispatchOutcomes:
    """Tests for terminal outcomes of a dispatch."""

    @pytest.mark.asyncio
    async def test_polls_until_success(self) -> None:
        strategy = ScriptedStrategy(
            [BuildStatus.PENDING, BuildStatus.RUNNING, BuildStatus.SUCCEEDED]
        )

        outcome = await make_dispatcher(strategy).dispatch("abc123")

        assert outcome.ok
        assert strategy.started == ["abc123"]
        assert strategy.polls == 3

    @pytest.mark.asyncio
    async def test_fault_on_first_poll_stops_polling(self) -> None:
        """A terminal failure is reported once and never re-polled."""
        strategy = ScriptedStrategy(
            [BuildStatus.FAILED, BuildStatus.SUCCEEDED, BuildStatus.SUCCEEDED]
        )

        outcome = await make_dispatcher(strategy).dispatch("abc123")

        assert outcome.kind == OutcomeKind.FAILED
        assert strategy.polls == 1
        assert strategy.stopped == []

    @pytest.mark.asyncio
    async def test_job_terminal_after_start_is_not_polled(self) -> None:
        class DoneOnStart(ScriptedStrategy):
            async def start(self, task_id: str) -> BuildJob:
                return BuildJob(
                    external_id="local-1",
                    task_id=task_id,
                    status=BuildStatus.SUCCEEDED,
                )

        strategy = DoneOnStart([])

        outcome = await make_dispatcher(strategy).dispatch("abc123")

        assert outcome.ok
        assert strategy.polls == 0

    @pytest.mark.asyncio
    async def test_start_failure_is_single_failure(self) -> None:
        strategy = ScriptedStrategy(
            [], start_error=DeploymentError("start", "quota exceeded")
        )

        outcome = await make_dispatcher(strategy).dispatch("abc123")

        assert outcome.kind == OutcomeKind.FAILED
        assert outcome.reason == "build start failed: quota exceeded"
        assert strategy.polls == 0

    @pytest.mark.asyncio
    async def test_unexpected_start_error_is_failure(self) -> None:
        strategy = ScriptedStrategy([], start_error=RuntimeError("boom"))

        outcome = await make_dispatcher(strategy).dispatch("abc123")

        assert outcome.kind == OutcomeKind.FAILED
        assert "boom" in (outcome.reason or "")

    @pytest.mark.asyncio
    async def test_status_query_failure_ends_dispatch(self) -> None:
        strategy = ScriptedStrategy(
            [BuildStatus.RUNNING, DeploymentError("status", "throttled")]
        )

        outcome = await make_dispatcher(strategy).dispatch("abc123")

        assert outcome.kind == OutcomeKind.FAILED
        assert outcome.reason == "status query failed: throttled"
        assert strategy.polls == 2


class TestDispatchDeadline:
    """Tests for build deadlines and cancellation."""

    @pytest.mark.asyncio
    async def test_deadline_stops_build(self) -> None:
        clock = FakeClock()
        strategy = ScriptedStrategy([], clock=clock, seconds_per_poll=3)
        dispatcher = BuildDispatcher(
            strategy, DispatcherConfig(poll_interval_seconds=0), clock=clock
        )

        outcome = await dispatcher.dispatch("abc123", deadline_seconds=5)

        assert outcome.kind == OutcomeKind.DEADLINE_EXCEEDED
        assert strategy.polls == 2
        assert strategy.stopped == ["build-abc123"]

    @pytest.mark.asyncio
    async def test_configured_deadline_applies(self) -> None:
        clock = FakeClock()
        strategy = ScriptedStrategy([], clock=clock, seconds_per_poll=10)
        dispatcher = BuildDispatcher(
            strategy,
            DispatcherConfig(poll_interval_seconds=0, build_deadline_seconds=15),
            clock=clock,
        )

        outcome = await dispatcher.dispatch("abc123")

        assert outcome.kind == OutcomeKind.DEADLINE_EXCEEDED

    @pytest.mark.asyncio
    async def test_cancel_event_stops_build(self) -> None:
        strategy = ScriptedStrategy([])
        cancel = asyncio.Event()
        cancel.set()

        outcome = await make_dispatcher(strategy).dispatch(
            "abc123", cancel_event=cancel
        )

        assert outcome.kind == OutcomeKind.CANCELLED
        assert strategy.stopped == ["build-abc123"]
        assert strategy.polls == 0

    @pytest.mark.asyncio
    async def test_stop_failure_does_not_change_outcome(self) -> None:
        strategy = ScriptedStrategy([])
        strategy.stop = AsyncMock(  # type: ignore[method-assign]
            side_effect=DeploymentError("stop", "already finished")
        )
        cancel = asyncio.Event()
        cancel.set()

        outcome = await make_dispatcher(strategy).dispatch(
            "abc123", cancel_event=cancel
        )

        assert outcome.kind == OutcomeKind.CANCELLED


class TestSkipCompleted:
    """Tests for skipping deployments whose output already exists."""

    @pytest.mark.asyncio
    async def test_existing_output_skips_build(
        self, fake_s3, synchronizer: ArtifactSynchronizer
    ) -> None:
        fake_s3.put("builds/abc123/index.html", b"<html/>")
        strategy = ScriptedStrategy([BuildStatus.SUCCEEDED])
        dispatcher = BuildDispatcher(
            strategy,
            DispatcherConfig(poll_interval_seconds=0, skip_completed=True),
            synchronizer,
        )

        outcome = await dispatcher.dispatch("abc123")

        assert outcome.ok
        assert strategy.started == []

    @pytest.mark.asyncio
    async def test_missing_output_builds(
        self, synchronizer: ArtifactSynchronizer
    ) -> None:
        strategy = ScriptedStrategy([BuildStatus.SUCCEEDED])
        dispatcher = BuildDispatcher(
            strategy,
            DispatcherConfig(poll_interval_seconds=0, skip_completed=True),
            synchronizer,
        )

        outcome = await dispatcher.dispatch("abc123")

        assert outcome.ok
        assert strategy.started == ["abc123"]

    @pytest.mark.asyncio
    async def test_disabled_by_default(
        self, fake_s3, synchronizer: ArtifactSynchronizer
    ) -> None:
        fake_s3.put("builds/abc123/index.html", b"<html/>")
        strategy = ScriptedStrategy([BuildStatus.SUCCEEDED])
        dispatcher = BuildDispatcher(
            strategy, DispatcherConfig(poll_interval_seconds=0), synchronizer
        )

        await dispatcher.dispatch("abc123")

        assert strategy.started == ["abc123"]
