"""Build dispatcher: runs one deployment build to a terminal outcome."""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable

from sitedeploy.deploy.strategies.base import BaseBuildStrategy
from sitedeploy.deploy.sync import ArtifactSynchronizer
from sitedeploy.lib.errors import DeploymentError
from sitedeploy.lib.logging_config import get_logger
from sitedeploy.models.config import DispatcherConfig
from sitedeploy.models.deployment import BuildJob, BuildStatus, Outcome, output_prefix

logger = get_logger(__name__)


class BuildDispatcher:
    """Start a build through a strategy and poll it until it finishes.

    The strategy is fixed for the lifetime of the dispatcher. Each call to
    ``dispatch`` owns exactly one BuildJob and returns exactly one Outcome.

    Example:
        >>> dispatcher = BuildDispatcher(strategy, config.dispatcher)
        >>> outcome = await dispatcher.dispatch("abc123")
        >>> outcome.ok
        True
    """

    def __init__(
        self,
        strategy: BaseBuildStrategy,
        config: DispatcherConfig,
        synchronizer: ArtifactSynchronizer | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the dispatcher.

        Args:
            strategy: Build strategy used for every task
            config: Dispatcher settings
            synchronizer: Storage access for the completed-build check
            clock: Monotonic clock used for deadlines
        """
        self.strategy = strategy
        self._config = config
        self._sync = synchronizer
        self._clock = clock

    async def dispatch(
        self,
        task_id: str,
        *,
        deadline_seconds: float | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> Outcome:
        """Build a deployment and report the outcome.

        Args:
            task_id: Deployment id to build
            deadline_seconds: Overrides the configured build deadline
            cancel_event: When set, the running build is stopped

        Returns:
            SUCCEEDED, FAILED, DEADLINE_EXCEEDED or CANCELLED outcome
        """
        if await self._already_built(task_id):
            logger.info(f"Build output for {task_id} already exists, skipping build")
            return Outcome.success()

        if deadline_seconds is None:
            deadline_seconds = self._config.build_deadline_seconds
        deadline = (
            self._clock() + deadline_seconds if deadline_seconds is not None else None
        )

        try:
            job = await self.strategy.start(task_id)
        except DeploymentError as exc:
            logger.error(f"Error starting build for {task_id}: {exc}")
            return Outcome.failure(f"build start failed: {exc.message}")
        except Exception as exc:
            logger.exception(f"Unexpected error starting build for {task_id}")
            return Outcome.failure(f"build start failed: {exc}")

        logger.info(f"Build {job.external_id} for {task_id} is {job.status.value}")

        while not job.is_terminal:
            interval = self._config.poll_interval_seconds
            if deadline is not None:
                interval = max(0.0, min(interval, deadline - self._clock()))
            await self._wait(interval, cancel_event)

            if cancel_event is not None and cancel_event.is_set():
                await self._stop(job)
                return Outcome.cancelled(f"build {job.external_id} was cancelled")

            if deadline is not None and self._clock() >= deadline:
                await self._stop(job)
                return Outcome.deadline_exceeded(
                    f"build {job.external_id} exceeded {deadline_seconds}s deadline"
                )

            try:
                job = await self.strategy.get_status(job)
            except DeploymentError as exc:
                logger.error(f"Error checking status of {job.external_id}: {exc}")
                return Outcome.failure(f"status query failed: {exc.message}")
            except Exception as exc:
                logger.exception(f"Unexpected error checking {job.external_id}")
                return Outcome.failure(f"status query failed: {exc}")

        return self._to_outcome(job)

    @staticmethod
    def _to_outcome(job: BuildJob) -> Outcome:
        if job.status == BuildStatus.SUCCEEDED:
            logger.info(f"Build {job.external_id} for {job.task_id} SUCCEEDED")
            return Outcome.success()
        logger.error(
            f"Build {job.external_id} for {job.task_id} FAILED ({job.detail or '-'})"
        )
        return Outcome.failure(job.detail or f"build {job.external_id} failed")

    async def _already_built(self, task_id: str) -> bool:
        if not self._config.skip_completed or self._sync is None:
            return False
        marker = f"{output_prefix(task_id)}{self._config.index_document}"
        try:
            return await self._sync.exists(marker)
        except DeploymentError as exc:
            logger.warning(f"Could not check for existing output of {task_id}: {exc}")
            return False

    async def _stop(self, job: BuildJob) -> None:
        try:
            await self.strategy.stop(job)
        except DeploymentError as exc:
            logger.error(f"Failed to stop build {job.external_id}: {exc}")

    @staticmethod
    async def _wait(seconds: float, cancel_event: asyncio.Event | None) -> None:
        if cancel_event is None:
            await asyncio.sleep(seconds)
            return
        try:
            await asyncio.wait_for(cancel_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass
