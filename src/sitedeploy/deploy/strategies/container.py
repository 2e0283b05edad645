"""Local containerized build strategy.

Downloads the source tree into a staging directory, runs the build recipe in
a Docker container with the staging directory mounted, then uploads the
output directory to storage.
"""

from __future__ import annotations

import asyncio
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import docker
from docker.errors import DockerException, ImageNotFound
from ulid import ULID

from sitedeploy.config.defaults import CONTAINER_WORKDIR
from sitedeploy.deploy.strategies.base import BaseBuildStrategy
from sitedeploy.deploy.sync import ArtifactSynchronizer
from sitedeploy.lib.errors import DeploymentError, DockerNotAvailableError
from sitedeploy.lib.logging_config import get_logger
from sitedeploy.models.config import WorkerConfig
from sitedeploy.models.deployment import (
    BuildJob,
    BuildStatus,
    UploadReport,
    output_prefix,
    source_prefix,
)

logger = get_logger(__name__)


@dataclass
class ContainerRunResult:
    """Result of running the build recipe in a container.

    Attributes:
        exit_code: Container exit status; zero means the build succeeded
        log_lines: Combined stdout/stderr of the build
    """

    exit_code: int
    log_lines: list[str] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.exit_code == 0


@dataclass
class LocalBuild:
    """Bookkeeping for one in-flight local build.

    Attributes:
        task: Background task running download, build and upload
        container: Build container once created, so ``stop`` can kill it
        stopped: Set by ``stop``; no container is started afterwards
    """

    task: asyncio.Task[None] | None = None
    container: Any | None = None
    stopped: bool = False


class ContainerBuildStrategy(BaseBuildStrategy):
    """Build deployments locally inside Docker containers.

    ``start`` prepares the staging directory and launches the
    download/build/upload sequence in the background. The returned job is
    RUNNING; ``get_status`` reports the result once the sequence has
    finished, and ``stop`` kills the build container.

    Example:
        >>> strategy = ContainerBuildStrategy(config, synchronizer)
        >>> job = await strategy.start("abc123")
        >>> job.status
        <BuildStatus.RUNNING: 'RUNNING'>
    """

    name = "container"

    def __init__(
        self,
        config: WorkerConfig,
        synchronizer: ArtifactSynchronizer,
        client: Any | None = None,
    ) -> None:
        """Initialize the container strategy.

        Args:
            config: Worker configuration
            synchronizer: Transfers source and output trees
            client: Optional Docker client (connects from environment if None)

        Raises:
            DockerNotAvailableError: If Docker daemon is not available
        """
        self._config = config
        self._sync = synchronizer
        self._builds: dict[str, LocalBuild] = {}
        if client is None:
            try:
                client = docker.from_env()  # type: ignore[attr-defined]
            except DockerException as e:
                raise DockerNotAvailableError(operation="init") from e
        self.client = client

    def staging_root(self, task_id: str) -> Path:
        """Return the local directory used to build a deployment.

        Raises:
            DeploymentError: If the id does not name a directory directly
                inside the staging directory
        """
        base = Path(self._config.container.staging_dir).resolve()
        root = (base / task_id).resolve()
        if root.parent != base:
            raise DeploymentError(
                operation="build",
                message=f"Deployment id {task_id!r} escapes the staging directory",
            )
        return root

    async def start(self, task_id: str) -> BuildJob:
        """Stage a deployment and launch its build in the background."""
        staging = self.staging_root(task_id)
        job = BuildJob(
            external_id=f"local-{ULID()}",
            task_id=task_id,
            status=BuildStatus.RUNNING,
        )
        shutil.rmtree(staging, ignore_errors=True)
        staging.mkdir(parents=True, exist_ok=True)

        build = LocalBuild()
        build.task = asyncio.create_task(self._execute(job, staging, build))
        self._builds[job.external_id] = build
        logger.info(f"[Container] Build {job.external_id} started for {task_id}")
        return job

    async def get_status(self, job: BuildJob) -> BuildJob:
        """Return the job, terminal once the background sequence has finished.

        Raises:
            Exception: Whatever unexpected error ended the background sequence
        """
        build = self._builds.get(job.external_id)
        if build is None or build.task is None or not build.task.done():
            return job
        del self._builds[job.external_id]
        build.task.result()
        return job

    async def stop(self, job: BuildJob) -> None:
        """Kill the build container and wait for the staging cleanup."""
        build = self._builds.pop(job.external_id, None)
        if build is None:
            return
        build.stopped = True
        container = build.container
        if container is not None:
            try:
                await asyncio.to_thread(container.kill)
            except DockerException as e:
                # The container may already have exited
                logger.warning(f"[Container] Failed to kill {job.external_id}: {e}")
        if build.task is not None:
            await asyncio.gather(build.task, return_exceptions=True)
        logger.info(f"[Container] Build {job.external_id} stopped")

    async def _execute(self, job: BuildJob, staging: Path, build: LocalBuild) -> None:
        task_id = job.task_id
        try:
            entries = await self._sync.download(source_prefix(task_id), staging)
            logger.info(f"[Container] Staged {len(entries)} file(s) for {task_id}")
            if build.stopped:
                job.advance(BuildStatus.FAILED, detail="build stopped")
                return

            result = await asyncio.to_thread(self.run_container, staging, build)
            if not result.succeeded:
                for line in result.log_lines[-20:]:
                    logger.info(f"[Container] {task_id}: {line}")
                detail = (
                    "build stopped"
                    if build.stopped
                    else f"build container exited with code {result.exit_code}"
                )
                job.advance(BuildStatus.FAILED, detail=detail)
                return

            output_dir = staging / self._config.recipe.output_dir
            if not output_dir.is_dir():
                job.advance(
                    BuildStatus.FAILED,
                    detail=(
                        f"build produced no '{self._config.recipe.output_dir}' "
                        "directory"
                    ),
                )
                return

            report = await self.upload_output(task_id, output_dir)
            if report.ok:
                job.advance(
                    BuildStatus.SUCCEEDED,
                    detail=f"uploaded {len(report.uploaded)} file(s)",
                )
            else:
                job.advance(
                    BuildStatus.FAILED,
                    detail=f"failed to upload: {', '.join(sorted(report.failed))}",
                )
        except DeploymentError as e:
            logger.error(f"[Container] Build for {task_id} failed: {e}")
            job.advance(BuildStatus.FAILED, detail=e.message)
        finally:
            if not self._config.container.keep_staging:
                shutil.rmtree(staging, ignore_errors=True)

    def run_container(
        self, staging: Path, build: LocalBuild | None = None
    ) -> ContainerRunResult:
        """Run the install and build commands in a container.

        Blocks until the container exits. When ``build`` is given the
        container is recorded on it, and killed at once if the build was
        stopped while the container was being created.

        Raises:
            DeploymentError: If the container cannot be created or run
        """
        recipe = self._config.recipe
        script = f"{recipe.install_command} && {recipe.build_command}"
        image = self._config.container.image

        try:
            container = self.client.containers.run(
                image,
                command=["sh", "-c", script],
                working_dir=CONTAINER_WORKDIR,
                volumes={str(staging): {"bind": CONTAINER_WORKDIR, "mode": "rw"}},
                environment=dict(recipe.environment),
                detach=True,
            )
        except ImageNotFound as e:
            raise DeploymentError(
                operation="build",
                message=f"Build image not found: {image}",
            ) from e
        except DockerException as e:
            raise DeploymentError(
                operation="build",
                message=f"Docker error starting build container: {e}",
            ) from e

        try:
            if build is not None:
                build.container = container
                if build.stopped:
                    container.kill()
            status = container.wait()
            raw_logs = container.logs(stdout=True, stderr=True)
        except DockerException as e:
            raise DeploymentError(
                operation="build",
                message=f"Docker error during build: {e}",
            ) from e
        finally:
            try:
                container.remove(force=True)
            except DockerException as e:
                logger.warning(f"[Container] Failed to remove container: {e}")

        if isinstance(raw_logs, bytes):
            raw_logs = raw_logs.decode("utf-8", errors="replace")
        return ContainerRunResult(
            exit_code=int(status.get("StatusCode", 1)),
            log_lines=str(raw_logs).splitlines(),
        )

    async def upload_output(self, task_id: str, output_dir: Path) -> UploadReport:
        """Upload the output tree, retrying only the files that failed."""
        targets = self._sync.tree_targets(output_dir, output_prefix(task_id))
        report = await self._sync.upload_files(targets)

        retries = self._config.container.upload_retries
        attempt = 0
        while report.failed and attempt < retries:
            attempt += 1
            logger.warning(
                f"[Container] Retrying {len(report.failed)} failed upload(s) "
                f"for {task_id} (attempt {attempt}/{retries})"
            )
            retry = await self._sync.upload_files(
                {key: targets[key] for key in report.failed}
            )
            report = UploadReport(
                uploaded=report.uploaded + retry.uploaded,
                failed=retry.failed,
            )
        return report
