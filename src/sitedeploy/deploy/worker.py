"""Wiring of the deployment worker components from configuration."""

from __future__ import annotations

import asyncio
import signal
from dataclasses import dataclass

from sitedeploy.deploy.consumer import QueueConsumer
from sitedeploy.deploy.dispatcher import BuildDispatcher
from sitedeploy.deploy.strategies import create_strategy
from sitedeploy.deploy.sync import ArtifactSynchronizer
from sitedeploy.lib.aws import create_client
from sitedeploy.lib.logging_config import get_logger
from sitedeploy.models.config import WorkerConfig

logger = get_logger(__name__)


@dataclass
class Worker:
    """The wired components of one worker process."""

    config: WorkerConfig
    synchronizer: ArtifactSynchronizer
    dispatcher: BuildDispatcher
    consumer: QueueConsumer


def build_synchronizer(config: WorkerConfig) -> ArtifactSynchronizer:
    """Create the synchronizer for the configured bucket."""
    concurrency = config.container.upload_concurrency
    s3_client = create_client(
        config.aws, "s3", max_pool_connections=max(10, concurrency)
    )
    return ArtifactSynchronizer(config.bucket, s3_client, concurrency)


def build_dispatcher(
    config: WorkerConfig, synchronizer: ArtifactSynchronizer
) -> BuildDispatcher:
    """Create a dispatcher with the configured strategy and storage access."""
    strategy = create_strategy(config, synchronizer)
    logger.debug(f"Using {strategy.name} build strategy")
    return BuildDispatcher(strategy, config.dispatcher, synchronizer)


def build_worker(config: WorkerConfig) -> Worker:
    """Create every worker component from one configuration value."""
    synchronizer = build_synchronizer(config)
    dispatcher = build_dispatcher(config, synchronizer)
    consumer = QueueConsumer(config, dispatcher)
    return Worker(
        config=config,
        synchronizer=synchronizer,
        dispatcher=dispatcher,
        consumer=consumer,
    )


async def run_worker(worker: Worker, *, once: bool = False) -> None:
    """Run the consumer loop until SIGINT/SIGTERM (or one poll if ``once``)."""
    if once:
        await worker.consumer.poll_once()
        return

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            # add_signal_handler is unavailable on Windows event loops
            pass

    await worker.consumer.run_forever(stop_event)
