"""CLI commands for running the deployment worker.

Implements 'sitedeploy worker' (consume the task queue), 'sitedeploy build'
(build one deployment without the queue) and 'sitedeploy buildspec'.
"""

from __future__ import annotations

import asyncio
import sys
from collections.abc import Generator
from contextlib import contextmanager

import click
from pydantic import ValidationError

from sitedeploy.lib.errors import ConfigError, DeploymentError
from sitedeploy.lib.logging_config import get_logger, setup_logging
from sitedeploy.models.deployment import DeploymentTask

logger = get_logger(__name__)


def validate_task_id(ctx: click.Context, param: click.Parameter, value: str) -> str:
    """Check TASK_ID the same way queued tasks are checked."""
    try:
        return DeploymentTask(id=value).id
    except ValidationError as e:
        messages = "; ".join(error["msg"] for error in e.errors())
        raise click.BadParameter(messages) from e


CONFIG_ARGUMENT = click.argument(
    "config_file",
    type=click.Path(exists=True, dir_okay=False),
    required=False,
)


@contextmanager
def handle_worker_errors() -> Generator[None, None, None]:
    """Map sitedeploy errors to exit codes.

    Exit codes:
        2: Configuration error
        3: Deployment/execution error
    """
    try:
        yield
    except ConfigError as e:
        logger.error(f"Configuration error: {e}")
        click.secho("Error: Configuration error", fg="red", err=True)
        click.echo(f"  {e.message}", err=True)
        sys.exit(2)
    except DeploymentError as e:
        logger.error(f"Deployment error: {e}")
        click.secho(f"Error: {e.operation} failed", fg="red", err=True)
        click.echo(f"  {e.message}", err=True)
        sys.exit(3)


@click.command()
@CONFIG_ARGUMENT
@click.option(
    "--once",
    is_flag=True,
    help="Process at most one message and exit",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose debug logging")
@click.option("--quiet", "-q", is_flag=True, help="Only log warnings and errors")
def worker(config_file: str | None, once: bool, verbose: bool, quiet: bool) -> None:
    """Consume deployment tasks from the queue and build them.

    CONFIG_FILE is an optional YAML configuration file; settings can also
    come from environment variables or a .env file.

    Example:

        sitedeploy worker

        sitedeploy worker worker.yaml --verbose
    """
    setup_logging(verbose=verbose, quiet=quiet)

    with handle_worker_errors():
        from sitedeploy.config.loader import load_worker_config
        from sitedeploy.deploy.worker import build_worker, run_worker

        config = load_worker_config(config_file)
        logger.info(
            f"Worker configured: strategy={config.strategy.value}, "
            f"bucket={config.bucket}"
        )
        asyncio.run(run_worker(build_worker(config), once=once))


@click.command()
@click.argument("task_id", callback=validate_task_id)
@CONFIG_ARGUMENT
@click.option(
    "--strategy",
    type=click.Choice(["codebuild", "container"]),
    default=None,
    help="Override the configured build strategy",
)
@click.option(
    "--deadline",
    type=float,
    default=None,
    help="Abort the build after this many seconds",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose debug logging")
def build(
    task_id: str,
    config_file: str | None,
    strategy: str | None,
    deadline: float | None,
    verbose: bool,
) -> None:
    """Build a single deployment whose source is already in storage.

    TASK_ID is the deployment id; the source tree is read from repos/TASK_ID/.

    Example:

        sitedeploy build abc123 --strategy container
    """
    setup_logging(verbose=verbose)

    with handle_worker_errors():
        from sitedeploy.config.loader import load_worker_config
        from sitedeploy.deploy.worker import build_dispatcher, build_synchronizer
        from sitedeploy.models.config import BuildStrategyType

        config = load_worker_config(config_file)
        if strategy:
            config = config.model_copy(
                update={"strategy": BuildStrategyType(strategy)}
            )

        dispatcher = build_dispatcher(config, build_synchronizer(config))
        outcome = asyncio.run(dispatcher.dispatch(task_id, deadline_seconds=deadline))

    if outcome.ok:
        click.secho(f"Build for {task_id} succeeded", fg="green")
        return
    click.secho(f"Build for {task_id} {outcome.kind.value}", fg="red", err=True)
    if outcome.reason:
        click.echo(f"  {outcome.reason}", err=True)
    sys.exit(3)


@click.command()
@CONFIG_ARGUMENT
def buildspec(config_file: str | None) -> None:
    """Print the buildspec sent to the remote managed build."""
    with handle_worker_errors():
        from sitedeploy.config.loader import load_worker_config
        from sitedeploy.deploy.buildspec import render_buildspec

        config = load_worker_config(config_file)
        click.echo(render_buildspec(config.recipe), nl=False)
