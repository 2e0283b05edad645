"""sitedeploy command-line entry point."""

import click

from sitedeploy import __version__
from sitedeploy.cli.commands.worker import build, buildspec, worker


@click.group()
@click.version_option(__version__, prog_name="sitedeploy")
def main() -> None:
    """sitedeploy: build repositories and publish them as static sites."""


main.add_command(worker)
main.add_command(build)
main.add_command(buildspec)


if __name__ == "__main__":
    main()
