"""CLI entrypoint for throttle-requests."""

import logging
from collections.abc import Iterable

import rich_click as click

from throttle_requests import __version__
from throttle_requests.controllers import (
    BatchCliController,
    BatchCommandError,
    ContributorsCommand,
    SimulateCommand,
)

click.rich_click.USE_MARKDOWN = True
BATCH_CONTROLLER = BatchCliController()

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


@click.group()
@click.version_option(version=__version__, prog_name="throttle-requests")
@click.option(
    "--log-level",
    type=click.Choice(_LOG_LEVELS, case_sensitive=False),
    default="WARNING",
    show_default=True,
    help="Logging level for diagnostics written to stderr.",
)
def throttle_requests(log_level: str) -> None:
    """Run batches of requests with bounded concurrency and live progress."""

    logging.basicConfig(
        level=log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@throttle_requests.command("contributors")
@click.option("--owner", default=None, help="GitHub owner. Defaults to DefinitelyTyped.")
@click.option("--repo", default=None, help="GitHub repository. Defaults to DefinitelyTyped.")
@click.option(
    "--limit",
    type=click.IntRange(min=1),
    default=None,
    help="Max concurrent profile requests (default 6 or THROTTLE_REQUESTS_LIMIT).",
)
@click.option(
    "--unit-timeout",
    "unit_timeout_seconds",
    type=click.FloatRange(min=0, min_open=True),
    default=None,
    help="Fail a single profile request after this many seconds.",
)
def contributors(
    owner: str | None,
    repo: str | None,
    limit: int | None,
    unit_timeout_seconds: float | None,
) -> None:
    """Load every contributor of a GitHub repository and print `login - blog`."""

    _emit_lines(
        BATCH_CONTROLLER.load_contributors(
            ContributorsCommand(
                owner=owner,
                repo=repo,
                limit=limit,
                unit_timeout_seconds=unit_timeout_seconds,
            ),
        ),
    )


@throttle_requests.command("simulate")
@click.option(
    "--count",
    type=click.IntRange(min=0),
    default=20,
    show_default=True,
    help="Number of synthetic operations.",
)
@click.option(
    "--limit",
    type=click.IntRange(min=1),
    default=None,
    help="Max concurrent operations (default 6 or THROTTLE_REQUESTS_LIMIT).",
)
@click.option(
    "--failure-rate",
    type=click.FloatRange(min=0.0, max=1.0),
    default=0.1,
    show_default=True,
    help="Probability that an operation fails.",
)
@click.option(
    "--max-delay",
    "max_delay_seconds",
    type=click.FloatRange(min=0.0),
    default=0.2,
    show_default=True,
    help="Upper bound of the random per-operation latency, in seconds.",
)
@click.option("--seed", type=int, default=None, help="Random seed for a reproducible run.")
@click.option(
    "--unit-timeout",
    "unit_timeout_seconds",
    type=click.FloatRange(min=0, min_open=True),
    default=None,
    help="Fail a single operation after this many seconds.",
)
def simulate(  # noqa: PLR0913
    count: int,
    limit: int | None,
    failure_rate: float,
    max_delay_seconds: float,
    seed: int | None,
    unit_timeout_seconds: float | None,
) -> None:
    """Run synthetic operations offline to watch the scheduler and progress."""

    _emit_lines(
        BATCH_CONTROLLER.simulate(
            SimulateCommand(
                count=count,
                limit=limit,
                failure_rate=failure_rate,
                max_delay_seconds=max_delay_seconds,
                seed=seed,
                unit_timeout_seconds=unit_timeout_seconds,
            ),
        ),
    )


def _emit_lines(lines: Iterable[str]) -> None:
    try:
        for line in lines:
            click.echo(line)
    except BatchCommandError as error:
        raise click.ClickException(str(error)) from error


if __name__ == "__main__":  # pragma: no cover
    throttle_requests()
