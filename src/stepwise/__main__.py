"""Command-line interface of stepwise.

Runs or validates a scenario of a workspace and prints the line-based
report. The exit code of `run` reflects the overall status: 0 on Pass,
1 on Fail and 2 on Error.
"""

import logging
from pathlib import Path

from click import Context, FloatRange, echo, group, option, pass_context
from click import Path as PathParam

from stepwise.core import CapabilityRegistry, ScenarioLoader, ScenarioRunner
from stepwise.errors import StepwiseError
from stepwise.schema import Status
from stepwise.settings import RunnerSettings

EXIT_CODES = {
    Status.PASS: 0,
    Status.FAIL: 1,
    Status.ERROR: 2,
}

LOG_FORMAT = '%(asctime)s %(levelname)s %(name)s: %(message)s'

WorkspacePath = PathParam(
    exists=True,
    file_okay=False,
    dir_okay=True,
    path_type=Path,
)

FilePath = PathParam(
    dir_okay=False,
    path_type=Path,
)


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format=LOG_FORMAT,
    )


@group(help='Scenario runner for YAML-based test definitions.')
def cli() -> None:
    """Root CLI group for stepwise tools."""
    return None


@cli.command(
    name='run',
    help='Run a scenario and print its report.',
)
@option(
    '-t', '--test',
    type=FilePath,
    prompt='Test to run',
    help='Scenario path relative to the workspace.',
)
@option(
    '-w', '--workspace',
    type=WorkspacePath,
    default=Path(),
    show_default=True,
    help='Workspace root directory.',
)
@option(
    '-p', '--properties',
    type=FilePath,
    default=None,
    help='Properties file overriding the workspace local.properties.',
)
@option(
    '--timeout',
    type=FloatRange(min=0, min_open=True),
    default=None,
    help='Default step timeout in seconds, greater than zero.',
)
@option(
    '-v', '--verbose',
    is_flag=True,
    default=False,
    help='Log execution details to standard error.',
)
@pass_context
def run_scenario(ctx: Context, test: Path, workspace: Path,
                 properties: Path | None, timeout: float | None,
                 verbose: bool) -> None:
    """Run a scenario and exit with a status-dependent code."""
    _configure_logging(verbose)

    settings = RunnerSettings(default_timeout=timeout) if timeout is not None else RunnerSettings()
    runner = ScenarioRunner(workspace, properties, settings)

    result = runner.run(test)
    for line in result.report_lines:
        echo(line)

    ctx.exit(EXIT_CODES[result.status])


@cli.command(
    name='validate',
    help='Load a scenario without executing it.',
)
@option(
    '-t', '--test',
    type=FilePath,
    prompt='Test to validate',
    help='Scenario path relative to the workspace.',
)
@option(
    '-w', '--workspace',
    type=WorkspacePath,
    default=Path(),
    show_default=True,
    help='Workspace root directory.',
)
@pass_context
def validate_scenario(ctx: Context, test: Path, workspace: Path) -> None:
    """Load a scenario and report loading errors."""
    settings = RunnerSettings()
    loader = ScenarioLoader(CapabilityRegistry(strict=settings.strict_plugins))

    try:
        scenario = loader.load(test, workspace)
    except StepwiseError as error:
        echo(f'{error}', err=True)
        ctx.exit(EXIT_CODES[Status.ERROR])

    echo(f'{scenario.name}: {len(scenario.steps)} steps')


@cli.command(
    name='kinds',
    help='List registered step kinds and assertion operators.',
)
def list_kinds() -> None:
    """Print capabilities and comparators known to the registry."""
    registry = CapabilityRegistry(strict=RunnerSettings().strict_plugins)

    for kind in sorted(registry.capabilities):
        echo(f'action {kind}')

    for name, comparator in sorted(registry.comparators.items()):
        aliases = ', '.join(comparator.aliases)
        echo(f'assert {name}' + (f' ({aliases})' if aliases else ''))


if __name__ == '__main__':
    cli()
