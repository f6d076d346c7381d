"""Scenario runner.

The runner drives one run through its states:

- `idle -> loading -> executing -> completed`;
- `executing -> aborted` on an aborting outcome or cancellation;
- `loading -> completed` with a single synthetic outcome on load failure.

Load failures never propagate: they produce a result holding a single
Error outcome so that callers always have a report to print.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from time import perf_counter
from typing import TYPE_CHECKING

from stepwise.errors import NotFoundError, ParseError, PropertiesError, SchemaError
from stepwise.properties import PropertySet
from stepwise.schema import Result, RunState, Status, StepOutcome
from stepwise.settings import RunnerSettings

from .executor import StepExecutor
from .loader import ScenarioLoader
from .registry import CapabilityRegistry

if TYPE_CHECKING:
    from collections.abc import Iterable
    from threading import Event

if TYPE_CHECKING:
    from stepwise.schema import Scenario

logger = logging.getLogger(__name__)

#: Kind of the synthetic outcome reporting a load failure.
LOAD_KIND = 'load'

LOAD_ERRORS = (NotFoundError, ParseError, SchemaError, PropertiesError)


class ScenarioRunner:
    """Runner executing scenarios of one workspace.

    A runner holds no per-run state and may execute several runs
    concurrently. Every run owns its property set.
    """

    def __init__(self, workspace: Path | str = '.',
                 properties_file: Path | str | None = None,
                 settings: RunnerSettings | None = None, *,
                 registry: CapabilityRegistry | None = None) -> None:
        """Initialize the runner.

        Args:
            workspace: Workspace root. Scenario paths are relative to it.
            properties_file: Optional properties file overriding the
                workspace `local.properties`.
            settings: Runner settings. Resolved from the environment if omitted.
            registry: Capability registry. Builtins and plugins if omitted.
        """
        self.workspace = Path(workspace)
        self.properties_file = Path(properties_file) if properties_file else None
        self.settings = settings or RunnerSettings()
        self.registry = registry or CapabilityRegistry(strict=self.settings.strict_plugins)

        self.loader = ScenarioLoader(self.registry)
        self.executor = StepExecutor(
            self.registry,
            workspace=self.workspace,
            settings=self.settings,
        )

    def load_properties(self) -> PropertySet:
        """Build a fresh property set from the properties files.

        The workspace `local.properties` (if present) is overridden by
        the explicitly supplied properties file.

        Raises:
            NotFoundError: If the supplied properties file does not exist.
            PropertiesError: If a properties file is malformed.
        """
        paths: list[Path] = []

        local = self.workspace / self.settings.local_properties
        if local.is_file():
            paths.append(local)

        if self.properties_file:
            paths.append(self.properties_file)

        return PropertySet.from_files(*paths)

    def run(self, path: Path | str, *, cancel: 'Event | None' = None) -> Result:
        """Load and execute a scenario.

        Args:
            path: Scenario path relative to the workspace.
            cancel: Cooperative cancellation signal.

        Returns:
            Result of the run. Load failures are reported as a single
            Error outcome instead of being raised.
        """
        source = str(path)
        self._transition(source, RunState.IDLE, RunState.LOADING)

        started = perf_counter()
        try:
            properties = self.load_properties()
            scenario = self.loader.load(path, self.workspace)

        except LOAD_ERRORS as error:
            logger.warning('Failed to load %s: %s', source, error.message)
            self._transition(source, RunState.LOADING, RunState.COMPLETED)

            return Result(
                source=source,
                outcomes=(StepOutcome(
                    index=0,
                    kind=LOAD_KIND,
                    status=Status.ERROR,
                    message=error.message,
                    elapsed=perf_counter() - started,
                ),),
                state=RunState.COMPLETED,
            )

        return self.run_scenario(scenario, properties, cancel=cancel, source=source)

    def run_scenario(self, scenario: 'Scenario', properties: PropertySet, *,
                     cancel: 'Event | None' = None,
                     source: str | None = None) -> Result:
        """Execute an already loaded scenario.

        Args:
            scenario: Loaded scenario.
            properties: Property set owned by this run.
            cancel: Cooperative cancellation signal checked before every step.
            source: Source reported in the result. Defaults to the
                scenario source path or name.

        Returns:
            Result of the run.
        """
        source = source or str(scenario.source or scenario.name)
        self._transition(source, RunState.LOADING, RunState.EXECUTING)

        outcomes: list[StepOutcome] = []
        state, abort_reason = RunState.COMPLETED, None

        for index, step in enumerate(scenario.steps, start=1):
            if cancel is not None and cancel.is_set():
                state, abort_reason = RunState.ABORTED, f'run cancelled before step {index}'
                break

            outcome = self.executor.execute(step, properties, index=index, cancel=cancel)
            outcomes.append(outcome)

            if self.should_abort(outcome):
                state = RunState.ABORTED
                abort_reason = f'aborted after step {index} ended with {outcome.status.upper()}'
                break

        self._transition(source, RunState.EXECUTING, state)
        if abort_reason:
            logger.warning('Run of %s %s', source, abort_reason)

        return Result(
            source=source,
            scenario=scenario,
            outcomes=tuple(outcomes),
            state=state,
            abort_reason=abort_reason,
        )

    def run_batch(self, paths: 'Iterable[Path | str]', *,
                  max_workers: int | None = None,
                  cancel: 'Event | None' = None) -> list[Result]:
        """Execute independent runs in parallel.

        Every run loads its own properties and scenario. Steps within one
        run are still executed sequentially.

        Returns:
            Results in the order of `paths`.
        """
        with ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix='stepwise') as pool:
            return list(pool.map(lambda path: self.run(path, cancel=cancel), paths))

    def should_abort(self, outcome: StepOutcome) -> bool:
        """Apply the continuation policy to an outcome."""
        if outcome.status == Status.ERROR:
            return self.settings.abort_on_error

        if outcome.status == Status.FAIL:
            return self.settings.abort_on_failure

        return False

    @staticmethod
    def _transition(source: str, current: RunState, target: RunState) -> None:
        logger.debug('Run of %s: %s -> %s', source, current, target)
