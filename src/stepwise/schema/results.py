"""Step outcomes and run results."""

from enum import StrEnum

from pydantic import Field, NonNegativeFloat, NonNegativeInt

from stepwise.models import SchemaModel

from .scenario import Scenario  # noqa: TC001


class Status(StrEnum):
    """Verdict of a step or of a whole run."""

    PASS = 'pass'
    FAIL = 'fail'
    ERROR = 'error'


class RunState(StrEnum):
    """States of a scenario run.

    `idle -> loading -> executing -> completed`, with `aborted` reachable
    from `executing`. A load failure goes straight to `completed`.
    """

    IDLE = 'idle'
    LOADING = 'loading'
    EXECUTING = 'executing'
    COMPLETED = 'completed'
    ABORTED = 'aborted'


class StepOutcome(SchemaModel):
    """Verdict of one executed step."""

    index: NonNegativeInt = Field(
        title='Step position',
        description='1-based step position, or 0 for the synthetic load outcome.',
    )

    kind: str = Field(
        title='Step kind',
        description='Kind of the executed step.',
    )

    status: Status

    message: str = Field(
        default='',
        title='Message',
        description='Single-line human-readable explanation of the status.',
    )

    title: str | None = Field(
        default=None,
        title='Step title',
        description='Title of the step, if any.',
    )

    elapsed: NonNegativeFloat = Field(
        default=0.0,
        title='Elapsed time',
        description='Wall-clock duration of the step in seconds.',
    )

    exports: dict[str, str] = Field(
        default_factory=dict,
        title='Exports',
        description='Properties written into the runtime layer by the step.',
    )


class Result(SchemaModel):
    """Aggregated verdict of one run."""

    source: str = Field(
        title='Source',
        description='Scenario path as requested by the caller.',
    )

    scenario: Scenario | None = Field(
        default=None,
        title='Scenario',
        description='Loaded scenario, absent when loading failed.',
    )

    outcomes: tuple[StepOutcome, ...] = Field(
        default=(),
        title='Outcomes',
        description='Outcomes of executed steps in step order.',
    )

    state: RunState = Field(
        default=RunState.COMPLETED,
        title='Final state',
        description='Terminal run state: completed or aborted.',
    )

    abort_reason: str | None = Field(
        default=None,
        title='Abort reason',
        description='Why the remaining steps were not executed.',
    )

    @property
    def status(self) -> Status:
        """Overall status of the run.

        Error if any outcome is Error or the run was aborted,
        else Fail if any outcome is Fail, else Pass.
        """
        statuses = {outcome.status for outcome in self.outcomes}

        if Status.ERROR in statuses or self.state == RunState.ABORTED:
            return Status.ERROR

        if Status.FAIL in statuses:
            return Status.FAIL

        return Status.PASS

    @property
    def skipped(self) -> int:
        """Number of scenario steps that were never executed."""
        if self.scenario is None:
            return 0

        return len(self.scenario.steps) - len(self.outcomes)

    @property
    def report_lines(self) -> list[str]:
        """Rendered report of the run."""
        from stepwise.reporter import ResultReporter  # noqa: PLC0415

        return ResultReporter().render(self)
