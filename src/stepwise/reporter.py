"""Plain-text rendering of run results.

Rendering is deterministic: the same result always produces the same
lines, elapsed durations are deliberately left out.
"""

from typing import TYPE_CHECKING

from stepwise.schema import Status

if TYPE_CHECKING:
    from stepwise.schema import Result, StepOutcome
    from stepwise.schema.steps import BaseStep

SKIPPED = 'SKIPPED'


class ResultReporter:
    """Renderer of results into report lines."""

    def render(self, result: 'Result') -> list[str]:
        """Render a result.

        Returns:
            One line per outcome, one line per step that never ran,
            and a trailing summary line.
        """
        lines = [self.render_outcome(outcome) for outcome in result.outcomes]

        if result.scenario is not None:
            skipped = result.scenario.steps[len(result.outcomes):]
            reason = result.abort_reason or 'not executed'
            lines.extend(
                self.render_skipped(index, step, reason)
                for index, step in enumerate(skipped, start=len(result.outcomes) + 1)
            )

        lines.append(self.render_summary(result))

        return lines

    def render_outcome(self, outcome: 'StepOutcome') -> str:
        """Render `[<index>] <kind> <STATUS>: <message> (<title>)`."""
        line = f'[{outcome.index}] {outcome.kind} {outcome.status.upper()}: {self.single_line(outcome.message)}'
        if outcome.title:
            line += f' ({outcome.title})'

        return line

    def render_skipped(self, index: int, step: 'BaseStep', reason: str) -> str:
        """Render a step that never ran."""
        line = f'[{index}] {step.kind} {SKIPPED}: {reason}'
        if step.title:
            line += f' ({step.title})'

        return line

    @staticmethod
    def render_summary(result: 'Result') -> str:
        """Render counts of outcomes by status and the overall status."""
        counts = {
            status: sum(1 for outcome in result.outcomes if outcome.status == status)
            for status in Status
        }
        total = len(result.scenario.steps) if result.scenario is not None else len(result.outcomes)

        return (
            f'Total: {total}, '
            f'Passed: {counts[Status.PASS]}, '
            f'Failed: {counts[Status.FAIL]}, '
            f'Errors: {counts[Status.ERROR]}, '
            f'Skipped: {result.skipped}, '
            f'Status: {result.status.upper()}'
        )

    @staticmethod
    def single_line(text: str) -> str:
        """Escape line breaks so that every message fits one line."""
        return text.replace('\r', '\\r').replace('\n', '\\n')
