"""Single step execution.

The executor turns one step into one `StepOutcome`. It never raises:
every failure, including programming errors inside plugins, is captured
so that the runner can continue or abort according to its policy.
"""

import logging
from concurrent.futures import Future
from json import JSONDecodeError, loads
from pathlib import Path
from threading import Event, Thread
from time import perf_counter
from typing import TYPE_CHECKING

from pydantic import ValidationError

from stepwise.builtins.comparators import in_ranges
from stepwise.builtins.lookups import PathLookup
from stepwise.errors import CapabilityError, SchemaError, StepTimeoutError, StepwiseError
from stepwise.extensions import CapabilityContext
from stepwise.schema import ActionStep, AssertionStep, Status, StepOutcome
from stepwise.settings import RunnerSettings
from stepwise.values import MAPPINGS, SEQUENCES, stringify

from .registry import CapabilityRegistry

if TYPE_CHECKING:
    from stepwise.extensions import BoundCapability, Comparator
    from stepwise.properties import PropertySet
    from stepwise.schema import Step
    from stepwise.values import RuntimeValue

logger = logging.getLogger(__name__)

#: Outcome of one step before timing is attached.
type Verdict = tuple[Status, str, dict[str, str]]


class StepExecutor:
    """Executor of individual scenario steps."""

    def __init__(self, registry: CapabilityRegistry | None = None, *,
                 workspace: Path | str = '.',
                 settings: RunnerSettings | None = None) -> None:
        """Initialize the step executor.

        Args:
            registry: Registry resolving step kinds and operators.
            workspace: Workspace root handed to capabilities.
            settings: Runner settings providing the default timeout.
        """
        self.settings = settings or RunnerSettings()
        self.registry = registry or CapabilityRegistry(strict=self.settings.strict_plugins)
        self.workspace = Path(workspace)

    def execute(self, step: 'Step', properties: 'PropertySet', *,
                index: int, cancel: Event | None = None) -> StepOutcome:
        """Execute one step.

        Args:
            step: Action or assertion step.
            properties: Property set of the run. Exports of an action
                step are written into its runtime layer.
            index: 1-based position of the step.
            cancel: Cancellation signal of the run.

        Returns:
            Outcome of the step.
        """
        started = perf_counter()

        try:
            if isinstance(step, AssertionStep):
                status, message, exports = self.run_assertion(step, properties, index=index)
            else:
                status, message, exports = self.run_action(step, properties, index=index, cancel=cancel)

        except StepwiseError as error:
            logger.debug('Step %d (%s) raised %r', index, step.kind, error)
            status, message, exports = Status.ERROR, error.message, {}

        except Exception as error:
            logger.exception('Step %d (%s) failed unexpectedly', index, step.kind)
            status, message, exports = Status.ERROR, f'{type(error).__name__}: {error}', {}

        outcome = StepOutcome(
            index=index,
            kind=step.kind,
            title=step.title,
            status=status,
            message=message,
            elapsed=perf_counter() - started,
            exports=exports,
        )

        logger.info('Step %d (%s) %s: %s', index, step.kind, status.upper(), message)

        return outcome

    def run_action(self, step: ActionStep, properties: 'PropertySet', *,
                   index: int, cancel: Event | None = None) -> Verdict:
        """Execute an action step.

        Parameters are substituted, validated against the capability
        model and passed to the capability. Exports are written into the
        runtime layer only after the capability has completed, so lookups
        of this step never observe its own exports.

        Raises:
            StepwiseError: If substitution, validation or the capability fails.
        """
        capability = self.registry.get_capability(step.kind)
        if capability is None:
            raise CapabilityError(f'unknown step kind {step.kind!r}')

        params = properties.resolve_value(step.params, step_num=index)

        try:
            bound = capability.model_validate(params)
        except ValidationError as base:
            raise SchemaError.from_pydantic_error(base, data=params, step_num=index) from base

        context = CapabilityContext(
            workspace=self.workspace,
            timeout=step.timeout or self.settings.default_timeout,
            cancel=cancel or Event(),
            step_num=index,
        )

        produced = self.call_bounded(bound, context)

        if produced is None:
            produced = {}
        elif not isinstance(produced, MAPPINGS):
            raise CapabilityError(
                f'capability {step.kind!r} returned {type(produced).__name__}, expected a mapping',
            )

        values = dict(produced)
        for alias, path in step.export.items():
            lookup = PathLookup(path)
            if not lookup.exists(produced):
                raise CapabilityError(f'export path {path!r} not found in {step.kind!r} result')
            values[alias] = lookup.resolve(produced)

        properties.export(values)
        exports = {key: stringify(value) for key, value in values.items()}

        if exports:
            return Status.PASS, f'exported {", ".join(exports)}', exports

        return Status.PASS, 'completed', exports

    def call_bounded(self, bound: 'BoundCapability',
                     context: CapabilityContext) -> 'RuntimeValue':
        """Call a capability, giving up once its timeout and grace are spent.

        The capability runs in a daemon worker thread. A capability which
        ignores `context.timeout` is abandoned, its thread keeps running
        but its result is never exported.

        Raises:
            StepTimeoutError: If the capability is still running.
        """
        future: Future[RuntimeValue] = Future()

        def work() -> None:
            if not future.set_running_or_notify_cancel():
                return
            try:
                future.set_result(bound(context))
            except Exception as error:  # noqa: BLE001
                future.set_exception(error)

        Thread(target=work, name=f'stepwise-step-{context.step_num}', daemon=True).start()

        try:
            return future.result(timeout=context.timeout + self.settings.timeout_grace)

        except TimeoutError:
            if future.done():
                raise
            logger.warning('Abandoning step %d (%s) still running past its timeout',
                           context.step_num, type(bound).kind)
            raise StepTimeoutError(f'step did not complete within {context.timeout:g} s') from None

    def run_assertion(self, step: AssertionStep, properties: 'PropertySet', *,
                      index: int) -> Verdict:
        """Evaluate an assertion step.

        With `count` or `each` the operator is applied to every item of
        the actual value instead of the value as a whole.

        Raises:
            StepwiseError: If substitution fails or the operator is unknown.
        """
        comparator = self.registry.get_comparator(step.operator)
        if comparator is None:
            raise CapabilityError(f'unknown operator {step.operator!r}')

        actual = properties.resolve_value(step.value, step_num=index)
        expected = properties.resolve_value(step.expected, step_num=index)
        options = {'ignore_case': step.ignore_case}

        if step.count is not None:
            count = stringify(properties.resolve_value(step.count, step_num=index))
            return self.count_items(comparator, actual, expected, options, count)

        if step.each:
            return self.check_items(comparator, actual, expected, options)

        passed, detail = self.evaluate(comparator, actual, expected, options)

        message = f'expected {self.quote(actual)} to {comparator.describe()} {self.quote(expected)}'

        if passed:
            return Status.PASS, message, {}

        if detail:
            message += f' ({detail})'

        return Status.FAIL, message, {}

    def check_items(self, comparator: 'Comparator', actual: 'RuntimeValue',
                    expected: 'RuntimeValue', options: dict[str, 'RuntimeValue']) -> Verdict:
        """Require every item of the actual value to satisfy the operator.

        Nothing to check is a failure.
        """
        items = self.as_items(actual)
        message = f'expected every item of {self.quote(actual)} to {comparator.describe()} {self.quote(expected)}'

        if not items:
            return Status.FAIL, f'{message} (no items)', {}

        for position, item in enumerate(items):
            passed, detail = self.evaluate(comparator, item, expected, options)
            if not passed:
                message += f' (item {position} is {self.quote(item)}'
                message += f', {detail})' if detail else ')'
                return Status.FAIL, message, {}

        return Status.PASS, message, {}

    def count_items(self, comparator: 'Comparator', actual: 'RuntimeValue',
                    expected: 'RuntimeValue', options: dict[str, 'RuntimeValue'],
                    count: str) -> Verdict:
        """Check how many items of the actual value satisfy the operator."""
        items = self.as_items(actual)
        matched = sum(
            self.evaluate(comparator, item, expected, options)[0]
            for item in items
        )

        message = (
            f'expected {count} of {len(items)} items of {self.quote(actual)} '
            f'to {comparator.describe()} {self.quote(expected)}, {matched} did'
        )

        try:
            passed = in_ranges(matched, count)
        except AssertionError as error:
            return Status.FAIL, f'{message} ({error})', {}

        return (Status.PASS if passed else Status.FAIL), message, {}

    @staticmethod
    def evaluate(comparator: 'Comparator', actual: 'RuntimeValue',
                 expected: 'RuntimeValue', options: dict[str, 'RuntimeValue']) -> tuple[bool, str | None]:
        """Run a comparator, turning `AssertionError` into a failure detail."""
        try:
            return comparator(actual, expected, options), None
        except AssertionError as error:
            return False, str(error) or None

    @staticmethod
    def as_items(value: 'RuntimeValue') -> list['RuntimeValue']:
        """Read a value as a list of items.

        Exported lists are stored as JSON array text, which is decoded.
        Any other value is a single item.
        """
        if isinstance(value, SEQUENCES):
            return list(value)

        if isinstance(value, str) and value.lstrip().startswith('['):
            try:
                decoded = loads(value)
            except JSONDecodeError:
                return [value]
            if isinstance(decoded, list):
                return decoded

        return [value]

    @staticmethod
    def quote(value: 'RuntimeValue') -> str:
        """Render a value for outcome messages."""
        return f'"{stringify(value)}"'
