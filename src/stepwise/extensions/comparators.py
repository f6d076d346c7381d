"""Declarative comparator definitions.

A comparator implements one assertion operator. It receives the resolved
actual and expected values together with the assertion options and
returns `True` when the assertion holds. Returning `False` or raising
`AssertionError` makes the assertion fail; any other exception turns
the step into an Error outcome.
"""

from collections.abc import Callable, Mapping

from pydantic import Field

from stepwise.models import DescribedMixin, SchemaModel
from stepwise.names import Variable  # noqa: TC001
from stepwise.values import RuntimeValue

#: The runner receives the actual value, the expected value and
#: the assertion options (for example, `ignore_case`).
type ComparatorRunner = Callable[[RuntimeValue, RuntimeValue, Mapping[str, RuntimeValue]], bool]


class Comparator(DescribedMixin, SchemaModel):
    """Declarative assertion operator definition."""

    comparator: ComparatorRunner = Field(
        title='Comparator function',
        description=(
            'Callable implementing the comparison. Must return True if '
            'the assertion holds, or False otherwise.'
        ),
    )

    name: Variable = Field(
        title='Operator name',
        description='Canonical name of the operator used in reports.',
    )

    aliases: list[Variable] = Field(
        default_factory=list,
        title='Operator aliases',
        description='Alternative keys accepted for the operator in scenarios.',
    )

    verb: str | None = Field(
        default=None,
        title='Operator verb',
        description=(
            'Human-readable verb used in outcome messages, '
            'for example `equals` or `is greater than`.'
        ),
    )

    def __call__(self, actual: RuntimeValue, expected: RuntimeValue,
                 options: Mapping[str, RuntimeValue] | None = None) -> bool:
        """Evaluate the comparison.

        Raises:
            AssertionError: Propagated from the comparator with a failure detail.
        """
        return bool(self.comparator(actual, expected, options or {}))

    def describe(self) -> str:
        """Return the verb describing this operator in messages."""
        return self.verb or self.name
