"""Scenario step models.

A step is a tagged variant:

- an *action* step invokes the capability registered for its `kind`
  with a mapping of raw parameters;
- an *assertion* step (`kind: assert`) compares a value against an
  expected value with one operator.

Steps hold raw values only. Placeholders are substituted at execution
time so that the same loaded scenario can run with another property set.
"""

from typing import Annotated, Any, Literal

from pydantic import (
    Discriminator,
    Field,
    PositiveFloat,
    Tag,
    TypeAdapter,
    ValidationInfo,
    field_validator,
    model_validator,
)

from stepwise.models import DescribedMixin, SchemaModel
from stepwise.names import Kind, PropertyKey, Variable  # noqa: TC001
from stepwise.values import RuntimeValue  # noqa: TC001

ASSERT_KIND = 'assert'

#: Keys of an action step mapping which are not capability parameters.
ACTION_KEYS = frozenset({'kind', 'title', 'description', 'export', 'timeout', 'params'})

#: Keys of an assertion step mapping which are not operator keys.
ASSERTION_KEYS = frozenset({
    'kind', 'title', 'description', 'value', 'operator', 'expected',
    'ignoreCase', 'ignore_case', 'each', 'count',
})


class BaseStep(DescribedMixin, SchemaModel):
    """Base class for scenario steps."""

    kind: str


class ActionStep(BaseStep):
    """Step invoking a capability.

    Any key of the step mapping outside of the reserved ones is treated
    as a capability parameter, so both forms below are equivalent:

        kind: sleep
        duration: 100

        kind: sleep
        params:
          duration: 100
    """

    kind: Kind

    params: dict[str, RuntimeValue] = Field(
        default_factory=dict,
        title='Capability parameters',
        description=(
            'Raw parameters of the capability. String values may contain '
            '`{{key}}` placeholders substituted before execution.'
        ),
    )

    export: dict[PropertyKey, str] = Field(
        default_factory=dict,
        title='Exported aliases',
        description=(
            'Mapping of property keys to dotted paths inside the values '
            'produced by the capability. A `*` path segment selects every '
            'item of a list.'
        ),
    )

    timeout: PositiveFloat | None = Field(
        default=None,
        title='Step timeout',
        description='Upper bound in seconds for blocking operations of the step.',
    )

    @model_validator(mode='before')
    @classmethod
    def collect_params(cls, data: Any) -> Any:  # noqa: ANN401
        """Move undeclared keys of a step mapping into `params`.

        Raises:
            ValueError: If a parameter is given both inline and in `params`.
        """
        if not isinstance(data, dict):
            return data

        inline = {
            key: value
            for key, value in data.items()
            if key not in ACTION_KEYS
        }
        if not inline:
            return data

        params = data.get('params') or {}
        if not isinstance(params, dict):
            return data

        if duplicates := sorted(set(inline).intersection(params)):
            raise ValueError(f'parameters defined twice: {", ".join(map(str, duplicates))}')

        return {
            **{key: value for key, value in data.items() if key in ACTION_KEYS},
            'params': {**params, **inline},
        }


class AssertionStep(BaseStep):
    """Step comparing a value with an expected value.

    The operator is either given as a single operator key holding the
    expected value (`equals: 5`) or explicitly with `operator` and
    `expected`. Operator aliases are canonicalized when the validation
    context provides an `operators` mapping of alias to operator name.

    With `each` or `count`, the operator is applied to every item of the
    actual value, for example to the ids exported from a wildcard path.
    """

    kind: Literal['assert']

    value: RuntimeValue = Field(
        title='Actual value',
        description='Value under test, usually a `{{key}}` template.',
    )

    operator: Variable = Field(
        title='Operator',
        description='Canonical name of the comparison operator.',
    )

    expected: RuntimeValue = Field(
        title='Expected value',
        description='Raw value the actual value is compared with.',
    )

    ignore_case: bool = Field(
        default=False,
        alias='ignoreCase',
        title='Ignore case mode',
        description='If true, string comparisons are case-insensitive.',
    )

    each: bool = Field(
        default=False,
        title='Per-item mode',
        description=(
            'If true, the actual value is read as a list (a JSON array text '
            'is decoded) and every item must satisfy the operator. An empty '
            'list fails the assertion.'
        ),
    )

    count: str | None = Field(
        default=None,
        title='Passing items count',
        description=(
            'Ranges the number of items satisfying the operator must fall '
            'in, for example `1+` or `2-3`. Items are evaluated one by one '
            'as in per-item mode.'
        ),
        examples=['1+', '0', '2-3'],
    )

    @field_validator('count', mode='before')
    @classmethod
    def count_as_text(cls, value: Any) -> Any:  # noqa: ANN401
        """Accept plain numbers as exact counts."""
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)

        return value

    @model_validator(mode='before')
    @classmethod
    def collect_operator(cls, data: Any, info: ValidationInfo) -> Any:  # noqa: ANN401
        """Extract the operator key and canonicalize operator aliases.

        Raises:
            ValueError: If zero or several operators are given,
                or an operator is unknown.
        """
        if not isinstance(data, dict):
            return data

        data = dict(data)

        candidates = [key for key in data if key not in ASSERTION_KEYS]
        if 'operator' in data:
            if candidates:
                raise ValueError(
                    f'unexpected keys next to explicit operator: {", ".join(map(str, candidates))}',
                )
        elif len(candidates) == 1:
            key = candidates[0]
            data['operator'] = key
            data['expected'] = data.pop(key)
        elif not candidates:
            raise ValueError('assertion has no operator')
        else:
            raise ValueError(f'assertion has several operators: {", ".join(map(str, candidates))}')

        operators = (info.context or {}).get('operators')
        if operators is not None:
            operator = data['operator']
            if operator not in operators:
                raise ValueError(f'unknown operator {operator!r}')
            data['operator'] = operators[operator]

        return data


def _step_tag(data: Any) -> str:  # noqa: ANN401
    """Discriminate step mappings by their `kind`."""
    kind = data.get('kind') if isinstance(data, dict) else getattr(data, 'kind', None)

    return 'assertion' if kind == ASSERT_KIND else 'action'


#: Any scenario step.
Step = Annotated[
    Annotated[ActionStep, Tag('action')] | Annotated[AssertionStep, Tag('assertion')],
    Discriminator(_step_tag),
]

StepAdapter: TypeAdapter[ActionStep | AssertionStep] = TypeAdapter(Step)
