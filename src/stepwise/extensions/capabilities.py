"""Declarative capability definitions and dynamic parameter models.

A *capability* is the operation behind an action step kind: a shell
invoker, a value extraction routine, a client of some remote service.
Capabilities are declarative objects compiled into Pydantic models
derived from `BoundCapability`. The generated model validates the
resolved parameters of a step and invokes the capability callable.

The module does not implement orchestration. Substitution, timeouts
accounting and exports are handled by the step executor.
"""

from collections.abc import Callable, Mapping
from pathlib import Path
from re import Pattern
from re import compile as regexp
from re import error as RegexError  # noqa: N812
from threading import Event
from typing import Any, ClassVar, Self

from pydantic import ConfigDict, Field, NonNegativeInt, PositiveFloat, create_model, field_validator, model_validator

from stepwise.models import DescribedMixin, SchemaModel
from stepwise.names import Variable  # noqa: TC001
from stepwise.values import RuntimeValue, normalize

from .parameters import ParametersMixin

#: Names of generated model attributes which can not be parameters.
RESERVED_NAMES = frozenset({'kind', 'runner', 'signature', 'extra_pattern'})


class CapabilityContext(SchemaModel):
    """Execution environment handed to a capability."""

    workspace: Path = Field(
        title='Workspace root',
        description='Directory relative paths of the scenario are resolved against.',
    )

    timeout: PositiveFloat = Field(
        title='Timeout',
        description=(
            'Upper bound in seconds for any blocking operation of the step. '
            'The executor abandons a capability still running once the '
            'timeout grace period has elapsed on top of it.'
        ),
    )

    cancel: Event = Field(
        default_factory=Event,
        title='Cancellation signal',
        description=(
            'Cooperative cancellation signal of the run. Long running '
            'capabilities are expected to poll it and stop early.'
        ),
    )

    step_num: NonNegativeInt = Field(
        default=0,
        title='Step position',
        description='1-based position of the executed step.',
    )


#: The runner receives resolved parameters and the execution context and
#: returns a mapping of produced values, or `None` if nothing is produced.
type CapabilityRunner = Callable[[Mapping[str, RuntimeValue], CapabilityContext], RuntimeValue]


class BoundCapability(SchemaModel):
    """Base class for generated capability parameter models.

    An instance holds the resolved parameters of one step. Calling it
    executes the capability callable.
    """

    #: Qualified kind of the capability.
    kind: ClassVar[str]
    #: Callable implementing the capability.
    runner: ClassVar[CapabilityRunner]
    #: Model accepting raw (unsubstituted) parameters.
    signature: ClassVar[type[SchemaModel]]

    def __call__(self, context: CapabilityContext) -> RuntimeValue:
        """Execute the capability with the validated parameters.

        Returns:
            Normalized value produced by the capability.
        """
        return normalize(type(self).runner(self.model_dump(), context))


class OpenBoundCapability(BoundCapability):
    """Base class for capabilities accepting arbitrary extra parameters."""

    model_config = ConfigDict(extra='allow')

    #: Pattern undeclared parameter names must match, if any.
    extra_pattern: ClassVar[Pattern[str] | None] = None

    @model_validator(mode='after')
    def check_extra_names(self) -> Self:
        """Reject undeclared parameter names not matching `extra_pattern`.

        Raises:
            ValueError: On the first rejected name.
        """
        pattern = type(self).extra_pattern
        if pattern is None:
            return self

        for key in self.model_extra or {}:
            if not isinstance(key, str) or not pattern.match(key):
                raise ValueError(f'parameter name {key!r} is not allowed')

        return self


class Capability(ParametersMixin, DescribedMixin, SchemaModel):
    """Declarative capability definition.

    A capability defines:
    - the step kind name,
    - a callable implementing the operation,
    - a parameter schema used to validate step parameters.

    Instances are compiled into `BoundCapability` subclasses by the
    capability registry.
    """

    capability: CapabilityRunner = Field(
        title='Capability function',
        description=(
            'Callable implementing the operation. Receives a mapping of '
            'resolved parameters and the execution context and returns '
            'a mapping of produced values.'
        ),
    )

    name: Variable = Field(
        title='Step kind name',
        description=(
            'Name of the step kind. Plugin capabilities are addressed '
            'as `<plugin>.<name>` in scenarios.'
        ),
    )

    open_parameters: bool = Field(
        default=False,
        title='Accept undeclared parameters',
        description=(
            'If true, parameters missing from the schema are accepted and '
            'passed to the capability as-is.'
        ),
    )

    extra_pattern: str | None = Field(
        default=None,
        title='Undeclared parameter names',
        description=(
            'Regular expression undeclared parameter names must match. '
            'Only used with `open_parameters`.'
        ),
    )

    @field_validator('extra_pattern')
    @classmethod
    def check_extra_pattern(cls, value: str | None) -> str | None:
        """Reject patterns that do not compile.

        Raises:
            ValueError: If the pattern is not a valid regular expression.
        """
        if value is not None:
            try:
                regexp(value)
            except RegexError as base:
                raise ValueError(f'invalid parameter name pattern: {base}') from base

        return value

    def qualname(self, namespace: str | None = None) -> str:
        """Return the kind used to address this capability in scenarios."""
        if namespace:
            return f'{namespace}.{self.name}'

        return self.name

    def build_runner(self) -> tuple[Any, CapabilityRunner]:
        """Build runner definition for the generated Pydantic model.

        Returns:
            A tuple containing `ClassVar[CapabilityRunner]` and the callable.
        """
        return ClassVar[CapabilityRunner], staticmethod(self.capability)

    def build_base(self) -> dict[str, Any]:
        """Build the base model of generated models and its class variables."""
        if not self.open_parameters:
            return {'__base__': BoundCapability}

        pattern = regexp(self.extra_pattern) if self.extra_pattern else None

        return {
            '__base__': OpenBoundCapability,
            'extra_pattern': (ClassVar[Pattern[str] | None], pattern),
        }

    def build_signature(self) -> type[SchemaModel]:
        """Build a model checking parameter names of raw step parameters.

        Raises:
            ValueError: If attribute names or aliases are not unique.
        """
        return create_model(
            f'{self.name}_Signature',
            **self.build_base(),
            **self.parameters.build(exclude=RESERVED_NAMES, loose=True),
        )

    def build(self, namespace: str | None = None) -> type[BoundCapability]:
        """Build a dynamic Pydantic model representing this capability.

        Args:
            namespace: Optional namespace prefix of the step kind.

        Returns:
            Dynamically created subclass of `BoundCapability`.

        Raises:
            ValueError: If attribute names or aliases are not unique.
        """
        return create_model(
            f'{self.name}_Capability',
            **self.build_base(),
            kind=(ClassVar[str], self.qualname(namespace)),
            runner=self.build_runner(),
            signature=(ClassVar[type[SchemaModel]], self.build_signature()),
            **self.parameters.build(exclude=RESERVED_NAMES),
        )
