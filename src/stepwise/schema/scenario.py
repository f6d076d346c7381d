"""Scenario and scenario header models."""

from pathlib import Path  # noqa: TC003
from typing import Literal

from pydantic import Field

from stepwise.models import DescribedMixin, SchemaModel
from stepwise.values import RuntimeValue  # noqa: TC001

from .steps import Step  # noqa: TC001


class ScenarioHeader(DescribedMixin, SchemaModel):
    """Optional first document of a scenario stream.

    Carries scenario level metadata and does not affect execution.
    """

    #: Document marker, always `scenario` for headers.
    spec: Literal['scenario']

    name: str | None = Field(
        default=None,
        title='Scenario name',
        description='Name used in reports. Defaults to the file name.',
    )

    id: str | None = Field(
        default=None,
        title='Scenario identifier',
        description='External identifier of the scenario, for example a ticket key.',
    )

    metadata: dict[str, RuntimeValue] = Field(
        default_factory=dict,
        title='Scenario metadata',
        description='Additional metadata associated with the scenario.',
    )


class Scenario(SchemaModel):
    """Loaded scenario: an ordered, immutable sequence of steps."""

    name: str = Field(
        title='Scenario name',
        description='Name used in reports.',
    )

    source: Path | None = Field(
        default=None,
        title='Source path',
        description='Path of the document the scenario was loaded from.',
    )

    header: ScenarioHeader | None = Field(
        default=None,
        title='Header',
        description='Header document, if the stream starts with one.',
    )

    steps: tuple[Step, ...] = Field(
        default=(),
        title='Steps',
        description='Steps in execution order. Step positions are 1-based.',
    )

    def __len__(self) -> int:
        return len(self.steps)
