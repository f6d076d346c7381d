"""Declarative plugin definition.

This module defines the top-level declarative container used to describe
extensions provided by a stepwise plugin.

A plugin aggregates:
- capabilities (operations behind action step kinds),
- comparators (assertion operators).

The plugin model itself is purely declarative. It contains no execution
logic and is consumed by the capability registry during initialization.
"""

from pydantic import Field

from stepwise.models import SchemaModel
from stepwise.names import Variable  # noqa: TC001

from .capabilities import BoundCapability, Capability, CapabilityContext
from .comparators import Comparator
from .parameters import Attribute, Schema

__all__ = (
    'Attribute',
    'BoundCapability',
    'Capability',
    'CapabilityContext',
    'Comparator',
    'Plugin',
    'Schema',
)


class Plugin(SchemaModel):
    """Declarative container for plugin extensions.

    A plugin is a namespace grouping the capabilities and comparators
    contributed by an extension module. Capabilities are addressed as
    `<plugin>.<name>` step kinds, comparators keep their own names.
    """

    name: Variable = Field(
        title='Plugin namespace',
        description=(
            'Logical namespace of the plugin. '
            'Prefixes capability kinds and is used for diagnostics.'
        ),
    )

    version: int = Field(
        default=1,
        title='Plugin contract version',
        description=(
            'Version of the plugin contract. '
            'This is not a semantic version of the plugin implementation.'
        ),
    )

    capabilities: list[Capability] = Field(
        default_factory=list,
        title='Capabilities',
        description='Capabilities provided by the plugin.',
    )

    comparators: list[Comparator] = Field(
        default_factory=list,
        title='Comparators',
        description='Assertion operators provided by the plugin.',
    )
