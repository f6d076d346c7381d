"""Capability and comparator registry with plugin discovery.

The registry maps action step kinds to compiled capabilities and
assertion operators (and their aliases) to comparators. Built-in
extensions are registered first, plugins are then discovered from the
`stepwise_plugins` entry point group.

A broken plugin is skipped with a `PluginWarning`, unless the registry
is strict, in which case a `PluginError` is raised.
"""

import logging
from typing import TYPE_CHECKING
from warnings import warn

from pydantic import ValidationError

from stepwise.builtins import capabilities, comparators
from stepwise.errors import PluginError, PluginWarning
from stepwise.extensions import Plugin

if TYPE_CHECKING:
    from importlib.metadata import EntryPoint

if TYPE_CHECKING:
    from stepwise.extensions import BoundCapability, Capability, Comparator

logger = logging.getLogger(__name__)

#: Entry point group of plugins.
PLUGINS_GROUP = 'stepwise_plugins'

BUILTIN_CAPABILITIES = (
    capabilities.empty,
    capabilities.set_,
    capabilities.id_,
    capabilities.desc,
    capabilities.sleep,
    capabilities.extract,
    capabilities.read_file,
    capabilities.shell,
)

BUILTIN_COMPARATORS = (
    comparators.equals,
    comparators.not_equals,
    comparators.contains,
    comparators.greater_than,
    comparators.less_than,
    comparators.matches,
    comparators.in_range,
)


class CapabilityRegistry:
    """Registry of capabilities and comparators.

    Attributes:
        strict_mode: Raise `PluginError` on plugin issues instead of warning.
        capabilities: Compiled capabilities by qualified step kind.
        comparators: Comparators by canonical operator name.
        operators: Canonical operator names by operator name or alias.
    """

    def __init__(self, *, strict: bool = False, load_plugins: bool = True) -> None:
        """Initialize the registry with built-ins and, optionally, plugins.

        Args:
            strict: Raise on plugin issues instead of warning.
            load_plugins: Whether to discover plugins from entry points.

        Raises:
            PluginError: If a plugin is broken in strict mode.
        """
        self.strict_mode = strict

        self.clear()

        for capability in BUILTIN_CAPABILITIES:
            self.add_capability(capability)

        for comparator in BUILTIN_COMPARATORS:
            self.add_comparator(comparator)

        if load_plugins:
            self.load_plugins()

    def clear(self) -> None:
        """Forget every registered extension."""
        self.capabilities: dict[str, type[BoundCapability]] = {}
        self.comparators: dict[str, Comparator] = {}
        self.operators: dict[str, str] = {}

    def add_capability(self, capability: 'Capability',
                       entrypoint: 'EntryPoint | None' = None,
                       namespace: str | None = None) -> None:
        """Compile and register a capability.

        Args:
            capability: Capability declaration.
            entrypoint: Plugin entry point the capability comes from.
            namespace: Plugin name prefixing the step kind.

        Raises:
            PluginError: If the capability shadows another one or has
                an invalid parameter schema in strict mode.
        """
        source = self.describe_source(capability, entrypoint)
        kind = capability.qualname(namespace)

        if kind in self.capabilities:
            self.report_issue(f'Capability {kind!r} from {source!r} is shadowing an existing', entrypoint)

        try:
            self.capabilities[kind] = capability.build(namespace)

        except ValueError as base:
            self.report_issue(
                f'Capability {kind!r} from {source!r} has an invalid schema: {base}',
                entrypoint,
                cause=base,
            )
            return

        logger.debug('Registered capability %r from %s', kind, source)

    def add_comparator(self, comparator: 'Comparator',
                       entrypoint: 'EntryPoint | None' = None) -> None:
        """Register a comparator under its name and aliases.

        Args:
            comparator: Comparator declaration.
            entrypoint: Plugin entry point the comparator comes from.

        Raises:
            PluginError: If an operator name is shadowed in strict mode.
        """
        source = self.describe_source(comparator, entrypoint)
        names = (comparator.name, *comparator.aliases)

        for name in names:
            if name in self.operators:
                self.report_issue(f'Operator {name!r} from {source!r} is shadowing an existing', entrypoint)

        self.comparators[comparator.name] = comparator
        self.operators.update(dict.fromkeys(names, comparator.name))

        logger.debug('Registered operator %r from %s', comparator.name, source)

    def get_capability(self, kind: str) -> 'type[BoundCapability] | None':
        """Return the capability registered for a step kind."""
        return self.capabilities.get(kind)

    def get_comparator(self, operator: str) -> 'Comparator | None':
        """Return the comparator for an operator name or alias."""
        name = self.operators.get(operator)
        if name is None:
            return None

        return self.comparators.get(name)

    @staticmethod
    def describe_source(item: 'Capability | Comparator',
                        entrypoint: 'EntryPoint | None' = None) -> str:
        """Name the entry point or module an extension comes from."""
        if entrypoint is not None:
            return entrypoint.value

        return type(item).__module__

    def report_issue(self, message: str,
                     entrypoint: 'EntryPoint | None' = None, *,
                     cause: BaseException | None = None) -> None:
        """Warn about a plugin issue, or raise it in strict mode.

        Raises:
            PluginError: In strict mode.
        """
        if self.strict_mode:
            raise PluginError(message, entrypoint=entrypoint) from cause

        warn(message, category=PluginWarning, stacklevel=3)

    def _load_plugin(self, entrypoint: 'EntryPoint') -> None:
        """Load one entry point and register what its plugin provides.

        Raises:
            PluginError: If the plugin is broken in strict mode.
        """
        try:
            plugin = entrypoint.load()

        except ValidationError as base:
            self.report_issue(f'Plugin {entrypoint.name!r} is not a valid plugin', entrypoint, cause=base)
            return

        except Exception as base:
            self.report_issue(f'Failed to load plugin {entrypoint.name!r}: {base}', entrypoint, cause=base)
            return

        if not isinstance(plugin, Plugin):
            self.report_issue(
                f'Entry point {entrypoint.name!r} provides {type(plugin).__name__}, not a plugin',
                entrypoint,
            )
            return

        logger.info('Loading plugin %r from %s', plugin.name, entrypoint.value)

        for capability in plugin.capabilities:
            self.add_capability(capability, entrypoint, namespace=plugin.name)

        for comparator in plugin.comparators:
            self.add_comparator(comparator, entrypoint)

    def load_plugins(self) -> None:
        """Discover plugins in the `stepwise_plugins` entry point group.

        Raises:
            PluginError: If a plugin is broken in strict mode.
        """
        from importlib.metadata import entry_points  # noqa: PLC0415

        for entrypoint in entry_points().select(group=PLUGINS_GROUP):
            self._load_plugin(entrypoint)
