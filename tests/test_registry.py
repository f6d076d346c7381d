"""Tests for the capability registry and plugin discovery."""

from typing import TYPE_CHECKING

import pytest

from stepwise.core import CapabilityRegistry
from stepwise.errors import PluginError, PluginWarning
from stepwise.extensions import Attribute, Capability, Comparator, Plugin, Schema

if TYPE_CHECKING:
    from collections.abc import Callable

    from pytest_mock import MockType


def echo(params, context):  # noqa: ANN001, ANN201, ARG001
    """Return the text parameter."""
    return {'echo': params['text']}


def same_length(actual, expected, options):  # noqa: ANN001, ANN201, ARG001
    """Compare lengths of two texts."""
    return len(str(actual)) == len(str(expected))


ECHO = Capability(
    capability=echo,
    name='echo',
    parameters=Schema({
        'text': Attribute(base=str, required=True),
    }),
)

SAME_LENGTH = Comparator(
    comparator=same_length,
    name='sameLength',
    aliases=['len'],
    verb='have the same length as',
)


def test_builtin_extensions(registry: CapabilityRegistry) -> None:
    """Register built-in capabilities and operators without namespace."""
    assert set(registry.capabilities) == {
        'empty', 'set', 'id', 'desc', 'sleep', 'extract', 'readFile', 'shell',
    }
    assert set(registry.comparators) == {
        'equals', 'notEquals', 'contains', 'greaterThan', 'lessThan', 'matches', 'inRange',
    }


@pytest.mark.parametrize('operator, expected', (
    pytest.param('equals', 'equals', id='canonical name'),
    pytest.param('eq', 'equals', id='short alias'),
    pytest.param('regex', 'matches', id='regex alias'),
    pytest.param('range', 'inRange', id='range alias'),
))
def test_operator_aliases(registry: CapabilityRegistry, operator: str, expected: str) -> None:
    """Map operator aliases to canonical names."""
    assert registry.operators[operator] == expected

    comparator = registry.get_comparator(operator)

    assert comparator is not None
    assert comparator.name == expected


def test_unknown_extensions(registry: CapabilityRegistry) -> None:
    """Return nothing for unknown kinds and operators."""
    assert registry.get_capability('unknown') is None
    assert registry.get_comparator('unknown') is None


def test_load_plugin(patch_entrypoints: 'Callable[..., MockType]') -> None:
    """Register plugin capabilities under the plugin namespace."""
    patch_entrypoints(Plugin(
        name='test',
        capabilities=[ECHO],
        comparators=[SAME_LENGTH],
    ))

    registry = CapabilityRegistry()

    capability = registry.get_capability('test.echo')

    assert capability is not None
    assert capability.kind == 'test.echo'
    assert registry.get_capability('echo') is None

    comparator = registry.get_comparator('len')

    assert comparator is not None
    assert comparator('abc', 'xyz') is True


def test_skip_plugins(patch_entrypoints: 'Callable[..., MockType]') -> None:
    """Do not discover plugins when disabled."""
    patched = patch_entrypoints(Plugin(name='test', capabilities=[ECHO]))

    registry = CapabilityRegistry(load_plugins=False)

    assert registry.get_capability('test.echo') is None
    patched.assert_not_called()


@pytest.mark.parametrize('plugin, raises, message', (
    pytest.param(object(), None, 'not a plugin', id='not a plugin'),
    pytest.param(None, ImportError('boom'), 'Failed to load plugin', id='import error'),
))
def test_plugin_issue_warning(patch_entrypoints: 'Callable[..., MockType]',
                              plugin: object, raises: Exception | None, message: str) -> None:
    """Warn about broken plugins in relaxed mode."""
    patch_entrypoints(plugin, raises=raises)

    with pytest.warns(PluginWarning, match=message):
        registry = CapabilityRegistry()

    assert 'set' in registry.capabilities


@pytest.mark.parametrize('plugin, raises, message', (
    pytest.param(object(), None, 'not a plugin', id='not a plugin'),
    pytest.param(None, ImportError('boom'), 'Failed to load plugin', id='import error'),
))
def test_plugin_issue_strict(patch_entrypoints: 'Callable[..., MockType]',
                             plugin: object, raises: Exception | None, message: str) -> None:
    """Raise on broken plugins in strict mode."""
    patch_entrypoints(plugin, raises=raises)

    with pytest.raises(PluginError, match=message) as error:
        CapabilityRegistry(strict=True)

    assert error.value.entrypoint is not None


def test_shadowing_operator(patch_entrypoints: 'Callable[..., MockType]') -> None:
    """Warn when a plugin operator replaces a built-in one."""
    patch_entrypoints(Plugin(
        name='test',
        comparators=[SAME_LENGTH.model_copy(update={'aliases': ['eq']})],
    ))

    with pytest.warns(PluginWarning, match="Operator 'eq' .* is shadowing"):
        registry = CapabilityRegistry()

    assert registry.operators['eq'] == 'sameLength'


def test_shadowing_capability_strict(registry: CapabilityRegistry) -> None:
    """Raise when a capability replaces an existing one in strict mode."""
    registry.strict_mode = True

    with pytest.raises(PluginError, match="Capability 'set' .* is shadowing"):
        registry.add_capability(ECHO.model_copy(update={'name': 'set'}))


def test_invalid_capability_schema(registry: CapabilityRegistry) -> None:
    """Skip capabilities with clashing parameter names."""
    broken = Capability(
        capability=echo,
        name='broken',
        parameters=Schema({
            'text': Attribute(),
            'other': Attribute(aliases=['text']),
        }),
    )

    with pytest.warns(PluginWarning, match='has an invalid schema'):
        registry.add_capability(broken)

    assert 'broken' not in registry.capabilities
