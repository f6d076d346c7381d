"""Tests for capability definitions and built-in capabilities."""

import sys
from pathlib import Path
from threading import Event
from typing import TYPE_CHECKING

import pytest
from pydantic import ValidationError

from stepwise.errors import CapabilityError, StepTimeoutError
from stepwise.extensions import Attribute, Capability, CapabilityContext, Schema

if TYPE_CHECKING:
    from pyfakefs.fake_filesystem import FakeFilesystem

    from stepwise.core import CapabilityRegistry


def make_context(workspace: Path | str = '.', timeout: float = 2.0,
                 cancel: Event | None = None) -> CapabilityContext:
    """Build an execution context for direct capability calls."""
    return CapabilityContext(
        workspace=Path(workspace),
        timeout=timeout,
        cancel=cancel or Event(),
        step_num=1,
    )


def test_build_capability_model() -> None:
    """Compile a declarative capability into a callable model."""
    capability = Capability(
        name='echo',
        capability=lambda params, context: {'echo': params['text'] * params['times']},  # noqa: ARG005
        parameters=Schema({
            'text': Attribute(base=str, required=True),
            'times': Attribute(base=int, aliases=['count'], default=1),
        }),
    )

    model = capability.build('test')

    assert model.kind == 'test.echo'

    bound = model.model_validate({'text': 'ab', 'count': '2'})

    assert bound(make_context()) == {'echo': 'abab'}


def test_capability_signature_accepts_raw_values() -> None:
    """Check parameter names without checking raw value types."""
    capability = Capability(
        name='wait',
        capability=lambda params, context: None,  # noqa: ARG005
        parameters=Schema({
            'duration': Attribute(base=int, required=True),
        }),
    )

    model = capability.build()

    model.signature.model_validate({'duration': '{{delay}}'})

    with pytest.raises(ValidationError):
        model.model_validate({'duration': '{{delay}}'})

    with pytest.raises(ValidationError, match='Field required'):
        model.signature.model_validate({})

    with pytest.raises(ValidationError, match='Extra inputs are not permitted'):
        model.signature.model_validate({'duration': 1, 'unknown': 2})


def test_capability_duplicated_alias() -> None:
    """Reject schemas with clashing names and aliases."""
    capability = Capability(
        name='broken',
        capability=lambda params, context: None,  # noqa: ARG005
        parameters=Schema({
            'first': Attribute(),
            'second': Attribute(aliases=['first']),
        }),
    )

    with pytest.raises(ValueError, match='is used twice'):
        capability.build()


def test_attribute_required_with_default() -> None:
    """Reject attributes both required and defaulted."""
    with pytest.raises(ValidationError, match='can not have a default value'):
        Attribute(required=True, default=1)


def test_set_exports_every_parameter(registry: 'CapabilityRegistry') -> None:
    """Return all parameters of the `set` capability."""
    bound = registry.capabilities['set'].model_validate({'x': 5, 'db.host': 'localhost'})

    assert bound(make_context()) == {'x': 5, 'db.host': 'localhost'}


def test_set_rejects_invalid_property_keys(registry: 'CapabilityRegistry') -> None:
    """Reject `set` parameters which can not be property keys."""
    capability = registry.capabilities['set']

    for model in (capability, capability.signature):
        with pytest.raises(ValidationError, match="parameter name 'bad key' is not allowed"):
            model.model_validate({'ok': 1, 'bad key': 2})


def test_invalid_extra_pattern() -> None:
    """Reject undeclared parameter patterns which do not compile."""
    with pytest.raises(ValidationError, match='invalid parameter name pattern'):
        Capability(capability=lambda params, context: None, name='broken',  # noqa: ARG005
                   open_parameters=True, extra_pattern='[')


def test_empty_accepts_anything(registry: 'CapabilityRegistry') -> None:
    """Ignore parameters of the `empty` capability."""
    bound = registry.capabilities['empty'].model_validate({'anything': [1, 2]})

    assert bound(make_context()) is None


@pytest.mark.parametrize('kind, params, expected', (
    pytest.param('id', {'value': 'T-1'}, {'id': 'T-1'}, id='identifier'),
    pytest.param('id', {'id': 'T-2'}, {'id': 'T-2'}, id='identifier alias'),
    pytest.param('desc', {'desc': 'Login works'}, {'desc': 'Login works'}, id='description alias'),
))
def test_identifier_capabilities(registry: 'CapabilityRegistry', kind: str,
                                 params: dict[str, str], expected: dict[str, str]) -> None:
    """Set the scenario identifier and description properties."""
    bound = registry.capabilities[kind].model_validate(params)

    assert bound(make_context()) == expected


def test_sleep(registry: 'CapabilityRegistry') -> None:
    """Sleep for a number of milliseconds given as text."""
    bound = registry.capabilities['sleep'].model_validate({'duration': '10'})

    assert bound.duration == 10  # type: ignore[attr-defined]
    assert bound(make_context()) is None


def test_sleep_exceeding_timeout(registry: 'CapabilityRegistry') -> None:
    """Stop sleeping when the step timeout expires."""
    bound = registry.capabilities['sleep'].model_validate({'ms': 5000})

    with pytest.raises(StepTimeoutError, match='exceeds the step timeout'):
        bound(make_context(timeout=0.05))


def test_sleep_cancelled(registry: 'CapabilityRegistry') -> None:
    """Stop sleeping when the run is cancelled."""
    cancel = Event()
    cancel.set()

    bound = registry.capabilities['sleep'].model_validate({'duration': 5000})

    with pytest.raises(CapabilityError, match='cancellation'):
        bound(make_context(cancel=cancel))


@pytest.mark.parametrize('source, path, expected', (
    pytest.param('{"token": "abc"}', 'token', 'abc', id='top-level key'),
    pytest.param('{"a": {"b": [{"c": 1}, {"c": 2}]}}', 'a.b.*.c', [1, 2], id='wildcard'),
    pytest.param('{"a": {"b": [{"c": 1}, {"c": 2}]}}', '/a/b/1/c', 2, id='json pointer'),
    pytest.param({'already': 'parsed'}, 'already', 'parsed', id='structured source'),
))
def test_extract(registry: 'CapabilityRegistry', source: str | dict[str, str],
                 path: str, expected: object) -> None:
    """Extract values from JSON text."""
    bound = registry.capabilities['extract'].model_validate({
        'source': source,
        'path': path,
        'into': 'result',
    })

    assert bound(make_context()) == {'result': expected}


@pytest.mark.parametrize('source, path, message', (
    pytest.param('not json', 'a', 'not valid JSON', id='invalid json'),
    pytest.param('{"a": 1}', 'b', 'not found', id='missing path'),
))
def test_extract_errors(registry: 'CapabilityRegistry', source: str,
                        path: str, message: str) -> None:
    """Fail extraction from invalid sources."""
    bound = registry.capabilities['extract'].model_validate({
        'source': source,
        'path': path,
        'into': 'result',
    })

    with pytest.raises(CapabilityError, match=message):
        bound(make_context())


def test_read_file(registry: 'CapabilityRegistry', fs: 'FakeFilesystem') -> None:
    """Read a workspace-relative file."""
    fs.create_file('/workspace/data/body.json', contents='{"id": 1}')

    bound = registry.capabilities['readFile'].model_validate({
        'file': 'data/body.json',
        'into': 'body',
    })

    assert bound(make_context('/workspace')) == {'body': '{"id": 1}'}


def test_read_missing_file(registry: 'CapabilityRegistry', fs: 'FakeFilesystem') -> None:
    """Fail reading a missing file."""
    fs.create_dir('/workspace')

    bound = registry.capabilities['readFile'].model_validate({
        'path': 'missing.txt',
        'into': 'body',
    })

    with pytest.raises(CapabilityError, match='Can not read file'):
        bound(make_context('/workspace'))


def test_shell(registry: 'CapabilityRegistry', tmp_path: Path) -> None:
    """Run a program and capture its output."""
    bound = registry.capabilities['shell'].model_validate({
        'command': [sys.executable, '-c', 'import sys; print("out"); print("err", file=sys.stderr)'],
    })

    assert bound(make_context(tmp_path)) == {
        'stdout': 'out',
        'stderr': 'err',
        'returncode': 0,
    }


def test_shell_exit_code(registry: 'CapabilityRegistry', tmp_path: Path) -> None:
    """Report a non-zero exit code, or fail on it when checked."""
    command = [sys.executable, '-c', 'raise SystemExit(3)']

    unchecked = registry.capabilities['shell'].model_validate({'command': command})
    checked = registry.capabilities['shell'].model_validate({'command': command, 'check': 'true'})

    assert unchecked(make_context(tmp_path))['returncode'] == 3

    with pytest.raises(CapabilityError, match='exited with code 3'):
        checked(make_context(tmp_path))


def test_shell_timeout(registry: 'CapabilityRegistry', tmp_path: Path) -> None:
    """Kill a program running longer than the step timeout."""
    bound = registry.capabilities['shell'].model_validate({
        'cmd': [sys.executable, '-c', 'import time; time.sleep(10)'],
    })

    with pytest.raises(StepTimeoutError, match='timed out'):
        bound(make_context(tmp_path, timeout=0.3))


def test_shell_cancelled(registry: 'CapabilityRegistry', tmp_path: Path) -> None:
    """Kill a program when the run is cancelled."""
    cancel = Event()
    cancel.set()

    bound = registry.capabilities['shell'].model_validate({
        'command': [sys.executable, '-c', 'import time; time.sleep(10)'],
    })

    with pytest.raises(CapabilityError, match='cancellation'):
        bound(make_context(tmp_path, cancel=cancel))


def test_shell_missing_program(registry: 'CapabilityRegistry', tmp_path: Path) -> None:
    """Fail when the program can not be started."""
    bound = registry.capabilities['shell'].model_validate({
        'command': ['definitely-not-an-existing-program-4242'],
    })

    with pytest.raises(CapabilityError, match='Can not run command'):
        bound(make_context(tmp_path))
