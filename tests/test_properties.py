"""Tests for layered properties and template substitution."""

from typing import TYPE_CHECKING, Any

import pytest

from stepwise.errors import CapabilityError, NotFoundError, PropertiesError, UnresolvedPropertyError
from stepwise.properties import PropertySet, load_properties, parse_properties

if TYPE_CHECKING:
    from pyfakefs.fake_filesystem import FakeFilesystem


def test_runtime_layer_overrides_file_layer() -> None:
    """Resolve a key defined in both layers from the runtime layer."""
    properties = PropertySet({'host': 'file.example', 'port': '80'})
    properties.export({'host': 'runtime.example'})

    assert properties.resolve('host') == 'runtime.example'
    assert properties.resolve('port') == '80'
    assert properties.file['host'] == 'file.example'


def test_unresolved_key() -> None:
    """Raise an error naming the missing key and the step."""
    properties = PropertySet()

    with pytest.raises(UnresolvedPropertyError, match=r'^unresolved property "missing"') as error:
        properties.resolve('missing', step_num=3)

    assert error.value.key == 'missing'
    assert error.value.step_num == 3
    assert error.value.message == 'unresolved property "missing"'


def test_keys_are_case_sensitive() -> None:
    """Do not match keys differing only by case."""
    properties = PropertySet({'Token': 'abc'})

    assert 'Token' in properties
    assert 'token' not in properties
    assert properties.get('token') is None


@pytest.mark.parametrize('text, expected', (
    pytest.param('{{name}}', 'world', id='single placeholder'),
    pytest.param('hello, {{ name }}!', 'hello, world!', id='whitespace inside braces'),
    pytest.param('{{db.host}}:{{db.port}}', 'localhost:5432', id='dotted keys'),
    pytest.param('no placeholders', 'no placeholders', id='plain text'),
    pytest.param('{single}', '{single}', id='single braces are kept'),
))
def test_resolve_template(text: str, expected: str) -> None:
    """Replace every placeholder of a text."""
    properties = PropertySet({
        'name': 'world',
        'db.host': 'localhost',
        'db.port': 5432,
    })

    assert properties.resolve_template(text) == expected


def test_resolve_template_is_single_pass() -> None:
    """Do not substitute placeholders produced by substituted values."""
    properties = PropertySet({'outer': '{{inner}}', 'inner': 'boom'})

    assert properties.resolve_template('{{outer}}') == '{{inner}}'


def test_resolve_template_unresolved() -> None:
    """Fail on the first placeholder without a value."""
    properties = PropertySet({'known': 'value'})

    with pytest.raises(UnresolvedPropertyError, match='"unknown"'):
        properties.resolve_template('{{known}} {{unknown}}', step_num=1)


def test_resolve_nested_value() -> None:
    """Substitute strings inside mappings and sequences only."""
    properties = PropertySet({'id': '42'})

    resolved = properties.resolve_value({
        'path': '/items/{{id}}',
        'query': ['{{id}}', 7, None],
        'flag': True,
    })

    assert resolved == {
        'path': '/items/42',
        'query': ['42', 7, None],
        'flag': True,
    }


@pytest.mark.parametrize('value, expected', (
    pytest.param(5, '5', id='integer'),
    pytest.param(1.5, '1.5', id='float'),
    pytest.param(True, 'true', id='boolean'),
    pytest.param(None, '', id='none'),
    pytest.param([1, 'a'], '[1,"a"]', id='sequence'),
    pytest.param({'k': 'v'}, '{"k":"v"}', id='mapping'),
))
def test_export_stringifies_values(value: Any, expected: str) -> None:
    """Store exported values in their string form."""
    properties = PropertySet()
    properties.export({'key': value})

    assert properties.resolve('key') == expected


def test_export_rejects_invalid_keys() -> None:
    """Write nothing when one of the exported keys is invalid."""
    properties = PropertySet()
    properties.export({'kept': '0'})

    with pytest.raises(CapabilityError, match="invalid property key 'bad key'"):
        properties.export({'ok': 1, 'bad key': 2})

    assert properties.runtime == {'kept': '0'}
    assert 'ok' not in properties


def test_snapshot() -> None:
    """Flatten layers with the runtime layer winning."""
    properties = PropertySet({'a': '1', 'b': '2'})
    properties.export({'b': '3', 'c': '4'})

    assert properties.snapshot() == {'a': '1', 'b': '3', 'c': '4'}


def test_parse_properties() -> None:
    """Parse key-value lines with both separators and comments."""
    content = [
        '# comment',
        '! another comment',
        '',
        'user = admin',
        'url=http://localhost:8080/api',
        'timeout: 30',
        'empty=',
    ]

    assert parse_properties(content) == {
        'user': 'admin',
        'url': 'http://localhost:8080/api',
        'timeout': '30',
        'empty': '',
    }


@pytest.mark.parametrize('line', (
    pytest.param('just a line', id='missing separator'),
    pytest.param('=value', id='empty key'),
    pytest.param('two words=value', id='whitespace in key'),
))
def test_parse_malformed_properties(line: str) -> None:
    """Reject malformed lines with the line number."""
    with pytest.raises(PropertiesError, match='line 2') as error:
        parse_properties(['ok=1', line], filename='bad.properties')

    assert error.value.context is not None
    assert error.value.context.get('line_num') == 1
    assert error.value.context.get('filename') == 'bad.properties'


def test_load_properties(fs: 'FakeFilesystem') -> None:
    """Read a properties file."""
    fs.create_file('/conf/app.properties', contents='a=1\nb: two\n')

    assert load_properties('/conf/app.properties') == {'a': '1', 'b': 'two'}


def test_load_missing_properties(fs: 'FakeFilesystem') -> None:  # noqa: ARG001
    """Raise when a properties file does not exist."""
    with pytest.raises(NotFoundError, match='Properties file not found'):
        load_properties('/conf/missing.properties')


def test_from_files_override_order(fs: 'FakeFilesystem') -> None:
    """Let later files override earlier ones."""
    fs.create_file('/conf/local.properties', contents='a=local\nb=local\n')
    fs.create_file('/conf/custom.properties', contents='b=custom\n')

    properties = PropertySet.from_files('/conf/local.properties', '/conf/custom.properties')

    assert properties.resolve('a') == 'local'
    assert properties.resolve('b') == 'custom'
    assert properties.runtime == {}
