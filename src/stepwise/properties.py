"""Layered properties and `{{key}}` template substitution.

A property set is an ordered list of string mappings searched from the
highest precedence layer to the lowest one:

- the *runtime* layer holds values exported by already executed steps;
- the *file* layer holds values read from properties files.

Substitution is single-pass: text produced by a substituted value is
never scanned for placeholders again.
"""

import logging
from pathlib import Path
from re import compile as regexp
from typing import TYPE_CHECKING

from stepwise.errors import (
    CapabilityError,
    ErrorContext,
    NotFoundError,
    PropertiesError,
    UnresolvedPropertyError,
)
from stepwise.names import PROPERTY_PATTERN
from stepwise.values import MAPPINGS, SEQUENCES, stringify

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

if TYPE_CHECKING:
    from stepwise.values import RuntimeValue, Value

logger = logging.getLogger(__name__)

#: Placeholder syntax. Whitespace inside the braces is tolerated.
TEMPLATE_PATTERN = regexp(r'\{\{\s*([^{}\s]+)\s*\}\}')

COMMENT_PREFIXES = ('#', '!')
SEPARATORS = ('=', ':')


class PropertySet:
    """Ordered layers of string properties.

    Lookups walk the layers from the highest precedence (runtime exports)
    to the lowest one (file properties). A property set belongs to exactly
    one run and must never be shared between concurrent runs.
    """

    def __init__(self, file_properties: 'Mapping[str, Value] | None' = None) -> None:
        """Initialize a property set.

        Args:
            file_properties: Lowest precedence values, usually read from
                properties files. Values are stored in string form.
        """
        self.runtime: dict[str, str] = {}
        self.file: dict[str, str] = {
            key: stringify(value)
            for key, value in (file_properties or {}).items()
        }

    @classmethod
    def from_files(cls, *paths: 'Path | str') -> 'PropertySet':
        """Build a property set from properties files.

        Later files override keys defined by earlier ones.

        Args:
            paths: Properties files in increasing precedence order.

        Returns:
            New property set with an empty runtime layer.

        Raises:
            NotFoundError: If a file does not exist.
            PropertiesError: If a file is malformed.
        """
        merged: dict[str, str] = {}
        for path in paths:
            merged.update(load_properties(path))

        return cls(merged)

    @property
    def layers(self) -> tuple[dict[str, str], ...]:
        """Layers in lookup order, highest precedence first."""
        return self.runtime, self.file

    def __contains__(self, key: object) -> bool:
        return any(key in layer for layer in self.layers)

    def get(self, key: str, default: str | None = None) -> str | None:
        """Return a property value or `default` when it is missing."""
        for layer in self.layers:
            if key in layer:
                return layer[key]

        return default

    def resolve(self, key: str, *, step_num: int | None = None) -> str:
        """Return the value of a property.

        Args:
            key: Case-sensitive property key.
            step_num: Position of the step performing the lookup.

        Returns:
            Value from the highest precedence layer defining the key.

        Raises:
            UnresolvedPropertyError: If no layer defines the key.
        """
        for layer in self.layers:
            if key in layer:
                return layer[key]

        raise UnresolvedPropertyError(key, step_num=step_num)

    def resolve_template(self, text: str, *, step_num: int | None = None) -> str:
        """Replace every `{{key}}` placeholder in a text.

        Args:
            text: Text possibly containing placeholders.
            step_num: Position of the step performing the substitution.

        Returns:
            Text with all placeholders substituted in a single pass.

        Raises:
            UnresolvedPropertyError: If a referenced key is not defined.
        """
        return TEMPLATE_PATTERN.sub(
            lambda match: self.resolve(match.group(1), step_num=step_num),
            text,
        )

    def resolve_value(self, value: 'RuntimeValue', *,
                      step_num: int | None = None) -> 'RuntimeValue':
        """Recursively substitute placeholders inside a raw value.

        Strings are substituted, mappings and sequences are walked, other
        scalars are returned untouched.

        Raises:
            UnresolvedPropertyError: If a referenced key is not defined.
        """
        if isinstance(value, str):
            return self.resolve_template(value, step_num=step_num)

        if isinstance(value, MAPPINGS):
            return {
                key: self.resolve_value(item, step_num=step_num)
                for key, item in value.items()
            }

        if isinstance(value, SEQUENCES):
            return [
                self.resolve_value(item, step_num=step_num)
                for item in value
            ]

        return value

    def export(self, values: 'Mapping[str, Value]') -> None:
        """Write values into the runtime layer in their string form.

        Keys are checked before anything is written, so a rejected export
        leaves the runtime layer untouched.

        Raises:
            CapabilityError: If a key is not a valid property key.
        """
        if invalid := [key for key in values if not isinstance(key, str) or not PROPERTY_PATTERN.match(key)]:
            raise CapabilityError(f'invalid property key {invalid[0]!r} in exports')

        self.runtime.update({key: stringify(value) for key, value in values.items()})

    def snapshot(self) -> dict[str, str]:
        """Return a flattened view where higher layers win."""
        flat: dict[str, str] = {}
        for layer in reversed(self.layers):
            flat.update(layer)

        return flat


def parse_properties(lines: 'Iterable[str]', *,
                     filename: str | None = None) -> dict[str, str]:
    """Parse `key=value` lines.

    Both `=` and `:` separate a key from its value, whichever comes first.
    Lines starting with `#` or `!` are comments, blank lines are ignored.

    Args:
        lines: Lines of a properties document.
        filename: Source name used in error messages.

    Returns:
        Mapping of keys to values in document order.

    Raises:
        PropertiesError: If a line has no separator or an invalid key.
    """
    properties: dict[str, str] = {}

    for line_num, raw in enumerate(lines):
        line = raw.strip()
        if not line or line.startswith(COMMENT_PREFIXES):
            continue

        positions = [line.find(sep) for sep in SEPARATORS if sep in line]
        if not positions:
            raise PropertiesError(
                f'Missing separator in properties line {line_num + 1}',
                context=ErrorContext(filename=filename, line_num=line_num),
            )

        position = min(positions)
        key, value = line[:position].strip(), line[position + 1:].strip()

        if not PROPERTY_PATTERN.match(key):
            raise PropertiesError(
                f'Invalid property key {key!r} in properties line {line_num + 1}',
                context=ErrorContext(filename=filename, line_num=line_num),
            )

        properties[key] = value

    return properties


def load_properties(path: 'Path | str') -> dict[str, str]:
    """Read a properties file.

    Raises:
        NotFoundError: If the file does not exist.
        PropertiesError: If the file is malformed.
    """
    path = Path(path)
    if not path.is_file():
        raise NotFoundError(f'Properties file not found: {path}', path=str(path))

    logger.debug('Loading properties from %s', path)

    with path.open('rt', encoding='utf-8') as content:
        properties = parse_properties(content, filename=str(path))

    logger.debug('Loaded %d properties from %s', len(properties), path)

    return properties
