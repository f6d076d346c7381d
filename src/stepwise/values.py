"""Value types flowing through the engine.

Three shapes of data meet here: raw values read from scenario documents,
whatever capabilities return, and the strings a property set stores.
`normalize` turns capability output into plain data, `stringify` turns
plain data into property strings.
"""

from collections.abc import Mapping, Sequence
from datetime import date, datetime, timedelta
from json import dumps
from typing import Any

#: Atomic values.
type Scalar = date | datetime | timedelta | str | bytes | int | float | bool

#: Plain data: scalars nested in lists and string-keyed mappings.
type Value = Scalar | Sequence['Value'] | Mapping[str, 'Value'] | None

#: Anything a capability, a plugin or the YAML loader hands over
#: before it is normalized.
type RuntimeValue = Any

MAPPINGS = (dict,)
SCALARS = (date, datetime, timedelta, str, bytes, int, float, bool)
SEQUENCES = (list, tuple, set)


def normalize(value: RuntimeValue) -> Value:
    """Convert capability output into plain data.

    Tuples and sets become lists. Mapping keys must be strings.

    Raises:
        TypeError: On non-string keys or objects that are not plain data.
    """
    if value is None or isinstance(value, SCALARS):
        return value

    if isinstance(value, MAPPINGS):
        result = {}
        for key, item in value.items():
            if not isinstance(key, str):
                raise TypeError(f'mapping key {key!r} is not a string')
            result[key] = normalize(item)
        return result

    if isinstance(value, SEQUENCES):
        return list(map(normalize, value))

    raise TypeError(f'can not use {type(value).__name__} object {value!r} as a value')


def stringify(value: Value) -> str:
    """Convert plain data into its property string.

    Returns:
        An empty string for `None`, `true`/`false` for booleans,
        compact JSON for containers and `str()` for other scalars.
    """
    if value is None:
        return ''

    if isinstance(value, bool):
        return 'true' if value else 'false'

    if isinstance(value, bytes):
        return value.decode('utf-8', errors='replace')

    if isinstance(value, (*MAPPINGS, *SEQUENCES)):
        return dumps(value, ensure_ascii=False, separators=(',', ':'), default=str)

    return str(value)
