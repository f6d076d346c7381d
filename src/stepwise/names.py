"""Name primitive types and validation rules.

This module defines base name patterns and strongly-typed aliases used to
validate step kinds, property names and assertion operators.

The rules defined here form part of the public document contract and are
relied upon by the loader, the registry and plugins.
"""

from re import ASCII
from re import compile as regexp
from typing import Annotated

from pydantic import Field

#: Base pattern for all identifiers.
#: Identifiers must start with a letter and may contain letters, digits, or underscores
_NAME_PATTERN = r'[a-zA-Z][\w]*'

#: Compiled pattern for step kinds.
#: Supports both builtin kinds ("set") and plugin-qualified kinds ("http.get").
KIND_PATTERN = regexp(
    rf'^((?P<plugin>{_NAME_PATTERN})\.)?(?P<name>{_NAME_PATTERN})$',
    flags=ASCII,
)

#: Compiled pattern for variable identifiers
VARIABLE_PATTERN = regexp(
    rf'^(?P<name>{_NAME_PATTERN})$',
    flags=ASCII,
)

#: Compiled pattern for property keys.
#: Property keys are looser than variables: dots and dashes are allowed
#: so that keys such as `db.host` from properties files can be referenced.
PROPERTY_PATTERN = regexp(r'^[^\s{}=:]+$')


Kind = Annotated[
    str, Field(
        pattern=rf'^({_NAME_PATTERN}\.)?{_NAME_PATTERN}$',
        title='Step kind',
        description=(
            'Name of the capability executed by a scenario step. '
            'A kind may be specified either as a builtin name '
            '(for example, `set`) or as a plugin-qualified name '
            'using dot notation (for example, `http.get`).'
        ),
        examples=[
            'set',
            'http.get',
        ],
    ),
]

Variable = Annotated[
    str, Field(
        pattern=rf'^{_NAME_PATTERN}$',
        title='Variable identifier',
        description=(
            'Name of a parameter or a declared value. '
            'Variable identifiers must start with a letter and may contain '
            'letters, digits, or underscores.'
        ),
        examples=[
            'userId',
            'api_token',
        ],
    ),
]

PropertyKey = Annotated[
    str, Field(
        min_length=1,
        pattern=r'^[^\s{}=:]+$',
        title='Property key',
        description=(
            'Case-sensitive key of a property. '
            'Keys must be non-empty and must not contain whitespace, '
            'braces, `=` or `:`.'
        ),
        examples=[
            'token',
            'db.host',
        ],
    ),
]
