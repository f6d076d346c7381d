"""Built-in assertion operators.

Substituted values are usually strings, so comparisons are performed on
the property-set string form of both sides. Numeric operators accept any
value that reads as a decimal number.
"""

# ruff: noqa: S101

from math import inf
from re import IGNORECASE, UNICODE, fullmatch
from re import compile as regexp
from typing import TYPE_CHECKING

from stepwise.extensions import Comparator
from stepwise.values import MAPPINGS, SEQUENCES, stringify

if TYPE_CHECKING:
    from collections.abc import Mapping

if TYPE_CHECKING:
    from stepwise.values import RuntimeValue

#: Expected value matching anything in `equals`.
ANY_VALUE = '*'

NUMBER_PATTERN = regexp(r'^[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?$')
RANGE_PATTERN = regexp(
    r'^(?P<low>[+-]?\d+(\.\d+)?)\s*-\s*(?P<high>[+-]?\d+(\.\d+)?)$',
)


def as_number(value: 'RuntimeValue') -> float | None:
    """Read a value as a number.

    Returns:
        The numeric value, or `None` if the value is not numeric.
        Booleans are never numeric.
    """
    if isinstance(value, bool):
        return None

    if isinstance(value, (int, float)):
        return float(value)

    if isinstance(value, (str, bytes)):
        text = stringify(value).strip()
        if NUMBER_PATTERN.match(text):
            return float(text)

    return None


def _text(value: 'RuntimeValue', ignore_case: bool = False) -> str:
    text = stringify(value)

    return text.casefold() if ignore_case else text


def _equals(actual: 'RuntimeValue', expected: 'RuntimeValue',
            options: 'Mapping[str, RuntimeValue]') -> bool:
    """Equality checker implementation.

    Numbers are compared numerically when both sides are numeric,
    everything else is compared in string form. An expected `*`
    matches any actual value.
    """
    if isinstance(expected, str) and expected == ANY_VALUE:
        return True

    actual_number, expected_number = as_number(actual), as_number(expected)
    if actual_number is not None and expected_number is not None:
        return actual_number == expected_number

    ignore_case = bool(options.get('ignore_case'))

    return _text(actual, ignore_case) == _text(expected, ignore_case)


def _not_equals(actual: 'RuntimeValue', expected: 'RuntimeValue',
                options: 'Mapping[str, RuntimeValue]') -> bool:
    """Inequality checker implementation."""
    return not _equals(actual, expected, options)


def _contains(actual: 'RuntimeValue', expected: 'RuntimeValue',
              options: 'Mapping[str, RuntimeValue]') -> bool:
    """Containment checker.

    Strings are searched for a substring, mappings for a key and
    sequences for an item equal to the expected value.
    """
    ignore_case = bool(options.get('ignore_case'))

    if isinstance(actual, MAPPINGS):
        return _text(expected, ignore_case) in {
            _text(key, ignore_case)
            for key in actual
        }

    if isinstance(actual, SEQUENCES):
        return any(
            _equals(item, expected, options)
            for item in actual
        )

    return _text(expected, ignore_case) in _text(actual, ignore_case)


def _numbers(actual: 'RuntimeValue', expected: 'RuntimeValue') -> tuple[float, float]:
    """Read both sides of a numeric comparison.

    Raises:
        AssertionError: If a side is not numeric.
    """
    actual_number, expected_number = as_number(actual), as_number(expected)

    assert actual_number is not None, f'"{stringify(actual)}" is not a number'
    assert expected_number is not None, f'"{stringify(expected)}" is not a number'

    return actual_number, expected_number


def _greater_than(actual: 'RuntimeValue', expected: 'RuntimeValue',
                  options: 'Mapping[str, RuntimeValue]') -> bool:  # noqa: ARG001
    """Greater-than checker."""
    actual_number, expected_number = _numbers(actual, expected)

    return actual_number > expected_number


def _less_than(actual: 'RuntimeValue', expected: 'RuntimeValue',
               options: 'Mapping[str, RuntimeValue]') -> bool:  # noqa: ARG001
    """Less-than checker."""
    actual_number, expected_number = _numbers(actual, expected)

    return actual_number < expected_number


def _matches(actual: 'RuntimeValue', expected: 'RuntimeValue',
             options: 'Mapping[str, RuntimeValue]') -> bool:
    """Regex checker. The whole actual value must match the pattern."""
    flags = UNICODE
    if options.get('ignore_case'):
        flags |= IGNORECASE

    return fullmatch(stringify(expected), stringify(actual), flags) is not None


def parse_ranges(ranges: str) -> list[tuple[float, float]]:
    """Parse a comma-separated list of inclusive ranges.

    Each item is one of:
        - `value+`: from value upwards;
        - `value-`: from value downwards;
        - `low-high`: from low to high;
        - `value`: exactly value.

    Raises:
        ValueError: If an item is malformed.
    """
    bounds = []

    for raw in ranges.split(','):
        item = raw.strip()

        if item.endswith('+') and (low := as_number(item[:-1])) is not None:
            bounds.append((low, inf))
        elif item.endswith('-') and (high := as_number(item[:-1])) is not None:
            bounds.append((-inf, high))
        elif match := RANGE_PATTERN.match(item):
            bounds.append((float(match.group('low')), float(match.group('high'))))
        elif (exact := as_number(item)) is not None:
            bounds.append((exact, exact))
        else:
            raise ValueError(f'Invalid range {item!r} in {ranges!r}')

    return bounds


def in_ranges(number: float, ranges: str) -> bool:
    """Tell whether a number falls in one of the ranges.

    Raises:
        AssertionError: If the ranges are malformed.
    """
    try:
        bounds = parse_ranges(ranges)
    except ValueError as error:
        raise AssertionError(str(error)) from error

    return any(low <= number <= high for low, high in bounds)


def _in_range(actual: 'RuntimeValue', expected: 'RuntimeValue',
              options: 'Mapping[str, RuntimeValue]') -> bool:  # noqa: ARG001
    """Range checker using the `1-5`, `10+`, `3-` syntax.

    Malformed ranges fail the assertion.
    """
    actual_number = as_number(actual)
    assert actual_number is not None, f'"{stringify(actual)}" is not a number'

    return in_ranges(actual_number, stringify(expected))


equals = Comparator(
    comparator=_equals,
    name='equals',
    aliases=['eq', 'equal'],
    verb='equal',
    title='Equality',
    description='Actual value must be equal to the expected value.',
)

not_equals = Comparator(
    comparator=_not_equals,
    name='notEquals',
    aliases=['ne', 'notEqual'],
    verb='differ from',
    title='Inequality',
    description='Actual value must differ from the expected value.',
)

contains = Comparator(
    comparator=_contains,
    name='contains',
    verb='contain',
    title='Containment',
    description='Actual value must contain the expected value.',
)

greater_than = Comparator(
    comparator=_greater_than,
    name='greaterThan',
    aliases=['gt'],
    verb='be greater than',
    title='Lower bound',
    description='Actual value must be greater than the expected value.',
)

less_than = Comparator(
    comparator=_less_than,
    name='lessThan',
    aliases=['lt'],
    verb='be less than',
    title='Upper bound',
    description='Actual value must be less than the expected value.',
)

matches = Comparator(
    comparator=_matches,
    name='matches',
    aliases=['regex'],
    verb='match',
    title='Regex match',
    description='Actual value must fully match the expected pattern.',
)

in_range = Comparator(
    comparator=_in_range,
    name='inRange',
    aliases=['range'],
    verb='be in range',
    title='Range',
    description='Actual value must be within one of the expected ranges.',
)
