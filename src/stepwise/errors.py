"""Errors raised while loading and running scenarios.

Every error carries a one-line `message`, which is what step outcomes and
reports show, and an optional `ErrorContext`. Rendering an error with
`str()` appends the location (file, line, step) and, when available,
a YAML excerpt of the offending document element.
"""

from os import linesep
from typing import TYPE_CHECKING, Any, TypedDict

from yaml import safe_dump
from yaml.error import MarkedYAMLError

from stepwise.values import MAPPINGS, SCALARS, SEQUENCES

if TYPE_CHECKING:
    from importlib.metadata import EntryPoint
    from typing import Self

if TYPE_CHECKING:
    from pydantic_core import ErrorDetails, ValidationError

#: File name shown for content that was not read from a file.
ANONYMOUS_SOURCE = '<unicode string>'
#: Replacement of values that can not be shown in an excerpt.
OPAQUE_VALUE = '<runtime object>'

LOCATION_INDENT = 4
EXCERPT_INDENT = 8


class ErrorContext(TypedDict, total=False):
    """Where and on what an error happened.

    Line and column numbers are 0-based, as PyYAML marks report them;
    they are shown 1-based. Step numbers are 1-based.
    """

    filename: str | None
    line_num: int | None
    column_num: int | None
    step_num: int | None

    #: Exception the error was built from.
    error: Exception | None
    #: Property values visible when the error happened.
    context: dict[str, Any] | None
    #: Document element the error is about.
    element: Any


class ErrorFormatter:
    """Renders error messages together with their context."""

    @classmethod
    def format(cls, message: str, context: ErrorContext | None = None) -> str:
        """Append location and excerpt lines to a message.

        Args:
            message: One-line error description.
            context: Optional error context.

        Returns:
            The message alone without context, otherwise the message
            followed by the location and excerpt lines.
        """
        if not context:
            return message

        lines = [message, *cls.describe_location(context)]
        if excerpt := cls.render_excerpt(context):
            lines.append(excerpt)

        return linesep.join(lines)

    @staticmethod
    def describe_location(context: ErrorContext) -> list[str]:
        """Describe the file position and the step of an error."""
        prefix = ' ' * LOCATION_INDENT

        where = f'{prefix}in "{context.get("filename") or ANONYMOUS_SOURCE}"'
        if (line_num := context.get('line_num')) is not None:
            where += f', line {line_num + 1}'
            if (column_num := context.get('column_num')) is not None:
                where += f', column {column_num + 1}'

        lines = [where]
        if (step_num := context.get('step_num')) is not None:
            lines.append(f'{prefix}on step {step_num}')

        return lines

    @classmethod
    def render_excerpt(cls, context: ErrorContext) -> str:
        """Render the part of the document the error is about.

        YAML errors show the parser snippet around the problem mark,
        other errors show the offending element (and the properties
        visible at that moment) dumped back to YAML.
        """
        error = context.get('error')
        if isinstance(error, MarkedYAMLError):
            if error.problem_mark is None:
                return ''
            return cls.indent(error.problem_mark.get_snippet(indent=0) or '')

        element = context.get('element')
        if not element:
            return ''

        blocks = []
        if values := context.get('context'):
            blocks.append(cls.dump({'properties': dict(values)}))
        blocks.append(cls.dump(element))

        return cls.indent(f'...{linesep}' + f'---{linesep}'.join(blocks))

    @classmethod
    def sanitize(cls, value: Any) -> Any:  # noqa: ANN401
        """Replace values PyYAML can not safely dump with a placeholder."""
        if value is None or isinstance(value, SCALARS):
            return value

        if isinstance(value, MAPPINGS):
            return {str(key): cls.sanitize(item) for key, item in value.items()}

        if isinstance(value, SEQUENCES):
            return [cls.sanitize(item) for item in value]

        return OPAQUE_VALUE

    @classmethod
    def dump(cls, value: Any) -> str:  # noqa: ANN401
        """Dump a value to block-style YAML."""
        return safe_dump(cls.sanitize(value), indent=2, sort_keys=False, allow_unicode=True)

    @staticmethod
    def indent(text: str, width: int = EXCERPT_INDENT) -> str:
        """Indent non-blank lines of a text."""
        return linesep.join(
            ' ' * width + line
            for line in text.splitlines()
            if line.strip()
        )


class PluginWarning(UserWarning):
    """Warning about a plugin that was skipped in relaxed mode."""


class StepwiseError(Exception, ErrorFormatter):
    """Base exception for all stepwise errors.

    The `message` attribute holds the single-line description used in
    reports, while `str()` renders the full diagnostic.
    """

    def __init__(self, message: str, *,
                 context: ErrorContext | None = None) -> None:
        self.message = message
        self.context = context

        super().__init__(message)

    def __str__(self) -> str:
        return self.format(self.message, self.context)


class PluginError(StepwiseError):
    """Plugin failure raised in strict mode."""

    def __init__(self, message: str, *,
                 entrypoint: 'EntryPoint | None' = None) -> None:
        """Initialize a plugin error.

        Args:
            message: Error description.
            entrypoint: Entry point of the failing plugin, if known.
        """
        self.entrypoint = entrypoint

        super().__init__(message)


class NotFoundError(StepwiseError):
    """Error raised when a scenario or properties file does not exist."""

    def __init__(self, message: str, *, path: str | None = None) -> None:
        self.path = path

        super().__init__(message, context=ErrorContext(filename=path) if path else None)


class ParseError(StepwiseError):
    """Error raised when a document is not structurally valid.

    Carries the 1-based `line` and `column` of the problem when the
    underlying parser reports one.
    """

    @property
    def line(self) -> int | None:
        """1-based line of the problem, if known."""
        if not self.context or self.context.get('line_num') is None:
            return None
        return self.context['line_num'] + 1  # type: ignore[operator]

    @property
    def column(self) -> int | None:
        """1-based column of the problem, if known."""
        if not self.context or self.context.get('column_num') is None:
            return None
        return self.context['column_num'] + 1  # type: ignore[operator]

    @classmethod
    def from_yaml_error(cls, error: MarkedYAMLError, *,
                        filename: str | None = None) -> 'Self':
        """Create a parse error from a PyYAML error with marks.

        Args:
            error: Scanner, parser or composer error.
            filename: Source file name overriding the mark name.

        Returns:
            ParseError positioned at the problem mark.
        """
        mark = error.problem_mark or error.context_mark

        message = f'Invalid YAML: {error.problem}' if error.problem else 'Invalid YAML'
        if mark is None:
            return cls(message, context=ErrorContext(filename=filename, error=error))

        return cls(
            f'{message} (line {mark.line + 1}, column {mark.column + 1})',
            context=ErrorContext(
                filename=filename or mark.name,
                line_num=mark.line,
                column_num=mark.column,
                error=error,
            ),
        )


class SchemaError(StepwiseError):
    """Error raised when a document violates the scenario schema.

    Used for unrecognized step kinds, missing or unknown parameters,
    malformed assertions and misplaced headers.
    """

    @classmethod
    def from_pydantic_error(cls, error: 'ValidationError', *,
                            data: Any = None,  # noqa: ANN401
                            filename: str | None = None,
                            step_num: int | None = None) -> 'Self':
        """Create a schema error from the first Pydantic error detail.

        The message is the detail message followed by its location,
        for example `Step 2: Field required (duration)`.

        Args:
            error: ValidationError raised by Pydantic.
            data: Validated data, used to point at the failing element.
            filename: Source file name.
            step_num: Position of the validated step.

        Returns:
            SchemaError describing the first failure.
        """
        prefix = f'Step {step_num}: ' if step_num else ''
        context = ErrorContext(filename=filename, step_num=step_num, error=error, element=data)

        details = error.errors(include_url=False, include_input=False)
        if not details:
            return cls(f'{prefix}Validation error', context=context)

        detail = details[0]
        message = cls.first_line(detail.get('msg') or '') or 'Validation error'
        if loc := '.'.join(str(part) for part in detail['loc']):
            message += f' ({loc})'

        if data is not None:
            context['element'] = cls.pinpoint(data, detail)

        return cls(f'{prefix}{message}', context=context)

    @staticmethod
    def first_line(text: str) -> str:
        """Return the first non-blank line of a text."""
        return next((line.strip() for line in text.splitlines() if line.strip()), '')

    @staticmethod
    def pinpoint(data: Any, detail: 'ErrorDetails') -> Any:  # noqa: ANN401
        """Narrow the validated data down to the failing element.

        Follows the error location as far as it exists in the data and
        returns the innermost element found, wrapped in its key when the
        last step was a mapping key.
        """
        element, key = data, None

        for part in detail['loc']:
            if isinstance(element, MAPPINGS) and part in element:
                element, key = element[part], part
            elif isinstance(element, SEQUENCES) and isinstance(part, int) and 0 <= part < len(element):
                element, key = list(element)[part], None
            else:
                break

        if key is not None:
            return {key: element}

        return element


class PropertiesError(StepwiseError):
    """Error raised when a properties file is malformed."""


class UnresolvedPropertyError(StepwiseError):
    """Error raised when a referenced property key has no value.

    Captured by the executor as the step's Error outcome.
    """

    def __init__(self, key: str, *, step_num: int | None = None) -> None:
        """Initialize an unresolved property error.

        Args:
            key: The missing property key.
            step_num: Position of the step that referenced the key.
        """
        self.key = key
        self.step_num = step_num

        super().__init__(
            f'unresolved property "{key}"',
            context=ErrorContext(step_num=step_num) if step_num is not None else None,
        )


class CapabilityError(StepwiseError):
    """Error raised when the operation behind an action step fails."""


class StepTimeoutError(StepwiseError, TimeoutError):
    """Error raised when a bounded wait is exceeded by a step."""
