"""Scenario document loader.

A scenario document is a YAML stream. The first document may be a header
(`spec: scenario`); every other document is either a step mapping or a
list of step mappings, which also allows a plain JSON array of steps.

Loading is purely syntactic. Parameter names are checked against the
capability signatures, but no placeholder is substituted.
"""

import logging
from pathlib import Path
from typing import TYPE_CHECKING

from pydantic import ValidationError
from yaml import SafeLoader, load_all
from yaml.error import MarkedYAMLError, YAMLError

from stepwise.builtins.comparators import in_range, parse_ranges
from stepwise.errors import ErrorContext, NotFoundError, ParseError, SchemaError
from stepwise.properties import TEMPLATE_PATTERN
from stepwise.schema import ActionStep, Scenario, ScenarioHeader, StepAdapter
from stepwise.values import SCALARS, stringify

from .registry import CapabilityRegistry

if TYPE_CHECKING:
    from io import TextIOBase
    from typing import Any

if TYPE_CHECKING:
    from stepwise.schema import AssertionStep, Step

logger = logging.getLogger(__name__)

HEADER_SPEC = 'scenario'


class ScenarioYAMLLoader(SafeLoader):
    """YAML loader used for scenario documents.

    A dedicated `SafeLoader` subclass so that constructors registered by
    applications do not leak into PyYAML global state.
    """


class ScenarioLoader:
    """Loader turning scenario documents into immutable scenarios."""

    def __init__(self, registry: CapabilityRegistry | None = None, *,
                 loader: type[SafeLoader] = ScenarioYAMLLoader) -> None:
        """Initialize the scenario loader.

        Args:
            registry: Registry used to check step kinds and operators.
                A registry with builtins and plugins is created if omitted.
            loader: YAML loader class.
        """
        self.registry = registry or CapabilityRegistry()
        self.loader = loader

    def load(self, path: Path | str, workspace: Path | str = '.') -> Scenario:
        """Load a scenario file.

        Args:
            path: Scenario path, relative to the workspace.
            workspace: Workspace root directory.

        Returns:
            Loaded scenario.

        Raises:
            NotFoundError: If the resolved file does not exist.
            ParseError: If the document is not valid YAML.
            SchemaError: If a document violates the scenario schema.
        """
        filepath = Path(workspace) / Path(path)
        if not filepath.is_file():
            raise NotFoundError(f'Scenario file not found: {filepath}', path=str(filepath))

        logger.debug('Loading scenario from %s', filepath)

        with filepath.open('rt', encoding='utf-8') as content:
            return self.parse(content, source=filepath)

    def parse(self, content: 'TextIOBase | str', *,
              source: Path | None = None) -> Scenario:
        """Parse a scenario stream.

        Args:
            content: YAML content as a string or file-like object.
            source: Path the content was read from, if any.

        Returns:
            Loaded scenario.

        Raises:
            ParseError: If the document is not valid YAML.
            SchemaError: If a document violates the scenario schema.
        """
        filename = str(source) if source else None

        try:
            documents = list(load_all(content, Loader=self.loader))

        except MarkedYAMLError as base:
            raise ParseError.from_yaml_error(base, filename=filename) from base

        except YAMLError as base:
            raise ParseError(f'Invalid YAML: {base}', context=ErrorContext(filename=filename)) from base

        header: ScenarioHeader | None = None
        steps: list[Step] = []

        for position, document in enumerate(documents):
            if document is None:
                continue

            if self.is_header(document):
                if position > 0 or header is not None:
                    raise SchemaError(
                        'Header must be at first position',
                        context=ErrorContext(filename=filename, element=document),
                    )
                header = self.parse_header(document, filename=filename)
                continue

            items = document if isinstance(document, list) else [document]
            for item in items:
                steps.append(self.parse_step(item, step_num=len(steps) + 1, filename=filename))

        name = (
            header.name if header and header.name
            else source.stem if source
            else '<unicode string>'
        )

        logger.debug('Loaded scenario %r with %d steps', name, len(steps))

        return Scenario(name=name, source=source, header=header, steps=tuple(steps))

    @staticmethod
    def is_header(document: 'Any') -> bool:  # noqa: ANN401
        """Tell a header document from a step.

        A mapping with a `kind` is always a step, even when one of its
        parameters is named `spec`.
        """
        return isinstance(document, dict) and 'spec' in document and 'kind' not in document

    @staticmethod
    def parse_header(document: 'dict[str, Any]', *,
                     filename: str | None = None) -> ScenarioHeader:
        """Validate a header document.

        Raises:
            SchemaError: If the header is malformed.
        """
        if document.get('spec') != HEADER_SPEC:
            raise SchemaError(
                f'Unsupported document spec {document.get("spec")!r}',
                context=ErrorContext(filename=filename, element=document),
            )

        try:
            return ScenarioHeader.model_validate(document)

        except ValidationError as base:
            raise SchemaError.from_pydantic_error(base, data=document, filename=filename) from base

    def parse_step(self, document: 'Any', *, step_num: int,  # noqa: ANN401
                   filename: str | None = None) -> 'Step':
        """Validate a step document.

        Args:
            document: Raw step mapping.
            step_num: 1-based position of the step.
            filename: Source file name for error messages.

        Returns:
            Validated action or assertion step.

        Raises:
            SchemaError: If the step is malformed, its kind is unknown or
                its parameters do not match the capability signature.
        """
        error_context = ErrorContext(filename=filename, step_num=step_num, element=document)

        if not isinstance(document, dict):
            raise SchemaError(f'Step {step_num}: step must be a mapping', context=error_context)

        try:
            step = StepAdapter.validate_python(
                document,
                context={'operators': self.registry.operators},
            )

        except ValidationError as base:
            raise SchemaError.from_pydantic_error(
                base,
                data=document,
                filename=filename,
                step_num=step_num,
            ) from base

        if isinstance(step, ActionStep):
            self.check_signature(step, step_num=step_num, filename=filename)
        else:
            self.check_ranges(step, step_num=step_num, filename=filename)

        return step

    def check_signature(self, step: ActionStep, *, step_num: int,
                        filename: str | None = None) -> None:
        """Check raw parameters of an action step against its capability.

        Raises:
            SchemaError: If the kind is unknown, a required parameter is
                missing or an unknown parameter is given.
        """
        capability = self.registry.get_capability(step.kind)
        if capability is None:
            raise SchemaError(
                f'Step {step_num}: unknown step kind {step.kind!r}',
                context=ErrorContext(filename=filename, step_num=step_num, element=step.model_dump()),
            )

        try:
            capability.signature.model_validate(step.params)

        except ValidationError as base:
            raise SchemaError.from_pydantic_error(
                base,
                data=dict(step.params),
                filename=filename,
                step_num=step_num,
            ) from base

    def check_ranges(self, step: 'AssertionStep', *, step_num: int,
                     filename: str | None = None) -> None:
        """Check literal ranges of an assertion step.

        Covers the `count` of per-item assertions and the expected value
        of the built-in range operator. Ranges with placeholders are only
        known at execution time and are not checked.

        Raises:
            SchemaError: If a literal range is malformed.
        """
        ranges = {}
        if step.count is not None:
            ranges['count'] = step.count
        if self.registry.get_comparator(step.operator) is in_range and isinstance(step.expected, SCALARS):
            ranges['expected'] = stringify(step.expected)

        for field, text in ranges.items():
            if TEMPLATE_PATTERN.search(text):
                continue
            try:
                parse_ranges(text)
            except ValueError as base:
                raise SchemaError(
                    f'Step {step_num}: {base} ({field})',
                    context=ErrorContext(filename=filename, step_num=step_num, element=step.model_dump()),
                ) from base
