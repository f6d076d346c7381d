"""Built-in capabilities.

Covers the basic scenario keywords (setting properties, identifiers,
pauses) and a few local operations: extracting values from JSON text,
reading workspace files and running shell commands. Network clients are
expected to be provided by plugins.
"""

import json
import logging
from pathlib import Path
from subprocess import PIPE, Popen, TimeoutExpired  # noqa: S404
from time import monotonic
from typing import TYPE_CHECKING

from stepwise.errors import CapabilityError, StepTimeoutError
from stepwise.extensions import Attribute, Capability, Schema
from stepwise.names import PROPERTY_PATTERN

from .lookups import PathLookup

if TYPE_CHECKING:
    from collections.abc import Mapping

if TYPE_CHECKING:
    from stepwise.extensions import CapabilityContext
    from stepwise.values import RuntimeValue

logger = logging.getLogger(__name__)

#: Interval in seconds between cancellation checks of a running process.
POLL_INTERVAL = 0.05


def _noop(params: 'Mapping[str, RuntimeValue]',  # noqa: ARG001
          context: 'CapabilityContext') -> 'RuntimeValue':  # noqa: ARG001
    """A logic-neutral step acting as a syntactic placeholder.

    Accepts any parameters but performs no processing.

    Returns:
        Always returns `None`.
    """
    return None


def _set(params: 'Mapping[str, RuntimeValue]',
         context: 'CapabilityContext') -> 'RuntimeValue':  # noqa: ARG001
    """Export every parameter as a property."""
    return dict(params)


def _set_id(params: 'Mapping[str, RuntimeValue]',
            context: 'CapabilityContext') -> 'RuntimeValue':  # noqa: ARG001
    return {'id': params['value']}


def _set_desc(params: 'Mapping[str, RuntimeValue]',
              context: 'CapabilityContext') -> 'RuntimeValue':  # noqa: ARG001
    return {'desc': params['value']}


def _sleep(params: 'Mapping[str, RuntimeValue]',
           context: 'CapabilityContext') -> 'RuntimeValue':
    """Pause the run for `duration` milliseconds.

    The pause is interrupted by the run cancellation signal and is
    bounded by the step timeout.

    Raises:
        CapabilityError: If the run is cancelled while sleeping.
        StepTimeoutError: If the duration exceeds the step timeout.
    """
    duration = params['duration'] / 1000
    if duration < 0:
        raise CapabilityError(f'Negative sleep duration: {params["duration"]}')

    bounded = min(duration, context.timeout)

    logger.debug('Sleeping for %.3f seconds on step %d', bounded, context.step_num)

    if context.cancel.wait(bounded):
        raise CapabilityError('Sleep interrupted by cancellation')

    if duration > context.timeout:
        raise StepTimeoutError(
            f'Sleep of {params["duration"]} ms exceeds the step timeout of {context.timeout:g} s',
        )

    return None


def _extract(params: 'Mapping[str, RuntimeValue]',
             context: 'CapabilityContext') -> 'RuntimeValue':  # noqa: ARG001
    """Extract a value from JSON text by a dotted path.

    Raises:
        CapabilityError: If the source is not valid JSON or the path
            does not match.
    """
    source = params['source']
    if isinstance(source, str):
        try:
            source = json.loads(source)
        except json.JSONDecodeError as base:
            raise CapabilityError(f'Source is not valid JSON: {base.msg}') from base

    lookup = PathLookup(params['path'])
    if not lookup.exists(source):
        raise CapabilityError(f'Path {params["path"]!r} not found in source')

    return {params['into']: lookup.resolve(source)}


def _read_file(params: 'Mapping[str, RuntimeValue]',
               context: 'CapabilityContext') -> 'RuntimeValue':
    """Read a workspace-relative text file into a property.

    Raises:
        CapabilityError: If the file can not be read.
    """
    path = context.workspace / Path(params['path'])

    try:
        content = path.read_text(encoding=params['encoding'] or 'utf-8')
    except (OSError, UnicodeDecodeError) as base:
        raise CapabilityError(f'Can not read file {params["path"]!r}: {base}') from base

    return {params['into']: content}


def _stop(process: Popen) -> None:
    process.kill()
    process.communicate()


def _shell(params: 'Mapping[str, RuntimeValue]',
           context: 'CapabilityContext') -> 'RuntimeValue':
    """Run a command and export its output.

    A string command is run through the shell, a list of arguments is
    executed directly. The process is killed when the step timeout
    expires or the run is cancelled.

    Raises:
        CapabilityError: If the command can not be started, is cancelled,
            or exits with a non-zero code while `check` is enabled.
        StepTimeoutError: If the command does not finish in time.
    """
    command = params['command']
    cwd = context.workspace
    if params['cwd']:
        cwd = cwd / Path(params['cwd'])

    logger.debug('Running %r in %s on step %d', command, cwd, context.step_num)

    try:
        process = Popen(  # noqa: S603
            command,
            shell=isinstance(command, str),  # noqa: S604
            cwd=cwd,
            stdout=PIPE,
            stderr=PIPE,
            text=True,
        )
    except OSError as base:
        raise CapabilityError(f'Can not run command {command!r}: {base}') from base

    deadline = monotonic() + context.timeout

    with process:
        while True:
            try:
                stdout, stderr = process.communicate(timeout=POLL_INTERVAL)
                break
            except TimeoutExpired:
                if context.cancel.is_set():
                    _stop(process)
                    raise CapabilityError('Command interrupted by cancellation') from None
                if monotonic() >= deadline:
                    _stop(process)
                    raise StepTimeoutError(
                        f'Command timed out after {context.timeout:g} s',
                    ) from None

    if params['check'] and process.returncode != 0:
        raise CapabilityError(
            f'Command exited with code {process.returncode}: {stderr.strip()}',
        )

    return {
        'stdout': stdout.rstrip('\r\n'),
        'stderr': stderr.rstrip('\r\n'),
        'returncode': process.returncode,
    }


empty = Capability(
    capability=_noop,
    name='empty',
    open_parameters=True,
    title='No operation',
)

set_ = Capability(
    capability=_set,
    name='set',
    open_parameters=True,
    extra_pattern=PROPERTY_PATTERN.pattern,
    title='Set properties',
    description='Export every parameter as a property.',
)

id_ = Capability(
    capability=_set_id,
    name='id',
    title='Scenario identifier',
    description='Set the `id` property.',
    parameters=Schema({
        'value': Attribute(
            base=str,
            aliases=['id'],
            required=True,
            title='Identifier',
        ),
    }),
)

desc = Capability(
    capability=_set_desc,
    name='desc',
    title='Scenario description',
    description='Set the `desc` property.',
    parameters=Schema({
        'value': Attribute(
            base=str,
            aliases=['desc'],
            required=True,
            title='Description',
        ),
    }),
)

sleep = Capability(
    capability=_sleep,
    name='sleep',
    title='Pause',
    description='Pause the run for a number of milliseconds.',
    parameters=Schema({
        'duration': Attribute(
            base=int,
            aliases=['ms'],
            required=True,
            title='Duration',
            description='Pause duration in milliseconds.',
            examples=[100],
        ),
    }),
)

extract = Capability(
    capability=_extract,
    name='extract',
    title='Extract JSON value',
    description='Extract a value from JSON text into a property.',
    parameters=Schema({
        'source': Attribute(
            required=True,
            title='JSON source',
            description='JSON text or an already structured value.',
        ),
        'path': Attribute(
            base=str,
            required=True,
            title='Path',
            description='Dotted path or JSON pointer. `*` selects every list item.',
            examples=['body.items.*.id'],
        ),
        'into': Attribute(
            base=str,
            required=True,
            title='Target property',
        ),
    }),
)

read_file = Capability(
    capability=_read_file,
    name='readFile',
    title='Read file',
    description='Read a workspace-relative text file into a property.',
    parameters=Schema({
        'path': Attribute(
            base=str,
            aliases=['file'],
            required=True,
            title='File path',
        ),
        'into': Attribute(
            base=str,
            required=True,
            title='Target property',
        ),
        'encoding': Attribute(
            base=str,
            default='utf-8',
            title='Encoding',
        ),
    }),
)

shell = Capability(
    capability=_shell,
    name='shell',
    title='Shell command',
    description='Run a command and export `stdout`, `stderr` and `returncode`.',
    parameters=Schema({
        'command': Attribute(
            base=str | list[str],
            aliases=['cmd'],
            required=True,
            title='Command',
            description='Shell command line, or a list of program arguments.',
        ),
        'cwd': Attribute(
            base=str,
            title='Working directory',
            description='Workspace-relative working directory.',
        ),
        'check': Attribute(
            base=bool,
            default=False,
            title='Check exit code',
            description='If true, a non-zero exit code is an error.',
        ),
    }),
)
