"""Dotted-path lookups inside structured values.

Paths are dot-separated segments. Each segment is either a mapping key,
a list index (if the segment is numeric) or the `*` wildcard selecting
every item of a list. A path may also be written as a JSON pointer
(`/body/items/0`).
"""

import logging
from typing import TYPE_CHECKING

from stepwise.values import MAPPINGS, SEQUENCES

if TYPE_CHECKING:
    from stepwise.values import RuntimeValue

logger = logging.getLogger(__name__)

WILDCARD = '*'


class PathLookup:
    """Resolver for dotted-path access with list wildcards.

    The resolver is tolerant: a missing key, an invalid index or a type
    mismatch drops the corresponding branch instead of raising.
    """

    def __init__(self, path: str) -> None:
        """Initialize the resolver with a path.

        Args:
            path: Dot-separated path or JSON pointer. An empty path
                (or `/`) addresses the whole value.
        """
        path = path.strip()
        separator = '/' if path.startswith('/') else '.'

        self.path = path
        self.segments = [segment for segment in path.split(separator) if segment]

    @property
    def has_wildcard(self) -> bool:
        """Whether the path may select several values."""
        return WILDCARD in self.segments

    def __call__(self, value: 'RuntimeValue') -> 'RuntimeValue':
        """Resolve the path against a value."""
        return self.resolve(value)

    def find_all(self, value: 'RuntimeValue') -> dict[str, 'RuntimeValue']:
        """Resolve the path into every matching concrete location.

        Args:
            value: Root value to traverse.

        Returns:
            Mapping of concrete JSON pointers to the values found there,
            in document order.
        """
        nodes: dict[str, RuntimeValue] = {'': value}

        for segment in self.segments:
            matched: dict[str, RuntimeValue] = {}

            for pointer, node in nodes.items():
                if segment == WILDCARD and isinstance(node, SEQUENCES):
                    for index, item in enumerate(node):
                        matched[f'{pointer}/{index}'] = item
                    continue

                if isinstance(node, MAPPINGS) and segment in node:
                    matched[f'{pointer}/{segment}'] = node[segment]
                elif isinstance(node, SEQUENCES) and segment.lstrip('-').isdecimal():
                    items = list(node)
                    index = int(segment)
                    if -len(items) <= index < len(items):
                        matched[f'{pointer}/{segment}'] = items[index]
                else:
                    logger.debug('Path %r does not match at %s/%s', self.path, pointer, segment)

            nodes = matched

        return {
            pointer or '/': node
            for pointer, node in nodes.items()
        }

    def resolve(self, value: 'RuntimeValue') -> 'RuntimeValue':
        """Resolve the path against a value.

        Returns:
            The value at the path, a list of matched values for paths
            with wildcards, or `None` if nothing matched a plain path.
        """
        matches = self.find_all(value)

        if self.has_wildcard:
            return list(matches.values())

        if not matches:
            return None

        return next(iter(matches.values()))

    def exists(self, value: 'RuntimeValue') -> bool:
        """Whether the path matches at least one location."""
        return bool(self.find_all(value))
