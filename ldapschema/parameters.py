"""
``%name%`` placeholder substitution.

Attribute values and containers may contain placeholders like ``%username%``.
A placeholder is looked up, in order, in the parameters set explicitly on the
builder, then in the special parameters supplied by the connection (e.g.
``%_defaultnamingcontext_%``), then among the object's own attributes, so
a schema default of ``"%username%"`` picks up the ``username`` attribute.
Names are matched case-insensitively.
"""

import re
from collections.abc import Callable, Mapping
from typing import Any

from .exceptions import UnresolvedParameter

PLACEHOLDER = re.compile(r"%([A-Za-z0-9_.\-]+)%")


class ParameterResolver:
    """
    Resolve placeholders in a set of attributes.

    Args:
        attributes: domain attribute name -> raw value
        parameters: explicitly set parameters

    Keyword Args:
        special: parameter name -> zero argument callable returning its value.
            These are only evaluated when referenced.

    """

    def __init__(
        self,
        attributes: Mapping[str, Any],
        parameters: Mapping[str, Any],
        special: Mapping[str, Callable[[], Any]] | None = None,
    ) -> None:
        self.attributes = {k.lower(): v for k, v in attributes.items()}
        self.parameters = {k.lower(): v for k, v in parameters.items()}
        self.special = {k.lower(): v for k, v in (special or {}).items()}
        self._resolved: dict[str, Any] = {}
        self._resolving: set[str] = set()

    def resolve(self, attributes: Mapping[str, Any]) -> dict[str, Any]:
        """
        Return a copy of ``attributes`` with every placeholder substituted.

        Raises:
            UnresolvedParameter: a placeholder names nothing we know of, or
                attributes reference each other in a cycle

        """
        return {name: self.resolve_value(value) for name, value in attributes.items()}

    def resolve_value(self, value: Any) -> Any:
        """
        Substitute the placeholders in one value.

        A string that is exactly one placeholder is replaced by the parameter's
        value as is, so non-string parameters keep their type.  Placeholders
        inside longer strings are substituted as text.  Lists are resolved
        element by element; anything else is returned unchanged.

        Raises:
            UnresolvedParameter: a placeholder can't be resolved

        """
        if isinstance(value, (list, tuple)):
            return [self.resolve_value(v) for v in value]
        if not isinstance(value, str):
            return value
        whole = PLACEHOLDER.fullmatch(value)
        if whole:
            return self.lookup(whole.group(1))
        return PLACEHOLDER.sub(lambda m: str(self.lookup(m.group(1))), value)

    def lookup(self, name: str) -> Any:
        key = name.lower()
        if key in self.parameters:
            return self.parameters[key]
        if key in self.special:
            value = self.special[key]()
            if value is None:
                raise UnresolvedParameter(name)
            return value
        if key in self._resolved:
            return self._resolved[key]
        if key in self.attributes:
            if key in self._resolving:
                msg = f'Parameter "{name}" refers back to itself.'
                raise UnresolvedParameter(name, msg)
            self._resolving.add(key)
            try:
                value = self.resolve_value(self.attributes[key])
            finally:
                self._resolving.discard(key)
            self._resolved[key] = value
            return value
        raise UnresolvedParameter(name)
