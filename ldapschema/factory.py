"""
Schema resolution and caching.

:py:class:`LdapObjectSchemaFactory` resolves an object type to its
:py:class:`~ldapschema.schema.LdapObjectSchema`, loading it through a parser
the first time and serving it from a :py:class:`SchemaCache` after that.
"""

import logging
import threading
from collections.abc import Callable, Hashable
from typing import TYPE_CHECKING, Any

from .events import EventKind, LdapObjectSchemaEvent
from .schema import LdapObjectSchema

if TYPE_CHECKING:
    from .events import EventDispatcher
    from .parsers import DictSchemaParser

logger = logging.getLogger(__name__)


class SchemaCache:
    """
    A thread-safe, in-memory cache of loaded schemas.

    Entries never expire; they live until :py:meth:`invalidate` or
    :py:meth:`clear` removes them.  The loader for a key runs at most once:
    concurrent callers asking for the same missing key wait for the first one
    and then get its result.
    """

    def __init__(self) -> None:
        self._entries: dict[Hashable, Any] = {}
        self._lock = threading.Lock()

    def __contains__(self, key: Hashable) -> bool:
        with self._lock:
            return key in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def get(self, key: Hashable) -> Any:
        with self._lock:
            return self._entries.get(key)

    def get_or_set(self, key: Hashable, loader: Callable[[], Any]) -> tuple[Any, bool]:
        """
        Return the cached value for ``key``, calling ``loader`` to populate it
        if it isn't cached yet.

        Args:
            key: the cache key
            loader: called with no arguments to produce the value

        Returns:
            A 2-tuple of the value and whether ``loader`` was called.

        """
        with self._lock:
            if key in self._entries:
                return self._entries[key], False
            value = loader()
            self._entries[key] = value
            return value, True

    def invalidate(self, key: Hashable) -> None:
        """Drop ``key`` from the cache, if it's there."""
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> None:
        """Drop everything."""
        with self._lock:
            self._entries.clear()


class LdapObjectSchemaFactory:
    """
    Resolve object types to schemas.

    Args:
        cache: where loaded schemas are kept
        parser: loads schemas the cache doesn't have yet; anything with a
            ``parse(schema_name, object_type)`` method will do

    Keyword Args:
        dispatcher: if given, a :py:attr:`~ldapschema.events.EventKind.SCHEMA_LOAD`
            event is dispatched each time a schema is loaded

    """

    def __init__(
        self,
        cache: SchemaCache,
        parser: "DictSchemaParser",
        dispatcher: "EventDispatcher | None" = None,
    ) -> None:
        self.cache = cache
        self.parser = parser
        self.dispatcher = dispatcher

    @staticmethod
    def cache_key(schema_name: str, object_type: str) -> tuple[str, str]:
        return (schema_name, object_type.lower())

    def get(self, schema_name: str, object_type: str) -> LdapObjectSchema:
        """
        Return the schema for ``object_type`` in the schema set ``schema_name``.

        Args:
            schema_name: the schema set, usually ``connection.schema_name``
            object_type: the object type, e.g. ``"user"``

        Raises:
            UnknownObjectType: no schema matches
            SchemaParseError: the definition is malformed

        Returns:
            The schema.

        """
        schema, loaded = self.cache.get_or_set(
            self.cache_key(schema_name, object_type),
            lambda: self.parser.parse(schema_name, object_type),
        )
        if loaded:
            logger.debug(
                "ldapschema.factory.load schema=%s object_type=%s",
                schema_name,
                object_type,
            )
            if self.dispatcher is not None:
                self.dispatcher.dispatch(
                    LdapObjectSchemaEvent(EventKind.SCHEMA_LOAD, schema)
                )
        return schema

    def invalidate(self, schema_name: str, object_type: str) -> None:
        """Forget the cached schema for ``object_type``, forcing a reload."""
        self.cache.invalidate(self.cache_key(schema_name, object_type))
