"""
The entry point for working with LDAP objects.

:py:class:`LdapManager` wires a connection, a schema factory, an event
dispatcher and a converter registry together, and hands out creators and
queries that share them::

    manager = LdapManager()
    dn = manager.create_ldap_object().create_user().with_attributes(
        username="jdoe", password="s3cret!"
    ).in_container("ou=People,%_defaultnamingcontext_%").execute()
    manager.modify_batch(dn, [Batch(BatchType.REPLACE, "description", ["Staff"])])
"""

import logging
from typing import TYPE_CHECKING, Any

from .connection import LdapConnection
from .converters import AttributeConverterRegistry
from .creator import LdapObjectCreator
from .dn import parent_dn
from .events import EventDispatcher, EventKind, LdapObjectModificationEvent
from .factory import LdapObjectSchemaFactory, SchemaCache
from .operations import Batch, BatchModifyOperation, DeleteOperation, RenameOperation
from .parsers import DictSchemaParser
from .query import LdapQuery
from .schema import ObjectType

if TYPE_CHECKING:
    from .schema import LdapObjectSchema

logger = logging.getLogger(__name__)


class LdapManager:
    """
    Create, find, change and remove LDAP objects on one server.

    Every collaborator can be injected; anything not given is built from
    Django settings.

    Keyword Args:
        connection: the transport; defaults to an
            :py:class:`~ldapschema.connection.LdapConnection` for ``server``
        server: the key in ``settings.LDAP_SERVERS`` to connect to
        cache: the schema cache.  Share one between managers to load each
            schema only once.
        parser: loads schema definitions
        dispatcher: sends lifecycle events
        converters: the attribute converter registry

    """

    def __init__(  # noqa: PLR0913
        self,
        connection: LdapConnection | None = None,
        server: str = "default",
        cache: SchemaCache | None = None,
        parser: DictSchemaParser | None = None,
        dispatcher: EventDispatcher | None = None,
        converters: AttributeConverterRegistry | None = None,
    ) -> None:
        self.connection = connection or LdapConnection(server)
        self.dispatcher = dispatcher or EventDispatcher()
        self.converters = converters or AttributeConverterRegistry()
        self.schema_factory = LdapObjectSchemaFactory(
            cache if cache is not None else SchemaCache(),
            parser or DictSchemaParser(),
            dispatcher=self.dispatcher,
        )

    def __repr__(self) -> str:
        return f"<LdapManager: {self.connection}>"

    def create_ldap_object(self) -> LdapObjectCreator:
        """Return a new creator for one object."""
        return LdapObjectCreator(
            self.connection,
            self.schema_factory,
            dispatcher=self.dispatcher,
            converters=self.converters,
        )

    def build_ldap_query(self) -> LdapQuery:
        """Return a new, empty query."""
        return LdapQuery(self.connection, converters=self.converters)

    def get_schema(self, object_type: "ObjectType | str") -> "LdapObjectSchema":
        """
        Return the schema for ``object_type`` on this manager's schema set.

        Raises:
            UnknownObjectType: there's no such type

        """
        if isinstance(object_type, ObjectType):
            object_type = object_type.value
        return self.schema_factory.get(self.connection.schema_name, object_type)

    def _send(self, kind: EventKind, dn: str, **kwargs: Any) -> None:
        self.dispatcher.dispatch(LdapObjectModificationEvent(kind, dn=dn, **kwargs))

    def delete(self, dn: str) -> None:
        """
        Delete the object at ``dn``.

        Raises:
            TransportError: the delete failed

        """
        self._send(EventKind.BEFORE_DELETE, dn)
        self.connection.execute(DeleteOperation(dn))
        logger.info("ldapschema.manager.delete dn=%s", dn)
        self._send(EventKind.AFTER_DELETE, dn)

    def rename(
        self, dn: str, new_rdn: str, new_location: str | None = None
    ) -> str:
        """
        Rename the object at ``dn``, and move it if ``new_location`` is given.

        Args:
            dn: the object's current DN
            new_rdn: the new leaf RDN, e.g. ``cn=newname``
            new_location: the DN of the container to move the object to

        Raises:
            TransportError: the rename failed

        Returns:
            The object's new DN.

        """
        container = new_location if new_location is not None else parent_dn(dn)
        new_dn = f"{new_rdn},{container}" if container else new_rdn
        self._send(EventKind.BEFORE_MOVE, dn, new_dn=new_dn)
        self.connection.execute(RenameOperation(dn, new_rdn, new_location))
        logger.info("ldapschema.manager.rename dn=%s new_dn=%s", dn, new_dn)
        self._send(EventKind.AFTER_MOVE, dn, new_dn=new_dn)
        return new_dn

    def modify_batch(self, dn: str, batch: list[Batch]) -> None:
        """
        Apply ``batch`` to the object at ``dn``, in order, as one modify.

        Raises:
            TransportError: the modify failed

        """
        self._send(EventKind.BEFORE_MODIFY, dn, batch=list(batch))
        self.connection.execute(BatchModifyOperation(dn, batch))
        logger.info(
            "ldapschema.manager.modify dn=%s attributes=%s",
            dn,
            ",".join(b.attribute for b in batch),
        )
        self._send(EventKind.AFTER_MODIFY, dn, batch=list(batch))
