"""
Searching LDAP.

:py:class:`LdapQuery` accumulates a filter, base DN, scope, page size,
attribute list and ordering, then runs a single
:py:class:`~ldapschema.operations.QueryOperation` against the connection and
hydrates what comes back::

    users = (
        manager.build_ldap_query()
        .set_ldap_object_schemas(manager.get_schema("user"))
        .set_filter("(sAMAccountName=j*)")
        .set_attributes(["username", "lastName"])
        .set_order_by({"lastName": "ASC"})
        .execute()
    )

Ordering is done client-side after hydration.
"""

import logging
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from ldap_filter import Filter, ParseError

from .converters import AttributeConverterRegistry
from .exceptions import InvalidArgument
from .models import HydrationMode, LdapObject, LdapObjectCollection, LdapObjectHydrator
from .operations import QueryOperation, Scope
from .schema import LdapObjectSchema

if TYPE_CHECKING:
    from .connection import LdapConnection

logger = logging.getLogger(__name__)


class LdapQuery:
    """
    A single-owner, reusable search builder.

    Setters validate their input immediately and return the query, so calls can
    be chained.  :py:meth:`execute` never changes the query, so it may be
    called any number of times.

    Args:
        connection: the connection to search through

    Keyword Args:
        converters: the converter registry used for hydration

    """

    ASC: str = "ASC"
    DESC: str = "DESC"

    #: The filter used when none is set.
    DEFAULT_FILTER: str = "(objectClass=*)"

    def __init__(
        self,
        connection: "LdapConnection",
        converters: AttributeConverterRegistry | None = None,
    ) -> None:
        self.connection = connection
        self.converters = converters or AttributeConverterRegistry()
        self.filter: str | None = None
        self.base_dn: str | None = None
        self.scope: Scope = Scope.SUBTREE
        self.page_size: int | None = None
        self.attributes: list[str] = []
        self.order_by: dict[str, str] = {}
        self.schemas: tuple[LdapObjectSchema, ...] = ()

    def set_filter(self, ldap_filter: str) -> "LdapQuery":
        """
        Set the search filter.

        Args:
            ldap_filter: an RFC 4515 filter string

        Raises:
            InvalidArgument: ``ldap_filter`` isn't a valid filter

        """
        if not isinstance(ldap_filter, str):
            msg = f"The filter must be a string, not {type(ldap_filter).__name__}"
            raise InvalidArgument(msg)
        try:
            Filter.parse(ldap_filter)
        except ParseError as e:
            msg = f'"{ldap_filter}" is not a valid LDAP filter'
            raise InvalidArgument(msg) from e
        self.filter = ldap_filter
        return self

    def set_base_dn(self, base_dn: str) -> "LdapQuery":
        self.base_dn = base_dn
        return self

    def set_scope(self, scope: Scope | str) -> "LdapQuery":
        """
        Set the search scope.

        Raises:
            InvalidScope: ``scope`` isn't a :py:class:`~ldapschema.operations.Scope`
                or the name of one

        """
        self.scope = Scope.coerce(scope)
        return self

    def set_page_size(self, page_size: int) -> "LdapQuery":
        if isinstance(page_size, bool) or not isinstance(page_size, int) or page_size < 1:
            msg = f"The page size must be a positive integer, not {page_size!r}"
            raise InvalidArgument(msg)
        self.page_size = page_size
        return self

    def set_attributes(self, attributes: list[str]) -> "LdapQuery":
        """
        Set the attributes to fetch.  An empty list fetches all of them.

        Raises:
            InvalidArgument: ``attributes`` isn't a list of strings

        """
        if not isinstance(attributes, (list, tuple)) or not all(
            isinstance(a, str) for a in attributes
        ):
            msg = f"The attributes must be a list of strings, not {attributes!r}"
            raise InvalidArgument(msg)
        self.attributes = list(attributes)
        return self

    def set_order_by(self, order_by: Mapping[str, str]) -> "LdapQuery":
        """
        Set the ordering.  Earlier keys take precedence over later ones.

        Args:
            order_by: attribute name -> ``"ASC"`` or ``"DESC"``

        Raises:
            InvalidArgument: ``order_by`` isn't a mapping, or a direction is
                neither ``ASC`` nor ``DESC``

        """
        if not isinstance(order_by, Mapping):
            msg = f"order_by must be a mapping, not {type(order_by).__name__}"
            raise InvalidArgument(msg)
        ordering = {}
        for name, direction in order_by.items():
            if not isinstance(direction, str) or direction.upper() not in (
                self.ASC,
                self.DESC,
            ):
                msg = f'Order direction for "{name}" must be ASC or DESC, not {direction!r}'
                raise InvalidArgument(msg)
            ordering[name] = direction.upper()
        self.order_by = ordering
        return self

    def set_ldap_object_schemas(self, *schemas: LdapObjectSchema) -> "LdapQuery":
        """
        Restrict the search to objects of the given schemas.

        Attribute names in :py:meth:`set_attributes` and :py:meth:`set_order_by`
        are then domain names, results come back under domain names with their
        values converted, and the filter is AND-ed with an ``objectClass``
        filter for the schemas.

        Raises:
            InvalidArgument: one of ``schemas`` isn't an
                :py:class:`~ldapschema.schema.LdapObjectSchema`

        """
        for schema in schemas:
            if not isinstance(schema, LdapObjectSchema):
                msg = f"{schema!r} is not an LdapObjectSchema"
                raise InvalidArgument(msg)
        self.schemas = tuple(schemas)
        return self

    def get_ldap_filter(self) -> str:
        """
        Return the filter that will actually be sent: the filter set with
        :py:meth:`set_filter` (or :py:attr:`DEFAULT_FILTER`), AND-ed with the
        object classes of any attached schemas.
        """
        ldap_filter = self.filter or self.DEFAULT_FILTER
        if not self.schemas:
            return ldap_filter
        per_schema = []
        for schema in self.schemas:
            classes = [
                Filter.attribute("objectClass").equal_to(oc)
                for oc in schema.filter_objectclass
            ]
            per_schema.append(classes[0] if len(classes) == 1 else Filter.AND(classes))
        objectclass_filter = (
            per_schema[0] if len(per_schema) == 1 else Filter.OR(per_schema)
        )
        if ldap_filter == self.DEFAULT_FILTER:
            return objectclass_filter.to_string()
        # The caller's filter was validated by set_filter(); keep it verbatim.
        return "(&" + objectclass_filter.to_string() + ldap_filter + ")"

    def get_base_dn(self) -> str:
        return self.base_dn or self.connection.default_naming_context

    def get_page_size(self) -> int:
        return self.page_size or self.connection.page_size

    def _to_ldap_names(self, names: list[str]) -> list[str]:
        if not self.schemas:
            return list(names)
        ldap_names: list[str] = []
        for name in names:
            for schema in self.schemas:
                ldap_name = schema.get_attribute_to_ldap(name)
                if ldap_name.lower() not in (n.lower() for n in ldap_names):
                    ldap_names.append(ldap_name)
        return ldap_names

    def get_extra_attributes(self) -> list[str]:
        """
        Return the attributes that have to be fetched on top of the requested
        ones: the ordering attributes, plus ``objectClass`` when more than one
        schema is attached.  These are stripped from the results.

        Nothing is extra when no attributes were requested, since then the
        server returns them all.
        """
        if not self.attributes:
            return []
        requested = {a.lower() for a in self.attributes}
        extra = []
        for name in self.order_by:
            if name.lower() not in requested:
                extra.append(name)
                requested.add(name.lower())
        if len(self.schemas) > 1 and "objectclass" not in requested:
            extra.append("objectClass")
        return extra

    def build_operation(self) -> QueryOperation:
        """Return the operation :py:meth:`execute` would run."""
        attributes = self._to_ldap_names(self.attributes + self.get_extra_attributes())
        return QueryOperation(
            ldap_filter=self.get_ldap_filter(),
            base_dn=self.get_base_dn(),
            scope=self.scope,
            page_size=self.get_page_size(),
            attributes=attributes,
        )

    def sort(self, objects: list[LdapObject]) -> list[LdapObject]:
        """
        Sort ``objects`` by :py:attr:`order_by`.  Objects missing a value sort
        before everything else in either direction, and the sort is stable.
        Multi-valued attributes compare value by value.
        """
        if not self.order_by:
            return objects

        def get_sort_key(obj: LdapObject, key: str) -> tuple[Any, ...]:
            value = obj.get(key)
            if isinstance(value, (list, tuple)):
                return tuple(value)
            return (value,)

        for key, direction in reversed(list(self.order_by.items())):
            missing = [obj for obj in objects if obj.get(key) is None]
            present = [obj for obj in objects if obj.get(key) is not None]
            objects = missing + sorted(
                present,
                key=lambda obj, key=key: get_sort_key(obj, key),
                reverse=direction == self.DESC,
            )
        return objects

    def execute(
        self, hydration: HydrationMode | str = HydrationMode.OBJECT
    ) -> LdapObjectCollection | list[dict[str, Any]]:
        """
        Run the search.

        Keyword Args:
            hydration: :py:attr:`~ldapschema.models.HydrationMode.OBJECT` for an
                :py:class:`~ldapschema.models.LdapObjectCollection`,
                :py:attr:`~ldapschema.models.HydrationMode.ARRAY` for a list
                of dicts

        Raises:
            InvalidArgument: ``hydration`` isn't a hydration mode
            TransportError: the search failed
            AttributeConversionError: a returned value could not be converted

        Returns:
            The results, ordered as requested.

        """
        try:
            hydration = HydrationMode(hydration)
        except ValueError as e:
            msg = f"{hydration!r} is not a hydration mode"
            raise InvalidArgument(msg) from e
        operation = self.build_operation()
        rows = self.connection.execute(operation)
        objects = LdapObjectHydrator(self.converters, self.schemas).hydrate(rows or [])
        objects = self.sort(objects)
        extra = self.get_extra_attributes()
        for obj in objects:
            for name in extra:
                if name in obj:
                    del obj[name]
        logger.debug(
            "ldapschema.query.execute base_dn=%s filter=%s results=%d",
            operation.base_dn,
            operation.filter,
            len(objects),
        )
        if hydration == HydrationMode.ARRAY:
            return [obj.to_dict() for obj in objects]
        return LdapObjectCollection(objects)
