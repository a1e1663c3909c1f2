"""
Hydrated LDAP objects.

Search results come back from python-ldap as ``(dn, {attribute: [bytes, ...]})``
tuples.  :py:class:`LdapObjectHydrator` turns those into
:py:class:`LdapObject` instances, renaming attributes to their domain names and
converting their values when a schema is known for the row.
"""

from collections.abc import Iterator, Sequence
from enum import Enum
from typing import TYPE_CHECKING, Any, overload

from .converters import AttributeConverterRegistry

if TYPE_CHECKING:
    from .schema import LdapObjectSchema
    from .typing import LDAPData


class HydrationMode(str, Enum):
    """What :py:meth:`ldapschema.query.LdapQuery.execute` returns."""

    #: An :py:class:`LdapObjectCollection` of :py:class:`LdapObject`
    OBJECT = "object"
    #: A list of plain dicts, each with a ``dn`` key
    ARRAY = "array"


class LdapObject:
    """
    One LDAP entry, with its attributes under their domain names.

    Attribute names are looked up case-insensitively, as LDAP does, but keep
    the case they were stored with.

    Args:
        dn: the DN of the entry

    Keyword Args:
        attributes: attribute name -> value
        object_type: the object type the entry was hydrated as, if known

    """

    def __init__(
        self,
        dn: str,
        attributes: dict[str, Any] | None = None,
        object_type: str | None = None,
    ) -> None:
        self.dn = dn
        self.object_type = object_type
        self._attributes: dict[str, Any] = {}
        self._names: dict[str, str] = {}
        for name, value in (attributes or {}).items():
            self[name] = value

    def __repr__(self) -> str:
        return f"<LdapObject: {self.dn}>"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, LdapObject):
            return NotImplemented
        return (
            self.dn == other.dn
            and self.object_type == other.object_type
            and self._attributes == other._attributes
        )

    def __hash__(self) -> int:
        return hash(self.dn)

    def __contains__(self, name: str) -> bool:
        return name.lower() in self._names

    def __getitem__(self, name: str) -> Any:
        try:
            return self._attributes[self._names[name.lower()]]
        except KeyError:
            msg = f'{self.dn} has no attribute "{name}"'
            raise KeyError(msg) from None

    def __setitem__(self, name: str, value: Any) -> None:
        key = self._names.setdefault(name.lower(), name)
        self._attributes[key] = value

    def __delitem__(self, name: str) -> None:
        key = self._names.pop(name.lower())
        del self._attributes[key]

    def get(self, name: str, default: Any = None) -> Any:
        """Return the value of ``name``, or ``default`` if it isn't set."""
        try:
            return self[name]
        except KeyError:
            return default

    def keys(self) -> list[str]:
        return list(self._attributes)

    def to_dict(self) -> dict[str, Any]:
        """Return the attributes as a plain dict, with the DN under ``dn``."""
        data = {"dn": self.dn}
        data.update(self._attributes)
        return data


class LdapObjectCollection(Sequence):
    """
    An ordered, read-only list of :py:class:`LdapObject`.
    """

    def __init__(self, objects: list[LdapObject] | None = None) -> None:
        self._objects: list[LdapObject] = list(objects or [])

    def __repr__(self) -> str:
        return f"<LdapObjectCollection: {len(self)} objects>"

    @overload
    def __getitem__(self, index: int) -> LdapObject: ...

    @overload
    def __getitem__(self, index: slice) -> "LdapObjectCollection": ...

    def __getitem__(self, index):
        if isinstance(index, slice):
            return LdapObjectCollection(self._objects[index])
        return self._objects[index]

    def __len__(self) -> int:
        return len(self._objects)

    def __iter__(self) -> Iterator[LdapObject]:
        return iter(self._objects)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, LdapObjectCollection):
            return self._objects == other._objects
        if isinstance(other, list):
            return self._objects == other
        return NotImplemented

    def __hash__(self) -> int:
        return hash(tuple(self._objects))

    def first(self) -> LdapObject | None:
        """Return the first object, or ``None`` if the collection is empty."""
        return self._objects[0] if self._objects else None

    def to_list(self) -> list[dict[str, Any]]:
        """Return every object as a plain dict; see :py:meth:`LdapObject.to_dict`."""
        return [obj.to_dict() for obj in self._objects]


class LdapObjectHydrator:
    """
    Turn raw python-ldap search results into :py:class:`LdapObject` instances.

    When schemas are given, each row is matched to the schema whose query
    object classes it carries.  Attribute names are then mapped back to domain
    names and values are converted with that schema's converters.  Rows that
    match no schema keep their LDAP attribute names and get the default
    converter.

    Args:
        converters: the converter registry to use

    Keyword Args:
        schemas: the schemas the rows may belong to

    """

    def __init__(
        self,
        converters: AttributeConverterRegistry,
        schemas: "Sequence[LdapObjectSchema]" = (),
    ) -> None:
        self.converters = converters
        self.schemas = tuple(schemas)

    def match_schema(self, attrs: dict[str, Any]) -> "LdapObjectSchema | None":
        """
        Pick the schema for a row.

        With one schema, that schema always applies.  With more than one, the
        row's ``objectClass`` values decide.

        Args:
            attrs: the row's raw attributes

        Returns:
            The matching schema, or ``None``.

        """
        if len(self.schemas) == 1:
            return self.schemas[0]
        objectclasses = set()
        for name, values in attrs.items():
            if name.lower() == "objectclass":
                objectclasses = {
                    v.decode("utf-8").lower() if isinstance(v, bytes) else v.lower()
                    for v in values
                }
        for schema in self.schemas:
            wanted = {oc.lower() for oc in schema.filter_objectclass}
            if wanted and wanted <= objectclasses:
                return schema
        return None

    def hydrate_row(self, dn: str, attrs: dict[str, Any]) -> LdapObject:
        """
        Hydrate one row.

        Args:
            dn: the DN of the entry
            attrs: LDAP attribute name -> list of values

        Raises:
            AttributeConversionError: a value could not be converted

        Returns:
            The hydrated object.

        """
        schema = self.match_schema(attrs)
        obj = LdapObject(dn, object_type=schema.object_type if schema else None)
        for ldap_name, values in attrs.items():
            name = ldap_name
            converter = None
            if schema is not None:
                name = schema.get_attribute_from_ldap(ldap_name)
                converter = schema.get_converter(name)
            obj[name] = self.converters.from_ldap(converter, values)
        return obj

    def hydrate(self, rows: "list[LDAPData]") -> list[LdapObject]:
        """
        Hydrate every row, in order.  Rows whose attributes aren't a dict (AD
        search references) are skipped.
        """
        return [
            self.hydrate_row(dn, attrs) for dn, attrs in rows if isinstance(attrs, dict)
        ]
