"""
LDAP object schema definitions.

This module provides :py:class:`LdapObjectSchema`, the per-object-type metadata
describing how domain attribute names map onto LDAP attributes, which
converters apply to them, which object classes a new entry gets, and where new
entries go by default.  It also provides :py:class:`ObjectType`, the closed set
of object kinds the creator knows how to build.
"""

from enum import Enum
from types import MappingProxyType
from typing import Any


class ObjectType(str, Enum):
    """
    The kinds of LDAP object we know how to create.  Each member's value is the
    key used to look the kind up in a schema.
    """

    USER = "user"
    GROUP = "group"
    COMPUTER = "computer"
    CONTACT = "contact"
    OU = "ou"

    @classmethod
    def from_token(cls, token: str) -> "ObjectType | None":
        """
        Look up a member by its schema key, ignoring case.

        Args:
            token: the schema key, e.g. ``"user"``

        Returns:
            The matching member, or ``None`` if there isn't one.

        """
        for member in cls:
            if member.value == token.lower():
                return member
        return None


class LdapObjectSchema:
    """
    The schema for one LDAP object type.

    Instances are immutable once built; the mapping attributes are exposed as
    read-only views.  Domain attribute names are matched case-insensitively
    everywhere.

    Args:
        schema_name: the name of the schema set this belongs to, e.g. ``"ad"``
        object_type: the object type name, e.g. ``"user"``

    Keyword Args:
        objectclass: the object classes given to new entries
        attributes: domain attribute name -> LDAP attribute name
        converters: domain attribute name -> converter id
        default_values: domain attribute name -> default value
        default_container: where new entries go when no container is given
        rdn: the domain attribute used as the leaf of a new entry's DN
        required_attributes: domain attributes that must have a value on creation
        filter_objectclass: the object classes used to restrict queries;
            defaults to ``objectclass``

    """

    def __init__(  # noqa: PLR0913
        self,
        schema_name: str,
        object_type: str,
        objectclass: list[str] | None = None,
        attributes: dict[str, str] | None = None,
        converters: dict[str, str] | None = None,
        default_values: dict[str, Any] | None = None,
        default_container: str | None = None,
        rdn: str = "name",
        required_attributes: list[str] | None = None,
        filter_objectclass: list[str] | None = None,
    ) -> None:
        self.schema_name = schema_name
        self.object_type = object_type
        self.objectclass: tuple[str, ...] = tuple(objectclass or [])
        self.attributes_map = MappingProxyType(dict(attributes or {}))
        self.converters_map = MappingProxyType(
            {k.lower(): v for k, v in (converters or {}).items()}
        )
        self.default_values = MappingProxyType(dict(default_values or {}))
        self.default_container = default_container
        self.rdn = rdn
        self.required_attributes: tuple[str, ...] = tuple(required_attributes or [])
        self.filter_objectclass: tuple[str, ...] = tuple(
            filter_objectclass or self.objectclass
        )
        self._lower_attributes = {k.lower(): v for k, v in self.attributes_map.items()}
        self._reverse_attributes = {
            v.lower(): k for k, v in self.attributes_map.items()
        }

    def __repr__(self) -> str:
        return f"<LdapObjectSchema {self.schema_name}:{self.object_type}>"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, LdapObjectSchema):
            return NotImplemented
        return (
            self.schema_name == other.schema_name
            and self.object_type == other.object_type
            and self.objectclass == other.objectclass
            and dict(self.attributes_map) == dict(other.attributes_map)
            and dict(self.converters_map) == dict(other.converters_map)
            and dict(self.default_values) == dict(other.default_values)
            and self.default_container == other.default_container
            and self.rdn == other.rdn
        )

    def __hash__(self) -> int:
        return hash((self.schema_name, self.object_type))

    def has_attribute(self, name: str) -> bool:
        """Return ``True`` if ``name`` is a mapped domain attribute."""
        return name.lower() in self._lower_attributes

    def get_attribute_to_ldap(self, name: str) -> str:
        """
        Map a domain attribute name to its LDAP attribute name.  Names the
        schema doesn't know about are passed through unchanged.

        Args:
            name: the domain attribute name

        Returns:
            The LDAP attribute name.

        """
        return self._lower_attributes.get(name.lower(), name)

    def get_attribute_from_ldap(self, ldap_name: str) -> str:
        """
        Map an LDAP attribute name back to its domain attribute name.  Names the
        schema doesn't know about are passed through unchanged.

        Args:
            ldap_name: the LDAP attribute name

        Returns:
            The domain attribute name.

        """
        return self._reverse_attributes.get(ldap_name.lower(), ldap_name)

    def get_converter(self, name: str) -> str | None:
        """
        Return the converter id for a domain attribute, if it has one.

        Args:
            name: the domain attribute name

        Returns:
            The converter id, or ``None``.

        """
        return self.converters_map.get(name.lower())

    @property
    def rdn_ldap_attribute(self) -> str:
        """The LDAP attribute that names new entries of this type."""
        return self.get_attribute_to_ldap(self.rdn)
