"""
LDAP operation objects.

Each operation carries exactly what one LDAP request needs.  The connection
executes them (see :py:meth:`ldapschema.connection.LdapConnection.execute`),
picking the primitive named by :py:attr:`LdapOperation.ldap_function`, and logs
them with :py:meth:`LdapOperation.get_log_array`.

Setters return the operation itself, so they can be chained::

    op = AddOperation().set_dn("cn=foo,dc=example,dc=com").set_attributes({...})
"""

import pprint
from enum import Enum
from typing import Any, ClassVar

import ldap

from .exceptions import InvalidArgument, InvalidScope
from .typing import ModlistEntry

#: Attributes whose values never appear in log output.
MASKED_ATTRIBUTES: tuple[str, ...] = ("unicodepwd", "userpassword")
MASK: str = "******"


def _masked(attributes: dict[str, Any]) -> dict[str, Any]:
    return {
        k: MASK if k.lower() in MASKED_ATTRIBUTES else v for k, v in attributes.items()
    }


class Scope(str, Enum):
    """Search scopes."""

    BASE = "base"
    ONELEVEL = "onelevel"
    SUBTREE = "subtree"

    @property
    def ldap_scope(self) -> int:
        """The python-ldap constant for this scope."""
        return {
            Scope.BASE: ldap.SCOPE_BASE,
            Scope.ONELEVEL: ldap.SCOPE_ONELEVEL,
            Scope.SUBTREE: ldap.SCOPE_SUBTREE,
        }[self]

    @classmethod
    def coerce(cls, value: "Scope | str") -> "Scope":
        """
        Turn ``value`` into a :py:class:`Scope`.

        Args:
            value: a member, or a member's name or value in any case

        Raises:
            InvalidScope: ``value`` isn't a scope

        Returns:
            The scope.

        """
        if isinstance(value, Scope):
            return value
        if isinstance(value, str):
            for member in cls:
                if value.lower() in (member.value, member.name.lower()):
                    return member
        msg = f'"{value}" is not a valid scope; use one of BASE, ONELEVEL or SUBTREE'
        raise InvalidScope(msg)


class LdapOperation:
    """
    Base class for operations.
    """

    #: Human-readable name of the operation.
    name: ClassVar[str] = ""

    @property
    def ldap_function(self) -> str:
        """The name of the connection primitive that executes this operation."""
        raise NotImplementedError

    def get_arguments(self) -> list[Any]:
        """The positional arguments for :py:attr:`ldap_function`, in order."""
        raise NotImplementedError

    def get_log_array(self) -> dict[str, str]:
        """Field name -> printable value, for logging."""
        raise NotImplementedError

    def __eq__(self, other: object) -> bool:
        if type(other) is not type(self):
            return NotImplemented
        return self.__dict__ == other.__dict__

    def __hash__(self) -> int:
        return hash((self.name, self.ldap_function))

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}: {self.get_log_array()}>"


class AddOperation(LdapOperation):
    """
    Add a new entry.

    Keyword Args:
        dn: the DN of the new entry
        attributes: LDAP attribute name -> value(s), already converted

    """

    name = "Add"

    def __init__(
        self, dn: str | None = None, attributes: dict[str, Any] | None = None
    ) -> None:
        self.dn = dn
        self.attributes: dict[str, Any] = dict(attributes or {})

    def set_dn(self, dn: str) -> "AddOperation":
        self.dn = dn
        return self

    def set_attributes(self, attributes: dict[str, Any]) -> "AddOperation":
        self.attributes = dict(attributes)
        return self

    @property
    def ldap_function(self) -> str:
        return "ldap_add"

    def get_arguments(self) -> list[Any]:
        return [self.dn, self.attributes]

    def get_log_array(self) -> dict[str, str]:
        return {
            "DN": str(self.dn),
            "Attributes": pprint.pformat(_masked(self.attributes)),
        }


class DeleteOperation(LdapOperation):
    """Delete an entry."""

    name = "Delete"

    def __init__(self, dn: str | None = None) -> None:
        self.dn = dn

    def set_dn(self, dn: str) -> "DeleteOperation":
        self.dn = dn
        return self

    @property
    def ldap_function(self) -> str:
        return "ldap_delete"

    def get_arguments(self) -> list[Any]:
        return [self.dn]

    def get_log_array(self) -> dict[str, str]:
        return {"DN": str(self.dn)}


class RenameOperation(LdapOperation):
    """
    Rename an entry, optionally moving it to a new container.

    Keyword Args:
        dn: the current DN
        new_rdn: the new leaf RDN, e.g. ``cn=bar``
        new_location: the DN of the new container; ``None`` to stay put
        delete_old_rdn: whether to remove the old RDN value from the entry

    """

    name = "Rename"

    def __init__(
        self,
        dn: str | None = None,
        new_rdn: str | None = None,
        new_location: str | None = None,
        delete_old_rdn: bool = True,
    ) -> None:
        self.dn = dn
        self.new_rdn = new_rdn
        self.new_location = new_location
        self.delete_old_rdn = delete_old_rdn

    def set_dn(self, dn: str) -> "RenameOperation":
        self.dn = dn
        return self

    def set_new_rdn(self, new_rdn: str) -> "RenameOperation":
        self.new_rdn = new_rdn
        return self

    def set_new_location(self, new_location: str | None) -> "RenameOperation":
        self.new_location = new_location
        return self

    def set_delete_old_rdn(self, delete_old_rdn: bool) -> "RenameOperation":
        self.delete_old_rdn = delete_old_rdn
        return self

    @property
    def ldap_function(self) -> str:
        return "ldap_rename"

    def get_arguments(self) -> list[Any]:
        return [self.dn, self.new_rdn, self.new_location, self.delete_old_rdn]

    def get_log_array(self) -> dict[str, str]:
        return {
            "DN": str(self.dn),
            "New RDN": str(self.new_rdn),
            "New Location": str(self.new_location),
            "Delete Old RDN": str(self.delete_old_rdn),
        }


class BatchType(str, Enum):
    """The kinds of change a :py:class:`Batch` can make."""

    ADD = "add"
    REMOVE = "remove"
    REMOVE_ALL = "remove_all"
    REPLACE = "replace"


class Batch:
    """
    One change to one attribute of an existing entry.

    Args:
        modtype: what kind of change this is
        attribute: the LDAP attribute to change

    Keyword Args:
        values: the values to add, remove or replace with.  Must be empty for
            :py:attr:`BatchType.REMOVE_ALL` and non-empty otherwise.

    Raises:
        InvalidArgument: ``values`` doesn't suit ``modtype``

    """

    def __init__(
        self, modtype: BatchType, attribute: str, values: list[Any] | None = None
    ) -> None:
        if not isinstance(modtype, BatchType):
            msg = f"Batch modtype must be a BatchType, not {modtype!r}"
            raise InvalidArgument(msg)
        if values is not None and not isinstance(values, list):
            values = [values]
        if modtype == BatchType.REMOVE_ALL and values:
            msg = f"A {modtype.value} batch for {attribute} can't carry values"
            raise InvalidArgument(msg)
        if modtype != BatchType.REMOVE_ALL and not values:
            msg = f"A {modtype.value} batch for {attribute} needs at least one value"
            raise InvalidArgument(msg)
        self.modtype = modtype
        self.attribute = attribute
        self.values: list[Any] = values or []

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Batch):
            return NotImplemented
        return (self.modtype, self.attribute, self.values) == (
            other.modtype,
            other.attribute,
            other.values,
        )

    def __hash__(self) -> int:
        return hash((self.modtype, self.attribute))

    def __repr__(self) -> str:
        return f"<Batch {self.modtype.value} {self.attribute}: {self.values!r}>"

    def to_dict(self) -> dict[str, Any]:
        values = self.values
        if self.attribute.lower() in MASKED_ATTRIBUTES:
            values = [MASK] * len(values)
        return {"attrib": self.attribute, "modtype": self.modtype.value, "values": values}

    def to_modlist_entry(self) -> ModlistEntry:
        """
        Return this change as a python-ldap ``modify_s`` modlist entry.  Values
        are left as they are; the connection encodes them.
        """
        if self.modtype == BatchType.ADD:
            return (ldap.MOD_ADD, self.attribute, self.values)
        if self.modtype == BatchType.REPLACE:
            return (ldap.MOD_REPLACE, self.attribute, self.values)
        if self.modtype == BatchType.REMOVE:
            return (ldap.MOD_DELETE, self.attribute, self.values)
        return (ldap.MOD_DELETE, self.attribute, None)


class BatchModifyOperation(LdapOperation):
    """
    Apply an ordered list of :py:class:`Batch` changes to an existing entry.
    """

    name = "Batch Modify"

    def __init__(self, dn: str | None = None, batch: list[Batch] | None = None) -> None:
        self.dn = dn
        self.batch: list[Batch] = list(batch or [])

    def set_dn(self, dn: str) -> "BatchModifyOperation":
        self.dn = dn
        return self

    def set_batch(self, batch: list[Batch]) -> "BatchModifyOperation":
        self.batch = list(batch)
        return self

    @property
    def ldap_function(self) -> str:
        return "ldap_modify_batch"

    def get_arguments(self) -> list[Any]:
        return [self.dn, self.batch]

    def get_log_array(self) -> dict[str, str]:
        return {
            "DN": str(self.dn),
            "Batch": pprint.pformat([b.to_dict() for b in self.batch]),
        }


class QueryOperation(LdapOperation):
    """
    Search for entries.

    The scope decides which primitive runs the search: ``ldap_search`` for
    :py:attr:`Scope.SUBTREE`, ``ldap_list`` for :py:attr:`Scope.ONELEVEL` and
    ``ldap_read`` for :py:attr:`Scope.BASE`.  The scope and page size are not
    part of :py:meth:`get_arguments`; the connection reads them separately.

    Keyword Args:
        ldap_filter: the search filter
        base_dn: where to search from
        scope: how far to search
        page_size: how many entries to ask for per page; ``None`` for the
            connection's default
        attributes: which attributes to return

    """

    name = "Query"

    #: Scope -> primitive name.
    FUNCTIONS: ClassVar[dict[Scope, str]] = {
        Scope.SUBTREE: "ldap_search",
        Scope.ONELEVEL: "ldap_list",
        Scope.BASE: "ldap_read",
    }

    def __init__(  # noqa: PLR0913
        self,
        ldap_filter: str | None = None,
        base_dn: str | None = None,
        scope: Scope | str = Scope.SUBTREE,
        page_size: int | None = None,
        attributes: list[str] | None = None,
    ) -> None:
        self.filter = ldap_filter
        self.base_dn = base_dn
        self.scope = Scope.coerce(scope)
        self.page_size = page_size
        self.attributes: list[str] = list(attributes or [])

    def set_filter(self, ldap_filter: str) -> "QueryOperation":
        self.filter = ldap_filter
        return self

    def set_base_dn(self, base_dn: str) -> "QueryOperation":
        self.base_dn = base_dn
        return self

    def set_scope(self, scope: Scope | str) -> "QueryOperation":
        """
        Set the scope.

        Raises:
            InvalidScope: ``scope`` isn't a scope

        """
        self.scope = Scope.coerce(scope)
        return self

    def set_page_size(self, page_size: int | None) -> "QueryOperation":
        self.page_size = page_size
        return self

    def set_attributes(self, attributes: list[str]) -> "QueryOperation":
        self.attributes = list(attributes)
        return self

    @property
    def ldap_function(self) -> str:
        return self.FUNCTIONS[self.scope]

    def get_arguments(self) -> list[Any]:
        return [self.base_dn, self.filter, self.attributes]

    def get_log_array(self) -> dict[str, str]:
        return {
            "Base DN": str(self.base_dn),
            "Filter": str(self.filter),
            "Attributes": ", ".join(self.attributes),
            "Scope": self.scope.name,
            "Page Size": str(self.page_size),
        }
