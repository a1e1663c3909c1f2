"""
Exceptions raised by django-ldapschema.

Everything here derives from :py:class:`LdapSchemaError` so callers can catch
the whole family at once.  Validation errors are always raised before any
request is sent to the LDAP server.
"""


class LdapSchemaError(Exception):
    """Base class for all django-ldapschema errors."""


class InvalidState(LdapSchemaError):
    """Raised when builder methods are called out of order."""


class InvalidArgument(LdapSchemaError, TypeError):
    """Raised when a method receives an argument of the wrong kind."""


class InvalidScope(InvalidArgument):
    """Raised when a search scope is not one of BASE, ONELEVEL or SUBTREE."""


class UnknownObjectType(LdapSchemaError):
    """Raised when no schema definition exists for an object type."""


class SchemaParseError(LdapSchemaError):
    """Raised when a schema definition is malformed."""


class UnresolvedParameter(LdapSchemaError):
    """
    Raised when a ``%name%`` placeholder references a parameter that was never
    set.

    Args:
        name: the name of the unresolved parameter

    """

    def __init__(self, name: str, msg: str | None = None) -> None:
        self.name = name
        if msg is None:
            msg = f'Parameter "{name}" was referenced but never set.'
        super().__init__(msg)


class MissingContainer(LdapSchemaError):
    """Raised when no container could be determined for a new LDAP object."""


class UnknownConverter(LdapSchemaError):
    """Raised when an attribute converter id is not registered."""


class AttributeConversionError(LdapSchemaError, ValueError):
    """Raised when a value can't be converted to or from its LDAP form."""


class CreationError(LdapSchemaError):
    """Raised when an LDAP object can't be built for creation."""


class TransportError(LdapSchemaError):
    """
    Wraps whatever error the LDAP transport reported.

    The original exception is available as ``__cause__``.
    """
