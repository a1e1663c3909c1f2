"""
Creating LDAP objects.

:py:class:`LdapObjectCreator` is a fluent, single-use builder::

    dn = (
        manager.create_ldap_object()
        .create_user()
        .with_attributes(username="jdoe", password="s3cret!")
        .in_container("ou=%department%,%_defaultnamingcontext_%")
        .set_parameter("department", "Sales")
        .execute()
    )

Nothing touches LDAP until :py:meth:`LdapObjectCreator.execute`, and every
validation failure is raised before the ``before_create`` event goes out.
"""

import logging
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from .converters import AttributeConverterRegistry
from .dn import build_dn, is_dn, parent_dn
from .events import EventDispatcher, EventKind, LdapObjectCreationEvent
from .exceptions import (
    CreationError,
    InvalidArgument,
    InvalidState,
    MissingContainer,
)
from .operations import AddOperation
from .parameters import ParameterResolver
from .schema import LdapObjectSchema, ObjectType

if TYPE_CHECKING:
    from .connection import LdapConnection
    from .factory import LdapObjectSchemaFactory

logger = logging.getLogger(__name__)


class LdapObjectCreator:
    """
    Build and add one new LDAP object.

    The builder moves through these states: no type selected, type selected,
    attributes accumulating, executed.  :py:meth:`create` (or one of its
    shortcuts) must come first.  :py:meth:`in_container` and :py:meth:`set_dn`
    are mutually exclusive.  Once :py:meth:`execute` has run, the builder
    can't be used again.

    Args:
        connection: where the object gets added
        schema_factory: resolves object types to schemas

    Keyword Args:
        dispatcher: sends the before and after create events
        converters: converts attribute values to their LDAP form

    """

    #: Placeholders that resolve without a :py:meth:`set_parameter` call.
    DEFAULT_NAMING_CONTEXT: str = "_defaultnamingcontext_"
    DOMAIN_NAME: str = "_domainname_"

    def __init__(
        self,
        connection: "LdapConnection",
        schema_factory: "LdapObjectSchemaFactory",
        dispatcher: EventDispatcher | None = None,
        converters: AttributeConverterRegistry | None = None,
    ) -> None:
        self.connection = connection
        self.schema_factory = schema_factory
        self.dispatcher = dispatcher or EventDispatcher()
        self.converters = converters or AttributeConverterRegistry()
        self.object_type: ObjectType | LdapObjectSchema | None = None
        self.attributes: dict[str, Any] = {}
        self.container: str | None = None
        self.dn: str | None = None
        self.parameters: dict[str, Any] = {}
        self.executed: bool = False

    def _check_not_executed(self) -> None:
        if self.executed:
            msg = "This object has already been created; use a new creator."
            raise InvalidState(msg)

    def create(self, object_type: ObjectType | LdapObjectSchema | str) -> "LdapObjectCreator":
        """
        Select the kind of object to create.

        Args:
            object_type: an :py:class:`~ldapschema.schema.ObjectType`, its
                value (e.g. ``"user"``), or a schema to use directly

        Raises:
            InvalidState: a type has already been selected
            InvalidArgument: ``object_type`` is neither a type nor a schema
            CreationError: ``object_type`` is a string naming no known type

        """
        self._check_not_executed()
        if self.object_type is not None:
            msg = f"The object type is already set to {self.object_type!r}."
            raise InvalidState(msg)
        if isinstance(object_type, (ObjectType, LdapObjectSchema)):
            self.object_type = object_type
        elif isinstance(object_type, str):
            member = ObjectType.from_token(object_type)
            if member is None:
                msg = f'Unknown object type "{object_type}".'
                raise CreationError(msg)
            self.object_type = member
        else:
            msg = f"Can't create an object from {object_type!r}."
            raise InvalidArgument(msg)
        return self

    def create_user(self) -> "LdapObjectCreator":
        return self.create(ObjectType.USER)

    def create_group(self) -> "LdapObjectCreator":
        return self.create(ObjectType.GROUP)

    def create_computer(self) -> "LdapObjectCreator":
        return self.create(ObjectType.COMPUTER)

    def create_contact(self) -> "LdapObjectCreator":
        return self.create(ObjectType.CONTACT)

    def create_ou(self) -> "LdapObjectCreator":
        return self.create(ObjectType.OU)

    def with_attributes(
        self, attributes: Mapping[str, Any] | None = None, **kwargs: Any
    ) -> "LdapObjectCreator":
        """
        Merge attributes into those set so far.  Later values win.

        Args:
            attributes: domain attribute name -> value

        Keyword Args:
            **kwargs: more attributes, applied after ``attributes``

        Raises:
            InvalidState: no object type has been selected yet
            InvalidArgument: ``attributes`` isn't a mapping

        """
        self._check_not_executed()
        if self.object_type is None:
            msg = "Select an object type with create() before setting attributes."
            raise InvalidState(msg)
        if attributes is not None and not isinstance(attributes, Mapping):
            msg = f"Attributes must be a mapping, not {type(attributes).__name__}"
            raise InvalidArgument(msg)
        self.attributes.update(attributes or {})
        self.attributes.update(kwargs)
        return self

    def in_container(self, container: str) -> "LdapObjectCreator":
        """
        Set the DN of the container to create the object in.  Placeholders are
        allowed.

        Raises:
            InvalidState: :py:meth:`set_dn` was already called

        """
        self._check_not_executed()
        if self.dn is not None:
            msg = "The DN is already set; a container can't be set as well."
            raise InvalidState(msg)
        if not isinstance(container, str):
            msg = f"The container must be a string, not {type(container).__name__}"
            raise InvalidArgument(msg)
        self.container = container
        return self

    def set_dn(self, dn: str) -> "LdapObjectCreator":
        """
        Set the full DN of the new object, bypassing DN construction.  The
        container becomes the parent of ``dn``.

        Raises:
            InvalidState: :py:meth:`in_container` was already called

        """
        self._check_not_executed()
        if self.container is not None:
            msg = "The container is already set; a DN can't be set as well."
            raise InvalidState(msg)
        if not isinstance(dn, str) or not dn or not is_dn(dn):
            msg = f"The DN must be a non-empty string, not {dn!r}"
            raise InvalidArgument(msg)
        self.dn = dn
        return self

    def set_parameter(self, name: str, value: Any) -> "LdapObjectCreator":
        """Set the value substituted for ``%name%`` placeholders."""
        self._check_not_executed()
        self.parameters[name] = value
        return self

    def get_schema(self) -> LdapObjectSchema:
        """
        Return the schema for the selected object type.

        Raises:
            InvalidState: no object type has been selected
            UnknownObjectType: the connection's schema set lacks the type

        """
        if self.object_type is None:
            msg = "No object type has been selected."
            raise InvalidState(msg)
        if isinstance(self.object_type, LdapObjectSchema):
            return self.object_type
        return self.schema_factory.get(
            self.connection.schema_name, self.object_type.value
        )

    def _merge_defaults(self, schema: LdapObjectSchema) -> dict[str, Any]:
        merged: dict[str, Any] = {}
        names: dict[str, str] = {}
        for source in (schema.default_values, self.attributes):
            for name, value in source.items():
                key = names.get(name.lower())
                if key is not None:
                    del merged[key]
                names[name.lower()] = name
                merged[name] = value
        return merged

    def _resolver(self, attributes: dict[str, Any]) -> ParameterResolver:
        return ParameterResolver(
            attributes,
            self.parameters,
            special={
                self.DEFAULT_NAMING_CONTEXT: lambda: self.connection.default_naming_context,
                self.DOMAIN_NAME: lambda: self.connection.domain_name,
            },
        )

    def _get_container(
        self, schema: LdapObjectSchema, resolver: ParameterResolver
    ) -> str:
        if self.container is not None:
            return str(resolver.resolve_value(self.container))
        if self.dn is not None:
            return parent_dn(self.dn)
        if schema.default_container:
            return str(resolver.resolve_value(schema.default_container))
        msg = "No container or OU specified."
        raise MissingContainer(msg)

    def _get_dn(
        self, schema: LdapObjectSchema, resolved: dict[str, Any], container: str
    ) -> str:
        if self.dn is not None:
            return self.dn
        values = {k.lower(): v for k, v in resolved.items()}
        value = values.get(schema.rdn.lower())
        if isinstance(value, list):
            value = value[0] if value else None
        if value is None:
            msg = (
                f'Can\'t build a DN for the new {schema.object_type}: "{schema.rdn}" '
                "has no value."
            )
            raise CreationError(msg)
        return build_dn(schema.rdn_ldap_attribute, str(value), container)

    def _to_ldap(
        self, schema: LdapObjectSchema, resolved: dict[str, Any]
    ) -> dict[str, Any]:
        wire: dict[str, Any] = {"objectclass": list(schema.objectclass)}
        for name, value in resolved.items():
            converted = self.converters.to_ldap(schema.get_converter(name), value)
            if converted is None or converted == []:
                continue
            wire[schema.get_attribute_to_ldap(name)] = converted
        return wire

    def execute(self) -> str:
        """
        Create the object.

        The schema defaults are merged under the caller's attributes,
        placeholders are substituted, values are converted and the DN is built.
        Then the ``before_create`` event is dispatched, the object is added and
        the ``after_create`` event is dispatched.

        Raises:
            InvalidState: no object type was selected, or this creator has
                already been executed
            UnknownObjectType: the schema set lacks the object type
            UnresolvedParameter: a placeholder names nothing known
            MissingContainer: no container could be worked out
            CreationError: a required attribute has no value
            AttributeConversionError: a value could not be converted
            TransportError: the add failed

        Returns:
            The DN of the new object.

        """
        self._check_not_executed()
        schema = self.get_schema()
        merged = self._merge_defaults(schema)
        resolver = self._resolver(merged)
        resolved = {
            name: value
            for name, value in resolver.resolve(merged).items()
            if value is not None and value != []
        }
        present = {name.lower() for name in resolved}
        missing = [a for a in schema.required_attributes if a.lower() not in present]
        if missing:
            msg = (
                f"Can't create {schema.object_type}: missing required attributes "
                f"{', '.join(missing)}"
            )
            raise CreationError(msg)
        wire = self._to_ldap(schema, resolved)
        container = self._get_container(schema, resolver)
        dn = self._get_dn(schema, resolved, container)
        self.executed = True

        data = dict(self.attributes)
        self.dispatcher.dispatch(
            LdapObjectCreationEvent(
                EventKind.BEFORE_CREATE, container=container, data=data
            )
        )
        self.connection.execute(AddOperation(dn, wire))
        logger.info(
            "ldapschema.creator.create dn=%s object_type=%s", dn, schema.object_type
        )
        caller_keys = {name.lower() for name in self.attributes}
        self.dispatcher.dispatch(
            LdapObjectCreationEvent(
                EventKind.AFTER_CREATE,
                container=container,
                data=data,
                dn=dn,
                resolved_data={
                    k: v for k, v in resolved.items() if k.lower() in caller_keys
                },
            )
        )
        return dn
