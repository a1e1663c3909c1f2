"""
Schema loading.

:py:class:`DictSchemaParser` turns the nested dictionaries in
:py:mod:`ldapschema.schemas` (plus anything in ``settings.LDAPSCHEMA_SCHEMAS``)
into :py:class:`~ldapschema.schema.LdapObjectSchema` instances.  Anything with a
``parse(schema_name, object_type)`` method can stand in for it.
"""

import copy
import logging
from typing import Any

from django.conf import settings

from .exceptions import SchemaParseError, UnknownObjectType
from .schema import LdapObjectSchema
from .schemas import SCHEMAS

logger = logging.getLogger(__name__)


def merge_definitions(
    base: dict[str, dict[str, Any]], extra: dict[str, dict[str, Any]]
) -> dict[str, dict[str, Any]]:
    """
    Merge ``extra`` schema definitions over ``base``.  Object types in
    ``extra`` replace object types of the same name in ``base``; everything
    else in ``base`` is kept.

    Args:
        base: the definitions to start from
        extra: the definitions to lay over them

    Returns:
        A new merged dictionary.

    """
    merged = copy.deepcopy(base)
    for schema_name, definition in extra.items():
        objects = merged.setdefault(schema_name, {}).setdefault("objects", {})
        objects.update(copy.deepcopy(definition.get("objects", {})))
    return merged


class DictSchemaParser:
    """
    Build :py:class:`~ldapschema.schema.LdapObjectSchema` objects from
    dictionaries.

    Keyword Args:
        definitions: the schema definitions to use.  If not given, the bundled
            definitions are used, merged with ``settings.LDAPSCHEMA_SCHEMAS``
            when Django settings are configured.

    """

    def __init__(self, definitions: dict[str, dict[str, Any]] | None = None) -> None:
        if definitions is None:
            definitions = SCHEMAS
            if settings.configured:
                extra = getattr(settings, "LDAPSCHEMA_SCHEMAS", {})
                if extra:
                    definitions = merge_definitions(definitions, extra)
        self.definitions = definitions

    def parse(self, schema_name: str, object_type: str) -> LdapObjectSchema:
        """
        Load the schema for ``object_type`` from the schema set ``schema_name``.

        Args:
            schema_name: the schema set, e.g. ``"ad"``
            object_type: the object type, e.g. ``"user"``

        Raises:
            UnknownObjectType: there's no such schema set, or it doesn't define
                ``object_type``
            SchemaParseError: the definition is malformed

        Returns:
            The parsed schema.

        """
        try:
            objects = self.definitions[schema_name]["objects"]
        except KeyError as e:
            msg = f'No schema named "{schema_name}" is defined.'
            raise UnknownObjectType(msg) from e
        lookup = {k.lower(): k for k in objects}
        if object_type.lower() not in lookup:
            msg = f'Schema "{schema_name}" has no object type "{object_type}".'
            raise UnknownObjectType(msg)
        name = lookup[object_type.lower()]
        definition = objects[name]
        logger.debug(
            "ldapschema.parser.parse schema=%s object_type=%s", schema_name, name
        )
        return self._build(schema_name, name, definition)

    def _build(
        self, schema_name: str, object_type: str, definition: Any
    ) -> LdapObjectSchema:
        where = f'{schema_name}:{object_type}'
        if not isinstance(definition, dict):
            msg = f"{where}: the definition must be a mapping"
            raise SchemaParseError(msg)
        objectclass = definition.get("objectclass")
        if (
            not isinstance(objectclass, list)
            or not objectclass
            or not all(isinstance(oc, str) for oc in objectclass)
        ):
            msg = f'{where}: "objectclass" must be a non-empty list of strings'
            raise SchemaParseError(msg)
        attributes = self._get_mapping(definition, "attributes", where)
        converters = self._get_mapping(definition, "converters", where)
        default_values = self._get_mapping(definition, "default_values", where)
        mapped = {k.lower() for k in attributes}
        for section, mapping in (
            ("converters", converters),
            ("default_values", default_values),
        ):
            for name in mapping:
                if name.lower() not in mapped:
                    msg = (
                        f'{where}: "{section}" references attribute "{name}" '
                        'which is not in "attributes"'
                    )
                    raise SchemaParseError(msg)
        rdn = definition.get("rdn", "name")
        if not isinstance(rdn, str) or rdn.lower() not in mapped:
            msg = f'{where}: rdn attribute "{rdn}" is not in "attributes"'
            raise SchemaParseError(msg)
        default_container = definition.get("default_container")
        if default_container is not None and not isinstance(default_container, str):
            msg = f'{where}: "default_container" must be a string'
            raise SchemaParseError(msg)
        required = definition.get("required_attributes", [])
        if not isinstance(required, list):
            msg = f'{where}: "required_attributes" must be a list'
            raise SchemaParseError(msg)
        return LdapObjectSchema(
            schema_name,
            object_type,
            objectclass=objectclass,
            attributes=attributes,
            converters=converters,
            default_values=default_values,
            default_container=default_container,
            rdn=rdn,
            required_attributes=required,
            filter_objectclass=definition.get("filter_objectclass"),
        )

    @staticmethod
    def _get_mapping(definition: dict[str, Any], key: str, where: str) -> dict:
        value = definition.get(key, {})
        if not isinstance(value, dict):
            msg = f'{where}: "{key}" must be a mapping'
            raise SchemaParseError(msg)
        return value
