"""
Tests for schemas, schema parsing and the schema factory.
"""

import threading
import time
import unittest
from unittest.mock import Mock

from django.conf import settings
from django.test import override_settings

from ldapschema.events import EventKind, LdapObjectSchemaEvent
from ldapschema.exceptions import SchemaParseError, UnknownObjectType
from ldapschema.factory import LdapObjectSchemaFactory, SchemaCache
from ldapschema.parsers import DictSchemaParser, merge_definitions
from ldapschema.schema import LdapObjectSchema, ObjectType
from ldapschema.schemas import SCHEMAS

if not settings.configured:
    settings.configure(
        LDAP_SERVERS={
            "default": {
                "url": "ldap://localhost:389",
                "user": "cn=admin,dc=example,dc=com",
                "password": "admin",
                "basedn": "dc=example,dc=com",
                "schema_name": "ad",
                "domain_name": "example.com",
                "use_starttls": False,
                "tls_verify": "never",
            }
        },
    )


def definitions(**objects):
    return {"test": {"objects": objects}}


class TestObjectType(unittest.TestCase):
    def test_from_token(self):
        self.assertEqual(ObjectType.from_token("user"), ObjectType.USER)
        self.assertEqual(ObjectType.from_token("GROUP"), ObjectType.GROUP)
        self.assertIsNone(ObjectType.from_token("printer"))


class TestLdapObjectSchema(unittest.TestCase):
    def setUp(self):
        self.schema = DictSchemaParser(SCHEMAS).parse("ad", "user")

    def test_attribute_mapping_ignores_case(self):
        self.assertEqual(self.schema.get_attribute_to_ldap("lastname"), "sn")
        self.assertEqual(self.schema.get_attribute_from_ldap("SN"), "lastName")
        self.assertTrue(self.schema.has_attribute("USERNAME"))

    def test_unknown_attributes_pass_through(self):
        self.assertEqual(self.schema.get_attribute_to_ldap("carLicense"), "carLicense")
        self.assertEqual(self.schema.get_attribute_from_ldap("carLicense"), "carLicense")
        self.assertFalse(self.schema.has_attribute("carLicense"))

    def test_converters(self):
        self.assertEqual(self.schema.get_converter("PASSWORD"), "windows_password")
        self.assertIsNone(self.schema.get_converter("lastName"))

    def test_rdn(self):
        self.assertEqual(self.schema.rdn, "name")
        self.assertEqual(self.schema.rdn_ldap_attribute, "cn")

    def test_objectclasses(self):
        self.assertEqual(
            self.schema.objectclass, ("top", "person", "organizationalPerson", "user")
        )
        self.assertEqual(self.schema.filter_objectclass, ("user",))

    def test_filter_objectclass_defaults_to_objectclass(self):
        schema = LdapObjectSchema("test", "thing", objectclass=["top", "thing"])
        self.assertEqual(schema.filter_objectclass, ("top", "thing"))

    def test_is_immutable(self):
        with self.assertRaises(TypeError):
            self.schema.attributes_map["foo"] = "bar"  # type: ignore[index]
        with self.assertRaises(TypeError):
            self.schema.default_values["foo"] = "bar"  # type: ignore[index]


class TestDictSchemaParser(unittest.TestCase):
    def setUp(self):
        self.parser = DictSchemaParser(SCHEMAS)

    def test_parse_every_bundled_type(self):
        for schema_name, definition in SCHEMAS.items():
            for object_type in definition["objects"]:
                with self.subTest(schema_name=schema_name, object_type=object_type):
                    schema = self.parser.parse(schema_name, object_type)
                    self.assertEqual(schema.schema_name, schema_name)
                    self.assertEqual(schema.object_type, object_type)

    def test_object_type_ignores_case(self):
        self.assertEqual(self.parser.parse("ad", "USER").object_type, "user")

    def test_openldap_user(self):
        schema = self.parser.parse("openldap", "user")
        self.assertEqual(schema.rdn_ldap_attribute, "uid")
        self.assertEqual(schema.required_attributes, ("username",))

    def test_unknown_type(self):
        with self.assertRaises(UnknownObjectType):
            self.parser.parse("ad", "printer")

    def test_unknown_schema(self):
        with self.assertRaises(UnknownObjectType):
            self.parser.parse("novell", "user")

    def test_definition_must_be_a_mapping(self):
        parser = DictSchemaParser(definitions(thing=["top"]))
        with self.assertRaises(SchemaParseError):
            parser.parse("test", "thing")

    def test_objectclass_is_required(self):
        parser = DictSchemaParser(
            definitions(thing={"objectclass": [], "attributes": {"name": "cn"}})
        )
        with self.assertRaises(SchemaParseError):
            parser.parse("test", "thing")

    def test_attributes_must_be_a_mapping(self):
        parser = DictSchemaParser(
            definitions(thing={"objectclass": ["top"], "attributes": ["cn"]})
        )
        with self.assertRaises(SchemaParseError):
            parser.parse("test", "thing")

    def test_converter_must_reference_a_mapped_attribute(self):
        parser = DictSchemaParser(
            definitions(
                thing={
                    "objectclass": ["top"],
                    "attributes": {"name": "cn"},
                    "converters": {"count": "int"},
                }
            )
        )
        with self.assertRaises(SchemaParseError):
            parser.parse("test", "thing")

    def test_default_must_reference_a_mapped_attribute(self):
        parser = DictSchemaParser(
            definitions(
                thing={
                    "objectclass": ["top"],
                    "attributes": {"name": "cn"},
                    "default_values": {"description": "x"},
                }
            )
        )
        with self.assertRaises(SchemaParseError):
            parser.parse("test", "thing")

    def test_rdn_must_be_mapped(self):
        parser = DictSchemaParser(
            definitions(
                thing={"objectclass": ["top"], "attributes": {"cn": "cn"}, "rdn": "name"}
            )
        )
        with self.assertRaises(SchemaParseError):
            parser.parse("test", "thing")

    def test_settings_schemas_are_merged_in(self):
        extra = {
            "ad": {
                "objects": {
                    "printer": {
                        "objectclass": ["top", "printQueue"],
                        "attributes": {"name": "cn", "location": "location"},
                        "default_container": "ou=Printers,%_defaultnamingcontext_%",
                    }
                }
            }
        }
        with override_settings(LDAPSCHEMA_SCHEMAS=extra):
            parser = DictSchemaParser()
        schema = parser.parse("ad", "printer")
        self.assertEqual(
            schema.default_container, "ou=Printers,%_defaultnamingcontext_%"
        )
        # The bundled types are still there
        self.assertEqual(parser.parse("ad", "user").rdn_ldap_attribute, "cn")

    def test_merge_definitions_does_not_change_its_inputs(self):
        base = {"a": {"objects": {"x": {"objectclass": ["top"]}}}}
        extra = {"a": {"objects": {"y": {"objectclass": ["top"]}}}}
        merged = merge_definitions(base, extra)
        self.assertEqual(set(merged["a"]["objects"]), {"x", "y"})
        self.assertEqual(set(base["a"]["objects"]), {"x"})


class TestSchemaCache(unittest.TestCase):
    def test_get_or_set(self):
        cache = SchemaCache()
        loader = Mock(return_value="value")
        self.assertEqual(cache.get_or_set("key", loader), ("value", True))
        self.assertEqual(cache.get_or_set("key", loader), ("value", False))
        loader.assert_called_once_with()
        self.assertIn("key", cache)
        self.assertEqual(len(cache), 1)

    def test_invalidate_and_clear(self):
        cache = SchemaCache()
        cache.get_or_set("a", lambda: 1)
        cache.get_or_set("b", lambda: 2)
        cache.invalidate("a")
        self.assertNotIn("a", cache)
        self.assertEqual(cache.get("b"), 2)
        cache.clear()
        self.assertEqual(len(cache), 0)

    def test_loader_runs_once_across_threads(self):
        cache = SchemaCache()
        calls = []

        def loader():
            calls.append(1)
            time.sleep(0.01)
            return "value"

        results = []
        threads = [
            threading.Thread(target=lambda: results.append(cache.get_or_set("k", loader)))
            for _ in range(8)
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()
        self.assertEqual(len(calls), 1)
        self.assertEqual([value for value, _ in results], ["value"] * 8)
        self.assertEqual(sum(1 for _, loaded in results if loaded), 1)


class TestLdapObjectSchemaFactory(unittest.TestCase):
    def setUp(self):
        self.schema = DictSchemaParser(SCHEMAS).parse("ad", "user")
        self.parser = Mock()
        self.parser.parse.return_value = self.schema
        self.dispatcher = Mock()
        self.factory = LdapObjectSchemaFactory(
            SchemaCache(), self.parser, dispatcher=self.dispatcher
        )

    def test_loads_once(self):
        self.assertIs(self.factory.get("ad", "user"), self.schema)
        self.assertIs(self.factory.get("ad", "USER"), self.schema)
        self.parser.parse.assert_called_once_with("ad", "user")

    def test_schema_load_event_fires_once(self):
        self.factory.get("ad", "user")
        self.factory.get("ad", "user")
        self.dispatcher.dispatch.assert_called_once_with(
            LdapObjectSchemaEvent(EventKind.SCHEMA_LOAD, self.schema)
        )

    def test_cache_is_keyed_by_schema_name(self):
        self.factory.get("ad", "user")
        self.factory.get("openldap", "user")
        self.assertEqual(self.parser.parse.call_count, 2)

    def test_invalidate(self):
        self.factory.get("ad", "user")
        self.factory.invalidate("ad", "user")
        self.factory.get("ad", "user")
        self.assertEqual(self.parser.parse.call_count, 2)

    def test_errors_are_not_cached(self):
        self.parser.parse.side_effect = [UnknownObjectType("nope"), self.schema]
        with self.assertRaises(UnknownObjectType):
            self.factory.get("ad", "user")
        self.assertIs(self.factory.get("ad", "user"), self.schema)
        self.dispatcher.dispatch.assert_called_once()

    def test_without_dispatcher(self):
        factory = LdapObjectSchemaFactory(SchemaCache(), self.parser)
        self.assertIs(factory.get("ad", "user"), self.schema)
