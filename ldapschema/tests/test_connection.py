"""
Tests for the python-ldap transport.

Directory behaviour is tested against python-ldap-faker; bind options and
failure handling are tested against a mocked ``ldap.initialize``.
"""

import unittest
from copy import deepcopy
from unittest.mock import Mock, patch

import ldap
from django.conf import settings
from django.core.exceptions import ImproperlyConfigured
from django.test import override_settings
from ldap_faker.unittest import LDAPFakerMixin

from ldapschema.connection import LdapConnection, encode_values
from ldapschema.exceptions import InvalidArgument, TransportError
from ldapschema.operations import (
    AddOperation,
    Batch,
    BatchModifyOperation,
    BatchType,
    DeleteOperation,
    LdapOperation,
    QueryOperation,
    RenameOperation,
    Scope,
)

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


CONFIG = {
    "url": "ldap://localhost:389",
    "user": "cn=admin,dc=example,dc=com",
    "password": "admin",
    "basedn": "dc=example,dc=com",
    "use_starttls": False,
    "paged_search": False,
}


class CompareOperation(LdapOperation):
    name = "Compare"

    @property
    def ldap_function(self) -> str:
        return "ldap_compare"

    def get_arguments(self):
        return []

    def get_log_array(self):
        return {}


class ConnectionTestCase(unittest.TestCase):
    config = CONFIG

    def setUp(self):
        patcher = patch("ldapschema.connection.ldap.initialize")
        self.initialize = patcher.start()
        self.addCleanup(patcher.stop)
        self.ldap = Mock()
        self.initialize.return_value = self.ldap
        self.connection = LdapConnection(config=dict(self.config))


class TestConfiguration(ConnectionTestCase):
    def test_settings(self):
        connection = LdapConnection()
        self.assertEqual(connection.url, "ldap://localhost:389")
        self.assertEqual(connection.schema_name, "ad")
        self.assertEqual(connection.domain_name, "example.com")
        self.assertEqual(connection.default_naming_context, "dc=example,dc=com")
        self.assertEqual(str(connection), "ldap://localhost:389")

    def test_missing_server(self):
        with self.assertRaises(ImproperlyConfigured):
            LdapConnection("missing")

    def test_missing_servers_setting(self):
        with override_settings(LDAP_SERVERS={}), self.assertRaises(ImproperlyConfigured):
            LdapConnection()

    def test_missing_url(self):
        with self.assertRaises(ImproperlyConfigured):
            LdapConnection(config={"basedn": "dc=example,dc=com"})

    def test_schema_name_default(self):
        self.assertEqual(self.connection.schema_name, "ad")

    def test_page_size(self):
        self.assertEqual(self.connection.page_size, 1000)
        with override_settings(LDAPSCHEMA_DEFAULT_PAGE_SIZE=50):
            self.assertEqual(self.connection.page_size, 50)
        connection = LdapConnection(config=dict(CONFIG, page_size=10))
        self.assertEqual(connection.page_size, 10)

    def test_domain_name_from_naming_context(self):
        connection = LdapConnection(config=dict(CONFIG, basedn="ou=x,DC=corp,DC=example,DC=org"))
        self.assertEqual(connection.domain_name, "corp.example.org")

    def test_domain_name_without_dc_components(self):
        connection = LdapConnection(config=dict(CONFIG, basedn="o=example"))
        self.assertIsNone(connection.domain_name)


class TestBinding(ConnectionTestCase):
    def test_connects_and_binds_per_call(self):
        self.connection.ldap_delete("cn=foo,dc=example,dc=com")
        self.initialize.assert_called_once_with("ldap://localhost:389")
        self.ldap.simple_bind_s.assert_called_once_with(
            "cn=admin,dc=example,dc=com", "admin"
        )
        self.ldap.start_tls_s.assert_not_called()
        self.ldap.unbind_s.assert_called_once_with()
        self.assertFalse(self.connection.has_connection())

    def test_start_tls(self):
        connection = LdapConnection(config=dict(CONFIG, use_starttls=True))
        connection.ldap_delete("cn=foo,dc=example,dc=com")
        self.ldap.start_tls_s.assert_called_once_with()

    def test_tls_verify(self):
        connection = LdapConnection(config=dict(CONFIG, tls_verify="always"))
        connection.ldap_delete("cn=foo,dc=example,dc=com")
        self.ldap.set_option.assert_any_call(
            ldap.OPT_X_TLS_REQUIRE_CERT, ldap.OPT_X_TLS_DEMAND
        )

    def test_invalid_tls_verify(self):
        connection = LdapConnection(config=dict(CONFIG, tls_verify="sometimes"))
        with self.assertRaises(ImproperlyConfigured):
            connection.ldap_delete("cn=foo,dc=example,dc=com")
        self.assertFalse(connection.has_connection())

    def test_missing_certificate_file(self):
        connection = LdapConnection(
            config=dict(CONFIG, tls_ca_certfile="/nonexistent/ca.pem")
        )
        with self.assertRaises(OSError):
            connection.ldap_delete("cn=foo,dc=example,dc=com")

    def test_nested_calls_share_a_connection(self):
        self.connection.connect()
        try:
            self.connection.ldap_delete("cn=a,dc=example,dc=com")
            self.connection.ldap_delete("cn=b,dc=example,dc=com")
        finally:
            self.connection.disconnect()
        self.initialize.assert_called_once()
        self.ldap.unbind_s.assert_called_once_with()


class TestCallShapes(ConnectionTestCase):
    def test_rename_arguments(self):
        self.connection.execute(
            RenameOperation("cn=foo,ou=A,dc=example,dc=com", "cn=bar", "ou=B,dc=example,dc=com")
        )
        self.ldap.rename_s.assert_called_once_with(
            "cn=foo,ou=A,dc=example,dc=com",
            "cn=bar",
            newsuperior="ou=B,dc=example,dc=com",
            delold=1,
        )

    def test_search_references_are_skipped(self):
        self.ldap.search_s.return_value = [
            ("cn=foo,dc=example,dc=com", {"cn": [b"foo"]}),
            (None, ["ldap://other.example.com/dc=other,dc=com"]),
        ]
        rows = self.connection.execute(
            QueryOperation("(cn=foo)", "dc=example,dc=com", Scope.SUBTREE, attributes=["cn"])
        )
        self.ldap.search_s.assert_called_once_with(
            "dc=example,dc=com", ldap.SCOPE_SUBTREE, filterstr="(cn=foo)", attrlist=["cn"]
        )
        self.assertEqual(rows, [("cn=foo,dc=example,dc=com", {"cn": [b"foo"]})])

    def test_search_all_attributes(self):
        self.ldap.search_s.return_value = []
        self.connection.ldap_search("dc=example,dc=com", "(objectClass=*)", [])
        self.assertIsNone(self.ldap.search_s.call_args[1]["attrlist"])

    def test_base_scope_is_not_paged(self):
        connection = LdapConnection(config=dict(CONFIG, paged_search=True))
        self.ldap.search_s.return_value = []
        connection.ldap_read("cn=foo,dc=example,dc=com", "(objectClass=*)")
        self.ldap.search_ext.assert_not_called()
        self.ldap.search_s.assert_called_once()

    def test_unknown_function(self):
        with self.assertRaises(InvalidArgument):
            self.connection.execute(CompareOperation())
        self.initialize.assert_not_called()

    def test_encode_values(self):
        self.assertEqual(encode_values("é"), ["é".encode()])
        self.assertEqual(encode_values([1, b"x"]), [b"1", b"x"])
        self.assertEqual(encode_values(True), [b"TRUE"])
        self.assertEqual(encode_values([False, 0]), [b"FALSE", b"0"])


class TestLdapConnectionWithFaker(LDAPFakerMixin, unittest.TestCase):
    """Run the primitives against the python-ldap-faker directory."""

    ldap_modules = ["ldapschema.connection"]

    @classmethod
    def setUpClass(cls):
        super().setUpClass()
        cls.directory = [
            [
                "dc=example,dc=com",
                {"dc": [b"example"], "objectclass": [b"top", b"domain"]},
            ],
            [
                "cn=admin,dc=example,dc=com",
                {
                    "cn": [b"admin"],
                    "userPassword": [b"admin"],
                    "objectclass": [b"simpleSecurityObject", b"organizationalRole", b"top"],
                },
            ],
            [
                "ou=People,dc=example,dc=com",
                {"ou": [b"People"], "objectclass": [b"top", b"organizationalUnit"]},
            ],
            [
                "ou=Groups,dc=example,dc=com",
                {"ou": [b"Groups"], "objectclass": [b"top", b"organizationalUnit"]},
            ],
            [
                "cn=alice,ou=People,dc=example,dc=com",
                {"cn": [b"alice"], "sn": [b"Johnson"], "objectclass": [b"top", b"person"]},
            ],
            [
                "cn=bob,ou=People,dc=example,dc=com",
                {"cn": [b"bob"], "sn": [b"Smith"], "objectclass": [b"top", b"person"]},
            ],
            [
                "cn=carol,ou=People,dc=example,dc=com",
                {"cn": [b"carol"], "sn": [b"Brown"], "objectclass": [b"top", b"person"]},
            ],
        ]

    def setUp(self):
        super().setUp()
        self.server_factory.default.raw_objects.clear()  # type: ignore[attr-defined]
        self.server_factory.default.objects.clear()  # type: ignore[attr-defined]
        for dn, attrs in self.directory:
            self.server_factory.default.register_object((dn, deepcopy(attrs)))  # type: ignore[attr-defined]
        self.connection = LdapConnection(
            config=dict(CONFIG, paged_search=True, page_size=2)
        )

    def dns(self, rows):
        return sorted(dn.lower() for dn, _ in rows)

    def read(self, dn):
        rows = self.connection.ldap_read(dn, "(objectClass=*)")
        self.assertEqual(len(rows), 1)
        return rows[0][1]

    def test_search_scopes(self):
        self.assertEqual(
            self.dns(self.connection.ldap_read("cn=alice,ou=People,dc=example,dc=com", "(objectClass=*)")),
            ["cn=alice,ou=people,dc=example,dc=com"],
        )
        self.assertEqual(
            self.dns(self.connection.ldap_list("dc=example,dc=com", "(objectClass=*)")),
            [
                "cn=admin,dc=example,dc=com",
                "ou=groups,dc=example,dc=com",
                "ou=people,dc=example,dc=com",
            ],
        )
        self.assertEqual(
            self.dns(self.connection.ldap_search("dc=example,dc=com", "(objectClass=person)")),
            [
                "cn=alice,ou=people,dc=example,dc=com",
                "cn=bob,ou=people,dc=example,dc=com",
                "cn=carol,ou=people,dc=example,dc=com",
            ],
        )

    def test_paged_search_collects_every_page(self):
        for page_size in (1, 2, 3, 10):
            with self.subTest(page_size=page_size):
                rows = self.connection.execute(
                    QueryOperation(
                        "(sn=*)",
                        "ou=People,dc=example,dc=com",
                        Scope.ONELEVEL,
                        page_size=page_size,
                        attributes=["sn"],
                    )
                )
                self.assertEqual(
                    sorted(attrs["sn"][0] for _, attrs in rows),
                    [b"Brown", b"Johnson", b"Smith"],
                )

    def test_add(self):
        self.connection.execute(
            AddOperation(
                "cn=dave,ou=People,dc=example,dc=com",
                {"objectclass": ["top", "person"], "cn": "dave", "sn": "Davis", "description": "Café"},
            )
        )
        attrs = self.read("cn=dave,ou=People,dc=example,dc=com")
        self.assertEqual(attrs["sn"], [b"Davis"])
        self.assertEqual(attrs["description"], ["Café".encode()])
        self.assertEqual(attrs["objectclass"], [b"top", b"person"])

    def test_add_existing_entry(self):
        with (
            self.assertLogs("ldapschema.connection", level="WARNING"),
            self.assertRaises(TransportError),
        ):
            self.connection.execute(
                AddOperation(
                    "cn=alice,ou=People,dc=example,dc=com",
                    {"objectclass": ["top", "person"], "cn": "alice", "sn": "Johnson"},
                )
            )
        self.assertFalse(self.connection.has_connection())

    def test_delete(self):
        self.connection.execute(DeleteOperation("cn=bob,ou=People,dc=example,dc=com"))
        self.assertNotIn(
            "cn=bob,ou=people,dc=example,dc=com",
            self.dns(self.connection.ldap_list("ou=People,dc=example,dc=com", "(objectClass=*)")),
        )

    def test_delete_missing_entry(self):
        with (
            self.assertLogs("ldapschema.connection", level="WARNING"),
            self.assertRaises(TransportError),
        ):
            self.connection.execute(DeleteOperation("cn=zed,ou=People,dc=example,dc=com"))

    def test_rename(self):
        self.connection.execute(
            RenameOperation("cn=alice,ou=People,dc=example,dc=com", "cn=alicia")
        )
        self.assertEqual(
            self.dns(self.connection.ldap_list("ou=People,dc=example,dc=com", "(objectClass=*)")),
            [
                "cn=alicia,ou=people,dc=example,dc=com",
                "cn=bob,ou=people,dc=example,dc=com",
                "cn=carol,ou=people,dc=example,dc=com",
            ],
        )

    def test_move(self):
        self.connection.execute(
            RenameOperation(
                "cn=bob,ou=People,dc=example,dc=com", "cn=bob", "ou=Groups,dc=example,dc=com"
            )
        )
        self.assertEqual(
            self.dns(self.connection.ldap_list("ou=Groups,dc=example,dc=com", "(objectClass=*)")),
            ["cn=bob,ou=groups,dc=example,dc=com"],
        )

    def test_modify_batch(self):
        dn = "cn=carol,ou=People,dc=example,dc=com"
        self.connection.execute(
            BatchModifyOperation(
                dn,
                [
                    Batch(BatchType.ADD, "description", ["one", "two"]),
                    Batch(BatchType.REPLACE, "sn", ["Jones"]),
                ],
            )
        )
        attrs = self.read(dn)
        self.assertEqual(attrs["description"], [b"one", b"two"])
        self.assertEqual(attrs["sn"], [b"Jones"])
        self.connection.execute(
            BatchModifyOperation(dn, [Batch(BatchType.REMOVE_ALL, "description")])
        )
        self.assertNotIn("description", self.read(dn))

    def test_wrong_password(self):
        connection = LdapConnection(config=dict(CONFIG, password="wrong"))
        with (
            self.assertLogs("ldapschema.connection", level="WARNING"),
            self.assertRaises(TransportError),
        ):
            connection.execute(DeleteOperation("cn=bob,ou=People,dc=example,dc=com"))
        self.assertFalse(connection.has_connection())


class TestErrors(ConnectionTestCase):
    def test_ldap_errors_become_transport_errors(self):
        self.ldap.delete_s.side_effect = ldap.NO_SUCH_OBJECT({"desc": "No such object"})
        with (
            self.assertLogs("ldapschema.connection", level="WARNING") as logs,
            self.assertRaises(TransportError) as ctx,
        ):
            self.connection.execute(DeleteOperation("cn=foo,dc=example,dc=com"))
        self.assertIsInstance(ctx.exception.__cause__, ldap.NO_SUCH_OBJECT)
        self.assertIn("ldapschema.connection.execute.failed", logs.output[0])
        self.ldap.unbind_s.assert_called_once_with()
        self.assertFalse(self.connection.has_connection())

    def test_bind_errors_become_transport_errors(self):
        self.ldap.simple_bind_s.side_effect = ldap.INVALID_CREDENTIALS({"desc": "Invalid credentials"})
        with self.assertRaises(TransportError):
            self.connection.execute(DeleteOperation("cn=foo,dc=example,dc=com"))
        self.assertFalse(self.connection.has_connection())

    def test_unbind_errors_are_ignored(self):
        self.ldap.unbind_s.side_effect = ldap.SERVER_DOWN({"desc": "Can't contact LDAP server"})
        self.connection.execute(DeleteOperation("cn=foo,dc=example,dc=com"))
        self.assertFalse(self.connection.has_connection())


class TestLogging(ConnectionTestCase):
    def test_passwords_are_masked(self):
        with self.assertLogs("ldapschema.connection", level="DEBUG") as logs:
            self.connection.execute(
                AddOperation(
                    "cn=foo,dc=example,dc=com",
                    {"cn": "foo", "userPassword": "hunter2"},
                )
            )
        output = "\n".join(logs.output)
        self.assertIn("ldapschema.connection.execute", output)
        self.assertIn('DN="cn=foo,dc=example,dc=com"', output)
        self.assertIn("******", output)
        self.assertNotIn("hunter2", output)


class TestRootDse(ConnectionTestCase):
    config = {k: v for k, v in CONFIG.items() if k != "basedn"}

    def test_naming_context_is_read_once(self):
        self.ldap.search_s.return_value = [
            ("", {"defaultNamingContext": [b"DC=corp,DC=example,DC=org"]})
        ]
        self.assertEqual(
            self.connection.default_naming_context, "DC=corp,DC=example,DC=org"
        )
        self.assertEqual(
            self.connection.default_naming_context, "DC=corp,DC=example,DC=org"
        )
        self.ldap.search_s.assert_called_once_with(
            "",
            ldap.SCOPE_BASE,
            "(objectClass=*)",
            ["defaultNamingContext", "namingContexts"],
        )
        self.assertEqual(self.connection.domain_name, "corp.example.org")

    def test_falls_back_to_naming_contexts(self):
        self.ldap.search_s.return_value = [
            ("", {"namingContexts": [b"dc=example,dc=com", b"cn=config"]})
        ]
        self.assertEqual(self.connection.default_naming_context, "dc=example,dc=com")

    def test_unreadable_root_dse(self):
        self.ldap.search_s.side_effect = ldap.SERVER_DOWN({"desc": "Can't contact LDAP server"})
        with (
            self.assertLogs("ldapschema.connection", level="WARNING"),
            self.assertRaises(TransportError),
        ):
            self.connection.default_naming_context  # noqa: B018

    def test_root_dse_without_context(self):
        self.ldap.search_s.return_value = [("", {"vendorName": [b"Example"]})]
        with self.assertRaises(TransportError):
            self.connection.default_naming_context  # noqa: B018
