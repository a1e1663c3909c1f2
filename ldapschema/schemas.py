"""
Bundled schema definitions.

These are the definitions :py:class:`~ldapschema.parsers.DictSchemaParser`
loads by default.  Each top level key is a schema name (what
``settings.LDAP_SERVERS[...]["schema_name"]`` refers to), and each entry under
``objects`` describes one object type.  Add to or override these with
``settings.LDAPSCHEMA_SCHEMAS``, which uses the same layout.
"""

from typing import Any

#: Active Directory.
ACTIVE_DIRECTORY: dict[str, Any] = {
    "objects": {
        "user": {
            "objectclass": ["top", "person", "organizationalPerson", "user"],
            "filter_objectclass": ["user"],
            "rdn": "name",
            "attributes": {
                "name": "cn",
                "displayName": "displayName",
                "firstName": "givenName",
                "lastName": "sn",
                "username": "sAMAccountName",
                "userPrincipalName": "userPrincipalName",
                "emailAddress": "mail",
                "description": "description",
                "password": "unicodePwd",
                "accountControl": "userAccountControl",
                "guid": "objectGuid",
                "sid": "objectSid",
                "created": "whenCreated",
                "modified": "whenChanged",
                "lastLogon": "lastLogonTimestamp",
                "passwordLastSet": "pwdLastSet",
                "memberOf": "memberOf",
            },
            "converters": {
                "password": "windows_password",
                "accountControl": "int",
                "guid": "windows_guid",
                "sid": "windows_sid",
                "created": "generalized_time",
                "modified": "generalized_time",
                "lastLogon": "windows_time",
                "passwordLastSet": "windows_time",
            },
            "default_values": {
                "name": "%username%",
                "displayName": "%username%",
                "firstName": "%username%",
                "userPrincipalName": "%username%@%_domainname_%",
                "accountControl": "512",
            },
            "required_attributes": ["username", "password"],
        },
        "group": {
            "objectclass": ["top", "group"],
            "rdn": "name",
            "attributes": {
                "name": "cn",
                "accountName": "sAMAccountName",
                "description": "description",
                "groupType": "groupType",
                "members": "member",
                "guid": "objectGuid",
                "sid": "objectSid",
                "created": "whenCreated",
            },
            "converters": {
                "groupType": "group_type",
                "guid": "windows_guid",
                "sid": "windows_sid",
                "created": "generalized_time",
            },
            "default_values": {
                "accountName": "%name%",
                "groupType": "global_security",
            },
            "required_attributes": ["name"],
        },
        "computer": {
            "objectclass": ["top", "person", "organizationalPerson", "user", "computer"],
            "filter_objectclass": ["computer"],
            "rdn": "name",
            "attributes": {
                "name": "cn",
                "accountName": "sAMAccountName",
                "dnsHostName": "dNSHostName",
                "description": "description",
                "accountControl": "userAccountControl",
                "guid": "objectGuid",
                "sid": "objectSid",
            },
            "converters": {
                "accountControl": "int",
                "guid": "windows_guid",
                "sid": "windows_sid",
            },
            "default_values": {
                "accountName": "%name%$",
                "accountControl": "4096",
            },
            "required_attributes": ["name"],
        },
        "contact": {
            "objectclass": ["top", "person", "organizationalPerson", "contact"],
            "filter_objectclass": ["contact"],
            "rdn": "name",
            "attributes": {
                "name": "cn",
                "displayName": "displayName",
                "firstName": "givenName",
                "lastName": "sn",
                "emailAddress": "mail",
                "description": "description",
            },
            "default_values": {
                "displayName": "%name%",
            },
            "required_attributes": ["name"],
        },
        "ou": {
            "objectclass": ["top", "organizationalUnit"],
            "rdn": "name",
            "attributes": {
                "name": "ou",
                "description": "description",
                "guid": "objectGuid",
            },
            "converters": {
                "guid": "windows_guid",
            },
            "required_attributes": ["name"],
        },
    },
}

#: OpenLDAP with the inetOrgPerson / groupOfNames object classes.
OPENLDAP: dict[str, Any] = {
    "objects": {
        "user": {
            "objectclass": ["top", "person", "organizationalPerson", "inetOrgPerson"],
            "filter_objectclass": ["inetOrgPerson"],
            "rdn": "username",
            "attributes": {
                "username": "uid",
                "name": "cn",
                "firstName": "givenName",
                "lastName": "sn",
                "emailAddress": "mail",
                "password": "userPassword",
                "description": "description",
                "created": "createTimestamp",
                "modified": "modifyTimestamp",
            },
            "converters": {
                "created": "generalized_time",
                "modified": "generalized_time",
            },
            "default_values": {
                "name": "%username%",
                "lastName": "%username%",
            },
            "required_attributes": ["username"],
        },
        "group": {
            "objectclass": ["top", "groupOfNames"],
            "rdn": "name",
            "attributes": {
                "name": "cn",
                "description": "description",
                "members": "member",
            },
            "required_attributes": ["name", "members"],
        },
        "ou": {
            "objectclass": ["top", "organizationalUnit"],
            "rdn": "name",
            "attributes": {
                "name": "ou",
                "description": "description",
            },
            "required_attributes": ["name"],
        },
    },
}

#: Everything the default parser knows about, keyed by schema name.
SCHEMAS: dict[str, dict[str, Any]] = {
    "ad": ACTIVE_DIRECTORY,
    "openldap": OPENLDAP,
}
