"""
django-ldapschema type definitions.

Type aliases for the data shapes python-ldap sends and receives.
"""

ModlistEntry = tuple[int, str, list[bytes] | None]
ModifyModlist = list[ModlistEntry]
LDAPData = tuple[str, dict[str, list[bytes]]]
