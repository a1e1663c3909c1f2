"""
Schema-driven creation and querying of LDAP objects for Django projects.

Most code only needs :py:class:`ldapschema.managers.LdapManager`.
"""

__version__ = "1.0.0"
