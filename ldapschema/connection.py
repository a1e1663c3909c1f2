"""
The python-ldap transport.

:py:class:`LdapConnection` executes operation objects against the server
configured in ``settings.LDAP_SERVERS``.  It keeps one python-ldap connection
per thread while a call is in progress, binding at the start of the call and
unbinding at the end.
"""

import logging
import threading
from collections.abc import Callable
from contextlib import suppress
from functools import wraps
from pathlib import Path
from typing import Any, cast

import ldap
from django.conf import settings
from django.core.exceptions import ImproperlyConfigured
from ldap import modlist
from ldap.controls import SimplePagedResultsControl

from .dn import explode_dn
from .exceptions import InvalidArgument, TransportError
from .operations import Batch, LdapOperation, QueryOperation
from .typing import LDAPData, ModifyModlist

logger = logging.getLogger(__name__)


def atomic(func: Callable) -> Callable:
    """
    Decorator for methods that need to talk to the LDAP server.

    If the current thread has no connection yet, one is opened before the call
    and closed afterwards; nested calls reuse the outer connection.
    """

    @wraps(func)
    def wrapper(self, *args, **kwargs) -> Any:
        if self.has_connection():
            return func(self, *args, **kwargs)
        self.connect()
        try:
            retval = func(self, *args, **kwargs)
        finally:
            # Clean up the connection no matter what happens in ``func()``.
            self.disconnect()
        return retval

    return wrapper


def encode_value(value: Any) -> bytes:
    """Encode one attribute value the way python-ldap wants it."""
    if isinstance(value, bytes):
        return value
    if isinstance(value, bool):
        return b"TRUE" if value else b"FALSE"
    return str(value).encode("utf-8")


def encode_values(value: Any) -> list[bytes]:
    if isinstance(value, (list, tuple)):
        return [encode_value(v) for v in value]
    return [encode_value(value)]


class LdapConnection:
    """
    Execute operations against one configured LDAP server.

    Thread-safe: every thread gets its own python-ldap connection.

    Keyword Args:
        server: the key of the server in ``settings.LDAP_SERVERS``
        config: use this configuration instead of reading settings

    Raises:
        ImproperlyConfigured: the server isn't configured

    """

    #: The schema set used when the configuration doesn't name one.
    DEFAULT_SCHEMA_NAME: str = "ad"
    #: The page size used when neither the server nor settings set one.
    DEFAULT_PAGE_SIZE: int = 1000

    def __init__(self, server: str = "default", config: dict[str, Any] | None = None):
        self.server = server
        self.config: dict[str, Any] = (
            config if config is not None else self._get_config(server)
        )
        if "url" not in self.config:
            msg = f'LDAP_SERVERS["{server}"] has no "url"'
            raise ImproperlyConfigured(msg)
        self._default_naming_context: str | None = self.config.get("basedn")
        # keys in this dictionary get manipulated by .connect() and .disconnect()
        self._ldap_objects: dict[threading.Thread, ldap.ldapobject.LDAPObject] = {}  # type: ignore[name-defined]

    @staticmethod
    def _get_config(server: str) -> dict[str, Any]:
        servers = getattr(settings, "LDAP_SERVERS", None)
        if not servers:
            msg = "settings.LDAP_SERVERS is not defined"
            raise ImproperlyConfigured(msg)
        try:
            return servers[server]
        except KeyError as e:
            msg = f'settings.LDAP_SERVERS has no "{server}" server'
            raise ImproperlyConfigured(msg) from e

    def __str__(self) -> str:
        return self.url

    def __repr__(self) -> str:
        return f"<LdapConnection {self.server}: {self.url}>"

    @property
    def url(self) -> str:
        return self.config["url"]

    @property
    def schema_name(self) -> str:
        """The name of the schema set objects on this server use."""
        return self.config.get("schema_name", self.DEFAULT_SCHEMA_NAME)

    @property
    def domain_name(self) -> str | None:
        """
        The DNS domain of the directory.  Unless configured, this is worked out
        from the ``dc`` components of the default naming context.
        """
        if self.config.get("domain_name"):
            return self.config["domain_name"]
        parts = [
            rdn.split("=", 1)[1]
            for rdn in explode_dn(self.default_naming_context)
            if rdn.lower().startswith("dc=")
        ]
        return ".".join(parts) or None

    @property
    def page_size(self) -> int:
        return int(
            self.config.get("page_size")
            or getattr(settings, "LDAPSCHEMA_DEFAULT_PAGE_SIZE", self.DEFAULT_PAGE_SIZE)
        )

    @property
    def paged_search(self) -> bool:
        return bool(self.config.get("paged_search", True))

    @property
    def default_naming_context(self) -> str:
        """
        The DN of the top of the directory: ``basedn`` from the configuration,
        or else ``defaultNamingContext`` from the server's Root DSE.

        Raises:
            TransportError: the Root DSE could not be read, or names no context

        """
        if self._default_naming_context is None:
            try:
                self._default_naming_context = self._read_default_naming_context()
            except ldap.LDAPError as e:  # type: ignore[attr-defined]
                logger.warning(
                    "ldapschema.connection.root_dse.failed server=%s error=%s", self, e
                )
                msg = f"Could not read the Root DSE of {self}: {e}"
                raise TransportError(msg) from e
        return self._default_naming_context

    @atomic
    def _read_default_naming_context(self) -> str:
        result = self.connection.search_s(
            "",
            ldap.SCOPE_BASE,  # type: ignore[attr-defined]
            "(objectClass=*)",
            ["defaultNamingContext", "namingContexts"],
        )
        for _, attrs in result:
            if not isinstance(attrs, dict):
                continue
            lookup = {k.lower(): v for k, v in attrs.items()}
            values = lookup.get("defaultnamingcontext") or lookup.get("namingcontexts")
            if values:
                return values[0].decode("utf-8")
        msg = f"The Root DSE of {self} names no naming context"
        raise TransportError(msg)

    # Connection handling

    def has_connection(self) -> bool:
        return threading.current_thread() in self._ldap_objects

    def set_connection(self, obj: ldap.ldapobject.LDAPObject) -> None:  # type: ignore[name-defined]
        self._ldap_objects[threading.current_thread()] = obj

    def remove_connection(self) -> None:
        del self._ldap_objects[threading.current_thread()]

    @property
    def connection(self) -> ldap.ldapobject.LDAPObject:  # type: ignore[name-defined]
        """The current thread's python-ldap connection."""
        return self._ldap_objects[threading.current_thread()]

    def connect(self) -> None:
        """Open and bind a connection for the current thread."""
        self.set_connection(self._connect())

    def disconnect(self) -> None:
        """Unbind and forget the current thread's connection."""
        with suppress(ldap.LDAPError):  # type: ignore[attr-defined]
            self.connection.unbind_s()
        self.remove_connection()

    def _connect(self) -> ldap.ldapobject.LDAPObject:  # type: ignore[name-defined]  # noqa: PLR0912
        """
        Create and return a new, bound python-ldap connection.

        Raises:
            ImproperlyConfigured: the ``tls_verify`` value in the configuration
                is invalid
            OSError: a configured certificate or key file doesn't exist or
                isn't a file

        Returns:
            A connected LDAPObject.

        """
        config = self.config
        ldap_object: ldap.ldapobject.LDAPObject = ldap.initialize(config["url"])  # type: ignore[name-defined]
        if config.get("follow_referrals", False):
            ldap_object.set_option(ldap.OPT_REFERRALS, 1)  # type: ignore[attr-defined]
        else:
            ldap_object.set_option(ldap.OPT_REFERRALS, 0)  # type: ignore[attr-defined]
        timeout = config.get("timeout", 15.0)
        ldap_object.set_option(ldap.OPT_NETWORK_TIMEOUT, float(timeout))  # type: ignore[attr-defined]
        sizelimit = config.get("sizelimit", None)
        if sizelimit:
            ldap_object.set_option(ldap.OPT_SIZELIMIT, int(sizelimit))  # type: ignore[attr-defined]
        tls_verify = config.get("tls_verify", "never")
        if tls_verify == "never":
            ldap_object.set_option(ldap.OPT_X_TLS_REQUIRE_CERT, ldap.OPT_X_TLS_NEVER)  # type: ignore[attr-defined]
        elif tls_verify == "always":
            ldap_object.set_option(ldap.OPT_X_TLS_REQUIRE_CERT, ldap.OPT_X_TLS_DEMAND)  # type: ignore[attr-defined]
        else:
            msg = f"Invalid tls_verify value: {tls_verify}"
            raise ImproperlyConfigured(msg)
        for key, option in (
            ("tls_ca_certfile", ldap.OPT_X_TLS_CACERTFILE),  # type: ignore[attr-defined]
            ("tls_certfile", ldap.OPT_X_TLS_CERTFILE),  # type: ignore[attr-defined]
            ("tls_keyfile", ldap.OPT_X_TLS_KEYFILE),  # type: ignore[attr-defined]
        ):
            if path := config.get(key, None):
                if not Path(path).is_file():
                    msg = f"{key} does not exist or is not a file: {path}"
                    raise OSError(msg)
                ldap_object.set_option(option, path)
        ldap_object.set_option(ldap.OPT_X_TLS_NEWCTX, 0)  # type: ignore[attr-defined]
        if config.get("use_starttls", True):
            ldap_object.start_tls_s()
        ldap_object.simple_bind_s(config.get("user"), config.get("password"))
        return ldap_object

    # Executing operations

    def execute(self, operation: LdapOperation) -> Any:
        """
        Execute ``operation`` by calling the primitive it names with its
        arguments.  Query operations pass their page size separately.

        Args:
            operation: the operation to execute

        Raises:
            InvalidArgument: ``operation`` names no primitive we have
            TransportError: python-ldap raised an error

        Returns:
            Whatever the primitive returns: a list of ``(dn, attrs)`` rows for
            queries, ``None`` otherwise.

        """
        function_name = operation.ldap_function
        if function_name not in (
            "ldap_add",
            "ldap_delete",
            "ldap_rename",
            "ldap_modify_batch",
            "ldap_search",
            "ldap_list",
            "ldap_read",
        ):
            msg = f"No LDAP primitive named {function_name}"
            raise InvalidArgument(msg)
        function = getattr(self, function_name)
        kwargs = {}
        if isinstance(operation, QueryOperation):
            kwargs["page_size"] = operation.page_size
        logger.debug(
            "ldapschema.connection.execute server=%s operation=%s %s",
            self,
            operation.name,
            " ".join(f'{k}="{v}"' for k, v in operation.get_log_array().items()),
        )
        try:
            return function(*operation.get_arguments(), **kwargs)
        except ldap.LDAPError as e:  # type: ignore[attr-defined]
            logger.warning(
                "ldapschema.connection.execute.failed server=%s operation=%s error=%s",
                self,
                operation.name,
                e,
            )
            msg = f"{operation.name} failed on {self}: {e}"
            raise TransportError(msg) from e

    @atomic
    def ldap_add(self, dn: str, attributes: dict[str, Any]) -> None:
        encoded = {name: encode_values(value) for name, value in attributes.items()}
        self.connection.add_s(dn, modlist.addModlist(encoded))

    @atomic
    def ldap_delete(self, dn: str) -> None:
        self.connection.delete_s(dn)

    @atomic
    def ldap_rename(
        self,
        dn: str,
        new_rdn: str,
        new_location: str | None = None,
        delete_old_rdn: bool = True,
    ) -> None:
        self.connection.rename_s(
            dn, new_rdn, newsuperior=new_location, delold=int(delete_old_rdn)
        )

    @atomic
    def ldap_modify_batch(self, dn: str, batch: list[Batch]) -> None:
        changes: ModifyModlist = []
        for record in batch:
            op, attribute, values = record.to_modlist_entry()
            changes.append(
                (op, attribute, encode_values(values) if values is not None else None)
            )
        self.connection.modify_s(dn, changes)

    def ldap_search(
        self,
        base_dn: str,
        ldap_filter: str,
        attributes: list[str] | None = None,
        page_size: int | None = None,
    ) -> list[LDAPData]:
        """Search the whole subtree under ``base_dn``."""
        return self._search(
            base_dn, ldap_filter, attributes, ldap.SCOPE_SUBTREE, page_size  # type: ignore[attr-defined]
        )

    def ldap_list(
        self,
        base_dn: str,
        ldap_filter: str,
        attributes: list[str] | None = None,
        page_size: int | None = None,
    ) -> list[LDAPData]:
        """Search the immediate children of ``base_dn``."""
        return self._search(
            base_dn, ldap_filter, attributes, ldap.SCOPE_ONELEVEL, page_size  # type: ignore[attr-defined]
        )

    def ldap_read(
        self,
        base_dn: str,
        ldap_filter: str,
        attributes: list[str] | None = None,
        page_size: int | None = None,
    ) -> list[LDAPData]:
        """Read ``base_dn`` itself."""
        return self._search(
            base_dn, ldap_filter, attributes, ldap.SCOPE_BASE, page_size  # type: ignore[attr-defined]
        )

    @atomic
    def _search(  # noqa: PLR0913
        self,
        base_dn: str,
        ldap_filter: str,
        attributes: list[str] | None,
        scope: int,
        page_size: int | None,
    ) -> list[LDAPData]:
        attrlist = list(attributes) if attributes else None
        if self.paged_search and scope != ldap.SCOPE_BASE:  # type: ignore[attr-defined]
            return self._paged_search(
                base_dn,
                ldap_filter,
                attrlist=attrlist,
                pagesize=page_size or self.page_size,
                scope=scope,
            )
        # We have to filter out any references that AD puts in
        data = self.connection.search_s(
            base_dn, scope, filterstr=ldap_filter, attrlist=attrlist
        )
        return [obj for obj in data if isinstance(obj[1], dict)]

    def _get_pctrls(self, serverctrls):
        """
        Lookup an LDAP paged control object from the returned controls.
        """
        return [
            c
            for c in serverctrls
            if c.controlType == SimplePagedResultsControl.controlType
        ]

    def _paged_search(
        self,
        basedn: str,
        searchfilter: str,
        attrlist: list[str] | None = None,
        pagesize: int = 1000,
        scope: int = ldap.SCOPE_SUBTREE,  # type: ignore[attr-defined]
    ) -> list[LDAPData]:
        """
        Perform a paged search, fetching every page.

        Args:
            basedn: The base DN to search from.
            searchfilter: The LDAP search filter string.

        Keyword Args:
            attrlist: List of attributes to retrieve.
            pagesize: Number of results per page.
            scope: LDAP search scope.

        Returns:
            List of LDAPData tuples (dn, attrs).

        """
        # The cookie starts out empty on the first page.
        paging = SimplePagedResultsControl(True, size=pagesize, cookie="")  # noqa: FBT003
        results: list[LDAPData] = []
        while True:
            msgid = self.connection.search_ext(
                basedn, scope, searchfilter, attrlist, serverctrls=[paging]
            )
            _, rdata, _, serverctrls = self.connection.result3(msgid)
            for dn, attrs in rdata:
                # AD returns an rdata at the end that is a reference that we
                # want to ignore
                if isinstance(attrs, dict):
                    results.append((dn, cast("dict[str, list[bytes]]", attrs)))
            paged_controls = self._get_pctrls(serverctrls)
            if not paged_controls or not paged_controls[0].cookie:
                break
            paging.cookie = paged_controls[0].cookie
        return results
