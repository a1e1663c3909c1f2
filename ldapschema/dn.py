"""
Distinguished name helpers.

RDN values are escaped with backslash-hex pairs (``foo=,bar`` becomes
``foo\\3d\\2cbar``).  Parsing goes through python-ldap's :py:mod:`ldap.dn`,
which understands every escaping form a server may hand back.
"""

import ldap
import ldap.dn

from .exceptions import InvalidArgument

#: Characters that are escaped wherever they appear in an RDN value.
ESCAPED_CHARS = ',+"\\<>;=\x00'
#: Characters that are escaped only at the start of an RDN value.
ESCAPED_LEADING = " #"
#: Characters that are escaped only at the end of an RDN value.
ESCAPED_TRAILING = " "


def _hex(c: str) -> str:
    return "".join(f"\\{b:02x}" for b in c.encode("utf-8"))


def escape_value(value: str) -> str:
    """
    Escape ``value`` for use as an RDN value.

    Args:
        value: the raw value

    Returns:
        The escaped value.  Values with nothing to escape come back unchanged.

    """
    last = len(value) - 1
    escaped = []
    for i, c in enumerate(value):
        if (
            c in ESCAPED_CHARS
            or (i == 0 and c in ESCAPED_LEADING)
            or (i == last and c in ESCAPED_TRAILING)
        ):
            escaped.append(_hex(c))
        else:
            escaped.append(c)
    return "".join(escaped)


def unescape_value(value: str) -> str:
    """
    Undo :py:func:`escape_value`.  Plain ``\\,`` style escapes are understood
    too.

    Args:
        value: an escaped RDN value

    Raises:
        InvalidArgument: ``value`` is not a valid escaped RDN value

    Returns:
        The raw value.

    """
    if not value:
        return value
    try:
        rdns = ldap.dn.str2dn(f"x={value}")
    except ldap.DECODING_ERROR as e:
        msg = f'"{value}" is not a valid escaped RDN value'
        raise InvalidArgument(msg) from e
    if len(rdns) != 1 or len(rdns[0]) != 1:
        msg = f'"{value}" is not a valid escaped RDN value'
        raise InvalidArgument(msg)
    return rdns[0][0][1]


def build_dn(attribute: str, value: str, container: str | None) -> str:
    """
    Build a DN from a leaf attribute, its unescaped value and a container.

    Args:
        attribute: the leaf RDN attribute, e.g. ``cn``
        value: the leaf RDN value, unescaped
        container: the DN of the parent entry.  This is used as is, so it must
            already be a valid DN.

    Raises:
        InvalidArgument: ``attribute`` is empty

    Returns:
        The DN.

    """
    if not attribute:
        msg = "The RDN attribute name can't be empty."
        raise InvalidArgument(msg)
    rdn = f"{attribute}={escape_value(str(value))}"
    if container:
        return f"{rdn},{container}"
    return rdn


def explode_dn(dn: str) -> list[str]:
    """Split ``dn`` into its RDNs, leaf first."""
    return ldap.dn.explode_dn(dn)


def parent_dn(dn: str) -> str:
    """
    Return the DN of the entry containing ``dn``, exactly as written in ``dn``.

    Args:
        dn: a DN

    Raises:
        InvalidArgument: ``dn`` is not a valid DN

    Returns:
        The parent DN; empty if ``dn`` has a single RDN.

    """
    try:
        ldap.dn.str2dn(dn)
    except ldap.DECODING_ERROR as e:
        msg = f'"{dn}" is not a valid DN'
        raise InvalidArgument(msg) from e
    escaped = False
    for i, c in enumerate(dn):
        if escaped:
            escaped = False
        elif c == "\\":
            escaped = True
        elif c == ",":
            return dn[i + 1 :].lstrip()
    return ""


def is_dn(dn: str) -> bool:
    """Return ``True`` if ``dn`` parses as a DN."""
    return ldap.dn.is_dn(dn)
