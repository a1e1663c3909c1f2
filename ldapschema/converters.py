"""
Attribute value converters.

A converter translates a single attribute value between the form callers work
with (``datetime``, ``bool``, a GUID string, ...) and the form LDAP stores.
:py:class:`AttributeConverterRegistry` looks converters up by id and takes care
of the single-value/list shapes on both sides, so individual converters only
ever see one value at a time.
"""

import datetime
import re
import struct
import uuid
from typing import Any, ClassVar

import pytz

from .exceptions import AttributeConversionError, UnknownConverter


def _to_text(value: Any) -> str:
    if isinstance(value, bytes):
        return value.decode("utf-8")
    return str(value)


class Converter:
    """
    Base class for attribute converters.

    Subclasses implement :py:meth:`to_ldap` and :py:meth:`from_ldap` for one
    value.  Converters are stateless.
    """

    #: Human-readable description of the converter.
    description: str = "Value"

    def to_ldap(self, value: Any) -> Any:
        """
        Convert a domain value to its LDAP form.

        Args:
            value: a single, non-``None`` domain value

        Returns:
            The LDAP form of ``value``.

        """
        raise NotImplementedError

    def from_ldap(self, value: Any) -> Any:
        """
        Convert an LDAP value to its domain form.

        Args:
            value: a single, non-``None`` value as returned by the server

        Returns:
            The domain form of ``value``.

        """
        raise NotImplementedError

    def fail(self, value: Any) -> AttributeConversionError:
        msg = f"{value!r} is not a valid {self.description} value"
        return AttributeConversionError(msg)


class StringConverter(Converter):
    """
    Pass-through converter.  Values go to LDAP untouched, except booleans,
    which become LDAP ``TRUE``/``FALSE``; bytes coming back from LDAP are
    decoded as UTF-8 if they can be.
    """

    description = "String"

    def to_ldap(self, value: Any) -> Any:
        if isinstance(value, bool):
            return BooleanConverter().to_ldap(value)
        return value

    def from_ldap(self, value: Any) -> Any:
        if isinstance(value, bytes):
            try:
                return value.decode("utf-8")
            except UnicodeDecodeError:
                return value
        return value


class IntegerConverter(Converter):
    """Integers, stored in LDAP as decimal strings."""

    description = "Integer"

    def to_ldap(self, value: Any) -> str:
        if isinstance(value, bool):
            raise self.fail(value)
        try:
            return str(int(_to_text(value)))
        except ValueError as e:
            raise self.fail(value) from e

    def from_ldap(self, value: Any) -> int:
        try:
            return int(_to_text(value))
        except ValueError as e:
            raise self.fail(value) from e


class BooleanConverter(Converter):
    """
    Booleans, stored in LDAP as the strings ``TRUE`` and ``FALSE``.
    """

    description = "Boolean"

    #: The string value used to represent True in LDAP.
    LDAP_TRUE: str = "TRUE"
    #: The string value used to represent False in LDAP.
    LDAP_FALSE: str = "FALSE"

    def to_ldap(self, value: Any) -> str:
        if isinstance(value, bool):
            return self.LDAP_TRUE if value else self.LDAP_FALSE
        if isinstance(value, str) and value.upper() in (self.LDAP_TRUE, self.LDAP_FALSE):
            return value.upper()
        raise self.fail(value)

    def from_ldap(self, value: Any) -> bool:
        text = _to_text(value).upper()
        if text == self.LDAP_TRUE:
            return True
        if text == self.LDAP_FALSE:
            return False
        raise self.fail(value)


class GeneralizedTimeConverter(Converter):
    """
    Datetimes, stored in LDAP GeneralizedTime syntax in UTC, e.g.
    ``20240131120000.0Z``.  Naive datetimes are taken to be UTC.
    """

    description = "GeneralizedTime"

    FORMAT: str = "%Y%m%d%H%M%S"
    PATTERN = re.compile(r"^(\d{14})(?:[.,](\d{1,6}))?Z$")

    def to_ldap(self, value: Any) -> str:
        if not isinstance(value, datetime.datetime):
            raise self.fail(value)
        if value.tzinfo is None:
            value = pytz.UTC.localize(value)
        return value.astimezone(pytz.UTC).strftime(self.FORMAT) + ".0Z"

    def from_ldap(self, value: Any) -> datetime.datetime:
        match = self.PATTERN.match(_to_text(value))
        if not match:
            raise self.fail(value)
        dt = datetime.datetime.strptime(match.group(1), self.FORMAT)  # noqa: DTZ007
        if match.group(2):
            dt = dt.replace(microsecond=int(match.group(2).ljust(6, "0")))
        return pytz.UTC.localize(dt)


class WindowsTimeConverter(Converter):
    """
    Active Directory timestamps: the number of 100-nanosecond intervals since
    January 1, 1601 UTC, stored as a decimal string.

    ``0`` and the maximum 64-bit value both mean "never" and convert to
    ``None``.
    """

    description = "Windows timestamp"

    #: The Active Directory epoch (January 1, 1601 UTC).
    AD_EPOCH: datetime.datetime = datetime.datetime(1601, 1, 1, tzinfo=pytz.UTC)
    #: Values that mean "never".
    NEVER: tuple[int, ...] = (0, 9223372036854775807)

    def to_ldap(self, value: Any) -> str:
        if isinstance(value, datetime.date) and not isinstance(value, datetime.datetime):
            value = datetime.datetime.combine(value, datetime.time.min)
        if not isinstance(value, datetime.datetime):
            raise self.fail(value)
        if value.tzinfo is None:
            value = pytz.UTC.localize(value)
        delta = value.astimezone(pytz.UTC) - self.AD_EPOCH
        intervals = (
            delta.days * 86_400 + delta.seconds
        ) * 10_000_000 + delta.microseconds * 10
        return str(intervals)

    def from_ldap(self, value: Any) -> datetime.datetime | None:
        try:
            timestamp = int(_to_text(value))
        except ValueError as e:
            raise self.fail(value) from e
        if timestamp in self.NEVER:
            return None
        try:
            return self.AD_EPOCH + datetime.timedelta(microseconds=timestamp // 10)
        except OverflowError as e:
            raise self.fail(value) from e


class WindowsPasswordConverter(Converter):
    """
    Active Directory ``unicodePwd``: the password wrapped in double quotes and
    encoded as UTF-16-LE.
    """

    description = "Windows password"

    def to_ldap(self, value: Any) -> bytes:
        if not isinstance(value, str):
            raise self.fail(value)
        return f'"{value}"'.encode("utf-16-le")

    def from_ldap(self, value: Any) -> str:
        if not isinstance(value, bytes):
            raise self.fail(value)
        try:
            text = value.decode("utf-16-le")
        except UnicodeDecodeError as e:
            raise self.fail(value) from e
        if len(text) >= 2 and text[0] == text[-1] == '"':  # noqa: PLR2004
            text = text[1:-1]
        return text


class WindowsGuidConverter(Converter):
    """
    Active Directory ``objectGUID``: 16 bytes in Microsoft's mixed-endian
    layout on the wire, a canonical GUID string in Python.
    """

    description = "GUID"

    def to_ldap(self, value: Any) -> bytes:
        try:
            return uuid.UUID(str(value)).bytes_le
        except ValueError as e:
            raise self.fail(value) from e

    def from_ldap(self, value: Any) -> str:
        if not isinstance(value, bytes):
            raise self.fail(value)
        try:
            return str(uuid.UUID(bytes_le=value))
        except ValueError as e:
            raise self.fail(value) from e


class WindowsSidConverter(Converter):
    """
    Active Directory ``objectSid``: the binary SID structure on the wire, the
    ``S-1-5-21-...`` string form in Python.
    """

    description = "SID"

    PATTERN = re.compile(r"^S-(\d+)-(\d+)((?:-\d+)*)$", re.IGNORECASE)

    def to_ldap(self, value: Any) -> bytes:
        match = self.PATTERN.match(str(value))
        if not match:
            raise self.fail(value)
        revision = int(match.group(1))
        authority = int(match.group(2))
        sub_authorities = [int(x) for x in match.group(3).split("-")[1:]]
        try:
            return (
                struct.pack("<BB", revision, len(sub_authorities))
                + authority.to_bytes(6, "big")
                + b"".join(struct.pack("<I", sub) for sub in sub_authorities)
            )
        except (struct.error, OverflowError) as e:
            raise self.fail(value) from e

    def from_ldap(self, value: Any) -> str:
        if not isinstance(value, bytes) or len(value) < 8:  # noqa: PLR2004
            raise self.fail(value)
        revision, count = struct.unpack("<BB", value[:2])
        if len(value) != 8 + count * 4:
            raise self.fail(value)
        authority = int.from_bytes(value[2:8], "big")
        sub_authorities = struct.unpack(f"<{count}I", value[8:])
        return "-".join(
            ["S", str(revision), str(authority), *(str(s) for s in sub_authorities)]
        )


class GroupTypeConverter(Converter):
    """
    Active Directory ``groupType``: a signed 32-bit flag word on the wire, one
    of the names in :py:attr:`TYPES` in Python.
    """

    description = "group type"

    GLOBAL = 0x00000002
    DOMAIN_LOCAL = 0x00000004
    UNIVERSAL = 0x00000008
    SECURITY = 0x80000000

    TYPES: ClassVar[dict[str, int]] = {
        "global_distribution": GLOBAL,
        "domain_local_distribution": DOMAIN_LOCAL,
        "universal_distribution": UNIVERSAL,
        "global_security": GLOBAL | SECURITY,
        "domain_local_security": DOMAIN_LOCAL | SECURITY,
        "universal_security": UNIVERSAL | SECURITY,
    }

    @staticmethod
    def _signed(flags: int) -> int:
        return flags - (1 << 32) if flags & 0x80000000 else flags

    def to_ldap(self, value: Any) -> str:
        try:
            return str(self._signed(self.TYPES[str(value).lower()]))
        except KeyError as e:
            raise self.fail(value) from e

    def from_ldap(self, value: Any) -> str:
        try:
            flags = int(_to_text(value)) & 0xFFFFFFFF
        except ValueError as e:
            raise self.fail(value) from e
        for name, bits in self.TYPES.items():
            if bits == flags:
                return name
        raise self.fail(value)


class AttributeConverterRegistry:
    """
    Look converters up by id and apply them to single values or lists.

    Each registry starts with :py:attr:`default_converters`; use
    :py:meth:`register` to add more.
    """

    #: The converters every registry starts with.
    default_converters: ClassVar[dict[str, type[Converter]]] = {
        "string": StringConverter,
        "int": IntegerConverter,
        "bool": BooleanConverter,
        "generalized_time": GeneralizedTimeConverter,
        "windows_time": WindowsTimeConverter,
        "windows_password": WindowsPasswordConverter,
        "windows_guid": WindowsGuidConverter,
        "windows_sid": WindowsSidConverter,
        "group_type": GroupTypeConverter,
    }

    #: The converter used for attributes that don't name one.
    DEFAULT: str = "string"

    def __init__(self) -> None:
        self._converters: dict[str, type[Converter]] = dict(self.default_converters)

    def __contains__(self, converter_id: str) -> bool:
        return converter_id in self._converters

    def register(self, converter_id: str, converter_class: type[Converter]) -> None:
        """
        Register ``converter_class`` under ``converter_id``, replacing any
        converter already registered under that id.
        """
        self._converters[converter_id] = converter_class

    def get(self, converter_id: str) -> Converter:
        """
        Return a converter instance for ``converter_id``.

        Raises:
            UnknownConverter: nothing is registered under ``converter_id``

        """
        try:
            return self._converters[converter_id]()
        except KeyError as e:
            msg = f'No attribute converter named "{converter_id}" is registered.'
            raise UnknownConverter(msg) from e

    def to_ldap(self, converter_id: str | None, value: Any) -> Any:
        """
        Convert a domain value to its LDAP form.  Lists are converted element by
        element; ``None`` is returned unchanged.

        Args:
            converter_id: the converter to use; ``None`` means :py:attr:`DEFAULT`
            value: a scalar or a list of scalars

        Returns:
            The converted value, with the same shape as ``value``.

        """
        converter = self.get(converter_id or self.DEFAULT)
        if value is None:
            return None
        if isinstance(value, (list, tuple)):
            return [converter.to_ldap(v) for v in value if v is not None]
        return converter.to_ldap(value)

    def from_ldap(self, converter_id: str | None, value: Any) -> Any:
        """
        Convert a value returned by LDAP to its domain form.

        LDAP returns every attribute as a list.  A single-element list comes
        back as a scalar, an empty list as ``None``, and longer lists as a list
        of converted values.

        Args:
            converter_id: the converter to use; ``None`` means :py:attr:`DEFAULT`
            value: a scalar or a list of scalars

        Returns:
            The converted value.

        """
        converter = self.get(converter_id or self.DEFAULT)
        if value is None:
            return None
        if isinstance(value, (list, tuple)):
            if not value:
                return None
            if len(value) == 1:
                return converter.from_ldap(value[0])
            return [converter.from_ldap(v) for v in value]
        return converter.from_ldap(value)
