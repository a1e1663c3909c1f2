"""
Lifecycle events.

Mutating operations announce themselves before and after they talk to LDAP.
Each :py:class:`EventKind` has its own Django signal and its own payload class,
and :py:class:`EventDispatcher` refuses to send a payload on the wrong signal.

Receivers are connected the usual Django way::

    from ldapschema.events import ldap_object_after_create

    def announce(sender, event, **kwargs):
        print(event.dn)

    ldap_object_after_create.connect(announce)

Receiver exceptions are not caught: an exception raised by a receiver aborts
the operation that dispatched the event.
"""

from enum import Enum
from typing import TYPE_CHECKING, Any, ClassVar

from django.dispatch import Signal

from .exceptions import InvalidArgument

if TYPE_CHECKING:
    from .schema import LdapObjectSchema


class EventKind(str, Enum):
    """The closed set of lifecycle events."""

    BEFORE_CREATE = "ldap_object.before_create"
    AFTER_CREATE = "ldap_object.after_create"
    BEFORE_DELETE = "ldap_object.before_delete"
    AFTER_DELETE = "ldap_object.after_delete"
    BEFORE_MODIFY = "ldap_object.before_modify"
    AFTER_MODIFY = "ldap_object.after_modify"
    BEFORE_MOVE = "ldap_object.before_move"
    AFTER_MOVE = "ldap_object.after_move"
    SCHEMA_LOAD = "ldap_object.schema_load"


ldap_object_before_create = Signal()
ldap_object_after_create = Signal()
ldap_object_before_delete = Signal()
ldap_object_after_delete = Signal()
ldap_object_before_modify = Signal()
ldap_object_after_modify = Signal()
ldap_object_before_move = Signal()
ldap_object_after_move = Signal()
ldap_object_schema_load = Signal()


class Event:
    """
    Base class for lifecycle event payloads.

    Args:
        kind: which event this is

    """

    #: The event kinds this payload class may be sent for.
    kinds: ClassVar[tuple[EventKind, ...]] = ()

    def __init__(self, kind: EventKind) -> None:
        if kind not in self.kinds:
            msg = f"{self.__class__.__name__} can't carry a {kind.value} event"
            raise InvalidArgument(msg)
        self.kind = kind

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, self.__class__):
            return NotImplemented
        return self.__dict__ == other.__dict__

    def __hash__(self) -> int:
        return hash(self.kind)

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}: {self.kind.value}>"


class LdapObjectCreationEvent(Event):
    """
    Sent before and after an LDAP object is created.

    Args:
        kind: :py:attr:`EventKind.BEFORE_CREATE` or
            :py:attr:`EventKind.AFTER_CREATE`

    Keyword Args:
        container: the container the object is created in
        data: the attributes exactly as the caller supplied them
        dn: the DN of the new object; empty before creation
        resolved_data: the caller's attributes with placeholders substituted,
            before conversion.  Only set after creation.

    """

    kinds = (EventKind.BEFORE_CREATE, EventKind.AFTER_CREATE)

    def __init__(
        self,
        kind: EventKind,
        container: str = "",
        data: dict[str, Any] | None = None,
        dn: str = "",
        resolved_data: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(kind)
        self.container = container
        self.data = data or {}
        self.dn = dn
        self.resolved_data = resolved_data or {}


class LdapObjectModificationEvent(Event):
    """
    Sent around deletes, batch modifications and moves of an existing object.

    Keyword Args:
        dn: the DN of the object
        batch: the change records, for modifications
        new_dn: the DN the object ends up with, for moves

    """

    kinds = (
        EventKind.BEFORE_DELETE,
        EventKind.AFTER_DELETE,
        EventKind.BEFORE_MODIFY,
        EventKind.AFTER_MODIFY,
        EventKind.BEFORE_MOVE,
        EventKind.AFTER_MOVE,
    )

    def __init__(
        self,
        kind: EventKind,
        dn: str = "",
        batch: list[Any] | None = None,
        new_dn: str | None = None,
    ) -> None:
        super().__init__(kind)
        self.dn = dn
        self.batch = batch or []
        self.new_dn = new_dn


class LdapObjectSchemaEvent(Event):
    """Sent when a schema is loaded for the first time."""

    kinds = (EventKind.SCHEMA_LOAD,)

    def __init__(self, kind: EventKind, schema: "LdapObjectSchema") -> None:
        super().__init__(kind)
        self.schema = schema


class EventDispatcher:
    """
    Sends lifecycle events over Django signals.

    The return values of receivers are ignored.  Exceptions raised by receivers
    propagate to whoever called :py:meth:`dispatch`.
    """

    #: Which signal each event kind goes out on.
    signals: ClassVar[dict[EventKind, Signal]] = {
        EventKind.BEFORE_CREATE: ldap_object_before_create,
        EventKind.AFTER_CREATE: ldap_object_after_create,
        EventKind.BEFORE_DELETE: ldap_object_before_delete,
        EventKind.AFTER_DELETE: ldap_object_after_delete,
        EventKind.BEFORE_MODIFY: ldap_object_before_modify,
        EventKind.AFTER_MODIFY: ldap_object_after_modify,
        EventKind.BEFORE_MOVE: ldap_object_before_move,
        EventKind.AFTER_MOVE: ldap_object_after_move,
        EventKind.SCHEMA_LOAD: ldap_object_schema_load,
    }

    #: Which payload class each event kind must carry.
    payloads: ClassVar[dict[EventKind, type[Event]]] = {
        kind: cls
        for cls in (
            LdapObjectCreationEvent,
            LdapObjectModificationEvent,
            LdapObjectSchemaEvent,
        )
        for kind in cls.kinds
    }

    def dispatch(self, event: Event) -> None:
        """
        Send ``event`` to every receiver connected to its signal.

        Args:
            event: the event to send

        Raises:
            InvalidArgument: ``event`` is not the payload type for its kind

        """
        expected = self.payloads.get(getattr(event, "kind", None))  # type: ignore[arg-type]
        if expected is None or not isinstance(event, expected):
            msg = f"Can't dispatch {event!r}: wrong payload for its event kind"
            raise InvalidArgument(msg)
        self.signals[event.kind].send(sender=event.__class__, event=event)

    def connect(self, kind: EventKind, receiver, **kwargs) -> None:
        """
        Connect ``receiver`` to the signal for ``kind``.

        Args:
            kind: the event kind
            receiver: the receiver function

        Keyword Args:
            **kwargs: passed through to :py:meth:`django.dispatch.Signal.connect`

        """
        self.signals[kind].connect(receiver, **kwargs)

    def disconnect(self, kind: EventKind, receiver) -> bool:
        """Disconnect ``receiver`` from the signal for ``kind``."""
        return self.signals[kind].disconnect(receiver)
