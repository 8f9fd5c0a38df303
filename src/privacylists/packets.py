"""Packet model and wire envelope codec for the privacy-list protocol."""

import itertools
import secrets
import threading
from typing import Literal

from privacylists.errors import PrivacyProtocolError

PRIVACY_NAMESPACE: str = "jabber:iq:privacy"
IQType = Literal["get", "set", "result", "error"]
IQ_TYPES: tuple[str, ...] = ("get", "set", "result", "error")
_PACKET_ID_PREFIX: str = secrets.token_hex(3)
_PACKET_ID_COUNTER: "itertools.count[int]" = itertools.count()
_PACKET_ID_LOCK: threading.Lock = threading.Lock()


def next_packet_id() -> str:
    """Return a packet id that is unique for the lifetime of this process.

    :returns: Packet id string.
    """
    with _PACKET_ID_LOCK:
        sequence: int = next(_PACKET_ID_COUNTER)
    return f"{_PACKET_ID_PREFIX}-{sequence}"


class StanzaError:
    """Error payload attached to a rejected request."""

    condition: str
    error_type: str | None
    text: str | None

    def __init__(self, condition: str, error_type: str | None = None, text: str | None = None) -> None:
        """Initialize an error payload.

        :param condition: Defined condition, such as ``item-not-found``.
        :param error_type: Optional error class, such as ``cancel`` or ``modify``.
        :param text: Optional human-readable description.
        """
        self.condition = condition
        self.error_type = error_type
        self.text = text

    def __eq__(self, other: object) -> bool:
        if isinstance(other, StanzaError) is False:
            return NotImplemented
        return (self.condition, self.error_type, self.text) == (other.condition, other.error_type, other.text)

    def __hash__(self) -> int:
        return hash((self.condition, self.error_type, self.text))

    def __repr__(self) -> str:
        return f"StanzaError(condition={self.condition!r}, error_type={self.error_type!r}, text={self.text!r})"

    def __str__(self) -> str:
        if self.text is None:
            return self.condition
        return f"{self.condition}: {self.text}"


class PrivacyItem:
    """One ordered allow/deny rule inside a privacy list.

    The manager carries items verbatim; matching semantics belong to the server.
    """

    allow: bool
    order: int
    type: str | None
    value: str | None

    def __init__(self, allow: bool, order: int, type: str | None = None, value: str | None = None) -> None:
        """Initialize a rule.

        :param allow: ``True`` for an allow rule, ``False`` for deny.
        :param order: Evaluation order within the list.
        :param type: Optional match kind, such as ``jid``, ``group`` or ``subscription``.
        :param value: Optional match value for ``type``.
        """
        self.allow = allow
        self.order = order
        self.type = type
        self.value = value

    def __eq__(self, other: object) -> bool:
        if isinstance(other, PrivacyItem) is False:
            return NotImplemented
        return (self.allow, self.order, self.type, self.value) == (other.allow, other.order, other.type, other.value)

    def __hash__(self) -> int:
        return hash((self.allow, self.order, self.type, self.value))

    def __repr__(self) -> str:
        return f"PrivacyItem(allow={self.allow!r}, order={self.order!r}, type={self.type!r}, value={self.value!r})"


class IQ:
    """Generic request/response envelope."""

    packet_id: str
    iq_type: IQType
    from_: str | None
    to: str | None
    error: StanzaError | None

    def __init__(
        self,
        iq_type: IQType = "get",
        packet_id: str | None = None,
        from_: str | None = None,
        to: str | None = None,
        error: StanzaError | None = None,
    ) -> None:
        """Initialize an envelope, generating a fresh packet id when none is given.

        :param iq_type: Envelope type.
        :param packet_id: Optional explicit packet id.
        :param from_: Sender address.
        :param to: Recipient address.
        :param error: Optional error payload.
        """
        if packet_id is None:
            packet_id = next_packet_id()
        self.packet_id = packet_id
        self.iq_type = iq_type
        self.from_ = from_
        self.to = to
        self.error = error

    @property
    def namespace(self) -> str | None:
        """Return the namespace of the child payload.

        :returns: Namespace string, or ``None`` for an empty envelope.
        """
        return None

    def _query_to_wire(self) -> dict[str, object] | None:
        return None

    def to_wire(self) -> dict[str, object]:
        """Encode the envelope as a plain dictionary.

        :returns: Wire dictionary.
        """
        envelope: dict[str, object] = {
            "id": self.packet_id,
            "type": self.iq_type,
            "from": self.from_,
            "to": self.to,
        }
        if self.error is not None:
            envelope["error"] = {
                "condition": self.error.condition,
                "type": self.error.error_type,
                "text": self.error.text,
            }
        query: dict[str, object] | None = self._query_to_wire()
        if query is not None:
            envelope["query"] = query
        return envelope

    def __repr__(self) -> str:
        return f"{type(self).__name__}(id={self.packet_id!r}, type={self.iq_type!r}, from={self.from_!r}, to={self.to!r})"


class Privacy(IQ):
    """Privacy snapshot exchanged in both requests and responses."""

    active_name: str | None
    default_name: str | None
    decline_active_list: bool
    decline_default_list: bool
    lists: dict[str, list[PrivacyItem]]

    def __init__(
        self,
        iq_type: IQType = "get",
        packet_id: str | None = None,
        from_: str | None = None,
        to: str | None = None,
        error: StanzaError | None = None,
    ) -> None:
        """Initialize an empty snapshot.

        :param iq_type: Envelope type.
        :param packet_id: Optional explicit packet id.
        :param from_: Sender address.
        :param to: Recipient address.
        :param error: Optional error payload.
        """
        super().__init__(iq_type=iq_type, packet_id=packet_id, from_=from_, to=to, error=error)
        self.active_name = None
        self.default_name = None
        self.decline_active_list = False
        self.decline_default_list = False
        self.lists = {}

    @property
    def namespace(self) -> str | None:
        return PRIVACY_NAMESPACE

    def set_privacy_list(self, list_name: str, items: list[PrivacyItem]) -> None:
        """Associate ``list_name`` with a copy of ``items``.

        :param list_name: Privacy list name.
        :param items: Ordered rules; an empty sequence names the list without content.
        """
        self.lists[list_name] = list(items)

    def get_privacy_list(self, list_name: str) -> list[PrivacyItem] | None:
        """Return the rules carried for ``list_name``.

        :param list_name: Privacy list name.
        :returns: Ordered rules, or ``None`` when the snapshot does not mention the list.
        """
        return self.lists.get(list_name)

    def privacy_list_names(self) -> list[str]:
        """Return the list names carried by this snapshot in wire order.

        :returns: List names.
        """
        return list(self.lists.keys())

    def _query_to_wire(self) -> dict[str, object] | None:
        encoded_lists: list[dict[str, object]] = []
        for list_name, items in self.lists.items():
            encoded_items: list[dict[str, object]] = [
                {
                    "action": "allow" if item.allow is True else "deny",
                    "order": item.order,
                    "type": item.type,
                    "value": item.value,
                }
                for item in items
            ]
            encoded_lists.append({"name": list_name, "items": encoded_items})
        return {
            "xmlns": PRIVACY_NAMESPACE,
            "active": self.active_name,
            "default": self.default_name,
            "decline_active": self.decline_active_list,
            "decline_default": self.decline_default_list,
            "lists": encoded_lists,
        }


def _require_str_field(message: dict[str, object], key: str) -> str:
    """Extract and validate a string field.

    :param message: Wire dictionary.
    :param key: Field name.
    :returns: String field value.
    :raises PrivacyProtocolError: If the field is missing or invalid.
    """
    value: object = message.get(key)
    if isinstance(value, str) is False:
        raise PrivacyProtocolError(f"{key} must be a string")
    return value


def _optional_str_field(message: dict[str, object], key: str) -> str | None:
    """Extract an optional string field.

    :param message: Wire dictionary.
    :param key: Field name.
    :returns: String value or ``None``.
    :raises PrivacyProtocolError: If the field is present with a non-string value.
    """
    value: object = message.get(key)
    if value is None:
        return None
    if isinstance(value, str) is False:
        raise PrivacyProtocolError(f"{key} must be a string or null")
    return value


def _decode_error(value: object) -> StanzaError:
    if isinstance(value, dict) is False:
        raise PrivacyProtocolError("error must be a dict")
    condition: str = _require_str_field(value, "condition")
    return StanzaError(
        condition,
        error_type=_optional_str_field(value, "type"),
        text=_optional_str_field(value, "text"),
    )


def _decode_item(value: object) -> PrivacyItem:
    if isinstance(value, dict) is False:
        raise PrivacyProtocolError("privacy item must be a dict")
    action: str = _require_str_field(value, "action")
    if action not in ("allow", "deny"):
        raise PrivacyProtocolError(f"Unknown privacy item action: {action!r}")
    order: object = value.get("order")
    if isinstance(order, int) is False or isinstance(order, bool) is True:
        raise PrivacyProtocolError("privacy item order must be an integer")
    return PrivacyItem(
        action == "allow",
        order,
        type=_optional_str_field(value, "type"),
        value=_optional_str_field(value, "value"),
    )


def _decode_privacy_query(query: dict[str, object], privacy: Privacy) -> None:
    privacy.active_name = _optional_str_field(query, "active")
    privacy.default_name = _optional_str_field(query, "default")
    privacy.decline_active_list = query.get("decline_active") is True
    privacy.decline_default_list = query.get("decline_default") is True

    lists_obj: object = query.get("lists", [])
    if isinstance(lists_obj, list) is False:
        raise PrivacyProtocolError("lists must be a list")
    for entry in lists_obj:
        if isinstance(entry, dict) is False:
            raise PrivacyProtocolError("privacy list entry must be a dict")
        list_name: str = _require_str_field(entry, "name")
        items_obj: object = entry.get("items", [])
        if isinstance(items_obj, list) is False:
            raise PrivacyProtocolError("privacy list items must be a list")
        privacy.set_privacy_list(list_name, [_decode_item(item) for item in items_obj])


def decode_packet(envelope: object) -> IQ:
    """Decode one wire dictionary into a packet.

    Envelopes carrying a privacy query decode to :class:`Privacy`; all others
    decode to a bare :class:`IQ`.

    :param envelope: Wire dictionary received from the channel.
    :returns: Decoded packet.
    :raises PrivacyProtocolError: If the envelope shape is invalid.
    """
    if isinstance(envelope, dict) is False:
        raise PrivacyProtocolError("Envelope must be a dict")

    packet_id: str = _require_str_field(envelope, "id")
    iq_type: str = _require_str_field(envelope, "type")
    if iq_type not in IQ_TYPES:
        raise PrivacyProtocolError(f"Unknown envelope type: {iq_type!r}")
    from_: str | None = _optional_str_field(envelope, "from")
    to: str | None = _optional_str_field(envelope, "to")

    error: StanzaError | None = None
    error_obj: object = envelope.get("error")
    if error_obj is not None:
        error = _decode_error(error_obj)

    query_obj: object = envelope.get("query")
    if query_obj is None:
        return IQ(iq_type=iq_type, packet_id=packet_id, from_=from_, to=to, error=error)

    if isinstance(query_obj, dict) is False:
        raise PrivacyProtocolError("query must be a dict")
    xmlns: object = query_obj.get("xmlns")
    if xmlns != PRIVACY_NAMESPACE:
        raise PrivacyProtocolError(f"Unsupported query namespace: {xmlns!r}")

    privacy: Privacy = Privacy(iq_type=iq_type, packet_id=packet_id, from_=from_, to=to, error=error)
    _decode_privacy_query(query_obj, privacy)
    return privacy
