"""Tests for the privacy packet model and wire envelope codec."""

import pytest

from privacylists import Privacy
from privacylists import PrivacyItem
from privacylists import PrivacyList
from privacylists import PrivacyProtocolError
from privacylists import StanzaError
from privacylists.filters import PRIVACY_PUSH_FILTER
from privacylists.filters import and_filter
from privacylists.packets import PRIVACY_NAMESPACE
from privacylists.packets import IQ
from privacylists.packets import decode_packet
from privacylists.packets import next_packet_id


def test_packet_ids_are_unique() -> None:
    generated: set[str] = {next_packet_id() for _ in range(1000)}
    assert len(generated) == 1000
    assert IQ().packet_id != IQ().packet_id


def test_snapshot_keeps_list_and_item_order_on_the_wire() -> None:
    """Lists and rules decode in the order they were added."""
    snapshot: Privacy = Privacy(iq_type="result", from_="example.com", to="romeo@example.net/orchard")
    snapshot.active_name = "work"
    snapshot.default_name = "home"
    snapshot.set_privacy_list("work", [PrivacyItem(False, 2), PrivacyItem(True, 1, "jid", "nurse@example.com")])
    snapshot.set_privacy_list("home", [])
    snapshot.set_privacy_list("alpha", [PrivacyItem(True, 5, "group", "family")])

    decoded = decode_packet(snapshot.to_wire())

    assert isinstance(decoded, Privacy) is True
    assert decoded.packet_id == snapshot.packet_id
    assert decoded.privacy_list_names() == ["work", "home", "alpha"]
    assert decoded.get_privacy_list("work") == [PrivacyItem(False, 2), PrivacyItem(True, 1, "jid", "nurse@example.com")]
    assert decoded.get_privacy_list("home") == []
    assert decoded.get_privacy_list("missing") is None
    assert decoded.active_name == "work"
    assert decoded.default_name == "home"


def test_acknowledgment_has_no_query() -> None:
    ack: IQ = IQ(iq_type="result", packet_id="push-1", from_="romeo@example.net/orchard", to="example.com")
    wire: dict[str, object] = ack.to_wire()

    assert "query" not in wire
    decoded: IQ = decode_packet(wire)
    assert isinstance(decoded, Privacy) is False
    assert decoded.namespace is None


def test_error_payload_decodes_unchanged() -> None:
    error: StanzaError = StanzaError("item-not-found", error_type="cancel", text="no such list")
    reply: IQ = IQ(iq_type="error", packet_id="abc-1", error=error)

    decoded: IQ = decode_packet(reply.to_wire())

    assert decoded.error == error
    assert str(decoded.error) == "item-not-found: no such list"


def test_equal_values_hash_alike() -> None:
    """Errors and list views compare and hash by value, so they work as set members."""
    errors: set[StanzaError] = {
        StanzaError("conflict", error_type="cancel"),
        StanzaError("conflict", error_type="cancel"),
        StanzaError("conflict", error_type="cancel", text="in use"),
    }
    views: set[PrivacyList] = {
        PrivacyList(True, False, "home", [PrivacyItem(True, 1)]),
        PrivacyList(True, False, "home", [PrivacyItem(True, 1)]),
        PrivacyList(False, False, "home", [PrivacyItem(True, 1)]),
    }

    assert len(errors) == 2
    assert len(views) == 2


def test_set_privacy_list_copies_items() -> None:
    items: list[PrivacyItem] = [PrivacyItem(True, 1)]
    snapshot: Privacy = Privacy()
    snapshot.set_privacy_list("home", items)
    items.append(PrivacyItem(False, 2))

    assert snapshot.get_privacy_list("home") == [PrivacyItem(True, 1)]


@pytest.mark.parametrize(
    "envelope",
    [
        "text",
        {"type": "get"},
        {"id": "a-1", "type": "subscribe"},
        {"id": "a-1", "type": "get", "from": 5},
        {"id": "a-1", "type": "error", "error": "oops"},
        {"id": "a-1", "type": "set", "query": {"xmlns": "jabber:iq:roster"}},
        {"id": "a-1", "type": "set", "query": {"xmlns": PRIVACY_NAMESPACE, "lists": {"home": []}}},
        {"id": "a-1", "type": "set", "query": {"xmlns": PRIVACY_NAMESPACE, "lists": [{"items": []}]}},
        {
            "id": "a-1",
            "type": "set",
            "query": {"xmlns": PRIVACY_NAMESPACE, "lists": [{"name": "home", "items": [{"action": "maybe", "order": 1}]}]},
        },
        {
            "id": "a-1",
            "type": "set",
            "query": {"xmlns": PRIVACY_NAMESPACE, "lists": [{"name": "home", "items": [{"action": "deny", "order": "1"}]}]},
        },
    ],
)
def test_malformed_envelopes_are_rejected(envelope: object) -> None:
    with pytest.raises(PrivacyProtocolError):
        decode_packet(envelope)


def test_push_filter_matches_only_privacy_sets() -> None:
    """Server pushes match; replies and foreign payloads do not."""
    push: Privacy = Privacy(iq_type="set")
    reply: Privacy = Privacy(iq_type="result")
    bare_set: IQ = IQ(iq_type="set")

    assert PRIVACY_PUSH_FILTER(push) is True
    assert PRIVACY_PUSH_FILTER(reply) is False
    assert PRIVACY_PUSH_FILTER(bare_set) is False


def test_and_filter_requires_filters() -> None:
    with pytest.raises(ValueError):
        and_filter()
