"""Packet predicates used to route inbound traffic."""

from collections.abc import Callable

from privacylists.packets import PRIVACY_NAMESPACE
from privacylists.packets import IQ
from privacylists.packets import IQType

PacketFilter = Callable[[IQ], bool]


def packet_id_filter(packet_id: str) -> PacketFilter:
    """Match packets carrying exactly ``packet_id``.

    :param packet_id: Correlation id to match.
    :returns: Packet predicate.
    """

    def _matches(packet: IQ) -> bool:
        return packet.packet_id == packet_id

    return _matches


def iq_type_filter(iq_type: IQType) -> PacketFilter:
    """Match packets of one envelope type.

    :param iq_type: Envelope type to match.
    :returns: Packet predicate.
    """

    def _matches(packet: IQ) -> bool:
        return packet.iq_type == iq_type

    return _matches


def namespace_filter(namespace: str) -> PacketFilter:
    """Match packets whose child payload lives in ``namespace``.

    :param namespace: Payload namespace.
    :returns: Packet predicate.
    """

    def _matches(packet: IQ) -> bool:
        return packet.namespace == namespace

    return _matches


def and_filter(*filters: PacketFilter) -> PacketFilter:
    """Match packets accepted by every filter in ``filters``.

    :param filters: Predicates to combine.
    :returns: Packet predicate.
    :raises ValueError: If no filters are given.
    """
    if len(filters) == 0:
        raise ValueError("and_filter requires at least one filter")
    combined: tuple[PacketFilter, ...] = tuple(filters)

    def _matches(packet: IQ) -> bool:
        for packet_filter in combined:
            if packet_filter(packet) is False:
                return False
        return True

    return _matches


PRIVACY_PUSH_FILTER: PacketFilter = and_filter(iq_type_filter("set"), namespace_filter(PRIVACY_NAMESPACE))
