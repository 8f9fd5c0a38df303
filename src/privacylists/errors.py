"""Custom error types for privacylists."""

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from privacylists.packets import StanzaError


class PrivacyListError(Exception):
    """Base class for all privacylists errors."""


class PrivacyProtocolError(PrivacyListError):
    """Raised for malformed envelopes or replies of an unexpected shape."""


class ConnectionClosedError(PrivacyListError):
    """Raised when a packet is sent on a closed or broken channel."""


class NoResponseError(PrivacyListError):
    """Raised when no reply arrives before the packet reply timeout."""

    packet_id: str
    timeout: float

    def __init__(self, packet_id: str, timeout: float) -> None:
        """Initialize a missing-reply error.

        :param packet_id: Id of the request that went unanswered.
        :param timeout: Seconds waited before giving up.
        """
        self.packet_id = packet_id
        self.timeout = timeout
        super().__init__(f"No response from server for packet {packet_id!r} within {timeout:g}s")


class ServerRejectedError(PrivacyListError):
    """Raised when the server answers a request with an error."""

    error: "StanzaError"

    def __init__(self, error: "StanzaError") -> None:
        """Initialize a server rejection wrapper.

        :param error: Error payload reported by the server, unchanged.
        """
        self.error = error
        super().__init__(f"Server rejected request: {error}")
