"""In-process privacy-list server used by the demo script and the tests."""

import logging
import multiprocessing
import threading
from multiprocessing.connection import Connection

from privacylists.api import connect
from privacylists.connection import PrivacyConnection
from privacylists.errors import PrivacyProtocolError
from privacylists.packets import IQ
from privacylists.packets import Privacy
from privacylists.packets import PrivacyItem
from privacylists.packets import StanzaError
from privacylists.packets import decode_packet

logger = logging.getLogger(__name__)

_POLL_INTERVAL_SECONDS: float = 0.05
DEFAULT_SERVICE: str = "example.net"
DEFAULT_USER: str = "romeo@example.net/orchard"


def _error_reply(request: IQ, condition: str, error_type: str, text: str | None = None) -> IQ:
    """Build an error reply correlated with ``request``.

    :param request: Request being rejected.
    :param condition: Defined error condition.
    :param error_type: Error class.
    :param text: Optional description.
    :returns: Error reply.
    """
    return IQ(
        iq_type="error",
        packet_id=request.packet_id,
        to=request.from_,
        error=StanzaError(condition, error_type=error_type, text=text),
    )


class LoopbackPrivacyServer:
    """Serve privacy-list requests arriving on one end of a pipe.

    ``response_delay``, ``drop_requests`` and ``reject_with`` let callers
    simulate slow, silent or failing servers.
    """

    response_delay: float
    drop_requests: bool
    reject_with: StanzaError | None
    push_on_change: bool

    _channel: Connection
    _service: str
    _lock: threading.Condition
    _send_lock: threading.Lock
    _lists: dict[str, list[PrivacyItem]]
    _active_name: str | None
    _default_name: str | None
    _acks: list[IQ]
    _requests: list[IQ]
    _stop_event: threading.Event
    _thread: threading.Thread | None
    _client: str | None

    def __init__(self, channel: Connection, service: str = DEFAULT_SERVICE) -> None:
        """Initialize an idle server.

        :param channel: Server end of the duplex channel.
        :param service: Address the server answers from.
        """
        self.response_delay = 0.0
        self.drop_requests = False
        self.reject_with = None
        self.push_on_change = True
        self._channel = channel
        self._service = service
        self._lock = threading.Condition()
        self._send_lock = threading.Lock()
        self._lists = {}
        self._active_name = None
        self._default_name = None
        self._acks = []
        self._requests = []
        self._stop_event = threading.Event()
        self._thread = None
        self._client = None

    @property
    def acks(self) -> list[IQ]:
        """Return acknowledgments received from the client so far.

        :returns: Acknowledgment packets in arrival order.
        """
        with self._lock:
            return list(self._acks)

    @property
    def requests(self) -> list[IQ]:
        with self._lock:
            return list(self._requests)

    @property
    def active_name(self) -> str | None:
        with self._lock:
            return self._active_name

    @property
    def default_name(self) -> str | None:
        with self._lock:
            return self._default_name

    def stored_lists(self) -> dict[str, list[PrivacyItem]]:
        """Return a copy of every stored list.

        :returns: Mapping of list name to rules.
        """
        with self._lock:
            return {list_name: list(items) for list_name, items in self._lists.items()}

    def seed(
        self,
        lists: dict[str, list[PrivacyItem]],
        active_name: str | None = None,
        default_name: str | None = None,
    ) -> None:
        """Replace server state without notifying the client.

        :param lists: Lists to store.
        :param active_name: Active list name.
        :param default_name: Default list name.
        """
        with self._lock:
            self._lists = {list_name: list(items) for list_name, items in lists.items()}
            self._active_name = active_name
            self._default_name = default_name

    def start(self) -> None:
        """Start serving on a daemon thread."""
        if self._thread is not None:
            return
        self._thread = threading.Thread(target=self._run, name="privacylists-loopback-server", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        """Stop serving and close the server end of the channel."""
        self._stop_event.set()
        thread: threading.Thread | None = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=2.0)
        try:
            self._channel.close()
        except OSError:
            pass

    def push_privacy_list(self, list_name: str, items: list[PrivacyItem], to: str | None = None) -> str:
        """Push an unsolicited list update to the client.

        :param list_name: Privacy list name.
        :param items: Rules to push; empty for a name-only update.
        :param to: Recipient address; defaults to the last client seen.
        :returns: Packet id of the push.
        """
        push: Privacy = Privacy(iq_type="set", from_=self._service, to=to or self._client)
        push.set_privacy_list(list_name, items)
        self.send_packet(push)
        return push.packet_id

    def wait_for_acks(self, count: int, timeout: float = 2.0) -> bool:
        """Block until at least ``count`` acknowledgments have arrived.

        :param count: Number of acknowledgments to wait for.
        :param timeout: Seconds to wait.
        :returns: ``True`` when the count was reached.
        """
        with self._lock:
            return self._lock.wait_for(lambda: len(self._acks) >= count, timeout=timeout)

    def send_packet(self, packet: IQ) -> None:
        with self._send_lock:
            try:
                self._channel.send(packet.to_wire())
            except (BrokenPipeError, EOFError, OSError):
                logger.debug("Client went away before %r could be sent", packet)

    def _run(self) -> None:
        """Serve inbound envelopes until stopped or the client hangs up."""
        while self._stop_event.is_set() is False:
            envelope: object
            try:
                has_data: bool = self._channel.poll(_POLL_INTERVAL_SECONDS)
                if has_data is False:
                    continue
                envelope = self._channel.recv()
            except (EOFError, BrokenPipeError, OSError):
                return

            try:
                packet: IQ = decode_packet(envelope)
            except PrivacyProtocolError:
                logger.warning("Loopback server dropping malformed envelope", exc_info=True)
                continue
            self._handle_packet(packet)

    def _handle_packet(self, packet: IQ) -> None:
        if packet.iq_type in ("result", "error"):
            with self._lock:
                self._acks.append(packet)
                self._lock.notify_all()
            return

        with self._lock:
            self._requests.append(packet)
            if packet.from_ is not None:
                self._client = packet.from_
        if self.drop_requests is True:
            return

        reply: IQ
        changed_list: str | None = None
        if self.reject_with is not None:
            reply = IQ(iq_type="error", packet_id=packet.packet_id, to=packet.from_, error=self.reject_with)
        elif isinstance(packet, Privacy) is False:
            reply = _error_reply(packet, "bad-request", "modify")
        elif packet.iq_type == "get":
            reply = self._handle_get(packet)
        else:
            reply, changed_list = self._handle_set(packet)
        reply.from_ = self._service

        if self.response_delay > 0.0:
            timer: threading.Timer = threading.Timer(self.response_delay, self.send_packet, args=(reply,))
            timer.daemon = True
            timer.start()
        else:
            self.send_packet(reply)

        if changed_list is not None and self.push_on_change is True:
            self.push_privacy_list(changed_list, [], to=packet.from_)

    def _handle_get(self, request: Privacy) -> IQ:
        """Answer a read request.

        :param request: Read request.
        :returns: Reply packet.
        """
        requested_names: list[str] = request.privacy_list_names()
        reply: Privacy = Privacy(iq_type="result", packet_id=request.packet_id, to=request.from_)
        with self._lock:
            if len(requested_names) == 0:
                reply.active_name = self._active_name
                reply.default_name = self._default_name
                for list_name in self._lists:
                    reply.set_privacy_list(list_name, [])
                return reply

            if len(requested_names) > 1:
                return _error_reply(request, "bad-request", "modify", "Only one list can be retrieved at a time")

            list_name: str = requested_names[0]
            items: list[PrivacyItem] | None = self._lists.get(list_name)
            if items is None:
                return _error_reply(request, "item-not-found", "cancel", f"No privacy list named {list_name!r}")
            reply.set_privacy_list(list_name, items)
            return reply

    def _handle_set(self, request: Privacy) -> tuple[IQ, str | None]:
        """Apply a write request.

        :param request: Write request.
        :returns: Tuple of ``(reply, changed_list_name)``.
        """
        result: IQ = IQ(iq_type="result", packet_id=request.packet_id, to=request.from_)
        with self._lock:
            if request.decline_active_list is True:
                self._active_name = None
                return result, None
            if request.active_name is not None:
                if request.active_name not in self._lists:
                    return _error_reply(request, "item-not-found", "cancel"), None
                self._active_name = request.active_name
                return result, None
            if request.decline_default_list is True:
                self._default_name = None
                return result, None
            if request.default_name is not None:
                if request.default_name not in self._lists:
                    return _error_reply(request, "item-not-found", "cancel"), None
                self._default_name = request.default_name
                return result, None

            requested_names: list[str] = request.privacy_list_names()
            if len(requested_names) != 1:
                return _error_reply(request, "bad-request", "modify"), None

            list_name: str = requested_names[0]
            items: list[PrivacyItem] = request.lists[list_name]
            if len(items) > 0:
                self._lists[list_name] = list(items)
                return result, list_name

            if list_name not in self._lists:
                return result, None
            if list_name == self._active_name or list_name == self._default_name:
                return _error_reply(request, "conflict", "cancel", f"Privacy list {list_name!r} is in use"), None
            del self._lists[list_name]
            return result, list_name


def open_loopback_session(
    user: str = DEFAULT_USER,
    service: str = DEFAULT_SERVICE,
) -> tuple[PrivacyConnection, LoopbackPrivacyServer]:
    """Start a loopback server and a connection wired to it.

    :param user: Address of the simulated logged-in user.
    :param service: Address of the simulated server.
    :returns: Tuple of ``(connection, server)``.
    """
    client_channel, server_channel = multiprocessing.Pipe(duplex=True)
    server: LoopbackPrivacyServer = LoopbackPrivacyServer(server_channel, service=service)
    server.start()
    connection: PrivacyConnection = connect(client_channel, user, service=service)
    return connection, server
