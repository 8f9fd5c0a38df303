"""Client-side connection that routes inbound packets to waiters and listeners."""

import logging
import pickle
import queue
import threading
from collections.abc import Callable
from multiprocessing.connection import Connection

from privacylists.errors import ConnectionClosedError
from privacylists.errors import PrivacyProtocolError
from privacylists.filters import PacketFilter
from privacylists.packets import IQ
from privacylists.packets import decode_packet

logger = logging.getLogger(__name__)

_READ_POLL_INTERVAL_SECONDS: float = 0.05
_READER_JOIN_TIMEOUT_SECONDS: float = 2.0
_COLLECTOR_CAPACITY: int = 5000
_CREATION_LISTENER_LOCK: threading.Lock = threading.Lock()
_CREATION_LISTENERS: list[Callable[["PrivacyConnection"], None]] = []
PacketCallback = Callable[[IQ], None]
CloseCallback = Callable[[BaseException | None], None]


def add_connection_creation_listener(listener: Callable[["PrivacyConnection"], None]) -> None:
    """Register a callback fired once for every connection that starts.

    :param listener: Callback receiving the started connection.
    """
    with _CREATION_LISTENER_LOCK:
        if listener not in _CREATION_LISTENERS:
            _CREATION_LISTENERS.append(listener)


def remove_connection_creation_listener(listener: Callable[["PrivacyConnection"], None]) -> bool:
    """Unregister a connection-creation callback.

    :param listener: Previously registered callback.
    :returns: ``True`` when the callback was registered.
    """
    with _CREATION_LISTENER_LOCK:
        if listener not in _CREATION_LISTENERS:
            return False
        _CREATION_LISTENERS.remove(listener)
        return True


class PacketCollector:
    """One-shot waiter for inbound packets accepted by a filter."""

    _connection: "PrivacyConnection"
    _packet_filter: PacketFilter
    _results: "queue.Queue[IQ]"
    _is_cancelled: bool
    _lock: threading.Lock

    def __init__(self, connection: "PrivacyConnection", packet_filter: PacketFilter) -> None:
        """Initialize a collector. Use :meth:`PrivacyConnection.create_packet_collector`.

        :param connection: Owning connection.
        :param packet_filter: Predicate selecting packets for this collector.
        """
        self._connection = connection
        self._packet_filter = packet_filter
        self._results = queue.Queue(maxsize=_COLLECTOR_CAPACITY)
        self._is_cancelled = False
        self._lock = threading.Lock()

    @property
    def is_cancelled(self) -> bool:
        """Report whether this collector has been cancelled.

        :returns: ``True`` after :meth:`cancel`.
        """
        with self._lock:
            return self._is_cancelled

    def next_result(self, timeout: float | None = None) -> IQ | None:
        """Block until a matching packet arrives or ``timeout`` elapses.

        :param timeout: Seconds to wait; ``None`` waits forever.
        :returns: Next matching packet, or ``None`` on timeout.
        """
        try:
            return self._results.get(timeout=timeout)
        except queue.Empty:
            return None

    def cancel(self) -> None:
        """Stop collecting and unregister from the connection. Safe to call repeatedly."""
        with self._lock:
            if self._is_cancelled is True:
                return
            self._is_cancelled = True
        self._connection._remove_collector(self)

    def _process_packet(self, packet: IQ) -> bool:
        """Offer one inbound packet to this collector.

        :param packet: Decoded inbound packet.
        :returns: ``True`` when the packet was queued.
        """
        if self._packet_filter(packet) is False:
            return False
        with self._lock:
            if self._is_cancelled is True:
                return False
            # Oldest result goes first when the queue is full.
            while True:
                try:
                    self._results.put_nowait(packet)
                    return True
                except queue.Full:
                    try:
                        self._results.get_nowait()
                    except queue.Empty:
                        pass


class _PacketListenerEntry:
    """Standing inbound handler registration."""

    callback: PacketCallback
    packet_filter: PacketFilter

    def __init__(self, callback: PacketCallback, packet_filter: PacketFilter) -> None:
        self.callback = callback
        self.packet_filter = packet_filter


class PrivacyConnection:
    """Own one side of a duplex channel and route its inbound traffic.

    A single reader thread decodes every inbound envelope, hands it to all
    matching collectors and then to all matching packet listeners.
    """

    _channel: Connection
    _user: str
    _service: str | None
    _lock: threading.RLock
    _send_lock: threading.Lock
    _collectors: list[PacketCollector]
    _packet_listeners: list[_PacketListenerEntry]
    _close_listeners: list[CloseCallback]
    _stop_event: threading.Event
    _reader_thread: threading.Thread | None
    _is_started: bool
    _is_closed: bool

    def __init__(self, channel: Connection, user: str, service: str | None = None) -> None:
        """Initialize a connection. Nothing is read or sent until :meth:`start`.

        :param channel: Duplex channel to the server.
        :param user: Full address of the logged-in user.
        :param service: Optional server address used as the default recipient.
        """
        if len(user) == 0:
            raise ValueError("user must be a non-empty address")
        self._channel = channel
        self._user = user
        self._service = service
        self._lock = threading.RLock()
        self._send_lock = threading.Lock()
        self._collectors = []
        self._packet_listeners = []
        self._close_listeners = []
        self._stop_event = threading.Event()
        self._reader_thread = None
        self._is_started = False
        self._is_closed = False

    @property
    def user(self) -> str:
        """Return the address of the logged-in user.

        :returns: User address.
        """
        return self._user

    @property
    def service(self) -> str | None:
        return self._service

    @property
    def is_connected(self) -> bool:
        """Report whether the connection is started and not yet closed.

        :returns: ``True`` while packets can be exchanged.
        """
        with self._lock:
            return self._is_started is True and self._is_closed is False

    @property
    def collector_count(self) -> int:
        """Return the number of live collector registrations.

        :returns: Registered collector count.
        """
        with self._lock:
            return len(self._collectors)

    def start(self) -> None:
        """Announce the connection to creation listeners, then start the reader thread.

        Creation listeners run before any inbound packet is read, so handlers
        they register never miss traffic.
        """
        with self._lock:
            if self._is_closed is True:
                raise ConnectionClosedError("Cannot start a closed connection")
            if self._is_started is True:
                return
            self._is_started = True

        with _CREATION_LISTENER_LOCK:
            creation_listeners: list[Callable[[PrivacyConnection], None]] = list(_CREATION_LISTENERS)
        for listener in creation_listeners:
            listener(self)

        reader_thread: threading.Thread = threading.Thread(
            target=self._read_loop,
            name=f"privacylists-reader-{self._user}",
            daemon=True,
        )
        with self._lock:
            self._reader_thread = reader_thread
        reader_thread.start()
        logger.debug("Connection for %s started", self._user)

    def close(self) -> None:
        """Close the channel and notify close listeners once."""
        self._shutdown(None)

    def send_packet(self, packet: IQ) -> None:
        """Send one packet without waiting for any reply.

        :param packet: Packet to send.
        :raises ConnectionClosedError: If the connection is closed or the channel is broken.
        """
        wire: dict[str, object] = packet.to_wire()
        with self._send_lock:
            if self.is_connected is False:
                raise ConnectionClosedError(f"Connection for {self._user} is not open")
            try:
                self._channel.send(wire)
            except (BrokenPipeError, EOFError, OSError) as exc:
                raise ConnectionClosedError(f"Failed to send packet {packet.packet_id!r}") from exc

    def create_packet_collector(self, packet_filter: PacketFilter) -> PacketCollector:
        """Register a collector for packets accepted by ``packet_filter``.

        The caller must :meth:`PacketCollector.cancel` it on every exit path.

        :param packet_filter: Packet predicate.
        :returns: Registered collector.
        """
        collector: PacketCollector = PacketCollector(self, packet_filter)
        with self._lock:
            self._collectors.append(collector)
        return collector

    def add_packet_listener(self, callback: PacketCallback, packet_filter: PacketFilter) -> None:
        """Invoke ``callback`` on the reader thread for every matching inbound packet.

        :param callback: Packet handler.
        :param packet_filter: Packet predicate.
        """
        with self._lock:
            self._packet_listeners.append(_PacketListenerEntry(callback, packet_filter))

    def remove_packet_listener(self, callback: PacketCallback) -> bool:
        """Remove every registration of ``callback``.

        :param callback: Packet handler.
        :returns: ``True`` when at least one registration was removed.
        """
        with self._lock:
            keep: list[_PacketListenerEntry] = [
                entry for entry in self._packet_listeners if entry.callback != callback
            ]
            removed: bool = len(keep) != len(self._packet_listeners)
            self._packet_listeners = keep
            return removed

    def add_close_listener(self, callback: CloseCallback) -> None:
        """Invoke ``callback`` once when this connection closes.

        The callback receives the exception that broke the channel, or ``None``
        for an orderly close.

        :param callback: Close handler.
        """
        with self._lock:
            self._close_listeners.append(callback)

    def remove_close_listener(self, callback: CloseCallback) -> bool:
        """Remove every registration of ``callback``.

        :param callback: Close handler.
        :returns: ``True`` when at least one registration was removed.
        """
        with self._lock:
            keep: list[CloseCallback] = [listener for listener in self._close_listeners if listener != callback]
            removed: bool = len(keep) != len(self._close_listeners)
            self._close_listeners = keep
            return removed

    def _remove_collector(self, collector: PacketCollector) -> None:
        with self._lock:
            try:
                self._collectors.remove(collector)
            except ValueError:
                pass

    def _read_loop(self) -> None:
        """Decode inbound envelopes until the channel closes."""
        while self._stop_event.is_set() is False:
            frame: bytes
            try:
                has_data: bool = self._channel.poll(_READ_POLL_INTERVAL_SECONDS)
                if has_data is False:
                    continue
                frame = self._channel.recv_bytes()
            except (EOFError, BrokenPipeError, OSError) as exc:
                if self._stop_event.is_set() is True:
                    return
                logger.warning("Channel for %s closed by peer: %r", self._user, exc)
                self._shutdown(exc)
                return

            # An unreadable frame can also raise EOFError; only recv_bytes() signals hang-up.
            envelope: object
            try:
                envelope = pickle.loads(frame)
            except Exception:
                logger.warning("Dropping unreadable frame for %s", self._user, exc_info=True)
                continue

            try:
                packet: IQ = decode_packet(envelope)
            except PrivacyProtocolError:
                logger.warning("Dropping undecodable envelope for %s", self._user, exc_info=True)
                continue
            self._dispatch_packet(packet)

    def _dispatch_packet(self, packet: IQ) -> None:
        """Route one inbound packet to collectors and then to listeners.

        :param packet: Decoded inbound packet.
        """
        with self._lock:
            collectors: list[PacketCollector] = list(self._collectors)
            listeners: list[_PacketListenerEntry] = list(self._packet_listeners)

        delivered: bool = False
        for collector in collectors:
            if collector._process_packet(packet) is True:
                delivered = True

        for entry in listeners:
            if entry.packet_filter(packet) is False:
                continue
            delivered = True
            try:
                entry.callback(packet)
            except Exception:
                logger.exception("Packet listener failed for %r", packet)

        if delivered is False:
            logger.debug("Dropping unmatched packet %r", packet)

    def _shutdown(self, error: BaseException | None) -> None:
        """Close the channel once and fire close listeners.

        :param error: Exception that broke the channel, or ``None``.
        """
        with self._lock:
            if self._is_closed is True:
                return
            self._is_closed = True
            self._stop_event.set()
            reader_thread: threading.Thread | None = self._reader_thread
            close_listeners: list[CloseCallback] = list(self._close_listeners)
            self._close_listeners.clear()

        is_reader: bool = reader_thread is threading.current_thread()
        if reader_thread is not None and is_reader is False:
            reader_thread.join(timeout=_READER_JOIN_TIMEOUT_SECONDS)

        try:
            self._channel.close()
        except OSError:
            pass

        for callback in close_listeners:
            try:
                callback(error)
            except Exception:
                logger.exception("Close listener failed for %s", self._user)
        logger.debug("Connection for %s closed", self._user)

    def __repr__(self) -> str:
        return f"PrivacyConnection(user={self._user!r}, connected={self.is_connected!r})"
