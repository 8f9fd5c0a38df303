"""Per-connection manager for server-side privacy lists."""

import logging
import threading

from privacylists.config import get_packet_reply_timeout
from privacylists.connection import PacketCollector
from privacylists.connection import PrivacyConnection
from privacylists.connection import add_connection_creation_listener
from privacylists.errors import NoResponseError
from privacylists.errors import PrivacyProtocolError
from privacylists.errors import ServerRejectedError
from privacylists.filters import PRIVACY_PUSH_FILTER
from privacylists.filters import packet_id_filter
from privacylists.listener import PrivacyListListener
from privacylists.packets import IQ
from privacylists.packets import IQType
from privacylists.packets import Privacy
from privacylists.packets import PrivacyItem
from privacylists.privacy_list import PrivacyList

logger = logging.getLogger(__name__)

_INSTANCES_LOCK: threading.RLock = threading.RLock()
_INSTANCES_BY_CONNECTION: dict[PrivacyConnection, "PrivacyListManager"] = {}


def _require_list_name(list_name: str) -> None:
    """Validate a caller-supplied list name.

    :param list_name: Candidate list name.
    :raises ValueError: If the name is empty.
    """
    if isinstance(list_name, str) is False or len(list_name) == 0:
        raise ValueError("list_name must be a non-empty string")


class PrivacyListManager:
    """Retrieve, edit, activate and observe the privacy lists of one connection.

    One manager exists per started connection. It is created when the
    connection starts and unregistered when the connection closes; nothing is
    sent to the server until a method is called.
    """

    _connection: PrivacyConnection
    _listeners: list[PrivacyListListener]
    _listeners_lock: threading.RLock

    def __init__(self, connection: PrivacyConnection) -> None:
        """Create and register the manager for ``connection``.

        :param connection: Started connection this manager is bound to.
        """
        self._connection = connection
        self._listeners = []
        self._listeners_lock = threading.RLock()

        with _INSTANCES_LOCK:
            existing: PrivacyListManager | None = _INSTANCES_BY_CONNECTION.get(connection)
            if existing is not None:
                logger.warning("Replacing privacy list manager already registered for %r", connection)
                existing._detach()
            _INSTANCES_BY_CONNECTION[connection] = self

        connection.add_close_listener(self._on_connection_closed)
        connection.add_packet_listener(self._handle_privacy_push, PRIVACY_PUSH_FILTER)

    @staticmethod
    def get_instance_for(connection: PrivacyConnection) -> "PrivacyListManager | None":
        """Return the manager registered for ``connection``.

        :param connection: Connection to look up.
        :returns: Registered manager, or ``None`` when the connection is not live.
        """
        with _INSTANCES_LOCK:
            return _INSTANCES_BY_CONNECTION.get(connection)

    @property
    def connection(self) -> PrivacyConnection:
        return self._connection

    def _on_connection_closed(self, error: BaseException | None) -> None:
        """Unregister this manager when its connection closes.

        :param error: Exception that broke the connection, or ``None``.
        """
        with _INSTANCES_LOCK:
            current: PrivacyListManager | None = _INSTANCES_BY_CONNECTION.get(self._connection)
            if current is self:
                _INSTANCES_BY_CONNECTION.pop(self._connection, None)
        logger.debug("Privacy list manager for %r unregistered (error=%r)", self._connection, error)

    def _detach(self) -> None:
        """Stop handling pushes and close events for this manager's connection."""
        self._connection.remove_packet_listener(self._handle_privacy_push)
        self._connection.remove_close_listener(self._on_connection_closed)

    def _handle_privacy_push(self, packet: IQ) -> None:
        """Fan a server push out to listeners and acknowledge it.

        :param packet: Inbound ``set`` packet in the privacy namespace.
        """
        if packet.error is not None or isinstance(packet, Privacy) is False:
            return

        with self._listeners_lock:
            listeners: list[PrivacyListListener] = list(self._listeners)
            for listener in listeners:
                for list_name, items in packet.lists.items():
                    try:
                        if len(items) == 0:
                            listener.updated_privacy_list(list_name)
                        else:
                            listener.set_privacy_list(list_name, list(items))
                    except Exception:
                        logger.exception("Privacy list listener %r failed for %r", listener, list_name)

        ack: IQ = IQ(
            iq_type="result",
            packet_id=packet.packet_id,
            from_=self._connection.user,
            to=packet.from_,
        )
        self._connection.send_packet(ack)
        logger.debug("Acknowledged privacy push %s carrying %d list(s)", packet.packet_id, len(packet.lists))

    def _send_request(self, request: Privacy, iq_type: IQType) -> IQ:
        """Send ``request`` and block until its correlated reply arrives.

        :param request: Snapshot to send.
        :param iq_type: ``get`` or ``set``.
        :returns: Reply packet.
        :raises NoResponseError: If no reply arrives before the reply timeout.
        :raises ServerRejectedError: If the reply carries an error.
        """
        request.iq_type = iq_type
        request.from_ = self._connection.user
        timeout: float = get_packet_reply_timeout()

        # Register before sending so a fast reply cannot be missed.
        collector: PacketCollector = self._connection.create_packet_collector(packet_id_filter(request.packet_id))
        try:
            self._connection.send_packet(request)
            logger.debug("Sent privacy %s request %s", iq_type, request.packet_id)
            answer: IQ | None = collector.next_result(timeout)
        finally:
            collector.cancel()

        if answer is None:
            logger.debug("Privacy request %s timed out after %ss", request.packet_id, timeout)
            raise NoResponseError(request.packet_id, timeout)
        if answer.error is not None:
            raise ServerRejectedError(answer.error)
        return answer

    def _get_request(self, request: Privacy) -> Privacy:
        """Send a read request and return the snapshot it answers with.

        :param request: Snapshot describing what to read.
        :returns: Reply snapshot.
        :raises PrivacyProtocolError: If the reply carries no privacy payload.
        """
        answer: IQ = self._send_request(request, "get")
        if isinstance(answer, Privacy) is False:
            raise PrivacyProtocolError(f"Reply to {request.packet_id!r} carries no privacy payload")
        return answer

    def _set_request(self, request: Privacy) -> IQ:
        return self._send_request(request, "set")

    def _get_privacy_with_list_names(self) -> Privacy:
        """Fetch the list names plus the active and default names.

        :returns: Snapshot whose lists carry no rules.
        """
        return self._get_request(Privacy())

    def _get_privacy_list_items(self, list_name: str) -> list[PrivacyItem]:
        """Fetch the rules of one list.

        :param list_name: Privacy list name.
        :returns: Ordered rules.
        """
        request: Privacy = Privacy()
        request.set_privacy_list(list_name, [])
        answer: Privacy = self._get_request(request)
        items: list[PrivacyItem] | None = answer.get_privacy_list(list_name)
        if items is None:
            return []
        return items

    def get_active_list(self) -> PrivacyList | None:
        """Return the active privacy list of this session.

        :returns: Active list view, or ``None`` when no list is active.
        """
        privacy_answer: Privacy = self._get_privacy_with_list_names()
        list_name: str | None = privacy_answer.active_name
        if list_name is None:
            return None
        is_default_and_active: bool = (
            privacy_answer.default_name is not None and privacy_answer.default_name == list_name
        )
        return PrivacyList(True, is_default_and_active, list_name, self._get_privacy_list_items(list_name))

    def get_default_list(self) -> PrivacyList | None:
        """Return the default privacy list of the account.

        :returns: Default list view, or ``None`` when no default is set.
        """
        privacy_answer: Privacy = self._get_privacy_with_list_names()
        list_name: str | None = privacy_answer.default_name
        if list_name is None:
            return None
        is_default_and_active: bool = (
            privacy_answer.active_name is not None and privacy_answer.active_name == list_name
        )
        return PrivacyList(is_default_and_active, True, list_name, self._get_privacy_list_items(list_name))

    def get_privacy_list(self, list_name: str) -> PrivacyList:
        """Return one privacy list by name.

        The view does not report active/default flags; both are ``False``.

        :param list_name: Privacy list name.
        :returns: List view.
        """
        _require_list_name(list_name)
        return PrivacyList(False, False, list_name, self._get_privacy_list_items(list_name))

    def get_privacy_lists(self) -> list[PrivacyList]:
        """Return every privacy list with its rules.

        Costs one round trip for the names plus one per list.

        :returns: List views in server order.
        """
        privacy_answer: Privacy = self._get_privacy_with_list_names()
        privacy_lists: list[PrivacyList] = []
        for list_name in privacy_answer.privacy_list_names():
            is_active_list: bool = list_name == privacy_answer.active_name
            is_default_list: bool = list_name == privacy_answer.default_name
            items: list[PrivacyItem] = self._get_privacy_list_items(list_name)
            privacy_lists.append(PrivacyList(is_active_list, is_default_list, list_name, items))
        return privacy_lists

    def set_active_list_name(self, list_name: str) -> None:
        """Make ``list_name`` the active list of this session.

        :param list_name: Privacy list name.
        """
        _require_list_name(list_name)
        request: Privacy = Privacy()
        request.active_name = list_name
        self._set_request(request)

    def decline_active_list(self) -> None:
        """Stop using any active list in this session."""
        request: Privacy = Privacy()
        request.decline_active_list = True
        self._set_request(request)

    def set_default_list_name(self, list_name: str) -> None:
        """Make ``list_name`` the default list of the account.

        :param list_name: Privacy list name.
        """
        _require_list_name(list_name)
        request: Privacy = Privacy()
        request.default_name = list_name
        self._set_request(request)

    def decline_default_list(self) -> None:
        """Stop using any default list."""
        request: Privacy = Privacy()
        request.decline_default_list = True
        self._set_request(request)

    def create_privacy_list(self, list_name: str, items: list[PrivacyItem]) -> None:
        """Create a new list on the server.

        :param list_name: Privacy list name.
        :param items: Complete ordered rules.
        """
        self.update_privacy_list(list_name, items)

    def update_privacy_list(self, list_name: str, items: list[PrivacyItem]) -> None:
        """Create or replace a list on the server.

        ``items`` must hold every rule of the list, not the changes. An empty
        ``items`` removes the list, the same as :meth:`delete_privacy_list`.

        :param list_name: Privacy list name.
        :param items: Complete ordered rules.
        """
        _require_list_name(list_name)
        if len(items) == 0:
            logger.debug("Updating privacy list %r with no rules deletes it", list_name)
        request: Privacy = Privacy()
        request.set_privacy_list(list_name, items)
        self._set_request(request)

    def delete_privacy_list(self, list_name: str) -> None:
        """Remove a list from the server.

        :param list_name: Privacy list name.
        """
        _require_list_name(list_name)
        request: Privacy = Privacy()
        request.set_privacy_list(list_name, [])
        self._set_request(request)

    def add_listener(self, listener: PrivacyListListener) -> None:
        """Register ``listener`` for push notifications.

        A registration racing with a dispatch waits until that dispatch ends.

        :param listener: Observer to notify.
        """
        with self._listeners_lock:
            self._listeners.append(listener)


def _on_connection_created(connection: PrivacyConnection) -> None:
    """Create the manager for every connection as soon as it starts.

    :param connection: Newly started connection.
    """
    PrivacyListManager(connection)


add_connection_creation_listener(_on_connection_created)
