"""User-facing API entrypoints for privacylists."""

from multiprocessing.connection import Connection

from privacylists.connection import PrivacyConnection
from privacylists.manager import PrivacyListManager


def connect(channel: Connection, user: str, service: str | None = None) -> PrivacyConnection:
    """Start a connection over ``channel``; its privacy list manager is created on start.

    :param channel: Duplex channel to the server.
    :param user: Full address of the logged-in user.
    :param service: Optional server address.
    :returns: Started connection.
    """
    connection: PrivacyConnection = PrivacyConnection(channel, user, service=service)
    connection.start()
    return connection


def get_privacy_list_manager(connection: PrivacyConnection) -> PrivacyListManager | None:
    """Return the privacy list manager bound to ``connection``.

    :param connection: Connection to look up.
    :returns: Manager, or ``None`` when the connection is not started or already closed.
    """
    return PrivacyListManager.get_instance_for(connection)
