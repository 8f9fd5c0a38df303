"""Shared fixtures for privacylists tests."""

from collections.abc import Iterator

import pytest

from privacylists import PrivacyConnection
from privacylists import reset_packet_reply_timeout
from privacylists import set_packet_reply_timeout
from privacylists.demo import LoopbackPrivacyServer
from privacylists.demo import open_loopback_session

TEST_REPLY_TIMEOUT_SECONDS: float = 1.0


@pytest.fixture(autouse=True)
def _short_reply_timeout() -> Iterator[None]:
    """Keep request timeouts short and restore the process-wide setting afterwards.

    :yields: Control to the active test.
    """
    set_packet_reply_timeout(TEST_REPLY_TIMEOUT_SECONDS)
    yield
    reset_packet_reply_timeout()


@pytest.fixture
def loopback_session() -> Iterator[tuple[PrivacyConnection, LoopbackPrivacyServer]]:
    """Provide a started connection wired to a running loopback server.

    :yields: Tuple of ``(connection, server)``.
    """
    connection, server = open_loopback_session()
    try:
        yield connection, server
    finally:
        connection.close()
        server.stop()
