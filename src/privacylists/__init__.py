"""Public package API for privacylists."""

from privacylists.api import connect
from privacylists.api import get_privacy_list_manager
from privacylists.config import get_packet_reply_timeout
from privacylists.config import reset_packet_reply_timeout
from privacylists.config import set_packet_reply_timeout
from privacylists.connection import PacketCollector
from privacylists.connection import PrivacyConnection
from privacylists.errors import ConnectionClosedError
from privacylists.errors import NoResponseError
from privacylists.errors import PrivacyListError
from privacylists.errors import PrivacyProtocolError
from privacylists.errors import ServerRejectedError
from privacylists.listener import PrivacyListListener
from privacylists.manager import PrivacyListManager
from privacylists.packets import Privacy
from privacylists.packets import PrivacyItem
from privacylists.packets import StanzaError
from privacylists.privacy_list import PrivacyList

__all__: list[str] = [
    "connect",
    "get_privacy_list_manager",
    "get_packet_reply_timeout",
    "reset_packet_reply_timeout",
    "set_packet_reply_timeout",
    "PacketCollector",
    "PrivacyConnection",
    "ConnectionClosedError",
    "NoResponseError",
    "PrivacyListError",
    "PrivacyProtocolError",
    "ServerRejectedError",
    "PrivacyListListener",
    "PrivacyListManager",
    "Privacy",
    "PrivacyItem",
    "StanzaError",
    "PrivacyList",
]
