"""Demo modules for showcasing privacylists behavior."""

from privacylists.demo.loopback_server import LoopbackPrivacyServer
from privacylists.demo.loopback_server import open_loopback_session

__all__: list[str] = ["LoopbackPrivacyServer", "open_loopback_session"]
