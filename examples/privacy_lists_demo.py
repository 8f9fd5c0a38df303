"""Walk through privacy-list management against an in-process loopback server."""

import argparse
import logging
import sys
import time

from privacylists import PrivacyItem
from privacylists import PrivacyList
from privacylists import PrivacyListListener
from privacylists import get_privacy_list_manager
from privacylists import set_packet_reply_timeout
from privacylists.demo import open_loopback_session


class PrintingListener(PrivacyListListener):
    """Print every push notification."""

    def set_privacy_list(self, list_name: str, items: list[PrivacyItem]) -> None:
        print(f"  push: list={list_name} items={len(items)}")

    def updated_privacy_list(self, list_name: str) -> None:
        print(f"  push: list={list_name} changed")


def _describe(privacy_list: PrivacyList) -> str:
    """Format one result view on a single line.

    :param privacy_list: Result view.
    :returns: Human-readable summary.
    """
    rules: list[str] = []
    for item in privacy_list.items:
        action: str = "allow" if item.allow is True else "deny"
        rules.append(f"{item.order}:{action}:{item.type or '*'}={item.value or '*'}")
    return (
        f"{privacy_list.name} active={privacy_list.is_active_list} "
        + f"default={privacy_list.is_default_list} rules=[{', '.join(rules)}]"
    )


def _parse_args() -> argparse.Namespace:
    """Parse CLI arguments.

    :returns: Parsed arguments.
    """
    parser = argparse.ArgumentParser(description="Manage privacy lists over a loopback session.")
    parser.add_argument("--user", default="romeo@example.net/orchard", help="Simulated user address.")
    parser.add_argument("--timeout", type=float, default=2.0, help="Packet reply timeout in seconds.")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging.")
    return parser.parse_args()


def main() -> int:
    """Run the demo.

    :returns: Process exit code.
    """
    args: argparse.Namespace = _parse_args()
    logging.basicConfig(level=logging.DEBUG if args.verbose is True else logging.WARNING)
    if args.timeout <= 0.0:
        print("timeout must be > 0")
        return 2
    set_packet_reply_timeout(args.timeout)

    connection, server = open_loopback_session(user=args.user)
    try:
        manager = get_privacy_list_manager(connection)
        if manager is None:
            print("no privacy list manager registered for the connection")
            return 1
        manager.add_listener(PrintingListener())

        print("Creating lists")
        manager.create_privacy_list(
            "home",
            [PrivacyItem(True, 1, "group", "friends"), PrivacyItem(False, 2)],
        )
        manager.create_privacy_list("work", [PrivacyItem(False, 1, "jid", "boss@example.net")])
        manager.set_active_list_name("home")
        manager.set_default_list_name("home")
        server.wait_for_acks(2)
        print("")

        print("Lists on the server")
        for privacy_list in manager.get_privacy_lists():
            print(f"  {_describe(privacy_list)}")
        print("")

        active: PrivacyList | None = manager.get_active_list()
        if active is not None:
            print(f"Active list: {_describe(active)} default_and_active={active.is_default_and_active}")

        started: float = time.perf_counter()
        manager.decline_active_list()
        manager.delete_privacy_list("work")
        elapsed: float = time.perf_counter() - started
        server.wait_for_acks(3)
        remaining: list[str] = [privacy_list.name for privacy_list in manager.get_privacy_lists()]
        print(f"After decline and delete: lists={remaining} elapsed={elapsed:.3f}s")
    finally:
        connection.close()
        server.stop()
    return 0


if __name__ == "__main__":
    sys.exit(main())
