"""Observer interface for server-pushed privacy-list changes."""

from privacylists.packets import PrivacyItem


class PrivacyListListener:
    """Receive privacy-list push notifications.

    Callbacks run on the connection's reader thread; keep them short and do
    not issue blocking privacy requests from inside them.
    """

    def set_privacy_list(self, list_name: str, items: list[PrivacyItem]) -> None:
        """Handle a list that was created or replaced with ``items``.

        :param list_name: Privacy list name.
        :param items: Complete ordered rules of the list.
        """

    def updated_privacy_list(self, list_name: str) -> None:
        """Handle a list that changed without its rules being pushed.

        :param list_name: Privacy list name.
        """
