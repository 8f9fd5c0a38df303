"""Read-only result view of one privacy list."""

from privacylists.packets import PrivacyItem


class PrivacyList:
    """A named privacy list together with its active/default flags.

    Views are computed from a fresh server snapshot on every query and are
    never updated afterwards.
    """

    _name: str
    _items: tuple[PrivacyItem, ...]
    _is_active_list: bool
    _is_default_list: bool

    def __init__(self, is_active_list: bool, is_default_list: bool, name: str, items: list[PrivacyItem]) -> None:
        """Initialize a result view.

        :param is_active_list: Whether the list is the session's active list.
        :param is_default_list: Whether the list is the account's default list.
        :param name: List name.
        :param items: Ordered rules.
        """
        self._name = name
        self._items = tuple(items)
        self._is_active_list = is_active_list
        self._is_default_list = is_default_list

    @property
    def name(self) -> str:
        return self._name

    @property
    def items(self) -> list[PrivacyItem]:
        """Return a copy of the ordered rules.

        :returns: Ordered rules.
        """
        return list(self._items)

    @property
    def is_active_list(self) -> bool:
        return self._is_active_list

    @property
    def is_default_list(self) -> bool:
        return self._is_default_list

    @property
    def is_default_and_active(self) -> bool:
        """Report whether the list is both active and default.

        :returns: ``True`` when both flags are set.
        """
        return self._is_active_list is True and self._is_default_list is True

    def __eq__(self, other: object) -> bool:
        if isinstance(other, PrivacyList) is False:
            return NotImplemented
        return (
            self._name == other._name
            and self._items == other._items
            and self._is_active_list == other._is_active_list
            and self._is_default_list == other._is_default_list
        )

    def __hash__(self) -> int:
        return hash((self._name, self._items, self._is_active_list, self._is_default_list))

    def __repr__(self) -> str:
        return (
            f"PrivacyList(name={self._name!r}, active={self._is_active_list!r}, "
            + f"default={self._is_default_list!r}, items={list(self._items)!r})"
        )
