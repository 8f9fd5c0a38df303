"""Tests for the process-wide packet reply timeout."""

import pytest

from privacylists import get_packet_reply_timeout
from privacylists import reset_packet_reply_timeout
from privacylists import set_packet_reply_timeout
from privacylists.config import DEFAULT_PACKET_REPLY_TIMEOUT
from privacylists.config import PACKET_REPLY_TIMEOUT_ENV


def test_default_applies_without_override(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv(PACKET_REPLY_TIMEOUT_ENV, raising=False)
    reset_packet_reply_timeout()

    assert get_packet_reply_timeout() == DEFAULT_PACKET_REPLY_TIMEOUT


def test_environment_override_is_read_on_first_use(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv(PACKET_REPLY_TIMEOUT_ENV, "2.5")
    reset_packet_reply_timeout()

    assert get_packet_reply_timeout() == 2.5

    monkeypatch.setenv(PACKET_REPLY_TIMEOUT_ENV, "9")
    assert get_packet_reply_timeout() == 2.5


def test_invalid_environment_override_raises(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv(PACKET_REPLY_TIMEOUT_ENV, "soon")
    reset_packet_reply_timeout()

    with pytest.raises(ValueError):
        get_packet_reply_timeout()


def test_explicit_setting_wins(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv(PACKET_REPLY_TIMEOUT_ENV, "2.5")
    set_packet_reply_timeout(0.75)

    assert get_packet_reply_timeout() == 0.75


@pytest.mark.parametrize("value", [0, -1.0, True, "later", None])
def test_invalid_settings_are_rejected(value: object) -> None:
    with pytest.raises(ValueError):
        set_packet_reply_timeout(value)
