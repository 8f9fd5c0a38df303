"""Process-wide settings shared by every privacy-list request."""

import os
import threading

PACKET_REPLY_TIMEOUT_ENV: str = "PRIVACYLISTS_PACKET_REPLY_TIMEOUT"
DEFAULT_PACKET_REPLY_TIMEOUT: float = 5.0
_CONFIG_LOCK: threading.Lock = threading.Lock()
_packet_reply_timeout: float | None = None


def _validate_timeout(value: object) -> float:
    """Validate one reply timeout value.

    :param value: Candidate timeout in seconds.
    :returns: Normalized timeout.
    :raises ValueError: If the value is not a positive number.
    """
    if isinstance(value, bool) is True:
        raise ValueError("packet reply timeout must be a number of seconds")
    try:
        seconds: float = float(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"packet reply timeout must be a number of seconds, got {value!r}") from exc
    if seconds <= 0.0:
        raise ValueError(f"packet reply timeout must be positive, got {seconds!r}")
    return seconds


def get_packet_reply_timeout() -> float:
    """Return the number of seconds a request waits for its reply.

    The first call reads ``PRIVACYLISTS_PACKET_REPLY_TIMEOUT`` when set.

    :returns: Timeout in seconds.
    :raises ValueError: If the environment override is invalid.
    """
    global _packet_reply_timeout
    with _CONFIG_LOCK:
        if _packet_reply_timeout is None:
            raw: str | None = os.environ.get(PACKET_REPLY_TIMEOUT_ENV)
            if raw is None:
                _packet_reply_timeout = DEFAULT_PACKET_REPLY_TIMEOUT
            else:
                _packet_reply_timeout = _validate_timeout(raw)
        return _packet_reply_timeout


def set_packet_reply_timeout(seconds: float) -> None:
    """Set the reply timeout used by all subsequent requests.

    :param seconds: Timeout in seconds.
    :raises ValueError: If ``seconds`` is not positive.
    """
    global _packet_reply_timeout
    validated: float = _validate_timeout(seconds)
    with _CONFIG_LOCK:
        _packet_reply_timeout = validated


def reset_packet_reply_timeout() -> None:
    """Forget any override so the next read falls back to the environment or default."""
    global _packet_reply_timeout
    with _CONFIG_LOCK:
        _packet_reply_timeout = None
