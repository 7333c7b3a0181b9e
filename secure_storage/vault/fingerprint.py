"""
Host Fingerprint — Passphrase derivation from ambient environment signals.

The passphrase feeds the KDF and is never persisted: decrypting a stored
entry only needs the current environment and the salt stored alongside it.

Security Note:
    The fingerprint is not a secret. It only avoids storing tokens under a
    passphrase that is trivially visible in storage. When environment
    signals change (another locale, another display, another host) entries
    encrypted before the change can no longer be decrypted. The same holds
    across interactive and headless runs on one host: without a TTY on
    stdin (cron, pipes, services) the fallback passphrase is used, so
    entries written from a terminal are unreadable there, and vice versa.
"""
import os
import sys
import locale
import socket
import logging
import platform
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from .config import FALLBACK_PASSPHRASE

logger = logging.getLogger("secure_storage.vault")

PASSPHRASE_PREFIX = "securestore_v1"
HASH_ROUNDS = 3
_ROUND_SALT = 1337
_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


class HostEnvironment(BaseModel):
    """Environment characteristics folded into the passphrase."""

    user_agent: str
    language: str
    screen_width: int = Field(default=0, ge=0)
    screen_height: int = Field(default=0, ge=0)
    timezone_offset: int = 0  # minutes, UTC minus local time
    hostname: str = ""
    hardware_concurrency: int = Field(default=4, ge=1)
    max_touch_points: int = Field(default=0, ge=0)

    model_config = {"frozen": True}

    def fingerprint(self) -> str:
        """Join the characteristics into the raw fingerprint text."""
        return "|".join(
            str(part) for part in (
                self.user_agent,
                self.language,
                self.screen_width,
                self.screen_height,
                self.timezone_offset,
                self.hostname,
                self.hardware_concurrency,
                self.max_touch_points,
            )
        )

    @classmethod
    def probe(cls) -> Optional["HostEnvironment"]:
        """Collect the characteristics of the running host.

        Returns:
            A HostEnvironment, or None in a headless/non-interactive context.
        """
        if not _is_interactive():
            return None
        offset = datetime.now().astimezone().utcoffset()
        minutes = int(offset.total_seconds() // 60) if offset is not None else 0
        width, height = _display_geometry()
        return cls(
            user_agent=(
                f"Python/{platform.python_version()} "
                f"({platform.system()} {platform.release()}; {platform.machine()})"
            ),
            language=_language(),
            screen_width=width,
            screen_height=height,
            timezone_offset=-minutes,
            hostname=socket.gethostname(),
            hardware_concurrency=os.cpu_count() or 4,
        )


def _is_interactive() -> bool:
    stdin = sys.stdin
    try:
        return stdin is not None and stdin.isatty()
    except (AttributeError, ValueError):
        # closed or replaced stdin
        return False


def _language() -> str:
    try:
        lang = locale.getlocale()[0]
    except ValueError:
        # unknown locale name in the environment
        lang = None
    lang = lang or os.environ.get("LANG", "").split(".")[0]
    return (lang or "en_US").replace("_", "-")


def _display_geometry() -> tuple[int, int]:
    """Read the display size hint exported by the host as ``WIDTHxHEIGHT``."""
    raw = os.environ.get("SECURE_STORAGE_DISPLAY", "")
    width, sep, height = raw.lower().partition("x")
    if sep and width.isdigit() and height.isdigit():
        return int(width), int(height)
    return 0, 0


def _to_int32(value: int) -> int:
    value &= 0xFFFFFFFF
    return value - 0x100000000 if value & 0x80000000 else value


def _base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def fold_hash(text: str, rounds: int = HASH_ROUNDS) -> int:
    """Multi-round 32-bit shift/add hash; cheap and non-cryptographic."""
    h = 0
    for rnd in range(rounds):
        for char in text:
            h = _to_int32((h << 5) - h + ord(char) + rnd * _ROUND_SALT)
    return h


def derive_passphrase(
    environment: Optional[HostEnvironment] = None,
    fallback: str = FALLBACK_PASSPHRASE,
) -> str:
    """Derive the KDF passphrase from host environment characteristics.

    Args:
        environment: Characteristics to use. Probed from the host if omitted.
        fallback: Constant returned when no environment is available.

    Returns:
        Deterministic passphrase string.
    """
    env = environment if environment is not None else HostEnvironment.probe()
    if env is None:
        logger.debug("No host environment available, using fallback passphrase")
        return fallback
    text = env.fingerprint()
    return f"{PASSPHRASE_PREFIX}_{_base36(abs(fold_hash(text)))}_{len(text)}"


class FingerprintDeriver:
    """Callable passphrase source bound to a fixed or probed environment.

    With no explicit environment the host is probed on every call, so the
    passphrase always reflects the current environment.
    """

    def __init__(
        self,
        environment: Optional[HostEnvironment] = None,
        fallback: str = FALLBACK_PASSPHRASE,
    ):
        self._environment = environment
        self._fallback = fallback

    def __call__(self) -> str:
        return derive_passphrase(self._environment, self._fallback)
