"""
Tests for passphrase derivation from host characteristics.
"""
import re
import sys

import pytest

from secure_storage.vault import fingerprint
from secure_storage.vault.config import FALLBACK_PASSPHRASE
from secure_storage.vault.fingerprint import (
    FingerprintDeriver,
    HostEnvironment,
    derive_passphrase,
    fold_hash,
)


@pytest.fixture
def environment():
    return HostEnvironment(
        user_agent="Python/3.12.1 (Linux 6.5.0; x86_64)",
        language="en-US",
        screen_width=1920,
        screen_height=1080,
        timezone_offset=-60,
        hostname="workstation",
        hardware_concurrency=8,
    )


class _FakeStdin:
    def __init__(self, tty: bool):
        self._tty = tty

    def isatty(self) -> bool:
        return self._tty


class TestFoldHash:
    """Tests for the multi-round hash."""

    def test_known_value(self):
        # round 0: 97; round 1: 97*31 + 97 + 1337; round 2: 4441*31 + 97 + 2674
        assert fold_hash("a") == 140442

    def test_empty(self):
        assert fold_hash("") == 0

    def test_stays_in_int32(self):
        value = fold_hash("x" * 10_000)
        assert -(2 ** 31) <= value < 2 ** 31


class TestDerivePassphrase:
    """Tests for derive_passphrase."""

    def test_deterministic(self, environment):
        assert derive_passphrase(environment) == derive_passphrase(environment)

    def test_format(self, environment):
        passphrase = derive_passphrase(environment)
        match = re.fullmatch(r"securestore_v1_([0-9a-z]+)_(\d+)", passphrase)
        assert match is not None
        text = environment.fingerprint()
        assert int(match.group(1), 36) == abs(fold_hash(text))
        assert int(match.group(2)) == len(text)

    def test_does_not_expose_fingerprint(self, environment):
        passphrase = derive_passphrase(environment)
        assert "workstation" not in passphrase
        assert "en-US" not in passphrase

    def test_changes_with_display(self, environment):
        resized = environment.model_copy(update={"screen_width": 2560})
        assert derive_passphrase(environment) != derive_passphrase(resized)

    def test_fingerprint_joins_fields(self, environment):
        assert environment.fingerprint() == (
            "Python/3.12.1 (Linux 6.5.0; x86_64)|en-US|1920|1080|-60|workstation|8|0"
        )

    def test_headless_uses_fallback(self, monkeypatch):
        monkeypatch.setattr(sys, "stdin", _FakeStdin(tty=False))
        assert HostEnvironment.probe() is None
        assert derive_passphrase() == FALLBACK_PASSPHRASE

    def test_custom_fallback(self, monkeypatch):
        monkeypatch.setattr(sys, "stdin", None)
        assert derive_passphrase(fallback="custom") == "custom"

    def test_interactive_probe(self, monkeypatch):
        monkeypatch.setattr(sys, "stdin", _FakeStdin(tty=True))
        monkeypatch.setenv("SECURE_STORAGE_DISPLAY", "1280x720")
        env = HostEnvironment.probe()
        assert env is not None
        assert (env.screen_width, env.screen_height) == (1280, 720)
        assert env.hostname
        assert env.hardware_concurrency >= 1
        passphrase = derive_passphrase()
        assert passphrase.startswith(fingerprint.PASSPHRASE_PREFIX)
        assert passphrase == derive_passphrase()

    def test_display_hint_ignored_when_malformed(self, monkeypatch):
        monkeypatch.setenv("SECURE_STORAGE_DISPLAY", "wide")
        assert fingerprint._display_geometry() == (0, 0)


class TestFingerprintDeriver:
    """Tests for the callable deriver."""

    def test_fixed_environment(self, environment):
        deriver = FingerprintDeriver(environment)
        assert deriver() == derive_passphrase(environment)

    def test_fallback_when_headless(self, monkeypatch):
        monkeypatch.setattr(sys, "stdin", _FakeStdin(tty=False))
        assert FingerprintDeriver(fallback="offline")() == "offline"

    def test_tty_change_changes_passphrase(self, monkeypatch):
        deriver = FingerprintDeriver()
        monkeypatch.setattr(sys, "stdin", _FakeStdin(tty=True))
        interactive = deriver()
        monkeypatch.setattr(sys, "stdin", _FakeStdin(tty=False))
        assert deriver() == FALLBACK_PASSPHRASE
        assert deriver() != interactive
