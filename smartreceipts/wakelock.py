"""Keep the machine awake while receipts are being processed."""

from __future__ import annotations

import logging
import shutil
import subprocess
from abc import ABC, abstractmethod

logger = logging.getLogger(__name__)


class WakeLock(ABC):
    @abstractmethod
    def acquire(self) -> None:
        ...

    @abstractmethod
    def release(self) -> None:
        ...


class NullWakeLock(WakeLock):
    """Does nothing. Used where no inhibitor is available."""

    def acquire(self) -> None:
        pass

    def release(self) -> None:
        pass


class SystemdWakeLock(WakeLock):
    """Blocks idle sleep by holding a ``systemd-inhibit`` child process."""

    def __init__(self, reason: str = "Processing receipts") -> None:
        self._reason = reason
        self._proc: subprocess.Popen | None = None

    def acquire(self) -> None:
        if self._proc is not None:
            return
        self._proc = subprocess.Popen(
            [
                "systemd-inhibit",
                "--what=idle:sleep",
                "--who=smartreceipts",
                f"--why={self._reason}",
                "sleep",
                "infinity",
            ],
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
        )

    def release(self) -> None:
        if self._proc is None:
            return
        self._proc.terminate()
        try:
            self._proc.wait(timeout=5)
        except subprocess.TimeoutExpired:
            self._proc.kill()
        self._proc = None


def create_wake_lock() -> WakeLock:
    """Return a systemd inhibitor when available, else a no-op lock."""
    if shutil.which("systemd-inhibit") is None:
        logger.debug("systemd-inhibit not found, wake lock disabled")
        return NullWakeLock()
    return SystemdWakeLock()
