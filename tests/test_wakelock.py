"""Tests for the wake lock (subprocess mocked)."""

import subprocess
from unittest.mock import MagicMock, patch

from smartreceipts.wakelock import NullWakeLock, SystemdWakeLock, create_wake_lock


@patch("smartreceipts.wakelock.shutil.which", return_value=None)
def test_create_without_systemd(mock_which):
    assert isinstance(create_wake_lock(), NullWakeLock)


@patch("smartreceipts.wakelock.shutil.which", return_value="/usr/bin/systemd-inhibit")
def test_create_with_systemd(mock_which):
    assert isinstance(create_wake_lock(), SystemdWakeLock)


@patch("smartreceipts.wakelock.subprocess.Popen")
def test_acquire_and_release(mock_popen):
    proc = MagicMock()
    mock_popen.return_value = proc

    lock = SystemdWakeLock()
    lock.acquire()
    lock.acquire()
    assert mock_popen.call_count == 1
    cmd = mock_popen.call_args.args[0]
    assert cmd[0] == "systemd-inhibit"
    assert "--what=idle:sleep" in cmd

    lock.release()
    proc.terminate.assert_called_once()
    proc.wait.assert_called_once_with(timeout=5)

    # released twice is a no-op
    lock.release()
    proc.terminate.assert_called_once()


@patch("smartreceipts.wakelock.subprocess.Popen")
def test_release_kills_stuck_process(mock_popen):
    proc = MagicMock()
    proc.wait.side_effect = subprocess.TimeoutExpired(cmd="systemd-inhibit", timeout=5)
    mock_popen.return_value = proc

    lock = SystemdWakeLock()
    lock.acquire()
    lock.release()
    proc.kill.assert_called_once()


def test_null_wake_lock():
    lock = NullWakeLock()
    lock.acquire()
    lock.release()
