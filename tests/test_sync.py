import shlex
import sys

import pytest

from offboard_toolkit.config import SyncConfig
from offboard_toolkit.sync import run_sync_command


def test_no_command_configured():
    assert run_sync_command(SyncConfig()) is False


def test_successful_command():
    command = f"{shlex.quote(sys.executable)} -c pass"

    assert run_sync_command(SyncConfig(command=command)) is True


def test_failing_command():
    command = f"{shlex.quote(sys.executable)} -c \"raise SystemExit(3)\""

    with pytest.raises(RuntimeError, match="exit code 3"):
        run_sync_command(SyncConfig(command=command))


def test_missing_executable():
    with pytest.raises(RuntimeError, match="not found"):
        run_sync_command(SyncConfig(command="definitely-not-a-sync-tool --now"))
