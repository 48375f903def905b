"""
Tests for the CheckHeartbeatCmd
"""

# Standard
from datetime import datetime, timedelta
import argparse

# Third Party
import pytest

# Local
from example_operator.cmd import CheckHeartbeatCmd
from example_operator.test_helpers.helpers import library_config
from example_operator.watch_manager.python_watch_manager.threads.heartbeat import (
    write_heartbeat,
)


def parse_args(*argv):
    parser = argparse.ArgumentParser()
    subparsers = parser.add_subparsers(dest="command")
    CheckHeartbeatCmd().add_subparser(subparsers)
    return parser.parse_args(["check-heartbeat", *argv])


def beat(path, age):
    write_heartbeat(str(path), datetime.now() - age)


def test_check_heartbeat_fresh(tmp_path):
    heartbeat = tmp_path / "heartbeat.txt"
    beat(heartbeat, timedelta(seconds=2))
    args = parse_args("-d", "30", "-f", str(heartbeat))
    assert args.func.__func__ is CheckHeartbeatCmd.cmd
    CheckHeartbeatCmd().cmd(args)


def test_check_heartbeat_stale(tmp_path):
    heartbeat = tmp_path / "heartbeat.txt"
    beat(heartbeat, timedelta(seconds=60))
    with pytest.raises(SystemExit) as exc_info:
        CheckHeartbeatCmd().cmd(parse_args("-d", "30", "-f", str(heartbeat)))
    assert "older than 30s" in str(exc_info.value.code)


def test_check_heartbeat_missing(tmp_path):
    with pytest.raises(SystemExit) as exc_info:
        CheckHeartbeatCmd().cmd(
            parse_args("-d", "30", "-f", str(tmp_path / "missing.txt"))
        )
    assert isinstance(exc_info.value.__cause__, FileNotFoundError)


def test_check_heartbeat_garbage(tmp_path):
    """A file that does not hold a heartbeat fails the check"""
    heartbeat = tmp_path / "heartbeat.txt"
    heartbeat.write_text("yesterday", encoding="utf-8")
    with pytest.raises(SystemExit) as exc_info:
        CheckHeartbeatCmd().cmd(parse_args("-d", "30", "-f", str(heartbeat)))
    assert isinstance(exc_info.value.__cause__, ValueError)


def test_check_heartbeat_config_file(tmp_path):
    """The configured heartbeat file is used when none is given"""
    heartbeat = tmp_path / "heartbeat.txt"
    beat(heartbeat, timedelta(seconds=2))
    args = parse_args("-d", "30")
    assert args.file is None
    with library_config(python_watch_manager={"heartbeat_file": str(heartbeat)}):
        CheckHeartbeatCmd().cmd(args)


def test_check_heartbeat_no_file_configured():
    with library_config(python_watch_manager={"heartbeat_file": ""}):
        with pytest.raises(AssertionError):
            CheckHeartbeatCmd().cmd(parse_args("-d", "30"))


def test_check_heartbeat_bad_delta(tmp_path):
    with pytest.raises(AssertionError):
        CheckHeartbeatCmd().cmd(parse_args("-d", "0", "-f", str(tmp_path / "x")))
