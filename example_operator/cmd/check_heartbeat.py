"""
Exec liveness check: exits non-zero unless a running operator has
written its heartbeat file recently
"""
# Standard
from datetime import datetime, timedelta
import argparse

# First Party
import alog

# Local
from .. import config
from ..watch_manager.python_watch_manager.threads.heartbeat import read_heartbeat
from .base import CmdBase

log = alog.use_channel("MAIN")


class CheckHeartbeatCmd(CmdBase):
    """Check that the operator's heartbeat file is fresh"""

    name = "check-heartbeat"

    def add_args(self, parser: argparse.ArgumentParser):
        check_args = parser.add_argument_group("Heartbeat Check")
        check_args.add_argument(
            "--delta",
            "-d",
            required=True,
            type=int,
            help="Oldest heartbeat accepted, in seconds",
        )
        check_args.add_argument(
            "--file",
            "-f",
            default=None,
            help="Heartbeat file to check (default: python_watch_manager.heartbeat_file)",
        )

    def cmd(self, args: argparse.Namespace):
        """Exit with a message unless a readable heartbeat within delta exists"""
        assert args.delta > 0, "--delta must be a positive number of seconds"
        heartbeat_file = args.file or config.python_watch_manager.heartbeat_file
        assert heartbeat_file, "No heartbeat file given or configured"

        try:
            last_beat = read_heartbeat(heartbeat_file)
        except (OSError, ValueError) as err:
            log.error("Cannot read heartbeat file %s: %s", heartbeat_file, err)
            raise SystemExit(f"Heartbeat check failed: {err}") from err

        age = datetime.now() - last_beat
        if age > timedelta(seconds=args.delta):
            log.error("Heartbeat %s is %s old", last_beat, age)
            raise SystemExit(
                f"Heartbeat check failed: last beat at {last_beat} is older than "
                f"{args.delta}s"
            )
        log.debug("Heartbeat %s is fresh", last_beat)
