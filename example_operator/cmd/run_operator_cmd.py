"""
This is the main entrypoint command for running the operator
"""
# Standard
from typing import List, Optional
import argparse
import os
import signal

# Third Party
import yaml

# First Party
import alog

# Local
from .. import config, constants
from ..api import build_registry
from ..controller import ExampleController
from ..health import HealthServer
from ..store_client import DryRunStoreClient, StoreClientBase
from ..watch_manager import PythonWatchManager, WatchManagerBase
from .base import CmdBase

log = alog.use_channel("MAIN")


class RunOperatorCmd(CmdBase):
    """Run the operator (the default command)"""

    name = "run"

    ## Interface ##

    def add_args(self, parser: argparse.ArgumentParser):
        runtime_args = parser.add_argument_group("Runtime Configuration")
        runtime_args.add_argument(
            "--cr",
            "-c",
            default=None,
            help="(dry run) A CR manifest yaml to apply directly ",
        )
        runtime_args.add_argument(
            "--resource_dir",
            "-r",
            default=None,
            help="(dry run) Path to a directory of yaml files that should exist in the cluster",
        )

    def cmd(self, args: argparse.Namespace):
        # Validate args
        assert args.cr is None or (
            config.dry_run and os.path.isfile(args.cr)
        ), "Can only specify --cr with dry run and it must point to a valid file"
        assert args.resource_dir is None or (
            config.dry_run and os.path.isdir(args.resource_dir)
        ), "Can only specify --resource_dir with dry run and it must point to a valid directory"

        # Parse pre-populated resources if needed
        resources = self._parse_resource_dir(args.resource_dir)

        # Create the watch manager
        store_client = self._setup_store_client(resources)
        manager = PythonWatchManager(ExampleController, store_client=store_client)

        # Register the signal handler to stop the watches
        def do_stop(*_, **__):  # pragma: no cover
            WatchManagerBase.stop_all()

        signal.signal(signal.SIGINT, do_stop)
        signal.signal(signal.SIGTERM, do_stop)

        # Serve the health checks and metrics
        health_server = None
        if config.server.enabled:
            health_server = HealthServer(
                liveness_check=WatchManagerBase.all_alive,
                readiness_check=WatchManagerBase.all_ready,
            )
            health_server.start()

        # Run the watch manager
        log.info("Starting Watches")
        if not manager.watch():
            log.warning("Failed to start %s", manager)
            return

        # If given, apply the CR directly
        if args.cr:
            log.info("Applying CR [%s]", args.cr)
            with open(args.cr, encoding="utf-8") as handle:
                cr_manifest = yaml.safe_load(handle)
                cr_manifest.setdefault("metadata", {}).setdefault(
                    "namespace", constants.DEFAULT_NAMESPACE
                )
                log.debug3(cr_manifest)
                store_client.create(cr_manifest)

        manager.wait()
        if health_server:
            health_server.stop()

        # All done!
        log.info("SHUTTING DOWN")

    ## Impl ##

    @staticmethod
    def _parse_resource_dir(resource_dir: Optional[str]) -> List[dict]:
        """If given, this will parse all yaml files found in the given directory"""
        all_resources = []
        if resource_dir is not None:
            for fname in sorted(os.listdir(resource_dir)):
                if fname.endswith(".yaml") or fname.endswith(".yml"):
                    resource_path = os.path.join(resource_dir, fname)
                    log.debug3("Reading resource file [%s]", resource_path)
                    with open(resource_path, encoding="utf-8") as handle:
                        all_resources.extend(
                            resource
                            for resource in yaml.safe_load_all(handle)
                            if resource
                        )
        return all_resources

    @staticmethod
    def _setup_store_client(resources: List[dict]) -> Optional[StoreClientBase]:
        """In dry run mode, build the in-memory store preloaded with the given
        resources. Otherwise the watch manager builds the cluster client.
        """
        if not config.dry_run:
            log.info("Running against the cluster")
            return None
        log.info("Running DRY RUN")
        return DryRunStoreClient(resources=resources, registry=build_registry())
