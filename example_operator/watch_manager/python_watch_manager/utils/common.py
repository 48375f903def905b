"""
Shared utilities for the PythonWatchManager
"""
# Standard
import pathlib
import platform

# First Party
import alog

# Local
from .... import config
from ....utils import parse_time_delta  # noqa: F401

log = alog.use_channel("PWMCM")

## Identity Util Functions

# The namespace file mounted into every pod with a service account
NAMESPACE_FILE = "/var/run/secrets/kubernetes.io/serviceaccount/namespace"


def get_operator_namespace() -> str:
    """Get the current namespace from a kubernetes file or config"""
    # Default to in cluster namespace file
    namespace_file = pathlib.Path(NAMESPACE_FILE)
    if namespace_file.is_file():
        return namespace_file.read_text(encoding="utf-8").strip()
    return config.python_watch_manager.lock.namespace


def get_pod_name() -> str:
    """Get the current pod from env variables, config, or hostname"""

    pod_name = config.pod_name
    if not pod_name:
        log.warning("Pod name not detected, falling back to hostname")
        pod_name = platform.node().split(".")[0]

    return pod_name
