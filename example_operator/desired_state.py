"""
The desired-state builder maps the spec of an Example to the manifests of the
children it owns. Building is pure: the same CR and child config always produce
identical manifests, so repeated reconciles compare equal and never thrash.
"""

# Standard
from typing import List, Optional
import re

# First Party
import aconfig
import alog

# Local
from . import config, constants
from .api import Example
from .exceptions import assert_spec

log = alog.use_channel("BUILD")

# Children are Deployments in the CR's namespace
CHILD_API_VERSION = "apps/v1"
CHILD_KIND = "Deployment"
CONTAINER_NAME = "example"

# CITE: https://kubernetes.io/docs/concepts/overview/working-with-objects/names/#dns-label-names
_DNS_LABEL_REGEX = re.compile(r"^[a-z0-9]([-a-z0-9]*[a-z0-9])?$")
_DNS_LABEL_MAX_LEN = 63


def child_name(cr: Example) -> str:
    """The name of the child Deployment: spec.name, falling back to the CR's own
    name when unset
    """
    return cr.spec.name or cr.metadata.name


def child_labels(cr: Example) -> dict:
    """The labels stamped on every child of the CR"""
    return {
        constants.NAME_LABEL: constants.APP_NAME,
        constants.INSTANCE_LABEL: cr.metadata.name,
        constants.MANAGED_BY_LABEL: constants.MANAGER_NAME,
    }


def child_selector(cr: Example) -> str:
    """Label selector matching the children of the CR"""
    return ",".join(f"{key}={val}" for key, val in sorted(child_labels(cr).items()))


def validate_spec(cr: Example):
    """Raise InvalidSpecError if the desired state cannot be built"""
    size = cr.spec.size
    assert_spec(
        isinstance(size, int) and not isinstance(size, bool),
        f"spec.size must be an integer, got {size!r}",
    )
    assert_spec(size >= 0, f"spec.size must not be negative, got {size}")

    name = child_name(cr)
    assert_spec(
        isinstance(name, str)
        and len(name) <= _DNS_LABEL_MAX_LEN
        and bool(_DNS_LABEL_REGEX.match(name)),
        f"spec.name must be a DNS-1123 label, got {name!r}",
    )


def build_desired_children(
    cr: Example,
    child_config: Optional[aconfig.Config] = None,
) -> List[dict]:
    """Build the desired children of a CR

    Args:
        cr:  Example
            The CR to build children for
        child_config:  Optional[aconfig.Config]
            The shape of the child workload (image, requests, port). Defaults to
            the library config's child section.

    Returns:
        children:  List[dict]
            The desired child manifests sorted by (kind, name)
    """
    validate_spec(cr)
    child_config = child_config or config.child
    labels = child_labels(cr)
    selector = {
        constants.NAME_LABEL: constants.APP_NAME,
        constants.INSTANCE_LABEL: cr.metadata.name,
    }
    deployment = {
        "apiVersion": CHILD_API_VERSION,
        "kind": CHILD_KIND,
        "metadata": {
            "name": child_name(cr),
            "namespace": cr.metadata.namespace,
            "labels": dict(labels),
        },
        "spec": {
            "replicas": cr.spec.size,
            "selector": {"matchLabels": selector},
            "template": {
                "metadata": {"labels": dict(labels)},
                "spec": {
                    "containers": [
                        {
                            "name": CONTAINER_NAME,
                            "image": child_config.image,
                            "ports": [
                                {"containerPort": int(child_config.container_port)}
                            ],
                            "resources": {
                                "requests": {
                                    "cpu": str(child_config.cpu_request),
                                    "memory": str(child_config.memory_request),
                                }
                            },
                        }
                    ]
                },
            },
        },
    }
    log.debug3("Desired %s/%s: %s", CHILD_KIND, child_name(cr), deployment)
    children = [deployment]
    return sorted(children, key=lambda obj: (obj["kind"], obj["metadata"]["name"]))
