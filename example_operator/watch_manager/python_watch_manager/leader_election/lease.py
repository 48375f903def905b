"""Implementation of the Leader-with-Lease LeaderElection"""
# Standard
from datetime import datetime, timedelta, timezone

# Third Party
from dateutil.parser import parse

# First Party
import alog

# Local
from .... import config
from ....exceptions import ConflictError, assert_config
from ..utils import get_operator_namespace, get_pod_name, parse_time_delta
from .base import ThreadedLeaderManagerBase

log = alog.use_channel("LDRLS")

LEASE_API_VERSION = "coordination.k8s.io/v1"
LEASE_KIND = "Lease"
LEASE_TIME_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"


class LeaderWithLeaseManager(ThreadedLeaderManagerBase):
    """
    LeaderWithLeaseManager Class implements the "leader-with-lease" lock type.
    This lock holds a coordination.k8s.io Lease naming the operator pod as the
    holder and constantly renews it. Another replica takes the lease over once
    renewTime + leaseDurationSeconds has passed.
    """

    def __init__(self, store_client):
        """
        Initialize class with lock_name, current namespace, and pod information
        """
        super().__init__(store_client)

        # Gather lock_name, namespace and pod manifest
        self.lock_name = (
            config.operator_name
            if config.operator_name
            else config.python_watch_manager.lock.name
        )
        self.namespace = get_operator_namespace()
        self.lock_identity = get_pod_name()
        self.lease_duration = parse_time_delta(config.python_watch_manager.lock.duration)
        assert_config(self.lock_name, "Unable to detect lock name")
        assert_config(self.namespace, "Unable to detect operator namespace")
        assert_config(self.lock_identity, "Unable to detect lock identity")
        assert_config(
            self.lease_duration,
            "Invalid 'python_watch_manager.lock.duration' value: "
            f"'{config.python_watch_manager.lock.duration}'",
        )

    def renew_or_acquire(self):
        """
        Renew or acquire lock by checking the current lease status
        """

        # Template out the expected lease. This is edited based on the current
        # lease status
        current_time = datetime.now(timezone.utc)
        lease_resource_version = None
        expected_lease_data = {
            "holderIdentity": self.lock_identity,
            "acquireTime": current_time.strftime(LEASE_TIME_FORMAT),
            "leaseDurationSeconds": round(self.lease_duration.total_seconds()),
            "leaseTransitions": 1,
            "renewTime": current_time.strftime(LEASE_TIME_FORMAT),
        }

        # Get current lease
        lease_obj = self.store_client.get(
            kind=LEASE_KIND,
            name=self.lock_name,
            namespace=self.namespace,
            api_version=LEASE_API_VERSION,
        )

        # If lease exists then verify current holder is valid or update the expected
        # lease with the proper values
        if lease_obj and lease_obj.get("spec"):
            log.debug2(
                "Lease object %s already exists, checking holder", self.lock_name
            )

            lease_resource_version = lease_obj.get("metadata", {}).get(
                "resourceVersion"
            )
            lease_spec = lease_obj.get("spec")
            lock_holder = lease_spec.get("holderIdentity")

            if lock_holder != self.lock_identity:
                renew_time = parse(lease_spec.get("renewTime"))
                if renew_time.tzinfo is None:
                    renew_time = renew_time.replace(tzinfo=timezone.utc)
                lease_duration = timedelta(
                    seconds=lease_spec.get("leaseDurationSeconds")
                )

                # If the renew+lease is after the current time than the other
                # lease holder is still valid
                if (renew_time + lease_duration) > current_time:
                    log.debug2("Lease held by %s", lock_holder)
                    self.release_lock()
                    return

                log.info("Taking leadership from %s", lock_holder)
                # Increment leaseTransitions as we're taking ownership
                expected_lease_data["leaseTransitions"] = (
                    lease_spec.get("leaseTransitions", 1) + 1
                )

            # If we're the current holder than keep the current acquire time
            else:
                log.debug2(
                    "Lease object already owned. Reusing acquireTime and transitions"
                )
                expected_lease_data["acquireTime"] = lease_spec.get("acquireTime")
                expected_lease_data["leaseTransitions"] = lease_spec.get(
                    "leaseTransitions"
                )

        # Create or update the lease obj
        lease_resource = {
            "kind": LEASE_KIND,
            "apiVersion": LEASE_API_VERSION,
            "metadata": {
                "name": self.lock_name,
                "namespace": self.namespace,
            },
            "spec": expected_lease_data,
        }

        try:
            if lease_resource_version:
                lease_resource["metadata"]["resourceVersion"] = lease_resource_version
                written = self.store_client.update(lease_resource)
            else:
                written = self.store_client.create(lease_resource)
        except ConflictError as err:
            # Another replica wrote the lease first
            log.debug("Lost the race for lease %s: %s", self.lock_name, err)
            written = None

        if not written:
            log.warning("Unable to acquire leadership lock")
            self.release_lock()
        else:
            self.acquire_lock()
