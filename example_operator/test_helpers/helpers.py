"""
This module holds common helper functions for making testing easy
"""

# Standard
from contextlib import contextmanager
from typing import List, Optional, Tuple
from unittest import mock
import copy
import inspect
import os

# First Party
import aconfig
import alog

# Local
from example_operator import constants
from example_operator.api import build_registry
from example_operator.config import library_config as config_detail_dict
from example_operator.store_client import DryRunStoreClient
from example_operator.utils import merge_configs

log = alog.use_channel("TEST")


def configure_logging():
    alog.configure(
        os.environ.get("LOG_LEVEL", "off"),
        os.environ.get("LOG_FILTERS", ""),
        formatter="json"
        if os.environ.get("LOG_JSON", "").lower() == "true"
        else "pretty",
        thread_id=os.environ.get("LOG_THREAD_ID", "").lower() == "true",
    )


configure_logging()

TEST_INSTANCE_NAME = "test-instance"
TEST_NAMESPACE = "test"
SOME_OTHER_NAMESPACE = "somewhere"

CR_API_VERSION = f"{constants.API_GROUP}/{constants.API_VERSION}"


def setup_cr(
    name=TEST_INSTANCE_NAME,
    namespace=TEST_NAMESPACE,
    size=2,
    spec_name=None,
    **kwargs,
):
    """Build an Example manifest. Extra kwargs become top level fields."""
    cr_dict = copy.deepcopy(kwargs) if kwargs else {}
    cr_dict.setdefault("kind", constants.KIND)
    cr_dict.setdefault("apiVersion", CR_API_VERSION)
    cr_dict.setdefault("metadata", {}).setdefault("name", name)
    cr_dict["metadata"].setdefault("namespace", namespace)
    cr_dict.setdefault("spec", {}).setdefault("size", size)
    if spec_name is not None:
        cr_dict["spec"].setdefault("name", spec_name)
    return cr_dict


@contextmanager
def library_config(**config_overrides):
    """This context manager sets library config values temporarily and reverts
    them on completion. Dict values are merged into the existing section so
    that a test only needs to name the keys it changes.
    """
    # Override the configs and hang onto the old values
    old_vals = {}
    for key, val in config_overrides.items():
        if key in config_detail_dict:
            old_vals[key] = config_detail_dict[key]
            if isinstance(val, dict) and isinstance(old_vals[key], dict):
                val = merge_configs(copy.deepcopy(dict(old_vals[key])), val)
        if isinstance(val, dict):
            val = aconfig.Config(val, override_env_vars=False)
        config_detail_dict[key] = val

    # Yield to the context
    try:
        yield
    finally:
        # Revert to the old values
        for key in config_overrides:
            if key in old_vals:
                config_detail_dict[key] = old_vals[key]
            else:
                del config_detail_dict[key]


def get_failable_method(fail_flag, method, failure_return=False):
    log.debug4(
        "Setting up failable mock of [%s] with fail flag: %s", str(method), fail_flag
    )

    def failable_method(*args, **kwargs):
        log.debug4(
            "Running failable mock of [%s] with fail flag: %s", str(method), fail_flag
        )
        if isinstance(fail_flag, Exception) or (
            inspect.isclass(fail_flag) and issubclass(fail_flag, Exception)
        ):
            log.debug4("Raising in failable mock")
            raise fail_flag
        if callable(fail_flag):
            log.debug4("Calling callable fail flag")
            res = fail_flag()
            if res is not None:
                return res
        elif fail_flag == "assert":
            log.debug4("Asserting in failable mock")
            raise AssertionError(f"You told me to fail {method}!")
        elif fail_flag:
            log.debug4("Returning %s", failure_return)
            return failure_return
        log.debug4("Passing through (%s, **%s)", args, kwargs)
        res = method(*args, **kwargs)
        log.debug4("Passthrough res: %s", res)
        return res

    return failable_method


class FailOnce:
    """Helper callable that will fail once on the N'th call"""

    def __init__(self, fail_val, fail_number=1):
        self.call_count = 0
        self.fail_number = fail_number
        self.fail_val = fail_val

    def __call__(self, *_, **__):
        self.call_count += 1
        if self.call_count == self.fail_number:
            log.debug("Failing on call %d with %s", self.call_count, self.fail_val)
            if isinstance(self.fail_val, type) and issubclass(self.fail_val, Exception):
                raise self.fail_val("Raising!")
            return self.fail_val
        log.debug("Not failing on call %d", self.call_count)
        return None


class MockStoreClient(DryRunStoreClient):
    """The MockStoreClient wraps a standard DryRunStoreClient and adds
    configurable failure cases for each store operation. It also records every
    write that reaches the store as an (operation, kind, name) tuple.
    """

    def __init__(
        self,
        resources: Optional[List[dict]] = None,
        get_fail=False,
        list_fail=False,
        create_fail=False,
        update_fail=False,
        update_status_fail=False,
        delete_fail=False,
        **kwargs,
    ):
        kwargs.setdefault("registry", build_registry())
        self.writes: List[Tuple[str, str, str]] = []
        super().__init__(resources=resources, **kwargs)

        # Preloaded resources are not writes made by the test subject
        self.writes.clear()
        self.enable_mocks(
            get_fail=get_fail,
            list_fail=list_fail,
            create_fail=create_fail,
            update_fail=update_fail,
            update_status_fail=update_status_fail,
            delete_fail=delete_fail,
        )

    def enable_mocks(
        self,
        get_fail=False,
        list_fail=False,
        create_fail=False,
        update_fail=False,
        update_status_fail=False,
        delete_fail=False,
    ):
        """Swap in failable mocks of the public operations. Calling this again
        resets the mocks with the new flags.
        """
        self.get = mock.Mock(
            side_effect=get_failable_method(
                get_fail, super().get, failure_return=None
            )
        )
        self.list = mock.Mock(
            side_effect=get_failable_method(
                list_fail, super().list, failure_return=[]
            )
        )
        self.create = mock.Mock(
            side_effect=get_failable_method(create_fail, super().create)
        )
        # Events share the create failure mode
        self.create_event = mock.Mock(
            side_effect=get_failable_method(create_fail, super().create_event)
        )
        self.update = mock.Mock(
            side_effect=get_failable_method(
                update_fail, super().update, failure_return=None
            )
        )
        self.update_status = mock.Mock(
            side_effect=get_failable_method(
                update_status_fail, super().update_status, failure_return=None
            )
        )
        self.delete = mock.Mock(
            side_effect=get_failable_method(delete_fail, super().delete)
        )

    def resource_writes(self) -> List[Tuple[str, str, str]]:
        """The recorded writes, leaving out Events"""
        return [write for write in self.writes if write[1] != "Event"]

    def get_obj(self, kind, name, namespace=TEST_NAMESPACE, api_version=None):
        """Read an object directly from the store without going through the
        mocks
        """
        return self._get(kind, name, namespace, api_version)

    def has_obj(self, *args, **kwargs):
        return self.get_obj(*args, **kwargs) is not None

    ## Recording ###############################################################

    def _create(self, resource, notify=True):
        self.writes.append(("create", resource.get("kind"), _name(resource)))
        return super()._create(resource, notify=notify)

    def _update(self, resource):
        self.writes.append(("update", resource.get("kind"), _name(resource)))
        return super()._update(resource)

    def _update_status(self, resource):
        self.writes.append(("update_status", resource.get("kind"), _name(resource)))
        return super()._update_status(resource)

    def _delete(self, kind, name, namespace, api_version):
        self.writes.append(("delete", kind, name))
        return super()._delete(kind, name, namespace, api_version)


def set_deployment_ready(
    store_client: DryRunStoreClient,
    name: str,
    ready_replicas: int,
    namespace: str = TEST_NAMESPACE,
) -> dict:
    """Play the part of the Deployment controller by writing the ready replica
    count to a Deployment's status
    """
    deployment = store_client.get(
        kind="Deployment", name=name, namespace=namespace, api_version="apps/v1"
    )
    assert deployment is not None, f"No Deployment {namespace}/{name}"
    deployment["status"] = {
        "replicas": deployment["spec"].get("replicas"),
        "readyReplicas": ready_replicas,
    }
    return store_client.update_status(deployment)


def _name(resource: dict) -> str:
    return resource.get("metadata", {}).get("name")
