"""
This module implements the error taxonomy used throughout the reconciliation
core. Every store call's failure is classified into one of these types.
"""

# Standard
from typing import Optional

## Base Error ##################################################################


class ExampleOperatorError(Exception):
    """Base class for all operator exceptions"""

    def __init__(self, message: str, is_fatal_error: bool):
        """Construct with a flag indicating whether this is a fatal error. This
        will be a static property of all children.
        """
        super().__init__(message)
        self._is_fatal_error = is_fatal_error

    @property
    def is_fatal_error(self):
        """Property indicating whether or not this error should be retried at
        the normal backoff cadence (False) or only after a spec change (True)
        """
        return self._is_fatal_error


## Fatal Errors ################################################################


class FatalError(ExampleOperatorError):
    """A FatalError is one that will not resolve by retrying the same
    reconciliation with the same inputs.
    """

    def __init__(self, message: str = ""):
        super().__init__(message=message, is_fatal_error=True)


class ConfigError(FatalError):
    """Exception caused during usage of user-provided configuration"""


class InvalidSpecError(ConfigError):
    """Exception raised when the desired state cannot be constructed from the
    CR's spec. Clearing it requires a spec change.
    """


class ClusterError(FatalError):
    """Exception caused when a store operation fails in an unexpected,
    non-retryable way (e.g. forbidden)
    """


## Expected Errors #############################################################


class ExpectedError(ExampleOperatorError):
    """An ExpectedError is one that should terminate the current reconciliation
    and is expected to resolve in a subsequent one.
    """

    def __init__(self, message: str = ""):
        super().__init__(message=message, is_fatal_error=False)


class ConflictError(ExpectedError):
    """Optimistic concurrency failure: the resourceVersion used for a write is
    stale. The caller must re-fetch and retry, never blind-overwrite.
    """

    def __init__(self, message: str = "", resource_version: Optional[str] = None):
        self.resource_version = resource_version
        super().__init__(message)


class TransientError(ExpectedError):
    """Network, timeout, throttling or server-side failure talking to the
    store
    """


class FinalizerError(ExpectedError):
    """A cleanup action failed while the CR is being deleted. The finalizer is
    kept so that the cleanup is retried.
    """

    def __init__(self, message: str = "", action_name: Optional[str] = None):
        self.action_name = action_name
        super().__init__(message)


class ReconcileCancelled(ExpectedError):
    """Raised at a store call boundary when shutdown has been requested"""


## Assertions ##################################################################


def assert_spec(condition: bool, message: str = ""):
    """Replacement for assert() which will throw an InvalidSpecError. This
    should be used when building desired state from a CR spec.
    """
    if not condition:
        raise InvalidSpecError(message)


def assert_config(condition: bool, message: str = ""):
    """Replacement for assert() which will throw a ConfigError. This should be
    used when validating operator configuration.
    """
    if not condition:
        raise ConfigError(message)


def assert_cluster(condition: bool, message: str = ""):
    """Replacement for assert() which will throw a ClusterError. This should
    be used when an operation in the cluster must succeed to continue.
    """
    if not condition:
        raise ClusterError(message)


## Classification ##############################################################

# HTTP status codes that indicate a retryable server-side problem
TRANSIENT_STATUS_CODES = {408, 429, 500, 502, 503, 504}


def classify_status_code(status: Optional[int], message: str = "") -> Optional[Exception]:
    """Map an HTTP status code from the store into the error taxonomy.

    Args:
        status:  Optional[int]
            The HTTP status code of the failed call. None means the call never
            received a response (connection/timeout failure).
        message:  str
            Message to attach to the classified error

    Returns:
        error:  Optional[Exception]
            The classified error, or None for NotFound which callers treat as
            a benign absence
    """
    if status == 404:
        return None
    if status == 409:
        return ConflictError(message)
    if status == 422:
        return InvalidSpecError(message)
    if status is None or status in TRANSIENT_STATUS_CODES:
        return TransientError(message)
    return ClusterError(message)
