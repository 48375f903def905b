""" Import All functions, constants, and class from utils module """
# Local
from .backoff import ExponentialBackoff
from .common import get_operator_namespace, get_pod_name, parse_time_delta
from .constants import FINGERPRINT_KEEP_COUNT, JOIN_WORKER_TIMEOUT, MIN_SLEEP_TIME
from .types import (
    ABCSingletonMeta,
    ReconcileCompletion,
    ReconcileRequest,
    ReconcileRequestType,
    Singleton,
    TimerEvent,
)
