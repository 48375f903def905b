"""Standard data types used through PWM"""

# Standard
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Optional, Union
import abc

# Local
from ....api import RequestKey
from ....store_client import KubeEventType

# Forward Declarations
RECONCILIATION_RESULT_TYPE = "ReconciliationResult"

##  Reconcile Enums


class ReconcileRequestType(Enum):
    """Enum to expand the possible KubeEventTypes to include PythonWatchManager
    specific events"""

    # Used for events that are a requeue of an object
    REQUEUED = "REQUEUED"

    # Used for periodic reconcile events
    PERIODIC = "PERIODIC"

    # Used for when an event is a dependent resource of a controller
    DEPENDENT = "DEPENDENT"

    # Used as a sentinel to alert threads to stop
    STOPPED = "STOPPED"


### Reconcile Classes


@dataclass
class ReconcileRequest:
    """Class to represent one request to the ReconcileThread. Requests are
    identified by the RequestKey of the CR being reconciled and are never
    persisted.
    """

    key: Optional[RequestKey]
    type: Union[ReconcileRequestType, KubeEventType]
    timestamp: datetime = field(default_factory=datetime.now)

    def uid(self) -> Optional[RequestKey]:
        """Get the identity of the resource being reconciled"""
        return self.key


@dataclass
class ReconcileCompletion:
    """Notice from a worker that the reconcile of a request has finished"""

    request: ReconcileRequest
    result: RECONCILIATION_RESULT_TYPE

    def uid(self) -> Optional[RequestKey]:
        """Get the identity of the resource that was reconciled"""
        return self.request.uid()


### Timer Data Classes
@dataclass(order=True)
class TimerEvent:
    """Class for keeping track of an item in the timer queue. Time is the
    only comparable field to support the TimerThreads priority queue"""

    time: datetime
    action: Callable = field(compare=False)
    args: list = field(default_factory=list, compare=False)
    kwargs: dict = field(default_factory=dict, compare=False)
    stale: bool = field(default=False, compare=False)

    def cancel(self):
        """Cancel this event. It will not be executed when read from the
        queue"""
        self.stale = True

    def run(self) -> Any:
        """Execute the action of this event"""
        return self.action(*self.args, **self.kwargs)


## Meta Classes


class Singleton(type):
    """MetaClass to limit a class to only one global instance. When the
    first instance is created it's attached to the Class and the next
    time someone initializes the class the original instance is returned
    """

    def __call__(cls, *args, **kwargs):
        if getattr(cls, "_disable_singleton", False):
            return type.__call__(cls, *args, **kwargs)

        # The _instance is attached to the class itself without looking upwards
        # into any parent classes
        if "_instance" not in cls.__dict__:
            cls._instance = type.__call__(cls, *args, **kwargs)
        return cls._instance


class ABCSingletonMeta(Singleton, abc.ABCMeta):
    """Shared metaclass for ABCMeta and Singleton"""
