"""
The Controller class describes what a custom resource kind manages: which
children it builds from a CR, how to find the children that already exist and
which cleanup actions must run before a CR is removed. The ReconcileManager
drives a Controller through each reconcile.
"""

# Standard
from typing import List, Optional, Tuple
import abc

# First Party
import aconfig
import alog

# Local
from . import config, constants
from .api import Example
from .desired_state import (
    CHILD_API_VERSION,
    CHILD_KIND,
    build_desired_children,
    child_selector,
)
from .finalizer import CleanupAction, LabeledResourceCleanup
from .utils import abstractclassproperty, classproperty

## Globals #####################################################################

log = alog.use_channel("CTRLR")


## Controller ##################################################################


class Controller(abc.ABC):
    """This class represents a controller for a single kubernetes custom
    resource kind
    """

    ## Class Properties ########################################################

    # Derived classes must have class properties for group, version, and kind.
    # To enforce this, we define them as abstractclassproperty which raises
    # when accessed from the base implementation.

    # NOTE: pylint is very confused by the use of these property decorators, so
    #   we need to liberally ignore warnings.

    @abstractclassproperty  # noqa: B027
    def group(cls) -> str:
        """The apiVersion group for the resource this controller manages"""

    @abstractclassproperty  # noqa: B027
    def version(cls) -> str:
        """The apiVersion version for the resource this controller manages"""

    @abstractclassproperty  # noqa: B027
    def kind(cls) -> str:
        """The kind for the resource this controller manages"""

    @classproperty
    def api_version(cls) -> str:  # pylint: disable=no-self-argument
        """The full apiVersion of the resource this controller manages"""
        return f"{cls.group}/{cls.version}"  # pylint: disable=no-member

    @classproperty
    def finalizer(cls) -> str:  # pylint: disable=no-self-argument
        """The finalizer token owned by this Controller"""
        return f"finalizers.{cls.group}/cleanup"  # pylint: disable=no-member

    ## Construction ############################################################

    def __init__(self, child_config: Optional[aconfig.Config] = None):
        """
        Args:
            child_config:  Optional[aconfig.Config]
                The shape of the child workloads. Defaults to the library
                config's child section.
        """
        # Make sure the class properties are present and not empty
        assert self.group, "Controller.group must be a non-empty string"
        assert self.version, "Controller.version must be a non-empty string"
        assert self.kind, "Controller.kind must be a non-empty string"
        self.child_config = child_config or config.child

    @classmethod
    def __str__(cls):
        """Stringify with the GVK"""
        return f"Controller({cls.group}/{cls.version}/{cls.kind})"

    ## Abstract Interface ######################################################

    @abc.abstractmethod
    def build_children(self, cr: Example) -> List[dict]:
        """Build the desired children of the CR. Must be pure and raise
        InvalidSpecError for a spec that can not be built.
        """

    @abc.abstractmethod
    def child_types(self) -> List[Tuple[str, str]]:
        """The (apiVersion, kind) pairs of the children this controller owns"""

    @abc.abstractmethod
    def child_selector(self, cr: Example) -> str:
        """Label selector matching the existing children of the CR"""

    def cleanup_actions(self) -> List[CleanupAction]:
        """The ordered cleanup actions to run before a CR is removed"""
        return []


class ExampleController(Controller):
    """Controller for the Example kind. Each Example owns one Deployment and
    removes any ConfigMaps labeled as belonging to it when deleted.
    """

    group = constants.API_GROUP
    version = constants.API_VERSION
    kind = constants.KIND

    @classproperty
    def finalizer(cls) -> str:  # pylint: disable=no-self-argument
        return constants.FINALIZER_NAME

    def build_children(self, cr: Example) -> List[dict]:
        return build_desired_children(cr, self.child_config)

    def child_types(self) -> List[Tuple[str, str]]:
        return [(CHILD_API_VERSION, CHILD_KIND)]

    def child_selector(self, cr: Example) -> str:
        return child_selector(cr)

    def cleanup_actions(self) -> List[CleanupAction]:
        return [LabeledResourceCleanup(kind="ConfigMap", api_version="v1")]
