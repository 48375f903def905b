"""
Module to validate values in a loaded config against the rules in
config_validation.yaml
"""

# Standard
from typing import Any, Dict, List, Optional, Union
import abc

# First Party
import aconfig
import alog

# Local
from .. import constants
from ..utils import nested_get, parse_time_delta

log = alog.use_channel("CONFG")


## Public ######################################################################


def get_invalid_params(
    config: aconfig.Config,
    validation_config: aconfig.Config,
) -> List[str]:
    """Get a list of any params that are invalid

    Args:
        config:  aconfig.Config
            The parsed config with any override values
        validation_config:  aconfig.Config
            The parallel config holding validation setup

    Returns:
        invalid_params:  List[str]
            A list of all string keys for parameters that fail validation
    """
    invalid_params = []
    for val_key, validator in _parse_validation_config(validation_config).items():
        if not validator.validate(nested_get(config, val_key)):
            log.warning("Found invalid config key [%s]", val_key)
            invalid_params.append(val_key)
    return invalid_params


## Parameters ##################################################################

# pylint: disable=too-few-public-methods


class _ValidatedParameter(abc.ABC):
    """A parameter with type and value validation"""

    TYPES: List[type] = []
    TYPE_KEY: Optional[str] = None

    def __init__(self, optional: bool = False):
        self.optional = optional

    def validate(self, value: Any) -> bool:
        """Run the validation for a read value"""
        if self.optional and value is None:
            return True
        if not any(isinstance(value, valid_type) for valid_type in self.TYPES):
            log.warning("Invalid type <%s>", type(value))
            return False
        valid_value = self._validate_value(value)
        if not valid_value:
            log.warning("Invalid value [%s]", value)
        return valid_value

    @abc.abstractmethod
    def _validate_value(self, value: Any) -> bool:
        """Type-specific value validation"""


class _NumberParameter(_ValidatedParameter):
    """A number with optional inclusive bounds"""

    TYPES = [int, float]
    TYPE_KEY = "number"

    def __init__(
        self,
        *,
        min: Optional[Union[int, float]] = None,  # pylint: disable=redefined-builtin
        max: Optional[Union[int, float]] = None,  # pylint: disable=redefined-builtin
        **kwargs,
    ):
        super().__init__(**kwargs)
        self._min = min
        self._max = max

    def _validate_value(self, value: Union[int, float]) -> bool:
        # bool is a subclass of int, but never a valid number here
        if isinstance(value, bool):
            return False
        return (self._min is None or value >= self._min) and (
            self._max is None or value <= self._max
        )


class _IntParameter(_NumberParameter):
    """A number that must be an int"""

    TYPES = [int]
    TYPE_KEY = "int"


class _StrParameter(_ValidatedParameter):
    """A str with optional length bounds"""

    TYPES = [str]
    TYPE_KEY = "str"

    def __init__(
        self,
        *,
        min_len: Optional[int] = None,
        max_len: Optional[int] = None,
        **kwargs,
    ):
        super().__init__(**kwargs)
        self._min_len = min_len
        self._max_len = max_len

    def _validate_value(self, value: str) -> bool:
        return (self._min_len is None or len(value) >= self._min_len) and (
            self._max_len is None or len(value) <= self._max_len
        )


class _DurationParameter(_ValidatedParameter):
    """A str that parses as a time delta (e.g. 30s, 5m, 1hr)"""

    TYPES = [str]
    TYPE_KEY = "duration"

    def _validate_value(self, value: str) -> bool:
        return parse_time_delta(value) is not None


class _BoolParameter(_ValidatedParameter):
    """A bool"""

    TYPES = [bool]
    TYPE_KEY = "bool"

    def _validate_value(self, value: bool) -> bool:
        return True


class _EnumParameter(_ValidatedParameter):
    """A value from a fixed set"""

    TYPES = [str, int, type(None)]
    TYPE_KEY = "enum"

    def __init__(self, *, values: List[Union[str, int, None]], **kwargs):
        super().__init__(**kwargs)
        assert (
            isinstance(values, list) and values
        ), "Must specify at least one enum value!"
        self.values = values

    def _validate_value(self, value: Union[str, int, None]) -> bool:
        return value in self.values


# pylint: enable=too-few-public-methods

## Parsing #####################################################################


def _all_parameter_types(param_class=_ValidatedParameter) -> Dict[str, type]:
    """Recursively map TYPE_KEY to every concrete parameter class"""
    factory_map = {}
    if param_class.TYPE_KEY is not None:
        factory_map[param_class.TYPE_KEY] = param_class
    for subclass in param_class.__subclasses__():
        factory_map.update(_all_parameter_types(subclass))
    return factory_map


_factory_map = _all_parameter_types()


def _parse_validation_config(
    validation_config: aconfig.Config,
    prefix_parts: Optional[List[str]] = None,
) -> Dict[str, _ValidatedParameter]:
    """Recursively parse the validation file into a dict of nested keys
    pointing to _ValidatedParameter instances. A dict is treated as a parameter
    when it holds a "type" key naming a known parameter type; otherwise it is a
    nested section.
    """
    output_dict = {}
    prefix_parts = prefix_parts or []
    for key, val in validation_config.items():
        if not isinstance(val, dict):
            continue
        key_parts = prefix_parts + [key]
        nested_key = constants.NESTED_DICT_DELIM.join(key_parts)
        param_type = val.get("type")
        if isinstance(param_type, str) and param_type in _factory_map:
            log.debug3("Found parameter at %s", nested_key)
            param_args = {k: v for k, v in val.items() if k != "type"}
            output_dict[nested_key] = _factory_map[param_type](**param_args)
        else:
            log.debug3("Recursing into %s", nested_key)
            output_dict.update(_parse_validation_config(val, key_parts))
    return output_dict
