"""
Common utilities shared across the operator
"""

# Standard
from datetime import datetime, timedelta, timezone
from typing import Any, Optional
import inspect
import re

# First Party
import alog

# Local
from . import constants

log = alog.use_channel("UTILS")

# Sentinel for missing dict values
__MISSING__ = "__MISSING__"

# Timestamp format used for condition transition times and events
TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%SZ"

## Dicts #######################################################################


def merge_configs(base, overrides) -> dict:
    """Helper to perform a deep merge of the overrides into the base. The merge
    is done in place, but the resulting dict is also returned for convenience.

    The merge logic is quite simple: If both the base and overrides have a key
    and the type of the key for both is a dict, recursively merge, otherwise
    set the base value to the override value.

    Args:
        base:  dict
            The base config that will be updated with the overrides
        overrides:  dict
            The override config

    Returns:
        merged:  dict
            The merged results of overrides merged onto base
    """
    for key, value in overrides.items():
        if (
            key not in base
            or not isinstance(base[key], dict)
            or not isinstance(value, dict)
        ):
            base[key] = value
        else:
            base[key] = merge_configs(base[key], value)

    return base


def nested_set(dct: dict, key: str, val: Any):
    """Helper to set values in a dict using 'foo.bar' key notation

    Args:
        dct:  dict
            The dict into which the key will be set
        key:  str
            Key that may contain '.' notation indicating dict nesting
        val:  Any
            The value to place at the nested key
    """
    parts = key.split(constants.NESTED_DICT_DELIM)
    for i, part in enumerate(parts[:-1]):
        dct = dct.setdefault(part, {})
        if not isinstance(dct, dict):
            raise TypeError(
                "Intermediate key {} is not a dict".format(  # pylint: disable=consider-using-f-string
                    constants.NESTED_DICT_DELIM.join(parts[:i])
                )
            )
    dct[parts[-1]] = val


def nested_get(dct: dict, key: str, dflt=None) -> Any:
    """Helper to get values from a dict using 'foo.bar' key notation

    Args:
        dct:  dict
            The dict from which the key will be read
        key:  str
            Key that may contain '.' notation indicating dict nesting

    Returns:
        val:  Any
            Whatever is found at the given key or dflt if the key is not found.
            This includes missing intermediate dicts.
    """
    parts = key.split(constants.NESTED_DICT_DELIM)
    for i, part in enumerate(parts[:-1]):
        dct = dct.get(part, __MISSING__)
        if dct is __MISSING__:
            return dflt
        if not isinstance(dct, dict):
            raise TypeError(
                "Intermediate key {} is not a dict".format(  # pylint: disable=consider-using-f-string
                    constants.NESTED_DICT_DELIM.join(parts[:i])
                )
            )
    return dct.get(parts[-1], dflt)


## Time ########################################################################


def now_timestamp() -> str:
    """Get the current UTC time in the RFC3339 form used by kubernetes"""
    return datetime.now(timezone.utc).strftime(TIMESTAMP_FORMAT)


# CITE: https://stackoverflow.com/questions/4628122/how-to-construct-a-timedelta-object-from-a-simple-string
_TIME_DELTA_REGEX = re.compile(
    r"^((?P<hours>\d+?)hr)?((?P<minutes>\d+?)m)?((?P<seconds>\d*\.?\d+?)s)?$"
)


def parse_time_delta(time_str: str) -> Optional[timedelta]:
    """Parse a string into a timedelta. Accepts values in the following
    formats: 1hr, 5m, 10s, 1m30s, 0.5s

    Args:
        time_str: str
            The string representation of a timedelta

    Returns:
        result: Optional[timedelta]
            The parsed timedelta if the string could be parsed
    """
    parts = _TIME_DELTA_REGEX.match(time_str or "")
    if not parts or all(part is None for part in parts.groupdict().values()):
        return None
    return timedelta(
        **{name: float(param) for name, param in parts.groupdict().items() if param}
    )


## General #####################################################################


class classproperty:  # pylint: disable=invalid-name,too-few-public-methods
    """@classmethod+@property
    CITE: https://stackoverflow.com/a/22729414
    """

    def __init__(self, func):
        self.func = classmethod(func)

    def __get__(self, *args):
        return self.func.__get__(*args)()


class abstractclassproperty:  # pylint: disable=invalid-name,too-few-public-methods
    """This decorator implements a classproperty that will raise when accessed"""

    def __init__(self, func):
        self.prop_name = func.__name__

    def __get__(self, *args):
        # If this is being called by __setattr__, we're ok because it's
        # attempting to set the attribute on the class
        curframe = inspect.currentframe()
        callframe = inspect.getouterframes(curframe, 2)[1]
        caller_name = callframe[3]
        if caller_name == "__setattr__":
            return None

        raise NotImplementedError(
            f"Cannot access abstractclassproperty {self.prop_name}"
        )
