"""
Common utilities shared across the operator
"""

# Standard
from datetime import timedelta
from typing import Any, List, Optional
import re

# First Party
import alog

# Local
from . import constants

log = alog.use_channel("RDSUTL")

# Sentinel for missing dict values
__MISSING__ = "__MISSING__"

## Dicts #######################################################################


def merge_configs(base, overrides) -> dict:
    """Helper to perform a deep merge of the overrides into the base. The merge
    is done in place, but the resulting dict is also returned for convenience.

    If both the base and overrides have a key and the value for both is a dict,
    recursively merge, otherwise set the base value to the override value.

    Args:
        base:  dict
            The base dict that will be updated with the overrides
        overrides:  dict
            The override dict

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


def nested_get(dct: dict, key: str, dflt=None) -> Any:
    """Helper to get values from a dict using 'foo.bar' key notation

    Args:
        dct:  dict
            The dict to read from
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
        if dct is __MISSING__ or dct is None:
            return dflt
        if not isinstance(dct, dict):
            raise TypeError(
                f"Intermediate key {constants.NESTED_DICT_DELIM.join(parts[:i + 1])} is not a dict"
            )
    return dct.get(parts[-1], dflt)


## Time ########################################################################

_TIME_DELTA_EXPR = re.compile(
    r"^((?P<hours>\d+?)hr)?((?P<minutes>\d+?)m)?((?P<seconds>\d*\.?\d+?)s)?$"
)


def parse_time_delta(time_str: str) -> Optional[timedelta]:
    """Parse a string like 1hr, 5m, 10s or 1m30s into a timedelta

    Args:
        time_str:  str
            The string representation of a timedelta

    Returns:
        result:  Optional[timedelta]
            The parsed timedelta or None if the string does not parse
    """
    parts = _TIME_DELTA_EXPR.match(time_str or "")
    if not parts or all(part is None for part in parts.groupdict().values()):
        return None
    return timedelta(
        **{name: float(param) for name, param in parts.groupdict().items() if param}
    )


## Lists #######################################################################


def parse_namespace_list(value) -> List[str]:
    """Namespace lists come from yaml as a list or from the environment as a
    comma separated string
    """
    if not value:
        return []
    if isinstance(value, str):
        value = value.split(",")
    return [namespace.strip() for namespace in value if namespace and namespace.strip()]
