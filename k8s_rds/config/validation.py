"""
Module to validate values in a loaded config or a custom resource spec. The
same parameter types validate the operator's own config.yaml and the fields of
Database and DBCluster resources.
"""

# Standard
from typing import Any, Dict, List, Optional, Union
import abc
import builtins
import re

# First Party
import aconfig
import alog

# Local
from .. import constants
from ..utils import nested_get

log = alog.use_channel("CONFG")


################################################################################
## Public ######################################################################
################################################################################


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
    return get_invalid_values(config, parse_validation_config(validation_config))


def get_invalid_values(
    values: dict,
    validators: Dict[str, "ValidatedParameter"],
) -> List[str]:
    """Run a set of already-parsed validators against a dict of values

    Args:
        values:  dict
            The (possibly nested) values to validate
        validators:  Dict[str, ValidatedParameter]
            Mapping from nested keys to the validator for that key

    Returns:
        invalid_params:  List[str]
            The keys whose values fail validation
    """
    invalid_params = []
    for val_key, validator in validators.items():
        if not validator.validate(nested_get(values, val_key)):
            log.warning("Found invalid value for key [%s]", val_key)
            invalid_params.append(val_key)
    return invalid_params


def parse_validation_config(
    validation_config: dict,
    prefix_parts: Optional[List[str]] = None,
) -> Dict[str, "ValidatedParameter"]:
    """Recursively parse the given validation dict into a dict of nested keys
    pointing to ValidatedParameter instances.

    Args:
        validation_config:  dict
            The validation setup where each leaf dict holds a "type" and the
            keyword args for that parameter type
        prefix_parts:  Optional[List[str]]
            The key parts above this level of nesting

    Returns:
        validators:  Dict[str, ValidatedParameter]
            Mapping from nested keys to their validators
    """
    output_dict = {}
    prefix_parts = prefix_parts or []
    for key, val in validation_config.items():
        assert isinstance(key, str), "Only string keys allowed!"
        if not isinstance(val, dict):
            continue

        key_parts = prefix_parts + [key]
        nested_key = constants.NESTED_DICT_DELIM.join(key_parts)

        # If the dict has a "type" field, try parsing it as a validated
        # parameter
        param = None
        if "type" in val:
            log.debug3("Attempting to construct parameter at [%s]: %s", nested_key, val)
            param = _construct_parameter(val)

        if param:
            log.debug3("Found parameter at %s", nested_key)
            output_dict[nested_key] = param
        else:
            log.debug3("Recursing into %s", nested_key)
            output_dict.update(parse_validation_config(val, prefix_parts=key_parts))

    return output_dict


################################################################################
## Implementation ##############################################################
################################################################################

# pylint: disable=too-few-public-methods


class ValidatedParameter(abc.ABC):
    """This class represents a parameter with type and value validation"""

    TYPES = []
    TYPE_KEY = None

    def __init__(self, optional: bool = False):
        """
        Args:
            optional:  bool
                Whether or not the parameter may be None
        """
        assert self.TYPES, "Must specify at least one valid type"
        self.optional = optional

    def validate(self, value: Any) -> bool:
        """Run the validation for a read value

        Args:
            value:  Any
                The value to validate against this parameter

        Returns:
            valid:  bool
                True if the value is valid, False otherwise
        """
        if self.optional and value is None:
            return True

        # bool is a subclass of int, so it must never satisfy a number type
        if isinstance(value, bool) and bool not in self.TYPES:
            log.warning("Invalid type <%s>", type(value))
            return False
        if not any(isinstance(value, valid_type) for valid_type in self.TYPES):
            log.warning("Invalid type <%s>", type(value))
            return False

        valid_value = self._validate_value(value)
        if not valid_value:
            log.warning("Invalid value [%s]", value)
        return valid_value

    @abc.abstractmethod
    def _validate_value(self, value: Any) -> bool:
        """All child classes must provide value validation that is specific to
        the given type
        """


class _NumberParameter(ValidatedParameter):
    """A parameter that must be a number type and has optional bounds"""

    TYPES = [int, float]
    TYPE_KEY = "number"

    def __init__(
        self,
        *,
        min: Optional[Union[int, float]] = None,  # pylint: disable=redefined-builtin
        max: Optional[Union[int, float]] = None,  # pylint: disable=redefined-builtin
        **kwargs,
    ):
        """The builtin min/max names are used so the yaml keys read naturally

        Kwargs:
            min:  Optional[Union[int, float]]
                If not None, minimum value (inclusive) allowed
            max:  Optional[Union[int, float]]
                If not None, maximum value (inclusive) allowed
        """
        super().__init__(**kwargs)
        self._min = min
        self._max = max

    def _validate_value(self, value: Union[int, float]) -> bool:
        return (self._min is None or value >= self._min) and (
            self._max is None or value <= self._max
        )


class _IntParameter(_NumberParameter):
    """A number parameter that must be an int"""

    TYPES = [int]
    TYPE_KEY = "int"


class _StrParameter(ValidatedParameter):
    """A parameter that must be of type str and has optional length bounds"""

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


class _PatternParameter(_StrParameter):
    """A str parameter that must also match a regular expression"""

    TYPE_KEY = "pattern"

    def __init__(self, *, regex: str, **kwargs):
        super().__init__(**kwargs)
        self._regex = re.compile(regex)

    def _validate_value(self, value: str) -> bool:
        return super()._validate_value(value) and bool(self._regex.fullmatch(value))


class _BoolParameter(ValidatedParameter):
    """A parameter that must be a bool"""

    TYPES = [bool]
    TYPE_KEY = "bool"

    def _validate_value(self, value: bool) -> bool:
        return True


class _EnumParameter(ValidatedParameter):
    """A parameter with a fixed set of valid str or int values"""

    TYPES = [str, int, type(None)]
    TYPE_KEY = "enum"

    def __init__(self, *, values: List[Union[str, int, type(None)]], **kwargs):
        super().__init__(**kwargs)
        assert (
            isinstance(values, list) and values
        ), "Must specify at least one enum value!"
        self.values = values

    def _validate_value(self, value: Union[str, int, type(None)]) -> bool:
        return value in self.values


class _ListParameter(ValidatedParameter):
    """A parameter that must be of type list and has optional constraints around
    the type and count of elements
    """

    TYPES = [list]
    TYPE_KEY = "list"

    def __init__(
        self,
        *,
        min_len: Optional[int] = None,
        max_len: Optional[int] = None,
        item_type: Optional[str] = None,
        **kwargs,
    ):
        """
        Kwargs:
            min_len:  Optional[int]
                Minimum number of items that must be provided
            max_len:  Optional[int]
                Maximum number of items that must be provided
            item_type:  Optional[str]
                String name of the type that the items must be (e.g. "str")
        """
        super().__init__(**kwargs)
        self._min_len = min_len
        self._max_len = max_len
        self._item_type = None
        if item_type is not None:
            assert hasattr(builtins, item_type), f"Unsupported item_type: {item_type}"
            self._item_type = getattr(builtins, item_type)

    def _validate_value(self, value: list) -> bool:
        return (
            (self._min_len is None or len(value) >= self._min_len)
            and (self._max_len is None or len(value) <= self._max_len)
            and (
                self._item_type is None
                or all(isinstance(item, self._item_type) for item in value)
            )
        )


# pylint: enable=too-few-public-methods

## Factory #####################################################################


def _create_factory_map(param_class, factory_map=None):
    """Helper to recursively create the singleton factory map"""
    factory_map = factory_map or {}
    if not param_class.__abstractmethods__:
        factory_map[param_class.TYPE_KEY] = param_class
    for subclass in param_class.__subclasses__():
        factory_map = _create_factory_map(subclass, factory_map)
    return factory_map


# Global map from type keys to parameter type classes
_factory_map = _create_factory_map(ValidatedParameter)


def _construct_parameter(param_args: Dict[str, Any]) -> Optional[ValidatedParameter]:
    """Construct a ValidatedParameter from the given args parsed out of a
    validation dict. If the type is unknown, None is returned.
    """
    param_type = param_args.get("type")
    if not (isinstance(param_type, str) and param_type in _factory_map):
        return None
    kwargs = {key: val for key, val in param_args.items() if key != "type"}
    return _factory_map[param_type](**kwargs)
