"""
This module loads config at import time, validates it, and does the initial
log config
"""

# Standard
import os

# First Party
import aconfig
import alog

# Local
from ..exceptions import ConfigError
from .validation import get_invalid_params

log = alog.use_channel("CONFG")

# Read the library config, allowing env overrides
library_config = aconfig.Config.from_yaml(
    os.path.join(os.path.dirname(__file__), "config.yaml"),
    override_env_vars=True,
)

# Parse the validation file, not allowing env overrides
validation_config = aconfig.Config.from_yaml(
    os.path.join(os.path.dirname(__file__), "config_validation.yaml"),
    override_env_vars=False,
)


def validate_library_config(config: aconfig.Config = library_config):
    """Validate the loaded library config against the validation file and the
    cross-key constraints that a per-key validator cannot express.

    This runs once at import time and again after command line overrides have
    been applied.

    Args:
        config:  aconfig.Config
            The config to validate (defaults to the global library config)

    Raises:
        ConfigError: If any value is invalid
    """
    invalid_params = get_invalid_params(config, validation_config)
    if invalid_params:
        raise ConfigError(
            f"Library configuration found invalid values: {invalid_params}"
        )
    if config.exclude_namespaces and config.include_namespaces:
        raise ConfigError(
            "include_namespaces and exclude_namespaces are mutually exclusive"
        )
    log.debug2("Library config is valid")


validate_library_config()

# Do initial alog configuration
alog.configure(
    default_level=library_config.log_level,
    filters=library_config.log_filters,
    formatter="json" if library_config.log_json else "pretty",
    thread_id=library_config.log_thread_id,
)
