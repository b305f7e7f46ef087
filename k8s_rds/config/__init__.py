"""
Operator config module. Values are loaded once at import time from
config.yaml, with environment variable and command line overrides applied on
top.
"""

# Local
from .config import library_config, validate_library_config


# Define __getattr__ on this module to delegate to the library config.
def __getattr__(name):
    if name in library_config or hasattr({}, name):
        return getattr(library_config, name)
    raise AttributeError(f"No such config attribute {name}")


# Only expose the library config keys
__all__ = list(library_config.keys())
