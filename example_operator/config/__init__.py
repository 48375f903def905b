"""
Base operator config module. The config here is loaded at import time, can be
overridden with environment variables and CLI flags, and is validated before
the operator starts.
"""

# Local
from .config import library_config, validate_config


# Define __getattr__ on this module to delegate to the library config.
def __getattr__(name):
    if name in library_config or hasattr({}, name):
        return getattr(library_config, name)
    raise AttributeError(f"No such config attribute {name}")


# Only expose the library config keys
__all__ = list(library_config.keys())
