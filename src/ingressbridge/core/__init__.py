"""Core."""

from .config import (
    BridgeConfig,
    clear_config,
    flatten_config,
    get_config,
    load_config_from_file,
    set_config,
)
from .exceptions import (
    BackendResolutionError,
    BridgeError,
    ConflictError,
    HostnameMismatchError,
    ManifestError,
    NotFoundError,
    StoreError,
    format_error_for_user,
)

__all__ = [
    "BridgeConfig",
    "clear_config",
    "flatten_config",
    "get_config",
    "load_config_from_file",
    "set_config",
    "BackendResolutionError",
    "BridgeError",
    "ConflictError",
    "HostnameMismatchError",
    "ManifestError",
    "NotFoundError",
    "StoreError",
    "format_error_for_user",
]
