"""Configuration models and loading."""

from pocketid_sync.config.loader import (
    ConfigLoader,
    ConfigurationError,
    DeclarationWatcher,
    EnvironmentVariableError,
    find_config_file,
    load_config_from_dict,
)
from pocketid_sync.config.models import (
    LoggingConfig,
    PocketIDConfig,
    ReconcileConfig,
    StateManagementConfig,
    SyncConfig,
)

__all__ = [
    "ConfigLoader",
    "ConfigurationError",
    "DeclarationWatcher",
    "EnvironmentVariableError",
    "LoggingConfig",
    "PocketIDConfig",
    "ReconcileConfig",
    "StateManagementConfig",
    "SyncConfig",
    "find_config_file",
    "load_config_from_dict",
]
