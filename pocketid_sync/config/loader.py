"""Configuration loader with YAML parsing and environment variable substitution."""

import os
import re
from pathlib import Path
from typing import Any, Dict, List, Optional, Set

import structlog
import yaml
from dotenv import load_dotenv
from pydantic import ValidationError

from pocketid_sync.config.models import SyncConfig
from pocketid_sync.core.declared import ResourceDeclaration
from pocketid_sync.security.validation import (
    SecurityError,
    sanitize_log_input,
    validate_environment_variable_name,
)

logger = structlog.get_logger(__name__)


class ConfigurationError(Exception):
    """Raised when configuration loading or validation fails."""


class EnvironmentVariableError(ConfigurationError):
    """Raised when environment variable substitution fails."""
    pass


# Allowlist of environment variables that may be substituted into configuration
ALLOWED_ENV_VARS: Set[str] = {
    # API access
    "POCKETID_ENDPOINT",
    "POCKETID_API_KEY",
    "POCKETID_TIMEOUT_SECONDS",
    "POCKETID_RATE_LIMIT_PER_MINUTE",
    "POCKETID_MAX_RETRIES",

    # Reconciliation
    "POLL_INTERVAL_SECONDS",
    "CYCLE_TIMEOUT_SECONDS",
    "MAX_CONCURRENT_RECONCILES",

    # Logging
    "LOG_LEVEL",
    "LOG_FORMAT",

    # State Management
    "STATE_DIR",

    # Common Environment Variables
    "HOME",
    "USER",
    "PWD",
    "TMPDIR",
    "TMP",
    "TEMP",
}

# Characters rejected in substituted values since they would change the YAML structure
DANGEROUS_VALUE_CHARS = ['${', '#{', '&', '*', '!', '|', '>', "'", '"', '`']


def _validate_env_var_name(var_name: str) -> None:
    """Validate that an environment variable is allowed.

    Raises:
        SecurityError: If the name is malformed or not in the allowlist
    """
    if not validate_environment_variable_name(var_name):
        raise SecurityError(
            f"Invalid environment variable name format: '{sanitize_log_input(var_name)}'. "
            "Environment variable names must contain only letters, digits, and underscores, "
            "and cannot start with a digit."
        )

    if var_name not in ALLOWED_ENV_VARS:
        raise SecurityError(
            f"Unauthorized environment variable '{sanitize_log_input(var_name)}' is not in allowlist. "
            f"Allowed variables: {sorted(ALLOWED_ENV_VARS)}"
        )


def _sanitize_env_value(var_name: str, value: str) -> str:
    sanitized = value.strip()
    for char in DANGEROUS_VALUE_CHARS:
        if char in sanitized:
            raise SecurityError(
                f"Value of '{var_name}' contains potentially dangerous character '{char}'. "
                "Values with special YAML characters are not allowed."
            )
    return sanitized


class ConfigLoader:
    """Configuration loader with environment variable substitution."""

    # ${VAR_NAME} or ${VAR_NAME:default_value}
    ENV_VAR_PATTERN = re.compile(r'\$\{([A-Za-z_][A-Za-z0-9_]*?)(?::([^}]*))?\}')

    def __init__(self, require_env_vars: bool = True, load_env_file: bool = True) -> None:
        """Initialize the configuration loader.

        Args:
            require_env_vars: Whether a placeholder without default must resolve
            load_env_file: Whether to read a ``.env`` file next to the config first
        """
        self.require_env_vars = require_env_vars
        self.load_env_file = load_env_file

    def load_config(self, config_path: Path) -> SyncConfig:
        """Load and validate configuration from a YAML file.

        Raises:
            ConfigurationError: If loading or validation fails
        """
        config_path = Path(config_path)
        if not config_path.exists():
            raise ConfigurationError(f"Configuration file not found: {config_path}")

        if self.load_env_file:
            self._load_dotenv(config_path)

        try:
            with open(config_path, 'r', encoding='utf-8') as f:
                raw_content = f.read()
        except OSError as e:
            raise ConfigurationError(f"Failed to read configuration: {e}") from e

        try:
            substituted = self._substitute_env_vars(raw_content)
        except SecurityError as e:
            raise ConfigurationError(str(e)) from e

        try:
            config_data = yaml.safe_load(substituted)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML syntax: {e}") from e

        if not isinstance(config_data, dict):
            raise ConfigurationError("Configuration file must contain a YAML object")

        config = load_config_from_dict(config_data)
        logger.debug(
            "Loaded configuration",
            path=str(config_path),
            resources=len(config.resources),
        )
        return config

    @staticmethod
    def _load_dotenv(config_path: Path) -> None:
        # Existing environment variables win over .env entries
        for candidate in (config_path.parent / ".env", Path.cwd() / ".env"):
            if candidate.is_file():
                load_dotenv(candidate, override=False)

    def _substitute_env_vars(self, content: str) -> str:
        """Substitute ``${VAR}`` and ``${VAR:default}`` placeholders.

        Raises:
            EnvironmentVariableError: If a required variable is missing
            SecurityError: If a variable is not allowed or its value is unsafe
        """
        missing_vars: List[str] = []
        security_errors: List[str] = []

        def replace_env_var(match: "re.Match[str]") -> str:
            var_name = match.group(1)
            default_value = match.group(2)

            try:
                _validate_env_var_name(var_name)
            except SecurityError as e:
                security_errors.append(str(e))
                return match.group(0)

            env_value = os.getenv(var_name)
            try:
                if env_value is not None:
                    return _sanitize_env_value(var_name, env_value)
                if default_value is not None:
                    return _sanitize_env_value(var_name, default_value)
            except SecurityError as e:
                security_errors.append(str(e))
                return match.group(0)

            if self.require_env_vars:
                missing_vars.append(var_name)
            return match.group(0)

        result = self.ENV_VAR_PATTERN.sub(replace_env_var, content)

        if security_errors:
            raise SecurityError(f"Security validation failed: {'; '.join(security_errors)}")

        if missing_vars:
            if len(missing_vars) == 1:
                raise EnvironmentVariableError(
                    f"Required environment variable '{missing_vars[0]}' is not set"
                )
            raise EnvironmentVariableError(
                f"Required environment variables are not set: {', '.join(sorted(set(missing_vars)))}"
            )

        return result

    def get_missing_env_vars(self, config_path: Path) -> List[str]:
        """List placeholders without default whose variables are not set."""
        config_path = Path(config_path)
        if not config_path.exists():
            return []

        if self.load_env_file:
            self._load_dotenv(config_path)

        with open(config_path, 'r', encoding='utf-8') as f:
            content = f.read()

        missing = {
            match.group(1)
            for match in self.ENV_VAR_PATTERN.finditer(content)
            if match.group(2) is None and os.getenv(match.group(1)) is None
        }
        return sorted(missing)


def load_config_from_dict(config_data: Dict[str, Any]) -> SyncConfig:
    """Load configuration from a dictionary.

    Raises:
        ConfigurationError: If validation fails
    """
    try:
        return SyncConfig.model_validate(config_data)
    except ValidationError as e:
        raise ConfigurationError(f"Configuration validation failed: {e}") from e


def find_config_file(start_path: Optional[Path] = None) -> Optional[Path]:
    """Find a configuration file by searching up the directory tree.

    Looks for ``pocketid-sync.yaml``, ``pocketid-sync.yml``, ``config.yaml``
    and ``config.yml`` in that order.
    """
    config_filenames = [
        "pocketid-sync.yaml",
        "pocketid-sync.yml",
        "config.yaml",
        "config.yml",
    ]

    current_path = (start_path or Path.cwd()).resolve()

    while True:
        for filename in config_filenames:
            config_path = current_path / filename
            if config_path.exists():
                return config_path

        parent = current_path.parent
        if parent == current_path:
            break
        current_path = parent

    return None


class DeclarationWatcher:
    """Re-reads declared resources from a configuration file when it changes.

    Calling the watcher returns the declared resources after the file's
    modification time changed, and None otherwise. A file that fails to
    load is reported once and ignored, so the previous declarations stay in
    effect until the file is fixed.
    """

    def __init__(
        self,
        config_path: Path,
        loader: Optional[ConfigLoader] = None,
        initial: Optional[SyncConfig] = None,
    ) -> None:
        self.config_path = Path(config_path)
        self.loader = loader or ConfigLoader()
        self._pending: Optional[List[ResourceDeclaration]] = None
        self._mtime: Optional[float] = None
        if initial is not None:
            self._pending = list(initial.resources)
            self._mtime = self._current_mtime()
        self._logger = logger.bind(config_path=str(self.config_path))

    def _current_mtime(self) -> Optional[float]:
        try:
            return self.config_path.stat().st_mtime
        except OSError:
            return None

    def has_changed(self) -> bool:
        return self._pending is not None or self._current_mtime() != self._mtime

    def __call__(self) -> Optional[List[ResourceDeclaration]]:
        if self._pending is not None:
            pending, self._pending = self._pending, None
            return pending

        mtime = self._current_mtime()
        if mtime == self._mtime:
            return None
        self._mtime = mtime

        try:
            config = self.loader.load_config(self.config_path)
        except ConfigurationError as e:
            self._logger.error(
                "Ignoring invalid declarations; keeping previous state",
                error=sanitize_log_input(str(e)),
            )
            return None

        self._logger.info("Reloaded declarations", resources=len(config.resources))
        return list(config.resources)
