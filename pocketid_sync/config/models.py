"""Configuration models for pocketid-sync."""

from pathlib import Path
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, SecretStr, field_validator, model_validator

from pocketid_sync.core.declared import ResourceDeclaration
from pocketid_sync.security.validation import validate_url


class PocketIDConfig(BaseModel):
    """Pocket ID API configuration."""

    endpoint: str = Field(
        ...,
        description="Base URL of the Pocket ID instance (e.g., 'https://id.example.com')",
        min_length=1
    )
    api_key: SecretStr = Field(
        ...,
        description="Pocket ID API key, sent as X-API-KEY"
    )
    timeout_seconds: int = Field(
        30,
        description="Timeout for Pocket ID API calls in seconds",
        ge=1
    )
    rate_limit_per_minute: int = Field(
        600,
        description="Rate limit for Pocket ID API calls per minute",
        ge=1
    )
    max_retries: int = Field(
        3,
        description="Maximum number of retry attempts for transient failures",
        ge=0
    )
    retry_delay_seconds: float = Field(
        1.0,
        description="Initial delay between retries in seconds",
        ge=0.1
    )

    @field_validator("endpoint")
    @classmethod
    def validate_endpoint(cls, v: str) -> str:
        """Validate the endpoint is an http(s) URL and strip the trailing slash."""
        v = v.strip().rstrip("/")
        if not validate_url(v):
            raise ValueError("Endpoint must be a valid http or https URL")
        return v

    @field_validator("api_key")
    @classmethod
    def validate_api_key(cls, v: SecretStr) -> SecretStr:
        if not v.get_secret_value().strip():
            raise ValueError("API key must not be empty")
        return v


class ReconcileConfig(BaseModel):
    """Reconciliation loop configuration."""

    poll_interval_seconds: float = Field(
        60.0,
        description="Seconds between reconciliation passes",
        gt=0
    )
    cycle_timeout_seconds: Optional[float] = Field(
        120.0,
        description="Deadline for a single resource cycle; null disables it",
        gt=0
    )
    max_concurrent: int = Field(
        10,
        description="Maximum number of resource cycles running at once",
        ge=1
    )


class StateManagementConfig(BaseModel):
    """State management configuration."""

    state_dir: Path = Field(
        Path("./state"),
        description="Directory to store resource status"
    )


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        "INFO",
        description="Log level"
    )
    format: Literal["json", "text"] = Field(
        "text",
        description="Log output format"
    )

    @field_validator("level", mode="before")
    @classmethod
    def normalize_level(cls, v: object) -> object:
        return v.upper() if isinstance(v, str) else v


class SyncConfig(BaseModel):
    """Main configuration."""

    pocketid: PocketIDConfig = Field(
        ...,
        description="Pocket ID API configuration"
    )
    reconcile: ReconcileConfig = Field(
        default_factory=ReconcileConfig,
        description="Reconciliation loop configuration"
    )
    state_management: StateManagementConfig = Field(
        default_factory=StateManagementConfig,
        description="State management configuration"
    )
    logging: LoggingConfig = Field(
        default_factory=LoggingConfig,
        description="Logging configuration"
    )
    resources: List[ResourceDeclaration] = Field(
        default_factory=list,
        description="Declared resources to reconcile"
    )

    @model_validator(mode="after")
    def validate_unique_resources(self) -> "SyncConfig":
        """Each (kind, name) pair may only be declared once."""
        seen = set()
        for resource in self.resources:
            if resource.key in seen:
                raise ValueError(
                    f"Duplicate resource declaration: {resource.kind.value} '{resource.name}'"
                )
            seen.add(resource.key)
        return self
