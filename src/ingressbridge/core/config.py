"""Configuration types with environment variable support.

All settings can be configured via environment variables with the
INGRESSBRIDGE_ prefix. Example: INGRESSBRIDGE_REQUIRE_HOSTNAME=true
suppresses catch-all HTTPRoutes for Ingresses without hostnames.
"""

from __future__ import annotations

import tomllib
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from ingressbridge.model.resources import NamespacePolicy
from ingressbridge.model.route import PathMatchType


def load_config_from_file(path: str | Path) -> dict[str, Any]:
    """Load configuration from a YAML or TOML file.

    Args:
        path: Path to the configuration file (.yaml, .yml, or .toml)

    Returns:
        Configuration dictionary

    Raises:
        FileNotFoundError: If the config file doesn't exist
        ValueError: If the config file has encoding errors, invalid syntax, or unsupported format
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    try:
        content = path.read_text(encoding="utf-8")
    except UnicodeDecodeError as e:
        raise ValueError(f"Config file encoding error in {path}: {e}") from e

    try:
        if path.suffix in (".yaml", ".yml"):
            return yaml.safe_load(content) or {}
        elif path.suffix == ".toml":
            return tomllib.loads(content)
        else:
            raise ValueError(f"Unsupported config format: {path.suffix}")
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML in {path}: {e}") from e
    except tomllib.TOMLDecodeError as e:
        raise ValueError(f"Invalid TOML in {path}: {e}") from e


def flatten_config(config: dict[str, Any], prefix: str = "") -> dict[str, Any]:
    result: dict[str, Any] = {}
    for key, value in config.items():
        full_key = f"{prefix}_{key}" if prefix else key
        if isinstance(value, dict):
            result.update(flatten_config(value, full_key))
        else:
            result[full_key] = value
    return result


class BridgeConfig(BaseSettings):
    """Engine and controller configuration.

    The first group of settings changes what the synthesizer emits; the
    second group tunes the controller that drives it.

    Example:
        config = get_config()
        if config.require_hostname:
            ...
    """

    model_config = SettingsConfigDict(
        env_prefix="INGRESSBRIDGE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    require_hostname: bool = Field(
        default=False,
        description="Never emit a catch-all HTTPRoute for Ingresses that only have a default backend.",
    )
    cross_namespace: bool = Field(
        default=False,
        description="Keep the backend's own namespace on backend refs instead of pinning the Ingress namespace.",
    )
    strict_single_host: bool = Field(
        default=False,
        description="Reject Ingresses that declare more than one distinct hostname.",
    )
    soft_unresolved_ports: bool = Field(
        default=False,
        description="Emit backend refs without a port when a named service port does not exist.",
    )
    implementation_specific_match: PathMatchType = Field(
        default=PathMatchType.PATH_PREFIX,
        description="HTTPRoute path match used for Ingress paths of type ImplementationSpecific.",
    )
    default_namespace_policy: NamespacePolicy = Field(
        default=NamespacePolicy.SAME,
        description="Listener allowedRoutes policy assumed when a Gateway listener declares none.",
    )
    prune_stale_routes: bool = Field(
        default=True,
        description="Delete owned HTTPRoutes whose hostname no longer appears on the Ingress.",
    )

    watch_namespace: str | None = Field(
        default=None,
        description="Only watch Ingresses in this namespace. None watches the whole cluster.",
    )
    workers: int = Field(
        default=4,
        ge=1,
        description="Number of concurrent reconcile workers.",
    )
    max_retries: int = Field(
        default=5,
        ge=0,
        description="Retries for a failing Ingress before it is dropped until its next change.",
    )
    retry_base_delay: float = Field(
        default=0.5,
        description="Initial retry delay (seconds), doubled on each failure.",
    )
    retry_max_delay: float = Field(
        default=30.0,
        description="Maximum retry delay (seconds).",
    )
    request_timeout: float = Field(
        default=30.0,
        description="Timeout for a single Kubernetes API request (seconds).",
    )
    watch_timeout: int = Field(
        default=300,
        description="Server-side timeout for a single watch stream (seconds) before it is re-opened.",
    )
    log_level: Literal["debug", "info", "warning", "error"] = Field(
        default="info",
        description="Log level.",
    )
    log_json: bool = Field(
        default=False,
        description="Render log events as JSON lines.",
    )

    @classmethod
    def from_file(cls, path: str | Path, **overrides: Any) -> BridgeConfig:
        """Build a configuration from a YAML or TOML file.

        Nested sections are flattened with underscores, so
        ``{"retry": {"max_delay": 10}}`` sets ``retry_max_delay``.
        Keyword overrides win over file values.
        """
        values = flatten_config(load_config_from_file(path))
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)

    def to_display_dict(self) -> dict[str, Any]:
        """Export current configuration as a nested dictionary for display."""
        return {
            "synthesis": {
                "require_hostname": self.require_hostname,
                "cross_namespace": self.cross_namespace,
                "strict_single_host": self.strict_single_host,
                "soft_unresolved_ports": self.soft_unresolved_ports,
                "implementation_specific_match": self.implementation_specific_match.value,
                "default_namespace_policy": self.default_namespace_policy.value,
                "prune_stale_routes": self.prune_stale_routes,
            },
            "controller": {
                "watch_namespace": self.watch_namespace,
                "workers": self.workers,
                "max_retries": self.max_retries,
                "retry_base_delay": self.retry_base_delay,
                "retry_max_delay": self.retry_max_delay,
                "request_timeout": self.request_timeout,
                "watch_timeout": self.watch_timeout,
            },
            "logging": {
                "log_level": self.log_level,
                "log_json": self.log_json,
            },
        }


_config: BridgeConfig | None = None


def get_config() -> BridgeConfig:
    """Get the global configuration instance.

    Returns a cached instance of BridgeConfig that reads from environment variables.
    The instance is created once and cached for the lifetime of the process.

    To reload config (e.g., in tests), call clear_config() first.
    """
    global _config
    if _config is None:
        _config = BridgeConfig()
    return _config


def set_config(config: BridgeConfig) -> None:
    """Replace the cached configuration, e.g. after CLI overrides."""
    global _config
    _config = config


def clear_config() -> None:
    """Clear the cached configuration.

    Call this to force reloading of environment variables on next get_config() call.
    Useful for testing.
    """
    global _config
    _config = None
