"""
Configuration for the LLM gateway.

Provider configs are plain dataclasses owned by the caller. Loading them
from YAML or the environment is an optional convenience; the client only
ever receives already-built maps.
"""

import os
import re
import logging
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Dict, Any, Optional

import yaml

from .errors import ConfigurationError

logger = logging.getLogger(__name__)

ENV_PATTERN = re.compile(r"\$\{([^}]+)\}")

DEFAULT_TIMEOUT = 30.0
DEFAULT_RETRIES = 3
DEFAULT_TEMPERATURE = 0.7

# Legacy camelCase keys accepted by ProviderConfig.from_dict
_KEY_ALIASES = {
    "apiKey": "api_key",
    "baseURL": "base_url",
    "baseUrl": "base_url",
    "url": "base_url",
    "defaultModel": "default_model",
    "maxTokens": "max_tokens",
    "apiVersion": "api_version",
    "maxRetries": "retries",
}


def interpolate_env(value: Any) -> Any:
    """
    Replace ``${VAR}`` references with environment values.

    Unset variables keep their literal text so the problem stays visible.

    Args:
        value: String to interpolate; other types are returned unchanged

    Returns:
        Interpolated value
    """
    if not isinstance(value, str):
        return value

    def _substitute(match: "re.Match[str]") -> str:
        name = match.group(1)
        resolved = os.environ.get(name)
        if resolved is None:
            logger.warning(f"Environment variable {name} is not set")
            return match.group(0)
        return resolved

    return ENV_PATTERN.sub(_substitute, value)


@dataclass
class ProviderConfig:
    """Configuration for a single provider instance."""
    type: Optional[str] = None
    api_key: Optional[str] = None
    base_url: Optional[str] = None
    timeout: float = DEFAULT_TIMEOUT
    retries: int = DEFAULT_RETRIES
    default_model: Optional[str] = None
    temperature: float = DEFAULT_TEMPERATURE
    max_tokens: Optional[int] = None
    api_version: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProviderConfig":
        """
        Build a config from a plain mapping.

        Unknown keys are kept in ``extra``. Timeouts above 1000 are treated
        as milliseconds, the unit older configuration files used.

        Args:
            data: Mapping with snake_case or camelCase keys

        Returns:
            Provider configuration
        """
        known = {f.name for f in fields(cls)}
        values: Dict[str, Any] = {}
        extra: Dict[str, Any] = dict(data.get("extra") or {})

        for key, value in data.items():
            if key == "extra":
                continue
            key = _KEY_ALIASES.get(key, key)
            if key in known:
                values[key] = value
            else:
                extra[key] = value

        timeout = values.get("timeout")
        if timeout is not None and timeout > 1000:
            values["timeout"] = timeout / 1000.0

        return cls(extra=extra, **values)

    def resolved(self) -> "ProviderConfig":
        """Return a copy with ``${VAR}`` references interpolated."""
        return replace(
            self,
            api_key=interpolate_env(self.api_key),
            base_url=interpolate_env(self.base_url),
            default_model=interpolate_env(self.default_model),
            extra={k: interpolate_env(v) for k, v in self.extra.items()},
        )


@dataclass
class GatewayConfig:
    """Complete gateway configuration."""
    default_provider: Optional[str] = None
    providers: Dict[str, ProviderConfig] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GatewayConfig":
        """Parse configuration dictionary."""
        providers = {}
        for name, provider_data in (data.get("providers") or {}).items():
            if isinstance(provider_data, ProviderConfig):
                providers[name] = provider_data
            else:
                providers[name] = ProviderConfig.from_dict(provider_data or {})

        return cls(
            default_provider=data.get("default_provider") or data.get("defaultProvider"),
            providers=providers,
        )


def apply_env_overrides(
    name: str,
    config: ProviderConfig,
    prefix: str = "LLM_GATEWAY",
) -> ProviderConfig:
    """
    Overlay environment variables onto a provider config.

    For each field the first set variable wins, in the order
    ``{PREFIX}_{PROVIDER}_{KEY}``, ``{PREFIX}_{KEY}``, ``{PROVIDER}_{KEY}``.

    Args:
        name: Provider name used in variable names
        config: Config to overlay
        prefix: Variable prefix

    Returns:
        New config with overrides applied
    """
    provider = name.upper().replace("-", "_")
    overrides: Dict[str, Any] = {}

    for f in fields(ProviderConfig):
        if f.name in ("extra", "type"):
            continue
        key = f.name.upper()
        for var in (f"{prefix}_{provider}_{key}", f"{prefix}_{key}", f"{provider}_{key}"):
            value = os.environ.get(var)
            if value is None:
                continue
            overrides[f.name] = _coerce(f.name, value)
            break

    return replace(config, **overrides) if overrides else config


def _coerce(name: str, value: str) -> Any:
    try:
        if name in ("timeout", "temperature"):
            return float(value)
        if name in ("retries", "max_tokens"):
            return int(value)
    except ValueError:
        raise ConfigurationError(f"Invalid value for {name}: {value!r}", field=name)
    return value


def load_config(config_path: str, env_overrides: bool = False) -> GatewayConfig:
    """
    Load gateway configuration from a YAML file.

    Args:
        config_path: Path to the YAML file
        env_overrides: Overlay environment variables onto every provider

    Returns:
        Loaded configuration

    Raises:
        ConfigurationError: If the file is missing or not valid YAML
    """
    path = Path(config_path)
    if not path.exists():
        raise ConfigurationError(f"Config file not found: {config_path}")

    try:
        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Failed to parse config {config_path}: {e}")

    if not isinstance(data, dict):
        raise ConfigurationError(f"Config {config_path} must be a mapping")

    config = GatewayConfig.from_dict(data)
    if env_overrides:
        config.providers = {
            name: apply_env_overrides(name, provider)
            for name, provider in config.providers.items()
        }

    logger.info(f"Loaded gateway config from {config_path} ({len(config.providers)} providers)")
    return config
