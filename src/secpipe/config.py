"""secpipe configuration from YAML file.

Loads from config/config.yaml with two sections:
- publisher:  Event Hub + Kusto sinks, naming and retry settings
- dimensions: default TTL / refresh interval plus per-dimension overrides

Environment variables are supported using ${VAR_NAME} syntax in YAML files.
Connection settings can also be supplied directly through
SECPIPE_EVENTHUB_CONNECTION_STRING and SECPIPE_KUSTO_CLUSTER_URL, which take
priority over the file.
"""

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from core.resilience.retry import RetryConfig

logger = logging.getLogger(__name__)

# Default config file: config/config.yaml at the repository root
DEFAULT_CONFIG_FILE = Path(__file__).parent.parent.parent / "config" / "config.yaml"

DEFAULT_DESTINATION = "security-events"
DEFAULT_DATABASE_TEMPLATE = "secevents_{}"
DEFAULT_TABLE_NAME = "SecurityEvents"
DEFAULT_DIMENSION_TTL_SECONDS = 900
DEFAULT_REFRESH_INTERVAL_SECONDS = 900


def load_yaml(path: Path) -> Dict[str, Any]:
    """Load YAML file and return dict."""
    if not path.exists():
        return {}
    with open(path, "r") as f:
        return yaml.safe_load(f) or {}


def _expand_env_vars(data: Any) -> Any:
    """Recursively expand ${VAR_NAME} and ${VAR_NAME:-default} environment variables in config data."""
    if isinstance(data, dict):
        return {key: _expand_env_vars(value) for key, value in data.items()}
    elif isinstance(data, list):
        return [_expand_env_vars(item) for item in data]
    elif isinstance(data, str):
        pattern = r"\$\{([^}:]+)(?::-(([^}]*))?)?\}"

        def replacer(match):
            var_name = match.group(1)
            default_value = match.group(2) if match.group(2) is not None else match.group(0)
            return os.getenv(var_name, default_value)

        return re.sub(pattern, replacer, data)
    else:
        return data


def _deep_merge(base: Dict[str, Any], overlay: Dict[str, Any]) -> Dict[str, Any]:
    """Deep merge overlay into base dict."""
    result = base.copy()
    for key, value in overlay.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


@dataclass
class PublisherConfig:
    """Settings for the dual-sink event publisher.

    database_name_template is applied with str.format to the lower-cased
    owner id ("unknown" when the event has none).
    """

    # Message bus (Event Hub)
    eventhub_connection_string: str = ""
    default_destination: str = DEFAULT_DESTINATION

    # Analytical store (Kusto / Eventhouse)
    kusto_cluster_url: str = ""
    database_name_template: str = DEFAULT_DATABASE_TEMPLATE
    default_table_name: str = DEFAULT_TABLE_NAME
    query_timeout_seconds: int = 120

    # Retry
    max_attempts: int = 3
    retry_base_delay_seconds: float = 1.0
    retry_max_delay_seconds: float = 30.0

    def __post_init__(self):
        """Ensure proper types from YAML/env vars."""
        self.query_timeout_seconds = int(self.query_timeout_seconds)
        self.max_attempts = int(self.max_attempts)
        self.retry_base_delay_seconds = float(self.retry_base_delay_seconds)
        self.retry_max_delay_seconds = float(self.retry_max_delay_seconds)

    def retry_config(self) -> RetryConfig:
        """Build the retry settings shared by both sinks."""
        return RetryConfig(
            max_attempts=self.max_attempts,
            base_delay=self.retry_base_delay_seconds,
            max_delay=self.retry_max_delay_seconds,
        )

    def validate(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("publisher.max_attempts must be at least 1")
        if not self.default_destination:
            raise ValueError("publisher.default_destination must not be empty")
        if not self.default_table_name:
            raise ValueError("publisher.default_table_name must not be empty")
        if "{}" not in self.database_name_template and "{0}" not in self.database_name_template:
            raise ValueError(
                "publisher.database_name_template must contain a '{}' placeholder "
                f"for the owner id, got '{self.database_name_template}'"
            )


@dataclass
class DimensionOverride:
    """Per-dimension TTL / refresh interval (None falls back to the defaults)."""

    ttl_seconds: Optional[float] = None
    refresh_interval_seconds: Optional[float] = None


@dataclass
class DimensionSettings:
    """Cache and refresh settings for reference-data dimensions.

    Configuration structure:
        dimensions:
          default_ttl_seconds: 900
          default_refresh_interval_seconds: 900
          overrides:
            clusters:
              ttl_seconds: 300
              refresh_interval_seconds: 0   # 0 disables background refresh
    """

    default_ttl_seconds: float = DEFAULT_DIMENSION_TTL_SECONDS
    default_refresh_interval_seconds: float = DEFAULT_REFRESH_INTERVAL_SECONDS
    overrides: Dict[str, DimensionOverride] = field(default_factory=dict)

    def ttl_for(self, name: str) -> float:
        override = self.overrides.get(name)
        if override is not None and override.ttl_seconds is not None:
            return override.ttl_seconds
        return self.default_ttl_seconds

    def refresh_interval_for(self, name: str) -> Optional[float]:
        """Refresh interval for a dimension, or None when refresh is disabled."""
        override = self.overrides.get(name)
        interval = self.default_refresh_interval_seconds
        if override is not None and override.refresh_interval_seconds is not None:
            interval = override.refresh_interval_seconds
        return interval if interval > 0 else None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DimensionSettings":
        overrides = {}
        for name, values in (data.get("overrides") or {}).items():
            values = values or {}
            overrides[name] = DimensionOverride(
                ttl_seconds=_optional_float(values.get("ttl_seconds")),
                refresh_interval_seconds=_optional_float(
                    values.get("refresh_interval_seconds")
                ),
            )
        return cls(
            default_ttl_seconds=float(
                data.get("default_ttl_seconds", DEFAULT_DIMENSION_TTL_SECONDS)
            ),
            default_refresh_interval_seconds=float(
                data.get(
                    "default_refresh_interval_seconds", DEFAULT_REFRESH_INTERVAL_SECONDS
                )
            ),
            overrides=overrides,
        )


def _optional_float(value: Any) -> Optional[float]:
    return None if value is None or value == "" else float(value)


@dataclass
class SecpipeConfig:
    publisher: PublisherConfig = field(default_factory=PublisherConfig)
    dimensions: DimensionSettings = field(default_factory=DimensionSettings)


def load_config(
    config_path: Optional[Path] = None,
    overrides: Optional[Dict[str, Any]] = None,
) -> SecpipeConfig:
    """Load secpipe configuration.

    Configuration priority (highest to lowest):
    1. Environment variables (SECPIPE_*)
    2. overrides argument (deep merged over the file)
    3. config.yaml file ('publisher:' and 'dimensions:' keys)
    4. Dataclass defaults

    A missing file is not an error: everything has a default, and the
    connection settings can come from the environment alone.
    """
    config_path = config_path or DEFAULT_CONFIG_FILE

    yaml_data: Dict[str, Any] = {}
    if config_path.exists():
        logger.info(f"Loading configuration from file: {config_path}")
        yaml_data = _expand_env_vars(load_yaml(config_path))
    else:
        logger.debug(f"No configuration file at {config_path}, using defaults")

    if overrides:
        logger.debug(f"Applying overrides: {list(overrides.keys())}")
        yaml_data = _deep_merge(yaml_data, overrides)

    publisher_data = dict(yaml_data.get("publisher") or {})

    env_overrides = {
        "eventhub_connection_string": os.getenv("SECPIPE_EVENTHUB_CONNECTION_STRING"),
        "default_destination": os.getenv("SECPIPE_DEFAULT_DESTINATION"),
        "kusto_cluster_url": os.getenv("SECPIPE_KUSTO_CLUSTER_URL"),
        "database_name_template": os.getenv("SECPIPE_DATABASE_NAME_TEMPLATE"),
        "default_table_name": os.getenv("SECPIPE_DEFAULT_TABLE_NAME"),
        "max_attempts": os.getenv("SECPIPE_MAX_ATTEMPTS"),
    }
    for key, value in env_overrides.items():
        if value is not None:
            publisher_data[key] = value

    known = PublisherConfig.__dataclass_fields__.keys()
    unknown = sorted(set(publisher_data) - set(known))
    if unknown:
        logger.warning(f"Ignoring unknown publisher settings: {unknown}")

    publisher = PublisherConfig(**{k: v for k, v in publisher_data.items() if k in known})
    publisher.validate()

    dimensions = DimensionSettings.from_dict(yaml_data.get("dimensions") or {})

    logger.debug(
        "Configuration loaded",
        extra={
            "destination": publisher.default_destination,
            "max_attempts": publisher.max_attempts,
            "ttl_seconds": dimensions.default_ttl_seconds,
        },
    )
    return SecpipeConfig(publisher=publisher, dimensions=dimensions)


__all__ = [
    "PublisherConfig",
    "DimensionOverride",
    "DimensionSettings",
    "SecpipeConfig",
    "load_config",
    "load_yaml",
]
