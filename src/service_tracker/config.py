"""
Configuration for the service tracker.

Configuration is supplied at construction time and never re-read. A YAML file
holds shared defaults plus a ``services`` list; each entry expands into one
``TrackerConfig``. Strings may reference environment variables using the
``${VAR:-default}`` syntax.
"""

import builtins
import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .errors import ConfigurationError, ValidationError

logger = logging.getLogger(__name__)

DEFAULT_PRIMARY_APPLICATION = "sdc"
DEFAULT_INVENTORY_URL_TEMPLATE = "http://vmapi.{location}.{domain}"


@dataclass
class HTTPClientConfig:
    """HTTP client settings shared by directory and inventory clients"""

    # Timeouts
    request_timeout: float = 10.0
    connect_timeout: float = 5.0

    # Pool sizing
    max_connections: int = 100
    max_connections_per_host: int = 30

    user_agent: str = "service-tracker"

    @classmethod
    def from_dict(cls, data: builtins.dict[str, Any]) -> "HTTPClientConfig":
        return cls(
            request_timeout=float(data.get("request_timeout", 10.0)),
            connect_timeout=float(data.get("connect_timeout", 5.0)),
            max_connections=int(data.get("max_connections", 100)),
            max_connections_per_host=int(data.get("max_connections_per_host", 30)),
            user_agent=data.get("user_agent", "service-tracker"),
        )

    def validate(self) -> None:
        if self.request_timeout <= 0:
            raise ValidationError("HTTP request timeout must be positive")
        if self.connect_timeout <= 0:
            raise ValidationError("HTTP connect timeout must be positive")
        if self.max_connections <= 0 or self.max_connections_per_host <= 0:
            raise ValidationError("HTTP connection limits must be positive")


@dataclass
class LoggingConfig:
    """Logging settings."""

    level: str = "INFO"
    json_format: bool = False

    @classmethod
    def from_dict(cls, data: builtins.dict[str, Any]) -> "LoggingConfig":
        return cls(
            level=str(data.get("level", "INFO")).upper(),
            json_format=bool(data.get("json", False)),
        )

    def validate(self) -> None:
        valid_levels = ["CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG", "NOTSET", "OFF"]
        if self.level not in valid_levels:
            raise ValidationError(f"Invalid log level: {self.level}")


@dataclass
class TrackerConfig:
    """Configuration for tracking one application/service pair."""

    service: str
    directory_url: str
    dns_domain: str
    min_poll: float = 10.0
    max_poll: float = 60.0
    shard: str | None = None
    primary_application: str = DEFAULT_PRIMARY_APPLICATION
    inventory_url_template: str = DEFAULT_INVENTORY_URL_TEMPLATE
    tag_prefix: str = ""

    @property
    def application(self) -> str:
        return self.service.split("/", 1)[0]

    @property
    def service_name(self) -> str:
        return self.service.split("/", 1)[1]

    @property
    def is_primary_application(self) -> bool:
        return self.application == self.primary_application

    def inventory_url(self, location: str) -> str:
        """Build the inventory endpoint URL for a location."""
        return self.inventory_url_template.format(location=location, domain=self.dns_domain)

    @classmethod
    def from_dict(cls, data: builtins.dict[str, Any]) -> "TrackerConfig":
        try:
            return cls(
                service=data["service"],  # Required
                directory_url=data["directory_url"],  # Required
                dns_domain=data["dns_domain"],  # Required
                min_poll=float(data.get("min_poll", 10.0)),
                max_poll=float(data.get("max_poll", 60.0)),
                shard=_optional_str(data.get("shard")),
                primary_application=data.get("primary_application", DEFAULT_PRIMARY_APPLICATION),
                inventory_url_template=data.get(
                    "inventory_url_template", DEFAULT_INVENTORY_URL_TEMPLATE
                ),
                tag_prefix=data.get("tag_prefix", ""),
            )
        except KeyError as e:
            raise ValidationError(f"Missing required tracker setting: {e.args[0]}") from e
        except (TypeError, ValueError) as e:
            raise ValidationError(f"Invalid tracker setting: {e}") from e

    def validate(self) -> None:
        parts = self.service.split("/")
        if len(parts) != 2 or not all(parts):
            raise ValidationError(
                f'Service must be given as "<application>/<service>": {self.service!r}'
            )
        if not self.directory_url:
            raise ValidationError("Directory URL is required")
        if not self.dns_domain:
            raise ValidationError("DNS domain is required")
        if self.min_poll <= 0:
            raise ValidationError("Minimum poll interval must be positive")
        if self.max_poll < self.min_poll:
            raise ValidationError(
                f"Maximum poll interval ({self.max_poll}) is below the minimum ({self.min_poll})"
            )
        if "{location}" not in self.inventory_url_template:
            raise ValidationError("Inventory URL template must contain {location}")


@dataclass
class AppConfig:
    """Process-wide configuration: shared settings plus one tracker per service."""

    trackers: builtins.list[TrackerConfig] = field(default_factory=list)
    http: HTTPClientConfig = field(default_factory=HTTPClientConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    metrics_port: int | None = None

    @classmethod
    def from_dict(cls, data: builtins.dict[str, Any]) -> "AppConfig":
        services = data.get("services") or []
        if isinstance(services, str):
            services = [services]
        if not isinstance(services, list):
            raise ValidationError("services must be a list")

        shared = {
            key: value
            for key, value in data.items()
            if key not in {"services", "http", "logging", "metrics_port"}
        }

        trackers = []
        for entry in services:
            if isinstance(entry, str):
                entry = {"service": entry}
            if not isinstance(entry, dict):
                raise ValidationError(f"Invalid services entry: {entry!r}")
            trackers.append(TrackerConfig.from_dict({**shared, **entry}))

        metrics_port = data.get("metrics_port")
        return cls(
            trackers=trackers,
            http=HTTPClientConfig.from_dict(data.get("http") or {}),
            logging=LoggingConfig.from_dict(data.get("logging") or {}),
            metrics_port=int(metrics_port) if metrics_port is not None else None,
        )

    def validate(self) -> None:
        if not self.trackers:
            raise ValidationError("At least one service must be configured")

        seen: builtins.set[str] = set()
        for tracker in self.trackers:
            tracker.validate()
            if tracker.service in seen:
                raise ValidationError(f"Service configured more than once: {tracker.service}")
            seen.add(tracker.service)

        self.http.validate()
        self.logging.validate()

        if self.metrics_port is not None and not 0 < self.metrics_port <= 65535:
            raise ValidationError(f"Invalid port number: {self.metrics_port}")


def _optional_str(value: Any) -> str | None:
    if value is None or value == "":
        return None
    return str(value)


def _expand_env_vars(obj: Any) -> Any:
    """Recursively expand environment variables in configuration."""
    if isinstance(obj, dict):
        return {key: _expand_env_vars(value) for key, value in obj.items()}
    if isinstance(obj, list):
        return [_expand_env_vars(item) for item in obj]
    if isinstance(obj, str):
        return _expand_env_var_string(obj)
    return obj


def _expand_env_var_string(value: str) -> str:
    """Expand environment variables in a string using ${VAR:-default} syntax."""
    pattern = r"\$\{([^}]+)\}"

    def replace_var(match):
        var_expr = match.group(1)
        if ":-" in var_expr:
            var_name, default_value = var_expr.split(":-", 1)
            return os.environ.get(var_name, default_value)
        return os.environ.get(var_expr, "")

    return re.sub(pattern, replace_var, value)


def load_config(path: str | Path) -> AppConfig:
    """Load, expand and validate a YAML configuration file."""
    path = Path(path)
    try:
        with open(path, encoding="utf-8") as file:
            raw = yaml.safe_load(file) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Error parsing YAML file {path}: {e}") from e
    except OSError as e:
        raise ConfigurationError(f"Error reading file {path}: {e}") from e

    if not isinstance(raw, dict):
        raise ConfigurationError(f"Configuration root in {path} must be a mapping")

    config = AppConfig.from_dict(_expand_env_vars(raw))
    config.validate()
    logger.debug("Loaded %d tracker(s) from %s", len(config.trackers), path)
    return config
