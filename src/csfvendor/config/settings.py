"""
Configuration settings management for csfvendor.

This module handles loading, validating, and saving configuration settings
from YAML files with support for environment variable overrides.

Configuration is loaded from ~/.csfvendor/config.yaml by default, with the
path overridable via the CSFVENDOR_CONFIG environment variable.
"""

import os
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

# Default configuration directory
DEFAULT_CONFIG_DIR = Path.home() / ".csfvendor"
DEFAULT_CONFIG_FILE = DEFAULT_CONFIG_DIR / "config.yaml"

REISSUE_POLICIES = {"fresh", "reuse"}
NOT_APPLICABLE_POLICIES = {"exact", "separate"}


@dataclass
class PortalConfig:
    """HTTP portal settings."""

    host: str = "127.0.0.1"
    port: int = 8787
    # Frontend base URL used to build magic links
    base_url: str = "http://localhost:5173"
    # Empty means organization auth is handled by an upstream identity layer
    org_api_key: str = ""
    # Empty means a key file is generated in the data directory
    session_secret: str = ""
    session_ttl_hours: int = 24
    cookie_name: str = "vendor_session"
    cookie_secure: bool = False


@dataclass
class InvitationConfig:
    """Invitation issuance settings."""

    default_expiry_days: int = 7
    reissue_policy: str = "fresh"


@dataclass
class ComparisonConfig:
    """Comparison engine settings."""

    not_applicable_policy: str = "exact"


@dataclass
class RateLimit:
    """A fixed-window request budget."""

    requests: int
    window_seconds: int


@dataclass
class RateLimitConfig:
    """Per-operation rate limits for the public vendor endpoints."""

    enabled: bool = True
    token_validation: RateLimit = field(default_factory=lambda: RateLimit(10, 60))
    status_update: RateLimit = field(default_factory=lambda: RateLimit(30, 60))


@dataclass
class AssessmentServiceConfig:
    """Where assessments live. An empty url means the local SQLite store."""

    url: str = ""
    api_key: str = ""
    timeout_seconds: float = 10.0


@dataclass
class Settings:
    """
    Complete csfvendor configuration settings.

    Settings are loaded from a YAML configuration file and can be overridden
    by environment variables prefixed with CSFVENDOR_.

    Attributes:
        data_dir: Directory for the database and session key.
        log_level: Logging verbosity (DEBUG, INFO, WARNING, ERROR).
        portal: HTTP portal settings.
        invitations: Invitation issuance settings.
        comparison: Comparison engine settings.
        rate_limits: Public endpoint rate limits.
        assessment_service: Assessment service location.
    """

    data_dir: str = str(DEFAULT_CONFIG_DIR / "data")
    log_level: str = "INFO"

    portal: PortalConfig = field(default_factory=PortalConfig)
    invitations: InvitationConfig = field(default_factory=InvitationConfig)
    comparison: ComparisonConfig = field(default_factory=ComparisonConfig)
    rate_limits: RateLimitConfig = field(default_factory=RateLimitConfig)
    assessment_service: AssessmentServiceConfig = field(
        default_factory=AssessmentServiceConfig
    )


class ConfigurationError(Exception):
    """Raised when configuration is invalid or cannot be loaded."""

    pass


def get_config_path() -> Path:
    """
    Get the configuration file path.

    Returns the path from CSFVENDOR_CONFIG environment variable if set,
    otherwise returns the default path (~/.csfvendor/config.yaml).
    """
    env_path = os.environ.get("CSFVENDOR_CONFIG")
    if env_path:
        return Path(env_path)
    return DEFAULT_CONFIG_FILE


def load_config(config_path: Path | None = None) -> Settings:
    """
    Load configuration from YAML file.

    Reads configuration from the specified path (or default if not provided),
    applies environment variable overrides, and validates the configuration.

    Args:
        config_path: Optional path to configuration file. If not provided,
                    uses CSFVENDOR_CONFIG environment variable or default path.

    Returns:
        Validated Settings instance.

    Raises:
        ConfigurationError: If the configuration file cannot be read or
                          contains invalid settings.
    """
    if config_path is None:
        config_path = get_config_path()

    settings = Settings()

    if config_path.exists():
        try:
            with open(config_path) as f:
                config_data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in config file: {e}") from e
        except OSError as e:
            raise ConfigurationError(f"Cannot read config file: {e}") from e

        if not isinstance(config_data, dict):
            raise ConfigurationError("Config file must contain a mapping")

        try:
            settings = _apply_config_data(settings, config_data)
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"Invalid value in config file: {e}") from e

    try:
        settings = _apply_environment_overrides(settings)
    except ValueError as e:
        raise ConfigurationError(f"Invalid environment override: {e}") from e

    _validate_config(settings)

    return settings


def save_config(settings: Settings, config_path: Path | None = None) -> None:
    """
    Save configuration to YAML file.

    Raises:
        ConfigurationError: If the configuration cannot be written.
    """
    if config_path is None:
        config_path = get_config_path()

    config_path.parent.mkdir(parents=True, exist_ok=True)

    config_data = _settings_to_dict(settings)

    try:
        with open(config_path, "w") as f:
            yaml.safe_dump(config_data, f, default_flow_style=False, sort_keys=False)
    except OSError as e:
        raise ConfigurationError(f"Cannot write config file: {e}") from e


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _apply_config_data(settings: Settings, data: dict[str, Any]) -> Settings:
    """Apply configuration data from parsed YAML to settings."""
    root = data.get("csfvendor", {})

    if "data_dir" in root:
        settings.data_dir = str(root["data_dir"])
    if "log_level" in root:
        settings.log_level = str(root["log_level"]).upper()

    portal = data.get("portal", {})
    if "host" in portal:
        settings.portal.host = str(portal["host"])
    if "port" in portal:
        settings.portal.port = int(portal["port"])
    if "base_url" in portal:
        settings.portal.base_url = str(portal["base_url"])
    if "org_api_key" in portal:
        settings.portal.org_api_key = str(portal["org_api_key"] or "")
    if "session_secret" in portal:
        settings.portal.session_secret = str(portal["session_secret"] or "")
    if "session_ttl_hours" in portal:
        settings.portal.session_ttl_hours = int(portal["session_ttl_hours"])
    if "cookie_name" in portal:
        settings.portal.cookie_name = str(portal["cookie_name"])
    if "cookie_secure" in portal:
        settings.portal.cookie_secure = bool(portal["cookie_secure"])

    invitations = data.get("invitations", {})
    if "default_expiry_days" in invitations:
        settings.invitations.default_expiry_days = int(invitations["default_expiry_days"])
    if "reissue_policy" in invitations:
        settings.invitations.reissue_policy = str(invitations["reissue_policy"]).lower()

    comparison = data.get("comparison", {})
    if "not_applicable_policy" in comparison:
        settings.comparison.not_applicable_policy = str(
            comparison["not_applicable_policy"]
        ).lower()

    rate_limits = data.get("rate_limits", {})
    if "enabled" in rate_limits:
        settings.rate_limits.enabled = bool(rate_limits["enabled"])
    for operation in ("token_validation", "status_update"):
        if operation in rate_limits:
            limit = rate_limits[operation] or {}
            current: RateLimit = getattr(settings.rate_limits, operation)
            setattr(
                settings.rate_limits,
                operation,
                RateLimit(
                    requests=int(limit.get("requests", current.requests)),
                    window_seconds=int(
                        limit.get("window_seconds", current.window_seconds)
                    ),
                ),
            )

    service = data.get("assessment_service", {})
    if "url" in service:
        settings.assessment_service.url = str(service["url"] or "")
    if "api_key" in service:
        settings.assessment_service.api_key = str(service["api_key"] or "")
    if "timeout_seconds" in service:
        settings.assessment_service.timeout_seconds = float(service["timeout_seconds"])

    return settings


def _apply_environment_overrides(settings: Settings) -> Settings:
    """Apply environment variable overrides to settings."""
    env_map: dict[str, tuple[str, Callable[[str], Any]]] = {
        "CSFVENDOR_DATA_DIR": ("data_dir", str),
        "CSFVENDOR_LOG_LEVEL": ("log_level", lambda x: x.upper()),
        "CSFVENDOR_HOST": ("portal.host", str),
        "CSFVENDOR_PORT": ("portal.port", int),
        "CSFVENDOR_BASE_URL": ("portal.base_url", str),
        "CSFVENDOR_ORG_API_KEY": ("portal.org_api_key", str),
        "CSFVENDOR_SESSION_SECRET": ("portal.session_secret", str),
        "CSFVENDOR_COOKIE_SECURE": ("portal.cookie_secure", _parse_bool),
        "CSFVENDOR_REISSUE_POLICY": ("invitations.reissue_policy", lambda x: x.lower()),
        "CSFVENDOR_NOT_APPLICABLE_POLICY": (
            "comparison.not_applicable_policy",
            lambda x: x.lower(),
        ),
        "CSFVENDOR_ASSESSMENT_SERVICE_URL": ("assessment_service.url", str),
        "CSFVENDOR_ASSESSMENT_SERVICE_API_KEY": ("assessment_service.api_key", str),
    }

    for env_var, (attr_path, converter) in env_map.items():
        value = os.environ.get(env_var)
        if value is not None:
            _set_nested_attr(settings, attr_path, converter(value))

    return settings


def _set_nested_attr(obj: Any, path: str, value: Any) -> None:
    """Set a nested attribute on an object using dot notation."""
    parts = path.split(".")
    for part in parts[:-1]:
        obj = getattr(obj, part)
    setattr(obj, parts[-1], value)


def _validate_config(settings: Settings) -> None:
    """
    Validate configuration settings.

    Raises:
        ConfigurationError: If configuration is invalid.
    """
    valid_log_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
    if settings.log_level not in valid_log_levels:
        raise ConfigurationError(
            f"Invalid log_level: {settings.log_level}. "
            f"Must be one of: {', '.join(sorted(valid_log_levels))}"
        )

    if not 0 < settings.portal.port < 65536:
        raise ConfigurationError(f"Invalid port: {settings.portal.port}")

    if not settings.portal.base_url.startswith(("http://", "https://")):
        raise ConfigurationError("portal.base_url must be an http(s) URL")

    if settings.portal.session_ttl_hours < 1:
        raise ConfigurationError("session_ttl_hours must be at least 1")

    if settings.invitations.default_expiry_days < 1:
        raise ConfigurationError("default_expiry_days must be at least 1")

    if settings.invitations.reissue_policy not in REISSUE_POLICIES:
        raise ConfigurationError(
            f"Invalid reissue_policy: {settings.invitations.reissue_policy}. "
            f"Must be one of: {', '.join(sorted(REISSUE_POLICIES))}"
        )

    if settings.comparison.not_applicable_policy not in NOT_APPLICABLE_POLICIES:
        raise ConfigurationError(
            f"Invalid not_applicable_policy: "
            f"{settings.comparison.not_applicable_policy}. "
            f"Must be one of: {', '.join(sorted(NOT_APPLICABLE_POLICIES))}"
        )

    for operation in ("token_validation", "status_update"):
        limit: RateLimit = getattr(settings.rate_limits, operation)
        if limit.requests < 1 or limit.window_seconds < 1:
            raise ConfigurationError(
                f"rate_limits.{operation} requires positive requests and window_seconds"
            )

    if settings.assessment_service.timeout_seconds <= 0:
        raise ConfigurationError("assessment_service.timeout_seconds must be positive")

    url = settings.assessment_service.url
    if url and not url.startswith(("http://", "https://")):
        raise ConfigurationError("assessment_service.url must be an http(s) URL")


def _settings_to_dict(settings: Settings) -> dict[str, Any]:
    """Convert Settings instance to dictionary for YAML serialization."""
    return {
        "csfvendor": {
            "data_dir": settings.data_dir,
            "log_level": settings.log_level,
        },
        "portal": {
            "host": settings.portal.host,
            "port": settings.portal.port,
            "base_url": settings.portal.base_url,
            "org_api_key": settings.portal.org_api_key,
            "session_secret": settings.portal.session_secret,
            "session_ttl_hours": settings.portal.session_ttl_hours,
            "cookie_name": settings.portal.cookie_name,
            "cookie_secure": settings.portal.cookie_secure,
        },
        "invitations": {
            "default_expiry_days": settings.invitations.default_expiry_days,
            "reissue_policy": settings.invitations.reissue_policy,
        },
        "comparison": {
            "not_applicable_policy": settings.comparison.not_applicable_policy,
        },
        "rate_limits": {
            "enabled": settings.rate_limits.enabled,
            "token_validation": {
                "requests": settings.rate_limits.token_validation.requests,
                "window_seconds": settings.rate_limits.token_validation.window_seconds,
            },
            "status_update": {
                "requests": settings.rate_limits.status_update.requests,
                "window_seconds": settings.rate_limits.status_update.window_seconds,
            },
        },
        "assessment_service": {
            "url": settings.assessment_service.url,
            "api_key": settings.assessment_service.api_key,
            "timeout_seconds": settings.assessment_service.timeout_seconds,
        },
    }
