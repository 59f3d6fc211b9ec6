"""
BanBridge - Configuration Module
================================

Environment configuration, validation and shared constants.

All settings come from environment variables (optionally loaded from a
.env file by main.py before this module is used).
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from banbridge.core.logger import logger


# =============================================================================
# Configuration Validation
# =============================================================================

class ConfigValidationError(Exception):
    """Raised when required configuration is missing or invalid."""
    pass


@dataclass
class ConfigValidationResult:
    """Result of configuration validation."""
    valid: bool
    missing_required: list[str] = field(default_factory=list)
    missing_optional: list[str] = field(default_factory=list)
    invalid_format: list[tuple[str, str]] = field(default_factory=list)  # (var_name, reason)
    warnings: list[tuple[str, str]] = field(default_factory=list)


# Required environment variables (bridge won't start without these)
REQUIRED_ENV_VARS: list[str] = [
    "BANBRIDGE_BASE_URL",
    "BANBRIDGE_SERVER_TOKEN",
]

# Optional environment variables with their descriptions
OPTIONAL_ENV_VARS: dict[str, str] = {
    "BANBRIDGE_SERVER_KEY": "Metrics push and backend command polling",
    "BANBRIDGE_NET_INTERFACE": "Preferred network interface for bandwidth metrics",
}

# Integer settings: env var -> (default, minimum)
INTEGER_ENV_VARS: dict[str, tuple[int, int]] = {
    "BANBRIDGE_BANS_POLL_SECONDS": (10, 3),
    "BANBRIDGE_STATS_FLUSH_SECONDS": (60, 10),
    "BANBRIDGE_METRICS_SECONDS": (15, 5),
    "BANBRIDGE_PRESENCE_SECONDS": (15, 10),
    "BANBRIDGE_COMMANDS_POLL_SECONDS": (3, 2),
    "BANBRIDGE_HTTP_MAX_ATTEMPTS": (4, 1),
    "BANBRIDGE_HTTP_BASE_BACKOFF_MS": (250, 50),
    "BANBRIDGE_HTTP_MAX_BACKOFF_MS": (5000, 50),
}


# =============================================================================
# Time & Network Constants
# =============================================================================

PLAYTIME_TICK_SECONDS: int = 60  # Playtime credited per online player per tick
PRESENCE_MAX_SECONDS: int = 30  # Presence heartbeat upper bound
REQUEST_TIMEOUT: float = 15.0  # Total timeout per HTTP request (seconds)
CONNECT_TIMEOUT: float = 10.0  # Connect timeout per HTTP request (seconds)
SHUTDOWN_TIMEOUT: float = 10.0  # Max seconds to wait for cleanup tasks

DEFAULT_BANS_CACHE_FILE: str = "data/bans-cache.json"
EPOCH_CURSOR: str = "1970-01-01T00:00:00Z"

LOG_BODY_PREVIEW_LENGTH: int = 240  # Response body preview in failure details


# =============================================================================
# Helpers
# =============================================================================

def _read_int(env_var: str) -> int:
    """Read an integer setting, applying its default and minimum."""
    default, minimum = INTEGER_ENV_VARS[env_var]
    raw = os.getenv(env_var, "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ConfigValidationError(f"Environment variable {env_var} must be an integer")
    return max(minimum, value)


def _clamp(value: int, minimum: int, maximum: int) -> int:
    return max(minimum, min(maximum, value))


def trim_trailing_slash(url: str) -> str:
    """Strip surrounding whitespace and a single trailing slash."""
    url = (url or "").strip()
    return url[:-1] if url.endswith("/") else url


# =============================================================================
# Bridge Configuration
# =============================================================================

@dataclass
class BridgeConfig:
    """Runtime settings for one bridge instance."""
    base_url: str
    server_token: str
    server_key: str = ""
    bans_poll_seconds: int = 10
    stats_flush_seconds: int = 60
    metrics_seconds: int = 15
    presence_seconds: int = 15
    commands_poll_seconds: int = 3
    http_max_attempts: int = 4
    http_base_backoff_ms: int = 250
    http_max_backoff_ms: int = 5000
    bans_cache_file: Path = field(default_factory=lambda: Path(DEFAULT_BANS_CACHE_FILE))
    net_interface: Optional[str] = None

    @classmethod
    def from_env(cls) -> "BridgeConfig":
        """
        Build configuration from environment variables.

        Raises:
            ConfigValidationError: If a numeric setting is malformed.
        """
        base_backoff = _read_int("BANBRIDGE_HTTP_BASE_BACKOFF_MS")
        max_backoff = max(base_backoff, _read_int("BANBRIDGE_HTTP_MAX_BACKOFF_MS"))
        net_interface = os.getenv("BANBRIDGE_NET_INTERFACE", "").strip() or None

        return cls(
            base_url=trim_trailing_slash(os.getenv("BANBRIDGE_BASE_URL", "")),
            server_token=os.getenv("BANBRIDGE_SERVER_TOKEN", "").strip(),
            server_key=os.getenv("BANBRIDGE_SERVER_KEY", "").strip(),
            bans_poll_seconds=_read_int("BANBRIDGE_BANS_POLL_SECONDS"),
            stats_flush_seconds=_read_int("BANBRIDGE_STATS_FLUSH_SECONDS"),
            metrics_seconds=_read_int("BANBRIDGE_METRICS_SECONDS"),
            presence_seconds=_clamp(_read_int("BANBRIDGE_PRESENCE_SECONDS"), 10, PRESENCE_MAX_SECONDS),
            commands_poll_seconds=_read_int("BANBRIDGE_COMMANDS_POLL_SECONDS"),
            http_max_attempts=_read_int("BANBRIDGE_HTTP_MAX_ATTEMPTS"),
            http_base_backoff_ms=base_backoff,
            http_max_backoff_ms=max_backoff,
            bans_cache_file=Path(os.getenv("BANBRIDGE_BANS_CACHE_FILE", "").strip() or DEFAULT_BANS_CACHE_FILE),
            net_interface=net_interface,
        )


def validate_config() -> ConfigValidationResult:
    """
    Validate all environment variables at startup.

    Returns:
        ConfigValidationResult with validation status and any issues found.
    """
    result = ConfigValidationResult(valid=True)

    for var in REQUIRED_ENV_VARS:
        if not os.getenv(var, "").strip():
            result.missing_required.append(var)
            result.valid = False

    for var in OPTIONAL_ENV_VARS:
        if not os.getenv(var, "").strip():
            result.missing_optional.append(var)

    for var in INTEGER_ENV_VARS:
        raw = os.getenv(var, "").strip()
        if raw and not raw.lstrip("-").isdigit():
            result.invalid_format.append((var, "Must be an integer"))
            result.valid = False

    base_url = os.getenv("BANBRIDGE_BASE_URL", "")
    if base_url and not base_url.strip().lower().startswith(("http://", "https://")):
        result.invalid_format.append(("BANBRIDGE_BASE_URL", "Must start with http:// or https://"))
        result.valid = False

    if "127.0.0.1" in base_url or "localhost" in base_url:
        result.warnings.append((
            "BANBRIDGE_BASE_URL",
            "Points to localhost; use http://<BACKEND_HOST>:<PORT> if the backend runs elsewhere",
        ))

    return result


def validate_and_log_config() -> None:
    """
    Validate configuration and log results.

    Raises:
        ConfigValidationError: If required configuration is missing.
    """
    result = validate_config()

    for var in result.missing_required:
        logger.error("Missing Required Configuration", [
            ("Variable", var),
            ("Action", f"Add {var}=<value> to your .env file"),
        ])

    for var, reason in result.invalid_format:
        logger.error("Invalid Configuration Format", [
            ("Variable", var),
            ("Reason", reason),
        ])

    for var, reason in result.warnings:
        logger.warning("Configuration Warning", [
            ("Variable", var),
            ("Note", reason),
        ])

    if result.missing_optional:
        features = [f"{var} ({OPTIONAL_ENV_VARS[var]})" for var in result.missing_optional]
        logger.info("Optional Features Disabled", [
            ("Variables", ", ".join(result.missing_optional)),
            ("Features", ", ".join(features)),
        ])

    if not result.valid:
        raise ConfigValidationError(
            f"Missing required config: {', '.join(result.missing_required)}"
            + (f"; Invalid format: {', '.join(v for v, _ in result.invalid_format)}" if result.invalid_format else "")
        )

    logger.info("Configuration Validated Successfully", [
        ("Required", f"{len(REQUIRED_ENV_VARS)} OK"),
        ("Optional", f"{len(OPTIONAL_ENV_VARS) - len(result.missing_optional)}/{len(OPTIONAL_ENV_VARS)} configured"),
    ])


# =============================================================================
# Module Export
# =============================================================================

__all__ = [
    "BridgeConfig",
    "ConfigValidationError",
    "ConfigValidationResult",
    "validate_config",
    "validate_and_log_config",
    "trim_trailing_slash",
    "PLAYTIME_TICK_SECONDS",
    "REQUEST_TIMEOUT",
    "CONNECT_TIMEOUT",
    "SHUTDOWN_TIMEOUT",
    "EPOCH_CURSOR",
    "LOG_BODY_PREVIEW_LENGTH",
]
