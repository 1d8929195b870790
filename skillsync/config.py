"""Configuration for skillsync.

Settings are layered, lowest precedence first:
1. Built-in defaults
2. User config file (~/.config/skillsync/config.yml)
3. Environment variables prefixed with SKILLSYNC_
"""

from __future__ import annotations

import os
import ssl
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Optional, Union

import yaml

from skillsync.errors import ConfigError


# =============================================================================
# Configuration Paths
# =============================================================================

USER_CONFIG_DIR = Path.home() / ".config" / "skillsync"
USER_CONFIG_FILE = USER_CONFIG_DIR / "config.yml"
REPOSITORIES_FILE = USER_CONFIG_DIR / "repositories.yaml"
DEFAULT_CACHE_DIR = USER_CONFIG_DIR / "cache"
DEFAULT_SKILLS_DIR = Path.home() / ".claude" / "skills"

# Schema version written to new config files
CONFIG_VERSION = "1.0"

# Environment variable prefix
ENV_PREFIX = "SKILLSYNC_"


# =============================================================================
# Configuration Enums
# =============================================================================


class LogLevel(Enum):
    """Log levels."""

    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


# =============================================================================
# Configuration Dataclasses
# =============================================================================


@dataclass
class ProxyConfig:
    """Proxy configuration for requests to the remote host.

    Attributes:
        https_proxy: HTTPS proxy URL
        http_proxy: HTTP proxy URL
        all_proxy: Proxy for every scheme (http, socks5, socks5h)
        no_proxy: Comma-separated list of hosts to bypass proxy
        ssl_verify: Whether to verify SSL certificates
        ca_bundle: Path to custom CA bundle
    """

    https_proxy: Optional[str] = None
    http_proxy: Optional[str] = None
    all_proxy: Optional[str] = None
    no_proxy: Optional[str] = None
    ssl_verify: bool = True
    ca_bundle: Optional[str] = None

    @property
    def url(self) -> Optional[str]:
        """The proxy to use, in HTTPS, HTTP, ALL order."""
        return self.https_proxy or self.http_proxy or self.all_proxy

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "https_proxy": self.https_proxy,
            "http_proxy": self.http_proxy,
            "all_proxy": self.all_proxy,
            "no_proxy": self.no_proxy,
            "ssl_verify": self.ssl_verify,
            "ca_bundle": self.ca_bundle,
        }

    @classmethod
    def from_dict(cls, data: dict) -> ProxyConfig:
        """Create from dictionary."""
        return cls(
            https_proxy=data.get("https_proxy"),
            http_proxy=data.get("http_proxy"),
            all_proxy=data.get("all_proxy"),
            no_proxy=data.get("no_proxy"),
            ssl_verify=data.get("ssl_verify", True),
            ca_bundle=data.get("ca_bundle"),
        )


@dataclass
class SkillSyncConfig:
    """Main skillsync configuration.

    Attributes:
        version: Configuration schema version
        skills_dir: Directory skills are installed into
        cache_dir: Directory holding catalog snapshots
        log_level: Logging level
        github_token: Optional token sent to the GitHub API
        request_timeout: Total per-request timeout in seconds
        connect_timeout: Connection timeout in seconds
        max_retries: Attempts per request on transport errors
        max_scan_depth: How deep to look for skills below a base path
        proxy: Proxy configuration
    """

    version: str = CONFIG_VERSION
    skills_dir: Optional[str] = None
    cache_dir: Optional[str] = None
    log_level: LogLevel = LogLevel.INFO
    github_token: Optional[str] = None
    request_timeout: float = 60.0
    connect_timeout: float = 15.0
    max_retries: int = 3
    max_scan_depth: int = 3
    proxy: ProxyConfig = field(default_factory=ProxyConfig)

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization (token excluded)."""
        return {
            "version": self.version,
            "skills_dir": self.skills_dir,
            "cache_dir": self.cache_dir,
            "log_level": self.log_level.value,
            "request_timeout": self.request_timeout,
            "connect_timeout": self.connect_timeout,
            "max_retries": self.max_retries,
            "max_scan_depth": self.max_scan_depth,
            "proxy": self.proxy.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> SkillSyncConfig:
        """Create from dictionary.

        Raises:
            ConfigError: If a value has the wrong type
        """
        log_level = data.get("log_level", "info")
        try:
            return cls(
                version=str(data.get("version", CONFIG_VERSION)),
                skills_dir=data.get("skills_dir"),
                cache_dir=data.get("cache_dir"),
                log_level=LogLevel(str(log_level).lower()) if log_level else LogLevel.INFO,
                github_token=data.get("github_token"),
                request_timeout=float(data.get("request_timeout", 60.0)),
                connect_timeout=float(data.get("connect_timeout", 15.0)),
                max_retries=int(data.get("max_retries", 3)),
                max_scan_depth=int(data.get("max_scan_depth", 3)),
                proxy=ProxyConfig.from_dict(data.get("proxy") or {}),
            )
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Invalid configuration value: {e}") from e

    def to_yaml(self) -> str:
        """Convert to YAML string."""
        return yaml.dump(
            self.to_dict(),
            default_flow_style=False,
            allow_unicode=True,
            sort_keys=False,
        )


# =============================================================================
# Configuration Loading
# =============================================================================


def get_user_config_path() -> Path:
    """Get the path to user config file."""
    return USER_CONFIG_FILE


def get_repositories_path() -> Path:
    """Get the path to the repository list file."""
    return REPOSITORIES_FILE


def load_config_file(path: Path) -> dict:
    """Load configuration from a YAML file.

    Args:
        path: Path to configuration file

    Returns:
        Configuration dictionary (empty if the file does not exist)

    Raises:
        ConfigError: If file cannot be loaded
    """
    if not path.exists():
        return {}

    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"Expected a mapping in {path}")
    return data


def save_config_file(path: Path, config: dict) -> None:
    """Save configuration to a YAML file.

    The file is written next to its destination and then renamed, so a
    crash never leaves a truncated file behind.

    Args:
        path: Path to configuration file
        config: Configuration dictionary
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_name(path.name + ".tmp")
    with open(tmp_path, "w", encoding="utf-8") as f:
        yaml.dump(
            config,
            f,
            default_flow_style=False,
            allow_unicode=True,
            sort_keys=False,
        )
    os.replace(tmp_path, path)


def load_env_overrides() -> dict:
    """Load configuration overrides from environment variables.

    Environment variables with SKILLSYNC_ prefix are converted to config keys.
    For example, SKILLSYNC_SKILLS_DIR becomes skills_dir.

    Returns:
        Dictionary of environment overrides
    """
    overrides: dict[str, Any] = {}

    for key, value in os.environ.items():
        if key.startswith(ENV_PREFIX):
            config_key = key[len(ENV_PREFIX):].lower()

            # Handle boolean values
            if value.lower() in ("true", "yes"):
                overrides[config_key] = True
            elif value.lower() in ("false", "no"):
                overrides[config_key] = False
            else:
                overrides[config_key] = value

    return overrides


def merge_configs(*configs: dict) -> dict:
    """Merge multiple configuration dictionaries.

    Later configs override earlier ones. Nested dicts are merged recursively.

    Args:
        *configs: Configuration dictionaries to merge

    Returns:
        Merged configuration
    """
    result: dict = {}

    for config in configs:
        for key, value in config.items():
            if (
                key in result
                and isinstance(result[key], dict)
                and isinstance(value, dict)
            ):
                result[key] = merge_configs(result[key], value)
            else:
                result[key] = value

    return result


# =============================================================================
# Global Configuration
# =============================================================================

_config: Optional[SkillSyncConfig] = None


def get_config(reload: bool = False) -> SkillSyncConfig:
    """Get the global skillsync configuration.

    Loads configuration from (in order of precedence):
    1. Environment variables (highest)
    2. User config (~/.config/skillsync/config.yml)
    3. Default values (lowest)

    Args:
        reload: Force reload of configuration

    Returns:
        SkillSyncConfig instance
    """
    global _config

    if _config is not None and not reload:
        return _config

    user_config = load_config_file(get_user_config_path())
    env_overrides = load_env_overrides()

    merged = merge_configs(user_config, env_overrides)
    _config = SkillSyncConfig.from_dict(merged)

    return _config


def set_config(config: SkillSyncConfig) -> None:
    """Set the global configuration."""
    global _config
    _config = config


def reset_config() -> None:
    """Reset the global configuration to None (forces reload on next get)."""
    global _config
    _config = None


def save_user_config(config: SkillSyncConfig) -> Path:
    """Save configuration to user config file.

    Returns:
        Path to saved config file
    """
    path = get_user_config_path()
    save_config_file(path, config.to_dict())
    return path


# =============================================================================
# Configuration Validation
# =============================================================================


def validate_config(config: SkillSyncConfig) -> list[str]:
    """Validate a configuration.

    Returns:
        List of validation errors (empty if valid)
    """
    errors = []

    if config.version != CONFIG_VERSION:
        errors.append(f"Unsupported config version: {config.version} (expected {CONFIG_VERSION})")
    if config.request_timeout <= 0:
        errors.append("request_timeout must be positive")
    if config.connect_timeout <= 0:
        errors.append("connect_timeout must be positive")
    if config.max_retries < 1:
        errors.append("max_retries must be at least 1")
    if config.max_scan_depth < 0:
        errors.append("max_scan_depth cannot be negative")

    if config.proxy.ca_bundle and not Path(config.proxy.ca_bundle).exists():
        errors.append(f"CA bundle not found: {config.proxy.ca_bundle}")

    return errors


# =============================================================================
# Configuration Helpers
# =============================================================================


def get_skills_directory(config: Optional[SkillSyncConfig] = None) -> Path:
    """Get the configured skills directory."""
    config = config or get_config()
    if config.skills_dir:
        return Path(config.skills_dir).expanduser()
    return DEFAULT_SKILLS_DIR


def get_cache_directory(config: Optional[SkillSyncConfig] = None) -> Path:
    """Get the configured cache directory."""
    config = config or get_config()
    if config.cache_dir:
        return Path(config.cache_dir).expanduser()
    return DEFAULT_CACHE_DIR


def get_github_token(config: Optional[SkillSyncConfig] = None) -> Optional[str]:
    """Get the GitHub token from config, falling back to GITHUB_TOKEN."""
    config = config or get_config()
    return config.github_token or os.environ.get("GITHUB_TOKEN") or None


def get_proxy_url(config: Optional[SkillSyncConfig] = None) -> Optional[str]:
    """Get the configured proxy URL.

    None means no proxy is configured and httpx reads HTTPS_PROXY,
    HTTP_PROXY, ALL_PROXY and NO_PROXY from the environment itself.
    """
    config = config or get_config()
    return config.proxy.url


def get_no_proxy_hosts(config: Optional[SkillSyncConfig] = None) -> list[str]:
    """Hosts that bypass the configured proxy."""
    config = config or get_config()
    if not config.proxy.no_proxy:
        return []
    return [host.strip() for host in config.proxy.no_proxy.split(",") if host.strip()]


def get_ssl_verify(config: Optional[SkillSyncConfig] = None) -> Union[bool, ssl.SSLContext]:
    """TLS verification setting for the HTTP client.

    Raises:
        ConfigError: If the CA bundle cannot be loaded
    """
    config = config or get_config()
    if not config.proxy.ssl_verify:
        return False
    if config.proxy.ca_bundle:
        cafile = Path(config.proxy.ca_bundle).expanduser()
        try:
            return ssl.create_default_context(cafile=str(cafile))
        except (OSError, ssl.SSLError) as e:
            raise ConfigError(f"Cannot load CA bundle {cafile}: {e}") from e
    return True
