"""Configuration loading utilities for the offboarding toolkit."""
from __future__ import annotations

import os
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, Optional

import yaml


DEFAULT_CONFIG_PATH = Path("config/settings.yaml")
DEFAULT_TEMPLATE_PATH = Path("config/settings.example.yaml")
ENV_CONFIG_PATH = "OFFBOARD_CONFIG"
ENV_PREFIX = "OFFBOARD_"

DEFAULT_EXCLUDED_GROUPS = ("All Employees", "Domain Users", "*AllUserObjects*")


@dataclass
class LDAPConfig:
    """Settings required to connect to Active Directory via LDAP."""

    server_uri: str
    user_dn: str
    password: str
    base_dn: str
    use_ssl: bool = True
    user_search_filter: str = "(&(objectClass=user)(objectCategory=person))"
    mock_data_file: Optional[Path] = None
    group_search_base: Optional[str] = None


@dataclass
class OffboardConfig:
    """Rules applied by the offboarding workflow."""

    users_marker: str = "OU=Users"
    archive_prefix: str = "OU=NoLongerEmployed"
    excluded_groups: tuple[str, ...] = DEFAULT_EXCLUDED_GROUPS
    confirm_literal: str = "YES"
    date_format: str = "%d.%m.%Y"
    sync_after: bool = False


@dataclass
class PhotoConfig:
    """Rendering parameters for directory thumbnail photos."""

    size: int = 96
    quality: int = 80
    background: str = "white"
    temp_dir: Optional[Path] = None


@dataclass
class SyncConfig:
    """Settings for executing a directory sync command (e.g. Azure AD Connect)."""

    command: str = ""
    shell: bool = False
    timeout: int = 120


@dataclass
class M365Config:
    """Settings for the Microsoft 365 / Graph integration."""

    tenant_id: Optional[str] = None
    client_id: Optional[str] = None
    client_secret: Optional[str] = None

    @property
    def has_credentials(self) -> bool:
        return bool(self.tenant_id and self.client_id and self.client_secret)


@dataclass
class LoggingConfig:
    level: str = "INFO"
    format: str = "%(asctime)s %(levelname)s %(name)s: %(message)s"


@dataclass
class AppConfig:
    """Aggregate configuration for the application."""

    ldap: LDAPConfig
    offboard: OffboardConfig = field(default_factory=OffboardConfig)
    photo: PhotoConfig = field(default_factory=PhotoConfig)
    sync: SyncConfig = field(default_factory=SyncConfig)
    m365: M365Config = field(default_factory=M365Config)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


class ConfigurationError(RuntimeError):
    """Raised when the configuration file or environment variables are invalid."""


def _load_from_file(path: Path) -> Dict[str, Any]:
    if not path.exists():
        raise ConfigurationError(
            f"Configuration file '{path}' does not exist. "
            "Create it from 'config/settings.example.yaml' or set environment variables."
        )
    with path.open("r", encoding="utf-8") as file:
        return yaml.safe_load(file) or {}


def _apply_environment_overrides(config_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Override configuration values with environment variables."""

    overrides: Dict[str, Any] = {}
    for key, value in os.environ.items():
        if not key.startswith(ENV_PREFIX) or key == ENV_CONFIG_PATH:
            continue
        path = key[len(ENV_PREFIX) :].lower().split("__")
        node = overrides
        for part in path[:-1]:
            node = node.setdefault(part, {})
        node[path[-1]] = value

    if overrides:
        config_dict = _deep_merge(config_dict, overrides)
    return config_dict


def _deep_merge(base: Dict[str, Any], overrides: Dict[str, Any]) -> Dict[str, Any]:
    result = dict(base)
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            result[key] = _deep_merge(base[key], value)
        else:
            result[key] = value
    return result


def _resolve_config_path(path: Optional[Path] = None) -> Path:
    if path is not None:
        return Path(path)
    env_path = os.environ.get(ENV_CONFIG_PATH)
    if env_path:
        return Path(env_path)
    return DEFAULT_CONFIG_PATH


def ensure_default_config(
    path: Optional[Path] = None, template_path: Optional[Path] = None
) -> Path:
    """Ensure a configuration file exists, copying from the example if needed."""

    target_path = _resolve_config_path(path)
    if target_path.exists():
        return target_path

    template = Path(template_path) if template_path is not None else DEFAULT_TEMPLATE_PATH
    if not template.exists():
        raise ConfigurationError(
            "Default configuration template not found. "
            "Ensure 'config/settings.example.yaml' is present or specify a template."
        )

    target_path.parent.mkdir(parents=True, exist_ok=True)
    shutil.copy(template, target_path)
    return target_path


def _load_config_dict(path: Optional[Path] = None) -> Dict[str, Any]:
    resolved_path = _resolve_config_path(path)
    if resolved_path == DEFAULT_CONFIG_PATH:
        ensure_default_config(resolved_path)

    config_dict = _load_from_file(resolved_path)
    return _apply_environment_overrides(config_dict)


def _get_required(config_dict: Dict[str, Any], key: str) -> Dict[str, Any]:
    try:
        return config_dict[key]
    except KeyError as exc:
        raise ConfigurationError(f"Missing required configuration section: '{key}'.") from exc


def _normalize_sequence(value: Any) -> Iterable[Any]:
    if isinstance(value, (list, tuple, set)):
        return value
    if isinstance(value, str):
        # Environment overrides arrive as comma separated strings.
        return value.split(",")
    return [value]


def _to_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    return bool(value)


def _to_int(value: Any) -> int:
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        return int(value.strip())
    return int(value)


def _optional_path(raw: Any) -> Optional[Path]:
    """Convert a raw config value to ``Path`` if set, otherwise ``None``."""

    if raw is None:
        return None
    if isinstance(raw, Path):
        return raw
    if isinstance(raw, str):
        stripped = raw.strip()
        if not stripped:
            return None
        return Path(stripped)
    return Path(raw)


def _optional_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, str):
        stripped = value.strip()
        return stripped or None
    return str(value)


def _load_offboard_section(section: Dict[str, Any]) -> OffboardConfig:
    default = OffboardConfig()
    raw_excluded = section.get("excluded_groups")
    if raw_excluded is None:
        # An empty YAML key leaves the baseline groups protected.
        excluded = default.excluded_groups
    else:
        excluded = tuple(
            filter(
                None,
                [
                    str(entry).strip()
                    for entry in _normalize_sequence(raw_excluded)
                    if entry is not None
                ],
            )
        )
    return OffboardConfig(
        users_marker=_optional_str(section.get("users_marker")) or default.users_marker,
        archive_prefix=_optional_str(section.get("archive_prefix")) or default.archive_prefix,
        excluded_groups=excluded,
        confirm_literal=_optional_str(section.get("confirm_literal")) or default.confirm_literal,
        date_format=_optional_str(section.get("date_format")) or default.date_format,
        sync_after=_to_bool(section.get("sync_after", default.sync_after)),
    )


def _load_photo_section(section: Dict[str, Any]) -> PhotoConfig:
    default = PhotoConfig()
    try:
        size = _to_int(section.get("size", default.size))
        quality = _to_int(section.get("quality", default.quality))
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"Invalid photo configuration value: {exc}.") from exc
    if size <= 0:
        raise ConfigurationError("Photo size must be a positive number of pixels.")
    if not 1 <= quality <= 100:
        raise ConfigurationError("Photo quality must be between 1 and 100.")
    return PhotoConfig(
        size=size,
        quality=quality,
        background=_optional_str(section.get("background")) or default.background,
        temp_dir=_optional_path(section.get("temp_dir")),
    )


def load_config(path: Optional[Path] = None) -> AppConfig:
    """Load application configuration from disk and environment variables."""

    config_dict = _load_config_dict(path)
    return config_from_dict(config_dict)


def config_from_dict(config_dict: Dict[str, Any]) -> AppConfig:
    """Build an :class:`AppConfig` from already parsed settings."""

    ldap_section = _get_required(config_dict, "ldap")

    try:
        ldap_config = LDAPConfig(
            server_uri=ldap_section["server_uri"],
            user_dn=ldap_section.get("user_dn", ""),
            password=str(ldap_section.get("password", "")),
            base_dn=ldap_section["base_dn"],
            use_ssl=_to_bool(ldap_section.get("use_ssl", True)),
            user_search_filter=str(
                ldap_section.get(
                    "user_search_filter", "(&(objectClass=user)(objectCategory=person))"
                )
            ),
            mock_data_file=_optional_path(ldap_section.get("mock_data_file")),
            group_search_base=(ldap_section.get("group_search_base") or None),
        )
    except KeyError as exc:
        raise ConfigurationError(f"Missing LDAP configuration key: {exc}.") from exc

    sync_section = config_dict.get("sync") or {}
    try:
        sync_config = SyncConfig(
            command=str(sync_section.get("command") or ""),
            shell=_to_bool(sync_section.get("shell", False)),
            timeout=_to_int(sync_section.get("timeout", 120)),
        )
    except ValueError as exc:
        raise ConfigurationError(f"Invalid sync configuration value: {exc}.") from exc

    m365_section = config_dict.get("m365") or {}
    m365_config = M365Config(
        tenant_id=_optional_str(m365_section.get("tenant_id")),
        client_id=_optional_str(m365_section.get("client_id")),
        client_secret=_optional_str(m365_section.get("client_secret")),
    )

    logging_section = config_dict.get("logging") or {}
    logging_config = LoggingConfig(
        level=str(logging_section.get("level", LoggingConfig.level)).upper(),
        format=str(logging_section.get("format", LoggingConfig.format)),
    )

    return AppConfig(
        ldap=ldap_config,
        offboard=_load_offboard_section(config_dict.get("offboard") or {}),
        photo=_load_photo_section(config_dict.get("photo") or {}),
        sync=sync_config,
        m365=m365_config,
        logging=logging_config,
    )


__all__ = [
    "AppConfig",
    "ConfigurationError",
    "DEFAULT_EXCLUDED_GROUPS",
    "LDAPConfig",
    "LoggingConfig",
    "M365Config",
    "OffboardConfig",
    "PhotoConfig",
    "SyncConfig",
    "config_from_dict",
    "ensure_default_config",
    "load_config",
]
