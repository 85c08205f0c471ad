"""Configuration for promptgate.

Settings come from an optional YAML file, then ``PROMPTGATE_*`` environment
variables override individual keys::

    data_dir: /var/lib/promptgate
    policy_path: /etc/promptgate/policy.yaml
    thresholds: {warned: 3, notified: 5, muted: 8}
    window_hours: 24
    allowlist_ttl_seconds: 300
    audit_timeout_seconds: 5
    external:
      url: https://moderation.example.com/v1/classify
      api_key: ...
      policy_id: generation-prompts
      timeout_seconds: 2
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import yaml

from promptgate.errors import ConfigError
from promptgate.moderation.escalation import (
    DEFAULT_MUTED,
    DEFAULT_NOTIFIED,
    DEFAULT_STRICT_NOTICE,
    DEFAULT_WARNED,
)

ENV_PREFIX = "PROMPTGATE_"
DEFAULT_CONFIG_PATH = Path.home() / ".promptgate" / "config.yaml"


@dataclass
class ExternalSettings:
    url: str = ""
    api_key: str = ""
    policy_id: str = "generation-prompts"
    timeout_seconds: float = 2.0


@dataclass
class Settings:
    data_dir: Path = field(default_factory=lambda: Path.home() / ".promptgate")
    policy_path: Optional[Path] = None
    warned: int = DEFAULT_WARNED
    notified: int = DEFAULT_NOTIFIED
    muted: int = DEFAULT_MUTED
    window_hours: float = 24.0
    allowlist_ttl_seconds: float = 300.0
    audit_timeout_seconds: float = 5.0
    strict_domain_notice: str = DEFAULT_STRICT_NOTICE
    external: ExternalSettings = field(default_factory=ExternalSettings)

    def validate(self) -> None:
        if not (0 <= self.warned < self.notified < self.muted):
            raise ConfigError(
                f"thresholds must satisfy 0 <= warned < notified < muted "
                f"(got {self.warned}, {self.notified}, {self.muted})"
            )
        if self.window_hours <= 0:
            raise ConfigError("window_hours must be positive")
        if self.allowlist_ttl_seconds < 0:
            raise ConfigError("allowlist_ttl_seconds must not be negative")
        if not 0 < self.external.timeout_seconds < self.audit_timeout_seconds:
            raise ConfigError(
                "external.timeout_seconds must be positive and strictly shorter than "
                f"audit_timeout_seconds ({self.external.timeout_seconds} >= {self.audit_timeout_seconds})"
            )


# Environment variable -> (section, key, converter)
_ENV_KEYS: dict[str, tuple[Optional[str], str, Any]] = {
    "DATA_DIR": (None, "data_dir", str),
    "POLICY_PATH": (None, "policy_path", str),
    "WARNED": ("thresholds", "warned", int),
    "NOTIFIED": ("thresholds", "notified", int),
    "MUTED": ("thresholds", "muted", int),
    "WINDOW_HOURS": (None, "window_hours", float),
    "ALLOWLIST_TTL_SECONDS": (None, "allowlist_ttl_seconds", float),
    "AUDIT_TIMEOUT_SECONDS": (None, "audit_timeout_seconds", float),
    "EXTERNAL_URL": ("external", "url", str),
    "EXTERNAL_API_KEY": ("external", "api_key", str),
    "EXTERNAL_POLICY_ID": ("external", "policy_id", str),
    "EXTERNAL_TIMEOUT_SECONDS": ("external", "timeout_seconds", float),
}


def _apply_env(data: dict, environ: dict[str, str]) -> None:
    for suffix, (section, key, convert) in _ENV_KEYS.items():
        raw = environ.get(ENV_PREFIX + suffix)
        if raw is None or raw == "":
            continue
        try:
            value = convert(raw)
        except ValueError as exc:
            raise ConfigError(f"{ENV_PREFIX}{suffix}: invalid value {raw!r}") from exc
        target = data.setdefault(section, {}) if section else data
        if not isinstance(target, dict):
            raise ConfigError(f"config section '{section}' must be a mapping")
        target[key] = value


def load_settings(
    path: str | Path | None = None,
    environ: Optional[dict[str, str]] = None,
) -> Settings:
    """Load settings from YAML (if present) and environment overrides."""
    environ = dict(os.environ) if environ is None else environ
    config_path = Path(path) if path else Path(environ.get(ENV_PREFIX + "CONFIG", DEFAULT_CONFIG_PATH))

    data: dict = {}
    if config_path.exists():
        try:
            with open(config_path) as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise ConfigError(f"failed to parse {config_path}: {exc}") from exc
        if not isinstance(data, dict):
            raise ConfigError(f"{config_path}: top level must be a mapping")
    elif path:
        raise ConfigError(f"config file not found: {config_path}")

    _apply_env(data, environ)

    thresholds = data.get("thresholds", {}) or {}
    external = data.get("external", {}) or {}
    try:
        settings = Settings(
            data_dir=Path(data.get("data_dir") or Path.home() / ".promptgate").expanduser(),
            policy_path=Path(data["policy_path"]).expanduser() if data.get("policy_path") else None,
            warned=int(thresholds.get("warned", DEFAULT_WARNED)),
            notified=int(thresholds.get("notified", DEFAULT_NOTIFIED)),
            muted=int(thresholds.get("muted", DEFAULT_MUTED)),
            window_hours=float(data.get("window_hours", 24.0)),
            allowlist_ttl_seconds=float(data.get("allowlist_ttl_seconds", 300.0)),
            audit_timeout_seconds=float(data.get("audit_timeout_seconds", 5.0)),
            strict_domain_notice=data.get("strict_domain_notice", DEFAULT_STRICT_NOTICE),
            external=ExternalSettings(
                url=external.get("url", ""),
                api_key=external.get("api_key", ""),
                policy_id=external.get("policy_id", "generation-prompts"),
                timeout_seconds=float(external.get("timeout_seconds", 2.0)),
            ),
        )
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"invalid configuration: {exc}") from exc

    settings.validate()
    return settings
