"""Typed settings for the webhook listener.

Settings are wrapped in Pydantic models so the listener, the periodic trigger
and the CLI can rely on validated values. Secrets missing from the config file
and the environment are looked up in the OS keyring.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import keyring
from pydantic import BaseModel, Field, SecretStr, ValidationError, field_validator

from ..errors import MissingConfigError


DEFAULT_CONFIG_PATH = Path.home() / ".pushrelay" / "config.json"
DEFAULT_LOG_DIR = Path.home() / ".pushrelay" / "logs"
DEFAULT_SECRETS_SERVICE = "pushrelay"

WEBHOOK_SECRET_KEY = "webhook:secret"
ACCESS_TOKEN_KEY = "github:access_token"


class Settings(BaseModel):
    """Listener configuration.

    Attributes:
        secret: Shared HMAC secret configured on the GitHub webhook
        source_branch: Branch whose pushes trigger a full update
        github_access_token: Token handed to the full update job
        dry_run: Passed through to the full update job
        listen_host: Host to bind the listener to
        listen_port: Port to listen on
        log_dir: Directory holding the rolling log file
        log_file: Rolling log file name
        max_log_lines: Rolling log capacity
        update_interval_seconds: Period of the safety-net re-sync
    """

    secret: SecretStr = Field(..., description="HMAC secret for signature verification")
    source_branch: str = Field(default="master", description="Branch to track")
    github_access_token: Optional[SecretStr] = Field(
        default=None, description="Access token for the full update job"
    )
    dry_run: bool = Field(default=False, description="Run the update job without publishing")

    listen_host: str = Field(default="0.0.0.0", description="Host to bind server to")
    listen_port: int = Field(
        default=5001, ge=0, le=65535, description="Port to listen on (0 picks a free port)"
    )

    log_dir: Path = Field(default=DEFAULT_LOG_DIR, description="Rolling log directory")
    log_file: str = Field(default="webhook-logs.md", description="Rolling log file name")
    max_log_lines: int = Field(default=1000, ge=1, description="Rolling log capacity")

    update_interval_seconds: int = Field(
        default=300, ge=1, description="Seconds between periodic full updates"
    )

    @field_validator("secret")
    @classmethod
    def _validate_secret(cls, value: SecretStr) -> SecretStr:
        if not value.get_secret_value():
            raise ValueError("secret must not be empty")
        return value

    @field_validator("source_branch")
    @classmethod
    def _validate_branch(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("source_branch must not be empty")
        if value.startswith("refs/"):
            raise ValueError("source_branch must be a branch name, not a ref")
        return value

    @property
    def expected_ref(self) -> str:
        return f"refs/heads/{self.source_branch}"

    @property
    def secret_bytes(self) -> bytes:
        return self.secret.get_secret_value().encode("utf-8")


@dataclass
class SecretStore:
    """Keyring abstraction for stored credentials."""

    service_name: str = DEFAULT_SECRETS_SERVICE
    keyring_module: Any = field(default=keyring)

    def set_secret(self, key: str, value: str) -> None:
        if self.keyring_module is None:
            raise RuntimeError("Keyring module not configured")
        self.keyring_module.set_password(self.service_name, key, value)

    def get_secret(self, key: str) -> Optional[str]:
        if self.keyring_module is None:
            return None
        return self.keyring_module.get_password(self.service_name, key)


def load_settings(
    path: Optional[Path] = None,
    *,
    overrides: Optional[Dict[str, Any]] = None,
    secret_store: SecretStore | None = None,
) -> Settings:
    """Load settings from an optional JSON file, overrides and the environment.

    Precedence, lowest first: config file, ``overrides``, ``PUSHRELAY_*``
    environment variables. Secrets still missing after that are read from
    ``secret_store``.

    Raises:
        FileNotFoundError: If ``path`` is given but does not exist
        MissingConfigError: If no webhook secret can be found
        ValueError: If the merged configuration is invalid
    """
    data: Dict[str, Any] = {}
    if path is not None:
        if not path.exists():
            raise FileNotFoundError(f"Settings file not found at {path}")
        data = json.loads(path.read_text(encoding="utf-8"))

    data = _apply_overrides(data, overrides or {})
    data = _apply_env_overrides(data)
    _hydrate_secrets(data, secret_store or SecretStore())

    if not data.get("secret"):
        raise MissingConfigError(
            "Webhook secret not configured",
            details={"env": "PUSHRELAY_SECRET", "keyring_key": WEBHOOK_SECRET_KEY},
        )

    try:
        return Settings.model_validate(data)
    except ValidationError as exc:
        raise ValueError(f"Invalid configuration: {exc}") from exc


def _apply_overrides(base: Dict[str, Any], overrides: Dict[str, Any]) -> Dict[str, Any]:
    merged = base.copy()
    for key, value in overrides.items():
        if value is not None:
            merged[key] = value
    return merged


def _apply_env_overrides(data: Dict[str, Any]) -> Dict[str, Any]:
    _set_env_override(data, "secret", "PUSHRELAY_SECRET")
    _set_env_override(data, "source_branch", "PUSHRELAY_SOURCE_BRANCH")
    _set_env_override(data, "github_access_token", "PUSHRELAY_GITHUB_ACCESS_TOKEN")
    _set_env_override(data, "dry_run", "PUSHRELAY_DRY_RUN", cast_bool=True)
    _set_env_override(data, "listen_host", "PUSHRELAY_HOST")
    _set_env_override(data, "listen_port", "PUSHRELAY_PORT", cast_int=True)
    _set_env_override(data, "log_dir", "PUSHRELAY_LOG_DIR")
    _set_env_override(data, "update_interval_seconds", "PUSHRELAY_UPDATE_INTERVAL", cast_int=True)
    return data


def _set_env_override(
    mapping: Dict[str, Any],
    key: str,
    env_name: str,
    *,
    cast_bool: bool = False,
    cast_int: bool = False,
) -> None:
    raw = os.getenv(env_name)
    if raw is None:
        return
    if cast_bool:
        mapping[key] = raw.lower() in {"1", "true", "yes"}
    elif cast_int:
        mapping[key] = int(raw)
    else:
        mapping[key] = raw


def _hydrate_secrets(data: Dict[str, Any], secret_store: SecretStore) -> None:
    if not data.get("secret"):
        stored = secret_store.get_secret(WEBHOOK_SECRET_KEY)
        if stored:
            data["secret"] = stored
    if not data.get("github_access_token"):
        stored = secret_store.get_secret(ACCESS_TOKEN_KEY)
        if stored:
            data["github_access_token"] = stored


__all__ = [
    "DEFAULT_CONFIG_PATH",
    "SecretStore",
    "Settings",
    "load_settings",
]
