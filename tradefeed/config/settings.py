"""
Application settings.

Settings come from an optional TOML file plus ``--set key.path=value``
overrides. Credentials never live here; they are resolved from the
environment through a SecretsProvider.
"""

from __future__ import annotations

import logging
import tomllib
from pathlib import Path
from typing import Any, Iterable, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from tradefeed.errors import ConfigurationError
from tradefeed.live.config import ClientConfig
from tradefeed.utils import deep_merge, insert_path, validation_error_parser

logger = logging.getLogger(__name__)

AuthType = Literal["SSO", "BUILD_IN"]


class AuthSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")
    auth_type: AuthType = Field(
        default="SSO", description="'SSO' (Keycloak realm) or 'BUILD_IN' (TB WebAdmin)"
    )
    auth_base_url: str = Field(default="http://localhost:8080", description="Identity provider")
    realm: str = Field(default="timebase", description="Keycloak realm, SSO only")

    @property
    def token_url(self) -> str:
        base = self.auth_base_url.rstrip("/")
        if self.auth_type == "SSO":
            return f"{base}/realms/{self.realm}/protocol/openid-connect/token"
        return f"{base}/oauth/token"


class StreamSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")
    ws_api_url: str = Field(default="ws://localhost:8099/ws/v0", description="WS api root")
    query: str = Field(default='select * from "warehouse-TRADES"', description="QQL query")
    # If earlier than the start of the stream, selection begins at the stream start.
    # For live subscriptions an omitted date means "now", otherwise "from the beginning".
    date_from: Optional[str] = Field(default="1980-01-01T00:00:00.000Z")
    live: bool = Field(default=True, description="Keep the subscription open for new records")
    heartbeat_interval_s: Optional[float] = Field(
        default=30.0, gt=0, description="Ping period for live subscriptions; null disables"
    )

    @field_validator("ws_api_url")
    @classmethod
    def _check_scheme(cls, value: str) -> str:
        if not value.startswith(("ws://", "wss://")):
            raise ValueError("ws_api_url must use the ws:// or wss:// scheme")
        return value.rstrip("/")

    @property
    def query_url(self) -> str:
        return f"{self.ws_api_url}/query"


class AppSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")
    auth: AuthSettings = Field(default_factory=AuthSettings)
    stream: StreamSettings = Field(default_factory=StreamSettings)
    log_level: str = Field(default="INFO")
    closed_trades_path: Optional[Path] = Field(
        default=None, description="JSONL file receiving closed trades and lifecycle events"
    )

    def client_config(self, name: str = "trades_subscription") -> ClientConfig:
        return ClientConfig(
            url=self.stream.query_url,
            live=self.stream.live,
            heartbeat_interval_s=self.stream.heartbeat_interval_s,
            name=name,
        )


def load_settings(
    path: Optional[Path] = None,
    overrides: Iterable[str] = (),
) -> AppSettings:
    """
    Build AppSettings from an optional TOML file and KEY=VALUE overrides.

    Raises:
        ConfigurationError: If the file is missing/invalid or validation fails
    """
    data: dict[str, Any] = {}
    if path is not None:
        if not path.exists():
            raise ConfigurationError(f"Config file not found: {path}", field="config")
        try:
            with path.open("rb") as f:
                data = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ConfigurationError(f"Invalid TOML in {path}: {e}", field="config") from e

    cli_overrides: dict[str, Any] = {}
    for item in overrides:
        key, sep, value = item.partition("=")
        if sep == "":
            raise ConfigurationError(
                f"--set requires KEY=VALUE format (got {item!r})", field="set"
            )
        try:
            insert_path(cli_overrides, key, _coerce_override(value))
        except ValueError as e:
            raise ConfigurationError(str(e), field=key) from e

    merged = deep_merge(data, cli_overrides)
    try:
        settings = AppSettings.model_validate(merged)
    except ValidationError as e:
        issues = validation_error_parser(e)
        raise ConfigurationError(
            f"Invalid settings: {len(issues)} issue(s)",
            details={"issues": issues},
        ) from e

    logger.debug(f"Settings resolved (file={path}, overrides={len(cli_overrides)})")
    return settings


def _coerce_override(value: str) -> Any:
    # "null" clears optional settings such as date_from or heartbeat_interval_s
    if value.strip().lower() in ("null", "none"):
        return None
    return value
