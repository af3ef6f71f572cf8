"""Configuration models and loading."""

import json
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError

CONFIG_DIR = Path.home() / ".config" / "pelo-proxy"
CONFIG_FILE = CONFIG_DIR / "config.json"


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


class ProxySettings(_Frozen):
    host: str = "127.0.0.1"
    port: int = 8080
    dashboard: bool = True


class UpstreamSettings(_Frozen):
    scheme: str = "https"
    host: str = "api.onepeloton.com"
    origin: str = "https://members.onepeloton.com"
    platform: str = "web"


class TimeoutSettings(_Frozen):
    """Seconds. ``read`` bounds the wait for the first response byte."""

    connect: float = 10.0
    read: float = 60.0
    write: float = 60.0
    pool: float = 10.0


class LimitsSettings(_Frozen):
    max_connections: int = 100
    max_keepalive_connections: int = 20
    keep_alive_timeout: int = 5


class RouteSettings(_Frozen):
    prefix: str
    rewrite: Literal["strip", "canonical"] = "strip"
    forced_headers: dict[str, str] = Field(default_factory=dict)
    # Domain -> replacement. "*" matches any domain, "" removes the attribute.
    cookie_domain_rewrites: dict[str, str] = Field(default_factory=lambda: {"*": ""})


def _default_routes() -> list[RouteSettings]:
    return [
        RouteSettings(prefix="/api", rewrite="strip"),
        RouteSettings(prefix="/auth", rewrite="canonical"),
    ]


class Config(_Frozen):
    proxy: ProxySettings = Field(default_factory=ProxySettings)
    upstream: UpstreamSettings = Field(default_factory=UpstreamSettings)
    timeouts: TimeoutSettings = Field(default_factory=TimeoutSettings)
    limits: LimitsSettings = Field(default_factory=LimitsSettings)
    routes: list[RouteSettings] = Field(default_factory=_default_routes)


def load_config(config_file: Path = CONFIG_FILE) -> Config:
    """Load configuration from JSON file, creating default if needed."""
    if not config_file.exists():
        config_file.parent.mkdir(parents=True, exist_ok=True)
        default = Config()
        config_file.write_text(default.model_dump_json(indent=2))
        return default

    try:
        data = json.loads(config_file.read_text())
        return Config.model_validate(data)
    except (json.JSONDecodeError, ValidationError):
        # Backup corrupted config and recreate default
        backup = config_file.with_suffix(".json.bak")
        config_file.rename(backup)
        default = Config()
        config_file.write_text(default.model_dump_json(indent=2))
        return default
