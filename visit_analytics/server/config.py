from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

import yaml

from .sanitize import parse_comma_separated


ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", ".."))
CONFIG_ENV = "VISIT_ANALYTICS_CONFIG"


class ConfigError(ValueError):
    pass


@dataclass(frozen=True)
class AppConfig:
    sqlite_path: str
    host: str = "127.0.0.1"
    port: int = 8787
    tz_offset: float = 8
    ignore_ips: Tuple[str, ...] = field(default_factory=tuple)
    ignore_paths: Tuple[str, ...] = field(default_factory=tuple)
    trust_proxy_headers: bool = False
    log_level: str = "INFO"


def default_config_path() -> str:
    return os.environ.get(CONFIG_ENV, os.path.join(ROOT, "config.yaml"))


def load_yaml(path: str) -> Dict[str, Any]:
    if not os.path.exists(path):
        return {}
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ConfigError(f"{path}: top level must be a mapping")
    return data


def _number(value: Any, name: str) -> float:
    try:
        n = float(value)
    except (TypeError, ValueError):
        raise ConfigError(f"{name} must be a number, got {value!r}") from None
    return int(n) if n.is_integer() else n


def load_config(path: Optional[str] = None) -> AppConfig:
    path = path or default_config_path()
    raw = load_yaml(path)
    cfg_dir = os.path.dirname(os.path.abspath(path))

    def resolve_from_cfg_dir(p: str) -> str:
        # Relative paths in the file are relative to the file itself.
        if os.path.isabs(p):
            return p
        return os.path.abspath(os.path.join(cfg_dir, p))

    server = raw.get("server") or {}
    database = raw.get("database") or {}
    analytics = raw.get("analytics") or {}
    privacy = raw.get("privacy") or {}
    logging_cfg = raw.get("logging") or {}

    sqlite_path = os.environ.get("VISIT_ANALYTICS_DB") or resolve_from_cfg_dir(
        str(database.get("sqlite_path", "storage/visits.db"))
    )
    tz_offset = _number(os.environ.get("VISIT_ANALYTICS_TZ_OFFSET", analytics.get("tz_offset", 8)), "tz_offset")
    port = int(_number(server.get("port", 8787), "server.port"))

    return AppConfig(
        sqlite_path=sqlite_path,
        host=str(server.get("host", "127.0.0.1")),
        port=port,
        tz_offset=tz_offset,
        ignore_ips=tuple(parse_comma_separated(analytics.get("ignore_ips"))),
        ignore_paths=tuple(parse_comma_separated(analytics.get("ignore_paths"))),
        trust_proxy_headers=bool(privacy.get("trust_proxy_headers", False)),
        log_level=str(logging_cfg.get("level", "INFO")).upper(),
    )
