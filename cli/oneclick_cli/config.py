from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass, field
from typing import Any

import tomli_w
from platformdirs import user_config_dir

from oneclick_core.compose import DEFAULT_HEALTH_INTERVAL, DEFAULT_HEALTH_TIMEOUT
from oneclick_core.public_ip import DEFAULT_ENDPOINTS, DEFAULT_TIMEOUT

APP_NAME = "oneclick"
CONFIG_FILENAME = "config.toml"
INSTALL_ROOT_DEFAULT = "/root"
ENV_INSTALL_ROOT = "ONECLICK_INSTALL_ROOT"


@dataclass
class AppConfig:
    install_root: str = INSTALL_ROOT_DEFAULT
    use_china_mirror: bool | None = None
    public_ip_endpoints: list[str] = field(default_factory=lambda: list(DEFAULT_ENDPOINTS))
    public_ip_timeout: float = DEFAULT_TIMEOUT
    health_timeout: float = DEFAULT_HEALTH_TIMEOUT
    health_interval: float = DEFAULT_HEALTH_INTERVAL


SETTING_KEYS = (
    "install_root",
    "use_china_mirror",
    "public_ip_endpoints",
    "public_ip_timeout",
    "health_timeout",
    "health_interval",
)


def config_path() -> str:
    return f"{user_config_dir(APP_NAME)}/{CONFIG_FILENAME}"


def default_config() -> AppConfig:
    return AppConfig()


def ensure_parent_dir(path: str) -> None:
    os.makedirs(os.path.dirname(path), exist_ok=True)


def to_toml(cfg: AppConfig) -> dict[str, Any]:
    return _prune_none(
        {
            "install_root": cfg.install_root,
            "use_china_mirror": cfg.use_china_mirror,
            "public_ip": {
                "endpoints": list(cfg.public_ip_endpoints),
                "timeout": cfg.public_ip_timeout,
            },
            "health": {
                "timeout": cfg.health_timeout,
                "interval": cfg.health_interval,
            },
        }
    )


def _prune_none(value: Any) -> Any:
    if isinstance(value, dict):
        return {k: _prune_none(v) for k, v in value.items() if v is not None}
    if isinstance(value, list):
        return [_prune_none(item) for item in value if item is not None]
    return value


def _as_float(value: Any, default: float) -> float:
    try:
        result = float(value)
    except (TypeError, ValueError):
        return default
    return result if result > 0 else default


def from_toml(data: dict[str, Any]) -> AppConfig:
    cfg = default_config()
    install_root = str(data.get("install_root") or "").strip()
    if install_root:
        cfg.install_root = install_root
    mirror = data.get("use_china_mirror")
    if isinstance(mirror, bool):
        cfg.use_china_mirror = mirror
    ip_raw = data.get("public_ip") or {}
    if isinstance(ip_raw, dict):
        endpoints = ip_raw.get("endpoints")
        if isinstance(endpoints, list):
            cleaned = [str(item).strip() for item in endpoints if str(item).strip()]
            if cleaned:
                cfg.public_ip_endpoints = cleaned
        cfg.public_ip_timeout = _as_float(ip_raw.get("timeout"), cfg.public_ip_timeout)
    health_raw = data.get("health") or {}
    if isinstance(health_raw, dict):
        cfg.health_timeout = _as_float(health_raw.get("timeout"), cfg.health_timeout)
        cfg.health_interval = _as_float(health_raw.get("interval"), cfg.health_interval)
    return cfg


def load_config() -> AppConfig:
    path = config_path()
    try:
        with open(path, "rb") as f:
            data = tomllib.load(f)
        return from_toml(data)
    except FileNotFoundError:
        return default_config()


def resolve_install_root(cfg: AppConfig) -> str:
    env_value = os.getenv(ENV_INSTALL_ROOT, "").strip()
    if env_value:
        return env_value
    return cfg.install_root or INSTALL_ROOT_DEFAULT


def apply_setting(cfg: AppConfig, key: str, raw: str) -> AppConfig:
    k = key.strip().lower()
    value = raw.strip()
    if k == "install_root":
        if not value:
            raise ValueError("install_root cannot be empty")
        cfg.install_root = value
    elif k == "use_china_mirror":
        lowered = value.lower()
        if lowered in {"", "ask", "none"}:
            cfg.use_china_mirror = None
        elif lowered in {"1", "true", "yes", "y"}:
            cfg.use_china_mirror = True
        elif lowered in {"0", "false", "no", "n"}:
            cfg.use_china_mirror = False
        else:
            raise ValueError("use_china_mirror must be true, false or ask")
    elif k == "public_ip_endpoints":
        endpoints = [item.strip() for item in value.split(",") if item.strip()]
        if not endpoints:
            raise ValueError("public_ip_endpoints needs at least one URL")
        cfg.public_ip_endpoints = endpoints
    elif k in {"public_ip_timeout", "health_timeout", "health_interval"}:
        number = _as_float(value, -1.0)
        if number <= 0:
            raise ValueError(f"{k} must be a positive number")
        setattr(cfg, k, number)
    else:
        raise KeyError(key)
    return cfg


def get_setting(cfg: AppConfig, key: str) -> str:
    k = key.strip().lower()
    if k not in SETTING_KEYS:
        raise KeyError(key)
    value = getattr(cfg, k)
    if value is None:
        return "ask"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, list):
        return ",".join(value)
    return str(value)


def save_config(cfg: AppConfig) -> str:
    path = config_path()
    ensure_parent_dir(path)
    with open(path, "wb") as f:
        f.write(tomli_w.dumps(to_toml(cfg)).encode("utf-8"))
    os.chmod(path, 0o600)
    return path
