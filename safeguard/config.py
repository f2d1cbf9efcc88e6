from __future__ import annotations

import json
import os
import warnings
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any

DEFAULT_CONFIG_PATH = Path("~/.config/safeguard/config.json").expanduser()

CONFIG_ENV_OVERRIDES = {
    "db_path": "SAFEGUARD_DB",
    "hybrid_enabled": "SAFEGUARD_HYBRID",
    "api_base_url": "SAFEGUARD_API_BASE_URL",
    "api_timeout_s": "SAFEGUARD_API_TIMEOUT_S",
    "api_retry_attempts": "SAFEGUARD_API_RETRY_ATTEMPTS",
    "api_backoff_s": "SAFEGUARD_API_BACKOFF_S",
    "mirror_async": "SAFEGUARD_MIRROR_ASYNC",
    "log_level": "SAFEGUARD_LOG_LEVEL",
}

_INT_KEYS = {"api_retry_attempts"}
_FLOAT_KEYS = {"api_timeout_s", "api_backoff_s"}
_BOOL_KEYS = {"hybrid_enabled", "mirror_async"}


def get_config_path(path: Path | None = None) -> Path:
    candidate = path or Path(os.getenv("SAFEGUARD_CONFIG", DEFAULT_CONFIG_PATH))
    return candidate.expanduser()


def read_config_file(path: Path | None = None) -> dict[str, Any]:
    config_path = get_config_path(path)
    if not config_path.exists():
        return {}
    raw = config_path.read_text()
    if not raw.strip():
        return {}
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValueError("invalid config json") from exc
    if not isinstance(data, dict):
        raise ValueError("config must be an object")
    return data


def write_config_file(data: dict[str, Any], path: Path | None = None) -> Path:
    config_path = get_config_path(path)
    config_path.parent.mkdir(parents=True, exist_ok=True)
    config_path.write_text(json.dumps(data, ensure_ascii=False, indent=2) + "\n")
    return config_path


def get_env_overrides() -> dict[str, str]:
    overrides: dict[str, str] = {}
    for key, env_var in CONFIG_ENV_OVERRIDES.items():
        value = os.getenv(env_var)
        if value is not None:
            overrides[key] = value
    return overrides


@dataclass
class SafeguardConfig:
    db_path: str | None = None
    # Mirror local writes to the remote API when enabled.
    hybrid_enabled: bool = False
    api_base_url: str | None = None
    api_timeout_s: float = 10.0
    api_retry_attempts: int = 3
    api_backoff_s: float = 1.0
    mirror_async: bool = True
    log_level: str = "WARNING"


CONFIG_KEYS = tuple(item.name for item in fields(SafeguardConfig))


def _parse_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    if value.lower() in {"1", "true", "yes", "on"}:
        return True
    if value.lower() in {"0", "false", "off", "no"}:
        return False
    return default


def parse_config_value(key: str, raw: str) -> Any:
    """Typed value for ``key`` parsed from command-line text; ValueError if invalid."""
    if key not in CONFIG_KEYS:
        raise ValueError(f"unknown config key: {key}")
    if key in _INT_KEYS:
        return int(raw)
    if key in _FLOAT_KEYS:
        return float(raw)
    if key in _BOOL_KEYS:
        lowered = raw.strip().lower()
        if lowered not in {"1", "true", "yes", "on", "0", "false", "off", "no"}:
            raise ValueError(f"invalid bool for {key}: {raw!r}")
        return _parse_bool(lowered, False)
    return raw


def _parse_int(value: object, default: int, *, key: str) -> int:
    if value is None:
        return default
    try:
        return int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        warnings.warn(f"Invalid int for {key}: {value!r}", RuntimeWarning, stacklevel=2)
        return default


def _parse_float(value: object, default: float, *, key: str) -> float:
    if value is None:
        return default
    try:
        return float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        warnings.warn(f"Invalid float for {key}: {value!r}", RuntimeWarning, stacklevel=2)
        return default


def _coerce_bool(value: object, default: bool, *, key: str) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return value != 0
    if isinstance(value, str):
        return _parse_bool(value, default)
    warnings.warn(f"Invalid bool for {key}: {value!r}", RuntimeWarning, stacklevel=2)
    return default


def _apply_value(cfg: SafeguardConfig, key: str, value: Any) -> None:
    if key in _INT_KEYS:
        setattr(cfg, key, _parse_int(value, getattr(cfg, key), key=key))
    elif key in _FLOAT_KEYS:
        setattr(cfg, key, _parse_float(value, getattr(cfg, key), key=key))
    elif key in _BOOL_KEYS:
        setattr(cfg, key, _coerce_bool(value, getattr(cfg, key), key=key))
    else:
        setattr(cfg, key, value)


def load_config(path: Path | None = None) -> SafeguardConfig:
    cfg = SafeguardConfig()
    try:
        data = read_config_file(path)
    except ValueError as exc:
        warnings.warn(
            f"Ignoring config file {get_config_path(path)}: {exc}", RuntimeWarning, stacklevel=2
        )
        data = {}
    for key, value in data.items():
        if hasattr(cfg, key):
            _apply_value(cfg, key, value)
    for key, value in get_env_overrides().items():
        _apply_value(cfg, key, value)
    return cfg
