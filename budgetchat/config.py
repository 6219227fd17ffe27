from __future__ import annotations

from dataclasses import asdict, dataclass, replace

from .constants import (
    BUS_CAPACITY,
    DEFAULT_CHAT_PORT,
    DEFAULT_RELAY_PORT,
    DEFAULT_REPLACEMENT_ADDRESS,
    DEFAULT_UPSTREAM_HOST,
    DEFAULT_UPSTREAM_PORT,
    MAX_LINE_BYTES,
    NAME_MAX_CHARS,
)
from .rewrite import is_address


@dataclass(frozen=True)
class ChatRuntimeConfig:
    config_path: str | None = None
    host: str = "0.0.0.0"
    port: int = DEFAULT_CHAT_PORT
    relay_host: str = "0.0.0.0"
    relay_port: int = DEFAULT_RELAY_PORT
    upstream_host: str = DEFAULT_UPSTREAM_HOST
    upstream_port: int = DEFAULT_UPSTREAM_PORT
    replacement_address: str = DEFAULT_REPLACEMENT_ADDRESS
    upstream_connect_timeout_s: float = 10.0
    bus_capacity: int = BUS_CAPACITY
    max_line_bytes: int = MAX_LINE_BYTES
    name_max_chars: int = NAME_MAX_CHARS
    reject_duplicate_names: bool = True
    log_level: str = "INFO"
    log_console: bool = True
    log_file: str | None = None
    log_format: str = "%(asctime)s %(levelname)s %(name)s: %(message)s"
    log_datefmt: str | None = None


# [relay] table keys -> config fields
_RELAY_KEYS = {
    "host": "relay_host",
    "port": "relay_port",
    "upstream_host": "upstream_host",
    "upstream_port": "upstream_port",
    "replacement_address": "replacement_address",
    "connect_timeout_s": "upstream_connect_timeout_s",
}

# [logging] table keys -> config fields
_LOGGING_KEYS = {
    "level": "log_level",
    "console": "log_console",
    "file": "log_file",
    "format": "log_format",
    "datefmt": "log_datefmt",
}


def load_toml(path: str) -> dict:
    import tomllib

    with open(path, "rb") as f:
        data = tomllib.load(f)
    return data if isinstance(data, dict) else {}


def apply_config_data(base: ChatRuntimeConfig, data: dict) -> ChatRuntimeConfig:
    chat = data.get("chat") if isinstance(data, dict) else None
    if isinstance(chat, dict):
        data = {**data, **chat}

    for table, keys in (("relay", _RELAY_KEYS), ("logging", _LOGGING_KEYS)):
        section = data.get(table)
        if isinstance(section, dict):
            mapped = {field: section[key] for key, field in keys.items() if key in section}
            data = {**data, **mapped}

    allowed = set(asdict(base).keys())
    # This identifies where the config came from; do not let the file override it.
    allowed.discard("config_path")

    updates = {k: v for k, v in data.items() if k in allowed}

    for key in ("log_file", "log_datefmt"):
        if key in updates and updates[key] == "":
            updates[key] = None

    return replace(base, **updates) if updates else base


def _check_port(name: str, value: object) -> None:
    if not isinstance(value, int) or isinstance(value, bool):
        raise ValueError(f"{name} must be an integer")
    if not 0 <= value <= 65535:
        raise ValueError(f"{name} out of range: {value}")


def validate_config(cfg: ChatRuntimeConfig) -> ChatRuntimeConfig:
    for name in ("port", "relay_port", "upstream_port"):
        _check_port(name, getattr(cfg, name))

    if int(cfg.bus_capacity) < 1:
        raise ValueError("bus_capacity must be at least 1")
    if int(cfg.name_max_chars) < 1:
        raise ValueError("name_max_chars must be at least 1")
    if int(cfg.max_line_bytes) < 1:
        raise ValueError("max_line_bytes must be at least 1")
    if float(cfg.upstream_connect_timeout_s) < 0:
        raise ValueError("upstream_connect_timeout_s must not be negative")
    if not is_address(str(cfg.replacement_address)):
        raise ValueError(
            f"replacement_address is not address-shaped: {cfg.replacement_address!r}"
        )
    return cfg


def load_config(path: str, base: ChatRuntimeConfig | None = None) -> ChatRuntimeConfig:
    cfg = base if base is not None else ChatRuntimeConfig()
    cfg = apply_config_data(cfg, load_toml(path))
    return validate_config(replace(cfg, config_path=path))
