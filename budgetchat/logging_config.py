"""Process-wide logging setup for the chat room and relay."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

from .config import ChatRuntimeConfig

DEFAULT_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def parse_level(value: Any, default: int) -> int:
    """Turn a level name ("debug", "WARN") or number ("15", 15) into a level."""
    if isinstance(value, int):
        return value
    text = "" if value is None else str(value).strip()
    if not text:
        return default
    if text.isdigit():
        return int(text)
    return logging.getLevelNamesMapping().get(text.upper(), default)


def _log_file_path(cfg: ChatRuntimeConfig, override_file: str | None) -> Path | None:
    # An explicit override wins, even an empty one, which disables file logging.
    raw = override_file if override_file is not None else cfg.log_file
    if raw is None or not str(raw).strip():
        return None
    return Path(os.path.expanduser(str(raw)))


def _file_handler(path: Path) -> logging.Handler:
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(path, encoding="utf-8")
    try:
        os.chmod(path, 0o600)
    except OSError:
        pass
    return handler


def _build_handlers(
    cfg: ChatRuntimeConfig, override_file: str | None
) -> list[logging.Handler]:
    handlers: list[logging.Handler] = []
    if cfg.log_console:
        handlers.append(logging.StreamHandler())

    path = _log_file_path(cfg, override_file)
    if path is not None:
        handlers.append(_file_handler(path))

    datefmt = cfg.log_datefmt if cfg.log_datefmt and str(cfg.log_datefmt).strip() else None
    formatter = logging.Formatter(
        fmt=str(cfg.log_format).strip() or DEFAULT_FORMAT, datefmt=datefmt
    )
    for h in handlers:
        h.setFormatter(formatter)
    return handlers


def configure_logging(
    cfg: ChatRuntimeConfig,
    *,
    override_level: str | None = None,
    override_file: str | None = None,
) -> None:
    """Install budgetchat's handlers on the root logger.

    Any handlers already on the root logger are closed and replaced, so this
    can be called again after the config changes.
    """
    level = parse_level(override_level or cfg.log_level, logging.INFO)
    handlers = _build_handlers(cfg, override_file)

    root = logging.getLogger()
    for old in list(root.handlers):
        root.removeHandler(old)
        old.close()
    for h in handlers:
        root.addHandler(h)
    root.setLevel(level)

    # asyncio is chatty about closed transports at DEBUG
    logging.getLogger("asyncio").setLevel(max(level, logging.INFO))

    logging.captureWarnings(True)
