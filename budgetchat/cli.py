from __future__ import annotations

import argparse
import asyncio
import os
import sys
from dataclasses import replace
from pathlib import Path

from .config import ChatRuntimeConfig, load_config, validate_config
from .constants import (
    BUS_CAPACITY,
    DEFAULT_CHAT_PORT,
    DEFAULT_RELAY_PORT,
    DEFAULT_REPLACEMENT_ADDRESS,
    DEFAULT_UPSTREAM_HOST,
    DEFAULT_UPSTREAM_PORT,
    NAME_MAX_CHARS,
)
from .logging_config import configure_logging
from .paths import default_config_path, ensure_private_dir
from .relay import RelayService
from .service import ChatService, TcpService
from .util import expand_path


def _write_default_config(config_path: str) -> None:
    cfg_dir = os.path.dirname(config_path)
    if cfg_dir:
        ensure_private_dir(Path(cfg_dir))

    content = f"""# budgetchat configuration (TOML)
#
# This file was created on first run.
# Edit it, then start budgetchat again.

[chat]

# Address the chat room listens on.
host = "0.0.0.0"
port = {DEFAULT_CHAT_PORT}

# How many undelivered lines each participant may have queued before the
# oldest ones are dropped for that participant.
bus_capacity = {BUS_CAPACITY}

# Name policy. Names are 1..name_max_chars ASCII letters or digits.
name_max_chars = {NAME_MAX_CHARS}
reject_duplicate_names = true

# Longest accepted line in bytes, terminator included.
max_line_bytes = 65536

[relay]

# Address the relay listens on.
host = "0.0.0.0"
port = {DEFAULT_RELAY_PORT}

# Chat server every relay connection is forwarded to.
upstream_host = {DEFAULT_UPSTREAM_HOST!r}
upstream_port = {DEFAULT_UPSTREAM_PORT}

# Seconds to wait for the upstream connection (0 waits forever).
connect_timeout_s = 10.0

# Address substituted for every address-shaped token.
replacement_address = {DEFAULT_REPLACEMENT_ADDRESS!r}

[logging]

level = "INFO"

# Log to stderr.
console = true

# Optional file path for logs (leave empty to disable).
file = ""

format = "%(asctime)s %(levelname)s %(name)s: %(message)s"
datefmt = ""
"""

    with open(config_path, "w", encoding="utf-8") as f:
        f.write(content)


def _parse_hostport(text: str) -> tuple[str, int]:
    host, sep, port = str(text).rpartition(":")
    if not sep or not host:
        raise argparse.ArgumentTypeError(f"expected HOST:PORT, got {text!r}")
    try:
        return host.strip("[]"), int(port)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid port in {text!r}") from None


def _build_arg_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="budgetchat", description="Run the budgetchat room or address relay"
    )

    p.add_argument(
        "--config",
        default=str(default_config_path()),
        help="Path to a TOML config file (created on first run)",
    )
    p.add_argument(
        "--log-level",
        default=None,
        help="Logging level override (DEBUG, INFO, WARNING, ERROR). Default comes from config.",
    )
    p.add_argument(
        "--log-file",
        default=None,
        help="Log file path override (empty disables file logging). Default comes from config.",
    )

    sub = p.add_subparsers(dest="command", required=True)

    chat = sub.add_parser("chat", help="Run the chat room")
    chat.add_argument("--host", default=None, help="Listen address")
    chat.add_argument("--port", type=int, default=None, help="Listen port")
    chat.add_argument(
        "--bus-capacity",
        type=int,
        default=None,
        help="Per-participant backlog before lines are dropped",
    )
    chat.add_argument(
        "--allow-duplicate-names",
        action="store_true",
        help="Let more than one participant use the same name",
    )

    relay = sub.add_parser("relay", help="Run the address-rewriting relay")
    relay.add_argument("--host", default=None, help="Listen address")
    relay.add_argument("--port", type=int, default=None, help="Listen port")
    relay.add_argument(
        "--upstream",
        type=_parse_hostport,
        default=None,
        help="Upstream chat server as HOST:PORT",
    )
    relay.add_argument(
        "--replacement", default=None, help="Address substituted into relayed lines"
    )

    return p


def _apply_args(cfg: ChatRuntimeConfig, args: argparse.Namespace) -> ChatRuntimeConfig:
    if args.command == "chat":
        if args.host is not None:
            cfg = replace(cfg, host=args.host)
        if args.port is not None:
            cfg = replace(cfg, port=int(args.port))
        if args.bus_capacity is not None:
            cfg = replace(cfg, bus_capacity=int(args.bus_capacity))
        if args.allow_duplicate_names:
            cfg = replace(cfg, reject_duplicate_names=False)
    elif args.command == "relay":
        if args.host is not None:
            cfg = replace(cfg, relay_host=args.host)
        if args.port is not None:
            cfg = replace(cfg, relay_port=int(args.port))
        if args.upstream is not None:
            host, port = args.upstream
            cfg = replace(cfg, upstream_host=host, upstream_port=port)
        if args.replacement is not None:
            cfg = replace(cfg, replacement_address=str(args.replacement))

    if args.log_level is not None:
        cfg = replace(cfg, log_level=str(args.log_level))
    if args.log_file is not None:
        cfg = replace(cfg, log_file=str(args.log_file) if str(args.log_file) else None)
    return cfg


def build_service(cfg: ChatRuntimeConfig, command: str) -> TcpService:
    if command == "chat":
        return ChatService(cfg)
    if command == "relay":
        return RelayService(cfg)
    raise ValueError(f"unknown command {command!r}")


def main(argv: list[str] | None = None) -> None:
    parser = _build_arg_parser()
    args = parser.parse_args(sys.argv[1:] if argv is None else argv)

    config_path = expand_path(str(args.config))

    if not os.path.exists(config_path):
        _write_default_config(config_path)
        print(
            "Created default budgetchat config. Edit it before starting:\n"
            f"- Config: {config_path}\n"
            "\nThen re-run budgetchat.",
            file=sys.stderr,
        )
        raise SystemExit(0)

    try:
        cfg = load_config(config_path)
        cfg = validate_config(_apply_args(cfg, args))
    except (OSError, ValueError) as e:
        parser.error(f"invalid configuration: {e}")

    configure_logging(cfg, override_level=args.log_level, override_file=args.log_file)

    svc = build_service(cfg, args.command)
    try:
        asyncio.run(svc.run_forever())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
