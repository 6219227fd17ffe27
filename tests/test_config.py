import logging
from dataclasses import replace

import pytest

from budgetchat.config import (
    ChatRuntimeConfig,
    apply_config_data,
    load_config,
    validate_config,
)
from budgetchat.logging_config import configure_logging, parse_level


def test_defaults_are_valid() -> None:
    cfg = validate_config(ChatRuntimeConfig())
    assert cfg.port == 8000
    assert cfg.bus_capacity == 100
    assert cfg.reject_duplicate_names is True


def test_tables_are_flattened() -> None:
    data = {
        "chat": {"port": 9000, "bus_capacity": 5},
        "relay": {
            "port": 9001,
            "upstream_host": "chat.example",
            "upstream_port": 1234,
            "connect_timeout_s": 2.5,
        },
        "logging": {"level": "DEBUG", "file": ""},
    }
    cfg = apply_config_data(ChatRuntimeConfig(), data)
    assert cfg.port == 9000
    assert cfg.bus_capacity == 5
    assert cfg.relay_port == 9001
    assert cfg.upstream_host == "chat.example"
    assert cfg.upstream_port == 1234
    assert cfg.upstream_connect_timeout_s == 2.5
    assert cfg.log_level == "DEBUG"
    assert cfg.log_file is None


def test_unknown_keys_and_config_path_are_ignored() -> None:
    base = ChatRuntimeConfig(config_path="/etc/budgetchat.toml")
    cfg = apply_config_data(base, {"config_path": "/tmp/x", "nonsense": 1})
    assert cfg == base


def test_load_config_from_file(tmp_path) -> None:
    p = tmp_path / "budgetchat.toml"
    p.write_text(
        '[chat]\nport = 7000\n\n[relay]\nreplacement_address = "7' + "b" * 30 + '"\n',
        encoding="utf-8",
    )
    cfg = load_config(str(p))
    assert cfg.port == 7000
    assert cfg.replacement_address == "7" + "b" * 30
    assert cfg.config_path == str(p)


@pytest.mark.parametrize(
    "changes",
    [
        {"port": 70000},
        {"relay_port": -1},
        {"upstream_port": "16963"},
        {"bus_capacity": 0},
        {"name_max_chars": 0},
        {"upstream_connect_timeout_s": -1.0},
        {"replacement_address": "not-an-address"},
    ],
)
def test_validate_rejects_bad_values(changes) -> None:
    with pytest.raises(ValueError):
        validate_config(replace(ChatRuntimeConfig(), **changes))


def test_parse_level() -> None:
    assert parse_level("debug", logging.INFO) == logging.DEBUG
    assert parse_level("WARN", logging.INFO) == logging.WARNING
    assert parse_level("15", logging.INFO) == 15
    assert parse_level("", logging.INFO) == logging.INFO
    assert parse_level("loud", logging.ERROR) == logging.ERROR
    assert parse_level(None, logging.INFO) == logging.INFO


def test_configure_logging_is_repeatable(tmp_path) -> None:
    log_file = tmp_path / "logs" / "budgetchat.log"
    cfg = ChatRuntimeConfig(log_console=False, log_file=str(log_file))
    root = logging.getLogger()
    saved_handlers, saved_level = list(root.handlers), root.level
    try:
        configure_logging(cfg)
        configure_logging(cfg, override_level="DEBUG")
        assert len(root.handlers) == 1
        assert root.level == logging.DEBUG

        logging.getLogger("budgetchat.test").info("hello")
        for h in root.handlers:
            h.flush()
        assert "hello" in log_file.read_text(encoding="utf-8")
    finally:
        for h in list(root.handlers):
            root.removeHandler(h)
            h.close()
        for h in saved_handlers:
            root.addHandler(h)
        root.setLevel(saved_level)
        logging.captureWarnings(False)


def test_empty_log_file_override_disables_file_logging(tmp_path) -> None:
    cfg = ChatRuntimeConfig(log_console=False, log_file=str(tmp_path / "budgetchat.log"))
    root = logging.getLogger()
    saved_handlers, saved_level = list(root.handlers), root.level
    try:
        configure_logging(cfg, override_file="")
        assert root.handlers == []
        assert not (tmp_path / "budgetchat.log").exists()
    finally:
        for h in saved_handlers:
            root.addHandler(h)
        root.setLevel(saved_level)
        logging.captureWarnings(False)
