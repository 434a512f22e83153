"""Tests for configuration loading."""

import logging

import pytest
import yaml

from llm_gateway.config_loader import (
    _substitute_env_vars,
    load_config,
    logging_level,
    resolve_env_path,
    resolve_server_address,
)
from llm_gateway.core.exceptions import ConfigurationError
from llm_gateway.logging import setup_logging


def _write_config(path, data):
    path.write_text(yaml.safe_dump(data), encoding="utf-8")
    return path


def test_load_config_reads_yaml(tmp_path):
    config_path = _write_config(
        tmp_path / "gateway.yaml",
        {"backends": {"acme": {"base_url": "http://a/v1", "api_key": "k", "model": "m"}}},
    )
    config = load_config(str(config_path))
    assert config["backends"]["acme"]["model"] == "m"


def test_load_config_uses_env_file(tmp_path, monkeypatch):
    monkeypatch.delenv("ACME_KEY", raising=False)
    config_path = _write_config(
        tmp_path / "config_default.yaml",
        {"backends": {"acme": {"base_url": "http://a/v1", "api_key": "${ACME_KEY}", "model": "m"}}},
    )
    (tmp_path / ".env_default").write_text("ACME_KEY=from-dotenv\n", encoding="utf-8")

    config = load_config(str(config_path))

    assert config["backends"]["acme"]["api_key"] == "from-dotenv"


def test_env_file_wins_over_process_environment(monkeypatch):
    monkeypatch.setenv("ACME_KEY", "from-process")
    assert _substitute_env_vars("$ACME_KEY", {"ACME_KEY": "from-dotenv"}) == "from-dotenv"
    assert _substitute_env_vars("${ACME_KEY}", {}) == "from-process"


def test_unknown_placeholder_left_literally(monkeypatch):
    monkeypatch.delenv("NOT_SET_ANYWHERE", raising=False)
    assert _substitute_env_vars({"k": ["${NOT_SET_ANYWHERE}"]}) == {"k": ["${NOT_SET_ANYWHERE}"]}


def test_load_config_without_substitution(tmp_path):
    config_path = _write_config(tmp_path / "gateway.yaml", {"value": "$HOME"})
    assert load_config(str(config_path), substitute_env=False) == {"value": "$HOME"}


def test_missing_config_file_raises(tmp_path):
    with pytest.raises(ConfigurationError):
        load_config(str(tmp_path / "missing.yaml"))


def test_non_mapping_config_rejected(tmp_path):
    config_path = tmp_path / "list.yaml"
    config_path.write_text("- a\n- b\n", encoding="utf-8")
    with pytest.raises(ConfigurationError):
        load_config(str(config_path))


def test_env_path_pairs_with_config_name(tmp_path):
    assert resolve_env_path(tmp_path / "config_prod.yaml").name == ".env_prod"
    assert resolve_env_path(tmp_path / "gateway.yaml").name == ".env"


def test_server_address_from_config(monkeypatch):
    monkeypatch.delenv("LLMGW_HOST", raising=False)
    monkeypatch.delenv("LLMGW_PORT", raising=False)
    config = {"gateway_settings": {"server": {"host": "0.0.0.0", "port": 9001}}}
    assert resolve_server_address(config) == ("0.0.0.0", 9001)


def test_server_address_env_overrides(monkeypatch):
    monkeypatch.setenv("LLMGW_HOST", "10.0.0.1")
    monkeypatch.setenv("LLMGW_PORT", "7000")
    assert resolve_server_address({}) == ("10.0.0.1", 7000)


def test_invalid_port_falls_back(monkeypatch):
    monkeypatch.delenv("LLMGW_HOST", raising=False)
    monkeypatch.setenv("LLMGW_PORT", "eighty")
    assert resolve_server_address({}) == ("127.0.0.1", 8000)


def test_logging_level_default():
    assert logging_level({}) == "INFO"
    assert logging_level({"gateway_settings": {"logging": {"level": "debug"}}}) == "debug"


def test_setup_logging_installs_one_stdout_handler():
    logger = setup_logging("debug")
    setup_logging("debug")
    assert logger.name == "llm-gateway"
    assert logger.level == logging.DEBUG
    assert len(logger.handlers) == 1
    setup_logging("not-a-level")
    assert logger.level == logging.INFO
