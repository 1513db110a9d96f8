"""Tests for configuration loading and logging setup."""

import pytest
from loguru import logger
from pydantic import ValidationError

from syssnap.config import PanelConfig, load_config
from syssnap.logger import setup_logging


def test_defaults_when_file_missing(tmp_path):
    config = load_config(tmp_path / "missing.yaml")

    assert config == PanelConfig()
    assert config.trusted_uid == 0
    assert config.sar_log_paths == ["/var/log/sa/sa", "/var/log/sysstat/sa"]
    assert config.default_interval == 600


def test_yaml_overrides(tmp_path):
    path = tmp_path / "panel.yaml"
    path.write_text(
        "cache_dir: /tmp/panel-cache\n"
        "trusted_uid: 1000\n"
        "sar_log_paths:\n"
        "  - /srv/sa/sa\n"
        "command_timeout: 5\n"
    )

    config = load_config(path)

    assert config.cache_dir == "/tmp/panel-cache"
    assert config.trusted_uid == 1000
    assert config.sar_log_paths == ["/srv/sa/sa"]
    assert config.command_timeout == 5.0


def test_empty_yaml_gives_defaults(tmp_path):
    path = tmp_path / "panel.yaml"
    path.write_text("")
    assert load_config(path) == PanelConfig()


def test_env_var_selects_config(tmp_path, monkeypatch):
    path = tmp_path / "panel.yaml"
    path.write_text("refresh_rate: 120\n")
    monkeypatch.setenv("SYSSNAP_PANEL_CONFIG", str(path))

    assert load_config().refresh_rate == 120.0


def test_invalid_values_are_rejected(tmp_path):
    path = tmp_path / "panel.yaml"
    path.write_text("command_timeout: 0\n")

    with pytest.raises(ValidationError):
        load_config(path)


def test_setup_logging_writes_to_file(tmp_path):
    log_file = tmp_path / "logs" / "panel.log"
    setup_logging("DEBUG", str(log_file))
    try:
        logger.debug("cache warmed")
        logger.complete()
    finally:
        logger.remove()

    assert "cache warmed" in log_file.read_text()
    assert "DEBUG" in log_file.read_text()


def test_setup_logging_respects_level(tmp_path):
    log_file = tmp_path / "panel.log"
    setup_logging("WARNING", str(log_file))
    try:
        logger.info("quiet")
        logger.warning("loud")
    finally:
        logger.remove()

    text = log_file.read_text()
    assert "loud" in text
    assert "quiet" not in text
