"""Tests for Config loading and logging setup."""

import logging

from profilecrawl.config import Config
from profilecrawl.logging_config import logging_from_config, setup_logging


def test_defaults():
    config = Config()
    assert config.database_url == "sqlite:///profilecrawl.db"
    assert config.max_attempts == 3
    assert config.rate_limit_interval == 1.0
    assert config.headless is True


def test_from_env(monkeypatch):
    monkeypatch.setenv("PROFILECRAWL_ITEM_CONCURRENCY", "7")
    monkeypatch.setenv("PROFILECRAWL_RATE_LIMIT_INTERVAL", "0.25")
    monkeypatch.setenv("PROFILECRAWL_HEADLESS", "false")
    monkeypatch.setenv("PROFILECRAWL_DATABASE_URL", "sqlite:///tmp/test.db")

    config = Config.from_env()

    assert config.item_concurrency == 7
    assert config.rate_limit_interval == 0.25
    assert config.headless is False
    assert config.database_url == "sqlite:///tmp/test.db"


def test_from_env_keeps_default_on_bad_value(monkeypatch):
    monkeypatch.setenv("PROFILECRAWL_MAX_ATTEMPTS", "many")
    assert Config.from_env().max_attempts == 3


def test_from_file_with_crawler_section(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(
        "crawler:\n"
        "  max_attempts: 5\n"
        "  base_delay: 0.1\n"
        "  headless: no\n"
        "  log_level: DEBUG\n"
    )

    config = Config.from_file(str(path))

    assert config.max_attempts == 5
    assert config.base_delay == 0.1
    assert config.headless is False
    assert config.log_level == "DEBUG"


def test_from_file_top_level(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("worker_concurrency: 2\nunknown_key: ignored\n")
    config = Config.from_file(str(path))
    assert config.worker_concurrency == 2
    assert "unknown_key" not in config.to_dict()


def test_from_file_missing(tmp_path):
    assert Config.from_file(str(tmp_path / "absent.yaml")) == Config()


def test_setup_logging_writes_file(tmp_path):
    log_file = tmp_path / "logs" / "crawl.log"
    config = Config(log_level="info", log_file=str(log_file))
    logging_from_config(config)
    try:
        logging.getLogger("profilecrawl.test").info("hello from the test")
        for handler in logging.getLogger().handlers:
            handler.flush()

        assert logging.getLogger().level == logging.INFO
        assert logging.getLogger("httpx").level == logging.WARNING
        assert logging.getLogger("playwright").level == logging.WARNING
        assert "hello from the test" in log_file.read_text()
    finally:
        setup_logging(level="WARNING")


def test_debug_level_opens_library_loggers():
    setup_logging(level="DEBUG")
    try:
        assert logging.getLogger().level == logging.DEBUG
        assert logging.getLogger("httpcore").level == logging.DEBUG
    finally:
        setup_logging(level="WARNING")
        assert logging.getLogger("httpcore").level == logging.WARNING


def test_unknown_level_falls_back_to_info():
    setup_logging(level="chatty")
    try:
        assert logging.getLogger().level == logging.INFO
    finally:
        setup_logging(level="WARNING")
