import logging
import os
from logging.handlers import RotatingFileHandler
from unittest.mock import MagicMock, patch

import pytest

from core.initialization import initialize_components, load_configuration
from modules.predictor import HttpPredictor, MockPredictor
from modules.session import PredictionSession
from utils.config_manager import ConfigManager
from utils.config_validator import validate_config
from utils.logger import configure_logging, setup_logger

# ------------------------- Fixtures ------------------------- #

@pytest.fixture
def clean_env(monkeypatch):
    for key in (
        "INSTRUMENTS", "REFRESH_INTERVAL", "MAX_LOGS", "PREDICTOR", "PREDICTOR_URL",
        "PROFIT_PIPS_MIN", "PROFIT_PIPS_MAX", "LOSS_PIPS_MIN", "LOSS_PIPS_MAX",
        "MIN_LIFETIME_SECONDS", "MAX_LIFETIME_SECONDS", "DASHBOARD_ENABLED",
        "DASHBOARD_PORT", "TELEGRAM_TOKEN", "TELEGRAM_CHAT_ID", "PREDICTOR_TIMEOUT_S",
        "LOG_LEVEL", "LOG_FILE", "LOG_MAX_MB", "LOG_BACKUPS",
    ):
        # setenv first so teardown also removes whatever load_dotenv writes
        monkeypatch.setenv(key, "")
        monkeypatch.delenv(key)
    return monkeypatch


@pytest.fixture
def config(clean_env, tmp_path):
    return load_configuration(str(tmp_path / "missing.env"))

# ------------------------- Loading ------------------------- #

def test_defaults(config):
    assert config["INSTRUMENTS"] == ["XAU/USD"]
    assert config["REFRESH_INTERVAL"] == "1m"
    assert config["MAX_LOGS"] == 1500
    assert config["PIPS"] == {"profit_min": 10, "profit_max": 20, "loss_min": 5, "loss_max": 10}
    assert config["DASHBOARD"] == {"enabled": True, "port": 8080}
    assert config["PREDICTOR"] == "mock"


def test_env_file_is_read(clean_env, tmp_path):
    env = tmp_path / "config.env"
    env.write_text(
        "INSTRUMENTS=xau/usd, BTC/USD\n"
        "REFRESH_INTERVAL=15 minutes\n"
        "DASHBOARD_ENABLED=false\n"
    )
    conf = load_configuration(str(env))
    assert conf["INSTRUMENTS"] == ["XAU/USD", "BTC/USD"]
    assert conf["REFRESH_INTERVAL"] == "15m"
    assert conf["DASHBOARD"]["enabled"] is False


def test_config_manager_getters(config):
    cm = ConfigManager(config)
    pips = cm.get_pips_settings()
    assert (pips.profit_pips.min, pips.profit_pips.max) == (10, 20)
    assert (pips.loss_pips.min, pips.loss_pips.max) == (5, 10)
    assert cm.get_min_lifetime() == 10
    assert cm.get_max_lifetime() == 600
    assert cm.get_sweep_interval() == 1.0
    assert cm.get_display_count() == 10
    assert cm.get_predictor()["kind"] == "mock"

# ------------------------- Validation ------------------------- #

def test_validate_accepts_defaults(config):
    validate_config(config)


@pytest.mark.parametrize("patch,exc", [
    ({"INSTRUMENTS": ["EUR/USD"]}, ValueError),
    ({"REFRESH_INTERVAL": "fortnight"}, ValueError),
    ({"MAX_LOGS": 0}, TypeError),
    ({"MAX_LIFETIME_SECONDS": 5}, ValueError),
    ({"PREDICTOR": "http", "PREDICTOR_URL": ""}, ValueError),
    ({"PIPS": None}, ValueError),
])
def test_validate_rejects(config, patch, exc):
    config.update(patch)
    with pytest.raises(exc):
        validate_config(config)

# ------------------------- Wiring ------------------------- #

def test_initialize_components_wires_session(config):
    components = initialize_components(config, logger=logging.getLogger("test"))

    assert isinstance(components["session"], PredictionSession)
    assert isinstance(components["predictor"], MockPredictor)
    assert components["selection"].instruments == ("XAU/USD",)
    assert components["store"].max_logs == 1500
    assert components["scheduler"].min_lifetime_s == 10


def test_initialize_components_http_predictor(config):
    config.update({"PREDICTOR": "http", "PREDICTOR_URL": "http://predict.local/api"})
    components = initialize_components(config, logger=logging.getLogger("test"))
    assert isinstance(components["predictor"], HttpPredictor)


def test_initialize_components_overrides(config):
    predictor = MagicMock()
    components = initialize_components(
        config, overrides={"predictor": predictor, "logger": logging.getLogger("test")}
    )
    assert components["predictor"] is predictor
    assert components["scheduler"].predictor is predictor


def test_http_predictor_has_no_timeout_by_default(clean_env, tmp_path):
    env = tmp_path / "config.env"
    env.write_text("PREDICTOR=http\nPREDICTOR_URL=http://predict.local/api\n")
    conf = load_configuration(str(env))

    components = initialize_components(conf, logger=logging.getLogger("test"))

    assert conf["PREDICTOR_TIMEOUT_S"] is None
    assert components["predictor"].timeout_s is None


def test_predictor_timeout_when_configured(clean_env, tmp_path):
    env = tmp_path / "config.env"
    env.write_text(
        "PREDICTOR=http\nPREDICTOR_URL=http://predict.local/api\nPREDICTOR_TIMEOUT_S=2.5\n"
    )
    conf = load_configuration(str(env))

    components = initialize_components(conf, logger=logging.getLogger("test"))

    assert components["predictor"].timeout_s == 2.5

# ------------------------- Logging ------------------------- #

def test_log_settings_come_from_env_file(clean_env, tmp_path):
    log_path = tmp_path / "custom" / "engine.log"
    env = tmp_path / "config.env"
    env.write_text(f"LOG_FILE={log_path}\nLOG_MAX_MB=2\nLOG_BACKUPS=3\nLOG_LEVEL=debug\n")
    conf = load_configuration(str(env))

    assert conf["LOG_FILE"] == str(log_path)
    assert conf["LOG_MAX_MB"] == 2
    assert conf["LOG_BACKUPS"] == 3
    assert conf["LOG_LEVEL"] == "DEBUG"

    logger = setup_logger(
        "engine-log-file-test",
        conf["LOG_LEVEL"],
        log_file=conf["LOG_FILE"],
        to_console=False,
        max_mb=conf["LOG_MAX_MB"],
        backups=conf["LOG_BACKUPS"],
    )
    try:
        (handler,) = logger.handlers
        assert isinstance(handler, RotatingFileHandler)
        assert handler.baseFilename == os.path.abspath(log_path)
        assert handler.maxBytes == 2 * 1024 * 1024
        assert handler.backupCount == 3
        assert logger.level == logging.DEBUG
    finally:
        for h in list(logger.handlers):
            logger.removeHandler(h)
            h.close()


def test_setup_logger_does_not_duplicate_handlers(tmp_path):
    name = "engine-dedup-test"
    first = setup_logger(name, log_file=None)
    again = setup_logger(name, log_file=str(tmp_path / "other.log"))
    try:
        assert first is again
        assert len(again.handlers) == 1
    finally:
        for h in list(first.handlers):
            first.removeHandler(h)
            h.close()


def test_configure_logging_uses_config_values(config):
    config.update({"LOG_FILE": "var/engine.log", "LOG_MAX_MB": 7, "LOG_BACKUPS": 2})
    with patch("utils.logger.setup_logger") as setup:
        logger = configure_logging(config)

    setup.assert_called_once_with(
        "", "INFO", log_file="var/engine.log", max_mb=7, backups=2,
    )
    assert logger.name == "PredictionEngine"
