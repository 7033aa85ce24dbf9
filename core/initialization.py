"""
core/initialization.py
----------------------
Loads configuration from .env, normalizes instruments/intervals, and wires
all runtime components with simple dependency‑injection (DI) overrides.
"""

from __future__ import annotations

import logging
import os
from typing import Dict, Optional

from dotenv import load_dotenv

from modules.log_store import LogStore
from modules.predictor import BasePredictor, HttpPredictor, MockPredictor
from modules.scheduler import PredictionScheduler
from modules.selection import SelectionCell, SelectionState
from modules.session import PredictionSession
from modules.sweeper import EvictionSweeper
from notifiers.hub import NotifierHub
from utils.config_manager import ConfigManager
from utils.config_validator import validate_config
from utils.interval import normalize_interval
from utils.logger import DEFAULT_BACKUPS, DEFAULT_LOG_FILE, DEFAULT_MAX_MB, configure_logging


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_float_or_none(name: str) -> Optional[float]:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return None
    return float(raw)


def load_configuration(env_path: str = "config.env") -> Dict:
    """
    Load settings from an .env-style file and return a structured config dict.
    """
    log = logging.getLogger(__name__)
    load_dotenv(dotenv_path=env_path)

    instruments_raw = os.getenv("INSTRUMENTS", "XAU/USD")

    conf: Dict[str, object] = {
        "INSTRUMENTS": [s.strip().upper() for s in instruments_raw.split(",") if s.strip()],
        "PIPS": {
            "profit_min": int(os.getenv("PROFIT_PIPS_MIN", "10")),
            "profit_max": int(os.getenv("PROFIT_PIPS_MAX", "20")),
            "loss_min": int(os.getenv("LOSS_PIPS_MIN", "5")),
            "loss_max": int(os.getenv("LOSS_PIPS_MAX", "10")),
        },
        "REFRESH_INTERVAL": normalize_interval(os.getenv("REFRESH_INTERVAL", "1m")),
        "MAX_LOGS": int(os.getenv("MAX_LOGS", "1500")),
        "MIN_LIFETIME_SECONDS": int(os.getenv("MIN_LIFETIME_SECONDS", "10")),
        "MAX_LIFETIME_SECONDS": int(os.getenv("MAX_LIFETIME_SECONDS", "600")),
        "SWEEP_INTERVAL_S": float(os.getenv("SWEEP_INTERVAL_S", "1.0")),
        "DISPLAY_COUNT": int(os.getenv("DISPLAY_COUNT", "10")),

        "PREDICTOR": os.getenv("PREDICTOR", "mock").strip().lower(),
        "PREDICTOR_URL": os.getenv("PREDICTOR_URL", ""),
        # unset means no fetch timeout: a stalled predictor stalls its batch
        "PREDICTOR_TIMEOUT_S": _env_float_or_none("PREDICTOR_TIMEOUT_S"),

        "TELEGRAM": {
            "token": os.getenv("TELEGRAM_TOKEN"),
            "chat_id": os.getenv("TELEGRAM_CHAT_ID"),
        },
        "DASHBOARD": {
            "enabled": _env_bool("DASHBOARD_ENABLED", True),
            "port": int(os.getenv("DASHBOARD_PORT", "8080")),
        },
        "LOG_LEVEL": os.getenv("LOG_LEVEL", "INFO").upper(),
        "LOG_FILE": os.getenv("LOG_FILE", DEFAULT_LOG_FILE) or None,
        "LOG_MAX_MB": int(os.getenv("LOG_MAX_MB", str(DEFAULT_MAX_MB))),
        "LOG_BACKUPS": int(os.getenv("LOG_BACKUPS", str(DEFAULT_BACKUPS))),
    }

    log.debug("Parsed INSTRUMENTS: %s", conf["INSTRUMENTS"])
    log.debug("Parsed REFRESH_INTERVAL: %s", conf["REFRESH_INTERVAL"])

    return conf


def _build_predictor(config: ConfigManager) -> BasePredictor:
    wanted = config.get_predictor()
    if wanted["kind"] == "http":
        return HttpPredictor(wanted["url"], timeout_s=wanted["timeout_s"])
    return MockPredictor()


def initialize_components(
    config: Dict,
    overrides: Optional[Dict[str, object]] = None,
    logger: Optional[logging.Logger] = None,
    ) -> Dict[str, object]:
    """
    Construct and wire together all runtime components (supports DI via overrides).

    Keys you can override:
    {"logger", "store", "selection", "predictor", "notifier", "scheduler",
     "sweeper", "clock", "rng"}
    """
    overrides = overrides or {}
    validate_config(config)
    config = ConfigManager(config)

    # 1) Logger
    logger = overrides.get("logger") or logger or configure_logging(config.config)

    # 2) Log store
    store = overrides.get("store")
    if store is None:
        store = LogStore(max_logs=config.get_max_logs())

    # 3) Selection cell, seeded from config
    selection = overrides.get("selection")
    if selection is None:
        selection = SelectionCell(
            SelectionState(
                pips=config.get_pips_settings(),
                refresh_interval=config.get_refresh_interval(),
                max_lifetime_s=config.get_max_lifetime(),
            )
        )
        selection.set_instruments(config.get_instruments())

    # 4) Predictor + notifier hub
    predictor = overrides.get("predictor") or _build_predictor(config)
    notifier = overrides.get("notifier") or NotifierHub(config.config)

    # 5) Scheduler / sweeper
    scheduler = overrides.get("scheduler")
    if scheduler is None:
        sched_kwargs = {"min_lifetime_s": config.get_min_lifetime()}
        if overrides.get("clock") is not None:
            sched_kwargs["clock"] = overrides["clock"]
        if overrides.get("rng") is not None:
            sched_kwargs["rng"] = overrides["rng"]
        scheduler = PredictionScheduler(
            store, selection, predictor, notifier, logger, **sched_kwargs
        )

    sweeper = overrides.get("sweeper") or EvictionSweeper(
        store, selection, logger, interval_s=config.get_sweep_interval()
    )

    session = PredictionSession(store, selection, scheduler, sweeper, logger)

    logger.info("✅ Logger initialized.")
    logger.info("✅ LogStore initialized (max %d entries).", store.max_logs)
    logger.info("✅ Predictor initialized: %s", predictor.__class__.__name__)
    logger.info("✅ Notifier backends: %s", [b.__class__.__name__ for b in notifier.backends])
    logger.info("✅ Scheduler initialized (interval %s).", selection.refresh_interval)

    return {
        "logger": logger,
        "config": config,
        "store": store,
        "selection": selection,
        "predictor": predictor,
        "notifier": notifier,
        "scheduler": scheduler,
        "sweeper": sweeper,
        "session": session,
    }
