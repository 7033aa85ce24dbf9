from models.prediction import INSTRUMENTS
from utils.interval import parse_interval


def validate_config(config: dict):
    required_keys = [
        "REFRESH_INTERVAL",
        "MAX_LOGS",
        "MIN_LIFETIME_SECONDS",
        "MAX_LIFETIME_SECONDS",
        "PIPS",
    ]

    missing = [k for k in required_keys if k not in config or config[k] in (None, "")]
    if missing:
        raise ValueError(f"Missing required configuration keys: {missing}")

    if not isinstance(config.get("INSTRUMENTS", []), list):
        raise TypeError("INSTRUMENTS must be a list.")

    unknown = [i for i in config.get("INSTRUMENTS", []) if i not in INSTRUMENTS]
    if unknown:
        raise ValueError(f"Unsupported instruments: {unknown} (choose from {list(INSTRUMENTS)})")

    if parse_interval(config["REFRESH_INTERVAL"]) is None:
        raise ValueError(f"REFRESH_INTERVAL {config['REFRESH_INTERVAL']!r} is not a valid interval.")

    if not isinstance(config["MAX_LOGS"], int) or config["MAX_LOGS"] <= 0:
        raise TypeError("MAX_LOGS must be a positive integer.")

    if config["MIN_LIFETIME_SECONDS"] <= 0:
        raise ValueError("MIN_LIFETIME_SECONDS must be positive.")

    if config["MAX_LIFETIME_SECONDS"] < config["MIN_LIFETIME_SECONDS"]:
        raise ValueError("MAX_LIFETIME_SECONDS must be >= MIN_LIFETIME_SECONDS.")

    if not isinstance(config["PIPS"], dict):
        raise TypeError("PIPS must be a dictionary.")

    predictor = (config.get("PREDICTOR") or "mock").lower()
    if predictor not in ("mock", "http"):
        raise ValueError(f"PREDICTOR must be 'mock' or 'http', got {predictor!r}.")
    if predictor == "http" and not config.get("PREDICTOR_URL"):
        raise ValueError("PREDICTOR_URL is required when PREDICTOR=http.")
