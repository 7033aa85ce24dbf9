from typing import Any, Dict, List, Optional

from models.prediction import PipsRange, PipsSettings


class ConfigManager:
    def __init__(self, config: Dict[str, Any]):
        self.config = config

    def get(self, key: str, default: Any = None) -> Any:
        return self.config.get(key, default)

    def get_instruments(self) -> List[str]:
        return list(self.config.get("INSTRUMENTS") or [])

    def get_pips_settings(self) -> PipsSettings:
        pips = self.config.get("PIPS") or {}
        return PipsSettings(
            profit_pips=PipsRange(
                min=int(pips.get("profit_min", 10)), max=int(pips.get("profit_max", 20))
            ),
            loss_pips=PipsRange(
                min=int(pips.get("loss_min", 5)), max=int(pips.get("loss_max", 10))
            ),
        )

    def get_refresh_interval(self) -> str:
        return self.config.get("REFRESH_INTERVAL") or "1m"

    def get_max_logs(self) -> int:
        return int(self.config.get("MAX_LOGS", 1500))

    def get_min_lifetime(self) -> int:
        return int(self.config.get("MIN_LIFETIME_SECONDS", 10))

    def get_max_lifetime(self) -> int:
        return int(self.config.get("MAX_LIFETIME_SECONDS", 600))

    def get_sweep_interval(self) -> float:
        return float(self.config.get("SWEEP_INTERVAL_S", 1.0))

    def get_display_count(self) -> int:
        return int(self.config.get("DISPLAY_COUNT", 10))

    def get_predictor(self) -> Dict[str, Any]:
        return {
            "kind": (self.config.get("PREDICTOR") or "mock").lower(),
            "url": self.config.get("PREDICTOR_URL") or "",
            "timeout_s": self.get_predictor_timeout(),
        }

    def get_predictor_timeout(self) -> Optional[float]:
        # None: no fetch timeout unless one is configured
        raw = self.config.get("PREDICTOR_TIMEOUT_S")
        if raw is None or raw == "":
            return None
        return float(raw)

    def get_dashboard(self) -> Dict[str, Any]:
        dash = self.config.get("DASHBOARD") or {}
        return {
            "enabled": bool(dash.get("enabled", True)),
            "port": int(dash.get("port", 8080)),
        }
