# notifiers/console.py
import logging

from notifiers.base import BaseNotifier, Notification

_LEVELS = {
    "info": logging.INFO,
    "success": logging.INFO,
    "error": logging.WARNING,
}


class LogNotifier(BaseNotifier):
    """Writes notifications to the engine log. Always enabled."""

    def __init__(self, logger: logging.Logger | None = None):
        self.logger = logger or logging.getLogger("notifications")

    def send(self, notification: Notification) -> None:
        self.logger.log(
            _LEVELS.get(notification.severity, logging.INFO),
            "🔔 %s: %s",
            notification.title,
            notification.description,
        )
