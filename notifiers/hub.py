"""
notifiers/hub.py
----------------
Fan-out layer that owns the notifier back-ends and exposes a single
`notify()` entry point: the engine's notification sink.

The hub also remembers the latest notification (the dashboard's
"Latest Notification" panel) and a short history.
"""
from __future__ import annotations
import asyncio
import inspect
import logging
from collections import deque
from typing import Deque, Dict, List, Optional

from notifiers.base import SEVERITIES, BaseNotifier, Notification, Severity
from notifiers.console import LogNotifier

logger = logging.getLogger(__name__)

DEFAULT_HISTORY = 50


class NotifierHub:
    """Collects active back-ends based on config and broadcasts notifications."""

    def __init__(
        self,
        cfg: Optional[Dict] = None,
        *,
        backends: Optional[List[BaseNotifier]] = None,
        history_size: int = DEFAULT_HISTORY,
    ) -> None:
        cfg = cfg or {}
        self.history: Deque[Notification] = deque(maxlen=max(1, history_size))
        self._pending: set[asyncio.Task] = set()

        if backends is not None:
            self.backends: List[BaseNotifier] = list(backends)
            return

        self.backends = [LogNotifier()]
        tg_cfg = cfg.get("TELEGRAM", {}) or {}
        if tg_cfg.get("token") and tg_cfg.get("chat_id"):
            from notifiers.telegram import TelegramNotifier

            self.backends.append(
                TelegramNotifier(token=tg_cfg["token"], chat_id=tg_cfg["chat_id"])
            )
        else:
            logger.info("TelegramNotifier disabled – token / chat id not configured")

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #
    @property
    def latest(self) -> Optional[Notification]:
        return self.history[-1] if self.history else None

    def notify(self, title: str, description: str, severity: Severity = "info") -> Notification:
        if severity not in SEVERITIES:
            raise ValueError(f"unknown severity {severity!r}")
        notification = Notification(title=title, description=description, severity=severity)
        self.history.append(notification)
        for b in self.backends:
            try:
                res = b.send(notification)
                if inspect.isawaitable(res):
                    self._schedule(b, res)
            except Exception as exc:  # noqa: BLE001 (keep hub robust)
                # do NOT let one failing back-end break the engine
                logger.warning("[NotifierHub] back-end %s failed: %s", b.__class__.__name__, exc)
        return notification

    async def drain(self) -> None:
        """Wait for async back-end deliveries still in flight."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    # ------------------------------------------------------------------ #
    # Helpers
    # ------------------------------------------------------------------ #
    def _schedule(self, backend: BaseNotifier, awaitable) -> None:
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            logger.warning(
                "[NotifierHub] no running loop for %s – notification dropped",
                backend.__class__.__name__,
            )
            if inspect.iscoroutine(awaitable):
                awaitable.close()
            return

        task = asyncio.ensure_future(awaitable)
        self._pending.add(task)

        def _done(t: asyncio.Task) -> None:
            self._pending.discard(t)
            if not t.cancelled() and t.exception() is not None:
                logger.warning(
                    "[NotifierHub] back-end %s failed: %s",
                    backend.__class__.__name__, t.exception(),
                )

        task.add_done_callback(_done)
