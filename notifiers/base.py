# notifiers/base.py
"""
notifiers/base.py
-----------------
The notification event and the single-method interface every notifier
backend implements.
"""
from __future__ import annotations
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Awaitable, Literal, Optional, Union

Severity = Literal["info", "success", "error"]
SEVERITIES: tuple[str, ...] = ("info", "success", "error")


@dataclass(frozen=True)
class Notification:
    title: str
    description: str
    severity: Severity = "info"
    timestamp: datetime = field(default_factory=lambda: datetime.now().astimezone())
    id: str = field(default_factory=lambda: uuid.uuid4().hex)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "severity": self.severity,
            "timestamp": self.timestamp.isoformat(),
        }


class BaseNotifier(ABC):
    """Every concrete notifier must implement send()."""

    @abstractmethod
    def send(self, notification: Notification) -> Optional[Awaitable[None]]:
        """Deliver one notification. May return an awaitable for async backends."""
        raise NotImplementedError
