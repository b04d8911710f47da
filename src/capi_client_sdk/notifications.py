from __future__ import annotations

import itertools
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Protocol

from .logger import get_logger, log_event

logger = get_logger(__name__)


class ToastLevel(str, Enum):
    SUCCESS = "success"
    ERROR = "error"
    INFO = "info"
    WARNING = "warning"


class Notifier(Protocol):
    def notify(self, message: str, level: ToastLevel = ToastLevel.INFO) -> None: ...


@dataclass(frozen=True)
class Toast:
    id: int
    message: str
    level: ToastLevel


class ToastQueue:
    """Messages waiting to be shown by the view layer."""

    def __init__(self, max_items: int = 20) -> None:
        self.max_items = max(1, max_items)
        self._toasts: list[Toast] = []
        self._ids = itertools.count(1)

    def notify(self, message: str, level: ToastLevel = ToastLevel.INFO) -> None:
        toast = Toast(id=next(self._ids), message=message, level=ToastLevel(level))
        self._toasts.append(toast)
        if len(self._toasts) > self.max_items:
            del self._toasts[: len(self._toasts) - self.max_items]

    @property
    def toasts(self) -> list[Toast]:
        return list(self._toasts)

    def messages(self, level: ToastLevel | None = None) -> list[str]:
        return [toast.message for toast in self._toasts if level is None or toast.level == level]

    def dismiss(self, toast_id: int) -> None:
        self._toasts = [toast for toast in self._toasts if toast.id != toast_id]

    def clear(self) -> None:
        self._toasts.clear()


class LoggingNotifier:
    _LEVELS = {
        ToastLevel.SUCCESS: logging.INFO,
        ToastLevel.INFO: logging.INFO,
        ToastLevel.WARNING: logging.WARNING,
        ToastLevel.ERROR: logging.ERROR,
    }

    def notify(self, message: str, level: ToastLevel = ToastLevel.INFO) -> None:
        log_event(logger, "user.notification", level=self._LEVELS[ToastLevel(level)], message=message)
