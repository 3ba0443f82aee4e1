"""
User-visible notification sinks.

Presentation (toasts, banners) belongs to the caller; the library only hands
over ``(level, message, error payload)`` triples through a ``Notifier``.
"""

from __future__ import annotations

import logging
from typing import Any, Optional, Protocol

from django.contrib import messages

logger = logging.getLogger(__name__)

SUCCESS = "success"
ERROR = "error"
INFO = "info"


class Notifier(Protocol):
    def __call__(
        self, level: str, message: str, error: Optional[dict[str, Any]] = None
    ) -> None: ...


class LoggingNotifier:
    """Default sink: writes notifications to the library logger."""

    _LEVELS = {
        SUCCESS: logging.INFO,
        INFO: logging.INFO,
        ERROR: logging.ERROR,
    }

    def __call__(
        self, level: str, message: str, error: Optional[dict[str, Any]] = None
    ) -> None:
        log_level = self._LEVELS.get(level, logging.INFO)
        if error:
            logger.log(log_level, "%s (%s)", message, error.get("code"))
        else:
            logger.log(log_level, message)


class DjangoMessagesNotifier:
    """Queue notifications on a request through ``django.contrib.messages``."""

    _LEVELS = {
        SUCCESS: messages.SUCCESS,
        INFO: messages.INFO,
        ERROR: messages.ERROR,
    }

    def __init__(self, request: Any) -> None:
        self.request = request

    def __call__(
        self, level: str, message: str, error: Optional[dict[str, Any]] = None
    ) -> None:
        messages.add_message(
            self.request,
            self._LEVELS.get(level, messages.INFO),
            message,
            fail_silently=True,
        )
