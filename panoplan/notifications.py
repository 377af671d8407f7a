"""User-facing notification channel.

Validation rejections and completed actions are reported here instead of being
raised, so the presentation layer can show them as toasts or a status line.
"""

# Standard library imports
import logging
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Tuple

logger = logging.getLogger(__name__)

_LOG_LEVELS = {
    "info":    logging.INFO,
    "success": logging.INFO,
    "warning": logging.WARNING,
    "error":   logging.WARNING,
}


class ValidationError(ValueError):
    """Operator input was rejected; state is left unchanged."""


@dataclass
class Notifier:
    """Collects status messages and forwards them to an optional callback.

    Args:
        callback: Called with (message, level) for every notification.
    """

    callback: Optional[Callable[[str, str], None]] = None
    history: List[Tuple[str, str]] = field(default_factory=list)

    def notify(self, message: str, level: str = "info") -> None:
        self.history.append((message, level))
        logger.log(_LOG_LEVELS.get(level, logging.INFO), message)
        if self.callback is not None:
            self.callback(message, level)

    def success(self, message: str) -> None:
        self.notify(message, "success")

    def error(self, message: str) -> None:
        self.notify(message, "error")

    @property
    def last(self) -> Optional[Tuple[str, str]]:
        return self.history[-1] if self.history else None
