"""
Transient error channel for the Trivia Quiz Bot.
Holds at most one user-facing error message and clears it after a fixed window.
"""
import logging
from typing import Any, Callable, Optional

from .quiz_engine import DeferredAction


class TransientErrorChannel:
    """Single-slot error message with automatic dismissal."""

    DEFAULT_TIMEOUT = 5.0

    def __init__(
        self,
        timeout: float = DEFAULT_TIMEOUT,
        on_change: Optional[Callable[[Optional[str]], Any]] = None
    ):
        """
        Initialize the channel.

        Args:
            timeout: Seconds an error stays visible
            on_change: Called with the new message, or None when it clears
        """
        self.logger = logging.getLogger(__name__)
        self.timeout = timeout
        self._on_change = on_change
        self._message: Optional[str] = None
        self._clear_action = DeferredAction("error_clear")

    @property
    def message(self) -> Optional[str]:
        """Get the visible error message, if any."""
        return self._message

    def set(self, message: str) -> None:
        """Show message, replacing any visible one and restarting the window."""
        self._message = message
        self.logger.warning(f"Transient error raised: {message}")
        self._clear_action.schedule(self.timeout, self._expire)
        self._notify()

    def clear(self) -> None:
        """Drop the visible message immediately."""
        self._clear_action.cancel()
        if self._message is None:
            return
        self._message = None
        self._notify()

    def close(self) -> None:
        """Cancel the pending clearance without notifying."""
        self._clear_action.cancel()

    def _expire(self) -> None:
        self.logger.debug(f"Transient error expired: {self._message}")
        self._message = None
        self._notify()

    def _notify(self) -> None:
        if self._on_change is not None:
            self._on_change(self._message)
