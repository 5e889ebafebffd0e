"""
Debounce timer.

Delays a callback until no arm() call has happened for a fixed quiet
period. Runs on the asyncio event loop.
"""

import asyncio
import logging
from collections.abc import Callable

LOG = logging.getLogger(__name__)


class DebounceTimer:
    """
    Single-shot timer that restarts on every arm().

    The callback runs once the delay expires without another arm() call.
    """

    def __init__(self, delay: float, callback: Callable[[], None], name: str = ""):
        """
        Args:
            delay: Quiet period in seconds.
            callback: Called on the event loop when the timer fires.
            name: Label used in log messages.
        """
        self.delay = delay
        self._callback = callback
        self._name = name
        self._handle: asyncio.TimerHandle | None = None

    @property
    def pending(self) -> bool:
        """Whether the timer is armed and has not fired yet."""
        return self._handle is not None

    def arm(self) -> None:
        """Start the timer, restarting it if it is already running."""
        self.cancel()
        loop = asyncio.get_running_loop()
        self._handle = loop.call_later(self.delay, self.fire)
        LOG.debug("Debounce %s armed for %.3fs", self._name, self.delay)

    reset = arm

    def cancel(self) -> None:
        """Stop the timer without firing."""
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def fire(self) -> None:
        """Run the callback now."""
        self.cancel()
        LOG.debug("Debounce %s fired", self._name)
        self._callback()
