"""
Ordered observer lists with idempotent unsubscribe.

Callbacks are kept in registration order. Removing a callback twice (or
after ``clear()``) is a no-op, so UI consumers can call their unsubscribe
function from any teardown path without bookkeeping.
"""

import logging
from typing import Any, Callable, List

logger = logging.getLogger(__name__)


class SubscriberList:
    """Registration-ordered callback list."""

    def __init__(self, name: str = ''):
        self.name = name
        self._entries: List[List[Any]] = []   # [callback, active]

    def add(self, callback: Callable[..., Any]) -> Callable[[], None]:
        """Register ``callback`` and return its unsubscribe function."""
        entry = [callback, True]
        self._entries.append(entry)

        def unsubscribe() -> None:
            if not entry[1]:
                return
            entry[1] = False
            try:
                self._entries.remove(entry)
            except ValueError:
                pass

        return unsubscribe

    def notify(self, *args: Any) -> None:
        """Invoke every active callback synchronously, in registration order.

        A callback that raises is logged and does not stop the others.
        """
        for entry in list(self._entries):
            if entry[1]:
                self.invoke(entry[0], *args)

    def invoke(self, callback: Callable[..., Any], *args: Any) -> None:
        """Call one subscriber, logging instead of raising when it fails."""
        try:
            callback(*args)
        except Exception as e:
            logger.error(f"Subscriber of {self.name or 'observer list'} raised: {e}")

    def clear(self) -> None:
        for entry in self._entries:
            entry[1] = False
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
