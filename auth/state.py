"""
Published session state.

The session engine is the only writer; UI consumers read the current
snapshot or subscribe to changes. Subscribers are called synchronously in
subscription order. Subscriber errors are logged but never propagate.
"""

import logging
from typing import Callable, List

from auth.types import SessionState

logger = logging.getLogger(__name__)

Subscriber = Callable[[SessionState], None]


class SessionPublisher:
    """Single-writer, many-reader container for the current SessionState."""

    def __init__(self, initial: SessionState | None = None):
        self._state = initial or SessionState()
        self._subscribers: List[Subscriber] = []

    @property
    def state(self) -> SessionState:
        """Current snapshot."""
        return self._state

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """
        Register callback for every published state.

        Returns:
            A function that removes the subscription.
        """
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def publish(self, state: SessionState) -> None:
        """Replace the snapshot and notify subscribers."""
        self._state = state

        for callback in list(self._subscribers):
            try:
                callback(state)
            except Exception:
                logger.exception(
                    "Subscriber %s failed for state %s",
                    getattr(callback, "__name__", repr(callback)),
                    state.status.value,
                )

    def update(self, **changes) -> SessionState:
        """Publish a copy of the current snapshot with changes applied."""
        state = self._state.model_copy(update=changes)
        self.publish(state)
        return state
