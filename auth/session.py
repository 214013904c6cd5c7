"""
Observable auth state.

Synchronous in-process pub/sub for session changes. Listeners run immediately
in subscription order. Listener errors are logged but never propagate: the
session change has already happened.
"""

import logging
from dataclasses import dataclass
from typing import Callable, List

from auth.types import AuthChangeEvent, ProviderSession

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuthStateChange:
    """One notification: what happened and the session afterwards."""

    event: AuthChangeEvent
    session: ProviderSession | None

    @property
    def is_authenticated(self) -> bool:
        return self.session is not None


AuthListener = Callable[[AuthStateChange], None]


class Subscription:
    """Handle returned by subscribe(). Unsubscribing twice is harmless."""

    def __init__(self, emitter: "AuthStateEmitter", listener: AuthListener):
        self._emitter = emitter
        self._listener = listener
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def unsubscribe(self) -> None:
        if self._active:
            self._emitter._remove(self._listener)
            self._active = False


class AuthStateEmitter:
    """Holds listeners and fans out AuthStateChange notifications."""

    def __init__(self):
        self._listeners: List[AuthListener] = []

    def subscribe(self, listener: AuthListener) -> Subscription:
        self._listeners.append(listener)
        return Subscription(self, listener)

    def _remove(self, listener: AuthListener) -> None:
        try:
            self._listeners.remove(listener)
        except ValueError:
            pass

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def emit(self, event: AuthChangeEvent, session: ProviderSession | None) -> None:
        change = AuthStateChange(event=event, session=session)
        # Copy: listeners may unsubscribe while being notified
        for listener in list(self._listeners):
            try:
                listener(change)
            except Exception:
                logger.exception(
                    "Auth listener %s failed for %s",
                    getattr(listener, "__name__", repr(listener)),
                    event.value,
                )
