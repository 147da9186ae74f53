from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Any, Callable, TypeAlias


@dataclass(frozen=True, slots=True)
class TokenReceived:
    message_id: str
    token: str


@dataclass(frozen=True, slots=True)
class MessageCompleted:
    message_id: str
    response: Any


@dataclass(frozen=True, slots=True)
class AuthenticationChanged:
    is_authenticated: bool


Event: TypeAlias = TokenReceived | MessageCompleted | AuthenticationChanged
EventCallback: TypeAlias = Callable[[Event], None]


class EventBus:
    """Synchronous publish/subscribe hub.

    Callbacks run on the publishing thread, in subscription order. A callback
    registered with ``event_type`` only sees events of that type.
    """

    def __init__(self):
        self._subscribers: list[tuple[EventCallback, type | None]] = []
        self._lock = threading.Lock()

    def subscribe(
        self, callback: EventCallback, event_type: type | None = None
    ) -> Callable[[], None]:
        entry = (callback, event_type)
        with self._lock:
            self._subscribers.append(entry)

        def unsubscribe() -> None:
            with self._lock:
                if entry in self._subscribers:
                    self._subscribers.remove(entry)

        return unsubscribe

    def emit(self, event: Event) -> None:
        with self._lock:
            subscribers = list(self._subscribers)
        for callback, event_type in subscribers:
            if event_type is None or isinstance(event, event_type):
                callback(event)

    def clear(self) -> None:
        with self._lock:
            self._subscribers.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._subscribers)
