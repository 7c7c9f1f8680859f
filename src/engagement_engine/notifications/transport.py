"""Message transports behind the notification bus."""

import threading
from typing import Any, Callable, Dict, List, Protocol

# A handler returns the number of deliveries it made for one message
MessageHandler = Callable[[Any], int]


class Transport(Protocol):
    """Named-channel message transport."""

    def send(self, channel: str, message: Any) -> int: ...

    def on_message(self, channel: str, handler: MessageHandler) -> None: ...

    def remove(self, channel: str) -> None: ...


class InMemoryTransport:
    """Delivers messages to in-process handlers synchronously."""

    def __init__(self):
        self._handlers: Dict[str, List[MessageHandler]] = {}
        self._lock = threading.Lock()
        self.sent_count = 0

    def send(self, channel: str, message: Any) -> int:
        with self._lock:
            handlers = list(self._handlers.get(channel, []))
            self.sent_count += 1
        return sum(handler(message) for handler in handlers)

    def on_message(self, channel: str, handler: MessageHandler) -> None:
        with self._lock:
            self._handlers.setdefault(channel, []).append(handler)

    def remove(self, channel: str) -> None:
        with self._lock:
            self._handlers.pop(channel, None)

    def channels(self) -> List[str]:
        with self._lock:
            return list(self._handlers)
