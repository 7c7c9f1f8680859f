"""Publish/subscribe bus for score, tier and session events."""

import logging
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, FrozenSet, Iterable, List, Optional

from ..core.config import BusConfig
from .events import BusEvent, EventType
from .transport import InMemoryTransport, Transport

logger = logging.getLogger(__name__)

SCOPES = ("identity", "session")


def channel_id(owner_id: str, scope: str = "identity") -> str:
    """Channel name for an identity or a session."""
    if scope not in SCOPES:
        raise ValueError(f"Unknown channel scope: {scope}")
    return f"{scope}:{owner_id}"


@dataclass
class Subscription:
    """A live callback on one channel."""

    id: str
    channel_id: str
    callback: Callable[[BusEvent], Any]
    event_filter: Optional[FrozenSet[EventType]] = None
    created_at: datetime = field(default_factory=datetime.now)
    last_delivered_at: Optional[datetime] = None
    delivery_count: int = 0
    active: bool = True

    def matches(self, event: BusEvent) -> bool:
        return self.active and (self.event_filter is None or event.type in self.event_filter)

    @property
    def last_seen_at(self) -> datetime:
        return self.last_delivered_at or self.created_at


def _normalize_filter(event_filter: Optional[Iterable[Any]]) -> Optional[FrozenSet[EventType]]:
    if event_filter is None:
        return None
    if isinstance(event_filter, (EventType, str)):
        event_filter = [event_filter]
    return frozenset(e if isinstance(e, EventType) else EventType(e) for e in event_filter)


class NotificationBus:
    """In-process fan-out of events to per-identity and per-session channels.

    Delivery is synchronous and at-most-once. A per-channel lock keeps events
    for one owner in publish order. A failing callback is logged and does not
    stop delivery to the other subscribers.
    """

    def __init__(self, transport: Optional[Transport] = None,
                 config: Optional[BusConfig] = None,
                 clock: Callable[[], datetime] = datetime.now):
        self.transport = transport or InMemoryTransport()
        self.config = config or BusConfig()
        self._clock = clock
        self._subscriptions: Dict[str, Dict[str, Subscription]] = {}
        self._channel_locks: Dict[str, threading.Lock] = {}
        self._commands: Dict[str, Callable[[str, Dict[str, Any]], Any]] = {}
        self._lock = threading.Lock()
        self.published_count = 0

    # === Subscriptions ===

    def subscribe(self, owner_id: str, event_filter: Optional[Iterable[Any]] = None,
                  callback: Optional[Callable[[BusEvent], Any]] = None,
                  scope: str = "identity") -> Subscription:
        """Register a callback for events on an owner's channel.

        event_filter limits delivery to the given event types; None means all.
        """
        if callback is None:
            raise ValueError("subscribe requires a callback")
        channel = channel_id(owner_id, scope)
        subscription = Subscription(
            id=str(uuid.uuid4())[:8],
            channel_id=channel,
            callback=callback,
            event_filter=_normalize_filter(event_filter),
            created_at=self._clock(),
        )

        with self._lock:
            subscribers = self._subscriptions.get(channel)
            first = subscribers is None
            if first:
                subscribers = self._subscriptions[channel] = {}
            subscribers[subscription.id] = subscription
            if first:
                self.transport.on_message(channel, lambda event: self._dispatch(channel, event))

        logger.debug(f"Subscribed {subscription.id} to {channel}")
        return subscription

    def unsubscribe(self, subscription: Subscription) -> bool:
        """Remove a subscription. Returns False if it was already gone."""
        with self._lock:
            subscribers = self._subscriptions.get(subscription.channel_id, {})
            removed = subscribers.pop(subscription.id, None)
            subscription.active = False
            if removed is not None and not subscribers:
                del self._subscriptions[subscription.channel_id]
                self._channel_locks.pop(subscription.channel_id, None)
                self.transport.remove(subscription.channel_id)
        return removed is not None

    def subscriptions(self, owner_id: Optional[str] = None, scope: str = "identity") -> List[Subscription]:
        with self._lock:
            if owner_id is None:
                return [s for subs in self._subscriptions.values() for s in subs.values()]
            return list(self._subscriptions.get(channel_id(owner_id, scope), {}).values())

    # === Publishing ===

    def publish(self, owner_id: str, event: BusEvent, scope: str = "identity") -> int:
        """Deliver an event to matching subscribers. Returns the delivery count."""
        channel = channel_id(owner_id, scope)
        with self._lock:
            self.published_count += 1
            if channel not in self._subscriptions:
                return 0
            lock = self._channel_locks.get(channel)
            if lock is None:
                lock = self._channel_locks[channel] = threading.Lock()
        with lock:
            return self.transport.send(channel, event)

    def _dispatch(self, channel: str, event: BusEvent) -> int:
        with self._lock:
            targets = [s for s in self._subscriptions.get(channel, {}).values() if s.matches(event)]

        delivered = 0
        for subscription in targets:
            try:
                subscription.callback(event)
            except Exception:
                logger.exception(
                    f"Subscriber {subscription.id} on {channel} failed for {event.type.value}"
                )
                continue
            subscription.last_delivered_at = self._clock()
            subscription.delivery_count += 1
            delivered += 1
        return delivered

    # === Housekeeping ===

    def cleanup_idle(self, max_idle: Optional[timedelta] = None) -> int:
        """Remove subscriptions with no delivery within max_idle."""
        if max_idle is None:
            max_idle = timedelta(seconds=self.config.idle_subscription_seconds)
        cutoff = self._clock() - max_idle

        idle = [s for s in self.subscriptions() if s.last_seen_at < cutoff]
        removed = sum(1 for s in idle if self.unsubscribe(s))
        if removed:
            logger.info(f"Cleaned up {removed} idle subscriptions")
        return removed

    def drop_owner(self, owner_id: str, scope: str = "identity") -> int:
        """Tear down an owner's channel and all of its subscriptions."""
        channel = channel_id(owner_id, scope)
        with self._lock:
            subscribers = self._subscriptions.pop(channel, {})
            self._channel_locks.pop(channel, None)
            for subscription in subscribers.values():
                subscription.active = False
            self.transport.remove(channel)
        return len(subscribers)

    # === Commands ===

    def register_command(self, name: str, handler: Callable[[str, Dict[str, Any]], Any]):
        """Register a handler for a named command sent to an owner."""
        with self._lock:
            self._commands[name] = handler

    def send_command(self, owner_id: str, name: str, payload: Optional[Dict[str, Any]] = None) -> Any:
        """Run a registered command for an owner and return its result."""
        with self._lock:
            handler = self._commands.get(name)
        if handler is None:
            raise ValueError(f"Unknown command: {name}")
        logger.debug(f"Command {name} for {owner_id}")
        return handler(owner_id, dict(payload or {}))

    def stats(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "channels": len(self._subscriptions),
                "subscriptions": sum(len(s) for s in self._subscriptions.values()),
                "channel_locks": len(self._channel_locks),
                "published": self.published_count,
                "commands": sorted(self._commands),
            }
