# hrtempo/core/event_bus.py
from __future__ import annotations
from typing import Any, Callable, Dict, List, Optional

from hrtempo.core.events import EVENT_TYPES

Handler = Callable[[Any], None]


class _Subscription:
    __slots__ = ("handler", "active")

    def __init__(self, handler: Handler):
        self.handler = handler
        self.active = True


class EventBus:
    """
    Synchronous typed publish/subscribe.

    publish() calls every current subscriber of the topic, in subscription
    order, before it returns. Nothing is queued. A subscription cancelled while
    a publish is in flight is skipped if it has not been called yet; one added
    while a publish is in flight first sees the next publish.
    """

    def __init__(self, event_types: Optional[Dict[str, type]] = None):
        self._types: Dict[str, type] = dict(event_types or EVENT_TYPES)
        self._subs: Dict[str, List[_Subscription]] = {}

    def _expected_type(self, topic: str) -> type:
        if topic not in self._types:
            raise KeyError(f"Unknown event topic '{topic}'. Available: {sorted(self._types)}")
        return self._types[topic]

    def subscribe(self, topic: str, handler: Handler) -> Callable[[], None]:
        """Register `handler` for `topic`. Returns an idempotent unsubscribe callable."""
        self._expected_type(topic)
        sub = _Subscription(handler)
        self._subs.setdefault(topic, []).append(sub)

        def unsubscribe() -> None:
            if not sub.active:
                return
            sub.active = False
            subs = self._subs.get(topic)
            if subs is not None:
                # identity, not equality: the same handler may be subscribed twice
                self._subs[topic] = [s for s in subs if s is not sub]

        return unsubscribe

    def publish(self, topic: str, payload: Any) -> None:
        expected = self._expected_type(topic)
        if not isinstance(payload, expected):
            raise TypeError(
                f"Event '{topic}' expects {expected.__name__}, got {type(payload).__name__}"
            )
        for sub in tuple(self._subs.get(topic, ())):
            if sub.active:
                sub.handler(payload)

    def subscriber_count(self, topic: str) -> int:
        self._expected_type(topic)
        return len(self._subs.get(topic, ()))

    def clear(self) -> None:
        for subs in self._subs.values():
            for sub in subs:
                sub.active = False
        self._subs.clear()
