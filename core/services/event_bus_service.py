"""
In-process pub/sub used to fan out market events to many readers.

- One bounded asyncio.Queue per subscriber.
- Publishing never blocks and never raises: when a subscriber's queue is full
  its oldest event is dropped (slow readers see gaps, not stalls).
- Subscribers filter by topic and, optionally, by symbol. Events published
  without a symbol are broadcasts.

Usage:
    bus = EventBusService()
    sub = bus.subscribe(TOPIC_CANDLES, symbol="SHIT")
    bus.publish(TOPIC_CANDLES, {"symbol": "SHIT", ...}, symbol="SHIT")
    event = await sub.get()
    bus.unsubscribe(sub)
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

TOPIC_CANDLES = "candles"
TOPIC_CHAOS = "chaos"

logger = logging.getLogger(__name__)


@dataclass
class MarketEvent:
    topic: str
    payload: Dict[str, Any]
    symbol: Optional[str] = None


@dataclass(eq=False)
class Subscription:
    topic: str
    symbol: Optional[str]
    queue: "asyncio.Queue[MarketEvent]"
    dropped: int = field(default=0)

    async def get(self) -> MarketEvent:
        return await self.queue.get()

    def get_nowait(self) -> Optional[MarketEvent]:
        try:
            return self.queue.get_nowait()
        except asyncio.QueueEmpty:
            return None


class EventBusService:
    def __init__(self, *, max_queue_size: int = 1_000) -> None:
        self._max_queue_size = int(max_queue_size)
        self._subs: Dict[str, List[Subscription]] = {}

    def subscribe(self, topic: str, *, symbol: Optional[str] = None) -> Subscription:
        sub = Subscription(
            topic=topic,
            symbol=symbol.upper() if symbol else None,
            queue=asyncio.Queue(maxsize=self._max_queue_size),
        )
        self._subs.setdefault(topic, []).append(sub)
        logger.debug("Subscribed to topic=%s symbol=%s", topic, sub.symbol)
        return sub

    def unsubscribe(self, sub: Subscription) -> bool:
        subs = self._subs.get(sub.topic, [])
        if sub in subs:
            subs.remove(sub)
            return True
        return False

    def publish(self, topic: str, payload: Dict[str, Any], *, symbol: Optional[str] = None) -> int:
        """
        Deliver an event to every matching subscriber. Returns the number of deliveries.
        """
        event = MarketEvent(topic=topic, payload=payload, symbol=symbol.upper() if symbol else None)
        delivered = 0
        for sub in list(self._subs.get(topic, [])):
            # Unscoped events (symbol=None) are broadcasts and reach every subscriber.
            if sub.symbol is not None and event.symbol is not None and sub.symbol != event.symbol:
                continue
            if sub.queue.full():
                # Make room by discarding the oldest event for this reader.
                sub.get_nowait()
                sub.dropped += 1
                if sub.dropped % 100 == 1:
                    logger.warning(
                        "Slow subscriber on topic=%s symbol=%s, dropped=%s", topic, sub.symbol, sub.dropped
                    )
            sub.queue.put_nowait(event)
            delivered += 1
        return delivered

    def subscriber_count(self, topic: Optional[str] = None) -> int:
        if topic is not None:
            return len(self._subs.get(topic, []))
        return sum(len(v) for v in self._subs.values())
