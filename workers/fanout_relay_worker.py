from __future__ import annotations

import asyncio
import logging
from typing import List, Sequence

from adapters.external.fanout.webhook_fanout_publisher import WebhookFanoutPublisher
from core.services.event_bus_service import EventBusService, Subscription


class FanoutRelayWorker:
    """
    Forwards bus events to the external realtime gateway.

    Delivery is best effort: a failed POST is logged and the event dropped,
    so a slow or absent gateway never backs up the bus.
    """

    def __init__(
        self,
        *,
        event_bus: EventBusService,
        publisher: WebhookFanoutPublisher,
        topics: Sequence[str],
        logger: logging.Logger | None = None,
    ) -> None:
        self._bus = event_bus
        self._publisher = publisher
        self._topics = list(topics)
        self._logger = logger or logging.getLogger(self.__class__.__name__)

        self._subs: List[Subscription] = []
        self._tasks: List[asyncio.Task] = []
        self._stop = asyncio.Event()

    def start(self) -> None:
        if self._tasks:
            return
        self._stop.clear()
        for topic in self._topics:
            sub = self._bus.subscribe(topic)
            self._subs.append(sub)
            self._tasks.append(asyncio.create_task(self._run(sub)))

    async def stop(self) -> None:
        self._stop.set()
        for t in self._tasks:
            await t
        for sub in self._subs:
            self._bus.unsubscribe(sub)
        self._tasks.clear()
        self._subs.clear()
        await self._publisher.aclose()

    async def _run(self, sub: Subscription) -> None:
        while not self._stop.is_set():
            try:
                event = await asyncio.wait_for(sub.get(), timeout=0.5)
            except asyncio.TimeoutError:
                continue
            try:
                await self._publisher.publish(topic=event.topic, payload=event.payload, symbol=event.symbol)
            except Exception as exc:
                self._logger.warning("Fan-out of %s event for %s failed: %s", event.topic, event.symbol, exc)
