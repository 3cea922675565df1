"""Delivery sinks for authorized notifications.

A sink hands a decision to whatever presents it to the user. Raising from
``deliver`` means the notification was not delivered and must not be
recorded as sent.
"""

import asyncio
import inspect
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable

from src.notifications.models import NotificationDecision
from src.utils.mixins import LoggerMixin

DeliveryCallback = Callable[[NotificationDecision], Awaitable[None] | None]


class NotificationDeliverySink(ABC):
    @abstractmethod
    async def deliver(self, decision: NotificationDecision) -> None:
        """Deliver one decision"""


class CallbackSink(NotificationDeliverySink, LoggerMixin):
    """Forward decisions to a sync or async callable"""

    def __init__(self, callback: DeliveryCallback) -> None:
        self.callback = callback

    async def deliver(self, decision: NotificationDecision) -> None:
        result = self.callback(decision)
        if inspect.isawaitable(result):
            await result
        self.logger.debug(
            "Notification delivered", kind=decision.kind.value, id=decision.id
        )


class QueueSink(NotificationDeliverySink):
    """Publish decisions on an ``asyncio.Queue`` for a consumer task"""

    def __init__(
        self, queue: asyncio.Queue[NotificationDecision] | None = None
    ) -> None:
        self.queue: asyncio.Queue[NotificationDecision] = (
            queue if queue is not None else asyncio.Queue()
        )

    async def deliver(self, decision: NotificationDecision) -> None:
        await self.queue.put(decision)
