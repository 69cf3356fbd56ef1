import asyncio
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Iterable, Optional

from signbank.errors import SlowConsumer
from signbank.models import AccelerationSample

logger = logging.getLogger(__name__)

HISTORY_EVENT = "acceleration-history"
UPDATE_EVENT = "acceleration-update"

Sender = Callable[[Dict[str, Any]], Awaitable[None]]


class ConsumerState(Enum):
    CONNECTING = "connecting"
    STREAMING = "streaming"
    DISCONNECTED = "disconnected"


class StreamConsumer:
    """One connected viewer with its own bounded outbound queue.

    Messages are queued synchronously by the channel and written to the
    transport by ``run``, so a slow socket never stalls the producer.
    """

    def __init__(self, consumer_id: str, send: Sender, queue_size: int = 256):
        self.consumer_id = consumer_id
        self.state = ConsumerState.CONNECTING
        self.disconnect_reason: Optional[str] = None
        self._send = send
        self._queue: "asyncio.Queue[Optional[Dict[str, Any]]]" = asyncio.Queue(
            maxsize=queue_size)

    @property
    def is_streaming(self) -> bool:
        return self.state is ConsumerState.STREAMING

    def start_streaming(self, history: Iterable[AccelerationSample]) -> None:
        if self.state is not ConsumerState.CONNECTING:
            return
        self._queue.put_nowait({
            "event": HISTORY_EVENT,
            "data": [sample.to_dict() for sample in history],
        })
        self.state = ConsumerState.STREAMING

    def deliver(self, sample: AccelerationSample) -> None:
        if not self.is_streaming:
            return
        try:
            self._queue.put_nowait({"event": UPDATE_EVENT, "data": sample.to_dict()})
        except asyncio.QueueFull:
            raise SlowConsumer(
                f"Consumer {self.consumer_id} exceeded {self._queue.maxsize} queued messages")

    def close(self, reason: str = "closed") -> None:
        if self.state is ConsumerState.DISCONNECTED:
            return
        self.state = ConsumerState.DISCONNECTED
        self.disconnect_reason = reason

        # Undelivered messages are dropped, the sentinel stops run()
        while not self._queue.empty():
            self._queue.get_nowait()
        self._queue.put_nowait(None)

    async def run(self) -> None:
        while True:
            message = await self._queue.get()
            if message is None:
                return
            try:
                await self._send(message)
            except Exception as e:
                logger.info(f"Send to consumer {self.consumer_id} failed: {e}")
                self.close("send failed")
                return
