import logging
from collections import deque
from typing import Deque, Dict, List, Optional

from ulid import ULID

from signbank.errors import InvalidInput, SlowConsumer
from signbank.models import AccelerationSample
from signbank.network.consumer import Sender, StreamConsumer

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_SIZE = 100
DEFAULT_QUEUE_SIZE = 256


class AccelerationChannel:
    """Fans acceleration samples out to every streaming consumer.

    subscribe() and publish() never await, so a new consumer's history
    burst and its first live update can not miss or repeat a sample.
    """

    def __init__(self, history_size: int = DEFAULT_HISTORY_SIZE,
                 queue_size: int = DEFAULT_QUEUE_SIZE):
        self.history_size = history_size
        self.queue_size = queue_size
        self._history: Deque[AccelerationSample] = deque(maxlen=history_size)
        self._consumers: Dict[str, StreamConsumer] = {}
        self.published = 0

    def history(self) -> List[AccelerationSample]:
        return list(self._history)

    def consumers(self) -> List[StreamConsumer]:
        return [c for c in self._consumers.values() if c.is_streaming]

    def subscribe(self, send: Sender, consumer_id: Optional[str] = None) -> StreamConsumer:
        consumer = StreamConsumer(
            consumer_id or f"s_{ULID()}", send, queue_size=self.queue_size)
        consumer.start_streaming(self._history)
        self._consumers[consumer.consumer_id] = consumer
        logger.info(
            f"Consumer connected: {consumer.consumer_id} "
            f"({len(self._history)} samples of history)")
        return consumer

    def unsubscribe(self, consumer: StreamConsumer, reason: str = "closed") -> None:
        consumer.close(reason)
        if self._consumers.pop(consumer.consumer_id, None) is not None:
            logger.info(f"Consumer disconnected: {consumer.consumer_id} ({reason})")

    def publish(self, sample: AccelerationSample) -> int:
        if self._history and sample.timestamp < self._history[-1].timestamp:
            raise InvalidInput(
                f"sample timestamp {sample.timestamp} is older than "
                f"{self._history[-1].timestamp}")

        self._history.append(sample)
        self.published += 1

        delivered = 0
        for consumer in list(self._consumers.values()):
            if not consumer.is_streaming:
                self.unsubscribe(consumer, consumer.disconnect_reason or "closed")
                continue
            try:
                consumer.deliver(sample)
                delivered += 1
            except SlowConsumer as e:
                logger.warning(e.message)
                self.unsubscribe(consumer, SlowConsumer.__name__)
        return delivered

    def close(self) -> None:
        for consumer in list(self._consumers.values()):
            self.unsubscribe(consumer, "shutdown")
