import asyncio
import logging
import math
import random

from signbank.errors import InvalidInput
from signbank.models import AccelerationSample
from signbank.models.acceleration import now_ms
from signbank.network import AccelerationChannel

logger = logging.getLogger(__name__)


def synthetic_sample(step: int, timestamp: int, noise: float = 0.05) -> AccelerationSample:
    phase = step / 10.0
    return AccelerationSample(
        x=round(math.sin(phase) + random.uniform(-noise, noise), 4),
        y=round(math.cos(phase) + random.uniform(-noise, noise), 4),
        z=round(9.81 + 0.2 * math.sin(phase / 2) + random.uniform(-noise, noise), 4),
        timestamp=timestamp,
    )


async def simulate_acceleration(channel: AccelerationChannel, interval: float = 0.1) -> None:
    """Publish synthetic samples until cancelled, for demos without a device."""
    logger.info(f"Acceleration simulator publishing every {interval}s")
    step = 0
    while True:
        timestamp = now_ms()
        history = channel.history()
        if history:
            # other producers may already have published ahead of the clock
            timestamp = max(timestamp, history[-1].timestamp)
        try:
            channel.publish(synthetic_sample(step, timestamp))
        except InvalidInput as e:
            logger.warning(f"Simulated sample rejected: {e.message}")
        step += 1
        await asyncio.sleep(interval)
