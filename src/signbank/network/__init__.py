"""
Live acceleration streaming for SignBank.
"""

from signbank.network.channel import AccelerationChannel
from signbank.network.consumer import ConsumerState, StreamConsumer

__all__ = [
    'AccelerationChannel',
    'ConsumerState',
    'StreamConsumer',
]
