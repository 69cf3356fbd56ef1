"""
Socket.IO transport for the acceleration channel.

Each connected sid becomes a channel consumer. The consumer's queued
messages are emitted as ``acceleration-history`` (once, on connect) and
``acceleration-update`` events, the names the mobile client listens for.
"""

import asyncio
import logging
from typing import Any, Dict, Optional, Union

import socketio
from fastapi import FastAPI

from signbank.api.main import create_app
from signbank.config import Settings
from signbank.database import Stores
from signbank.network import AccelerationChannel, StreamConsumer

logger = logging.getLogger(__name__)

CLIENT_CLOSED = "client closed"


class AccelerationNamespace(socketio.AsyncNamespace):

    def __init__(self, channel: AccelerationChannel, namespace: str = "/"):
        super().__init__(namespace)
        self.channel = channel
        self._consumers: Dict[str, StreamConsumer] = {}
        self._tasks: Dict[str, "asyncio.Task[None]"] = {}

    async def on_connect(self, sid: str, environ: Dict[str, Any], auth: Any = None) -> None:
        async def send(message: Dict[str, Any]) -> None:
            await self.emit(message["event"], message["data"], to=sid)

        consumer = self.channel.subscribe(send, consumer_id=sid)
        self._consumers[sid] = consumer
        self._tasks[sid] = asyncio.create_task(self._stream(sid, consumer))

    async def _stream(self, sid: str, consumer: StreamConsumer) -> None:
        await consumer.run()
        # Dropped by the channel (slow, send failure, shutdown), not by the client
        if consumer.disconnect_reason != CLIENT_CLOSED:
            logger.info(f"Disconnecting {sid}: {consumer.disconnect_reason}")
            await self.disconnect(sid)

    async def on_disconnect(self, sid: str, reason: Optional[str] = None) -> None:
        consumer = self._consumers.pop(sid, None)
        self._tasks.pop(sid, None)
        if consumer is not None:
            self.channel.unsubscribe(consumer, consumer.disconnect_reason or CLIENT_CLOSED)


def create_socket_server(channel: AccelerationChannel,
                         settings: Settings) -> socketio.AsyncServer:
    origins: Union[str, list] = list(settings.cors_origins)
    if "*" in origins:
        origins = "*"
    sio = socketio.AsyncServer(async_mode="asgi", cors_allowed_origins=origins)
    sio.register_namespace(AccelerationNamespace(channel))
    return sio


def create_asgi_app(settings: Optional[Settings] = None,
                    stores: Optional[Stores] = None) -> socketio.ASGIApp:
    """FastAPI app with Socket.IO served under /socket.io/.

    Lifespan events pass through to the FastAPI app.
    """
    settings = settings or Settings.from_env()
    app: FastAPI = create_app(settings, stores)
    app.state.sio = create_socket_server(app.state.channel, settings)
    return socketio.ASGIApp(app.state.sio, other_asgi_app=app)
