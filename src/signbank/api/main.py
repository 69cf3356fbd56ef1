import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from fastapi import APIRouter, FastAPI, Request, WebSocket
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from signbank import __version__
from signbank.config import Settings
from signbank.database import Stores, create_stores
from signbank.errors import SignBankError, SlowConsumer
from signbank.models import AccelerationSample
from signbank.models.acceleration import now_ms
from signbank.network import AccelerationChannel
from signbank.schema import AccelerationIn, SearchSign, UploadVideo, UserCount, UserCounts
from signbank.services import LeaderboardService, LookupService, UploadService
from signbank.services.acceleration_simulator import simulate_acceleration

logger = logging.getLogger(__name__)

router = APIRouter()


def error_response(message: str, status_code: int = 200, **extra: Any) -> JSONResponse:
    return JSONResponse({"status": "error", "message": message, **extra},
                        status_code=status_code)


async def read_json(request: Request) -> Optional[Dict[str, Any]]:
    try:
        payload = await request.json()
    except ValueError:
        return None
    return payload if isinstance(payload, dict) else None


@router.get("/")
def root():
    return "running"


@router.get("/health")
async def health(request: Request):
    state = request.app.state
    response: Dict[str, Any] = {
        "status": "success",
        "version": __version__,
        "backend": state.stores.backend,
        "content_store": state.stores.content.name,
        "streaming_consumers": len(state.channel.consumers()),
        "samples_published": state.channel.published,
    }
    try:
        response["clips"] = await state.stores.content.count()
        response["labels"] = len(await state.stores.index.labels())
        response["users"] = len(await state.stores.counters.snapshot())
        if state.stores.redis_manager is not None:
            response["redis"] = await state.stores.redis_manager.health_check()
    except Exception as e:
        logger.warning(f"Health check degraded: {e}")
        response["status"] = "degraded"
        response["message"] = str(e)
    return response


@router.post("/upload-video")
async def upload_video(request: Request):
    payload = await read_json(request)
    if payload is None:
        return error_response("request body must be a JSON object", status_code=400)
    try:
        upload = UploadVideo.model_validate(payload)
    except ValidationError as e:
        return error_response(str(e), status_code=400)

    result = await request.app.state.uploads.submit(
        upload.username, upload.label, upload.video_data, upload.mime_type)
    return result.to_dict()


@router.post("/search-sign")
async def search_sign(request: Request):
    payload = await read_json(request)
    if payload is None:
        return error_response("request body must be a JSON object", status_code=400)
    try:
        search = SearchSign.model_validate(payload)
    except ValidationError as e:
        return error_response(str(e), status_code=400)

    result = await request.app.state.lookups.find(search.word)
    return result.to_dict()


@router.get("/user-counts")
async def user_counts(request: Request, limit: Optional[int] = None):
    users = await request.app.state.leaderboard.snapshot(limit)
    return UserCounts(users=[UserCount(**user) for user in users]).model_dump()


@router.get("/user-counts/{username}")
async def user_count(username: str, request: Request):
    count = await request.app.state.leaderboard.count_for(username)
    return {"status": "success", "username": username.strip(), "count": count}


@router.get("/words")
async def words(request: Request):
    return {"status": "success", "words": await request.app.state.lookups.vocabulary()}


@router.post("/acceleration")
async def publish_acceleration(request: Request):
    payload = await read_json(request)
    if payload is None:
        return error_response("request body must be a JSON object", status_code=400)
    try:
        data = AccelerationIn.model_validate(payload)
    except ValidationError as e:
        return error_response(str(e), status_code=400)

    sample = AccelerationSample(
        x=data.x, y=data.y, z=data.z,
        timestamp=data.timestamp if data.timestamp is not None else now_ms(),
    )
    delivered = request.app.state.channel.publish(sample)
    return {"status": "success", "delivered": delivered}


async def _wait_for_close(websocket: WebSocket) -> None:
    while True:
        message = await websocket.receive()
        if message["type"] == "websocket.disconnect":
            return


@router.websocket("/acceleration")
async def acceleration_stream(websocket: WebSocket):
    channel: AccelerationChannel = websocket.app.state.channel
    await websocket.accept()

    consumer = channel.subscribe(websocket.send_json)
    sender = asyncio.create_task(consumer.run())
    receiver = asyncio.create_task(_wait_for_close(websocket))
    try:
        await asyncio.wait({sender, receiver}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        client_closed = receiver.done()
        # no awaits here: a cancelled scope would cancel them again
        for task in (sender, receiver):
            task.cancel()
        channel.unsubscribe(consumer, consumer.disconnect_reason or "client closed")

    if client_closed:
        return
    if consumer.disconnect_reason == SlowConsumer.__name__:
        code = 1013
    elif consumer.disconnect_reason == "shutdown":
        code = 1001
    else:
        return
    try:
        await websocket.close(code=code, reason=consumer.disconnect_reason)
    except RuntimeError:
        pass


async def unhandled_error(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.url.path}: {exc}")
    return error_response("internal server error", status_code=500)


async def signbank_error(request: Request, exc: SignBankError):
    logger.error(f"{type(exc).__name__} on {request.url.path}: {exc.message}")
    return error_response(exc.message, error=type(exc).__name__)


def create_app(settings: Optional[Settings] = None, stores: Optional[Stores] = None) -> FastAPI:
    settings = settings or Settings.from_env()
    stores = stores or create_stores(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        simulator = None
        if stores.redis_manager is not None:
            try:
                await stores.redis_manager.ping()
                logger.info("Redis connection established")
            except SignBankError as e:
                logger.error(f"Redis unavailable, requests will fail: {e.message}")
        if settings.simulate_acceleration:
            simulator = asyncio.create_task(simulate_acceleration(app.state.channel))
        try:
            yield
        finally:
            if simulator is not None:
                simulator.cancel()
                await asyncio.gather(simulator, return_exceptions=True)
            app.state.channel.close()
            await stores.close()

    app = FastAPI(title="SignBank", version=__version__, lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(SignBankError, signbank_error)
    app.add_exception_handler(Exception, unhandled_error)

    app.state.settings = settings
    app.state.stores = stores
    app.state.channel = AccelerationChannel(
        history_size=settings.history_size, queue_size=settings.consumer_queue_size)
    app.state.uploads = UploadService(
        stores.content, stores.index, stores.counters, timeout=settings.upload_timeout)
    app.state.lookups = LookupService(stores.content, stores.index)
    app.state.leaderboard = LeaderboardService(stores.counters)

    app.include_router(router)
    return app
