import asyncio
import base64

import pytest
from fastapi.testclient import TestClient

from signbank.api import create_app
from signbank.config import Settings
from signbank.database.memory import (
    MemoryContentStore,
    MemoryCounterTable,
    MemoryLabelIndex,
)
from signbank.services import LookupService, UploadService


def b64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def run(coro):
    return asyncio.run(coro)


class MemoryStack:
    """Memory stores wired into the upload and lookup services."""

    def __init__(self, content=None, index=None, timeout: float = 30.0):
        self.content = content or MemoryContentStore()
        self.index = index or MemoryLabelIndex()
        self.counters = MemoryCounterTable()
        self.uploads = UploadService(
            self.content, self.index, self.counters, timeout=timeout)
        self.lookups = LookupService(self.content, self.index)


@pytest.fixture
def stack():
    return MemoryStack()


@pytest.fixture
def client():
    app = create_app(Settings(backend="memory", history_size=100, consumer_queue_size=256))
    with TestClient(app) as test_client:
        yield test_client
