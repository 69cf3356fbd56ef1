import asyncio
import time

import pytest

from conftest import MemoryStack, b64, run
from signbank.database.file_store import FileContentStore
from signbank.database.memory import MemoryContentStore, MemoryLabelIndex
from signbank.errors import DecodeError, StorageFailure
from signbank.services.upload_service import decode_media
from signbank.utils.file_manager import FileManager


class FailingContentStore(MemoryContentStore):

    def __init__(self, failures: int):
        super().__init__()
        self.failures = failures
        self.attempts = 0
        self.clip_ids = []

    async def put(self, payload, mime_type, *, owner_username, label, clip_id=None):
        self.attempts += 1
        self.clip_ids.append(clip_id)
        if self.attempts <= self.failures:
            raise StorageFailure("disk full")
        return await super().put(payload, mime_type, owner_username=owner_username,
                                 label=label, clip_id=clip_id)


class HalfWritingContentStore(MemoryContentStore):
    """Persists the clip, then reports the write as failed."""

    async def put(self, payload, mime_type, *, owner_username, label, clip_id=None):
        await super().put(payload, mime_type, owner_username=owner_username,
                          label=label, clip_id=clip_id)
        raise StorageFailure("connection reset after write")


class HangingContentStore(MemoryContentStore):

    async def put(self, payload, mime_type, *, owner_username, label, clip_id=None):
        await super().put(payload, mime_type, owner_username=owner_username,
                          label=label, clip_id=clip_id)
        await asyncio.sleep(10)


class YieldingContentStore(MemoryContentStore):

    async def put(self, payload, mime_type, *, owner_username, label, clip_id=None):
        await asyncio.sleep(0)
        return await super().put(payload, mime_type, owner_username=owner_username,
                                 label=label, clip_id=clip_id)


class FailingLabelIndex(MemoryLabelIndex):

    async def record(self, label, clip_id):
        raise StorageFailure("index unavailable")


class SlowFileManager(FileManager):

    def stage_file(self, file_id, payload, metadata):
        time.sleep(0.3)
        super().stage_file(file_id, payload, metadata)


async def _state(stack):
    return (await stack.counters.snapshot(), await stack.index.labels(),
            await stack.content.count())


def test_submit_stores_indexes_and_counts(stack):
    async def scenario():
        result = await stack.uploads.submit(" ada ", " Hello ", b64(b"clip-1"), "video/webm")
        assert result.ok
        assert result.count == 1
        assert await stack.counters.snapshot() == [("ada", 1)]
        assert await stack.index.lookup("hello") == [result.clip_id]

        clip = await stack.content.get(result.clip_id)
        assert clip.payload == b"clip-1"
        assert clip.owner_username == "ada"
        assert clip.label == "hello"

        found = await stack.lookups.find("hello")
        assert found.ok
        assert found.clip_id == result.clip_id

    run(scenario())


@pytest.mark.parametrize("username, label, reason", [
    ("", "hello", "username required"),
    ("   ", "hello", "username required"),
    (None, "hello", "username required"),
    ("ada", "", "label required"),
    ("ada", " \t ", "label required"),
    ("", "", "username required"),
])
def test_blank_fields_are_rejected_without_mutation(stack, username, label, reason):
    async def scenario():
        await stack.uploads.submit("seed", "cat", b64(b"seed"), "video/mp4")
        before = await _state(stack)

        result = await stack.uploads.submit(username, label, b64(b"data"), "video/mp4")

        assert not result.ok
        assert result.error == "InvalidInput"
        assert result.reason == reason
        assert await _state(stack) == before

    run(scenario())


def test_undecodable_media_is_rejected(stack):
    async def scenario():
        before = await _state(stack)
        result = await stack.uploads.submit("ada", "hello", "not base64!!", "video/mp4")
        assert not result.ok
        assert result.error == "DecodeError"
        assert await _state(stack) == before

    run(scenario())


def test_username_is_checked_before_media(stack):
    result = run(stack.uploads.submit("", "hello", "%%%", "video/mp4"))
    assert result.error == "InvalidInput"


def test_decode_media_accepts_data_url_prefix():
    payload, mime = decode_media("data:video/webm;codecs=vp8;base64," + b64(b"abc"))
    assert payload == b"abc"
    assert mime == "video/webm;codecs=vp8"


def test_decode_media_accepts_comma_in_codecs_parameter():
    payload, mime = decode_media("data:video/webm;codecs=vp8,opus;base64," + b64(b"abc"))
    assert payload == b"abc"
    assert mime == "video/webm;codecs=vp8,opus"


def test_decode_media_rejects_empty_and_non_string():
    with pytest.raises(DecodeError):
        decode_media("")
    with pytest.raises(DecodeError):
        decode_media(None)
    with pytest.raises(DecodeError):
        decode_media("abc")


def test_mime_type_defaults(stack):
    async def scenario():
        plain = await stack.uploads.submit("ada", "a", b64(b"1"), None)
        prefixed = await stack.uploads.submit(
            "ada", "b", "data:video/webm;base64," + b64(b"2"), "")
        assert (await stack.content.get(plain.clip_id)).mime_type == "video/mp4"
        assert (await stack.content.get(prefixed.clip_id)).mime_type == "video/webm"

    run(scenario())


def test_store_failure_performs_no_mutation():
    stack = MemoryStack(content=FailingContentStore(failures=5))

    async def scenario():
        result = await stack.uploads.submit("ada", "hello", b64(b"x"), "video/mp4")
        assert not result.ok
        assert result.error == "StorageFailure"
        assert stack.content.attempts == 2
        assert await stack.counters.snapshot() == []
        assert await stack.index.lookup("hello") == []

    run(scenario())


def test_store_failure_is_retried_once():
    stack = MemoryStack(content=FailingContentStore(failures=1))

    result = run(stack.uploads.submit("ada", "hello", b64(b"x"), "video/mp4"))

    assert result.ok
    assert stack.content.attempts == 2
    assert stack.content.clip_ids == [result.clip_id, result.clip_id]
    assert run(stack.content.count()) == 1


def test_hanging_store_times_out():
    stack = MemoryStack(content=HangingContentStore(), timeout=0.05)

    async def scenario():
        result = await stack.uploads.submit("ada", "hello", b64(b"x"), "video/mp4")
        assert not result.ok
        assert result.reason == "upload timed out"
        assert await stack.counters.snapshot() == []
        assert await stack.content.count() == 0

    run(scenario())


def test_concurrent_submits_for_one_user_count_exactly():
    stack = MemoryStack(content=YieldingContentStore())

    async def scenario():
        results = await asyncio.gather(*(
            stack.uploads.submit("ada", f"word-{i}", b64(f"clip-{i}".encode()), "video/mp4")
            for i in range(100)
        ))
        assert all(result.ok for result in results)
        assert await stack.counters.snapshot() == [("ada", 100)]
        assert await stack.content.count() == 100

    run(scenario())


def test_counter_matches_owned_clips(stack):
    async def scenario():
        for user, label in [("ada", "a"), ("bob", "b"), ("ada", "c"), ("ada", "a")]:
            await stack.uploads.submit(user, label, b64(label.encode()), "video/mp4")
        assert await stack.counters.snapshot() == [("ada", 3), ("bob", 1)]
        assert await stack.content.count() == 4

    run(scenario())


def test_result_envelopes():
    stack = MemoryStack()
    ok = run(stack.uploads.submit("ada", "hi", b64(b"x"), "video/mp4")).to_dict()
    assert ok["status"] == "success"
    assert ok["count"] == 1

    failed = run(stack.uploads.submit("ada", "", b64(b"x"), "video/mp4")).to_dict()
    assert failed == {"status": "error", "message": "label required", "error": "InvalidInput"}


def test_write_reported_failed_is_discarded():
    stack = MemoryStack(content=HalfWritingContentStore())

    async def scenario():
        result = await stack.uploads.submit("ada", "hello", b64(b"x"), "video/mp4")
        assert result.error == "StorageFailure"
        assert await _state(stack) == ([], [], 0)

    run(scenario())


def test_index_failure_discards_stored_clip():
    stack = MemoryStack(index=FailingLabelIndex())

    async def scenario():
        result = await stack.uploads.submit("ada", "hello", b64(b"x"), "video/mp4")
        assert result.error == "StorageFailure"
        assert result.reason == "index unavailable"
        assert await stack.content.count() == 0
        assert await stack.counters.snapshot() == []

    run(scenario())


def test_timed_out_file_write_leaves_nothing_behind(tmp_path):
    store = FileContentStore(file_manager=SlowFileManager(tmp_path))
    stack = MemoryStack(content=store, timeout=0.05)

    async def scenario():
        result = await stack.uploads.submit("ada", "hello", b64(b"x"), "video/mp4")
        assert result.reason == "upload timed out"
        # let the executor thread finish its late write
        await asyncio.sleep(0.5)
        assert await store.count() == 0
        assert await stack.counters.snapshot() == []

    run(scenario())
    assert list(tmp_path.iterdir()) == []
