"""Tests for reconstruction reads of persisted streams."""

import pytest

from textstream.models.stream import ChunkRecord, StreamStatus
from textstream.services.errors import StreamClosedError, StreamNotFoundError
from textstream.services.reader import find_sequence_gap


def _records(*sequences):
    return [ChunkRecord(stream_id="s", sequence=n, text=str(n), reasoning="") for n in sequences]


def test_find_sequence_gap():
    assert find_sequence_gap([]) is None
    assert find_sequence_gap(_records(0, 1, 2)) is None
    assert find_sequence_gap(_records(0, 2)) == 1
    assert find_sequence_gap(_records(1, 2)) == 0
    assert find_sequence_gap(_records(3, 4), start=3) is None


async def test_pending_stream_reads_empty(lifecycle, reader):
    stream_id = await lifecycle.create()

    body = await reader.get_body(stream_id)

    assert body.text == ""
    assert body.reasoning == ""
    assert body.status == StreamStatus.PENDING


async def test_unknown_stream_is_not_found(reader):
    with pytest.raises(StreamNotFoundError):
        await reader.get_body("does-not-exist")
    with pytest.raises(StreamNotFoundError):
        await reader.get_chunks("does-not-exist")


async def test_body_concatenates_chunks_in_sequence_order(lifecycle, store, reader):
    stream_id = await lifecycle.create()
    token = await lifecycle.begin_drive(stream_id)

    assert await store.append_chunk(token, "One. ") == 0
    assert await store.append_chunk(token, "Two. ", reasoning="why") == 1
    assert await store.append_chunk(token, "Three") == 2

    body = await reader.get_body(stream_id)
    assert body.text == "One. Two. Three"
    assert body.reasoning == "why"
    assert body.status == StreamStatus.STREAMING


async def test_get_chunks_after_sequence(lifecycle, store, reader):
    stream_id = await lifecycle.create()
    token = await lifecycle.begin_drive(stream_id)
    for text in ("a. ", "b. ", "c"):
        await store.append_chunk(token, text)
    await lifecycle.finalize(stream_id, StreamStatus.DONE)

    status, chunks = await reader.get_chunks(stream_id, after=0)

    assert status == StreamStatus.DONE
    assert [(c.sequence, c.text) for c in chunks] == [(1, "b. "), (2, "c")]

    _, all_chunks = await reader.get_chunks(stream_id)
    assert len(all_chunks) == 3


async def test_finalized_stream_rejects_appends(lifecycle, store, reader):
    stream_id = await lifecycle.create()
    token = await lifecycle.begin_drive(stream_id)
    await store.append_chunk(token, "kept")
    await lifecycle.finalize(stream_id, StreamStatus.ERROR)

    with pytest.raises(StreamClosedError):
        await store.append_chunk(token, "dropped")

    body = await reader.get_body(stream_id)
    assert body.text == "kept"
    assert body.status == StreamStatus.ERROR
