"""Tests for the flush policy and chunk buffer."""

import pytest

from textstream.models.stream import Increment
from textstream.services.flush_policy import ChunkBuffer, FlushPolicy


def test_split_at_sentence_boundary_with_content_after():
    policy = FlushPolicy()
    assert policy.split("Hello world. This is") == ("Hello world. ", "This is")


def test_no_split_without_content_after_boundary():
    policy = FlushPolicy()
    assert policy.split("Hello world.") == ("", "Hello world.")
    assert policy.split("Hello world. ") == ("", "Hello world. ")


def test_split_at_last_boundary():
    policy = FlushPolicy()
    assert policy.split("One. Two! Three? Four") == ("One. Two! Three? ", "Four")


def test_decimal_point_is_not_a_boundary():
    policy = FlushPolicy()
    assert policy.split("Pi is roughly 3.14 and e is") == ("", "Pi is roughly 3.14 and e is")


def test_newline_is_a_boundary():
    policy = FlushPolicy()
    assert policy.split("line one\nline two") == ("line one\n", "line two")


def test_blank_lines_stay_with_committed_part():
    policy = FlushPolicy()
    assert policy.split("Title\n\nBody") == ("Title\n\n", "Body")


def test_threshold_flushes_without_boundary():
    policy = FlushPolicy(max_chars=10)
    assert policy.split("a" * 10) == ("", "a" * 10)
    assert policy.split("a" * 11) == ("a" * 11, "")


def test_boundary_preferred_over_threshold():
    policy = FlushPolicy(max_chars=10)
    assert policy.split("Short. And then a long tail") == ("Short. ", "And then a long tail")


def test_custom_boundary_pattern():
    policy = FlushPolicy(boundary_pattern=r";")
    assert policy.split("a = 1; b = 2") == ("a = 1; ", "b = 2")
    assert policy.split("First. Second") == ("", "First. Second")


def test_max_chars_must_be_positive():
    with pytest.raises(ValueError):
        FlushPolicy(max_chars=0)


def test_buffer_accumulates_until_boundary():
    buffer = ChunkBuffer()
    buffer.add(Increment(text="Hello "))
    buffer.add(Increment(text="world."))
    assert buffer.take_ready() is None

    buffer.add(Increment(text=" This"))
    ready = buffer.take_ready()
    assert ready == Increment(text="Hello world. ")
    assert buffer.pending == Increment(text="This")


def test_buffer_drain_returns_everything_then_none():
    buffer = ChunkBuffer()
    buffer.add(Increment(text="no boundary here"))
    assert buffer.drain() == Increment(text="no boundary here")
    assert buffer.drain() is None
    assert buffer.pending.is_empty


def test_reasoning_shares_chunk_with_text():
    buffer = ChunkBuffer()
    buffer.add(Increment(reasoning="Let me think. The user wants"))
    buffer.add(Increment(text="Sure"))

    ready = buffer.take_ready()
    assert ready == Increment(text="", reasoning="Let me think. ")
    assert buffer.pending == Increment(text="Sure", reasoning="The user wants")

    assert buffer.drain() == Increment(text="Sure", reasoning="The user wants")


def test_take_ready_repeatedly_empties_boundaries():
    buffer = ChunkBuffer(FlushPolicy(max_chars=5))
    buffer.add(Increment(text="abcdefgh"))
    assert buffer.take_ready() == Increment(text="abcdefgh")
    assert buffer.take_ready() is None
