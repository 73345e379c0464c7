"""Tests for StreamBuffer flush throttling."""

from nexus_chat.orchestrator.streaming import StreamBuffer


def _clock(*times_ms: float):
    ticks = iter(t / 1000 for t in times_ms)
    return lambda: next(ticks)


def test_first_chunk_flushes_immediately() -> None:
    buffer = StreamBuffer(flush_interval=0.03, clock=_clock(0))

    assert buffer.append("Hel") is True
    assert buffer.content == "Hel"
    assert buffer.flush_count == 1


def test_chunks_within_interval_are_coalesced() -> None:
    """Test chunks at 0, 5, 40 and 41 ms with a 30 ms interval give three flushes."""
    buffer = StreamBuffer(flush_interval=0.03, clock=_clock(0, 5, 40, 41, 41))

    flushes = [buffer.append(part) for part in ("a", "b", "c", "d")]

    assert flushes == [True, False, True, False]
    assert buffer.finish() is True
    assert buffer.flush_count == 3
    assert buffer.content == "abcd"


def test_finish_without_pending_content() -> None:
    buffer = StreamBuffer(flush_interval=0.03, clock=_clock(0))
    buffer.append("done")

    assert buffer.finish() is False
    assert buffer.flush_count == 1


def test_zero_interval_flushes_every_chunk() -> None:
    buffer = StreamBuffer(flush_interval=0, clock=_clock(0, 0, 0))

    assert [buffer.append(c) for c in "abc"] == [True, True, True]
