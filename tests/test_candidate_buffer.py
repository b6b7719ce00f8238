"""Tests for CandidateBuffer."""

import pytest

from rtc_mesh.client.candidate_buffer import CandidateBuffer, CandidateBufferRetired


class TestCandidateBuffer:
    def test_drain_returns_arrival_order_and_retires(self):
        buffer = CandidateBuffer()
        for port in (1, 2, 3):
            buffer.push({"candidate": f"c{port}"})
        assert len(buffer) == 3

        drained = buffer.drain()

        assert [c["candidate"] for c in drained] == ["c1", "c2", "c3"]
        assert len(buffer) == 0
        assert buffer.retired

    def test_push_after_drain_raises(self):
        buffer = CandidateBuffer()
        buffer.drain()
        with pytest.raises(CandidateBufferRetired):
            buffer.push({"candidate": "late"})

    def test_discard_drops_everything(self):
        buffer = CandidateBuffer()
        buffer.push({"candidate": "c1"})
        buffer.discard()
        assert len(buffer) == 0
        assert buffer.retired
        assert buffer.drain() == []
