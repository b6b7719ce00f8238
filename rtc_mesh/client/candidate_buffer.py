"""Holding area for remote ICE candidates that arrive too early.

A remote candidate can only be applied once the remote description is set.
Until then the owning PeerSession queues it here. When the remote description
lands, the session drains the buffer in arrival order and the buffer retires;
a retired buffer refuses new entries.
"""

from typing import Any, Dict, List


class CandidateBufferRetired(RuntimeError):
    """Raised when pushing into a buffer that has already been drained."""


class CandidateBuffer:
    """FIFO of candidate payloads owned by a single PeerSession."""

    def __init__(self):
        self._pending: List[Dict[str, Any]] = []
        self._retired = False

    @property
    def retired(self) -> bool:
        return self._retired

    def push(self, candidate: Dict[str, Any]):
        if self._retired:
            raise CandidateBufferRetired("Candidate buffer has already been drained")
        self._pending.append(candidate)

    def drain(self) -> List[Dict[str, Any]]:
        """Return every buffered candidate in arrival order and retire."""
        pending, self._pending = self._pending, []
        self._retired = True
        return pending

    def discard(self):
        """Drop buffered candidates without applying them and retire."""
        self._pending.clear()
        self._retired = True

    def __len__(self) -> int:
        return len(self._pending)
