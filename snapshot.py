from __future__ import annotations
import logging
import threading
from typing import TYPE_CHECKING, Dict, List, Optional, Set, Tuple

from model import SnapshotMessage, SnapshotState

if TYPE_CHECKING:
    from simulator import Simulator

_logger = logging.getLogger(__name__)


class SnapshotOrchestrator:
    """
    Hands out snapshot ids, tracks which nodes finished their local part and
    merges everything into a SnapshotState once the last node reports.

    Every mutating call runs on the tick-driven thread. collect_snapshot is
    the only method meant to be called from elsewhere: it waits on a one-shot
    event per snapshot id.
    """

    def __init__(self, sim: "Simulator"):
        self.sim = sim
        self.next_snapshot_id = 0

        # in-progress bookkeeping, dropped once the id is finalized
        self._completed_seq: Dict[int, List[str]] = {}
        self._completed: Dict[int, Set[str]] = {}

        self._finalized: Set[int] = set()
        self._results: Dict[int, SnapshotState] = {}
        self._latches: Dict[int, threading.Event] = {}
        self._lock = threading.Lock()

    def _latch(self, snapshot_id: int) -> threading.Event:
        with self._lock:
            latch = self._latches.get(snapshot_id)
            if latch is None:
                latch = threading.Event()
                self._latches[snapshot_id] = latch
            return latch

    def start_snapshot(self, node_id: str) -> int:
        node = self.sim.node(node_id)
        snapshot_id = self.next_snapshot_id
        self.next_snapshot_id += 1
        self._latch(snapshot_id)
        _logger.info("t=%d snapshot %d started at %s", self.sim.time, snapshot_id, node_id)
        node.start_snapshot(snapshot_id)
        return snapshot_id

    def notify_complete(self, node_id: str, snapshot_id: int) -> None:
        if snapshot_id in self._finalized:
            return
        seen = self._completed.setdefault(snapshot_id, set())
        if node_id in seen:
            return
        seen.add(node_id)
        self._completed_seq.setdefault(snapshot_id, []).append(node_id)
        self.sim.logger.record(self.sim.node(node_id), "end_snapshot", snapshot_id=snapshot_id)
        _logger.debug("t=%d %s finished snapshot %d", self.sim.time, node_id, snapshot_id)

        if len(seen) == len(self.sim.nodes):
            self._finalize(snapshot_id)

    def _finalize(self, snapshot_id: int) -> None:
        tokens: Dict[str, int] = {}
        messages: List[SnapshotMessage] = []
        for node_id in sorted(self.sim.nodes):
            local = self.sim.nodes[node_id].snapshots[snapshot_id]
            tokens[node_id] = local.tokens
            messages.extend(local.recorded)

        state = SnapshotState(snapshot_id=snapshot_id, tokens=tokens, messages=tuple(messages))
        self._completed.pop(snapshot_id, None)
        self._completed_seq.pop(snapshot_id, None)
        self._finalized.add(snapshot_id)
        with self._lock:
            self._results[snapshot_id] = state
        _logger.info(
            "t=%d snapshot %d complete: %d tokens recorded, %d in transit",
            self.sim.time, snapshot_id, sum(tokens.values()), len(messages),
        )
        self._latch(snapshot_id).set()

    def is_complete(self, snapshot_id: int) -> bool:
        return snapshot_id in self._finalized

    def completed_nodes(self, snapshot_id: int) -> Tuple[str, ...]:
        """Nodes that reported so far, in report order (empty once finalized)."""
        return tuple(self._completed_seq.get(snapshot_id, ()))

    def collect_snapshot(self, snapshot_id: int, timeout: Optional[float] = None) -> SnapshotState:
        """
        Block until snapshot_id is finalized and return it. Never call this
        from the thread driving tick(), it would wait forever.
        """
        if not self._latch(snapshot_id).wait(timeout):
            raise TimeoutError(f"Snapshot {snapshot_id} not complete after {timeout}s")
        with self._lock:
            state = self._results.get(snapshot_id)
        if state is None:
            raise TimeoutError(f"Snapshot {snapshot_id} abandoned before completion")
        return state

    def abort_pending(self) -> List[int]:
        """
        Wake every collector waiting on a snapshot that is not finalized; they
        raise TimeoutError. Returns the ids released.
        """
        with self._lock:
            pending = [sid for sid in self._latches if sid not in self._results]
            latches = [self._latches[sid] for sid in pending]
        for latch in latches:
            latch.set()
        if pending:
            _logger.warning("t=%d abandoned open snapshot(s) %s", self.sim.time, sorted(pending))
        return sorted(pending)
