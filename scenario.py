from __future__ import annotations
import logging
import re
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Tuple

from errors import ScenarioFormatError
from model import (
    PassTokenEvent, SnapshotEvent, SnapshotMessage, SnapshotState, TickEvent, TokenMessage,
)
from simulator import Simulator

_logger = logging.getLogger(__name__)

_TOKEN_RE = re.compile(r"^token\((\d+)\)$")


@dataclass
class Topology:
    nodes: List[Tuple[str, int]] = field(default_factory=list)
    links: List[Tuple[str, str]] = field(default_factory=list)

    def apply(self, sim: Simulator) -> Simulator:
        for node_id, tokens in self.nodes:
            sim.add_node(node_id, tokens)
        for src, dest in self.links:
            sim.add_link(src, dest)
        return sim


def _lines(path: str) -> Iterator[Tuple[int, List[str]]]:
    with open(path, "r", encoding="utf-8") as f:
        for line_no, line in enumerate(f, start=1):
            line = line.split("#", 1)[0].strip()
            if not line:
                continue
            yield line_no, line.split()


def _int(value: str, path: str, line_no: int) -> int:
    try:
        return int(value)
    except ValueError:
        raise ScenarioFormatError(f"expected an integer, got {value!r}", path, line_no) from None


def load_topology(path: str) -> Topology:
    """
    .top layout: node count, then one "id tokens" line per node, then any
    number of "src dest" link lines.
    """
    top = Topology()
    expected = None
    for line_no, parts in _lines(path):
        if expected is None:
            if len(parts) != 1:
                raise ScenarioFormatError("first line must be the node count", path, line_no)
            expected = _int(parts[0], path, line_no)
        elif len(top.nodes) < expected:
            if len(parts) != 2:
                raise ScenarioFormatError("expected 'id tokens'", path, line_no)
            top.nodes.append((parts[0], _int(parts[1], path, line_no)))
        else:
            if len(parts) != 2:
                raise ScenarioFormatError("expected 'src dest'", path, line_no)
            top.links.append((parts[0], parts[1]))
    if expected is None:
        raise ScenarioFormatError("empty topology", path)
    if len(top.nodes) != expected:
        raise ScenarioFormatError(f"declared {expected} nodes, found {len(top.nodes)}", path)
    return top


def load_events(path: str) -> List[Any]:
    events: List[Any] = []
    for line_no, parts in _lines(path):
        cmd = parts[0]
        if cmd == "send" and len(parts) == 4:
            events.append(PassTokenEvent(parts[1], parts[2], _int(parts[3], path, line_no)))
        elif cmd == "snapshot" and len(parts) == 2:
            events.append(SnapshotEvent(parts[1]))
        elif cmd == "tick" and len(parts) in (1, 2):
            count = _int(parts[1], path, line_no) if len(parts) == 2 else 1
            events.append(TickEvent(count))
        else:
            raise ScenarioFormatError(f"cannot parse event {' '.join(parts)!r}", path, line_no)
    return events


def format_snapshot(snap: SnapshotState) -> str:
    lines = [str(snap.snapshot_id)]
    for node_id in sorted(snap.tokens):
        lines.append(f"{node_id} {snap.tokens[node_id]}")
    for m in snap.messages:
        lines.append(f"{m.src} {m.dest} {m.message}")
    return "\n".join(lines) + "\n"


def write_snapshot(path: str, snap: SnapshotState) -> None:
    with open(path, "w", encoding="utf-8") as f:
        f.write(format_snapshot(snap))


def read_snapshot(path: str) -> SnapshotState:
    snapshot_id = None
    tokens: Dict[str, int] = {}
    messages: List[SnapshotMessage] = []
    for line_no, parts in _lines(path):
        if snapshot_id is None:
            snapshot_id = _int(parts[0], path, line_no)
        elif len(parts) == 2:
            tokens[parts[0]] = _int(parts[1], path, line_no)
        elif len(parts) == 3:
            m = _TOKEN_RE.match(parts[2])
            if m is None:
                raise ScenarioFormatError(f"bad message {parts[2]!r}", path, line_no)
            messages.append(SnapshotMessage(parts[0], parts[1], TokenMessage(int(m.group(1)))))
        else:
            raise ScenarioFormatError("expected 'id tokens' or 'src dest token(N)'", path, line_no)
    if snapshot_id is None:
        raise ScenarioFormatError("empty snapshot file", path)
    return SnapshotState(snapshot_id=snapshot_id, tokens=tokens, messages=tuple(messages))


def run_scenario(
    sim: Simulator,
    events: List[Any],
    drain_ticks: int = 500,
    wait_timeout: float = 30.0,
) -> Tuple[List[SnapshotState], Dict[int, int]]:
    """
    Play an event script, then keep ticking until every snapshot it started
    is complete. Snapshots are collected on worker threads while this thread
    drives time.

    Returns the snapshots in id order and, per snapshot id, the number of
    tokens in the system when it was started.
    """
    expected: Dict[int, int] = {}
    futures: Dict[int, Future] = {}
    pool = ThreadPoolExecutor(max_workers=4, thread_name_prefix="collect")
    try:
        for ev in events:
            if ev.kind == "TICK":
                for _ in range(ev.count):
                    sim.tick()
                continue
            total = sim.total_tokens()
            snapshot_id = sim.inject_event(ev)
            if snapshot_id is not None:
                expected[snapshot_id] = total
                futures[snapshot_id] = pool.submit(sim.collect_snapshot, snapshot_id, wait_timeout)

        for _ in range(drain_ticks):
            if all(sim.snapshots.is_complete(sid) for sid in futures):
                break
            sim.tick()
        else:
            missing = [sid for sid in futures if not sim.snapshots.is_complete(sid)]
            if missing:
                raise TimeoutError(f"Snapshots {missing} still open after {drain_ticks} extra ticks")

        snaps = [futures[sid].result(timeout=wait_timeout) for sid in sorted(futures)]
    except BaseException:
        # collectors parked on a snapshot that will never finish must not
        # keep the process alive
        sim.snapshots.abort_pending()
        raise
    finally:
        pool.shutdown(wait=True, cancel_futures=True)
    _logger.info("scenario done at t=%d, %d snapshot(s)", sim.time, len(snaps))
    return snaps, expected
