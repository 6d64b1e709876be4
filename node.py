from __future__ import annotations
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Dict, List, Set

from errors import InsufficientTokens, UnknownEventType, UnknownLink
from model import Message, MarkerMessage, SendMessageEvent, SnapshotMessage, TokenMessage
from network import Link

if TYPE_CHECKING:
    from simulator import Simulator

_logger = logging.getLogger(__name__)


@dataclass
class LocalSnapshot:
    """
    One node's share of a snapshot.

    closed holds the inbound neighbours whose marker already arrived;
    recorded holds token messages that arrived on a still-open channel.
    """
    snapshot_id: int
    tokens: int
    closed: Set[str] = field(default_factory=set)
    recorded: List[SnapshotMessage] = field(default_factory=list)
    done: bool = False


class Node:
    def __init__(self, node_id: str, tokens: int, sim: "Simulator"):
        self.id = node_id
        self.tokens = tokens
        self.sim = sim
        self.outbound_links: Dict[str, Link] = {}  # dest id -> link
        self.inbound: Set[str] = set()             # src ids of links ending here
        self.snapshots: Dict[int, LocalSnapshot] = {}
        self.open_snapshots: Dict[int, LocalSnapshot] = {}  # recording, not yet done

    def __repr__(self) -> str:
        return f"Node({self.id!r}, tokens={self.tokens})"

    def add_outbound_link(self, dest: "Node") -> Link:
        link = Link(self.id, dest.id)
        self.outbound_links[dest.id] = link
        dest.inbound.add(self.id)
        return link

    def send(self, dest: str, message: Message) -> None:
        link = self.outbound_links.get(dest)
        if link is None:
            raise UnknownLink(self.id, dest)
        event = SendMessageEvent(self.id, dest, message, self.sim.receive_time())
        link.enqueue(event)
        _logger.debug("t=%d %s -> %s %s (due t=%d)", self.sim.time, self.id, dest, message, event.receive_time)
        self.sim.logger.record(self, "sent", src=self.id, dest=dest, message=message.to_json())

    def send_to_neighbors(self, message: Message) -> None:
        for dest in sorted(self.outbound_links):
            self.send(dest, message)

    def send_tokens(self, tokens: int, dest: str) -> None:
        if dest not in self.outbound_links:
            raise UnknownLink(self.id, dest)
        if tokens <= 0:
            raise ValueError(f"Token amount must be positive, got {tokens}")
        if tokens > self.tokens:
            raise InsufficientTokens(self.id, tokens, self.tokens)
        self.tokens -= tokens
        self.send(dest, TokenMessage(tokens))

    def handle_packet(self, src: str, message: Message) -> None:
        kind = message.kind

        if kind == "TOKEN":
            self.tokens += message.tokens
            # every snapshot still listening on this channel sees the message in flight
            for snap in self.open_snapshots.values():
                if src not in snap.closed:
                    snap.recorded.append(SnapshotMessage(src, self.id, message))

        elif kind == "MARKER":
            snap = self.snapshots.get(message.snapshot_id)
            if snap is None:
                snap = self._record(message.snapshot_id)
                snap.closed.add(src)
                self.send_to_neighbors(MarkerMessage(message.snapshot_id))
            elif snap.done:
                return
            else:
                snap.closed.add(src)
            self._maybe_finish(snap)

        else:
            raise UnknownEventType(kind)

    def start_snapshot(self, snapshot_id: int) -> None:
        """Take the local snapshot as the initiator and flood markers."""
        if snapshot_id in self.snapshots:
            return
        snap = self._record(snapshot_id)
        self.send_to_neighbors(MarkerMessage(snapshot_id))
        self._maybe_finish(snap)

    def _record(self, snapshot_id: int) -> LocalSnapshot:
        snap = LocalSnapshot(snapshot_id=snapshot_id, tokens=self.tokens)
        self.snapshots[snapshot_id] = snap
        self.open_snapshots[snapshot_id] = snap
        self.sim.logger.record(self, "start_snapshot", snapshot_id=snapshot_id)
        return snap

    def _maybe_finish(self, snap: LocalSnapshot) -> None:
        if snap.done or not self.inbound <= snap.closed:
            return
        snap.done = True
        del self.open_snapshots[snap.snapshot_id]
        self.sim.notify_snapshot_complete(self.id, snap.snapshot_id)
