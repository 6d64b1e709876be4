from __future__ import annotations
import logging
import random
from typing import Any, Dict, Optional

from errors import DuplicateLink, DuplicateNode, UnknownEventType, UnknownLink, UnknownNode
from event_log import EventLogger
from model import SnapshotState
from node import Node
from snapshot import SnapshotOrchestrator

_logger = logging.getLogger(__name__)


class Simulator:
    """
    Discrete time simulator: everything scheduled for time t + 1 happens
    strictly after everything at time t.

    Each tick, nodes are visited in id order and each node delivers at most
    one due message from its outbound links (visited in destination id order).
    A destination also accepts at most one message per tick, so arrivals at
    every node are totally ordered without any clock.
    """

    def __init__(
        self,
        seed: Optional[int] = None,
        rnd: Optional[Any] = None,
        min_delay: int = 1,
        max_delay: int = 5,
        logger: Optional[EventLogger] = None,
    ):
        if min_delay < 1 or max_delay < min_delay:
            raise ValueError(f"Bad delay range [{min_delay}, {max_delay}]")
        # anything with randint(a, b) will do; tests pass a fixed source
        self.rnd = rnd if rnd is not None else random.Random(seed)
        self.min_delay = min_delay
        self.max_delay = max_delay
        self.time = 0
        self.nodes: Dict[str, Node] = {}
        self.logger = logger if logger is not None else EventLogger()
        self.snapshots = SnapshotOrchestrator(self)
        self.msgs_delivered = 0

    def node(self, node_id: str) -> Node:
        node = self.nodes.get(node_id)
        if node is None:
            raise UnknownNode(node_id)
        return node

    def receive_time(self) -> int:
        """
        Time a message sent now becomes deliverable. Since a node is served
        once per tick it may actually arrive later than this.
        """
        return self.time + self.min_delay + self.rnd.randint(0, self.max_delay - self.min_delay)

    def add_node(self, node_id: str, tokens: int) -> Node:
        if node_id in self.nodes:
            raise DuplicateNode(node_id)
        if tokens < 0:
            raise ValueError(f"Node {node_id} cannot start with {tokens} tokens")
        node = Node(node_id, tokens, self)
        self.nodes[node_id] = node
        return node

    def add_link(self, src: str, dest: str) -> None:
        """Add a unidirectional link src -> dest."""
        src_node = self.node(src)
        dest_node = self.node(dest)
        if src == dest:
            raise UnknownLink(src, dest)
        if dest in src_node.outbound_links:
            raise DuplicateLink(src, dest)
        src_node.add_outbound_link(dest_node)

    def inject_event(self, event: Any) -> Optional[int]:
        kind = getattr(event, "kind", None)
        if kind == "PASS_TOKEN":
            self.inject_token_transfer(event.src, event.dest, event.tokens)
            return None
        elif kind == "SNAPSHOT":
            return self.start_snapshot(event.node_id)
        raise UnknownEventType(kind if kind is not None else type(event).__name__)

    def inject_token_transfer(self, src: str, dest: str, tokens: int) -> None:
        self.node(dest)
        self.node(src).send_tokens(tokens, dest)

    def start_snapshot(self, node_id: str) -> int:
        return self.snapshots.start_snapshot(node_id)

    def notify_snapshot_complete(self, node_id: str, snapshot_id: int) -> None:
        self.snapshots.notify_complete(node_id, snapshot_id)

    def collect_snapshot(self, snapshot_id: int, timeout: Optional[float] = None) -> SnapshotState:
        return self.snapshots.collect_snapshot(snapshot_id, timeout=timeout)

    def tick(self) -> int:
        """Advance time by one step and deliver what is due. Returns deliveries made."""
        self.time += 1
        self.logger.new_epoch(self.time)
        served = set()
        delivered = 0
        for node_id in sorted(self.nodes):
            node = self.nodes[node_id]
            for dest in sorted(node.outbound_links):
                # arrivals are throttled per receiver too: a destination already
                # served this tick is skipped and the sender tries its next link
                if dest in served:
                    continue
                e = node.outbound_links[dest].pop_due(self.time)
                if e is None:
                    continue
                served.add(dest)
                delivered += 1
                receiver = self.nodes[dest]
                # log the delivery before whatever it triggers
                self.logger.record(receiver, "received", src=e.src, dest=dest, message=e.message.to_json())
                _logger.debug("t=%d %s <- %s %s", self.time, dest, e.src, e.message)
                receiver.handle_packet(e.src, e.message)
                break
        self.msgs_delivered += delivered
        return delivered

    def pending_messages(self) -> int:
        return sum(len(link) for n in self.nodes.values() for link in n.outbound_links.values())

    def in_flight_tokens(self) -> int:
        total = 0
        for n in self.nodes.values():
            for link in n.outbound_links.values():
                for e in link:
                    if e.message.kind == "TOKEN":
                        total += e.message.tokens
        return total

    def total_tokens(self) -> int:
        """Tokens held by nodes plus tokens still on the wire."""
        return sum(n.tokens for n in self.nodes.values()) + self.in_flight_tokens()
