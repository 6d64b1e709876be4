from __future__ import annotations
from collections import deque
from typing import Deque, Iterator, Optional

from model import SendMessageEvent


class Link:
    """
    Unidirectional channel src -> dest.

    Strict FIFO: receive_time only decides when the head becomes deliverable,
    an event never overtakes one enqueued before it.
    """

    def __init__(self, src: str, dest: str):
        self.src = src
        self.dest = dest
        self.events: Deque[SendMessageEvent] = deque()

    def __len__(self) -> int:
        return len(self.events)

    def __iter__(self) -> Iterator[SendMessageEvent]:
        return iter(self.events)

    def __repr__(self) -> str:
        return f"Link({self.src!r} -> {self.dest!r}, pending={len(self.events)})"

    def enqueue(self, event: SendMessageEvent) -> None:
        if event.src != self.src or event.dest != self.dest:
            raise ValueError(f"Event {event.src}->{event.dest} does not belong on {self!r}")
        self.events.append(event)

    def peek_due(self, now: int) -> Optional[SendMessageEvent]:
        if not self.events:
            return None
        head = self.events[0]
        if head.receive_time <= now:
            return head
        return None

    def pop_due(self, now: int) -> Optional[SendMessageEvent]:
        head = self.peek_due(now)
        if head is not None:
            self.events.popleft()
        return head
