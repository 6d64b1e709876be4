from __future__ import annotations
import json
from dataclasses import dataclass, field
from typing import Any, Dict, IO, List, Optional

from model import message_from_json


@dataclass
class LogEntry:
    time: int
    node_id: str
    tokens: int  # node balance when the entry was written
    event: str   # "sent" | "received" | "start_snapshot" | "end_snapshot"
    details: Dict[str, Any] = field(default_factory=dict)

    def to_json(self) -> dict:
        return {"time": self.time, "node": self.node_id, "tokens": self.tokens, "event": self.event, **self.details}

    def __str__(self) -> str:
        d = self.details
        if self.event == "sent":
            what = f"sent {message_from_json(d['message'])} to {d['dest']}"
        elif self.event == "received":
            what = f"received {message_from_json(d['message'])} from {d['src']}"
        elif self.event == "start_snapshot":
            what = f"started snapshot {d['snapshot_id']}"
        elif self.event == "end_snapshot":
            what = f"finished snapshot {d['snapshot_id']}"
        else:
            what = self.event
        return f"{self.node_id} ({self.tokens}) {what}"


class EventLogger:
    """
    Audit log of what happened at every tick.

    Entries are grouped in epochs (one per tick, epoch 0 holds whatever
    happened before the first tick). With a sink, each entry is also written
    as one JSON line.
    """

    def __init__(self, sink: Optional[IO[str]] = None):
        self.epochs: List[List[LogEntry]] = [[]]
        self.time = 0
        self.sink = sink

    def new_epoch(self, time: int) -> None:
        self.time = time
        self.epochs.append([])

    def record(self, node, event: str, **details: Any) -> LogEntry:
        entry = LogEntry(time=self.time, node_id=node.id, tokens=node.tokens, event=event, details=details)
        self.epochs[-1].append(entry)
        if self.sink is not None:
            self.sink.write(json.dumps(entry.to_json(), ensure_ascii=False) + "\n")
        return entry

    def entries(self, event: Optional[str] = None) -> List[LogEntry]:
        out = [e for epoch in self.epochs for e in epoch]
        if event is not None:
            out = [e for e in out if e.event == event]
        return out

    def pretty(self) -> str:
        lines = []
        for epoch in self.epochs:
            if not epoch:
                continue
            lines.append(f"Time {epoch[0].time}:")
            for entry in epoch:
                lines.append(f"    {entry}")
        return "\n".join(lines)
