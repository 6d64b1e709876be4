from __future__ import annotations
from typing import Optional


class SimulationError(ValueError):
    """
    Fatal misuse of the simulator (bad topology or event reference).
    Nothing here is retried: the run is expected to stop.
    """


class UnknownNode(SimulationError):
    def __init__(self, node_id: str):
        self.node_id = node_id
        super().__init__(f"Node {node_id} does not exist")


class UnknownLink(SimulationError):
    def __init__(self, src: str, dest: str):
        self.src = src
        self.dest = dest
        super().__init__(f"No link from {src} to {dest}")


class UnknownEventType(SimulationError):
    def __init__(self, kind: object):
        self.kind = kind
        super().__init__(f"Unknown event kind: {kind!r}")


class DuplicateNode(SimulationError):
    def __init__(self, node_id: str):
        self.node_id = node_id
        super().__init__(f"Node {node_id} already exists")


class DuplicateLink(SimulationError):
    def __init__(self, src: str, dest: str):
        self.src = src
        self.dest = dest
        super().__init__(f"Link from {src} to {dest} already exists")


class InsufficientTokens(SimulationError):
    def __init__(self, node_id: str, requested: int, available: int):
        self.node_id = node_id
        self.requested = requested
        self.available = available
        super().__init__(
            f"Node {node_id} attempted to send {requested} tokens when it only has {available}"
        )


class ScenarioFormatError(SimulationError):
    def __init__(self, message: str, path: Optional[str] = None, line_no: Optional[int] = None):
        self.path = path
        self.line_no = line_no
        where = ""
        if path is not None:
            where = f"{path}:{line_no}: " if line_no is not None else f"{path}: "
        super().__init__(f"{where}{message}")
