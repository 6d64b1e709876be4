from __future__ import annotations
from typing import Dict, List

from model import SnapshotState


def snapshot_total(snap: SnapshotState) -> int:
    return snap.token_total()


def conservation_error(snap: SnapshotState, expected_total: int) -> int:
    """
    Difference between the tokens a snapshot accounts for and the tokens that
    existed in the system when it started. A consistent cut gives 0.
    """
    return snapshot_total(snap) - expected_total


def in_transit_by_channel(snap: SnapshotState) -> Dict[str, int]:
    """Tokens captured in flight, keyed "src->dest"."""
    out: Dict[str, int] = {}
    for m in snap.messages:
        key = f"{m.src}->{m.dest}"
        out[key] = out.get(key, 0) + m.message.tokens
    return out


def summarize(snaps: List[SnapshotState], expected_totals: Dict[int, int]) -> List[dict]:
    rows = []
    for snap in snaps:
        expected = expected_totals.get(snap.snapshot_id)
        rows.append({
            "snapshot_id": snap.snapshot_id,
            "recorded_tokens": sum(snap.tokens.values()),
            "in_transit_tokens": sum(m.message.tokens for m in snap.messages),
            "in_transit_messages": len(snap.messages),
            "expected_total": expected,
            "conserved": None if expected is None else conservation_error(snap, expected) == 0,
        })
    return rows
