from __future__ import annotations
import argparse
import json
import logging
import os
from typing import List, Optional

from event_log import EventLogger
from metrics import summarize
from scenario import load_events, load_topology, run_scenario, write_snapshot
from simulator import Simulator


def ensure_dir(p: str) -> None:
    os.makedirs(p, exist_ok=True)


def main(argv: Optional[List[str]] = None) -> int:
    ap = argparse.ArgumentParser(description="Run a Chandy-Lamport snapshot scenario")
    ap.add_argument("--topology", default="data/network.top")
    ap.add_argument("--events", default="data/network.events")
    ap.add_argument("--outdir", default="out/run_001")

    ap.add_argument("--min_delay", type=int, default=1)
    ap.add_argument("--max_delay", type=int, default=5)
    ap.add_argument("--drain_ticks", type=int, default=500, help="extra ticks allowed for open snapshots to finish")

    ap.add_argument("--seed", type=int, default=11)
    ap.add_argument("--log_level", default="WARNING")
    ap.add_argument("--pretty", action="store_true", help="print the per-tick event log at the end")
    args = ap.parse_args(argv)

    logging.basicConfig(level=getattr(logging, args.log_level.upper(), logging.WARNING),
                        format="%(levelname)s %(name)s: %(message)s")

    ensure_dir(args.outdir)
    ensure_dir(os.path.join(args.outdir, "snapshots"))

    # Save config for reproducibility
    with open(os.path.join(args.outdir, "config.json"), "w", encoding="utf-8") as f:
        json.dump(vars(args), f, ensure_ascii=False, indent=2)

    topology = load_topology(args.topology)
    events = load_events(args.events)

    events_path = os.path.join(args.outdir, "events.jsonl")
    with open(events_path, "w", encoding="utf-8") as efile:
        logger = EventLogger(sink=efile)
        sim = Simulator(seed=args.seed, min_delay=args.min_delay, max_delay=args.max_delay, logger=logger)
        topology.apply(sim)
        snaps, expected = run_scenario(sim, events, drain_ticks=args.drain_ticks)

    for snap in snaps:
        write_snapshot(os.path.join(args.outdir, "snapshots", f"{snap.snapshot_id}.snap"), snap)
    with open(os.path.join(args.outdir, "snapshots.json"), "w", encoding="utf-8") as f:
        json.dump([s.to_json() for s in snaps], f, ensure_ascii=False, indent=2)

    rows = summarize(snaps, expected)
    summary = {
        "nodes": len(sim.nodes),
        "links": sum(len(n.outbound_links) for n in sim.nodes.values()),
        "ticks": sim.time,
        "msgs_delivered": sim.msgs_delivered,
        "msgs_pending": sim.pending_messages(),
        "final_tokens": sim.total_tokens(),
        "snapshots": rows,
    }
    with open(os.path.join(args.outdir, "summary.json"), "w", encoding="utf-8") as f:
        json.dump(summary, f, ensure_ascii=False, indent=2)

    if args.pretty:
        print(logger.pretty())

    print("Done.")
    print(f"Events: {events_path}")
    print(f"Snapshots: {os.path.join(args.outdir, 'snapshots')}")
    print(f"Summary: {os.path.join(args.outdir, 'summary.json')}")

    broken = [r["snapshot_id"] for r in rows if r["conserved"] is False]
    if broken:
        print(f"Token conservation violated in snapshot(s) {broken}")
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
