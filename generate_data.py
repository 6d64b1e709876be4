from __future__ import annotations
import argparse
import os
import random
from typing import List, Optional, Tuple


def random_topology(rnd: random.Random, nodes: int, extra_links: int, max_tokens: int) -> Tuple[List[Tuple[str, int]], List[Tuple[str, str]]]:
    """
    A directed ring (so every node reaches every other one and snapshots
    terminate) plus extra_links random chords.
    """
    ids = [f"N{i + 1}" for i in range(nodes)]
    node_list = [(nid, rnd.randint(0, max_tokens)) for nid in ids]
    if nodes < 2:
        return node_list, []

    links = set()
    for i, nid in enumerate(ids):
        links.add((nid, ids[(i + 1) % nodes]))

    possible = nodes * (nodes - 1)
    target = min(possible, len(links) + extra_links)
    while len(links) < target:
        src, dest = rnd.sample(ids, 2)
        links.add((src, dest))
    return node_list, sorted(links)


def random_events(
    rnd: random.Random,
    node_list: List[Tuple[str, int]],
    links: List[Tuple[str, str]],
    sends: int,
    snapshots: int,
    tick_prob: float,
) -> List[str]:
    """
    Event script lines. Only debits are tracked, so a node never spends more
    than its starting balance and no send can overdraw it.
    """
    balances = dict(node_list)
    out_links = {}
    for src, dest in links:
        out_links.setdefault(src, []).append(dest)

    lines: List[str] = []
    snapshot_slots = set(rnd.sample(range(max(sends, 1)), min(snapshots, max(sends, 1))))
    for i in range(sends):
        if i in snapshot_slots:
            lines.append(f"snapshot {rnd.choice(node_list)[0]}")
        senders = [nid for nid, bal in balances.items() if bal > 0 and out_links.get(nid)]
        if senders:
            src = rnd.choice(senders)
            dest = rnd.choice(out_links[src])
            amount = rnd.randint(1, balances[src])
            balances[src] -= amount
            lines.append(f"send {src} {dest} {amount}")
        if rnd.random() < tick_prob:
            lines.append(f"tick {rnd.randint(1, 3)}")
    if sends == 0 and snapshots > 0:
        lines.append(f"snapshot {rnd.choice(node_list)[0]}")
    lines.append("tick")
    return lines


def main(argv: Optional[List[str]] = None) -> None:
    ap = argparse.ArgumentParser()
    ap.add_argument("--outdir", default="data", help="output directory (default: data)")
    ap.add_argument("--name", default="network", help="file stem for .top/.events (default: network)")
    ap.add_argument("--nodes", type=int, default=8, help="number of nodes (default: 8)")
    ap.add_argument("--extra_links", type=int, default=8, help="random links on top of the ring (default: 8)")
    ap.add_argument("--max_tokens", type=int, default=100, help="max initial tokens per node (default: 100)")
    ap.add_argument("--sends", type=int, default=60, help="number of token transfers (default: 60)")
    ap.add_argument("--snapshots", type=int, default=3, help="number of snapshots (default: 3)")
    ap.add_argument("--tick_prob", type=float, default=0.5, help="chance of ticks after each send (default: 0.5)")
    ap.add_argument("--seed", type=int, default=7, help="random seed (default: 7)")
    args = ap.parse_args(argv)

    if args.nodes < 1:
        ap.error("--nodes must be at least 1")

    os.makedirs(args.outdir, exist_ok=True)
    rnd = random.Random(args.seed)

    node_list, links = random_topology(rnd, args.nodes, args.extra_links, args.max_tokens)
    top_path = os.path.join(args.outdir, f"{args.name}.top")
    with open(top_path, "w", encoding="utf-8") as f:
        f.write(f"{len(node_list)}\n")
        for nid, tokens in node_list:
            f.write(f"{nid} {tokens}\n")
        for src, dest in links:
            f.write(f"{src} {dest}\n")

    lines = random_events(rnd, node_list, links, args.sends, args.snapshots, args.tick_prob)
    events_path = os.path.join(args.outdir, f"{args.name}.events")
    with open(events_path, "w", encoding="utf-8") as f:
        for line in lines:
            f.write(line + "\n")

    print("Generated:")
    print(f" - {top_path}")
    print(f" - {events_path}")


if __name__ == "__main__":
    main()
