import json
import random

import generate_data
import simulate
from model import SnapshotState
from scenario import load_events, load_topology, read_snapshot


def test_random_topology_is_ring_plus_chords():
    nodes, links = generate_data.random_topology(random.Random(1), 5, 3, 10)
    ids = [n for n, _ in nodes]
    assert ids == ["N1", "N2", "N3", "N4", "N5"]
    for i, nid in enumerate(ids):
        assert (nid, ids[(i + 1) % 5]) in links
    assert len(links) == 8
    assert all(src != dest for src, dest in links)


def test_single_node_topology_has_no_links():
    nodes, links = generate_data.random_topology(random.Random(1), 1, 5, 10)
    assert len(nodes) == 1
    assert links == []


def test_generate_then_simulate(tmp_path, capsys):
    data = tmp_path / "data"
    generate_data.main(["--outdir", str(data), "--nodes", "6", "--sends", "40", "--snapshots", "3", "--seed", "3"])
    top = load_topology(str(data / "network.top"))
    assert len(top.nodes) == 6
    assert sum(1 for e in load_events(str(data / "network.events")) if e.kind == "SNAPSHOT") == 3

    out = tmp_path / "out"
    rc = simulate.main([
        "--topology", str(data / "network.top"),
        "--events", str(data / "network.events"),
        "--outdir", str(out),
        "--seed", "5",
    ])
    assert rc == 0
    assert "Done." in capsys.readouterr().out

    config = json.loads((out / "config.json").read_text(encoding="utf-8"))
    assert config["seed"] == 5

    summary = json.loads((out / "summary.json").read_text(encoding="utf-8"))
    assert summary["nodes"] == 6
    assert len(summary["snapshots"]) == 3
    assert all(row["conserved"] for row in summary["snapshots"])
    initial = sum(tokens for _, tokens in top.nodes)
    assert summary["final_tokens"] == initial

    dumped = json.loads((out / "snapshots.json").read_text(encoding="utf-8"))
    for row, raw in zip(summary["snapshots"], dumped):
        snap = read_snapshot(str(out / "snapshots" / f"{row['snapshot_id']}.snap"))
        assert snap.token_total() == initial
        assert SnapshotState.from_json(raw) == snap

    lines = (out / "events.jsonl").read_text(encoding="utf-8").splitlines()
    assert sum(1 for line in lines if json.loads(line)["event"] == "received") == summary["msgs_delivered"]
