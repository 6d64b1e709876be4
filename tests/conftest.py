"""
Shared fixtures. Delivery delays come from a scripted random source so
tests can pin down exactly when each message becomes due.
"""

import pytest

from simulator import Simulator


class ScriptedRandom:
    """randint() returns queued offsets in order, then the lower bound (delay = min_delay)."""

    def __init__(self, offsets=None):
        self.offsets = list(offsets or [])

    def randint(self, a, b):
        if self.offsets:
            return min(max(self.offsets.pop(0), a), b)
        return a


def build(nodes, links, rnd=None):
    sim = Simulator(rnd=rnd if rnd is not None else ScriptedRandom())
    for node_id, tokens in nodes:
        sim.add_node(node_id, tokens)
    for src, dest in links:
        sim.add_link(src, dest)
    return sim


@pytest.fixture
def two_nodes():
    return build([("A", 10), ("B", 0)], [("A", "B"), ("B", "A")])
