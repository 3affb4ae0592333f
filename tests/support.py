import random
from typing import Dict, Optional

from raftsim.cluster import ClusterState
from raftsim.config import default_config
from raftsim.models import ClusterSnapshot


class ScriptedRandom(random.Random):
    """random() returns the scripted values in order, then `default` forever."""

    def __init__(self, values=(), default: float = 0.999):
        super().__init__(0)
        self.script = list(values)
        self.default = default

    def random(self):
        if self.script:
            return self.script.pop(0)
        return self.default


def make_cluster(node_count: int = 5, seed: Optional[int] = 7, rng=None, **overrides) -> ClusterState:
    cfg = default_config(seed=seed, **overrides)
    return ClusterState(node_count=node_count, cfg=cfg, rng=rng)


def scripted_cluster(node_count: int = 5, first: int = 0, **overrides) -> ClusterState:
    """
    Node `first` times out at 1500ms, every other draw gives ~2998ms.
    The first election is uncontested and the winner's followers never
    time out while heartbeats flow.
    """
    values = [0.999] * node_count
    values[first] = 0.0
    return make_cluster(node_count, seed=None, rng=ScriptedRandom(values), **overrides)


def run(cluster: ClusterState, ms: float, step: float = 100.0, on_frame=None) -> None:
    elapsed = 0.0
    while elapsed < ms:
        cluster.update(step)
        elapsed += step
        if on_frame is not None:
            on_frame(cluster.get_state())


def run_until(cluster: ClusterState, ms: float, predicate, step: float = 100.0) -> Optional[float]:
    """Tick until predicate(cluster) holds; returns the elapsed ms or None on timeout."""
    elapsed = 0.0
    while elapsed < ms:
        cluster.update(step)
        elapsed += step
        if predicate(cluster):
            return elapsed
    return None


def make_leader(cluster: ClusterState, node_id: int, term: int = 1):
    """Put `node_id` in charge at `term` with followers on the same term, nothing in flight."""
    for n in cluster.nodes:
        n.currentTerm = term
        n.votedFor = node_id
    node = cluster.nodes[node_id]
    cluster.transition(node, "candidate")
    cluster.election.become_leader(node)
    cluster.transport.clear()
    return node


class InvariantChecker:
    """Frame callback asserting the safety properties on every snapshot."""

    def __init__(self, test):
        self.test = test
        self.prev: Optional[ClusterSnapshot] = None
        self.frames = 0
        self.leaders_seen: Dict[int, int] = {}

    def __call__(self, snap: ClusterSnapshot) -> None:
        t = self.test
        self.frames += 1

        by_term: Dict[int, int] = {}
        for leader in snap.leaders():
            by_term[leader.currentTerm] = by_term.get(leader.currentTerm, 0) + 1
            self.leaders_seen[leader.currentTerm] = leader.id
        for term, count in by_term.items():
            t.assertLessEqual(count, 1, f"{count} leaders in term {term}")

        if snap.leaderId is not None:
            t.assertEqual(snap.node(snap.leaderId).role, "leader")

        for node in snap.nodes:
            t.assertLessEqual(node.lastApplied, node.commitIndex)
            t.assertEqual([e.index for e in node.log], list(range(len(node.log))))
            for entry in node.log:
                t.assertEqual(entry.committed, entry.index <= node.commitIndex)
            if node.role == "leader":
                t.assertIsNotNone(node.nextIndex)
            else:
                t.assertIsNone(node.nextIndex)
                t.assertIsNone(node.matchIndex)

        if self.prev is not None:
            for before, after in zip(self.prev.nodes, snap.nodes):
                t.assertGreaterEqual(after.currentTerm, before.currentTerm)
                t.assertGreaterEqual(after.commitIndex, before.commitIndex)
                if before.role == "stopped" and after.role == "stopped":
                    t.assertEqual(after.currentTerm, before.currentTerm)
                    t.assertEqual(after.votedFor, before.votedFor)
                    t.assertEqual(len(after.log), len(before.log))
                if after.role == "leader" and after.commitIndex > before.commitIndex:
                    holders = sum(1 for n in snap.nodes if len(n.log) > after.commitIndex)
                    t.assertGreaterEqual(holders, len(snap.nodes) // 2 + 1)
        self.prev = snap
