import logging
import math
import random
from typing import Dict, List, Optional

from raftsim.config import default_config
from raftsim.election import ElectionManager
from raftsim.failure import FailureController
from raftsim.interfaces import ClusterInterface
from raftsim.models import (
    ROLE_TRANSITIONS,
    ClusterSnapshot,
    LogEntry,
    Message,
    RaftNode,
    Role,
    SimulationState,
)
from raftsim.replication import ReplicationManager
from raftsim.state import StateController
from raftsim.statemachine import KVStateMachine
from raftsim.transport import MessageTransport

logger = logging.getLogger("CLUSTER")


class ClusterState(ClusterInterface):
    """
    The simulation: a fixed set of nodes, the simulated network between them,
    and the clock. Driven by update(deltaTime) once per frame; every command
    runs synchronously between two updates.
    """

    def __init__(
        self,
        node_count: Optional[int] = None,
        cfg: Optional[dict] = None,
        rng: Optional[random.Random] = None,
    ):
        self.cfg = cfg if cfg is not None else default_config()
        self.elec_min = float(self.cfg.get("election_timeout_ms_min", 1500))
        self.elec_max = float(self.cfg.get("election_timeout_ms_max", 3000))
        self.require_cluster_quorum = bool(self.cfg.get("require_cluster_quorum", True))
        self._seeded = rng is None
        self.rng = rng if rng is not None else random.Random(self.cfg.get("seed"))
        self.sm = KVStateMachine()

        self.state = StateController(
            SimulationState(speed=float(self.cfg.get("speed", 1.0))), name="cluster"
        )
        self.nodes: List[StateController[RaftNode]] = []

        self.transport = MessageTransport(self)
        self.election = ElectionManager(self)
        self.replication = ReplicationManager(self)
        self.failures = FailureController(self)

        self._tick = {
            "follower": self.election.tick,
            "candidate": self.election.tick,
            "leader": self.replication.tick,
        }
        self._handlers = {
            "request_vote": self.election.handle_request_vote,
            "vote_response": self.election.handle_vote_response,
            "append_entries": self.replication.handle_append_entries,
            "append_response": self.replication.handle_append_response,
        }

        self._build(node_count or int(self.cfg.get("node_count", 5)))

    def _build(self, count: int) -> None:
        self.nodes = [
            StateController(
                RaftNode(id=i, electionTimeout=self.random_election_timeout()),
                name=f"node {i}",
            )
            for i in range(count)
        ]
        logger.info(f"Cluster initialized with {count} nodes")

    # --------------- Commands ---------------
    def start(self) -> None:
        self.state.running = True
        logger.info("Simulation started")

    def stop(self) -> None:
        self.state.running = False
        logger.info("Simulation stopped")

    def reset(self, node_count: Optional[int] = None) -> None:
        count = node_count or len(self.nodes)
        if count < 1:
            logger.warning(f"Ignoring node count {count}, keeping {len(self.nodes)}")
            count = len(self.nodes)
        if self._seeded:
            self.rng = random.Random(self.cfg.get("seed"))
        self.transport.clear()
        self.state.update(SimulationState(speed=self.state.speed))
        self._build(count)

    def set_speed(self, factor: float) -> bool:
        valid = (
            isinstance(factor, (int, float))
            and not isinstance(factor, bool)
            and math.isfinite(factor)
            and factor > 0
        )
        if not valid:
            logger.warning(f"Rejected speed {factor!r}, keeping {self.state.speed}")
            return False
        self.state.speed = float(factor)
        return True

    def add_log_entry(self, command: str) -> Optional[LogEntry]:
        return self.failures.add_log_entry(command)

    def stop_node(self, node_id: int) -> bool:
        return self.failures.stop_node(node_id)

    def restart_node(self, node_id: Optional[int] = None) -> Optional[int]:
        return self.failures.restart_node(node_id)

    # --------------- Ticking ---------------
    def update(self, delta: float) -> None:
        if not self.state.running:
            return
        if not math.isfinite(delta) or delta < 0:
            logger.warning(f"Ignoring invalid frame delta {delta}")
            return
        scaled = delta * self.state.speed
        self.state.simulatedTime += scaled
        self.transport.advance(scaled)
        for node in self.nodes:
            tick = self._tick.get(node.role)
            if tick is not None:
                tick(node, scaled)

    def deliver(self, node, msg: Message) -> None:
        # Any message from a newer term turns the receiver into a follower first
        if msg.term > node.currentTerm:
            self.election.step_down(node, msg.term)
        self._handlers[msg.kind](node, msg)

    # --------------- Cluster view ---------------
    def node(self, node_id: int):
        if isinstance(node_id, int) and 0 <= node_id < len(self.nodes):
            return self.nodes[node_id]
        return None

    def active_nodes(self) -> list:
        return [n for n in self.nodes if n.role != "stopped"]

    def majority(self) -> int:
        return len(self.active_nodes()) // 2 + 1

    def quorum_size(self) -> int:
        if self.require_cluster_quorum:
            return max(self.majority(), len(self.nodes) // 2 + 1)
        return self.majority()

    def current_leader(self):
        node = self.node(self.state.leaderId) if self.state.leaderId is not None else None
        if node is not None and node.role == "leader":
            return node
        return None

    @property
    def messages(self) -> List[Message]:
        return self.transport.messages

    def transition(self, node, role: Role) -> None:
        if role not in ROLE_TRANSITIONS[node.role]:
            raise RuntimeError(f"Illegal transition for node {node.id}: {node.role} -> {role}")
        node.role = role

    def random_election_timeout(self) -> float:
        return self.elec_min + self.rng.random() * (self.elec_max - self.elec_min)

    def observe_term(self, term: int) -> None:
        if term > self.state.currentTerm:
            self.state.currentTerm = term

    def apply_committed(self, node) -> None:
        while node.lastApplied < node.commitIndex:
            node.lastApplied += 1
            self.sm.apply(node.stateMachine, node.log[node.lastApplied].command)

    # --------------- Snapshot ---------------
    def get_state(self) -> ClusterSnapshot:
        return ClusterSnapshot(
            **self.state.snapshot().model_dump(),
            nodes=[n.snapshot() for n in self.nodes],
            messages=[m.model_copy(deep=True) for m in self.transport.messages],
        )

    def roles(self) -> Dict[int, str]:
        return {n.id: n.role for n in self.nodes}

    def __str__(self) -> str:
        active = len(self.active_nodes())
        return f"ClusterState({active}/{len(self.nodes)} nodes, leader={self.state.leaderId}, term={self.state.currentTerm})"
