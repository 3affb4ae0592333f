import logging
from typing import List, Optional

from raftsim.interfaces import FailureInterface
from raftsim.models import LogEntry

logger = logging.getLogger("FAILURE")


class FailureController(FailureInterface):
    """Commands the UI issues between ticks: crash, revive, client writes."""

    def __init__(self, cluster):
        self.cluster = cluster
        self.state = cluster.state

    def stop_node(self, node_id: int) -> bool:
        node = self.cluster.node(node_id)
        if node is None:
            logger.warning(f"Cannot stop unknown node: {node_id!r}")
            return False
        if node.role == "stopped":
            logger.warning(f"Node {node_id} already stopped")
            return False
        self.cluster.transition(node, "stopped")
        node.nextIndex = None
        node.matchIndex = None
        # Followers find out through their own election timers
        if self.state.leaderId == node.id:
            self.state.leaderId = None
        logger.info(f"Stopped node {node_id}")
        return True

    def restart_node(self, node_id: Optional[int] = None) -> Optional[int]:
        if node_id is None:
            stopped = self.stopped_nodes()
            if not stopped:
                logger.warning("No stopped node to restart")
                return None
            node_id = stopped[0]
        node = self.cluster.node(node_id)
        if node is None or node.role != "stopped":
            logger.warning(f"Node {node_id!r} is not stopped")
            return None

        # Term and log survive the outage; no catch-up step is modelled
        self.cluster.transition(node, "follower")
        node.votedFor = None
        node.heartbeatTimer = 0.0
        node.electionTimer = 0.0
        node.electionTimeout = self.cluster.random_election_timeout()
        logger.info(f"Restarted node {node_id} at term {node.currentTerm}")
        return node_id

    def add_log_entry(self, command: str) -> Optional[LogEntry]:
        return self.cluster.replication.add_log_entry(command)

    def stopped_nodes(self) -> List[int]:
        return [n.id for n in self.cluster.nodes if n.role == "stopped"]
