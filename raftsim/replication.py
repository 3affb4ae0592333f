import logging
from typing import Optional

from raftsim.interfaces import ReplicationInterface
from raftsim.models import NO_TERM, AppendEntries, AppendResponse, LogEntry

logger = logging.getLogger("REPLICATION")


class ReplicationManager(ReplicationInterface):
    def __init__(self, cluster):
        self.cluster = cluster
        self.state = cluster.state
        self.heartbeat_ms = float(cluster.cfg.get("heartbeat_ms", 500))

    def tick(self, node, delta: float) -> None:
        """Leader tick: heartbeat to followers so they don't start an election."""
        node.heartbeatTimer += delta
        if node.heartbeatTimer >= self.heartbeat_ms:
            node.heartbeatTimer = 0.0
            self.send_append_entries(node)

    def send_append_entries(self, leader) -> None:
        if leader.role != "leader":
            return
        for peer in self.cluster.active_nodes():
            if peer.id == leader.id:
                continue
            next_idx = leader.nextIndex.get(peer.id, len(leader.log))
            prev_idx = next_idx - 1
            prev_term = (
                leader.log[prev_idx].term if 0 <= prev_idx < len(leader.log) else NO_TERM
            )
            # empty slice when the peer is caught up: plain heartbeat
            entries = [e.model_copy() for e in leader.log[next_idx:]]
            self.cluster.transport.send(
                AppendEntries(
                    sender=leader.id,
                    receiver=peer.id,
                    term=leader.currentTerm,
                    entries=entries,
                    prevLogIndex=prev_idx,
                    prevLogTerm=prev_term,
                    leaderCommit=leader.commitIndex,
                )
            )

    def _reply(self, node, msg: AppendEntries, success: bool, match_idx: int) -> None:
        self.cluster.transport.send(
            AppendResponse(
                sender=node.id,
                receiver=msg.sender,
                term=node.currentTerm,
                success=success,
                matchIndex=match_idx,
            )
        )

    def handle_append_entries(self, node, msg: AppendEntries) -> None:
        # heard from a leader
        node.electionTimer = 0.0

        if msg.term < node.currentTerm:
            self._reply(node, msg, False, len(node.log) - 1)
            return

        if node.role != "follower":
            self.cluster.election.step_down(node, msg.term)

        # Too short to place the entries at their own index; let the leader back off
        if msg.prevLogIndex >= len(node.log):
            logger.debug(
                f"Node {node.id} log too short for prevLogIndex {msg.prevLogIndex} (len {len(node.log)})"
            )
            self._reply(node, msg, False, len(node.log) - 1)
            return

        # No prevLogTerm check and no truncation: existing entries are kept as they are
        appended = 0
        for entry in msg.entries:
            if entry.index == len(node.log):
                node.log.append(entry.model_copy(update={"committed": False}))
                appended += 1
        if appended:
            logger.debug(f"Node {node.id} appended {appended} entries, log len {len(node.log)}")

        new_commit = min(msg.leaderCommit, len(node.log) - 1)
        if new_commit > node.commitIndex:
            self._commit_through(node, new_commit)

        self._reply(node, msg, True, msg.prevLogIndex + len(msg.entries))

    def handle_append_response(self, node, msg: AppendResponse) -> None:
        if node.role != "leader" or msg.term != node.currentTerm:
            return
        peer = msg.sender
        if msg.success:
            match = min(msg.matchIndex, len(node.log) - 1)
            if match > node.matchIndex.get(peer, -1):
                node.matchIndex[peer] = match
            node.nextIndex[peer] = node.matchIndex[peer] + 1
            self.update_commit_index(node)
        else:
            current = node.nextIndex.get(peer, len(node.log))
            node.nextIndex[peer] = max(0, min(current - 1, msg.matchIndex + 1))
            logger.debug(f"Append to {peer} failed, retry from index {node.nextIndex[peer]}")

    def update_commit_index(self, leader) -> None:
        """
        Find the highest index from the leader's own term that a quorum holds.
        Entries from older terms are only committed indirectly, below it.
        """
        if leader.role != "leader":
            return
        needed = self.cluster.quorum_size()
        active = {n.id for n in self.cluster.active_nodes()}
        for index in range(len(leader.log) - 1, leader.commitIndex, -1):
            if leader.log[index].term != leader.currentTerm:
                continue
            replicated = 1 + sum(
                1
                for pid, m in leader.matchIndex.items()
                if pid in active and m >= index
            )
            if replicated >= needed:
                logger.info(
                    f"Leader {leader.id} committed index {index} ({replicated}/{len(active)} replicas)"
                )
                self._commit_through(leader, index)
                break

    def _commit_through(self, node, index: int) -> None:
        node.commitIndex = index
        for entry in node.log[: index + 1]:
            entry.committed = True
        self.cluster.apply_committed(node)

    def add_log_entry(self, command: str) -> Optional[LogEntry]:
        leader = self.cluster.current_leader()
        if leader is None:
            logger.warning(f"No leader to add entry: {command!r}")
            return None
        entry = LogEntry(
            term=leader.currentTerm,
            index=len(leader.log),
            command=command,
        )
        leader.log.append(entry)
        logger.info(f"Leader {leader.id} added entry {entry.index}: {command}")
        # Replicate now rather than at the next heartbeat
        self.send_append_entries(leader)
        self.update_commit_index(leader)
        return entry
