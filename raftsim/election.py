import logging

from raftsim.interfaces import ElectionInterface
from raftsim.models import RequestVote, VoteResponse

logger = logging.getLogger("ELECTION")


class ElectionManager(ElectionInterface):
    def __init__(self, cluster):
        self.cluster = cluster
        self.state = cluster.state

    # --------------- Timers ---------------
    def tick(self, node, delta: float) -> None:
        """Follower and candidate tick: retry an election when the timer runs out."""
        node.electionTimer += delta
        if node.electionTimer < node.electionTimeout:
            return
        if node.role == "follower":
            logger.info(
                f"Node {node.id} election timeout ({node.electionTimeout:.0f}ms), becoming candidate"
            )
        else:
            logger.info(f"Node {node.id} split vote in term {node.currentTerm}, retrying")
        self.cluster.transition(node, "candidate")
        self.start_election(node)

    def reset_election_timer(self, node) -> None:
        node.electionTimer = 0.0
        node.electionTimeout = self.cluster.random_election_timeout()

    # --------------- Transitions ---------------
    def start_election(self, node) -> None:
        node.currentTerm += 1
        node.votedFor = node.id
        self.reset_election_timer(node)
        self.state.totalElections += 1
        self.cluster.observe_term(node.currentTerm)
        logger.info(f"Node {node.id} starting election for term {node.currentTerm}")

        for peer in self.cluster.active_nodes():
            if peer.id == node.id:
                continue
            self.cluster.transport.send(
                RequestVote(sender=node.id, receiver=peer.id, term=node.currentTerm)
            )
        # single-node cluster: the self vote is already a quorum
        if self.count_votes(node) >= self.cluster.quorum_size():
            self.become_leader(node)

    def become_leader(self, node) -> None:
        self.cluster.transition(node, "leader")
        node.heartbeatTimer = 0.0
        self.state.leaderId = node.id
        next_idx = len(node.log)
        node.nextIndex = {p.id: next_idx for p in self.cluster.nodes if p.id != node.id}
        node.matchIndex = {p.id: -1 for p in self.cluster.nodes if p.id != node.id}
        logger.info(f"Node {node.id} became LEADER for term {node.currentTerm}")
        # Establish leadership now instead of at the next heartbeat boundary
        self.cluster.replication.send_append_entries(node)

    def step_down(self, node, term: int) -> None:
        was = node.role
        self.cluster.transition(node, "follower")
        node.currentTerm = term
        node.votedFor = None
        node.nextIndex = None
        node.matchIndex = None
        self.reset_election_timer(node)
        self.cluster.observe_term(term)
        if self.state.leaderId == node.id:
            self.state.leaderId = None
        if was != "follower":
            logger.info(f"Node {node.id} stepped down from {was} at term {term}")

    # --------------- Message handlers ---------------
    def handle_request_vote(self, node, msg: RequestVote) -> None:
        # Higher terms were already adopted by the cluster before dispatch
        granted = False
        if msg.term >= node.currentTerm and node.votedFor in (None, msg.sender):
            granted = True
            node.votedFor = msg.sender
            node.electionTimer = 0.0
        logger.debug(
            f"Node {node.id} {'granted' if granted else 'denied'} vote to {msg.sender} for term {msg.term}"
        )
        self.cluster.transport.send(
            VoteResponse(
                sender=node.id,
                receiver=msg.sender,
                term=node.currentTerm,
                voteGranted=granted,
            )
        )

    def handle_vote_response(self, node, msg: VoteResponse) -> None:
        if node.role != "candidate" or msg.term != node.currentTerm:
            return
        if not msg.voteGranted:
            return
        votes = self.count_votes(node)
        needed = self.cluster.quorum_size()
        logger.debug(f"Node {node.id} has {votes}/{needed} votes in term {node.currentTerm}")
        if votes >= needed:
            self.become_leader(node)

    def count_votes(self, candidate) -> int:
        """
        Votes are never retracted within a term, so the tally can be read off
        the voters themselves instead of being kept per election.
        """
        return sum(
            1
            for n in self.cluster.active_nodes()
            if n.votedFor == candidate.id and n.currentTerm == candidate.currentTerm
        )
