from typing import Optional, Literal, List, Dict, FrozenSet
from pydantic import BaseModel, Field

Role = Literal["follower", "candidate", "leader", "stopped"]
MessageKind = Literal["request_vote", "vote_response", "append_entries", "append_response"]

# Legal role changes. Anything else is a bug in the engine.
ROLE_TRANSITIONS: Dict[str, FrozenSet[str]] = {
    "follower": frozenset({"candidate", "follower", "stopped"}),
    "candidate": frozenset({"candidate", "leader", "follower", "stopped"}),
    "leader": frozenset({"follower", "stopped"}),
    "stopped": frozenset({"follower"}),
}

# prevLogTerm when there is no entry before nextIndex
NO_TERM = -1


class LogEntry(BaseModel):
    term: int
    index: int
    command: str
    committed: bool = False


class Message(BaseModel):
    id: int = 0
    kind: MessageKind
    sender: int
    receiver: int
    term: int  # sender's term at send time
    progress: float = 0.0


class RequestVote(Message):
    kind: Literal["request_vote"] = "request_vote"


class VoteResponse(Message):
    kind: Literal["vote_response"] = "vote_response"
    voteGranted: bool


class AppendEntries(Message):
    kind: Literal["append_entries"] = "append_entries"
    entries: List[LogEntry] = Field(default_factory=list)
    prevLogIndex: int
    prevLogTerm: int
    leaderCommit: int


class AppendResponse(Message):
    kind: Literal["append_response"] = "append_response"
    success: bool
    matchIndex: int = -1  # highest index the follower holds after the request


class RaftNode(BaseModel):
    id: int
    role: Role = "follower"
    currentTerm: int = 0
    votedFor: Optional[int] = None
    log: List[LogEntry] = Field(default_factory=list)

    commitIndex: int = -1
    lastApplied: int = -1
    stateMachine: Dict[str, str] = Field(default_factory=dict)

    # Leader only, reinitialized on every promotion
    nextIndex: Optional[Dict[int, int]] = None
    matchIndex: Optional[Dict[int, int]] = None

    electionTimer: float = 0.0
    electionTimeout: float
    heartbeatTimer: float = 0.0


class SimulationState(BaseModel):
    currentTerm: int = 0  # max term observed across nodes
    leaderId: Optional[int] = None
    totalElections: int = 0
    totalMessages: int = 0
    simulatedTime: float = 0.0
    running: bool = False
    speed: float = 1.0


class ClusterSnapshot(SimulationState):
    """Read-only copy of the whole simulation, handed to renderers once per frame."""

    nodes: List[RaftNode] = Field(default_factory=list)
    messages: List[Message] = Field(default_factory=list)

    def node(self, node_id: int) -> Optional[RaftNode]:
        for n in self.nodes:
            if n.id == node_id:
                return n
        return None

    def leader(self) -> Optional[RaftNode]:
        if self.leaderId is None:
            return None
        return self.node(self.leaderId)

    def leaders(self) -> List[RaftNode]:
        return [n for n in self.nodes if n.role == "leader"]
