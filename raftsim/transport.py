import logging
from typing import List

from raftsim.interfaces import TransportInterface
from raftsim.models import Message

logger = logging.getLogger("TRANSPORT")

# absorbs float drift from summing per-tick progress
ARRIVAL_EPSILON = 1e-9


class MessageTransport(TransportInterface):
    """
    Simulated network with a fixed transit time.

    A message is invisible to its receiver until its progress reaches 1.0,
    then it is delivered exactly once. Messages to or from a stopped node
    are dropped silently; nothing else is ever lost or reordered.
    """

    def __init__(self, cluster):
        self.cluster = cluster
        self.transit_ms = float(cluster.cfg.get("transit_ms", 1000))
        self.messages: List[Message] = []
        self._next_id = 0

    def send(self, message: Message) -> None:
        sender = self.cluster.node(message.sender)
        if sender is None or sender.role == "stopped":
            logger.debug(f"Drop outgoing {message.kind} from stopped node {message.sender}")
            return
        self._next_id += 1
        message.id = self._next_id
        message.progress = 0.0
        self.messages.append(message)
        self.cluster.state.totalMessages += 1

    def advance(self, delta: float) -> None:
        step = delta / self.transit_ms
        arrived: List[Message] = []
        pending: List[Message] = []
        for msg in self.messages:
            msg.progress += step
            if msg.progress >= 1.0 - ARRIVAL_EPSILON:
                arrived.append(msg)
            else:
                pending.append(msg)
        # Replies produced during delivery start their transit next tick
        self.messages = pending
        for msg in arrived:
            self._deliver(msg)

    def _deliver(self, msg: Message) -> None:
        receiver = self.cluster.node(msg.receiver)
        sender = self.cluster.node(msg.sender)
        if receiver is None or receiver.role == "stopped":
            logger.debug(f"Drop {msg.kind} #{msg.id}: receiver {msg.receiver} stopped")
            return
        if sender is None or sender.role == "stopped":
            logger.debug(f"Drop {msg.kind} #{msg.id}: sender {msg.sender} stopped")
            return
        self.cluster.deliver(receiver, msg)

    def clear(self) -> None:
        self.messages = []
        self._next_id = 0

    def in_flight(self, kind: str = None) -> List[Message]:
        if kind is None:
            return list(self.messages)
        return [m for m in self.messages if m.kind == kind]
