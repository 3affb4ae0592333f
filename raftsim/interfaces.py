from abc import ABC, abstractmethod
from typing import List, Optional

from raftsim.models import LogEntry, Message, Role


class ClusterInterface(ABC):
    """What the components need from the cluster that owns them"""

    @abstractmethod
    def node(self, node_id: int):
        pass

    @abstractmethod
    def active_nodes(self) -> list:
        pass

    @abstractmethod
    def majority(self) -> int:
        pass

    @abstractmethod
    def quorum_size(self) -> int:
        pass

    @abstractmethod
    def transition(self, node, role: Role) -> None:
        pass

    @abstractmethod
    def random_election_timeout(self) -> float:
        pass

    @abstractmethod
    def observe_term(self, term: int) -> None:
        pass

    @abstractmethod
    def apply_committed(self, node) -> None:
        pass


class TickComponentInterface(ABC):
    """Base interface for components driven by the per-node tick"""

    @abstractmethod
    def tick(self, node, delta: float) -> None:
        pass


class TransportInterface(ABC):
    """Holds in-flight messages and delivers them when transit completes"""

    @abstractmethod
    def send(self, message: Message) -> None:
        pass

    @abstractmethod
    def advance(self, delta: float) -> None:
        pass

    @abstractmethod
    def clear(self) -> None:
        pass


class ElectionInterface(TickComponentInterface):
    """Handles leader election logic"""

    @abstractmethod
    def start_election(self, node) -> None:
        pass

    @abstractmethod
    def become_leader(self, node) -> None:
        pass

    @abstractmethod
    def step_down(self, node, term: int) -> None:
        pass


class ReplicationInterface(TickComponentInterface):
    """Handles log replication"""

    @abstractmethod
    def send_append_entries(self, leader) -> None:
        pass

    @abstractmethod
    def add_log_entry(self, command: str) -> Optional[LogEntry]:
        pass


class FailureInterface(ABC):
    """Command surface for failure injection and client commands"""

    @abstractmethod
    def stop_node(self, node_id: int) -> bool:
        pass

    @abstractmethod
    def restart_node(self, node_id: Optional[int] = None) -> Optional[int]:
        pass

    @abstractmethod
    def add_log_entry(self, command: str) -> Optional[LogEntry]:
        pass

    @abstractmethod
    def stopped_nodes(self) -> List[int]:
        pass
