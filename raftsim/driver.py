import logging
from typing import Callable, Iterable, List, Optional

from raftsim.models import ClusterSnapshot

logger = logging.getLogger("DRIVER")

FrameCallback = Callable[[ClusterSnapshot], None]
Predicate = Callable[[ClusterSnapshot], bool]


class FrameDriver:
    """
    Stand-in for an animation-frame loop.

    Feeds fixed (or given) deltas to the cluster and records them, so a run can
    be replayed exactly on a cluster built with the same seed.
    """

    def __init__(self, cluster, frame_ms: float = 16.0, on_frame: Optional[FrameCallback] = None):
        if frame_ms <= 0:
            raise ValueError(f"frame_ms must be positive, got {frame_ms}")
        self.cluster = cluster
        self.frame_ms = frame_ms
        self.on_frame = on_frame
        self.recorded: List[float] = []

    def tick(self, delta: Optional[float] = None) -> ClusterSnapshot:
        delta = self.frame_ms if delta is None else delta
        self.cluster.update(delta)
        self.recorded.append(delta)
        snap = self.cluster.get_state()
        if self.on_frame is not None:
            self.on_frame(snap)
        return snap

    def advance(self, ms: float, until: Optional[Predicate] = None) -> float:
        """
        Tick for `ms` of driver time (before speed scaling), or until `until`
        holds for a frame. Returns the driver time that elapsed.
        """
        elapsed = 0.0
        while elapsed < ms:
            step = min(self.frame_ms, ms - elapsed)
            snap = self.tick(step)
            elapsed += step
            if until is not None and until(snap):
                break
        return elapsed


def replay(cluster, deltas: Iterable[float], on_frame: Optional[FrameCallback] = None) -> ClusterSnapshot:
    """Feed a recorded delta sequence to a cluster, returning the final snapshot."""
    driver = FrameDriver(cluster, on_frame=on_frame)
    count = 0
    for delta in deltas:
        driver.tick(delta)
        count += 1
    logger.debug(f"Replayed {count} frames, simulated time {cluster.state.simulatedTime:.0f}ms")
    return cluster.get_state()
