import logging, coloredlogs
import os
from raftsim.config import load_config
from raftsim.cluster import ClusterState
from raftsim.driver import FrameDriver

logger = logging.getLogger("DEMO")


def has_leader(snap) -> bool:
    return snap.leader() is not None


def run_demo(cfg: dict) -> ClusterState:
    cluster = ClusterState(cfg=cfg)
    driver = FrameDriver(cluster, frame_ms=16.0)
    cluster.start()

    driver.advance(10_000, until=has_leader)
    first = cluster.state.leaderId
    logger.info(f"Leader {first} elected at {cluster.state.simulatedTime:.0f}ms")

    for cmd in ("SET x 1", "SET y 2", "DEL x"):
        cluster.add_log_entry(cmd)
    driver.advance(3_000)

    cluster.stop_node(first)
    driver.advance(10_000, until=lambda s: s.leader() is not None and s.leaderId != first)
    logger.info(f"Leader {cluster.state.leaderId} took over at term {cluster.state.currentTerm}")

    cluster.restart_node()
    driver.advance(3_000)
    return cluster


def main():
    config_path = os.getenv("CONFIG_PATH")
    if not config_path:
        raise ValueError(
            "CONFIG_PATH environment variable must "
            "be set (e.g., CONFIG_PATH=configs/cluster.yaml)"
        )
    cfg = load_config(config_path)

    level = cfg.get("log_level", "INFO")
    logging.basicConfig(level=level)
    coloredlogs.install(
        level=level, fmt="%(asctime)s  | %(name)s | %(levelname)s # %(message)s"
    )

    cluster = run_demo(cfg)
    snap = cluster.get_state()
    logger.info(
        f"t={snap.simulatedTime:.0f}ms term={snap.currentTerm} leader={snap.leaderId} "
        f"elections={snap.totalElections} messages={snap.totalMessages}"
    )
    for node in snap.nodes:
        logger.info(
            f"node {node.id}: {node.role} term={node.currentTerm} "
            f"log={len(node.log)} commit={node.commitIndex} kv={node.stateMachine}"
        )


# Example:
# CONFIG_PATH=configs/cluster.yaml python main.py
if __name__ == "__main__":
    main()
