import yaml

DEFAULTS = {
    "node_count": 5,
    "election_timeout_ms_min": 1500,
    "election_timeout_ms_max": 3000,
    "heartbeat_ms": 500,
    "transit_ms": 1000,
    "speed": 1.0,
    "seed": None,
    "require_cluster_quorum": True,
    "log_level": "INFO",
}


def default_config(**overrides) -> dict:
    cfg = dict(DEFAULTS)
    cfg.update(overrides)
    validate_config(cfg)
    return cfg


def load_config(path: str) -> dict:
    with open(path, "r") as f:
        raw = yaml.safe_load(f) or {}
    if not isinstance(raw, dict):
        raise ValueError(f"{path}: expected a mapping at the top level")
    return default_config(**raw)


def validate_config(cfg: dict) -> None:
    lo = cfg["election_timeout_ms_min"]
    hi = cfg["election_timeout_ms_max"]
    if lo <= 0 or hi <= lo:
        raise ValueError(
            f"election timeout range must satisfy 0 < min < max, got [{lo}, {hi}]"
        )
    if cfg["heartbeat_ms"] <= 0:
        raise ValueError(f"heartbeat_ms must be positive, got {cfg['heartbeat_ms']}")
    if cfg["transit_ms"] <= 0:
        raise ValueError(f"transit_ms must be positive, got {cfg['transit_ms']}")
    if int(cfg["node_count"]) < 1:
        raise ValueError(f"node_count must be at least 1, got {cfg['node_count']}")
    if cfg["speed"] <= 0:
        raise ValueError(f"speed must be positive, got {cfg['speed']}")
