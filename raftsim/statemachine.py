import logging
from typing import Dict

logger = logging.getLogger("STATE MACHINE")


class KVStateMachine:
    """
    Applies committed commands to a node's key/value map.

    Understands "SET <key> <value...>" and "DEL <key>". Any other command is
    accepted and applied as a no-op, commands are free-form labels as far as
    the protocol is concerned.
    """

    def apply(self, kv: Dict[str, str], cmd: str) -> bool:
        parts = cmd.split()
        if not parts:
            return False
        op = parts[0].upper()
        if op == "SET" and len(parts) >= 2:
            k, v = parts[1], " ".join(parts[2:])
            kv[k] = v
            return True
        if op == "DEL" and len(parts) >= 2:
            kv.pop(parts[1], None)
            return True
        return False
