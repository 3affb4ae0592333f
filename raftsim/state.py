from __future__ import annotations
import logging
from typing import Any, Dict, Iterable, Optional, TypeVar, Generic
from pydantic import BaseModel

logger = logging.getLogger("STATE UPDATE")

T = TypeVar("T", bound=BaseModel)

# Fields that change on every tick; logging them would drown the transitions.
QUIET_FIELDS = frozenset(
    {"electionTimer", "heartbeatTimer", "simulatedTime", "totalMessages"}
)


def _format_list_summary(value: Iterable[Any]) -> str:
    seq = list(value)
    if not seq:
        return "[]"
    if len(seq) == 1:
        return f"[{seq[0]!r}]"
    return f"[{seq[0]!r}..{seq[-1]!r}]"


def _format_value(v: Any) -> str:
    if isinstance(v, (list, tuple)):
        return _format_list_summary(v)
    if isinstance(v, BaseModel):
        return repr(v.model_dump())
    if isinstance(v, dict):
        keys = list(v.keys())
        if len(keys) <= 6:
            return repr(v)
        return f"{{{', '.join(map(repr, keys[:5]))}, ...}}"
    if isinstance(v, float):
        return f"{v:.1f}"
    return repr(v)


class StateController(Generic[T]):
    """
    Wraps a Pydantic model and logs every state transition.
    - attribute assignment goes through set() and is logged
    - update(new_data): partial update, logs per-field prev/new
    - snapshot(): deep copy, safe to hand out
    """

    def __init__(self, state: T, name: Optional[str] = None):
        self._state: T = state
        self._name = name or type(state).__name__
        self._logger = logger

    @property
    def state(self) -> T:
        return self._state

    def snapshot(self) -> T:
        return self._state.model_copy(deep=True)

    def __setattr__(self, name, value):
        if name.startswith("_"):
            super().__setattr__(name, value)
        else:
            self.set(name, value)

    def __getattr__(self, name):
        if name.startswith("_"):
            raise AttributeError(name)
        return getattr(self._state, name)

    def __repr__(self) -> str:
        return f"StateController({self._state!r})"

    def isStateMutated(self, **kwargs) -> bool:
        """
        State guard.

        True if any of the given fields no longer holds the expected value.
        """
        for k, v in kwargs.items():
            if getattr(self._state, k) != v:
                self._logger.debug(
                    f"{self._name} state mutated: {k} {getattr(self._state, k)} -> {v}"
                )
                return True
        return False

    def set(self, field: str, value: Any) -> None:
        if field not in type(self._state).model_fields:
            raise AttributeError(
                f"Unknown field '{field}' for {type(self._state).__name__}"
            )
        self.update({field: value})

    def append(self, field: str, value: Any) -> None:
        if field not in type(self._state).model_fields:
            raise AttributeError(
                f"Unknown field '{field}' for {type(self._state).__name__}"
            )
        before = getattr(self._state, field)
        self.update({field: before + [value]})

    def update(self, new_data: Dict[str, Any] | BaseModel) -> None:
        """Apply a partial update via model_copy(update=...). Logs per-field prev/new."""
        if isinstance(new_data, BaseModel):
            new_data = new_data.model_dump()

        allowed = type(self._state).model_fields
        clean_update = {k: v for k, v in new_data.items() if k in allowed}
        if not clean_update:
            return

        before_values = {}
        changed = {}
        for field, new_val in clean_update.items():
            current_val = getattr(self._state, field)
            if current_val != new_val:
                before_values[field] = current_val
                changed[field] = new_val

        if changed:
            self._state = self._state.model_copy(update=changed)
            self._log_change(changed, before_values)

    # --- Logging ---
    def _log_change(self, changed: Dict[str, Any], before: Dict[str, Any]) -> None:
        if not self._logger.isEnabledFor(logging.DEBUG):
            return
        lines = [f"{self._name}"]
        for field in changed.keys():
            if field in QUIET_FIELDS:
                continue
            prev_val = _format_value(before.get(field))
            new_val = _format_value(changed.get(field))
            lines.append(f"#    {field}: {prev_val} -> {new_val}")
        if len(lines) > 1:
            self._logger.debug("\n".join(lines))
