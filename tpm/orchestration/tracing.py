"""
Transition tracing for transport processes.

A tracer is an optional observer the TransportProcess notifies when a step is
entered, when it is left through an exit and when the process finishes.
"""

import time
from typing import Any, Dict, List, Optional, Protocol, runtime_checkable


@runtime_checkable
class ProcessTracer(Protocol):
    """Observer interface for process transitions."""

    def on_enter(self, process: Any, step: Any) -> None:
        ...

    def on_leave(self, process: Any, step: Any, exit_point: Any) -> None:
        ...

    def on_finish(self, process: Any) -> None:
        ...


class TransitionTracer:
    """
    Tracer that records transitions in memory.

    Each record is a dict with `event` ("enter", "leave" or "finish"),
    `process`, `time` and, for step events, `step_id`, `step_type` and
    (on leave) `exit` / `is_error` / `duration_s`.

    Example:
        tracer = TransitionTracer()
        process.tracer = tracer
        process.run(max_ticks=100)
        path = tracer.get_path()  # e.g. [1, 2, 1, 2]
    """

    def __init__(self, clock=time.time):
        self.clock = clock
        self.records: List[Dict[str, Any]] = []
        self._entered_at: Dict[int, float] = {}

    def on_enter(self, process: Any, step: Any) -> None:
        now = self.clock()
        self._entered_at[step.id] = now
        self.records.append(
            {
                "event": "enter",
                "process": process.name,
                "step_id": step.id,
                "step_type": step.name,
                "time": now,
            }
        )

    def on_leave(self, process: Any, step: Any, exit_point: Any) -> None:
        now = self.clock()
        started = self._entered_at.pop(step.id, None)
        self.records.append(
            {
                "event": "leave",
                "process": process.name,
                "step_id": step.id,
                "step_type": step.name,
                "exit": exit_point.name,
                "is_error": exit_point.is_error,
                "duration_s": (now - started) if started is not None else None,
                "time": now,
            }
        )

    def on_finish(self, process: Any) -> None:
        self.records.append({"event": "finish", "process": process.name, "time": self.clock()})

    def get_path(self) -> List[int]:
        """Ids of the steps that were entered, in order."""
        return [r["step_id"] for r in self.records if r["event"] == "enter"]

    def get_exits(self) -> List[str]:
        """Names of the exits taken, in order."""
        return [r["exit"] for r in self.records if r["event"] == "leave"]

    def last(self) -> Optional[Dict[str, Any]]:
        return self.records[-1] if self.records else None

    def clear(self) -> None:
        self.records.clear()
        self._entered_at.clear()
