"""
Transport Steps - Built-in step implementations.

This module provides the step types registered by default:
- WaitStep: waits for a configured duration, then exits through "Done"
- DeliverStep: simulates delivering a load to the order's destination and
  exits through "Done" or, on failure, through the error exit "Failed"

Both steps are timer driven and never block inside update(); elapsed time is
checked on every tick.
"""

import random
from typing import Any, Optional

from tpm.definitions import (
    DEFAULT_EXIT,
    ExitPointDefinition,
    ParameterDefinition,
    ParameterRole,
    ParameterType,
)
from tpm.logger import get_logger
from tpm.orchestration.base_step import ProcessStep, Stopwatch


FAILED_EXIT = ExitPointDefinition(name="Failed", is_error=True)


def _ratio(elapsed: float, duration: float) -> float:
    if duration <= 0:
        return 1.0
    return max(0.0, min(elapsed / duration, 1.0))


class WaitStep(ProcessStep):
    """
    Wait for a fixed number of seconds.

    Parameters:
        Duration: Seconds to wait (required)

    Exits:
        Done: The duration has elapsed
    """

    parameters = [
        ParameterDefinition("Duration", ParameterType.FLOAT, is_optional=False),
    ]
    exits = [DEFAULT_EXIT]

    def __init__(self, stopwatch: Optional[Stopwatch] = None):
        super().__init__()
        self.duration: float = 0.0
        self.stopwatch = stopwatch or Stopwatch()

    def assign_parameter(self, name: str, value: Any) -> None:
        if name == "Duration":
            if value < 0:
                raise ValueError(f"Duration must be non-negative, got {value}")
            self.duration = value
        else:
            super().assign_parameter(name, value)

    def enter(self) -> None:
        self.reset()

    def leave(self) -> None:
        self.stopwatch.stop()

    def reset(self) -> None:
        self.reached_exit = None
        self.stopwatch.restart()

    def update(self) -> None:
        if self.stopwatch.elapsed >= self.duration:
            self.reached_exit = self.exit_point("Done")
        else:
            self.reached_exit = None

    @property
    def progress(self) -> float:
        return _ratio(self.stopwatch.elapsed, self.duration)


class DeliverStep(ProcessStep):
    """
    Deliver the current load to the order's destination.

    The delivery takes a random time up to MaxDuration seconds and fails with
    probability FailureRate. The outcome is drawn once per attempt and kept
    until the step is reset, so repeated updates report the same exit.

    Parameters:
        DeliverDestination: Destination id, supplied by the order (required)
        MaxDuration: Upper bound of the simulated delivery time (optional)
        FailureRate: Probability in [0, 1] that a delivery fails (optional)

    Exits:
        Done: Load delivered
        Failed: Delivery failed (error exit)
    """

    parameters = [
        ParameterDefinition(
            "DeliverDestination",
            ParameterType.INT,
            is_optional=False,
            role=ParameterRole.INFERRED_FOR_ORDER,
        ),
        ParameterDefinition("MaxDuration", ParameterType.FLOAT),
        ParameterDefinition("FailureRate", ParameterType.FLOAT),
    ]
    exits = [DEFAULT_EXIT, FAILED_EXIT]

    def __init__(
        self,
        stopwatch: Optional[Stopwatch] = None,
        rng: Optional[random.Random] = None,
    ):
        super().__init__()
        self.max_duration: float = 15.0
        self.failure_rate: float = 0.5
        self.duration: float = 0.0
        self.stopwatch = stopwatch or Stopwatch()
        self.rng = rng or random.Random()

    def assign_parameter(self, name: str, value: Any) -> None:
        if name == "MaxDuration":
            if value < 0:
                raise ValueError(f"MaxDuration must be non-negative, got {value}")
            self.max_duration = value
        elif name == "FailureRate":
            if not 0.0 <= value <= 1.0:
                raise ValueError(f"FailureRate must be within [0, 1], got {value}")
            self.failure_rate = value
        else:
            super().assign_parameter(name, value)

    @property
    def deliver_destination(self) -> int:
        return int(self.get_order_parameter("DeliverDestination"))

    def enter(self) -> None:
        self.reset()

    def leave(self) -> None:
        self.stopwatch.stop()

    def reset(self) -> None:
        self.reached_exit = None
        self.duration = self.rng.random() * self.max_duration
        self.stopwatch.restart()

    def update(self) -> None:
        if self.stopwatch.elapsed < self.duration:
            self.reached_exit = None
            return

        if self.reached_exit is not None:
            return

        destination = self.deliver_destination
        context = {"step_id": self.id, "destination": destination}
        if self.rng.random() < self.failure_rate:
            get_logger().warning(f"Failed to deliver load to {destination}", context=context)
            self.reached_exit = self.exit_point("Failed")
        else:
            get_logger().info(f"Delivered load to {destination}", context=context)
            self.reached_exit = self.exit_point("Done")

    @property
    def progress(self) -> float:
        return _ratio(self.stopwatch.elapsed, self.duration)


BUILTIN_STEPS = [WaitStep, DeliverStep]

# Type names written by older process tooling
LEGACY_STEP_NAMES = {"DeliverStepDummy": DeliverStep}
