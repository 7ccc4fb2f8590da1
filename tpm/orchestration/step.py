"""
Step Protocol - Runtime interface for all transport process steps.

This module defines the Step protocol the TransportProcess drives. Steps are
polled: the process calls update() once per tick while the step is current
and routes to the next step when reached_exit becomes non-null.
"""

from typing import Any, Optional, Protocol, runtime_checkable

from tpm.definitions import ExitPointDefinition


@runtime_checkable
class Step(Protocol):
    """
    Protocol defining the lifecycle of a process step.

    Attributes:
        id: Step id, unique within the owning process
        definition: Registered StepTypeDefinition of the step's type
        reached_exit: Exit the step currently reports, or None
        progress: Best-effort completion estimate in [0, 1]

    Lifecycle:
        enter:  called once when the step becomes current; resets progress
        update: called once per tick while current; must not block
        leave:  called once right before control passes on
        reset:  re-arms the step; clears reached_exit and timers

    Example:
        class Beep:
            id = 1
            definition = registry.lookup("Beep")
            reached_exit = None
            progress = 1.0

            def enter(self): self.reset()
            def update(self): self.reached_exit = DEFAULT_EXIT
            def leave(self): pass
            def reset(self): self.reached_exit = None
    """

    id: int
    definition: Any
    reached_exit: Optional[ExitPointDefinition]

    @property
    def progress(self) -> float:
        ...

    def enter(self) -> None:
        ...

    def update(self) -> None:
        ...

    def leave(self) -> None:
        ...

    def reset(self) -> None:
        ...
