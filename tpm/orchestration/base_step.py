"""
ProcessStep - Abstract base class for transport process steps.

This module provides the shared plumbing of the Step protocol: identity,
the owning process back-reference, explicit typed parameter binding, exit
point lookup and access to order-supplied parameters.
"""

import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Mapping, Optional, TYPE_CHECKING

from tpm.definitions import (
    ExitPointDefinition,
    ParameterBindResult,
    ParameterDefinition,
    ParameterRole,
)
from tpm.exceptions import MissingOrderParameterError

if TYPE_CHECKING:
    from tpm.orchestration.transport_process import TransportProcess
    from tpm.registries.step_registry import StepTypeDefinition


class Stopwatch:
    """
    Restartable stopwatch measuring elapsed seconds.

    Args:
        clock: Monotonic time source in seconds (injectable for tests)
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self.clock = clock
        self._started_at: Optional[float] = None
        self._accumulated = 0.0

    def restart(self) -> None:
        self._accumulated = 0.0
        self._started_at = self.clock()

    def stop(self) -> None:
        if self._started_at is not None:
            self._accumulated += self.clock() - self._started_at
            self._started_at = None

    @property
    def is_running(self) -> bool:
        return self._started_at is not None

    @property
    def elapsed(self) -> float:
        if self._started_at is None:
            return self._accumulated
        return self._accumulated + (self.clock() - self._started_at)


class ProcessStep(ABC):
    """
    Abstract base class for process steps.

    Subclasses declare their capabilities as class attributes and implement
    the lifecycle:

    - parameters: ParameterDefinition list (STANDARD and INFERRED_FOR_ORDER)
    - exits: ExitPointDefinition list (empty means the default "Done" exit)
    - assign_parameter: explicit assignment of one coerced STANDARD value
    - enter / update / leave / reset / progress

    The StepFactory sets `id` and `definition` after construction; the
    TransportProcess sets `parent` when the step is added to it.

    Example:
        class HoldStep(ProcessStep):
            parameters = [ParameterDefinition("Seconds", ParameterType.FLOAT, is_optional=False)]
            exits = [DEFAULT_EXIT]

            def assign_parameter(self, name, value):
                if name == "Seconds":
                    self.seconds = value
                else:
                    super().assign_parameter(name, value)
            ...
    """

    type_name: Optional[str] = None
    parameters: List[ParameterDefinition] = []
    exits: List[ExitPointDefinition] = []

    def __init__(self):
        self.id: int = 0
        self.definition: Optional["StepTypeDefinition"] = None
        self.parent: Optional["TransportProcess"] = None
        self.reached_exit: Optional[ExitPointDefinition] = None
        self.parameter_values: Dict[str, Any] = {}

    # ------------------------------------------------------------------
    # Parameter binding
    # ------------------------------------------------------------------

    def declared_parameters(self) -> List[ParameterDefinition]:
        """Parameters of the registered definition, else the class declaration."""
        if self.definition is not None:
            return self.definition.all_parameters
        return list(self.parameters)

    def find_parameter(self, name: str) -> Optional[ParameterDefinition]:
        for parameter in self.declared_parameters():
            if parameter.name == name:
                return parameter
        return None

    def bind_parameters(self, values: Mapping[str, Any]) -> List[ParameterBindResult]:
        """
        Bind serialized parameter values onto this step.

        Each value is bound independently: a failure leaves that parameter at
        its default and is reported in the result instead of raised.

        Args:
            values: Mapping of parameter name to raw value

        Returns:
            One ParameterBindResult per entry of values
        """
        return [self.bind_parameter(name, value) for name, value in values.items()]

    def bind_parameter(self, name: str, value: Any) -> ParameterBindResult:
        """
        Bind a single parameter value.

        Args:
            name: Parameter name
            value: Raw value

        Returns:
            ParameterBindResult describing the outcome
        """
        parameter = self.find_parameter(name)
        if parameter is None:
            return ParameterBindResult(name=name, success=False, error="parameter is not declared")
        if parameter.role is ParameterRole.INFERRED_FOR_ORDER:
            return ParameterBindResult(
                name=name,
                success=False,
                error="parameter is supplied by the order and cannot be set per step",
            )

        try:
            coerced = parameter.type.coerce(value)
            self.assign_parameter(name, coerced)
        except Exception as e:
            return ParameterBindResult(name=name, success=False, error=f"{type(e).__name__}: {e}")

        self.parameter_values[name] = value
        return ParameterBindResult(name=name, success=True, value=coerced)

    def assign_parameter(self, name: str, value: Any) -> None:
        """
        Assign a coerced STANDARD parameter value.

        Subclasses override this with explicit assignments for the
        parameters they declare and defer to super() for anything else.

        Raises:
            KeyError: If the step has no such parameter
        """
        raise KeyError(f"{type(self).__name__} has no assignable parameter '{name}'")

    def get_order_parameter(self, name: str) -> Any:
        """
        Read a parameter supplied by the enclosing order.

        Args:
            name: Parameter name

        Returns:
            The value stored in the owning process's parameters

        Raises:
            MissingOrderParameterError: If the step has no parent or the
                                        parent has no value for the name
        """
        if self.parent is None or name not in self.parent.parameters:
            raise MissingOrderParameterError(
                f"Order parameter '{name}' is not set for step {self.id}",
                context={"step_id": self.id, "parameter": name},
            )
        return self.parent.parameters[name]

    # ------------------------------------------------------------------
    # Exit points
    # ------------------------------------------------------------------

    def declared_exits(self) -> List[ExitPointDefinition]:
        if self.definition is not None:
            return list(self.definition.exits)
        return list(self.exits)

    def exit_point(self, name: str) -> ExitPointDefinition:
        """
        Return the declared exit point with this name.

        Raises:
            KeyError: If the step does not declare the exit
        """
        for exit_point in self.declared_exits():
            if exit_point.name == name:
                return exit_point
        raise KeyError(f"{type(self).__name__} declares no exit '{name}'")

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @abstractmethod
    def enter(self) -> None:
        """Called once when the step becomes the current step."""

    @abstractmethod
    def update(self) -> None:
        """
        Advance the step by one tick.

        Must set reached_exit to a declared exit when the step is done and
        back to None on every tick where it is not.
        """

    @abstractmethod
    def leave(self) -> None:
        """Called once right before control passes to the next step."""

    @abstractmethod
    def reset(self) -> None:
        """Re-arm the step: clear reached_exit and internal timers."""

    @property
    @abstractmethod
    def progress(self) -> float:
        """Completion estimate in [0, 1]."""

    @property
    def name(self) -> str:
        if self.definition is not None:
            return self.definition.type_name
        return self.type_name or type(self).__name__

    def __repr__(self) -> str:
        reached = self.reached_exit.name if self.reached_exit else None
        return f"{type(self).__name__}(id={self.id}, type='{self.name}', reached_exit={reached})"
