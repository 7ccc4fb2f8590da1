"""
Transport Process - Process graph and tick-driven execution engine.

This module provides:
- Edge: exit-point-keyed transition between two live steps
- TransportProcess: owns steps and edges and advances the current step
  once per tick, following the edge that matches the exit it reports
- instantiate_process: rebuilds a TransportProcess from a serialized
  ProcessInstanceData, collecting every load-time error in one batch

The engine has no thread of its own. A caller invokes tick() at its own
cadence, or run() which ticks with a fixed sleep interval.
"""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

from pydantic import ValidationError

from tpm.definitions import ExitPointDefinition, ParameterDefinition
from tpm.exceptions import (
    AmbiguousRoutingError,
    DanglingEdgeReferenceError,
    DuplicateStepIdError,
    InvalidInitialStepError,
    ProcessDataError,
    ProcessInstantiationError,
    StepExecutionError,
    TPMError,
    UnknownExitReferenceError,
)
from tpm.logger import StructuredLogger, get_logger
from tpm.orchestration.base_step import ProcessStep
from tpm.orchestration.step_factory import StepBuildResult, StepFactory
from tpm.orchestration.tracing import ProcessTracer
from tpm.registries.step_registry import StepTypeRegistry, get_inferred_parameters
from tpm.schemas import EdgeData, ProcessInstanceData, StepInstanceData


class ProcessState(Enum):
    """Execution state of a TransportProcess."""

    UNSTARTED = "unstarted"
    RUNNING = "running"
    FINISHED = "finished"


@dataclass(eq=False)
class Edge:
    """
    Directed transition between two steps of a process.

    Attributes:
        source: Step the edge leaves from
        source_exit: Exit of the source step that selects this edge
        destination: Step that becomes current when the edge is followed
    """

    source: ProcessStep
    source_exit: ExitPointDefinition
    destination: ProcessStep

    def matches(self, step: ProcessStep, exit_point: ExitPointDefinition) -> bool:
        return self.source is step and self.source_exit == exit_point

    def __repr__(self) -> str:
        return f"Edge({self.source.id}.{self.source_exit.name} -> {self.destination.id})"


class TransportProcess:
    """
    Live process graph with one current step at a time.

    States:
        UNSTARTED: no current step yet
        RUNNING: a current step is set and the process is not finished
        FINISHED: a step reported an exit without an outgoing edge;
                  further ticks have no effect

    Example:
        process = instantiate_process(data).raise_for_errors()
        process.set_parameter("DeliverDestination", 10001010)
        while not process.is_finished:
            process.tick()
            time.sleep(0.1)
    """

    def __init__(
        self,
        name: str = "",
        logger: Optional[StructuredLogger] = None,
        tracer: Optional[ProcessTracer] = None,
    ):
        """
        Initialize an empty process.

        Args:
            name: Process name
            logger: Log sink (defaults to the global structured logger)
            tracer: Optional transition observer
        """
        self.name = name
        self.steps: List[ProcessStep] = []
        self.edges: List[Edge] = []
        self.parameters: Dict[str, Any] = {}
        self.initial_step: Optional[ProcessStep] = None
        self.current_step: Optional[ProcessStep] = None
        self.is_finished = False
        self.tick_count = 0
        self.tracer = tracer
        self._logger = logger

    @property
    def logger(self) -> StructuredLogger:
        return self._logger or get_logger()

    # ------------------------------------------------------------------
    # Graph construction
    # ------------------------------------------------------------------

    def add_step(self, step: Optional[ProcessStep]) -> None:
        """Add a step and make this process its parent. None is ignored."""
        if step is None:
            return
        self.steps.append(step)
        step.parent = self

    def add_edge(self, edge: Optional[Edge]) -> None:
        """Add an edge. None is ignored."""
        if edge is None:
            return
        self.edges.append(edge)

    def connect(
        self,
        source: ProcessStep,
        exit_name: str,
        destination: ProcessStep,
    ) -> Edge:
        """
        Add an edge from source's named exit to destination.

        Raises:
            UnknownExitReferenceError: If source does not declare the exit
        """
        try:
            exit_point = source.exit_point(exit_name)
        except KeyError:
            raise UnknownExitReferenceError(
                f"Step {source.id} ({source.name}) declares no exit '{exit_name}'",
                context={"step_id": source.id, "exit": exit_name},
            ) from None
        edge = Edge(source=source, source_exit=exit_point, destination=destination)
        self.add_edge(edge)
        return edge

    def get_step(self, step_id: int) -> Optional[ProcessStep]:
        for step in self.steps:
            if step.id == step_id:
                return step
        return None

    def find_next_steps(
        self, source: ProcessStep, exit_point: ExitPointDefinition
    ) -> List[ProcessStep]:
        """
        Destinations of every edge leaving source through exit_point.

        Raises:
            ValueError: If exit_point is None
        """
        if exit_point is None:
            raise ValueError("exit_point cannot be None")
        return [edge.destination for edge in self.edges if edge.matches(source, exit_point)]

    # ------------------------------------------------------------------
    # Order parameters
    # ------------------------------------------------------------------

    def set_parameter(self, name: str, value: Any) -> None:
        self.parameters[name] = value

    def get_inferred_parameters(self) -> List[ParameterDefinition]:
        """Order parameters required by the steps of this process."""
        return get_inferred_parameters(step.definition for step in self.steps)

    def missing_order_parameters(self) -> List[str]:
        """Names of required order parameters that have no value yet."""
        return [
            p.name
            for p in self.get_inferred_parameters()
            if not p.is_optional and p.name not in self.parameters
        ]

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    @property
    def state(self) -> ProcessState:
        if self.is_finished:
            return ProcessState.FINISHED
        if self.current_step is None:
            return ProcessState.UNSTARTED
        return ProcessState.RUNNING

    @property
    def progress(self) -> float:
        """Progress of the current step (1.0 once finished)."""
        if self.is_finished:
            return 1.0
        if self.current_step is None:
            return 0.0
        return self.current_step.progress

    def reset(self) -> None:
        """
        Put the initial step in place (if nothing is current) and re-arm it.

        Calling reset() while already at the initial step keeps the current
        step. Has no effect once the process is finished; use restart().

        Raises:
            InvalidInitialStepError: If the process has no initial step
        """
        if self.is_finished:
            self.logger.debug(
                f"Process '{self.name}' is finished; reset ignored",
                context={"process": self.name},
            )
            return

        if self.current_step is None:
            if self.initial_step is None:
                raise InvalidInitialStepError(
                    f"Process '{self.name}' has no initial step",
                    context={"process": self.name},
                )
            self.current_step = self.initial_step
            if self.tracer is not None:
                self.tracer.on_enter(self, self.current_step)

        self._call(self.current_step, "reset")

    def restart(self) -> None:
        """Return a (possibly finished) process to its initial step."""
        if self.current_step is not None:
            self._call(self.current_step, "leave")
        self.is_finished = False
        self.current_step = None
        self.reset()

    def tick(self) -> bool:
        """
        Advance the process by one iteration.

        Updates the current step and, if it reports an exit, follows the
        single matching edge or finishes the process when there is none.

        Returns:
            True if the current step changed (or the process finished)

        Raises:
            AmbiguousRoutingError: If more than one edge matches the reported
                                   exit; the current step is left unchanged
            UnknownExitReferenceError: If the step reports an exit its
                                       definition does not declare
            StepExecutionError: If a step lifecycle method raises
            InvalidInitialStepError: If the process has no initial step
        """
        if self.is_finished:
            return False

        if self.current_step is None:
            self.reset()

        step = self.current_step
        self.tick_count += 1
        self._call(step, "update")

        exit_point = step.reached_exit
        if exit_point is None:
            return False

        if step.definition is not None and not step.definition.has_exit(exit_point):
            error = UnknownExitReferenceError(
                f"Step {step.id} ({step.name}) reported undeclared exit '{exit_point.name}'",
                context={"process": self.name, "step_id": step.id, "exit": exit_point.name},
            )
            self.logger.error(error.message, context=error.context)
            raise error

        next_steps = self.find_next_steps(step, exit_point)
        if len(next_steps) > 1:
            error = AmbiguousRoutingError(
                f"Step {step.id} ({step.name}) has {len(next_steps)} edges for exit "
                f"'{exit_point.name}'",
                context={
                    "process": self.name,
                    "step_id": step.id,
                    "exit": exit_point.name,
                    "destinations": [s.id for s in next_steps],
                },
            )
            self.logger.error(error.message, context=error.context)
            raise error

        self._call(step, "leave")
        if self.tracer is not None:
            self.tracer.on_leave(self, step, exit_point)

        if next_steps:
            next_step = next_steps[0]
            self.current_step = next_step
            self.logger.debug(
                f"New step: {next_step.name}",
                context={
                    "process": self.name,
                    "from_step": step.id,
                    "exit": exit_point.name,
                    "to_step": next_step.id,
                },
            )
            if self.tracer is not None:
                self.tracer.on_enter(self, next_step)
            self._call(next_step, "enter")
        else:
            self.current_step = None
            self.is_finished = True
            self.logger.info(
                f"Process '{self.name}' finished",
                context={"process": self.name, "last_step": step.id, "exit": exit_point.name},
            )
            if self.tracer is not None:
                self.tracer.on_finish(self)
        return True

    # The per-iteration advance was called Update in earlier tooling
    update = tick

    def run(
        self,
        max_ticks: Optional[int] = None,
        tick_interval: float = 0.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> int:
        """
        Tick until the process finishes or max_ticks is reached.

        A step that never reports an exit stalls the process, so callers
        that need a bound pass max_ticks.

        Args:
            max_ticks: Maximum number of ticks (None for no limit)
            tick_interval: Seconds to sleep between ticks
            sleep: Sleep function (injectable for tests)

        Returns:
            Number of ticks performed
        """
        ticks = 0
        while not self.is_finished and (max_ticks is None or ticks < max_ticks):
            self.tick()
            ticks += 1
            if tick_interval > 0 and not self.is_finished:
                sleep(tick_interval)
        return ticks

    def _call(self, step: ProcessStep, method: str) -> None:
        try:
            getattr(step, method)()
        except TPMError:
            raise
        except Exception as e:
            error = StepExecutionError(
                f"Step {step.id} ({step.name}) failed in {method}(): {e}",
                context={
                    "process": self.name,
                    "step_id": step.id,
                    "method": method,
                    "exception_type": type(e).__name__,
                },
            )
            self.logger.error(error.message, context=error.context)
            raise error from e

    # ------------------------------------------------------------------
    # Snapshot
    # ------------------------------------------------------------------

    def to_data(self) -> ProcessInstanceData:
        """
        Snapshot the process structure as a serialized description.

        Returns:
            ProcessInstanceData with step types, bound parameter values,
            edges and the initial step id

        Raises:
            InvalidInitialStepError: If the process has no initial step
        """
        if self.initial_step is None:
            raise InvalidInitialStepError(
                f"Process '{self.name}' has no initial step", context={"process": self.name}
            )
        return ProcessInstanceData(
            name=self.name,
            steps=[
                StepInstanceData(
                    id=step.id,
                    type_name=step.name,
                    parameter_values=dict(step.parameter_values),
                )
                for step in self.steps
            ],
            edges=[
                EdgeData(
                    source_id=edge.source.id,
                    source_exit=edge.source_exit.name,
                    destination_id=edge.destination.id,
                )
                for edge in self.edges
            ],
            initial_step_id=self.initial_step.id,
        )

    def __repr__(self) -> str:
        current = self.current_step.id if self.current_step is not None else None
        return (
            f"TransportProcess(name='{self.name}', steps={len(self.steps)}, "
            f"edges={len(self.edges)}, state={self.state.value}, current_step={current})"
        )


@dataclass
class ProcessInstantiation:
    """
    Result of instantiating a process.

    Attributes:
        process: The process, possibly missing invalid steps/edges
        errors: Every load-time error found, in discovery order
        step_results: Per-step build results (includes soft bind failures)
    """

    process: TransportProcess
    errors: List[TPMError] = field(default_factory=list)
    step_results: List[StepBuildResult] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors

    def errors_of(self, error_type: type) -> List[TPMError]:
        return [e for e in self.errors if isinstance(e, error_type)]

    def raise_for_errors(self) -> TransportProcess:
        """
        Return the process, or raise if any load-time error was found.

        Raises:
            ProcessInstantiationError: Carrying the full error batch
        """
        if self.errors:
            raise ProcessInstantiationError(self.errors, process_name=self.process.name)
        return self.process


def instantiate_process(
    data: Union[ProcessInstanceData, Mapping[str, Any]],
    registry: Optional[StepTypeRegistry] = None,
    factory: Optional[StepFactory] = None,
    logger: Optional[StructuredLogger] = None,
    strict_required: bool = False,
    tracer: Optional[ProcessTracer] = None,
) -> ProcessInstantiation:
    """
    Rebuild a live TransportProcess from its serialized description.

    Steps that fail to build leave a gap; edges referencing them, edges with
    unknown exit names and an unresolvable initial step are reported as
    errors. All errors are collected rather than failing on the first, and
    the caller decides whether a partially valid process is usable.

    Args:
        data: ProcessInstanceData or a mapping validated into one
        registry: Step type registry (defaults to the global registry)
        factory: StepFactory to use (built from registry if omitted)
        logger: Log sink (defaults to the global structured logger)
        strict_required: Treat unbound required parameters as fatal
        tracer: Optional transition observer for the new process

    Returns:
        ProcessInstantiation with the process and the error batch

    Raises:
        ProcessDataError: If a mapping does not match the schema
    """
    log = logger or get_logger()

    if not isinstance(data, ProcessInstanceData):
        try:
            data = ProcessInstanceData.model_validate(data)
        except ValidationError as e:
            raise ProcessDataError(
                f"Invalid process description: {e.error_count()} validation error(s)",
                context={"errors": e.errors(include_url=False)},
            ) from e

    if factory is None:
        factory = StepFactory(registry=registry, logger=logger, strict_required=strict_required)

    process = TransportProcess(name=data.name, logger=logger, tracer=tracer)
    result = ProcessInstantiation(process=process)
    context = {"process": data.name}

    def report(error: TPMError) -> None:
        result.errors.append(error)
        log.error(error.message, context={**context, **error.context})

    # Steps
    for step_data in data.steps:
        if process.get_step(step_data.id) is not None:
            report(
                DuplicateStepIdError(
                    f"Duplicate step id {step_data.id} ({step_data.type_name})",
                    context={"step_id": step_data.id, "type_name": step_data.type_name},
                )
            )
            continue

        build = factory.instantiate(step_data)
        result.step_results.append(build)
        if build.error is not None:
            # already logged by the factory
            result.errors.append(build.error)
            continue
        process.add_step(build.step)

    # Edges
    for edge_data in data.edges:
        source = process.get_step(edge_data.source_id)
        destination = process.get_step(edge_data.destination_id)
        edge_context = {
            "source_id": edge_data.source_id,
            "source_exit": edge_data.source_exit,
            "destination_id": edge_data.destination_id,
        }

        if source is None or destination is None:
            missing = [
                role
                for role, step in (("source", source), ("destination", destination))
                if step is None
            ]
            report(
                DanglingEdgeReferenceError(
                    f"Edge {edge_data.source_id}.{edge_data.source_exit} -> "
                    f"{edge_data.destination_id} references unknown {' and '.join(missing)} step",
                    context={**edge_context, "missing": missing},
                )
            )
            continue

        exit_point = source.definition.get_exit(edge_data.source_exit)
        if exit_point is None:
            report(
                UnknownExitReferenceError(
                    f"Step {source.id} ({source.name}) declares no exit "
                    f"'{edge_data.source_exit}'",
                    context={
                        **edge_context,
                        "declared_exits": [e.name for e in source.definition.exits],
                    },
                )
            )
            continue

        process.add_edge(Edge(source=source, source_exit=exit_point, destination=destination))

    # Initial step
    process.initial_step = process.get_step(data.initial_step_id)
    if process.initial_step is None:
        report(
            InvalidInitialStepError(
                f"Initial step id {data.initial_step_id} does not resolve to a step",
                context={"initial_step_id": data.initial_step_id},
            )
        )

    log.info(
        f"Instantiated process '{data.name}'",
        context={
            **context,
            "steps": len(process.steps),
            "edges": len(process.edges),
            "errors": len(result.errors),
        },
    )
    return result
