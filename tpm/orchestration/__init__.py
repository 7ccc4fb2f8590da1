"""
Orchestration layer for transport process execution.

This module provides the core abstractions for tick-driven process execution:
- Step: Protocol defining the runtime contract of a process step
- ProcessStep: Abstract base class with parameter binding and exit helpers
- StepFactory: Builds live steps from serialized step descriptions
- TransportProcess: Process graph and execution engine
- instantiate_process: Rebuilds a process and batches load errors
- Transport Steps: Built-in WaitStep and DeliverStep
- Tracing: Optional observers of process transitions
"""

from tpm.orchestration.step import Step
from tpm.orchestration.base_step import ProcessStep, Stopwatch
from tpm.orchestration.step_factory import StepBuildResult, StepFactory
from tpm.orchestration.tracing import ProcessTracer, TransitionTracer
from tpm.orchestration.transport_process import (
    Edge,
    ProcessInstantiation,
    ProcessState,
    TransportProcess,
    instantiate_process,
)
from tpm.orchestration.transport_steps import (
    BUILTIN_STEPS,
    FAILED_EXIT,
    DeliverStep,
    WaitStep,
)

__all__ = [
    "Step",
    "ProcessStep",
    "Stopwatch",
    "StepBuildResult",
    "StepFactory",
    "ProcessTracer",
    "TransitionTracer",
    "Edge",
    "ProcessInstantiation",
    "ProcessState",
    "TransportProcess",
    "instantiate_process",
    "BUILTIN_STEPS",
    "FAILED_EXIT",
    "DeliverStep",
    "WaitStep",
]
