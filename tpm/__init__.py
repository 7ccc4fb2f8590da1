"""
运输流程状态机 (Transport Process State Machine)

Describes logistics transport processes as graphs of typed steps connected by
exit-point-keyed edges, rebuilds them from serialized descriptions and drives
them one tick at a time.
"""

from tpm.version import __version__, __version_info__, get_version, get_version_info

from tpm.definitions import (
    DEFAULT_EXIT,
    ExitPointDefinition,
    ParameterDefinition,
    ParameterRole,
    ParameterType,
)
from tpm.registries import (
    StepTypeDefinition,
    StepTypeRegistry,
    get_step_registry,
    reset_step_registry,
)
from tpm.orchestration import (
    ProcessStep,
    ProcessInstantiation,
    StepFactory,
    TransportProcess,
    instantiate_process,
)
from tpm.schemas import EdgeData, ProcessInstanceData, StepInstanceData

__all__ = [
    # Version information
    "__version__",
    "__version_info__",
    "get_version",
    "get_version_info",
    # Metadata
    "DEFAULT_EXIT",
    "ExitPointDefinition",
    "ParameterDefinition",
    "ParameterRole",
    "ParameterType",
    # Registry
    "StepTypeDefinition",
    "StepTypeRegistry",
    "get_step_registry",
    "reset_step_registry",
    # Runtime
    "ProcessStep",
    "ProcessInstantiation",
    "StepFactory",
    "TransportProcess",
    "instantiate_process",
    # Serialized descriptions
    "EdgeData",
    "ProcessInstanceData",
    "StepInstanceData",
]
