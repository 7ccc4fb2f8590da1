"""
Registry of step types.

This module provides centralized registration and discovery of the step
types a transport process can be built from.
"""

from tpm.registries.step_registry import (
    StepTypeDefinition,
    StepTypeRegistry,
    get_inferred_parameters,
    get_step_registry,
    load_step_plugins,
    register_default_steps,
    reset_step_registry,
)

__all__ = [
    "StepTypeDefinition",
    "StepTypeRegistry",
    "get_inferred_parameters",
    "get_step_registry",
    "load_step_plugins",
    "register_default_steps",
    "reset_step_registry",
]
