"""
Step Type Registry - Central registry for step type definitions.

This module provides the StepTypeRegistry that maps a step type name to its
metadata (parameters, order-inferred parameters, exit points) and to the
construction handle used by the StepFactory to create live step instances.

The registry is populated once at application start and is read-only while
processes execute, so it needs no locking.
"""

import importlib
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

from tpm.definitions import (
    DEFAULT_EXIT,
    ExitPointDefinition,
    ParameterDefinition,
    ParameterRole,
    dedupe_by_name,
    ensure_unique_names,
)
from tpm.exceptions import UnknownStepTypeError
from tpm.logger import StructuredLogger, get_logger


@dataclass(frozen=True)
class StepTypeDefinition:
    """
    Registered metadata of a step type.

    Attributes:
        type_name: Unique step type name (e.g., "WaitStep")
        parameters: STANDARD parameters configured per step instance
        inferred_order_parameters: Parameters the enclosing order must supply
        exits: Exit points a step of this type can report
        factory: Zero-argument construction handle returning a new step
    """

    type_name: str
    parameters: List[ParameterDefinition] = field(default_factory=list)
    inferred_order_parameters: List[ParameterDefinition] = field(default_factory=list)
    exits: List[ExitPointDefinition] = field(default_factory=lambda: [DEFAULT_EXIT])
    factory: Optional[Callable[[], Any]] = field(default=None, compare=False, repr=False)

    def get_exit(self, name: str) -> Optional[ExitPointDefinition]:
        """Return the declared exit with this name, or None."""
        for exit_point in self.exits:
            if exit_point.name == name:
                return exit_point
        return None

    def has_exit(self, exit_point: ExitPointDefinition) -> bool:
        return exit_point in self.exits

    def get_parameter(self, name: str) -> Optional[ParameterDefinition]:
        """Return the declared parameter (either role) with this name, or None."""
        for parameter in self.all_parameters:
            if parameter.name == name:
                return parameter
        return None

    @property
    def all_parameters(self) -> List[ParameterDefinition]:
        return list(self.parameters) + list(self.inferred_order_parameters)

    @property
    def required_parameters(self) -> List[ParameterDefinition]:
        return [p for p in self.parameters if not p.is_optional]


def get_inferred_parameters(definitions: Iterable[StepTypeDefinition]) -> List[ParameterDefinition]:
    """
    Collect the parameters a containing order must supply.

    Flattens the inferred_order_parameters of every definition and keeps the
    first occurrence of each parameter name, so a parameter declared by many
    step types is reported exactly once.

    Args:
        definitions: Step type definitions, typically one per step of a process
                     (None entries are skipped)

    Returns:
        De-duplicated list of ParameterDefinition in first-occurrence order
    """
    return dedupe_by_name(
        parameter
        for definition in definitions
        if definition is not None
        for parameter in definition.inferred_order_parameters
    )


class StepTypeRegistry:
    """
    Registry for step type definitions.

    The registry:
    1. Stores step type definitions by name (last writer wins)
    2. Builds definitions from step classes that declare their capabilities
    3. Resolves type names for the StepFactory
    4. Computes the order parameters required by a set of step types

    Example:
        registry = StepTypeRegistry()
        registry.register_step(WaitStep)

        definition = registry.lookup("WaitStep")
        step = definition.factory()
    """

    def __init__(self, logger: Optional[StructuredLogger] = None):
        """
        Initialize an empty registry.

        Args:
            logger: Log sink (defaults to the global structured logger)
        """
        self._definitions: Dict[str, StepTypeDefinition] = {}
        self._logger = logger

    @property
    def logger(self) -> StructuredLogger:
        return self._logger or get_logger()

    def register(
        self,
        type_name: str,
        parameters: Sequence[ParameterDefinition] = (),
        inferred_order_parameters: Sequence[ParameterDefinition] = (),
        exits: Sequence[ExitPointDefinition] = (),
        factory: Optional[Callable[[], Any]] = None,
    ) -> StepTypeDefinition:
        """
        Register (or overwrite) a step type.

        Re-registering an existing name replaces the previous entry; this is
        logged at WARNING level but is not an error.

        Args:
            type_name: Unique step type name
            parameters: STANDARD parameter definitions
            inferred_order_parameters: INFERRED_FOR_ORDER parameter definitions
            exits: Exit point definitions; an empty list means the type only
                   has the default "Done" exit
            factory: Zero-argument callable that constructs a step instance

        Returns:
            The stored StepTypeDefinition

        Raises:
            ValueError: If the name is empty, names within a list repeat,
                        or a parameter is declared with the wrong role
            TypeError: If factory is not callable
        """
        if not type_name:
            raise ValueError("Step type name cannot be empty")

        if factory is None or not callable(factory):
            raise TypeError(f"Step type '{type_name}' factory must be callable, got {type(factory)}")

        parameters = list(parameters)
        inferred = list(inferred_order_parameters)
        exits = list(exits) or [DEFAULT_EXIT]

        ensure_unique_names(parameters, "parameter", type_name)
        ensure_unique_names(inferred, "inferred order parameter", type_name)
        ensure_unique_names(exits, "exit point", type_name)

        for parameter in parameters:
            if parameter.role is not ParameterRole.STANDARD:
                raise ValueError(
                    f"Step type '{type_name}' parameter '{parameter.name}' must have role STANDARD"
                )
        for parameter in inferred:
            if parameter.role is not ParameterRole.INFERRED_FOR_ORDER:
                raise ValueError(
                    f"Step type '{type_name}' parameter '{parameter.name}' "
                    f"must have role INFERRED_FOR_ORDER"
                )

        if type_name in self._definitions:
            self.logger.warning(
                f"Step type '{type_name}' is already registered, overwriting",
                context={"type_name": type_name},
            )

        definition = StepTypeDefinition(
            type_name=type_name,
            parameters=parameters,
            inferred_order_parameters=inferred,
            exits=exits,
            factory=factory,
        )
        self._definitions[type_name] = definition

        self.logger.debug(
            f"Registered step type '{type_name}'",
            context={
                "parameters": [p.name for p in parameters],
                "inferred_order_parameters": [p.name for p in inferred],
                "exits": [e.name for e in exits],
            },
        )
        return definition

    def register_step(self, step_class: type, type_name: Optional[str] = None) -> StepTypeDefinition:
        """
        Register a step class from its capability declaration.

        The class declares `parameters` (both roles, split here) and `exits`
        as class attributes; the class itself is the construction handle.

        Args:
            step_class: Step implementation class
            type_name: Name to register under (defaults to the class's
                       `type_name` attribute, then to the class name)

        Returns:
            The stored StepTypeDefinition
        """
        name = type_name or getattr(step_class, "type_name", None) or step_class.__name__
        declared = list(getattr(step_class, "parameters", []) or [])
        return self.register(
            name,
            parameters=[p for p in declared if p.role is ParameterRole.STANDARD],
            inferred_order_parameters=[p for p in declared if p.role is ParameterRole.INFERRED_FOR_ORDER],
            exits=list(getattr(step_class, "exits", []) or []),
            factory=step_class,
        )

    def lookup(self, type_name: str) -> StepTypeDefinition:
        """
        Retrieve a step type definition by name.

        Args:
            type_name: Step type name

        Returns:
            The registered StepTypeDefinition

        Raises:
            UnknownStepTypeError: If the name is not registered
        """
        definition = self._definitions.get(type_name)
        if definition is None:
            raise UnknownStepTypeError(
                type_name, context={"available": sorted(self._definitions)}
            )
        return definition

    def get(self, type_name: str) -> Optional[StepTypeDefinition]:
        return self._definitions.get(type_name)

    def has(self, type_name: str) -> bool:
        return type_name in self._definitions

    def list_all(self) -> List[str]:
        """List registered step type names in registration order."""
        return list(self._definitions.keys())

    def definitions(self) -> List[StepTypeDefinition]:
        return list(self._definitions.values())

    def unregister(self, type_name: str) -> None:
        """
        Remove a step type from the registry.

        Raises:
            UnknownStepTypeError: If the name is not registered
        """
        if type_name not in self._definitions:
            raise UnknownStepTypeError(type_name)
        del self._definitions[type_name]
        self.logger.info(f"Unregistered step type '{type_name}'")

    @staticmethod
    def get_inferred_parameters(
        definitions: Iterable[StepTypeDefinition],
    ) -> List[ParameterDefinition]:
        return get_inferred_parameters(definitions)

    def __contains__(self, type_name: object) -> bool:
        return type_name in self._definitions

    def __len__(self) -> int:
        return len(self._definitions)

    def __repr__(self) -> str:
        return f"StepTypeRegistry(types={self.list_all()})"


def register_default_steps(registry: StepTypeRegistry) -> None:
    """
    Register the built-in transport step library.

    Args:
        registry: Registry to populate
    """
    from tpm.orchestration.transport_steps import BUILTIN_STEPS, LEGACY_STEP_NAMES

    for step_class in BUILTIN_STEPS:
        registry.register_step(step_class)
    for legacy_name, step_class in LEGACY_STEP_NAMES.items():
        registry.register_step(step_class, type_name=legacy_name)


def load_step_plugins(registry: StepTypeRegistry, module_names: Iterable[str]) -> List[str]:
    """
    Import step library modules and let them register their step types.

    Each module must expose a `register_steps(registry)` function.

    Args:
        registry: Registry to populate
        module_names: Dotted module paths

    Returns:
        Names of the modules that were loaded

    Raises:
        ImportError: If a module cannot be imported
        AttributeError: If a module has no register_steps function
    """
    loaded = []
    for module_name in module_names:
        module = importlib.import_module(module_name)
        register = getattr(module, "register_steps", None)
        if not callable(register):
            raise AttributeError(
                f"Step plugin module '{module_name}' does not define register_steps(registry)"
            )
        register(registry)
        loaded.append(module_name)
        registry.logger.info(f"Loaded step plugin '{module_name}'")
    return loaded


# Global registry instance
_global_step_registry: Optional[StepTypeRegistry] = None


def get_step_registry() -> StepTypeRegistry:
    """
    Get or create the process-wide step type registry.

    The registry is created on first use with the built-in step library
    registered.

    Returns:
        Global StepTypeRegistry instance
    """
    global _global_step_registry

    if _global_step_registry is None:
        _global_step_registry = StepTypeRegistry()
        register_default_steps(_global_step_registry)

    return _global_step_registry


def reset_step_registry() -> None:
    """
    Reset the global step type registry.

    Useful for testing to ensure clean state.
    """
    global _global_step_registry
    _global_step_registry = None
