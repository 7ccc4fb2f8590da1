"""
Step Factory - Builds live steps from serialized step descriptions.

The factory resolves the registered step type, calls its construction handle,
assigns the process-unique id and binds parameter values. It never raises for
unknown types, construction failures or bind failures; those are returned in
a StepBuildResult and routed through the log sink exactly once.
"""

from dataclasses import dataclass, field
from typing import Any, List, Mapping, Optional, Union

from pydantic import ValidationError

from tpm.definitions import ParameterBindResult
from tpm.exceptions import (
    ParameterBindError,
    ProcessDataError,
    StepConstructionError,
    TPMError,
    UnknownStepTypeError,
)
from tpm.logger import StructuredLogger, get_logger
from tpm.orchestration.base_step import ProcessStep
from tpm.registries.step_registry import StepTypeRegistry, get_step_registry
from tpm.schemas import StepInstanceData


@dataclass
class StepBuildResult:
    """
    Outcome of instantiating one serialized step.

    Attributes:
        step_id: Id from the serialized description
        step: The live step, or None when a fatal error occurred
        error: Fatal error (unknown type, construction failure, strict bind)
        bind_failures: Soft, per-parameter bind failures (already logged)
    """

    step_id: int
    step: Optional[ProcessStep] = None
    error: Optional[TPMError] = None
    bind_failures: List[ParameterBindError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.step is not None and self.error is None


class StepFactory:
    """
    Reconstructs typed, parameter-bound steps from StepInstanceData.

    Example:
        factory = StepFactory(registry)
        result = factory.instantiate(StepInstanceData(id=1, type_name="WaitStep",
                                                      parameter_values={"Duration": 2.0}))
        if result.ok:
            step = result.step
    """

    def __init__(
        self,
        registry: Optional[StepTypeRegistry] = None,
        logger: Optional[StructuredLogger] = None,
        strict_required: bool = False,
    ):
        """
        Initialize the factory.

        Args:
            registry: Step type registry (defaults to the global registry)
            logger: Log sink (defaults to the global structured logger)
            strict_required: Promote bind failures and missing values of
                             required STANDARD parameters to fatal errors
        """
        self.registry = registry if registry is not None else get_step_registry()
        self._logger = logger
        self.strict_required = strict_required

    @property
    def logger(self) -> StructuredLogger:
        return self._logger or get_logger()

    def instantiate(
        self, step_data: Union[StepInstanceData, Mapping[str, Any]]
    ) -> StepBuildResult:
        """
        Build a live step from its serialized description.

        Args:
            step_data: StepInstanceData (or a mapping validated into one)

        Returns:
            StepBuildResult with either a step or a fatal error

        Raises:
            ProcessDataError: If a mapping does not match the step schema
        """
        if not isinstance(step_data, StepInstanceData):
            try:
                step_data = StepInstanceData.model_validate(step_data)
            except ValidationError as e:
                raise ProcessDataError(
                    f"Invalid step description: {e.error_count()} validation error(s)",
                    context={"errors": e.errors(include_url=False)},
                ) from e

        result = StepBuildResult(step_id=step_data.id)
        context = {"step_id": step_data.id, "type_name": step_data.type_name}

        definition = self.registry.get(step_data.type_name)
        if definition is None:
            result.error = UnknownStepTypeError(step_data.type_name, step_id=step_data.id)
            self.logger.error(result.error.message, context=context)
            return result

        try:
            step = definition.factory()
            if not isinstance(step, ProcessStep):
                raise TypeError(
                    f"construction handle returned {type(step).__name__}, expected a ProcessStep"
                )
        except Exception as e:
            error = StepConstructionError(
                f"Failed to construct step {step_data.id} of type '{step_data.type_name}'",
                context={**context, "exception_type": type(e).__name__, "exception": str(e)},
            )
            error.__cause__ = e
            result.error = error
            self.logger.error(error.message, context=error.context)
            return result

        step.id = step_data.id
        step.definition = definition

        bind_results = step.bind_parameters(step_data.parameter_values)
        for bind_result in bind_results:
            if not bind_result.success:
                failure = self._bind_failure(step, bind_result)
                result.bind_failures.append(failure)
                self.logger.warning(failure.message, context=failure.context)

        if self.strict_required:
            fatal = self._required_parameter_error(step, step_data, bind_results)
            if fatal is not None:
                result.error = fatal
                self.logger.error(fatal.message, context=fatal.context)
                return result
        else:
            self._warn_missing_required(step, step_data)

        result.step = step
        return result

    def _bind_failure(self, step: ProcessStep, bind_result: ParameterBindResult) -> ParameterBindError:
        return ParameterBindError(
            f"Could not bind parameter '{bind_result.name}' of step {step.id} "
            f"({step.name}): {bind_result.error}; keeping default",
            parameter_name=bind_result.name,
            step_id=step.id,
            context={"type_name": step.name},
        )

    def _missing_required(self, step: ProcessStep, step_data: StepInstanceData) -> List[str]:
        return [
            p.name
            for p in step.definition.required_parameters
            if p.name not in step_data.parameter_values
        ]

    def _warn_missing_required(self, step: ProcessStep, step_data: StepInstanceData) -> None:
        for name in self._missing_required(step, step_data):
            self.logger.warning(
                f"Required parameter '{name}' of step {step.id} ({step.name}) is not set; keeping default",
                context={"step_id": step.id, "type_name": step.name, "parameter": name},
            )

    def _required_parameter_error(
        self,
        step: ProcessStep,
        step_data: StepInstanceData,
        bind_results: List[ParameterBindResult],
    ) -> Optional[ParameterBindError]:
        required = {p.name for p in step.definition.required_parameters}
        failed = [r.name for r in bind_results if not r.success and r.name in required]
        missing = self._missing_required(step, step_data)
        names = failed + [n for n in missing if n not in failed]
        if not names:
            return None
        return ParameterBindError(
            f"Required parameter(s) {names} of step {step.id} ({step.name}) could not be bound",
            parameter_name=names[0],
            step_id=step.id,
            context={"type_name": step.name, "parameters": names},
        )
