"""
Unit tests for instantiate_process.

Tests that structural load errors are collected into one batch, that invalid
parts are left out of the process, and that every error is logged once.
"""

import json

import pytest

from tpm.exceptions import (
    DanglingEdgeReferenceError,
    DuplicateStepIdError,
    InvalidInitialStepError,
    ParameterBindError,
    ProcessDataError,
    ProcessInstantiationError,
    StepConstructionError,
    UnknownExitReferenceError,
    UnknownStepTypeError,
)
from tpm.orchestration.step_factory import StepFactory
from tpm.orchestration.transport_process import instantiate_process
from tpm.schemas import EdgeData, ProcessInstanceData, StepInstanceData


def read_logs(log_output):
    return [json.loads(line) for line in log_output.getvalue().splitlines()]


def wait(step_id, duration=1.0):
    return StepInstanceData(id=step_id, type_name="WaitStep", parameter_values={"Duration": duration})


class TestInstantiateProcess:
    """Tests for instantiate_process."""

    def test_valid_process(self, registry, logger):
        data = ProcessInstanceData(
            name="valid",
            steps=[wait(1), StepInstanceData(id=2, type_name="DeliverStep")],
            edges=[
                EdgeData(source_id=1, source_exit="Done", destination_id=2),
                EdgeData(source_id=2, source_exit="Failed", destination_id=1),
            ],
            initial_step_id=1,
        )

        result = instantiate_process(data, registry=registry, logger=logger)

        assert result.ok
        assert result.errors == []
        process = result.raise_for_errors()
        assert process.name == "valid"
        assert [s.id for s in process.steps] == [1, 2]
        assert len(process.edges) == 2
        assert process.initial_step is process.get_step(1)
        assert process.edges[1].source_exit.is_error is True

    def test_unknown_step_type_is_batched(self, registry, logger):
        data = ProcessInstanceData(
            steps=[wait(1), StepInstanceData(id=2, type_name="Teleport")],
            initial_step_id=1,
        )

        result = instantiate_process(data, registry=registry, logger=logger)

        assert not result.ok
        assert [type(e) for e in result.errors] == [UnknownStepTypeError]
        assert result.process.get_step(2) is None
        assert result.process.get_step(1) is not None

    def test_edges_to_missing_steps_are_dangling(self, registry, logger):
        data = ProcessInstanceData(
            steps=[wait(1), StepInstanceData(id=2, type_name="Teleport")],
            edges=[
                EdgeData(source_id=1, source_exit="Done", destination_id=2),
                EdgeData(source_id=5, source_exit="Done", destination_id=6),
            ],
            initial_step_id=1,
        )

        result = instantiate_process(data, registry=registry, logger=logger)

        dangling = result.errors_of(DanglingEdgeReferenceError)
        assert len(dangling) == 2
        assert dangling[0].context["missing"] == ["destination"]
        assert dangling[1].context["missing"] == ["source", "destination"]
        assert result.process.edges == []

    def test_unknown_exit_never_creates_edge(self, registry, logger):
        data = ProcessInstanceData(
            steps=[wait(1), wait(2)],
            edges=[EdgeData(source_id=1, source_exit="Failed", destination_id=2)],
            initial_step_id=1,
        )

        result = instantiate_process(data, registry=registry, logger=logger)

        errors = result.errors_of(UnknownExitReferenceError)
        assert len(errors) == 1
        assert errors[0].context["declared_exits"] == ["Done"]
        assert result.process.edges == []

    def test_invalid_initial_step(self, registry, logger):
        result = instantiate_process(
            ProcessInstanceData(steps=[wait(1)], initial_step_id=99), registry=registry, logger=logger
        )

        assert [type(e) for e in result.errors] == [InvalidInitialStepError]
        assert result.process.initial_step is None

    def test_duplicate_step_id_drops_later_step(self, registry, logger):
        data = ProcessInstanceData(
            steps=[wait(1, 2.0), StepInstanceData(id=1, type_name="DeliverStep")],
            initial_step_id=1,
        )

        result = instantiate_process(data, registry=registry, logger=logger)

        assert [type(e) for e in result.errors] == [DuplicateStepIdError]
        assert len(result.process.steps) == 1
        assert result.process.get_step(1).duration == 2.0

    def test_all_errors_collected_together(self, registry, logger, log_output):
        registry.register("Broken", factory=lambda: 1 / 0)
        data = ProcessInstanceData(
            steps=[
                wait(1),
                StepInstanceData(id=2, type_name="Teleport"),
                StepInstanceData(id=3, type_name="Broken"),
            ],
            edges=[
                EdgeData(source_id=1, source_exit="Done", destination_id=2),
                EdgeData(source_id=1, source_exit="Nope", destination_id=1),
            ],
            initial_step_id=4,
        )

        result = instantiate_process(data, registry=registry, logger=logger)

        assert [type(e) for e in result.errors] == [
            UnknownStepTypeError,
            StepConstructionError,
            DanglingEdgeReferenceError,
            UnknownExitReferenceError,
            InvalidInitialStepError,
        ]
        error_logs = [r for r in read_logs(log_output) if r["level"] == "ERROR"]
        assert len(error_logs) == len(result.errors)

    def test_raise_for_errors_carries_batch(self, registry, logger):
        result = instantiate_process(
            ProcessInstanceData(name="broken", steps=[wait(1)], initial_step_id=2),
            registry=registry,
            logger=logger,
        )

        with pytest.raises(ProcessInstantiationError) as exc_info:
            result.raise_for_errors()

        assert exc_info.value.process_name == "broken"
        assert len(exc_info.value.errors) == 1
        assert isinstance(exc_info.value.errors[0], InvalidInitialStepError)

    def test_bind_failures_are_not_load_errors(self, registry, logger):
        result = instantiate_process(
            ProcessInstanceData(steps=[wait(1, "soon")], initial_step_id=1),
            registry=registry,
            logger=logger,
        )

        assert result.ok
        assert len(result.step_results[0].bind_failures) == 1

    def test_strict_required_makes_bind_failures_fatal(self, registry, logger):
        data = ProcessInstanceData(
            steps=[StepInstanceData(id=1, type_name="WaitStep")], initial_step_id=1
        )

        result = instantiate_process(data, registry=registry, logger=logger, strict_required=True)

        assert [type(e) for e in result.errors] == [ParameterBindError, InvalidInitialStepError]
        assert result.process.steps == []

    def test_explicit_factory_is_used(self, registry, logger):
        factory = StepFactory(registry, logger=logger, strict_required=True)
        data = ProcessInstanceData(
            steps=[StepInstanceData(id=1, type_name="WaitStep")], initial_step_id=1
        )

        result = instantiate_process(data, factory=factory, logger=logger)

        assert not result.ok

    def test_accepts_mapping_with_legacy_names(self, registry, logger):
        result = instantiate_process(
            {
                "Name": "legacy",
                "InitialStateId": 10,
                "Steps": [{"Id": 10, "DefinitionName": "WaitStep", "ParameterValues": {"Duration": 0}}],
                "Edges": [],
            },
            registry=registry,
            logger=logger,
        )

        assert result.ok
        assert result.process.name == "legacy"
        assert result.process.initial_step.id == 10

    def test_invalid_mapping_raises_process_data_error(self, registry, logger):
        with pytest.raises(ProcessDataError):
            instantiate_process({"steps": []}, registry=registry, logger=logger)
