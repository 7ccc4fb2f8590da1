"""
Unit tests for TransportProcess.

Tests reset, tick-driven routing, cycles, finishing, ambiguous routing,
error wrapping, run(), order parameters, tracing and snapshots.
"""

import json

import pytest

from tpm.definitions import DEFAULT_EXIT, ExitPointDefinition
from tpm.exceptions import (
    AmbiguousRoutingError,
    InvalidInitialStepError,
    MissingOrderParameterError,
    StepExecutionError,
    UnknownExitReferenceError,
)
from tpm.orchestration.tracing import TransitionTracer
from tpm.orchestration.transport_process import (
    Edge,
    ProcessState,
    TransportProcess,
    instantiate_process,
)


def read_logs(log_output):
    return [json.loads(line) for line in log_output.getvalue().splitlines()]


def build(registry, logger, steps, edges, initial_step_id=1, **kwargs):
    data = {
        "name": "test-process",
        "initial_step_id": initial_step_id,
        "steps": [
            {"id": step_id, "type_name": type_name, "parameter_values": params}
            for step_id, type_name, params in steps
        ],
        "edges": [
            {"source_id": source, "source_exit": exit_name, "destination_id": destination}
            for source, exit_name, destination in edges
        ],
    }
    return instantiate_process(data, registry=registry, logger=logger, **kwargs).raise_for_errors()


class TestReset:
    """Tests for TransportProcess.reset and restart."""

    def test_reset_sets_initial_step(self, registry, logger):
        process = build(registry, logger, [(1, "ScriptedStep", {}), (2, "ScriptedStep", {})], [(1, "Done", 2)])
        assert process.state is ProcessState.UNSTARTED

        process.reset()

        assert process.current_step is process.get_step(1)
        assert process.state is ProcessState.RUNNING
        assert process.get_step(1).calls == ["reset"]

    def test_reset_is_idempotent_at_initial_step(self, registry, logger):
        process = build(registry, logger, [(1, "ScriptedStep", {})], [])
        process.reset()
        current = process.current_step

        process.reset()
        process.reset()

        assert process.current_step is current
        assert process.get_step(1).calls == ["reset", "reset", "reset"]

    def test_reset_without_initial_step_raises(self, logger):
        process = TransportProcess("empty", logger=logger)
        with pytest.raises(InvalidInitialStepError):
            process.reset()

    def test_reset_after_finish_is_noop(self, registry, logger):
        process = build(registry, logger, [(1, "WaitStep", {"Duration": 0})], [])
        process.tick()
        assert process.is_finished

        process.reset()

        assert process.is_finished
        assert process.current_step is None

    def test_restart_after_finish(self, registry, logger):
        process = build(registry, logger, [(1, "WaitStep", {"Duration": 0})], [])
        process.run(max_ticks=5)
        assert process.is_finished

        process.restart()

        assert not process.is_finished
        assert process.current_step is process.initial_step


class TestTick:
    """Tests for TransportProcess.tick routing."""

    def test_tick_resets_lazily_and_stays_without_exit(self, registry, logger):
        process = build(registry, logger, [(1, "ScriptedStep", {})], [])

        assert process.tick() is False
        assert process.current_step is process.get_step(1)
        assert process.get_step(1).calls == ["reset", "update"]
        assert process.tick_count == 1

    def test_single_edge_moves_to_destination(self, registry, logger):
        process = build(registry, logger, [(1, "ScriptedStep", {}), (2, "ScriptedStep", {})], [(1, "Done", 2)])
        first, second = process.get_step(1), process.get_step(2)
        first.script = ["Done"]

        assert process.tick() is True

        assert process.current_step is second
        assert first.calls == ["reset", "update", "leave"]
        assert second.calls == ["enter"]
        assert not process.is_finished

    def test_routes_by_reported_exit(self, registry, logger):
        process = build(
            registry,
            logger,
            [(1, "ScriptedStep", {}), (2, "ScriptedStep", {}), (3, "ScriptedStep", {})],
            [(1, "Done", 2), (1, "Failed", 3)],
        )
        process.get_step(1).script = [None, "Failed"]

        process.tick()
        assert process.current_step.id == 1
        process.tick()
        assert process.current_step.id == 3

    def test_two_step_cycle_returns_to_first_step(self, registry, logger):
        process = build(
            registry,
            logger,
            [(1, "WaitStep", {"Duration": 0}), (2, "ScriptedStep", {})],
            [(1, "Done", 2), (2, "Done", 1), (2, "Failed", 2)],
        )
        process.get_step(2).script = [None, "Failed", None, "Done"]

        process.tick()
        assert process.current_step.id == 2

        for _ in range(4):
            process.tick()

        assert process.current_step.id == 1
        assert process.is_finished is False
        assert process.get_step(2).calls.count("enter") == 2

    def test_exit_without_edge_finishes(self, registry, logger):
        process = build(registry, logger, [(1, "ScriptedStep", {})], [])
        step = process.get_step(1)
        step.script = ["Done"]

        assert process.tick() is True

        assert process.is_finished is True
        assert process.current_step is None
        assert process.state is ProcessState.FINISHED
        assert step.calls[-1] == "leave"

    def test_tick_after_finish_does_nothing(self, registry, logger):
        process = build(registry, logger, [(1, "ScriptedStep", {})], [])
        process.get_step(1).script = ["Done"]
        process.tick()
        calls = list(process.get_step(1).calls)

        assert process.tick() is False
        assert process.get_step(1).calls == calls

    def test_ambiguous_routing_raises_and_keeps_current(self, registry, logger, log_output):
        process = build(
            registry,
            logger,
            [(1, "ScriptedStep", {}), (2, "ScriptedStep", {}), (3, "ScriptedStep", {})],
            [(1, "Done", 2), (1, "Done", 3)],
        )
        source = process.get_step(1)
        source.script = ["Done"]

        with pytest.raises(AmbiguousRoutingError) as exc_info:
            process.tick()

        assert process.current_step is source
        assert not process.is_finished
        assert "leave" not in source.calls
        assert exc_info.value.context["destinations"] == [2, 3]
        errors = [r for r in read_logs(log_output) if r["level"] == "ERROR"]
        assert len(errors) == 1

    def test_undeclared_exit_raises(self, registry, logger):
        process = build(registry, logger, [(1, "ScriptedStep", {})], [])
        step = process.get_step(1)
        process.reset()
        step.update = lambda: setattr(step, "reached_exit", ExitPointDefinition("Teleported"))

        with pytest.raises(UnknownExitReferenceError):
            process.tick()
        assert process.current_step is step

    def test_step_exception_is_wrapped(self, registry, logger):
        process = build(registry, logger, [(1, "ScriptedStep", {})], [])
        step = process.get_step(1)
        process.reset()

        def explode():
            raise ZeroDivisionError("boom")

        step.update = explode

        with pytest.raises(StepExecutionError) as exc_info:
            process.tick()
        assert isinstance(exc_info.value.__cause__, ZeroDivisionError)
        assert exc_info.value.context["method"] == "update"
        assert process.current_step is step

    def test_missing_order_parameter_propagates(self, registry, logger):
        process = build(registry, logger, [(1, "DeliverStep", {"MaxDuration": 0})], [])

        with pytest.raises(MissingOrderParameterError):
            process.tick()

    def test_update_is_alias_of_tick(self):
        assert TransportProcess.update is TransportProcess.tick


class TestRun:
    """Tests for TransportProcess.run."""

    def test_run_until_finished(self, registry, logger):
        process = build(registry, logger, [(1, "ScriptedStep", {}), (2, "ScriptedStep", {})], [(1, "Done", 2)])
        process.get_step(1).script = [None, "Done"]
        process.get_step(2).script = ["Done"]

        ticks = process.run()

        assert ticks == 3
        assert process.is_finished

    def test_run_respects_max_ticks(self, registry, logger):
        process = build(registry, logger, [(1, "ScriptedStep", {})], [])

        assert process.run(max_ticks=4) == 4
        assert not process.is_finished

    def test_run_sleeps_between_ticks(self, registry, logger):
        process = build(registry, logger, [(1, "ScriptedStep", {})], [])
        process.get_step(1).script = [None, None, "Done"]
        sleeps = []

        process.run(tick_interval=0.25, sleep=sleeps.append)

        assert sleeps == [0.25, 0.25]


class TestProgressAndParameters:
    """Tests for progress and order parameters."""

    def test_progress_by_state(self, registry, logger):
        process = build(registry, logger, [(1, "ScriptedStep", {})], [])
        assert process.progress == 0.0

        process.reset()
        assert process.progress == 0.5

        process.get_step(1).script = ["Done"]
        process.tick()
        assert process.progress == 1.0

    def test_inferred_parameters_deduplicated(self, registry, logger):
        process = build(
            registry,
            logger,
            [(1, "DeliverStep", {}), (2, "OrderStep", {}), (3, "WaitStep", {"Duration": 1})],
            [],
        )

        assert [p.name for p in process.get_inferred_parameters()] == ["DeliverDestination"]
        assert process.missing_order_parameters() == ["DeliverDestination"]

        process.set_parameter("DeliverDestination", 10001010)
        assert process.missing_order_parameters() == []


class TestGraphConstruction:
    """Tests for building graphs by hand."""

    def test_add_none_is_ignored(self):
        process = TransportProcess()
        process.add_step(None)
        process.add_edge(None)

        assert process.steps == []
        assert process.edges == []

    def test_connect_and_find_next_steps(self, registry, logger):
        process = build(registry, logger, [(1, "ScriptedStep", {}), (2, "ScriptedStep", {})], [])
        first, second = process.get_step(1), process.get_step(2)

        edge = process.connect(first, "Failed", second)

        assert isinstance(edge, Edge)
        assert process.find_next_steps(first, ExitPointDefinition("Failed")) == [second]
        assert process.find_next_steps(first, DEFAULT_EXIT) == []
        assert process.find_next_steps(second, ExitPointDefinition("Failed")) == []

    def test_connect_unknown_exit_raises(self, registry, logger):
        process = build(registry, logger, [(1, "WaitStep", {"Duration": 1})], [])
        step = process.get_step(1)

        with pytest.raises(UnknownExitReferenceError):
            process.connect(step, "Failed", step)
        assert process.edges == []

    def test_find_next_steps_requires_exit(self, registry, logger):
        process = build(registry, logger, [(1, "ScriptedStep", {})], [])
        with pytest.raises(ValueError):
            process.find_next_steps(process.get_step(1), None)


class TestTracing:
    """Tests for tracer notifications."""

    def test_tracer_records_path_and_exits(self, registry, logger):
        tracer = TransitionTracer(clock=lambda: 0.0)
        process = build(
            registry,
            logger,
            [(1, "ScriptedStep", {}), (2, "ScriptedStep", {})],
            [(1, "Done", 2), (2, "Failed", 1)],
            tracer=tracer,
        )
        process.get_step(1).script = ["Done", "Failed"]
        process.get_step(2).script = ["Failed"]

        process.run(max_ticks=10)

        assert tracer.get_path() == [1, 2, 1]
        assert tracer.get_exits() == ["Done", "Failed", "Failed"]
        assert tracer.last()["event"] == "finish"
        leave_failed = [r for r in tracer.records if r.get("exit") == "Failed"][0]
        assert leave_failed["is_error"] is True

    def test_clear(self):
        tracer = TransitionTracer()
        tracer.records.append({"event": "finish"})
        tracer.clear()
        assert tracer.last() is None


class TestSnapshot:
    """Tests for TransportProcess.to_data."""

    def test_to_data_captures_structure(self, registry, logger):
        process = build(
            registry,
            logger,
            [(1, "WaitStep", {"Duration": 1.5}), (2, "DeliverStep", {"FailureRate": 0.2})],
            [(1, "Done", 2), (2, "Failed", 1)],
        )

        data = process.to_data()

        assert data.name == "test-process"
        assert data.initial_step_id == 1
        assert [(s.id, s.type_name) for s in data.steps] == [(1, "WaitStep"), (2, "DeliverStep")]
        assert data.get_step(2).parameter_values == {"FailureRate": 0.2}
        assert [(e.source_id, e.source_exit, e.destination_id) for e in data.edges] == [
            (1, "Done", 2),
            (2, "Failed", 1),
        ]

    def test_to_data_without_initial_step_raises(self):
        with pytest.raises(InvalidInitialStepError):
            TransportProcess("empty").to_data()

    def test_repr(self, registry, logger):
        process = build(registry, logger, [(1, "ScriptedStep", {})], [])
        assert "state=unstarted" in repr(process)
