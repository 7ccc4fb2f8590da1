"""
Demo of the transport process engine.

This script demonstrates:
1. Loading a process description and running it tick by tick
2. Registering a custom step type and wiring it into a process
"""

import time
from pathlib import Path

from tpm.definitions import DEFAULT_EXIT, ExitPointDefinition, ParameterDefinition, ParameterType
from tpm.orchestration import ProcessStep, TransitionTracer, instantiate_process
from tpm.registries import get_step_registry
from tpm.storage import load_process_data


def demo_deliver_process():
    """Run the deliver-with-retry process from the YAML description."""
    print("\n" + "=" * 80)
    print("DEMO 1: Deliver With Retry")
    print("=" * 80)

    data = load_process_data(Path(__file__).parent / "deliver_process.yaml")
    tracer = TransitionTracer()
    process = instantiate_process(data, tracer=tracer).raise_for_errors()

    print(f"\nProcess: {process.name}")
    print(f"Order parameters: {[p.name for p in process.get_inferred_parameters()]}")

    process.set_parameter("DeliverDestination", 10001010)
    while not process.is_finished:
        process.tick()
        time.sleep(0.1)

    print(f"Path: {tracer.get_path()}")
    print(f"Exits: {tracer.get_exits()}")


class CountdownStep(ProcessStep):
    """Exits after a number of ticks; "Aborted" when the count is zero."""

    type_name = "CountdownStep"
    parameters = [ParameterDefinition("Ticks", ParameterType.INT, is_optional=False)]
    exits = [DEFAULT_EXIT, ExitPointDefinition("Aborted", is_error=True)]

    def __init__(self):
        super().__init__()
        self.ticks = 0
        self.remaining = 0

    def assign_parameter(self, name, value):
        if name == "Ticks":
            self.ticks = value
        else:
            super().assign_parameter(name, value)

    def enter(self):
        self.reset()

    def update(self):
        if self.ticks == 0:
            self.reached_exit = self.exit_point("Aborted")
            return
        self.remaining -= 1
        if self.remaining <= 0:
            self.reached_exit = self.exit_point("Done")

    def leave(self):
        pass

    def reset(self):
        self.reached_exit = None
        self.remaining = self.ticks

    @property
    def progress(self):
        if self.ticks == 0:
            return 1.0
        return 1.0 - self.remaining / self.ticks


def demo_custom_step():
    """Register a custom step type and run it."""
    print("\n" + "=" * 80)
    print("DEMO 2: Custom Step Type")
    print("=" * 80)

    get_step_registry().register_step(CountdownStep)

    data = {
        "name": "countdown",
        "initial_step_id": 1,
        "steps": [
            {"id": 1, "type_name": "CountdownStep", "parameter_values": {"Ticks": 3}},
            {"id": 2, "type_name": "WaitStep", "parameter_values": {"Duration": 0}},
        ],
        "edges": [{"source_id": 1, "source_exit": "Done", "destination_id": 2}],
    }
    tracer = TransitionTracer()
    process = instantiate_process(data, tracer=tracer).raise_for_errors()
    ticks = process.run(max_ticks=10)

    print(f"\nFinished after {ticks} ticks: {process.is_finished}")
    print(f"Path: {tracer.get_path()}")


if __name__ == "__main__":
    demo_deliver_process()
    demo_custom_step()
