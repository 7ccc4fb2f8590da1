"""
Pytest configuration and fixtures for the test suite.
"""
import io

import pytest
from hypothesis import settings, Verbosity

from tpm.definitions import (
    DEFAULT_EXIT,
    ExitPointDefinition,
    ParameterDefinition,
    ParameterRole,
    ParameterType,
)
from tpm.logger import StructuredLogger, reset_logger
from tpm.orchestration.base_step import ProcessStep
from tpm.registries.step_registry import (
    StepTypeRegistry,
    register_default_steps,
    reset_step_registry,
)

# Configure Hypothesis for property-based testing
# Each property test will run at least 100 examples
settings.register_profile("default", max_examples=100, verbosity=Verbosity.normal)
settings.register_profile("ci", max_examples=200, verbosity=Verbosity.verbose)
settings.register_profile("dev", max_examples=50, verbosity=Verbosity.normal)
settings.register_profile("debug", max_examples=10, verbosity=Verbosity.verbose)

# Load the default profile
settings.load_profile("default")


class FakeClock:
    """Manually advanced clock for Stopwatch-driven steps."""

    def __init__(self, now: float = 0.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class ScriptedStep(ProcessStep):
    """Reports exits from a script, one entry per update (None means still working)."""

    type_name = "ScriptedStep"
    parameters = [
        ParameterDefinition("Label", ParameterType.STR),
        ParameterDefinition("Retries", ParameterType.INT),
    ]
    exits = [DEFAULT_EXIT, ExitPointDefinition("Failed", is_error=True)]

    def __init__(self):
        super().__init__()
        self.label = ""
        self.retries = 0
        self.script = []
        self.calls = []

    def assign_parameter(self, name, value):
        if name == "Label":
            self.label = value
        elif name == "Retries":
            if value < 0:
                raise ValueError("Retries must be non-negative")
            self.retries = value
        else:
            super().assign_parameter(name, value)

    def enter(self):
        self.calls.append("enter")
        self.reached_exit = None

    def update(self):
        self.calls.append("update")
        name = self.script.pop(0) if self.script else None
        self.reached_exit = self.exit_point(name) if name else None

    def leave(self):
        self.calls.append("leave")

    def reset(self):
        self.calls.append("reset")
        self.reached_exit = None

    @property
    def progress(self):
        return 0.5


class OrderStep(ScriptedStep):
    """Scripted step that also needs an order-supplied destination."""

    type_name = "OrderStep"
    parameters = [
        ParameterDefinition("Label", ParameterType.STR),
        ParameterDefinition(
            "DeliverDestination",
            ParameterType.INT,
            is_optional=False,
            role=ParameterRole.INFERRED_FOR_ORDER,
        ),
    ]


@pytest.fixture(autouse=True)
def reset_singletons():
    """Reset singleton instances between tests to ensure isolation."""
    reset_step_registry()
    reset_logger()
    yield
    reset_step_registry()
    reset_logger()


@pytest.fixture
def log_output():
    return io.StringIO()


@pytest.fixture
def logger(log_output):
    return StructuredLogger(name="test", level="DEBUG", output_stream=log_output)


@pytest.fixture
def registry(logger):
    """Registry with the built-in steps plus the scripted test steps."""
    registry = StepTypeRegistry(logger=logger)
    register_default_steps(registry)
    registry.register_step(ScriptedStep)
    registry.register_step(OrderStep)
    return registry


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def scripted_step_class():
    return ScriptedStep
