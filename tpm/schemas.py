"""
Serialized process description models.

Pydantic models of the data a load collaborator produces (database row set,
YAML/JSON file, network message). The core only depends on this in-memory
schema, never on how it was produced.

Field names are snake_case; the camel/Pascal-case names written by earlier
tooling are accepted as aliases.
"""

from typing import Any, Dict, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


class StepInstanceData(BaseModel):
    """
    Serialized step instance.

    Attributes:
        id: Step id, unique within the owning process
        type_name: Registered step type name
        parameter_values: Raw STANDARD parameter values by parameter name
    """

    model_config = ConfigDict(populate_by_name=True)

    id: int = Field(..., validation_alias=AliasChoices("id", "Id"))
    type_name: str = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("type_name", "typeName", "DefinitionName", "definition_name"),
    )
    parameter_values: Dict[str, Any] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("parameter_values", "parameterValues", "ParameterValues"),
    )

    @field_validator("type_name")
    @classmethod
    def type_name_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("type_name cannot be blank")
        return v.strip()


class EdgeData(BaseModel):
    """
    Serialized edge keyed by the source step's exit point name.

    Attributes:
        source_id: Id of the step the edge leaves from
        source_exit: Exit point name on the source step
        destination_id: Id of the step the edge leads to
    """

    model_config = ConfigDict(populate_by_name=True)

    source_id: int = Field(..., validation_alias=AliasChoices("source_id", "sourceId", "SourceId"))
    source_exit: str = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("source_exit", "sourceExit", "sourceExitName", "SourceExit"),
    )
    destination_id: int = Field(
        ..., validation_alias=AliasChoices("destination_id", "destinationId", "DestinationId")
    )


class ProcessInstanceData(BaseModel):
    """
    Serialized transport process.

    Attributes:
        name: Human-readable process name
        steps: Step instances
        edges: Edges between step instances
        initial_step_id: Id of the step the process starts with
    """

    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(default="", validation_alias=AliasChoices("name", "Name"))
    steps: List[StepInstanceData] = Field(
        default_factory=list, validation_alias=AliasChoices("steps", "Steps")
    )
    edges: List[EdgeData] = Field(
        default_factory=list, validation_alias=AliasChoices("edges", "Edges")
    )
    initial_step_id: int = Field(
        ...,
        validation_alias=AliasChoices(
            "initial_step_id", "initialStepId", "InitialStateId", "initial_state_id"
        ),
    )

    def get_step(self, step_id: int) -> Optional[StepInstanceData]:
        for step in self.steps:
            if step.id == step_id:
                return step
        return None

    def to_dict(self) -> Dict[str, Any]:
        """Plain-dict form using the canonical field names."""
        return self.model_dump(mode="json")
