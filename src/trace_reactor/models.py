# models.py
# Data contracts for the trace reactor.
# No business logic lives here. Pure schema and validation.

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class Phase(str, Enum):
    """Runner phase labels carried by every diagnostic event."""

    INIT = "Initializing"
    STEP = "Executing Step"
    INVARIANT = "Executing Inv"
    INVARIANT_STATE = "Executing Inv Step"
    COMPLETED = "Completed"
    FAILED = "Failed"


class InvariantKind(str, Enum):
    BOOLEAN = "boolean"
    STATE = "state"


class RunStatus(str, Enum):
    COMPLETED = "completed"
    FAILED = "failed"


class PhaseEvent(BaseModel):
    """One line of the diagnostic log, handed to the observer."""

    model_config = ConfigDict(frozen=True)

    index: int = Field(..., description="Trace position; 0 is the initial state.")
    tag: str = Field(..., description="Dispatch tag of the state at `index`.")
    phase: Phase
    elapsed: float = Field(..., description="Wall-clock seconds since run start.")
    detail: str = Field(default="", description="Free-form context, e.g. the invariant name.")


class Checkpoint(BaseModel):
    """Invariant results captured at one checked point of the run."""

    index: int
    tag: str
    booleans: list[bool] = Field(default_factory=list)
    state_values: list[Any] = Field(default_factory=list, description="State invariant values in registration order.")


class FailureInfo(BaseModel):
    """Positional context of the error that ended a run."""

    error: str = Field(..., description="Exception class name.")
    message: str
    index: int | None = None
    tag: str | None = None
    phase: Phase | None = None
    handler: str | None = Field(default=None, description="Handler that raised, when it differs from `tag`.")
    kind: InvariantKind | None = None
    invariant: str | None = None
    baseline: Any = None
    current: Any = None


class RunReport(BaseModel):
    """Outcome of replaying one trace."""

    status: RunStatus = RunStatus.COMPLETED
    states: int = Field(default=0, description="Number of states in the trace.")
    steps_executed: int = Field(default=0, description="Transitions dispatched after the initial state.")
    elapsed: float = 0.0
    checkpoints: list[Checkpoint] = Field(default_factory=list)
    failure: FailureInfo | None = None

    @property
    def ok(self) -> bool:
        return self.status is RunStatus.COMPLETED


class TraceDocument(BaseModel):
    """
    A trace file as produced by an external model checker.

    The state list key varies by producer; load_trace() remaps it to
    `states` before validation. ITF files also carry `#meta` and `vars`.
    """

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    meta: dict[str, Any] = Field(default_factory=dict, alias="#meta")
    vars: list[str] = Field(default_factory=list)
    states: list[dict[str, Any]]
