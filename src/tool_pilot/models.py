# models.py
# Data contracts for the plan/act agent.
# No orchestration logic lives here: schema, validation, and the MRU rule.

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

RECENT_FILES_LIMIT = 10


def _now() -> datetime:
    return datetime.now(timezone.utc)


def new_call_id() -> str:
    return f"call_{uuid.uuid4().hex}"


def new_plan_id() -> str:
    return f"plan_{uuid.uuid4().hex}"


# ---------------------------------------------------------------------------
# Vocabularies
# ---------------------------------------------------------------------------


class Mode(str, Enum):
    PLAN = "plan"
    ACT = "act"


class StepType(str, Enum):
    ANALYSIS = "analysis"
    FILE_OPERATION = "file_operation"
    COMMAND = "command"
    CONFIRMATION = "confirmation"


class OperationKind(str, Enum):
    """Closed set of operation kinds understood by the mode gate."""

    FILE_READ = "file_read"
    FILE_LIST = "file_list"
    FILE_SEARCH = "file_search"
    FILE_WRITE = "file_write"
    FILE_MODIFY = "file_modify"
    FILE_DELETE = "file_delete"
    COMMAND_EXECUTE = "command_execute"


Role = Literal["user", "assistant", "system"]


# ---------------------------------------------------------------------------
# Tool calls
# ---------------------------------------------------------------------------


class ToolCall(BaseModel):
    """A single tool invocation extracted from model text."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_call_id, description="Generated by the harness, never by the model.")
    name: str
    arguments: dict[str, Any] = Field(default_factory=dict)


class ToolResult(BaseModel):
    """Outcome of one tool call. Exactly one of success / error holds."""

    model_config = ConfigDict(frozen=True)

    success: bool
    data: Any = None
    output: str | None = None
    error: str | None = None

    @model_validator(mode="after")
    def _check_outcome(self) -> "ToolResult":
        if self.success and self.error is not None:
            raise ValueError("A successful result cannot carry an error.")
        if not self.success and not self.error:
            raise ValueError("A failed result must carry an error description.")
        return self

    @classmethod
    def ok(cls, data: Any = None, output: str | None = None) -> "ToolResult":
        return cls(success=True, data=data, output=output)

    @classmethod
    def fail(cls, error: str, data: Any = None) -> "ToolResult":
        return cls(success=False, error=error, data=data)


# ---------------------------------------------------------------------------
# Conversation
# ---------------------------------------------------------------------------


class Message(BaseModel):
    """One entry of the conversation history. Immutable once appended."""

    model_config = ConfigDict(frozen=True)

    role: Role
    content: str
    timestamp: datetime = Field(default_factory=_now)
    tool_calls: list[ToolCall] | None = None
    tool_results: list[ToolResult] | None = None

    @model_validator(mode="after")
    def _check_alignment(self) -> "Message":
        if self.tool_results is not None and len(self.tool_results) != len(self.tool_calls or []):
            raise ValueError("tool_results must align positionally with tool_calls.")
        return self


class Session(BaseModel):
    """
    Mutable working state of one agent session.

    Owned by the conversation engine. Tool executors receive it for the
    duration of a single call and must not keep a reference.
    """

    working_directory: str
    project_files: list[str] = Field(default_factory=list)
    recent_files: list[str] = Field(default_factory=list)
    conversation_history: list[Message] = Field(default_factory=list)
    current_mode: Mode = Mode.PLAN
    project_type: str | None = None
    dependencies: list[str] = Field(default_factory=list)

    def touch_file(self, path: str) -> None:
        """Move `path` to the front of the MRU list, keeping it unique and bounded."""
        self.recent_files = [path] + [p for p in self.recent_files if p != path]
        del self.recent_files[RECENT_FILES_LIMIT:]

    def append(self, message: Message) -> Message:
        self.conversation_history.append(message)
        return message


# ---------------------------------------------------------------------------
# Plans
# ---------------------------------------------------------------------------


class Step(BaseModel):
    """A single actionable item of an execution plan."""

    id: str
    description: str
    type: StepType = StepType.ANALYSIS
    details: dict[str, Any] = Field(default_factory=dict)
    completed: bool = False


class Plan(BaseModel):
    """An ordered unit of future work awaiting (or holding) user approval."""

    id: str = Field(default_factory=new_plan_id)
    title: str
    description: str
    steps: list[Step] = Field(..., min_length=1)
    created: datetime = Field(default_factory=_now)
    approved: bool = False
    estimated_time: str | None = None
    risks: list[str] = Field(default_factory=list)

    def find_step(self, step_id: str) -> Step | None:
        return next((s for s in self.steps if s.id == step_id), None)

    @property
    def is_complete(self) -> bool:
        return all(step.completed for step in self.steps)


class PlanProgress(BaseModel):
    completed: int = 0
    total: int = 0
    percentage: int = 0
