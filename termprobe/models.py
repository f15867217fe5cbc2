"""Data models for the orchestration engine."""

import time
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from termprobe.cancellation import CancellationToken
from termprobe.memory import WorkingMemory


class LoopState(str, Enum):
    """Where the orchestration loop is, or how it ended."""

    PLANNED = "planned"
    EXECUTING = "executing"
    EVALUATING = "evaluating"
    REPLANNING = "replanning"
    COMPLETE = "complete"
    ABORTED = "aborted"
    ERROR = "error"


# --- Planner payloads ---


class PlannerPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


def _clean_commands(v: Any) -> list[str]:
    if v is None:
        return []
    if isinstance(v, str):
        v = [v]
    if not isinstance(v, list):
        raise ValueError("commands must be a list of strings")
    return [c.strip() for c in v if isinstance(c, str) and c.strip()]


class InitialPlan(PlannerPayload):
    """First batch of commands proposed for a question."""

    commands: list[str] = Field(description="Commands to run first")

    @field_validator("commands", mode="before")
    @classmethod
    def validate_commands(cls, v: Any) -> list[str]:
        return _clean_commands(v)


class CompletionVerdict(PlannerPayload):
    is_complete: bool = Field(alias="isComplete")
    reasoning: str = ""

    @field_validator("reasoning", mode="before")
    @classmethod
    def validate_reasoning(cls, v: Any) -> str:
        return "" if v is None else str(v)


class MemoryUpdate(PlannerPayload):
    hypothesis: str | None = None
    discovered: dict[str, Any] | None = None


class NextStep(PlannerPayload):
    commands: list[str] = Field(default_factory=list)
    update_memory: MemoryUpdate | None = Field(default=None, alias="updateMemory")

    @field_validator("commands", mode="before")
    @classmethod
    def validate_commands(cls, v: Any) -> list[str]:
        return _clean_commands(v)


class Synthesis(PlannerPayload):
    direct_answer: str = Field(alias="directAnswer")

    @field_validator("direct_answer")
    @classmethod
    def validate_answer_not_empty(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("directAnswer cannot be empty")
        return v.strip()


# --- Execution state ---


@dataclass
class CommandResult:
    command: str
    output: str | None = None
    error: str | None = None
    skipped: bool = False
    success: bool | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"command": self.command}
        if self.output is not None:
            data["output"] = self.output
        if self.error is not None:
            data["error"] = self.error
        if self.skipped:
            data["skipped"] = True
        if self.success is not None:
            data["success"] = self.success
        return data


@dataclass
class ExecutionMetadata:
    ai_calls: int = 0
    blocked_commands: list[str] = field(default_factory=list)


@dataclass
class ExecutionContext:
    """Mutable state of a single orchestration call. Never shared between calls."""

    original_question: str
    system_context: dict[str, Any] = field(default_factory=dict)
    executed_commands: list[str] = field(default_factory=list)
    results: list[CommandResult] = field(default_factory=list)
    current_plan: deque = field(default_factory=deque)
    iteration: int = 0
    is_complete: bool = False
    direct_answer: str | None = None
    state: LoopState = LoopState.PLANNED
    metadata: ExecutionMetadata = field(default_factory=ExecutionMetadata)
    working_memory: WorkingMemory = field(default_factory=WorkingMemory)
    cancel_token: CancellationToken = field(default_factory=CancellationToken)
    started_at: float = field(default_factory=time.monotonic)

    def elapsed_ms(self) -> int:
        return int((time.monotonic() - self.started_at) * 1000)


@dataclass
class OrchestrationResult:
    success: bool
    question: str
    direct_answer: str | None = None
    executed_commands: list[str] = field(default_factory=list)
    results: list[CommandResult] = field(default_factory=list)
    iterations: int = 0
    duration_ms: int = 0
    state: LoopState = LoopState.COMPLETE
    ai_calls: int = 0
    blocked_commands: list[str] = field(default_factory=list)
    error: str | None = None
    cancelled: bool = False

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "success": self.success,
            "question": self.question,
            "directAnswer": self.direct_answer,
            "executedCommands": list(self.executed_commands),
            "results": [r.to_dict() for r in self.results],
            "iterations": self.iterations,
            "duration_ms": self.duration_ms,
            "state": self.state.value,
            "aiCalls": self.ai_calls,
            "blockedCommands": list(self.blocked_commands),
        }
        if self.error is not None:
            data["error"] = self.error
        if self.cancelled:
            data["cancelled"] = True
        return data
