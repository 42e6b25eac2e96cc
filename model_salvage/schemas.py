"""
Result schemas for model output interpretation.

Pydantic models for the canonical deliverable shape (StructuredResponse)
and its metadata, a dataclass for extracted tool invocations, and the
exception hierarchy shared by the extractors and the recovery engine.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from model_salvage.config import EMPTY_ARGUMENTS


# Top-level keys that identify the canonical deliverable shape
CANONICAL_KEYS: tuple[str, ...] = ("deliverables", "memory_operations", "metadata")


class ConfidenceLevel(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class TaskCompletionStatus(str, Enum):
    COMPLETE = "complete"
    PARTIAL = "partial"
    FAILED = "failed"


class RecoveryStage(str, Enum):
    """Stages of the recovery engine, in escalation order."""
    STRICT = "strict"          # S0
    REPAIRED = "repaired"      # S1
    CORRECTED = "corrected"    # S2
    HEURISTIC = "heuristic"    # S3


class RecoveryDiagnostics(BaseModel):
    """How a structured response was obtained."""
    stage_reached: RecoveryStage
    correction_attempts: int = 0
    auto_corrected: bool = False
    repairs_applied: list[str] = Field(default_factory=list)


class ResponseMetadata(BaseModel):
    """
    Metadata block of a StructuredResponse.

    Extra keys supplied by the model (subagent, processing_time, ...) are kept.
    """
    model_config = ConfigDict(extra="allow")

    confidence_level: ConfidenceLevel = ConfidenceLevel.MEDIUM
    task_completion_status: TaskCompletionStatus = TaskCompletionStatus.COMPLETE
    diagnostics: Optional[RecoveryDiagnostics] = None


class StructuredResponse(BaseModel):
    """Canonical deliverable object produced from a model completion."""
    model_config = ConfigDict(extra="allow")

    deliverables: dict[str, Any] = Field(default_factory=dict)
    memory_operations: list[Any] = Field(default_factory=list)
    metadata: ResponseMetadata = Field(default_factory=ResponseMetadata)

    @property
    def diagnostics(self) -> Optional[RecoveryDiagnostics]:
        return self.metadata.diagnostics

    def to_dict(self) -> dict[str, Any]:
        """Serialize as a nested key/value document."""
        return self.model_dump(mode="json", exclude_none=True)


@dataclass
class ToolInvocation:
    """A tool call extracted from model text."""
    id: str
    name: str
    arguments: str = EMPTY_ARGUMENTS  # Canonical string-encoded payload

    def to_openai_format(self) -> dict[str, Any]:
        """Convert to the OpenAI tool_calls entry shape."""
        return {
            "id": self.id,
            "type": "function",
            "function": {
                "name": self.name,
                "arguments": self.arguments,
            },
        }


# ─────────────────────────────────────────────────────────────────────
# Exception hierarchy
# ─────────────────────────────────────────────────────────────────────


class SalvageError(Exception):
    """Base exception for model-salvage."""
    pass


class ExtractionError(SalvageError):
    """A single tool-call block could not be parsed.

    Collected per block by extractors, never raised to the caller.
    """

    def __init__(self, block_index: int, message: str):
        self.block_index = block_index
        super().__init__(f"tool call {block_index}: {message}")


class RegistryConfigurationError(SalvageError):
    """An extractor was registered with a malformed capability predicate."""
    pass


class StageFailed(SalvageError):
    """A recovery stage could not produce a structured response."""
    pass


class CorrectionFailed(StageFailed):
    """One assisted-correction attempt failed (timeout, error, bad output)."""
    pass


class CorrectionAborted(StageFailed):
    """Assisted correction was cancelled or ran past the caller's deadline."""
    pass
