"""Tool invocation and outcome models."""

import json
from dataclasses import dataclass, field
from typing import Any, Dict, Tuple, Union


@dataclass(frozen=True)
class ToolSuccess:
    value: Any

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class ToolValidationFailure:
    """Call rejected before any network activity."""
    missing: Tuple[str, ...]
    errors: Tuple[str, ...]
    message: str

    @property
    def ok(self) -> bool:
        return False


@dataclass(frozen=True)
class ToolExecutionFailure:
    """Call attempted (or looked up) and failed.

    `user_message` is safe to show; `technical_detail` is for logs only.
    """
    user_message: str
    technical_detail: str
    error_kind: str

    @property
    def ok(self) -> bool:
        return False


ToolOutcome = Union[ToolSuccess, ToolValidationFailure, ToolExecutionFailure]


@dataclass
class ToolInvocation:
    """One model-proposed tool call within a round."""
    call_id: str
    tool_name: str
    raw_arguments: str
    resolved_arguments: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ToolCallRecord:
    """An invocation paired with its outcome."""
    invocation: ToolInvocation
    outcome: ToolOutcome

    def to_transcript_content(self) -> str:
        """JSON text placed in the tool-role transcript entry."""
        outcome = self.outcome
        if isinstance(outcome, ToolSuccess):
            return json.dumps(outcome.value, indent=2, default=str)
        if isinstance(outcome, ToolValidationFailure):
            return json.dumps({"validation_error": True, "message": outcome.message})
        return json.dumps({"error": True, "user_message": outcome.user_message})

    def to_transcript_entry(self) -> Dict[str, Any]:
        return {
            "role": "tool",
            "tool_call_id": self.invocation.call_id,
            "content": self.to_transcript_content(),
        }

    def to_summary(self) -> Dict[str, Any]:
        """Caller-facing summary used in the `toolCalls` response field."""
        summary: Dict[str, Any] = {
            "tool": self.invocation.tool_name,
            "arguments": self.invocation.resolved_arguments,
        }
        outcome = self.outcome
        if isinstance(outcome, ToolSuccess):
            summary["result"] = outcome.value
        elif isinstance(outcome, ToolValidationFailure):
            summary["validation_error"] = outcome.message
        else:
            summary["error"] = outcome.user_message
        return summary
