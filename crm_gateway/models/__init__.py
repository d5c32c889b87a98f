from .context import CRMContext
from .outcome import (
    ToolCallRecord,
    ToolExecutionFailure,
    ToolInvocation,
    ToolOutcome,
    ToolSuccess,
    ToolValidationFailure,
)
from .tool import ToolDescriptor

__all__ = [
    "CRMContext",
    "ToolCallRecord",
    "ToolExecutionFailure",
    "ToolInvocation",
    "ToolOutcome",
    "ToolSuccess",
    "ToolValidationFailure",
    "ToolDescriptor",
]
