"""Canonical tool descriptor model."""

from pydantic import BaseModel, ConfigDict, Field
from typing import Dict, Any, Literal


class ToolDescriptor(BaseModel):
    """One entry of the fixed CRM tool catalog."""
    model_config = ConfigDict(frozen=True)

    name: str = Field(..., description="Unique tool name, e.g. 'contacts_add-tags'")
    description: str = Field(..., description="Tool description shown to the model")
    parameters_schema: Dict[str, Any] = Field(..., description="JSON Schema for parameters")
    provider: Literal["mcp", "crm_rest"] = Field(
        default="mcp",
        description="Provider: 'mcp' (remote tool server) | 'crm_rest' (calendar REST helpers)"
    )

    def to_openai_tool(self) -> Dict[str, Any]:
        """Render in the chat-completions function tool format."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters_schema,
            },
        }
