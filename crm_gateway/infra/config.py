"""Configuration management loaded from the environment."""

import os
from typing import List, Optional
from pathlib import Path
from dotenv import load_dotenv

# Load .env file from project root
# This ensures dotenv works regardless of where the script is run from
project_root = Path(__file__).parent.parent.parent
env_file = project_root / ".env"

# override=False means existing environment variables take precedence
load_dotenv(dotenv_path=env_file, override=False)


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() == "true"


class Config:
    """Application configuration."""
    # Language model (OpenAI-compatible endpoint, Groq by default)
    LLM_API_KEY: Optional[str] = os.getenv("GROQ_API_KEY") or os.getenv("LLM_API_KEY")
    LLM_BASE_URL: str = os.getenv("LLM_BASE_URL", "https://api.groq.com/openai/v1")
    LLM_MODEL: str = os.getenv("LLM_MODEL", "meta-llama/llama-4-maverick-17b-128e-instruct")
    LLM_TEMPERATURE: float = float(os.getenv("LLM_TEMPERATURE", "0.6"))
    LLM_MAX_COMPLETION_TOKENS: int = int(os.getenv("LLM_MAX_COMPLETION_TOKENS", "4096"))
    LLM_MAX_RETRIES: int = int(os.getenv("LLM_MAX_RETRIES", "2"))

    # CRM credentials - never log these
    CRM_PIT_TOKEN: Optional[str] = os.getenv("GHL_PIT_TOKEN")
    CRM_LOCATION_ID: Optional[str] = os.getenv("GHL_LOCATION_ID")

    # CRM endpoints
    MCP_ENDPOINT: str = os.getenv("MCP_ENDPOINT", "https://services.leadconnectorhq.com/mcp/")
    CRM_API_BASE_URL: str = os.getenv("CRM_API_BASE_URL", "https://services.leadconnectorhq.com")

    # Tool defaults
    DEFAULT_EMAIL_FROM: str = os.getenv("DEFAULT_EMAIL_FROM", "noreply@yourcompany.com")

    # Conversation
    HISTORY_LIMIT: int = int(os.getenv("HISTORY_LIMIT", "20"))
    PARALLEL_TOOL_EXECUTION: bool = _env_bool("PARALLEL_TOOL_EXECUTION", "true")

    # Application
    APP_ENV: str = os.getenv("APP_ENV", "development")
    DEBUG: bool = _env_bool("DEBUG")
    PORT: int = int(os.getenv("PORT", "3000"))

    def missing_credentials(self) -> List[str]:
        """Return the names of required credentials that are not configured."""
        missing = []
        if not self.LLM_API_KEY:
            missing.append("GROQ_API_KEY")
        if not self.CRM_PIT_TOKEN:
            missing.append("GHL_PIT_TOKEN")
        if not self.CRM_LOCATION_ID:
            missing.append("GHL_LOCATION_ID")
        return missing


config = Config()
