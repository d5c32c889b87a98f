"""Request-scoped CRM context."""

from dataclasses import dataclass
from typing import Optional

from crm_gateway.infra.config import config


@dataclass(frozen=True)
class CRMContext:
    """Credentials and endpoints for one chat round."""
    access_token: str  # PIT bearer token, never logged
    location_id: str
    default_email_from: str
    mcp_endpoint: str
    api_base_url: str

    @classmethod
    def from_config(cls, cfg: Optional[object] = None) -> "CRMContext":
        cfg = cfg or config
        return cls(
            access_token=cfg.CRM_PIT_TOKEN or "",
            location_id=cfg.CRM_LOCATION_ID or "",
            default_email_from=cfg.DEFAULT_EMAIL_FROM,
            mcp_endpoint=cfg.MCP_ENDPOINT,
            api_base_url=cfg.CRM_API_BASE_URL.rstrip("/"),
        )

    def __repr__(self) -> str:
        return f"CRMContext(location_id={self.location_id!r}, mcp_endpoint={self.mcp_endpoint!r})"
