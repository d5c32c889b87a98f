"""Tool catalog API router."""

import logging
from fastapi import APIRouter, HTTPException

from crm_gateway.adapters.mcp_client import mcp_client
from crm_gateway.api.models import DiscoveredToolsResponse, ToolsResponse
from crm_gateway.infra.config import config
from crm_gateway.infra.error_handler import ToolExecutionError
from crm_gateway.models.context import CRMContext
from crm_gateway.services.tool_catalog import get_tool_catalog

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/api/tools", tags=["Tools"], response_model=ToolsResponse)
async def list_tools():
    """Return the fixed tool catalog offered to the model."""
    catalog = get_tool_catalog()
    return ToolsResponse(tools=catalog.to_openai_tools(), count=len(catalog))


@router.post("/api/tools/discover", tags=["Tools"], response_model=DiscoveredToolsResponse)
async def discover_tools():
    """Ask the remote MCP server which tools it exposes (`tools/list`)."""
    if not config.CRM_PIT_TOKEN or not config.CRM_LOCATION_ID:
        raise HTTPException(
            status_code=500,
            detail="Server configuration error: Missing API credentials in environment variables",
        )

    try:
        tools = await mcp_client.list_tools(CRMContext.from_config())
    except ToolExecutionError as e:
        logger.error(f"Tool discovery failed: {e.technical_detail}")
        raise HTTPException(status_code=502, detail=f"Tool discovery failed: {e.message}")

    return DiscoveredToolsResponse(tools=tools, count=len(tools))
