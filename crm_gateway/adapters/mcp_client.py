"""MCP (Model Context Protocol) client for CRM tool execution."""

import time
import uuid
import logging
from typing import Dict, Any, List, Optional
import httpx

from crm_gateway.adapters.mcp_response import normalize
from crm_gateway.infra.error_handler import TransportError, classify_http_error
from crm_gateway.infra.timeout import TOOL_EXECUTION_TIMEOUT
from crm_gateway.models.context import CRMContext

logger = logging.getLogger(__name__)

# Entity named in a 404 message, keyed by tool-name area
ENTITY_BY_AREA = {
    "contacts": "contact",
    "conversations": "conversation",
    "opportunities": "opportunity",
    "locations": "location",
    "calendars": "calendar",
    "payments": "order",
}


def entity_for_tool(tool_name: str) -> str:
    area = tool_name.split("_", 1)[0]
    return ENTITY_BY_AREA.get(area, "record")


class MCPClient:
    """Client for the CRM's MCP server.

    MCP protocol uses JSON-RPC 2.0 over HTTP. Replies may be plain JSON or
    an event stream; both are decoded by mcp_response.normalize().
    """

    async def execute(self, ctx: CRMContext, tool_name: str, args: Dict[str, Any]) -> Any:
        """
        Call one remote tool.

        Args:
            ctx: CRMContext with token, location and endpoint
            tool_name: Catalog tool name (also the remote tool name)
            args: Resolved arguments

        Returns:
            Decoded tool payload

        Raises:
            ToolExecutionError: Any classified failure (transport, HTTP status,
                protocol, decode or remote application error)
        """
        start_time = time.time()
        try:
            body = await self._post(ctx, "tools/call", {"name": tool_name, "arguments": args}, tool_name)
            result = normalize(body).unwrap()

            latency_ms = int((time.time() - start_time) * 1000)
            await self._log_mcp_tool_execution(ctx.location_id, tool_name, "success", latency_ms=latency_ms)
            return result

        except Exception as e:
            latency_ms = int((time.time() - start_time) * 1000)
            await self._log_mcp_tool_execution(
                ctx.location_id,
                tool_name,
                "failure",
                error_message=str(e),
                latency_ms=latency_ms,
            )
            raise

    async def list_tools(self, ctx: CRMContext) -> List[Dict[str, Any]]:
        """
        Discover the tools the remote server exposes (`tools/list`).

        Returns:
            List of remote tool definitions (name, description, inputSchema)
        """
        body = await self._post(ctx, "tools/list", {}, "tools/list")
        result = normalize(body).unwrap()
        if isinstance(result, dict):
            tools = result.get("tools", [])
        elif isinstance(result, list):
            tools = result
        else:
            tools = []
        logger.info(f"Discovered {len(tools)} remote MCP tools")
        return tools

    def _build_headers(self, ctx: CRMContext) -> Dict[str, str]:
        # SECURITY: Never log these headers
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {ctx.access_token}",
            "locationId": ctx.location_id,
            "Accept": "application/json, text/event-stream",
        }

    async def _post(self, ctx: CRMContext, method: str, params: Dict[str, Any], tool_name: str) -> Any:
        """Send one JSON-RPC request and return the raw body (parsed JSON or text)."""
        jsonrpc_request = {
            "jsonrpc": "2.0",
            "id": f"mcp_{uuid.uuid4().hex}",
            "method": method,
            "params": params,
        }

        async with httpx.AsyncClient(timeout=TOOL_EXECUTION_TIMEOUT) as client:
            try:
                response = await client.post(
                    ctx.mcp_endpoint,
                    json=jsonrpc_request,
                    headers=self._build_headers(ctx),
                )
            except httpx.TimeoutException as e:
                raise TransportError(
                    f"MCP request timed out after {TOOL_EXECUTION_TIMEOUT} seconds: {type(e).__name__}"
                )
            except httpx.HTTPError as e:
                raise TransportError(f"MCP HTTP request failed: {str(e)}")

        body = self._read_body(response)

        if not 200 <= response.status_code < 300:
            raise classify_http_error(
                response.status_code,
                body,
                entity=entity_for_tool(tool_name),
                operation=f"execute {tool_name}",
            )

        return body

    @staticmethod
    def _read_body(response: httpx.Response) -> Any:
        content_type = response.headers.get("content-type", "")
        if "text/event-stream" in content_type:
            return response.text
        try:
            return response.json()
        except ValueError:
            return response.text

    async def _log_mcp_tool_execution(
        self,
        location_id: str,
        tool_name: str,
        status: str,
        error_message: Optional[str] = None,
        latency_ms: Optional[int] = None,
    ) -> None:
        """Log MCP tool execution for audit purposes."""
        try:
            from crm_gateway.logging.event_logger import log_event

            await log_event(
                location_id=location_id,
                event_type="mcp_tool_executed",
                provider="mcp",
                status=status,
                latency_ms=latency_ms,
                payload={
                    "tool_name": tool_name,
                    "error": error_message if status == "failure" else None,
                },
            )
        except Exception as e:
            # Don't fail tool execution if logging fails
            logger.warning(f"Failed to log MCP tool execution: {str(e)}")


mcp_client = MCPClient()
