"""Calendar REST helpers for the CRM API.

The MCP server does not cover calendars well, so these four operations
call the REST API directly. Each has its own status-to-message table.
"""

import logging
import time
from typing import Any, Dict, Optional

import httpx

from crm_gateway.infra.error_handler import (
    InvalidRequest,
    TransportError,
    classify_http_error,
)
from crm_gateway.infra.timeout import TOOL_EXECUTION_TIMEOUT
from crm_gateway.models.context import CRMContext

logger = logging.getLogger(__name__)

CALENDARS_API_VERSION = "2021-07-28"
APPOINTMENTS_API_VERSION = "2021-04-15"

# Slot searches are capped at 31 days
MAX_SLOT_RANGE_MS = 31 * 24 * 60 * 60 * 1000

APPOINTMENT_DEFAULTS = {
    "title": "New Appointment",
    "appointmentStatus": "new",
    "meetingLocationType": "custom",
    "meetingLocationId": "default",
    "overrideLocationConfig": False,
    "ignoreDateRange": False,
    "toNotify": True,
    "ignoreFreeSlotValidation": False,
}


class CRMRestClient:
    """Thin async wrapper over the calendar endpoints."""

    def _headers(self, ctx: CRMContext, version: str) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {ctx.access_token}",
            "Version": version,
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    async def _request(
        self,
        ctx: CRMContext,
        method: str,
        path: str,
        *,
        version: str,
        operation: str,
        params: Optional[Dict[str, Any]] = None,
        json_body: Optional[Dict[str, Any]] = None,
        **classify_kwargs: Any,
    ) -> Any:
        url = f"{ctx.api_base_url}{path}"
        start_time = time.time()

        async with httpx.AsyncClient(timeout=TOOL_EXECUTION_TIMEOUT) as client:
            try:
                response = await client.request(
                    method,
                    url,
                    params=params,
                    json=json_body,
                    headers=self._headers(ctx, version),
                )
            except httpx.TimeoutException as e:
                raise TransportError(
                    f"Failed to {operation}: timed out after {TOOL_EXECUTION_TIMEOUT} seconds ({type(e).__name__})"
                )
            except httpx.HTTPError as e:
                raise TransportError(f"Failed to {operation}: {str(e)}")

        latency_ms = int((time.time() - start_time) * 1000)
        try:
            body = response.json()
        except ValueError:
            body = response.text

        if not 200 <= response.status_code < 300:
            logger.warning(
                f"CRM REST call failed: {method} {path} -> {response.status_code}",
                extra={"operation": operation, "status_code": response.status_code, "latency_ms": latency_ms},
            )
            raise classify_http_error(response.status_code, body, operation=operation, **classify_kwargs)

        logger.debug(f"CRM REST call succeeded: {method} {path}", extra={"latency_ms": latency_ms})
        return body

    async def get_calendars(
        self,
        ctx: CRMContext,
        location_id: Optional[str] = None,
        group_id: Optional[str] = None,
        show_drafted: bool = False,
    ) -> Any:
        """List calendars for a location (defaults to the context location)."""
        params = {
            "locationId": location_id or ctx.location_id,
            "showDrafted": "true" if show_drafted else "false",
        }
        if group_id:
            params["groupId"] = group_id

        return await self._request(
            ctx,
            "GET",
            "/calendars/",
            version=CALENDARS_API_VERSION,
            operation="get calendars",
            params=params,
            entity="location",
            not_found_message="Location not found. Please check the location ID.",
            permission_message="Access denied. Please check your permissions for this location.",
        )

    async def get_calendar(self, ctx: CRMContext, calendar_id: str) -> Any:
        """Fetch one calendar by id."""
        return await self._request(
            ctx,
            "GET",
            f"/calendars/{calendar_id}",
            version=CALENDARS_API_VERSION,
            operation="get calendar",
            entity="calendar",
            not_found_message="Calendar not found. Please check the calendar ID.",
            permission_message="Access denied. You may not have permission to view this calendar.",
        )

    async def get_free_slots(
        self,
        ctx: CRMContext,
        calendar_id: str,
        start_date: int,
        end_date: int,
        timezone: str = "UTC",
        user_id: Optional[str] = None,
    ) -> Any:
        """
        Search free slots between two millisecond timestamps.

        Raises:
            InvalidRequest: If the range is inverted or longer than 31 days
        """
        try:
            start_ms = int(start_date)
            end_ms = int(end_date)
        except (TypeError, ValueError):
            raise InvalidRequest("startDate and endDate must be millisecond timestamps")

        if end_ms < start_ms:
            raise InvalidRequest("endDate must not be before startDate")
        if end_ms - start_ms > MAX_SLOT_RANGE_MS:
            raise InvalidRequest("Date range cannot exceed 1 month")

        params = {
            "calendarId": calendar_id,
            "startDate": str(start_ms),
            "endDate": str(end_ms),
            "timezone": timezone or "UTC",
        }
        if user_id:
            params["userId"] = user_id

        return await self._request(
            ctx,
            "GET",
            "/calendars/slots",
            version=CALENDARS_API_VERSION,
            operation="get free slots",
            params=params,
            entity="calendar",
            not_found_message="Calendar not found. Please check the calendar ID.",
            permission_message="Access denied. You may not have permission to view this calendar.",
            invalid_request_message="Invalid request parameters. Please check the date range and calendar ID.",
        )

    async def create_appointment(self, ctx: CRMContext, appointment: Dict[str, Any]) -> Any:
        """
        Book an appointment.

        Missing optional fields get APPOINTMENT_DEFAULTS; fields left as None
        are dropped from the request body.
        """
        body = {**APPOINTMENT_DEFAULTS, "locationId": ctx.location_id}
        body.update({key: value for key, value in appointment.items() if value is not None})
        if appointment.get("toNotify") is not False:
            body["toNotify"] = True

        return await self._request(
            ctx,
            "POST",
            "/calendars/events/appointments",
            version=APPOINTMENTS_API_VERSION,
            operation="create appointment",
            json_body=body,
            entity="calendar",
            not_found_message="Calendar or contact not found. Please check the calendar ID and contact ID.",
            permission_message="Access denied. You may not have permission to create appointments on this calendar.",
            allow_conflict=True,
        )


crm_rest_client = CRMRestClient()
