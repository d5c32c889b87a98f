"""
Fixed catalog of CRM tools offered to the model.

Tool names follow the MCP server's `<area>_<operation>` naming. Parameter
names carry their HTTP placement as a prefix (`path_`, `query_`, `body_`),
which the remote server uses to build the underlying CRM request.
"""

from functools import lru_cache
from types import MappingProxyType
from typing import Any, Dict, Iterator, List, Mapping, Optional, Tuple

from crm_gateway.models.tool import ToolDescriptor

# Calendar operations are served by the REST helpers, everything else by MCP
REST_TOOLS = frozenset({
    "calendars_get-calendars",
    "calendars_get-calendar-details",
    "calendars_get-available-slots",
    "calendars_create-appointment",
})

MESSAGE_TYPES = ["SMS", "Email", "WhatsApp", "IG", "FB", "Custom", "Live_Chat"]
OPPORTUNITY_STATUSES = ["open", "won", "lost", "abandoned", "all"]


def _string(description: str, **extra: Any) -> Dict[str, Any]:
    return {"type": "string", "description": description, **extra}


def _number(description: str, **extra: Any) -> Dict[str, Any]:
    return {"type": "number", "description": description, **extra}


def _boolean(description: str, **extra: Any) -> Dict[str, Any]:
    return {"type": "boolean", "description": description, **extra}


def _string_list(description: str) -> Dict[str, Any]:
    return {"type": "array", "items": {"type": "string"}, "description": description}


def _schema(properties: Dict[str, Any], required: Optional[List[str]] = None) -> Dict[str, Any]:
    schema: Dict[str, Any] = {"type": "object", "properties": properties}
    if required is not None:
        schema["required"] = required
    return schema


TOOL_SPECS: List[Tuple[str, str, Dict[str, Any]]] = [
    # Contacts
    (
        "contacts_get-contacts",
        "Get contacts from the CRM. Can filter by various parameters.",
        _schema({
            "query_limit": _number("Limit Per Page records count. will allow maximum up to 100 and default will be 20", default=20),
            "query_startAfterId": _string("Start After Id"),
            "query_query": _string("Contact Query"),
        }),
    ),
    (
        "contacts_get-contact",
        "Get a specific contact by ID",
        _schema({"path_contactId": _string("Contact Id")}, ["path_contactId"]),
    ),
    (
        "contacts_create-contact",
        "Create a new contact",
        _schema({
            "body_firstName": _string("First name"),
            "body_lastName": _string("Last name"),
            "body_email": _string("Email address"),
            "body_phone": _string("Phone number"),
            "body_tags": _string_list("Tags to assign"),
            "body_locationId": _string("Location ID"),
        }),
    ),
    (
        "contacts_add-tags",
        "Add tags to a contact",
        _schema(
            {"path_contactId": _string("Contact Id"), "body_tags": _string_list("Tags to add")},
            ["path_contactId", "body_tags"],
        ),
    ),
    (
        "contacts_remove-tags",
        "Remove tags from a contact",
        _schema(
            {"path_contactId": _string("Contact Id"), "body_tags": _string_list("Tags to remove")},
            ["path_contactId", "body_tags"],
        ),
    ),
    (
        "contacts_get-all-tasks",
        "Get all Tasks",
        _schema({"path_contactId": _string("Contact Id")}, ["path_contactId"]),
    ),
    # Conversations
    (
        "conversations_search-conversation",
        "Search and filter conversations",
        _schema({
            "query_limit": _number("Limit of conversations - Default is 20", default=20),
            "query_contactId": _string("Contact Id"),
            "query_locationId": _string("Location Id"),
        }),
    ),
    (
        "conversations_get-messages",
        "Get messages from a conversation",
        _schema(
            {
                "path_conversationId": _string("Conversation ID"),
                "query_limit": _number("Number of messages to be fetched. Default is 20", default=20),
            },
            ["path_conversationId"],
        ),
    ),
    (
        "conversations_send-a-new-message",
        "Send a new message to a conversation. For emails, body_emailFrom is required.",
        _schema(
            {
                "body_type": _string("Message type", enum=MESSAGE_TYPES),
                "body_contactId": _string("Contact ID"),
                "body_message": _string("Message content"),
                "body_subject": _string("Subject line for email messages"),
                "body_emailFrom": _string("Email address to send from (required for Email type)"),
                "body_html": _string("HTML content of the message (optional for emails)"),
                "body_emailTo": _string("Email address to send to, if different from contact's primary email"),
                "body_emailCc": _string_list("Array of CC email addresses"),
                "body_emailBcc": _string_list("Array of BCC email addresses"),
                "body_fromNumber": _string("Phone number used as sender for SMS/WhatsApp"),
                "body_toNumber": _string("Recipient phone number for SMS/WhatsApp"),
            },
            ["body_type", "body_contactId"],
        ),
    ),
    # Opportunities
    (
        "opportunities_search-opportunity",
        "Search for opportunities",
        _schema({
            "query_limit": _number("Limit Per Page records count. Default is 20", default=20),
            "query_pipeline_id": _string("Pipeline Id"),
            "query_status": _string("Status", enum=OPPORTUNITY_STATUSES),
            "query_location_id": _string("Location Id"),
        }),
    ),
    (
        "opportunities_get-pipelines",
        "Get all opportunity pipelines",
        _schema({"query_locationId": _string("Location Id")}),
    ),
    (
        "opportunities_update-opportunity",
        "Update an existing opportunity",
        _schema(
            {
                "path_id": _string("Opportunity Id"),
                "body_pipelineId": _string("Pipeline Id"),
                "body_name": _string("Opportunity name"),
                "body_pipelineStageId": _string("Pipeline stage Id"),
                "body_status": _string("Status", enum=OPPORTUNITY_STATUSES),
                "body_monetaryValue": _number("Monetary value"),
                "body_assignedTo": _string("User Id to assign to"),
            },
            ["path_id"],
        ),
    ),
    (
        "opportunities_get-opportunity",
        "Get a specific opportunity by ID",
        _schema({"path_id": _string("Opportunity Id")}, ["path_id"]),
    ),
    # Locations
    (
        "locations_get-location",
        "Get location (sub-account) details",
        _schema({"path_locationId": _string("Location Id")}),
    ),
    (
        "locations_get-custom-fields",
        "Get Custom Fields",
        _schema(
            {
                "path_locationId": _string("Location Id"),
                "query_model": _string(
                    "Model of the custom field you want to retrieve",
                    enum=["contact", "opportunity", "all"],
                ),
            },
            [],
        ),
    ),
    # Calendars
    (
        "calendars_get-calendars",
        "Get all calendars for a location",
        _schema({
            "query_locationId": _string("Location Id (optional, will use default)"),
            "query_groupId": _string("Group Id to filter calendars (optional)"),
            "query_showDrafted": _boolean("Whether to show drafted calendars", default=False),
        }),
    ),
    (
        "calendars_get-calendar-details",
        "Get specific calendar details by ID",
        _schema({"path_calendarId": _string("Calendar ID")}, ["path_calendarId"]),
    ),
    (
        "calendars_get-available-slots",
        "Get available time slots for booking appointments",
        _schema(
            {
                "query_calendarId": _string("Calendar ID"),
                "query_startDate": _number("Start date in milliseconds"),
                "query_endDate": _number("End date in milliseconds (cannot exceed 1 month from startDate)"),
                "query_timezone": _string("Timezone", default="UTC"),
                "query_userId": _string("User ID (optional)"),
            },
            ["query_calendarId", "query_startDate", "query_endDate"],
        ),
    ),
    (
        "calendars_create-appointment",
        "Create a new appointment",
        _schema(
            {
                "body_calendarId": _string("Calendar ID"),
                "body_contactId": _string("Contact ID"),
                "body_startTime": _string("Start time in ISO format (e.g., 2021-06-23T03:30:00+05:30)"),
                "body_endTime": _string("End time in ISO format"),
                "body_title": _string("Appointment title"),
                "body_appointmentStatus": _string(
                    "Appointment status",
                    enum=["new", "confirmed", "cancelled", "showed", "noshow", "invalid"],
                ),
                "body_assignedUserId": _string("Assigned user ID"),
                "body_meetingLocationType": _string(
                    "Meeting location type",
                    enum=["custom", "zoom", "gmeet", "phone", "address", "ms_teams", "google"],
                ),
                "body_meetingLocationId": _string("Meeting location ID"),
                "body_address": _string("Appointment address"),
                "body_ignoreDateRange": _boolean("Ignore minimum scheduling notice and date range"),
                "body_toNotify": _boolean("Run automations (default: true)"),
                "body_ignoreFreeSlotValidation": _boolean("Ignore time slot validation"),
            },
            ["body_calendarId", "body_contactId", "body_startTime"],
        ),
    ),
    # Payments
    (
        "payments_get-order-by-id",
        "Get order details by ID",
        _schema(
            {
                "path_orderId": _string("ID of the order that needs to be returned"),
                "query_locationId": _string("LocationId is the id of the sub-account"),
                "query_altId": _string("AltId is the unique identifier e.g: location id"),
                "query_altType": _string("AltType is the type of identifier"),
            },
            ["path_orderId", "query_altId", "query_altType"],
        ),
    ),
    (
        "payments_list-transactions",
        "List Transactions with filtering options",
        _schema(
            {
                "query_locationId": _string("LocationId is the id of the sub-account"),
                "query_altId": _string("AltId is the unique identifier e.g: location id"),
                "query_altType": _string("AltType is the type of identifier"),
                "query_paymentMode": _string("Mode of payment"),
                "query_startAt": _string("Starting interval of transactions"),
                "query_endAt": _string("Closing interval of transactions"),
                "query_entitySourceType": _string("Source of the transactions"),
                "query_entitySourceSubType": _string("Source sub-type of the transactions"),
                "query_search": _string("The name of the transaction for searching"),
                "query_subscriptionId": _string("Subscription id for filtering of transactions"),
                "query_entityId": _string("Entity id for filtering of transactions"),
                "query_contactId": _string("Contact id for filtering of transactions"),
                "query_limit": _number("The maximum number of items to be included in a single page of results", default=10),
                "query_offset": _number("The starting index of the page", default=0),
            },
            ["query_altId", "query_altType"],
        ),
    ),
]


class ToolCatalog:
    """Read-only, ordered set of tool descriptors keyed by name."""

    def __init__(self, descriptors: List[ToolDescriptor]):
        by_name: Dict[str, ToolDescriptor] = {}
        for descriptor in descriptors:
            if descriptor.name in by_name:
                raise ValueError(f"Duplicate tool name in catalog: {descriptor.name}")
            by_name[descriptor.name] = descriptor
        self._descriptors: Tuple[ToolDescriptor, ...] = tuple(descriptors)
        self._by_name: Mapping[str, ToolDescriptor] = MappingProxyType(by_name)

    def get(self, name: str) -> Optional[ToolDescriptor]:
        return self._by_name.get(name)

    def __contains__(self, name: object) -> bool:
        return name in self._by_name

    def __iter__(self) -> Iterator[ToolDescriptor]:
        return iter(self._descriptors)

    def __len__(self) -> int:
        return len(self._descriptors)

    @property
    def names(self) -> Tuple[str, ...]:
        return tuple(d.name for d in self._descriptors)

    def to_openai_tools(self) -> List[Dict[str, Any]]:
        """All descriptors in chat-completions tool format."""
        return [d.to_openai_tool() for d in self._descriptors]


def build_tool_catalog() -> ToolCatalog:
    descriptors = [
        ToolDescriptor(
            name=name,
            description=description,
            parameters_schema=schema,
            provider="crm_rest" if name in REST_TOOLS else "mcp",
        )
        for name, description, schema in TOOL_SPECS
    ]
    return ToolCatalog(descriptors)


@lru_cache(maxsize=1)
def get_tool_catalog() -> ToolCatalog:
    """Process-wide catalog, built on first use."""
    return build_tool_catalog()
