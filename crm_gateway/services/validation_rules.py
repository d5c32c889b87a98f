"""
Declarative parameter validation for tool calls.

Each tool may register a ToolRuleSet. A call whose tool has no rule set is
always valid. Validation runs after default injection and before any
network activity; it never mutates the arguments.
"""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Tuple


@dataclass(frozen=True)
class Required:
    """Every listed parameter must be present."""
    params: Tuple[str, ...]


@dataclass(frozen=True)
class OneOf:
    """At least one parameter of the group must have a value."""
    params: Tuple[str, ...]


@dataclass(frozen=True)
class Conditional:
    """When `trigger` equals a case key, the case's parameters are required."""
    trigger: str
    cases: Mapping[str, Tuple[str, ...]]


@dataclass(frozen=True)
class ToolRuleSet:
    required: Required = field(default_factory=lambda: Required(()))
    one_of: Tuple[OneOf, ...] = ()
    conditional: Tuple[Conditional, ...] = ()
    confirmation_message: Optional[str] = None


@dataclass(frozen=True)
class ValidationResult:
    valid: bool
    missing: Tuple[str, ...] = ()
    errors: Tuple[str, ...] = ()
    confirmation_message: Optional[str] = None

    @property
    def message(self) -> str:
        """User-facing explanation of what is missing."""
        if self.valid:
            return ""
        missing_info = (
            f"Missing required information: {', '.join(self.missing)}" if self.missing else ""
        )
        validation_errors = "; ".join(self.errors)
        return " ".join(
            part for part in ("I need some additional information before I can proceed.", missing_info, validation_errors)
            if part
        )


VALIDATION_RULES: Mapping[str, ToolRuleSet] = MappingProxyType({
    "contacts_create-contact": ToolRuleSet(
        required=Required(("body_firstName", "body_lastName")),
        one_of=(OneOf(("body_email", "body_phone")),),
        confirmation_message="I'll create a new contact with the provided information.",
    ),
    "contacts_add-tags": ToolRuleSet(
        required=Required(("path_contactId", "body_tags")),
        confirmation_message="I'll add the specified tags to this contact.",
    ),
    "contacts_remove-tags": ToolRuleSet(
        required=Required(("path_contactId", "body_tags")),
        confirmation_message="I'll remove the specified tags from this contact.",
    ),
    "conversations_send-a-new-message": ToolRuleSet(
        required=Required(("body_contactId", "body_type")),
        conditional=(
            Conditional(
                trigger="body_type",
                cases=MappingProxyType({
                    "Email": ("body_subject", "body_message", "body_emailFrom"),
                    "SMS": ("body_message",),
                    "WhatsApp": ("body_message",),
                }),
            ),
        ),
        confirmation_message="I'll send the message to this contact.",
    ),
    "opportunities_update-opportunity": ToolRuleSet(
        required=Required(("path_id",)),
        confirmation_message="I'll update this opportunity with the new information.",
    ),
    "calendars_get-calendars": ToolRuleSet(
        confirmation_message="I'll get all available calendars for your location.",
    ),
    "calendars_get-calendar-details": ToolRuleSet(
        required=Required(("path_calendarId",)),
        confirmation_message="I'll get the details for this calendar.",
    ),
    "calendars_get-available-slots": ToolRuleSet(
        required=Required(("query_calendarId", "query_startDate", "query_endDate")),
        confirmation_message="I'll check available time slots for this calendar.",
    ),
    "calendars_create-appointment": ToolRuleSet(
        required=Required(("body_calendarId", "body_contactId", "body_startTime")),
        confirmation_message="I'll create a new appointment with the provided details.",
    ),
    "contacts_get-all-tasks": ToolRuleSet(
        required=Required(("path_contactId",)),
        confirmation_message="I'll get all tasks for this contact.",
    ),
    "locations_get-custom-fields": ToolRuleSet(
        confirmation_message="I'll retrieve the custom field definitions.",
    ),
    "payments_get-order-by-id": ToolRuleSet(
        required=Required(("path_orderId", "query_altId", "query_altType")),
        confirmation_message="I'll retrieve the order details.",
    ),
    "payments_list-transactions": ToolRuleSet(
        required=Required(("query_altId", "query_altType")),
        confirmation_message="I'll list transactions based on your criteria.",
    ),
})


def is_present(value: Any) -> bool:
    """None, blank strings and empty collections are absent; 0 and False are values."""
    if value is None:
        return False
    if isinstance(value, str):
        return value.strip() != ""
    if isinstance(value, (list, tuple, set, frozenset, dict)):
        return len(value) > 0
    return True


def validate_tool_parameters(
    tool_name: str,
    arguments: Dict[str, Any],
    rules: Mapping[str, ToolRuleSet] = VALIDATION_RULES,
) -> ValidationResult:
    """
    Check resolved arguments against the tool's rule set.

    Args:
        tool_name: Catalog tool name
        arguments: Arguments after default injection
        rules: Rule registry (defaults to the built-in table)

    Returns:
        ValidationResult; `missing` lists absent parameters, `errors` lists
        unsatisfied one-of groups
    """
    rule_set = rules.get(tool_name)
    if rule_set is None:
        return ValidationResult(valid=True)

    missing: List[str] = [p for p in rule_set.required.params if not is_present(arguments.get(p))]
    errors: List[str] = []

    for group in rule_set.one_of:
        if not any(is_present(arguments.get(p)) for p in group.params):
            errors.append(f"At least one of these is required: {', '.join(group.params)}")

    for rule in rule_set.conditional:
        trigger_value = arguments.get(rule.trigger)
        if not isinstance(trigger_value, str) or trigger_value not in rule.cases:
            continue
        for param in rule.cases[trigger_value]:
            if not is_present(arguments.get(param)):
                missing.append(f"{param} (required for {rule.trigger}={trigger_value})")

    return ValidationResult(
        valid=not missing and not errors,
        missing=tuple(missing),
        errors=tuple(errors),
        confirmation_message=rule_set.confirmation_message,
    )
