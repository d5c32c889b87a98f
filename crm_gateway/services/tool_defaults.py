"""Environment-scoped default parameters filled in before validation."""

from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Tuple

from crm_gateway.models.context import CRMContext
from crm_gateway.services.validation_rules import is_present


@dataclass(frozen=True)
class ParameterDefault:
    """
    One default value for one tool parameter.

    `value` is either a constant or a callable taking the CRMContext.
    `when`, if given, must return True for the arguments before the
    default applies.
    """
    param: str
    value: Any
    when: Optional[Callable[[Dict[str, Any]], bool]] = None

    def resolve(self, ctx: CRMContext) -> Any:
        return self.value(ctx) if callable(self.value) else self.value


def _location_id(ctx: CRMContext) -> str:
    return ctx.location_id


def _email_from(ctx: CRMContext) -> str:
    return ctx.default_email_from


def _is_email(arguments: Dict[str, Any]) -> bool:
    return arguments.get("body_type") == "Email"


TOOL_DEFAULTS: Dict[str, Tuple[ParameterDefault, ...]] = {
    "contacts_create-contact": (
        ParameterDefault("body_locationId", _location_id),
    ),
    "conversations_send-a-new-message": (
        ParameterDefault("body_emailFrom", _email_from, when=_is_email),
    ),
    "calendars_get-calendars": (
        ParameterDefault("query_locationId", _location_id),
    ),
    "calendars_get-available-slots": (
        ParameterDefault("query_timezone", "UTC"),
    ),
    "locations_get-location": (
        ParameterDefault("path_locationId", _location_id),
    ),
    "locations_get-custom-fields": (
        ParameterDefault("path_locationId", _location_id),
    ),
    "payments_get-order-by-id": (
        ParameterDefault("query_locationId", _location_id),
        ParameterDefault("query_altId", _location_id),
        ParameterDefault("query_altType", "location"),
    ),
    "payments_list-transactions": (
        ParameterDefault("query_locationId", _location_id),
        ParameterDefault("query_altId", _location_id),
        ParameterDefault("query_altType", "location"),
        ParameterDefault("query_limit", 10),
        ParameterDefault("query_offset", 0),
    ),
}


def apply_default_parameters(ctx: CRMContext, tool_name: str, arguments: Dict[str, Any]) -> Dict[str, Any]:
    """
    Return a copy of `arguments` with missing defaults filled in.

    A value the caller supplied is never overridden.
    """
    resolved = dict(arguments)
    for default in TOOL_DEFAULTS.get(tool_name, ()):
        if is_present(resolved.get(default.param)):
            continue
        if default.when is not None and not default.when(resolved):
            continue
        value = default.resolve(ctx)
        if value is None or value == "":
            continue
        resolved[default.param] = value
    return resolved
