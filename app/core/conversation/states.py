"""
Conversation states.

Each step of the chat booking flow is its own frozen dataclass carrying only
the fields that step needs, so impossible combinations (a confirm step
without a selected service) cannot be represented. encode_state and
decode_state map states to and from the persisted (current_step, context)
record.
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional, Union

from app.models.database import ChatStep

logger = logging.getLogger(__name__)

CONTEXT_VERSION = 1


@dataclass(frozen=True)
class ServiceOption:
    """A service offered in the chat menu."""

    id: str
    name: str

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name}


@dataclass(frozen=True)
class Welcome:
    pass


@dataclass(frozen=True)
class SelectService:
    available_services: tuple[ServiceOption, ...]


@dataclass(frozen=True)
class SelectDate:
    selected_service_id: str
    available_services: tuple[ServiceOption, ...] = ()
    # Kept from an earlier attempt after a failed reservation
    selected_date: Optional[str] = None


@dataclass(frozen=True)
class SelectTime:
    selected_service_id: str
    available_slots: tuple[str, ...]
    available_services: tuple[ServiceOption, ...] = ()
    selected_date: Optional[str] = None


@dataclass(frozen=True)
class Confirm:
    selected_service_id: str
    selected_time_slot: str
    available_services: tuple[ServiceOption, ...] = ()
    selected_date: Optional[str] = None
    available_slots: tuple[str, ...] = ()

    @property
    def service_name(self) -> str:
        for service in self.available_services:
            if service.id == self.selected_service_id:
                return service.name
        return ""


@dataclass(frozen=True)
class Completed:
    appointment_id: Optional[str] = None


ConversationState = Union[Welcome, SelectService, SelectDate, SelectTime, Confirm, Completed]


_STEPS: dict[type, ChatStep] = {
    Welcome: ChatStep.WELCOME,
    SelectService: ChatStep.SELECT_SERVICE,
    SelectDate: ChatStep.SELECT_DATE,
    SelectTime: ChatStep.SELECT_TIME,
    Confirm: ChatStep.CONFIRM,
    Completed: ChatStep.COMPLETED,
}


class InvalidStateRecord(ValueError):
    """Persisted record does not describe a valid state."""


def step_of(state: ConversationState) -> ChatStep:
    """Persisted step name of a state."""
    return _STEPS[type(state)]


def encode_state(state: ConversationState) -> tuple[str, dict[str, Any]]:
    """Serialize a state into (current_step, context).

    Welcome encodes to an empty context.
    """
    if isinstance(state, Welcome):
        return step_of(state).value, {}

    context: dict[str, Any] = {"version": CONTEXT_VERSION}

    if isinstance(state, (SelectService, SelectDate, SelectTime, Confirm)):
        context["availableServices"] = [s.to_dict() for s in state.available_services]
    if isinstance(state, (SelectDate, SelectTime, Confirm)):
        context["selectedServiceId"] = state.selected_service_id
        if state.selected_date is not None:
            context["selectedDate"] = state.selected_date
    if isinstance(state, (SelectTime, Confirm)):
        context["availableSlots"] = list(state.available_slots)
    if isinstance(state, Confirm):
        context["selectedTimeSlot"] = state.selected_time_slot
    if isinstance(state, Completed) and state.appointment_id:
        context["appointmentId"] = state.appointment_id

    return step_of(state).value, context


def _services(context: dict, required: bool = False) -> tuple[ServiceOption, ...]:
    raw = context.get("availableServices")
    if raw is None and not required:
        return ()
    if not isinstance(raw, list):
        raise InvalidStateRecord("availableServices missing")
    services = []
    for item in raw:
        if not isinstance(item, dict) or "id" not in item or "name" not in item:
            raise InvalidStateRecord("malformed service entry")
        services.append(ServiceOption(id=str(item["id"]), name=str(item["name"])))
    return tuple(services)


def _slots(context: dict, required: bool = False) -> tuple[str, ...]:
    raw = context.get("availableSlots")
    if raw is None and not required:
        return ()
    if not isinstance(raw, list) or not all(isinstance(s, str) for s in raw):
        raise InvalidStateRecord("availableSlots missing")
    return tuple(raw)


def _required_str(context: dict, key: str) -> str:
    value = context.get(key)
    if not isinstance(value, str) or not value:
        raise InvalidStateRecord(f"{key} missing")
    return value


def _optional_str(context: dict, key: str) -> Optional[str]:
    value = context.get(key)
    return value if isinstance(value, str) and value else None


def _decode(step: ChatStep, context: dict) -> ConversationState:
    if step == ChatStep.WELCOME:
        return Welcome()
    if step == ChatStep.COMPLETED:
        return Completed(appointment_id=_optional_str(context, "appointmentId"))
    if step == ChatStep.SELECT_SERVICE:
        return SelectService(available_services=_services(context, required=True))
    if step == ChatStep.SELECT_DATE:
        return SelectDate(
            selected_service_id=_required_str(context, "selectedServiceId"),
            available_services=_services(context),
            selected_date=_optional_str(context, "selectedDate"),
        )
    if step == ChatStep.SELECT_TIME:
        return SelectTime(
            selected_service_id=_required_str(context, "selectedServiceId"),
            available_slots=_slots(context, required=True),
            available_services=_services(context),
            selected_date=_optional_str(context, "selectedDate"),
        )
    return Confirm(
        selected_service_id=_required_str(context, "selectedServiceId"),
        selected_time_slot=_required_str(context, "selectedTimeSlot"),
        available_services=_services(context),
        selected_date=_optional_str(context, "selectedDate"),
        available_slots=_slots(context),
    )


def decode_state(current_step: str, context: Optional[dict]) -> ConversationState:
    """
    Rebuild a state from its persisted record.

    Unknown steps, unknown context versions and records missing a field the
    step requires all fall back to Welcome.
    """
    context = context or {}
    try:
        step = ChatStep(current_step)
        version = context.get("version", CONTEXT_VERSION)
        if version != CONTEXT_VERSION:
            raise InvalidStateRecord(f"unsupported context version {version}")
        return _decode(step, context)
    except ValueError as e:
        logger.warning(f"Discarding invalid chat state '{current_step}': {e}")
        return Welcome()
