"""
Conversation Flow.

Pure state machine for chat booking. step() maps (state, input) either to a
Transition or to an Effect the caller must perform; resume() maps the
effect's outcome to a Transition. Neither function does I/O.
"""

import re
from dataclasses import dataclass
from datetime import date
from typing import Optional, Sequence, Union
from zoneinfo import ZoneInfo

from app.core.conversation import replies
from app.core.conversation.states import (
    Completed,
    Confirm,
    ConversationState,
    SelectDate,
    SelectService,
    SelectTime,
    ServiceOption,
    Welcome,
)

MENU_OPTION_SCHEDULE = "1"
CONFIRM_OPTION = "1"
CANCEL_OPTION = "2"

DATE_PATTERN = re.compile(r"[0-9]{2}/[0-9]{2}/[0-9]{4}")
INDEX_PATTERN = re.compile(r"[0-9]+")


@dataclass(frozen=True)
class Transition:
    """Next state and the replies to send, in order."""

    state: ConversationState
    messages: tuple[str, ...]


@dataclass(frozen=True)
class FetchServices:
    """List the organization's active services."""


@dataclass(frozen=True)
class FetchSlots:
    """List available slots of a service on an ISO date."""

    service_id: str
    iso_date: str


@dataclass(frozen=True)
class Reserve:
    """Create an appointment at a slot start."""

    service_id: str
    start_time: str


Effect = Union[FetchServices, FetchSlots, Reserve]

# Outcome types per effect: FetchServices -> Sequence[ServiceOption],
# FetchSlots -> Sequence[str] (slot starts), Reserve -> appointment id or None
EffectOutcome = Union[Sequence[ServiceOption], Sequence[str], Optional[str]]


def _stay(state: ConversationState, *messages: str) -> Transition:
    return Transition(state=state, messages=messages)


def welcome_menu() -> Transition:
    return Transition(state=Welcome(), messages=(replies.WELCOME_MENU,))


def parse_index(text: str, size: int) -> Optional[int]:
    """0-based index of a 1-based menu choice, or None if out of range."""
    if not INDEX_PATTERN.fullmatch(text):
        return None
    index = int(text) - 1
    if index < 0 or index >= size:
        return None
    return index


def parse_chat_date(text: str) -> Optional[str]:
    """ISO date for a DD/MM/YYYY input that names a real calendar day."""
    if not DATE_PATTERN.fullmatch(text):
        return None
    day, month, year = text.split("/")
    try:
        return date(int(year), int(month), int(day)).isoformat()
    except ValueError:
        return None


def step(
    state: ConversationState,
    text: str,
    tz: ZoneInfo,
) -> Union[Transition, Effect]:
    """Advance the conversation by one inbound message.

    Args:
        state: Current state
        text: Trimmed message body
        tz: Organization timezone, for showing slot times

    Returns:
        A Transition, or an Effect to perform and pass to resume()
    """
    if isinstance(state, Welcome):
        if text != MENU_OPTION_SCHEDULE:
            return welcome_menu()
        return FetchServices()

    if isinstance(state, SelectService):
        services = state.available_services
        index = parse_index(text, len(services))
        if index is None:
            return _stay(state, replies.service_menu((s.name for s in services), invalid=True))
        return Transition(
            state=SelectDate(
                selected_service_id=services[index].id,
                available_services=services,
            ),
            messages=(replies.ASK_DATE,),
        )

    if isinstance(state, SelectDate):
        iso_date = parse_chat_date(text)
        if iso_date is None:
            return _stay(state, replies.INVALID_DATE)
        return FetchSlots(service_id=state.selected_service_id, iso_date=iso_date)

    if isinstance(state, SelectTime):
        slots = state.available_slots
        index = parse_index(text, len(slots))
        if index is None:
            return _stay(state, replies.invalid_slot_menu(slots, tz))
        selected = slots[index]
        confirm = Confirm(
            selected_service_id=state.selected_service_id,
            selected_time_slot=selected,
            available_services=state.available_services,
            selected_date=state.selected_date,
            available_slots=slots,
        )
        return Transition(
            state=confirm,
            messages=(
                replies.confirm_summary(confirm.service_name, state.selected_date, selected, tz),
            ),
        )

    if isinstance(state, Confirm):
        if text == CANCEL_OPTION:
            return Transition(
                state=Welcome(),
                messages=(replies.BOOKING_CANCELLED, replies.WELCOME_MENU),
            )
        if text != CONFIRM_OPTION:
            return _stay(state, replies.CONFIRM_OR_CANCEL)
        return Reserve(service_id=state.selected_service_id, start_time=state.selected_time_slot)

    # Completed: any input starts over
    return welcome_menu()


def resume(
    state: ConversationState,
    effect: Effect,
    outcome: EffectOutcome,
    tz: ZoneInfo,
) -> Transition:
    """Finish a step after its effect ran.

    Args:
        state: State the effect was requested from
        effect: The effect returned by step()
        outcome: Services, slot starts, or appointment id (None on failure)
        tz: Organization timezone

    Returns:
        Transition to apply
    """
    if isinstance(effect, FetchServices):
        services = tuple(outcome or ())
        if not services:
            return _stay(state, replies.NO_SERVICES)
        return Transition(
            state=SelectService(available_services=services),
            messages=(replies.service_menu(s.name for s in services),),
        )

    if isinstance(effect, FetchSlots):
        slots = tuple(outcome or ())
        if not slots:
            return _stay(state, replies.NO_SLOTS)
        return Transition(
            state=SelectTime(
                selected_service_id=state.selected_service_id,
                available_slots=slots,
                available_services=state.available_services,
                selected_date=effect.iso_date,
            ),
            messages=(replies.slot_menu(slots, tz),),
        )

    # Reserve
    if outcome:
        return Transition(
            state=Completed(appointment_id=str(outcome)),
            messages=(replies.booking_confirmed(str(outcome)),),
        )
    return Transition(
        state=SelectDate(
            selected_service_id=state.selected_service_id,
            available_services=state.available_services,
            selected_date=state.selected_date,
        ),
        messages=(replies.SLOT_UNAVAILABLE, replies.ASK_DATE),
    )
