"""Finite-state dispatch of one inbound message against one session.

The router never touches storage or the transport: it returns the replies to
send and the session mutation to persist, and the caller applies both.
"""

from dataclasses import dataclass, field
from typing import Any, Optional

from bookingbot.logging_config import chat_logger
from bookingbot.services.flow_catalog import FlowCatalog, InboundEvent, StepContext, StepResult
from bookingbot.services.flow_steps import parse_free_text
from bookingbot.services.session_store import UserSession
from bookingbot.services.state_machine import (
    UniversalState,
    is_global_reset,
    is_known_state,
    needs_name,
    require_known_state,
)

FALLBACK_TEXT = "Type MENU to start"
NAME_ERROR = "❌ Please enter your name and surname."


@dataclass
class Dispatch:
    """Replies in send order plus the mutation to persist before sending.

    ``state`` is None when the session state stays as it is. ``completion``
    names the flow whose order must be completed after the replies go out.
    """

    messages: list[str] = field(default_factory=list)
    state: Optional[str] = None
    data: dict[str, Any] = field(default_factory=dict)
    completion: Optional[str] = None

    @property
    def mutates(self) -> bool:
        return self.state is not None or bool(self.data)


class ConversationRouter:
    def __init__(self, catalog: FlowCatalog):
        self.catalog = catalog

    def dispatch(self, session: UserSession, event: InboundEvent) -> Dispatch:
        log = chat_logger("router", session.user_id)
        state = session.state
        data = session.data

        if is_global_reset(event.upper_text):
            if not data.get("name"):
                log.info("Global reset without a name, asking for it", context={"from_state": state})
                return self._checked(self._ask_name())
            log.info("Global reset", context={"from_state": state})
            return self._checked(self._show_menu())

        if needs_name(state, data):
            log.info("Name missing, switching to NAME_COLLECTION", context={"state": state})
            return self._checked(self._ask_name())

        if state == UniversalState.IDLE.value:
            return self._checked(self._show_menu())

        if state == UniversalState.MENU_SHOWN.value:
            return self._checked(self._select_option(event, log))

        if state == UniversalState.NAME_COLLECTION.value:
            return self._checked(self._from_step(self._collect_name(event), log))

        located = self.catalog.locate(state) if is_known_state(state, self.catalog.states) else None
        if located is None:
            log.warning(f"No step registered for state {state}")
            return Dispatch(messages=[FALLBACK_TEXT])

        flow, step = located
        result = step.handle(StepContext(event=event, data=data, flow=flow))
        dispatch = self._from_step(result, log)
        if result.complete:
            dispatch.completion = flow.key
            log.info(f"Flow {flow.key} ready for completion", context={"state": state})
        elif result.next_state is None and result.messages:
            log.info("Input rejected, re-prompting", context={"state": state})
        return self._checked(dispatch)

    def _show_menu(self) -> Dispatch:
        return Dispatch(messages=[self.catalog.menu_text], state=UniversalState.MENU_SHOWN.value)

    def _ask_name(self) -> Dispatch:
        return Dispatch(messages=[self.catalog.name_prompt], state=UniversalState.NAME_COLLECTION.value)

    def _select_option(self, event: InboundEvent, log) -> Dispatch:
        option = self.catalog.option(event.text)
        if option is None:
            log.info(f"Invalid menu option {event.text!r}")
            return Dispatch(messages=[self.catalog.invalid_option_text, self.catalog.menu_text])

        log.info(f"Menu option {option.key} selected", context={"flow": option.flow})
        return Dispatch(
            messages=list(option.messages),
            state=self.catalog.entry_state_for(option),
            data=dict(option.data),
        )

    def _collect_name(self, event: InboundEvent) -> StepResult:
        parsed = parse_free_text(event.text, NAME_ERROR)
        if not parsed.ok:
            return StepResult.reprompt(parsed.error)
        return StepResult(
            messages=[f"Thank you, {parsed.value}! You can now use the menu."],
            next_state=UniversalState.IDLE.value,
            data={"name": parsed.value},
            chain_menu=True,
        )

    def _from_step(self, result: StepResult, log) -> Dispatch:
        dispatch = Dispatch(messages=list(result.messages), state=result.next_state, data=dict(result.data))
        if result.chain_menu:
            # second half of the transition: IDLE with a name shows the menu
            menu = self._show_menu()
            dispatch.messages.extend(menu.messages)
            dispatch.state = menu.state
            log.info("Name stored, showing menu")
        return dispatch

    def _checked(self, dispatch: Dispatch) -> Dispatch:
        if dispatch.state is not None:
            require_known_state(dispatch.state, self.catalog.states)
        return dispatch
