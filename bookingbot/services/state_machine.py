from enum import Enum
from typing import Iterable


class UniversalState(str, Enum):
    IDLE = "IDLE"
    MENU_SHOWN = "MENU_SHOWN"
    NAME_COLLECTION = "NAME_COLLECTION"


UNIVERSAL_STATES = frozenset(state.value for state in UniversalState)

# Text commands that abandon the current flow from any state.
GLOBAL_RESET_COMMANDS = frozenset({"MENU", "START"})


class UnknownStateError(Exception):
    def __init__(self, state: str):
        self.state = state
        super().__init__(f"State {state!r} is not declared by the active catalog")


def is_known_state(state: str, catalog_states: Iterable[str]) -> bool:
    """Check that a state belongs to the catalog or the universal set."""
    return state in UNIVERSAL_STATES or state in set(catalog_states)


def require_known_state(state: str, catalog_states: Iterable[str]) -> str:
    """Return the state unchanged. Raises UnknownStateError if it is not declared."""
    if not is_known_state(state, catalog_states):
        raise UnknownStateError(state)
    return state


def is_global_reset(upper_text: str) -> bool:
    return upper_text in GLOBAL_RESET_COMMANDS


def needs_name(state: str, data: dict) -> bool:
    """IDLE and MENU_SHOWN are gated on a collected name."""
    return state in (UniversalState.IDLE.value, UniversalState.MENU_SHOWN.value) and not data.get("name")
