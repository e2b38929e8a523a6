"""Declarative description of the ordering flows one service domain offers.

A catalog is plain data built once at startup from settings: the top-level
menu, one ``Flow`` per service (an ordered chain of steps), the order template
used at completion and the receipt branding. The conversation router runs any
catalog unchanged.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, Optional, Union

from pydantic import BaseModel

from bookingbot.services.state_machine import UNIVERSAL_STATES

Template = Union[str, Callable[[dict], str]]

KEYCAP = "\ufe0f\u20e3"


def render(template: Template, data: Mapping[str, Any]) -> str:
    """Fill a ``str.format`` template from session data, or call a template function."""
    if callable(template):
        return template(dict(data))
    return template.format_map(dict(data))


@dataclass(frozen=True)
class InboundEvent:
    """One inbound chat message as the router sees it."""

    text: str = ""
    has_image: bool = False
    has_location: bool = False
    location: Optional[dict] = None
    media: Optional[dict] = None

    def __post_init__(self):
        object.__setattr__(self, "text", (self.text or "").strip())

    @property
    def upper_text(self) -> str:
        return self.text.upper()


@dataclass
class StepResult:
    messages: list[str] = field(default_factory=list)
    next_state: Optional[str] = None
    data: dict[str, Any] = field(default_factory=dict)
    complete: bool = False
    chain_menu: bool = False

    @classmethod
    def reprompt(cls, text: str) -> "StepResult":
        return cls(messages=[text])


@dataclass(frozen=True)
class StepContext:
    event: InboundEvent
    data: Mapping[str, Any]
    flow: "Flow"


@dataclass(frozen=True)
class OrderTemplate:
    """How a finished flow turns into an order, a receipt and captions."""

    service_name: Template
    amount: Template
    details: tuple[Template, ...] = ()
    customer_caption: Template = "✅ *ORDER CONFIRMED*\n\n📄 Here is your receipt."
    admin_service_name: Optional[Template] = None


@dataclass(frozen=True)
class Flow:
    key: str
    steps: tuple  # tuple[FlowStep, ...]
    record: type[BaseModel]
    order: OrderTemplate

    @property
    def states(self) -> tuple[str, ...]:
        return tuple(step.state for step in self.steps)

    @property
    def entry_state(self) -> str:
        return self.steps[0].state

    def step(self, state: str):
        for step in self.steps:
            if step.state == state:
                return step
        return None


@dataclass(frozen=True)
class MenuOption:
    key: str
    label: str
    flow: str
    messages: tuple[str, ...]
    data: Mapping[str, Any] = field(default_factory=dict)
    entry_state: Optional[str] = None


@dataclass(frozen=True)
class ReceiptBranding:
    issuer_name: str
    tagline: str = ""
    support_contact: str = ""
    header_color: str = "#1e40af"

    @property
    def thank_you(self) -> str:
        return f"Thank you for choosing {self.issuer_name}!"


@dataclass(frozen=True)
class FlowCatalog:
    name: str
    title: str
    options: tuple[MenuOption, ...]
    flows: tuple[Flow, ...]
    branding: ReceiptBranding
    menu_footer: str = ""
    name_prompt: str = "📝 Before we proceed, what is your name and surname? (e.g., Thabo Molefe)"

    def __post_init__(self):
        self._validate()

    @property
    def states(self) -> frozenset[str]:
        return frozenset(state for flow in self.flows for state in flow.states)

    @property
    def all_states(self) -> frozenset[str]:
        return self.states | UNIVERSAL_STATES

    @property
    def menu_text(self) -> str:
        lines = [self.title, "", "Select a service:", ""]
        lines.extend(f"{option.key}{KEYCAP} {option.label}" for option in self.options)
        footer = self.menu_footer or f"Reply with number ({self.options[0].key}-{self.options[-1].key})"
        lines.extend(["", footer])
        return "\n".join(lines)

    @property
    def invalid_option_text(self) -> str:
        keys = [option.key for option in self.options]
        if len(keys) == 1:
            choices = keys[0]
        elif len(keys) == 2:
            choices = f"{keys[0]} or {keys[1]}"
        else:
            choices = ", ".join(keys[:-1]) + f", or {keys[-1]}"
        return f"❌ Invalid option. Please select {choices}"

    def option(self, key: str) -> Optional[MenuOption]:
        for option in self.options:
            if option.key == key:
                return option
        return None

    def flow(self, key: str) -> Optional[Flow]:
        for flow in self.flows:
            if flow.key == key:
                return flow
        return None

    def locate(self, state: str) -> Optional[tuple[Flow, Any]]:
        """Return (flow, step) owning a state."""
        for flow in self.flows:
            step = flow.step(state)
            if step is not None:
                return flow, step
        return None

    def _validate(self) -> None:
        seen: set[str] = set()
        for flow in self.flows:
            if not flow.steps:
                raise ValueError(f"Flow {flow.key} has no steps")
            for state in flow.states:
                if state in seen or state in UNIVERSAL_STATES:
                    raise ValueError(f"State {state} declared twice in catalog {self.name}")
                seen.add(state)

        known = seen | UNIVERSAL_STATES
        for flow in self.flows:
            for step in flow.steps:
                unknown = set(step.targets()) - known
                if unknown:
                    raise ValueError(f"Step {step.state} points at undeclared states: {sorted(unknown)}")

        keys = [option.key for option in self.options]
        if not keys or len(set(keys)) != len(keys):
            raise ValueError(f"Catalog {self.name} needs unique menu options")
        for option in self.options:
            flow = self.flow(option.flow)
            if flow is None:
                raise ValueError(f"Menu option {option.key} points at unknown flow {option.flow}")
            if option.entry_state and flow.step(option.entry_state) is None:
                raise ValueError(f"Menu option {option.key} enters {option.entry_state} outside flow {flow.key}")

    def entry_state_for(self, option: MenuOption) -> str:
        return option.entry_state or self.flow(option.flow).entry_state
