"""Step kinds a flow is assembled from.

Every step owns one state. ``handle`` parses the reply with a validator that
returns a ``Result``; a failed parse re-prompts and leaves the state alone.
"""

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal
from typing import Callable, Optional

from bookingbot.services.flow_catalog import StepContext, StepResult
from bookingbot.services.pricing import distance_total, fixed_total, format_amount, to_decimal
from bookingbot.services.result import Result
from bookingbot.services.state_machine import UniversalState

YES = "YES"
NO = "NO"
PAID = "PAID"
SKIP = "SKIP"

PAID_HINT = "💰 After paying, reply with: PAID"
YES_NO_ERROR = "❌ Please reply YES or NO"
IMAGE_ERROR = "❌ Please send an image"

_LEADING_INT = re.compile(r"^[+-]?\d+")
_DISTANCE = re.compile(r"^(\d+(?:[.,]\d+)?)\s*(?:km|kms|kilometres|kilometers)?$", re.IGNORECASE)


def parse_keyword(text: str, choices: tuple[str, ...], error: str) -> Result[str]:
    upper = (text or "").strip().upper()
    if upper in choices:
        return Result.success(upper)
    return Result.failure(error, "unknown_keyword")


def parse_quantity(text: str, minimum: int, maximum: int, error: str) -> Result[int]:
    """Leading integer of the reply, accepted only inside [minimum, maximum]."""
    match = _LEADING_INT.match((text or "").strip())
    if not match:
        return Result.failure(error, "not_a_number")
    quantity = int(match.group(0))
    if quantity < minimum or quantity > maximum:
        return Result.failure(error, "out_of_range")
    return Result.success(quantity)


def parse_distance(text: str, maximum_km: Decimal, error: str) -> Result[Decimal]:
    match = _DISTANCE.match((text or "").strip())
    if not match:
        return Result.failure(error, "not_a_number")
    distance = to_decimal(match.group(1).replace(",", "."))
    if distance <= 0 or distance > maximum_km:
        return Result.failure(error, "out_of_range")
    return Result.success(distance)


def parse_free_text(text: str, error: str) -> Result[str]:
    value = (text or "").strip()
    if not value:
        return Result.failure(error, "empty")
    return Result.success(value)


@dataclass(frozen=True)
class FlowStep(ABC):
    state: str

    @abstractmethod
    def handle(self, ctx: StepContext) -> StepResult:
        """Interpret one reply received while in this step."""
        pass

    def targets(self) -> tuple[str, ...]:
        return ()


@dataclass(frozen=True)
class ChoiceStep(FlowStep):
    """One keyword out of a fixed set, stored upper-cased in ``field``."""

    field: str
    choices: tuple[str, ...]
    next_state: str
    error: str
    followup: tuple[str, ...] = ()

    def handle(self, ctx: StepContext) -> StepResult:
        parsed = parse_keyword(ctx.event.text, self.choices, self.error)
        if not parsed.ok:
            return StepResult.reprompt(parsed.error)
        return StepResult(messages=list(self.followup), next_state=self.next_state, data={self.field: parsed.value})

    def targets(self) -> tuple[str, ...]:
        return (self.next_state,)


@dataclass(frozen=True)
class TextStep(FlowStep):
    field: str
    next_state: str
    error: str
    followup: tuple[str, ...] = ()

    def handle(self, ctx: StepContext) -> StepResult:
        parsed = parse_free_text(ctx.event.text, self.error)
        if not parsed.ok:
            return StepResult.reprompt(parsed.error)
        return StepResult(messages=list(self.followup), next_state=self.next_state, data={self.field: parsed.value})

    def targets(self) -> tuple[str, ...]:
        return (self.next_state,)


@dataclass(frozen=True)
class QuantityStep(FlowStep):
    """Quantity at a fixed unit price; emits the order summary."""

    next_state: str
    minimum: int
    maximum: int
    unit_price: Callable[[dict], Decimal]
    summary: Callable[[dict], str]
    error: str

    def handle(self, ctx: StepContext) -> StepResult:
        parsed = parse_quantity(ctx.event.text, self.minimum, self.maximum, self.error)
        if not parsed.ok:
            return StepResult.reprompt(parsed.error)
        quantity = parsed.value
        total = fixed_total(quantity, self.unit_price(dict(ctx.data)))
        patch = {"quantity": quantity, "total": format_amount(total)}
        return StepResult(
            messages=[self.summary({**ctx.data, **patch})],
            next_state=self.next_state,
            data=patch,
        )

    def targets(self) -> tuple[str, ...]:
        return (self.next_state,)


@dataclass(frozen=True)
class DistanceStep(FlowStep):
    """Trip distance in km, priced as base + distance * per_km."""

    next_state: str
    base: Decimal
    per_km: Decimal
    maximum_km: Decimal
    summary: Callable[[dict], str]
    error: str

    def handle(self, ctx: StepContext) -> StepResult:
        parsed = parse_distance(ctx.event.text, self.maximum_km, self.error)
        if not parsed.ok:
            return StepResult.reprompt(parsed.error)
        total = distance_total(self.base, self.per_km, parsed.value)
        patch = {"distanceKm": format_amount(parsed.value), "total": format_amount(total)}
        return StepResult(
            messages=[self.summary({**ctx.data, **patch})],
            next_state=self.next_state,
            data=patch,
        )

    def targets(self) -> tuple[str, ...]:
        return (self.next_state,)


@dataclass(frozen=True)
class AcknowledgeStep(FlowStep):
    """YES continues; any other reply abandons the flow."""

    next_state: str
    followup: tuple[str, ...]
    cancel_text: str = "Type MENU to see other services."

    def handle(self, ctx: StepContext) -> StepResult:
        if ctx.event.upper_text == YES:
            return StepResult(messages=list(self.followup), next_state=self.next_state)
        return StepResult(messages=[self.cancel_text], next_state=UniversalState.IDLE.value)

    def targets(self) -> tuple[str, ...]:
        return (self.next_state, UniversalState.IDLE.value)


@dataclass(frozen=True)
class LocationStep(FlowStep):
    """A shared location, or SKIP to send it later."""

    next_state: str
    followup: tuple[str, ...]
    error: str = "📍 Please send your location OR type SKIP"
    saved_text: str = "✅ Location saved!"

    def handle(self, ctx: StepContext) -> StepResult:
        if ctx.event.upper_text == SKIP:
            return StepResult(
                messages=list(self.followup),
                next_state=self.next_state,
                data={"locationPending": True},
            )
        if ctx.event.has_location and ctx.event.location:
            location = {"lat": ctx.event.location.get("lat"), "lng": ctx.event.location.get("lng")}
            messages = list(self.followup)
            if messages:
                messages[0] = f"{self.saved_text}\n\n{messages[0]}"
            else:
                messages = [self.saved_text]
            return StepResult(
                messages=messages,
                next_state=self.next_state,
                data={"location": location, "locationPending": False},
            )
        return StepResult.reprompt(self.error)

    def targets(self) -> tuple[str, ...]:
        return (self.next_state,)


@dataclass(frozen=True)
class ConfirmStep(FlowStep):
    """YES moves on to payment, NO cancels, anything else asks again."""

    next_state: str
    followup: tuple[str, ...]
    cancel_text: str = "Order cancelled. Type MENU to start over."
    error: str = YES_NO_ERROR

    def handle(self, ctx: StepContext) -> StepResult:
        parsed = parse_keyword(ctx.event.text, (YES, NO), self.error)
        if not parsed.ok:
            return StepResult.reprompt(parsed.error)
        if parsed.value == YES:
            return StepResult(messages=list(self.followup), next_state=self.next_state)
        return StepResult(messages=[self.cancel_text], next_state=UniversalState.IDLE.value)

    def targets(self) -> tuple[str, ...]:
        return (self.next_state, UniversalState.IDLE.value)


@dataclass(frozen=True)
class PaymentStep(FlowStep):
    """Waits for PAID. Other replies are ignored without an answer."""

    next_state: str
    proof_prompt: str = "📸 Please send proof of payment"

    def handle(self, ctx: StepContext) -> StepResult:
        if ctx.event.upper_text == PAID:
            return StepResult(messages=[self.proof_prompt], next_state=self.next_state)
        return StepResult()

    def targets(self) -> tuple[str, ...]:
        return (self.next_state,)


@dataclass(frozen=True)
class ProofStep(FlowStep):
    """An image attachment completes the order."""

    error: str = IMAGE_ERROR

    def handle(self, ctx: StepContext) -> StepResult:
        if ctx.event.has_image:
            return StepResult(complete=True)
        return StepResult.reprompt(self.error)


def payment_followup(payment_instructions: str) -> tuple[str, ...]:
    return (payment_instructions, PAID_HINT)


def payment_chain(prefix: str, payment_instructions: str, proof_prompt: Optional[str] = None, proof_error: Optional[str] = None):
    """The confirm → payment → proof tail shared by priced flows."""
    confirm = ConfirmStep(
        state=f"{prefix}_CONFIRM",
        next_state=f"{prefix}_PAYMENT",
        followup=payment_followup(payment_instructions),
    )
    return (confirm,) + payment_tail(prefix, proof_prompt=proof_prompt, proof_error=proof_error)


def payment_tail(prefix: str, proof_prompt: Optional[str] = None, proof_error: Optional[str] = None):
    """The payment → proof pair every flow ends with."""
    payment = PaymentStep(
        state=f"{prefix}_PAYMENT",
        next_state=f"{prefix}_PROOF",
        proof_prompt=proof_prompt or "📸 Please send proof of payment",
    )
    proof = ProofStep(state=f"{prefix}_PROOF", error=proof_error or IMAGE_ERROR)
    return (payment, proof)


def bank_payment_instructions(settings) -> str:
    return (
        "💳 *PAYMENT DETAILS*\n\n"
        "*Bank Transfer:*\n"
        f"Bank: {settings.bank_name}\n"
        f"Account: {settings.account_number}\n"
        f"Branch: {settings.branch_code}\n\n"
        "*Or PaySharp:*\n"
        f"Number: {settings.paysharp_number}"
    )
