from decimal import Decimal

from bookingbot.services.flow_catalog import InboundEvent, StepContext
from bookingbot.services.flow_steps import (
    IMAGE_ERROR,
    PAID_HINT,
    YES_NO_ERROR,
    AcknowledgeStep,
    ChoiceStep,
    ConfirmStep,
    DistanceStep,
    LocationStep,
    PaymentStep,
    ProofStep,
    QuantityStep,
    TextStep,
    bank_payment_instructions,
    parse_distance,
    parse_free_text,
    parse_keyword,
    parse_quantity,
    payment_chain,
)


def ctx(text="", data=None, **event):
    return StepContext(event=InboundEvent(text=text, **event), data=data or {}, flow=None)


class TestParsers:
    def test_keyword_is_case_insensitive(self):
        assert parse_keyword(" tuesday ", ("TUESDAY", "SUNDAY"), "err").value == "TUESDAY"

    def test_keyword_rejects_unknown(self):
        result = parse_keyword("Monday", ("TUESDAY", "SUNDAY"), "pick one")
        assert not result.ok
        assert result.error == "pick one"

    def test_quantity_takes_leading_integer(self):
        assert parse_quantity("3 bottles", 1, 10, "err").value == 3

    def test_quantity_bounds(self):
        assert parse_quantity("10", 1, 10, "err").ok
        assert parse_quantity("11", 1, 10, "err").error_code == "out_of_range"
        assert parse_quantity("0", 1, 10, "err").error_code == "out_of_range"
        assert parse_quantity("-2", 1, 10, "err").error_code == "out_of_range"

    def test_quantity_rejects_words(self):
        assert parse_quantity("five", 1, 10, "err").error_code == "not_a_number"

    def test_distance_formats(self):
        limit = Decimal("500")
        assert parse_distance("12", limit, "err").value == Decimal("12")
        assert parse_distance("12.5", limit, "err").value == Decimal("12.5")
        assert parse_distance("12,5", limit, "err").value == Decimal("12.5")
        assert parse_distance("12 km", limit, "err").value == Decimal("12")

    def test_distance_rejects_zero_and_too_far(self):
        limit = Decimal("500")
        assert not parse_distance("0", limit, "err").ok
        assert not parse_distance("501", limit, "err").ok
        assert not parse_distance("far", limit, "err").ok

    def test_free_text_rejects_blank(self):
        assert not parse_free_text("   ", "err").ok
        assert parse_free_text("  Main Rd ", "err").value == "Main Rd"


class TestChoiceAndTextSteps:
    def test_choice_stores_upper_value_and_moves_on(self):
        step = ChoiceStep(
            state="A", field="date", choices=("TUESDAY", "SUNDAY"), next_state="B", error="err", followup=("next",)
        )
        result = step.handle(ctx("sunday"))
        assert result.next_state == "B"
        assert result.data == {"date": "SUNDAY"}
        assert result.messages == ["next"]

    def test_choice_reprompts(self):
        step = ChoiceStep(state="A", field="date", choices=("TUESDAY",), next_state="B", error="err")
        result = step.handle(ctx("friday"))
        assert result.next_state is None
        assert result.messages == ["err"]
        assert result.data == {}

    def test_text_step_stores_trimmed_text(self):
        step = TextStep(state="A", field="pickupLocation", next_state="B", error="err")
        result = step.handle(ctx("  12 Main Rd  "))
        assert result.data == {"pickupLocation": "12 Main Rd"}


class TestQuantityStep:
    def make_step(self):
        return QuantityStep(
            state="Q",
            next_state="C",
            minimum=1,
            maximum=10,
            unit_price=lambda data: Decimal("20"),
            summary=lambda data: f"Total: R{data['total']} for {data['quantity']}",
            error="❌ Please enter a number between 1 and 10",
        )

    def test_computes_total_and_summary(self):
        result = self.make_step().handle(ctx("5", {"product": "OIL"}))
        assert result.data == {"quantity": 5, "total": "100"}
        assert result.messages == ["Total: R100 for 5"]
        assert result.next_state == "C"

    def test_out_of_range_reprompts(self):
        result = self.make_step().handle(ctx("15"))
        assert result.next_state is None
        assert result.messages == ["❌ Please enter a number between 1 and 10"]


class TestDistanceStep:
    def test_prices_distance(self):
        step = DistanceStep(
            state="D",
            next_state="C",
            base=Decimal("50"),
            per_km=Decimal("12.5"),
            maximum_km=Decimal("500"),
            summary=lambda data: f"R{data['total']}",
            error="err",
        )
        result = step.handle(ctx("12.5"))
        assert result.data == {"distanceKm": "12.5", "total": "206.25"}
        assert result.messages == ["R206.25"]


class TestAcknowledgeStep:
    def test_yes_continues(self):
        step = AcknowledgeStep(state="A", next_state="B", followup=("where are you?",))
        result = step.handle(ctx("yes"))
        assert result.next_state == "B"
        assert result.messages == ["where are you?"]

    def test_anything_else_goes_idle(self):
        step = AcknowledgeStep(state="A", next_state="B", followup=("where are you?",))
        result = step.handle(ctx("maybe"))
        assert result.next_state == "IDLE"
        assert result.messages == ["Type MENU to see other services."]


class TestLocationStep:
    def make_step(self):
        return LocationStep(state="L", next_state="P", followup=("pay here", PAID_HINT))

    def test_skip_marks_location_pending(self):
        result = self.make_step().handle(ctx("skip"))
        assert result.data == {"locationPending": True}
        assert result.messages == ["pay here", PAID_HINT]

    def test_location_is_saved(self):
        event = {"has_location": True, "location": {"lat": -26.2, "lng": 28.04}}
        result = self.make_step().handle(ctx("", **event))
        assert result.data == {"location": {"lat": -26.2, "lng": 28.04}, "locationPending": False}
        assert result.messages[0] == "✅ Location saved!\n\npay here"
        assert result.next_state == "P"

    def test_plain_text_reprompts(self):
        result = self.make_step().handle(ctx("I'm at home"))
        assert result.next_state is None
        assert result.messages == ["📍 Please send your location OR type SKIP"]


class TestConfirmPaymentProof:
    def test_confirm_yes_and_no(self):
        step = ConfirmStep(state="C", next_state="P", followup=("pay",))
        assert step.handle(ctx("YES")).next_state == "P"
        cancelled = step.handle(ctx("no"))
        assert cancelled.next_state == "IDLE"
        assert cancelled.messages == ["Order cancelled. Type MENU to start over."]

    def test_confirm_other_reply(self):
        result = ConfirmStep(state="C", next_state="P", followup=()).handle(ctx("ok"))
        assert result.messages == [YES_NO_ERROR]
        assert result.next_state is None

    def test_payment_waits_silently(self):
        step = PaymentStep(state="P", next_state="R")
        result = step.handle(ctx("when?"))
        assert result.messages == []
        assert result.next_state is None
        assert result.data == {}

    def test_payment_paid_asks_for_proof(self):
        result = PaymentStep(state="P", next_state="R").handle(ctx("paid"))
        assert result.next_state == "R"
        assert result.messages == ["📸 Please send proof of payment"]

    def test_proof_requires_image(self):
        step = ProofStep(state="R")
        assert step.handle(ctx("here it is")).messages == [IMAGE_ERROR]
        assert step.handle(ctx("", has_image=True)).complete


class TestPaymentChain:
    def test_builds_confirm_payment_proof(self, bot_settings):
        steps = payment_chain("RIDE", bank_payment_instructions(bot_settings))
        assert [step.state for step in steps] == ["RIDE_CONFIRM", "RIDE_PAYMENT", "RIDE_PROOF"]
        assert steps[0].followup[1] == PAID_HINT
        assert "Bank: FNB" in steps[0].followup[0]
