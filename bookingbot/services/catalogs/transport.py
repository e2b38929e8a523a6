"""Transportation services: rides and parcels priced by distance, shuttle seats at a fixed fare."""

from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, Field

from bookingbot.services.flow_catalog import Flow, FlowCatalog, MenuOption, OrderTemplate, ReceiptBranding
from bookingbot.services.flow_steps import (
    ChoiceStep,
    DistanceStep,
    QuantityStep,
    TextStep,
    bank_payment_instructions,
    payment_chain,
)
from bookingbot.services.pricing import format_rand

MAX_TRIP_KM = Decimal("500")

SHUTTLE_ROUTES = {
    "AIRPORT": "City Centre ⇄ Airport",
    "CAMPUS": "City Centre ⇄ University Campus",
}

DISTANCE_ERROR = "❌ Please enter the distance in km (e.g., 12 or 12.5)"


class TripOrder(BaseModel):
    name: str
    pickupLocation: str
    dropoffLocation: str
    distanceKm: str
    total: str


class ShuttleBooking(BaseModel):
    name: str
    route: Literal["AIRPORT", "CAMPUS"]
    quantity: int = Field(ge=1, le=14)
    total: str


def _trip_summary(title: str):
    def summary(data: dict) -> str:
        return (
            f"🧾 *{title} SUMMARY*\n\n"
            f"From: {data.get('pickupLocation')}\n"
            f"To: {data.get('dropoffLocation')}\n"
            f"Distance: {data['distanceKm']} km\n"
            f"Total: R{data['total']}\n\n"
            "Confirm? Reply: YES or NO"
        )

    return summary


def _shuttle_summary(data: dict) -> str:
    return (
        "🚌 *SHUTTLE BOOKING*\n\n"
        f"Route: {SHUTTLE_ROUTES.get(data.get('route'), data.get('route'))}\n"
        f"Seats: {data['quantity']}\n"
        f"Total: R{data['total']}\n\n"
        "Confirm? Reply: YES or NO"
    )


def _distance_flow(key: str, title: str, service_name: str, base: Decimal, per_km: Decimal, instructions: str) -> Flow:
    """Pickup → drop-off → distance → confirm → payment → proof."""
    return Flow(
        key=key,
        steps=(
            TextStep(
                state=f"{key}_PICKUP",
                field="pickupLocation",
                next_state=f"{key}_DROPOFF",
                error="📍 Please type the pickup address",
                followup=("🏁 Where to? Type the drop-off address",),
            ),
            TextStep(
                state=f"{key}_DROPOFF",
                field="dropoffLocation",
                next_state=f"{key}_DISTANCE",
                error="🏁 Please type the drop-off address",
                followup=("📏 Approximately how far is the trip? (Reply with km, e.g. 12.5)",),
            ),
            DistanceStep(
                state=f"{key}_DISTANCE",
                next_state=f"{key}_CONFIRM",
                base=base,
                per_km=per_km,
                maximum_km=MAX_TRIP_KM,
                summary=_trip_summary(title),
                error=DISTANCE_ERROR,
            ),
        )
        + payment_chain(key, instructions),
        record=TripOrder,
        order=OrderTemplate(
            service_name=service_name,
            amount="{total}",
            details=(
                "From: {pickupLocation}",
                "To: {dropoffLocation}",
                "Distance: {distanceKm} km",
            ),
            customer_caption=(
                "✅ *BOOKING CONFIRMED*\n\n📄 Here is your receipt.\n\n🚗 Our driver will contact you shortly."
            ),
        ),
    )


def build_catalog(settings) -> FlowCatalog:
    instructions = bank_payment_instructions(settings)
    seat_price = format_rand(settings.shuttle_seat_price)

    ride = _distance_flow(
        "RIDE", "RIDE", "Ride Booking", settings.ride_base_fare, settings.ride_per_km, instructions
    )
    parcel = _distance_flow(
        "PARCEL", "PARCEL DELIVERY", "Parcel Delivery", settings.parcel_base_fee, settings.parcel_per_km, instructions
    )

    routes = "\n".join(f"• {key} - {label}" for key, label in SHUTTLE_ROUTES.items())
    shuttle = Flow(
        key="SHUTTLE",
        steps=(
            ChoiceStep(
                state="SHUTTLE_ROUTE",
                field="route",
                choices=tuple(SHUTTLE_ROUTES),
                next_state="SHUTTLE_SEATS",
                error=f"❌ Please reply with {' or '.join(SHUTTLE_ROUTES)}",
                followup=("💺 How many seats? (Reply with number 1-14)",),
            ),
            QuantityStep(
                state="SHUTTLE_SEATS",
                next_state="SHUTTLE_CONFIRM",
                minimum=1,
                maximum=14,
                unit_price=lambda data: settings.shuttle_seat_price,
                summary=_shuttle_summary,
                error="❌ Please enter a number between 1 and 14",
            ),
        )
        + payment_chain("SHUTTLE", instructions),
        record=ShuttleBooking,
        order=OrderTemplate(
            service_name="Shuttle Seats",
            amount="{total}",
            details=(
                lambda data: f"Route: {SHUTTLE_ROUTES[data['route']]}",
                "Seats: {quantity}",
            ),
            customer_caption=(
                "✅ *BOOKING CONFIRMED*\n\n📄 Here is your receipt.\n\n🚌 Show this receipt when boarding."
            ),
        ),
    )

    options = (
        MenuOption(
            key="1",
            label="Book a Ride",
            flow="RIDE",
            messages=(
                "🚗 *RIDE BOOKING*\n\n"
                "Door-to-door trip in your area\n"
                f"💰 {format_rand(settings.ride_base_fare)} + {format_rand(settings.ride_per_km)}/km",
                "📍 Where should we pick you up? Type the address",
            ),
        ),
        MenuOption(
            key="2",
            label="Parcel Delivery",
            flow="PARCEL",
            messages=(
                "📦 *PARCEL DELIVERY*\n\n"
                "Same-day delivery\n"
                f"💰 {format_rand(settings.parcel_base_fee)} + {format_rand(settings.parcel_per_km)}/km",
                "📍 Where should we collect the parcel? Type the address",
            ),
        ),
        MenuOption(
            key="3",
            label="Shuttle Seats",
            flow="SHUTTLE",
            messages=(
                f"🚌 *SHUTTLE SERVICE*\n\nScheduled shared shuttle\n💰 Price: {seat_price} per seat",
                f"🗺️ Choose a route:\n\n{routes}",
            ),
        ),
    )

    return FlowCatalog(
        name="transport",
        title=f"🚐 *Welcome to {settings.company_name}*",
        options=options,
        flows=(ride, parcel, shuttle),
        branding=ReceiptBranding(
            issuer_name=settings.company_name,
            tagline="Your Trusted Transport Partner",
            support_contact="contact@molotech.co.za",
            header_color="#1e40af",
        ),
    )
