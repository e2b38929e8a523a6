"""Prayer ministry services: prophet sessions, blessed products, house visits."""

from typing import Literal, Optional

from pydantic import BaseModel, Field, model_validator

from bookingbot.services.flow_catalog import Flow, FlowCatalog, MenuOption, OrderTemplate, ReceiptBranding
from bookingbot.services.flow_steps import (
    AcknowledgeStep,
    ChoiceStep,
    LocationStep,
    QuantityStep,
    bank_payment_instructions,
    payment_chain,
    payment_followup,
    payment_tail,
)
from bookingbot.services.pricing import format_amount, format_rand

PRODUCT_NAMES = {"OIL": "Anointing Oil", "SALT": "Covenant Salt"}


class GeoPoint(BaseModel):
    lat: float
    lng: float


class OneOnOneBooking(BaseModel):
    name: str
    date: Literal["TUESDAY", "SUNDAY"]


class ProductOrder(BaseModel):
    name: str
    product: Literal["OIL", "SALT"]
    quantity: int = Field(ge=1, le=10)
    total: str


class HouseVisitBooking(BaseModel):
    name: str
    location: Optional[GeoPoint] = None
    locationPending: bool = False

    @model_validator(mode="after")
    def location_or_pending(self):
        if self.location is None and not self.locationPending:
            raise ValueError("house visit needs a location or locationPending")
        return self


def _product_info(product: str, price) -> str:
    title = "ANOINTING OIL" if product == "OIL" else "COVENANT SALT"
    return f"✨ *{title}*\n\nBlessed and prayed over\n💰 Price: {format_rand(price)} each"


def _product_summary(data: dict) -> str:
    return (
        "📦 *ORDER SUMMARY*\n\n"
        f"Product: {PRODUCT_NAMES.get(data.get('product'), data.get('product'))}\n"
        f"Quantity: {data['quantity']}\n"
        f"Total: R{data['total']}\n\n"
        "Confirm? Reply: YES or NO"
    )


def _location_line(data: dict) -> str:
    if data.get("locationPending") or not data.get("location"):
        return "Location: PENDING (customer will send later)"
    return f"Location: {data['location']['lat']}, {data['location']['lng']}"


def _house_visit_caption(data: dict) -> str:
    reminder = "Please send your location before the visit." if data.get("locationPending") else "Stay ready!"
    return f"✅ *BOOKING CONFIRMED*\n\n📄 Here is your receipt.\n\n🏠 {reminder}"


def build_catalog(settings) -> FlowCatalog:
    instructions = bank_payment_instructions(settings)
    one_on_one_price = format_amount(settings.price_one_on_one)
    house_visit_price = format_amount(settings.price_house_visit)
    unit_prices = {"OIL": settings.price_oil, "SALT": settings.price_salt}

    one_on_one = Flow(
        key="ONE_ON_ONE",
        steps=(
            ChoiceStep(
                state="ONE_ON_ONE_DATE",
                field="date",
                choices=("TUESDAY", "SUNDAY"),
                next_state="ONE_ON_ONE_PAYMENT",
                error="❌ Please reply with TUESDAY or SUNDAY",
                followup=payment_followup(instructions),
            ),
        )
        + payment_tail(
            "ONE_ON_ONE",
            proof_prompt="📸 Please send proof of payment (screenshot)",
            proof_error="❌ Please send an image (screenshot of payment)",
        ),
        record=OneOnOneBooking,
        order=OrderTemplate(
            service_name="One-on-One with Prophet",
            amount=lambda data: one_on_one_price,
            details=("Date: {date}",),
            customer_caption=(
                "✅ *PAYMENT CONFIRMED*\n\n📄 Here is your receipt.\n\n✨ Show this to admin on your visit date."
            ),
        ),
    )

    product = Flow(
        key="PRODUCT",
        steps=(
            QuantityStep(
                state="PRODUCT_QUANTITY",
                next_state="PRODUCT_CONFIRM",
                minimum=1,
                maximum=10,
                unit_price=lambda data: unit_prices[data.get("product", "OIL")],
                summary=_product_summary,
                error="❌ Please enter a number between 1 and 10",
            ),
        )
        + payment_chain("PRODUCT", instructions),
        record=ProductOrder,
        order=OrderTemplate(
            service_name=lambda data: PRODUCT_NAMES[data["product"]],
            amount="{total}",
            details=("Quantity: {quantity}",),
            customer_caption=lambda data: (
                f"✅ *ORDER CONFIRMED*\n\n📄 Here is your receipt.\n\nShow Pastor Favor {PRODUCT_NAMES[data['product']]}."
            ),
        ),
    )

    house_visit = Flow(
        key="HOUSE_VISIT",
        steps=(
            AcknowledgeStep(
                state="HOUSE_VISIT_CONFIRM",
                next_state="HOUSE_VISIT_LOCATION",
                followup=(
                    "📍 Are you home now?\n\n"
                    "✅ YES - Send your location\n"
                    "❌ NO - Type SKIP (send location later)",
                ),
            ),
            LocationStep(
                state="HOUSE_VISIT_LOCATION",
                next_state="HOUSE_VISIT_PAYMENT",
                followup=payment_followup(instructions),
            ),
        )
        + payment_tail("HOUSE_VISIT"),
        record=HouseVisitBooking,
        order=OrderTemplate(
            service_name="House Visit by Prophet",
            admin_service_name="House Visit",
            amount=lambda data: house_visit_price,
            details=(_location_line,),
            customer_caption=_house_visit_caption,
        ),
    )

    options = (
        MenuOption(
            key="1",
            label="One-on-One with Prophet",
            flow="ONE_ON_ONE",
            messages=(
                f"✨ *ONE-ON-ONE WITH PROPHET*\n\nPersonal prophetic session\n💰 Price: {format_rand(one_on_one_price)}",
                "📅 Reply with your preferred date:\n\nTUESDAY or SUNDAY",
            ),
        ),
        MenuOption(
            key="2",
            label="Anointing Oil",
            flow="PRODUCT",
            messages=(_product_info("OIL", settings.price_oil), "🔢 How many? (Reply with number 1-10)"),
            data={"product": "OIL"},
        ),
        MenuOption(
            key="3",
            label="Covenant Salt",
            flow="PRODUCT",
            messages=(_product_info("SALT", settings.price_salt), "🔢 How many? (Reply with number 1-10)"),
            data={"product": "SALT"},
        ),
        MenuOption(
            key="4",
            label="House Visit",
            flow="HOUSE_VISIT",
            messages=(
                "🏠 *HOUSE VISIT BY PROPHET*\n\n"
                "The prophet will visit your home for:\n"
                "• House blessing\n"
                "• Prayer session\n"
                "• Spiritual cleansing\n\n"
                "⏰ Duration: 1-2 hours\n"
                f"💰 Price: {format_rand(house_visit_price)}\n\n"
                "⚠️ Prophet will call 30min before arrival",
                "✅ Do you understand?\n\nReply: YES or NO",
            ),
        ),
    )

    return FlowCatalog(
        name="prayer",
        title=f"🙏 *Welcome to {settings.church_name}*",
        options=options,
        flows=(one_on_one, product, house_visit),
        branding=ReceiptBranding(
            issuer_name=settings.church_name,
            tagline="Blessed and prayed over",
            support_contact="",
            header_color="#1e40af",
        ),
    )
