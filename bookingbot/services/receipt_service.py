"""PNG receipts rendered with Pillow."""

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Optional

from PIL import Image, ImageDraw, ImageFont

from bookingbot.logging_config import get_logger
from bookingbot.services.flow_catalog import ReceiptBranding

logger = get_logger("receipt_service")

WIDTH = 800
BASE_HEIGHT = 1000
DETAIL_LINE_HEIGHT = 30

WHITE = "#ffffff"
LABEL = "#6b7280"
VALUE = "#111827"
MUTED = "#374151"
DIVIDER = "#d1d5db"
AMOUNT = "#059669"
PAID = "#10b981"

FONT_REGULAR = "DejaVuSans.ttf"
FONT_BOLD = "DejaVuSans-Bold.ttf"


@dataclass
class ReceiptRequest:
    order_number: str
    service_name: str
    amount: str
    customer_name: str
    details: list[str] = field(default_factory=list)
    branding: Optional[ReceiptBranding] = None
    issued_at: Optional[datetime] = None


def _font(size: int, bold: bool = False):
    try:
        return ImageFont.truetype(FONT_BOLD if bold else FONT_REGULAR, size)
    except OSError:
        return ImageFont.load_default(size=size)


class ReceiptGenerator:
    """Draws a one-page receipt and writes it as ``receipt_<order>.png``."""

    def __init__(self, output_dir: str = "receipts", branding: Optional[ReceiptBranding] = None):
        self.output_dir = Path(output_dir)
        self.branding = branding

    def render(self, request: ReceiptRequest) -> Image.Image:
        branding = request.branding or self.branding or ReceiptBranding(issuer_name="")
        details = [line for line in request.details if line]
        height = BASE_HEIGHT + max(0, len(details) - 1) * DETAIL_LINE_HEIGHT

        image = Image.new("RGB", (WIDTH, height), WHITE)
        draw = ImageDraw.Draw(image)
        center = WIDTH // 2

        draw.rectangle((0, 0, WIDTH, 180), fill=branding.header_color)
        draw.text((center, 70), branding.issuer_name.upper(), fill=WHITE, font=_font(48, bold=True), anchor="ms")
        if branding.tagline:
            draw.text((center, 110), branding.tagline, fill=WHITE, font=_font(24), anchor="ms")

        draw.text((center, 250), "RECEIPT", fill=branding.header_color, font=_font(36, bold=True), anchor="ms")
        draw.text((center, 290), f"Order #{request.order_number}", fill=MUTED, font=_font(24), anchor="ms")
        draw.line((50, 320, WIDTH - 50, 320), fill=DIVIDER, width=2)

        y = 370
        self._row(draw, y, "Customer:", request.customer_name)
        y += 50
        self._row(draw, y, "Service:", request.service_name)

        if details:
            y += 50
            draw.text((80, y), "Details:", fill=LABEL, font=_font(22), anchor="ls")
            for index, line in enumerate(details):
                draw.text((250, y + index * DETAIL_LINE_HEIGHT), line, fill=VALUE, font=_font(20), anchor="ls")
            y += (len(details) - 1) * DETAIL_LINE_HEIGHT

        y += 50
        issued = request.issued_at or datetime.now()
        self._row(draw, y, "Date:", issued.strftime("%d %b %Y"))

        y += 50
        draw.line((50, y, WIDTH - 50, y), fill=DIVIDER, width=2)

        y += 70
        draw.text((80, y), "TOTAL AMOUNT:", fill=branding.header_color, font=_font(28), anchor="ls")
        draw.text((WIDTH - 80, y), f"R{request.amount}", fill=AMOUNT, font=_font(48, bold=True), anchor="rs")

        y += 80
        draw.rectangle((50, y - 35, WIDTH - 50, y + 25), fill=PAID)
        draw.text((center, y), "✓ PAID", fill=WHITE, font=_font(32, bold=True), anchor="ms")

        y += 100
        if branding.issuer_name:
            draw.text((center, y), branding.thank_you, fill=LABEL, font=_font(18), anchor="ms")
        y += 35
        draw.text((center, y), "Keep this receipt for your records", fill=LABEL, font=_font(16), anchor="ms")
        if branding.support_contact:
            y += 35
            draw.text((center, y), f"For support: {branding.support_contact}", fill=LABEL, font=_font(16), anchor="ms")

        return image

    def generate(self, request: ReceiptRequest) -> Path:
        image = self.render(request)
        self.output_dir.mkdir(parents=True, exist_ok=True)
        path = self.output_dir / f"receipt_{request.order_number}.png"
        image.save(path, format="PNG")
        logger.info(f"Receipt written to {path}", extra={"context": {"order_number": request.order_number}})
        return path

    @staticmethod
    def _row(draw: ImageDraw.ImageDraw, y: int, label: str, value: str) -> None:
        draw.text((80, y), label, fill=LABEL, font=_font(22), anchor="ls")
        draw.text((250, y), value or "", fill=VALUE, font=_font(22, bold=True), anchor="ls")
