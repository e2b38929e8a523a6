"""Order completion: receipt, customer confirmation, admin notification."""

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional, Union

from pydantic import ValidationError

from bookingbot.logging_config import chat_logger
from bookingbot.services.errors import AdminNotifyFailure, CompletionFailure, SendFailure
from bookingbot.services.flow_catalog import FlowCatalog, render
from bookingbot.services.receipt_service import ReceiptRequest
from bookingbot.services.session_store import UserSession, now_ms

WHATSAPP_USER_SUFFIX = "@s.whatsapp.net"


def generate_order_number(prefix: str = "ORD", clock: Callable[[], int] = now_ms) -> str:
    """Prefix plus epoch milliseconds. Two completions in the same millisecond collide."""
    return f"{prefix}{clock()}"


def admin_jid(admin_number: str) -> str:
    number = admin_number.strip()
    return number if "@" in number else f"{number}{WHATSAPP_USER_SUFFIX}"


@dataclass
class Order:
    order_number: str
    service_name: str
    amount: str
    customer_name: str
    customer_id: str
    detail_lines: list[str] = field(default_factory=list)
    admin_service_name: Optional[str] = None
    created_at: Optional[datetime] = None

    @property
    def customer_phone(self) -> str:
        return self.customer_id if self.customer_id.startswith("+") else f"+{self.customer_id}"

    def admin_caption(self) -> str:
        lines = [
            "🔔 *NEW ORDER*",
            "",
            f"Customer: {self.customer_phone}",
            f"Service: {self.admin_service_name or self.service_name}",
            *self.detail_lines,
            f"Amount: R{self.amount}",
            f"Order: {self.order_number}",
            f"Time: {(self.created_at or datetime.now()).strftime('%Y-%m-%d %H:%M:%S')}",
        ]
        return "\n".join(lines)


class OrderCompletionCoordinator:
    """Runs the completion sequence for a flow whose proof step accepted an image.

    Every stage may raise. The caller resets the session to IDLE only after
    ``complete`` returns, so a failure leaves the user in the proof step and
    the next image retries the whole sequence.
    """

    def __init__(
        self,
        catalog: FlowCatalog,
        receipt_generator,
        admin_number: str = "",
        order_prefix: str = "ORD",
        clock: Callable[[], int] = now_ms,
    ):
        self.catalog = catalog
        self.receipt_generator = receipt_generator
        self.admin_number = admin_number or ""
        self.order_prefix = order_prefix
        self.clock = clock

    def build_order(self, session: UserSession, flow_key: str) -> Order:
        flow = self.catalog.flow(flow_key)
        if flow is None:
            raise CompletionFailure("-", "lookup", f"unknown flow {flow_key}")

        order_number = generate_order_number(self.order_prefix, self.clock)
        try:
            flow.record.model_validate(session.data)
        except ValidationError as e:
            raise CompletionFailure(order_number, "validate", str(e)) from e

        data = dict(session.data)
        template = flow.order
        return Order(
            order_number=order_number,
            service_name=render(template.service_name, data),
            amount=render(template.amount, data),
            customer_name=data["name"],
            customer_id=session.user_id,
            detail_lines=[render(line, data) for line in template.details],
            admin_service_name=render(template.admin_service_name, data) if template.admin_service_name else None,
            created_at=datetime.fromtimestamp(self.clock() / 1000),
        )

    def complete(self, connection, session: UserSession, flow_key: str, chat_id: str) -> Order:
        log = chat_logger("order_service", session.user_id)
        order = self.build_order(session, flow_key)
        flow = self.catalog.flow(flow_key)
        log.info(f"Completing order {order.order_number}", context={"flow": flow_key})

        try:
            receipt = self.receipt_generator.generate(
                ReceiptRequest(
                    order_number=order.order_number,
                    service_name=order.service_name,
                    details=list(order.detail_lines),
                    amount=order.amount,
                    customer_name=order.customer_name,
                    branding=self.catalog.branding,
                    issued_at=order.created_at,
                )
            )
            image = self._receipt_bytes(receipt)
        except Exception as e:
            log.error(f"Receipt generation failed for {order.order_number}: {e}")
            raise CompletionFailure(order.order_number, "receipt", str(e)) from e
        log.info(f"Receipt generated for {order.order_number}", context={"bytes": len(image)})

        caption = render(flow.order.customer_caption, session.data)
        try:
            connection.send_image(chat_id, image, caption)
        except SendFailure as e:
            log.error(f"Receipt delivery failed for {order.order_number}: {e}")
            raise CompletionFailure(order.order_number, "customer_send", str(e)) from e
        log.info(f"Receipt sent for {order.order_number}")

        self.notify_admin(connection, order, image)
        return order

    def notify_admin(self, connection, order: Order, image: bytes) -> bool:
        """Send the receipt to the admin. A blank admin number is a skip, not a failure."""
        log = chat_logger("order_service", order.customer_id)
        if not self.admin_number.strip():
            log.info("Skipping admin notification: ADMIN_NUMBER is empty")
            return False

        jid = admin_jid(self.admin_number)
        try:
            connection.send_image(jid, image, order.admin_caption())
        except SendFailure as e:
            log.error(f"Admin notification failed for {order.order_number}: {e}")
            raise AdminNotifyFailure(order.order_number, str(e)) from e
        log.info(f"Admin notified for {order.order_number}", context={"admin": jid})
        return True

    @staticmethod
    def _receipt_bytes(receipt: Union[str, Path, bytes]) -> bytes:
        if isinstance(receipt, (bytes, bytearray)):
            return bytes(receipt)
        return Path(receipt).read_bytes()
