"""Transport lifecycle: open, reconnect with linear backoff, stop on logout."""

import asyncio
from typing import Any, Callable, Optional

from bookingbot.logging_config import get_logger
from bookingbot.services.alert_service import alert_critical
from bookingbot.services.transport import Connection, ConnectionStatus, ConnectionUpdate, InboundMessage

logger = get_logger("connection_supervisor")

RECONNECT_STEP_SECONDS = 5
MAX_RECONNECT_DELAY_SECONDS = 30

Scheduler = Callable[[float, Callable[[], None]], Any]


def reconnect_delay(retry_count: int) -> int:
    """Seconds to wait before reconnect attempt ``retry_count`` (1-based)."""
    return min(MAX_RECONNECT_DELAY_SECONDS, retry_count * RECONNECT_STEP_SECONDS)


def _call_later(delay: float, callback: Callable[[], None]):
    return asyncio.get_running_loop().call_later(delay, callback)


class ConnectionSupervisor:
    """Owns the current Connection and routes its messages while it is open.

    ``connect`` builds a fresh Connection for every attempt. ``scheduler`` is
    ``(delay_seconds, callback) -> handle`` and defaults to the running event
    loop's ``call_later``.
    """

    def __init__(
        self,
        connect: Callable[[], Connection],
        on_message: Callable[[Connection, InboundMessage], Any],
        scheduler: Optional[Scheduler] = None,
        alert: Callable[[str, Optional[dict]], Any] = alert_critical,
    ):
        self.connect = connect
        self.on_message = on_message
        self.scheduler = scheduler or _call_later
        self.alert = alert

        self.connection: Optional[Connection] = None
        self.status = ConnectionStatus.CLOSED
        self.retry_count = 0
        self.ready = False
        self.logged_out = False
        self.last_status_code: Optional[int] = None
        self.latest_qr: Optional[str] = None
        self._pending = None
        self._stopped = False

    def start(self) -> Connection:
        if self.connection is not None:
            self.connection.close()

        self._pending = None
        self._stopped = False
        self.logged_out = False
        connection = self.connect()
        self.connection = connection
        self.status = ConnectionStatus.CONNECTING
        self.ready = False
        connection.on_message(lambda message: self._on_message(connection, message))
        connection.on_connection_update(lambda update: self._on_update(connection, update))
        logger.info(f"Opening connection (attempt after {self.retry_count} retries)")
        connection.open()
        return connection

    def stop(self) -> None:
        self._stopped = True
        if self._pending is not None and hasattr(self._pending, "cancel"):
            self._pending.cancel()
        self._pending = None
        if self.connection is not None:
            self.connection.close()
        self.ready = False
        self.status = ConnectionStatus.CLOSED
        logger.info("Connection supervisor stopped")

    def handle_update(self, update: ConnectionUpdate) -> None:
        if update.qr:
            self.latest_qr = update.qr
            logger.info("📱 New pairing QR code available, scan it with WhatsApp", extra={"context": {"qr": update.qr}})

        if update.status == ConnectionStatus.CONNECTING:
            self.status = ConnectionStatus.CONNECTING
            self.ready = False
        elif update.status == ConnectionStatus.OPEN:
            self.status = ConnectionStatus.OPEN
            self.retry_count = 0
            self.ready = True
            self.latest_qr = None
            self.last_status_code = None
            logger.info("✅ Connected and ready")
        elif update.status == ConnectionStatus.CLOSED:
            self._on_closed(update)

    def _on_closed(self, update: ConnectionUpdate) -> None:
        self.status = ConnectionStatus.CLOSED
        self.ready = False
        self.last_status_code = update.status_code
        logger.warning(f"❌ Connection closed. Status: {update.status_code}")

        if update.logged_out:
            self.logged_out = True
            logger.error("Logged out of WhatsApp, not reconnecting. Re-pair the device to continue.")
            self.alert("WhatsApp session logged out", {"status_code": update.status_code})
            return

        if self._stopped:
            return

        self.retry_count += 1
        delay = reconnect_delay(self.retry_count)
        logger.info(f"🔄 Reconnecting in {delay}s...", extra={"context": {"retry_count": self.retry_count}})
        self._pending = self.scheduler(delay, self._reconnect)

    def _reconnect(self) -> None:
        self._pending = None
        if self._stopped or self.logged_out:
            return
        self.start()

    def _on_update(self, connection: Connection, update: ConnectionUpdate) -> None:
        if connection is not self.connection:
            logger.debug("Ignoring update from a replaced connection")
            return
        self.handle_update(update)

    def _on_message(self, connection: Connection, message: InboundMessage) -> None:
        if connection is not self.connection or not self.ready:
            logger.info(
                "Dropping message while connection is not ready",
                extra={"context": {"chat_id": message.chat_id, "status": self.status.value}},
            )
            return
        self.on_message(connection, message)

    def snapshot(self) -> dict:
        return {
            "status": self.status.value,
            "ready": self.ready,
            "logged_out": self.logged_out,
            "retry_count": self.retry_count,
            "last_status_code": self.last_status_code,
            "qr": self.latest_qr,
        }
