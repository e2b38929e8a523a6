"""Error kinds raised by the booking engine.

Rejected user input is not an exception: validators return ``Result.failure``
carrying the corrective prompt and the router re-prompts.
"""


class BookingError(Exception):
    """Base class for engine errors."""


class SendFailure(BookingError):
    def __init__(self, chat_id: str, reason: str):
        self.chat_id = chat_id
        self.reason = reason
        super().__init__(f"Send to {chat_id} failed: {reason}")


class CompletionFailure(BookingError):
    def __init__(self, order_number: str, stage: str, reason: str):
        self.order_number = order_number
        self.stage = stage
        self.reason = reason
        super().__init__(f"Order {order_number} failed at {stage}: {reason}")


class AdminNotifyFailure(CompletionFailure):
    def __init__(self, order_number: str, reason: str):
        super().__init__(order_number, "admin_notify", reason)


class UnknownCatalogError(BookingError):
    def __init__(self, name: str, available: list[str]):
        self.name = name
        super().__init__(f"Unknown catalog '{name}', expected one of: {', '.join(available)}")
