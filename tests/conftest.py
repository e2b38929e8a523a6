from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import Mock

import pytest

from bookingbot.services.catalogs import prayer, transport
from bookingbot.services.errors import SendFailure
from bookingbot.services.session_store import InMemorySessionStore
from bookingbot.services.transport import Connection


class FakeConnection(Connection):
    """In-memory transport that records everything sent."""

    def __init__(self):
        super().__init__()
        self.sent = []
        self.images = []
        self.fail_images_to = set()
        self.fail_texts = False
        self.opened = 0
        self.closed = 0

    def open(self):
        self.opened += 1

    def close(self):
        self.closed += 1

    def send_text(self, chat_id, text):
        if self.fail_texts:
            raise SendFailure(chat_id, "boom")
        self.sent.append((chat_id, text))

    def send_image(self, chat_id, image, caption):
        if chat_id in self.fail_images_to:
            raise SendFailure(chat_id, "boom")
        self.images.append((chat_id, image, caption))

    @property
    def texts(self):
        return [text for _, text in self.sent]


class Clock:
    def __init__(self, start_ms: int = 1_700_000_000_000):
        self.now = start_ms

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


def make_settings(**overrides):
    values = {
        "church_name": "Fountain of Prayer Ministries",
        "price_one_on_one": Decimal("500"),
        "price_oil": Decimal("20"),
        "price_salt": Decimal("50"),
        "price_house_visit": Decimal("1500"),
        "company_name": "Molo-Tech Transportation",
        "ride_base_fare": Decimal("50"),
        "ride_per_km": Decimal("12.5"),
        "parcel_base_fee": Decimal("35"),
        "parcel_per_km": Decimal("8"),
        "shuttle_seat_price": Decimal("120"),
        "bank_name": "FNB",
        "account_number": "62000000000",
        "branch_code": "250655",
        "paysharp_number": "0820000000",
    }
    values.update(overrides)
    return SimpleNamespace(**values)


@pytest.fixture
def bot_settings():
    return make_settings()


@pytest.fixture
def prayer_catalog(bot_settings):
    return prayer.build_catalog(bot_settings)


@pytest.fixture
def transport_catalog(bot_settings):
    return transport.build_catalog(bot_settings)


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def store(clock):
    return InMemorySessionStore(clock=clock)


@pytest.fixture
def connection():
    return FakeConnection()


@pytest.fixture
def receipt_generator():
    generator = Mock()
    generator.generate.return_value = b"\x89PNG fake receipt"
    return generator


@pytest.fixture
def connection_factory():
    return FakeConnection
