from decimal import Decimal
from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    catalog: str = "prayer"

    # Prayer ministry catalog
    church_name: str = "Fountain of Prayer Ministries"
    price_one_on_one: Decimal = Decimal("500")
    price_oil: Decimal = Decimal("100")
    price_salt: Decimal = Decimal("50")
    price_house_visit: Decimal = Decimal("1500")

    # Transport catalog
    company_name: str = "Molo-Tech Transportation"
    ride_base_fare: Decimal = Decimal("50")
    ride_per_km: Decimal = Decimal("12.5")
    parcel_base_fee: Decimal = Decimal("35")
    parcel_per_km: Decimal = Decimal("8")
    shuttle_seat_price: Decimal = Decimal("120")

    # Payment instructions
    bank_name: str = ""
    account_number: str = ""
    branch_code: str = ""
    paysharp_number: str = ""

    admin_number: str = ""

    session_backend: str = "json"
    state_file: str = "state.json"
    database_url: str = "sqlite:///./bookingbot.db"
    session_timeout_minutes: int = 60
    order_prefix: str = "ORD"

    chatflow_api_url: str = "https://app.chatflow.kz/api/v1/send-text"
    chatflow_media_base_url: str = "https://app.chatflow.kz/api/v1"
    chatflow_status_url: Optional[str] = None
    chatflow_token: Optional[str] = None
    chatflow_instance_id: Optional[str] = None
    chatflow_timeout_seconds: float = 30.0

    media_storage_dir: str = "media"
    media_signing_secret: Optional[str] = None
    media_url_ttl_seconds: int = 3600
    public_base_url: str = "http://localhost:8000"
    receipt_dir: str = "receipts"

    alert_bot_token: Optional[str] = None
    alert_chat_id: Optional[str] = None

    webhook_secret: Optional[str] = None
    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        extra = "ignore"


settings = Settings()
