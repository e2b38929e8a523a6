import hashlib
import hmac
import re
import time
from pathlib import Path
from typing import Optional, Union
from urllib.parse import quote

import httpx
from pydantic import ValidationError

from bookingbot.config import settings
from bookingbot.logging_config import get_logger
from bookingbot.schemas.webhook import ConnectionEvent, WebhookBody
from bookingbot.services.alert_service import alert_critical
from bookingbot.services.errors import SendFailure
from bookingbot.services.transport import (
    LOGGED_OUT_STATUS,
    Connection,
    ConnectionStatus,
    ConnectionUpdate,
    InboundMessage,
)

logger = get_logger("chatflow_service")

OUTBOUND_MEDIA_DIR = "outbound"

IMAGE_MESSAGE_TYPES = {"image", "photo", "imagemessage"}
LOCATION_MESSAGE_TYPES = {"location", "locationmessage"}

OPEN_STATUSES = {"open", "connected", "authenticated", "ready"}
LOGGED_OUT_STATUSES = {"logged_out", "loggedout"}
CLOSED_STATUSES = {"close", "closed", "disconnected"} | LOGGED_OUT_STATUSES


def _normalize_media_path(path: str) -> str:
    normalized = (path or "").strip().lstrip("/")
    return normalized.replace("\\", "/")


def _sign_media_path(path: str, expires: int, secret: str) -> str:
    payload = f"{path}:{expires}".encode("utf-8")
    return hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()


def build_signed_media_url(relative_path: str, *, ttl_seconds: Optional[int] = None) -> Optional[str]:
    """Build signed public URL for a file under MEDIA_STORAGE_DIR."""
    if not settings.media_signing_secret:
        logger.error("MEDIA_SIGNING_SECRET not configured")
        return None
    ttl = ttl_seconds if ttl_seconds is not None else settings.media_url_ttl_seconds
    expires = int(time.time()) + max(int(ttl), 60)
    normalized_path = _normalize_media_path(relative_path)
    signature = _sign_media_path(normalized_path, expires, settings.media_signing_secret)
    quoted_path = quote(normalized_path, safe="/")
    return f"{settings.public_base_url.rstrip('/')}/media/{quoted_path}?expires={expires}&sig={signature}"


def verify_signed_media_path(relative_path: str, expires: int, signature: str) -> bool:
    if not settings.media_signing_secret:
        logger.error("MEDIA_SIGNING_SECRET not configured")
        return False
    if not signature:
        return False
    if expires < int(time.time()):
        return False
    normalized_path = _normalize_media_path(relative_path)
    expected = _sign_media_path(normalized_path, expires, settings.media_signing_secret)
    return hmac.compare_digest(expected, signature)


def coerce_remote_jid(value) -> Optional[str]:
    if not value or isinstance(value, (dict, list, tuple)):
        return None
    text = str(value).strip()
    if not text:
        return None
    if "@" in text:
        return text
    digits = re.sub(r"\D", "", text)
    if not digits:
        return None
    return f"{digits}@s.whatsapp.net"


def _first(mapping: dict, keys: tuple[str, ...]):
    for key in keys:
        value = mapping.get(key)
        if value not in (None, ""):
            return value
    return None


def normalize_chatflow_payload(payload: dict) -> Union[WebhookBody, ConnectionEvent, None]:
    """Map the gateway's webhook variants onto one schema.

    Returns a ConnectionEvent for ``connection.update`` events, a WebhookBody
    for messages, or None when the payload is neither.
    """
    event = str(payload.get("event") or payload.get("type") or "").strip().lower()
    if event in {"connection.update", "connection_update", "connection"}:
        data = payload.get("data") if isinstance(payload.get("data"), dict) else payload
        return ConnectionEvent.model_validate(data)

    body = payload.get("body")
    if not isinstance(body, dict):
        body = payload
    body = dict(body)
    metadata = dict(body.get("metadata")) if isinstance(body.get("metadata"), dict) else {}
    msg_obj = payload.get("message") if isinstance(payload.get("message"), dict) else None

    remote_jid = metadata.get("remoteJid") or _first(
        payload, ("remoteJid", "remote_jid", "jid", "from", "chatId", "phone")
    )
    remote_jid = coerce_remote_jid(remote_jid)
    if remote_jid:
        metadata["remoteJid"] = remote_jid

    if "fromMe" not in metadata and "from_me" not in metadata:
        from_me = _first(payload, ("fromMe", "from_me"))
        if from_me is not None:
            metadata["fromMe"] = from_me

    message_id = metadata.get("messageId") or _first(payload, ("messageId", "message_id", "id"))
    if not message_id and msg_obj:
        message_id = msg_obj.get("id") or msg_obj.get("messageId")
    if message_id:
        metadata.setdefault("messageId", str(message_id))

    sender = metadata.get("sender") or _first(payload, ("sender", "pushName", "name"))
    if sender:
        metadata.setdefault("sender", sender)

    message = body.get("message")
    if not isinstance(message, str) or not message.strip():
        message = _first(payload, ("text", "body", "message_text", "content"))
        if not isinstance(message, str) and msg_obj:
            message = _first(msg_obj, ("text", "body", "conversation", "content"))
        body["message"] = message if isinstance(message, str) else None

    location = body.get("location")
    if not isinstance(location, dict):
        location = None
        media_data = body.get("mediaData") if isinstance(body.get("mediaData"), dict) else {}
        for source in (payload, msg_obj or {}, media_data):
            candidate = source.get("location") or source.get("locationMessage")
            if isinstance(candidate, dict):
                location = candidate
                break
            if source.get("latitude") is not None and source.get("longitude") is not None:
                location = {"lat": source["latitude"], "lng": source["longitude"]}
                break
    body["location"] = location

    body["metadata"] = metadata
    return WebhookBody.model_validate(body)


def inbound_from_body(body: WebhookBody) -> Optional[InboundMessage]:
    metadata = body.metadata
    if not metadata or not metadata.remoteJid:
        return None

    message_type = (body.messageType or "text").strip().lower()
    media = body.mediaData if isinstance(body.mediaData, dict) else None
    mimetype = str((media or {}).get("mimetype") or (media or {}).get("mime") or "")
    has_image = message_type in IMAGE_MESSAGE_TYPES or mimetype.startswith("image/")

    location = None
    if body.location is not None:
        location = {"lat": body.location.lat, "lng": body.location.lng}
    elif message_type in LOCATION_MESSAGE_TYPES:
        logger.warning("Location message without coordinates", extra={"context": {"jid": metadata.remoteJid}})

    return InboundMessage(
        chat_id=metadata.remoteJid,
        from_me=metadata.fromMe,
        text="" if has_image else (body.message or ""),
        has_image=has_image,
        location=location,
        media=media,
        message_id=metadata.messageId,
        sender=metadata.sender,
    )


def connection_update_from_event(event: ConnectionEvent) -> ConnectionUpdate:
    raw = (event.connection or "").strip().lower()
    status = None
    if raw in OPEN_STATUSES:
        status = ConnectionStatus.OPEN
    elif raw in CLOSED_STATUSES:
        status = ConnectionStatus.CLOSED
    elif raw == "connecting":
        status = ConnectionStatus.CONNECTING

    status_code = event.statusCode
    if raw in LOGGED_OUT_STATUSES and status_code is None:
        # gateways that report logout by name only
        status_code = LOGGED_OUT_STATUS
    return ConnectionUpdate(status=status, status_code=status_code, qr=event.qr)


class ChatflowConnection(Connection):
    """WhatsApp session behind the ChatFlow HTTP gateway.

    Outbound traffic is plain HTTP GET calls; inbound traffic arrives on the
    webhook route and is fed in through ``receive``.
    """

    def __init__(
        self,
        api_url: str,
        media_base_url: str,
        token: Optional[str],
        instance_id: Optional[str],
        status_url: Optional[str] = None,
        timeout: float = 30.0,
        media_dir: str = "media",
    ):
        super().__init__()
        self.api_url = api_url
        self.media_base_url = media_base_url
        self.token = token
        self.instance_id = instance_id
        self.status_url = status_url
        self.timeout = timeout
        self.media_dir = Path(media_dir)
        self.closed = False

    @classmethod
    def from_settings(cls, config=settings) -> "ChatflowConnection":
        return cls(
            api_url=config.chatflow_api_url,
            media_base_url=config.chatflow_media_base_url,
            token=config.chatflow_token,
            instance_id=config.chatflow_instance_id,
            status_url=config.chatflow_status_url,
            timeout=config.chatflow_timeout_seconds,
            media_dir=config.media_storage_dir,
        )

    def open(self) -> None:
        self.closed = False
        self.emit_update(ConnectionUpdate(status=ConnectionStatus.CONNECTING))
        if not self.status_url:
            logger.info("No CHATFLOW_STATUS_URL configured, treating gateway as connected")
            self.emit_update(ConnectionUpdate(status=ConnectionStatus.OPEN))
            return

        try:
            with httpx.Client(timeout=self.timeout) as client:
                response = client.get(self.status_url, params={"token": self.token, "instance_id": self.instance_id})
            event = ConnectionEvent.model_validate(response.json())
        except Exception as e:
            logger.error(f"ChatFlow status check failed: {e}")
            self.emit_update(ConnectionUpdate(status=ConnectionStatus.CLOSED))
            return

        update = connection_update_from_event(event)
        if update.status is None and response.status_code != 200:
            update = ConnectionUpdate(status=ConnectionStatus.CLOSED, status_code=response.status_code, qr=update.qr)
        logger.info(f"ChatFlow status: {update.status}, code={update.status_code}, qr={'yes' if update.qr else 'no'}")
        self.emit_update(update)

    def close(self) -> None:
        self.closed = True
        logger.info("ChatFlow connection closed")

    def receive(self, payload: dict) -> Optional[Union[InboundMessage, ConnectionUpdate]]:
        """Turn one webhook payload into a message or connection event and dispatch it."""
        try:
            parsed = normalize_chatflow_payload(payload)
        except ValidationError as e:
            logger.warning("Webhook payload rejected", extra={"context": {"error": str(e)}})
            return None

        if isinstance(parsed, ConnectionEvent):
            update = connection_update_from_event(parsed)
            self.emit_update(update)
            return update

        message = inbound_from_body(parsed) if parsed is not None else None
        if message is None:
            logger.info("Webhook payload missing remoteJid", extra={"context": {"keys": sorted(payload.keys())}})
            return None
        self.emit_message(message)
        return message

    def _require_credentials(self, chat_id: str) -> None:
        if not self.token or not self.instance_id:
            logger.error("ChatFlow token or instance_id is missing (CHATFLOW_TOKEN / CHATFLOW_INSTANCE_ID)")
            alert_critical("WhatsApp send failed", {"jid": chat_id, "error": "missing_chatflow_credentials"})
            raise SendFailure(chat_id, "missing ChatFlow credentials")

    def send_text(self, chat_id: str, text: str) -> None:
        self._require_credentials(chat_id)
        params = {
            "token": self.token,
            "instance_id": self.instance_id,
            "jid": chat_id,
            "msg": text,
        }
        try:
            logger.debug(f"Sending to ChatFlow: jid={chat_id}, text={text[:50]}")
            with httpx.Client(timeout=self.timeout) as client:
                response = client.get(self.api_url, params=params)
        except Exception as e:
            logger.error(f"Error sending WhatsApp message: {e}")
            alert_critical("WhatsApp send failed", {"jid": chat_id, "error": str(e)})
            raise SendFailure(chat_id, str(e)) from e

        logger.info(f"ChatFlow response: status={response.status_code}, jid={chat_id}, body={response.text[:200]}")
        if response.status_code != 200:
            raise SendFailure(chat_id, f"HTTP {response.status_code}")

    def store_media(self, image: bytes, suffix: str = ".png") -> str:
        """Write outbound bytes under the media dir; returns the path relative to it."""
        digest = hashlib.sha256(image).hexdigest()
        relative = f"{OUTBOUND_MEDIA_DIR}/{digest}{suffix}"
        target = self.media_dir / relative
        target.parent.mkdir(parents=True, exist_ok=True)
        if not target.exists():
            target.write_bytes(image)
        return relative

    def send_image(self, chat_id: str, image: bytes, caption: str) -> None:
        self._require_credentials(chat_id)
        media_url = build_signed_media_url(self.store_media(image))
        if not media_url:
            raise SendFailure(chat_id, "media signing is not configured")

        params = {
            "token": self.token,
            "instance_id": self.instance_id,
            "jid": chat_id,
            "imageurl": media_url,
            # ChatFlow rejects image requests without a non-empty caption.
            "caption": caption.strip() if caption and caption.strip() else " ",
        }
        url = f"{self.media_base_url.rstrip('/')}/send-image"
        try:
            with httpx.Client(timeout=self.timeout) as client:
                response = client.get(url, params=params)
        except Exception as e:
            logger.error(f"Error sending WhatsApp media: {e}")
            alert_critical("WhatsApp media send failed", {"jid": chat_id, "error": str(e)})
            raise SendFailure(chat_id, str(e)) from e

        logger.info(
            f"ChatFlow media response: status={response.status_code}, jid={chat_id}, body={response.text[:200]}"
        )
        if response.status_code != 200:
            raise SendFailure(chat_id, f"HTTP {response.status_code}")
        try:
            payload = response.json()
        except ValueError as e:
            raise SendFailure(chat_id, "invalid JSON from media endpoint") from e
        if not (isinstance(payload, dict) and payload.get("success")):
            raise SendFailure(chat_id, f"media endpoint reported failure: {str(payload)[:200]}")
