from pathlib import Path

from fastapi import APIRouter, HTTPException, Request, status
from fastapi.responses import FileResponse
from starlette.requests import ClientDisconnect

from bookingbot.config import settings
from bookingbot.logging_config import get_logger
from bookingbot.schemas.webhook import WebhookResponse
from bookingbot.services.chatflow_service import verify_signed_media_path
from bookingbot.services.transport import ConnectionUpdate

logger = get_logger("webhook")

router = APIRouter()


def _get_request_webhook_secret(request: Request) -> str | None:
    header_secret = request.headers.get("X-Webhook-Secret")
    if header_secret:
        return header_secret.strip()
    query_secret = request.query_params.get("webhook_secret")
    if query_secret:
        return query_secret.strip()
    return None


def _get_runtime(request: Request):
    runtime = getattr(request.app.state, "runtime", None)
    if runtime is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Bot is not running")
    return runtime


@router.get("/media/{media_path:path}")
async def serve_media(media_path: str, expires: int, sig: str):
    """Serve locally stored media via signed URLs."""
    normalized_path = (media_path or "").strip().lstrip("/")
    if not normalized_path:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing media path")
    if not verify_signed_media_path(normalized_path, expires, sig):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid or expired signature")

    base_dir = Path(settings.media_storage_dir).resolve()
    target_path = (base_dir / normalized_path).resolve()
    if base_dir not in target_path.parents:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid media path")
    if not target_path.exists() or not target_path.is_file():
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Media not found")

    return FileResponse(target_path)


@router.get("/webhook")
async def handle_webhook_get():
    """Reachability check for gateway UI; real webhooks must use POST."""
    return {"ok": True, "message": "Use POST with JSON payload"}


@router.post("/webhook", response_model=WebhookResponse)
async def handle_webhook(request: Request):
    """Inbound gateway webhook: chat messages and connection events."""
    expected_secret = (settings.webhook_secret or "").strip()
    if expected_secret:
        provided_secret = _get_request_webhook_secret(request)
        if not provided_secret or provided_secret != expected_secret:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid webhook secret")

    try:
        payload = await request.json()
    except ClientDisconnect:
        logger.info("Webhook client disconnected during read")
        return WebhookResponse(success=True, message="Client disconnected")
    except Exception as exc:
        raw = await request.body()
        if not raw or not raw.strip():
            logger.info("Webhook called with empty body")
            return WebhookResponse(success=True, message="Empty payload")
        logger.warning(
            "Webhook payload is not valid JSON",
            extra={"context": {"error": str(exc), "body_preview": raw[:200].decode("utf-8", "ignore")}},
        )
        return WebhookResponse(success=False, message="Invalid JSON payload")

    if not isinstance(payload, dict):
        return WebhookResponse(success=False, message="Invalid payload format")

    runtime = _get_runtime(request)
    connection = runtime.supervisor.connection
    if connection is None:
        logger.warning("Webhook received before the connection was started")
        return WebhookResponse(success=False, message="Connection not started")

    result = connection.receive(payload)
    if result is None:
        return WebhookResponse(success=False, message="Unrecognized payload")
    if isinstance(result, ConnectionUpdate):
        return WebhookResponse(success=True, message="Connection update processed", state=runtime.supervisor.status.value)
    if not runtime.supervisor.ready:
        return WebhookResponse(
            success=False,
            message="Connection not ready, message dropped",
            state=runtime.supervisor.status.value,
        )
    return WebhookResponse(success=True, message="Message processed")
