import os
from dataclasses import dataclass
from typing import Callable, Optional

from fastapi import FastAPI, HTTPException, Request, status

from bookingbot.config import Settings, settings
from bookingbot.logging_config import get_logger, setup_logging
from bookingbot.routers import webhook
from bookingbot.schemas.webhook import ConnectionInfo
from bookingbot.services.catalogs import load_catalog
from bookingbot.services.chatflow_service import ChatflowConnection
from bookingbot.services.connection_supervisor import ConnectionSupervisor, Scheduler
from bookingbot.services.conversation_router import ConversationRouter
from bookingbot.services.flow_catalog import FlowCatalog
from bookingbot.services.message_service import MessageHandler
from bookingbot.services.order_service import OrderCompletionCoordinator
from bookingbot.services.receipt_service import ReceiptGenerator
from bookingbot.services.session_store import SessionStore, create_session_store
from bookingbot.services.transport import Connection

setup_logging(settings.log_level)

logger = get_logger("main")


@dataclass
class BotRuntime:
    catalog: FlowCatalog
    store: SessionStore
    handler: MessageHandler
    supervisor: ConnectionSupervisor


def build_runtime(
    config: Settings = settings,
    connect: Optional[Callable[[], Connection]] = None,
    store: Optional[SessionStore] = None,
    receipt_generator=None,
    scheduler: Optional[Scheduler] = None,
) -> BotRuntime:
    """Wire catalog, store, router, completion and transport from settings."""
    catalog = load_catalog(config.catalog, config)
    store = store or create_session_store(
        config.session_backend,
        state_file=config.state_file,
        database_url=config.database_url,
        timeout_minutes=config.session_timeout_minutes,
    )
    coordinator = OrderCompletionCoordinator(
        catalog=catalog,
        receipt_generator=receipt_generator or ReceiptGenerator(config.receipt_dir, branding=catalog.branding),
        admin_number=config.admin_number,
        order_prefix=config.order_prefix,
    )
    if connect is None and not getattr(config, "media_signing_secret", None):
        logger.error("MEDIA_SIGNING_SECRET is not set: receipts cannot be sent, so no order can complete")
    handler = MessageHandler(store, ConversationRouter(catalog), coordinator)
    supervisor = ConnectionSupervisor(
        connect=connect or (lambda: ChatflowConnection.from_settings(config)),
        on_message=handler.handle,
        scheduler=scheduler,
    )
    logger.info(
        f"Bot runtime built: catalog={catalog.name}, backend={config.session_backend}",
        extra={"context": {"states": sorted(catalog.all_states)}},
    )
    return BotRuntime(catalog=catalog, store=store, handler=handler, supervisor=supervisor)


def _is_env_enabled(value: str | None, default: bool = True) -> bool:
    if value is None:
        return default
    return value.strip().lower() not in {"0", "false", "no", "off"}


def _is_autostart_enabled() -> bool:
    if os.environ.get("PYTEST_CURRENT_TEST"):
        return False
    return _is_env_enabled(os.environ.get("BOT_AUTOSTART"), default=True)


app = FastAPI(
    title="Booking Bot API",
    description="WhatsApp ordering and booking assistant",
    version="0.1.0",
)

app.include_router(webhook.router)


@app.on_event("startup")
async def start_bot() -> None:
    if not _is_autostart_enabled():
        return
    runtime = build_runtime()
    app.state.runtime = runtime
    runtime.supervisor.start()


@app.on_event("shutdown")
async def stop_bot() -> None:
    runtime = getattr(app.state, "runtime", None)
    if runtime is None:
        return
    runtime.supervisor.stop()
    app.state.runtime = None


@app.get("/health")
async def health(request: Request):
    runtime = getattr(request.app.state, "runtime", None)
    return {
        "status": "ok",
        "catalog": runtime.catalog.name if runtime else None,
        "ready": runtime.supervisor.ready if runtime else False,
    }


@app.get("/connection", response_model=ConnectionInfo)
async def connection_status(request: Request):
    """Transport status plus the latest pairing QR, if any."""
    runtime = getattr(request.app.state, "runtime", None)
    if runtime is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Bot is not running")
    return ConnectionInfo(**runtime.supervisor.snapshot())
