"""
Chat Task Bridge - Main Application Entry Point

FastAPI application exposing the provider webhook, the Telegram webhook,
the internal cleanup trigger and read-only operator endpoints.
"""

import hmac
import logging
import sys
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Header, HTTPException, Request
from fastapi.responses import JSONResponse

from config import settings
from . import __version__
from .database import get_database
from .entrypoints import accept_webhook, dispatch_inbound, run_cleanup
from .runtime import get_runtime
from .utils.background_tasks import create_safe_task, drain_background_tasks, get_active_task_count
from .utils.datetime_utils import utc_now

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.StreamHandler(sys.stdout)
    ]
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup and shutdown."""
    logger.info("Starting Chat Task Bridge...")
    runtime = get_runtime()
    await runtime.start()
    logger.info("Chat Task Bridge started")

    yield

    logger.info("Shutting down...")
    await drain_background_tasks()
    await runtime.shutdown()
    logger.info("Shutdown complete")


app = FastAPI(
    title=settings.app_name,
    description="Routes Telegram messages to an asynchronous task provider and relays results back",
    version=__version__,
    lifespan=lifespan
)


@app.get("/")
async def root():
    """Root endpoint - health check."""
    return {
        "status": "healthy",
        "service": settings.app_name,
        "version": __version__
    }


@app.get("/health")
async def health_check():
    """Detailed health check endpoint."""
    db_health = {"status": "not_configured"}
    try:
        db_health = await get_database().health_check()
    except Exception as e:
        db_health = {"status": "error", "error": str(e)}

    runtime = get_runtime()
    return {
        "status": "healthy",
        "timestamp": utc_now().isoformat(),
        "services": {
            "database": db_health.get("status", "unknown"),
            "telegram": "connected" if runtime.gateway.is_connected() else "disconnected",
            "router_llm": settings.router_llm_enabled,
        },
        "outbound_queue_depth": runtime.outbound.queue_depth,
        "background_tasks": get_active_task_count(),
        "jobs": runtime.scheduler.get_job_status(),
    }


# ==================== PROVIDER WEBHOOK ====================

async def _provider_webhook(request: Request, provided_secret: Optional[str]) -> JSONResponse:
    try:
        payload = await request.json()
    except ValueError:
        return JSONResponse(status_code=400, content={"status": "invalid_payload"})

    result = await accept_webhook(provided_secret, payload)
    return JSONResponse(status_code=result.status_code, content=result.body)


def _secret_from_request(request: Request) -> Optional[str]:
    header_secret = (request.headers.get("x-webhook-secret") or "").strip()
    if header_secret:
        return header_secret
    query_secret = (request.query_params.get("secret") or "").strip()
    return query_secret or None


@app.post("/webhook/provider/{secret}")
async def provider_webhook_with_path_secret(secret: str, request: Request):
    """Provider lifecycle callbacks with the shared secret in the path."""
    return await _provider_webhook(request, secret.strip() or _secret_from_request(request))


@app.post("/webhook/provider")
async def provider_webhook(request: Request):
    """Provider lifecycle callbacks with the secret in a header or query parameter."""
    return await _provider_webhook(request, _secret_from_request(request))


# ==================== TELEGRAM WEBHOOK ====================

@app.post("/webhook/telegram")
async def telegram_webhook(
    request: Request,
    x_telegram_bot_api_secret_token: Optional[str] = Header(default=None),
):
    """
    Telegram webhook endpoint.

    Dispatch runs in the background so Telegram's timeout never causes a
    redelivery; repeated deliveries are caught by message dedup. When
    TELEGRAM_WEBHOOK_SECRET is set, updates must carry it in the secret token header.
    """
    expected = settings.telegram_webhook_secret
    if expected and not (
        x_telegram_bot_api_secret_token
        and hmac.compare_digest(x_telegram_bot_api_secret_token.encode("utf-8"), expected.encode("utf-8"))
    ):
        logger.warning("Rejected Telegram update with a bad secret token")
        raise HTTPException(status_code=401, detail="unauthorized")

    try:
        update_data = await request.json()
    except ValueError as e:
        logger.error(f"Invalid Telegram update body: {e}")
        return JSONResponse(status_code=200, content={"ok": False, "error": "invalid_json"})

    update_id = update_data.get("update_id") if isinstance(update_data, dict) else None
    message = update_data.get("message") if isinstance(update_data, dict) else None
    if not isinstance(message, dict):
        logger.debug(f"Ignoring Telegram update {update_id} without a message")
        return {"ok": True}

    create_safe_task(dispatch_inbound(message), f"telegram_update_{update_id}")
    return {"ok": True}


# ==================== INTERNAL / OPERATOR ====================

@app.post("/internal/cleanup")
async def internal_cleanup(x_internal_token: Optional[str] = Header(default=None)):
    """Run TTL cleanup and stale task reconciliation now."""
    expected = settings.internal_cleanup_token
    if not expected or not x_internal_token or not hmac.compare_digest(
        x_internal_token.encode("utf-8"), expected.encode("utf-8")
    ):
        return JSONResponse(status_code=401, content={"status": "unauthorized"})

    summary = await run_cleanup()
    return {"status": "ok", "summary": summary.model_dump()}


@app.get("/api/tasks/{provider_task_id}")
async def get_task(provider_task_id: str):
    """Task row plus its most recent webhook events."""
    runtime = get_runtime()
    task = await runtime.tasks.get_by_provider_id(provider_task_id)
    if task is None:
        raise HTTPException(status_code=404, detail="Task not found")

    events = await runtime.webhook_events.list_for_task(provider_task_id)
    return {
        "task": {
            "task_id": task.provider_task_id,
            "session_id": task.session_id,
            "status": task.status,
            "stop_reason": task.stop_reason,
            "title": task.title,
            "url": task.url,
            "last_message": task.last_message,
            "created_at": task.created_at.isoformat() if task.created_at else None,
            "updated_at": task.updated_at.isoformat() if task.updated_at else None,
            "stopped_at": task.stopped_at.isoformat() if task.stopped_at else None,
        },
        "webhook_events": [
            {
                "event_id": event.event_id,
                "event_type": event.event_type,
                "process_status": event.process_status,
                "error": event.error,
                "received_at": event.received_at.isoformat() if event.received_at else None,
                "processed_at": event.processed_at.isoformat() if event.processed_at else None,
            }
            for event in events
        ],
    }


@app.post("/api/trigger-job/{job_id}")
async def trigger_job(job_id: str):
    """Manually trigger a scheduled job."""
    if get_runtime().scheduler.trigger_job(job_id):
        return {"status": "triggered", "job_id": job_id}
    raise HTTPException(status_code=404, detail=f"Job {job_id} not found")


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "taskbridge.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug
    )
