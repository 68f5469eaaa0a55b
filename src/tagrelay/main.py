import structlog
import uvicorn
from fastapi import FastAPI

from tagrelay.api.routers.health import router as health_router
from tagrelay.api.routers.pay import router as pay_router
from tagrelay.api.routers.stripe_webhook import router as stripe_router
from tagrelay.core.config import settings
from tagrelay.core.http import close_http_client, get_http_client, init_http_client
from tagrelay.core.logging import setup_logging
from tagrelay.services.dispatcher import EventDispatcher

logger = structlog.get_logger(__name__)

app = FastAPI(title="tagrelay", version="0.1.0")
app.include_router(health_router)
app.include_router(stripe_router)
app.include_router(pay_router)


@app.on_event("startup")
async def startup() -> None:
    setup_logging()

    if settings.env != "local" and not settings.stripe_webhook_secret:
        raise RuntimeError("STRIPE_WEBHOOK_SECRET is missing. Check your .env file.")

    await init_http_client()
    app.state.dispatcher = EventDispatcher.from_settings(settings, get_http_client())
    logger.info(
        "tagrelay_started",
        env=settings.env,
        bothelp_enabled=settings.bothelp_enabled,
        identity_scheme=settings.identity_scheme,
        forward_enabled=bool(settings.bothelp_webhook_url),
    )


@app.on_event("shutdown")
async def shutdown() -> None:
    await close_http_client()


def run() -> None:
    uvicorn.run("tagrelay.main:app", host="0.0.0.0", port=settings.port)


if __name__ == "__main__":
    run()
