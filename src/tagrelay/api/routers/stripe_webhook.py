import httpx
import structlog
from fastapi import APIRouter, BackgroundTasks, Depends, Header, Request
from fastapi.responses import PlainTextResponse

from tagrelay.api.deps import get_dispatcher, http_client
from tagrelay.core.config import Settings, get_settings
from tagrelay.core.errors import SignatureError
from tagrelay.integrations.stripe.webhook import construct_event
from tagrelay.models.event import parse_event
from tagrelay.services.dispatcher import EventDispatcher
from tagrelay.services.forwarding import forward_event

logger = structlog.get_logger(__name__)

router = APIRouter(tags=["stripe"])


@router.post("/webhook")
@router.post("/stripe/webhook")
async def stripe_webhook(
    request: Request,
    background: BackgroundTasks,
    dispatcher: EventDispatcher = Depends(get_dispatcher),
    http: httpx.AsyncClient = Depends(http_client),
    settings: Settings = Depends(get_settings),
    stripe_signature: str | None = Header(default=None, alias="Stripe-Signature"),
):
    # Stripe retries anything that is not 2xx. Only a bad signature is
    # answered with an error; downstream trouble is logged and acknowledged.
    payload = await request.body()

    # 1) Verify + parse
    try:
        raw = construct_event(payload, stripe_signature)
    except SignatureError as e:
        logger.warning("stripe_signature_rejected", reason=str(e))
        return PlainTextResponse(f"Webhook Error: {e}", status_code=400)

    event = parse_event(raw)
    logger.info("stripe_event_received", event_type=event.type, event_id=event.id)

    # 2) Reconcile tag state
    report = await dispatcher.dispatch(event)
    logger.info(
        "stripe_event_processed",
        event_type=report.event_type,
        direction=report.direction.value if report.direction else None,
        tag_applied=report.tag_applied,
        skip_reason=report.skip_reason,
        error=report.error_code,
    )

    # 3) Optional forward, after the response
    if settings.bothelp_webhook_url:
        background.add_task(forward_event, http, settings.bothelp_webhook_url, raw)

    return {"received": True}
