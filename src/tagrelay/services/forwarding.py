from typing import Any, Optional

import httpx
import structlog

from tagrelay.core.logging import one_line

logger = structlog.get_logger(__name__)


async def forward_event(http: httpx.AsyncClient, url: Optional[str], event: dict[str, Any]) -> None:
    """
    Pass the verified Stripe event on to a secondary webhook (legacy BotHelp hook).
    Fire-and-forget: runs after the response and only ever logs.
    """
    if not url:
        return

    try:
        resp = await http.post(url, json=event)
        logger.info("event_forwarded", event_type=event.get("type"), status=resp.status_code)
    except Exception as e:
        # the Stripe response is already sent; nothing to propagate to
        logger.error("event_forward_failed", event_type=event.get("type"), error=f"{type(e).__name__}: {one_line(str(e))}")
