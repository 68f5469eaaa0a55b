import structlog
from fastapi import APIRouter, Depends, Query
from fastapi.responses import PlainTextResponse, RedirectResponse

from tagrelay.core.config import Settings, get_settings
from tagrelay.services.payment_links import PaymentLinkError, build_payment_link

logger = structlog.get_logger(__name__)

router = APIRouter(tags=["pay"])


@router.get("/pay/{lang}")
def pay_redirect(
    lang: str,
    tg_id: str | None = Query(default=None),
    settings: Settings = Depends(get_settings),
):
    try:
        link = build_payment_link(settings, lang, tg_id)
    except PaymentLinkError as e:
        return PlainTextResponse(str(e), status_code=400)

    logger.info("pay_redirect", lang=link.lang, has_identity=link.identity is not None)
    return RedirectResponse(link.url, status_code=302)
