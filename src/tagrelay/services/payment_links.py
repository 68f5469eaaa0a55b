from __future__ import annotations

from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlencode

from tagrelay.core.config import Settings


class PaymentLinkError(ValueError):
    pass


@dataclass(frozen=True)
class PaymentLink:
    lang: str
    url: str
    identity: Optional[str]


def build_payment_link(settings: Settings, lang: Optional[str], tg_id: Optional[str]) -> PaymentLink:
    """
    Stripe Payment Link for a language, carrying the Telegram id as
    client_reference_id so checkout.session.completed can be matched later.
    """
    lang = (lang or "en").strip().lower()
    identity = (tg_id or "").strip() or None

    code = settings.payment_links.get(lang)
    if not code:
        raise PaymentLinkError(f"Unknown language: {lang}")

    if identity is None and settings.pay_require_identity:
        raise PaymentLinkError("Missing tg_id")

    base = f"{settings.payment_link_base.rstrip('/')}/{code}"

    params: dict[str, str] = {}
    if identity:
        params["client_reference_id"] = identity
    locale = settings.payment_locales.get(lang) or lang
    if locale:
        params["locale"] = locale

    url = f"{base}?{urlencode(params)}" if params else base
    return PaymentLink(lang=lang, url=url, identity=identity)
