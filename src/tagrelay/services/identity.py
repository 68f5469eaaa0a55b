from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal, Optional, Sequence, Union

import structlog

from tagrelay.core.config import IdentityScheme
from tagrelay.core.logging import one_line
from tagrelay.core.stripe_events import IDENTITY_WRITE_BACK_TYPES
from tagrelay.integrations.stripe.customers import StripeCustomers
from tagrelay.models.event import StripeEvent

logger = structlog.get_logger(__name__)

IdentityKind = Literal["telegram_id", "email"]
IdentitySource = Literal["event", "customer"]

PathKey = Union[str, int]


@dataclass(frozen=True)
class Identity:
    kind: IdentityKind
    value: str


@dataclass(frozen=True)
class Resolution:
    identity: Identity
    source: IdentitySource
    rule: str


@dataclass(frozen=True)
class ExtractionRule:
    name: str
    kind: IdentityKind
    path: tuple[PathKey, ...]


def event_rules(metadata_key: str = "tg_id") -> list[ExtractionRule]:
    """
    Where an identity may sit on a Stripe object, highest priority first.
    The first rule that yields a non-empty value wins.
    """
    return [
        # set by /pay/{lang} on the Payment Link, echoed on the checkout session
        ExtractionRule("client_reference_id", "telegram_id", ("client_reference_id",)),
        ExtractionRule("metadata", "telegram_id", ("metadata", metadata_key)),
        ExtractionRule(
            "subscription_details_metadata",
            "telegram_id",
            ("subscription_details", "metadata", metadata_key),
        ),
        ExtractionRule(
            "line_item_price_metadata",
            "telegram_id",
            ("line_items", "data", 0, "price", "metadata", metadata_key),
        ),
        ExtractionRule(
            "invoice_line_price_metadata",
            "telegram_id",
            ("lines", "data", 0, "price", "metadata", metadata_key),
        ),
        ExtractionRule(
            "subscription_item_price_metadata",
            "telegram_id",
            ("items", "data", 0, "price", "metadata", metadata_key),
        ),
        ExtractionRule("customer_details_email", "email", ("customer_details", "email")),
        ExtractionRule("customer_email", "email", ("customer_email",)),
        ExtractionRule("customer_object_email", "email", ("customer", "email")),
    ]


def customer_rules(metadata_key: str = "tg_id") -> list[ExtractionRule]:
    """Same idea, applied to a fetched Stripe customer record."""
    return [
        ExtractionRule("customer_metadata", "telegram_id", ("metadata", metadata_key)),
        ExtractionRule("customer_metadata_email", "email", ("metadata", "email")),
        ExtractionRule("customer_record_email", "email", ("email",)),
    ]


def _dig(data: Any, path: Sequence[PathKey]) -> Any:
    cur = data
    for key in path:
        if isinstance(key, int):
            if not isinstance(cur, list) or len(cur) <= key:
                return None
            cur = cur[key]
        else:
            if not isinstance(cur, dict):
                return None
            cur = cur.get(key)
        if cur is None:
            return None
    return cur


def _normalize(kind: IdentityKind, value: Any) -> Optional[str]:
    if value is None or isinstance(value, (dict, list, bool)):
        return None
    text = str(value).strip()
    if not text:
        return None
    return text.lower() if kind == "email" else text


def first_match(
    rules: Sequence[ExtractionRule], data: dict[str, Any]
) -> Optional[tuple[ExtractionRule, Identity]]:
    for rule in rules:
        value = _normalize(rule.kind, _dig(data, rule.path))
        if value is not None:
            return rule, Identity(kind=rule.kind, value=value)
    return None


def _customer_id(data: dict[str, Any]) -> Optional[str]:
    customer = data.get("customer")
    if isinstance(customer, dict):
        customer = customer.get("id")
    if isinstance(customer, str) and customer.strip():
        return customer.strip()
    return None


class IdentityResolver:
    def __init__(
        self,
        customers: Optional[StripeCustomers] = None,
        *,
        scheme: IdentityScheme = "any",
        metadata_key: str = "tg_id",
    ):
        self.customers = customers
        self.scheme = scheme
        self.metadata_key = metadata_key
        self.rules = self._allowed(event_rules(metadata_key))
        self.fallback_rules = self._allowed(customer_rules(metadata_key))

    def _allowed(self, rules: list[ExtractionRule]) -> list[ExtractionRule]:
        if self.scheme == "any":
            return rules
        return [r for r in rules if r.kind == self.scheme]

    async def resolve(self, event: StripeEvent) -> Optional[Resolution]:
        obj = event.object
        data: dict[str, Any] = obj if isinstance(obj, dict) else obj.model_dump()
        customer_id = _customer_id(data)

        found = first_match(self.rules, data)
        if found is not None:
            rule, identity = found
            logger.info(
                "identity_resolved",
                event_type=event.type,
                rule=rule.name,
                identity_kind=identity.kind,
                source="event",
            )
            if event.type in IDENTITY_WRITE_BACK_TYPES and customer_id:
                await self._write_back(customer_id, identity)
            return Resolution(identity=identity, source="event", rule=rule.name)

        if customer_id:
            return await self._from_customer(event.type, customer_id)

        return None

    async def _from_customer(self, event_type: str, customer_id: str) -> Optional[Resolution]:
        if self.customers is None or not self.customers.configured:
            logger.info("customer_fallback_unavailable", event_type=event_type, customer_id=customer_id)
            return None

        try:
            customer = await self.customers.get(customer_id)
        except Exception as e:
            logger.warning(
                "customer_read_failed",
                customer_id=customer_id,
                error=f"{type(e).__name__}: {one_line(str(e))}",
            )
            return None

        if not customer:
            logger.info("customer_missing_or_deleted", customer_id=customer_id)
            return None

        found = first_match(self.fallback_rules, customer)
        if found is None:
            return None

        rule, identity = found
        logger.info(
            "identity_resolved",
            event_type=event_type,
            rule=rule.name,
            identity_kind=identity.kind,
            source="customer",
        )
        return Resolution(identity=identity, source="customer", rule=rule.name)

    async def _write_back(self, customer_id: str, identity: Identity) -> None:
        """Remember the identity on the Stripe customer so invoices can find it later."""
        if self.customers is None or not self.customers.configured:
            return

        key = self.metadata_key if identity.kind == "telegram_id" else "email"
        try:
            await self.customers.update_metadata(customer_id, {key: identity.value})
            logger.info("identity_saved_to_customer", customer_id=customer_id, metadata_key=key)
        except Exception as e:
            logger.warning(
                "identity_write_back_failed",
                customer_id=customer_id,
                error=f"{type(e).__name__}: {one_line(str(e))}",
            )
