from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Optional

import httpx
import structlog

from tagrelay.core.config import Settings
from tagrelay.core.errors import SubscriberNotFound
from tagrelay.core.outcome import StepResult
from tagrelay.core.stripe_events import TAG_DIRECTIONS, TagDirection
from tagrelay.integrations.bothelp.client import BothelpClient
from tagrelay.integrations.bothelp.token_cache import TokenCache
from tagrelay.integrations.stripe.customers import StripeCustomers
from tagrelay.models.event import StripeEvent
from tagrelay.services.identity import Identity, IdentityResolver
from tagrelay.services.subscriber_lookup import SubscriberLookup
from tagrelay.services.tag_reconciler import TagReconciler

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class DispatchReport:
    event_type: str
    direction: Optional[TagDirection] = None
    identity: Optional[Identity] = None
    subscriber_id: Optional[str] = None
    tag_applied: bool = False
    skip_reason: Optional[str] = None
    error_code: Optional[str] = None


class EventDispatcher:
    """
    classified -> resolved -> reconciled for one verified Stripe event.

    dispatch() never raises. Whatever goes wrong downstream ends up in the
    returned DispatchReport and the log; the webhook route acknowledges either way.
    """

    def __init__(
        self,
        resolver: IdentityResolver,
        lookup: Optional[SubscriberLookup],
        reconciler: Optional[TagReconciler],
        *,
        tag: str,
    ):
        self.resolver = resolver
        self.lookup = lookup
        self.reconciler = reconciler
        self.tag = tag

    @classmethod
    def from_settings(cls, settings: Settings, http: httpx.AsyncClient) -> "EventDispatcher":
        customers = StripeCustomers()
        resolver = IdentityResolver(
            customers,
            scheme=settings.identity_scheme,
            metadata_key=settings.identity_metadata_key,
        )

        lookup: Optional[SubscriberLookup] = None
        reconciler: Optional[TagReconciler] = None
        if settings.bothelp_enabled:
            secret = settings.bothelp_client_secret
            tokens = TokenCache(
                http,
                token_url=f"{settings.bothelp_base_url}{settings.bothelp_token_path}",
                client_id=settings.bothelp_client_id,
                client_secret=secret.get_secret_value() if secret else None,
                margin_sec=settings.token_refresh_margin_sec,
                default_ttl_sec=settings.token_default_ttl_sec,
            )
            client = BothelpClient(http, settings.bothelp_base_url, tokens)
            lookup = SubscriberLookup(client)
            reconciler = TagReconciler(client)

        return cls(resolver, lookup, reconciler, tag=settings.bothelp_tag)

    async def dispatch(self, event: StripeEvent) -> DispatchReport:
        direction = TAG_DIRECTIONS.get(event.type)
        if direction is None:
            logger.info("event_logged_only", event_type=event.type, event_id=event.id)
            return DispatchReport(event_type=event.type, skip_reason="no_tag_action")

        try:
            return await self._reconcile(event, direction)
        except Exception as e:
            result = StepResult.failure(e)
            logger.error(
                "dispatch_failed",
                event_type=event.type,
                event_id=event.id,
                error=result.error_code,
                detail=result.error_detail,
            )
            return DispatchReport(event_type=event.type, direction=direction, error_code=result.error_code)

    async def _reconcile(self, event: StripeEvent, direction: TagDirection) -> DispatchReport:
        report = DispatchReport(event_type=event.type, direction=direction)

        resolution = await self.resolver.resolve(event)
        if resolution is None:
            logger.warning("identity_not_found", event_type=event.type, event_id=event.id)
            return replace(report, skip_reason="identity_not_found")

        identity = resolution.identity
        report = replace(report, identity=identity)

        if self.lookup is None or self.reconciler is None:
            logger.warning(
                "tagging_not_configured",
                event_type=event.type,
                identity_kind=identity.kind,
            )
            return replace(report, skip_reason="tagging_not_configured")

        lookup = await self._find(self.lookup, identity)
        if not lookup.ok:
            return replace(report, error_code=lookup.error_code)

        subscriber_id = lookup.value
        if subscriber_id is None:
            logger.warning(
                SubscriberNotFound.code,
                event_type=event.type,
                identity_kind=identity.kind,
            )
            return replace(report, skip_reason=SubscriberNotFound.code)

        report = replace(report, subscriber_id=subscriber_id)
        tagged = await self.reconciler.set_tag(subscriber_id, self.tag, direction)
        if not tagged.ok:
            return replace(report, error_code=tagged.error_code)
        return replace(report, tag_applied=True)

    async def _find(self, lookup: SubscriberLookup, identity: Identity) -> StepResult:
        try:
            return StepResult.success(await lookup.find_subscriber(identity))
        except Exception as e:
            result = StepResult.failure(e)
            logger.error(
                "subscriber_lookup_failed",
                identity_kind=identity.kind,
                error=result.error_code,
                detail=result.error_detail,
            )
            return result
