from __future__ import annotations

from typing import Any, Optional

import stripe

from tagrelay.core.config import settings


class StripeCustomers:
    """
    Async read/update of Stripe customer records (metadata only).

    Both calls run while Stripe waits for the webhook response, so the client
    makes a single attempt bounded by STRIPE_TIMEOUT_SEC.
    """

    def __init__(self, api_key: Optional[str] = None, *, timeout_sec: Optional[float] = None):
        if api_key is None and settings.stripe_secret_key:
            api_key = settings.stripe_secret_key.get_secret_value()
        self.api_key = api_key
        self.timeout_sec = timeout_sec if timeout_sec is not None else settings.stripe_timeout_sec
        self._client: Optional[stripe.StripeClient] = None
        if api_key:
            self._client = stripe.StripeClient(
                api_key,
                max_network_retries=0,
                http_client=stripe.HTTPXClient(timeout=self.timeout_sec),
            )

    @property
    def configured(self) -> bool:
        return self._client is not None

    def _require_client(self) -> stripe.StripeClient:
        if self._client is None:
            raise stripe.AuthenticationError("Stripe secret key is not configured")
        return self._client

    async def get(self, customer_id: str) -> Optional[dict[str, Any]]:
        """Customer as a plain dict, or None when the customer was deleted."""
        customer = await self._require_client().v1.customers.retrieve_async(customer_id)
        data = customer.to_dict()
        if data.get("deleted"):
            return None
        return data

    async def update_metadata(self, customer_id: str, metadata: dict[str, str]) -> None:
        await self._require_client().v1.customers.update_async(customer_id, params={"metadata": metadata})
