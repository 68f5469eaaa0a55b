from __future__ import annotations

from typing import Optional

import httpx
import structlog

from tagrelay.core.errors import MalformedResponse, SubscriberLookupError
from tagrelay.core.logging import one_line
from tagrelay.integrations.bothelp.client import BothelpClient
from tagrelay.services.identity import Identity

logger = structlog.get_logger(__name__)


class SubscriberLookup:
    def __init__(self, client: BothelpClient):
        self.client = client

    async def find_subscriber(self, identity: Identity) -> Optional[str]:
        """
        BotHelp subscriber id for an identity, or None when nothing matches.

        Only a transport failure raises (SubscriberLookupError). A body that is
        not JSON, or a non-2xx status, counts as zero results.
        """
        try:
            resp = await self.client.search_subscribers(identity.kind, identity.value)
        except httpx.HTTPError as e:
            raise SubscriberLookupError(f"Subscriber search failed: {type(e).__name__}: {e}") from e

        if resp.status_code < 200 or resp.status_code >= 300:
            logger.warning(
                "subscriber_search_rejected",
                status=resp.status_code,
                body=one_line(resp.text, 300),
            )
            return None

        try:
            data = resp.json()
        except ValueError:
            logger.warning("subscriber_search_malformed", error=MalformedResponse.code, body=one_line(resp.text, 300))
            return None

        items = data.get("items") if isinstance(data, dict) else None
        if not isinstance(items, list) or not items:
            return None

        first = items[0]
        sub_id = first.get("id") if isinstance(first, dict) else None
        if sub_id is None or sub_id == "":
            logger.warning("subscriber_search_item_without_id")
            return None
        return str(sub_id)
