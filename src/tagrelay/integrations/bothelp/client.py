from typing import Any

import httpx

from tagrelay.integrations.bothelp.token_cache import TokenCache


class BothelpClient:
    """Authenticated JSON calls against the BotHelp OpenAPI."""

    def __init__(self, http: httpx.AsyncClient, base_url: str, tokens: TokenCache):
        self.http = http
        self.base_url = base_url.rstrip("/")
        self.tokens = tokens

    async def post(self, path: str, payload: dict[str, Any]) -> httpx.Response:
        """
        POST JSON with a bearer token. Raises AuthError if no token can be
        obtained and httpx.HTTPError on transport failure; HTTP status is left
        to the caller.
        """
        token = await self.tokens.get_token()
        headers = {
            "Authorization": f"Bearer {token}",
            "Accept": "application/json",
        }
        return await self.http.post(f"{self.base_url}{path}", json=payload, headers=headers)

    async def search_subscribers(self, field: str, value: str) -> httpx.Response:
        return await self.post("/subscribers/search", {field: value})

    async def add_tag(self, subscriber_id: str, tag: str) -> httpx.Response:
        return await self.post("/subscribers/tags/add", {"subscriber_id": subscriber_id, "tag": tag})

    async def remove_tag(self, subscriber_id: str, tag: str) -> httpx.Response:
        return await self.post("/subscribers/tags/remove", {"subscriber_id": subscriber_id, "tag": tag})
