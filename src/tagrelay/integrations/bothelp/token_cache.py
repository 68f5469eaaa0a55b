from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, Optional

import httpx
import structlog

from tagrelay.core.errors import AuthError
from tagrelay.core.logging import one_line

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class Credential:
    token: str
    expires_at: float  # clock seconds, same clock as TokenCache


class TokenCache:
    """
    BotHelp OAuth2 client-credentials token, cached in process memory.

    The credential is replaced as a whole on refresh and never cleared on
    failure. There is no lock: two concurrent refreshes both hit the token
    endpoint and the last one wins, which is harmless.
    """

    def __init__(
        self,
        http: httpx.AsyncClient,
        *,
        token_url: str,
        client_id: Optional[str],
        client_secret: Optional[str],
        margin_sec: float = 60,
        default_ttl_sec: float = 3600,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.http = http
        self.token_url = token_url
        self.client_id = client_id
        self.client_secret = client_secret
        self.margin_sec = margin_sec
        self.default_ttl_sec = default_ttl_sec
        self.clock = clock
        self._credential: Optional[Credential] = None

    @property
    def credential(self) -> Optional[Credential]:
        return self._credential

    def fresh_credential(self) -> Optional[Credential]:
        """Cached credential if it is still outside the safety margin."""
        cred = self._credential
        if cred is not None and self.clock() < cred.expires_at - self.margin_sec:
            return cred
        return None

    async def get_token(self) -> str:
        cred = self.fresh_credential()
        if cred is not None:
            return cred.token
        cred = await self.refresh()
        return cred.token

    async def refresh(self) -> Credential:
        if not self.client_id or not self.client_secret:
            raise AuthError("BotHelp client credentials are not configured")

        form = {
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "grant_type": "client_credentials",
        }

        try:
            resp = await self.http.post(self.token_url, data=form)
        except httpx.HTTPError as e:
            raise AuthError(f"Token request failed: {type(e).__name__}: {e}") from e

        if resp.status_code < 200 or resp.status_code >= 300:
            raise AuthError(f"Token endpoint returned {resp.status_code}: {one_line(resp.text, 300)}")

        try:
            data = resp.json()
        except ValueError as e:
            raise AuthError("Token endpoint returned a non-JSON body") from e

        token = data.get("access_token") if isinstance(data, dict) else None
        if not token:
            raise AuthError("Token endpoint response has no access_token")

        try:
            ttl = float(data.get("expires_in") or self.default_ttl_sec)
        except (TypeError, ValueError):
            ttl = float(self.default_ttl_sec)

        cred = Credential(token=str(token), expires_at=self.clock() + ttl)
        self._credential = cred
        logger.info("bothelp_token_refreshed", expires_in=ttl)
        return cred
