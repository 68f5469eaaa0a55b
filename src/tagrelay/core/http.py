"""
Shared async HTTP client.

One httpx.AsyncClient per process, opened on startup and closed on shutdown,
so BotHelp calls reuse connections. Every call is bounded by the configured
timeout.
"""

from typing import Optional

import httpx
import structlog

from tagrelay.core.config import settings

logger = structlog.get_logger(__name__)

_client: Optional[httpx.AsyncClient] = None


def _build_client() -> httpx.AsyncClient:
    return httpx.AsyncClient(
        timeout=httpx.Timeout(settings.bothelp_timeout_sec, connect=5.0),
        limits=httpx.Limits(max_connections=50, max_keepalive_connections=10),
        headers={"User-Agent": "tagrelay/0.1"},
    )


def get_http_client() -> httpx.AsyncClient:
    global _client
    if _client is None:
        logger.warning("http_client_lazy_initialized")
        _client = _build_client()
    return _client


async def init_http_client() -> None:
    global _client
    if _client is not None:
        logger.warning("http_client_already_initialized")
        return
    _client = _build_client()
    logger.info("http_client_initialized", timeout_sec=settings.bothelp_timeout_sec)


async def close_http_client() -> None:
    global _client
    if _client is not None:
        await _client.aclose()
        _client = None
        logger.info("http_client_closed")
