import httpx
from fastapi import Request

from tagrelay.core.http import get_http_client
from tagrelay.services.dispatcher import EventDispatcher


def get_dispatcher(request: Request) -> EventDispatcher:
    """FastAPI dependency: process-wide dispatcher (owns the BotHelp token cache)"""
    return request.app.state.dispatcher


def http_client() -> httpx.AsyncClient:
    """FastAPI dependency: shared outbound HTTP client"""
    return get_http_client()
