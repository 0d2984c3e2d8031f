# via/api/deps.py
import httpx
from fastapi import Header, HTTPException

from via.clients.http import get_http_client
from via.core.config import Settings, get_settings
from via.domain.errors import TokenError
from via.domain.models.thread import InternalThread
from via.utils.tokens import decode_token


# Dependency for injecting the shared outbound HTTP client
def http_dep() -> httpx.AsyncClient:
    return get_http_client()


def settings_dep() -> Settings:
    return get_settings()


def thread_dep(x_demo_token: str = Header("", alias="x-demo-token")) -> InternalThread:
    """Decode the session thread carried by the request header."""
    if not x_demo_token:
        raise HTTPException(status_code=400, detail="Missing token")
    try:
        return decode_token(x_demo_token)
    except TokenError as e:
        raise HTTPException(status_code=401, detail="Bad token") from e
