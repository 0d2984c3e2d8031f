# via/clients/http.py
import logging

import httpx

logger = logging.getLogger(__name__)

http_client: httpx.AsyncClient | None = None

# Per-call deadlines are enforced by the callers; this is only a ceiling.
DEFAULT_TIMEOUT = httpx.Timeout(20.0, connect=5.0)
DEFAULT_LIMITS = httpx.Limits(max_connections=50, max_keepalive_connections=10)


async def connect():
    """Open the shared client used for every outbound store call."""
    global http_client
    if http_client is not None:
        return
    http_client = httpx.AsyncClient(
        timeout=DEFAULT_TIMEOUT,
        limits=DEFAULT_LIMITS,
        follow_redirects=True,
        headers={"user-agent": "via-offers/0.1"},
    )
    logger.info("HTTP client opened")


async def disconnect():
    """Close the shared client if it exists."""
    global http_client
    if http_client is not None:
        await http_client.aclose()
        http_client = None
        logger.info("HTTP client closed")


def get_http_client() -> httpx.AsyncClient:
    """
    Getter for the shared client. Raises if the app lifespan has not run,
    which only happens when a route is called outside the application.
    """
    if http_client is None:
        raise RuntimeError("HTTP client not initialised")
    return http_client
