# via/core/lifespan.py
from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI

from via.clients import http
from via.core.config import get_settings

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()

    # --- Startup ---
    await http.connect()
    if not settings.OPENAI_API_KEY:
        logger.warning("No OPENAI_API_KEY provided, /llm/clarify will be unavailable")
    logger.info("%s started env=%s registry=%s", settings.APP_NAME, settings.APP_ENV, settings.STORE_REGISTRY_PATH)

    # Application runs
    yield

    # --- Shutdown ---
    await http.disconnect()
