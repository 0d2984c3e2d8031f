# via/main.py
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from via.api.v1.routers.clarify import router as clarify_router
from via.api.v1.routers.health import mcp_router as mcp_health_router, router as health_router
from via.api.v1.routers.threads import router as threads_router
from via.core.config import get_settings
from via.core.lifespan import lifespan
from via.core.logging import configure_logging

settings = get_settings()
configure_logging(level=logging.DEBUG if settings.DEBUG else logging.INFO)

app = FastAPI(title=settings.APP_NAME, lifespan=lifespan)

# ------- CORS -------
# ALLOWED_ORIGINS is a CSV, e.g. "https://via.example,https://www.via.example"
# allow_credentials=True with "*" is forbidden, so list origins and/or use the regex.
allow_origin_regex = r"^https:\/\/.*\.vercel\.app$" if settings.ALLOW_VERCEL_PREVIEWS else None

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins or ["http://localhost:3000"],
    allow_origin_regex=allow_origin_regex,
    allow_credentials=False,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["content-type", "x-demo-token"],
    max_age=86400,
)

# ------- Routes -------
app.include_router(health_router)                                    # /health
app.include_router(mcp_health_router, prefix=settings.api_prefix)    # {api}/demo/mcp/health
app.include_router(threads_router, prefix=settings.api_prefix)       # {api}/demo/thread
app.include_router(clarify_router, prefix=settings.api_prefix)       # {api}/llm/clarify
