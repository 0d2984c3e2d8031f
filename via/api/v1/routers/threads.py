# via/api/v1/routers/threads.py
import logging

import httpx
from fastapi import APIRouter, Depends, HTTPException

from via.api.deps import http_dep, settings_dep, thread_dep
from via.api.v1.schemas.thread import CreateThreadIn, MessageIn, SelectOfferIn, ThreadOut
from via.core.config import Settings
from via.domain.errors import RegistryError
from via.domain.models.offer import DiagnosticTrace
from via.domain.models.thread import InternalThread
from via.domain.repositories.store_registry_repo import StoreRegistryRepo
from via.domain.services.intent_svc import build_intent_spec
from via.domain.services.offers_svc import acquire_offers, select_endpoint_pool
from via.domain.services.thread_svc import (
    apply_live_offers,
    buyer_message,
    confirm_thread,
    make_initial_thread,
    select_offer,
    to_ui,
)
from via.utils.tokens import encode_token

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/demo/thread", tags=["threads"])


def _respond(thread: InternalThread, debug: DiagnosticTrace | None = None) -> ThreadOut:
    return ThreadOut(**to_ui(thread), token=encode_token(thread), debug=debug)


def _same_thread(thread: InternalThread, thread_id: str) -> InternalThread:
    if thread.thread_id != thread_id:
        raise HTTPException(status_code=404, detail="Thread not found")
    return thread


@router.post("", response_model=ThreadOut)
async def create_thread(
    body: CreateThreadIn,
    http: httpx.AsyncClient = Depends(http_dep),
    settings: Settings = Depends(settings_dep),
) -> ThreadOut:
    """
    Open a thread with canned offers, then try to replace them with live
    offers from participating sellers. Any failure keeps the canned set.
    """
    if not body.request_text.strip():
        raise HTTPException(status_code=400, detail="Missing requestText")

    spec = build_intent_spec(body.request_text, body.intent_plan)
    thread = make_initial_thread(body.request_text, body.mode, category=spec.category)

    try:
        stores = StoreRegistryRepo(settings.STORE_REGISTRY_PATH).load()
    except RegistryError as e:
        logger.error("registry load failed: %s", e)
        thread = apply_live_offers(thread, [], contacted=0, use_mock_fallback=True)
        trace = DiagnosticTrace(category=spec.category, cleaned_query=spec.search_query,
                                required_terms=list(spec.required_terms), fatal=str(e))
        return _respond(thread, trace if body.debug else None)

    target = settings.offers_target_count
    pool = select_endpoint_pool(
        stores,
        spec.category,
        pool_size=target * settings.offers_pool_factor,
        rotate=settings.offers_rotate_hourly,
    )
    result = await acquire_offers(
        spec,
        pool,
        http=http,
        target_count=target,
        list_timeout_s=settings.mcp_list_timeout_s,
        call_timeout_s=settings.mcp_call_timeout_s,
        search_limit=settings.mcp_search_limit,
        max_concurrency=settings.offers_max_concurrency,
        require_image=settings.offers_require_image,
        base_delay_ms=settings.offer_base_delay_ms,
        step_delay_ms=settings.offer_step_delay_ms,
    )
    thread = apply_live_offers(
        thread,
        result.offers,
        contacted=result.diagnostics.contacted,
        use_mock_fallback=settings.offers_use_mock_fallback,
    )
    return _respond(thread, result.diagnostics if body.debug else None)


@router.get("/{thread_id}", response_model=ThreadOut)
async def get_thread(thread_id: str, thread: InternalThread = Depends(thread_dep)) -> ThreadOut:
    return _respond(_same_thread(thread, thread_id))


@router.post("/{thread_id}/select-offer", response_model=ThreadOut)
async def select_offer_route(
    thread_id: str,
    body: SelectOfferIn,
    thread: InternalThread = Depends(thread_dep),
) -> ThreadOut:
    if not body.offer_id:
        raise HTTPException(status_code=400, detail="Missing offerId")
    return _respond(select_offer(_same_thread(thread, thread_id), body.offer_id))


@router.post("/{thread_id}/message", response_model=ThreadOut)
async def message_route(
    thread_id: str,
    body: MessageIn,
    thread: InternalThread = Depends(thread_dep),
) -> ThreadOut:
    if not body.text.strip():
        raise HTTPException(status_code=400, detail="Missing text")
    return _respond(buyer_message(_same_thread(thread, thread_id), body.text))


@router.post("/{thread_id}/confirm", response_model=ThreadOut)
async def confirm_route(thread_id: str, thread: InternalThread = Depends(thread_dep)) -> ThreadOut:
    return _respond(confirm_thread(_same_thread(thread, thread_id)))
