# via/domain/services/offers_svc.py

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timezone
from itertools import groupby
from typing import Awaitable, Callable, List, Optional, Sequence
import asyncio
import logging
import time
import uuid

import httpx

from via.domain.models.offer import (
    AcquisitionResult,
    DiagnosticTrace,
    IntentSpec,
    NormalizedProduct,
    Offer,
    SearchOutcome,
    SellerEndpoint,
    StoreDiagnostic,
)
from via.domain.services.constants import (
    OPT_OUT_TAGS,
    VERIFIED_MIN_WEIGHT,
    NEW_MAX_WEIGHT,
    NEW_STORE_TAG,
    LIVE_SOURCE_LABEL,
)
from via.domain.services.mcp_client import search_products
from via.domain.services.scoring import select_best

logger = logging.getLogger(__name__)

SearchFn = Callable[..., Awaitable[SearchOutcome]]

# =============================================================================
#                               ENDPOINT SELECTION
# =============================================================================

def hour_bucket(now: Optional[datetime] = None) -> int:
    now = now or datetime.now(timezone.utc)
    return int(now.timestamp() // 3600)


def select_endpoint_pool(
    stores: Sequence[SellerEndpoint],
    category: Optional[str],
    *,
    pool_size: int,
    rotate: bool = True,
    now: Optional[datetime] = None,
) -> List[SellerEndpoint]:
    """
    Enabled stores of the category, minus opted-out ones, ordered by
    weight desc then id asc. With `rotate`, each equal-weight tier is
    rotated by the current hour so load spreads across sellers while the
    order stays stable within the hour.
    """
    if not category:
        return []
    eligible = [
        s for s in stores
        if s.enabled and s.category == category and not (set(s.tags) & OPT_OUT_TAGS)
    ]
    eligible.sort(key=lambda s: (-max(1, s.weight), s.id))

    if rotate:
        bucket = hour_bucket(now)
        ordered: List[SellerEndpoint] = []
        for _, tier in groupby(eligible, key=lambda s: max(1, s.weight)):
            tier = list(tier)
            k = bucket % len(tier)
            ordered.extend(tier[k:] + tier[:k])
        eligible = ordered

    return eligible[:max(0, pool_size)]


def reliability_label(store: SellerEndpoint) -> str:
    """Presentation heuristic from registry data only; not a trust signal."""
    if store.weight >= VERIFIED_MIN_WEIGHT:
        return "Verified"
    if NEW_STORE_TAG in store.tags or store.weight < NEW_MAX_WEIGHT:
        return "New"
    return "Reliable"


def offer_from_product(
    store: SellerEndpoint,
    product: NormalizedProduct,
    *,
    arrival_delay_ms: int,
) -> Offer:
    return Offer(
        id=f"o_{store.id}_{uuid.uuid4().hex[:12]}",
        seller_id=store.id,
        seller_name=store.name,
        headline=product.title,
        image_url=product.image_url,
        product_url=product.product_url or store.base_url,
        price_pence=0,
        currency=product.currency or "GBP",
        price_text_override=product.price_text,
        delivery_days=3,
        reliability_label=reliability_label(store),
        reply_class="normal",
        arrival_delay_ms=arrival_delay_ms,
        source_label=LIVE_SOURCE_LABEL,
    )

# =============================================================================
#                               PER-RUN STATE
# =============================================================================

@dataclass
class _StoreAttempt:
    """Mutable record for one store during a single acquisition run."""
    store: SellerEndpoint
    outcome: Optional[SearchOutcome] = None
    status: str = "skipped"
    reason: str = ""
    accepted_in_pass: Optional[int] = None

    def to_diagnostic(self) -> StoreDiagnostic:
        o = self.outcome
        return StoreDiagnostic(
            store_id=self.store.id,
            store_name=self.store.name,
            ok=bool(o and o.ok),
            tool_used=o.tool_used if o else None,
            product_count=len(o.products) if o else 0,
            error=o.error if o else None,
            outcome=self.status,
            reason=self.reason,
            accepted_in_pass=self.accepted_in_pass,
            first_product=o.products[0] if o and o.products else None,
        )


@dataclass
class _Run:
    """Accumulators scoped to one acquire_offers call."""
    spec: IntentSpec
    target: int
    base_delay_ms: int
    step_delay_ms: int
    require_image: bool
    attempts: List[_StoreAttempt] = field(default_factory=list)
    offers: List[Offer] = field(default_factory=list)

    @property
    def done(self) -> bool:
        return len(self.offers) >= self.target

    def try_accept(self, attempt: _StoreAttempt, strict: bool, pass_no: int) -> bool:
        o = attempt.outcome
        if not o or not o.ok or not o.products:
            return False
        best = select_best(o.products, self.spec, strict, require_image=self.require_image)
        if best is None:
            attempt.status = "rejected"
            attempt.reason = (
                "no candidate matched required terms (strict)" if strict
                else "all candidates rejected by relevance filter"
            )
            return False
        delay = self.base_delay_ms + len(self.offers) * self.step_delay_ms
        self.offers.append(offer_from_product(attempt.store, best, arrival_delay_ms=delay))
        attempt.status = "accepted"
        attempt.reason = f"accepted in {'strict' if strict else 'relaxed'} pass: {best.title}"
        attempt.accepted_in_pass = pass_no
        return True

# =============================================================================
#                               PUBLIC API
# =============================================================================

async def acquire_offers(
    spec: IntentSpec,
    pool: Sequence[SellerEndpoint],
    *,
    http: httpx.AsyncClient,
    target_count: int = 3,
    list_timeout_s: float = 6.0,
    call_timeout_s: float = 12.0,
    search_limit: int = 6,
    max_concurrency: int = 3,
    require_image: bool = True,
    base_delay_ms: int = 1400,
    step_delay_ms: int = 1700,
    search: SearchFn = search_products,
) -> AcquisitionResult:
    """
    Contact stores from `pool` (already ordered) until `target_count` offers
    are accepted.

    Pass 1 (strict): stores are contacted in pool order, in waves no larger
      than the number of offers still needed (and `max_concurrency`), so no
      store is contacted once the target is reached. Results of a wave are
      accepted in pool order, not completion order.
    Pass 2 (relaxed): only if short of target. Stores whose products were
      all rejected in pass 1 are re-scored non-strictly from the products
      already fetched; stores are never called twice.

    Every contacted store appears once in the diagnostics. Unexpected faults
    are recorded as `fatal` and the offers gathered so far are returned.
    """
    t0 = time.perf_counter()
    run = _Run(
        spec=spec,
        target=max(0, target_count),
        base_delay_ms=base_delay_ms,
        step_delay_ms=step_delay_ms,
        require_image=require_image,
    )
    fatal: Optional[str] = None
    logger.info(
        "acquire_offers start category=%s query=%r pool=%s target=%s",
        spec.category, spec.search_query, len(pool), run.target,
    )

    async def _contact(store: SellerEndpoint) -> SearchOutcome:
        try:
            return await search(
                http,
                mcp_url=store.mcp_url,
                store_base_url=store.base_url,
                query=spec.search_query,
                list_timeout_s=list_timeout_s,
                call_timeout_s=call_timeout_s,
                limit=search_limit,
            )
        except Exception as e:
            # search_products does not raise; guard injected implementations
            logger.error("store search crashed store=%s err=%s", store.id, e)
            return SearchOutcome(ok=False, error=f"{type(e).__name__}: {e}", failure="transport_error")

    try:
        # ---- Pass 1: strict ---------------------------------------------------
        queue = list(pool)
        while queue and not run.done:
            width = max(1, min(run.target - len(run.offers), max_concurrency))
            wave, queue = queue[:width], queue[width:]
            outcomes = await asyncio.gather(*(_contact(s) for s in wave))

            for store, outcome in zip(wave, outcomes):
                attempt = _StoreAttempt(store=store, outcome=outcome)
                run.attempts.append(attempt)
                if not outcome.ok:
                    attempt.status = outcome.failure or "no_products"
                    attempt.reason = outcome.error or "store returned nothing usable"
                    logger.info("store %s failed: %s (%s)", store.id, attempt.status, attempt.reason)
                    continue
                run.try_accept(attempt, strict=True, pass_no=1)

        # ---- Pass 2: relaxed --------------------------------------------------
        if not run.done:
            for attempt in run.attempts:
                if run.done:
                    break
                if attempt.status == "rejected":
                    run.try_accept(attempt, strict=False, pass_no=2)
    except Exception as e:
        logger.exception("acquire_offers fatal error")
        fatal = f"{type(e).__name__}: {e}"

    diagnostics = DiagnosticTrace(
        category=spec.category,
        cleaned_query=spec.search_query,
        required_terms=list(spec.required_terms),
        candidate_stores=[
            {"id": s.id, "name": s.name, "domain": s.domain, "mcpUrl": s.mcp_url,
             "category": s.category, "weight": s.weight}
            for s in pool
        ],
        contacted=len(run.attempts),
        collected_offers=len(run.offers),
        store_results=[a.to_diagnostic() for a in run.attempts],
        fatal=fatal,
    )
    logger.info(
        "acquire_offers done offers=%s contacted=%s time=%.3fs",
        len(run.offers), len(run.attempts), time.perf_counter() - t0,
    )
    return AcquisitionResult(offers=list(run.offers), diagnostics=diagnostics)
