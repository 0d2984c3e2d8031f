import logging
from typing import Optional, Sequence

from via.domain.models.offer import IntentSpec, NormalizedProduct
from via.domain.services.constants import (
    SCORE_REQUIRED,
    SCORE_PREFERRED,
    SCORE_EXCLUDED,
    PLACEHOLDER_IMAGE_HOST,
)

logger = logging.getLogger(__name__)


def _matches(title: str, terms: Sequence[str]) -> int:
    return sum(1 for t in terms if t and t in title)


def is_usable_live_product(p: NormalizedProduct) -> bool:
    """
    Live offers need an image and a real link to look credible.
    Price may be blank for some stores.
    """
    if not p.title:
        return False
    if not p.image_url or PLACEHOLDER_IMAGE_HOST in p.image_url:
        return False
    if not p.product_url or p.product_url == "#":
        return False
    return True


def score_product(p: NormalizedProduct, spec: IntentSpec, strict: bool) -> Optional[int]:
    """
    Score one candidate against the intent terms. None means rejected:
      - strict and any required term missing from the title
      - an excluded term present while no required term is
      - above the intent's max_price (when the amount is known)
    """
    title = p.title.lower()
    required = _matches(title, spec.required_terms)
    preferred = _matches(title, spec.preferred_terms)
    excluded = _matches(title, spec.excluded_terms)

    if strict and required < len([t for t in spec.required_terms if t]):
        return None
    if excluded and not required:
        return None
    if spec.max_price is not None and p.price_amount is not None and p.price_amount > spec.max_price:
        return None

    return required * SCORE_REQUIRED + preferred * SCORE_PREFERRED + excluded * SCORE_EXCLUDED


def select_best(
    products: Sequence[NormalizedProduct],
    spec: IntentSpec,
    strict: bool,
    *,
    require_image: bool = False,
) -> Optional[NormalizedProduct]:
    """
    Highest-scoring non-rejected candidate; ties keep source order.
    Returns None when nothing survives.
    """
    best: Optional[NormalizedProduct] = None
    best_score: Optional[int] = None
    for p in products:
        if require_image and not is_usable_live_product(p):
            continue
        s = score_product(p, spec, strict)
        if s is None:
            continue
        if best_score is None or s > best_score:
            best, best_score = p, s

    logger.debug(
        "select_best strict=%s candidates=%s picked=%s score=%s",
        strict, len(products), best.title if best else None, best_score,
    )
    return best
