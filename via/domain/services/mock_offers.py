# Canned offers shown while live sellers answer, or when none do.
from typing import Dict, List, Tuple
from urllib.parse import quote
import uuid

from via.domain.models.offer import Offer, OfferPolicy
from via.domain.services.constants import (
    CATEGORY_SNEAKERS,
    CATEGORY_CYCLING,
    CATEGORY_PET,
    CATEGORY_OUTDOOR,
    CATEGORY_LABELS,
    MOCK_SOURCE_LABEL,
)

# (seller_id, seller_name, headline, price_pence, delivery_days, label, reply, delay_ms, policy)
_Row = Tuple[str, str, str, int, int, str, str, int, Tuple[int, bool, int, int]]

_CANNED: Dict[str, List[_Row]] = {
    CATEGORY_SNEAKERS: [
        ("seller_alpha", "City Kicks", "Runner Court Low (white)", 12500, 2, "Reliable", "fast", 700, (11800, True, 600, 700)),
        ("seller_drhobbs", "DrHobbs Store", "Street Mono Trainer (black)", 13900, 3, "Verified", "normal", 1400, (13200, True, 500, 800)),
        ("seller_peak", "Archive Sports", "Retro Mesh Runner (silver)", 11900, 4, "New", "normal", 2200, (11200, False, 0, 600)),
    ],
    CATEGORY_CYCLING: [
        ("seller_alpha", "Peloton Supply", "Road Jersey, breathable", 8900, 2, "Reliable", "fast", 800, (8200, True, 450, 500)),
        ("seller_drhobbs", "DrHobbs Store", "Bib shorts, endurance fit", 12900, 3, "Verified", "normal", 1500, (12000, True, 500, 700)),
        ("seller_peak", "Chainline Co", "Helmet, commuter safe", 7400, 4, "New", "normal", 2300, (7000, False, 0, 400)),
    ],
    CATEGORY_PET: [
        ("seller_alpha", "Happy Paws", "Dog treats, grain free", 1900, 2, "Reliable", "fast", 700, (1700, True, 200, 200)),
        ("seller_drhobbs", "DrHobbs Store", "Leash and collar set", 3200, 3, "Verified", "normal", 1500, (2900, True, 250, 300)),
        ("seller_peak", "Cat Corner", "Cat toy bundle", 1600, 4, "New", "normal", 2400, (1500, False, 0, 100)),
    ],
    CATEGORY_OUTDOOR: [
        ("seller_alpha", "Trail Supply", "Waterproof daypack (20L)", 7900, 3, "Reliable", "fast", 800, (7400, True, 500, 500)),
        ("seller_drhobbs", "DrHobbs Store", "All-weather shell jacket", 14900, 2, "Verified", "normal", 1400, (14000, True, 600, 800)),
        ("seller_peak", "Peak Outfitters", "Trail boots, rugged sole", 13900, 4, "New", "normal", 2100, (13200, False, 0, 600)),
    ],
}


def placeholder_image(category: str, seed: str) -> str:
    label = CATEGORY_LABELS.get(category, CATEGORY_LABELS[CATEGORY_OUTDOOR])
    return f"https://placehold.co/600x400/png?text={quote(label)}%20{quote(seed)}"


def mock_offers_for_category(category: str) -> List[Offer]:
    """Three canned GBP offers; unknown categories get the outdoor set."""
    key = category if category in _CANNED else CATEGORY_OUTDOOR
    offers: List[Offer] = []
    for i, (sid, name, headline, pence, days, label, reply, delay, pol) in enumerate(_CANNED[key], start=1):
        min_price, can_upgrade, fee, max_discount = pol
        offers.append(Offer(
            id=f"o_{uuid.uuid4().hex[:16]}",
            seller_id=sid,
            seller_name=name,
            headline=headline,
            image_url=placeholder_image(key, f"{i:02d}"),
            product_url="#",
            price_pence=pence,
            currency="GBP",
            delivery_days=days,
            reliability_label=label,
            reply_class=reply,
            arrival_delay_ms=delay,
            source_label=MOCK_SOURCE_LABEL,
            policy=OfferPolicy(
                min_price_pence=min_price,
                can_upgrade_delivery=can_upgrade,
                upgrade_fee_pence=fee,
                max_discount_pence=max_discount,
            ),
        ))
    return offers
