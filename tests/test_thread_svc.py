from datetime import datetime, timedelta

import jwt
import pytest

from via.core.config import get_settings
from via.domain.errors import TokenError
from via.domain.models.offer import Offer, OfferPolicy
from via.domain.services.constants import PRICE_UNKNOWN_TEXT
from via.domain.services.mock_offers import mock_offers_for_category
from via.domain.services.thread_svc import (
    apply_live_offers,
    buyer_message,
    confirm_thread,
    delivery_text,
    kpis,
    make_initial_thread,
    select_offer,
    to_price_text,
    to_ui,
    visible_offers,
)
from via.utils.tokens import decode_token, encode_token


def _created(t):
    return datetime.fromisoformat(t.created_at)


def _live_offer(**kw):
    base = dict(
        id="o_live", seller_id="rapha", seller_name="Rapha", headline="Commuter Helmet",
        image_url="https://cdn.example.com/h.jpg", product_url="https://rapha.example.com/p",
        price_pence=0, currency="GBP", price_text_override="£45", delivery_days=3,
        reliability_label="Verified", reply_class="normal", arrival_delay_ms=1400,
        source_label="Live store response",
        policy=OfferPolicy(min_price_pence=0, can_upgrade_delivery=True, upgrade_fee_pence=500, max_discount_pence=700),
    )
    base.update(kw)
    return Offer(**base)


def test_price_and_delivery_text():
    assert to_price_text(12500, "GBP") == "£125"
    assert to_price_text(1950, "USD") == "$20"
    assert delivery_text(1) == "Delivery: next day"
    assert delivery_text(4) == "Delivery: 4 days"


def test_initial_thread_has_canned_offers_and_two_events():
    t = make_initial_thread("  road bike helmet  ")
    assert t.category == "cycling"
    assert t.request_text == "road bike helmet"
    assert len(t.offers) == 3
    assert [e.who for e in t.events] == ["You", "Your assistant"]
    assert not t.acquisition_done


def test_offers_reveal_by_arrival_delay():
    t = make_initial_thread("dog treats")
    start = _created(t)
    assert visible_offers(t, start) == []
    assert len(visible_offers(t, start + timedelta(milliseconds=1500))) == 2
    ui = to_ui(t, start + timedelta(seconds=10))
    assert ui["kpis"]["offersCount"] == 3
    assert ui["kpis"]["category"] == "Pet supplies"
    delays = [o.arrival_delay_ms for o in visible_offers(t, start + timedelta(seconds=10))]
    assert delays == sorted(delays)


def test_live_offers_replace_canned_set():
    t = apply_live_offers(make_initial_thread("helmet"), [_live_offer()], contacted=3)
    assert [o.id for o in t.offers] == ["o_live"]
    assert t.acquisition_done
    assert "3 participating sellers" in t.events[-1].text
    [ui] = to_ui(t, _created(t) + timedelta(seconds=5))["offers"]
    assert ui["priceText"] == "£45"
    assert ui["reliabilityLabel"] == "Verified"


def test_no_live_offers_keeps_canned_unless_fallback_off():
    t = make_initial_thread("helmet")
    kept = apply_live_offers(t, [], contacted=2)
    assert kept.offers == t.offers
    assert not kpis(kept, _created(kept))["noMatches"]

    empty = apply_live_offers(t, [], contacted=2, use_mock_fallback=False)
    k = kpis(empty, _created(empty))
    assert empty.offers == [] and k["noMatches"]
    assert k["stageLabel"] == "No matching offers right now"


def test_select_unknown_offer_is_a_no_op():
    t = make_initial_thread("helmet")
    assert select_offer(t, "o_missing") is t


def test_negotiate_faster_then_discount_then_confirm():
    t = make_initial_thread("trail boots")
    offer = t.offers[0]   # Trail Supply: 3 days, £79, fee £5, discount £5, floor £74
    t = select_offer(t, offer.id)
    assert t.status == "OFFER_SELECTED"
    assert t.terms.price_pence == 7900

    t = buyer_message(t, "Can you do next day?")
    assert t.status == "AGREED"
    assert (t.terms.price_pence, t.terms.delivery_days) == (8400, 2)
    assert "£84" in t.events[-1].text

    t = buyer_message(t, "any discount?")
    assert t.terms.price_pence == 7900
    assert t.terms.notes == ["Delivery upgraded", "Price adjusted"]

    t = confirm_thread(t)
    assert t.status == "COMPLETED" and t.confirmed
    assert [e.who for e in t.events[-2:]] == ["Your assistant", "Seller assistant"]


def test_discount_respects_price_floor():
    t = make_initial_thread("trainers")
    offer = t.offers[2]   # Archive Sports: £119, floor £112, max discount £6
    t = buyer_message(select_offer(t, offer.id), "cheaper please")
    assert t.terms.price_pence == 11300
    t = buyer_message(t, "even cheaper?")
    assert t.terms.price_pence == 11200
    t = buyer_message(t, "lower?")
    assert t.terms.price_pence == 11200
    assert "best price" in t.events[-1].text


def test_live_offer_price_is_not_discounted():
    t = apply_live_offers(make_initial_thread("helmet"), [_live_offer()], contacted=1)
    t = buyer_message(select_offer(t, "o_live"), "express delivery please")
    assert t.terms.delivery_days == 2
    assert "£45 + £5 express" in t.events[-1].text
    t = buyer_message(t, "discount?")
    assert t.terms.price_pence == 0
    assert "best price" in t.events[-1].text


def test_message_without_selection_prompts_to_pick():
    t = buyer_message(make_initial_thread("helmet"), "hello")
    assert t.status == "COLLECTING_OFFERS"
    assert t.events[-1].text.startswith("Pick an offer first")


def test_confirm_requires_agreed_terms():
    t = make_initial_thread("helmet")
    t = confirm_thread(select_offer(t, t.offers[0].id))
    assert t.status == "OFFER_SELECTED" and not t.confirmed


def test_token_round_trip_and_tamper_detection():
    t = buyer_message(select_offer(make_initial_thread("helmet"), "x"), "hi")
    token = encode_token(t)
    assert decode_token(token) == t

    header, payload, sig = token.split(".")
    with pytest.raises(TokenError):
        decode_token(f"{header}.{payload}.{sig[::-1]}")
    with pytest.raises(TokenError):
        decode_token("not-a-token")

    settings = get_settings()
    bogus = jwt.encode({"thread": {"nope": 1}}, settings.token_secret, algorithm=settings.token_algorithm)
    with pytest.raises(TokenError):
        decode_token(bogus)


def test_live_offer_without_price_text_never_shows_zero():
    """A live offer whose store gave no readable price says so instead of rendering £0."""
    t = apply_live_offers(make_initial_thread("helmet"), [_live_offer(price_text_override="")], contacted=1)
    [ui] = to_ui(t, _created(t) + timedelta(seconds=5))["offers"]
    assert ui["priceText"] == PRICE_UNKNOWN_TEXT

    t = buyer_message(select_offer(t, "o_live"), "what are the terms?")
    assert PRICE_UNKNOWN_TEXT in t.events[-1].text
    assert "£0" not in t.events[-1].text

    t = buyer_message(t, "express delivery please")
    assert f"{PRICE_UNKNOWN_TEXT} + £5 express" in t.events[-1].text


def test_initial_thread_takes_category_from_plan():
    """A category from the intent plan wins over keyword classification of the text."""
    t = make_initial_thread("something nice", category="cycling")
    assert t.category == "cycling"
    assert [o.headline for o in t.offers] == [o.headline for o in mock_offers_for_category("cycling")]
    assert kpis(t, _created(t))["category"] == "Cycling"

    assert make_initial_thread("something nice").category == "other"
