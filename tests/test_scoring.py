from via.domain.models.offer import IntentSpec, NormalizedProduct
from via.domain.services.normalizer import normalize
from via.domain.services.scoring import is_usable_live_product, score_product, select_best


def _p(title, amount=None, image="https://cdn.example.com/x.jpg", url="https://shop.example.com/p"):
    return NormalizedProduct(title=title, price_amount=amount, image_url=image, product_url=url)


def test_sun_hat_rejected_even_when_relaxed(helmet_spec):
    """An excluded term with no required term to override it always rejects."""
    assert score_product(_p("Sun Hat"), helmet_spec, strict=True) is None
    assert score_product(_p("Sun Hat"), helmet_spec, strict=False) is None


def test_excluded_term_tolerated_when_required_present(helmet_spec):
    # "helmet hat liner" contains both; required wins but is penalised
    assert score_product(_p("Helmet hat liner"), helmet_spec, strict=True) == 6 - 7


def test_strict_needs_every_required_term():
    spec = IntentSpec(required_terms=["helmet", "mips"], preferred_terms=["black"])
    assert score_product(_p("Road helmet black"), spec, strict=True) is None
    assert score_product(_p("Road helmet black"), spec, strict=False) == 6 + 2
    assert score_product(_p("MIPS helmet"), spec, strict=True) == 12


def test_max_price_filter_only_when_amount_known():
    spec = IntentSpec(required_terms=["helmet"], max_price=50)
    assert score_product(_p("Helmet", amount=60), spec, strict=True) is None
    assert score_product(_p("Helmet", amount=45), spec, strict=True) == 6
    assert score_product(_p("Helmet"), spec, strict=True) == 6


def test_select_best_keeps_source_order_on_ties(helmet_spec):
    a, b = _p("Helmet A"), _p("Helmet B")
    assert select_best([a, b], helmet_spec, strict=True) is a


def test_select_best_prefers_higher_score():
    spec = IntentSpec(required_terms=["helmet"], preferred_terms=["black"])
    plain, black = _p("Helmet"), _p("Helmet black")
    assert select_best([plain, black], spec, strict=True) is black


def test_select_best_none_when_everything_rejected(helmet_spec):
    assert select_best([_p("Sun Hat"), _p("Bottle")], helmet_spec, strict=True) is None
    assert select_best([], helmet_spec, strict=False) is None


def test_require_image_skips_placeholder_products(helmet_spec):
    placeholder = _p("Helmet", image="https://placehold.co/600x400/png?text=x")
    real = _p("Helmet two")
    assert not is_usable_live_product(placeholder)
    assert not is_usable_live_product(_p("Helmet", url="#"))
    assert select_best([placeholder, real], helmet_spec, strict=True, require_image=True) is real
    assert select_best([placeholder, real], helmet_spec, strict=True) is placeholder


def test_continental_price_counts_against_max_price():
    """A "1.299,00 €" helmet is 1299 for the budget check, so an under-50 request rejects it."""
    [p] = normalize({"products": [{
        "title": "Carbon Helmet",
        "price": "1.299,00 €",
        "image": {"url": "https://cdn.example.com/c.jpg"},
        "url": "https://shop.example.com/carbon",
    }]}, "https://shop.example.com")
    assert p.price_text == "1.299,00 €"
    assert p.price_amount == 1299.0
    spec = IntentSpec(required_terms=["helmet"], max_price=50)
    assert score_product(p, spec, strict=True) is None
    assert score_product(p, spec, strict=False) is None
