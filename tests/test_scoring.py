from locatorheal.models import ElementDescriptor, LocatorCandidate, ResolutionOutcome
from locatorheal.scoring import (
    attribute_profile_similarity,
    composite_score,
    compute_confidence,
    infer_base_reliability,
    infer_candidate,
    rank_candidates,
    score_candidate,
)


def _candidate(selector: str, base: int, attrs: tuple[str, ...] = (), strategy: str = "test") -> LocatorCandidate:
    return LocatorCandidate(
        strategy=strategy,
        query_kind="CSS",
        selector=selector,
        base_reliability=base,
        attributes_used=attrs,
    )


def test_confidence_stacks_bonuses_and_clamps() -> None:
    descriptor = ElementDescriptor(tag="button", depth=2)
    candidate = _candidate('[data-testid="save"]', 95, ("data-testid",))
    assert compute_confidence(candidate, descriptor) == 1.0


def test_confidence_penalizes_long_selectors() -> None:
    descriptor = ElementDescriptor(tag="div")
    candidate = _candidate("div" + " > div" * 20, 50)
    assert len(candidate.selector) > 100
    assert compute_confidence(candidate, descriptor) == 0.4


def test_confidence_penalizes_deep_elements() -> None:
    descriptor = ElementDescriptor(tag="span", depth=15)
    assert compute_confidence(_candidate("span.title", 70), descriptor) == 0.6


def test_confidence_never_drops_below_zero() -> None:
    descriptor = ElementDescriptor(tag="div", depth=100)
    assert compute_confidence(_candidate("div", 10), descriptor) == 0.0


def test_composite_score_weights_reliability_and_confidence() -> None:
    assert composite_score(_candidate("#a", 95), 1.0) == 0.97
    assert composite_score(_candidate("#a", 50), 0.5) == 0.5


def test_rank_candidates_breaks_ties_by_order() -> None:
    descriptor = ElementDescriptor(tag="div")
    outcome = ResolutionOutcome(matched_count=1, is_unique=True)
    first = score_candidate(_candidate("div.a", 70, strategy="first"), descriptor, outcome, order=0)
    second = score_candidate(_candidate("div.b", 70, strategy="second"), descriptor, outcome, order=1)
    best = score_candidate(_candidate("#c", 90, ("id",), strategy="best"), descriptor, outcome, order=2)

    ranked = rank_candidates([second, best, first])
    assert [item.strategy for item in ranked] == ["best", "first", "second"]


def test_infer_base_reliability_from_selector_shape() -> None:
    assert infer_base_reliability('[data-testid="x"]', "CSS") == 95
    assert infer_base_reliability("#login", "CSS") == 90
    assert infer_base_reliability('input[name="q"]', "CSS") == 85
    assert infer_base_reliability("//button[normalize-space()='Save']", "XPath") == 65
    assert infer_base_reliability("//button[contains(normalize-space(), 'Sa')]", "XPath") == 55
    assert infer_base_reliability("button.primary", "CSS") == 70
    assert infer_base_reliability("div > span:nth-child(2)", "CSS") == 45
    assert infer_base_reliability("button", "CSS") == 20
    assert infer_base_reliability("Sign in", "Text") == 65


def test_infer_base_reliability_penalizes_partial_and_positional() -> None:
    assert infer_base_reliability('[aria-label*="Sign"]', "CSS") == 70
    assert infer_base_reliability('[data-testid*="sub"]', "CSS") == 80
    assert infer_base_reliability("//div[@id='a']/span[2]", "XPath") == 80


def test_attribute_profile_similarity_gives_partial_class_credit() -> None:
    original = ElementDescriptor(tag="button", id="save", name="save", classes=("btn", "primary"))
    current = ElementDescriptor(tag="button", id="save", classes=("btn",))
    assert attribute_profile_similarity(original, current) == 0.525


def test_attribute_profile_similarity_without_weighted_attributes() -> None:
    original = ElementDescriptor(tag="div", text="Hello")
    current = ElementDescriptor(tag="div", text="Hello")
    assert attribute_profile_similarity(original, current) == 0.0


def test_attribute_profile_similarity_uses_custom_weights() -> None:
    original = ElementDescriptor(tag="a", attributes={"href": "/cart", "title": "Cart"})
    current = ElementDescriptor(tag="a", attributes={"href": "/cart"})
    assert attribute_profile_similarity(original, current, {"href": 1.0, "title": 1.0}) == 0.5


def test_class_containment_keeps_class_reliability() -> None:
    assert infer_base_reliability("//button[contains(@class, 'submit')]", "XPath") == 70
    assert infer_base_reliability('button[class*="btn-prim"]', "CSS") == 70
    assert infer_base_reliability('li[class~="item"]', "CSS") == 70


def test_class_containment_reaches_threshold_on_semantic_tags() -> None:
    candidate = infer_candidate("exact-match", "//button[contains(@class, 'submit')]", "XPath")
    assert compute_confidence(candidate, ElementDescriptor(tag="button", depth=3)) == 0.75
