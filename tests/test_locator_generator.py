import random

from locatorheal.exceptions import SelectorSyntaxError
from locatorheal.html_snapshot import HtmlSnapshotPage
from locatorheal.locator_generator import GENERATION_STRATEGIES, CandidateFactory, generate_locators
from locatorheal.models import AncestorSummary, ElementDescriptor
from locatorheal.page_query import ResolutionCache

SHOP_PAGE = """
<html><body>
  <header><nav><a href="/">Home</a><a href="/cart" class="nav-link">Cart</a></nav></header>
  <main>
    <form id="checkout-form">
      <input name="email" type="email" placeholder="Email address">
      <button id="submit-42" data-testid="submit-btn">Submit</button>
      <button class="btn btn-secondary" type="button">Cancel</button>
    </form>
    <div id="menu"><a>1</a><a>2</a><a>3</a></div>
    <ul><li class="item">First</li><li class="item">Second</li></ul>
  </main>
</body></html>
"""


def _by_strategy(result, strategy: str):
    return next(item for item in result.all if item.strategy == strategy)


def test_test_attribute_wins_for_submit_button() -> None:
    page = HtmlSnapshotPage(SHOP_PAGE)
    descriptor = page.describe("#submit-42")
    result = generate_locators(descriptor, page)

    assert result.primary.strategy == "test-attribute"
    assert result.primary.selector == '[data-testid="submit-btn"]'
    assert result.primary.confidence >= 0.9
    assert result.primary.is_unique
    assert len(result.alternatives) <= 4
    assert result.primary not in result.alternatives


def test_each_strategy_contributes_at_most_one_candidate() -> None:
    page = HtmlSnapshotPage(SHOP_PAGE)
    result = generate_locators(page.describe("#submit-42"), page)

    strategies = [item.strategy for item in result.all]
    assert len(strategies) == len(set(strategies))
    assert set(strategies) <= set(GENERATION_STRATEGIES)
    assert "unique-id" in strategies
    assert _by_strategy(result, "unique-id").selector == "#submit-42"


def test_generated_id_is_not_offered() -> None:
    page = HtmlSnapshotPage('<button id="a1b2c3d4e5f6" name="go">Go</button>')
    result = generate_locators(page.describe("button"), page)

    assert "unique-id" not in [item.strategy for item in result.all]
    assert result.primary.selector == 'button[name="go"]'


def test_generic_attribute_values_are_skipped() -> None:
    factory = CandidateFactory(ElementDescriptor(tag="button", type="submit", name="pay"))
    selectors = [item.selector for item in factory.options("stable-attribute")]
    assert selectors == ['button[name="pay"]']


def test_semantic_combination_uses_role_label_and_text() -> None:
    descriptor = ElementDescriptor(
        tag="button",
        text="Add to cart",
        attributes={"role": "button", "aria-label": "Add item"},
    )
    options = CandidateFactory(descriptor).options("semantic-combination")

    assert options[0].query_kind == "XPath"
    assert options[0].base_reliability == 80
    assert options[0].selector == (
        "//button[@role='button'][@aria-label='Add item'][contains(normalize-space(), 'Add to cart')]"
    )
    assert options[1].selector == 'button[role="button"][aria-label="Add item"]'
    assert options[1].base_reliability == 75


def test_semantic_combination_needs_a_qualifier() -> None:
    assert CandidateFactory(ElementDescriptor(tag="section")).options("semantic-combination") == []
    assert CandidateFactory(ElementDescriptor(tag="div", text="Hi there")).options("semantic-combination") == []


def test_stable_class_reliability_depends_on_generated_classes() -> None:
    clean = CandidateFactory(ElementDescriptor(tag="button", classes=("btn", "btn-secondary")))
    mixed = CandidateFactory(ElementDescriptor(tag="button", classes=("css-1x2y3z", "btn")))

    assert [(item.selector, item.base_reliability) for item in clean.options("stable-class")] == [("button.btn", 75)]
    assert [(item.selector, item.base_reliability) for item in mixed.options("stable-class")] == [("button.btn", 70)]


def test_absolute_path_uses_positions_only_where_needed() -> None:
    page = HtmlSnapshotPage("<div><span>a</span></div><div><span class='t'>b</span></div>")
    result = generate_locators(page.describe("span.t"), page)

    candidate = _by_strategy(result, "absolute-path")
    assert candidate.selector == "/html/body/div[2]/span"
    assert candidate.candidate.base_reliability == 65
    assert candidate.is_unique


def test_absolute_path_skipped_for_truncated_ancestry() -> None:
    descriptor = ElementDescriptor(tag="span", ancestors=(AncestorSummary(tag="div"),), depth=20)
    assert CandidateFactory(descriptor).options("absolute-path") == []


def test_absolute_path_rejects_more_than_two_positional_predicates() -> None:
    descriptor = ElementDescriptor(
        tag="span",
        nth_of_type=2,
        of_type_count=3,
        ancestors=(
            AncestorSummary(tag="div", nth_of_type=2, of_type_count=2),
            AncestorSummary(tag="section", nth_of_type=3, of_type_count=4),
            AncestorSummary(tag="body"),
            AncestorSummary(tag="html"),
        ),
    )
    assert CandidateFactory(descriptor).options("absolute-path") == []


def test_text_content_is_length_bounded() -> None:
    assert CandidateFactory(ElementDescriptor(tag="a", text="Go")).options("text-content") == []
    assert CandidateFactory(ElementDescriptor(tag="p", text="x" * 150)).options("text-content") == []

    options = CandidateFactory(ElementDescriptor(tag="a", text="Cart")).options("text-content")
    assert [item.selector for item in options] == [
        "//a[normalize-space()='Cart']",
        "//a[contains(normalize-space(), 'Cart')]",
    ]


def test_positional_anchors_on_stable_parent() -> None:
    page = HtmlSnapshotPage(SHOP_PAGE)
    result = generate_locators(page.describe("//div[@id='menu']/a[2]", "XPath"), page)

    candidate = _by_strategy(result, "positional")
    assert candidate.selector == "//*[@id='menu']/a[2]"
    assert candidate.candidate.base_reliability == 50
    assert candidate.is_unique


def test_fallback_is_primary_when_nothing_is_unique() -> None:
    page = HtmlSnapshotPage("<p class='note'>x</p><p class='note'>x</p>")
    descriptor = ElementDescriptor(tag="p", classes=("note",), text="x")
    result = generate_locators(descriptor, page)

    assert result.primary.is_fallback
    assert result.primary.strategy == "fallback"
    assert result.primary.selector == "p.note"


def test_primary_is_synthesized_when_page_rejects_everything() -> None:
    class BrokenPage:
        def count(self, selector, query_kind):
            raise SelectorSyntaxError(selector, query_kind, "unsupported")

        def query(self, selector, query_kind):
            raise SelectorSyntaxError(selector, query_kind, "unsupported")

    result = generate_locators(ElementDescriptor(tag="button", id="save", text="Save"), BrokenPage())

    assert result.all == ()
    assert result.alternatives == ()
    assert result.primary.selector == "button"
    assert result.primary.is_fallback
    assert result.primary.confidence == 0.05


def test_cache_is_filled_during_a_generation_pass() -> None:
    page = HtmlSnapshotPage(SHOP_PAGE)
    cache = ResolutionCache()
    generate_locators(page.describe("#submit-42"), page, cache=cache)
    assert len(cache) > 0


def _random_descriptor(rng: random.Random) -> ElementDescriptor:
    alphabet = "abcdefghijklmnopqrstuvwxyz0123456789-_ '\"#[]."

    def word(size: int) -> str:
        return "".join(rng.choice(alphabet) for _ in range(size))

    attributes = {}
    for key in ("data-testid", "name", "aria-label", "role", "type", "placeholder", "title"):
        if rng.random() < 0.3:
            attributes[key] = word(rng.randint(1, 12))
    classes = tuple(
        rng.choice("abcdefghij") + "".join(rng.choice("abcdefghij0123456789-") for _ in range(rng.randint(0, 8)))
        for _ in range(rng.randint(0, 3))
    )
    return ElementDescriptor(
        tag=rng.choice(["button", "a", "div", "span", "input", "li", "my:tag", ""]),
        id=word(rng.randint(1, 14)) if rng.random() < 0.5 else None,
        classes=classes,
        text=word(rng.randint(0, 120)) if rng.random() < 0.7 else None,
        attributes=attributes,
        ancestors=tuple(AncestorSummary(tag=rng.choice(["div", "form", "main"])) for _ in range(rng.randint(0, 3))),
        nth_of_type=rng.randint(1, 3),
        of_type_count=3,
        depth=rng.choice([None, 2, 12, 30]),
    )


def test_random_descriptors_always_yield_bounded_primary() -> None:
    rng = random.Random(458)
    page = HtmlSnapshotPage(SHOP_PAGE)

    for _ in range(150):
        descriptor = _random_descriptor(rng)
        result = generate_locators(descriptor, page)

        assert result.primary is not None
        assert len(result.alternatives) <= 4
        for item in (result.primary, *result.all):
            assert 0.0 <= item.confidence <= 1.0
        if not result.primary.is_fallback:
            assert page.count(result.primary.selector, result.primary.query_kind) == 1


def test_captured_elements_get_unique_or_fallback_primary() -> None:
    page = HtmlSnapshotPage(SHOP_PAGE)
    for selector in ("input", "#submit-42", "button.btn", "a.nav-link", "#menu", "li.item", "header", "form"):
        for snapshot in page.query(selector):
            result = generate_locators(snapshot.to_descriptor(), page)
            primary = result.primary
            assert primary.is_fallback or page.count(primary.selector, primary.query_kind) == 1
