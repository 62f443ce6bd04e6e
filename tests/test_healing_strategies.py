from locatorheal.healing_strategies import (
    HealingContext,
    css_parent_patterns,
    exact_match_candidates,
    structural_search_selectors,
    xpath_parent_patterns,
)
from locatorheal.html_snapshot import HtmlSnapshotPage
from locatorheal.settings import HealingSettings


def _variants(selector: str, query_kind: str = "CSS") -> list[tuple[str, str]]:
    context = HealingContext(
        original_selector=selector,
        query_kind=query_kind,
        descriptor=None,
        page=HtmlSnapshotPage("<p>x</p>"),
        settings=HealingSettings(),
    )
    return [(item.selector, item.query_kind) for item in exact_match_candidates(context)]


def test_css_id_variants_drop_the_tag() -> None:
    assert _variants("button#save") == [
        ("button#save", "CSS"),
        ('[id="save"]', "CSS"),
        ("//*[@id='save']", "XPath"),
    ]
    assert _variants('[id="save"]') == [('[id="save"]', "CSS"), ("//*[@id='save']", "XPath")]


def test_css_class_variant_uses_contains() -> None:
    assert _variants(".item") == [(".item", "CSS"), ("//*[contains(@class, 'item')]", "XPath")]
    assert _variants("li.item")[1] == ("//li[contains(@class, 'item')]", "XPath")


def test_xpath_id_variant_is_css_attribute() -> None:
    assert _variants("//input[@id='q']", "XPath") == [("//input[@id='q']", "XPath"), ('[id="q"]', "CSS")]


def test_compound_selectors_only_try_verbatim() -> None:
    assert _variants("form > button.primary") == [("form > button.primary", "CSS")]
    assert _variants("//form/button", "XPath") == [("//form/button", "XPath")]


def test_css_parent_patterns_longest_first() -> None:
    assert css_parent_patterns("main > form.login button:nth-child(2)") == ["main > form.login", "main"]
    assert css_parent_patterns('div[data-x="a b"] span') == ['div[data-x="a b"]']


def test_xpath_parent_patterns_ignore_slashes_in_predicates() -> None:
    assert xpath_parent_patterns("//form[@id='login']/button[@id='old']") == ["//form[@id='login']"]
    assert xpath_parent_patterns("//div[a/b]/ul/li[2]") == ["//div[a/b]/ul", "//div[a/b]"]


def test_structural_search_selectors_by_query_kind() -> None:
    assert structural_search_selectors("//form[@id='login']/button[@id='old']", "XPath", "button") == [
        ("//form[@id='login']//button", "XPath"),
        ("button", "CSS"),
    ]
    assert structural_search_selectors("main > form.login button:nth-child(2)", "CSS", "button") == [
        ("main > form.login button", "CSS"),
        ("main button", "CSS"),
        ("button", "CSS"),
    ]
