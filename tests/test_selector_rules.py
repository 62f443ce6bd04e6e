from locatorheal.selector_rules import (
    count_positional_predicates,
    css_attribute,
    escape_css_identifier,
    is_blocked_root_id,
    is_generated_class,
    is_generic_value,
    looks_generated_id,
    normalize_classes,
    normalize_space,
    normalize_tag,
    referenced_attributes,
    xpath_literal,
)


def test_looks_generated_id_detects_hashes_and_framework_ids() -> None:
    assert looks_generated_id("a1b2c3d4e5")
    assert looks_generated_id("550e8400-e29b-41d4-a716-446655440000")
    assert looks_generated_id("order-1698765432123")
    assert looks_generated_id(":r3:")
    assert looks_generated_id("mui-12")
    assert looks_generated_id("x7Kp92Qz4Lm8")
    assert looks_generated_id("12345")


def test_looks_generated_id_keeps_human_ids() -> None:
    assert not looks_generated_id("loginBtn")
    assert not looks_generated_id("submit-42")
    assert not looks_generated_id("checkout")
    assert not looks_generated_id("main-navigation")


def test_root_ids_are_blocked_case_insensitively() -> None:
    assert is_blocked_root_id("root")
    assert is_blocked_root_id("__NEXT")
    assert not is_blocked_root_id("rooted")


def test_is_generated_class() -> None:
    assert is_generated_class("css-1x2y3z")
    assert is_generated_class("jss42")
    assert is_generated_class("sc-bdfBwQ")
    assert is_generated_class("Button_root__3xYz9")
    assert is_generated_class("item-1024")
    assert not is_generated_class("btn-primary")
    assert not is_generated_class("card__title")
    assert not is_generated_class("nav-item")


def test_generic_values() -> None:
    assert is_generic_value("Submit")
    assert is_generic_value(" true ")
    assert not is_generic_value("email")


def test_normalizers() -> None:
    assert normalize_space("  Sign \n  in ") == "Sign in"
    assert normalize_space(None) == ""
    assert normalize_space("abcdef", limit=3) == "abc"
    assert normalize_classes("btn  btn-primary btn") == ["btn", "btn-primary"]
    assert normalize_tag("Button") == "button"
    assert normalize_tag("my:tag") == "*"


def test_xpath_literal_handles_quotes() -> None:
    assert xpath_literal("Save") == "'Save'"
    assert xpath_literal("it's") == '"it\'s"'
    assert xpath_literal("a'b\"c") == "concat('a', \"'\", 'b\"c')"


def test_css_escaping() -> None:
    assert css_attribute("aria-label", 'Say "hi"') == '[aria-label="Say \\"hi\\""]'
    assert css_attribute("class", "nav", "~=") == '[class~="nav"]'
    assert escape_css_identifier("1col") == "\\31 col"
    assert escape_css_identifier("a.b") == "a\\2e b"


def test_referenced_attributes_ignores_quoted_text() -> None:
    assert referenced_attributes('button[data-testid="x[y]"]') == ("data-testid",)
    assert referenced_attributes("#main > a[href]") == ("href", "id")
    assert referenced_attributes("//div[@id='a']/span[@role='tab']") == ("id", "role")
    assert referenced_attributes('[title="#hash"]') == ("title",)


def test_count_positional_predicates() -> None:
    assert count_positional_predicates("/html/body/div[2]/span[1]") == 2
    assert count_positional_predicates("div:nth-of-type(2) > a") == 1
    assert count_positional_predicates("//button[@type='submit']") == 0
