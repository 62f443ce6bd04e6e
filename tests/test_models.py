import pytest

from locatorheal.models import (
    AncestorSummary,
    ElementDescriptor,
    HealingRecord,
    RecordedAction,
    normalize_query_kind,
)


def test_descriptor_normalizes_fields() -> None:
    descriptor = ElementDescriptor(
        tag=" BUTTON ",
        text="  Save \n  changes  " + "x" * 300,
        attributes={"ID": "save", "class": "btn  primary", "Name": "save-btn", "title": None},
    )

    assert descriptor.tag == "button"
    assert descriptor.id == "save"
    assert descriptor.name == "save-btn"
    assert descriptor.classes == ("btn", "primary")
    assert descriptor.text.startswith("Save changes x")
    assert len(descriptor.text) <= 200
    assert "title" not in descriptor.attributes

    with pytest.raises(TypeError):
        descriptor.attributes["role"] = "button"


def test_descriptor_depth_covers_captured_ancestors() -> None:
    descriptor = ElementDescriptor(tag="span", ancestors=(AncestorSummary(tag="div"), AncestorSummary(tag="body")))
    assert descriptor.depth == 2
    assert descriptor.ancestor_chain_complete


def test_query_kind_aliases() -> None:
    assert normalize_query_kind("xpath") == "XPath"
    assert normalize_query_kind("text-match") == "Text"
    assert normalize_query_kind(None) == "CSS"


def test_recorded_action_round_trip_keeps_extra_fields() -> None:
    action = RecordedAction.from_dict(
        {
            "type": "fill",
            "value": "hello",
            "url": "https://example.com/form",
            "element": {
                "selector": "#email",
                "queryKind": "css",
                "descriptor": {"tagName": "INPUT", "id": "email", "nthOfType": 2, "ofTypeCount": 3},
            },
        }
    )

    assert action.action_type == "fill"
    assert action.page_url == "https://example.com/form"
    assert action.element.descriptor.tag == "input"
    assert action.element.descriptor.nth_of_type == 2

    emitted = action.to_emitted()
    assert emitted["value"] == "hello"
    assert emitted["url"] == "https://example.com/form"
    assert emitted["element"] == {
        "selector": "#email",
        "queryKind": "CSS",
        "isHealed": False,
        "healedBy": None,
        "confidence": None,
    }


def test_recorded_action_requires_selector() -> None:
    with pytest.raises(ValueError):
        RecordedAction.from_dict({"type": "click"})
    with pytest.raises(ValueError):
        RecordedAction.from_dict({"type": "click", "element": {"selector": "  "}})


def test_with_healed_selector_leaves_original_untouched() -> None:
    action = RecordedAction.from_dict({"type": "click", "element": {"selector": "#old"}})
    healed = action.with_healed_selector("//button", "XPath", "partial-text", 0.85)

    assert action.element.selector == "#old"
    assert not action.element.is_healed
    assert healed.element.selector == "//button"
    assert healed.element.query_kind == "XPath"
    assert healed.element.healed_by == "partial-text"


def test_healing_record_serialized_keys() -> None:
    record = HealingRecord.create("#a", "#b", "exact-match", 1, "https://example.com")
    payload = record.to_dict()

    assert set(payload) == {"timestamp", "originalSelector", "healedSelector", "strategyName", "confidence", "pageURL"}
    assert HealingRecord.from_dict(payload) == record
