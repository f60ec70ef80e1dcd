"""Tests for semantic field classification."""

import pytest

from fhir_rule_intel.authoring.semantics import (
    better_rule_candidate,
    classify_field,
    classify_sub_type,
    is_instance_only_field,
    rationale,
)
from fhir_rule_intel.schemas.authoring import (
    BetterRuleCandidate,
    ObservationType,
    SemanticSubType,
    SemanticType,
)


@pytest.mark.parametrize(
    "path, expected",
    [
        ("telecom.value", SemanticType.FREE_TEXT_FIELD),
        ("identifier.value", SemanticType.FREE_TEXT_FIELD),
        ("code.text", SemanticType.FREE_TEXT_FIELD),
        ("subject.reference", SemanticType.REFERENCE_FIELD),
        ("status", SemanticType.STATUS_OR_LIFECYCLE_FIELD),
        ("clinicalStatus", SemanticType.STATUS_OR_LIFECYCLE_FIELD),
        ("category", SemanticType.STATUS_OR_LIFECYCLE_FIELD),
        ("category.coding.system", SemanticType.TERMINOLOGY_BOUND_FIELD),
        ("code.coding.code", SemanticType.TERMINOLOGY_BOUND_FIELD),
        ("valueCodeableConcept.coding.code", SemanticType.CODED_ANSWER_FIELD),
        ("component.code.coding.system", SemanticType.CODED_ANSWER_FIELD),
        ("effectiveDateTime", SemanticType.UNKNOWN),
        ("valueQuantity.unit", SemanticType.UNKNOWN),
    ],
)
def test_classify_field(path, expected):
    assert classify_field(path) == expected


def test_declared_reference_type_wins_over_unknown():
    assert classify_field("basedOn", "Reference") == SemanticType.REFERENCE_FIELD
    assert classify_field("basedOn") == SemanticType.UNKNOWN


def test_bracket_indices_are_ignored():
    assert classify_field("category[0].coding[1].system") == classify_field("category.coding.system")


def test_instance_blocklist_takes_precedence_over_status():
    # "display" appears in the path, so even a status-looking leaf is free text
    assert classify_field("display.status") == SemanticType.FREE_TEXT_FIELD


@pytest.mark.parametrize(
    "path",
    ["identifier.value", "identifier.system", "telecom.value", "name.text", "code.coding.display", "text.div"],
)
def test_instance_only_fields(path):
    assert is_instance_only_field(path)


@pytest.mark.parametrize("path", ["status", "subject.reference", "category.coding.system", "valueQuantity.value"])
def test_rule_eligible_fields(path):
    assert not is_instance_only_field(path)


@pytest.mark.parametrize(
    "path, expected",
    [
        ("identifier.system", SemanticSubType.IDENTIFIER_NAMESPACE),
        ("identifier.value", SemanticSubType.IDENTIFIER_VALUE),
        ("telecom.value", SemanticSubType.INSTANCE_CONTACT_DATA),
        ("address.line", SemanticSubType.INSTANCE_CONTACT_DATA),
        ("code.coding.display", SemanticSubType.HUMAN_READABLE_LABEL),
        ("subject.display", SemanticSubType.REFERENCE_DISPLAY),
        ("basedOn.display", SemanticSubType.REFERENCE_DISPLAY),
        ("code.display", SemanticSubType.CODED_CONCEPT_DISPLAY),
        ("name.text", SemanticSubType.DERIVED_TEXT),
        ("text.div", SemanticSubType.FREE_NARRATIVE),
        ("status", SemanticSubType.NONE),
    ],
)
def test_classify_sub_type(path, expected):
    assert classify_sub_type(path, classify_field(path)) == expected


@pytest.mark.parametrize(
    "path, expected",
    [
        ("identifier.value", BetterRuleCandidate.REGEX),
        ("identifier.system", BetterRuleCandidate.FIXED_VALUE_IG_DEFINED),
        ("telecom.value", BetterRuleCandidate.REGEX),
        ("address.line", BetterRuleCandidate.ARRAY_LENGTH),
        ("code.coding.display", BetterRuleCandidate.TERMINOLOGY_BINDING),
        ("subject.display", BetterRuleCandidate.REFERENCE_EXISTS),
        ("name.text", BetterRuleCandidate.NONE),
        ("text.div", BetterRuleCandidate.NON_EMPTY_STRING),
    ],
)
def test_better_rule_candidate(path, expected):
    semantic_type = classify_field(path)
    sub_type = classify_sub_type(path, semantic_type)
    assert better_rule_candidate(semantic_type, sub_type, path) == expected


def test_reference_field_without_sub_type_suggests_reference_exists():
    candidate = better_rule_candidate(SemanticType.REFERENCE_FIELD, SemanticSubType.NONE, "subject.reference")
    assert candidate == BetterRuleCandidate.REFERENCE_EXISTS
    assert better_rule_candidate(SemanticType.UNKNOWN, SemanticSubType.NONE, "x") is None


def test_rationale_uses_sub_type_template():
    text = rationale("identifier.system", SemanticSubType.IDENTIFIER_NAMESPACE, ObservationType.INSTANCE_DATA, 12)
    assert text.startswith("Field 'identifier.system' represents an identifier namespace")
    assert "Detected in 12 resources." in text


def test_rationale_fallbacks():
    instance = rationale("foo", SemanticSubType.NONE, ObservationType.INSTANCE_DATA, 3)
    assert "instance-specific data" in instance
    other = rationale("foo", SemanticSubType.NONE, ObservationType.NO_PATTERN, 3)
    assert "shows NoPattern pattern" in other
