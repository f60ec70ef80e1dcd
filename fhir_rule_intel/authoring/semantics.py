"""
Semantic classification of FHIR field paths.

The semantic type gates which rule generators may run for a path. The
sub-type is finer-grained and only selects the rationale template and the
"better rule candidate" shown for observations that must not become rules.

Both chains are ordered (predicate, result) pairs, first match wins.
Reordering them changes results.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable

from fhir_rule_intel.schemas.authoring import (
    BetterRuleCandidate,
    ObservationType,
    SemanticSubType,
    SemanticType,
)

# Instance-only fields: values vary per resource and must never become rules.
INSTANCE_ONLY_FIELDS: tuple[str, ...] = (
    "telecom.value",
    "identifier.value",
    "address.line",
    "address.text",
    "narrative.div",
    "narrative.text",
    "text.div",
    "text",
    "display",
    "id",
    "meta",
)

STATUS_LIFECYCLE_FIELDS = frozenset(
    {
        "status",
        "intent",
        "priority",
        "category",
        "clinicalstatus",
        "verificationstatus",
    }
)

REFERENCE_PARENT_FIELDS = frozenset(
    {
        "subject",
        "patient",
        "practitioner",
        "performer",
        "author",
        "basedon",
        "encounter",
        "requester",
    }
)

_INDEX = re.compile(r"\[[^\]]*\]")


@dataclass(frozen=True)
class FieldPath:
    """A field path reduced to the pieces the classification rules look at."""

    path: str
    lower: str
    segments: tuple[str, ...]
    fhir_type: str | None = None

    @property
    def last(self) -> str:
        return self.segments[-1] if self.segments else ""

    @property
    def parent(self) -> str:
        return self.segments[-2] if len(self.segments) >= 2 else ""

    @classmethod
    def parse(cls, path: str, fhir_type: str | None = None) -> FieldPath:
        clean = _INDEX.sub("", path or "")
        lower = clean.lower()
        return cls(
            path=clean,
            lower=lower,
            segments=tuple(s for s in lower.split(".") if s),
            fhir_type=fhir_type,
        )


def _contains_any(text: str, needles: tuple[str, ...]) -> bool:
    return any(n in text for n in needles)


def _is_coded(f: FieldPath) -> bool:
    return "coding" in f.lower or "code" in f.lower or f.last == "system"


_SEMANTIC_RULES: tuple[tuple[Callable[[FieldPath], bool], SemanticType], ...] = (
    (lambda f: _contains_any(f.lower, INSTANCE_ONLY_FIELDS), SemanticType.FREE_TEXT_FIELD),
    (
        lambda f: f.last == "reference" or "reference" in f.lower or f.fhir_type == "Reference",
        SemanticType.REFERENCE_FIELD,
    ),
    (lambda f: f.last in STATUS_LIFECYCLE_FIELDS, SemanticType.STATUS_OR_LIFECYCLE_FIELD),
    (lambda f: "identifier" in f.lower and f.last == "value", SemanticType.IDENTIFIER_FIELD),
    (
        lambda f: _is_coded(f) and ("value" in f.lower or "component" in f.lower),
        SemanticType.CODED_ANSWER_FIELD,
    ),
    (_is_coded, SemanticType.TERMINOLOGY_BOUND_FIELD),
    (
        lambda f: f.last in ("text", "display", "div")
        or "narrative" in f.lower
        or "address.line" in f.lower,
        SemanticType.FREE_TEXT_FIELD,
    ),
)


def classify_field(path: str, fhir_type: str | None = None) -> SemanticType:
    """Semantic role of a field path such as ``category.coding.system``."""
    field = FieldPath.parse(path, fhir_type)
    for predicate, semantic_type in _SEMANTIC_RULES:
        if predicate(field):
            return semantic_type
    return SemanticType.UNKNOWN


_SUB_TYPE_RULES: tuple[
    tuple[Callable[[FieldPath, SemanticType], bool], SemanticSubType], ...
] = (
    (
        lambda f, t: "identifier" in f.lower and f.last == "system",
        SemanticSubType.IDENTIFIER_NAMESPACE,
    ),
    (
        lambda f, t: t == SemanticType.IDENTIFIER_FIELD
        or ("identifier" in f.lower and f.last == "value"),
        SemanticSubType.IDENTIFIER_VALUE,
    ),
    (lambda f, t: "telecom" in f.lower and f.last == "value", SemanticSubType.INSTANCE_CONTACT_DATA),
    (
        lambda f, t: "address" in f.lower and f.last in ("line", "text"),
        SemanticSubType.INSTANCE_CONTACT_DATA,
    ),
    (lambda f, t: "coding" in f.lower and f.last == "display", SemanticSubType.HUMAN_READABLE_LABEL),
    (
        lambda f, t: f.last == "display"
        and len(f.segments) >= 2
        and (f.parent in REFERENCE_PARENT_FIELDS or "reference" in f.lower),
        SemanticSubType.REFERENCE_DISPLAY,
    ),
    (
        lambda f, t: "code" in f.lower and f.last == "display" and "coding" not in f.lower,
        SemanticSubType.CODED_CONCEPT_DISPLAY,
    ),
    (lambda f, t: "name" in f.lower and f.last == "text", SemanticSubType.DERIVED_TEXT),
    (
        lambda f, t: "narrative" in f.lower or "markdown" in f.lower,
        SemanticSubType.FREE_NARRATIVE,
    ),
    (lambda f, t: f.last == "div" and "text" in f.lower, SemanticSubType.FREE_NARRATIVE),
)


def classify_sub_type(path: str, semantic_type: SemanticType) -> SemanticSubType:
    field = FieldPath.parse(path)
    for predicate, sub_type in _SUB_TYPE_RULES:
        if predicate(field, semantic_type):
            return sub_type
    return SemanticSubType.NONE


def is_instance_only_field(path: str) -> bool:
    """True when the path names data that differs per instance (identifier values, narrative, ...)."""
    dotted = "." + FieldPath.parse(path).lower
    return any(
        dotted.endswith(blocked) or f".{blocked}." in dotted or f".{blocked}" in dotted
        for blocked in INSTANCE_ONLY_FIELDS
    )


_BETTER_CANDIDATES = {
    SemanticSubType.IDENTIFIER_NAMESPACE: BetterRuleCandidate.FIXED_VALUE_IG_DEFINED,
    SemanticSubType.IDENTIFIER_VALUE: BetterRuleCandidate.REGEX,
    SemanticSubType.INSTANCE_CONTACT_DATA: BetterRuleCandidate.REGEX,
    SemanticSubType.HUMAN_READABLE_LABEL: BetterRuleCandidate.TERMINOLOGY_BINDING,
    SemanticSubType.CODED_CONCEPT_DISPLAY: BetterRuleCandidate.TERMINOLOGY_BINDING,
    SemanticSubType.REFERENCE_DISPLAY: BetterRuleCandidate.REFERENCE_EXISTS,
    SemanticSubType.DERIVED_TEXT: BetterRuleCandidate.NONE,
    SemanticSubType.FREE_NARRATIVE: BetterRuleCandidate.NON_EMPTY_STRING,
}


def better_rule_candidate(
    semantic_type: SemanticType, sub_type: SemanticSubType, path: str
) -> BetterRuleCandidate | None:
    """The validation approach to recommend when no direct rule should be suggested."""
    if sub_type == SemanticSubType.INSTANCE_CONTACT_DATA and "address.line" in path.lower():
        return BetterRuleCandidate.ARRAY_LENGTH
    if sub_type in _BETTER_CANDIDATES:
        return _BETTER_CANDIDATES[sub_type]
    if semantic_type == SemanticType.REFERENCE_FIELD:
        return BetterRuleCandidate.REFERENCE_EXISTS
    return None


_RATIONALE_TEMPLATES = {
    SemanticSubType.IDENTIFIER_NAMESPACE: (
        "Field '{path}' represents an identifier namespace (system URI). While stable within "
        "an implementation, it should be constrained via an Implementation Guide profile, not "
        "inferred from sample instances. Detected in {count} resources."
    ),
    SemanticSubType.IDENTIFIER_VALUE: (
        "Field '{path}' represents an instance-level identifier value. Values are expected to "
        "vary per resource; value-based constraints are not appropriate. Consider enforcing "
        "identifier presence or format via regex if needed."
    ),
    SemanticSubType.INSTANCE_CONTACT_DATA: (
        "Field '{path}' represents instance-level contact or address data. Values are expected "
        "to differ per individual. Pattern-based validation (regex, format) is more appropriate "
        "than value constraints. Analyzed {count} instances."
    ),
    SemanticSubType.HUMAN_READABLE_LABEL: (
        "Field '{path}' is a human-readable label derived from code and system. Validation "
        "should be applied to coding.code and coding.system rather than display text, which "
        "may vary by localization."
    ),
    SemanticSubType.CODED_CONCEPT_DISPLAY: (
        "Field '{path}' is a display representation of a coded concept. Validation should "
        "target the underlying coding, not the display text. Consider terminology binding for "
        "the parent CodeableConcept."
    ),
    SemanticSubType.REFERENCE_DISPLAY: (
        "Field '{path}' is a display-only representation of a reference target. Referential "
        "integrity should be validated on the reference itself, not the display text."
    ),
    SemanticSubType.DERIVED_TEXT: (
        "Field '{path}' is derived from structured elements and may change based on "
        "presentation rules. Validation is not recommended; enforce constraints on the "
        "underlying structured fields instead."
    ),
    SemanticSubType.FREE_NARRATIVE: (
        "Field '{path}' contains free-form narrative text. Value-based constraints are not "
        "appropriate for narrative content. Consider length limits or non-empty validation "
        "if needed."
    ),
}


def rationale(
    path: str,
    sub_type: SemanticSubType,
    observation_type: ObservationType,
    count: int,
) -> str:
    template = _RATIONALE_TEMPLATES.get(sub_type)
    if template is not None:
        return template.format(path=path, count=count)
    if observation_type == ObservationType.INSTANCE_DATA:
        return (
            f"Field '{path}' contains instance-specific data that should vary per resource. "
            "Value-based validation is not appropriate."
        )
    return (
        f"Field '{path}' shows {observation_type.value} pattern but no rule is recommended. "
        "Manual review may be needed for proper validation approach."
    )
