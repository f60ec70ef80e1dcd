"""
Decides whether an advisory spec-hint issue stays advisory (SPEC_HINT) or is
upgraded to a blocking STRUCTURE error.

The decision table is fixed and evaluated top to bottom, first match wins.
Conditionality is checked before any path-shape heuristic. The
unconditional-required allow-list is empty by default because min >= 1 fields
are already enforced by the structural validator; it stays as an extension
point for JSON-grammar violations that validator does not yet catch.
"""

from __future__ import annotations

import logging
import re
from typing import Callable, Iterable

from fhir_rule_intel.schemas.authoring import (
    ClassificationCategory,
    ClassificationResult,
    SpecHintIssue,
)

logger = logging.getLogger(__name__)

UNCONDITIONAL_REQUIRED_FIELDS: frozenset[str] = frozenset()

CLOSED_ENUM_FIELDS: frozenset[str] = frozenset(
    {
        "Patient.gender",
        "Observation.status",
        "Bundle.type",
        "Encounter.status",
    }
)

_INDEX = re.compile(r"\[[^\]]*\]")

CONDITIONAL = ClassificationResult(
    source="SPEC_HINT",
    severity="warning",
    reason="Conditional requirement - depends on context/profile",
    category=ClassificationCategory.CONDITIONAL,
)
UNCONDITIONAL_REQUIRED = ClassificationResult(
    source="STRUCTURE",
    severity="error",
    reason="Unconditional required field per HL7 base specification",
    category=ClassificationCategory.UNCONDITIONAL_REQUIRED,
)
ALREADY_HANDLED = ClassificationResult(
    source="SPEC_HINT",
    severity="warning",
    reason="Closed enum already validated by structural layer",
    category=ClassificationCategory.ALREADY_HANDLED,
)
NESTED_OPTIONAL = ClassificationResult(
    source="SPEC_HINT",
    severity="warning",
    reason="Required field within optional parent - contextual guidance",
    category=ClassificationCategory.NESTED_OPTIONAL,
)
ADVISORY = ClassificationResult(
    source="SPEC_HINT",
    severity="warning",
    reason="Advisory guidance - not a base HL7 violation",
    category=ClassificationCategory.ADVISORY,
)


def normalize_issue_path(path: str | None) -> str:
    """Drop array indices: ``Patient.communication[0].language`` -> ``Patient.communication.language``."""
    return _INDEX.sub("", path or "").strip()


class HintClassifier:
    def __init__(
        self,
        unconditional_required: Iterable[str] = UNCONDITIONAL_REQUIRED_FIELDS,
        closed_enums: Iterable[str] = CLOSED_ENUM_FIELDS,
    ):
        self.unconditional_required = frozenset(unconditional_required)
        self.closed_enums = frozenset(closed_enums)
        self._rules: tuple[tuple[Callable[[SpecHintIssue, str], bool], ClassificationResult], ...] = (
            (lambda issue, path: issue.is_conditional, CONDITIONAL),
            (lambda issue, path: path in self.unconditional_required, UNCONDITIONAL_REQUIRED),
            (lambda issue, path: path in self.closed_enums, ALREADY_HANDLED),
            (lambda issue, path: len(path.split(".")) > 2, NESTED_OPTIONAL),
        )

    def classify(self, issue: SpecHintIssue) -> ClassificationResult:
        path = normalize_issue_path(issue.path)
        for predicate, result in self._rules:
            if predicate(issue, path):
                logger.debug("Classified '%s' as %s (%s)", issue.path, result.source, result.category.value)
                return result
        logger.debug("Keeping '%s' as SPEC_HINT: advisory guidance", issue.path)
        return ADVISORY


_default_classifier = HintClassifier()


def classify_issue(issue: SpecHintIssue) -> ClassificationResult:
    return _default_classifier.classify(issue)
