"""
Deterministic rule suggestions from sample data.

Read-only analysis: suggestions are never persisted, never applied and never
enforced here. The caller decides what to do with them.

Guarantees:
- no suggestion for a path an existing rule or spec-hint issue already covers
- instance-only data (identifier values, narrative, display text) is reported
  as an observation with ``rule_type=None``, never as a rule
- reasoning comes from fixed templates, so the same input produces the same
  text; only ``suggestion_id`` differs between runs
"""

from __future__ import annotations

import logging
import re
import threading
from typing import Any, Callable, Iterable, Mapping, Sequence

from fhir_rule_intel.authoring.observations import ObservationSet, collect_observations
from fhir_rule_intel.authoring.semantics import (
    better_rule_candidate,
    classify_field,
    classify_sub_type,
    is_instance_only_field,
    rationale,
)
from fhir_rule_intel.schemas.authoring import (
    AllowedValuesParams,
    CodeSystemParams,
    FixedValueParams,
    ObservationType,
    ReferenceExistsParams,
    RequiredParams,
    RuleSet,
    SemanticType,
    SpecHintIssue,
    SuggestionEvidence,
    SystemRuleSuggestion,
)

logger = logging.getLogger(__name__)

MIN_SAMPLE_SIZE_FOR_FIXED_VALUE = 30
HIGH_CONFIDENCE_THRESHOLD = 50
MEDIUM_CONFIDENCE_THRESHOLD = 10
MAX_ALLOWED_VALUES = 10
MAX_AVERAGE_CODE_LENGTH = 100
MIN_REQUIRED_THRESHOLD = 5
MAX_EXAMPLE_VALUES = 3
MAX_REFERENCE_EXAMPLES = 5

REFERENCE_SCOPE = "Bundle"

_REFERENCE_TARGET = re.compile(
    r"(?:^|/)([A-Z][A-Za-z]+)/[A-Za-z0-9\-.]{1,64}(?:/_history/[A-Za-z0-9\-.]{1,64})?$"
)


def _distinct(values: Iterable[str]) -> list[str]:
    return list(dict.fromkeys(values))


def _examples(values: Sequence[str], limit: int = MAX_EXAMPLE_VALUES) -> list[str]:
    return _distinct(values)[:limit]


def _last_segment(path: str) -> str:
    return path.rsplit(".", 1)[-1]


def reference_target_type(
    reference: str, reference_index: Mapping[str, str] | None = None
) -> str | None:
    """``Patient/123`` -> ``Patient``. ``urn:uuid:`` references resolve through the bundle's fullUrls."""
    reference = reference.strip()
    if reference_index and reference in reference_index:
        return reference_index[reference]
    match = _REFERENCE_TARGET.search(reference)
    return match.group(1) if match else None


def is_covered_by_issue(
    resource_type: str, path: str, issues: Sequence[SpecHintIssue] | None
) -> bool:
    if not issues:
        return False
    segment = _last_segment(path)
    return any(i.resource_type == resource_type and segment in i.path for i in issues)


def is_covered_by_rule(resource_type: str, path: str, rules: RuleSet | None) -> bool:
    if rules is None:
        return False
    prefix = resource_type + "."
    for rule in rules.rules:
        if rule.resource_type != resource_type or not rule.path:
            continue
        rule_path = rule.path[len(prefix):] if rule.path.startswith(prefix) else rule.path
        if path == rule_path or path.startswith(rule_path + "."):
            return True
    return False


class RuleSuggestionEngine:
    def generate(
        self,
        resources_by_type: Mapping[str, Sequence[Any]],
        existing_rules: RuleSet | None = None,
        issues: Sequence[SpecHintIssue] | None = None,
        cancel_event: threading.Event | None = None,
        reference_index: Mapping[str, str] | None = None,
    ) -> list[SystemRuleSuggestion]:
        """Suggestions for every resource type in ``resources_by_type``. Never raises."""
        suggestions: list[SystemRuleSuggestion] = []
        for resource_type in sorted(resources_by_type):
            if cancel_event is not None and cancel_event.is_set():
                logger.info("Rule suggestion cancelled before %s", resource_type)
                break
            try:
                resources = list(resources_by_type[resource_type])
                logger.debug("Analyzing %d %s resources", len(resources), resource_type)
                observations = collect_observations(resource_type, resources)
                suggestions.extend(
                    self.suggest(observations, existing_rules, issues, reference_index)
                )
            except Exception:
                logger.exception("Error generating rule suggestions for %s; skipping", resource_type)
        logger.info("Generated %d rule suggestions", len(suggestions))
        return suggestions

    def suggest(
        self,
        observations: ObservationSet,
        existing_rules: RuleSet | None = None,
        issues: Sequence[SpecHintIssue] | None = None,
        reference_index: Mapping[str, str] | None = None,
    ) -> list[SystemRuleSuggestion]:
        """Suggestions for one resource type's observations, in sorted path order."""
        resource_type = observations.resource_type
        suggestions: list[SystemRuleSuggestion] = []

        for path in observations.paths():
            try:
                if is_covered_by_issue(resource_type, path, issues):
                    logger.debug("Skipping %s.%s: covered by a spec hint issue", resource_type, path)
                    continue
                if is_covered_by_rule(resource_type, path, existing_rules):
                    logger.debug("Skipping %s.%s: covered by an existing rule", resource_type, path)
                    continue
                suggestions.extend(self._suggest_for_path(observations, path, reference_index))
            except Exception:
                logger.exception(
                    "Failed to analyze %s.%s; no suggestion for this path", resource_type, path
                )
        return suggestions

    def _suggest_for_path(
        self,
        observations: ObservationSet,
        path: str,
        reference_index: Mapping[str, str] | None,
    ) -> list[SystemRuleSuggestion]:
        semantic_type = classify_field(path)

        if is_instance_only_field(path):
            return [self._instance_data_observation(observations, path, semantic_type)]

        generators: tuple[Callable[[ObservationSet, str, SemanticType], SystemRuleSuggestion | None], ...] = (
            self._fixed_value,
            self._allowed_values,
            self._code_system,
            self._required,
        )
        results: list[SystemRuleSuggestion] = []
        for generator in generators:
            suggestion = generator(observations, path, semantic_type)
            if suggestion is not None:
                results.append(suggestion)
                break

        if semantic_type == SemanticType.REFERENCE_FIELD:
            reference = self._reference(observations, path, reference_index)
            if reference is not None:
                results.append(reference)
        return results

    # ------------------------------------------------------------------
    # Non-actionable observations
    # ------------------------------------------------------------------

    def _instance_data_observation(
        self, observations: ObservationSet, path: str, semantic_type: SemanticType
    ) -> SystemRuleSuggestion:
        values = observations.values[path]
        sub_type = classify_sub_type(path, semantic_type)
        candidate = better_rule_candidate(semantic_type, sub_type, path)
        return SystemRuleSuggestion(
            semantic_type=semantic_type,
            semantic_sub_type=sub_type,
            observation_type=ObservationType.INSTANCE_DATA,
            better_rule_candidate=candidate,
            rule_type=None,
            resource_type=observations.resource_type,
            path=path,
            confidence="low",
            reasoning=rationale(path, sub_type, ObservationType.INSTANCE_DATA, len(values)),
            sample_evidence=SuggestionEvidence(
                resource_count=len(values),
                example_values=_examples(values),
                context={
                    "semanticSubType": sub_type.value,
                    "betterRuleCandidate": candidate.value if candidate else "None",
                },
            ),
        )

    # ------------------------------------------------------------------
    # Generators
    # ------------------------------------------------------------------

    def _fixed_value(
        self, observations: ObservationSet, path: str, semantic_type: SemanticType
    ) -> SystemRuleSuggestion | None:
        if semantic_type != SemanticType.STATUS_OR_LIFECYCLE_FIELD:
            return None
        total = observations.total_resources
        if total < MIN_SAMPLE_SIZE_FOR_FIXED_VALUE:
            return None
        distinct = _distinct(observations.values[path])
        if len(distinct) != 1:
            return None

        value = distinct[0]
        coverage = observations.presence.get(path, 0) * 100 // total
        return SystemRuleSuggestion(
            semantic_type=semantic_type,
            observation_type=ObservationType.CONSTANT_VALUE,
            rule_type="FixedValue",
            resource_type=observations.resource_type,
            path=path,
            params=FixedValueParams(value=value),
            confidence="high" if total >= HIGH_CONFIDENCE_THRESHOLD else "medium",
            reasoning=(
                f"Status/lifecycle field '{path}' has constant value '{value}' across {total} "
                "instances. If your implementation always uses this status, consider enforcing "
                "it as a rule."
            ),
            sample_evidence=SuggestionEvidence(
                resource_count=total,
                example_values=[value],
                context={"semanticType": semantic_type.value, "coverage": f"{coverage}%"},
            ),
        )

    def _allowed_values(
        self, observations: ObservationSet, path: str, semantic_type: SemanticType
    ) -> SystemRuleSuggestion | None:
        if semantic_type not in (
            SemanticType.TERMINOLOGY_BOUND_FIELD,
            SemanticType.CODED_ANSWER_FIELD,
            SemanticType.STATUS_OR_LIFECYCLE_FIELD,
        ):
            return None
        values = observations.values[path]
        if len(values) < MEDIUM_CONFIDENCE_THRESHOLD:
            return None
        distinct = _distinct(values)
        if len(distinct) <= 1 or len(distinct) > MAX_ALLOWED_VALUES:
            return None
        # long values are free text, not codes
        if sum(len(v) for v in distinct) / len(distinct) > MAX_AVERAGE_CODE_LENGTH:
            return None

        return SystemRuleSuggestion(
            semantic_type=semantic_type,
            observation_type=ObservationType.SMALL_VALUE_SET,
            rule_type="AllowedValues",
            resource_type=observations.resource_type,
            path=path,
            params=AllowedValuesParams(values=tuple(distinct)),
            confidence="medium",
            reasoning=(
                f"Terminology field '{path}' uses a constrained set of {len(distinct)} distinct "
                "codes. If these represent your valid value set, consider enforcing them as "
                "AllowedValues."
            ),
            sample_evidence=SuggestionEvidence(
                resource_count=len(values),
                example_values=distinct[:MAX_ALLOWED_VALUES],
                context={"semanticType": semantic_type.value, "distinctCount": len(distinct)},
            ),
        )

    def _code_system(
        self, observations: ObservationSet, path: str, semantic_type: SemanticType
    ) -> SystemRuleSuggestion | None:
        if semantic_type not in (
            SemanticType.TERMINOLOGY_BOUND_FIELD,
            SemanticType.CODED_ANSWER_FIELD,
        ):
            return None
        if "coding" not in path and "system" not in path:
            return None
        values = observations.values[path]
        if len(values) < MEDIUM_CONFIDENCE_THRESHOLD:
            return None
        distinct = _distinct(values)
        if len(distinct) != 1:
            return None
        system = distinct[0]
        if not system.startswith(("http://", "https://")):
            return None

        target = path[: -len(".system")] if path.endswith(".system") else path
        return SystemRuleSuggestion(
            semantic_type=semantic_type,
            observation_type=ObservationType.CONSTANT_VALUE,
            rule_type="CodeSystem",
            resource_type=observations.resource_type,
            path=target,
            params=CodeSystemParams(system=system),
            confidence="high",
            reasoning=(
                f"All {len(values)} codings use the same system: '{system}'. If this is your "
                "required code system, consider enforcing it."
            ),
            sample_evidence=SuggestionEvidence(
                resource_count=len(values),
                example_values=[system],
                context={"semanticType": semantic_type.value},
            ),
        )

    def _required(
        self, observations: ObservationSet, path: str, semantic_type: SemanticType
    ) -> SystemRuleSuggestion | None:
        if semantic_type == SemanticType.FREE_TEXT_FIELD and path.endswith((".display", ".text")):
            return None
        total = observations.total_resources
        if not observations.present_in_all(path):
            return None
        if total < MIN_REQUIRED_THRESHOLD:
            return None

        return SystemRuleSuggestion(
            semantic_type=semantic_type,
            observation_type=ObservationType.ALWAYS_PRESENT,
            rule_type="Required",
            resource_type=observations.resource_type,
            path=path,
            params=RequiredParams(),
            confidence="high" if total >= HIGH_CONFIDENCE_THRESHOLD else "medium",
            reasoning=(
                f"Field '{path}' is present in all {total} observed instances. If this field is "
                "mandatory for your implementation, consider enforcing it as Required."
            ),
            sample_evidence=SuggestionEvidence(
                resource_count=total,
                example_values=_examples(observations.values[path]),
                context={"coverage": "100%", "semanticType": semantic_type.value},
            ),
        )

    def _reference(
        self,
        observations: ObservationSet,
        path: str,
        reference_index: Mapping[str, str] | None,
    ) -> SystemRuleSuggestion | None:
        values = observations.values[path]
        if len(values) < MEDIUM_CONFIDENCE_THRESHOLD:
            return None

        targets = [reference_target_type(v, reference_index) for v in values]
        target_types = _distinct(t for t in targets if t)
        if not target_types:
            return None

        if len(target_types) == 1:
            if None in targets:
                logger.debug(
                    "Not suggesting ReferenceExists for %s.%s: %d references did not resolve",
                    observations.resource_type,
                    path,
                    targets.count(None),
                )
                return None
            target_type = target_types[0]
            return SystemRuleSuggestion(
                semantic_type=SemanticType.REFERENCE_FIELD,
                observation_type=ObservationType.REFERENCE_TARGET_CONSISTENT,
                rule_type="ReferenceExists",
                resource_type=observations.resource_type,
                path=path,
                params=ReferenceExistsParams(target_resource_type=target_type, scope=REFERENCE_SCOPE),
                confidence="high",
                reasoning=(
                    f"All references in '{path}' point to {target_type} resources. Consider "
                    "enforcing reference validation to ensure referential integrity."
                ),
                sample_evidence=SuggestionEvidence(
                    resource_count=len(values),
                    example_values=_examples(values),
                    context={"targetResourceType": target_type, "distinctReferenceTypes": 1},
                ),
            )

        sub_type = classify_sub_type(path, SemanticType.REFERENCE_FIELD)
        candidate = better_rule_candidate(SemanticType.REFERENCE_FIELD, sub_type, path)
        return SystemRuleSuggestion(
            semantic_type=SemanticType.REFERENCE_FIELD,
            semantic_sub_type=sub_type,
            observation_type=ObservationType.NO_PATTERN,
            better_rule_candidate=candidate,
            rule_type=None,
            resource_type=observations.resource_type,
            path=path,
            confidence="low",
            reasoning=(
                f"References in '{path}' point to multiple resource types: "
                f"{', '.join(target_types)}. Consider validating each reference target type "
                "separately, or allow multiple types if this is expected polymorphism."
            ),
            sample_evidence=SuggestionEvidence(
                resource_count=len(values),
                example_values=_examples(values, MAX_REFERENCE_EXAMPLES),
                context={
                    "distinctReferenceTypes": len(target_types),
                    "referenceTypes": target_types,
                    "semanticSubType": sub_type.value,
                    "betterRuleCandidate": candidate.value if candidate else "None",
                },
            ),
        )


def suggest_rules(
    resources_by_type: Mapping[str, Sequence[Any]],
    existing_rules: RuleSet | None = None,
    issues: Sequence[SpecHintIssue] | None = None,
    cancel_event: threading.Event | None = None,
    reference_index: Mapping[str, str] | None = None,
) -> list[SystemRuleSuggestion]:
    return RuleSuggestionEngine().generate(
        resources_by_type, existing_rules, issues, cancel_event, reference_index
    )
