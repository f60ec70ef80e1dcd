"""
Bundle analysis pipeline: Extract -> Collect -> Suggest.

- extract: group bundle entries by resource type and index entry fullUrls so
  ``urn:uuid:`` references can be resolved to their target type
- collect: per-path value observations for each resource type
- suggest: run the rule suggestion engine over the observations

Existing rules, spec-hint issues and an optional cancellation event travel in
the initial context. The pipeline reads them and never writes them.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Sequence

from fhir_rule_intel.analysis.dag import DAG
from fhir_rule_intel.authoring.observations import collect_observations
from fhir_rule_intel.authoring.suggestions import RuleSuggestionEngine
from fhir_rule_intel.schemas.authoring import RuleSet, SpecHintIssue, SystemRuleSuggestion

logger = logging.getLogger(__name__)


def _cancelled(context: dict[str, Any]) -> bool:
    event = context.get("cancel_event")
    return event is not None and event.is_set()


# ---------------------------------------------------------------------------
# Pipeline steps (each receives and returns a context dict)
# ---------------------------------------------------------------------------


def extract(context: dict[str, Any]) -> dict[str, Any]:
    """Group the bundle's resources by type. Entries without a typed resource are ignored."""
    bundle = context.get("bundle")
    entries = (bundle.get("entry") or []) if isinstance(bundle, dict) else []

    grouped: dict[str, list[dict[str, Any]]] = {}
    reference_index: dict[str, str] = {}
    for entry in entries:
        resource = entry.get("resource") if isinstance(entry, dict) else None
        if not isinstance(resource, dict) or not resource.get("resourceType"):
            continue
        resource_type = resource["resourceType"]
        grouped.setdefault(resource_type, []).append(resource)
        if entry.get("fullUrl"):
            reference_index[entry["fullUrl"]] = resource_type

    resources_by_type = {rt: grouped[rt] for rt in sorted(grouped)}
    logger.info(
        "Extracted %d resources of %d types",
        sum(len(v) for v in resources_by_type.values()),
        len(resources_by_type),
    )
    return {"resources_by_type": resources_by_type, "reference_index": reference_index}


def collect(context: dict[str, Any]) -> dict[str, Any]:
    observations = {}
    for resource_type, resources in context.get("resources_by_type", {}).items():
        if _cancelled(context):
            logger.info("Collection cancelled before %s", resource_type)
            break
        observations[resource_type] = collect_observations(resource_type, resources)
    return {"observations": observations}


def make_suggest_step(engine: RuleSuggestionEngine):
    def suggest(context: dict[str, Any]) -> dict[str, Any]:
        suggestions: list[SystemRuleSuggestion] = []
        for resource_type, observations in context.get("observations", {}).items():
            if _cancelled(context):
                logger.info("Suggestion cancelled before %s", resource_type)
                break
            suggestions.extend(
                engine.suggest(
                    observations,
                    context.get("existing_rules"),
                    context.get("issues"),
                    context.get("reference_index"),
                )
            )
        logger.info("Suggest phase: %d suggestions", len(suggestions))
        return {"suggestions": suggestions, "suggestion_count": len(suggestions)}

    return suggest


# ---------------------------------------------------------------------------
# Pipeline factory
# ---------------------------------------------------------------------------


def build_bundle_analysis_pipeline(engine: RuleSuggestionEngine | None = None) -> DAG:
    dag = DAG("bundle_analysis")
    dag.add_task("extract", extract)
    dag.add_task("collect", collect, depends_on=["extract"])
    dag.add_task("suggest", make_suggest_step(engine or RuleSuggestionEngine()), depends_on=["collect"])
    return dag


def analyze_bundle(
    bundle: dict[str, Any],
    existing_rules: RuleSet | None = None,
    issues: Sequence[SpecHintIssue] | None = None,
    cancel_event: threading.Event | None = None,
    engine: RuleSuggestionEngine | None = None,
) -> list[SystemRuleSuggestion]:
    """Run the analysis pipeline over a FHIR Bundle. Returns [] if any step fails."""
    pipeline = build_bundle_analysis_pipeline(engine)
    summary = pipeline.run(
        {
            "bundle": bundle,
            "existing_rules": existing_rules,
            "issues": list(issues or []),
            "cancel_event": cancel_event,
        },
        cancel_event=cancel_event,
    )
    if summary["status"] == "failed":
        logger.warning("Bundle analysis failed: %s", summary["tasks"])
        return []
    return pipeline.result("suggest").get("suggestions", [])
