"""
Rule intelligence entrypoint.

Wires the catalog store, hint classifier and suggestion engine from the
environment-driven settings. Callers (an API layer, a CLI, a notebook) use the
module-level ``rule_intelligence`` instance:

    from fhir_rule_intel.main import rule_intelligence
    catalog = rule_intelligence.catalog("R4")
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Sequence

from fhir_rule_intel.analysis.pipeline import analyze_bundle
from fhir_rule_intel.authoring.catalog_store import SpecHintCatalogStore
from fhir_rule_intel.authoring.hint_classifier import HintClassifier
from fhir_rule_intel.authoring.suggestions import RuleSuggestionEngine
from fhir_rule_intel.config import Settings, settings
from fhir_rule_intel.schemas.authoring import (
    ClassificationResult,
    RuleSet,
    SpecHintCatalog,
    SpecHintIssue,
    SystemRuleSuggestion,
)

logging.basicConfig(level=settings.LOG_LEVEL, format="%(levelname)s | %(name)s | %(message)s")

logger = logging.getLogger(__name__)


class RuleIntelligence:
    """Facade over the three read-only authoring services."""

    def __init__(self, config: Settings = settings):
        self.config = config
        self.catalogs = SpecHintCatalogStore(
            config.SPEC_DEFINITIONS_DIR, max_workers=config.HINT_EXTRACTION_WORKERS
        )
        self.classifier = HintClassifier()
        self.engine = RuleSuggestionEngine()

    def catalog(self, fhir_version: str | None = None) -> SpecHintCatalog:
        return self.catalogs.get(fhir_version or self.config.FHIR_VERSION)

    def classify(self, issue: SpecHintIssue) -> ClassificationResult:
        return self.classifier.classify(issue)

    def suggest(
        self,
        bundle: dict[str, Any],
        existing_rules: RuleSet | None = None,
        issues: Sequence[SpecHintIssue] | None = None,
        cancel_event: threading.Event | None = None,
    ) -> list[SystemRuleSuggestion]:
        return analyze_bundle(bundle, existing_rules, issues, cancel_event, engine=self.engine)


rule_intelligence = RuleIntelligence()
logger.info(
    "Rule intelligence ready (environment=%s, fhir_version=%s, definitions=%s)",
    settings.ENVIRONMENT,
    settings.FHIR_VERSION,
    settings.SPEC_DEFINITIONS_DIR,
)
