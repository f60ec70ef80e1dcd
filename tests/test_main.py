"""Tests for the RuleIntelligence facade."""

from fhir_rule_intel.config import Settings
from fhir_rule_intel.main import RuleIntelligence
from fhir_rule_intel.schemas.authoring import ClassificationCategory, SpecHintIssue


def _make_settings(definitions_dir, version="R4"):
    class TestSettings(Settings):
        SPEC_DEFINITIONS_DIR = str(definitions_dir)
        FHIR_VERSION = version
        HINT_EXTRACTION_WORKERS = 2

    return TestSettings()


def test_catalog_defaults_to_configured_version(spec_dir):
    intelligence = RuleIntelligence(config=_make_settings(spec_dir))

    catalog = intelligence.catalog()
    assert catalog.version == "R4"
    assert intelligence.catalog("4.0.1") is catalog
    assert intelligence.catalogs.max_workers == 2


def test_classify_delegates_to_hint_classifier(spec_dir):
    intelligence = RuleIntelligence(config=_make_settings(spec_dir))

    result = intelligence.classify(
        SpecHintIssue(
            resource_type="Patient",
            path="Patient.communication.language",
            is_conditional=True,
            condition="communication.exists()",
        )
    )
    assert result.category == ClassificationCategory.CONDITIONAL
    assert result.source == "SPEC_HINT"


def test_suggest_runs_bundle_analysis(tmp_path):
    intelligence = RuleIntelligence(config=_make_settings(tmp_path))
    bundle = {
        "resourceType": "Bundle",
        "entry": [
            {"resource": {"resourceType": "Observation", "status": "final"}} for _ in range(30)
        ],
    }

    [fixed] = [s for s in intelligence.suggest(bundle) if s.rule_type == "FixedValue"]
    assert fixed.path == "status"
    assert fixed.params.value == "final"
