"""Tests for the bundle analysis pipeline – no StructureDefinitions required."""

import threading

from fhir_rule_intel.analysis.pipeline import analyze_bundle, build_bundle_analysis_pipeline
from fhir_rule_intel.schemas.authoring import Rule, RuleSet, SpecHintIssue


def _make_bundle(count=12, subject="Patient/p1", with_patient=True):
    entries = []
    if with_patient:
        entries.append(
            {
                "fullUrl": "urn:uuid:patient-1",
                "resource": {"resourceType": "Patient", "id": "p1", "gender": "female"},
            }
        )
    for i in range(count):
        entries.append(
            {
                "fullUrl": f"urn:uuid:obs-{i}",
                "resource": {
                    "resourceType": "Observation",
                    "id": f"obs-{i}",
                    "status": "final",
                    "code": {"coding": [{"system": "http://loinc.org", "code": "8867-4"}]},
                    "subject": {"reference": subject},
                },
            }
        )
    return {"resourceType": "Bundle", "type": "collection", "entry": entries}


def test_full_pipeline_happy_path():
    """Extract, collect and suggest all succeed and produce suggestions."""
    pipeline = build_bundle_analysis_pipeline()
    summary = pipeline.run({"bundle": _make_bundle()})

    assert summary["status"] == "completed"
    assert list(pipeline.result("extract")["resources_by_type"]) == ["Observation", "Patient"]
    assert pipeline.result("extract")["reference_index"]["urn:uuid:patient-1"] == "Patient"
    assert pipeline.result("collect")["observations"]["Observation"].total_resources == 12
    assert pipeline.result("suggest")["suggestion_count"] == len(pipeline.result("suggest")["suggestions"])


def test_analyze_bundle_suggests_code_system_and_reference():
    suggestions = analyze_bundle(_make_bundle())

    kinds = {(s.resource_type, s.path, s.rule_type) for s in suggestions}
    assert ("Observation", "code.coding", "CodeSystem") in kinds
    assert ("Observation", "subject.reference", "ReferenceExists") in kinds


def test_urn_uuid_references_resolve_through_full_urls():
    suggestions = analyze_bundle(_make_bundle(subject="urn:uuid:patient-1"))

    [reference] = [s for s in suggestions if s.rule_type == "ReferenceExists"]
    assert reference.params.target_resource_type == "Patient"


def test_existing_rules_and_issues_are_respected():
    rules = RuleSet(rules=[Rule(type="CodeSystem", resource_type="Observation", path="Observation.code")])
    issues = [SpecHintIssue(resource_type="Observation", path="Observation.subject.reference")]

    suggestions = analyze_bundle(_make_bundle(), existing_rules=rules, issues=issues)

    paths = {s.path for s in suggestions if s.resource_type == "Observation"}
    assert not any(p.startswith("code") for p in paths)
    assert "subject.reference" not in paths
    assert "status" in paths


def test_entries_without_resources_are_ignored():
    bundle = _make_bundle(count=0)
    bundle["entry"] += [{"fullUrl": "urn:uuid:x"}, {"resource": {"id": "untyped"}}, "garbage"]

    pipeline = build_bundle_analysis_pipeline()
    pipeline.run({"bundle": bundle})
    assert list(pipeline.result("extract")["resources_by_type"]) == ["Patient"]


def test_malformed_bundle_yields_no_suggestions():
    assert analyze_bundle(None) == []
    assert analyze_bundle({"resourceType": "Bundle"}) == []


def test_cancelled_analysis_yields_no_suggestions():
    cancel = threading.Event()
    cancel.set()
    assert analyze_bundle(_make_bundle(), cancel_event=cancel) == []
