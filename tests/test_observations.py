"""Tests for per-path value collection over sample resources."""

from fhir_rule_intel.authoring.observations import collect_observations
from fhir_rule_intel.sources.instance_tree import JsonElementNode, to_element_tree


def _make_patient(**overrides):
    patient = {
        "resourceType": "Patient",
        "id": "p1",
        "meta": {"versionId": "1"},
        "extension": [{"url": "http://example.org/ext", "valueString": "x"}],
        "active": True,
        "gender": "female",
        "identifier": [
            {"system": "http://hospital.org/mrn", "value": "MRN-1"},
            {"system": "http://hospital.org/ssn", "value": "123"},
        ],
        "name": [{"family": "Doe", "given": ["Jane", "Q"], "id": "n1"}],
        "_gender": {"extension": [{"url": "http://example.org/x", "valueCode": "y"}]},
    }
    patient.update(overrides)
    return patient


def test_tree_walker_expands_arrays_into_repeated_children():
    tree = to_element_tree(_make_patient())

    assert tree.name == "Patient"
    names = [child.name for child in tree.children]
    assert names.count("identifier") == 2
    assert "resourceType" not in names
    assert "_gender" not in names


def test_id_meta_and_extension_are_skipped_at_every_level():
    observations = collect_observations("Patient", [_make_patient()])

    assert "id" not in observations.values
    assert "meta.versionId" not in observations.values
    assert "extension.url" not in observations.values
    assert "name.id" not in observations.values
    assert observations.values["name.family"] == ["Doe"]


def test_array_values_share_one_wildcard_path():
    observations = collect_observations("Patient", [_make_patient()])

    assert observations.values["identifier.value"] == ["MRN-1", "123"]
    assert observations.values["name.given"] == ["Jane", "Q"]


def test_primitives_are_string_coerced():
    observations = collect_observations("Patient", [_make_patient(), _make_patient(active=False)])

    assert observations.values["active"] == ["true", "false"]


def test_empty_values_are_ignored():
    observations = collect_observations("Patient", [_make_patient(gender="  ", birthDate="")])

    assert "gender" not in observations.values
    assert "birthDate" not in observations.values


def test_presence_counts_resources_not_occurrences():
    resources = [_make_patient(), _make_patient(identifier=[])]
    observations = collect_observations("Patient", resources)

    assert observations.total_resources == 2
    assert len(observations.values["identifier.value"]) == 2
    assert observations.presence["identifier.value"] == 1
    assert not observations.present_in_all("identifier.value")
    assert observations.present_in_all("gender")


def test_untraversable_resource_is_skipped():
    observations = collect_observations("Patient", [_make_patient(), "not-a-resource", _make_patient()])

    assert observations.total_resources == 3
    assert observations.values["gender"] == ["female", "female"]


def test_custom_tree_walker():
    def walker(resource):
        return JsonElementNode(
            name="Observation",
            children=[JsonElementNode(name="status", value=resource)],
        )

    observations = collect_observations("Observation", ["final", "amended"], tree_walker=walker)
    assert observations.values == {"status": ["final", "amended"]}
    assert observations.paths() == ["status"]
