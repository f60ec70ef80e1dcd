"""Shared StructureDefinition fixtures for the hint extraction tests."""

import json

import pytest


def make_element(path, min_=0, max_="1", condition=None, constraint=None):
    element = {"path": path, "min": min_, "max": max_}
    if condition:
        element["condition"] = condition
    if constraint:
        element["constraint"] = [{"key": k, "expression": e} for k, e in constraint.items()]
    return element


def make_structure_definition(resource_type, elements, kind="resource"):
    return {
        "resourceType": "StructureDefinition",
        "name": resource_type,
        "kind": kind,
        "type": resource_type,
        "snapshot": {"element": elements},
    }


PATIENT_ELEMENTS = [
    make_element("Patient", 0, "*"),
    make_element("Patient.id", 0, "1"),
    make_element("Patient.extension", 0, "*"),
    make_element("Patient.identifier", 0, "*"),
    make_element("Patient.communication", 0, "*"),
    make_element("Patient.communication.id", 1, "1"),
    make_element("Patient.communication.extension", 1, "*"),
    make_element("Patient.communication.language", 1, "1"),
    make_element("Patient.link", 0, "*"),
    make_element("Patient.link.other", 1, "1"),
    make_element("Patient.link.type", 1, "1"),
    make_element("Patient.photo", 0, "1"),
    make_element("Patient.photo.contentType", 1, "1"),
]

OBSERVATION_ELEMENTS = [
    make_element(
        "Observation",
        0,
        "*",
        constraint={
            "obs-9": "effective.exists() or status = 'registered'",
            "obs-10": "performer.display.exists() or performer.reference.exists()",
            "obs-blank": "   ",
        },
    ),
    make_element("Observation.status", 1, "1"),
    make_element("Observation.code", 1, "1"),
    make_element("Observation.effective[x]", 1, "1", condition=["obs-9"]),
    make_element("Observation.subject", 1, "1", condition=["ele-999", "obs-blank"]),
    make_element("Observation.performer", 1, "*"),
    make_element("Observation.performer.display", 1, "1", condition=["obs-10"]),
    make_element("Observation.component", 0, "*"),
    make_element("Observation.component.code", 1, "1"),
]


def write_json(path, document):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(document), encoding="utf-8")
    return path


@pytest.fixture
def spec_dir(tmp_path):
    """A definitions directory laid out like the HL7 download (resources/datatypes/base)."""
    root = tmp_path / "structure-definitions"
    write_json(
        root / "resources" / "StructureDefinition-Patient.json",
        make_structure_definition("Patient", PATIENT_ELEMENTS),
    )
    write_json(
        root / "resources" / "StructureDefinition-Observation.json",
        make_structure_definition("Observation", OBSERVATION_ELEMENTS),
    )
    write_json(
        root / "resources" / "StructureDefinition-Bundle.json",
        make_structure_definition(
            "Bundle", [make_element("Bundle", 0, "*"), make_element("Bundle.type", 1, "1")]
        ),
    )
    write_json(
        root / "datatypes" / "StructureDefinition-HumanName.json",
        make_structure_definition(
            "HumanName",
            [make_element("HumanName", 0, "*"), make_element("HumanName.family", 1, "1")],
            kind="complex-type",
        ),
    )
    write_json(
        root / "base" / "StructureDefinition-DomainResource.json",
        make_structure_definition(
            "DomainResource",
            [make_element("DomainResource", 0, "*"), make_element("DomainResource.text", 1, "1")],
        ),
    )
    (root / "resources" / "StructureDefinition-Broken.json").write_text("{not json", encoding="utf-8")
    write_json(root / "resources" / "notes.json", make_structure_definition("Encounter", []))
    return root
