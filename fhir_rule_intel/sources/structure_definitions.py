"""
Schema document source: reads HL7 StructureDefinition JSON files from disk.

Only the extraction subset of each document is modelled. Documents are
shape-checked against STRUCTURE_DEFINITION_SCHEMA before parsing so that a
malformed file fails with a readable message instead of a deep KeyError.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from fhir_rule_intel.schemas.fhir import STRUCTURE_DEFINITION_SCHEMA
from fhir_rule_intel.services.validation import validate_against_schema

logger = logging.getLogger(__name__)

FILE_PATTERN = "StructureDefinition-*.json"
UNBOUNDED = "*"


class SchemaDocumentError(Exception):
    """A StructureDefinition file could not be read or does not have the expected shape."""


class Constraint(BaseModel):
    model_config = ConfigDict(extra="ignore")

    key: str
    expression: str | None = None


class ElementDefinition(BaseModel):
    model_config = ConfigDict(extra="ignore")

    path: str
    min: int | None = None
    max: str | None = None
    condition: list[str] = Field(default_factory=list)
    constraint: list[Constraint] = Field(default_factory=list)

    @property
    def is_unbounded(self) -> bool:
        return self.max == UNBOUNDED


class StructureDefinition(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str | None = None
    kind: str
    type: str | None = None
    elements: list[ElementDefinition] = Field(default_factory=list)


def find_structure_definition_files(directory: str | Path) -> list[Path]:
    """All StructureDefinition files under ``directory`` (recursively), sorted."""
    root = Path(directory)
    if not root.is_dir():
        return []
    return sorted(root.rglob(FILE_PATTERN))


def parse_structure_definition(document: dict) -> StructureDefinition:
    errors = validate_against_schema(document, STRUCTURE_DEFINITION_SCHEMA)
    if errors:
        raise SchemaDocumentError("; ".join(errors))

    snapshot = document.get("snapshot") or {}
    try:
        return StructureDefinition(
            name=document.get("name"),
            kind=document["kind"],
            type=document.get("type"),
            elements=snapshot.get("element") or [],
        )
    except ValidationError as exc:
        raise SchemaDocumentError(str(exc)) from exc


def load_structure_definition(file_path: str | Path) -> StructureDefinition:
    """Read and parse one StructureDefinition file."""
    path = Path(file_path)
    try:
        document = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise SchemaDocumentError(f"{path.name}: {exc}") from exc

    definition = parse_structure_definition(document)
    logger.debug(
        "Parsed StructureDefinition: name=%s kind=%s type=%s elements=%d",
        definition.name,
        definition.kind,
        definition.type,
        len(definition.elements),
    )
    return definition
