"""
Generates the SPEC_HINT catalog from official HL7 StructureDefinition documents.

Hints are advisory only: they describe what the base specification requires so
rule authors can see it, they never enforce anything.

Extraction rules:
- required field: element.min > 0, not the root element, not ``.id``/``.extension``
- implicit conditional: required child of an optional, non-root parent
- explicit conditional: element.condition keys that resolve to a constraint expression
- appliesToEach: the parent element repeats (max = "*")

The generator never raises. A missing directory or a directory with no
matching documents yields an empty catalog, and a bad document is logged and
skipped. Files are read in sorted order and the catalog is keyed in sorted
resource-type order, so the same inputs always serialize to the same JSON.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

from fhir_rule_intel.schemas.authoring import SpecHint, SpecHintCatalog
from fhir_rule_intel.sources.structure_definitions import (
    ElementDefinition,
    SchemaDocumentError,
    StructureDefinition,
    find_structure_definition_files,
    load_structure_definition,
)

logger = logging.getLogger(__name__)

RESOURCE_KIND = "resource"

INFRASTRUCTURAL_TYPES = frozenset(
    {
        "Resource",
        "DomainResource",
        "Bundle",
        "Parameters",
        "OperationOutcome",
        "CapabilityStatement",
        "StructureDefinition",
        "ValueSet",
        "CodeSystem",
        "SearchParameter",
        "ImplementationGuide",
        "TerminologyCapabilities",
        "MessageDefinition",
        "CompartmentDefinition",
        "OperationDefinition",
        "Conformance",
    }
)


def parent_path(element_path: str) -> str | None:
    """``Patient.communication.language`` -> ``Patient.communication``; None at the root."""
    idx = element_path.rfind(".")
    if idx <= 0:
        return None
    return element_path[:idx]


def relative_path(element_path: str, resource_type: str) -> str:
    prefix = resource_type + "."
    if element_path.startswith(prefix):
        return element_path[len(prefix):]
    logger.warning(
        "Unexpected path format: path=%s resource_type=%s expected prefix %s",
        element_path,
        resource_type,
        prefix,
    )
    return element_path


def build_constraint_lookup(elements: list[ElementDefinition]) -> dict[str, str | None]:
    """Constraint key -> FHIRPath expression, across every element of the snapshot."""
    lookup: dict[str, str | None] = {}
    for element in elements:
        for constraint in element.constraint:
            if constraint.key and constraint.key.strip():
                lookup[constraint.key] = constraint.expression
    return lookup


class SpecHintGenerator:
    """Mines StructureDefinitions into a SpecHintCatalog."""

    def __init__(self, max_workers: int = 1):
        self.max_workers = max(1, max_workers)

    def generate(self, directory: str | Path, fhir_version: str = "R4") -> SpecHintCatalog:
        hints: dict[str, list[SpecHint]] = {}
        try:
            if not Path(directory).is_dir():
                logger.warning(
                    "StructureDefinition directory not found: %s. Returning empty hints.",
                    directory,
                )
                return SpecHintCatalog(version=fhir_version)

            files = find_structure_definition_files(directory)
            if not files:
                logger.warning(
                    "No StructureDefinition files found in %s (searched recursively). "
                    "Returning empty hints.",
                    directory,
                )
                return SpecHintCatalog(version=fhir_version)

            logger.info("Processing %d StructureDefinition files from %s", len(files), directory)

            if self.max_workers > 1:
                with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
                    results = list(pool.map(lambda f: self._process_file(f, fhir_version), files))
            else:
                results = [self._process_file(f, fhir_version) for f in files]

            for result in results:
                if result is None:
                    continue
                resource_type, resource_hints = result
                if resource_hints:
                    hints[resource_type] = resource_hints
                    logger.debug("Generated %d hints for %s", len(resource_hints), resource_type)

            logger.info("Generated hints for %d resource types", len(hints))
        except Exception:
            logger.exception("Failed to generate HL7 spec hints. Returning empty hints.")
            return SpecHintCatalog(version=fhir_version)

        return SpecHintCatalog(
            version=fhir_version,
            hints={rt: tuple(hints[rt]) for rt in sorted(hints)},
        )

    def _process_file(
        self, file_path: Path, fhir_version: str
    ) -> tuple[str, list[SpecHint]] | None:
        try:
            definition = load_structure_definition(file_path)
            return self.extract_from_definition(definition, fhir_version)
        except SchemaDocumentError as exc:
            logger.warning("Skipping malformed StructureDefinition %s: %s", file_path.name, exc)
        except Exception:
            logger.exception("Failed to process StructureDefinition file %s. Skipping.", file_path)
        return None

    def extract_from_definition(
        self, definition: StructureDefinition, fhir_version: str
    ) -> tuple[str, list[SpecHint]] | None:
        """Hints for one document, or None if it does not describe a clinical resource."""
        if definition.kind != RESOURCE_KIND:
            logger.debug("Skipping non-resource type: %s (kind=%s)", definition.name, definition.kind)
            return None

        resource_type = (definition.type or "").strip()
        if not resource_type:
            logger.warning("Skipping StructureDefinition with no type: %s", definition.name)
            return None

        if resource_type in INFRASTRUCTURAL_TYPES:
            logger.debug("Skipping infrastructural type: %s", resource_type)
            return None

        if not definition.elements:
            logger.warning("No snapshot elements found for %s", resource_type)
            return resource_type, []

        constraints = build_constraint_lookup(definition.elements)
        by_path: dict[str, ElementDefinition] = {}
        for element in definition.elements:
            by_path.setdefault(element.path, element)

        hints: list[SpecHint] = []
        for element in definition.elements:
            try:
                hints.extend(
                    self._hints_for_element(element, resource_type, fhir_version, constraints, by_path)
                )
            except Exception:
                logger.exception(
                    "Failed to extract hints from element: path=%s resource_type=%s min=%s max=%s",
                    element.path,
                    resource_type,
                    element.min,
                    element.max,
                )

        logger.info(
            "Processed %d elements, generated %d hints for %s",
            len(definition.elements),
            len(hints),
            resource_type,
        )
        return resource_type, hints

    def _hints_for_element(
        self,
        element: ElementDefinition,
        resource_type: str,
        fhir_version: str,
        constraints: dict[str, str | None],
        by_path: dict[str, ElementDefinition],
    ) -> list[SpecHint]:
        path = element.path
        if path == resource_type:
            return []
        if path.endswith(".id") or path.endswith(".extension"):
            return []
        if not element.min or element.min <= 0:
            return []

        rel_path = relative_path(path, resource_type)
        parent = parent_path(path)
        parent_element = by_path.get(parent) if parent is not None else None
        is_root_level = parent == resource_type

        if parent_element is not None and not parent_element.min and not is_root_level:
            parent_rel = relative_path(parent, resource_type)
            logger.debug(
                "Creating implicit conditional hint: path=%s parent=%s applies_to_each=%s",
                path,
                parent,
                parent_element.is_unbounded,
            )
            return [
                SpecHint(
                    path=rel_path,
                    reason=(
                        f"According to HL7 FHIR {fhir_version}, '{path}' is required "
                        f"when {parent} is present."
                    ),
                    is_conditional=True,
                    condition=f"{parent_rel}.exists()",
                    applies_to_each=parent_element.is_unbounded,
                )
            ]

        if element.condition:
            conditional = self._explicit_conditional_hints(
                element, rel_path, resource_type, fhir_version, constraints, by_path
            )
            if conditional:
                return conditional
            logger.debug(
                "No condition key of %s resolved to an expression; treating as simple required",
                path,
            )

        return [
            SpecHint(
                path=rel_path,
                reason=(
                    f"According to HL7 FHIR {fhir_version}, '{path}' is required "
                    f"(min cardinality = {element.min})."
                ),
            )
        ]

    def _explicit_conditional_hints(
        self,
        element: ElementDefinition,
        rel_path: str,
        resource_type: str,
        fhir_version: str,
        constraints: dict[str, str | None],
        by_path: dict[str, ElementDefinition],
    ) -> list[SpecHint]:
        hints = []
        applies_to_each = self._applies_to_each(rel_path, resource_type, by_path)
        for key in element.condition:
            expression = constraints.get(key)
            if not expression or not expression.strip():
                continue
            hints.append(
                SpecHint(
                    path=rel_path,
                    reason=(
                        f"According to HL7 FHIR {fhir_version}, '{element.path}' is required "
                        f"when condition '{expression}' is true."
                    ),
                    is_conditional=True,
                    condition=expression,
                    applies_to_each=applies_to_each,
                )
            )
        return hints

    @staticmethod
    def _applies_to_each(
        rel_path: str, resource_type: str, by_path: dict[str, ElementDefinition]
    ) -> bool:
        parts = rel_path.split(".")
        if len(parts) < 2:
            return False
        parent_element = by_path.get(f"{resource_type}.{'.'.join(parts[:-1])}")
        return parent_element is not None and parent_element.is_unbounded


def generate_spec_hints(
    directory: str | Path, fhir_version: str = "R4", max_workers: int = 1
) -> SpecHintCatalog:
    """Convenience wrapper around SpecHintGenerator.generate."""
    return SpecHintGenerator(max_workers=max_workers).generate(directory, fhir_version)
