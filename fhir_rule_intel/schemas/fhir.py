"""
JSON schemas for the FHIR conformance documents the engine reads.

Only the fields the hint extractor relies on are constrained; everything else
in a StructureDefinition is allowed through untouched.
"""

ELEMENT_DEFINITION_SCHEMA: dict = {
    "type": "object",
    "required": ["path"],
    "properties": {
        "path": {"type": "string", "minLength": 1},
        "min": {"type": "integer", "minimum": 0},
        "max": {
            "type": "string",
            "pattern": "^(\\*|\\d+)$",
            "description": "Maximum cardinality: a number or '*' for unbounded.",
        },
        "condition": {"type": "array", "items": {"type": "string"}},
        "constraint": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["key"],
                "properties": {
                    "key": {"type": "string"},
                    "expression": {"type": "string"},
                },
            },
        },
    },
}


STRUCTURE_DEFINITION_SCHEMA: dict = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "title": "FHIR StructureDefinition (extraction subset)",
    "type": "object",
    "required": ["resourceType", "kind"],
    "properties": {
        "resourceType": {"type": "string", "const": "StructureDefinition"},
        "name": {"type": "string"},
        "kind": {
            "type": "string",
            "enum": ["primitive-type", "complex-type", "resource", "logical"],
        },
        "type": {"type": "string"},
        "snapshot": {
            "type": "object",
            "properties": {
                "element": {"type": "array", "items": ELEMENT_DEFINITION_SCHEMA},
            },
        },
    },
}
