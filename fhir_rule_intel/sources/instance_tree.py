"""
Instance tree-walker: exposes a parsed FHIR resource as a tree of named nodes.

Anything with ``name``, ``value`` and ``children`` satisfies ElementNode, so a
full FHIR object model can be plugged in. The default adapter works on FHIR
JSON dictionaries.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol, Sequence


class ElementNode(Protocol):
    name: str
    value: Any

    @property
    def children(self) -> Sequence[ElementNode]: ...


@dataclass
class JsonElementNode:
    """A node of a FHIR JSON resource. ``value`` is set only for primitives."""

    name: str
    value: Any = None
    children: list[JsonElementNode] = field(default_factory=list)


def _build_children(obj: dict[str, Any]) -> list[JsonElementNode]:
    children: list[JsonElementNode] = []
    for key, raw in obj.items():
        # resourceType is the node's type, and _field holds primitive id/extension
        if key == "resourceType" or key.startswith("_"):
            continue
        items = raw if isinstance(raw, list) else [raw]
        for item in items:
            if item is None:
                continue
            children.append(_build_node(key, item))
    return children


def _build_node(name: str, raw: Any) -> JsonElementNode:
    if isinstance(raw, dict):
        return JsonElementNode(name=name, children=_build_children(raw))
    return JsonElementNode(name=name, value=raw)


def to_element_tree(resource: dict[str, Any]) -> JsonElementNode:
    """Build the element tree for a FHIR JSON resource; the root is named after its type."""
    if not isinstance(resource, dict):
        raise TypeError(f"Expected a FHIR JSON object, got {type(resource).__name__}")
    return JsonElementNode(
        name=resource.get("resourceType") or "Resource",
        children=_build_children(resource),
    )
