"""
Collects the primitive values observed at each field path across sample
resources of one type.

Paths are relative to the resource (``code.coding.system``). Repeating
elements are not indexed; every occurrence is appended to the same path.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable

from fhir_rule_intel.sources.instance_tree import ElementNode, to_element_tree

logger = logging.getLogger(__name__)

SKIPPED_ELEMENTS = frozenset({"id", "meta", "extension"})


@dataclass
class ObservationSet:
    """Observed values for one resource type."""

    resource_type: str
    total_resources: int = 0
    values: dict[str, list[str]] = field(default_factory=dict)
    presence: dict[str, int] = field(default_factory=dict)

    def paths(self) -> list[str]:
        return sorted(self.values)

    def present_in_all(self, path: str) -> bool:
        return self.total_resources > 0 and self.presence.get(path, 0) == self.total_resources


def coerce_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _walk(node: ElementNode, parent_path: str, found: dict[str, list[str]]) -> None:
    if node.name in SKIPPED_ELEMENTS:
        return
    current = f"{parent_path}.{node.name}" if parent_path else node.name

    if node.value is not None:
        text = coerce_value(node.value)
        if text.strip():
            found.setdefault(current, []).append(text)

    for child in node.children:
        _walk(child, current, found)


def collect_observations(
    resource_type: str,
    resources: Iterable[Any],
    tree_walker: Callable[[Any], ElementNode] = to_element_tree,
) -> ObservationSet:
    """Walk each resource and merge its per-path values into one ObservationSet."""
    observations = ObservationSet(resource_type=resource_type)

    for index, resource in enumerate(resources):
        observations.total_resources += 1
        try:
            root = tree_walker(resource)
            found: dict[str, list[str]] = {}
            for child in root.children:
                _walk(child, "", found)
        except Exception:
            logger.warning(
                "Failed to traverse %s resource #%d; skipping", resource_type, index, exc_info=True
            )
            continue

        for path, path_values in found.items():
            observations.values.setdefault(path, []).extend(path_values)
            observations.presence[path] = observations.presence.get(path, 0) + 1

    logger.debug(
        "Collected %d paths from %d %s resources",
        len(observations.values),
        observations.total_resources,
        resource_type,
    )
    return observations
