"""
Process-wide, version-keyed cache of SpecHint catalogs.

A catalog is built on first request for a version and then served read-only
until ``invalidate`` is called for that version. Failures are cached as an
empty catalog so a broken schema directory is not re-scanned on every request.
"""

from __future__ import annotations

import json
import logging
import threading
from pathlib import Path
from typing import Callable

from pydantic import ValidationError

from fhir_rule_intel.authoring.spec_hints import generate_spec_hints
from fhir_rule_intel.schemas.authoring import SpecHintCatalog

logger = logging.getLogger(__name__)

_VERSION_ALIASES = {
    "R4": "R4",
    "4.0": "R4",
    "4.0.0": "R4",
    "4.0.1": "R4",
    "R4B": "R4B",
    "4.3": "R4B",
    "4.3.0": "R4B",
    "R5": "R5",
    "5.0": "R5",
    "5.0.0": "R5",
}


def normalize_version(fhir_version: str) -> str:
    key = (fhir_version or "").strip().upper()
    return _VERSION_ALIASES.get(key, key)


def catalog_file_name(fhir_version: str) -> str:
    return f"fhir-spec-hints-{normalize_version(fhir_version).lower()}.json"


def save_catalog(catalog: SpecHintCatalog, directory: str | Path) -> Path:
    """Write a catalog as JSON; returns the file written."""
    target = Path(directory) / catalog_file_name(catalog.version)
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(catalog.model_dump_json(by_alias=True, indent=2), encoding="utf-8")
    logger.info("Saved %d spec hints for %s to %s", catalog.hint_count, catalog.version, target)
    return target


def load_catalog(file_path: str | Path, fhir_version: str | None = None) -> SpecHintCatalog:
    """Read a catalog JSON file. An unreadable file yields an empty catalog."""
    path = Path(file_path)
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        return SpecHintCatalog.model_validate(data)
    except (OSError, json.JSONDecodeError, ValidationError) as exc:
        logger.warning("Could not load spec hint catalog %s: %s", path, exc)
        return SpecHintCatalog(version=fhir_version or "")


class SpecHintCatalogStore:
    """
    Lazily builds one catalog per normalized FHIR version.

    ``directory_for`` maps a normalized version to its StructureDefinition
    directory; by default every version uses ``definitions_dir``.
    """

    def __init__(
        self,
        definitions_dir: str | Path,
        max_workers: int = 1,
        directory_for: Callable[[str], str | Path] | None = None,
    ):
        self.definitions_dir = definitions_dir
        self.max_workers = max_workers
        self._directory_for = directory_for or (lambda version: self.definitions_dir)
        self._catalogs: dict[str, SpecHintCatalog] = {}
        self._lock = threading.Lock()

    def get(self, fhir_version: str) -> SpecHintCatalog:
        key = normalize_version(fhir_version)
        cached = self._catalogs.get(key)
        if cached is not None:
            return cached

        with self._lock:
            cached = self._catalogs.get(key)
            if cached is not None:
                return cached
            self._catalogs[key] = self._build(key)
            return self._catalogs[key]

    def invalidate(self, fhir_version: str | None = None) -> None:
        """Drop one cached version (or all) so the next ``get`` rebuilds it."""
        with self._lock:
            if fhir_version is None:
                self._catalogs.clear()
            else:
                self._catalogs.pop(normalize_version(fhir_version), None)

    def cached_versions(self) -> list[str]:
        return sorted(self._catalogs)

    def _build(self, version: str) -> SpecHintCatalog:
        try:
            directory = self._directory_for(version)
            logger.info("Building spec hint catalog for %s from %s", version, directory)
            return generate_spec_hints(directory, version, max_workers=self.max_workers)
        except Exception:
            logger.exception("Failed to build spec hint catalog for %s; caching empty catalog", version)
            return SpecHintCatalog(version=version)
