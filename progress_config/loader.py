"""
Configuration Loader (``progress_config.loader``).

Responsibility
--------------
Loads the YAML files under ``progress_config/defaults`` (or an alternative
directory) and parses them into the frozen dataclasses of
``progress_config.schema``.

Invariants enforced
-------------------
* Parse errors raise ``ValueError``/``KeyError`` with descriptive messages;
  no silent defaults for required fields.
* Every default template passes ``validate_template_definition`` (weights
  total exactly 100) or loading fails with ``ConfigurationError``.
* ``compute_checksum`` produces a deterministic SHA-256 hash for change
  detection of the default template set.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
* Template weights not totalling 100  -> ``ConfigurationError``.
"""

from __future__ import annotations

import hashlib
import json
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml

from progress_config.schema import EngineSettings, IdentitySchema, TemplateDefinition
from progress_kernel.domain.templates import MilestoneSpec, validate_template_definition
from progress_kernel.exceptions import ConfigurationError

DATABASE_URL_ENV = "PROGRESS_DATABASE_URL"


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_engine_settings(
    data: dict[str, Any],
    environ: Mapping[str, str] | None = None,
) -> EngineSettings:
    """
    Parse ``EngineSettings`` from the engine.yaml structure.

    Sections and keys are optional; absent values keep the dataclass
    defaults.  ``PROGRESS_DATABASE_URL`` in ``environ`` wins over the file.
    """
    database = data.get("database", {}) or {}
    aggregation = data.get("aggregation", {}) or {}
    concurrency = data.get("concurrency", {}) or {}
    recompute = data.get("recompute", {}) or {}
    review = data.get("review", {}) or {}
    defaults = EngineSettings()

    database_url = database.get("url", defaults.database_url)
    if environ is not None and environ.get(DATABASE_URL_ENV):
        database_url = environ[DATABASE_URL_ENV]

    settings = EngineSettings(
        database_url=database_url,
        database_echo=bool(database.get("echo", defaults.database_echo)),
        pool_size=int(database.get("pool_size", defaults.pool_size)),
        max_overflow=int(database.get("max_overflow", defaults.max_overflow)),
        refresh_interval_seconds=float(
            aggregation.get("refresh_interval_seconds", defaults.refresh_interval_seconds)
        ),
        lock_timeout_seconds=float(
            concurrency.get("lock_timeout_seconds", defaults.lock_timeout_seconds)
        ),
        recompute_chunk_size=int(recompute.get("chunk_size", defaults.recompute_chunk_size)),
        flag_out_of_sequence=bool(
            review.get("flag_out_of_sequence", defaults.flag_out_of_sequence)
        ),
        flag_rollbacks=bool(review.get("flag_rollbacks", defaults.flag_rollbacks)),
        flag_drawing_changes=bool(
            review.get("flag_drawing_changes", defaults.flag_drawing_changes)
        ),
    )

    if settings.refresh_interval_seconds <= 0:
        raise ValueError("aggregation.refresh_interval_seconds must be positive")
    if settings.lock_timeout_seconds <= 0:
        raise ValueError("concurrency.lock_timeout_seconds must be positive")
    if settings.recompute_chunk_size < 1:
        raise ValueError("recompute.chunk_size must be at least 1")
    return settings


def parse_template_definition(component_type: str, entries: list[dict[str, Any]]) -> TemplateDefinition:
    """
    Parse one default template.

    Raises:
        KeyError: an entry lacks name or weight.
        ValueError: a weight is not numeric or a category is unknown.
        ConfigurationError: the template fails integrity validation.
    """
    if not isinstance(entries, list):
        raise ValueError(f"template for {component_type} must be a list of milestones")
    milestones = tuple(MilestoneSpec.from_dict(entry, order=i) for i, entry in enumerate(entries))
    issues = validate_template_definition(milestones)
    if issues:
        raise ConfigurationError(component_type, None, "; ".join(issues))
    return TemplateDefinition(component_type=component_type, milestones=milestones)


def parse_template_definitions(data: dict[str, Any]) -> dict[str, TemplateDefinition]:
    """Parse the templates.yaml mapping of type -> milestone list."""
    return {
        component_type: parse_template_definition(component_type, entries)
        for component_type, entries in data.items()
    }


def parse_identity_schemas(data: dict[str, Any]) -> dict[str, IdentitySchema]:
    """Parse the identity.yaml mapping of type -> required field list."""
    schemas = {}
    for component_type, fields in data.items():
        if not fields or not isinstance(fields, list):
            raise ValueError(f"identity schema for {component_type} must list its fields")
        schemas[component_type] = IdentitySchema(
            component_type=component_type,
            fields=tuple(str(f) for f in fields),
        )
    return schemas


def compute_checksum(data: dict[str, Any]) -> str:
    """
    Compute SHA-256 checksum of canonical JSON serialization.

    Identical ``data`` always produces identical checksums.
    """
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def template_set_checksum(definitions: Mapping[str, TemplateDefinition]) -> str:
    """Checksum of a parsed default template set."""
    return compute_checksum(
        {name: definition.to_dict() for name, definition in definitions.items()}
    )
