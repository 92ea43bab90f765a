"""
progress_config -- YAML-driven configuration for the progress engine.

Responsibility:
    The single place that reads configuration files and environment
    variables.  The kernel never imports this package; the engine facade
    and the CLI hand the parsed values to kernel services.

Failure modes:
    - ``FileNotFoundError`` -- configuration directory or file missing.
    - ``yaml.YAMLError`` -- malformed YAML.
    - ``ConfigurationError`` -- a default template does not total 100.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from pathlib import Path

from progress_config.loader import (
    load_yaml_file,
    parse_engine_settings,
    parse_identity_schemas,
    parse_template_definitions,
    template_set_checksum,
)
from progress_config.schema import EngineSettings, IdentitySchema, TemplateDefinition
from progress_kernel.logging_config import get_logger

logger = get_logger("config")

DEFAULT_CONFIG_DIR = Path(__file__).parent / "defaults"


def get_settings(
    config_dir: Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> EngineSettings:
    """Load engine.yaml, applying the environment override for the DB URL."""
    path = (config_dir or DEFAULT_CONFIG_DIR) / "engine.yaml"
    settings = parse_engine_settings(
        load_yaml_file(path),
        environ=os.environ if environ is None else environ,
    )
    logger.info(
        "engine_settings_loaded",
        extra={
            "path": str(path),
            "refresh_interval_seconds": settings.refresh_interval_seconds,
            "lock_timeout_seconds": settings.lock_timeout_seconds,
            "recompute_chunk_size": settings.recompute_chunk_size,
        },
    )
    return settings


def load_default_templates(config_dir: Path | None = None) -> dict[str, TemplateDefinition]:
    """Load and validate the global default templates."""
    path = (config_dir or DEFAULT_CONFIG_DIR) / "templates.yaml"
    definitions = parse_template_definitions(load_yaml_file(path))
    logger.info(
        "default_templates_loaded",
        extra={
            "path": str(path),
            "template_count": len(definitions),
            "checksum": template_set_checksum(definitions),
        },
    )
    return definitions


def load_identity_schemas(config_dir: Path | None = None) -> dict[str, IdentitySchema]:
    """Load the required identity-key fields per work-item type."""
    path = (config_dir or DEFAULT_CONFIG_DIR) / "identity.yaml"
    return parse_identity_schemas(load_yaml_file(path))


__all__ = [
    "DEFAULT_CONFIG_DIR",
    "EngineSettings",
    "IdentitySchema",
    "TemplateDefinition",
    "get_settings",
    "load_default_templates",
    "load_identity_schemas",
]
