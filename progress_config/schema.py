"""
Typed configuration objects (``progress_config.schema``).

Every configuration artifact is a frozen dataclass; nothing downstream reads
raw YAML dicts.
"""

from __future__ import annotations

from dataclasses import dataclass

from progress_kernel.domain.templates import MilestoneSpec


@dataclass(frozen=True)
class EngineSettings:
    """Runtime settings of the progress engine."""

    database_url: str = "sqlite:///progress.db"
    database_echo: bool = False
    pool_size: int = 20
    max_overflow: int = 10
    refresh_interval_seconds: float = 30.0
    lock_timeout_seconds: float = 5.0
    recompute_chunk_size: int = 100
    flag_out_of_sequence: bool = True
    flag_rollbacks: bool = False
    flag_drawing_changes: bool = True


@dataclass(frozen=True)
class TemplateDefinition:
    """Global default template of one work-item type."""

    component_type: str
    milestones: tuple[MilestoneSpec, ...]

    def to_dict(self) -> dict:
        return {
            "component_type": self.component_type,
            "milestones": [m.to_dict() for m in self.milestones],
        }


@dataclass(frozen=True)
class IdentitySchema:
    """Required identity-key fields of one work-item type."""

    component_type: str
    fields: tuple[str, ...]
