"""
progress_services -- Package init and public API.

Responsibility:
    The facade external collaborators (UI handlers, import pipelines,
    report generators) call.  This is the layer that owns transaction
    boundaries and per-component locks around kernel services.

Architecture position:
    Services -- top of the stack.

    Dependency direction (enforced by tests/architecture/test_layer_boundaries.py):
        progress_services/ -> progress_batch/, progress_config/, progress_kernel/  (allowed)
        progress_kernel/   -> progress_services/, progress_config/                 (FORBIDDEN)
        progress_batch/    -> progress_services/                                   (FORBIDDEN)
"""

from progress_services.engine import ProgressEngine

__all__ = [
    "ProgressEngine",
]
