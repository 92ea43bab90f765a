"""
progress_batch -- Background work for the progress engine.

Provides the resumable, checkpointed recompute job that re-derives percent
complete after a template change, the aggregation refresher that rebuilds
the rollup cache, and an in-process polling scheduler that drives the
refresher on a fixed interval.

Architecture:
    progress_batch/ is a top-level package.  Nothing in progress_kernel/
    imports from progress_batch except create_tables(), which needs the
    batch models registered on the shared metadata.

Invariants:
    - Recompute jobs commit one chunk (components + checkpoint) per
      transaction; a failed chunk rolls back alone.
    - Component locks are held around every chunk that touches a component.
    - Aggregation refresh replaces a project's records wholesale in one
      transaction and keeps the prior records on failure.
    - All timestamps come from an injected Clock.
    - The scheduler honours its stop signal between projects.
"""
