"""
Progress Kernel

An event-sourced earned-value engine for construction progress tracking:
- Weighted milestone templates with project overrides
- Append-only milestone event log with deltas stored at write time
- Grouping membership resolved through component -> drawing inheritance
- Per-component write serialization
- Explicit Decimal rounding
"""

__version__ = "0.1.0"
