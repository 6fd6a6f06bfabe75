"""
Storage Package

Client-side, in-memory storage of telemetry and its export artifacts.

Modules:
- metrics_history: Bounded FIFO of stream snapshots (capacity 100 by default)
- export: Deterministic CSV/JSON rendering and export file naming

Nothing here is persisted server-side; exports are written to a local
directory.
"""
