"""
Traces app: ingestion and query API for pipeline decision traces.

Provides:
- Atomic ingestion of a finished run with its steps and sampled candidates
- Single-run fetch and paginated listing
- Cross-pipeline elimination-rate analysis over steps
"""
