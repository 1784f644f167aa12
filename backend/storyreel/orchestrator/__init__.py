"""Pipeline orchestrator module.

Provides run coordination for the transition video pipeline with:
- Lifecycle states and transition rules (state.py)
- Fail-fast concurrent fan-out (concurrency.py)
- PipelineOrchestrator and default wiring (pipeline.py)
"""
