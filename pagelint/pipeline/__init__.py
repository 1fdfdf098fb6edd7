"""Capture-and-validate pipeline package.

Public API::

    from pagelint.pipeline import run_pipeline
    result = run_pipeline()
"""

from pagelint.pipeline.runner import PipelineResult, PipelineState, run_pipeline

__all__ = ["run_pipeline", "PipelineResult", "PipelineState"]
