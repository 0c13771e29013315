"""Instrumented request pipeline with batched carbon-cost telemetry.

Public API
----------
PipelineConfig
    Closed set of options, loadable from ``GREENWIRE_*`` variables.
PipelineConfigError
    Raised for missing or invalid configuration.
PipelineContext
    Owner of one pipeline, cache, recorder, batcher and collector.

The request side lives in :mod:`greenwire.pipeline`; cost estimation and
delivery live in :mod:`greenwire.telemetry`.

Examples
--------
>>> from greenwire import PipelineConfig, PipelineContext
>>> async with PipelineContext(PipelineConfig(base_url="https://api.test")) as ctx:
...     data = await ctx.pipeline.get("/dashboard")

"""

from __future__ import annotations

from greenwire.config import PipelineConfig, PipelineConfigError
from greenwire.context import PipelineContext

__all__ = ["PipelineConfig", "PipelineConfigError", "PipelineContext"]
