"""Service layer package.

Exports the pipeline entry point and the batch runner built on top of it.
"""

from .batch_service import BatchOutcome, BatchProcessingService, BatchServiceConfig
from .pipeline import LocationPipeline, LocationPipelineConfig, setup_logging

__all__ = [
    "BatchOutcome",
    "BatchProcessingService",
    "BatchServiceConfig",
    "LocationPipeline",
    "LocationPipelineConfig",
    "setup_logging",
]
