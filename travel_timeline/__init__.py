"""Travel timeline: turn raw GPS samples into visits, routes, trips and days."""

from .errors import (
    BatchProcessingError,
    GeocodingError,
    PersistenceError,
    TravelTimelineError,
)
from .models import (
    Coordinate,
    LocationSample,
    PlaceVisit,
    ProcessingResult,
    RouteSegment,
    SampleSource,
    TransportType,
    Trip,
    TripDay,
)
from .pipeline_config import PipelineConfig, TransportThresholds, TripSegmentationStrategy
from .services import BatchProcessingService, LocationPipeline

__all__ = [
    "BatchProcessingError",
    "GeocodingError",
    "PersistenceError",
    "TravelTimelineError",
    "Coordinate",
    "LocationSample",
    "PlaceVisit",
    "ProcessingResult",
    "RouteSegment",
    "SampleSource",
    "TransportType",
    "Trip",
    "TripDay",
    "PipelineConfig",
    "TransportThresholds",
    "TripSegmentationStrategy",
    "BatchProcessingService",
    "LocationPipeline",
]
