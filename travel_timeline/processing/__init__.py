"""Pure processing stages of the travel timeline pipeline."""

from .clustering import SpatiotemporalClusterer
from .days import DayAggregator
from .home import HomeLocationDetector
from .routes import RouteSegmentBuilder
from .simplify import PathSimplifier
from .transport import TransportClassifier
from .trips import TripBoundaryDetector
from .visits import VisitBuilder

__all__ = [
    "SpatiotemporalClusterer",
    "DayAggregator",
    "HomeLocationDetector",
    "RouteSegmentBuilder",
    "PathSimplifier",
    "TransportClassifier",
    "TripBoundaryDetector",
    "VisitBuilder",
]
