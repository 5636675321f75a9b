"""
passfinder

Visible satellite pass prediction: when and where an orbiting object can
be seen with the naked eye from a ground location, plus incremental
multi-object searches, nearby-object scans and brightness estimates.
"""

from .config import PredictionConfig, load_config
from .magnitude import StandardMagnitudeCatalog, estimate_magnitude
from .observer import ObserverLocation
from .orbit import TrackedObject, load_objects
from .proximity import ProximityScanner
from .scheduler import BatchScheduler, PassCache, SearchSession
from .visibility import Pass, predict_passes

__version__ = "0.1.0"
__author__ = "passfinder developers"

__all__ = [
    "PredictionConfig",
    "load_config",
    "StandardMagnitudeCatalog",
    "estimate_magnitude",
    "ObserverLocation",
    "TrackedObject",
    "load_objects",
    "ProximityScanner",
    "BatchScheduler",
    "PassCache",
    "SearchSession",
    "Pass",
    "predict_passes",
]
