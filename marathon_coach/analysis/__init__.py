"""Analysis pipeline for adaptive training recommendations."""

from .aggregator import InputAggregator, has_sufficient_data
from .builder import build_mileage_modification, build_recommendation, clamp_multiplier
from .engine import AdaptiveTrainingEngine, create_engine_for_user
from .lifecycle import LifecycleManager, should_run_analysis
from .modifications import ModificationEngine
from .scenarios import ScenarioDetector
from .statistics import compute_stats

__all__ = [
    "AdaptiveTrainingEngine",
    "create_engine_for_user",
    "InputAggregator",
    "has_sufficient_data",
    "compute_stats",
    "ScenarioDetector",
    "build_recommendation",
    "build_mileage_modification",
    "clamp_multiplier",
    "LifecycleManager",
    "should_run_analysis",
    "ModificationEngine",
]
