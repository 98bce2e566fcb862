"""The adaptive training engine: one analysis pass and the caller-facing API."""

import logging
from dataclasses import replace
from datetime import datetime, timezone
from typing import Callable, List, Optional

from ..config import config
from ..db import Database, get_db
from ..db.repositories import (
    ANALYTICS_KEY,
    MODIFICATIONS_KEY,
    RECOMMENDATIONS_KEY,
    DocumentStore,
    ListRepository,
    PreferencesRepository,
    SqlDocumentStore,
    TimestampRepository,
)
from ..models import (
    ActionType,
    AdaptivePreferences,
    AdaptiveRecommendation,
    Aggressiveness,
    AnalysisResult,
    AnalyticsEntry,
    Frequency,
    PlanModification,
)
from ..sources import DatabaseTrainingSource, PlanRepository, TrainingDataSource
from .aggregator import InputAggregator, has_sufficient_data
from .builder import build_recommendation
from .lifecycle import LifecycleManager, should_run_analysis
from .modifications import ModificationEngine
from .scenarios import ScenarioDetector
from .statistics import compute_stats

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class AdaptiveTrainingEngine:
    """Detect coaching scenarios and manage the resulting recommendations.

    Every public method is safe to call repeatedly: expected conditions
    (no plan, too little data, rate limited, unknown ids) come back as
    None, False or an empty list.
    """

    def __init__(
        self,
        source: TrainingDataSource,
        plans: PlanRepository,
        store: DocumentStore,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.source = source
        self.clock = clock or utc_now
        self.aggregator = InputAggregator(source)
        self.preferences = PreferencesRepository(store)
        self.last_analysis = TimestampRepository(store)
        self.lifecycle = LifecycleManager(
            ListRepository(store, RECOMMENDATIONS_KEY, AdaptiveRecommendation.from_dict, lambda r: r.to_dict()),
            ListRepository(store, ANALYTICS_KEY, AnalyticsEntry.from_dict, lambda e: e.to_dict()),
        )
        self.modifications = ModificationEngine(
            ListRepository(store, MODIFICATIONS_KEY, PlanModification.from_dict, lambda m: m.to_dict()),
            plans,
            self.lifecycle,
            source,
        )

    # ── Analysis ─────────────────────────────────────────────────────────────

    def analyze(self, force: bool = False) -> Optional[AnalysisResult]:
        """Run one analysis pass and persist the recommendations it emits.

        Args:
            force: Skip the analysis interval check. Disabled preferences and
                the minimum-data check still apply.

        Returns:
            The detected scenarios, newly stored recommendations and stats,
            or None when a gate stopped the pass.
        """
        now = self.clock()
        preferences = self.get_preferences()
        if not should_run_analysis(preferences, self.last_analysis.load(), now, force):
            logger.debug("Analysis skipped (disabled or ran recently)")
            return None

        analysis_input = self.aggregator.gather(now)
        if analysis_input is None:
            return None
        if not has_sufficient_data(analysis_input):
            logger.info(
                f"Not enough data: {len(analysis_input.synced_runs)} synced runs, "
                f"{analysis_input.days_since_last_sync} days since last sync"
            )
            return None

        stats = compute_stats(analysis_input)
        detected = ScenarioDetector(preferences.aggressiveness).detect(analysis_input, stats)
        candidates = [build_recommendation(d, analysis_input, stats, now) for d in detected]
        emitted = self.lifecycle.select_for_emission(candidates, analysis_input, now)

        self.lifecycle.store(emitted)
        self.last_analysis.save(now)

        logger.info(
            f"Analysis for plan {analysis_input.plan_id} week {analysis_input.current_week_index + 1}: "
            f"{len(detected)} scenario(s), {len(emitted)} new recommendation(s)"
        )
        return AnalysisResult(
            detected_scenarios=detected,
            recommendations=emitted,
            stats=stats,
            input=analysis_input,
        )

    def generate_recommendations(self) -> List[AdaptiveRecommendation]:
        result = self.analyze(force=True)
        return result.recommendations if result else []

    # ── Recommendations ──────────────────────────────────────────────────────

    def get_active_recommendations(self) -> List[AdaptiveRecommendation]:
        return self.lifecycle.active(self.clock())

    def get_all_recommendations(self) -> List[AdaptiveRecommendation]:
        return self.lifecycle.all()

    def get_recommendation_badge_count(self) -> int:
        return self.lifecycle.badge_count(self.clock())

    def expire_stale(self) -> int:
        return self.lifecycle.expire_stale(self.clock())

    def dismiss(self, recommendation_id: str) -> bool:
        return self.lifecycle.dismiss(recommendation_id, self.clock())

    def accept(self, recommendation_id: str, option_key: str) -> Optional[PlanModification]:
        """Act on the option the runner picked.

        Modification options change the plan and return the applied
        modification. Picking a no-change option dismisses the
        recommendation and returns None. Recommendations past their expiry
        are treated as inactive even before the expiry sweep runs.
        """
        now = self.clock()
        recommendation = self.lifecycle.find(recommendation_id)
        if recommendation is None or not recommendation.is_active(now):
            logger.info(f"Recommendation {recommendation_id} is not active; nothing to accept")
            return None

        option = recommendation.find_option(option_key)
        if option is not None and option.action_type is ActionType.DISMISS:
            self.lifecycle.dismiss(recommendation_id, now, option_key)
            return None

        return self.modifications.apply(recommendation_id, option_key, now)

    # ── Modifications ────────────────────────────────────────────────────────

    def undo(self, modification_id: str) -> bool:
        return self.modifications.undo(modification_id)

    def undo_last(self) -> bool:
        last = self.modifications.last_modification()
        if last is None:
            return False
        return self.modifications.undo(last.id)

    def get_last_modification(self) -> Optional[PlanModification]:
        return self.modifications.last_modification()

    def get_modifications(self) -> List[PlanModification]:
        return self.modifications.all()

    # ── Preferences and analytics ────────────────────────────────────────────

    def get_preferences(self) -> AdaptivePreferences:
        return self.preferences.load()

    def set_preferences(
        self,
        enabled: Optional[bool] = None,
        frequency: Optional[Frequency] = None,
        aggressiveness: Optional[Aggressiveness] = None,
    ) -> AdaptivePreferences:
        """Update the given preference fields and return the merged record."""
        preferences = self.get_preferences()
        if enabled is not None:
            preferences = replace(preferences, enabled=enabled)
        if frequency is not None:
            preferences = replace(preferences, frequency=Frequency(frequency))
        if aggressiveness is not None:
            preferences = replace(preferences, aggressiveness=Aggressiveness(aggressiveness))
        self.preferences.save(preferences)
        return preferences

    def get_analytics_history(self) -> List[AnalyticsEntry]:
        return self.lifecycle.history()


def create_engine_for_user(db: Optional[Database] = None, user_id: Optional[str] = None) -> AdaptiveTrainingEngine:
    """Engine wired to the configured database for one user profile."""
    db = db or get_db()
    user_id = user_id or config.USER_ID
    source = DatabaseTrainingSource(db, user_id)
    return AdaptiveTrainingEngine(source, source, SqlDocumentStore(db, user_id))
