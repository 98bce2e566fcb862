"""Recommendation lifecycle and emission policy."""

import logging
from datetime import datetime, timedelta
from typing import List, Optional

from ..config import config
from ..db.repositories import ListRepository
from ..exceptions import InvalidTransitionError
from ..models import (
    AdaptivePreferences,
    AdaptiveRecommendation,
    AnalyticsAction,
    AnalyticsEntry,
    Priority,
    RecommendationStatus,
    Scenario,
    TrainingAnalysisInput,
)

logger = logging.getLogger(__name__)


def should_run_analysis(
    preferences: AdaptivePreferences,
    last_analysis_at: Optional[datetime],
    now: datetime,
    force: bool = False,
) -> bool:
    """Whether a full analysis pass may run now.

    Disabled preferences always win; ``force`` only bypasses the interval.
    """
    if not preferences.enabled:
        return False
    if force or last_analysis_at is None:
        return True

    interval = timedelta(hours=config.get_analysis_interval(preferences.frequency.value))
    return now - last_analysis_at >= interval


class LifecycleManager:
    """Owns the recommendation log and the analytics log."""

    def __init__(
        self,
        recommendations: ListRepository[AdaptiveRecommendation],
        analytics: ListRepository[AnalyticsEntry],
    ):
        self.recommendations = recommendations
        self.analytics = analytics

    def all(self) -> List[AdaptiveRecommendation]:
        return self.recommendations.load()

    def active(self, now: datetime) -> List[AdaptiveRecommendation]:
        return [r for r in self.all() if r.is_active(now)]

    def find(self, recommendation_id: str) -> Optional[AdaptiveRecommendation]:
        for recommendation in self.all():
            if recommendation.id == recommendation_id:
                return recommendation
        return None

    def badge_count(self, now: datetime) -> int:
        return len(self.active(now))

    def history(self) -> List[AnalyticsEntry]:
        return self.analytics.load()

    def select_for_emission(
        self,
        candidates: List[AdaptiveRecommendation],
        analysis_input: TrainingAnalysisInput,
        now: datetime,
    ) -> List[AdaptiveRecommendation]:
        """Filter candidates (highest confidence first) down to what may be emitted this pass."""
        active = self.active(now)
        represented = {r.scenario for r in active}
        newest = max((r.created_at for r in active), default=None)
        spacing_ok = newest is None or now - newest >= timedelta(hours=config.EMISSION_SPACING_HOURS)
        slots = config.MAX_ACTIVE_RECOMMENDATIONS - len(active)

        selected = []
        for candidate in candidates:
            if analysis_input.weeks_remaining <= 0 and candidate.scenario is not Scenario.RACE_WEEK_OPTIMIZATION:
                logger.debug(f"Taper lock suppressed {candidate.scenario.value}")
                continue
            if candidate.scenario in represented:
                continue
            if candidate.priority is not Priority.HIGH and not spacing_ok:
                logger.debug(f"Emission spacing suppressed {candidate.scenario.value}")
                continue
            if len(selected) >= slots:
                logger.debug(f"Active cap reached; dropping {candidate.scenario.value}")
                continue
            selected.append(candidate)
            represented.add(candidate.scenario)

        return selected

    def store(self, new_recommendations: List[AdaptiveRecommendation]) -> None:
        """Append to the log, evicting the oldest beyond the stored cap."""
        if not new_recommendations:
            return
        log = self.all() + list(new_recommendations)
        self.recommendations.save(log[-config.MAX_STORED_RECOMMENDATIONS:])
        logger.info(f"Stored {len(new_recommendations)} new recommendation(s)")

    def _transition(
        self,
        recommendation_id: str,
        status: RecommendationStatus,
        action: AnalyticsAction,
        now: datetime,
        option_key: Optional[str] = None,
    ) -> bool:
        log = self.all()
        for i, recommendation in enumerate(log):
            if recommendation.id != recommendation_id:
                continue
            try:
                log[i] = recommendation.transition(status, option_key)
            except InvalidTransitionError as e:
                logger.info(str(e))
                return False
            self.recommendations.save(log)
            self._record(log[i], action, now)
            logger.info(f"Recommendation {recommendation_id} {status.value}")
            return True

        logger.info(f"Unknown recommendation {recommendation_id}")
        return False

    def dismiss(self, recommendation_id: str, now: datetime, option_key: Optional[str] = None) -> bool:
        """Dismiss an active recommendation. Non-dismissible ones stay visible."""
        recommendation = self.find(recommendation_id)
        if recommendation is not None and not recommendation.dismissible:
            logger.info(f"Recommendation {recommendation_id} cannot be dismissed")
            return False
        return self._transition(
            recommendation_id, RecommendationStatus.DISMISSED, AnalyticsAction.DISMISSED, now, option_key
        )

    def mark_accepted(self, recommendation_id: str, option_key: str, now: datetime) -> bool:
        return self._transition(
            recommendation_id, RecommendationStatus.ACCEPTED, AnalyticsAction.ACCEPTED, now, option_key
        )

    def expire_stale(self, now: datetime) -> int:
        """Move active recommendations past their expiry to expired. Returns how many moved."""
        log = self.all()
        expired = []
        for i, recommendation in enumerate(log):
            if recommendation.status is RecommendationStatus.ACTIVE and not recommendation.is_active(now):
                log[i] = recommendation.transition(RecommendationStatus.EXPIRED)
                expired.append(log[i])

        if expired:
            self.recommendations.save(log)
            for recommendation in expired:
                self._record(recommendation, AnalyticsAction.EXPIRED, now)
            logger.info(f"Expired {len(expired)} recommendation(s)")
        return len(expired)

    def _record(self, recommendation: AdaptiveRecommendation, action: AnalyticsAction, now: datetime) -> None:
        entry = AnalyticsEntry(
            recommendation_id=recommendation.id,
            scenario=recommendation.scenario,
            type=recommendation.type,
            action=action,
            timestamp=now,
            selected_option_key=recommendation.selected_option_key,
        )
        entries = self.analytics.load() + [entry]
        self.analytics.save(entries[-config.ANALYTICS_HISTORY_LIMIT:])
