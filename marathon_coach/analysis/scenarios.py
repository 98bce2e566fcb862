"""Scenario detection.

Five independent heuristic rules. Each accumulates a 0-100 confidence from
weighted evidence and qualifies only at or above its own floor; several
scenarios may qualify in the same pass.
"""

import logging
from typing import List, Optional, Tuple

import numpy as np

from ..config import config
from ..models import (
    Aggressiveness, AnalysisStats, DetectedScenario, Scenario, TrainingAnalysisInput,
)
from .formatting import format_pace, format_pct
from .statistics import RECENT_RUN_WINDOW, runs_with_note

logger = logging.getLogger(__name__)

Evidence = Tuple[int, List[str]]

PACE_TREND_WINDOW = 6


class ScenarioDetector:
    """Evaluate every scenario rule against an analysis snapshot."""

    def __init__(self, aggressiveness: Aggressiveness = Aggressiveness.BALANCED):
        self.aggressiveness = aggressiveness
        self.factor = config.get_aggressiveness_factor(aggressiveness.value)

    def detect(self, analysis_input: TrainingAnalysisInput, stats: AnalysisStats) -> List[DetectedScenario]:
        """Return qualifying scenarios, highest confidence first."""
        rules = (
            (Scenario.AHEAD_OF_SCHEDULE, self._ahead_of_schedule),
            (Scenario.BEHIND_SCHEDULE, self._behind_schedule),
            (Scenario.OVERTRAINING, self._overtraining),
            (Scenario.INCONSISTENT_EXECUTION, self._inconsistent_execution),
            (Scenario.RACE_WEEK_OPTIMIZATION, self._race_week),
        )

        detected = []
        for scenario, rule in rules:
            confidence, triggers = rule(analysis_input, stats)
            result = self._qualify(scenario, confidence, triggers)
            if result:
                logger.debug(f"Detected {scenario.value} ({result.confidence}): {triggers}")
                detected.append(result)

        return sorted(detected, key=lambda s: s.confidence, reverse=True)

    @staticmethod
    def _qualify(scenario: Scenario, confidence: int, triggers: List[str]) -> Optional[DetectedScenario]:
        if confidence < config.get_scenario_floor(scenario.value):
            return None
        return DetectedScenario(scenario=scenario, confidence=min(confidence, 100), triggers=tuple(triggers))

    def _ahead_of_schedule(self, analysis_input: TrainingAnalysisInput, stats: AnalysisStats) -> Evidence:
        triggers = []
        confidence = 0

        long_runs = runs_with_note(analysis_input.synced_runs, "long")
        if len(long_runs) >= RECENT_RUN_WINDOW and 0 < stats.avg_long_run_pace < config.LONG_RUN_STRONG_PACE:
            triggers.append(
                f"Last {RECENT_RUN_WINDOW} long runs averaged {format_pace(stats.avg_long_run_pace)}, "
                f"faster than typical training pace"
            )
            confidence += 30

        if analysis_input.readiness_score > 85 * self.factor and analysis_input.weeks_remaining >= 6:
            triggers.append(
                f"Readiness score {analysis_input.readiness_score}% with "
                f"{analysis_input.weeks_remaining} weeks remaining"
            )
            confidence += 30

        if analysis_input.adherence_score > 85:
            triggers.append(f"Training adherence is {analysis_input.adherence_score}%, excellent consistency")
            confidence += 20

        over_achievers = [
            r for r in analysis_input.synced_runs
            if r.planned_distance_mi > 0 and r.actual_distance_mi > r.planned_distance_mi * 1.1
        ]
        if len(over_achievers) >= 3:
            triggers.append(f"{len(over_achievers)} runs exceeded plan distance by 10%+")
            confidence += 20

        return confidence, triggers

    def _behind_schedule(self, analysis_input: TrainingAnalysisInput, stats: AnalysisStats) -> Evidence:
        triggers = []
        confidence = 0

        missed = stats.missed_key_workouts_last_2_weeks
        if missed >= 3:
            triggers.append(f"Missed {missed} key workouts in the last 2 weeks")
            confidence += 35

        if stats.last_2_weeks_completion_rate < 0.70 * self.factor:
            triggers.append(
                f"Completion rate is {format_pct(stats.last_2_weeks_completion_rate)} over the last 2 weeks"
            )
            confidence += 30

        if 0 < analysis_input.readiness_score < 60:
            triggers.append(f"Readiness score is {analysis_input.readiness_score}%, below target")
            confidence += 25

        if analysis_input.overall_completion_rate < 0.65:
            triggers.append(f"Overall plan completion is {format_pct(analysis_input.overall_completion_rate)}")
            confidence += 15

        return confidence, triggers

    def _overtraining(self, analysis_input: TrainingAnalysisInput, stats: AnalysisStats) -> Evidence:
        triggers = []
        confidence = 0

        if stats.weekly_mileage_change_pct > 0.25:
            triggers.append(
                f"Weekly mileage jumped {format_pct(stats.weekly_mileage_change_pct)} from previous week"
            )
            confidence += 35

        if stats.consecutive_days_without_rest >= 7:
            triggers.append(f"{stats.consecutive_days_without_rest} consecutive days without a rest day")
            confidence += 30

        slowdown = pace_slowdown(analysis_input)
        if slowdown is not None and slowdown >= 0.05:
            triggers.append(f"Average pace slowed {format_pct(slowdown)}, possible fatigue")
            confidence += 25

        return confidence, triggers

    def _inconsistent_execution(self, analysis_input: TrainingAnalysisInput, stats: AnalysisStats) -> Evidence:
        triggers = []
        confidence = 0

        if stats.easy_days_too_fast:
            triggers.append(
                f"Easy day pace ({format_pace(stats.avg_easy_pace)}) is too fast; "
                f"it should be conversational effort"
            )
            confidence += 35

        if stats.hard_days_too_slow:
            triggers.append(
                f"Hard workout pace ({format_pace(stats.avg_hard_pace)}) is nearly the same as "
                f"easy pace ({format_pace(stats.avg_easy_pace)})"
            )
            confidence += 30

        off_target = [
            r for r in analysis_input.synced_runs
            if r.planned_distance_mi > 0
            and abs(r.actual_distance_mi - r.planned_distance_mi) / r.planned_distance_mi > 0.2
        ]
        if len(off_target) >= 4:
            triggers.append(f"{len(off_target)} workouts were 20%+ off planned distance")
            confidence += 25

        return confidence, triggers

    def _race_week(self, analysis_input: TrainingAnalysisInput, stats: AnalysisStats) -> Evidence:
        triggers = []
        confidence = 0

        if not 0 <= analysis_input.weeks_remaining <= 2:
            return confidence, triggers

        triggers.append(f"Only {analysis_input.weeks_remaining} week(s) to race day")
        confidence += 50

        if analysis_input.readiness_score >= 75:
            triggers.append(f"Readiness score is strong at {analysis_input.readiness_score}%")
            confidence += 25

        if len(analysis_input.synced_runs) >= 5:
            triggers.append("Sufficient training data for a race-day pacing strategy")
            confidence += 15

        return confidence, triggers


def pace_slowdown(analysis_input: TrainingAnalysisInput) -> Optional[float]:
    """Fractional slowdown of the last 6 runs against the 6 before them.

    None when either window has fewer than 3 runs or the older window has no pace.
    """
    runs = analysis_input.synced_runs
    recent = runs[-PACE_TREND_WINDOW:]
    older = runs[-2 * PACE_TREND_WINDOW:-PACE_TREND_WINDOW]
    if len(recent) < 3 or len(older) < 3:
        return None

    recent_avg = float(np.mean([r.actual_pace_min_per_mi for r in recent]))
    older_avg = float(np.mean([r.actual_pace_min_per_mi for r in older]))
    if older_avg <= 0:
        return None
    return (recent_avg - older_avg) / older_avg
