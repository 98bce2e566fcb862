"""Recommendation builders.

Each qualifying scenario maps to exactly one recommendation. Modification
options carry a ``PlanModification`` template; the modification engine fills
in its identity and snapshots when the runner accepts it.
"""

import uuid
from datetime import datetime, timedelta
from typing import Callable, Dict, Optional

from ..config import config
from ..models import (
    ActionType,
    AdaptiveRecommendation,
    AnalysisStats,
    DetectedScenario,
    ModificationType,
    PlanModification,
    Priority,
    RecommendationOption,
    RecommendationType,
    Scenario,
    TrainingAnalysisInput,
    WeekAdjustment,
)
from .formatting import format_pace, format_pct, plural
from .statistics import mean_pace

RACE_PACE_RUN_WINDOW = 10
RACE_PACE_FACTOR = 1.03


def clamp_multiplier(multiplier: Optional[float]) -> Optional[float]:
    """Cap mileage increases at the safety ceiling; reductions pass through."""
    if multiplier is None:
        return None
    return min(multiplier, config.MAX_MILEAGE_MULTIPLIER)


def build_mileage_modification(
    analysis_input: TrainingAnalysisInput,
    multiplier: float,
    weeks: int,
    description: str,
) -> PlanModification:
    """Scale mileage of the ``weeks`` weeks following the current one.

    Targets never run past the last week of the plan.
    """
    safe_multiplier = clamp_multiplier(multiplier)
    adjustments = []
    for offset in range(weeks):
        target = analysis_input.current_week_index + 1 + offset
        if target >= analysis_input.total_weeks:
            break
        adjustments.append(WeekAdjustment(week_index=target, mileage_multiplier=safe_multiplier))

    return PlanModification(
        description=description,
        modification_type=(
            ModificationType.MILEAGE_INCREASE if multiplier >= 1 else ModificationType.MILEAGE_REDUCTION
        ),
        week_adjustments=tuple(adjustments),
    )


def _dismiss_option(key: str, label: str, description: str, impact: str) -> RecommendationOption:
    return RecommendationOption(
        key=key,
        label=label,
        description=description,
        impact=impact,
        action_type=ActionType.DISMISS,
    )


def _modification_option(
    key: str, label: str, description: str, impact: str, payload: PlanModification
) -> RecommendationOption:
    return RecommendationOption(
        key=key,
        label=label,
        description=description,
        impact=impact,
        action_type=ActionType.APPLY_MODIFICATION,
        action_payload=payload,
    )


def _new_recommendation(
    detected: DetectedScenario,
    rec_type: RecommendationType,
    priority: Priority,
    title: str,
    message: str,
    options,
    now: datetime,
    dismissible: bool = True,
) -> AdaptiveRecommendation:
    return AdaptiveRecommendation(
        id=f"rec-{uuid.uuid4().hex}",
        scenario=detected.scenario,
        type=rec_type,
        priority=priority,
        title=title,
        message=message,
        reasoning=". ".join(detected.triggers) + ".",
        options=tuple(options),
        dismissible=dismissible,
        created_at=now,
        expires_at=now + timedelta(days=config.get_expiry_days(detected.scenario.value)),
    )


def build_ahead_recommendation(
    analysis_input: TrainingAnalysisInput, detected: DetectedScenario, stats: AnalysisStats, now: datetime
) -> AdaptiveRecommendation:
    options = [
        _modification_option(
            "increase_mileage",
            "Increase weekly mileage 10%",
            "Bump up your upcoming weeks by 10% to push your fitness further.",
            "Next 4 weeks get a 10% mileage boost",
            build_mileage_modification(analysis_input, 1.10, 4, "Increase mileage 10% for 4 weeks"),
        ),
        _dismiss_option(
            "keep_crushing",
            "Keep current plan",
            "Stay the course. No changes needed.",
            "No changes to your plan",
        ),
    ]

    message = (
        f"Your recent long runs averaged {format_pace(stats.avg_long_run_pace)} and your readiness "
        f"score is {analysis_input.readiness_score}%. You're tracking ahead of schedule with "
        f"{plural(analysis_input.weeks_remaining, 'week')} to go. Want to level up?"
    )
    return _new_recommendation(
        detected, RecommendationType.UPGRADE, Priority.MEDIUM,
        "You're Crushing It! Ready for More?", message, options, now,
    )


def build_behind_recommendation(
    analysis_input: TrainingAnalysisInput, detected: DetectedScenario, stats: AnalysisStats, now: datetime
) -> AdaptiveRecommendation:
    options = [
        _modification_option(
            "reduce_20",
            "Reduce mileage 20% for 2 weeks",
            "Take the pressure off. Your next 2 weeks are dialed back so you can rebuild momentum.",
            "Next 2 weeks reduced by 20%",
            build_mileage_modification(analysis_input, 0.80, 2, "Reduce mileage 20% for 2 weeks"),
        ),
        _modification_option(
            "add_recovery",
            "Add a recovery week",
            "Insert an easy recovery week with reduced volume before resuming your plan.",
            "Next week becomes a recovery week (50% mileage)",
            build_mileage_modification(analysis_input, 0.50, 1, "Recovery week at 50% mileage"),
        ),
        _dismiss_option(
            "keep_going",
            "I'll catch up on my own",
            "No plan changes. You'll handle it.",
            "No changes to your plan",
        ),
    ]

    missed = stats.missed_key_workouts_last_2_weeks
    message = (
        f"You've missed {plural(missed, 'key workout')} recently and your completion rate is "
        f"{format_pct(analysis_input.recent_completion_rate)}. Let's adjust the plan so you can "
        f"build back up safely without risking injury."
    )
    return _new_recommendation(
        detected, RecommendationType.REDUCE, Priority.HIGH,
        "Let's Get Back on Track", message, options, now,
    )


def build_overtraining_recommendation(
    analysis_input: TrainingAnalysisInput, detected: DetectedScenario, stats: AnalysisStats, now: datetime
) -> AdaptiveRecommendation:
    options = [
        _modification_option(
            "force_rest",
            "Take a recovery week (30% reduction)",
            "Your body needs to absorb this training. Next week is reduced by 30%.",
            "Next week's mileage reduced by 30%",
            build_mileage_modification(analysis_input, 0.70, 1, "Recovery week at 70% mileage"),
        ),
        _modification_option(
            "moderate_reduction",
            "Moderate reduction (15%)",
            "A lighter touch: reduce just enough to recover without losing momentum.",
            "Next week reduced by 15%",
            build_mileage_modification(analysis_input, 0.85, 1, "Reduce next week's mileage 15%"),
        ),
    ]

    jump = stats.weekly_mileage_change_pct
    if jump > 0.20:
        message = (
            f"Your mileage jumped {format_pct(jump)} this week. The general rule is no more than a 10% "
            f"increase per week, and bigger jumps raise injury risk significantly. Let's take an easy week."
        )
    else:
        message = (
            f"You've been running {stats.consecutive_days_without_rest} days straight without rest. "
            f"These are classic signs of accumulated fatigue. A recovery week now will make you "
            f"stronger for race day."
        )
    return _new_recommendation(
        detected, RecommendationType.REST, Priority.HIGH,
        "Slow Down: Your Body Needs a Break", message, options, now, dismissible=False,
    )


def build_inconsistent_recommendation(
    analysis_input: TrainingAnalysisInput, detected: DetectedScenario, stats: AnalysisStats, now: datetime
) -> AdaptiveRecommendation:
    options = [
        _dismiss_option(
            "learn_more",
            "Got it, I'll pace smarter",
            "Acknowledge this tip and focus on differentiating easy and hard efforts.",
            "No plan changes",
        ),
    ]

    if stats.easy_days_too_fast:
        message = (
            f"Your easy day average pace is {format_pace(stats.avg_easy_pace)}, faster than most runners "
            f"should go on recovery days. Easy runs should feel conversational. Running them too fast "
            f"means you can't go hard enough on quality days."
        )
    else:
        message = (
            f"Your hard workout pace ({format_pace(stats.avg_hard_pace)}) is very close to your easy pace "
            f"({format_pace(stats.avg_easy_pace)}). Run easy days slower and hard days faster; the "
            f"contrast is what builds fitness."
        )
    return _new_recommendation(
        detected, RecommendationType.ADJUST_PACING, Priority.MEDIUM,
        "Pacing Tip: Easy Days Easy, Hard Days Hard", message, options, now,
    )


def estimate_race_pace(analysis_input: TrainingAnalysisInput) -> float:
    """Average pace of the last 10 paced runs, slowed by 3% for race distance. 0 without data."""
    paced = [r for r in analysis_input.synced_runs if r.actual_pace_min_per_mi > 0]
    avg = mean_pace(paced[-RACE_PACE_RUN_WINDOW:])
    return avg * RACE_PACE_FACTOR if avg > 0 else 0.0


def build_race_week_recommendation(
    analysis_input: TrainingAnalysisInput, detected: DetectedScenario, stats: AnalysisStats, now: datetime
) -> AdaptiveRecommendation:
    options = [
        _dismiss_option(
            "accept_taper",
            "Trust the taper",
            "Follow the taper: reduce mileage, keep some intensity and arrive fresh on race day.",
            "No changes needed, your plan already has a taper built in",
        ),
    ]

    readiness = analysis_input.readiness_score
    message = (
        f"The finish line is near! Your readiness score is {readiness}%, "
        f"{'you are in great shape' if readiness >= 80 else 'solid preparation'}. "
    )
    race_pace = estimate_race_pace(analysis_input)
    if race_pace > 0:
        message += f"Based on your training, a target race pace around {format_pace(race_pace)} is sustainable. "
    message += "Trust your training, don't try anything new on race day, and start conservative."

    return _new_recommendation(
        detected, RecommendationType.TAPER, Priority.HIGH,
        f"Race Week! {plural(analysis_input.weeks_remaining, 'Week')} to Go", message, options, now,
    )


Builder = Callable[
    [TrainingAnalysisInput, DetectedScenario, AnalysisStats, datetime], AdaptiveRecommendation
]

BUILDERS: Dict[Scenario, Builder] = {
    Scenario.AHEAD_OF_SCHEDULE: build_ahead_recommendation,
    Scenario.BEHIND_SCHEDULE: build_behind_recommendation,
    Scenario.OVERTRAINING: build_overtraining_recommendation,
    Scenario.INCONSISTENT_EXECUTION: build_inconsistent_recommendation,
    Scenario.RACE_WEEK_OPTIMIZATION: build_race_week_recommendation,
}


def build_recommendation(
    detected: DetectedScenario,
    analysis_input: TrainingAnalysisInput,
    stats: AnalysisStats,
    now: datetime,
) -> AdaptiveRecommendation:
    """Build the recommendation for one detected scenario."""
    return BUILDERS[detected.scenario](analysis_input, detected, stats, now)
