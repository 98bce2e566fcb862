"""Second-order metrics derived from an analysis snapshot."""

from typing import List, Sequence

import numpy as np

from ..config import config
from ..models import AnalysisStats, DayType, SyncedRun, TrainingAnalysisInput

RECENT_RUN_WINDOW = 4


def runs_with_note(runs: Sequence[SyncedRun], *notes: str) -> List[SyncedRun]:
    """Runs planned with one of ``notes`` that have a recorded pace."""
    return [
        r for r in runs
        if r.planned_note.lower() in notes and r.actual_pace_min_per_mi > 0
    ]


def mean_pace(runs: Sequence[SyncedRun]) -> float:
    if not runs:
        return 0.0
    return float(np.mean([r.actual_pace_min_per_mi for r in runs]))


def weekly_mileage_change(analysis_input: TrainingAnalysisInput) -> float:
    """Fractional change of actual mileage from last week to this week."""
    current = analysis_input.mileage_for_week(analysis_input.current_week_index)
    previous = analysis_input.mileage_for_week(analysis_input.current_week_index - 1)
    if previous is None or previous.actual_mi <= 0:
        return 0.0
    current_mi = current.actual_mi if current else 0.0
    return (current_mi - previous.actual_mi) / previous.actual_mi


def consecutive_active_days(analysis_input: TrainingAnalysisInput) -> int:
    """Completed non-rest days in a row, counted backwards from today.

    Stops at the first rest day or the first day that was not completed.
    Today is skipped while it is still open (not yet completed).
    """
    log = list(analysis_input.day_log)
    if log and not log[-1].is_past and not log[-1].completed:
        log.pop()

    streak = 0
    for status in reversed(log):
        if status.day_type is DayType.REST or not status.completed:
            break
        streak += 1
    return streak


def missed_key_workouts(analysis_input: TrainingAnalysisInput) -> int:
    """Long/tempo/speed days of this and last week that are over and were not completed."""
    first_week = max(0, analysis_input.current_week_index - 1)
    return sum(
        1
        for status in analysis_input.day_log
        if status.week_index >= first_week
        and status.note in config.KEY_WORKOUT_NOTES
        and status.is_past
        and not status.completed
    )


def compute_stats(analysis_input: TrainingAnalysisInput) -> AnalysisStats:
    """Derive ``AnalysisStats`` from the snapshot. Pure and total."""
    runs = analysis_input.synced_runs

    avg_long = mean_pace(runs_with_note(runs, "long")[-RECENT_RUN_WINDOW:])
    avg_easy = mean_pace(runs_with_note(runs, "easy")[-RECENT_RUN_WINDOW:])
    avg_hard = mean_pace(runs_with_note(runs, "tempo", "speed"))

    return AnalysisStats(
        avg_long_run_pace=avg_long,
        avg_easy_pace=avg_easy,
        avg_hard_pace=avg_hard,
        weekly_mileage_change_pct=weekly_mileage_change(analysis_input),
        consecutive_days_without_rest=consecutive_active_days(analysis_input),
        missed_key_workouts_last_2_weeks=missed_key_workouts(analysis_input),
        last_2_weeks_completion_rate=analysis_input.recent_completion_rate,
        easy_days_too_fast=0 < avg_easy < config.EASY_PACE_TOO_FAST,
        hard_days_too_slow=avg_easy > 0 and avg_hard > 0 and avg_hard >= avg_easy * 0.95,
    )
