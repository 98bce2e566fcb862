"""Shared fixtures: an in-memory training source and input factories."""

from collections import defaultdict
from datetime import date, datetime, timedelta, timezone

import pytest

from marathon_coach.models import (
    ActivePlan,
    AdaptiveRecommendation,
    AnalysisStats,
    DayType,
    PlanDay,
    PlanWeek,
    Priority,
    RecommendationType,
    Scenario,
    SyncedRun,
    SyncRecord,
    TrainingAnalysisInput,
    WeeklyMileage,
)
from marathon_coach.sources import PlanRepository, TrainingDataSource

NOW = datetime(2026, 3, 12, 12, 0, tzinfo=timezone.utc)

PACE_BY_NOTE = {"easy": 10.0, "tempo": 9.0, "long": 10.0}


def make_week(week_index, easy=4.0, tempo=5.0, long=10.0):
    """Rest, easy, tempo, easy, rest, long, cross."""
    return PlanWeek(
        week_index=week_index,
        days=(
            PlanDay(DayType.REST, "Rest"),
            PlanDay(DayType.RUN, f"{easy:g} mi easy", easy, "Easy"),
            PlanDay(DayType.RUN, f"{tempo:g} mi tempo", tempo, "Tempo"),
            PlanDay(DayType.RUN, f"{easy:g} mi easy", easy, "Easy"),
            PlanDay(DayType.REST, "Rest"),
            PlanDay(DayType.RUN, f"{long:g} mi long", long, "Long"),
            PlanDay(DayType.CROSS, "Cross train"),
        ),
    )


def make_run(week_index=0, day_index=1, pace=10.0, note="easy", planned=4.0, actual=None):
    return SyncedRun(
        week_index=week_index,
        day_index=day_index,
        actual_distance_mi=planned if actual is None else actual,
        actual_pace_min_per_mi=pace,
        planned_distance_mi=planned,
        planned_note=note,
        moving_time_sec=int((planned if actual is None else actual) * pace * 60),
        date=date(2026, 1, 1) + timedelta(days=week_index * 7 + day_index),
    )


def make_input(**overrides):
    """Week 11 of 18 with a healthy, unremarkable runner."""
    values = dict(
        plan_id="plan-18",
        start_date=NOW.date() - timedelta(days=73),
        total_weeks=18,
        current_week_index=10,
        current_day_index=3,
        weeks_remaining=7,
        recent_completion_rate=1.0,
        overall_completion_rate=1.0,
        readiness_score=70,
        adherence_score=80,
        days_since_last_sync=1,
        source_connected=True,
    )
    values.update(overrides)
    return TrainingAnalysisInput(**values)


def make_stats(**overrides):
    values = dict(
        avg_long_run_pace=10.0,
        avg_easy_pace=10.0,
        avg_hard_pace=9.0,
        weekly_mileage_change_pct=0.0,
        consecutive_days_without_rest=2,
        missed_key_workouts_last_2_weeks=0,
        last_2_weeks_completion_rate=1.0,
        easy_days_too_fast=False,
        hard_days_too_slow=False,
    )
    values.update(overrides)
    return AnalysisStats(**values)


def make_recommendation(
    scenario=Scenario.BEHIND_SCHEDULE,
    priority=Priority.HIGH,
    created_at=NOW,
    expires_in=timedelta(days=5),
    rec_id=None,
    dismissible=True,
    options=(),
):
    return AdaptiveRecommendation(
        id=rec_id or f"rec-{scenario.value}-{created_at.timestamp():.0f}",
        scenario=scenario,
        type=RecommendationType.REDUCE,
        priority=priority,
        title="Title",
        message="Message",
        reasoning="Because.",
        options=tuple(options),
        dismissible=dismissible,
        created_at=created_at,
        expires_at=created_at + expires_in if expires_in is not None else None,
    )


class FakeTrainingSource(TrainingDataSource, PlanRepository):
    """Training data held in memory, mirroring what the database source returns."""

    def __init__(self, plan, weeks, completed=(), records=(), readiness=70, adherence=80,
                 connected=True, last_sync=None):
        self.plan = plan
        self.weeks = {w.week_index: w for w in weeks}
        self.completed = set(completed)
        self.records = list(records)
        self.readiness = readiness
        self.adherence = adherence
        self.connected = connected
        self.last_sync = last_sync
        self.saved = []

    def get_active_plan(self):
        return self.plan

    def get_plan_weeks(self, plan_id):
        return [self.weeks[i] for i in sorted(self.weeks)]

    def get_sync_records(self, plan_id):
        return list(self.records)

    def get_completed_days(self, plan_id):
        return set(self.completed)

    def get_weekly_mileage(self, plan_id):
        actual = defaultdict(float)
        for record in self.records:
            actual[record.week_index] += record.actual_distance_mi
        return [
            WeeklyMileage(week_index=i, planned_mi=week.planned_mileage, actual_mi=actual.get(i, 0.0))
            for i, week in sorted(self.weeks.items())
        ]

    def get_readiness_score(self):
        return self.readiness

    def get_adherence_score(self):
        return self.adherence

    def is_source_connected(self):
        return self.connected

    def get_last_sync_time(self):
        return self.last_sync

    def get_week(self, plan_id, week_index):
        return self.weeks.get(week_index)

    def save_week(self, plan_id, week):
        self.saved.append(week)
        self.weeks[week.week_index] = week


def build_source(total_weeks=18, current_week=10, current_day=3, completed_extra=(), full_weeks=None,
                 now=NOW, **kwargs):
    """A source whose plan puts ``now`` at (current_week, current_day).

    Every non-rest day of the first ``full_weeks`` weeks (default: every week before
    the previous one) is completed, and its run days synced at its note's pace; ``completed_extra``
    lists further completed and synced (week, day) slots.
    """
    start = now.date() - timedelta(days=current_week * 7 + current_day)
    weeks = [make_week(i) for i in range(total_weeks)]
    if full_weeks is None:
        full_weeks = max(0, current_week - 1)

    slots = [
        (w, d) for w in range(full_weeks) for d, day in enumerate(weeks[w].days)
        if day.day_type is not DayType.REST
    ]
    slots.extend(completed_extra)

    records = []
    for w, d in slots:
        day = weeks[w].days[d]
        if day.day_type is not DayType.RUN:
            continue
        records.append(SyncRecord(
            week_index=w,
            day_index=d,
            actual_distance_mi=day.distance_mi,
            actual_pace_min_per_mi=PACE_BY_NOTE[day.note.lower()],
            moving_time_sec=int(day.distance_mi * 600),
            synced_at=now - timedelta(days=1),
        ))

    kwargs.setdefault("last_sync", now - timedelta(days=1))
    return FakeTrainingSource(
        plan=ActivePlan(plan_id="plan-18", start_date=start, total_weeks=total_weeks),
        weeks=weeks,
        completed=slots,
        records=records,
        **kwargs,
    )


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def week():
    return make_week(11)
