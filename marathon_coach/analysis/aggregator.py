"""Input aggregation: one immutable analysis snapshot per pass.

All calendar arithmetic lives here. Downstream stages only see week/day
indices and pre-resolved flags (completed, in the past).
"""

import logging
from datetime import date, datetime, timedelta
from typing import Callable, Dict, Iterable, Optional, Set, Tuple, TypeVar

from ..config import config
from ..models import (
    DayStatus, DayType, PlanWeek, SyncedRun, SyncRecord, TrainingAnalysisInput,
)
from ..sources import TrainingDataSource

logger = logging.getLogger(__name__)

T = TypeVar("T")

DAYS_PER_WEEK = 7


def resolve_position(start_date: date, total_weeks: int, today: date) -> Optional[Tuple[int, int]]:
    """Week and day index (0-based) of ``today``, or None before the start or after the plan ends."""
    offset = (today - start_date).days
    if offset < 0 or offset >= total_weeks * DAYS_PER_WEEK:
        return None
    return offset // DAYS_PER_WEEK, offset % DAYS_PER_WEEK


def date_for_slot(start_date: date, week_index: int, day_index: int) -> date:
    return start_date + timedelta(days=week_index * DAYS_PER_WEEK + day_index)


def build_day_log(
    weeks: Dict[int, PlanWeek],
    completed: Set[Tuple[int, int]],
    current_week: int,
    current_day: int,
) -> Tuple[DayStatus, ...]:
    """Flatten the plan from its first day through today."""
    today_offset = current_week * DAYS_PER_WEEK + current_day
    log = []
    for week_index in range(current_week + 1):
        week = weeks.get(week_index)
        if week is None:
            continue
        for day_index, day in enumerate(week.days):
            offset = week_index * DAYS_PER_WEEK + day_index
            if offset > today_offset:
                break
            log.append(DayStatus(
                week_index=week_index,
                day_index=day_index,
                day_type=day.day_type,
                note=(day.note or "").lower(),
                completed=(week_index, day_index) in completed,
                is_past=offset < today_offset,
            ))
    return tuple(log)


def completion_rate(day_log: Iterable[DayStatus], first_week: int = 0) -> float:
    """Share of elapsed non-rest days that were completed.

    A day counts once it is over, or today once it has been completed.
    """
    scheduled = 0
    done = 0
    for status in day_log:
        if status.week_index < first_week or status.day_type is DayType.REST:
            continue
        if not (status.is_past or status.completed):
            continue
        scheduled += 1
        if status.completed:
            done += 1
    return done / scheduled if scheduled > 0 else 0.0


def has_sufficient_data(analysis_input: TrainingAnalysisInput) -> bool:
    """Too few synced runs combined with a stale sync means there is nothing to coach on."""
    return not (
        len(analysis_input.synced_runs) < config.MIN_SYNCED_RUNS
        and analysis_input.days_since_last_sync > config.MAX_DAYS_WITHOUT_SYNC
    )


class InputAggregator:
    """Assemble a ``TrainingAnalysisInput`` from the collaborator stores."""

    def __init__(self, source: TrainingDataSource):
        self.source = source

    def _read(
        self,
        label: str,
        call: Callable[[], Optional[T]],
        default: T,
        convert: Optional[Callable[[T], T]] = None,
    ) -> T:
        """Read one collaborator field, degrading to ``default`` on failure.

        ``convert`` runs inside the guard, so an unusable value also degrades.
        """
        try:
            value = call()
            if value is None:
                return default
            return convert(value) if convert else value
        except Exception as e:
            logger.warning(f"Failed to read {label}; continuing with default: {e}")
            return default

    def gather(self, now: datetime) -> Optional[TrainingAnalysisInput]:
        """Build the analysis snapshot for ``now``.

        Returns None when there is no active plan, the plan is empty, today
        falls outside the plan, or the plan itself cannot be read.
        """
        try:
            plan = self.source.get_active_plan()
            if plan is None:
                logger.info("No active plan; skipping analysis")
                return None
            weeks = {week.week_index: week for week in self.source.get_plan_weeks(plan.plan_id)}
        except Exception as e:
            logger.error(f"Could not read the active plan: {e}")
            return None

        if not weeks or plan.total_weeks <= 0:
            logger.info(f"Plan {plan.plan_id} has no weeks; skipping analysis")
            return None

        today = now.date()
        position = resolve_position(plan.start_date, plan.total_weeks, today)
        if position is None:
            logger.info(f"{today} is outside plan {plan.plan_id}; skipping analysis")
            return None
        week_index, day_index = position

        records = self._read("synced runs", lambda: self.source.get_sync_records(plan.plan_id), [])
        completed = self._read("completed days", lambda: self.source.get_completed_days(plan.plan_id), set())
        mileage = self._read("weekly mileage", lambda: self.source.get_weekly_mileage(plan.plan_id), [])
        readiness = self._read("readiness score", self.source.get_readiness_score, 0, int)
        adherence = self._read("adherence score", self.source.get_adherence_score, 0, int)
        connected = self._read("source connection", self.source.is_source_connected, False)
        last_sync = self._read("last sync time", self.source.get_last_sync_time, None)

        day_log = build_day_log(weeks, set(completed), week_index, day_index)

        return TrainingAnalysisInput(
            plan_id=plan.plan_id,
            start_date=plan.start_date,
            total_weeks=plan.total_weeks,
            current_week_index=week_index,
            current_day_index=day_index,
            weeks_remaining=plan.total_weeks - week_index - 1,
            recent_completion_rate=completion_rate(day_log, first_week=max(0, week_index - 1)),
            overall_completion_rate=completion_rate(day_log),
            weekly_mileage=tuple(sorted(mileage, key=lambda m: m.week_index)),
            synced_runs=self._join_runs(plan.start_date, weeks, records),
            day_log=day_log,
            readiness_score=readiness,
            adherence_score=adherence,
            days_since_last_sync=self._days_since(last_sync, now),
            source_connected=bool(connected),
        )

    @staticmethod
    def _join_runs(
        start_date: date, weeks: Dict[int, PlanWeek], records: Iterable[SyncRecord]
    ) -> Tuple[SyncedRun, ...]:
        runs = []
        for record in sorted(records, key=lambda r: (r.week_index, r.day_index)):
            week = weeks.get(record.week_index)
            day = None
            if week is not None and 0 <= record.day_index < len(week.days):
                day = week.days[record.day_index]
            runs.append(SyncedRun(
                week_index=record.week_index,
                day_index=record.day_index,
                actual_distance_mi=record.actual_distance_mi,
                actual_pace_min_per_mi=record.actual_pace_min_per_mi,
                planned_distance_mi=(day.distance_mi or 0.0) if day else 0.0,
                planned_note=(day.note or "") if day else "",
                moving_time_sec=record.moving_time_sec,
                date=date_for_slot(start_date, record.week_index, record.day_index),
            ))
        return tuple(runs)

    @staticmethod
    def _days_since(last_sync: Optional[datetime], now: datetime) -> int:
        if last_sync is None:
            return config.NEVER_SYNCED_DAYS
        return max(0, int((now - last_sync).total_seconds() // 86400))
