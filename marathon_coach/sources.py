"""Collaborator interfaces the engine reads from, and their database implementation.

The engine never computes sync matches, readiness or adherence itself; it
reads them through ``TrainingDataSource``. Plan days are read through the
same source and written back only through ``PlanRepository``.
"""

import json
import logging
from abc import ABC, abstractmethod
from collections import defaultdict
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional, Set, Tuple

from .db import Database, TrainingPlan, PlanDayRecord, SyncedActivity, ScoreRecord, AuthToken
from .models import ActivePlan, DayType, PlanDay, PlanWeek, SyncRecord, WeeklyMileage

logger = logging.getLogger(__name__)


class TrainingDataSource(ABC):
    """Read-only view of the runner's plan, synced activities and scores."""

    @abstractmethod
    def get_active_plan(self) -> Optional[ActivePlan]:
        """Return the plan the runner is following, or None."""

    @abstractmethod
    def get_plan_weeks(self, plan_id: str) -> List[PlanWeek]:
        """Return the plan's weeks ordered by week index."""

    @abstractmethod
    def get_sync_records(self, plan_id: str) -> List[SyncRecord]:
        """Return per-day performance records matched to the plan."""

    @abstractmethod
    def get_completed_days(self, plan_id: str) -> Set[Tuple[int, int]]:
        """Return (week_index, day_index) pairs marked completed."""

    @abstractmethod
    def get_weekly_mileage(self, plan_id: str) -> List[WeeklyMileage]:
        """Return planned vs actual mileage per week."""

    @abstractmethod
    def get_readiness_score(self) -> Optional[int]:
        """Latest race readiness score (0-100)."""

    @abstractmethod
    def get_adherence_score(self) -> Optional[int]:
        """Latest training adherence score (0-100)."""

    @abstractmethod
    def is_source_connected(self) -> bool:
        """Whether the activity source is currently connected."""

    @abstractmethod
    def get_last_sync_time(self) -> Optional[datetime]:
        """When activities were last synced."""


class PlanRepository(ABC):
    """Write access to plan weeks, used only by the modification engine."""

    @abstractmethod
    def get_week(self, plan_id: str, week_index: int) -> Optional[PlanWeek]:
        """Return the current value of one week, or None if the plan has no such week."""

    @abstractmethod
    def save_week(self, plan_id: str, week: PlanWeek) -> None:
        """Replace every day of ``week`` in storage."""


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite drops tzinfo; stored datetimes are UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _to_plan_day(row: PlanDayRecord) -> PlanDay:
    return PlanDay(
        day_type=DayType(row.day_type),
        label=row.label or "",
        distance_mi=row.distance_mi,
        note=row.note,
    )


class DatabaseTrainingSource(TrainingDataSource, PlanRepository):
    """Training data and plan storage backed by the SQLAlchemy tables."""

    def __init__(self, db: Database, user_id: str = "default"):
        self.db = db
        self.user_id = user_id

    def get_active_plan(self) -> Optional[ActivePlan]:
        with self.db.get_session() as session:
            plan = (
                session.query(TrainingPlan)
                .filter_by(user_id=self.user_id, is_active=True)
                .order_by(TrainingPlan.updated_at.desc())
                .first()
            )
            if not plan:
                return None
            return ActivePlan(plan_id=plan.plan_id, start_date=plan.start_date, total_weeks=plan.total_weeks)

    def _day_rows(self, session, plan_id: str, week_index: Optional[int] = None):
        query = session.query(PlanDayRecord).filter_by(user_id=self.user_id, plan_id=plan_id)
        if week_index is not None:
            query = query.filter_by(week_index=week_index)
        return query.order_by(PlanDayRecord.week_index, PlanDayRecord.day_index).all()

    def get_plan_weeks(self, plan_id: str) -> List[PlanWeek]:
        with self.db.get_session() as session:
            grouped: Dict[int, List[PlanDay]] = defaultdict(list)
            for row in self._day_rows(session, plan_id):
                grouped[row.week_index].append(_to_plan_day(row))
            return [PlanWeek(week_index=w, days=tuple(days)) for w, days in sorted(grouped.items())]

    def get_week(self, plan_id: str, week_index: int) -> Optional[PlanWeek]:
        with self.db.get_session() as session:
            rows = self._day_rows(session, plan_id, week_index)
            if not rows:
                return None
            return PlanWeek(week_index=week_index, days=tuple(_to_plan_day(r) for r in rows))

    def save_week(self, plan_id: str, week: PlanWeek) -> None:
        with self.db.get_session() as session:
            existing = {r.day_index: r for r in self._day_rows(session, plan_id, week.week_index)}
            for day_index, day in enumerate(week.days):
                row = existing.get(day_index)
                if row is None:
                    row = PlanDayRecord(
                        user_id=self.user_id,
                        plan_id=plan_id,
                        week_index=week.week_index,
                        day_index=day_index,
                    )
                    session.add(row)
                row.day_type = day.day_type.value
                row.label = day.label
                row.distance_mi = day.distance_mi
                row.note = day.note

    def get_sync_records(self, plan_id: str) -> List[SyncRecord]:
        with self.db.get_session() as session:
            rows = (
                session.query(SyncedActivity)
                .filter_by(user_id=self.user_id, plan_id=plan_id)
                .order_by(SyncedActivity.week_index, SyncedActivity.day_index)
                .all()
            )
            return [
                SyncRecord(
                    week_index=r.week_index,
                    day_index=r.day_index,
                    actual_distance_mi=r.actual_distance_mi or 0.0,
                    actual_pace_min_per_mi=r.actual_pace_min_per_mi or 0.0,
                    moving_time_sec=r.moving_time_sec or 0,
                    synced_at=_as_utc(r.synced_at),
                )
                for r in rows
            ]

    def get_completed_days(self, plan_id: str) -> Set[Tuple[int, int]]:
        with self.db.get_session() as session:
            completed = {
                (r.week_index, r.day_index)
                for r in session.query(PlanDayRecord)
                .filter_by(user_id=self.user_id, plan_id=plan_id, completed=True)
                .all()
            }
            # A synced activity completes its plan day
            completed.update(
                (r.week_index, r.day_index)
                for r in session.query(SyncedActivity).filter_by(user_id=self.user_id, plan_id=plan_id).all()
            )
            return completed

    def get_weekly_mileage(self, plan_id: str) -> List[WeeklyMileage]:
        planned = {week.week_index: week.planned_mileage for week in self.get_plan_weeks(plan_id)}
        actual: Dict[int, float] = defaultdict(float)
        for record in self.get_sync_records(plan_id):
            actual[record.week_index] += record.actual_distance_mi

        return [
            WeeklyMileage(
                week_index=w,
                planned_mi=round(planned.get(w, 0.0), 1),
                actual_mi=round(actual.get(w, 0.0), 1),
            )
            for w in sorted(set(planned) | set(actual))
        ]

    def _latest_score(self, kind: str) -> Optional[int]:
        with self.db.get_session() as session:
            record = (
                session.query(ScoreRecord)
                .filter_by(user_id=self.user_id, kind=kind)
                .order_by(ScoreRecord.recorded_at.desc(), ScoreRecord.id.desc())
                .first()
            )
            return record.score if record else None

    def get_readiness_score(self) -> Optional[int]:
        return self._latest_score("readiness")

    def get_adherence_score(self) -> Optional[int]:
        return self._latest_score("adherence")

    def is_source_connected(self) -> bool:
        with self.db.get_session() as session:
            return session.query(AuthToken).filter_by(user_id=self.user_id).first() is not None

    def get_last_sync_time(self) -> Optional[datetime]:
        with self.db.get_session() as session:
            latest = (
                session.query(SyncedActivity)
                .filter_by(user_id=self.user_id)
                .order_by(SyncedActivity.synced_at.desc())
                .first()
            )
            return _as_utc(latest.synced_at) if latest else None


def import_plan_snapshot(db: Database, snapshot: Dict[str, Any], user_id: str = "default") -> str:
    """Load a plan, its completions, synced runs and scores from a JSON snapshot.

    The snapshot mirrors what the sync pipeline and calculators would have
    written::

        {
          "plan": {"id": "...", "name": "...", "start_date": "YYYY-MM-DD",
                   "weeks": [[{"type": "run", "label": "...", "distance_mi": 4, "note": "Easy"}, ...], ...]},
          "completed": [[week, day], ...],
          "runs": [{"week_index": 0, "day_index": 1, "distance_mi": 4.1,
                    "pace_min_per_mi": 9.8, "moving_time_sec": 2400, "synced_at": "..."}],
          "scores": {"readiness": 82, "adherence": 90},
          "source_connected": true
        }

    The imported plan becomes the active plan. Returns its id.
    """
    plan_data = snapshot["plan"]
    plan_id = plan_data["id"]
    weeks = plan_data.get("weeks") or []
    completed = {tuple(pair) for pair in snapshot.get("completed") or []}

    with db.get_session() as session:
        session.query(TrainingPlan).filter_by(user_id=user_id).update({"is_active": False})
        session.query(PlanDayRecord).filter_by(user_id=user_id, plan_id=plan_id).delete()
        session.query(SyncedActivity).filter_by(user_id=user_id, plan_id=plan_id).delete()

        plan = session.query(TrainingPlan).filter_by(user_id=user_id, plan_id=plan_id).first()
        if plan is None:
            plan = TrainingPlan(user_id=user_id, plan_id=plan_id)
            session.add(plan)
        plan.name = plan_data.get("name", plan_id)
        plan.start_date = date.fromisoformat(plan_data["start_date"])
        plan.total_weeks = len(weeks)
        plan.is_active = True

        for week_index, days in enumerate(weeks):
            for day_index, day in enumerate(days):
                session.add(PlanDayRecord(
                    user_id=user_id,
                    plan_id=plan_id,
                    week_index=week_index,
                    day_index=day_index,
                    day_type=DayType(day["type"]).value,
                    label=day.get("label", ""),
                    distance_mi=day.get("distance_mi"),
                    note=day.get("note"),
                    completed=(week_index, day_index) in completed,
                ))

        for run in snapshot.get("runs") or []:
            synced_at = _as_utc(datetime.fromisoformat(run["synced_at"]))
            session.add(SyncedActivity(
                user_id=user_id,
                plan_id=plan_id,
                week_index=int(run["week_index"]),
                day_index=int(run["day_index"]),
                external_id=str(run.get("external_id", "")),
                actual_distance_mi=float(run.get("distance_mi", 0.0)),
                actual_pace_min_per_mi=float(run.get("pace_min_per_mi", 0.0)),
                moving_time_sec=int(run.get("moving_time_sec", 0)),
                synced_at=synced_at.replace(tzinfo=None),
                raw_data=json.dumps(run),
            ))

        for kind, score in (snapshot.get("scores") or {}).items():
            session.add(ScoreRecord(user_id=user_id, kind=kind, score=int(score)))

        if snapshot.get("source_connected"):
            if session.query(AuthToken).filter_by(user_id=user_id).first() is None:
                session.add(AuthToken(
                    user_id=user_id,
                    access_token="imported",
                    refresh_token="imported",
                    expires_at=0,
                ))

    logger.info(f"Imported plan {plan_id} with {len(weeks)} weeks for user {user_id}")
    return plan_id
