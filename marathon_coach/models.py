"""Domain types for plans, analysis snapshots, recommendations and plan modifications."""

from dataclasses import dataclass, field, replace
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from .exceptions import InvalidTransitionError


class Scenario(Enum):
    """Coaching situations the scenario detector recognizes."""
    AHEAD_OF_SCHEDULE = "ahead_of_schedule"
    BEHIND_SCHEDULE = "behind_schedule"
    OVERTRAINING = "overtraining"
    INCONSISTENT_EXECUTION = "inconsistent_execution"
    RACE_WEEK_OPTIMIZATION = "race_week_optimization"


class RecommendationType(Enum):
    """Kind of adjustment a recommendation suggests."""
    UPGRADE = "upgrade"
    REDUCE = "reduce"
    REST = "rest"
    ADJUST_PACING = "adjust_pacing"
    TAPER = "taper"


class Priority(Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class RecommendationStatus(Enum):
    ACTIVE = "active"
    DISMISSED = "dismissed"
    ACCEPTED = "accepted"
    EXPIRED = "expired"


class ActionType(Enum):
    APPLY_MODIFICATION = "apply_modification"
    DISMISS = "dismiss"


class ModificationType(Enum):
    MILEAGE_INCREASE = "mileage_increase"
    MILEAGE_REDUCTION = "mileage_reduction"


class DayType(Enum):
    REST = "rest"
    RUN = "run"
    CROSS = "cross"
    RACE = "race"
    MARATHON = "marathon"


class AnalyticsAction(Enum):
    ACCEPTED = "accepted"
    DISMISSED = "dismissed"
    EXPIRED = "expired"


class Frequency(Enum):
    """How often a full analysis pass may run."""
    DAILY = "daily"
    WEEKLY = "weekly"
    BEFORE_KEY_WORKOUTS = "before_key_workouts"


class Aggressiveness(Enum):
    """User risk preference that reshapes scenario thresholds."""
    AGGRESSIVE = "aggressive"
    BALANCED = "balanced"
    CONSERVATIVE = "conservative"


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _parse_datetime(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def _format_miles(distance: float) -> str:
    return f"{distance:g}"


# ── Plan values ──────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class PlanDay:
    """A single scheduled day of a training plan."""
    day_type: DayType
    label: str
    distance_mi: Optional[float] = None
    note: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.day_type.value,
            "label": self.label,
            "distance_mi": self.distance_mi,
            "note": self.note,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PlanDay":
        return cls(
            day_type=DayType(data["type"]),
            label=data.get("label", ""),
            distance_mi=data.get("distance_mi"),
            note=data.get("note"),
        )


@dataclass(frozen=True)
class DayOverride:
    """Surgical replacement of one day within a week."""
    day_index: int
    day_type: DayType
    label: str
    distance_mi: Optional[float] = None
    note: Optional[str] = None

    def to_plan_day(self) -> PlanDay:
        return PlanDay(self.day_type, self.label, self.distance_mi, self.note)

    def to_dict(self) -> Dict[str, Any]:
        data = self.to_plan_day().to_dict()
        data["day_index"] = self.day_index
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DayOverride":
        return cls(
            day_index=int(data["day_index"]),
            day_type=DayType(data["type"]),
            label=data.get("label", ""),
            distance_mi=data.get("distance_mi"),
            note=data.get("note"),
        )


@dataclass(frozen=True)
class PlanWeek:
    """One week of a plan. Modifications produce new weeks rather than editing this one."""
    week_index: int
    days: Tuple[PlanDay, ...]

    def scaled(self, multiplier: Optional[float]) -> "PlanWeek":
        """Return a copy with every run day's distance scaled and its label regenerated."""
        if multiplier is None or multiplier == 1:
            return self

        days = []
        for day in self.days:
            if day.day_type is DayType.RUN and day.distance_mi is not None:
                distance = round(day.distance_mi * multiplier, 1)
                note = (day.note or "run").lower()
                days.append(replace(day, distance_mi=distance, label=f"{_format_miles(distance)} mi {note}"))
            else:
                days.append(day)
        return replace(self, days=tuple(days))

    def with_overrides(self, overrides: Tuple[DayOverride, ...]) -> "PlanWeek":
        """Return a copy with day overrides applied verbatim. Out-of-range days are ignored."""
        if not overrides:
            return self

        days = list(self.days)
        for override in overrides:
            if 0 <= override.day_index < len(days):
                days[override.day_index] = override.to_plan_day()
        return replace(self, days=tuple(days))

    @property
    def planned_mileage(self) -> float:
        return sum(
            day.distance_mi or 0.0
            for day in self.days
            if day.day_type in (DayType.RUN, DayType.RACE, DayType.MARATHON)
        )


@dataclass(frozen=True)
class ActivePlan:
    plan_id: str
    start_date: date
    total_weeks: int


# ── Collaborator records ─────────────────────────────────────────────────────

@dataclass(frozen=True)
class SyncRecord:
    """Per-day performance record produced by the activity sync pipeline."""
    week_index: int
    day_index: int
    actual_distance_mi: float
    actual_pace_min_per_mi: float
    moving_time_sec: int
    synced_at: datetime


@dataclass(frozen=True)
class WeeklyMileage:
    week_index: int
    planned_mi: float
    actual_mi: float


# ── Analysis snapshot ────────────────────────────────────────────────────────

@dataclass(frozen=True)
class DayStatus:
    """A plan day resolved against the calendar and the completion log."""
    week_index: int
    day_index: int
    day_type: DayType
    note: str
    completed: bool
    is_past: bool


@dataclass(frozen=True)
class SyncedRun:
    week_index: int
    day_index: int
    actual_distance_mi: float
    actual_pace_min_per_mi: float
    planned_distance_mi: float
    planned_note: str
    moving_time_sec: int
    date: date


@dataclass(frozen=True)
class TrainingAnalysisInput:
    """Immutable snapshot assembled once per analysis pass."""
    plan_id: str
    start_date: date
    total_weeks: int
    current_week_index: int
    current_day_index: int
    weeks_remaining: int
    recent_completion_rate: float
    overall_completion_rate: float
    weekly_mileage: Tuple[WeeklyMileage, ...] = ()
    synced_runs: Tuple[SyncedRun, ...] = ()
    day_log: Tuple[DayStatus, ...] = ()
    readiness_score: int = 0
    adherence_score: int = 0
    days_since_last_sync: int = 999
    source_connected: bool = False

    def mileage_for_week(self, week_index: int) -> Optional[WeeklyMileage]:
        for week in self.weekly_mileage:
            if week.week_index == week_index:
                return week
        return None


@dataclass(frozen=True)
class AnalysisStats:
    avg_long_run_pace: float
    avg_easy_pace: float
    avg_hard_pace: float
    weekly_mileage_change_pct: float
    consecutive_days_without_rest: int
    missed_key_workouts_last_2_weeks: int
    last_2_weeks_completion_rate: float
    easy_days_too_fast: bool
    hard_days_too_slow: bool


@dataclass(frozen=True)
class DetectedScenario:
    scenario: Scenario
    confidence: int
    triggers: Tuple[str, ...]


# ── Modifications ────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class WeekAdjustment:
    week_index: int
    mileage_multiplier: Optional[float] = None
    day_overrides: Tuple[DayOverride, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "week_index": self.week_index,
            "mileage_multiplier": self.mileage_multiplier,
            "day_overrides": [o.to_dict() for o in self.day_overrides],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WeekAdjustment":
        return cls(
            week_index=int(data["week_index"]),
            mileage_multiplier=data.get("mileage_multiplier"),
            day_overrides=tuple(DayOverride.from_dict(o) for o in data.get("day_overrides") or []),
        )


@dataclass(frozen=True)
class WeekSnapshot:
    """The week value as it was before a modification touched it."""
    week_index: int
    days: Tuple[PlanDay, ...]

    @classmethod
    def capture(cls, week: PlanWeek) -> "WeekSnapshot":
        return cls(week_index=week.week_index, days=week.days)

    def restore(self) -> PlanWeek:
        return PlanWeek(week_index=self.week_index, days=self.days)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "week_index": self.week_index,
            "days": [dict(day.to_dict(), day_index=i) for i, day in enumerate(self.days)],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WeekSnapshot":
        days = sorted(data.get("days") or [], key=lambda d: d.get("day_index", 0))
        return cls(week_index=int(data["week_index"]), days=tuple(PlanDay.from_dict(d) for d in days))


@dataclass(frozen=True)
class PlanModification:
    """A reversible mutation of future plan weeks.

    Built as a template by the recommendation builder; the modification engine
    assigns ``id``, ``applied_at``, ``plan_id`` and ``original_snapshot`` when
    it is applied.
    """
    description: str
    modification_type: ModificationType
    week_adjustments: Tuple[WeekAdjustment, ...]
    id: str = ""
    plan_id: str = ""
    applied_at: Optional[datetime] = None
    undone: bool = False
    original_snapshot: Tuple[WeekSnapshot, ...] = ()
    recommendation_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "plan_id": self.plan_id,
            "description": self.description,
            "modification_type": self.modification_type.value,
            "week_adjustments": [a.to_dict() for a in self.week_adjustments],
            "applied_at": _iso(self.applied_at),
            "undone": self.undone,
            "original_snapshot": [s.to_dict() for s in self.original_snapshot],
            "recommendation_id": self.recommendation_id,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PlanModification":
        return cls(
            id=data.get("id", ""),
            plan_id=data.get("plan_id", ""),
            description=data.get("description", ""),
            modification_type=ModificationType(data["modification_type"]),
            week_adjustments=tuple(WeekAdjustment.from_dict(a) for a in data.get("week_adjustments") or []),
            applied_at=_parse_datetime(data.get("applied_at")),
            undone=bool(data.get("undone", False)),
            original_snapshot=tuple(WeekSnapshot.from_dict(s) for s in data.get("original_snapshot") or []),
            recommendation_id=data.get("recommendation_id"),
        )


# ── Recommendations ──────────────────────────────────────────────────────────

@dataclass(frozen=True)
class RecommendationOption:
    key: str
    label: str
    description: str
    action_type: ActionType
    impact: Optional[str] = None
    action_payload: Optional[PlanModification] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "label": self.label,
            "description": self.description,
            "impact": self.impact,
            "action_type": self.action_type.value,
            "action_payload": self.action_payload.to_dict() if self.action_payload else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RecommendationOption":
        payload = data.get("action_payload")
        return cls(
            key=data["key"],
            label=data.get("label", ""),
            description=data.get("description", ""),
            impact=data.get("impact"),
            action_type=ActionType(data["action_type"]),
            action_payload=PlanModification.from_dict(payload) if payload else None,
        )


@dataclass(frozen=True)
class AdaptiveRecommendation:
    id: str
    scenario: Scenario
    type: RecommendationType
    priority: Priority
    title: str
    message: str
    reasoning: str
    options: Tuple[RecommendationOption, ...]
    dismissible: bool
    created_at: datetime
    expires_at: Optional[datetime] = None
    status: RecommendationStatus = RecommendationStatus.ACTIVE
    selected_option_key: Optional[str] = None

    def is_active(self, now: datetime) -> bool:
        """Active and not yet past its expiry (even if the sweep has not run)."""
        if self.status is not RecommendationStatus.ACTIVE:
            return False
        return self.expires_at is None or self.expires_at >= now

    def find_option(self, key: str) -> Optional[RecommendationOption]:
        for option in self.options:
            if option.key == key:
                return option
        return None

    def transition(
        self, status: RecommendationStatus, selected_option_key: Optional[str] = None
    ) -> "AdaptiveRecommendation":
        """Return this recommendation moved to a terminal status.

        Raises:
            InvalidTransitionError: if the recommendation already left ``active``
                or the target status is ``active``.
        """
        if self.status is not RecommendationStatus.ACTIVE:
            raise InvalidTransitionError(
                f"Recommendation {self.id} is {self.status.value}; cannot move to {status.value}"
            )
        if status is RecommendationStatus.ACTIVE:
            raise InvalidTransitionError(f"Recommendation {self.id} is already active")
        return replace(
            self,
            status=status,
            selected_option_key=selected_option_key or self.selected_option_key,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "scenario": self.scenario.value,
            "type": self.type.value,
            "priority": self.priority.value,
            "status": self.status.value,
            "title": self.title,
            "message": self.message,
            "reasoning": self.reasoning,
            "options": [o.to_dict() for o in self.options],
            "dismissible": self.dismissible,
            "created_at": _iso(self.created_at),
            "expires_at": _iso(self.expires_at),
            "selected_option_key": self.selected_option_key,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AdaptiveRecommendation":
        return cls(
            id=data["id"],
            scenario=Scenario(data["scenario"]),
            type=RecommendationType(data["type"]),
            priority=Priority(data["priority"]),
            status=RecommendationStatus(data.get("status", "active")),
            title=data.get("title", ""),
            message=data.get("message", ""),
            reasoning=data.get("reasoning", ""),
            options=tuple(RecommendationOption.from_dict(o) for o in data.get("options") or []),
            dismissible=bool(data.get("dismissible", True)),
            created_at=_parse_datetime(data["created_at"]),
            expires_at=_parse_datetime(data.get("expires_at")),
            selected_option_key=data.get("selected_option_key"),
        )


@dataclass(frozen=True)
class AnalyticsEntry:
    """Outcome of a recommendation, kept for tuning the detection rules."""
    recommendation_id: str
    scenario: Scenario
    type: RecommendationType
    action: AnalyticsAction
    timestamp: datetime
    selected_option_key: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "recommendation_id": self.recommendation_id,
            "scenario": self.scenario.value,
            "type": self.type.value,
            "action": self.action.value,
            "selected_option_key": self.selected_option_key,
            "timestamp": _iso(self.timestamp),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AnalyticsEntry":
        return cls(
            recommendation_id=data["recommendation_id"],
            scenario=Scenario(data["scenario"]),
            type=RecommendationType(data["type"]),
            action=AnalyticsAction(data["action"]),
            selected_option_key=data.get("selected_option_key"),
            timestamp=_parse_datetime(data["timestamp"]),
        )


@dataclass(frozen=True)
class AdaptivePreferences:
    enabled: bool = True
    frequency: Frequency = Frequency.DAILY
    aggressiveness: Aggressiveness = Aggressiveness.BALANCED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "enabled": self.enabled,
            "frequency": self.frequency.value,
            "aggressiveness": self.aggressiveness.value,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AdaptivePreferences":
        """Merge stored values over the defaults; unknown values fall back to the default."""
        defaults = cls()
        try:
            frequency = Frequency(data.get("frequency", defaults.frequency.value))
        except ValueError:
            frequency = defaults.frequency
        try:
            aggressiveness = Aggressiveness(data.get("aggressiveness", defaults.aggressiveness.value))
        except ValueError:
            aggressiveness = defaults.aggressiveness
        return cls(
            enabled=bool(data.get("enabled", defaults.enabled)),
            frequency=frequency,
            aggressiveness=aggressiveness,
        )


@dataclass(frozen=True)
class AnalysisResult:
    detected_scenarios: List[DetectedScenario]
    recommendations: List[AdaptiveRecommendation]
    stats: AnalysisStats
    input: Optional[TrainingAnalysisInput] = field(default=None, compare=False)
