"""Database models for plans, synced runs, scores and engine state."""

from datetime import datetime
from sqlalchemy import (
    Column, Integer, String, Float, Date, DateTime, Boolean, Text, UniqueConstraint
)
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class TrainingPlan(Base):
    """A training plan the runner has picked."""

    __tablename__ = "training_plans"

    id = Column(Integer, primary_key=True)
    user_id = Column(String(50), default="default")
    plan_id = Column(String(100), nullable=False)
    name = Column(String(255))
    start_date = Column(Date, nullable=False)
    total_weeks = Column(Integer, nullable=False)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (UniqueConstraint("user_id", "plan_id", name="uq_plan_user"),)

    def __repr__(self):
        return f"<TrainingPlan(plan_id={self.plan_id}, start={self.start_date}, weeks={self.total_weeks})>"


class PlanDayRecord(Base):
    """One scheduled day; type/label/distance/note are rewritten by plan modifications."""

    __tablename__ = "plan_days"

    id = Column(Integer, primary_key=True)
    user_id = Column(String(50), default="default")
    plan_id = Column(String(100), nullable=False)
    week_index = Column(Integer, nullable=False)  # 0-based
    day_index = Column(Integer, nullable=False)  # 0-based within the week
    day_type = Column(String(20), nullable=False)  # rest, run, cross, race, marathon
    label = Column(String(255))
    distance_mi = Column(Float)
    note = Column(String(100))  # Easy, Long, Tempo, Speed, ...
    completed = Column(Boolean, default=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("user_id", "plan_id", "week_index", "day_index", name="uq_plan_day"),
    )

    def __repr__(self):
        return f"<PlanDayRecord(plan={self.plan_id}, w={self.week_index}, d={self.day_index}, label={self.label})>"


class SyncedActivity(Base):
    """An activity matched to a plan day by the sync pipeline."""

    __tablename__ = "synced_activities"

    id = Column(Integer, primary_key=True)
    user_id = Column(String(50), default="default")
    plan_id = Column(String(100), nullable=False)
    week_index = Column(Integer, nullable=False)
    day_index = Column(Integer, nullable=False)
    external_id = Column(String(50))  # Activity id at the source
    actual_distance_mi = Column(Float, default=0.0)
    actual_pace_min_per_mi = Column(Float, default=0.0)
    moving_time_sec = Column(Integer, default=0)
    synced_at = Column(DateTime, nullable=False)
    raw_data = Column(Text)  # JSON string for additional data
    created_at = Column(DateTime, default=datetime.utcnow)

    def __repr__(self):
        return f"<SyncedActivity(plan={self.plan_id}, w={self.week_index}, d={self.day_index}, mi={self.actual_distance_mi})>"


class ScoreRecord(Base):
    """Readiness and adherence scores produced by the calculators."""

    __tablename__ = "scores"

    id = Column(Integer, primary_key=True)
    user_id = Column(String(50), default="default")
    kind = Column(String(20), nullable=False)  # readiness, adherence
    score = Column(Integer, nullable=False)  # 0-100
    recorded_at = Column(DateTime, default=datetime.utcnow)

    def __repr__(self):
        return f"<ScoreRecord(kind={self.kind}, score={self.score}, at={self.recorded_at})>"


class AuthToken(Base):
    """OAuth token of the activity source. A stored token means the source is connected."""

    __tablename__ = "auth_tokens"

    id = Column(Integer, primary_key=True)
    user_id = Column(String(50), unique=True, nullable=False)
    provider = Column(String(50), default="strava")
    access_token = Column(Text, nullable=False)
    refresh_token = Column(Text, nullable=False)
    expires_at = Column(Integer, nullable=False)  # Unix timestamp
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f"<AuthToken(user_id={self.user_id}, provider={self.provider})>"


class EngineDocument(Base):
    """Key-value document holding one piece of engine state for one user profile."""

    __tablename__ = "engine_documents"

    id = Column(Integer, primary_key=True)
    user_id = Column(String(50), default="default", nullable=False)
    key = Column(String(100), nullable=False)  # recommendations, modifications, analytics, ...
    payload = Column(Text, nullable=False)  # JSON
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (UniqueConstraint("user_id", "key", name="uq_document_user_key"),)

    def __repr__(self):
        return f"<EngineDocument(user_id={self.user_id}, key={self.key})>"
