"""Database module for the marathon coach engine."""

from .database import Database, get_db, close_db
from .models import (
    TrainingPlan, PlanDayRecord, SyncedActivity, ScoreRecord, AuthToken, EngineDocument
)

__all__ = [
    "Database",
    "get_db",
    "close_db",
    "TrainingPlan",
    "PlanDayRecord",
    "SyncedActivity",
    "ScoreRecord",
    "AuthToken",
    "EngineDocument",
]
