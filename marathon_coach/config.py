"""Configuration management for the marathon coach engine."""

import os
from pathlib import Path
from dotenv import load_dotenv

load_dotenv()


class Config:
    """Application configuration."""

    # Application
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
    USER_ID: str = os.getenv("USER_ID", "default")
    DATA_DIR: Path = Path(os.getenv("DATA_DIR", str(Path.home() / ".marathon_coach")))

    # Database
    DATABASE_URL: str = os.getenv("DATABASE_URL", f"sqlite:///{DATA_DIR / 'marathon_coach.db'}")

    # Analysis cadence (hours between full analysis passes)
    ANALYSIS_INTERVAL_HOURS = {
        "daily": float(os.getenv("ANALYSIS_INTERVAL_DAILY", "20")),
        "before_key_workouts": float(os.getenv("ANALYSIS_INTERVAL_KEY_WORKOUTS", "20")),
        "weekly": float(os.getenv("ANALYSIS_INTERVAL_WEEKLY", "144")),
    }

    # Emission policy
    EMISSION_SPACING_HOURS: float = float(os.getenv("EMISSION_SPACING_HOURS", "72"))
    MAX_ACTIVE_RECOMMENDATIONS: int = int(os.getenv("MAX_ACTIVE_RECOMMENDATIONS", "3"))
    MAX_STORED_RECOMMENDATIONS: int = int(os.getenv("MAX_STORED_RECOMMENDATIONS", "50"))
    ANALYTICS_HISTORY_LIMIT: int = int(os.getenv("ANALYTICS_HISTORY_LIMIT", "200"))

    # Minimum data before recommendations are meaningful
    MIN_SYNCED_RUNS: int = int(os.getenv("MIN_SYNCED_RUNS", "3"))
    MAX_DAYS_WITHOUT_SYNC: int = int(os.getenv("MAX_DAYS_WITHOUT_SYNC", "7"))
    NEVER_SYNCED_DAYS: int = 999

    # Hard safety ceiling: automatic mileage increases never exceed 10%
    MAX_MILEAGE_MULTIPLIER: float = 1.10

    # Qualifying confidence floor per scenario
    SCENARIO_FLOORS = {
        "ahead_of_schedule": 40,
        "behind_schedule": 40,
        "overtraining": 35,
        "inconsistent_execution": 35,
        "race_week_optimization": 50,
    }

    # Recommendation expiry horizon (days) per scenario
    EXPIRY_DAYS = {
        "overtraining": 3,
        "behind_schedule": 5,
        "ahead_of_schedule": 7,
        "inconsistent_execution": 7,
        "race_week_optimization": 14,
    }

    # Threshold scaling per aggressiveness profile
    AGGRESSIVENESS_FACTORS = {
        "aggressive": 0.8,
        "balanced": 1.0,
        "conservative": 1.2,
    }

    # Pace reference points (min/mi)
    LONG_RUN_STRONG_PACE: float = 9.5
    EASY_PACE_TOO_FAST: float = 8.5
    KEY_WORKOUT_NOTES = ("long", "tempo", "speed")

    @classmethod
    def get_analysis_interval(cls, frequency: str) -> float:
        """Get minimum hours between analysis passes for a frequency."""
        return cls.ANALYSIS_INTERVAL_HOURS.get(frequency, cls.ANALYSIS_INTERVAL_HOURS["daily"])

    @classmethod
    def get_aggressiveness_factor(cls, aggressiveness: str) -> float:
        """Get threshold multiplier for an aggressiveness profile."""
        return cls.AGGRESSIVENESS_FACTORS.get(aggressiveness, 1.0)

    @classmethod
    def get_scenario_floor(cls, scenario: str) -> int:
        """Get the minimum confidence a scenario needs to qualify."""
        return cls.SCENARIO_FLOORS.get(scenario, 40)

    @classmethod
    def get_expiry_days(cls, scenario: str) -> int:
        """Get how long a recommendation for a scenario stays active."""
        return cls.EXPIRY_DAYS.get(scenario, 7)

    @classmethod
    def ensure_dirs(cls) -> None:
        """Ensure required directories exist."""
        cls.DATA_DIR.mkdir(parents=True, exist_ok=True)


config = Config()
