"""Formatting helpers for coach-facing text."""


def format_pace(pace_min_per_mi: float) -> str:
    """Format a pace in minutes per mile as ``m:ss/mi``."""
    if not pace_min_per_mi or pace_min_per_mi <= 0:
        return "--"
    total_sec = int(round(pace_min_per_mi * 60))
    minutes, seconds = divmod(total_sec, 60)
    return f"{minutes}:{seconds:02d}/mi"


def format_pct(fraction: float) -> str:
    return f"{round(fraction * 100)}%"


def plural(count: int, word: str) -> str:
    return f"{count} {word}" if count == 1 else f"{count} {word}s"
