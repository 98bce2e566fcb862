"""End-to-end tests for the adaptive training engine."""

from datetime import timedelta

from marathon_coach.analysis.engine import AdaptiveTrainingEngine
from marathon_coach.db.repositories import MemoryDocumentStore
from marathon_coach.models import (
    Aggressiveness,
    AnalyticsAction,
    Frequency,
    Priority,
    RecommendationStatus,
    Scenario,
    SyncRecord,
)

from conftest import NOW, build_source

# Two missed key workouts last week, one this week, 4 of 7 recent days done
BEHIND_EXTRA = [(9, 1), (9, 3), (9, 6), (10, 1)]


class Clock:
    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)


def make_engine(source, store=None, clock=None):
    return AdaptiveTrainingEngine(source, source, store or MemoryDocumentStore(), clock=clock or Clock(NOW))


class TestAnalyze:
    """Test full analysis passes."""

    def setup_method(self):
        """Set up test fixtures."""
        self.source = build_source(completed_extra=BEHIND_EXTRA)
        self.clock = Clock(NOW)
        self.engine = make_engine(self.source, clock=self.clock)

    def test_behind_schedule_end_to_end(self):
        """Test behind schedule end to end."""
        result = self.engine.analyze()

        assert [s.scenario for s in result.detected_scenarios] == [Scenario.BEHIND_SCHEDULE]
        assert result.detected_scenarios[0].confidence >= 65
        assert result.stats.missed_key_workouts_last_2_weeks == 3

        rec = result.recommendations[0]
        assert rec.priority is Priority.HIGH
        assert rec.expires_at == NOW + timedelta(days=5)
        payload = rec.find_option("reduce_20").action_payload
        assert [a.week_index for a in payload.week_adjustments] == [11, 12]
        assert all(a.mileage_multiplier == 0.80 for a in payload.week_adjustments)

        assert self.engine.get_recommendation_badge_count() == 1

    def test_rate_limited(self):
        """Test that a second pass within the interval is skipped."""
        assert self.engine.analyze() is not None
        self.clock.advance(hours=2)
        assert self.engine.analyze() is None

    def test_force_bypasses_rate_limit_but_not_dedup(self):
        """Test force bypasses rate limit but not dedup."""
        self.engine.analyze()
        self.clock.advance(hours=2)
        result = self.engine.analyze(force=True)
        assert result is not None
        assert result.recommendations == []
        assert len(self.engine.get_active_recommendations()) == 1

    def test_disabled_preferences(self):
        """Test disabled preferences."""
        self.engine.set_preferences(enabled=False)
        assert self.engine.analyze(force=True) is None
        assert self.engine.get_all_recommendations() == []

    def test_data_floor_ignores_force(self):
        """Test data floor ignores force."""
        source = build_source(full_weeks=0, last_sync=None)
        engine = make_engine(source)
        assert engine.analyze(force=True) is None
        assert engine.get_all_recommendations() == []

    def test_no_active_plan(self):
        """Test no active plan."""
        self.source.plan = None
        assert self.engine.analyze(force=True) is None
        assert self.engine.generate_recommendations() == []

    def test_taper_lock(self):
        """Test that only race week recommendations emit in the final week."""
        engine = make_engine(build_source(total_weeks=11, completed_extra=BEHIND_EXTRA))
        result = engine.analyze()

        detected = {s.scenario for s in result.detected_scenarios}
        assert Scenario.BEHIND_SCHEDULE in detected
        assert [r.scenario for r in result.recommendations] == [Scenario.RACE_WEEK_OPTIMIZATION]

    def test_aggressiveness_preference(self):
        """Test aggressiveness preference."""
        self.engine.set_preferences(aggressiveness=Aggressiveness.AGGRESSIVE)
        result = self.engine.analyze()
        assert result.detected_scenarios == []

    def test_generate_recommendations(self):
        """Test generate recommendations."""
        recs = self.engine.generate_recommendations()
        assert [r.scenario for r in recs] == [Scenario.BEHIND_SCHEDULE]

    def test_active_cap_holds_across_passes(self):
        """Test active cap holds across passes."""
        for _ in range(5):
            self.engine.analyze(force=True)
            self.clock.advance(days=1)
            assert self.engine.get_recommendation_badge_count() <= 3


class TestOvertraining:
    """Test the overtraining path."""

    def setup_method(self):
        """Set up test fixtures."""
        # An extra 8 mi on this week's cross-training day lifts mileage 35% over last week
        self.source = build_source(
            full_weeks=10,
            current_day=6,
            completed_extra=[(10, 1), (10, 2), (10, 3), (10, 5), (10, 6)],
        )
        record = self.source.records[-1]
        self.source.records.append(SyncRecord(
            week_index=10, day_index=6, actual_distance_mi=8.0, actual_pace_min_per_mi=10.0,
            moving_time_sec=4800, synced_at=record.synced_at,
        ))
        self.engine = make_engine(self.source)

    def test_non_dismissible_recommendation(self):
        """Test that overtraining stays active when dismissed."""
        result = self.engine.analyze()
        scenarios = {s.scenario: s for s in result.detected_scenarios}
        assert Scenario.OVERTRAINING in scenarios

        rec = next(r for r in result.recommendations if r.scenario is Scenario.OVERTRAINING)
        assert not rec.dismissible
        assert rec.priority is Priority.HIGH
        assert not self.engine.dismiss(rec.id)
        assert rec.id in {r.id for r in self.engine.get_active_recommendations()}


class TestAcceptAndUndo:
    """Test acting on recommendations."""

    def setup_method(self):
        """Set up test fixtures."""
        self.source = build_source(completed_extra=BEHIND_EXTRA)
        self.engine = make_engine(self.source)
        self.rec = self.engine.analyze().recommendations[0]
        self.original = dict(self.source.weeks)

    def test_accept_modification(self):
        """Test accept modification."""
        modification = self.engine.accept(self.rec.id, "reduce_20")

        assert modification is not None
        assert self.source.weeks[11].days[5].distance_mi == 8.0
        assert self.engine.get_last_modification().id == modification.id
        assert self.engine.get_active_recommendations() == []

        history = self.engine.get_analytics_history()
        assert history[-1].action is AnalyticsAction.ACCEPTED
        assert history[-1].selected_option_key == "reduce_20"

    def test_accept_dismiss_option(self):
        """Test accept dismiss option."""
        assert self.engine.accept(self.rec.id, "keep_going") is None
        rec = self.engine.get_all_recommendations()[0]
        assert rec.status is RecommendationStatus.DISMISSED
        assert rec.selected_option_key == "keep_going"
        assert self.source.saved == []

    def test_accept_unknown(self):
        """Test accept unknown."""
        assert self.engine.accept("rec-missing", "reduce_20") is None
        assert self.engine.accept(self.rec.id, "nope") is None

    def test_accept_twice(self):
        """Test accept twice."""
        assert self.engine.accept(self.rec.id, "reduce_20") is not None
        assert self.engine.accept(self.rec.id, "add_recovery") is None
        assert len(self.engine.get_modifications()) == 1

    def test_undo_last(self):
        """Test undo last."""
        self.engine.accept(self.rec.id, "reduce_20")
        assert self.engine.undo_last()
        assert self.source.weeks == self.original
        assert not self.engine.undo_last()

    def test_undo_by_id(self):
        """Test undo by id."""
        modification = self.engine.accept(self.rec.id, "add_recovery")
        assert self.source.weeks[11].days[1].distance_mi == 2.0
        assert self.engine.undo(modification.id)
        assert not self.engine.undo(modification.id)
        assert self.source.weeks == self.original

    def test_dismiss(self):
        """Test dismissing an active recommendation."""
        assert self.engine.dismiss(self.rec.id)
        assert not self.engine.dismiss(self.rec.id)
        assert self.engine.get_recommendation_badge_count() == 0


class TestExpiryAndPreferences:
    """Test the expiry sweep and preference storage."""

    def test_expire_stale(self):
        """Test expire stale."""
        clock = Clock(NOW)
        engine = make_engine(build_source(completed_extra=BEHIND_EXTRA), clock=clock)
        engine.analyze()

        clock.advance(days=6)
        assert engine.get_active_recommendations() == []
        assert engine.expire_stale() == 1
        assert engine.expire_stale() == 0
        assert engine.get_analytics_history()[-1].action is AnalyticsAction.EXPIRED

    def test_accept_after_expiry_before_sweep(self):
        """Test that an expired recommendation cannot be accepted or answered before the sweep."""
        clock = Clock(NOW)
        source = build_source(completed_extra=BEHIND_EXTRA)
        engine = make_engine(source, clock=clock)
        rec = engine.analyze().recommendations[0]
        original = dict(source.weeks)

        clock.advance(days=6)
        assert engine.accept(rec.id, "reduce_20") is None
        assert engine.accept(rec.id, "keep_going") is None
        assert source.weeks == original
        assert engine.get_modifications() == []
        assert engine.get_all_recommendations()[0].status is RecommendationStatus.ACTIVE

    def test_preferences_round_trip(self):
        """Test preferences round trip."""
        engine = make_engine(build_source())
        prefs = engine.set_preferences(frequency=Frequency.WEEKLY)
        assert prefs.frequency is Frequency.WEEKLY
        assert prefs.enabled

        prefs = engine.set_preferences(enabled=False)
        assert prefs.frequency is Frequency.WEEKLY
        assert engine.get_preferences() == prefs

    def test_state_shared_through_store(self):
        """Test state shared through store."""
        store = MemoryDocumentStore()
        source = build_source(completed_extra=BEHIND_EXTRA)
        make_engine(source, store=store).analyze()
        assert make_engine(source, store=store).get_recommendation_badge_count() == 1
