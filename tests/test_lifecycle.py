"""Tests for the recommendation lifecycle and emission policy."""

from datetime import timedelta

from marathon_coach.analysis.lifecycle import LifecycleManager, should_run_analysis
from marathon_coach.db.repositories import (
    ANALYTICS_KEY,
    RECOMMENDATIONS_KEY,
    ListRepository,
    MemoryDocumentStore,
)
from marathon_coach.models import (
    AdaptivePreferences,
    AdaptiveRecommendation,
    AnalyticsAction,
    AnalyticsEntry,
    Frequency,
    Priority,
    RecommendationStatus,
    Scenario,
)

from conftest import NOW, make_input, make_recommendation


def make_manager(store=None):
    store = store or MemoryDocumentStore()
    return LifecycleManager(
        ListRepository(store, RECOMMENDATIONS_KEY, AdaptiveRecommendation.from_dict, lambda r: r.to_dict()),
        ListRepository(store, ANALYTICS_KEY, AnalyticsEntry.from_dict, lambda e: e.to_dict()),
    )


class TestShouldRunAnalysis:
    """Test the analysis rate floor."""

    def test_first_run(self):
        """Test first run."""
        assert should_run_analysis(AdaptivePreferences(), None, NOW)

    def test_daily_interval(self):
        """Test daily interval."""
        prefs = AdaptivePreferences(frequency=Frequency.DAILY)
        assert not should_run_analysis(prefs, NOW - timedelta(hours=10), NOW)
        assert should_run_analysis(prefs, NOW - timedelta(hours=20), NOW)

    def test_before_key_workouts_interval(self):
        """Test before key workouts interval."""
        prefs = AdaptivePreferences(frequency=Frequency.BEFORE_KEY_WORKOUTS)
        assert not should_run_analysis(prefs, NOW - timedelta(hours=19), NOW)
        assert should_run_analysis(prefs, NOW - timedelta(hours=21), NOW)

    def test_weekly_interval(self):
        """Test weekly interval."""
        prefs = AdaptivePreferences(frequency=Frequency.WEEKLY)
        assert not should_run_analysis(prefs, NOW - timedelta(hours=100), NOW)
        assert should_run_analysis(prefs, NOW - timedelta(hours=144), NOW)

    def test_force_bypasses_interval(self):
        """Test force bypasses interval."""
        assert should_run_analysis(AdaptivePreferences(), NOW - timedelta(hours=1), NOW, force=True)

    def test_disabled_wins_over_force(self):
        """Test disabled wins over force."""
        prefs = AdaptivePreferences(enabled=False)
        assert not should_run_analysis(prefs, None, NOW, force=True)


class TestEmissionPolicy:
    """Test candidate selection."""

    def setup_method(self):
        """Set up test fixtures."""
        self.manager = make_manager()

    def test_taper_lock(self):
        """Test that only race week recommendations emit in the final week."""
        candidates = [
            make_recommendation(Scenario.BEHIND_SCHEDULE),
            make_recommendation(Scenario.RACE_WEEK_OPTIMIZATION),
        ]
        selected = self.manager.select_for_emission(candidates, make_input(weeks_remaining=0), NOW)
        assert [r.scenario for r in selected] == [Scenario.RACE_WEEK_OPTIMIZATION]

    def test_active_scenario_is_not_reemitted(self):
        """Test active scenario is not reemitted."""
        self.manager.store([make_recommendation(Scenario.BEHIND_SCHEDULE, created_at=NOW - timedelta(days=1))])
        selected = self.manager.select_for_emission(
            [make_recommendation(Scenario.BEHIND_SCHEDULE)], make_input(), NOW
        )
        assert selected == []

    def test_duplicates_within_pass_are_dropped(self):
        """Test duplicates within pass are dropped."""
        candidates = [make_recommendation(Scenario.OVERTRAINING), make_recommendation(Scenario.OVERTRAINING)]
        selected = self.manager.select_for_emission(candidates, make_input(), NOW)
        assert len(selected) == 1

    def test_spacing_suppresses_non_high_priority(self):
        """Test spacing suppresses non high priority."""
        self.manager.store([make_recommendation(Scenario.OVERTRAINING, created_at=NOW - timedelta(hours=24))])
        candidates = [
            make_recommendation(Scenario.INCONSISTENT_EXECUTION, priority=Priority.MEDIUM),
            make_recommendation(Scenario.BEHIND_SCHEDULE, priority=Priority.HIGH),
        ]
        selected = self.manager.select_for_emission(candidates, make_input(), NOW)
        assert [r.scenario for r in selected] == [Scenario.BEHIND_SCHEDULE]

    def test_spacing_allows_after_72_hours(self):
        """Test spacing allows after 72 hours."""
        self.manager.store([make_recommendation(Scenario.OVERTRAINING, created_at=NOW - timedelta(hours=72))])
        candidates = [make_recommendation(Scenario.INCONSISTENT_EXECUTION, priority=Priority.MEDIUM)]
        assert len(self.manager.select_for_emission(candidates, make_input(), NOW)) == 1

    def test_active_cap(self):
        """Test active cap."""
        self.manager.store([
            make_recommendation(Scenario.OVERTRAINING, created_at=NOW - timedelta(days=4)),
            make_recommendation(Scenario.INCONSISTENT_EXECUTION, created_at=NOW - timedelta(days=4)),
        ])
        candidates = [
            make_recommendation(Scenario.BEHIND_SCHEDULE),
            make_recommendation(Scenario.RACE_WEEK_OPTIMIZATION),
        ]
        selected = self.manager.select_for_emission(candidates, make_input(weeks_remaining=1), NOW)
        assert [r.scenario for r in selected] == [Scenario.BEHIND_SCHEDULE]

    def test_expired_recommendations_do_not_count(self):
        """Test expired recommendations do not count."""
        self.manager.store([
            make_recommendation(Scenario.BEHIND_SCHEDULE, created_at=NOW - timedelta(days=6)),
        ])
        selected = self.manager.select_for_emission(
            [make_recommendation(Scenario.BEHIND_SCHEDULE)], make_input(), NOW
        )
        assert len(selected) == 1


class TestTransitions:
    """Test dismiss, accept and expire."""

    def setup_method(self):
        """Set up test fixtures."""
        self.manager = make_manager()
        self.rec = make_recommendation(Scenario.BEHIND_SCHEDULE, rec_id="rec-1")
        self.manager.store([self.rec])

    def test_dismiss(self):
        """Test dismissing an active recommendation."""
        assert self.manager.dismiss("rec-1", NOW)
        assert self.manager.find("rec-1").status is RecommendationStatus.DISMISSED
        assert self.manager.active(NOW) == []

        history = self.manager.history()
        assert len(history) == 1
        assert history[0].action is AnalyticsAction.DISMISSED
        assert history[0].scenario is Scenario.BEHIND_SCHEDULE

    def test_dismiss_is_terminal(self):
        """Test dismiss is terminal."""
        assert self.manager.dismiss("rec-1", NOW)
        assert not self.manager.dismiss("rec-1", NOW)
        assert not self.manager.mark_accepted("rec-1", "reduce_20", NOW)
        assert len(self.manager.history()) == 1

    def test_dismiss_unknown(self):
        """Test dismiss unknown."""
        assert not self.manager.dismiss("rec-missing", NOW)

    def test_non_dismissible(self):
        """Test non dismissible."""
        self.manager.store([make_recommendation(Scenario.OVERTRAINING, rec_id="rec-2", dismissible=False)])
        assert not self.manager.dismiss("rec-2", NOW)
        assert self.manager.find("rec-2").status is RecommendationStatus.ACTIVE

    def test_mark_accepted_records_option(self):
        """Test mark accepted records option."""
        assert self.manager.mark_accepted("rec-1", "reduce_20", NOW)
        rec = self.manager.find("rec-1")
        assert rec.status is RecommendationStatus.ACCEPTED
        assert rec.selected_option_key == "reduce_20"
        assert self.manager.history()[0].selected_option_key == "reduce_20"

    def test_expire_stale(self):
        """Test expire stale."""
        later = NOW + timedelta(days=6)
        assert self.manager.badge_count(later) == 0
        assert self.manager.expire_stale(later) == 1
        assert self.manager.expire_stale(later) == 0
        assert self.manager.find("rec-1").status is RecommendationStatus.EXPIRED
        assert [e.action for e in self.manager.history()] == [AnalyticsAction.EXPIRED]

    def test_expire_keeps_fresh(self):
        """Test expire keeps fresh."""
        assert self.manager.expire_stale(NOW + timedelta(days=1)) == 0
        assert self.manager.badge_count(NOW + timedelta(days=1)) == 1


class TestCaps:
    """Test log size limits."""

    def test_stored_recommendations_capped(self):
        """Test stored recommendations capped."""
        manager = make_manager()
        for i in range(55):
            manager.store([make_recommendation(rec_id=f"rec-{i}")])
        stored = manager.all()
        assert len(stored) == 50
        assert stored[0].id == "rec-5"

    def test_analytics_capped(self):
        """Test analytics capped."""
        manager = make_manager()
        recs = [make_recommendation(rec_id=f"rec-{i}") for i in range(205)]
        manager.recommendations.save(recs)
        for rec in recs:
            manager.dismiss(rec.id, NOW)
        history = manager.history()
        assert len(history) == 200
        assert history[0].recommendation_id == "rec-5"
