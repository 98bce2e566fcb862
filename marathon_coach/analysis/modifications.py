"""Applying and undoing plan modifications.

This is the only writer of plan weeks. Every touched week is snapshotted
before it changes, so undo restores it exactly.
"""

import logging
import uuid
from dataclasses import replace
from datetime import datetime
from typing import List, Optional

from ..db.repositories import ListRepository
from ..models import ActionType, PlanModification, WeekSnapshot
from ..sources import PlanRepository, TrainingDataSource
from .builder import clamp_multiplier
from .lifecycle import LifecycleManager

logger = logging.getLogger(__name__)


class ModificationEngine:
    def __init__(
        self,
        modifications: ListRepository[PlanModification],
        plans: PlanRepository,
        lifecycle: LifecycleManager,
        source: TrainingDataSource,
    ):
        self.modifications = modifications
        self.plans = plans
        self.lifecycle = lifecycle
        self.source = source

    def all(self) -> List[PlanModification]:
        return self.modifications.load()

    def last_modification(self) -> Optional[PlanModification]:
        """Most recent modification that has not been undone."""
        for modification in reversed(self.all()):
            if not modification.undone:
                return modification
        return None

    def apply(self, recommendation_id: str, option_key: str, now: datetime) -> Optional[PlanModification]:
        """Apply an option's plan modification and accept its recommendation.

        Returns None for unknown, expired or inactive recommendations, unknown
        options, options that do not modify the plan, when there is no active
        plan or none of the target weeks exist, and when a plan write fails.
        A failed write restores every week already written.
        """
        recommendation = self.lifecycle.find(recommendation_id)
        if recommendation is None or not recommendation.is_active(now):
            logger.info(f"Cannot apply {option_key}: recommendation {recommendation_id} is not active")
            return None

        option = recommendation.find_option(option_key)
        if option is None or option.action_type is not ActionType.APPLY_MODIFICATION or option.action_payload is None:
            logger.info(f"Option {option_key} of {recommendation_id} does not modify the plan")
            return None

        plan = self.source.get_active_plan()
        if plan is None:
            logger.warning("No active plan; modification not applied")
            return None

        template = option.action_payload
        updates = []
        for adjustment in template.week_adjustments:
            week = self.plans.get_week(plan.plan_id, adjustment.week_index)
            if week is None:
                logger.warning(f"Plan {plan.plan_id} has no week {adjustment.week_index}; skipping")
                continue
            updated = week.scaled(clamp_multiplier(adjustment.mileage_multiplier)).with_overrides(
                adjustment.day_overrides
            )
            updates.append((WeekSnapshot.capture(week), updated))

        if not updates:
            logger.warning(f"Plan {plan.plan_id} has none of the target weeks; modification not applied")
            return None

        modification = replace(
            template,
            id=f"mod-{uuid.uuid4().hex}",
            plan_id=plan.plan_id,
            applied_at=now,
            undone=False,
            original_snapshot=tuple(snapshot for snapshot, _ in updates),
            recommendation_id=recommendation_id,
        )

        written = []
        try:
            for snapshot, updated in updates:
                self.plans.save_week(plan.plan_id, updated)
                written.append(snapshot)
            self.modifications.save(self.all() + [modification])
        except Exception as e:
            logger.error(f"Failed to apply {option_key} of {recommendation_id}; restoring plan: {e}")
            self._restore(plan.plan_id, written)
            return None

        self.lifecycle.mark_accepted(recommendation_id, option_key, now)

        logger.info(f"Applied {modification.id}: {modification.description}")
        return modification

    def _restore(self, plan_id: str, snapshots: List[WeekSnapshot]) -> bool:
        """Write snapshots back, newest first. False if any write failed."""
        restored = True
        for snapshot in reversed(snapshots):
            try:
                self.plans.save_week(plan_id, snapshot.restore())
            except Exception as e:
                logger.error(f"Could not restore week {snapshot.week_index} of plan {plan_id}: {e}")
                restored = False
        return restored

    def undo(self, modification_id: str) -> bool:
        """Restore every snapshotted week. False when unknown, already undone or a write fails."""
        log = self.all()
        for i, modification in enumerate(log):
            if modification.id != modification_id:
                continue
            if modification.undone:
                logger.info(f"Modification {modification_id} is already undone")
                return False

            if not self._restore(modification.plan_id, list(modification.original_snapshot)):
                logger.error(f"Undo of {modification_id} incomplete; it stays applied and can be retried")
                return False
            log[i] = replace(modification, undone=True)
            self.modifications.save(log)
            logger.info(f"Undid {modification_id}")
            return True

        logger.info(f"Unknown modification {modification_id}")
        return False
