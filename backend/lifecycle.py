"""Per-template recurrence lifecycle: clone ahead or refresh in place."""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError

from backend.materializer import DEFAULT_LOOKAHEAD_DAYS, InstanceMaterializer, MaterializeResult
from backend.recurrence import compute_next_occurrence, start_of_day
from models import db

logger = logging.getLogger(__name__)


@dataclass
class RollForwardResult:
    template_id: int
    advanced: bool = False
    new_anchor: Optional[datetime] = None
    reason: Optional[str] = None


class LifecycleController:
    def __init__(self, adapter, materializer=None, clock=None):
        self.adapter = adapter
        self.clock = clock or datetime.now
        self.materializer = materializer or InstanceMaterializer(adapter, clock=self.clock)

    def process_template(self, template, lookahead_days=DEFAULT_LOOKAHEAD_DAYS):
        """Run whichever lifecycle step the template's mode calls for."""
        if template.recurrence_mode == 'refresh':
            return self.roll_forward(template)
        if template.recurrence_mode == 'clone':
            return self.materializer.materialize_future_instances(template.id, lookahead_days)
        return MaterializeResult(template_id=template.id, reason='unknown_mode')

    def roll_forward(self, template) -> RollForwardResult:
        """
        Move an overdue refresh-mode template to its next occurrence.

        Advances at most one period per call; a template several periods
        behind catches up over successive sweeps.
        """
        result = RollForwardResult(template_id=template.id)
        if not template.is_recurring or template.recurrence_mode != 'refresh':
            result.reason = 'not_refresh_template'
            return result

        anchor = self.adapter.anchor_of(template)
        if anchor is None or anchor >= start_of_day(self.clock()):
            result.reason = 'not_overdue'
            return result
        if not self.adapter.is_open(template):
            result.reason = 'closed'
            return result

        next_occurrence = compute_next_occurrence(anchor, template.recurrence_config())
        if next_occurrence is None:
            result.reason = 'series_ended'
            return result

        self.adapter.set_anchor(template, next_occurrence)
        self.adapter.reset_for_next_occurrence(template)
        try:
            db.session.commit()
        except SQLAlchemyError:
            db.session.rollback()
            raise

        result.advanced = True
        result.new_anchor = next_occurrence
        logger.info("Rolled %s template %s forward to %s", self.adapter.kind, template.id, next_occurrence.isoformat())
        return result
