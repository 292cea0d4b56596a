"""SLA Evaluator - expected vs actual time for resolution events"""
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict

from ..config.settings import Settings, get_settings
from ..domain.enums import DurationUnit, SlaStatus
from ..domain.models import Sla, WorkflowStep


class SlaEvaluation(BaseModel):
    """Write-once outcome stored on a WorkflowResolution"""
    model_config = ConfigDict(frozen=True)

    expected_sla: float
    actual_time_taken: float
    sla_status: SlaStatus


class SlaEvaluator:
    """
    Classify how long a step (or ticket) took against its SLA

    - missed: took longer than expected
    - exceeded: finished in under `sla_exceeded_ratio` of the expected time
    - met: anything in between

    Under the default policy only the first workflow step is classified;
    later steps report `met` because their start time is not tracked
    independently. `per_step_sla_tracking` classifies every step.
    """

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()

    def expected_days(self, sla: Optional[Sla]) -> float:
        """Expected duration in calendar days"""
        if sla is None:
            return self.settings.default_sla_days
        if sla.unit == DurationUnit.DAYS:
            return float(sla.value)
        if sla.unit == DurationUnit.HOURS:
            return sla.value / 24
        return sla.value * 7

    @staticmethod
    def step_sla(step: Optional[WorkflowStep]) -> Optional[Sla]:
        """SLA of a single workflow step"""
        if step is None:
            return None
        return Sla(value=step.estimated_duration or 1, unit=step.duration_unit)

    @staticmethod
    def elapsed_days(started_at: datetime, now: datetime) -> float:
        return (now - started_at).total_seconds() / 86400

    def classify(self, expected: float, elapsed: float, step_number: int = 1) -> SlaStatus:
        if step_number > 1 and not self.settings.per_step_sla_tracking:
            return SlaStatus.MET
        if elapsed > expected:
            return SlaStatus.MISSED
        if elapsed < self.settings.sla_exceeded_ratio * expected:
            return SlaStatus.EXCEEDED
        return SlaStatus.MET

    def evaluate(
        self,
        sla: Optional[Sla],
        started_at: datetime,
        now: datetime,
        step_number: int = 1
    ) -> SlaEvaluation:
        """Evaluate one resolution event"""
        expected = self.expected_days(sla)
        elapsed = self.elapsed_days(started_at, now)
        return SlaEvaluation(
            expected_sla=round(expected, 2),
            actual_time_taken=round(elapsed, 2),
            sla_status=self.classify(expected, elapsed, step_number)
        )
