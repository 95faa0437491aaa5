"""Acuity scoring from triage vital signs."""

from app.scoring.mews import AcuityResult, AcuityScorer, VitalSigns

__all__ = [
    "AcuityScorer",
    "AcuityResult",
    "VitalSigns",
]
