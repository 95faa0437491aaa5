"""Wait-time estimation for new queue entries."""

from app.queueing.models import Urgency

# Per-urgency (floor, ceiling) in minutes. The ceiling keeps displayed
# estimates sane when a department backs up.
WAIT_BOUNDS: dict[Urgency, tuple[int, int]] = {
    Urgency.RED: (0, 30),
    Urgency.YELLOW: (5, 120),
    Urgency.GREEN: (15, 240),
}


class WaitTimeEstimator:
    """Predicts minutes until a new entry is seen."""

    def __init__(self, bounds: dict[Urgency, tuple[int, int]] | None = None) -> None:
        self.bounds = bounds or WAIT_BOUNDS

    def estimate(
        self,
        urgency: Urgency,
        count_ahead_or_equal: int,
        avg_treatment_minutes: int,
    ) -> int:
        """Estimate wait minutes.

        Args:
            urgency: Urgency of the new entry
            count_ahead_or_equal: WAITING entries at least as urgent as this one
            avg_treatment_minutes: Department average treatment time

        Returns:
            Estimated minutes, clamped to the urgency's bounds
        """
        floor, ceiling = self.bounds[urgency]
        minutes = max(count_ahead_or_equal, 0) * max(avg_treatment_minutes, 0)
        return min(max(minutes, floor), ceiling)
