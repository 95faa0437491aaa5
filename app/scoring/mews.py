"""Modified Early Warning Score (MEWS) acuity scoring.

Each observed vital contributes 0-3 points from a banded lookup table. Bands
are closed-open: a value falls in the first band whose upper bound it is
strictly below, so boundary values never belong to two bands.

Oxygen saturation:  <92 = 3, 92-94 = 2, 95-96 = 1, >=97 = 0
Respiratory rate:   <9 = 3, 9-11 = 1, 12-20 = 0, 21-24 = 2, >=25 = 3
Heart rate:         <41 = 3, 41-50 = 1, 51-90 = 0, 91-110 = 1, 111-130 = 2, >=131 = 3
Systolic BP:        <91 = 3, 91-100 = 2, 101-110 = 1, 111-219 = 0, >=220 = 3
Temperature (C):    <35.1 = 3, 35.1-36.0 = 1, 36.1-38.0 = 0, 38.1-39.0 = 1, >=39.1 = 2

Urgency from the total:
- 0-3: GREEN
- 4-6: YELLOW
- 7+:  RED

Missing vitals score 0. When more than half of the scored vitals are missing
the result is flagged as low confidence.
"""

from dataclasses import asdict, dataclass, field

from app.core.errors import InvalidVitalsError
from app.queueing.models import Urgency

MEWS_VERSION = "1.0.0"

# (exclusive upper bound, points); a None bound catches everything above.
Band = tuple[float | None, int]

SCORE_BANDS: dict[str, list[Band]] = {
    "oxygen_saturation": [(92, 3), (95, 2), (97, 1), (None, 0)],
    "respiratory_rate": [(9, 3), (12, 1), (21, 0), (25, 2), (None, 3)],
    "heart_rate": [(41, 3), (51, 1), (91, 0), (111, 1), (131, 2), (None, 3)],
    "systolic_bp": [(91, 3), (101, 2), (111, 1), (220, 0), (None, 3)],
    "temperature": [(35.1, 3), (36.1, 1), (38.1, 0), (39.1, 1), (None, 2)],
}

# Physiologically plausible ranges (inclusive). Outside means a data entry error.
PLAUSIBLE_RANGES: dict[str, tuple[float, float]] = {
    "temperature": (30, 45),
    "systolic_bp": (50, 250),
    "diastolic_bp": (30, 150),
    "heart_rate": (30, 250),
    "respiratory_rate": (5, 60),
    "oxygen_saturation": (70, 100),
    "blood_glucose": (1, 50),
    "weight": (1, 300),
    "height": (30, 250),
}

PAIN_SCALE_RANGE = (0, 10)

URGENCY_THRESHOLDS = [
    (7, Urgency.RED),
    (4, Urgency.YELLOW),
    (0, Urgency.GREEN),
]


@dataclass(frozen=True)
class VitalSigns:
    """Vital sign readings taken at triage. All optional."""

    temperature: float | None = None
    systolic_bp: float | None = None
    diastolic_bp: float | None = None
    heart_rate: float | None = None
    respiratory_rate: float | None = None
    oxygen_saturation: float | None = None
    blood_glucose: float | None = None
    weight: float | None = None
    height: float | None = None

    def to_dict(self) -> dict[str, float | None]:
        return asdict(self)

    @property
    def bmi(self) -> float | None:
        """Body mass index when both weight (kg) and height (cm) are known."""
        if self.weight is None or not self.height:
            return None
        height_m = self.height / 100
        return round(self.weight / (height_m * height_m), 2)


@dataclass(frozen=True)
class AcuityResult:
    """Result of acuity scoring."""

    acuity_score: int
    urgency: Urgency
    low_confidence: bool
    breakdown: dict[str, int] = field(default_factory=dict)
    missing_fields: tuple[str, ...] = ()
    version: str = MEWS_VERSION


def points_for(field_name: str, value: float) -> int:
    """Look up the MEWS points for a single observed value."""
    for upper, points in SCORE_BANDS[field_name]:
        if upper is None or value < upper:
            return points
    return 0


def get_urgency(total: int) -> Urgency:
    """Map an acuity score to its urgency class."""
    for threshold, urgency in URGENCY_THRESHOLDS:
        if total >= threshold:
            return urgency
    return Urgency.GREEN


class AcuityScorer:
    """Deterministic MEWS-based acuity scorer.

    Same vitals and pain scale always give the same result; there is no state.
    """

    SCORED_FIELDS = tuple(SCORE_BANDS)

    @classmethod
    def validate(cls, vitals: VitalSigns, pain_scale: int) -> None:
        """Reject implausible readings, naming the offending field.

        Raises:
            InvalidVitalsError: If any reading is outside its plausible range.
        """
        low, high = PAIN_SCALE_RANGE
        if pain_scale is None or isinstance(pain_scale, bool) or not low <= pain_scale <= high:
            raise InvalidVitalsError(
                f"pain_scale must be between {low} and {high}, got {pain_scale}",
                field="pain_scale",
            )

        for name, (low, high) in PLAUSIBLE_RANGES.items():
            value = getattr(vitals, name)
            if value is None:
                continue
            if not low <= value <= high:
                raise InvalidVitalsError(
                    f"{name} must be between {low} and {high}, got {value}",
                    field=name,
                )

    @classmethod
    def score(cls, vitals: VitalSigns, pain_scale: int) -> AcuityResult:
        """Score vitals into an acuity score and urgency class.

        Raises:
            InvalidVitalsError: If any reading is implausible.
        """
        cls.validate(vitals, pain_scale)

        breakdown: dict[str, int] = {}
        missing: list[str] = []

        for name in cls.SCORED_FIELDS:
            value = getattr(vitals, name)
            if value is None:
                missing.append(name)
                breakdown[name] = 0
            else:
                breakdown[name] = points_for(name, value)

        total = sum(breakdown.values())

        return AcuityResult(
            acuity_score=total,
            urgency=get_urgency(total),
            low_confidence=len(missing) * 2 > len(cls.SCORED_FIELDS),
            breakdown=breakdown,
            missing_fields=tuple(missing),
        )
