"""Unit tests for MEWS acuity scoring."""

import pytest

from app.core.errors import InvalidVitalsError
from app.queueing.models import Urgency
from app.scoring.mews import AcuityScorer, VitalSigns, get_urgency, points_for

NORMAL = VitalSigns(
    temperature=37.0,
    systolic_bp=120,
    heart_rate=75,
    respiratory_rate=16,
    oxygen_saturation=98,
)


class TestBands:
    """Boundary values belong to exactly one band."""

    @pytest.mark.parametrize(
        "value,points",
        [(70, 3), (91, 3), (91.9, 3), (92, 2), (94, 2), (95, 1), (96, 1), (97, 0), (100, 0)],
    )
    def test_oxygen_saturation(self, value, points) -> None:
        assert points_for("oxygen_saturation", value) == points

    @pytest.mark.parametrize(
        "value,points",
        [(5, 3), (8, 3), (9, 1), (11, 1), (12, 0), (20, 0), (21, 2), (24, 2), (25, 3), (60, 3)],
    )
    def test_respiratory_rate(self, value, points) -> None:
        assert points_for("respiratory_rate", value) == points

    @pytest.mark.parametrize(
        "value,points",
        [
            (30, 3), (40, 3), (41, 1), (50, 1), (51, 0), (90, 0),
            (91, 1), (110, 1), (111, 2), (130, 2), (131, 3), (250, 3),
        ],
    )
    def test_heart_rate(self, value, points) -> None:
        assert points_for("heart_rate", value) == points

    @pytest.mark.parametrize(
        "value,points",
        [(50, 3), (90, 3), (91, 2), (100, 2), (101, 1), (110, 1), (111, 0), (219, 0), (220, 3)],
    )
    def test_systolic_bp(self, value, points) -> None:
        assert points_for("systolic_bp", value) == points

    @pytest.mark.parametrize(
        "value,points",
        [(30, 3), (35.0, 3), (35.1, 1), (36.0, 1), (36.1, 0), (38.0, 0), (38.1, 1), (39.0, 1), (39.1, 2), (45, 2)],
    )
    def test_temperature(self, value, points) -> None:
        assert points_for("temperature", value) == points


class TestUrgencyThresholds:
    """Tests for the score to urgency mapping."""

    @pytest.mark.parametrize(
        "total,urgency",
        [
            (0, Urgency.GREEN),
            (3, Urgency.GREEN),
            (4, Urgency.YELLOW),
            (6, Urgency.YELLOW),
            (7, Urgency.RED),
            (14, Urgency.RED),
        ],
    )
    def test_thresholds(self, total, urgency) -> None:
        assert get_urgency(total) == urgency


class TestAcuityScorer:
    """Tests for the full scorer."""

    def test_normal_vitals(self) -> None:
        """Test normal vitals score zero."""
        result = AcuityScorer.score(NORMAL, pain_scale=2)

        assert result.acuity_score == 0
        assert result.urgency == Urgency.GREEN
        assert result.low_confidence is False
        assert result.missing_fields == ()
        assert set(result.breakdown) == set(AcuityScorer.SCORED_FIELDS)

    def test_single_hypoxic_reading(self) -> None:
        """Test SpO2 90 alone scores 3, GREEN, low confidence."""
        result = AcuityScorer.score(VitalSigns(oxygen_saturation=90), pain_scale=0)

        assert result.acuity_score == 3
        assert result.urgency == Urgency.GREEN
        assert result.low_confidence is True
        assert result.breakdown["oxygen_saturation"] == 3

    def test_critical_presentation_is_red(self) -> None:
        """Test SpO2 85, RR 35 and HR 135 together reach RED."""
        vitals = VitalSigns(oxygen_saturation=85, respiratory_rate=35, heart_rate=135)

        result = AcuityScorer.score(vitals, pain_scale=8)

        assert result.acuity_score == 9
        assert result.urgency == Urgency.RED

    def test_yellow_presentation(self) -> None:
        """Test a moderately abnormal set of vitals is YELLOW."""
        vitals = VitalSigns(
            temperature=38.5,
            systolic_bp=105,
            heart_rate=115,
            respiratory_rate=16,
            oxygen_saturation=98,
        )

        result = AcuityScorer.score(vitals, pain_scale=5)

        assert result.acuity_score == 4
        assert result.urgency == Urgency.YELLOW

    def test_missing_vitals_score_zero(self) -> None:
        """Test that no readings at all is a low-confidence GREEN."""
        result = AcuityScorer.score(VitalSigns(), pain_scale=0)

        assert result.acuity_score == 0
        assert result.urgency == Urgency.GREEN
        assert result.low_confidence is True
        assert len(result.missing_fields) == 5

    def test_low_confidence_threshold(self) -> None:
        """Test low confidence starts when more than half are missing."""
        two_missing = VitalSigns(temperature=37, systolic_bp=120, heart_rate=75)
        three_missing = VitalSigns(temperature=37, systolic_bp=120)

        assert AcuityScorer.score(two_missing, 0).low_confidence is False
        assert AcuityScorer.score(three_missing, 0).low_confidence is True

    def test_pain_scale_does_not_change_score(self) -> None:
        """Test that pain is validated but not scored."""
        low = AcuityScorer.score(NORMAL, pain_scale=0)
        high = AcuityScorer.score(NORMAL, pain_scale=10)

        assert low == high

    def test_deterministic(self) -> None:
        """Test identical input gives identical results."""
        vitals = VitalSigns(oxygen_saturation=93, heart_rate=112, temperature=39.5)

        results = [AcuityScorer.score(vitals, 4) for _ in range(5)]

        assert all(r == results[0] for r in results)

    def test_monotonic_in_abnormality(self) -> None:
        """Test a worse reading never lowers the score."""
        scores = [
            AcuityScorer.score(VitalSigns(oxygen_saturation=spo2), 0).acuity_score
            for spo2 in (100, 96, 94, 90, 80)
        ]

        assert scores == sorted(scores)

    def test_bmi_derived_from_weight_and_height(self) -> None:
        """Test BMI is computed when both are present."""
        assert VitalSigns(weight=70, height=175).bmi == 22.86
        assert VitalSigns(weight=70).bmi is None


class TestValidation:
    """Implausible readings are rejected with the offending field."""

    @pytest.mark.parametrize(
        "field,value",
        [
            ("temperature", 29.9),
            ("temperature", 45.1),
            ("systolic_bp", 49),
            ("systolic_bp", 251),
            ("diastolic_bp", 151),
            ("heart_rate", 29),
            ("heart_rate", 251),
            ("respiratory_rate", 4),
            ("respiratory_rate", 61),
            ("oxygen_saturation", 69),
            ("oxygen_saturation", 101),
            ("blood_glucose", 0),
            ("weight", 301),
            ("height", 29),
        ],
    )
    def test_out_of_range_vital(self, field, value) -> None:
        with pytest.raises(InvalidVitalsError) as exc_info:
            AcuityScorer.score(VitalSigns(**{field: value}), pain_scale=0)

        assert exc_info.value.field == field

    @pytest.mark.parametrize("field,value", [("temperature", 30), ("oxygen_saturation", 100), ("heart_rate", 250)])
    def test_range_limits_are_inclusive(self, field, value) -> None:
        AcuityScorer.score(VitalSigns(**{field: value}), pain_scale=0)

    @pytest.mark.parametrize("pain", [-1, 11, None, True])
    def test_invalid_pain_scale(self, pain) -> None:
        with pytest.raises(InvalidVitalsError) as exc_info:
            AcuityScorer.score(NORMAL, pain_scale=pain)

        assert exc_info.value.field == "pain_scale"
