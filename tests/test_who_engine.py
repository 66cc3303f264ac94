"""
Tests for the WHO LMS percentile engine.
Run: pytest tests/test_who_engine.py -v
"""
import math

import numpy as np
import pytest
from scipy import stats

from src.models.data_structures import Gender, MeasurementType, Severity
from src.models.who_engine import (
    BREAKPOINT_AGES, CURVE_ZSCORES, WHO_LMS_TABLES, GrowthReferenceTable,
    LMSPoint, WHOGrowthEngine, classify, interpolate, lms_value, lms_zscore,
    lookup, normal_cdf, percentile_label,
)

ALL_TABLES = [
    (gender, measurement)
    for gender in Gender
    for measurement in MeasurementType
]


@pytest.fixture
def engine():
    return WHOGrowthEngine()


class TestReferenceTables:

    @pytest.mark.parametrize("gender,measurement", ALL_TABLES)
    def test_table_shape(self, gender, measurement):
        table = lookup(gender, measurement)
        assert len(table) == 8
        assert tuple(p.age_months for p in table) == BREAKPOINT_AGES
        assert all(p.mu > 0 and p.sigma > 0 for p in table)

    def test_lookup_accepts_plain_strings(self):
        assert lookup("boy", "height") is WHO_LMS_TABLES[MeasurementType.HEIGHT][Gender.BOY]
        assert lookup("girl", "weight").gender == Gender.GIRL

    def test_rejects_unordered_ages(self):
        points = tuple(LMSPoint(a, 1.0, 50.0, 0.04) for a in (0, 6, 3, 12, 24, 36, 48, 60))
        with pytest.raises(ValueError):
            GrowthReferenceTable(Gender.BOY, MeasurementType.HEIGHT, points)

    def test_rejects_partial_domain(self):
        points = tuple(LMSPoint(a, 1.0, 50.0, 0.04) for a in (0, 3, 6, 12, 24, 36))
        with pytest.raises(ValueError):
            GrowthReferenceTable(Gender.BOY, MeasurementType.HEIGHT, points)


class TestInterpolation:

    @pytest.mark.parametrize("gender,measurement", ALL_TABLES)
    def test_breakpoints_are_exact(self, gender, measurement):
        table = lookup(gender, measurement)
        for point in table:
            assert interpolate(table, point.age_months) == point.lms

    def test_midpoint(self):
        l, m, s = interpolate(lookup(Gender.BOY, MeasurementType.HEIGHT), 9)
        assert l == 1.0
        assert m == pytest.approx(71.65)
        assert s == pytest.approx(0.0355)

    @pytest.mark.parametrize("gender,measurement", ALL_TABLES)
    def test_mu_stays_between_bounding_breakpoints(self, gender, measurement):
        table = lookup(gender, measurement)
        for age in np.linspace(0, 60, 241):
            _, m, _ = interpolate(table, age)
            idx = max(i for i, a in enumerate(BREAKPOINT_AGES) if a <= age)
            lo = table.points[idx]
            hi = table.points[min(idx + 1, len(table) - 1)]
            assert min(lo.mu, hi.mu) <= m <= max(lo.mu, hi.mu)

    def test_clamps_out_of_range_ages(self):
        table = lookup(Gender.GIRL, MeasurementType.WEIGHT)
        assert interpolate(table, -5) == interpolate(table, 0)
        assert interpolate(table, 75.5) == interpolate(table, 60)


class TestTransforms:

    def test_cdf_matches_scipy(self):
        xs = np.linspace(-5, 5, 201)
        approx = np.array([normal_cdf(x) for x in xs])
        assert np.max(np.abs(approx - stats.norm.cdf(xs))) < 1e-6

    def test_cdf_saturates(self):
        assert normal_cdf(40) == pytest.approx(1.0)
        assert normal_cdf(-40) == pytest.approx(0.0)

    def test_box_cox_power_branch(self):
        # L = 1 reduces to (value - M) / (M * S)
        assert lms_zscore(110.0, 1.0, 100.0, 0.05) == pytest.approx(2.0)
        assert lms_value(2.0, 1.0, 100.0, 0.05) == pytest.approx(110.0)

    def test_log_branch_when_lambda_is_zero(self):
        assert lms_zscore(10 * math.e, 0.0, 10.0, 0.5) == pytest.approx(2.0)
        assert lms_value(2.0, 0.0, 10.0, 0.5) == pytest.approx(10 * math.e)


class TestPercentileOf:

    def test_median_height_at_twelve_months(self, engine):
        assert engine.percentile_of(Gender.BOY, 12, MeasurementType.HEIGHT, 75.7) == 50

    def test_short_boy_is_alert(self, engine):
        pct = engine.percentile_of(Gender.BOY, 12, MeasurementType.HEIGHT, 60)
        assert pct is not None
        assert classify(pct) == Severity.ALERT

    def test_median_weight_with_negative_lambda(self, engine):
        assert engine.percentile_of(Gender.BOY, 12, MeasurementType.WEIGHT, 9.648) == 50

    def test_one_sd_above_median(self, engine):
        # boy height at 12 months: M=75.7, S=0.035, L=1 -> z=1 at M*(1+S)
        assert engine.percentile_of(Gender.BOY, 12, MeasurementType.HEIGHT, 75.7 * 1.035) == 84

    @pytest.mark.parametrize("value", [0, -1])
    def test_non_positive_value_is_unavailable(self, engine, value):
        assert engine.percentile_of(Gender.GIRL, 6, MeasurementType.WEIGHT, value) is None

    def test_negative_age_is_unavailable(self, engine):
        assert engine.percentile_of(Gender.GIRL, -5, MeasurementType.HEIGHT, 50) is None
        assert engine.zscore_of(Gender.GIRL, -0.1, MeasurementType.HEIGHT, 50) is None

    def test_non_finite_input_is_unavailable(self, engine):
        assert engine.percentile_of(Gender.BOY, float("nan"), MeasurementType.HEIGHT, 70) is None
        assert engine.percentile_of(Gender.BOY, 6, MeasurementType.HEIGHT, float("inf")) is None

    def test_age_beyond_sixty_uses_sixty_month_parameters(self, engine):
        for value in (100.0, 110.0, 118.5):
            assert (engine.percentile_of(Gender.BOY, 72, MeasurementType.HEIGHT, value)
                    == engine.percentile_of(Gender.BOY, 60, MeasurementType.HEIGHT, value))

    def test_tiny_weight_saturates_without_raising(self, engine):
        assert engine.percentile_of(Gender.BOY, 12, MeasurementType.WEIGHT, 1e-9) == 0

    def test_result_is_int_in_range(self, engine):
        for value in np.linspace(40, 130, 19):
            pct = engine.percentile_of(Gender.GIRL, 30.5, MeasurementType.HEIGHT, value)
            assert isinstance(pct, int)
            assert 0 <= pct <= 100


class TestCurves:

    def test_length_and_ages(self, engine):
        curve = engine.generate_curve(Gender.BOY, MeasurementType.WEIGHT, 24)
        assert len(curve) == 25
        assert [p.age for p in curve] == list(range(25))

    def test_default_covers_sixty_months(self, engine):
        assert len(engine.generate_curve(Gender.GIRL, MeasurementType.HEIGHT)) == 61

    @pytest.mark.parametrize("gender,measurement", ALL_TABLES)
    def test_percentiles_are_ordered(self, engine, gender, measurement):
        for p in engine.generate_curve(gender, measurement):
            assert p.p3 <= p.p15 <= p.p50 <= p.p85 <= p.p97

    @pytest.mark.parametrize("gender,measurement", ALL_TABLES)
    def test_median_round_trips_to_fiftieth_percentile(self, engine, gender, measurement):
        for p in engine.generate_curve(gender, measurement):
            pct = engine.percentile_of(gender, p.age, measurement, p.p50)
            assert abs(pct - 50) <= 1

    def test_outer_lines_round_trip(self, engine):
        p = engine.generate_curve(Gender.GIRL, MeasurementType.WEIGHT, 18)[18]
        assert engine.percentile_of(Gender.GIRL, 18, MeasurementType.WEIGHT, p.p3) == 3
        assert engine.percentile_of(Gender.GIRL, 18, MeasurementType.WEIGHT, p.p97) == 97

    def test_tail_beyond_sixty_is_flat(self, engine):
        curve = engine.generate_curve(Gender.BOY, MeasurementType.HEIGHT, 66)
        assert len(curve) == 67
        for p in curve[61:]:
            assert (p.p3, p.p50, p.p97) == (curve[60].p3, curve[60].p50, curve[60].p97)

    def test_negative_max_age_is_empty(self, engine):
        assert engine.generate_curve(Gender.BOY, MeasurementType.HEIGHT, -1) == []

    def test_iter_curve_is_lazy_and_restartable(self, engine):
        it = engine.iter_curve(Gender.GIRL, MeasurementType.WEIGHT, 5)
        assert next(it).age == 0
        first = list(engine.iter_curve(Gender.GIRL, MeasurementType.WEIGHT, 5))
        second = list(engine.iter_curve(Gender.GIRL, MeasurementType.WEIGHT, 5))
        assert first == second

    def test_fixed_zscores(self):
        assert CURVE_ZSCORES == {
            'p3': -1.881, 'p15': -1.036, 'p50': 0.0, 'p85': 1.036, 'p97': 1.881,
        }

    def test_value_at_percentile(self, engine):
        median = engine.get_median(Gender.BOY, MeasurementType.WEIGHT, 6)
        assert engine.value_at_percentile(Gender.BOY, MeasurementType.WEIGHT, 6, 50) == pytest.approx(median)
        p97 = engine.value_at_percentile(Gender.BOY, MeasurementType.WEIGHT, 6, 97)
        assert p97 == pytest.approx(
            engine.generate_curve(Gender.BOY, MeasurementType.WEIGHT, 6)[6].p97, rel=1e-3
        )

    @pytest.mark.parametrize("percentile", [0, 100, -3, 120])
    def test_value_at_percentile_out_of_range(self, engine, percentile):
        assert engine.value_at_percentile(Gender.BOY, MeasurementType.WEIGHT, 6, percentile) is None


class TestClassifier:

    @pytest.mark.parametrize("percentile,expected", [
        (0, Severity.ALERT),
        (2, Severity.ALERT),
        (3, Severity.WATCH),
        (14, Severity.WATCH),
        (15, Severity.NORMAL),
        (50, Severity.NORMAL),
        (85, Severity.NORMAL),
        (86, Severity.WATCH),
        (97, Severity.WATCH),
        (98, Severity.ALERT),
        (100, Severity.ALERT),
    ])
    def test_boundaries(self, percentile, expected):
        assert classify(percentile) == expected

    def test_total_over_integers(self):
        assert classify(-10) == Severity.ALERT
        assert classify(250) == Severity.ALERT

    def test_label(self):
        label = percentile_label(7)
        assert label.text == "P7"
        assert label.severity == Severity.WATCH


class TestNonFiniteAge:

    def test_interpolate_nan_age(self):
        l, m, s = interpolate(lookup(Gender.BOY, MeasurementType.HEIGHT), float("nan"))
        assert math.isnan(l) and math.isnan(m) and math.isnan(s)

    def test_median_and_lms_unavailable(self, engine):
        assert engine.get_median(Gender.BOY, MeasurementType.HEIGHT, float("nan")) is None
        assert engine.get_lms(Gender.GIRL, MeasurementType.WEIGHT, float("nan")) is None

    def test_value_at_percentile_nan_age(self, engine):
        assert engine.value_at_percentile(Gender.BOY, MeasurementType.WEIGHT, float("nan"), 50) is None

    def test_infinite_age_clamps_to_sixty(self, engine):
        assert (engine.get_median(Gender.GIRL, MeasurementType.HEIGHT, float("inf"))
                == engine.get_median(Gender.GIRL, MeasurementType.HEIGHT, 60))

    def test_extreme_percentile_has_no_value(self, engine):
        # z near -37 drives 1 + L*S*z below zero for the boy weight table
        assert engine.value_at_percentile(Gender.BOY, MeasurementType.WEIGHT, 0, 1e-300) is None
