"""
WHO Child Growth Standards — LMS percentile engine for height and weight, 0–60 months.

The LMS method expresses a skewed measurement distribution at a given age as:
- L (lambda): Box-Cox power
- M (mu): median
- S (sigma): coefficient of variation

Z-score = ((value/M)^L - 1) / (L * S)   when L != 0
Z-score = ln(value/M) / S               when L == 0

Percentile = Φ(Z-score), Φ being the standard normal CDF.

The reference tables below are a reduced subset of the WHO Multicentre Growth
Reference Study (2006) parameters sampled at 8 ages. The published standard
tabulates them per month (per week for early infancy); these control points and
the linear interpolation between them are an approximation suitable for
charting, not a transcription of the standard and not for diagnostic use.
"""
import math
from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional, Tuple

import numpy as np
from scipy import stats

from src.models.data_structures import Gender, MeasurementType, Severity

AGE_MIN_MONTHS = 0
AGE_MAX_MONTHS = 60
BREAKPOINT_AGES = (0, 3, 6, 12, 24, 36, 48, 60)

# Z-scores of the plotted percentile lines
CURVE_ZSCORES = {
    'p3': -1.881,
    'p15': -1.036,
    'p50': 0.0,
    'p85': 1.036,
    'p97': 1.881,
}


@dataclass(frozen=True)
class LMSPoint:
    age_months: int
    lam: float
    mu: float
    sigma: float

    @property
    def lms(self) -> Tuple[float, float, float]:
        return self.lam, self.mu, self.sigma


@dataclass(frozen=True)
class GrowthReferenceTable:
    """Ordered LMS control points for one gender × measurement combination."""
    gender: Gender
    measurement: MeasurementType
    points: Tuple[LMSPoint, ...]

    def __post_init__(self):
        ages = [p.age_months for p in self.points]
        if ages != sorted(set(ages)):
            raise ValueError(f"{self.gender}/{self.measurement}: ages must be strictly increasing")
        if ages[0] != AGE_MIN_MONTHS or ages[-1] != AGE_MAX_MONTHS:
            raise ValueError(
                f"{self.gender}/{self.measurement}: table must span "
                f"{AGE_MIN_MONTHS}–{AGE_MAX_MONTHS} months"
            )
        # frozen dataclass: bypass __setattr__ for the cached lookup array
        object.__setattr__(self, '_ages', np.array(ages, dtype=float))

    @property
    def ages(self) -> np.ndarray:
        return self._ages

    def __len__(self):
        return len(self.points)

    def __iter__(self):
        return iter(self.points)


def _table(gender, measurement, rows) -> GrowthReferenceTable:
    return GrowthReferenceTable(
        gender=gender, measurement=measurement,
        points=tuple(LMSPoint(age, l, m, s) for age, (l, m, s) in zip(BREAKPOINT_AGES, rows)),
    )


# =============================================================================
# WHO LMS Reference Tables — (L, M, S) at BREAKPOINT_AGES
# =============================================================================

WHO_LMS_TABLES: Dict[MeasurementType, Dict[Gender, GrowthReferenceTable]] = {
    MeasurementType.HEIGHT: {
        Gender.BOY: _table(Gender.BOY, MeasurementType.HEIGHT, [
            (1.0, 49.88, 0.038), (1.0, 61.4, 0.038),
            (1.0, 67.6, 0.036), (1.0, 75.7, 0.035),
            (1.0, 87.8, 0.035), (1.0, 96.1, 0.036),
            (1.0, 103.3, 0.038), (1.0, 110.0, 0.040),
        ]),
        Gender.GIRL: _table(Gender.GIRL, MeasurementType.HEIGHT, [
            (1.0, 49.1, 0.038), (1.0, 59.8, 0.039),
            (1.0, 65.7, 0.038), (1.0, 74.0, 0.036),
            (1.0, 86.4, 0.036), (1.0, 95.1, 0.037),
            (1.0, 102.7, 0.039), (1.0, 109.4, 0.041),
        ]),
    },
    MeasurementType.WEIGHT: {
        Gender.BOY: _table(Gender.BOY, MeasurementType.WEIGHT, [
            (0.3487, 3.346, 0.146), (0.1748, 6.421, 0.134),
            (0.0543, 7.936, 0.126), (-0.158, 9.648, 0.119),
            (-0.127, 12.15, 0.115), (-0.127, 14.34, 0.117),
            (-0.127, 16.33, 0.120), (-0.127, 18.31, 0.124),
        ]),
        Gender.GIRL: _table(Gender.GIRL, MeasurementType.WEIGHT, [
            (0.3809, 3.232, 0.141), (0.2307, 5.842, 0.132),
            (0.1068, 7.297, 0.125), (-0.105, 8.948, 0.118),
            (-0.063, 11.48, 0.118), (-0.063, 13.93, 0.123),
            (-0.063, 16.12, 0.129), (-0.063, 18.23, 0.136),
        ]),
    },
}


def lookup(gender: Gender, measurement: MeasurementType) -> GrowthReferenceTable:
    return WHO_LMS_TABLES[MeasurementType(measurement)][Gender(gender)]


def interpolate(table: GrowthReferenceTable, age_months: float) -> Tuple[float, float, float]:
    """Linearly interpolate (L, M, S) at ``age_months``.

    Ages outside 0–60 are clamped to the nearest breakpoint, so the curve is
    extended flat rather than extrapolated. An age equal to a breakpoint
    returns that breakpoint's stored parameters unchanged.
    A NaN age has no bounding pair and yields NaN parameters.
    """
    if math.isnan(age_months):
        return math.nan, math.nan, math.nan
    age = min(max(float(age_months), AGE_MIN_MONTHS), AGE_MAX_MONTHS)
    idx = int(np.searchsorted(table.ages, age, side='left'))
    if table.ages[idx] == age:
        return table.points[idx].lms

    lower, upper = table.points[idx - 1], table.points[idx]
    factor = (age - lower.age_months) / (upper.age_months - lower.age_months)
    return (
        lower.lam + (upper.lam - lower.lam) * factor,
        lower.mu + (upper.mu - lower.mu) * factor,
        lower.sigma + (upper.sigma - lower.sigma) * factor,
    )


def normal_cdf(x: float) -> float:
    """Standard normal CDF, Abramowitz & Stegun 26.2.17 (|error| < 1e-6)."""
    t = 1.0 / (1.0 + 0.2316419 * abs(x))
    d = 0.3989423 * math.exp(-x * x / 2)
    prob = d * t * (0.3193815 + t * (-0.3565638 + t * (1.781478 + t * (-1.821256 + t * 1.330274))))
    return 1.0 - prob if x > 0 else prob


def lms_zscore(value: float, l: float, m: float, s: float) -> float:
    with np.errstate(all='ignore'):
        if l != 0:
            return float((np.power(value / m, l) - 1) / (l * s))
        return float(np.log(value / m) / s)


def lms_value(z: float, l: float, m: float, s: float) -> float:
    with np.errstate(all='ignore'):
        if l != 0:
            return float(m * np.power(1 + l * s * z, 1.0 / l))
        return float(m * np.exp(s * z))


# ── Percentile classification ─────────────────────────────────

@dataclass(frozen=True)
class PercentileLabel:
    text: str
    severity: Severity


def classify(percentile: int) -> Severity:
    if percentile < 3 or percentile > 97:
        return Severity.ALERT
    if percentile < 15 or percentile > 85:
        return Severity.WATCH
    return Severity.NORMAL


def percentile_label(percentile: int) -> PercentileLabel:
    return PercentileLabel(text=f"P{percentile}", severity=classify(percentile))


# ── Curves ────────────────────────────────────────────────────

@dataclass(frozen=True)
class CurvePoint:
    age: int
    p3: float
    p15: float
    p50: float
    p85: float
    p97: float

    def to_dict(self) -> dict:
        return {
            'age': self.age,
            'p3': round(self.p3, 2), 'p15': round(self.p15, 2),
            'p50': round(self.p50, 2), 'p85': round(self.p85, 2),
            'p97': round(self.p97, 2),
        }


class WHOGrowthEngine:
    """Stateless WHO growth-standard engine over the LMS reference tables.

    Nothing is mutated after construction, so one instance can be shared by
    any number of concurrent callers.
    """

    def __init__(self, lms_tables: dict = None):
        self.lms_tables = lms_tables or WHO_LMS_TABLES

    def table(self, gender: Gender, measurement: MeasurementType) -> GrowthReferenceTable:
        return self.lms_tables[MeasurementType(measurement)][Gender(gender)]

    def get_lms(self, gender: Gender, measurement: MeasurementType,
                age_months: float) -> Optional[Tuple[float, float, float]]:
        if math.isnan(age_months):
            return None
        return interpolate(self.table(gender, measurement), age_months)

    def zscore_of(self, gender: Gender, age_months: float,
                  measurement: MeasurementType, value: float) -> Optional[float]:
        """Box-Cox Z-score of ``value``, or None if age/value are not physical."""
        if not (math.isfinite(age_months) and math.isfinite(value)):
            return None
        if age_months < 0 or value <= 0:
            return None
        l, m, s = self.get_lms(gender, measurement, age_months)
        z = lms_zscore(value, l, m, s)
        if math.isnan(z):
            return None
        return z

    def percentile_of(self, gender: Gender, age_months: float,
                      measurement: MeasurementType, value: float) -> Optional[int]:
        """Rounded percentile rank (0–100) of a measurement, None when unavailable."""
        z = self.zscore_of(gender, age_months, measurement, value)
        if z is None:
            return None
        return int(math.floor(normal_cdf(z) * 100 + 0.5))

    def iter_curve(self, gender: Gender, measurement: MeasurementType,
                   max_age_months: int = AGE_MAX_MONTHS) -> Iterator[CurvePoint]:
        table = self.table(gender, measurement)
        for age in range(0, int(max_age_months) + 1):
            l, m, s = interpolate(table, age)
            yield CurvePoint(
                age=age,
                **{name: lms_value(z, l, m, s) for name, z in CURVE_ZSCORES.items()}
            )

    def generate_curve(self, gender: Gender, measurement: MeasurementType,
                       max_age_months: int = AGE_MAX_MONTHS) -> List[CurvePoint]:
        """P3/P15/P50/P85/P97 values for every month 0..max_age_months.

        Ages past 60 repeat the 60-month parameters (flat tail); callers are
        expected to cap ``max_age_months`` at 60.
        """
        return list(self.iter_curve(gender, measurement, max_age_months))

    def value_at_percentile(self, gender: Gender, measurement: MeasurementType,
                            age_months: float, percentile: float) -> Optional[float]:
        if not 0 < percentile < 100:
            return None
        lms = self.get_lms(gender, measurement, age_months)
        if lms is None:
            return None
        z = float(stats.norm.ppf(percentile / 100.0))
        value = lms_value(z, *lms)
        # extreme tails push 1 + L*S*z below zero
        return value if math.isfinite(value) else None

    @staticmethod
    def classify(percentile: int) -> Severity:
        return classify(percentile)

    def get_median(self, gender: Gender, measurement: MeasurementType,
                   age_months: float) -> Optional[float]:
        lms = self.get_lms(gender, measurement, age_months)
        if lms is None:
            return None
        return float(lms[1])

    @property
    def available_measurements(self) -> list:
        return [m.value for m in self.lms_tables]
