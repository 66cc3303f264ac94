"""
Data structures for the Child Growth Tracker.
"""
import math
import uuid
from dataclasses import dataclass, field, asdict
from datetime import date
from enum import Enum
from typing import List, Optional

from config.settings import DAYS_PER_MONTH, MAX_CHART_AGE_MONTHS, MIN_CHART_AGE_MONTHS


class Gender(str, Enum):
    BOY = "boy"
    GIRL = "girl"


class MeasurementType(str, Enum):
    HEIGHT = "height"  # cm
    WEIGHT = "weight"  # kg


class Severity(str, Enum):
    """How far a percentile sits from the typical band."""

    NORMAL = "normal"  # P15–P85
    WATCH = "watch"    # P3–P15 or P85–P97
    ALERT = "alert"    # below P3 or above P97


def _parse_date(value) -> date:
    if isinstance(value, date):
        return value
    # older blobs stored full ISO timestamps
    return date.fromisoformat(str(value)[:10])


def new_id() -> str:
    return uuid.uuid4().hex


@dataclass
class ChildProfile:
    name: str
    birth_date: date
    gender: Gender

    def to_dict(self) -> dict:
        return {
            'name': self.name,
            'birth_date': self.birth_date.isoformat(),
            'gender': self.gender.value,
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'ChildProfile':
        return cls(
            name=data['name'],
            birth_date=_parse_date(data['birth_date']),
            gender=Gender(data['gender']),
        )


@dataclass
class GrowthRecord:
    date: date
    height: float  # cm
    weight: float  # kg
    notes: Optional[str] = None
    id: str = field(default_factory=new_id)

    def to_dict(self) -> dict:
        d = asdict(self)
        d['date'] = self.date.isoformat()
        return d

    @classmethod
    def from_dict(cls, data: dict) -> 'GrowthRecord':
        return cls(
            id=data.get('id') or new_id(),
            date=_parse_date(data['date']),
            height=float(data['height']),
            weight=float(data['weight']),
            notes=data.get('notes'),
        )

    def value_of(self, measurement: MeasurementType) -> float:
        return self.height if measurement == MeasurementType.HEIGHT else self.weight


@dataclass
class VaccineRecord:
    date: date
    vaccine_name: str
    dose: str
    location: str
    photo: Optional[str] = None  # base64-encoded image
    id: str = field(default_factory=new_id)

    def to_dict(self) -> dict:
        d = asdict(self)
        d['date'] = self.date.isoformat()
        return d

    @classmethod
    def from_dict(cls, data: dict) -> 'VaccineRecord':
        return cls(
            id=data.get('id') or new_id(),
            date=_parse_date(data['date']),
            vaccine_name=data['vaccine_name'],
            dose=data['dose'],
            location=data['location'],
            photo=data.get('photo'),
        )


@dataclass
class AnnotatedRecord:
    record: GrowthRecord
    age_months: float
    height_percentile: Optional[int] = None
    weight_percentile: Optional[int] = None
    height_severity: Optional[Severity] = None
    weight_severity: Optional[Severity] = None

    def to_dict(self) -> dict:
        d = self.record.to_dict()
        d.update({
            'age_months': round(self.age_months, 2),
            'height_percentile': self.height_percentile,
            'weight_percentile': self.weight_percentile,
            'height_severity': self.height_severity.value if self.height_severity else None,
            'weight_severity': self.weight_severity.value if self.weight_severity else None,
        })
        return d


def age_in_months(birth_date: date, on_date: date) -> float:
    """Fractional age in months using the 30.4375-day average month."""
    days = (on_date - birth_date).days
    return max(0.0, days / DAYS_PER_MONTH)


class AppState:
    """The single child's profile plus growth and vaccine history."""

    def __init__(self, profile: ChildProfile = None,
                 records: List[GrowthRecord] = None,
                 vaccines: List[VaccineRecord] = None):
        self.profile = profile
        self.records: List[GrowthRecord] = records or []
        self.vaccines: List[VaccineRecord] = vaccines or []

    # ── Growth records ─────────────────────────────────────────

    def sorted_records(self, newest_first: bool = False) -> List[GrowthRecord]:
        return sorted(self.records, key=lambda r: r.date, reverse=newest_first)

    def get_record(self, record_id: str) -> Optional[GrowthRecord]:
        return next((r for r in self.records if r.id == record_id), None)

    def add_record(self, record: GrowthRecord) -> GrowthRecord:
        self.records.append(record)
        return record

    def update_record(self, record: GrowthRecord) -> bool:
        for i, r in enumerate(self.records):
            if r.id == record.id:
                self.records[i] = record
                return True
        return False

    def delete_record(self, record_id: str) -> bool:
        before = len(self.records)
        self.records = [r for r in self.records if r.id != record_id]
        return len(self.records) < before

    # ── Vaccines ───────────────────────────────────────────────

    def sorted_vaccines(self, newest_first: bool = True) -> List[VaccineRecord]:
        return sorted(self.vaccines, key=lambda v: v.date, reverse=newest_first)

    def add_vaccine(self, vaccine: VaccineRecord) -> VaccineRecord:
        self.vaccines.append(vaccine)
        return vaccine

    def update_vaccine(self, vaccine: VaccineRecord) -> bool:
        for i, v in enumerate(self.vaccines):
            if v.id == vaccine.id:
                self.vaccines[i] = vaccine
                return True
        return False

    def delete_vaccine(self, vaccine_id: str) -> bool:
        before = len(self.vaccines)
        self.vaccines = [v for v in self.vaccines if v.id != vaccine_id]
        return len(self.vaccines) < before

    # ── Growth annotation ──────────────────────────────────────

    def annotate_record(self, record: GrowthRecord, who_engine) -> AnnotatedRecord:
        """Attach age and WHO percentiles to a record (requires a profile)."""
        age = age_in_months(self.profile.birth_date, record.date)
        annotated = AnnotatedRecord(record=record, age_months=age)
        for measurement in MeasurementType:
            pct = who_engine.percentile_of(
                self.profile.gender, age, measurement, record.value_of(measurement)
            )
            if pct is None:
                continue
            setattr(annotated, f'{measurement.value}_percentile', pct)
            setattr(annotated, f'{measurement.value}_severity',
                    who_engine.classify(pct))
        return annotated

    def chart_max_age(self) -> int:
        """Chart span: at least 12 months, two past the latest record, capped at 60."""
        if not self.records or self.profile is None:
            return MIN_CHART_AGE_MONTHS
        latest = max(age_in_months(self.profile.birth_date, r.date) for r in self.records)
        return min(MAX_CHART_AGE_MONTHS, max(MIN_CHART_AGE_MONTHS, math.ceil(latest + 2)))

    # ── Serialization ──────────────────────────────────────────

    def to_dict(self) -> dict:
        return {
            'profile': self.profile.to_dict() if self.profile else None,
            'records': [r.to_dict() for r in self.records],
            'vaccines': [v.to_dict() for v in self.vaccines],
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'AppState':
        profile = data.get('profile')
        return cls(
            profile=ChildProfile.from_dict(profile) if profile else None,
            records=[GrowthRecord.from_dict(r) for r in data.get('records') or []],
            # blobs written before vaccine tracking have no 'vaccines' key
            vaccines=[VaccineRecord.from_dict(v) for v in data.get('vaccines') or []],
        )
