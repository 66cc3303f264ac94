"""
Child Growth Tracker — FastAPI Backend
======================================

Single-child growth and vaccination record with WHO growth-standard percentiles.

REST API endpoints:
    GET    /profile                     Get the child's profile
    PUT    /profile                     Create or replace the profile
    GET    /records                     Growth records with percentiles (newest first)
    POST   /records                     Add a growth record
    PUT    /records/{id}                Edit a growth record
    DELETE /records/{id}                Delete a growth record
    GET    /vaccines                    Vaccination history (newest first)
    POST   /vaccines                    Add a vaccination
    PUT    /vaccines/{id}               Edit a vaccination
    DELETE /vaccines/{id}               Delete a vaccination
    DELETE /state                       Clear all stored data
    GET    /growth/percentile           Percentile of a single measurement
    GET    /growth/curve                P3–P97 reference curve, one point per month
    GET    /growth/curve.csv            Same curve as CSV
    GET    /growth/percentile-lines     Arbitrary WHO percentile lines
    GET    /growth/chart                Reference curve plus the child's measurements
    POST   /analysis                    AI summary of recent growth
    GET    /health                      Health check
"""
import sys
import math
import logging
import secrets
from pathlib import Path
from datetime import date
from contextlib import asynccontextmanager
from typing import Optional, List

import pandas as pd
from fastapi import FastAPI, HTTPException, Query, Depends, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.security import HTTPBasic, HTTPBasicCredentials
from pydantic import BaseModel, Field

PROJECT_ROOT = Path(__file__).resolve().parents[2]
sys.path.insert(0, str(PROJECT_ROOT))

from config.settings import PORT, HOST, LOG_LEVEL, MAX_CHART_AGE_MONTHS
from config.settings import AUTH_ENABLED, AUTH_USERNAME, AUTH_PASSWORD, CORS_ORIGINS
from src.models.who_engine import WHOGrowthEngine, percentile_label
from src.models.data_structures import (
    AppState, ChildProfile, Gender, GrowthRecord, MeasurementType,
    VaccineRecord, age_in_months,
)
from src.storage.local_store import LocalStore
from src.services.summary import analyze_growth

VERSION = "1.0.0"

logger = logging.getLogger(__name__)

# ── Auth ─────────────────────────────────────────────────────────
security = HTTPBasic()

def verify_credentials(credentials: HTTPBasicCredentials = Depends(security)):
    """Single-user login guarding the child's record, enabled with AUTH_ENABLED=true."""
    if not AUTH_ENABLED:
        return True
    user_ok = secrets.compare_digest(credentials.username.encode(), AUTH_USERNAME.encode())
    password_ok = secrets.compare_digest(credentials.password.encode(), AUTH_PASSWORD.encode())
    if not (user_ok and password_ok):
        raise HTTPException(
            status_code=401,
            detail="Invalid username or password for this growth record",
            headers={"WWW-Authenticate": "Basic"},
        )
    return True

# ── Global State ──────────────────────────────────────────────

_who_engine = WHOGrowthEngine()
_store = LocalStore()


def get_store() -> LocalStore:
    return _store


@asynccontextmanager
async def lifespan(app: FastAPI):
    logging.basicConfig(
        level=LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logger.info("Child Growth Tracker ready, data at %s", _store.path)
    yield
    logger.info("Shutting down")


# ── App ──────────────────────────────────────────────────────

_deps = [Depends(verify_credentials)] if AUTH_ENABLED else []

app = FastAPI(
    title="Child Growth Tracker API",
    description=(
        "Offline-first growth and vaccination record for one child. "
        "Annotates height/weight measurements with WHO growth-standard "
        "percentiles and serves P3–P97 reference curves for 0–60 months."
    ),
    version=VERSION,
    lifespan=lifespan,
    dependencies=_deps,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_methods=["GET", "POST", "PUT", "DELETE"],
    allow_headers=["Authorization", "Content-Type"],
)


# ── Request / Response Models ─────────────────────────────────

class ProfileRequest(BaseModel):
    name: str = Field(..., min_length=1)
    birth_date: date
    gender: Gender

class RecordRequest(BaseModel):
    date: date
    height: float = Field(..., gt=0, le=200, description="cm")
    weight: float = Field(..., gt=0, le=100, description="kg")
    notes: Optional[str] = None

class VaccineRequest(BaseModel):
    date: date
    vaccine_name: str = Field(..., min_length=1)
    dose: str = ""
    location: str = ""
    photo: Optional[str] = Field(None, description="Base64-encoded image")

class PercentileResponse(BaseModel):
    gender: Gender
    type: MeasurementType
    age_months: float
    value: float
    z_score: Optional[float] = None
    percentile: Optional[int] = None
    label: Optional[str] = None
    severity: Optional[str] = None

class CurvePointResponse(BaseModel):
    age: int
    p3: float
    p15: float
    p50: float
    p85: float
    p97: float

class PercentilePoint(BaseModel):
    age_months: float
    value: float

class PercentileLine(BaseModel):
    percentile: float
    points: List[PercentilePoint]


# ── Helpers ───────────────────────────────────────────────────

def _require_profile(state: AppState) -> ChildProfile:
    if state.profile is None:
        raise HTTPException(409, "Child profile has not been set up")
    return state.profile


def _curve(gender: Gender, measurement: MeasurementType, max_age_months: int):
    return [p.to_dict() for p in _who_engine.generate_curve(gender, measurement, max_age_months)]


def _parse_percentiles(percentiles: str) -> List[float]:
    try:
        pct_list = [float(x.strip()) for x in percentiles.split(",") if x.strip()]
    except ValueError:
        raise HTTPException(422, f"Invalid percentile list '{percentiles}'")
    if not pct_list or any(not 0 < p < 100 for p in pct_list):
        raise HTTPException(422, "Percentiles must be between 0 and 100 (exclusive)")
    return pct_list


# ── Endpoints ─────────────────────────────────────────────────

@app.get("/health")
async def health_check(store: LocalStore = Depends(get_store)):
    state = store.load()
    return {
        "status": "healthy",
        "profile_set": state.profile is not None,
        "records": len(state.records),
        "vaccines": len(state.vaccines),
        "measurements_available": _who_engine.available_measurements,
        "version": VERSION,
    }


# ── Profile ───────────────────────────────────────────────────

@app.get("/profile")
async def get_profile(store: LocalStore = Depends(get_store)):
    state = store.load()
    return _require_profile(state).to_dict()


@app.put("/profile")
async def put_profile(req: ProfileRequest, store: LocalStore = Depends(get_store)):
    state = store.load()
    state.profile = ChildProfile(name=req.name, birth_date=req.birth_date, gender=req.gender)
    store.save(state)
    return state.profile.to_dict()


@app.delete("/state", status_code=204)
async def clear_state(store: LocalStore = Depends(get_store)):
    store.clear()
    logger.info("Cleared stored state")
    return Response(status_code=204)


# ── Growth records ────────────────────────────────────────────

@app.get("/records")
async def list_records(store: LocalStore = Depends(get_store)):
    state = store.load()
    if state.profile is None:
        return [r.to_dict() for r in state.sorted_records(newest_first=True)]
    return [
        state.annotate_record(r, _who_engine).to_dict()
        for r in state.sorted_records(newest_first=True)
    ]


@app.post("/records", status_code=201)
async def add_record(req: RecordRequest, store: LocalStore = Depends(get_store)):
    state = store.load()
    record = state.add_record(GrowthRecord(**req.model_dump()))
    store.save(state)
    if state.profile is None:
        return record.to_dict()
    return state.annotate_record(record, _who_engine).to_dict()


@app.put("/records/{record_id}")
async def update_record(record_id: str, req: RecordRequest,
                        store: LocalStore = Depends(get_store)):
    state = store.load()
    record = GrowthRecord(id=record_id, **req.model_dump())
    if not state.update_record(record):
        raise HTTPException(404, f"Record '{record_id}' not found")
    store.save(state)
    if state.profile is None:
        return record.to_dict()
    return state.annotate_record(record, _who_engine).to_dict()


@app.delete("/records/{record_id}", status_code=204)
async def delete_record(record_id: str, store: LocalStore = Depends(get_store)):
    state = store.load()
    if not state.delete_record(record_id):
        raise HTTPException(404, f"Record '{record_id}' not found")
    store.save(state)
    return Response(status_code=204)


# ── Vaccines ──────────────────────────────────────────────────

@app.get("/vaccines")
async def list_vaccines(store: LocalStore = Depends(get_store)):
    state = store.load()
    return [v.to_dict() for v in state.sorted_vaccines()]


@app.post("/vaccines", status_code=201)
async def add_vaccine(req: VaccineRequest, store: LocalStore = Depends(get_store)):
    state = store.load()
    vaccine = state.add_vaccine(VaccineRecord(**req.model_dump()))
    store.save(state)
    return vaccine.to_dict()


@app.put("/vaccines/{vaccine_id}")
async def update_vaccine(vaccine_id: str, req: VaccineRequest,
                         store: LocalStore = Depends(get_store)):
    state = store.load()
    vaccine = VaccineRecord(id=vaccine_id, **req.model_dump())
    if not state.update_vaccine(vaccine):
        raise HTTPException(404, f"Vaccine '{vaccine_id}' not found")
    store.save(state)
    return vaccine.to_dict()


@app.delete("/vaccines/{vaccine_id}", status_code=204)
async def delete_vaccine(vaccine_id: str, store: LocalStore = Depends(get_store)):
    state = store.load()
    if not state.delete_vaccine(vaccine_id):
        raise HTTPException(404, f"Vaccine '{vaccine_id}' not found")
    store.save(state)
    return Response(status_code=204)


# ── WHO growth standards ──────────────────────────────────────

@app.get("/growth/percentile", response_model=PercentileResponse)
async def get_percentile(
    gender: Gender,
    age_months: float,
    value: float,
    measurement: MeasurementType = Query(..., alias="type"),
):
    z = _who_engine.zscore_of(gender, age_months, measurement, value)
    pct = _who_engine.percentile_of(gender, age_months, measurement, value)
    label = percentile_label(pct) if pct is not None else None
    return PercentileResponse(
        gender=gender, type=measurement, age_months=age_months, value=value,
        z_score=round(z, 3) if z is not None else None,
        percentile=pct,
        label=label.text if label else None,
        severity=label.severity.value if label else None,
    )


@app.get("/growth/curve", response_model=List[CurvePointResponse])
async def get_curve(
    gender: Gender,
    measurement: MeasurementType = Query(..., alias="type"),
    max_age_months: int = Query(MAX_CHART_AGE_MONTHS, ge=0, le=MAX_CHART_AGE_MONTHS),
):
    return _curve(gender, measurement, max_age_months)


@app.get("/growth/curve.csv")
async def get_curve_csv(
    gender: Gender,
    measurement: MeasurementType = Query(..., alias="type"),
    max_age_months: int = Query(MAX_CHART_AGE_MONTHS, ge=0, le=MAX_CHART_AGE_MONTHS),
):
    df = pd.DataFrame(_curve(gender, measurement, max_age_months))
    filename = f"who_{gender.value}_{measurement.value}_0-{max_age_months}m.csv"
    return Response(
        content=df.to_csv(index=False),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@app.get("/growth/percentile-lines")
async def get_percentile_lines(
    gender: Gender,
    measurement: MeasurementType = Query(..., alias="type"),
    percentiles: str = Query("3,15,50,85,97"),
    max_age_months: int = Query(MAX_CHART_AGE_MONTHS, ge=0, le=MAX_CHART_AGE_MONTHS),
):
    pct_list = _parse_percentiles(percentiles)
    lines = []
    for pct in pct_list:
        points = []
        for age in range(0, max_age_months + 1):
            val = _who_engine.value_at_percentile(gender, measurement, age, pct)
            if val is not None and math.isfinite(val):
                points.append(PercentilePoint(age_months=float(age), value=round(val, 2)))
        lines.append(PercentileLine(percentile=pct, points=points))

    return {"gender": gender.value, "type": measurement.value, "lines": lines}


@app.get("/growth/chart")
async def get_chart(
    measurement: MeasurementType = Query(MeasurementType.HEIGHT, alias="type"),
    store: LocalStore = Depends(get_store),
):
    state = store.load()
    profile = _require_profile(state)
    max_age = state.chart_max_age()
    points = [
        {
            "date": r.date.isoformat(),
            "age_months": round(age_in_months(profile.birth_date, r.date), 2),
            "value": r.value_of(measurement),
        }
        for r in state.sorted_records()
    ]
    return {
        "gender": profile.gender.value,
        "type": measurement.value,
        "max_age_months": max_age,
        "curve": _curve(profile.gender, measurement, max_age),
        "points": points,
    }


# ── AI summary ────────────────────────────────────────────────

@app.post("/analysis")
def get_analysis(store: LocalStore = Depends(get_store)):
    state = store.load()
    profile = _require_profile(state)
    return {"summary": analyze_growth(profile, state.records)}


# ── Run ───────────────────────────────────────────────────────

if __name__ == "__main__":
    import uvicorn
    uvicorn.run("src.api.server:app", host=HOST, port=PORT, reload=True)
