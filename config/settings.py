"""
Configuration for the Child Growth Tracker.
"""
import os
from pathlib import Path

# ── Paths ─────────────────────────────────────────────────────
PROJECT_ROOT = Path(__file__).resolve().parent.parent
DATA_DIR = Path(os.environ.get("GROWTH_DATA_DIR", PROJECT_ROOT / "data"))

DATA_DIR.mkdir(parents=True, exist_ok=True)

# ── Storage ───────────────────────────────────────────────────
STORAGE_KEY = os.environ.get("STORAGE_KEY", "littlesprout_data_v1")

# ── Server ────────────────────────────────────────────────────
PORT = int(os.environ.get("PORT", 8000))
HOST = os.environ.get("HOST", "0.0.0.0")
DEBUG = os.environ.get("DEBUG", "false").lower() == "true"
LOG_LEVEL = os.environ.get("LOG_LEVEL", "DEBUG" if DEBUG else "INFO")

# ── Auth (optional) ───────────────────────────────────────────
AUTH_ENABLED = os.environ.get("AUTH_ENABLED", "false").lower() == "true"
AUTH_USERNAME = os.environ.get("AUTH_USERNAME", "admin")
AUTH_PASSWORD = os.environ.get("AUTH_PASSWORD", "changeme")
CORS_ORIGINS = [o.strip() for o in os.environ.get("CORS_ORIGINS", "*").split(",") if o.strip()]

# ── AI summary (Gemini) ───────────────────────────────────────
GEMINI_API_KEY = os.environ.get("GEMINI_API_KEY") or os.environ.get("API_KEY")
GEMINI_MODEL = os.environ.get("GEMINI_MODEL", "gemini-2.0-flash")
GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta/models"
GEMINI_TIMEOUT = int(os.environ.get("GEMINI_TIMEOUT", 30))
SUMMARY_RECORD_LIMIT = 10

# ── Growth standards ──────────────────────────────────────────
MAX_CHART_AGE_MONTHS = 60
MIN_CHART_AGE_MONTHS = 12
DAYS_PER_MONTH = 30.4375
DEFAULT_PERCENTILES = [3, 15, 50, 85, 97]
