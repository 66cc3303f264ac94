"""
AI growth summary via the Gemini generateContent REST API.

Returns a short natural-language paragraph about the child's recent growth.
Missing credentials and request failures degrade to a fixed message instead
of raising, so callers can always display the result.
"""
import json
import logging
from typing import List

import requests

from config.settings import (
    GEMINI_API_KEY, GEMINI_BASE_URL, GEMINI_MODEL, GEMINI_TIMEOUT,
    SUMMARY_RECORD_LIMIT,
)
from src.models.data_structures import ChildProfile, GrowthRecord

logger = logging.getLogger(__name__)

MISSING_KEY_MESSAGE = "API Key missing. Cannot generate analysis."
EMPTY_RESPONSE_MESSAGE = "Could not generate analysis."
FAILURE_MESSAGE = (
    "Sorry, I couldn't analyze the data at this moment. "
    "Please check your connection or API key."
)

PROMPT_TEMPLATE = """
You are a helpful pediatric growth assistant.
Please analyze the following growth data for a child.

Child Profile:
- Name: {name}
- Gender: {gender}
- Birth Date: {birth_date}

Recent Growth Records (Height in cm, Weight in kg):
{records}

Task:
1. Calculate the current age based on the last record or today's date.
2. Compare the latest stats roughly against WHO child growth standards (percentiles).
3. Provide a brief, encouraging summary of their growth trend.
4. Mention if the growth seems steady or if there are any sudden changes.
5. Keep the tone warm, reassuring, and professional.
6. IMPORTANT: Add a disclaimer that you are an AI and this is not medical advice.

Output format: a short paragraph (max 150 words).
"""


def build_prompt(profile: ChildProfile, records: List[GrowthRecord],
                 limit: int = SUMMARY_RECORD_LIMIT) -> str:
    recent = sorted(records, key=lambda r: r.date)[-limit:]
    return PROMPT_TEMPLATE.format(
        name=profile.name,
        gender=profile.gender.value,
        birth_date=profile.birth_date.isoformat(),
        records=json.dumps([r.to_dict() for r in recent], indent=2, ensure_ascii=False),
    )


def _extract_text(payload: dict) -> str:
    try:
        return payload["candidates"][0]["content"]["parts"][0]["text"].strip()
    except (KeyError, IndexError, TypeError, AttributeError):
        return ""


def analyze_growth(profile: ChildProfile, records: List[GrowthRecord],
                   api_key: str = None, model: str = None,
                   timeout: int = GEMINI_TIMEOUT) -> str:
    api_key = api_key or GEMINI_API_KEY
    if not api_key:
        logger.warning("Gemini API key not found in environment variables")
        return MISSING_KEY_MESSAGE

    url = f"{GEMINI_BASE_URL}/{model or GEMINI_MODEL}:generateContent"
    body = {"contents": [{"parts": [{"text": build_prompt(profile, records)}]}]}

    try:
        resp = requests.post(
            url, params={"key": api_key}, json=body,
            headers={"Content-Type": "application/json"}, timeout=timeout,
        )
        resp.raise_for_status()
        text = _extract_text(resp.json())
    except (requests.RequestException, ValueError) as e:
        logger.error("Error generating growth analysis: %s", e)
        return FAILURE_MESSAGE

    return text or EMPTY_RESPONSE_MESSAGE
