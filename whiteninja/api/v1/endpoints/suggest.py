"""
Config Suggestion Endpoint

Asks a small model to read a brief and propose build options plus three
brief-specific questions. Upstream failures degrade to empty suggestions.
"""

import asyncio
import json
import re
from typing import Any, Dict

from fastapi import APIRouter, Depends

from whiteninja.core.config import settings
from whiteninja.core.exceptions import ServiceUnavailableError
from whiteninja.core.logging_config import logger
from whiteninja.schemas.build import SuggestConfigRequest, SuggestConfigResponse, validate_brief
from whiteninja.utils.claude_client import get_claude_client


router = APIRouter(tags=["Suggest"])

JSON_OBJECT_RE = re.compile(r'\{.*\}', re.DOTALL)

SUGGEST_SYSTEM_PROMPT = (
    "You are a senior web project analyst. Analyze website briefs and return JSON config suggestions. "
    "Return ONLY valid JSON with no markdown fences or extra text."
)


def build_suggest_prompt(brief: str) -> str:
    return f"""Analyze this website brief and return a JSON config object.

BRIEF: "{brief}"

Return JSON with this exact structure:
{{
  "suggestedConfig": {{
    "siteType": "landing|portfolio|blog|ecommerce|dashboard|custom",
    "stylePreset": "modern-dark|clean-minimal|bold-colorful|corporate|retro",
    "primaryColor": "#hexcolor",
    "animations": true|false,
    "darkMode": true|false,
    "responsive": true|false,
    "codeQuality": "speed|balanced|perfectionist"
  }},
  "reasoning": "One sentence explaining your config choices based on the brief.",
  "customQuestions": [
    {{
      "id": "unique_snake_case_id",
      "label": "Short question label (max 4 words)",
      "description": "Why this choice matters for this specific project",
      "configKey": "camelCaseKey",
      "options": [
        {{ "value": "val1", "label": "Label 1", "desc": "short benefit" }},
        {{ "value": "val2", "label": "Label 2", "desc": "short benefit" }},
        {{ "value": "val3", "label": "Label 3", "desc": "short benefit" }}
      ],
      "defaultValue": "val1"
    }}
  ]
}}

Rules:
- customQuestions: exactly 3 questions SPECIFIC to this brief, each with exactly 3 options.
- primaryColor: a hex color that fits the visual vibe described in the brief.
- Be opinionated: pre-select the most sensible defaults.
- No generic questions like "What framework?" or "Mobile or desktop?"."""


def extract_suggestions(text: str) -> Dict[str, Any]:
    """Pull the first {...} span out of a model reply"""
    if not text.strip():
        raise ValueError("Empty response from API")
    match = JSON_OBJECT_RE.search(text)
    if not match:
        raise ValueError("No JSON in response")
    data = json.loads(match.group(0))
    if not isinstance(data, dict):
        raise ValueError("Suggestion JSON is not an object")
    return data


@router.post("/suggest-config", response_model=SuggestConfigResponse)
async def suggest_config(request: SuggestConfigRequest, client=Depends(get_claude_client)):
    """
    Suggest build options for a brief.

    Raises:
        ValidationError: brief missing or out of bounds (400)
        ServiceUnavailableError: no API key configured (503)
    """
    brief = validate_brief(request.brief)

    if not settings.has_valid_api_key:
        raise ServiceUnavailableError()

    last_error = None
    for attempt in range(1, settings.API_RETRY_COUNT + 1):
        try:
            response = await client.generate(
                prompt=build_suggest_prompt(brief),
                system_prompt=SUGGEST_SYSTEM_PROMPT,
                model=settings.CLAUDE_SUGGEST_MODEL,
                max_tokens=settings.CLAUDE_SUGGEST_MAX_TOKENS,
            )
            suggestions = extract_suggestions(response.get("content") or "")
            return SuggestConfigResponse.model_validate(suggestions)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            last_error = e
            if attempt < settings.API_RETRY_COUNT:
                delay = settings.API_RETRY_BASE_DELAY * (2 ** (attempt - 1))
                logger.warning(
                    f"[SuggestConfig] Attempt {attempt}/{settings.API_RETRY_COUNT} failed, "
                    f"retrying in {delay:g}s: {e}"
                )
                await asyncio.sleep(delay)

    logger.error(f"[SuggestConfig] All {settings.API_RETRY_COUNT} attempts failed: {last_error}")
    return SuggestConfigResponse()
