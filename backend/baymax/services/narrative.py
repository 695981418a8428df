"""
Session Narrative Service
=========================
Writes a short plain-language summary of one session for the patient
and caretaker.

Same fallback discipline as the classifier: cache, then Gemini, then a
deterministic template built from the threshold table. The cache key
uses *rounded* stats, so two sessions that round to the same numbers
share a narrative. The text is advisory and nothing else reads it as
state.

Gemini 429s carry a hint like "Please retry in 37s"; we wait that long
and retry up to ``narrative_rate_limit_retries`` times before falling
back to the template.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from baymax.config import Settings, get_settings
from baymax.models.health_check import (
    HealthProfile,
    NarrativeResponse,
    SessionStats,
)
from baymax.models.session import StatBlock
from baymax.services import thresholds
from baymax.services.analysis_cache import AnalysisCache, SessionAnalysisKey
from baymax.services.gemini import GeminiAPIError, GeminiClient

logger = logging.getLogger(__name__)

# Spread (max - min) within one session above which we call it variable
PULSE_VARIABILITY_BPM = 30
BREATHING_VARIABILITY = 10

# Used when the hint is missing from a 429
_DEFAULT_RETRY_SECONDS = 5.0

CARETAKER_SENTENCE = (
    "Your caretaker will be notified so they can review this session with you."
)

_PROMPT = """\
Act as a clinical data summarizer writing for a patient and their caretaker.
User Profile: {sex}, {age}yo, {weight}kg, {height}cm, conditions: {conditions}.
Session statistics:
- Heart rate: average {pulse_avg} bpm (min {pulse_min}, max {pulse_max})
- Breathing: average {breath_avg} breaths/min (min {breath_min}, max {breath_max})
- Mood: {mood}
Write two or three calm, plain sentences describing this session relative to \
typical ranges for this profile. Do not diagnose."""


class SessionNarrativeService:
    """Produces and caches per-session narratives."""

    def __init__(
        self,
        settings: Settings | None = None,
        cache: AnalysisCache | None = None,
        gemini: GeminiClient | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._cache = cache or AnalysisCache()
        if gemini is None and self._settings.gemini_configured:
            gemini = GeminiClient(self._settings.gemini_api_key, self._settings.gemini_base_url)
        self._gemini = gemini

    async def generate(
        self,
        profile: HealthProfile,
        stats: SessionStats,
        user_id: Optional[str] = None,
    ) -> NarrativeResponse:
        key = SessionAnalysisKey.from_inputs(profile, stats)

        if user_id:
            cached = await self._cache.get_session_analysis(user_id, key)
            if cached:
                return NarrativeResponse(analysis=cached, source="cache")

        analysis = await self._generate_remote(profile, stats)
        source = "gemini"
        if not analysis:
            analysis = build_template_narrative(profile, stats)
            source = "template"

        if user_id:
            await self._cache.set_session_analysis(user_id, key, profile, stats, analysis)
        return NarrativeResponse(analysis=analysis, source=source)

    async def _generate_remote(self, profile: HealthProfile, stats: SessionStats) -> Optional[str]:
        if self._gemini is None or not self._settings.enable_ai_classification:
            return None

        prompt = _PROMPT.format(
            sex=profile.sex,
            age=profile.age,
            weight=profile.weight,
            height=profile.height,
            conditions=profile.conditions,
            pulse_avg=_fmt(stats.pulse.average),
            pulse_min=_fmt(stats.pulse.min),
            pulse_max=_fmt(stats.pulse.max),
            breath_avg=_fmt(stats.breathing.average),
            breath_min=_fmt(stats.breathing.min),
            breath_max=_fmt(stats.breathing.max),
            mood="not recorded" if stats.mood is None else f"{_fmt(stats.mood)}/10",
        )
        model = self._settings.gemini_narrative_model
        retries_left = self._settings.narrative_rate_limit_retries

        while True:
            try:
                text = await self._gemini.generate_text(
                    model,
                    prompt,
                    temperature=self._settings.narrative_temperature,
                    max_output_tokens=self._settings.narrative_max_output_tokens,
                )
            except GeminiAPIError as exc:
                if exc.is_rate_limited and retries_left > 0:
                    delay = exc.retry_after or _DEFAULT_RETRY_SECONDS
                    logger.warning("Gemini rate limited, retrying in %.1fs", delay)
                    retries_left -= 1
                    await asyncio.sleep(delay)
                    continue
                logger.warning("Gemini narrative failed, using template: %s", exc)
                return None
            return text.strip() or None


# ---------------------------------------------------------------------------
# Template fallback
# ---------------------------------------------------------------------------

def _fmt(value: Optional[float]) -> str:
    if value is None:
        return "n/a"
    return f"{value:g}"


def _spread(block: StatBlock) -> float:
    if block.min is None or block.max is None:
        return 0.0
    return block.max - block.min


def build_template_narrative(profile: HealthProfile, stats: SessionStats) -> str:
    """Deterministic summary built from the threshold table."""
    sentences = []
    out_of_range = []

    checks = [
        ("heartbeat", "Heart rate", stats.pulse.average, "bpm"),
        ("respiration rate", "Breathing rate", stats.breathing.average, "breaths/min"),
    ]
    if stats.mood is not None:
        checks.append(("mood", "Mood", stats.mood, "out of 10"))

    for stat_name, label, value, unit in checks:
        if value is None:
            continue
        low, high = thresholds.typical_range(stat_name, profile.age)
        if thresholds.is_typical(stat_name, value, profile.age):
            sentences.append(
                f"{label} averaged {_fmt(value)} {unit}, within the typical range "
                f"of {_fmt(low)}-{_fmt(high)}."
            )
        else:
            direction = "above" if value > high else "below"
            out_of_range.append(label)
            sentences.append(
                f"{label} averaged {_fmt(value)} {unit}, {direction} the typical range "
                f"of {_fmt(low)}-{_fmt(high)}."
            )

    variable = (
        _spread(stats.pulse) > PULSE_VARIABILITY_BPM
        or _spread(stats.breathing) > BREATHING_VARIABILITY
    )
    if variable:
        sentences.append("Readings varied noticeably during the session.")

    if not sentences:
        sentences.append("Not enough data was recorded to summarise this session.")
    elif not out_of_range and not variable:
        sentences.append("Overall this session looks stable.")

    if out_of_range or variable:
        sentences.append(CARETAKER_SENTENCE)

    return " ".join(sentences)


# ---------------------------------------------------------------------------
# Singleton
# ---------------------------------------------------------------------------

_default_service: SessionNarrativeService | None = None


def get_narrative_service() -> SessionNarrativeService:
    global _default_service
    if _default_service is None:
        _default_service = SessionNarrativeService()
    return _default_service
