"""
Health Classifier Service
=========================
Decides whether one vital-sign value is typical for a patient profile.

Precedence is fixed: cache > Gemini > threshold table.

    1. Cache: a prior answer for the same normalised profile + stat + value
       is returned as-is (only when a user id is known).
    2. Gemini: one request per configured model, in order, stopping at the
       first usable reply. Authentication or availability failures trip the
       circuit breaker, which keeps every later call off the remote path.
    3. Threshold table: static age-bucketed ranges (services.thresholds).

Whichever step answers, the result is written back to the cache.

Reply parsing defaults to a strict grammar (the reply must be exactly
"true" or "false"). The legacy substring rule, where any reply that
merely contains "true" counts as typical, is kept behind
``classifier_response_parsing = "substring"`` so the defect can be
reproduced. It misreads replies like "this is not true... actually false".
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from baymax.config import Settings, get_settings
from baymax.models.health_check import (
    STAT_UNITS,
    HealthCheckRequest,
    HealthCheckResponse,
    HealthProfile,
)
from baymax.services import thresholds
from baymax.services.analysis_cache import AnalysisCache, HealthCheckKey
from baymax.services.gemini import GeminiAPIError, GeminiClient

logger = logging.getLogger(__name__)

_PROMPT = """\
Act as a clinical data analyzer.
User Profile: {sex}, {age}yo, {weight}kg, {height}cm, conditions: {conditions}.
Question: Is a {stat_name} of {stat_value:g} {unit} within the typical statistical range for this profile?
Answer only with "true" or "false"."""


class ClassifierResponseError(ValueError):
    """Gemini replied with something outside the true/false grammar."""


# ---------------------------------------------------------------------------
# Circuit breaker
# ---------------------------------------------------------------------------

class CircuitBreaker:
    """Once tripped, stays open until reset() is called."""

    def __init__(self) -> None:
        self._open = False
        self.reason: Optional[str] = None

    @property
    def is_open(self) -> bool:
        return self._open

    def trip(self, reason: str) -> None:
        if not self._open:
            logger.warning("Gemini circuit breaker tripped: %s", reason)
        self._open = True
        self.reason = reason

    def reset(self) -> None:
        self._open = False
        self.reason = None


# ---------------------------------------------------------------------------
# Reply parsing
# ---------------------------------------------------------------------------

def parse_strict(reply: str) -> bool:
    """Accept exactly "true" or "false", ignoring case, quotes and a trailing period."""
    token = reply.strip().strip("`'\".").strip().lower()
    if token == "true":
        return True
    if token == "false":
        return False
    raise ClassifierResponseError(f"Unexpected classifier reply: {reply[:50]!r}")


def parse_substring(reply: str) -> bool:
    """Legacy rule: any reply containing "true" is typical."""
    return "true" in reply.strip().lower()


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------

class HealthClassifierService:
    """Classifies vital signs as typical/atypical with cache and fallbacks."""

    def __init__(
        self,
        settings: Settings | None = None,
        cache: AnalysisCache | None = None,
        breaker: CircuitBreaker | None = None,
        gemini: GeminiClient | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._cache = cache or AnalysisCache()
        self.breaker = breaker or CircuitBreaker()
        if gemini is None and self._settings.gemini_configured:
            gemini = GeminiClient(self._settings.gemini_api_key, self._settings.gemini_base_url)
        self._gemini = gemini
        if self._settings.classifier_response_parsing == "substring":
            self._parse = parse_substring
        else:
            self._parse = parse_strict

    @property
    def remote_available(self) -> bool:
        return (
            self._gemini is not None
            and self._settings.enable_ai_classification
            and not self.breaker.is_open
        )

    async def check(
        self, request: HealthCheckRequest, user_id: Optional[str] = None
    ) -> HealthCheckResponse:
        """Classify one stat. Never raises for remote or cache failures."""
        key = HealthCheckKey.from_request(request)

        if user_id:
            cached = await self._cache.get_health_check(user_id, key)
            if cached is not None:
                return HealthCheckResponse(is_typical=cached, stat_name=request.stat_name)

        is_typical = await self._classify_remote(request)
        if is_typical is None:
            is_typical = thresholds.is_typical(request.stat_name, request.stat_value, request.age)
            logger.info(
                "Threshold fallback for %s (%s): %s",
                request.stat_name, request.stat_value, is_typical,
            )

        if user_id:
            await self._cache.set_health_check(user_id, key, is_typical)
        return HealthCheckResponse(is_typical=is_typical, stat_name=request.stat_name)

    async def check_all(
        self,
        profile: HealthProfile,
        heart_rate_avg: float,
        respiration_rate_avg: float,
        mood_score: float,
        user_id: Optional[str] = None,
    ) -> list[HealthCheckResponse]:
        """Check heartbeat, respiration rate and mood concurrently."""
        requests = [
            HealthCheckRequest(
                **profile.model_dump(),
                stat_name=stat_name,
                stat_value=value,
                unit=STAT_UNITS[stat_name],
            )
            for stat_name, value in (
                ("heartbeat", heart_rate_avg),
                ("respiration rate", respiration_rate_avg),
                ("mood", mood_score),
            )
        ]
        return list(await asyncio.gather(*(self.check(r, user_id) for r in requests)))

    async def _classify_remote(self, request: HealthCheckRequest) -> Optional[bool]:
        """Return Gemini's answer, or None if no model gave a usable one."""
        if not self.remote_available:
            return None

        prompt = _PROMPT.format(
            sex=request.sex,
            age=request.age,
            weight=request.weight,
            height=request.height,
            conditions=request.conditions,
            stat_name=request.stat_name,
            stat_value=request.stat_value,
            unit=request.unit or STAT_UNITS.get(request.stat_name, ""),
        )

        for model in self._settings.gemini_models:
            # Another concurrent check may have tripped the breaker
            if self.breaker.is_open:
                return None
            logger.info("Gemini request: %s (%s) with %s", request.stat_name, request.stat_value, model)
            try:
                reply = await self._gemini.generate_text(
                    model,
                    prompt,
                    temperature=self._settings.classifier_temperature,
                    max_output_tokens=self._settings.classifier_max_output_tokens,
                )
                is_typical = self._parse(reply)
            except GeminiAPIError as exc:
                logger.warning("Gemini model %s failed: %s", model, exc)
                if exc.is_fatal:
                    self.breaker.trip(str(exc))
                    return None
                continue
            except ClassifierResponseError as exc:
                logger.warning("Gemini model %s gave an unusable reply: %s", model, exc)
                continue

            logger.info("Gemini model %s result: %s", model, reply.strip())
            return is_typical

        return None


# ---------------------------------------------------------------------------
# Singleton
# ---------------------------------------------------------------------------

_default_classifier: HealthClassifierService | None = None


def get_health_classifier() -> HealthClassifierService:
    global _default_classifier
    if _default_classifier is None:
        _default_classifier = HealthClassifierService()
    return _default_classifier
