"""
Tests for HealthClassifierService
=================================
Covers:
- Threshold table: documented ranges and age buckets
- Cache hit short-circuits remote and threshold paths
- Gemini reply used when available; model fallback order
- Strict reply grammar rejects ambiguous replies (falls back)
- Legacy substring parsing reproduces the "contains true" defect
- Circuit breaker trips on invalid key and keeps later calls off the remote path
- Breaker is per-service state and can be reset
- Result written back to the cache whichever path produced it
- check_all runs the three stats and returns all results
- Cache keys normalise whitespace/case in free-text fields

Run: pytest tests/test_health_classifier.py -v
"""

from __future__ import annotations

import json
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
import respx
from httpx import Response

from baymax.config import Settings
from baymax.models.health_check import HealthCheckRequest, HealthProfile
from baymax.services import thresholds
from baymax.services.analysis_cache import HealthCheckKey
from baymax.services.gemini import GeminiAPIError, GeminiClient
from baymax.services.health_classifier import (
    CircuitBreaker,
    ClassifierResponseError,
    HealthClassifierService,
    parse_strict,
    parse_substring,
)

_BASE_URL = "https://gemini.test/v1beta"
_FLASH_URL = f"{_BASE_URL}/models/gemini-1.5-flash:generateContent"
_PRO_URL = f"{_BASE_URL}/models/gemini-1.5-pro:generateContent"

USER_ID = "user-123"


def _settings(**overrides) -> Settings:
    values = {
        "gemini_api_key": "test-key",
        "gemini_base_url": _BASE_URL,
        "enable_ai_classification": True,
    }
    values.update(overrides)
    return Settings(**values)


def _gemini_reply(text: str) -> Response:
    return Response(200, json={
        "candidates": [{"content": {"parts": [{"text": text}]}}],
    })


def _request(stat_name: str = "heartbeat", stat_value: float = 75, age: int = 30, **kw) -> HealthCheckRequest:
    values = {
        "sex": "Female",
        "age": age,
        "weight": "60 kg",
        "height": "165 cm",
        "conditions": "None",
        "stat_name": stat_name,
        "stat_value": stat_value,
        "unit": "bpm",
    }
    values.update(kw)
    return HealthCheckRequest(**values)


def _fake_cache(cached: bool | None = None) -> MagicMock:
    cache = MagicMock()
    cache.get_health_check = AsyncMock(return_value=cached)
    cache.set_health_check = AsyncMock()
    return cache


def _service(settings: Settings | None = None, cache: MagicMock | None = None,
             breaker: CircuitBreaker | None = None) -> HealthClassifierService:
    return HealthClassifierService(
        settings=settings or _settings(),
        cache=cache or _fake_cache(),
        breaker=breaker,
    )


# ---------------------------------------------------------------------------
# Threshold table
# ---------------------------------------------------------------------------

class TestThresholds:

    def test_child_heartbeat_typical(self):
        assert thresholds.is_typical("heartbeat", 90, age=10) is True

    def test_child_heartbeat_atypical(self):
        assert thresholds.is_typical("heartbeat", 140, age=10) is False

    def test_adult_respiration_atypical(self):
        assert thresholds.is_typical("respiration rate", 10, age=30) is False

    def test_mood_typical(self):
        assert thresholds.is_typical("mood", 5, age=30) is True

    def test_bounds_inclusive(self):
        assert thresholds.is_typical("heartbeat", 60, age=30) is True
        assert thresholds.is_typical("heartbeat", 100, age=30) is True
        assert thresholds.is_typical("heartbeat", 101, age=30) is False

    def test_age_12_uses_adult_range(self):
        assert thresholds.typical_range("respiration rate", 12) == (12, 20)
        assert thresholds.typical_range("respiration rate", 11) == (18, 30)

    def test_unknown_stat_is_typical(self):
        assert thresholds.is_typical("blood sugar", 999, age=30) is True


# ---------------------------------------------------------------------------
# Reply parsing
# ---------------------------------------------------------------------------

class TestParsing:

    @pytest.mark.parametrize("reply,expected", [
        ("true", True),
        ("False", False),
        (" TRUE.\n", True),
        ('"false"', False),
    ])
    def test_strict_accepts_grammar(self, reply, expected):
        assert parse_strict(reply) is expected

    @pytest.mark.parametrize("reply", [
        "this is not true... actually false",
        "untrue",
        "yes",
        "",
    ])
    def test_strict_rejects_everything_else(self, reply):
        with pytest.raises(ClassifierResponseError):
            parse_strict(reply)

    def test_substring_defect(self):
        """Known defect: any reply containing "true" reads as typical."""
        assert parse_substring("this is not true... actually false") is True
        assert parse_substring("untrue") is True
        assert parse_substring("false") is False


# ---------------------------------------------------------------------------
# Cache
# ---------------------------------------------------------------------------

class TestCache:

    @pytest.mark.asyncio
    @respx.mock
    async def test_cache_hit_skips_remote_and_threshold(self):
        route = respx.post(_FLASH_URL).mock(return_value=_gemini_reply("true"))
        cache = _fake_cache(cached=False)
        svc = _service(cache=cache)

        # 75 bpm would be typical by the table; the cached False wins
        result = await svc.check(_request(stat_value=75), user_id=USER_ID)

        assert result.is_typical is False
        assert result.stat_name == "heartbeat"
        assert route.call_count == 0
        cache.set_health_check.assert_not_called()

    @pytest.mark.asyncio
    async def test_no_user_id_skips_cache(self):
        cache = _fake_cache(cached=False)
        svc = _service(settings=_settings(gemini_api_key=""), cache=cache)

        result = await svc.check(_request(stat_value=75))

        assert result.is_typical is True
        cache.get_health_check.assert_not_called()
        cache.set_health_check.assert_not_called()

    @pytest.mark.asyncio
    async def test_threshold_result_written_to_cache(self):
        cache = _fake_cache()
        svc = _service(settings=_settings(gemini_api_key=""), cache=cache)

        await svc.check(_request(stat_value=140), user_id=USER_ID)

        cache.set_health_check.assert_awaited_once()
        user_id, key, is_typical = cache.set_health_check.await_args.args
        assert user_id == USER_ID
        assert key.stat_name == "heartbeat"
        assert is_typical is False

    def test_key_normalises_free_text(self):
        a = HealthCheckKey.from_request(_request(sex="Male", weight="70 kg", height="180 cm"))
        b = HealthCheckKey.from_request(_request(sex="male", weight="70kg", height=" 180CM "))
        assert a == b
        assert a.digest() == b.digest()

    def test_key_canonicalises_value(self):
        a = HealthCheckKey.from_request(_request(stat_value=72))
        b = HealthCheckKey.from_request(_request(stat_value=72.0))
        assert a.digest() == b.digest()

    def test_key_keeps_full_precision(self):
        # Just above the adult upper bound must not reuse the boundary answer
        boundary = HealthCheckKey.from_request(_request(stat_value=100.0))
        above = HealthCheckKey.from_request(_request(stat_value=100.00001))
        assert boundary.digest() != above.digest()

    def test_key_differs_by_stat(self):
        a = HealthCheckKey.from_request(_request(stat_name="heartbeat", stat_value=15))
        b = HealthCheckKey.from_request(_request(stat_name="respiration rate", stat_value=15))
        assert a.digest() != b.digest()


# ---------------------------------------------------------------------------
# Remote path
# ---------------------------------------------------------------------------

class TestRemote:

    @pytest.mark.asyncio
    @respx.mock
    async def test_gemini_reply_overrides_table(self):
        route = respx.post(_FLASH_URL).mock(return_value=_gemini_reply("false"))
        svc = _service()

        # 75 bpm is typical by the table, Gemini says otherwise
        result = await svc.check(_request(stat_value=75), user_id=USER_ID)

        assert result.is_typical is False
        assert route.call_count == 1
        body = json.loads(route.calls.last.request.content)
        prompt = body["contents"][0]["parts"][0]["text"]
        assert "heartbeat of 75 bpm" in prompt
        assert body["generationConfig"]["maxOutputTokens"] == 5
        assert route.calls.last.request.url.params["key"] == "test-key"

    @pytest.mark.asyncio
    @respx.mock
    async def test_falls_back_to_second_model(self):
        flash = respx.post(_FLASH_URL).mock(return_value=Response(500, text="internal"))
        pro = respx.post(_PRO_URL).mock(return_value=_gemini_reply("true"))
        svc = _service()

        result = await svc.check(_request(stat_value=140))

        assert result.is_typical is True
        assert flash.call_count == 1
        assert pro.call_count == 1

    @pytest.mark.asyncio
    @respx.mock
    async def test_all_models_fail_uses_table(self):
        respx.post(_FLASH_URL).mock(return_value=Response(500, text="internal"))
        respx.post(_PRO_URL).mock(return_value=Response(503, text="unavailable"))
        svc = _service()

        result = await svc.check(_request(stat_value=140))

        assert result.is_typical is False
        assert svc.breaker.is_open is False

    @pytest.mark.asyncio
    @respx.mock
    async def test_non_json_reply_falls_back_to_table(self):
        respx.post(_FLASH_URL).mock(return_value=Response(200, text="<html>captive portal</html>"))
        respx.post(_PRO_URL).mock(return_value=Response(200, text="<html>captive portal</html>"))
        svc = _service()

        result = await svc.check(_request(stat_value=75), user_id=USER_ID)

        assert result.is_typical is True
        assert svc.breaker.is_open is False

    @pytest.mark.asyncio
    @respx.mock
    async def test_strict_mode_ambiguous_reply_falls_back(self):
        respx.post(_FLASH_URL).mock(return_value=_gemini_reply("this is not true... actually false"))
        respx.post(_PRO_URL).mock(return_value=_gemini_reply("maybe"))
        svc = _service()

        result = await svc.check(_request(stat_value=140))

        # Threshold table: 140 bpm is atypical for an adult
        assert result.is_typical is False

    @pytest.mark.asyncio
    @respx.mock
    async def test_substring_mode_reproduces_defect(self):
        respx.post(_FLASH_URL).mock(return_value=_gemini_reply("this is not true... actually false"))
        svc = _service(settings=_settings(classifier_response_parsing="substring"))

        result = await svc.check(_request(stat_value=140))

        assert result.is_typical is True

    @pytest.mark.asyncio
    @respx.mock
    async def test_ai_disabled_never_calls_remote(self):
        route = respx.post(_FLASH_URL).mock(return_value=_gemini_reply("true"))
        svc = _service(settings=_settings(enable_ai_classification=False))

        result = await svc.check(_request(stat_value=140))

        assert result.is_typical is False
        assert route.call_count == 0

    def test_placeholder_key_means_no_remote(self):
        svc = _service(settings=_settings(gemini_api_key="your_api_key_here"))
        assert svc.remote_available is False


# ---------------------------------------------------------------------------
# Circuit breaker
# ---------------------------------------------------------------------------

class TestCircuitBreaker:

    @pytest.mark.asyncio
    @respx.mock
    async def test_invalid_key_trips_breaker_for_later_calls(self):
        flash = respx.post(_FLASH_URL).mock(return_value=Response(
            400, json={"error": {"status": "INVALID_ARGUMENT", "details": [{"reason": "API_KEY_INVALID"}]}},
        ))
        pro = respx.post(_PRO_URL).mock(return_value=_gemini_reply("true"))
        svc = _service()

        first = await svc.check(_request(stat_name="heartbeat", stat_value=140), user_id="user-a")
        assert svc.breaker.is_open is True
        assert first.is_typical is False  # table
        assert pro.call_count == 0  # model loop aborted

        second = await svc.check(
            _request(stat_name="respiration rate", stat_value=10, unit="breaths/min"),
            user_id="user-b",
        )

        assert second.is_typical is False  # table
        assert flash.call_count == 1
        assert pro.call_count == 0

    @pytest.mark.asyncio
    @respx.mock
    async def test_connection_error_trips_breaker(self):
        respx.post(_FLASH_URL).mock(side_effect=httpx.ConnectError("blocked"))
        svc = _service()

        await svc.check(_request())

        assert svc.breaker.is_open is True

    @pytest.mark.asyncio
    @respx.mock
    async def test_breaker_is_per_service(self):
        respx.post(_FLASH_URL).mock(return_value=Response(403, text="PERMISSION_DENIED"))
        tripped = _service()
        await tripped.check(_request())

        fresh = _service()

        assert tripped.breaker.is_open is True
        assert fresh.breaker.is_open is False

    @pytest.mark.asyncio
    @respx.mock
    async def test_reset_restores_remote(self):
        route = respx.post(_FLASH_URL).mock(return_value=_gemini_reply("true"))
        breaker = CircuitBreaker()
        breaker.trip("test")
        svc = _service(breaker=breaker)

        await svc.check(_request(stat_value=140))
        assert route.call_count == 0

        breaker.reset()
        result = await svc.check(_request(stat_value=140))

        assert route.call_count == 1
        assert result.is_typical is True


# ---------------------------------------------------------------------------
# check_all
# ---------------------------------------------------------------------------

class TestCheckAll:

    @pytest.mark.asyncio
    async def test_returns_three_results_in_order(self):
        svc = _service(settings=_settings(gemini_api_key=""))
        profile = HealthProfile(sex="Male", age=10, weight="35kg", height="140cm")

        results = await svc.check_all(profile, heart_rate_avg=90, respiration_rate_avg=35, mood_score=5)

        assert [r.stat_name for r in results] == ["heartbeat", "respiration rate", "mood"]
        assert [r.is_typical for r in results] == [True, False, True]

    @pytest.mark.asyncio
    async def test_uses_units_for_each_stat(self):
        svc = _service(settings=_settings(gemini_api_key=""))
        seen = []
        original = svc.check

        async def spy(request, user_id=None):
            seen.append((request.stat_name, request.unit))
            return await original(request, user_id)

        svc.check = spy
        profile = HealthProfile(sex="Male", age=30)
        await svc.check_all(profile, 70, 15, 6)

        assert ("heartbeat", "bpm") in seen
        assert ("respiration rate", "breaths/min") in seen
        assert ("mood", "score (1-10)") in seen


class TestGeminiClient:

    @pytest.mark.asyncio
    @respx.mock
    async def test_joins_reply_parts(self):
        respx.post(_FLASH_URL).mock(return_value=Response(200, json={
            "candidates": [{"content": {"parts": [{"text": "tr"}, {"text": "ue"}]}}],
        }))
        client = GeminiClient("k", _BASE_URL)

        text = await client.generate_text("gemini-1.5-flash", "prompt", 0.1, 5)

        assert text == "true"

    @pytest.mark.asyncio
    @respx.mock
    async def test_non_json_body_raises_api_error(self):
        respx.post(_FLASH_URL).mock(return_value=Response(200, text="<html>oops</html>"))
        client = GeminiClient("k", _BASE_URL)

        with pytest.raises(GeminiAPIError) as exc_info:
            await client.generate_text("gemini-1.5-flash", "prompt", 0.1, 5)

        assert exc_info.value.status_code == 200
        assert exc_info.value.is_fatal is False
