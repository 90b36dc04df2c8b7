"""Tests for the AI analysis collaborator and its fallback."""

import json
from unittest.mock import MagicMock

import pytest

from ecolens.analysis import FALLBACK_ANALYSIS, analyze, parse_reply, to_data_url
from ecolens.results import EncodedPayload
from ecolens.settings import AnalyzerSettings, OutputFormat


SETTINGS = AnalyzerSettings(api_key="sk-test", model="test-model", max_tokens=50, temperature=0.1)


def _client_replying(content):
    client = MagicMock()
    completion = MagicMock()
    completion.choices[0].message.content = content
    client.chat.completions.create.return_value = completion
    return client


@pytest.mark.asyncio
async def test_analyze_parses_json_reply():
    reply = json.dumps({"description": " A fern ", "keywords": ["fern", "green", ""], "ecoTip": "Grow slow."})
    client = _client_replying(reply)

    result = await analyze(b"\x89PNG", "image/png", settings=SETTINGS, client=client)

    assert result.description == "A fern"
    assert result.keywords == ["fern", "green"]
    assert result.eco_tip == "Grow slow."

    kwargs = client.chat.completions.create.call_args.kwargs
    assert kwargs["model"] == "test-model"
    assert kwargs["max_tokens"] == 50
    image_part = kwargs["messages"][1]["content"][1]
    assert image_part["image_url"]["url"].startswith("data:image/png;base64,")


@pytest.mark.asyncio
async def test_analyze_falls_back_on_service_error():
    client = MagicMock()
    client.chat.completions.create.side_effect = RuntimeError("boom")

    result = await analyze(b"data", "image/jpeg", settings=SETTINGS, client=client)

    assert result == FALLBACK_ANALYSIS


@pytest.mark.asyncio
@pytest.mark.parametrize("reply", ["", "not json", "[1, 2]", json.dumps({"description": "x"})])
async def test_analyze_falls_back_on_bad_reply(reply):
    result = await analyze(b"data", "image/jpeg", settings=SETTINGS, client=_client_replying(reply))

    assert result == FALLBACK_ANALYSIS


@pytest.mark.asyncio
async def test_analyze_without_key_falls_back():
    result = await analyze(b"data", "image/jpeg", settings=AnalyzerSettings(api_key=None))

    assert result is FALLBACK_ANALYSIS


def test_fallback_is_clearly_labeled():
    assert FALLBACK_ANALYSIS.description == "Image analysis unavailable."
    assert FALLBACK_ANALYSIS.keywords == ["error", "retry"]


def test_to_data_url_variants():
    payload = EncodedPayload(data=b"abc", format=OutputFormat.WEBP, quality=0.8, width=1, height=1)

    assert to_data_url(b"abc", "image/png") == "data:image/png;base64,YWJj"
    assert to_data_url(payload, "ignored") == "data:image/webp;base64,YWJj"
    assert to_data_url("data:image/jpeg;base64,YWJj", "image/png") == "data:image/png;base64,YWJj"


def test_parse_reply_accepts_snake_case_tip():
    result = parse_reply(json.dumps({"description": "d", "keywords": ["a"], "eco_tip": "t"}))
    assert result.eco_tip == "t"


def test_settings_from_env(monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "sk-env")
    monkeypatch.setenv("ECOLENS_MODEL", "other-model")
    monkeypatch.delenv("ECOLENS_MAX_TOKENS", raising=False)

    s = AnalyzerSettings.from_env()

    assert s.api_key == "sk-env"
    assert s.model == "other-model"
    assert s.max_tokens == 400
