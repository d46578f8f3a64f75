import json
from types import SimpleNamespace

import httpx
import openai
import pytest

import dataset_ai
import settings
from dataset_ai import (
    AIInsight,
    InsightError,
    InsightTimeoutError,
    MissingApiKeyError,
    build_prompt,
    suggest_kpis,
)

INSIGHT = {
    "context": "Sales data",
    "kpis": [
        {
            "title": "Revenue by region",
            "description": "Total sales per region.",
            "chartConfig": {
                "chartType": "bar",
                "xAxisColumn": "region",
                "yAxisOperation": "sum",
                "yAxisColumn": "sales",
            },
        }
    ],
}


class FakeCompletions:
    def __init__(self, content=None, error=None):
        self.content = content
        self.error = error
        self.calls = []

    def create(self, **kwargs):
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        if self.content is None:
            return SimpleNamespace(choices=[])
        message = SimpleNamespace(content=self.content)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def _install(monkeypatch, content=None, error=None):
    completions = FakeCompletions(content, error)
    keys = []

    def fake_client(api_key):
        keys.append(api_key)
        return SimpleNamespace(chat=SimpleNamespace(completions=completions))

    monkeypatch.setattr(dataset_ai, "_client", fake_client)
    return completions, keys


def test_prompt_lists_columns_and_chart_config():
    prompt = build_prompt(["region", "sales"], kpi_count=4)
    assert "region, sales" in prompt
    assert "chartConfig" in prompt
    assert "Suggest 4 key KPIs" in prompt


def test_missing_api_key(monkeypatch):
    monkeypatch.setattr(settings, "GEMINI_API_KEY", "")
    with pytest.raises(MissingApiKeyError):
        suggest_kpis(["a"], api_key="   ")


def test_request_key_overrides_env_key(monkeypatch):
    monkeypatch.setattr(settings, "GEMINI_API_KEY", "env-key")
    completions, keys = _install(monkeypatch, content=json.dumps(INSIGHT))

    insight = suggest_kpis(["region", "sales"], api_key="user-key")

    assert keys == ["user-key"]
    assert insight.context == "Sales data"
    assert insight.kpis[0].chartConfig.yAxisColumn == "sales"
    call = completions.calls[0]
    assert call["response_format"] == {"type": "json_object"}
    assert call["model"] == settings.AI_MODEL
    assert "region, sales" in call["messages"][-1]["content"]


def test_spanish_keys_are_accepted(monkeypatch):
    payload = {
        "contexto": "Datos de ventas",
        "kpis": [{"titulo": "Ventas por región", "descripcion": "Suma de ventas.", "chartConfig": None}],
    }
    _install(monkeypatch, content=json.dumps(payload))
    insight = suggest_kpis(["region"], api_key="k")
    assert insight.context == "Datos de ventas"
    assert insight.kpis[0].title == "Ventas por región"
    assert insight.kpis[0].description == "Suma de ventas."


def test_code_fences_are_stripped(monkeypatch):
    _install(monkeypatch, content="```json\n" + json.dumps(INSIGHT) + "\n```")
    insight = suggest_kpis(["region", "sales"], api_key="k")
    assert isinstance(insight, AIInsight)
    assert len(insight.kpis) == 1


def test_invalid_json_raises(monkeypatch):
    _install(monkeypatch, content="not json at all")
    with pytest.raises(InsightError, match="not valid JSON"):
        suggest_kpis(["a"], api_key="k")


def test_empty_reply_raises(monkeypatch):
    _install(monkeypatch, content=None)
    with pytest.raises(InsightError, match="No response"):
        suggest_kpis(["a"], api_key="k")


def test_wrong_shape_raises(monkeypatch):
    _install(monkeypatch, content=json.dumps({"kpis": [{"description": "no title"}]}))
    with pytest.raises(InsightError, match="unexpected shape"):
        suggest_kpis(["a"], api_key="k")


def test_timeout_maps_to_timeout_error(monkeypatch):
    request = httpx.Request("POST", "https://example.invalid/chat/completions")
    _install(monkeypatch, error=openai.APITimeoutError(request=request))
    with pytest.raises(InsightTimeoutError):
        suggest_kpis(["a"], api_key="k")


def test_connection_error_maps_to_insight_error(monkeypatch):
    request = httpx.Request("POST", "https://example.invalid/chat/completions")
    _install(monkeypatch, error=openai.APIConnectionError(request=request))
    with pytest.raises(InsightError) as exc:
        suggest_kpis(["a"], api_key="k")
    assert not isinstance(exc.value, InsightTimeoutError)


def test_malformed_chart_hint_is_dropped_not_fatal(monkeypatch):
    payload = {
        "context": "Sales data",
        "kpis": [
            INSIGHT["kpis"][0],
            {"title": "Orders by region", "chartConfig": {"chartType": None, "xAxisColumn": "region",
                                                         "yAxisOperation": None, "yAxisColumn": None}},
            {"title": "Sales mix", "chartConfig": "pie chart of sales"},
            {"title": "Top cities", "chartConfig": {"xAxisColumn": {"field": "city"}}},
        ],
    }
    _install(monkeypatch, content=json.dumps(payload))

    insight = suggest_kpis(["region", "sales", "city"], api_key="k")

    assert [k.title for k in insight.kpis] == ["Revenue by region", "Orders by region", "Sales mix", "Top cities"]
    assert insight.kpis[0].chartConfig.yAxisOperation == "sum"
    nulls = insight.kpis[1].chartConfig
    assert nulls.xAxisColumn == "region"
    assert nulls.chartType is None and nulls.yAxisOperation is None
    assert insight.kpis[2].chartConfig is None
    assert insight.kpis[3].chartConfig is None
