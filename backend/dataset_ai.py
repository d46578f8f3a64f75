from __future__ import annotations
import json
import logging
from typing import Any, Dict, List, Optional, Union

from openai import APIError, APITimeoutError, OpenAI
from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
)

import settings

logger = logging.getLogger("dataset_ai")


class InsightError(RuntimeError):
    pass


class MissingApiKeyError(InsightError):
    pass


class InsightTimeoutError(InsightError):
    pass


# ======================== Models ========================

class ChartConfig(BaseModel):
    model_config = ConfigDict(extra="ignore")

    chartType: Optional[str] = "bar"
    xAxisColumn: Union[str, List[str], None] = None
    yAxisOperation: Optional[str] = "count"
    yAxisColumn: Optional[str] = None


class KPI(BaseModel):
    model_config = ConfigDict(extra="ignore")

    # the model sometimes answers with the Spanish keys of the original prompt
    title: str = Field(validation_alias=AliasChoices("title", "titulo"))
    description: str = Field("", validation_alias=AliasChoices("description", "descripcion"))
    chartConfig: Optional[ChartConfig] = None

    @field_validator("chartConfig", mode="wrap")
    @classmethod
    def _drop_malformed_hint(cls, value, handler):
        # a broken hint only costs this KPI its hint, not the whole answer
        try:
            return handler(value)
        except ValidationError:
            logger.info("Ignoring malformed chart hint: %r", value)
            return None


class AIInsight(BaseModel):
    model_config = ConfigDict(extra="ignore")

    context: str = Field("", validation_alias=AliasChoices("context", "contexto"))
    kpis: List[KPI] = Field(default_factory=list)


# ======================== Prompt ========================

def build_prompt(headers: List[str], kpi_count: Optional[int] = None) -> str:
    n = settings.AI_KPI_COUNT if kpi_count is None else kpi_count
    example = {
        "context": "Your analysis of the business context here.",
        "kpis": [
            {
                "title": "KPI 1 title",
                "description": "KPI 1 description.",
                "chartConfig": {
                    "chartType": "bar",
                    "xAxisColumn": "x_axis_column_name",
                    "yAxisOperation": "count",
                    "yAxisColumn": None,
                },
            },
            {
                "title": "KPI 2 title",
                "description": "KPI 2 description.",
                "chartConfig": {
                    "chartType": "pie",
                    "xAxisColumn": ["column1", "column2", "column3"],
                    "yAxisOperation": "sum",
                    "yAxisColumn": None,
                },
            },
        ],
    }
    return f"""
You are an expert developer and business analyst. You received a file with these columns: {", ".join(headers)}.

Your task is twofold:
1. Identify the business context (e.g. 'Sales data', 'E-commerce inventory').
2. Suggest {n} key KPIs that could be computed from these columns.

For every KPI return a title, a description and a nested "chartConfig" object that code will use to draw the chart:
- chartType: recommended chart type ('bar', 'pie', 'line').
- xAxisColumn: column used for the X-axis labels. If the categories are the column names themselves, return an array with those column names.
- yAxisOperation: 'count' to count rows, 'sum' to add up the values of a column.
- yAxisColumn: column to sum when the operation is 'sum'. May be null for 'count'.

Return STRICT JSON exactly in this shape:
{json.dumps(example, indent=2)}
""".strip()


# ======================== Client ========================

def _client(api_key: str) -> OpenAI:
    return OpenAI(
        api_key=api_key,
        base_url=settings.AI_BASE_URL,
        timeout=settings.AI_TIMEOUT_SECONDS,
        max_retries=0,
    )


def _parse_json(txt: str) -> Dict[str, Any]:
    txt = txt.strip()
    if txt.startswith("```"):  # strip ```json fences if present
        txt = txt.strip("`")
        nl = txt.find("\n")
        if nl != -1:
            txt = txt[nl + 1:]
    try:
        data = json.loads(txt)
    except json.JSONDecodeError as e:
        raise InsightError(f"AI response is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise InsightError("AI response is not a JSON object.")
    return data


def suggest_kpis(headers: List[str], api_key: Optional[str] = None) -> AIInsight:
    """
    Ask the model for the business context of the columns and a few KPIs,
    each with a chart hint. Only column names leave the machine.
    """
    key = (api_key or "").strip() or settings.GEMINI_API_KEY
    if not key:
        raise MissingApiKeyError("A Google Gemini API key is required to analyze the data.")
    if not headers:
        raise InsightError("The dataset has no columns to analyze.")

    client = _client(key)
    logger.info("Requesting KPI suggestions for %d columns (model=%s)", len(headers), settings.AI_MODEL)
    try:
        resp = client.chat.completions.create(
            model=settings.AI_MODEL,
            temperature=settings.AI_TEMPERATURE,
            max_tokens=settings.AI_MAX_TOKENS,
            response_format={"type": "json_object"},
            messages=[
                {"role": "system", "content": "You are a business analyst. Output ONLY valid JSON."},
                {"role": "user", "content": build_prompt(headers)},
            ],
        )
    except APITimeoutError as e:
        logger.warning("KPI suggestion timed out after %ss", settings.AI_TIMEOUT_SECONDS)
        raise InsightTimeoutError("The request took too long to answer. Try again.") from e
    except APIError as e:
        logger.warning("KPI suggestion failed: %s", e)
        raise InsightError(f"AI request failed: {e}") from e

    txt = ""
    if resp.choices:
        txt = (resp.choices[0].message.content or "").strip()
    if not txt:
        raise InsightError("No response received from the AI.")

    try:
        insight = AIInsight.model_validate(_parse_json(txt))
    except ValidationError as e:
        raise InsightError(f"AI response has an unexpected shape: {e}") from e

    logger.info("Received %d KPI suggestions", len(insight.kpis))
    return insight
