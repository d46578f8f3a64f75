# kpi.py
import logging
from typing import Optional

import numpy as np
from fastapi import APIRouter, HTTPException
from pydantic import BaseModel

from analysis.charts import build
from dataset_ai import (
    KPI,
    InsightError,
    InsightTimeoutError,
    MissingApiKeyError,
    suggest_kpis,
)
from state import Session, get_session

logger = logging.getLogger("kpi")

router = APIRouter(prefix="/kpi", tags=["kpi"])


# ============================= Models ===============================
class SuggestReq(BaseModel):
    dataset_id: str = "default"
    api_key: Optional[str] = None  # falls back to GEMINI_API_KEY


class SelectReq(BaseModel):
    dataset_id: str = "default"
    index: int


class ChartReq(BaseModel):
    dataset_id: str = "default"
    index: Optional[int] = None      # defaults to the selected KPI
    title: Optional[str] = None      # ad-hoc KPI title when no insights exist
    use_config: bool = True
    seed: Optional[int] = None       # only affects demo data


# ============================ Helpers ===============================
def _get_session(dataset_id: str) -> Session:
    session = get_session(dataset_id)
    if session is None:
        raise HTTPException(status_code=404, detail="Dataset not found. Upload a CSV or Excel file first.")
    return session


def _kpi_at(session: Session, index: int) -> KPI:
    if session.insights is None:
        raise HTTPException(status_code=400, detail="No KPI suggestions yet. Call /kpi/suggest first.")
    kpis = session.insights.kpis
    if not 0 <= index < len(kpis):
        raise HTTPException(status_code=400, detail=f"KPI index {index} out of range (0..{len(kpis) - 1}).")
    return kpis[index]


# ============================= Routes ===============================
@router.post("/suggest")
def kpi_suggest(req: SuggestReq):
    session = _get_session(req.dataset_id)
    try:
        insight = suggest_kpis(session.headers, api_key=req.api_key)
    except MissingApiKeyError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except InsightTimeoutError as e:
        raise HTTPException(status_code=504, detail=str(e))
    except InsightError as e:
        raise HTTPException(status_code=502, detail=str(e))

    session.insights = insight
    session.selected_kpi = None
    return {"dataset_id": req.dataset_id, **insight.model_dump()}


@router.post("/select")
def kpi_select(req: SelectReq):
    session = _get_session(req.dataset_id)
    kpi = _kpi_at(session, req.index)
    session.selected_kpi = req.index
    logger.info("KPI selected: %s (chart config: %s)", kpi.title, kpi.chartConfig)
    return {"dataset_id": req.dataset_id, "index": req.index, "kpi": kpi.model_dump()}


@router.post("/chart")
def kpi_chart(req: ChartReq):
    """
    Chart payload for a KPI. The KPI is, in order: `index`, the selected KPI,
    or an ad-hoc `title`. Always 200 once a dataset is loaded; demo data is
    flagged with is_fallback.
    """
    session = _get_session(req.dataset_id)

    index = req.index if req.index is not None else session.selected_kpi
    if index is not None:
        kpi = _kpi_at(session, index)
    elif req.title:
        kpi = KPI(title=req.title)
    else:
        raise HTTPException(status_code=400, detail="Select a KPI first or pass a title.")

    rng = np.random.default_rng(req.seed) if req.seed is not None else None
    result = build(
        session.df,
        session.headers,
        kpi.title,
        chart_config=kpi.chartConfig if req.use_config else None,
        rng=rng,
    )
    return {
        "dataset_id": req.dataset_id,
        "index": index,
        "kpi": {"title": kpi.title, "description": kpi.description},
        **result.to_dict(),
    }
