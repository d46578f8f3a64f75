# main.py
import logging
from datetime import datetime

from fastapi import FastAPI, File, HTTPException, Query, UploadFile
from fastapi.middleware.cors import CORSMiddleware

import settings
from kpi import router as kpi_router
from state import DatasetError, get_session, handle_uploaded_file, preview

logging.basicConfig(level=settings.LOG_LEVEL)
logger = logging.getLogger("insightify")

app = FastAPI(title="Insightify API", version="1.0.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(kpi_router)


# ---------- Routes ----------
@app.get("/health")
def health():
    return {"ok": True, "time": datetime.utcnow().isoformat()}


@app.post("/upload-csv/")
async def upload_csv(file: UploadFile = File(...)):
    content = await file.read()
    try:
        out = handle_uploaded_file(content, file.filename or "")
    except DatasetError as e:
        logger.warning("Upload rejected (%s): %s", file.filename, e)
        raise HTTPException(status_code=400, detail=str(e))
    return {**out, "message": "Upload successful"}


@app.get("/preview")
def get_preview(dataset_id: str = "default", rows: int = Query(settings.PREVIEW_ROWS, ge=0)):
    session = get_session(dataset_id)
    if session is None:
        raise HTTPException(status_code=404, detail="Dataset not found. Upload first.")
    return {"dataset_id": dataset_id, **preview(session, rows)}
