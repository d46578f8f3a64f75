# state.py
import io
import logging
import re
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Optional

import pandas as pd

import settings
from analysis.cells import Number, json_safe, parse_cell

logger = logging.getLogger("state")

DATE_KEYWORDS = [
    "date", "dates", "datetime", "fecha", "time", "timestamp", "tiempo",
    "created", "updated", "shipped", "sale",
]
CSV_ENCODINGS = ("utf-8", "latin-1")
EXCEL_EPOCH_OFFSET = 25569  # serial for 1970-01-01
EXCEL_MAX_SERIAL = 2958465  # 9999-12-31


class DatasetError(ValueError):
    pass


@dataclass
class Session:
    df: pd.DataFrame
    headers: List[str]
    filename: str = ""
    insights: Optional[Any] = None
    selected_kpi: Optional[int] = None
    uploaded_at: str = field(default_factory=lambda: datetime.utcnow().isoformat())

    def reset_analysis(self) -> None:
        self.insights = None
        self.selected_kpi = None


SESSIONS: Dict[str, Session] = {}


# ---------- cell normalization ----------

def header_tokens(header: str) -> List[str]:
    # "OrderDate" -> ["order", "date"], "sale_date" -> ["sale", "date"]
    spaced = re.sub(r"([a-z0-9])([A-Z])", r"\1 \2", header)
    return [t for t in re.split(r"[\W_]+", spaced.lower()) if t]


def is_date_column(header: str) -> bool:
    return any(t in DATE_KEYWORDS for t in header_tokens(header))


def is_excel_serial_date(value: float) -> bool:
    # serials with a time part; whole numbers are left alone
    return 1 < value < EXCEL_MAX_SERIAL and value % 1 != 0


def excel_serial_to_iso(value: float) -> str:
    d = date(1970, 1, 1) + timedelta(days=value - EXCEL_EPOCH_OFFSET)
    return d.isoformat()


def _normalize_cell(value: Any, header: str) -> Any:
    cell = parse_cell(value)
    if isinstance(cell, Number):
        v = cell.value
        if is_date_column(header) and is_excel_serial_date(v):
            try:
                return excel_serial_to_iso(v)
            except OverflowError:
                logger.warning("Could not convert %s in column %s to a date", v, header)
        return int(v) if v.is_integer() else v
    if value is None or (pd.api.types.is_scalar(value) and pd.isna(value)):
        return ""
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value).strip()


def _unique_headers(raw: List[Any]) -> List[Optional[str]]:
    seen: Dict[str, int] = {}
    out: List[Optional[str]] = []
    for h in raw:
        name = "" if h is None or (pd.api.types.is_scalar(h) and pd.isna(h)) else str(h).strip()
        if not name:
            out.append(None)
            continue
        if name in seen:
            seen[name] += 1
            name = f"{name}_{seen[name]}"
        else:
            seen[name] = 1
        out.append(name)
    return out


def _is_blank(v: Any) -> bool:
    return v is None or (pd.api.types.is_scalar(v) and pd.isna(v)) or str(v).strip() == ""


# ---------- loading ----------

def _read_csv_as(content: bytes, encoding: str) -> pd.DataFrame:
    # width comes from the first non-blank row; longer rows are cut to it
    first = pd.read_csv(io.BytesIO(content), header=None, dtype=object, nrows=1,
                        encoding=encoding, engine="python")
    width = first.shape[1]
    return pd.read_csv(
        io.BytesIO(content),
        header=None,
        dtype=object,
        skip_blank_lines=True,
        encoding=encoding,
        engine="python",
        on_bad_lines=lambda bad: bad[:width],
    )


def _read_csv(content: bytes) -> pd.DataFrame:
    for encoding in CSV_ENCODINGS[:-1]:
        try:
            return _read_csv_as(content, encoding)
        except UnicodeDecodeError:
            logger.info("CSV is not %s, trying the next encoding", encoding)
    # latin-1 maps every byte, so the last attempt always decodes
    return _read_csv_as(content, CSV_ENCODINGS[-1])


def _read_grid(content: bytes, filename: str) -> pd.DataFrame:
    name = (filename or "").lower()
    try:
        if name.endswith(".xlsx") or name.endswith(".xls"):
            return pd.read_excel(io.BytesIO(content), sheet_name=0, header=None)
        return _read_csv(content)
    except pd.errors.EmptyDataError:
        raise DatasetError("The file appears to be empty.")
    except Exception as e:
        raise DatasetError(f"Failed to parse file: {e}")


def load_table(content: bytes, filename: str) -> pd.DataFrame:
    """
    Parse an uploaded CSV / Excel file into a DataFrame of raw cell values.
      - first non-empty row is the header row (trimmed, blank headers dropped)
      - strings trimmed, blanks -> "", numeric text -> numbers
      - Excel serial dates in date-like columns -> YYYY-MM-DD
      - fully empty rows dropped
    """
    if len(content) > settings.MAX_UPLOAD_BYTES:
        raise DatasetError(f"File too large ({len(content)} bytes, max {settings.MAX_UPLOAD_BYTES}).")

    grid = _read_grid(content, filename).values.tolist()
    grid = [row for row in grid if any(not _is_blank(v) for v in row)]
    if not grid:
        raise DatasetError("The file appears to be empty or has no valid data.")

    headers = _unique_headers(grid[0])
    keep = [(i, h) for i, h in enumerate(headers) if h]
    if not keep:
        raise DatasetError("No column headers found in the first row.")

    records = []
    for row in grid[1:]:
        rec = {}
        for i, h in keep:
            rec[h] = _normalize_cell(row[i] if i < len(row) else None, h)
        if any(v != "" for v in rec.values()):
            records.append(rec)

    if not records:
        raise DatasetError("No valid data rows found in the file.")

    cols = [h for _, h in keep]
    return pd.DataFrame.from_records(records, columns=cols)


def handle_uploaded_file(content: bytes, filename: str, dataset_id: str = "default") -> dict:
    df = load_table(content, filename)
    headers = df.columns.tolist()
    SESSIONS[dataset_id] = Session(df=df, headers=headers, filename=filename)
    logger.info("File processed: %s rows=%d cols=%d", filename, len(df), len(headers))
    return {
        "ok": True,
        "dataset_id": dataset_id,
        "rows": int(len(df)),
        "cols": headers,
    }


def get_session(dataset_id: str = "default") -> Optional[Session]:
    return SESSIONS.get(dataset_id)


def preview(session: Session, n: Optional[int] = None) -> Dict[str, Any]:
    n = settings.PREVIEW_ROWS if n is None else n
    head = session.df.head(n)
    rows = [{c: json_safe(v) for c, v in rec.items()} for rec in head.to_dict(orient="records")]
    total = int(len(session.df))
    return {
        "headers": list(session.headers),
        "rows": rows,
        "shown": len(rows),
        "total": total,
        "remaining": max(0, total - len(rows)),
    }
