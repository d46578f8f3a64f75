# settings.py
import os

# --- AI ---
GEMINI_API_KEY = os.getenv("GEMINI_API_KEY", "")
AI_BASE_URL = os.getenv("AI_BASE_URL", "https://generativelanguage.googleapis.com/v1beta/openai/")
AI_MODEL = os.getenv("AI_MODEL", "gemini-2.0-flash")
AI_TIMEOUT_SECONDS = float(os.getenv("AI_TIMEOUT_SECONDS", "30"))
AI_TEMPERATURE = float(os.getenv("AI_TEMPERATURE", "0.7"))
AI_MAX_TOKENS = int(os.getenv("AI_MAX_TOKENS", "2048"))
AI_KPI_COUNT = int(os.getenv("AI_KPI_COUNT", "4"))

# --- Upload / preview ---
MAX_UPLOAD_BYTES = int(os.getenv("MAX_UPLOAD_BYTES", str(10 * 1024 * 1024)))  # 10MB default
PREVIEW_ROWS = int(os.getenv("PREVIEW_ROWS", "20"))

# --- Chart heuristics ---
NUMERIC_RATIO = float(os.getenv("NUMERIC_RATIO", "0.3"))
CATEGORY_CEILING = int(os.getenv("CATEGORY_CEILING", "20"))
FALLBACK_SEED = int(os.getenv("FALLBACK_SEED", "42"))

# --- App ---
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
