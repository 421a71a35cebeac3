"""
Service configuration — single source of truth for environment-driven settings,
LLM routing, report defaults and numeric tolerances.

Import from here in routes and services rather than calling os.getenv inline.
"""
from __future__ import annotations

import os

# Load .env file automatically in dev (no-op if the file is missing)
from dotenv import load_dotenv

load_dotenv()


APP_NAME: str = "Locoman Cost Dashboard API"
APP_VERSION: str = "1.0.0"


# ── Database ──────────────────────────────────────────────────────────────────
# Empty in dev mode: the app starts without a database and store calls fail fast.
DATABASE_URL: str = os.getenv("DATABASE_URL", "")
DB_RESET_ON_STARTUP: bool = os.getenv("DB_RESET_ON_STARTUP", "").lower() in ("1", "true", "yes")


# ── Logging ───────────────────────────────────────────────────────────────────
LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
LOG_JSON: bool = os.getenv("LOG_FORMAT", "json").lower() != "text"


# ── HTTP ──────────────────────────────────────────────────────────────────────
_cors_default = "http://localhost:3000,http://localhost:8000"
CORS_ORIGINS: list[str] = [
    o.strip() for o in os.getenv("CORS_ORIGINS", _cors_default).split(",") if o.strip()
]

# Requests per minute per client IP; 0 disables the limiter.
# LLM-backed endpoints get a tenth of the general budget.
RATE_LIMIT_PER_MINUTE: int = int(os.getenv("RATE_LIMIT_PER_MINUTE", "120"))


# ── LLM routing ───────────────────────────────────────────────────────────────
# Narrative reports and the project assistant go to the primary model first.
LLM_PRIMARY_MODEL: str = os.getenv("LLM_PRIMARY_MODEL", "gemini/gemini-2.5-flash")
LLM_FALLBACK_MODEL: str = os.getenv("LLM_FALLBACK_MODEL", "groq/llama-3.1-70b-versatile")
LLM_TEMPERATURE: float = float(os.getenv("LLM_TEMPERATURE", "0.3"))
LLM_MAX_TOKENS: int = int(os.getenv("LLM_MAX_TOKENS", "2048"))


# ── Report defaults ───────────────────────────────────────────────────────────
REPORT_DEFAULT_LANGUAGE: str = os.getenv("REPORT_DEFAULT_LANGUAGE", "de")


def _parse_word_range(raw: str) -> tuple[int, int]:
    try:
        lo, hi = (int(part) for part in raw.split("-", 1))
    except ValueError:
        return (200, 300)
    return (min(lo, hi), max(lo, hi))


REPORT_WORD_RANGE: tuple[int, int] = _parse_word_range(os.getenv("REPORT_WORD_RANGE", "200-300"))


# ── Cost engine ───────────────────────────────────────────────────────────────
# Absolute tolerance (EUR) used when checking that a summary reconciles.
RECONCILIATION_TOLERANCE: float = float(os.getenv("RECONCILIATION_TOLERANCE", "1e-6"))
