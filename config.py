"""
config.py
---------
Loads settings from the environment (and an optional .env file) and exposes
them as typed module constants.
"""

import os
from dotenv import load_dotenv

load_dotenv()


def _flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes")


# ── Database ──────────────────────────────────────────────
DB_FILE: str = os.path.join(os.path.dirname(__file__), "ecoshift.db")
_default_url = f"sqlite:///{DB_FILE}"
DATABASE_URL: str = os.getenv("POSTGRES_URL") or os.getenv("DATABASE_URL") or _default_url
# SQLAlchemy only understands the postgresql:// scheme
if DATABASE_URL.startswith("postgres://"):
    DATABASE_URL = "postgresql://" + DATABASE_URL[len("postgres://"):]
DB_ECHO: bool = _flag("DB_ECHO")
POSTGRES_SSLMODE: str = os.getenv("POSTGRES_SSLMODE", "require")

# ── Gemini AI ─────────────────────────────────────────────
GEMINI_API_KEY: str = os.getenv("GEMINI_API_KEY") or os.getenv("API_KEY") or ""
GEMINI_MODEL: str = os.getenv("GEMINI_MODEL", "gemini-1.5-flash")

# ── Train timetable (ViaggiaTreno) ────────────────────────
TRAIN_API_URL: str = os.getenv(
    "TRAIN_API_URL",
    "http://www.viaggiatreno.it/infomobilita/resteasy/viaggiatreno",
)
TRAIN_API_TIMEOUT: float = float(os.getenv("TRAIN_API_TIMEOUT", "10"))

# ── HTTP server ───────────────────────────────────────────
PORT: int = int(os.getenv("PORT", "3000"))
DEBUG: bool = _flag("DEBUG")
_raw_origins = os.getenv("CORS_ORIGINS", "*")
CORS_ORIGINS: list[str] = [o.strip() for o in _raw_origins.split(",") if o.strip()]

# ── Client ────────────────────────────────────────────────
API_URL: str = os.getenv("API_URL", f"http://localhost:{PORT}")

# ── Logging ───────────────────────────────────────────────
LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()
# httpx, SQLAlchemy and the Gemini SDK log at this level unless DEBUG is on
LIBRARY_LOG_LEVEL: str = os.getenv("LIBRARY_LOG_LEVEL", "WARNING").upper()
