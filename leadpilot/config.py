"""Application configuration loaded from environment variables."""

import os
from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


class Settings:
    ENRICH_API_BASE_URL: str = os.getenv("ENRICH_API_BASE_URL", "http://localhost:3000/api/tools")
    ENRICH_API_TOKEN: str = os.getenv("ENRICH_API_TOKEN", "")
    ENRICH_HTTP_TIMEOUT_SECONDS: float = float(os.getenv("ENRICH_HTTP_TIMEOUT_SECONDS", "30"))

    # Batch size stays under the backend payload ceiling; read once at import.
    ENRICH_BATCH_SIZE: int = int(os.getenv("ENRICH_BATCH_SIZE", "100"))
    ENRICH_BATCH_DELAY_MS: int = int(os.getenv("ENRICH_BATCH_DELAY_MS", "500"))
    ENRICH_POLL_INTERVAL_SECONDS: float = float(os.getenv("ENRICH_POLL_INTERVAL_SECONDS", "3"))

    JOB_STORE_URL: str = os.getenv("JOB_STORE_URL", "sqlite:///leadpilot_jobs.db")
    JOB_STORE_KEY_PREFIX: str = os.getenv("JOB_STORE_KEY_PREFIX", "enrichment_job_")

    LOG_JSON: bool = _env_bool("LOG_JSON", True)
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")


settings = Settings()
