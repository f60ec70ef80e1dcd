import logging
import os
from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name, str(default))
    try:
        return int(raw)
    except ValueError:
        logger.warning("%s must be an integer, got %r; using %d", name, raw, default)
        return default


class Settings:
    SPEC_DEFINITIONS_DIR: str = os.getenv(
        "SPEC_DEFINITIONS_DIR",
        "specs/structure-definitions",
    )
    FHIR_VERSION: str = os.getenv("FHIR_VERSION", "R4")
    ENVIRONMENT: str = os.getenv("ENVIRONMENT", "development")
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").strip().upper()
    HINT_EXTRACTION_WORKERS: int = _int_env("HINT_EXTRACTION_WORKERS", 1)


settings = Settings()
