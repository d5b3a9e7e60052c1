# planner/config.py
import os
import logging
from dataclasses import dataclass
from typing import List, Optional

from dotenv import load_dotenv

# Load .env file if present
load_dotenv()

LOG_FORMAT = "[%(levelname)s] %(name)s: %(message)s"


def _flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


def get_logger(name: str) -> logging.Logger:
    """Return a module logger configured the same way across the package."""
    logger = logging.getLogger(name)
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)
    level = os.getenv("ITINERARY_LOG_LEVEL", "INFO").upper()
    logger.setLevel(getattr(logging, level, logging.INFO))
    logger.propagate = False
    return logger


@dataclass(frozen=True)
class Settings:
    schedule_api: Optional[str] = None
    schedule_timeout: float = 30.0
    catalog_path: Optional[str] = None
    network_links_path: Optional[str] = None
    network_nodes_path: Optional[str] = None
    lodging_per_day: bool = False
    allowed_origins: tuple = ("*",)


def load_settings() -> Settings:
    """Build settings from the environment (and ``.env`` when present)."""
    raw_origins = os.getenv("ITINERARY_ALLOWED_ORIGINS") or "*"
    origins: List[str] = [o.strip() for o in raw_origins.split(",") if o.strip()]
    try:
        timeout = float(os.getenv("ITINERARY_SCHEDULE_TIMEOUT", "30"))
    except ValueError:
        timeout = 30.0
    return Settings(
        schedule_api=(os.getenv("ITINERARY_SCHEDULE_API") or "").rstrip("/") or None,
        schedule_timeout=timeout,
        catalog_path=os.getenv("ITINERARY_CATALOG_PATH") or None,
        network_links_path=os.getenv("ITINERARY_NETWORK_LINKS_PATH") or None,
        network_nodes_path=os.getenv("ITINERARY_NETWORK_NODES_PATH") or None,
        lodging_per_day=_flag("ITINERARY_LODGING_PER_DAY"),
        allowed_origins=tuple(origins or ["*"]),
    )
