"""
Logging setup for the research cohort service.

Modules log through ``logging.getLogger(__name__)``; this only wires the root
handler and level once at startup.
"""
import logging
from typing import Optional

from .config import settings

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: Optional[str] = None) -> None:
    """Configure the root logger from LOG_LEVEL (or an explicit level)."""
    resolved = (level or settings.LOG_LEVEL or "INFO").upper()
    logging.basicConfig(level=getattr(logging, resolved, logging.INFO), format=LOG_FORMAT)
    # supabase / httpx are chatty at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
