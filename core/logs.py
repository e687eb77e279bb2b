# core/logs.py
from __future__ import annotations
import logging

from core.settings import LoggingConfig

_HANDLER_NAME = "academic-records"

def configure_logging(cfg: LoggingConfig | None = None) -> None:
    """Install one stream handler on the root logger (idempotent)."""
    cfg = cfg or LoggingConfig()
    root = logging.getLogger()
    root.setLevel(cfg.level.upper())
    if any(getattr(h, "name", None) == _HANDLER_NAME for h in root.handlers):
        return
    handler = logging.StreamHandler()
    handler.set_name(_HANDLER_NAME)
    handler.setFormatter(logging.Formatter(cfg.format))
    root.addHandler(handler)
