"""
erp_config -- single public entrypoint for runtime settings.

Responsibility:
    ``get_settings()`` is the only way services and scripts obtain
    configuration.  Defaults live in ``defaults.yaml``; an override file and
    the ``ERP_DATABASE_URL`` environment variable are layered on top.

Architecture position:
    Configuration -- sits above ``erp_kernel``.  The kernel MUST NEVER
    import from ``erp_config``; ``erp_config.bridges`` turns settings into
    kernel constructor arguments.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path

from erp_config.loader import DATABASE_URL_ENV, load_settings
from erp_config.schema import (
    CacheSettings,
    DatabaseSettings,
    ErpSettings,
    LedgerSettings,
    ProductionSettings,
    SequenceSettings,
)

_logger = logging.getLogger("erp_kernel.config")

_settings: ErpSettings | None = None
_lock = threading.Lock()


def get_settings(path: Path | str | None = None, reload: bool = False) -> ErpSettings:
    """
    Return the process settings, loading them on first use.

    Args:
        path: Optional YAML override file (only read when loading).
        reload: Discard the loaded settings and read them again.
    """
    global _settings
    with _lock:
        if _settings is None or reload:
            _settings = load_settings(path)
            _logger.info(
                "settings_loaded",
                extra={
                    "override_path": str(path) if path else None,
                    "database_dialect": _settings.database.url.split(":", 1)[0],
                },
            )
        return _settings


def reset_settings() -> None:
    """Forget loaded settings. FOR TESTING ONLY."""
    global _settings
    with _lock:
        _settings = None


__all__ = [
    "CacheSettings",
    "DATABASE_URL_ENV",
    "DatabaseSettings",
    "ErpSettings",
    "LedgerSettings",
    "ProductionSettings",
    "SequenceSettings",
    "get_settings",
    "load_settings",
    "reset_settings",
]
