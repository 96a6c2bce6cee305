"""
Bridges from settings to kernel inputs.

The kernel never imports erp_config.  These helpers translate ErpSettings
into the plain values and objects kernel constructors accept.
"""

from __future__ import annotations

from typing import Any

from erp_config.schema import ErpSettings
from erp_kernel.domain.clock import Clock
from erp_kernel.services.summary_cache import CacheTtl, InMemorySummaryCache


def cache_ttl_from_settings(settings: ErpSettings) -> CacheTtl:
    return CacheTtl(
        master=settings.cache.master_ttl_seconds,
        computed=settings.cache.computed_ttl_seconds,
        volatile=settings.cache.volatile_ttl_seconds,
    )


def build_cache(settings: ErpSettings, clock: Clock | None = None) -> InMemorySummaryCache:
    """A process-local cache.  TTLs are applied per key by SummaryService."""
    return InMemorySummaryCache(clock)


def kernel_options(settings: ErpSettings) -> dict[str, Any]:
    """Keyword arguments for ``ErpKernel(session, **kernel_options(settings))``."""
    return {
        "cache_ttl": cache_ttl_from_settings(settings),
        "company_state_code": settings.ledger.company_state_code,
        "loss_threshold_percent": settings.production.loss_threshold_percent,
        "code_width": settings.sequences.code_width,
    }


def engine_options(settings: ErpSettings) -> dict[str, Any]:
    """Keyword arguments for ``init_engine_from_url(settings.database.url, **...)``."""
    db = settings.database
    return {
        "echo": db.echo,
        "pool_size": db.pool_size,
        "max_overflow": db.max_overflow,
        "pool_timeout": db.pool_timeout,
        "pool_recycle": db.pool_recycle,
    }
