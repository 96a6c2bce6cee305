"""
Settings schema.

Frozen dataclasses parsed from YAML by the loader.  Money-like settings are
Decimal; TTLs are whole seconds.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal


@dataclass(frozen=True)
class DatabaseSettings:
    """Connection settings.  ``url`` is any SQLAlchemy URL."""

    url: str = "sqlite:///erp.db"
    echo: bool = False
    pool_size: int = 5
    max_overflow: int = 10
    pool_timeout: int = 30
    pool_recycle: int = 3600


@dataclass(frozen=True)
class CacheSettings:
    master_ttl_seconds: int = 1800
    computed_ttl_seconds: int = 300
    volatile_ttl_seconds: int = 60


@dataclass(frozen=True)
class LedgerSettings:
    # GST state code of the company; parties elsewhere are inter-state
    company_state_code: str = "27"


@dataclass(frozen=True)
class ProductionSettings:
    loss_threshold_percent: Decimal = Decimal("5")


@dataclass(frozen=True)
class SequenceSettings:
    code_width: int = 4


@dataclass(frozen=True)
class ErpSettings:
    """Complete runtime settings."""

    database: DatabaseSettings = field(default_factory=DatabaseSettings)
    cache: CacheSettings = field(default_factory=CacheSettings)
    ledger: LedgerSettings = field(default_factory=LedgerSettings)
    production: ProductionSettings = field(default_factory=ProductionSettings)
    sequences: SequenceSettings = field(default_factory=SequenceSettings)
    log_level: str = "INFO"
