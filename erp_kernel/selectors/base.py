"""
Module: erp_kernel.selectors.base
Responsibility: Abstract base class for all read-only query selectors.
    Selectors form the "Q" side of the CQRS-lite split: services mutate,
    selectors read.
Architecture position: Kernel > Selectors.  May import from db/, models/ and
    domain/ (for DTOs).  MUST NOT import from services/.

Invariants enforced:
    - Read-only access: selectors never call session.add(), delete(),
      flush() or commit().
    - DTO return convention: selectors return frozen dataclasses or plain
      Decimals, not ORM instances.
    - Aggregates are summed in SQL and coerced to Decimal on the way out.
"""

from abc import ABC
from decimal import Decimal
from typing import Any

from sqlalchemy.orm import Session

from erp_kernel.domain.values import ZERO


class BaseSelector(ABC):
    """
    Abstract base class for all selectors.

    Selectors accept a Session from the caller and run inside the caller's
    transaction, so a service can read its own flushed writes.
    """

    def __init__(self, session: Session):
        self.session = session

    @staticmethod
    def as_decimal(value: Any) -> Decimal:
        """Coerce an aggregate result (Decimal, int, float or None) to Decimal."""
        if value is None:
            return ZERO
        if isinstance(value, Decimal):
            return value
        return Decimal(str(value))
