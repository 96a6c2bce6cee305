"""
BaseService -- abstract base for all kernel services.

Responsibility:
    Common constructor and session-handling contract.  Every service
    receives a SQLAlchemy ``Session`` and persists with ``session.flush()``,
    never ``session.commit()``.

Architecture position:
    Kernel > Services -- imperative shell.

Invariants enforced:
    - Transaction boundaries belong to the caller (``session_scope()``).  A
      payment touching the payment row, allocations, documents, the party,
      the account and the general ledger is therefore one atomic unit: any
      raised error rolls all of it back.

Failure modes:
    - A subclass calling ``session.commit()`` would break the
      all-or-nothing guarantee of multi-entity operations.
"""

from abc import ABC
from uuid import UUID

from sqlalchemy.orm import Session

from erp_kernel.domain.clock import Clock, SystemClock


class BaseService(ABC):
    """
    Abstract base class for all kernel services.

    Non-goals:
        - Does NOT manage transaction lifecycle (commit/rollback).
        - Does NOT provide read models -- those live in
          ``erp_kernel/selectors/``.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        actor_id: UUID | None = None,
    ):
        self.session = session
        self.clock = clock or SystemClock()
        self.actor_id = actor_id
