"""
SequenceService -- race-free code allocation via locked counter rows.

Responsibility:
    Hands out strictly increasing numbers per named sequence and formats
    them as document, payment and voucher codes (INV-0001, PB-0001,
    REC-0001, PAY-0001, FIN-0001, REV-0001, BATCH-0001, BB-0001,
    EXP-0001).  Also numbers stock movements so that ledger order is total.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.  Called by every
    service that creates a coded row.

Invariants enforced:
    - Codes are never derived from ``COUNT(*) + 1``.  The locked counter row
      (``SELECT ... FOR UPDATE``) is the sole source of the next value, so
      two concurrent inserts can never receive the same code.
    - The increment is transactional: a rolled-back transaction gives its
      value back.

Failure modes:
    - IntegrityError: concurrent first use of a sequence (handled with a
      savepoint rollback and retry).
"""

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from erp_kernel.logging_config import get_logger
from erp_kernel.models.sequence import SequenceCounter

logger = get_logger("services.sequence")


class SequenceService:
    """
    Service for generating transactional sequence numbers and codes.

    Usage:
        with session_scope() as session:
            code = SequenceService(session).next_code(SequenceService.RECEIPT)
            # "REC-0001"; the value is consumed only if the transaction commits
    """

    SALES_INVOICE = "sales_invoice"
    PURCHASE_BILL = "purchase_bill"
    RECEIPT = "receipt"
    PAYMENT = "payment"
    FINANCIAL_VOUCHER = "financial_voucher"
    REVERSAL_VOUCHER = "reversal_voucher"
    PRODUCTION_BATCH = "production_batch"
    BELL_BATCH = "bell_batch"
    EXPENSE = "expense"
    STOCK_MOVEMENT = "stock_movement"

    PREFIXES: dict[str, str] = {
        SALES_INVOICE: "INV",
        PURCHASE_BILL: "PB",
        RECEIPT: "REC",
        PAYMENT: "PAY",
        FINANCIAL_VOUCHER: "FIN",
        REVERSAL_VOUCHER: "REV",
        PRODUCTION_BATCH: "BATCH",
        BELL_BATCH: "BB",
        EXPENSE: "EXP",
    }

    def __init__(self, session: Session, code_width: int = 4):
        self._session = session
        self._code_width = code_width

    def next_value(self, sequence_name: str) -> int:
        """
        Get the next value for a named sequence.

        1. Locks the sequence row (or creates it if it does not exist)
        2. Increments the counter
        3. Returns the new value

        Returns:
            The next sequence value (always > 0).
        """
        counter = self._session.execute(
            select(SequenceCounter)
            .where(SequenceCounter.name == sequence_name)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

        if counter is None:
            # First use.  Another transaction may create the row at the same
            # moment, so insert under a savepoint and fall back to the lock.
            savepoint = self._session.begin_nested()
            try:
                self._session.add(SequenceCounter(name=sequence_name, current_value=1))
                self._session.flush()
                savepoint.commit()
                logger.debug(
                    "sequence_allocated",
                    extra={"sequence_name": sequence_name, "value": 1},
                )
                return 1
            except IntegrityError:
                logger.debug(
                    "sequence_counter_race_retry",
                    extra={"sequence_name": sequence_name},
                )
                savepoint.rollback()
                counter = self._session.execute(
                    select(SequenceCounter)
                    .where(SequenceCounter.name == sequence_name)
                    .with_for_update()
                    .execution_options(populate_existing=True)
                ).scalar_one()

        counter.current_value += 1
        self._session.flush()
        logger.debug(
            "sequence_allocated",
            extra={"sequence_name": sequence_name, "value": counter.current_value},
        )
        return counter.current_value

    def next_code(self, sequence_name: str) -> str:
        """Next value formatted as ``<PREFIX>-<zero padded value>``."""
        prefix = self.PREFIXES[sequence_name]
        value = self.next_value(sequence_name)
        return f"{prefix}-{value:0{self._code_width}d}"

    def current_value(self, sequence_name: str) -> int | None:
        """Current value without incrementing, or None if never used."""
        counter = self._session.execute(
            select(SequenceCounter).where(SequenceCounter.name == sequence_name)
        ).scalar_one_or_none()
        return counter.current_value if counter else None
