"""Small helpers shared by kernel services."""

from erp_kernel.utils.idempotency import (
    generate_idempotency_key,
    parse_idempotency_key,
    validate_idempotency_key,
)

__all__ = [
    "generate_idempotency_key",
    "parse_idempotency_key",
    "validate_idempotency_key",
]
