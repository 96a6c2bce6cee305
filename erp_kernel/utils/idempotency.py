"""
Idempotency key helpers.

A client that may retry a payment, advance adjustment or financial posting
sends the same key on every attempt.  The key is stored on the row under a
unique constraint, so the second attempt finds the first result instead of
applying the money twice.
"""

from uuid import UUID

from erp_kernel.exceptions import ValidationError

MAX_KEY_LENGTH = 200


def generate_idempotency_key(
    operation: str,
    scope: UUID | str,
    request_id: UUID | str,
) -> str:
    """
    Build an idempotency key.

    Format: operation:scope:request_id

    Example:
        >>> generate_idempotency_key("receipt", customer_id, request_id)
        "receipt:6f1c...:550e8400-e29b-41d4-a716-446655440000"
    """
    return f"{operation}:{scope}:{request_id}"


def parse_idempotency_key(key: str) -> tuple[str, str, str]:
    """
    Split a key built by generate_idempotency_key().

    Raises:
        ValueError: If key format is invalid.
    """
    parts = key.split(":", 2)
    if len(parts) != 3 or not all(parts):
        raise ValueError(f"Invalid idempotency key format: {key}")
    return parts[0], parts[1], parts[2]


def validate_idempotency_key(key: str | None) -> str | None:
    """
    Normalize an optional key.  Keys are free-form; only blank and
    over-long keys are rejected.

    Raises:
        ValidationError: blank or longer than MAX_KEY_LENGTH.
    """
    if key is None:
        return None
    if not key.strip():
        raise ValidationError("Idempotency key must not be blank", field="idempotency_key")
    if len(key) > MAX_KEY_LENGTH:
        raise ValidationError(
            f"Idempotency key longer than {MAX_KEY_LENGTH} characters",
            field="idempotency_key",
        )
    return key
