"""Pure domain layer: DTOs, rounding, balance and posting rules. No I/O."""
