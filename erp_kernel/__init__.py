"""
ERP Kernel - inventory and ledger consistency engine

A movement-sourced stock ledger and payment reconciliation core with:
- Stock derived from an append-only movement ledger
- Atomic party outstanding, account and document balance updates
- Payment allocation, advance adjustment and status-guarded reversal
- Simplified double-entry posting for loans and investments
- Injected summary cache with explicit invalidation
"""

__version__ = "0.1.0"
