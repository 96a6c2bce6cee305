#!/usr/bin/env python3
"""
Recompute party outstanding from documents and open advances.

Resets every party's stored outstanding to
max(0, SUM(balance of Confirmed documents) - SUM(open advance balances))
and prints what changed.  Also checks stored stock running balances.

Usage:
    python3 scripts/recalculate_ledgers.py                  # all parties
    python3 scripts/recalculate_ledgers.py --type customer  # customers only
    python3 scripts/recalculate_ledgers.py --dry-run        # report, roll back
    python3 scripts/recalculate_ledgers.py --config prod.yaml
"""

import argparse
import sys

from erp_config import get_settings
from erp_config.bridges import engine_options, kernel_options
from erp_kernel.db.engine import get_session, init_engine_from_url
from erp_kernel.exceptions import StockBalanceDivergenceError
from erp_kernel.logging_config import configure_logging
from erp_kernel.models.item import ItemType
from erp_kernel.services import ErpKernel


def main() -> int:
    parser = argparse.ArgumentParser(description="Recalculate party outstanding from source documents")
    parser.add_argument("--type", choices=["customer", "supplier"], help="Only one party type")
    parser.add_argument("--dry-run", action="store_true", help="Show changes without committing")
    parser.add_argument("--config", help="YAML settings override file")
    args = parser.parse_args()

    settings = get_settings(args.config)
    configure_logging(level=settings.log_level)
    init_engine_from_url(settings.database.url, **engine_options(settings))

    session = get_session()
    try:
        kernel = ErpKernel(session, **kernel_options(settings))
        balances = kernel.parties.recalculate_from_source(args.type)

        changed = [b for b in balances if b.outstanding != b.recomputed]
        print(f"Checked {len(balances)} part{'y' if len(balances) == 1 else 'ies'}, {len(changed)} corrected")
        for b in changed:
            print(f"  {b.code:<12} {b.name:<30} {b.outstanding:>14} -> {b.recomputed:>14}")

        divergent = 0
        for item_type in ItemType:
            for item in kernel.stock.all_items_with_stock(item_type.value):
                try:
                    kernel.stock.verify_running_balances(item_type.value, item.item_id)
                except StockBalanceDivergenceError as exc:
                    divergent += 1
                    print(f"  stock {item.code}: stored {exc.stored}, recomputed {exc.recomputed}")
        if divergent:
            print(f"{divergent} item(s) with a diverging running balance (stock itself is unaffected)")

        if args.dry_run:
            session.rollback()
            print("Dry run: rolled back")
        else:
            session.commit()
    except Exception as exc:
        session.rollback()
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1
    finally:
        session.close()

    return 0


if __name__ == "__main__":
    sys.exit(main())
