#!/usr/bin/env python3
"""
Mark every sent invoice past its due date as overdue.

Intended for a periodic job (cron, systemd timer).

Usage:
    python3 scripts/run_overdue_sweep.py
    python3 scripts/run_overdue_sweep.py --config /etc/invoicing.yaml
"""

import argparse
import sys
from pathlib import Path
from uuid import uuid4

# Project root on sys.path
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))


def main() -> int:
    parser = argparse.ArgumentParser(description="Run the overdue invoice sweep")
    parser.add_argument("--config", help="Path to an invoicing configuration file")
    args = parser.parse_args()

    from invoice_config import get_active_config
    from invoice_config.bridges import engine_kwargs
    from invoice_kernel.db.engine import init_engine_from_url
    from invoice_services.overdue_sweep import run_overdue_sweep

    config = get_active_config(args.config)
    init_engine_from_url(**engine_kwargs(config))

    marked = run_overdue_sweep(correlation_id=str(uuid4()))
    for invoice in marked:
        print(f"  {invoice.display_number}  due {invoice.due_date:%Y-%m-%d}  -> overdue")
    print(f"{len(marked)} invoice(s) marked overdue.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
