#!/usr/bin/env python3
"""
Create the invoice counter row (idempotent) and optionally change its
prefix/suffix.

Reads the database URL and default numbering from the active invoicing
configuration (INVOICING_CONFIG / DATABASE_URL are honoured).

Usage:
    python3 scripts/init_invoice_counter.py                  # create if missing
    python3 scripts/init_invoice_counter.py --create-tables  # also create schema
    python3 scripts/init_invoice_counter.py --prefix INV- --suffix /2025
    python3 scripts/init_invoice_counter.py --show           # print next number
"""

import argparse
import sys
from pathlib import Path

# Project root on sys.path
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))


def main() -> int:
    parser = argparse.ArgumentParser(description="Initialize the invoice counter")
    parser.add_argument("--config", help="Path to an invoicing configuration file")
    parser.add_argument("--create-tables", action="store_true", help="Create missing tables first")
    parser.add_argument("--prefix", help="Prefix for future invoice numbers")
    parser.add_argument("--suffix", help="Suffix for future invoice numbers")
    parser.add_argument("--show", action="store_true", help="Only print the next number")
    args = parser.parse_args()

    from invoice_config import get_active_config
    from invoice_config.bridges import build_sequence_service, engine_kwargs, initialize_counter
    from invoice_kernel.db.engine import create_tables, init_engine_from_url, session_scope
    from invoice_kernel.exceptions import InvoicingError

    try:
        config = get_active_config(args.config)
    except (FileNotFoundError, InvoicingError) as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1

    init_engine_from_url(**engine_kwargs(config))
    if args.create_tables:
        create_tables()

    try:
        with session_scope() as session:
            sequence = build_sequence_service(session, config)
            if not args.show:
                created = initialize_counter(session, config)
                print("Counter created." if created else "Counter already initialized.")
                if args.prefix is not None or args.suffix is not None:
                    current = sequence.peek()
                    sequence.reconfigure(
                        prefix=args.prefix if args.prefix is not None else current.prefix,
                        suffix=args.suffix if args.suffix is not None else current.suffix,
                    )

            pending = sequence.peek()
            if pending is None:
                print("Counter is not initialized.")
                return 1
            print(f"Next invoice number: {pending.display}")
    except ValueError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
