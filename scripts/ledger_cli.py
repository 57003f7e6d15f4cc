#!/usr/bin/env python3
"""
Operator commands for the donation ledger.

Usage:
    python3 scripts/ledger_cli.py init-db
    python3 scripts/ledger_cli.py inventory [--category CAT] [--json]
    python3 scripts/ledger_cli.py verify-ledger
    python3 scripts/ledger_cli.py funding <campaign_id> [--json]
    python3 scripts/ledger_cli.py resend-receipts [--limit N]

Examples:
    # Create tables in a local SQLite file
    python3 scripts/ledger_cli.py --db-url sqlite:///donations.db init-db

    # Check every stock row against its adjustment ledger
    python3 scripts/ledger_cli.py verify-ledger

    # Use a deployment config file instead of the packaged defaults
    python3 scripts/ledger_cli.py --config /etc/donations.yaml inventory
"""

import argparse
import json
import logging
import sys
from dataclasses import asdict
from uuid import UUID

W = 72


# =============================================================================
# Formatting helpers
# =============================================================================


def banner(title: str) -> None:
    print()
    print("=" * W)
    print(f"  {title}")
    print("=" * W)


def field(name: str, value, indent: int = 4) -> None:
    print(f"{' ' * indent}{name}: {value}")


# =============================================================================
# Commands
# =============================================================================


def cmd_init_db(portal, args) -> int:
    from donation_kernel.db.engine import create_tables

    create_tables()
    print("  tables created")
    return 0


def cmd_inventory(portal, args) -> int:
    items = portal.list_inventory(category=args.category)
    stats = portal.inventory_statistics()

    if args.json:
        print(json.dumps(
            {
                "items": [asdict(item) for item in items],
                "statistics": asdict(stats),
            },
            indent=2,
            default=str,
        ))
        return 0

    banner("INVENTORY")
    print(f"    {'item':<28} {'category':<12} {'location':<10} {'qty':>6}  status")
    print(f"    {'----':<28} {'--------':<12} {'--------':<10} {'---':>6}  ------")
    for item in items:
        print(
            f"    {item.item_name[:28]:<28} {item.category:<12} "
            f"{item.location[:10]:<10} {item.quantity:>6}  {item.status.value}"
        )
    print()
    field("total_units", stats.total_units)
    field("item_types", stats.item_types)
    field("critical_items", stats.critical_items)
    field("low_stock_items", stats.low_stock_items)
    return 0


def cmd_verify_ledger(portal, args) -> int:
    discrepancies = portal.verify_ledger()
    if not discrepancies:
        print("  ledger OK: every stock row matches its adjustment replay")
        return 0

    banner(f"LEDGER DISCREPANCIES ({len(discrepancies)})")
    for d in discrepancies:
        print(f"  {d.key}")
        field("inventory_item_id", d.inventory_item_id, indent=6)
        field("stored_quantity", d.stored_quantity, indent=6)
        field("replayed_quantity", d.replayed_quantity, indent=6)
    return 2


def cmd_funding(portal, args) -> int:
    summary = portal.get_campaign_funding_summary(args.campaign_id)
    if args.json:
        print(json.dumps(summary.as_dict(), indent=2, default=str))
        return 0

    banner(f"CAMPAIGN {args.campaign_id}")
    for name, value in summary.as_dict().items():
        field(name, value)
    return 0


def cmd_resend_receipts(portal, args) -> int:
    sent = portal.resend_outstanding_receipts(limit=args.limit)
    print(f"  receipts dispatched: {sent}")
    return 0


# =============================================================================
# Main
# =============================================================================


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Donation ledger operator commands.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--config", type=str, default=None,
        help="Portal YAML config (default: packaged defaults.yaml)",
    )
    parser.add_argument(
        "--db-url", type=str, default=None,
        help="Database URL (default: database.url from the config)",
    )
    parser.add_argument(
        "--verbose", action="store_true",
        help="Emit structured JSON logs to stderr",
    )

    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init-db", help="Create all tables")

    inventory = sub.add_parser("inventory", help="Stock report")
    inventory.add_argument("--category", type=str, default=None)
    inventory.add_argument("--json", action="store_true")

    sub.add_parser("verify-ledger", help="Replay the adjustment ledger")

    funding = sub.add_parser("funding", help="Campaign funding summary")
    funding.add_argument("campaign_id", type=UUID)
    funding.add_argument("--json", action="store_true")

    resend = sub.add_parser("resend-receipts", help="Dispatch outstanding receipts")
    resend.add_argument("--limit", type=int, default=None)

    return parser


COMMANDS = {
    "init-db": cmd_init_db,
    "inventory": cmd_inventory,
    "verify-ledger": cmd_verify_ledger,
    "funding": cmd_funding,
    "resend-receipts": cmd_resend_receipts,
}


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    from donation_config import get_active_config
    from donation_kernel.db.engine import init_engine_from_url
    from donation_kernel.db.immutability import register_immutability_listeners
    from donation_kernel.exceptions import DonationKernelError
    from donation_kernel.logging_config import configure_logging
    from donation_services.portal import DonationPortal

    if args.verbose:
        configure_logging(level=logging.INFO)
    else:
        # Suppress library logging
        logging.disable(logging.CRITICAL)

    try:
        config = get_active_config(args.config)
    except (OSError, KeyError, ValueError) as exc:
        print(f"  ERROR: Cannot load config: {exc}", file=sys.stderr)
        return 1

    db_url = args.db_url or config.database.url
    try:
        init_engine_from_url(
            db_url,
            echo=config.database.echo,
            pool_size=config.database.pool_size,
            max_overflow=config.database.max_overflow,
        )
    except Exception as exc:
        print(f"  ERROR: Cannot connect to database: {exc}", file=sys.stderr)
        return 1

    register_immutability_listeners()

    portal = DonationPortal(config)
    try:
        return COMMANDS[args.command](portal, args)
    except DonationKernelError as exc:
        print(f"  ERROR [{exc.code}]: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
