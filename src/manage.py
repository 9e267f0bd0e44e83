"""Marketplace ordering management CLI.

Creates and drops the ordering schema on relational providers, and purges
carts whose retention window has passed.

Usage:
    python src/manage.py setup-db              # Create all tables
    python src/manage.py drop-db               # Drop all tables
    python src/manage.py purge-carts           # Clear expired carts
    PROTEAN_ENV=production python src/manage.py setup-db
"""

import argparse
import sys


def setup_databases():
    """Create database schemas for the ordering domain."""
    from ordering.domain import ordering
    from ordering.utils.db import setup_db

    print("Initializing ordering domain...")
    ordering.init()
    created = setup_db(ordering)
    if created:
        print(f"  Schema ready on: {', '.join(created)}")
    else:
        print("  No relational providers configured; nothing to create.")
    print("Done.")


def drop_databases():
    """Drop database schemas for the ordering domain."""
    from ordering.domain import ordering
    from ordering.utils.db import drop_db

    print("Initializing ordering domain...")
    ordering.init()
    dropped = drop_db(ordering)
    if dropped:
        print(f"  Schema dropped on: {', '.join(dropped)}")
    else:
        print("  No relational providers configured; nothing to drop.")
    print("Done.")


def purge_carts():
    """Clear every expired cart and report how many were cleared."""
    from ordering.marketplace import build_marketplace

    marketplace = build_marketplace(activate=True)
    try:
        purged = marketplace.carts.purge_expired()
    finally:
        marketplace.close()
    print(f"Purged {purged} expired cart(s).")
    return purged


def main(argv=None):
    parser = argparse.ArgumentParser(description="Marketplace ordering management")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("setup-db", help="Create all database tables")
    subparsers.add_parser("drop-db", help="Drop all database tables")
    subparsers.add_parser("purge-carts", help="Clear carts past their retention window")

    args = parser.parse_args(argv)

    if args.command == "setup-db":
        setup_databases()
    elif args.command == "drop-db":
        drop_databases()
    elif args.command == "purge-carts":
        purge_carts()
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
