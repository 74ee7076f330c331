"""Delivery database management CLI.

Creates and drops the delivery schema using the setup_db/drop_db utilities.

Usage:
    python src/manage.py setup-db   # Create all tables
    python src/manage.py drop-db    # Drop all tables
"""

import argparse
import sys


def setup_database():
    """Create the delivery database schema."""
    from delivery.domain import delivery
    from delivery.utils.db import setup_db

    print("Initializing delivery domain...")
    delivery.init()
    print("Creating delivery database schema...")
    setup_db(delivery)
    print("Done.")


def drop_database():
    """Drop the delivery database schema."""
    from delivery.domain import delivery
    from delivery.utils.db import drop_db

    print("Initializing delivery domain...")
    delivery.init()
    print("Dropping delivery database schema...")
    drop_db(delivery)
    print("Done.")


def main():
    parser = argparse.ArgumentParser(description="Delivery database management")
    subparsers = parser.add_subparsers(dest="command", required=True)
    subparsers.add_parser("setup-db", help="Create all database tables")
    subparsers.add_parser("drop-db", help="Drop all database tables")

    args = parser.parse_args()

    if args.command == "setup-db":
        setup_database()
    elif args.command == "drop-db":
        drop_database()
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
