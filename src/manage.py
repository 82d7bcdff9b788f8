"""Storefront management CLI.

Creates and drops the database schema, and runs the scheduled maintenance
jobs for deployments that prefer cron over the maintenance endpoints.

Usage:
    python src/manage.py setup-db              # Create all tables
    python src/manage.py drop-db               # Drop all tables
    python src/manage.py expire-reservations   # Close lapsed holds
    python src/manage.py purge                 # Delete old holds and ledger records
"""

import argparse
import sys


def _domain():
    from storefront.domain import storefront
    from storefront.utils.logging import configure_logging

    configure_logging()
    storefront.init()
    return storefront


def setup_database():
    from storefront.utils.db import setup_db

    domain = _domain()
    print("Creating storefront database schema...")
    setup_db(domain)
    print("Done.")


def drop_database():
    from storefront.utils.db import drop_db

    domain = _domain()
    print("Dropping storefront database schema...")
    drop_db(domain)
    print("Done.")


def expire_reservations():
    from storefront.reservation.expiry import ExpireReservations

    domain = _domain()
    with domain.domain_context():
        expired = domain.process(ExpireReservations(), asynchronous=False)
    print(f"Expired {expired} reservation(s).")


def purge(grace_hours=None, retention_days=None):
    from storefront.reservation.retention import PurgeReservations
    from storefront.settlement.ledger import PruneLedger

    domain = _domain()
    with domain.domain_context():
        purged = domain.process(PurgeReservations(grace_hours=grace_hours), asynchronous=False)
        pruned = domain.process(PruneLedger(retention_days=retention_days), asynchronous=False)
    print(f"Purged {purged} reservation(s) and {pruned} payment event record(s).")


def main():
    parser = argparse.ArgumentParser(description="Storefront management")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("setup-db", help="Create all database tables")
    subparsers.add_parser("drop-db", help="Drop all database tables")
    subparsers.add_parser("expire-reservations", help="Mark lapsed reservations expired")

    purge_parser = subparsers.add_parser("purge", help="Delete closed reservations and old ledger records")
    purge_parser.add_argument("--grace-hours", type=int, default=None, help="Keep closed holds this long")
    purge_parser.add_argument("--retention-days", type=int, default=None, help="Keep ledger records this long")

    args = parser.parse_args()

    if args.command == "setup-db":
        setup_database()
    elif args.command == "drop-db":
        drop_database()
    elif args.command == "expire-reservations":
        expire_reservations()
    elif args.command == "purge":
        purge(args.grace_hours, args.retention_days)
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
