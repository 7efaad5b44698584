"""Tradehub operator CLI.

Database schema management plus the scheduled and manual operations an
operator runs against the marketplace.

Usage:
    python src/manage.py setup-db          # Create all tables
    python src/manage.py drop-db           # Drop all tables
    python src/manage.py pending-payouts   # What each seller is owed
    python src/manage.py sweep-payouts     # Retry failed payouts past their backoff
    python src/manage.py parked-payments   # Manual reconciliation queue
"""

import argparse
import sys


def _domain():
    from marketplace.domain import marketplace
    from marketplace.utils.logging import configure_logging

    configure_logging()
    marketplace.init()
    return marketplace


def setup_database():
    from marketplace.utils.db import setup_db

    domain = _domain()
    print("Creating marketplace database schema...")
    setup_db(domain)
    print("Done.")


def drop_database():
    from marketplace.utils.db import drop_db

    domain = _domain()
    print("Dropping marketplace database schema...")
    drop_db(domain)
    print("Done.")


def show_pending_payouts():
    from marketplace.payout.calculation import calculate_pending

    with _domain().domain_context():
        candidates = calculate_pending()
        if not candidates:
            print("No seller has an eligible balance.")
            return
        for candidate in candidates:
            print(
                f"{candidate.seller_id}: {len(candidate.lines)} order(s), "
                f"gross {candidate.gross_amount}, commission {candidate.total_commission}, "
                f"fees {candidate.total_fees}, net {candidate.net_amount}"
            )


def sweep_payouts():
    from marketplace.payout.engine import shutdown_executor, sweep_failed_payouts

    with _domain().domain_context():
        retried = sweep_failed_payouts(actor="manage.py")
        # Waits for the transfers started by the sweep
        shutdown_executor(wait=True)
    print(f"Retried {len(retried)} payout(s).")
    for payout_id in retried:
        print(f"  {payout_id}")


def show_parked_payments(limit: int):
    from marketplace.reconciliation.manual import open_notifications

    with _domain().domain_context():
        records = open_notifications(limit=limit)
        if not records:
            print("Reconciliation queue is empty.")
            return
        for record in records:
            reason = record.park_reason or "partial"
            print(
                f"{record.notification_id}  {record.amount}  from {record.sender_phone or '-'}  "
                f"ref {record.reference or '-'}  [{reason}]"
            )


def main():
    parser = argparse.ArgumentParser(description="Tradehub operator commands")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("setup-db", help="Create all database tables")
    subparsers.add_parser("drop-db", help="Drop all database tables")
    subparsers.add_parser("pending-payouts", help="List what each seller is currently owed")
    subparsers.add_parser("sweep-payouts", help="Retry failed payouts whose backoff has passed")

    parked_parser = subparsers.add_parser("parked-payments", help="List parked and partial payment notifications")
    parked_parser.add_argument("--limit", type=int, default=100)

    args = parser.parse_args()

    if args.command == "setup-db":
        setup_database()
    elif args.command == "drop-db":
        drop_database()
    elif args.command == "pending-payouts":
        show_pending_payouts()
    elif args.command == "sweep-payouts":
        sweep_payouts()
    elif args.command == "parked-payments":
        show_parked_payments(args.limit)
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
