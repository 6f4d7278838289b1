"""Storefront management CLI.

Database setup plus the periodic jobs an external scheduler (cron, K8s
CronJob) runs against the fulfillment pipeline.

Usage:
    python src/manage.py setup-db              # Create all tables
    python src/manage.py drop-db               # Drop all tables
    python src/manage.py reconcile-shipments   # Poll the carrier for in-flight orders
    python src/manage.py sweep-carts           # Flag idle carts and send recovery emails
    python src/manage.py prune-events          # Forget processed webhook events past retention
"""

import argparse
import json
import sys
from datetime import timedelta


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
    providers = setup_db(domain)
    print(f"  schema ready ({', '.join(providers) or 'no SQL providers'}).")


def drop_database():
    from storefront.utils.db import drop_db

    domain = _domain()
    print("Dropping storefront database schema...")
    providers = drop_db(domain)
    print(f"  dropped ({', '.join(providers) or 'no SQL providers'}).")


def reconcile_shipments(workers: int | None = None):
    from storefront.orchestrator.bootstrap import build_reconciliation

    domain = _domain()
    with domain.domain_context():
        scheduler = build_reconciliation()
        if workers is not None:
            scheduler.max_workers = max(1, workers)
        report = scheduler.run()
    print(json.dumps(report.as_dict(), indent=2))
    return 1 if report.failed else 0


def sweep_carts():
    from storefront.orchestrator.bootstrap import build_cart_sweep

    domain = _domain()
    with domain.domain_context():
        report = build_cart_sweep().run()
    print(json.dumps({"abandoned": report.abandoned, "emailed": report.emailed, "failed": report.failed}, indent=2))
    return 0


def prune_events(days: int | None):
    from storefront.config import get_settings
    from storefront.orchestrator.bootstrap import build_idempotency
    from storefront.utils.timestamps import utcnow

    domain = _domain()
    with domain.domain_context():
        store = build_idempotency(get_settings())
        older_than = utcnow() - timedelta(days=days) if days is not None else None
        removed = store.prune(older_than)
    print(f"Removed {removed} processed event record(s).")
    return 0


def main():
    parser = argparse.ArgumentParser(description="Storefront management")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("setup-db", help="Create all database tables")
    subparsers.add_parser("drop-db", help="Drop all database tables")

    reconcile_parser = subparsers.add_parser("reconcile-shipments", help="Poll carrier tracking for open orders")
    reconcile_parser.add_argument(
        "--workers", type=int, default=None, help="Orders reconciled in parallel (default: RECONCILIATION_WORKERS)"
    )

    subparsers.add_parser("sweep-carts", help="Run the abandoned-cart sweep")

    prune_parser = subparsers.add_parser("prune-events", help="Delete old processed-event records")
    prune_parser.add_argument("--days", type=int, default=None, help="Override the retention window")

    args = parser.parse_args()

    if args.command == "setup-db":
        setup_database()
    elif args.command == "drop-db":
        drop_database()
    elif args.command == "reconcile-shipments":
        sys.exit(reconcile_shipments(args.workers))
    elif args.command == "sweep-carts":
        sys.exit(sweep_carts())
    elif args.command == "prune-events":
        sys.exit(prune_events(args.days))
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
