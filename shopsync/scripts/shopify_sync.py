#!/usr/bin/env python3
"""
Shopify sync command line.

WHAT:
    Runs the connect flow or one orchestrated sync against DATABASE_URL and
    prints the result as JSON.

USAGE:
    # Probe a store and save the credential
    python -m shopsync.scripts.shopify_sync connect --client-id acme \
        --store-domain acme.myshopify.com --access-token shpat_xxx

    # Sync one tenant in-process
    python -m shopsync.scripts.shopify_sync sync --client-id acme \
        --start-date 2024-01-01 --end-date 2024-01-31

    # Hand the sync to the arq worker instead
    python -m shopsync.scripts.shopify_sync sync --client-id acme --enqueue

    # Sync every stored credential once (what the cron does)
    python -m shopsync.scripts.shopify_sync sync-all

REFERENCES:
    - shopsync/services/shopify_connection.py
    - shopsync/services/shopify_sync_service.py
    - shopsync/services/sync_scheduler.py
"""

import argparse
import asyncio
import json
import logging
import sys
from dataclasses import asdict
from typing import List, Optional

# Set up logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    stream=sys.stderr,
)
logger = logging.getLogger(__name__)


async def run_connect(session_factory, args) -> dict:
    from shopsync.database import session_scope
    from shopsync.services.shopify_connection import test_shopify_connection

    with session_scope(session_factory) as db:
        result = await test_shopify_connection(
            db,
            client_id=args.client_id,
            store_domain=args.store_domain,
            access_token=args.access_token,
            api_version=args.api_version,
        )
    return asdict(result)


async def run_sync(session_factory, args) -> dict:
    if args.enqueue:
        from shopsync.workers.arq_enqueue import enqueue_shopify_sync, reset_arq_pool

        try:
            return await enqueue_shopify_sync(args.client_id, args.start_date, args.end_date)
        finally:
            await reset_arq_pool()

    from shopsync.database import session_scope
    from shopsync.services.shopify_sync_service import sync_shopify_data

    with session_scope(session_factory) as db:
        result = await sync_shopify_data(
            db,
            args.client_id,
            start_date=args.start_date,
            end_date=args.end_date,
        )
    return result.to_dict()


async def run_sync_all(session_factory, args) -> dict:
    from shopsync.services.sync_scheduler import run_scheduled_sync

    return await run_scheduled_sync(session_factory)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Shopify ingestion and sync")
    subparsers = parser.add_subparsers(dest="command", required=True, help="Command")

    connect_parser = subparsers.add_parser("connect", help="Test a store connection and save the credential")
    connect_parser.add_argument("--client-id", required=True, help="Tenant identifier")
    connect_parser.add_argument("--store-domain", required=True, help="e.g. acme.myshopify.com")
    connect_parser.add_argument("--access-token", required=True, help="Admin API access token")
    connect_parser.add_argument("--api-version", default=None, help="Admin API version (default 2024-10)")

    sync_parser = subparsers.add_parser("sync", help="Sync products and orders for one tenant")
    sync_parser.add_argument("--client-id", required=True, help="Tenant identifier")
    sync_parser.add_argument("--start-date", default=None, help="Inclusive YYYY-MM-DD")
    sync_parser.add_argument("--end-date", default=None, help="Inclusive YYYY-MM-DD")
    sync_parser.add_argument("--enqueue", action="store_true", help="Enqueue on the arq worker instead of running here")

    subparsers.add_parser("sync-all", help="Sync every stored credential once")

    return parser


COMMANDS = {
    "connect": run_connect,
    "sync": run_sync,
    "sync-all": run_sync_all,
}


def main(argv: Optional[List[str]] = None, session_factory=None) -> int:
    args = build_parser().parse_args(argv)

    from shopsync.telemetry import init_observability
    init_observability()

    owns_engine = session_factory is None
    if owns_engine:
        from shopsync.database import build_session_factory
        session_factory = build_session_factory()

    try:
        output = asyncio.run(COMMANDS[args.command](session_factory, args))
    finally:
        if owns_engine:
            session_factory.kw["bind"].dispose()

    print(json.dumps(output, indent=2, default=str))

    ok = output.get("ok")
    if ok is None:
        ok = output.get("failed", 0) == 0 and output.get("status") != "skipped_or_duplicate"
    return 0 if ok else 1


if __name__ == "__main__":
    sys.exit(main())
