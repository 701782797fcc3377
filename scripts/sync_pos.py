"""
One-shot POS reconciliation from the command line.

    python scripts/sync_pos.py --mode pull
    python scripts/sync_pos.py --mode both --resources items orders
"""
import argparse
import asyncio
import json
import sys
import os

# Add the project root directory to the Python path
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from app.services.auto_migration import run_auto_migration
from app.services.db_service import AsyncSessionLocal, engine
from app.services.pos_client import pos_client
from app.services.pos_sync_service import RESOURCES, sync_from_pos
from app.utils.structured_logging import configure_logging
import logging

logger = logging.getLogger(__name__)


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Reconcile the local catalog with the POS")
    parser.add_argument("--mode", choices=["pull", "push", "both"], default="both")
    parser.add_argument("--resources", nargs="+", choices=RESOURCES, default=list(RESOURCES),
                        help="resources to pull (default: all)")
    return parser.parse_args(argv)


async def main(argv=None) -> int:
    configure_logging()
    args = parse_args(argv)

    if not pos_client.is_configured():
        logger.error("POS_MERCHANT_ID and POS_API_TOKEN must be set")
        return 1

    await run_auto_migration()
    async with AsyncSessionLocal() as session:
        report = await sync_from_pos(session, mode=args.mode, resources=args.resources)
    await engine.dispose()

    print(json.dumps(report, indent=2, default=str))
    return 1 if report["errors"] else 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
