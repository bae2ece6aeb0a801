#!/usr/bin/env python3
"""
Reindex Script

Recreates the books index and/or re-embeds and resyncs every catalog record.

Usage:
    python scripts/reindex.py                    # both steps
    python scripts/reindex.py --recreate-index   # schema only
    python scripts/reindex.py --reembed          # resync only
"""

import argparse
import asyncio
import os
import sys

from dotenv import load_dotenv
from loguru import logger

# Ensure current dir is in path
sys.path.append(os.getcwd())

load_dotenv()

from shelfsearch.api.dependencies import get_settings, init_services
from shelfsearch.exceptions import ShelfSearchError
from shelfsearch.search.sync import reindex


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Rebuild the ShelfSearch books index")
    parser.add_argument("--recreate-index", action="store_true", help="Delete and recreate the index")
    parser.add_argument("--reembed", action="store_true", help="Re-embed and resync every record")
    args = parser.parse_args(argv)

    # No flags means run both steps
    if not args.recreate_index and not args.reembed:
        args.recreate_index = True
        args.reembed = True
    return args


async def main(argv=None) -> int:
    args = parse_args(argv)
    services = init_services(get_settings())

    try:
        report = await reindex(
            services.sync_job,
            recreate_index=args.recreate_index,
            reembed=args.reembed,
        )
        if report is not None:
            logger.info(f"Done. Indexed {report.indexed} books ({report.failed} failed).")
        logger.info("Reindex complete.")
        return 0
    except ShelfSearchError as e:
        logger.error(f"Reindex failed: {e}")
        return 1
    finally:
        await services.close()


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
