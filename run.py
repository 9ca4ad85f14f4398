"""
Runnable script for the agt-20 indexer.
"""

import argparse
import multiprocessing
import time

import structlog
import uvicorn

from agt20.api.main import app as api_app
from agt20.config import settings
from agt20.main import MODES, main as run_indexer

logger = structlog.get_logger()


def start_indexer_process(mode="run", continuous=False, debug=False):
    """Starts the indexer in a separate process."""
    logger.info("Starting indexer process...", mode=mode, continuous=continuous)
    run_indexer(mode=mode, continuous=continuous, debug=debug)


def start_api_server():
    """Starts the FastAPI server."""
    logger.info("Starting API server...")
    uvicorn.run(api_app, host=settings.API_HOST, port=settings.API_PORT)


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="agt-20 Indexer")
    parser.add_argument("--mode", choices=MODES, default="run", help="What the indexer should do")
    parser.add_argument("--post", help="Post id or URL to index (webhook mode)")
    parser.add_argument("--max-posts", type=int, help="Safety cap on posts fetched during backfill")
    parser.add_argument(
        "--indexer-only",
        action="store_true",
        help="Run only the indexer (no API server)",
    )
    parser.add_argument(
        "--continuous",
        action="store_true",
        help="Run in continuous mode (poll the feed every INDEX_INTERVAL seconds)",
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    args = parser.parse_args()

    if args.indexer_only or args.mode != "run":
        result = run_indexer(
            mode=args.mode,
            continuous=args.continuous,
            debug=args.debug,
            post=args.post,
            max_posts=args.max_posts,
        )
        if result is not None:
            logger.info("Indexer finished", result=result)
    else:
        indexer_process = multiprocessing.Process(
            target=start_indexer_process, args=(args.mode, args.continuous, args.debug)
        )
        indexer_process.start()

        time.sleep(5)

        start_api_server()

        indexer_process.join()
