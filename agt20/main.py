"""
Main entry point for the agt-20 indexer.
"""

import structlog

from .config import settings
from .database.connection import get_session_factory
from .services.indexer import IndexerService
from .services.snapshot import SnapshotService
from .utils.logging import setup_logging

MODES = ("run", "backfill", "snapshot", "webhook")


def main(mode="run", continuous=False, debug=False, post=None, max_posts=None):
    """Main application entry point"""
    setup_logging("DEBUG" if debug else None)
    logger = structlog.get_logger()
    logger.info(
        "Starting agt-20 indexer",
        mode=mode,
        version=settings.INDEXER_VERSION,
        config=settings.model_dump(exclude={"DB_PASSWORD", "DATABASE_URL", "NVIDIA_API_KEY", "CRON_SECRET"}),
    )

    if mode not in MODES:
        raise ValueError(f"Unknown mode: {mode}")

    db_session = get_session_factory()()
    try:
        if mode == "snapshot":
            return SnapshotService(db_session).sync_tokens_to_db().to_dict()

        indexer = IndexerService(db_session)
        if mode == "webhook":
            if not post:
                raise ValueError("--post is required in webhook mode")
            return indexer.index_post(post)
        if mode == "backfill":
            return indexer.backfill(max_posts=max_posts).to_dict()
        if continuous:
            indexer.start_continuous_indexing()
            return None
        return indexer.run().to_dict()

    except Exception as e:
        logger.error("Unhandled exception", error=str(e))
        raise
    finally:
        db_session.close()


if __name__ == "__main__":
    main()
