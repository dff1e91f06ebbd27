"""CLI entrypoint for the maintenance scheduler."""

import argparse
import asyncio
import logging
import signal
import sys

from analysis_jobs.config import AnalysisJobsConfig
from analysis_jobs.scheduler import run_maintenance_loop
from analysis_jobs.service import AnalysisJobService
from analysis_jobs.store import PostgresJobStore
from analysis_jobs.worker_main import create_db_pool, setup_logging


def main():
    """Main entrypoint for the maintenance scheduler."""
    setup_logging()
    logger = logging.getLogger(__name__)

    parser = argparse.ArgumentParser(description="Analysis Jobs Maintenance Scheduler")
    parser.add_argument(
        "--reclaim-interval-seconds",
        type=int,
        default=60,
        help="Seconds between stale reclaim sweeps (default: 60)",
    )
    parser.add_argument(
        "--cleanup-interval-seconds",
        type=int,
        default=3600,
        help="Seconds between retention cleanup sweeps (default: 3600)",
    )
    args = parser.parse_args()

    try:
        config = AnalysisJobsConfig.from_env()
    except Exception as e:
        logger.error(f"Failed to load config: {e}")
        sys.exit(1)

    # Setup shutdown event
    shutdown_event = asyncio.Event()

    def signal_handler(signum, frame):
        logger.info(f"Received signal {signum}, shutting down...")
        shutdown_event.set()

    signal.signal(signal.SIGTERM, signal_handler)
    signal.signal(signal.SIGINT, signal_handler)

    async def run():
        """Async main function."""
        db_pool = None
        try:
            logger.info("Creating database connection pool...")
            db_pool = await create_db_pool(config)
            service = AnalysisJobService(config, PostgresJobStore(db_pool), logger)

            logger.info("Starting maintenance loop...")
            await run_maintenance_loop(
                service=service,
                logger=logger,
                reclaim_interval_seconds=args.reclaim_interval_seconds,
                cleanup_interval_seconds=args.cleanup_interval_seconds,
                shutdown_event=shutdown_event,
            )
        except Exception as e:
            logger.error(f"Fatal error in scheduler: {e}", exc_info=True)
            sys.exit(1)
        finally:
            if db_pool:
                logger.info("Closing database connection pool...")
                await db_pool.close()

    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
