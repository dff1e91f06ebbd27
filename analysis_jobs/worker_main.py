"""CLI entrypoint and programmatic interface for the analysis worker."""

import argparse
import asyncio
import importlib
import logging
import os
import signal
import sys
from typing import Optional

import asyncpg

from analysis_jobs.config import AnalysisJobsConfig
from analysis_jobs.registry import ExecutorRegistry, executor_registry
from analysis_jobs.service import AnalysisJobService
from analysis_jobs.store import PostgresJobStore
from analysis_jobs.worker import run_worker_loop


def setup_logging():
    """Setup logging configuration."""
    log_level = os.getenv("LOG_LEVEL", "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


async def create_db_pool(config: AnalysisJobsConfig):
    """Create database connection pool."""
    return await asyncpg.create_pool(config.db_dsn, min_size=2, max_size=10)


def load_handlers(handlers_module: Optional[str] = None, logger: Optional[logging.Logger] = None):
    """Import the module that registers executors on the global registry."""
    logger = logger or logging.getLogger(__name__)
    handlers_module = handlers_module or os.getenv("ANALYSIS_JOBS_HANDLERS_MODULE")
    if not handlers_module:
        logger.warning(
            "ANALYSIS_JOBS_HANDLERS_MODULE not set, no executors will be available"
        )
        return

    try:
        importlib.import_module(handlers_module)
        logger.info(f"Loaded executors from {handlers_module}")
    except ImportError as e:
        logger.warning(f"Failed to import handlers module {handlers_module}: {e}")


async def run_worker(
    config: Optional[AnalysisJobsConfig] = None,
    db_pool=None,
    registry: Optional[ExecutorRegistry] = None,
    logger: Optional[logging.Logger] = None,
    shutdown_event: Optional[asyncio.Event] = None,
    batch_size: Optional[int] = None,
    concurrency: int = 1,
    poll_interval_seconds: float = 2.0,
    handlers_module: Optional[str] = None,
):
    """
    Run the worker programmatically.

    Args:
        config: AnalysisJobsConfig instance. If None, will load from environment.
        db_pool: Database connection pool. If None, will create from config.
        registry: ExecutorRegistry instance. If None, will use global executor_registry.
        logger: Logger instance. If None, will create default logger.
        shutdown_event: Optional asyncio.Event for graceful shutdown.
        batch_size: Max due jobs per poll.
        concurrency: Executors allowed to run at once.
        poll_interval_seconds: Idle sleep between polls.
        handlers_module: Module registering executors. If None, uses ANALYSIS_JOBS_HANDLERS_MODULE.

    Example:
        ```python
        from analysis_jobs.worker_main import run_worker

        asyncio.run(run_worker(handlers_module="myapp.analysis.executors"))
        ```
    """
    if config is None:
        config = AnalysisJobsConfig.from_env()

    if logger is None:
        logger = logging.getLogger(__name__)

    if registry is None:
        registry = executor_registry

    if shutdown_event is None:
        shutdown_event = asyncio.Event()

    load_handlers(handlers_module, logger)

    db_pool_provided = db_pool is not None
    if db_pool is None:
        db_pool = await create_db_pool(config)

    try:
        service = AnalysisJobService(config, PostgresJobStore(db_pool), logger)
        await run_worker_loop(
            service=service,
            registry=registry,
            logger=logger,
            batch_size=batch_size,
            concurrency=concurrency,
            poll_interval_seconds=poll_interval_seconds,
            shutdown_event=shutdown_event,
        )
    finally:
        if not db_pool_provided and db_pool:
            await db_pool.close()


def main():
    """Main entrypoint for worker."""
    setup_logging()
    logger = logging.getLogger(__name__)

    parser = argparse.ArgumentParser(description="Analysis Jobs Worker")
    parser.add_argument(
        "--batch-size",
        type=int,
        default=None,
        help="Max due jobs to list per poll (default: ANALYSIS_JOBS_BATCH_SIZE or 10)",
    )
    parser.add_argument(
        "--concurrency",
        type=int,
        default=1,
        help="Executors allowed to run at once (default: 1)",
    )
    parser.add_argument(
        "--poll-interval-seconds",
        type=float,
        default=2.0,
        help="Idle sleep between polls in seconds (default: 2.0)",
    )
    parser.add_argument(
        "--handlers-module",
        default=None,
        help="Module that registers executors (default: ANALYSIS_JOBS_HANDLERS_MODULE)",
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
        try:
            logger.info("Starting analysis worker...")
            await run_worker(
                config=config,
                registry=executor_registry,
                logger=logger,
                shutdown_event=shutdown_event,
                batch_size=args.batch_size,
                concurrency=args.concurrency,
                poll_interval_seconds=args.poll_interval_seconds,
                handlers_module=args.handlers_module,
            )
        except Exception as e:
            logger.error(f"Fatal error in worker: {e}", exc_info=True)
            sys.exit(1)

    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
