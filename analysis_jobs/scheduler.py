"""Maintenance loop: stale lease reclamation and retention cleanup."""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Optional

from analysis_jobs.service import AnalysisJobService


async def run_maintenance_loop(
    service: AnalysisJobService,
    logger: logging.Logger,
    loop_interval_seconds: int = 5,
    reclaim_interval_seconds: int = 60,
    cleanup_interval_seconds: int = 3600,
    shutdown_event: asyncio.Event = None,
) -> None:
    """
    Run the periodic sweeps that keep the queue healthy.

    Args:
        service: Analysis job service
        logger: Logger instance
        loop_interval_seconds: Time to sleep between iterations
        reclaim_interval_seconds: Time between stale reclaim sweeps
        cleanup_interval_seconds: Time between retention cleanup sweeps
        shutdown_event: Optional event to signal shutdown
    """
    logger.info("Starting maintenance loop")

    last_reclaim_run: Optional[datetime] = None
    last_cleanup_run: Optional[datetime] = None

    while True:
        # Check for shutdown signal
        if shutdown_event and shutdown_event.is_set():
            logger.info("Shutdown signal received, exiting maintenance loop")
            break

        now = datetime.now(timezone.utc)

        if _is_due(last_reclaim_run, now, reclaim_interval_seconds):
            try:
                requeued = await service.reclaim_stale()
                if requeued > 0:
                    logger.info(f"Stale reclaimer requeued {requeued} jobs")
                last_reclaim_run = now
            except Exception as e:
                logger.error(f"Error in stale reclaimer: {str(e)}", exc_info=True)

        if _is_due(last_cleanup_run, now, cleanup_interval_seconds):
            try:
                removed = await service.cleanup()
                if removed > 0:
                    logger.info(f"Cleanup removed {removed} finished jobs")
                last_cleanup_run = now
            except Exception as e:
                logger.error(f"Error in cleanup: {str(e)}", exc_info=True)

        # Sleep before next iteration
        await asyncio.sleep(loop_interval_seconds)


def _is_due(last_run: Optional[datetime], now: datetime, interval_seconds: int) -> bool:
    return last_run is None or (now - last_run).total_seconds() >= interval_seconds
