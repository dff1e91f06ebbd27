"""Worker logic: poll, claim, execute, record the outcome."""

import asyncio
import logging
from collections import Counter
from typing import Any, Dict, Optional

from analysis_jobs.errors import JobNotFoundError
from analysis_jobs.models import AnalysisJob, ExecutionResult, JobStatus
from analysis_jobs.registry import ExecutorRegistry
from analysis_jobs.service import AnalysisJobService

OUTCOMES = ("skipped", "succeeded", "requeued", "retried", "failed", "stale", "errors")


async def process_due_jobs(
    service: AnalysisJobService,
    registry: ExecutorRegistry,
    logger: Optional[logging.Logger] = None,
    batch_size: Optional[int] = None,
    concurrency: int = 1,
) -> Dict[str, int]:
    """
    Run one poll pass over the due jobs.

    Args:
        service: Analysis job service
        registry: Executor registry
        logger: Logger instance
        batch_size: Maximum jobs to list (defaults to config.batch_size)
        concurrency: How many claimed jobs may execute at once

    Returns:
        Counts per outcome, plus "claimed" for the number of leases taken
    """
    logger = logger or logging.getLogger(__name__)
    jobs = await service.list_due(batch_size)
    counts: Counter = Counter({outcome: 0 for outcome in OUTCOMES})
    counts["claimed"] = 0

    if not jobs:
        return dict(counts)

    semaphore = asyncio.Semaphore(max(1, concurrency))

    async def run_one(job: AnalysisJob) -> None:
        async with semaphore:
            try:
                outcome = await _process_job(service, registry, job, logger, counts)
            except Exception as e:
                # One job's trouble must not abort the rest of the batch
                logger.error(f"Error processing job {job.id}: {str(e)}", exc_info=True)
                outcome = "errors"
        counts[outcome] += 1

    await asyncio.gather(*(run_one(job) for job in jobs))
    return dict(counts)


async def _process_job(
    service: AnalysisJobService,
    registry: ExecutorRegistry,
    job: AnalysisJob,
    logger: logging.Logger,
    counts: Counter,
) -> str:
    claim = await service.claim(job.id)
    if not claim.claimed:
        logger.debug(f"Job {job.id} was not claimable, skipping")
        return "skipped"
    counts["claimed"] += 1

    try:
        current = await service.get_job(job.id)
    except JobNotFoundError:
        logger.warning(f"Job {job.id} disappeared right after being claimed")
        return "stale"

    executor = registry.get_handler(current.kind)
    if executor is None:
        logger.error(f"No executor registered for kind {current.kind.value}")
        status = await service.fail(
            current.id, claim.run_id, f"No executor registered for kind {current.kind.value}"
        )
        return _failure_outcome(status)

    logger.info(
        f"Executing job {current.id} (kind={current.kind.value}, attempt={current.attempts})"
    )

    try:
        ctx = {"job": current, "run_id": claim.run_id, "logger": logger}
        result = _coerce_result(await executor(ctx, current.payload))
    except Exception as e:
        logger.error(f"Job {current.id} failed: {str(e)}", exc_info=True)
        status = await service.fail(current.id, claim.run_id, str(e) or type(e).__name__)
        return _failure_outcome(status)

    status = await service.finalize(
        current.id,
        claim.run_id,
        result_summary=result.summary,
        result_ref=result.result_ref,
    )
    if status is None:
        return "stale"
    return "requeued" if status == JobStatus.PENDING else "succeeded"


def _failure_outcome(status: Optional[JobStatus]) -> str:
    if status is None:
        return "stale"
    return "retried" if status == JobStatus.PENDING else "failed"


def _coerce_result(raw_result: Any) -> ExecutionResult:
    if raw_result is None:
        return ExecutionResult()
    if isinstance(raw_result, ExecutionResult):
        return raw_result
    if isinstance(raw_result, dict):
        return ExecutionResult.model_validate(raw_result)
    raise TypeError(
        f"Executor returned {type(raw_result).__name__}, expected ExecutionResult, dict or None"
    )


async def run_worker_loop(
    service: AnalysisJobService,
    registry: ExecutorRegistry,
    logger: logging.Logger,
    batch_size: Optional[int] = None,
    concurrency: int = 1,
    poll_interval_seconds: float = 2.0,
    shutdown_event: asyncio.Event = None,
) -> None:
    """
    Run the worker loop that polls the store for due jobs.

    Args:
        service: Analysis job service
        registry: Executor registry
        logger: Logger instance
        batch_size: Maximum jobs per poll
        concurrency: Executors allowed to run at once
        poll_interval_seconds: Sleep after a pass that claimed nothing
        shutdown_event: Optional event to signal shutdown
    """
    logger.info("Starting analysis worker loop")

    while True:
        # Check for shutdown signal
        if shutdown_event and shutdown_event.is_set():
            logger.info("Shutdown signal received, exiting worker loop")
            break

        try:
            counts = await process_due_jobs(
                service,
                registry,
                logger=logger,
                batch_size=batch_size,
                concurrency=concurrency,
            )
        except Exception as e:
            logger.error(f"Error in worker loop: {str(e)}", exc_info=True)
            await asyncio.sleep(5)  # Brief pause before retrying
            continue

        if counts["claimed"] > 0:
            logger.info(f"Worker pass finished: {counts}")
        else:
            logger.debug("No due jobs claimed")
            await asyncio.sleep(poll_interval_seconds)
