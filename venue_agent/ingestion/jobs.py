"""
Background Jobs Module
======================

arq tasks that run onboarding jobs on a worker. Each venue is its own arq
job, so several venues can be onboarded at once with no shared state.
Uses Redis as the job queue backend.
"""

from __future__ import annotations

import logging
import os
from typing import Any

from arq import create_pool
from arq.connections import RedisSettings
from arq.jobs import Job, JobStatus

from venue_agent.core.config import get_default_config
from venue_agent.core.enums import StageName
from venue_agent.core.errors import VenueAgentError
from venue_agent.core.schema import VenueSeed
from venue_agent.db.engine import get_session
from venue_agent.ingestion.pipeline import PipelineOrchestrator, PipelineServices, build_default_services

logger = logging.getLogger(__name__)


def get_redis_settings() -> RedisSettings:
    """Get Redis connection settings from environment."""
    return RedisSettings(
        host=os.environ.get("REDIS_HOST", "localhost"),
        port=int(os.environ.get("REDIS_PORT", "6379")),
        database=int(os.environ.get("REDIS_DB", "0")),
    )


def _services(ctx: dict[str, Any]) -> PipelineServices:
    services = ctx.get("services")
    if services is None:
        services = build_default_services(get_default_config())
        ctx["services"] = services
    return services


async def onboard_venue(ctx: dict[str, Any], seed: dict[str, Any]) -> dict[str, Any]:
    """
    Onboard one venue end to end.

    Args:
        ctx: arq context; a ``services`` entry overrides the default handles.
        seed: VenueSeed as a dictionary.

    Returns:
        PipelineResult as dictionary.
    """
    venue_seed = VenueSeed.model_validate(seed)
    logger.info(f"Worker onboarding {venue_seed.name!r} ({venue_seed.place_id})")
    with get_session() as session:
        orchestrator = PipelineOrchestrator(session, _services(ctx), get_default_config())
        result = await orchestrator.run(venue_seed)
    return result.to_dict()


async def resume_job(ctx: dict[str, Any], job_id: str, stage: str) -> dict[str, Any]:
    """
    Resume an onboarding job from a stage.

    Returns:
        PipelineResult as dictionary, or ``{"job_id", "success": False, "error"}``
        when the job cannot be resumed.
    """
    with get_session() as session:
        orchestrator = PipelineOrchestrator(session, _services(ctx), get_default_config())
        try:
            result = await orchestrator.resume_from(job_id, StageName(stage))
        except VenueAgentError as e:
            logger.error(f"Cannot resume job {job_id}: {e}")
            return {"job_id": job_id, "success": False, "error": {"stage": stage, "message": str(e)}}
    return result.to_dict()


async def enqueue_onboarding(seed: VenueSeed) -> str:
    """
    Enqueue an onboarding job for async processing.

    Args:
        seed: The venue to onboard.

    Returns:
        arq job ID
    """
    redis = await create_pool(get_redis_settings())
    job = await redis.enqueue_job("onboard_venue", seed.model_dump(mode="json"))
    await redis.close()
    return job.job_id


async def enqueue_resume(job_id: str, stage: StageName) -> str:
    """Enqueue a resume of an existing ingestion job."""
    redis = await create_pool(get_redis_settings())
    job = await redis.enqueue_job("resume_job", job_id, stage.value)
    await redis.close()
    return job.job_id


async def get_job_status(job_id: str) -> dict[str, Any] | None:
    """
    Get the status of a queued onboarding job.

    Args:
        job_id: arq job ID to look up

    Returns:
        Job info dict, or None if not found
    """
    redis = await create_pool(get_redis_settings())
    job = Job(job_id, redis)
    status = await job.status()

    if status == JobStatus.not_found:
        await redis.close()
        return None

    info = await job.info()
    await redis.close()

    # A finished job's info is a JobResult; a task that raised stores the exception as its result.
    result = None
    if status == JobStatus.complete and info is not None:
        result = info.result if info.success else {"success": False, "error": {"message": str(info.result)}}

    return {
        "job_id": job_id,
        "status": status.value,
        "function": info.function if info else None,
        "result": result,
    }


class WorkerSettings:
    """arq worker settings."""

    functions = [onboard_venue, resume_job]
    redis_settings = get_redis_settings()
    max_jobs = 5
    job_timeout = 3600  # 1 hour
    keep_result = 86400  # 24 hours
