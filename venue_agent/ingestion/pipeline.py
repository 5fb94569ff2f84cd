"""
Pipeline Orchestrator
=====================

Drives one venue through the eight onboarding stages:

1. create_record        - create (or reuse) the venue row
2. fetch_business_data  - business listing lookup      } run concurrently
3. fetch_web_content    - search/social/review/menu    }
4. harvest_images       - collect, gate, score, rank candidates
5. process_images       - download, classify, store the selected images
6. generate_content     - one model call with all harvested data
7. map_fields           - reconcile taxonomy labels, split direct fields/links
8. publish              - write fields, replace links, set published

Every stage reads its inputs from the payloads stored on the job and
overwrites its own payload when it finishes (or drops it when it fails), so
a stage can be re-run with ``resume_from`` without repeating earlier work.
Any failed stage except ``fetch_web_content`` halts the run. Nothing is
retried automatically.
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy.orm import Session

from venue_agent.core.config import AppConfig, get_default_config
from venue_agent.core.enums import JobState, StageName, StageStatus
from venue_agent.core.errors import (
    ConfigError,
    DuplicateVenueError,
    ResumeError,
    StageError,
    VenueAgentError,
)
from venue_agent.core.schema import (
    BusinessData,
    GeneratedContent,
    HarvestReport,
    JobProgress,
    MappedFields,
    Venue,
    VenueSeed,
)
from venue_agent.core.text import build_location_slug, extract_city, slugify
from venue_agent.db.repositories import IngestionJobRepository, ReferenceRepository, VenueRepository
from venue_agent.ingestion.business import BusinessDataFetcher, hours_to_dict
from venue_agent.ingestion.clients import (
    ActorBusinessDataClient,
    ActorClient,
    ActorImageSearchClient,
    BusinessDataClient,
    HttpImageDownloader,
    HttpScrapeClient,
    ImageDownloader,
    ImageSearchClient,
    ScrapeClient,
)
from venue_agent.ingestion.content import ContentGenerator
from venue_agent.ingestion.field_mapper import FieldMapper
from venue_agent.ingestion.image_engine import ImageCandidateEngine
from venue_agent.ingestion.image_finalizer import ImageFinalizer
from venue_agent.ingestion.menu_parser import MenuParser
from venue_agent.ingestion.reconciler import ReferenceReconciler
from venue_agent.ingestion.storage import LocalObjectStorage, ObjectStorage
from venue_agent.ingestion.vision import ImageClassifier, QualityGate
from venue_agent.ingestion.web_content import WebContentFetcher
from venue_agent.services.ai.client import AIClient, get_ai_client_from_env
from venue_agent.services.publishing_service import PublishingService

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[JobProgress], None]

# Payload keys
SEED = "seed"
BUSINESS_RAW = "business_raw"
BUSINESS_DATA = "business_data"
WEB_CONTENT = "web_content"
IMAGE_CANDIDATES = "image_candidates"
IMAGE_RESULTS = "image_results"
GENERATED_CONTENT = "generated_content"
MAPPED_FIELDS = "mapped_fields"
PUBLISH_RESULT = "publish_result"

# Payloads a stage needs before it can run.
STAGE_PREREQUISITES: dict[StageName, tuple[str, ...]] = {
    StageName.CREATE_RECORD: (),
    StageName.FETCH_BUSINESS_DATA: (),
    StageName.FETCH_WEB_CONTENT: (),
    StageName.HARVEST_IMAGES: (BUSINESS_DATA,),
    StageName.PROCESS_IMAGES: (IMAGE_CANDIDATES,),
    StageName.GENERATE_CONTENT: (BUSINESS_DATA,),
    StageName.MAP_FIELDS: (GENERATED_CONTENT,),
    StageName.PUBLISH: (MAPPED_FIELDS,),
}

# Payloads a stage writes.
STAGE_OUTPUTS: dict[StageName, tuple[str, ...]] = {
    StageName.CREATE_RECORD: (),
    StageName.FETCH_BUSINESS_DATA: (BUSINESS_RAW, BUSINESS_DATA),
    StageName.FETCH_WEB_CONTENT: (WEB_CONTENT,),
    StageName.HARVEST_IMAGES: (IMAGE_CANDIDATES,),
    StageName.PROCESS_IMAGES: (IMAGE_RESULTS,),
    StageName.GENERATE_CONTENT: (GENERATED_CONTENT,),
    StageName.MAP_FIELDS: (MAPPED_FIELDS,),
    StageName.PUBLISH: (PUBLISH_RESULT,),
}

# Stages whose failure does not halt the run.
NON_FATAL_STAGES = frozenset({StageName.FETCH_WEB_CONTENT})


@dataclass
class PipelineServices:
    """Every external handle the pipeline uses, injected by the caller."""

    business_client: BusinessDataClient
    scraper: ScrapeClient
    downloader: ImageDownloader
    content_ai: AIClient
    vision_ai: AIClient
    storage: ObjectStorage
    image_search: ImageSearchClient | None = None
    quality_ai: AIClient | None = None
    menu_parser: MenuParser = field(default_factory=MenuParser)


@dataclass
class PipelineResult:
    """Outcome of a run or resume."""

    job_id: str
    venue_id: str | None
    success: bool
    progress: JobProgress
    error: dict[str, Any] | None = None

    @property
    def published(self) -> bool:
        return self.progress.published

    def to_dict(self) -> dict[str, Any]:
        return {
            "job_id": self.job_id,
            "venue_id": self.venue_id,
            "success": self.success,
            "progress": self.progress.model_dump(mode="json"),
            "error": self.error,
        }


def _require_env(name: str) -> str:
    value = os.environ.get(name)
    if not value:
        raise ConfigError(f"{name} environment variable is required")
    return value


def build_default_services(config: AppConfig | None = None) -> PipelineServices:
    """
    Build production service handles from configuration and environment.

    Reads ``ACTOR_API_TOKEN`` and ``SCRAPE_API_KEY`` plus the AI provider keys.

    Raises:
        ConfigError: If a required key is missing.
    """
    config = config or get_default_config()
    services = config.services

    actor_client = ActorClient(
        token=_require_env("ACTOR_API_TOKEN"),
        base_url=services.actor_base_url,
        poll_interval=services.poll_interval,
        max_poll_attempts=services.max_poll_attempts,
        timeout=services.request_timeout,
    )
    quality_ai = None
    if config.pipeline.quality_gate_enabled:
        quality_ai = get_ai_client_from_env(services.quality_provider, services.quality_model)

    return PipelineServices(
        business_client=ActorBusinessDataClient(
            actor_client, services.business_actor, max_images=services.business_max_images
        ),
        scraper=HttpScrapeClient(
            token=_require_env("SCRAPE_API_KEY"),
            base_url=services.scrape_base_url,
            timeout=services.request_timeout,
        ),
        downloader=HttpImageDownloader(user_agent=services.user_agent),
        content_ai=get_ai_client_from_env(services.content_provider, services.content_model),
        vision_ai=get_ai_client_from_env(services.vision_provider, services.vision_model),
        storage=LocalObjectStorage(
            os.environ.get("VENUE_STORAGE_PATH", services.storage_path),
            os.environ.get("VENUE_STORAGE_BASE_URL", services.storage_base_url),
        ),
        image_search=ActorImageSearchClient(actor_client, services.image_search_actor),
        quality_ai=quality_ai,
    )


class PipelineOrchestrator:
    """Runs and resumes onboarding jobs."""

    def __init__(
        self,
        session: Session,
        services: PipelineServices,
        config: AppConfig | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> None:
        """
        Initialize the orchestrator.

        Args:
            session: SQLAlchemy session; committed after every stage transition.
            services: External service handles.
            config: Application configuration (defaults to the loaded config).
            on_progress: Called with the job's progress after every transition.
        """
        self.session = session
        self.services = services
        self.config = config or get_default_config()
        self.on_progress = on_progress
        self.job_repo = IngestionJobRepository(session)
        self.venue_repo = VenueRepository(session)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def run(self, seed: VenueSeed) -> PipelineResult:
        """Start a new job for ``seed`` and run every stage."""
        job = self.job_repo.create(seed, venue_id=seed.venue_id)
        self.job_repo.save_payload(job.id, SEED, seed.model_dump(mode="json"))
        self.session.commit()
        logger.info(f"Started onboarding job {job.id} for {seed.name!r}")
        return await self._execute(job.id, StageName.CREATE_RECORD)

    async def resume_from(self, job_id: str, stage: StageName | str) -> PipelineResult:
        """
        Re-run ``stage`` and every later stage of an existing job.

        Stored payloads from earlier stages are reused. Resuming from
        ``fetch_business_data`` re-runs both fetches.

        Raises:
            ResumeError: If the job is unknown or superseded, or an input
                payload the remaining stages need is missing.
        """
        stage = StageName(stage)
        job = self.job_repo.get_by_id(job_id)
        if job is None:
            raise ResumeError(f"Ingestion job {job_id} not found")
        if job.superseded_by or job.state == JobState.SUPERSEDED:
            raise ResumeError(f"Job {job_id} was superseded by {job.superseded_by}")
        if job.state == JobState.RUNNING:
            raise ResumeError(f"Job {job_id} is already running")
        if stage != StageName.CREATE_RECORD and job.venue_id is None:
            raise ResumeError(f"Job {job_id} has no venue record; resume from create_record")

        remaining = self._remaining(stage)
        available = set(job.payload_keys)
        for step in remaining:
            missing = [key for key in STAGE_PREREQUISITES[step] if key not in available]
            if missing:
                raise ResumeError(
                    f"Cannot resume job {job_id} from {stage.value}: "
                    f"{step.value} needs {', '.join(missing)}"
                )
            available.update(STAGE_OUTPUTS[step])

        for step in remaining:
            self.job_repo.set_stage_status(job_id, step, StageStatus.PENDING)
        self.session.commit()
        logger.info(f"Resuming job {job_id} from {stage.value}")
        return await self._execute(job_id, stage)

    def get_progress(self, job_id: str) -> JobProgress:
        """Current per-stage status map for a job."""
        job = self.job_repo.get_by_id(job_id)
        if job is None:
            raise ValueError(f"Ingestion job with id {job_id} not found")
        published = False
        if job.venue_id:
            venue = self.venue_repo.get_by_id(job.venue_id)
            published = bool(venue and venue.published)
        return JobProgress.from_job(job, published=published)

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    @staticmethod
    def _remaining(start: StageName) -> list[StageName]:
        return [s for s in StageName.ordered() if s.position >= start.position]

    async def _execute(self, job_id: str, start: StageName) -> PipelineResult:
        self.job_repo.set_state(job_id, JobState.RUNNING)
        self.session.commit()

        remaining = self._remaining(start)
        try:
            while remaining:
                stage = remaining.pop(0)
                if stage == StageName.FETCH_BUSINESS_DATA and StageName.FETCH_WEB_CONTENT in remaining:
                    remaining.remove(StageName.FETCH_WEB_CONTENT)
                    await self._run_fetch_group(job_id)
                else:
                    await self._run_stage(job_id, stage)
        except StageError as e:
            self.job_repo.set_state(job_id, JobState.FAILED, error=e.to_dict())
            self.session.commit()
            self._notify(job_id)
            logger.error(f"Job {job_id} halted: {e}")
            return self._result(job_id, success=False, error=e.to_dict())
        except BaseException as e:
            # Cancellation, timeouts and progress-callback errors land here.
            self._abort(job_id, e)
            raise

        self.job_repo.set_state(job_id, JobState.COMPLETED)
        self.session.commit()
        self._notify(job_id)
        logger.info(f"Job {job_id} completed")
        return self._result(job_id, success=True)

    async def _run_stage(self, job_id: str, stage: StageName) -> None:
        self._mark(job_id, stage, StageStatus.RUNNING)
        try:
            await self._handlers()[stage](job_id)
        except Exception as e:
            error = self._fail(job_id, stage, e)
            if stage not in NON_FATAL_STAGES:
                raise error from e
            return
        self._mark(job_id, stage, StageStatus.COMPLETED)

    async def _run_fetch_group(self, job_id: str) -> None:
        """Both fetches run at once; persistence happens after both settle."""
        self._mark(job_id, StageName.FETCH_BUSINESS_DATA, StageStatus.RUNNING)
        self._mark(job_id, StageName.FETCH_WEB_CONTENT, StageStatus.RUNNING)

        try:
            seed = self.job_repo.get_seed(job_id)
            venue = self._venue(job_id)
        except VenueAgentError as e:
            self._fail(job_id, StageName.FETCH_WEB_CONTENT, e)
            raise self._fail(job_id, StageName.FETCH_BUSINESS_DATA, e) from e

        business_outcome, web_outcome = await asyncio.gather(
            BusinessDataFetcher(self.services.business_client).fetch(seed.place_id),
            self._fetch_web(venue, seed.website or venue.website),
            return_exceptions=True,
        )

        for outcome in (business_outcome, web_outcome):
            if isinstance(outcome, BaseException) and not isinstance(outcome, Exception):
                raise outcome

        if isinstance(web_outcome, Exception):
            self._fail(job_id, StageName.FETCH_WEB_CONTENT, web_outcome)
        else:
            self._store_stage(job_id, StageName.FETCH_WEB_CONTENT, self._persist_web, web_outcome)

        if isinstance(business_outcome, Exception):
            raise self._fail(job_id, StageName.FETCH_BUSINESS_DATA, business_outcome) from business_outcome
        self._store_stage(job_id, StageName.FETCH_BUSINESS_DATA, self._persist_business, business_outcome)

    def _store_stage(
        self, job_id: str, stage: StageName, persist: Callable[[str, Any], None], outcome: Any
    ) -> None:
        try:
            persist(job_id, outcome)
        except Exception as e:
            error = self._fail(job_id, stage, e)
            if stage not in NON_FATAL_STAGES:
                raise error from e
            return
        self._mark(job_id, stage, StageStatus.COMPLETED)

    def _mark(self, job_id: str, stage: StageName, status: StageStatus) -> None:
        self.job_repo.set_stage_status(job_id, stage, status)
        self.session.commit()
        self._notify(job_id)

    def _fail(self, job_id: str, stage: StageName, error: Exception) -> StageError:
        """
        Roll back the stage's writes, mark it failed and build the error payload.

        Payloads left by an earlier run of the stage are dropped so later
        stages never read data the failed status contradicts.
        """
        self.session.rollback()
        for key in STAGE_OUTPUTS[stage]:
            self.job_repo.delete_payload(job_id, key)
        if isinstance(error, StageError):
            stage_error = error
        else:
            details = None
            if isinstance(error, DuplicateVenueError):
                details = {"is_duplicate": True, "existing_id": error.existing_id, "slug": error.slug}
            stage_error = StageError(stage.value, str(error), type(error).__name__, details)

        if stage in NON_FATAL_STAGES:
            logger.warning(f"Stage {stage.value} failed for job {job_id}, continuing: {error}")
        else:
            logger.error(f"Stage {stage.value} failed for job {job_id}: {error}", exc_info=error)
        self.job_repo.set_stage_status(job_id, stage, StageStatus.FAILED)
        self.session.commit()
        self._notify(job_id)
        return stage_error

    def _abort(self, job_id: str, error: BaseException) -> None:
        """
        Record an interrupted run so it can be resumed.

        Every stage still marked running becomes failed and the job gets a
        FAILED state with an error naming the interrupted stage. Progress
        callbacks are not invoked, since one of them may be the cause.
        """
        try:
            self.session.rollback()
            job = self.job_repo.get_by_id(job_id)
            if job is None:
                return
            running = [
                stage
                for stage in StageName.ordered()
                if job.stage_statuses.get(stage) == StageStatus.RUNNING
            ]
            for stage in running:
                self.job_repo.set_stage_status(job_id, stage, StageStatus.FAILED)
                for key in STAGE_OUTPUTS[stage]:
                    self.job_repo.delete_payload(job_id, key)
            message = str(error) or "run was cancelled or timed out"
            stage_error = StageError(
                ",".join(s.value for s in running) or "pipeline", message, type(error).__name__
            )
            self.job_repo.set_state(job_id, JobState.FAILED, error=stage_error.to_dict())
            self.session.commit()
            logger.error(f"Job {job_id} interrupted: {stage_error}")
        except Exception:
            logger.exception(f"Could not record interruption of job {job_id}")

    def _notify(self, job_id: str) -> None:
        if self.on_progress is not None:
            self.on_progress(self.get_progress(job_id))

    def _result(self, job_id: str, success: bool, error: dict[str, Any] | None = None) -> PipelineResult:
        progress = self.get_progress(job_id)
        return PipelineResult(
            job_id=job_id,
            venue_id=progress.venue_id,
            success=success,
            progress=progress,
            error=error,
        )

    def _handlers(self) -> dict[StageName, Callable[[str], Any]]:
        return {
            StageName.CREATE_RECORD: self._create_record,
            StageName.FETCH_BUSINESS_DATA: self._fetch_business_only,
            StageName.FETCH_WEB_CONTENT: self._fetch_web_only,
            StageName.HARVEST_IMAGES: self._harvest_images,
            StageName.PROCESS_IMAGES: self._process_images,
            StageName.GENERATE_CONTENT: self._generate_content,
            StageName.MAP_FIELDS: self._map_fields,
            StageName.PUBLISH: self._publish,
        }

    # ------------------------------------------------------------------
    # Stage handlers
    # ------------------------------------------------------------------

    def _venue(self, job_id: str) -> Venue:
        job = self.job_repo.get_by_id(job_id)
        if job is None or job.venue_id is None:
            raise VenueAgentError(f"Job {job_id} has no venue record")
        venue = self.venue_repo.get_by_id(job.venue_id)
        if venue is None:
            raise VenueAgentError(f"Venue {job.venue_id} not found")
        return venue

    def _payload(self, job_id: str, key: str) -> Any:
        value = self.job_repo.get_payload(job_id, key)
        if value is None:
            raise ResumeError(f"Job {job_id} is missing its {key} payload")
        return value

    async def _create_record(self, job_id: str) -> None:
        seed = self.job_repo.get_seed(job_id)
        job = self.job_repo.get_by_id(job_id)
        venue_id = (job.venue_id if job else None) or seed.venue_id

        if venue_id:
            venue = self.venue_repo.get_by_id(venue_id)
            if venue is None:
                raise VenueAgentError(f"Venue {venue_id} not found")
            logger.info(f"Reusing venue {venue.slug} ({venue.id})")
        else:
            slug = slugify(seed.name)
            existing = self.venue_repo.get_by_slug(slug)
            if existing is not None:
                raise DuplicateVenueError(slug, existing.id)
            venue = self.venue_repo.create(
                name=seed.name,
                slug=slug,
                place_id=seed.place_id,
                address=seed.address,
                city=extract_city(seed.address, default=self.config.pipeline.default_city),
                country=self.config.pipeline.default_country,
                latitude=seed.latitude,
                longitude=seed.longitude,
                website=seed.website,
            )
            logger.info(f"Created venue {venue.slug} ({venue.id}) in {venue.city}")

        self.job_repo.set_venue(job_id, venue.id)
        superseded = self.job_repo.supersede_previous(venue.id, job_id)
        if superseded:
            logger.info(f"Job {job_id} supersedes {superseded} earlier job(s)")

    async def _fetch_business_only(self, job_id: str) -> None:
        seed = self.job_repo.get_seed(job_id)
        outcome = await BusinessDataFetcher(self.services.business_client).fetch(seed.place_id)
        self._persist_business(job_id, outcome)

    async def _fetch_web_only(self, job_id: str) -> None:
        seed = self.job_repo.get_seed(job_id)
        venue = self._venue(job_id)
        content = await self._fetch_web(venue, seed.website or venue.website)
        self._persist_web(job_id, content)

    async def _fetch_web(self, venue: Venue, website: str | None) -> Any:
        fetcher = WebContentFetcher(
            self.services.scraper, self.services.menu_parser, self.config.pipeline
        )
        return await fetcher.fetch(venue.name, venue.address, website)

    def _persist_business(self, job_id: str, outcome: tuple[dict[str, Any], BusinessData]) -> None:
        raw, data = outcome
        self.job_repo.save_payload(job_id, BUSINESS_RAW, raw)
        self.job_repo.save_payload(job_id, BUSINESS_DATA, data.model_dump(mode="json"))

        venue = self._venue(job_id)
        fields: dict[str, Any] = {}
        for name in ("phone", "website", "price_range", "latitude", "longitude"):
            value = getattr(data, name)
            if value is not None:
                fields[name] = value
        if data.opening_hours:
            fields["hours"] = hours_to_dict(data.opening_hours)
        if fields:
            self.venue_repo.update_fields(venue.id, fields)

    def _persist_web(self, job_id: str, content: Any) -> None:
        self.job_repo.save_payload(job_id, WEB_CONTENT, content.model_dump(mode="json"))

    async def _harvest_images(self, job_id: str) -> None:
        venue = self._venue(job_id)
        business = BusinessData.model_validate(self._payload(job_id, BUSINESS_DATA))
        engine = ImageCandidateEngine(
            image_search=self.services.image_search,
            scraper=self.services.scraper,
            config=self.config.scoring,
        )
        report = await engine.harvest(
            venue.name,
            venue.address,
            website=business.website or venue.website,
            business_image_urls=business.image_urls,
        )
        self.job_repo.save_payload(job_id, IMAGE_CANDIDATES, report.model_dump(mode="json"))

    async def _process_images(self, job_id: str) -> None:
        venue = self._venue(job_id)
        report = HarvestReport.model_validate(self._payload(job_id, IMAGE_CANDIDATES))
        business_payload = self.job_repo.get_payload(job_id, BUSINESS_DATA)
        neighbourhood = (
            BusinessData.model_validate(business_payload).neighbourhood if business_payload else None
        )

        pipeline = self.config.pipeline
        quality_gate = None
        if pipeline.quality_gate_enabled and self.services.quality_ai is not None:
            quality_gate = QualityGate(
                self.services.quality_ai,
                threshold=pipeline.quality_threshold,
                min_width=pipeline.min_quality_width,
            )
        finalizer = ImageFinalizer(
            self.session,
            self.services.downloader,
            ImageClassifier(self.services.vision_ai),
            self.services.storage,
            quality_gate=quality_gate,
            max_images=pipeline.max_images_to_process,
        )
        result = await finalizer.finalize(
            venue,
            report.candidates,
            location_slug=build_location_slug(neighbourhood, venue.city),
            location_label=", ".join(p for p in (neighbourhood, venue.city) if p),
            job_id=job_id,
        )
        self.job_repo.save_payload(job_id, IMAGE_RESULTS, result.to_dict())

    async def _generate_content(self, job_id: str) -> None:
        venue = self._venue(job_id)
        generator = ContentGenerator(self.services.content_ai, ReferenceRepository(self.session))
        result = await generator.generate(
            venue,
            business=self._payload(job_id, BUSINESS_DATA),
            web=self.job_repo.get_payload(job_id, WEB_CONTENT),
        )
        self.job_repo.save_payload(job_id, GENERATED_CONTENT, result.to_payload())

    async def _map_fields(self, job_id: str) -> None:
        venue = self._venue(job_id)
        content = GeneratedContent.model_validate(self._payload(job_id, GENERATED_CONTENT)["content"])
        mapper = FieldMapper(ReferenceReconciler(self.session), self.config.pipeline.default_city)
        mapped = mapper.map(content, venue)
        self.job_repo.save_payload(job_id, MAPPED_FIELDS, mapped.model_dump(mode="json"))

    async def _publish(self, job_id: str) -> None:
        venue = self._venue(job_id)
        mapped = MappedFields.model_validate(self._payload(job_id, MAPPED_FIELDS))
        result = PublishingService(self.session).publish(venue.id, mapped)
        if not result.success:
            raise VenueAgentError(result.error_message or "publish failed")
        self.job_repo.save_payload(job_id, PUBLISH_RESULT, result.to_dict())
