"""
Venue Agent Ingestion Pipeline
==============================

Onboards one venue per run by fusing several unreliable external sources
into a single published record.

Pipeline Stages:
1. Create record - venue row from the seed (name, place id, address)
2. Fetch business data - business listing: hours, price, phone, photos
3. Fetch web content - social/review/award searches, homepage, menu (parallel with 2)
4. Harvest images - dedupe, hard-gate, score and rank candidate images
5. Process images - download, classify, store, record the top candidates
6. Generate content - one structured-content model call over all raw data
7. Map fields - reconcile taxonomy labels to canonical reference entities
8. Publish - write fields, replace links, set the published flag
"""

from venue_agent.ingestion.business import BusinessDataFetcher, normalize_place
from venue_agent.ingestion.clients import (
    ActorBusinessDataClient,
    ActorClient,
    ActorImageSearchClient,
    BusinessDataClient,
    DownloadResult,
    HttpImageDownloader,
    HttpScrapeClient,
    ImageDownloader,
    ImageSearchClient,
    ScrapeClient,
)
from venue_agent.ingestion.content import ContentGenerator, ContentResult
from venue_agent.ingestion.field_mapper import FieldMapper
from venue_agent.ingestion.image_engine import ImageCandidateEngine
from venue_agent.ingestion.image_finalizer import FinalizeResult, ImageFinalizer
from venue_agent.ingestion.image_scoring import ImageScorer, classify_provenance
from venue_agent.ingestion.menu_parser import MenuParser, ParserState, parse_menu
from venue_agent.ingestion.pipeline import (
    PipelineOrchestrator,
    PipelineResult,
    PipelineServices,
    build_default_services,
)
from venue_agent.ingestion.reconciler import MatchAction, ReconcileResult, ReferenceReconciler
from venue_agent.ingestion.storage import LocalObjectStorage, ObjectStorage, get_default_storage
from venue_agent.ingestion.vision import ImageClassifier, QualityGate
from venue_agent.ingestion.web_content import WebContentFetcher

__all__ = [
    # Clients
    "ActorBusinessDataClient",
    "ActorClient",
    "ActorImageSearchClient",
    "BusinessDataClient",
    "DownloadResult",
    "HttpImageDownloader",
    "HttpScrapeClient",
    "ImageDownloader",
    "ImageSearchClient",
    "ScrapeClient",
    # Storage
    "LocalObjectStorage",
    "ObjectStorage",
    "get_default_storage",
    # Stages
    "BusinessDataFetcher",
    "normalize_place",
    "WebContentFetcher",
    "MenuParser",
    "ParserState",
    "parse_menu",
    "ImageCandidateEngine",
    "ImageScorer",
    "classify_provenance",
    "ImageClassifier",
    "QualityGate",
    "ImageFinalizer",
    "FinalizeResult",
    "ContentGenerator",
    "ContentResult",
    "ReferenceReconciler",
    "ReconcileResult",
    "MatchAction",
    "FieldMapper",
    # Orchestration
    "PipelineOrchestrator",
    "PipelineResult",
    "PipelineServices",
    "build_default_services",
]
