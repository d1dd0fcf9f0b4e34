"""
Find-a-Dram Trawler
===================

Turns bar menus (web pages, photos, PDFs) into catalog listings.

Pipeline Stages:
1. Safety - Reject URLs that point at private, loopback or metadata hosts
2. Fetch - Download the page with redirect re-validation and size limits
3. Extract - Ask the AI provider for structured menu items
4. Normalize - Clean names, prices, ABV, pour sizes
5. Resolve - Match items to canonical whiskeys
6. Ingest - Upsert bar listings and record the job outcome
"""

from findadram.ingestion.batch import BatchCoordinator
from findadram.ingestion.cache import TTLCache
from findadram.ingestion.config import TrawlerConfig, get_default_config
from findadram.ingestion.crawler import ContentFetcher, FetchResult
from findadram.ingestion.engine import IngestionEngine, ItemOutcome
from findadram.ingestion.extractor import MenuExtractor
from findadram.ingestion.jobs import JobTracker, enqueue_trawl
from findadram.ingestion.normalizer import MenuNormalizer
from findadram.ingestion.pipeline import TrawlPipeline
from findadram.ingestion.resolver import MatchTier, WhiskeyMatch, WhiskeyResolver
from findadram.ingestion.safety import SafetyCheck, UrlSafetyValidator

__all__ = [
    # Config
    "TrawlerConfig",
    "get_default_config",
    # Safety and fetch
    "UrlSafetyValidator",
    "SafetyCheck",
    "ContentFetcher",
    "FetchResult",
    "TTLCache",
    # Extraction
    "MenuExtractor",
    "MenuNormalizer",
    # Ingestion
    "IngestionEngine",
    "ItemOutcome",
    "WhiskeyResolver",
    "WhiskeyMatch",
    "MatchTier",
    # Orchestration
    "TrawlPipeline",
    "BatchCoordinator",
    "JobTracker",
    "enqueue_trawl",
]
