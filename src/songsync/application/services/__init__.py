"""Application services - the ingestion pipeline."""

from songsync.application.services.batch_importer import BatchImporter
from songsync.application.services.ingestion_orchestrator import IngestionOrchestrator
from songsync.application.services.ingestion_service import IngestionService
from songsync.application.services.source_drainer import (
    NestedSourceDrainer,
    PaginatedSourceDrainer,
)
from songsync.application.services.track_normalizer import normalize_track

__all__ = [
    "BatchImporter",
    "IngestionOrchestrator",
    "IngestionService",
    "NestedSourceDrainer",
    "PaginatedSourceDrainer",
    "normalize_track",
]
