"""CV ingestion pipeline.

Stages:
1. Resolve - Read the stored document, repairing stale references
2. Extract - Turn PDF/Word bytes into clean text
3. Submit - Send the text to the extraction endpoint, with retry
4. Normalize - Render the returned sections into a StructuredRecord
5. Persist - Upsert the record for its owner
"""

from .client import ExtractionClient, ExtractionResponse
from .documents import DocumentManager
from .normalize import ResultNormalizer
from .orchestrator import IngestionOrchestrator, IngestionResult
from .parser import CVParser
from .resolve import FileAccessResolver, ResolvedDocument
from .text import TextExtractor

__all__ = [
    "CVParser",
    "DocumentManager",
    "ExtractionClient",
    "ExtractionResponse",
    "FileAccessResolver",
    "IngestionOrchestrator",
    "IngestionResult",
    "ResolvedDocument",
    "ResultNormalizer",
    "TextExtractor",
]
