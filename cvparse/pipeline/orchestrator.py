"""Ingestion orchestrator: resolve -> extract -> submit -> normalise -> persist."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field

from ..errors import IngestionError
from ..models import DocumentReference, IngestionStage, StructuredRecord
from ..storage.base import RecordStore
from .client import ExtractionClient
from .normalize import ResultNormalizer
from .resolve import FileAccessResolver
from .text import TextExtractor


logger = logging.getLogger(__name__)


@dataclass
class IngestionResult:
    """Terminal outcome of one ingestion run."""

    owner_id: str
    stage: IngestionStage
    record: StructuredRecord | None = None
    error: IngestionError | None = None
    failed_stage: IngestionStage | None = None
    attempts: int = 0
    healed: bool = False
    issues: list[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.stage is IngestionStage.DONE


class IngestionOrchestrator:
    """Run the ingestion pipeline for one owner.

    Stages run strictly in sequence. Any IngestionError ends the run in
    ``FAILED`` with nothing persisted. Callers must not run two ingestions
    for the same owner concurrently: the record store is last write wins.
    """

    def __init__(
        self,
        resolver: FileAccessResolver,
        extractor: TextExtractor,
        client: ExtractionClient,
        normalizer: ResultNormalizer,
        records: RecordStore,
    ):
        self.resolver = resolver
        self.extractor = extractor
        self.client = client
        self.normalizer = normalizer
        self.records = records

    async def ingest(self, owner_id: str, reference: DocumentReference) -> IngestionResult:
        result = IngestionResult(owner_id=owner_id, stage=IngestionStage.RESOLVING)
        try:
            resolved = await self.resolver.resolve(reference)
            result.healed = resolved.healed

            self._advance(result, IngestionStage.EXTRACTING)
            text = await asyncio.to_thread(
                self.extractor.extract, resolved.content, reference.display_name
            )

            self._advance(result, IngestionStage.SUBMITTING)
            try:
                response = await self.client.submit(
                    owner_id, resolved.url, reference.display_name, text
                )
            except IngestionError as e:
                result.attempts = getattr(e, "attempts", 0)
                raise
            result.attempts = response.attempts

            self._advance(result, IngestionStage.NORMALIZING)
            normalized = self.normalizer.normalize(response.payload)
            result.issues = normalized.issues

            self._advance(result, IngestionStage.PERSISTING)
            await self.records.upsert(owner_id, normalized.record)
        except IngestionError as e:
            logger.error(
                "Ingestion for %s failed while %s: %s",
                owner_id, result.stage.value, e,
            )
            result.failed_stage = result.stage
            result.stage = IngestionStage.FAILED
            result.error = e
            return result

        result.record = normalized.record
        self._advance(result, IngestionStage.DONE)
        logger.info("Stored parsed CV for %s", owner_id)
        return result

    def _advance(self, result: IngestionResult, stage: IngestionStage) -> None:
        logger.debug("Ingestion for %s: %s -> %s", result.owner_id, result.stage.value, stage.value)
        result.stage = stage
