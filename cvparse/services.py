"""Wire configuration into ready-to-use pipeline components."""

from __future__ import annotations

from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator

import httpx

from .config import CVParseConfig
from .db import SqlRecordStore, SqlReferenceStore, get_engine, get_session_factory, init_db
from .pipeline import (
    DocumentManager,
    ExtractionClient,
    FileAccessResolver,
    IngestionOrchestrator,
    ResultNormalizer,
    TextExtractor,
)
from .storage import BlobStore, SupabaseBlobStore, get_blob_store


@dataclass
class Services:
    config: CVParseConfig
    blob_store: BlobStore
    references: SqlReferenceStore
    records: SqlRecordStore
    documents: DocumentManager
    orchestrator: IngestionOrchestrator


def build_services(
    config: CVParseConfig,
    http_client: httpx.AsyncClient,
    blob_store: BlobStore | None = None,
) -> Services:
    engine = get_engine(config.database_url)
    init_db(engine)
    factory = get_session_factory(engine)

    blob_store = blob_store or get_blob_store(config)
    references = SqlReferenceStore(factory)
    records = SqlRecordStore(factory)

    orchestrator = IngestionOrchestrator(
        resolver=FileAccessResolver(
            blob_store,
            references,
            http_client,
            canonical_bucket=config.storage.canonical_bucket,
            signed_url_ttl=config.storage.signed_url_ttl,
        ),
        extractor=TextExtractor(line_threshold=config.text.line_threshold),
        client=ExtractionClient(
            config.extraction.endpoint_url,
            http_client,
            max_attempts=config.extraction.max_attempts,
            base_delay=config.extraction.base_delay,
            max_delay=config.extraction.max_delay,
        ),
        normalizer=ResultNormalizer(),
        records=records,
    )
    documents = DocumentManager(
        blob_store,
        references,
        upload_bucket=config.storage.upload_bucket,
        max_upload_mb=config.text.max_upload_mb,
    )
    return Services(
        config=config,
        blob_store=blob_store,
        references=references,
        records=records,
        documents=documents,
        orchestrator=orchestrator,
    )


@asynccontextmanager
async def open_services(config: CVParseConfig) -> AsyncIterator[Services]:
    """Services sharing one HTTP client, closed on exit."""
    async with httpx.AsyncClient(timeout=config.extraction.timeout) as http_client:
        services = build_services(config, http_client)
        try:
            yield services
        finally:
            if isinstance(services.blob_store, SupabaseBlobStore):
                await services.blob_store.aclose()
