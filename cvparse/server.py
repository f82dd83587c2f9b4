"""FastAPI server for cvparse.

Serves the structured extraction endpoint, the ingestion trigger and, for
the local storage backend, the blob download routes.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any

import httpx
from fastapi import FastAPI, HTTPException, Query
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel

from . import __version__
from .config import CVParseConfig
from .errors import CVParseError, ErrorKind, StorageError
from .pipeline import CVParser, IngestionResult, TextExtractor
from .services import Services, build_services
from .storage import LocalBlobStore


logger = logging.getLogger(__name__)

VERSION = __version__

_STATUS_FOR_KIND = {
    ErrorKind.MALFORMED_REFERENCE: 422,
    ErrorKind.UNSUPPORTED_FORMAT: 422,
    ErrorKind.UNREADABLE_DOCUMENT: 422,
    ErrorKind.UNREACHABLE: 424,
    ErrorKind.EXTRACTION_REJECTED: 502,
    ErrorKind.EXTRACTION_EXHAUSTED: 503,
    ErrorKind.PERSISTENCE: 500,
}


class ParseCVRequest(BaseModel):
    ownerId: str | None = None
    userId: str | None = None  # older clients
    fileUrl: str | None = None
    fileName: str | None = None
    text: str | None = None


def parser_from_config(config: CVParseConfig) -> CVParser:
    return CVParser(
        provider=config.ai.provider,
        model=config.ai.model,
        api_key=config.ai.api_key,
        base_url=config.ai.base_url,
        temperature=config.ai.temperature,
        max_tokens=config.ai.max_tokens,
    )


def result_to_dict(result: IngestionResult) -> dict[str, Any]:
    data: dict[str, Any] = {
        "ownerId": result.owner_id,
        "success": result.success,
        "stage": result.stage.value,
        "attempts": result.attempts,
        "healed": result.healed,
        "warnings": result.issues,
        "record": result.record.to_dict() if result.record else None,
    }
    if result.error is not None:
        data["failedStage"] = result.failed_stage.value if result.failed_stage else None
        data["error"] = {
            "kind": result.error.kind.value,
            "message": result.error.user_message,
            "details": str(result.error),
        }
    return data


def create_app(
    config: CVParseConfig,
    services: Services | None = None,
    parser: CVParser | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> FastAPI:
    """Create the FastAPI application.

    ``services``, ``parser`` and ``http_client`` default to instances built
    from ``config`` when the app starts.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned_client = None
        if app.state.http is None:
            owned_client = httpx.AsyncClient(timeout=config.extraction.timeout)
            app.state.http = owned_client
        if app.state.services is None:
            app.state.services = build_services(config, app.state.http)
        try:
            yield
        finally:
            if owned_client is not None:
                await owned_client.aclose()

    app = FastAPI(
        title="cvparse",
        description="CV ingestion and structured extraction",
        version=VERSION,
        lifespan=lifespan,
    )

    app.state.config = config
    app.state.services = services
    app.state.parser = parser or parser_from_config(config)
    app.state.http = http_client
    app.state.extractor = TextExtractor(line_threshold=config.text.line_threshold)
    app.state.busy = set()

    # === Routes ===

    @app.get("/api/health")
    async def health():
        return {"status": "ok", "version": VERSION}

    @app.post("/api/parse-cv")
    async def parse_cv(request: ParseCVRequest):
        """Extract structured CV sections from text or from a file URL."""
        owner_id = request.ownerId or request.userId
        if not owner_id or not request.fileUrl or not request.fileName:
            return JSONResponse(
                status_code=400,
                content={
                    "error": "Missing required fields",
                    "details": "ownerId, fileUrl, and fileName are required",
                },
            )

        try:
            cv_text = request.text
            if not cv_text:
                cv_text = await _download_text(request.fileUrl, request.fileName)
            parsed = await asyncio.to_thread(app.state.parser.parse, cv_text)
        except (CVParseError, httpx.HTTPError) as e:
            logger.error("Error in parse-cv endpoint for %s: %s", owner_id, e)
            return JSONResponse(
                status_code=500,
                content={"error": "Failed to parse CV", "details": str(e)},
            )
        except Exception as e:
            # Provider SDK errors
            logger.exception("Parser failed for %s", owner_id)
            return JSONResponse(
                status_code=500,
                content={"error": "Failed to parse CV", "details": str(e)},
            )

        return parsed

    async def _download_text(file_url: str, file_name: str) -> str:
        response = await app.state.http.get(file_url, follow_redirects=True)
        response.raise_for_status()
        logger.info("Downloaded %d bytes from %s", len(response.content), file_url)
        return await asyncio.to_thread(app.state.extractor.extract, response.content, file_name)

    @app.post("/api/cv/{owner_id}/ingest")
    async def ingest(owner_id: str):
        """Run the ingestion pipeline for an owner's active CV."""
        services: Services = app.state.services
        if owner_id in app.state.busy:
            raise HTTPException(status_code=409, detail="Ingestion already running for this owner")

        app.state.busy.add(owner_id)
        try:
            reference = await services.references.get(owner_id)
            if reference is None:
                raise HTTPException(status_code=404, detail="No CV uploaded for this owner")
            result = await services.orchestrator.ingest(owner_id, reference)
        finally:
            app.state.busy.discard(owner_id)

        status = 200 if result.success else _STATUS_FOR_KIND.get(result.error.kind, 500)
        return JSONResponse(status_code=status, content=result_to_dict(result))

    @app.get("/api/cv/{owner_id}")
    async def get_cv(owner_id: str):
        services: Services = app.state.services
        reference = await services.references.get(owner_id)
        record = await services.records.get(owner_id)
        if reference is None and record is None:
            raise HTTPException(status_code=404, detail="No CV for this owner")
        return {
            "ownerId": owner_id,
            "document": {
                "fileUrl": reference.storage_locator,
                "fileName": reference.display_name,
            } if reference else None,
            "parsed": record.to_dict() if record else None,
        }

    # === Local storage ===

    def _local_store() -> LocalBlobStore:
        store = app.state.services.blob_store
        if not isinstance(store, LocalBlobStore):
            raise HTTPException(status_code=404, detail="Not found")
        return store

    async def _object_response(store: LocalBlobStore, bucket: str, path: str) -> Response:
        try:
            data = await store.read(bucket, path)
        except StorageError as e:
            raise HTTPException(status_code=e.status_code or 400, detail=e.message)
        return Response(content=data, media_type="application/octet-stream")

    @app.get("/storage/v1/object/public/{bucket}/{path:path}")
    async def public_object(bucket: str, path: str):
        return await _object_response(_local_store(), bucket, path)

    @app.get("/storage/v1/object/sign/{bucket}/{path:path}")
    async def signed_object(
        bucket: str,
        path: str,
        expires: int = Query(...),
        token: str = Query(...),
    ):
        store = _local_store()
        if not store.verify(bucket, path, expires, token):
            raise HTTPException(status_code=403, detail="Invalid or expired signature")
        return await _object_response(store, bucket, path)

    return app
