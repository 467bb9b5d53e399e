import logging
import time
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import APIRouter, Depends, Form, HTTPException, Request, UploadFile
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from fuel_analyzer.api.v1.dependencies import get_pipeline, verify_api_key
from fuel_analyzer.api.v1.schemas import (
    FuelPrices,
    StorageAnalysisRequest,
    TextAnalysisRequest,
)
from fuel_analyzer.core.config import get_settings
from fuel_analyzer.core.errors import InvalidInput, MissingInput, PipelineError
from fuel_analyzer.services.pdf_extractor import validate_pdf
from fuel_analyzer.services.pipeline import Pipeline, PipelineResult

logger = logging.getLogger(__name__)

router = APIRouter(dependencies=[Depends(verify_api_key)])


def _parse_fuel_prices(raw: str | None) -> FuelPrices | None:
    if raw is None or not raw.strip():
        return None
    try:
        return FuelPrices.model_validate_json(raw)
    except ValidationError as exc:
        raise InvalidInput(
            "fuel_prices must map fuel keys to finite cost and selling prices",
            details={"errors": [error["msg"] for error in exc.errors()]},
        ) from exc


def _report_response(result: PipelineResult, request_id: str) -> JSONResponse:
    body: dict[str, Any] = {}
    if result.source is not None:
        body["source"] = result.source.model_dump()
    body.update(result.report.model_dump(mode="json"))
    return JSONResponse(body, status_code=200, headers={"X-Request-Id": request_id})


@asynccontextmanager
async def _access_log(request: Request) -> AsyncIterator[dict[str, Any]]:
    start = time.monotonic()
    entry: dict[str, Any] = {
        "request_id": str(uuid.uuid4()),
        "method": request.method,
        "path": str(request.url.path),
        "status_code": 500,
        "outcome": None,
        "extraction_path": None,
    }
    try:
        yield entry
        entry["status_code"] = 200
        entry["outcome"] = "success"
    except PipelineError as exc:
        entry["status_code"] = exc.status_code
        entry["outcome"] = exc.kind
        raise
    except HTTPException as exc:
        entry["status_code"] = exc.status_code
        raise
    finally:
        entry["duration_ms"] = int((time.monotonic() - start) * 1000)
        logger.info("analyze complete", extra=entry)


@router.post("/analyze-report")
async def analyze_report(
    request: Request,
    file: UploadFile | None = None,
    fuel_prices: str | None = Form(default=None),
    pipeline: Pipeline = Depends(get_pipeline),
) -> JSONResponse:
    async with _access_log(request) as entry:
        if file is None:
            raise MissingInput("file is required")
        settings = get_settings()
        filename = file.filename or "report.pdf"
        file_bytes = await file.read()
        entry["file_size_bytes"] = len(file_bytes)
        validate_pdf(file.content_type, file_bytes, settings.max_file_size_mb, filename)
        prices = _parse_fuel_prices(fuel_prices)

        result = await pipeline.run(file_bytes, filename=filename, fuel_prices=prices)
        entry["extraction_path"] = result.extraction_path
        return _report_response(result, entry["request_id"])


@router.post("/analyze-storage-report")
async def analyze_storage_report(
    request: Request,
    body: StorageAnalysisRequest | None = None,
    pipeline: Pipeline = Depends(get_pipeline),
) -> JSONResponse:
    body = body or StorageAnalysisRequest()
    async with _access_log(request) as entry:
        result = await pipeline.run_stored(body.path, fuel_prices=body.fuel_prices)
        entry["extraction_path"] = result.extraction_path
        entry["source_path"] = result.source.path if result.source else None
        return _report_response(result, entry["request_id"])


@router.post("/analyze-text")
async def analyze_text(
    request: Request,
    body: TextAnalysisRequest,
    pipeline: Pipeline = Depends(get_pipeline),
) -> JSONResponse:
    async with _access_log(request) as entry:
        result = await pipeline.run_text(body.text, fuel_prices=body.fuel_prices)
        entry["extraction_path"] = result.extraction_path
        return _report_response(result, entry["request_id"])
