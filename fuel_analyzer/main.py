import logging
from collections.abc import AsyncGenerator, Awaitable, Callable
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException
from starlette.responses import Response

from fuel_analyzer.api.v1.router import router
from fuel_analyzer.core.config import get_settings
from fuel_analyzer.core.errors import InternalError, PipelineError
from fuel_analyzer.core.logging import configure_logging
from fuel_analyzer.services.completion import build_completion_client
from fuel_analyzer.services.llm_extractor import ReportExtractor
from fuel_analyzer.services.pdf_extractor import SmartPDFExtractor
from fuel_analyzer.services.pipeline import Pipeline
from fuel_analyzer.services.storage import S3ReportStorage

logger = logging.getLogger(__name__)

_HTTP_ERROR_KINDS = {401: "Unauthorized", 404: "NotFound", 405: "MethodNotAllowed"}


@asynccontextmanager
async def lifespan(application: FastAPI) -> AsyncGenerator[None, None]:
    application.state.model_loaded = False
    settings = get_settings()
    configure_logging(settings.log_level)
    try:
        llm = ReportExtractor(
            build_completion_client(settings),
            temperature=settings.llm_temperature,
            timeout_seconds=settings.llm_timeout_seconds,
        )
        application.state.pipeline = Pipeline(
            pdf=SmartPDFExtractor(
                settings.min_text_chars_per_page, settings.max_text_chars
            ),
            llm=llm,
            storage=S3ReportStorage.from_settings(settings),
            mode=settings.extraction_mode,
        )
        application.state.model_loaded = True
    except Exception:
        logger.exception("Failed to initialise the pipeline during startup")
        raise
    logger.info(
        "Pipeline ready",
        extra={"llm_backend": settings.llm_backend, "mode": settings.extraction_mode},
    )
    yield


app = FastAPI(title="Fuel Report Analyzer", lifespan=lifespan)


@app.exception_handler(PipelineError)
async def pipeline_exception_handler(
    request: Request, exc: PipelineError
) -> JSONResponse:
    return JSONResponse(exc.to_dict(), status_code=exc.status_code)


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    kind = _HTTP_ERROR_KINDS.get(exc.status_code, "HTTPError")
    return JSONResponse(
        {"error": kind, "message": str(exc.detail)}, status_code=exc.status_code
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    errors = [str(error.get("msg")) for error in exc.errors()]
    return JSONResponse(
        {
            "error": "InvalidInput",
            "message": "Request body is invalid",
            "details": {"errors": errors},
        },
        status_code=422,
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return JSONResponse(InternalError().to_dict(), status_code=500)


@app.middleware("http")
async def require_model_loaded(
    request: Request, call_next: Callable[[Request], Awaitable[Response]]
) -> Response:
    if request.url.path.startswith("/api/") and not getattr(
        app.state, "model_loaded", False
    ):
        return JSONResponse(
            {"error": "ServiceUnavailable", "message": "Model is loading"},
            status_code=503,
        )
    return await call_next(request)


app.include_router(router, prefix="/api/v1")


@app.get("/health")
async def health() -> JSONResponse:
    return JSONResponse(
        {"status": "ok", "model_loaded": getattr(app.state, "model_loaded", False)}
    )


def run() -> None:
    settings = get_settings()
    uvicorn.run(
        "fuel_analyzer.main:app",
        host=settings.host,
        port=settings.port,
        log_config=None,
    )
