import logging
import time
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from enum import StrEnum
from typing import Literal

from starlette.concurrency import run_in_threadpool

from fuel_analyzer.api.v1.schemas import ExtractedReport, FuelPrices, ReportSource
from fuel_analyzer.core.errors import InternalError, MissingInput, PipelineError
from fuel_analyzer.services.llm_extractor import ReportExtractor
from fuel_analyzer.services.metrics import MetricsEngine
from fuel_analyzer.services.normalizer import ReportNormalizer
from fuel_analyzer.services.pdf_extractor import ExtractionResult, SmartPDFExtractor
from fuel_analyzer.services.storage import S3ReportStorage
from fuel_analyzer.services.validator import ReportValidator

logger = logging.getLogger(__name__)


class Stage(StrEnum):
    FETCHING = "fetching"
    EXTRACTING = "extracting"
    NORMALIZING = "normalizing"
    COMPUTING_METRICS = "computing_metrics"
    DONE = "done"


@dataclass(frozen=True)
class PipelineResult:
    report: ExtractedReport
    extraction_path: Literal["text", "ocr", "document"]
    source: ReportSource | None = None


class Pipeline:
    """Runs one report through extraction, normalization and metrics.

    Every invocation is independent; collaborators are shared read-only.
    A failing stage aborts the run with a PipelineError tagged with that
    stage. Nothing is retried and no partial report is ever returned.
    """

    def __init__(
        self,
        pdf: SmartPDFExtractor,
        llm: ReportExtractor,
        normalizer: ReportNormalizer | None = None,
        validator: ReportValidator | None = None,
        metrics: MetricsEngine | None = None,
        storage: S3ReportStorage | None = None,
        mode: Literal["text", "document"] = "text",
    ) -> None:
        self._pdf = pdf
        self._llm = llm
        self._normalizer = normalizer or ReportNormalizer()
        self._validator = validator or ReportValidator()
        self._metrics = metrics or MetricsEngine()
        self._storage = storage
        self._mode = mode

    async def run(
        self,
        file_bytes: bytes,
        filename: str = "report.pdf",
        fuel_prices: FuelPrices | None = None,
    ) -> PipelineResult:
        run_id = uuid.uuid4().hex
        with self._stage(Stage.EXTRACTING, run_id):
            extraction = await self._read_pdf(file_bytes, filename)
        return await self._analyze(run_id, extraction, fuel_prices)

    async def run_stored(
        self,
        path: str | None = None,
        fuel_prices: FuelPrices | None = None,
    ) -> PipelineResult:
        run_id = uuid.uuid4().hex
        with self._stage(Stage.FETCHING, run_id):
            if self._storage is None:
                raise InternalError("Report storage is not configured")
            object_path = (path or "").strip() or await self._storage.latest()
            file_bytes = await self._storage.download(object_path)
        with self._stage(Stage.EXTRACTING, run_id):
            extraction = await self._read_pdf(file_bytes, object_path)
        result = await self._analyze(run_id, extraction, fuel_prices)
        return PipelineResult(
            report=result.report,
            extraction_path=result.extraction_path,
            source=ReportSource(bucket=self._storage.bucket, path=object_path),
        )

    async def run_text(
        self, text: str, fuel_prices: FuelPrices | None = None
    ) -> PipelineResult:
        if not text.strip():
            raise MissingInput("Body must include non-empty text")
        run_id = uuid.uuid4().hex
        extraction = self._pdf.from_text(text)
        return await self._analyze(run_id, extraction, fuel_prices)

    async def _read_pdf(self, file_bytes: bytes, filename: str) -> ExtractionResult:
        if self._mode == "document":
            return await run_in_threadpool(self._pdf.encode, file_bytes, filename)
        return await run_in_threadpool(self._pdf.extract, file_bytes, filename)

    async def _analyze(
        self,
        run_id: str,
        extraction: ExtractionResult,
        fuel_prices: FuelPrices | None,
    ) -> PipelineResult:
        with self._stage(Stage.EXTRACTING, run_id):
            candidate = await self._llm.extract(extraction, fuel_prices)
        with self._stage(Stage.NORMALIZING, run_id):
            report = self._validator.validate(
                self._normalizer.normalize(candidate.data), raw=candidate.raw
            )
        with self._stage(Stage.COMPUTING_METRICS, run_id):
            report = self._metrics.apply(report, fuel_prices)
        logger.info(
            "Pipeline finished",
            extra={"run_id": run_id, "stage": Stage.DONE, "file": extraction.filename},
        )
        return PipelineResult(report=report, extraction_path=extraction.path)

    @contextmanager
    def _stage(self, stage: Stage, run_id: str) -> Iterator[None]:
        start = time.monotonic()
        try:
            yield
        except PipelineError as exc:
            exc.stage = exc.stage or stage
            logger.warning(
                "Pipeline stage failed: %s",
                exc.message,
                extra={"run_id": run_id, "stage": stage, "kind": exc.kind},
            )
            raise
        except Exception as exc:
            logger.exception(
                "Unexpected failure in pipeline stage",
                extra={"run_id": run_id, "stage": stage},
            )
            error = InternalError()
            error.stage = stage
            raise error from exc
        logger.debug(
            "Pipeline stage complete",
            extra={
                "run_id": run_id,
                "stage": stage,
                "duration_ms": int((time.monotonic() - start) * 1000),
            },
        )
