import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol, cast

import openai
from huggingface_hub import hf_hub_download
from llama_cpp import CreateChatCompletionResponse, Llama
from openai import AsyncOpenAI
from starlette.concurrency import run_in_threadpool

from fuel_analyzer.core.config import Settings
from fuel_analyzer.core.errors import ModelUnavailable

logger = logging.getLogger(__name__)

_MAX_TOKENS = 4096


@dataclass(frozen=True)
class CompletionRequest:
    """One structured-output request.

    ``prompt`` is the user turn. ``document`` holds a base64 PDF when the
    report is sent inline instead of as extracted text.
    """

    model: str
    instruction: str
    prompt: str
    temperature: float
    response_schema: dict[str, Any]
    schema_name: str
    document: str | None = None
    filename: str = "report.pdf"


class CompletionClient(Protocol):
    model: str

    async def complete(self, request: CompletionRequest) -> str: ...


class LlamaCompletionClient:
    """Runs the completion on a local GGUF model with a JSON-schema grammar."""

    def __init__(self, llama: Llama, model: str) -> None:
        self._llama = llama
        self.model = model
        # One llama.cpp context per instance; calls must not overlap, including
        # ones still running after the caller gave up waiting.
        self._lock = threading.Lock()

    async def complete(self, request: CompletionRequest) -> str:
        if request.document is not None:
            raise ModelUnavailable("Local model cannot read PDF documents directly")
        try:
            response = await run_in_threadpool(self._create, request)
        except (RuntimeError, ValueError) as exc:
            # llama.cpp raises ValueError when the prompt overflows n_ctx.
            raise ModelUnavailable(f"Local model call failed: {exc}") from exc
        choices = response["choices"]
        if not choices:
            return ""
        return str(choices[0]["message"]["content"] or "")

    def _create(self, request: CompletionRequest) -> CreateChatCompletionResponse:
        with self._lock:
            response = self._llama.create_chat_completion(
                messages=[
                    {"role": "system", "content": request.instruction},
                    {"role": "user", "content": request.prompt},
                ],
                response_format={
                    "type": "json_object",
                    "schema": request.response_schema,
                },
                max_tokens=_MAX_TOKENS,
                temperature=request.temperature,
            )
        return cast(CreateChatCompletionResponse, response)


class OpenAICompletionClient:
    """Any OpenAI-compatible chat endpoint; accepts text or an inline PDF."""

    def __init__(self, client: AsyncOpenAI, model: str) -> None:
        self._client = client
        self.model = model

    async def complete(self, request: CompletionRequest) -> str:
        try:
            response = await self._client.chat.completions.create(
                model=request.model,
                messages=[
                    {"role": "system", "content": request.instruction},
                    {"role": "user", "content": _user_content(request)},
                ],
                response_format={
                    "type": "json_schema",
                    "json_schema": {
                        "name": request.schema_name,
                        "schema": request.response_schema,
                        "strict": True,
                    },
                },
                temperature=request.temperature,
            )
        except openai.APIError as exc:
            raise ModelUnavailable(f"Completion endpoint request failed: {exc}") from exc
        if not response.choices:
            return ""
        return response.choices[0].message.content or ""


def _user_content(request: CompletionRequest) -> Any:
    if request.document is None:
        return request.prompt
    return [
        {"type": "text", "text": request.prompt},
        {
            "type": "file",
            "file": {
                "filename": request.filename,
                "file_data": f"data:application/pdf;base64,{request.document}",
            },
        },
    ]


def init_model(
    model_dir: Path,
    repo_id: str,
    filename: str,
    n_ctx: int = 16384,
    n_gpu_layers: int = 0,
) -> Llama:
    model_path = model_dir / filename
    if not model_path.exists():
        logger.info("Downloading model", extra={"repo_id": repo_id, "file": filename})
        downloaded = hf_hub_download(
            repo_id=repo_id, filename=filename, local_dir=model_dir
        )
        model_path = Path(downloaded)
    return Llama(
        model_path=str(model_path),
        n_ctx=n_ctx,
        n_gpu_layers=n_gpu_layers,
        verbose=False,
    )


def build_completion_client(settings: Settings) -> CompletionClient:
    if settings.llm_backend == "openai":
        return OpenAICompletionClient(
            AsyncOpenAI(
                # OpenAI-compatible local servers accept any key.
                api_key=settings.openai_api_key or "not-required",
                base_url=settings.openai_base_url,
                timeout=settings.llm_timeout_seconds,
                max_retries=0,
            ),
            model=settings.openai_model,
        )
    llama = init_model(
        model_dir=settings.model_dir,
        repo_id=settings.model_repo_id,
        filename=settings.model_filename,
        n_ctx=settings.model_n_ctx,
        n_gpu_layers=settings.model_n_gpu_layers,
    )
    return LlamaCompletionClient(llama, model=settings.model_filename)
