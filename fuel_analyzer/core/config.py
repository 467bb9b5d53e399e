from functools import lru_cache
from pathlib import Path
from typing import Literal, Self

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    api_key: str
    log_level: str = "INFO"
    host: str = "0.0.0.0"
    port: int = 8000

    llm_backend: Literal["llama_cpp", "openai"] = "llama_cpp"
    extraction_mode: Literal["text", "document"] = "text"
    llm_temperature: float = 0.1
    llm_timeout_seconds: float = 120.0

    model_dir: Path = Path("/app/models")
    model_repo_id: str = "Qwen/Qwen2.5-3B-Instruct-GGUF"
    model_filename: str = "qwen2.5-3b-instruct-q4_k_m.gguf"
    model_n_ctx: int = 16384
    model_n_gpu_layers: int = 0

    openai_api_key: str | None = None
    openai_base_url: str | None = None
    openai_model: str = "gpt-4o-mini"

    max_text_chars: int = 200_000
    min_text_chars_per_page: int = 50
    max_file_size_mb: int = 20

    storage_bucket: str = "fuel-reports"
    storage_list_limit: int = 100
    storage_endpoint_url: str | None = None
    storage_region: str | None = None
    storage_access_key_id: str | None = None
    storage_secret_access_key: str | None = None

    @model_validator(mode="after")
    def _document_mode_needs_openai(self) -> Self:
        # llama.cpp only sees text; inline PDFs need a multimodal endpoint.
        if self.extraction_mode == "document" and self.llm_backend != "openai":
            raise ValueError("EXTRACTION_MODE=document requires LLM_BACKEND=openai")
        return self


@lru_cache
def get_settings() -> Settings:
    return Settings()  # type: ignore[call-arg]
