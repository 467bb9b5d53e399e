import pytest
from pydantic import ValidationError

from fuel_analyzer.core.config import Settings, get_settings


def test_defaults_match_service_limits() -> None:
    settings = Settings(api_key="k")

    assert settings.llm_backend == "llama_cpp"
    assert settings.extraction_mode == "text"
    assert settings.max_text_chars == 200_000
    assert settings.storage_bucket == "fuel-reports"
    assert settings.storage_list_limit == 100


def test_document_mode_requires_openai_backend() -> None:
    with pytest.raises(ValidationError, match="LLM_BACKEND=openai"):
        Settings(api_key="k", extraction_mode="document")


def test_document_mode_with_openai_backend_is_accepted() -> None:
    settings = Settings(api_key="k", llm_backend="openai", extraction_mode="document")

    assert settings.extraction_mode == "document"


def test_settings_read_from_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("API_KEY", "from-env")
    monkeypatch.setenv("STORAGE_BUCKET", "station-7")
    monkeypatch.setenv("MAX_FILE_SIZE_MB", "5")
    get_settings.cache_clear()
    try:
        settings = get_settings()
        assert settings.api_key == "from-env"
        assert settings.storage_bucket == "station-7"
        assert settings.max_file_size_mb == 5
    finally:
        get_settings.cache_clear()
