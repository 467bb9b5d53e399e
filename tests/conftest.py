from collections.abc import AsyncGenerator, Generator

import pytest
from httpx import ASGITransport, AsyncClient

from fuel_analyzer.core.config import get_settings
from fuel_analyzer.main import app
from fuel_analyzer.services.llm_extractor import ReportExtractor
from fuel_analyzer.services.pdf_extractor import SmartPDFExtractor
from fuel_analyzer.services.pipeline import Pipeline
from tests.utils import FakeCompletionClient

TEST_API_KEY = "test-api-key"


@pytest.fixture
def mock_settings(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    monkeypatch.setenv("API_KEY", TEST_API_KEY)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def completion() -> FakeCompletionClient:
    return FakeCompletionClient()


@pytest.fixture
async def client(
    mock_settings: None, completion: FakeCompletionClient
) -> AsyncGenerator[AsyncClient, None]:
    app.state.model_loaded = True
    app.state.pipeline = Pipeline(
        pdf=SmartPDFExtractor(),
        llm=ReportExtractor(completion),
    )
    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as ac:
        yield ac
    app.state.model_loaded = False
    del app.state.pipeline
