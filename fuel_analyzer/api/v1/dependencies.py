import hmac

from fastapi import Header, HTTPException, Request

from fuel_analyzer.core.config import get_settings
from fuel_analyzer.services.pipeline import Pipeline


async def verify_api_key(x_api_key: str = Header(default="")) -> None:
    settings = get_settings()
    if not hmac.compare_digest(x_api_key.encode(), settings.api_key.encode()):
        raise HTTPException(status_code=401, detail="Invalid or missing API key")


def get_pipeline(request: Request) -> Pipeline:
    return request.app.state.pipeline
