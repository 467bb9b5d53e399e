import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Literal

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError
from starlette.concurrency import run_in_threadpool

from fuel_analyzer.core.config import Settings
from fuel_analyzer.core.errors import ReportNotFound, StorageUnavailable

logger = logging.getLogger(__name__)

_STORAGE_ERRORS = (BotoCoreError, ClientError)


@dataclass(frozen=True)
class StoredObject:
    name: str
    updated_at: datetime | None = None


class S3ReportStorage:
    """Read-only access to uploaded period reports in an S3-compatible bucket."""

    def __init__(self, client: Any, bucket: str, list_limit: int = 100) -> None:
        self._client = client
        self.bucket = bucket
        self._list_limit = list_limit

    @classmethod
    def from_settings(cls, settings: Settings) -> "S3ReportStorage":
        client = boto3.client(
            "s3",
            endpoint_url=settings.storage_endpoint_url,
            region_name=settings.storage_region,
            aws_access_key_id=settings.storage_access_key_id,
            aws_secret_access_key=settings.storage_secret_access_key,
            config=Config(signature_version="s3v4"),
        )
        return cls(client, settings.storage_bucket, settings.storage_list_limit)

    async def list_reports(
        self,
        prefix: str = "",
        limit: int | None = None,
        sort_by: Literal["updated_at", "name"] = "updated_at",
    ) -> list[StoredObject]:
        """Objects under prefix; newest first when sorted by updated_at."""
        try:
            objects = await run_in_threadpool(self._list_all, prefix)
        except _STORAGE_ERRORS as exc:
            raise StorageUnavailable(
                "Failed to list storage files",
                details={"bucket": self.bucket, "reason": str(exc)},
            ) from exc
        if sort_by == "name":
            objects.sort(key=lambda obj: obj.name)
        else:
            objects.sort(
                key=lambda obj: obj.updated_at.timestamp() if obj.updated_at else 0.0,
                reverse=True,
            )
        return objects[: limit or self._list_limit]

    async def download(self, path: str) -> bytes:
        try:
            return await run_in_threadpool(self._get, path)
        except _STORAGE_ERRORS as exc:
            raise StorageUnavailable(
                "Failed to download file",
                details={"bucket": self.bucket, "path": path, "reason": str(exc)},
            ) from exc

    async def latest(self, prefix: str = "") -> str:
        objects = await self.list_reports(prefix, limit=1)
        if not objects:
            raise ReportNotFound(f"No files found in {self.bucket} bucket")
        logger.info("Selected latest report", extra={"path": objects[0].name})
        return objects[0].name

    def _list_all(self, prefix: str) -> list[StoredObject]:
        paginator = self._client.get_paginator("list_objects_v2")
        found: list[StoredObject] = []
        for page in paginator.paginate(Bucket=self.bucket, Prefix=prefix):
            for item in page.get("Contents", []):
                key = item["Key"]
                if key.endswith("/"):
                    continue
                found.append(StoredObject(name=key, updated_at=item.get("LastModified")))
        return found

    def _get(self, path: str) -> bytes:
        response = self._client.get_object(Bucket=self.bucket, Key=path)
        return response["Body"].read()
