"""
StorageClient - S3 호환 오브젝트 스토리지 접근 (업로드, 다운로드, 목록, 공개 URL).

boto3는 동기 API라서 모든 호출을 asyncio.to_thread로 감싼다.
이벤트 루프는 업로드/목록 대기 중에 다른 변형이나 다른 이미지를 처리할 수 있다.
"""

import asyncio
from dataclasses import dataclass
from urllib.parse import quote

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError
from loguru import logger

from core.config import Settings, settings
from core.exceptions import StorageError


@dataclass(frozen=True)
class StoredObject:
    name: str  # 폴더 기준 상대 파일명
    id: str | None
    size: int | None = None


class StorageClient:
    """하나의 버킷에 대한 비동기 래퍼."""

    def __init__(self, config: Settings = settings, client=None):
        self.bucket = config.STORAGE_BUCKET
        self.public_base_url = config.STORAGE_PUBLIC_URL
        self._client = client or boto3.client(
            "s3",
            endpoint_url=config.STORAGE_ENDPOINT_URL,
            aws_access_key_id=config.STORAGE_ACCESS_KEY,
            aws_secret_access_key=config.STORAGE_SECRET_KEY,
            region_name=config.STORAGE_REGION,
            config=Config(
                signature_version="s3v4",
                s3={"addressing_style": "path"},
                connect_timeout=config.STORAGE_TIMEOUT_SECONDS,
                read_timeout=config.STORAGE_TIMEOUT_SECONDS,
                retries={"max_attempts": 2},
            ),
        )

    async def upload(self, path: str, data: bytes, content_type: str) -> str | None:
        """같은 경로가 있으면 덮어쓴다 (재처리 시 경로 재사용).

        put 응답의 VersionId(버전 관리 버킷) 또는 ETag를 객체 id로 돌려준다.
        """
        try:
            response = await asyncio.to_thread(
                self._client.put_object,
                Bucket=self.bucket,
                Key=path,
                Body=data,
                ContentType=content_type,
            )
        except (ClientError, BotoCoreError) as e:
            raise StorageError(f"Upload failed for {path}: {e}") from e
        return _object_id(response)

    async def download(self, path: str) -> bytes:
        try:
            response = await asyncio.to_thread(
                self._client.get_object, Bucket=self.bucket, Key=path
            )
            return await asyncio.to_thread(response["Body"].read)
        except (ClientError, BotoCoreError) as e:
            raise StorageError(f"Download failed for {path}: {e}") from e

    async def list_objects(
        self, folder: str, search: str | None = None, limit: int = 100
    ) -> list[StoredObject]:
        """folder 바로 아래 객체 목록. search가 있으면 해당 접두사로 좁힌다."""
        prefix = f"{folder.strip('/')}/" if folder.strip("/") else ""
        try:
            response = await asyncio.to_thread(
                self._client.list_objects_v2,
                Bucket=self.bucket,
                Prefix=prefix + (search or ""),
                Delimiter="/",
                MaxKeys=limit,
            )
        except (ClientError, BotoCoreError) as e:
            raise StorageError(f"List failed for {folder or '/'}: {e}") from e

        objects = []
        for obj in response.get("Contents", []):
            objects.append(
                StoredObject(
                    name=obj["Key"][len(prefix):],
                    id=_object_id(obj),
                    size=obj.get("Size"),
                )
            )
        return objects

    def public_url(self, path: str) -> str:
        if not self.public_base_url:
            raise StorageError("STORAGE_PUBLIC_URL is not configured")
        base = self.public_base_url.rstrip("/")
        return f"{base}/{self.bucket}/{quote(path)}"


def _object_id(response: dict) -> str | None:
    etag = response.get("ETag")
    return response.get("VersionId") or (etag.strip('"') if etag else None)


def build_storage_client() -> StorageClient:
    logger.info(f"Storage bucket: {settings.STORAGE_BUCKET} ({settings.STORAGE_ENDPOINT_URL or 'aws'})")
    return StorageClient(settings)
