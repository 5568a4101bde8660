"""pytest 공용 fixture.

모든 API 테스트는 in-memory SQLite DB와 메모리 스토리지를 사용하여 격리된다.
- client: TestClient (세션/스토리지/HTTP 클라이언트/디스패처 오버라이드)
- storage: 호출 기록과 경로별 실패 주입이 되는 가짜 스토리지
- remote_images: /process-image, /generate-blurhash가 받아갈 URL → 바이트
- auth_headers: 서비스 시크릿 Authorization 헤더
"""

import hashlib
import io
import os
import sys
from pathlib import Path
from urllib.parse import quote

# 설정은 import 시점에 읽히므로 앱 import 전에 지정
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SERVICE_ROLE_KEY"] = "test-service-key"
os.environ["STORAGE_PUBLIC_URL"] = "https://cdn.test/storage/v1/object/public"

import httpx
import pytest
from fastapi.testclient import TestClient
from PIL import Image
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

# src/ 디렉토리를 import path에 추가
sys.path.insert(0, str(Path(__file__).resolve().parent.parent / "src"))

from core.dependencies import get_dispatcher, get_http_client, get_storage
from core.exceptions import StorageError
from main import app
from model.database import get_session
from model.image import ProductImage
from service import image_service
from service.storage_client import StoredObject

BUCKET = "product-images"
PUBLIC_BASE = "https://cdn.test/storage/v1/object/public"


class FakeStorage:
    """StorageClient와 같은 인터페이스의 메모리 구현.

    fail_upload: 이 문자열이 경로에 포함되면 업로드 실패
    fail_public_url: 이 문자열이 경로에 포함되면 공개 URL 실패
    fail_list: 목록 조회 실패
    version_ids: False면 업로드가 객체 id를 돌려주지 않는다 (목록 조회로 대체)
    """

    def __init__(self, bucket: str = BUCKET):
        self.bucket = bucket
        self.objects: dict[str, bytes] = {}
        self.content_types: dict[str, str] = {}
        self.calls: list[tuple[str, str]] = []
        self.fail_upload: set[str] = set()
        self.fail_public_url: set[str] = set()
        self.fail_list = False
        self.version_ids = True
        self._versions = 0

    def put(self, path: str, data: bytes) -> None:
        """테스트 준비용 직접 저장 (호출 기록 없음)."""
        self.objects[path] = data

    async def upload(self, path: str, data: bytes, content_type: str) -> str | None:
        self.calls.append(("upload", path))
        if any(marker in path for marker in self.fail_upload):
            raise StorageError(f"Upload failed for {path}: simulated")
        self.objects[path] = data
        self.content_types[path] = content_type
        self._versions += 1
        return f"v{self._versions}" if self.version_ids else None

    async def download(self, path: str) -> bytes:
        self.calls.append(("download", path))
        if path not in self.objects:
            raise StorageError(f"Download failed for {path}: NoSuchKey")
        return self.objects[path]

    async def list_objects(self, folder: str, search: str | None = None, limit: int = 100):
        self.calls.append(("list", folder))
        if self.fail_list:
            raise StorageError(f"List failed for {folder}: simulated")
        prefix = f"{folder}/" if folder else ""
        found = []
        for key, data in self.objects.items():
            if not key.startswith(prefix + (search or "")):
                continue
            name = key[len(prefix):]
            if "/" in name:
                continue
            found.append(StoredObject(name=name, id=hashlib.md5(data).hexdigest(), size=len(data)))
        return found[:limit]

    def public_url(self, path: str) -> str:
        if any(marker in path for marker in self.fail_public_url):
            raise StorageError(f"No public URL for {path}")
        return f"{PUBLIC_BASE}/{self.bucket}/{quote(path)}"


def make_image_bytes(
    width: int = 100,
    height: int = 100,
    fmt: str = "JPEG",
    mode: str = "RGB",
) -> bytes:
    """테스트용 그라디언트 이미지를 메모리에서 생성한다."""
    gradient = Image.linear_gradient("L").resize((width, height))
    if mode == "RGBA":
        image = Image.merge("RGBA", (gradient, gradient.rotate(90), gradient, gradient))
    else:
        image = Image.merge("RGB", (gradient, gradient.rotate(90), Image.new("L", (width, height), 128)))
    buf = io.BytesIO()
    image.save(buf, format=fmt)
    return buf.getvalue()


@pytest.fixture()
def session():
    """테스트마다 새 in-memory SQLite DB를 생성한다.

    StaticPool을 사용해야 모든 커넥션이 같은 in-memory DB를 공유한다.
    (기본값은 커넥션마다 별도 DB가 생성되어 테이블이 안 보임)
    """
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    with Session(engine) as s:
        yield s


@pytest.fixture()
def storage():
    return FakeStorage()


@pytest.fixture()
def remote_images():
    """URL → 이미지 바이트. 없는 URL은 404."""
    return {}


@pytest.fixture()
def http_client(remote_images):
    def handler(request: httpx.Request) -> httpx.Response:
        data = remote_images.get(str(request.url))
        if data is None:
            return httpx.Response(404, text="Not Found")
        return httpx.Response(200, content=data, headers={"Content-Type": "image/jpeg"})

    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.fixture()
def in_process_dispatch(session, storage):
    """배치 스윕의 자기 호출 대신 같은 프로세스에서 바로 처리한다."""

    async def _dispatch(record: dict) -> dict:
        return await image_service.process_record(record, session, storage)

    return _dispatch


@pytest.fixture()
def client(session, storage, http_client, in_process_dispatch):
    """의존성을 테스트용으로 오버라이드한 TestClient."""

    def _override_session():
        yield session

    app.dependency_overrides[get_session] = _override_session
    app.dependency_overrides[get_storage] = lambda: storage
    app.dependency_overrides[get_http_client] = lambda: http_client
    app.dependency_overrides[get_dispatcher] = lambda: in_process_dispatch
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture()
def auth_headers():
    return {"Authorization": "Bearer test-service-key"}


@pytest.fixture()
def seed_image(session, storage):
    """원본을 스토리지에 올리고 product_images 행을 만든다."""

    def _seed(
        path: str = "products/p1/photo.jpg",
        width: int = 2000,
        height: int = 1500,
        data: bytes | None = None,
        upload: bool = True,
        **fields,
    ) -> ProductImage:
        if upload:
            storage.put(path, data if data is not None else make_image_bytes(width, height))
        image = ProductImage(
            product_id=fields.pop("product_id", "prod-1"),
            storage_path=path,
            original_url=f"{PUBLIC_BASE}/{BUCKET}/{quote(path)}",
            **fields,
        )
        session.add(image)
        session.commit()
        session.refresh(image)
        return image

    return _seed
